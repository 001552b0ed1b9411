"""
Tests for WebhookService and WebhookEvent.

Verifies:
- Subscription events drive upgrade, cancellation and expiry
- Redelivery is harmless; processed event ids are skipped
- Events without user metadata are dropped with a warning
- Payment events are logged only
- Stripe payloads are reduced to WebhookEvent
"""

import logging
from unittest import mock

import pytest

from subscriptions.feature_gates import Tier
from subscriptions.models import SubscriptionRecord
from subscriptions.services import SubscriptionService, WebhookEvent, WebhookService
from subscriptions.services.webhook_service import (
    PAYMENT_FAILED, PAYMENT_SUCCEEDED, SUBSCRIPTION_CREATED, SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
)


def _event(event_type, user, tier=Tier.PREMIUM, event_id='', **kwargs):
    return WebhookEvent(
        type=event_type,
        user_id=str(user.id) if user else None,
        tier=tier,
        external_subscription_ref='sub_abc',
        event_id=event_id,
        **kwargs
    )


@pytest.mark.django_db
class TestSubscriptionEvents:
    """Tests for subscription.* events."""

    def test_created_upgrades_tier(self, test_user):
        result = WebhookService.handle_event(_event(SUBSCRIPTION_CREATED, test_user))

        assert result['ok'] is True
        assert result['data']['action'] == 'TIER_UPDATED'
        record = SubscriptionService.get_subscription(test_user.id)
        assert record.tier == Tier.PREMIUM
        assert record.status == SubscriptionRecord.Status.ACTIVE
        assert record.external_subscription_ref == 'sub_abc'
        assert record.end_date is not None

    def test_updated_changes_tier(self, premium_user):
        WebhookService.handle_event(_event(SUBSCRIPTION_UPDATED, premium_user, tier=Tier.ENTERPRISE))

        record = SubscriptionService.get_subscription(premium_user.id)
        assert record.tier == Tier.ENTERPRISE

    def test_update_with_cancel_at_period_end_cancels(self, premium_user):
        result = WebhookService.handle_event(
            _event(SUBSCRIPTION_UPDATED, premium_user, cancel_at_period_end=True)
        )

        assert result['data']['action'] == 'CANCELLED'
        record = SubscriptionService.get_subscription(premium_user.id)
        assert record.status == SubscriptionRecord.Status.CANCELLED
        assert record.tier == Tier.PREMIUM

    def test_deleted_expires(self, premium_user):
        result = WebhookService.handle_event(_event(SUBSCRIPTION_DELETED, premium_user, tier=None))

        assert result['data']['action'] == 'EXPIRED'
        record = SubscriptionService.get_subscription(premium_user.id)
        assert record.tier == Tier.FREE
        assert record.status == SubscriptionRecord.Status.EXPIRED
        assert record.external_subscription_ref == ''

    def test_redelivery_without_id_is_harmless(self, test_user):
        event = _event(SUBSCRIPTION_CREATED, test_user)

        WebhookService.handle_event(event)
        first = SubscriptionService.get_subscription(test_user.id)
        WebhookService.handle_event(event)
        second = SubscriptionService.get_subscription(test_user.id)

        assert (second.tier, second.status, second.external_subscription_ref) == (
            first.tier, first.status, first.external_subscription_ref
        )

    def test_processed_event_id_skipped(self, test_user):
        event = _event(SUBSCRIPTION_CREATED, test_user, event_id='evt_1')
        WebhookService.handle_event(event)

        with mock.patch.object(SubscriptionService, 'upgrade_tier') as upgrade:
            result = WebhookService.handle_event(event)

        assert result['data']['action'] == 'DUPLICATE_IGNORED'
        upgrade.assert_not_called()

    def test_unknown_user_reported_not_raised(self, test_user):
        SubscriptionRecord.objects.filter(user=test_user).delete()

        result = WebhookService.handle_event(_event(SUBSCRIPTION_CREATED, test_user, event_id='evt_2'))

        assert result['ok'] is False
        assert result['code'] == 'SUBSCRIPTION_NOT_FOUND'
        assert not WebhookService._is_duplicate_event('evt_2')


@pytest.mark.django_db
class TestMalformedEvents:
    """Events that cannot be attributed to a user are dropped."""

    def test_missing_user_id_dropped_with_warning(self, test_user, caplog):
        with caplog.at_level(logging.WARNING, logger='subscriptions.services.webhook_service'):
            result = WebhookService.handle_event(_event(SUBSCRIPTION_CREATED, None))

        assert result['ok'] is False
        assert result['code'] == 'MALFORMED_WEBHOOK_EVENT'
        assert any(r.levelno == logging.WARNING for r in caplog.records)
        assert SubscriptionService.get_subscription(test_user.id).tier == Tier.FREE

    def test_missing_tier_dropped(self, test_user):
        result = WebhookService.handle_event(_event(SUBSCRIPTION_CREATED, test_user, tier=None))

        assert result['code'] == 'MALFORMED_WEBHOOK_EVENT'
        assert SubscriptionService.get_subscription(test_user.id).tier == Tier.FREE

    def test_unknown_tier_dropped(self, test_user):
        result = WebhookService.handle_event(_event(SUBSCRIPTION_UPDATED, test_user, tier='platinum'))

        assert result['code'] == 'MALFORMED_WEBHOOK_EVENT'

    def test_non_numeric_user_id_dropped(self, test_user):
        event = WebhookEvent(type=SUBSCRIPTION_DELETED, user_id='not-a-user')

        result = WebhookService.handle_event(event)

        assert result['code'] == 'MALFORMED_WEBHOOK_EVENT'


@pytest.mark.django_db
class TestPaymentEvents:
    """payment.* events never change state."""

    @pytest.mark.parametrize('event_type', [PAYMENT_SUCCEEDED, PAYMENT_FAILED])
    def test_payment_events_logged_only(self, premium_user, event_type):
        before = SubscriptionService.get_subscription(premium_user.id)

        result = WebhookService.handle_event(_event(event_type, premium_user))

        after = SubscriptionService.get_subscription(premium_user.id)
        assert result['data']['action'] == 'LOGGED'
        assert after.updated_at == before.updated_at

    def test_unhandled_type_ignored(self, test_user):
        result = WebhookService.handle_event(WebhookEvent(type='customer.created'))

        assert result['ok'] is True
        assert result['data']['action'] == 'IGNORED'


class TestWebhookEventFromStripe:
    """Tests for WebhookEvent.from_stripe."""

    def test_subscription_event(self):
        event = WebhookEvent.from_stripe({
            'id': 'evt_123',
            'type': 'customer.subscription.updated',
            'data': {'object': {
                'id': 'sub_123',
                'cancel_at_period_end': True,
                'metadata': {'user_id': '42', 'tier': 'enterprise'},
            }},
        })

        assert event == WebhookEvent(
            type=SUBSCRIPTION_UPDATED,
            user_id='42',
            tier='enterprise',
            external_subscription_ref='sub_123',
            event_id='evt_123',
            cancel_at_period_end=True,
        )

    def test_invoice_event_reads_subscription_details(self):
        event = WebhookEvent.from_stripe({
            'id': 'evt_456',
            'type': 'invoice.payment_failed',
            'data': {'object': {
                'id': 'in_456',
                'subscription': 'sub_123',
                'metadata': {},
                'subscription_details': {'metadata': {'user_id': '42', 'tier': 'premium'}},
            }},
        })

        assert event.type == PAYMENT_FAILED
        assert event.user_id == '42'
        assert event.external_subscription_ref == 'sub_123'

    def test_invoice_event_reads_parent_subscription_details(self):
        event = WebhookEvent.from_stripe({
            'id': 'evt_457',
            'type': 'invoice.payment_succeeded',
            'data': {'object': {
                'id': 'in_457',
                'metadata': {},
                'parent': {
                    'type': 'subscription_details',
                    'subscription_details': {
                        'subscription': 'sub_321',
                        'metadata': {'user_id': '42', 'tier': 'enterprise'},
                    },
                },
            }},
        })

        assert event.type == PAYMENT_SUCCEEDED
        assert event.user_id == '42'
        assert event.tier == 'enterprise'
        assert event.external_subscription_ref == 'sub_321'

    def test_missing_metadata(self):
        event = WebhookEvent.from_stripe({
            'id': 'evt_789',
            'type': 'customer.subscription.deleted',
            'data': {'object': {'id': 'sub_123'}},
        })

        assert event.type == SUBSCRIPTION_DELETED
        assert event.user_id is None
