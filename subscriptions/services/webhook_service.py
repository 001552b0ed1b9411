# subscriptions/services/webhook_service.py
"""
Stripe webhook reconciliation.

Events are applied as absolute state ("set the tier to X"), never as deltas.
Processed event ids are cached for a day and skipped on redelivery.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.cache import cache

from subscriptions.exceptions import MalformedWebhookEvent, SubscriptionNotFound
from subscriptions.feature_gates import Tier
from subscriptions.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


SUBSCRIPTION_CREATED = 'subscription.created'
SUBSCRIPTION_UPDATED = 'subscription.updated'
SUBSCRIPTION_DELETED = 'subscription.deleted'
PAYMENT_SUCCEEDED = 'payment.succeeded'
PAYMENT_FAILED = 'payment.failed'

STRIPE_EVENT_TYPES = {
    'customer.subscription.created': SUBSCRIPTION_CREATED,
    'customer.subscription.updated': SUBSCRIPTION_UPDATED,
    'customer.subscription.deleted': SUBSCRIPTION_DELETED,
    'invoice.payment_succeeded': PAYMENT_SUCCEEDED,
    'invoice.payment_failed': PAYMENT_FAILED,
}


@dataclass(frozen=True)
class WebhookEvent:
    """A verified processor event reduced to what the reconciler needs."""
    type: str
    user_id: Optional[str] = None
    tier: Optional[str] = None
    external_subscription_ref: Optional[str] = None
    event_id: str = ''
    cancel_at_period_end: bool = False

    @classmethod
    def from_stripe(cls, event) -> 'WebhookEvent':
        """Build from the dict form of a Stripe event (``stripe.Event.to_dict()``)."""
        obj = event.get('data', {}).get('object', {}) or {}
        event_type = event.get('type', '')
        is_subscription = event_type.startswith('customer.subscription.')

        if is_subscription:
            metadata = obj.get('metadata') or {}
            subscription_ref = obj.get('id')
        else:
            # Invoices nest the subscription under parent.subscription_details;
            # API versions before 2025-03-31 keep it at the top level
            parent = obj.get('parent') or {}
            details = parent.get('subscription_details') or obj.get('subscription_details') or {}
            metadata = obj.get('metadata') or details.get('metadata') or {}
            subscription_ref = details.get('subscription') or obj.get('subscription')

        return cls(
            type=STRIPE_EVENT_TYPES.get(event_type, event_type),
            user_id=metadata.get('user_id'),
            tier=metadata.get('tier'),
            external_subscription_ref=subscription_ref,
            event_id=event.get('id', ''),
            cancel_at_period_end=bool(obj.get('cancel_at_period_end', False)),
        )


class WebhookService:
    """
    Applies webhook events to subscription records.

    Usage:
        event = WebhookEvent.from_stripe(stripe_event)
        result = WebhookService.handle_event(event)
    """

    @classmethod
    def handle_event(cls, event: WebhookEvent) -> Dict[str, Any]:
        """
        Returns:
            {'ok': bool, 'reason': str, 'code'?: str, 'data': {'action': str}}

        Malformed events and events for unknown users are reported as failed
        results; they are never raised.
        """
        logger.info(f"Webhook received: {event.type} (event_id: {event.event_id})")

        if cls._is_duplicate_event(event.event_id):
            logger.info(f"Duplicate webhook event ignored: {event.event_id}")
            return cls._success(
                f"Event {event.event_id} already processed",
                data={"action": "DUPLICATE_IGNORED"}
            )

        try:
            result = cls._process_event(event)
        except MalformedWebhookEvent as e:
            logger.warning(f"Dropping webhook {event.type} ({event.event_id}): {e}")
            return cls._fail(str(e), code=MalformedWebhookEvent.code)
        except SubscriptionNotFound as e:
            logger.error(f"Webhook {event.type} ({event.event_id}) for unknown subscription: {e}")
            return cls._fail(str(e), code=SubscriptionNotFound.code)

        cls._mark_event_processed(event.event_id)
        return result

    @classmethod
    def _process_event(cls, event: WebhookEvent) -> Dict[str, Any]:
        if event.type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            user_id = cls._require_user_id(event)
            tier = cls._require_tier(event)

            # Stripe confirms a cancel-at-period-end as an update
            if event.type == SUBSCRIPTION_UPDATED and event.cancel_at_period_end:
                SubscriptionService.cancel_subscription(user_id)
                return cls._success("Cancellation confirmed", data={"action": "CANCELLED"})

            SubscriptionService.upgrade_tier(user_id, tier, event.external_subscription_ref)
            cls._audit_log(user_id, "tier_synced", {
                "event": event.type,
                "tier": tier,
                "subscription": event.external_subscription_ref,
            })
            return cls._success(f"Tier set to {tier}", data={"action": "TIER_UPDATED"})

        elif event.type == SUBSCRIPTION_DELETED:
            user_id = cls._require_user_id(event)
            SubscriptionService.expire_subscription(user_id)
            cls._audit_log(user_id, "subscription_deleted", {
                "subscription": event.external_subscription_ref,
            })
            return cls._success("Subscription expired", data={"action": "EXPIRED"})

        elif event.type == PAYMENT_SUCCEEDED:
            logger.info(f"Payment succeeded for user {event.user_id} ({event.external_subscription_ref})")
            return cls._success("Payment recorded", data={"action": "LOGGED"})

        elif event.type == PAYMENT_FAILED:
            logger.warning(f"Payment failed for user {event.user_id} ({event.external_subscription_ref})")
            return cls._success("Payment failure recorded", data={"action": "LOGGED"})

        else:
            logger.info(f"Unhandled webhook event type: {event.type}")
            return cls._success(f"Event type {event.type} ignored", data={"action": "IGNORED"})

    # =========================================================================
    # VALIDATION
    # =========================================================================

    @classmethod
    def _require_user_id(cls, event: WebhookEvent) -> int:
        if event.user_id in (None, ''):
            raise MalformedWebhookEvent("Missing user_id in subscription metadata")
        try:
            return int(event.user_id)
        except (TypeError, ValueError):
            raise MalformedWebhookEvent(f"Invalid user_id in metadata: {event.user_id!r}")

    @classmethod
    def _require_tier(cls, event: WebhookEvent) -> str:
        if not event.tier:
            raise MalformedWebhookEvent("Missing tier in subscription metadata")
        if event.tier not in Tier.values:
            raise MalformedWebhookEvent(f"Unknown tier in metadata: {event.tier!r}")
        return event.tier

    # =========================================================================
    # IDEMPOTENCY
    # =========================================================================

    @classmethod
    def _is_duplicate_event(cls, event_id: str) -> bool:
        """Check if webhook event has already been processed."""
        if not event_id:
            return False
        return cache.get(cls._cache_key(event_id)) is not None

    @classmethod
    def _mark_event_processed(cls, event_id: str) -> None:
        if not event_id:
            return
        cache.set(cls._cache_key(event_id), True, settings.SUBSCRIPTION_WEBHOOK_DEDUP_TTL)

    @classmethod
    def _cache_key(cls, event_id: str) -> str:
        return f"stripe_webhook_{event_id}"

    # =========================================================================
    # RESPONSE BUILDERS
    # =========================================================================

    @classmethod
    def _success(cls, reason: str, data: Optional[dict] = None) -> Dict[str, Any]:
        return {"ok": True, "reason": reason, "data": data or {}}

    @classmethod
    def _fail(cls, reason: str, code: str = "ERROR", data: Optional[dict] = None) -> Dict[str, Any]:
        return {"ok": False, "reason": reason, "code": code, "data": data or {}}

    @classmethod
    def _audit_log(cls, user_id, action: str, metadata: dict):
        logger.info(f"[PAYMENT_AUDIT] {action} | user={user_id} | {metadata}")
