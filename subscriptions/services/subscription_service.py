# subscriptions/services/subscription_service.py
"""
Subscription lifecycle - tiers, cancellation, expiry, feature access, usage quotas.
"""

import logging
from datetime import timedelta
from typing import Optional
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from subscriptions.exceptions import AccessDenied, QuotaExceeded, SubscriptionNotFound
from subscriptions.feature_gates import FREE_TIER_LIMITS, Tier, allowed_tiers

logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Subscription lifecycle management. Every operation is keyed by user id.

    Usage:
        SubscriptionService.require_feature_access(user.id, Feature.GITHUB_EXPORT)
        SubscriptionService.require_usage_limit(user.id, UsageFeature.ROADMAPS)
        SubscriptionService.track_usage(user.id, UsageFeature.ROADMAPS)

    Lifecycle transitions lock the user's row (select_for_update) so that a
    webhook-driven upgrade and a sweep-driven expiry cannot interleave.
    Usage increments are a single atomic UPDATE on the counter row.
    """

    # =========================================================================
    # RECORD ACCESS
    # =========================================================================

    @classmethod
    def get_subscription(cls, user_id):
        from subscriptions.models import SubscriptionRecord

        try:
            return SubscriptionRecord.objects.get(user_id=user_id)
        except SubscriptionRecord.DoesNotExist:
            logger.error(f"Subscription record missing for user {user_id}")
            raise SubscriptionNotFound(user_id)

    @classmethod
    def create_subscription(cls, user_id, tier: str = Tier.FREE):
        """
        Create the user's record if it does not exist yet.

        Called once at registration; repeated calls return the existing record
        untouched.
        """
        from subscriptions.models import BILLING_PERIOD_DAYS, SubscriptionRecord

        now = timezone.now()
        end_date = None
        if tier != Tier.FREE:
            end_date = now + timedelta(days=BILLING_PERIOD_DAYS)

        record, created = SubscriptionRecord.objects.get_or_create(
            user_id=user_id,
            defaults={
                'tier': tier,
                'status': SubscriptionRecord.Status.ACTIVE,
                'start_date': now,
                'end_date': end_date,
            }
        )
        if created:
            cls._audit_log(user_id, "subscription_created", {"tier": tier})
        return record

    # =========================================================================
    # LIFECYCLE TRANSITIONS
    # =========================================================================

    @classmethod
    def upgrade_tier(cls, user_id, tier: str, external_subscription_ref: Optional[str] = None):
        """
        Move the user onto ``tier`` and start a new billing period.

        Paid tiers get a fixed 30-day period; Free clears the end date. Any
        previous cancellation is overwritten. Only call this after the Stripe
        call that paid for the tier has succeeded.
        """
        if tier not in Tier.values:
            raise ValueError(f"Unknown tier: {tier}")

        with transaction.atomic():
            record = cls._lock(user_id)
            previous = {"tier": record.tier, "status": record.status}
            record.apply_tier(tier, external_subscription_ref)

        cls._audit_log(user_id, "tier_changed", {
            "from": previous,
            "tier": tier,
            "end_date": record.end_date.isoformat() if record.end_date else None,
            "external_subscription_ref": external_subscription_ref,
        })
        return record

    @classmethod
    def cancel_subscription(cls, user_id):
        """
        Mark the subscription cancelled. Tier and end date stay as they are,
        so paid access continues until the expiry sweep reaches the end date.
        """
        with transaction.atomic():
            record = cls._lock(user_id)
            if record.status == record.Status.CANCELLED:
                return record
            record.cancel()

        cls._audit_log(user_id, "subscription_cancelled", {
            "tier": record.tier,
            "access_until": record.end_date.isoformat() if record.end_date else None,
        })
        return record

    @classmethod
    def expire_subscription(cls, user_id, overdue_before=None):
        """
        Revert the user to Free/Expired and drop the Stripe subscription ref.

        With ``overdue_before`` the expiry only happens if the record is still
        past its end date at that moment once the row is locked; a renewal that
        landed in the meantime is left alone.
        """
        with transaction.atomic():
            record = cls._lock(user_id)
            if overdue_before is not None and not record.is_overdue(overdue_before):
                logger.info(f"Skipping expiry for user {user_id}: renewed or already expired")
                return record
            previous = {"tier": record.tier, "status": record.status}
            record.expire()

        cls._audit_log(user_id, "subscription_expired", {"from": previous})
        return record

    @classmethod
    def set_customer_ref(cls, user_id, customer_ref: str):
        """Remember the Stripe customer created for the user."""
        with transaction.atomic():
            record = cls._lock(user_id)
            record.external_customer_ref = customer_ref
            record.save(update_fields=['external_customer_ref', 'updated_at'])
        return record

    # =========================================================================
    # FEATURE ACCESS
    # =========================================================================

    @classmethod
    def check_feature_access(cls, user_id, feature: str) -> bool:
        """
        True iff the user's tier may use ``feature``.

        Missing records and unknown features are denied, never raised.
        """
        from subscriptions.models import SubscriptionRecord

        tier = (
            SubscriptionRecord.objects
            .filter(user_id=user_id)
            .values_list('tier', flat=True)
            .first()
        )
        if tier is None:
            return False
        return tier in allowed_tiers(feature)

    @classmethod
    def require_feature_access(cls, user_id, feature: str) -> None:
        if not cls.check_feature_access(user_id, feature):
            logger.info(f"Feature {feature} denied for user {user_id}")
            raise AccessDenied(feature)

    # =========================================================================
    # USAGE QUOTAS
    # =========================================================================

    @classmethod
    def check_usage_limit(cls, user_id, feature: str) -> bool:
        """
        True when the user may perform one more ``feature`` operation this month.

        Paid tiers are never limited. A Free user on a feature with no Free-tier
        quota is allowed, matching the usage gate's pass-through.
        """
        allowed, _, _ = cls._usage_status(user_id, feature)
        return allowed

    @classmethod
    def require_usage_limit(cls, user_id, feature: str) -> None:
        allowed, limit, current_usage = cls._usage_status(user_id, feature)
        if not allowed:
            logger.info(
                f"Usage limit hit for user {user_id}: {feature} {current_usage}/{limit}"
            )
            raise QuotaExceeded(feature, limit, current_usage)

    @classmethod
    def track_usage(cls, user_id, feature: str, amount: int = 1) -> None:
        """
        Add ``amount`` to the user's monthly counter for ``feature``.

        Never checks the quota: the gate runs before the operation, tracking
        records what actually happened.
        """
        from subscriptions.models import SubscriptionRecord, UsageCounter

        if amount < 0:
            raise ValueError("Usage amount cannot be negative")

        subscription_id = (
            SubscriptionRecord.objects
            .filter(user_id=user_id)
            .values_list('id', flat=True)
            .first()
        )
        if subscription_id is None:
            logger.error(f"Cannot track {feature}: no subscription for user {user_id}")
            raise SubscriptionNotFound(user_id)

        with transaction.atomic():
            counter, _ = UsageCounter.objects.get_or_create(
                subscription_id=subscription_id,
                feature=feature,
            )
            UsageCounter.objects.filter(pk=counter.pk).update(
                count=F('count') + amount,
                updated_at=timezone.now(),
            )

    @classmethod
    def reset_monthly_usage(cls, user_id) -> None:
        """Clear every usage counter. Tier, status and dates are untouched."""
        with transaction.atomic():
            record = cls._lock(user_id)
            record.reset_usage()

        cls._audit_log(user_id, "usage_reset", {"tier": record.tier})

    @classmethod
    def get_usage_stats(cls, user_id) -> dict:
        """
        Returns:
            {tier, usage: {feature: count}, limits: {feature: quota} or None}
            limits is None for paid tiers (unlimited).
        """
        record = cls.get_subscription(user_id)
        return {
            "tier": record.tier,
            "usage": record.usage_tracking,
            "limits": dict(FREE_TIER_LIMITS) if record.tier == Tier.FREE else None,
        }

    # =========================================================================
    # SCHEDULED SWEEPS
    # =========================================================================

    @classmethod
    def expire_overdue_subscriptions(cls, now=None) -> dict:
        """
        Expire every active or cancelled subscription whose end date passed.

        Run hourly via Celery. A failing record is logged and skipped.

        Returns:
            {ok: bool, reason: str, data: {processed: int, failed: [user_id, ...]}}
        """
        from subscriptions.models import SubscriptionRecord

        now = now or timezone.now()
        user_ids = list(
            SubscriptionRecord.objects.filter(
                end_date__lt=now,
                status__in=[
                    SubscriptionRecord.Status.ACTIVE,
                    SubscriptionRecord.Status.CANCELLED,
                ],
            ).values_list('user_id', flat=True)
        )

        expired = 0
        failed = []
        for user_id in user_ids:
            try:
                record = cls.expire_subscription(user_id, overdue_before=now)
                if record.status == SubscriptionRecord.Status.EXPIRED:
                    expired += 1
            except Exception:
                logger.exception(f"Failed to expire subscription for user {user_id}")
                failed.append(user_id)

        logger.info(f"Expiry sweep: expired {expired}, failed {len(failed)}")
        return cls._success(
            f"Expired {expired} subscriptions.",
            data={"processed": expired, "failed": failed}
        )

    @classmethod
    def reset_free_tier_usage(cls) -> dict:
        """
        Clear usage counters of every Free-tier subscription.
        Run on the 1st of each month via Celery.

        Returns:
            {ok: bool, reason: str, data: {processed: int, failed: [user_id, ...]}}
        """
        from subscriptions.models import SubscriptionRecord

        user_ids = list(
            SubscriptionRecord.objects.filter(tier=Tier.FREE)
            .values_list('user_id', flat=True)
        )

        reset = 0
        failed = []
        for user_id in user_ids:
            try:
                cls.reset_monthly_usage(user_id)
                reset += 1
            except Exception:
                logger.exception(f"Failed to reset usage for user {user_id}")
                failed.append(user_id)

        logger.info(f"Usage reset sweep: reset {reset}, failed {len(failed)}")
        return cls._success(
            f"Reset usage for {reset} subscriptions.",
            data={"processed": reset, "failed": failed}
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @classmethod
    def _lock(cls, user_id):
        """Fetch the user's record with a row lock. Call inside transaction.atomic()."""
        from subscriptions.models import SubscriptionRecord

        try:
            return SubscriptionRecord.objects.select_for_update().get(user_id=user_id)
        except SubscriptionRecord.DoesNotExist:
            logger.error(f"Subscription record missing for user {user_id}")
            raise SubscriptionNotFound(user_id)

    @classmethod
    def _usage_status(cls, user_id, feature: str):
        """Returns (allowed, limit, current_usage) for a usage-limited feature."""
        from subscriptions.models import UsageCounter

        record = cls.get_subscription(user_id)
        limit = FREE_TIER_LIMITS.get(feature)
        if record.tier != Tier.FREE or limit is None:
            return True, limit, None

        current_usage = (
            UsageCounter.objects
            .filter(subscription=record, feature=feature)
            .values_list('count', flat=True)
            .first()
        ) or 0
        return current_usage < limit, limit, current_usage

    @classmethod
    def _success(cls, reason: str, data: Optional[dict] = None) -> dict:
        return {"ok": True, "reason": reason, "data": data or {}}

    @classmethod
    def _audit_log(cls, user_id, action: str, metadata: dict):
        logger.info(f"[SUBSCRIPTION_AUDIT] {action} | user={user_id} | {metadata}")
