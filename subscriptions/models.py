# subscriptions/models.py
"""
Per-user subscription records and monthly usage counters.

Models:
- SubscriptionRecord: one per user; tier, lifecycle status, billing period,
  Stripe references
- UsageCounter: one row per (subscription, usage feature); the monthly
  usage map is the set of these rows
"""

import uuid
from datetime import timedelta
from django.conf import settings
from django.db import models
from django.utils import timezone

from subscriptions.feature_gates import Tier


# Fixed billing period; calendar months are not modelled
BILLING_PERIOD_DAYS = 30


# ==============================================================================
# SUBSCRIPTION RECORDS
# ==============================================================================

class SubscriptionRecord(models.Model):
    """
    A user's billing tier and lifecycle state.

    Exactly one record exists per user; it is created with the user and only
    deleted when the user is deleted.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        CANCELLED = 'cancelled', 'Cancelled'
        EXPIRED = 'expired', 'Expired'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='subscription'
    )

    tier = models.CharField(
        max_length=20,
        choices=Tier.choices,
        default=Tier.FREE,
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )

    # Billing period
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="End of the paid period; empty for Free and Expired"
    )

    # Stripe references
    external_customer_ref = models.CharField(max_length=255, blank=True, default='')
    external_subscription_ref = models.CharField(max_length=255, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Subscription'
        verbose_name_plural = 'Subscriptions'
        indexes = [
            models.Index(fields=['status', 'end_date'], name='subscription_status_end_idx'),
        ]

    def __str__(self):
        return f"{self.user} - {self.get_tier_display()} ({self.status})"

    @property
    def usage_tracking(self):
        """Current monthly usage as a {feature: count} dict."""
        return dict(self.usage_counters.values_list('feature', 'count'))

    def is_paid(self):
        return self.tier != Tier.FREE

    def is_overdue(self, now=None):
        """True once a paid or cancelled period has run past its end date."""
        now = now or timezone.now()
        return (
            self.end_date is not None and
            self.end_date < now and
            self.status in (self.Status.ACTIVE, self.Status.CANCELLED)
        )

    def days_remaining(self):
        if not self.end_date:
            return None
        delta = self.end_date - timezone.now()
        return max(0, delta.days)

    # ------------------------------------------------------------------
    # Field-level transitions. Callers hold the row lock.
    # ------------------------------------------------------------------

    def apply_tier(self, tier, external_subscription_ref=None):
        now = timezone.now()
        self.tier = tier
        self.status = self.Status.ACTIVE
        self.start_date = now
        if tier == Tier.FREE:
            self.end_date = None
        else:
            self.end_date = now + timedelta(days=BILLING_PERIOD_DAYS)
        fields = ['tier', 'status', 'start_date', 'end_date', 'updated_at']
        if external_subscription_ref:
            self.external_subscription_ref = external_subscription_ref
            fields.append('external_subscription_ref')
        self.save(update_fields=fields)

    def cancel(self):
        self.status = self.Status.CANCELLED
        self.save(update_fields=['status', 'updated_at'])

    def expire(self):
        self.tier = Tier.FREE
        self.status = self.Status.EXPIRED
        self.end_date = None
        self.external_subscription_ref = ''
        self.save(update_fields=[
            'tier', 'status', 'end_date', 'external_subscription_ref', 'updated_at'
        ])

    def reset_usage(self):
        self.usage_counters.all().delete()

    def to_dict(self):
        return {
            'id': str(self.id),
            'user_id': self.user_id,
            'tier': self.tier,
            'status': self.status,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'days_remaining': self.days_remaining(),
            'external_customer_ref': self.external_customer_ref or None,
            'external_subscription_ref': self.external_subscription_ref or None,
            'usage_tracking': self.usage_tracking,
        }


# ==============================================================================
# USAGE COUNTERS
# ==============================================================================

class UsageCounter(models.Model):
    """
    Monthly usage of one feature by one subscription.

    Rows are created lazily on first use and incremented with a single
    UPDATE ... SET count = count + n, never read-modify-write.
    """
    subscription = models.ForeignKey(
        SubscriptionRecord,
        on_delete=models.CASCADE,
        related_name='usage_counters'
    )
    feature = models.CharField(max_length=100)
    count = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['subscription', 'feature'],
                name='unique_usage_counter_per_feature'
            ),
        ]

    def __str__(self):
        return f"{self.feature}: {self.count}"
