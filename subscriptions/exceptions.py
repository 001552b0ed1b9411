# subscriptions/exceptions.py
"""
Errors raised by the subscription engine.

AccessDenied and QuotaExceeded are expected, user-facing denials. They are
rendered as 403 JSON bodies and are never logged as errors.
"""

from django.core.exceptions import ObjectDoesNotExist


class SubscriptionError(Exception):
    """Base class for subscription engine errors."""
    code = 'SUBSCRIPTION_ERROR'


class SubscriptionNotFound(SubscriptionError, ObjectDoesNotExist):
    """No SubscriptionRecord exists for the user (data-integrity fault)."""
    code = 'SUBSCRIPTION_NOT_FOUND'

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"Subscription not found for user {user_id}")


class GateDenied(SubscriptionError):
    """A feature or usage gate refused the operation."""
    upgrade_required = True

    def __init__(self, feature, reason):
        self.feature = feature
        self.reason = reason
        super().__init__(reason)

    def data(self):
        return {
            'feature': self.feature,
            'upgrade_required': self.upgrade_required,
        }

    def to_dict(self):
        return {
            'ok': False,
            'code': self.code,
            'reason': self.reason,
            'data': self.data(),
        }


class AccessDenied(GateDenied):
    code = 'FEATURE_LOCKED'

    def __init__(self, feature):
        super().__init__(
            feature,
            f"Feature {feature} requires a premium subscription"
        )


class QuotaExceeded(GateDenied):
    code = 'USAGE_LIMIT'

    def __init__(self, feature, limit, current_usage):
        self.limit = limit
        self.current_usage = current_usage
        super().__init__(
            feature,
            f"Monthly limit reached for {feature} ({current_usage}/{limit}). "
            f"Upgrade to premium for unlimited access."
        )

    def data(self):
        data = super().data()
        data['limit'] = self.limit
        data['current_usage'] = self.current_usage
        return data


class PaymentGatewayError(SubscriptionError):
    """A call to Stripe failed. Local state must not have changed."""
    code = 'PAYMENT_GATEWAY_ERROR'


class MalformedWebhookEvent(SubscriptionError):
    """Webhook event lacks the metadata needed to find its user."""
    code = 'MALFORMED_WEBHOOK_EVENT'
