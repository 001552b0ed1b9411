# subscriptions/services/__init__.py
from subscriptions.services.subscription_service import SubscriptionService
from subscriptions.services.stripe_service import StripeService
from subscriptions.services.webhook_service import WebhookEvent, WebhookService

__all__ = ['SubscriptionService', 'StripeService', 'WebhookEvent', 'WebhookService']
