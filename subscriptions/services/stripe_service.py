# subscriptions/services/stripe_service.py
"""
Stripe API client for the upgrade and cancellation flows.

The lifecycle service never calls Stripe. Views call this first and only
touch local state once Stripe has accepted the request.
"""

import logging
from typing import Any, Dict, Optional

import stripe
from django.conf import settings

from subscriptions.exceptions import PaymentGatewayError
from subscriptions.feature_gates import Tier

logger = logging.getLogger(__name__)


class StripeService:
    """
    Thin wrapper over the stripe library.

    Every StripeError is re-raised as PaymentGatewayError.
    """

    @classmethod
    def get_price_id(cls, tier: str) -> str:
        prices = {
            Tier.PREMIUM: settings.STRIPE_PREMIUM_PRICE_ID,
            Tier.ENTERPRISE: settings.STRIPE_ENTERPRISE_PRICE_ID,
        }
        if tier not in prices:
            raise ValueError(f"No Stripe price for tier: {tier}")
        return prices[tier]

    # =========================================================================
    # CUSTOMERS & PAYMENT METHODS
    # =========================================================================

    @classmethod
    def create_customer(cls, email: str, user_id) -> str:
        """Create a Stripe customer tagged with our user id. Returns its id."""
        cls._configure()
        try:
            customer = stripe.Customer.create(
                email=email,
                metadata={'user_id': str(user_id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for user {user_id}: {e}")
            raise PaymentGatewayError(f"Could not create customer: {e}") from e

        cls._audit_log("customer_created", {"user_id": user_id, "customer": customer.id})
        return customer.id

    @classmethod
    def attach_payment_method(cls, customer_ref: str, payment_method_id: str) -> None:
        """Attach a payment method and make it the customer's default for invoices."""
        cls._configure()
        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_ref)
            stripe.Customer.modify(
                customer_ref,
                invoice_settings={'default_payment_method': payment_method_id},
            )
        except stripe.StripeError as e:
            logger.error(f"Attaching payment method to {customer_ref} failed: {e}")
            raise PaymentGatewayError(f"Could not attach payment method: {e}") from e

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    @classmethod
    def create_subscription(cls, customer_ref: str, tier: str, user_id) -> Dict[str, Any]:
        """
        Start a Stripe subscription for ``tier``.

        The user id and tier go into the subscription metadata; webhooks
        are correlated back to the user through them.

        Returns:
            {'id': str, 'status': str, 'client_secret': str or None}
        """
        price_id = cls.get_price_id(tier)
        cls._configure()
        try:
            subscription = stripe.Subscription.create(
                customer=customer_ref,
                items=[{'price': price_id}],
                payment_behavior='default_incomplete',
                payment_settings={'save_default_payment_method': 'on_subscription'},
                expand=['latest_invoice.confirmation_secret'],
                metadata={'user_id': str(user_id), 'tier': str(tier)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe subscription creation failed for user {user_id}: {e}")
            raise PaymentGatewayError(f"Could not create subscription: {e}") from e

        cls._audit_log("subscription_created", {
            "user_id": user_id,
            "tier": tier,
            "subscription": subscription.id,
        })
        return {
            'id': subscription.id,
            'status': subscription.status,
            'client_secret': cls._client_secret(subscription),
        }

    @classmethod
    def cancel_subscription(cls, subscription_ref: str) -> None:
        """Cancel at period end; the customer keeps access until then."""
        cls._configure()
        try:
            stripe.Subscription.modify(subscription_ref, cancel_at_period_end=True)
        except stripe.StripeError as e:
            logger.error(f"Stripe cancellation failed for {subscription_ref}: {e}")
            raise PaymentGatewayError(f"Could not cancel subscription: {e}") from e

        cls._audit_log("subscription_cancel_requested", {"subscription": subscription_ref})

    # =========================================================================
    # WEBHOOKS
    # =========================================================================

    @classmethod
    def construct_event(cls, payload: bytes, signature: str):
        """
        Verify the Stripe-Signature header and parse the payload.

        Raises stripe.SignatureVerificationError or ValueError on a bad
        signature or body; the webhook view turns both into a 400.
        """
        return stripe.Webhook.construct_event(
            payload, signature, settings.STRIPE_WEBHOOK_SECRET
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @classmethod
    def _configure(cls):
        stripe.api_key = settings.STRIPE_SECRET_KEY

    @classmethod
    def _client_secret(cls, subscription) -> Optional[str]:
        invoice = getattr(subscription, 'latest_invoice', None)
        if invoice is None or isinstance(invoice, str):
            return None
        confirmation_secret = getattr(invoice, 'confirmation_secret', None)
        if confirmation_secret is None:
            return None
        return getattr(confirmation_secret, 'client_secret', None)

    @classmethod
    def _audit_log(cls, action: str, metadata: dict):
        logger.info(f"[PAYMENT_AUDIT] {action} | {metadata}")
