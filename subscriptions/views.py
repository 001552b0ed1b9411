# subscriptions/views.py
"""
JSON endpoints for the current subscription, usage, upgrade, cancellation
and the Stripe webhook.
"""

import json
import logging

import stripe
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from subscriptions.feature_gates import PAID_TIERS
from subscriptions.services import (
    StripeService, SubscriptionService, WebhookEvent, WebhookService
)

logger = logging.getLogger(__name__)


@login_required
@require_GET
def subscription_detail_view(request):
    """Current subscription snapshot."""
    subscription = SubscriptionService.get_subscription(request.user.id)
    return JsonResponse({'ok': True, 'subscription': subscription.to_dict()})


@login_required
@require_GET
def usage_stats_view(request):
    """Usage this month; limits is null for paid tiers."""
    stats = SubscriptionService.get_usage_stats(request.user.id)
    return JsonResponse({'ok': True, **stats})


@login_required
@require_POST
def upgrade_view(request):
    """
    Start a paid subscription.

    Body: {"tier": "premium"|"enterprise", "payment_method_id": optional}

    Stripe is called first; the local tier only changes once Stripe has
    created the subscription. The client confirms the first payment with the
    returned client_secret.
    """
    try:
        data = json.loads(request.body or b'{}')
    except json.JSONDecodeError:
        return JsonResponse({'ok': False, 'reason': 'Invalid JSON.'}, status=400)
    if not isinstance(data, dict):
        return JsonResponse({'ok': False, 'reason': 'Expected a JSON object.'}, status=400)

    tier = data.get('tier')
    payment_method_id = data.get('payment_method_id')
    if tier not in PAID_TIERS:
        return JsonResponse({
            'ok': False,
            'code': 'INVALID_TIER',
            'reason': 'Tier must be premium or enterprise.',
        }, status=400)

    user = request.user
    subscription = SubscriptionService.get_subscription(user.id)

    customer_ref = subscription.external_customer_ref
    if not customer_ref:
        customer_ref = StripeService.create_customer(user.email, user.id)
        SubscriptionService.set_customer_ref(user.id, customer_ref)

    if payment_method_id:
        StripeService.attach_payment_method(customer_ref, payment_method_id)

    stripe_subscription = StripeService.create_subscription(customer_ref, tier, user.id)

    subscription = SubscriptionService.upgrade_tier(user.id, tier, stripe_subscription['id'])

    return JsonResponse({
        'ok': True,
        'subscription': subscription.to_dict(),
        'client_secret': stripe_subscription['client_secret'],
    })


@login_required
@require_POST
def cancel_view(request):
    """
    Cancel at period end. Stripe must acknowledge before the local record
    is marked cancelled; access continues until the end date.
    """
    subscription = SubscriptionService.get_subscription(request.user.id)
    if not subscription.is_paid():
        return JsonResponse({
            'ok': False,
            'code': 'NO_PAID_SUBSCRIPTION',
            'reason': 'There is no paid subscription to cancel.',
        }, status=400)

    if subscription.external_subscription_ref:
        StripeService.cancel_subscription(subscription.external_subscription_ref)

    subscription = SubscriptionService.cancel_subscription(request.user.id)
    return JsonResponse({
        'ok': True,
        'reason': 'Subscription cancelled. Access continues until the end of the billing period.',
        'subscription': subscription.to_dict(),
    })


@csrf_exempt
@require_POST
def stripe_webhook_view(request):
    """
    Stripe webhook endpoint.

    Signature verification happens here; the reconciler only ever sees
    verified events. Dropped and duplicate events still get a 200 so Stripe
    stops redelivering them.
    """
    signature = request.headers.get('Stripe-Signature')
    if not signature:
        return JsonResponse({'ok': False, 'reason': 'Missing Stripe-Signature header.'}, status=400)

    try:
        stripe_event = StripeService.construct_event(request.body, signature)
    except ValueError:
        logger.warning("Webhook payload could not be parsed")
        return JsonResponse({'ok': False, 'reason': 'Invalid payload.'}, status=400)
    except stripe.SignatureVerificationError:
        logger.warning("Webhook signature verification failed")
        return JsonResponse({'ok': False, 'reason': 'Invalid signature.'}, status=400)

    result = WebhookService.handle_event(WebhookEvent.from_stripe(stripe_event.to_dict()))
    return JsonResponse(result)
