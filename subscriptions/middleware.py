# subscriptions/middleware.py
"""
Maps subscription errors raised inside views to JSON responses.

- AccessDenied / QuotaExceeded -> 403 with upgrade hint
- SubscriptionNotFound -> 404 (logged, integrity fault)
- PaymentGatewayError -> 502
"""

import logging
from django.http import JsonResponse

from subscriptions.decorators import denial_response
from subscriptions.exceptions import GateDenied, PaymentGatewayError, SubscriptionNotFound

logger = logging.getLogger(__name__)


class SubscriptionErrorMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, GateDenied):
            return denial_response(exception)

        if isinstance(exception, SubscriptionNotFound):
            logger.error(f"Subscription missing on {request.path}: {exception}")
            return JsonResponse({
                'ok': False,
                'code': exception.code,
                'reason': 'Subscription not found.',
            }, status=404)

        if isinstance(exception, PaymentGatewayError):
            logger.warning(f"Payment gateway error on {request.path}: {exception}")
            return JsonResponse({
                'ok': False,
                'code': exception.code,
                'reason': 'Payment provider unavailable. Please try again.',
            }, status=502)

        return None
