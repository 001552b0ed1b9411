# subscriptions/decorators.py
"""
Feature and usage gates for guarded operations.

Each guarded view carries a static GateDescriptor. The decorator consults it
before dispatch and records usage only after the view succeeded.

Usage:
    @subscription_gate(feature=Feature.GITHUB_EXPORT)
    def export_to_github(request):
        ...

    @subscription_gate(usage=UsageFeature.ROADMAPS)
    def generate_roadmap(request):
        ...

    # Outside a request
    GateDescriptor(usage_gate=UsageFeature.TASKS).run(user.id, create_task, payload)
"""

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from django.http import JsonResponse

from subscriptions.exceptions import GateDenied
from subscriptions.feature_gates import FREE_TIER_LIMITS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDescriptor:
    """Gates attached to one operation."""
    feature_gate: Optional[str] = None
    usage_gate: Optional[str] = None

    @property
    def tracks_usage(self) -> bool:
        # Features without a Free-tier quota pass through ungated
        return self.usage_gate is not None and self.usage_gate in FREE_TIER_LIMITS

    def check(self, user_id) -> None:
        """Raise AccessDenied or QuotaExceeded if the user may not proceed."""
        from subscriptions.services import SubscriptionService

        if self.feature_gate is not None:
            SubscriptionService.require_feature_access(user_id, self.feature_gate)
        if self.tracks_usage:
            SubscriptionService.require_usage_limit(user_id, self.usage_gate)

    def record(self, user_id) -> None:
        """
        Charge one unit of usage after the operation completed.

        A tracking failure is logged and never fails the completed operation.
        """
        from subscriptions.services import SubscriptionService

        if not self.tracks_usage:
            return
        try:
            SubscriptionService.track_usage(user_id, self.usage_gate, 1)
        except Exception:
            logger.exception(f"Usage tracking failed for user {user_id}: {self.usage_gate}")

    def run(self, user_id, operation, *args, **kwargs):
        """Check the gates, call ``operation``, then record usage if it returned."""
        self.check(user_id)
        result = operation(*args, **kwargs)
        self.record(user_id)
        return result


def subscription_gate(feature=None, usage=None):
    """
    Decorator enforcing a GateDescriptor on a JSON view.

    The descriptor is exposed as ``view.subscription_gate``. Usage is tracked
    only when the view returns a 2xx response; denials and failed views cost
    nothing.
    """
    descriptor = GateDescriptor(feature_gate=feature, usage_gate=usage)

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return JsonResponse({
                    'ok': False,
                    'code': 'AUTH_REQUIRED',
                    'reason': 'Please log in to continue.',
                }, status=401)

            user_id = request.user.id
            try:
                descriptor.check(user_id)
            except GateDenied as denial:
                return denial_response(denial)

            response = view_func(request, *args, **kwargs)

            if 200 <= response.status_code < 300:
                descriptor.record(user_id)
            return response

        wrapper.subscription_gate = descriptor
        return wrapper
    return decorator


def denial_response(denial: GateDenied) -> JsonResponse:
    """403 body for a gate denial, with the upgrade hint for the client."""
    return JsonResponse(denial.to_dict(), status=403)
