# subscriptions/tasks.py
"""
Periodic subscription sweeps, scheduled by Celery beat (see CELERY_BEAT_SCHEDULE).

Both tasks take no arguments and are safe to run more than once. A failure on
one record is logged inside the sweep and never aborts the rest.
"""

import logging
from celery import shared_task
from django.db import DatabaseError

from subscriptions.services import SubscriptionService

logger = logging.getLogger(__name__)


def _backoff(retries):
    """Seconds to wait before the next attempt: 5, 10, 20."""
    return 5 * (2 ** retries)


@shared_task(bind=True, max_retries=3)
def expire_overdue_subscriptions(self):
    """
    Expire subscriptions whose paid period has ended.

    Demotes cancelled subscriptions at the end of their grace period and
    paid ones whose renewal webhook never arrived. Runs hourly.
    """
    try:
        result = SubscriptionService.expire_overdue_subscriptions()
    except DatabaseError as exc:
        logger.error(f"Expiry sweep failed, retrying: {exc}")
        raise self.retry(exc=exc, countdown=_backoff(self.request.retries))
    return result


@shared_task(bind=True, max_retries=3)
def reset_free_tier_usage(self):
    """
    Clear Free-tier usage counters. Runs at 00:00 on the 1st of each month.
    """
    try:
        result = SubscriptionService.reset_free_tier_usage()
    except DatabaseError as exc:
        logger.error(f"Usage reset sweep failed, retrying: {exc}")
        raise self.retry(exc=exc, countdown=_backoff(self.request.retries))
    return result
