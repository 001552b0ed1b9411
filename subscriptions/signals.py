# subscriptions/signals.py
"""
Create the Free subscription record alongside every new user.
"""

import logging
from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_subscription(sender, instance, created, **kwargs):
    """
    Create the SubscriptionRecord when a new User is created.

    Errors propagate so that a user is never saved without a record.
    """
    if not created or kwargs.get('raw'):
        return

    from subscriptions.services import SubscriptionService

    SubscriptionService.create_subscription(instance.pk)
    logger.info(f"Created Free subscription for user {instance.pk}")
