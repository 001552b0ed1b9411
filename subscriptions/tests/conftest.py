"""
pytest configuration and fixtures for subscriptions app testing.

Provides:
- Free, premium and cancelled users (records created by the post_save signal)
- Authenticated clients
- Cache isolation for webhook dedup
"""

from datetime import timedelta

import pytest
from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import Client
from django.utils import timezone

from subscriptions.feature_gates import Tier
from subscriptions.models import SubscriptionRecord
from subscriptions.services import SubscriptionService


@pytest.fixture(autouse=True)
def clear_cache():
    """Processed webhook ids live in the cache; start every test empty."""
    cache.clear()
    yield
    cache.clear()


# ============================================================================
# USER FIXTURES
# ============================================================================

@pytest.fixture
def test_user():
    """Create a Free-tier user."""
    return User.objects.create_user(
        username="testuser",
        email="test@example.com",
        password="testpass123"
    )


@pytest.fixture
def other_user():
    """Create a second Free-tier user."""
    return User.objects.create_user(
        username="otheruser",
        email="other@example.com",
        password="otherpass123"
    )


@pytest.fixture
def premium_user():
    """Create a user on an active Premium subscription."""
    user = User.objects.create_user(
        username="premiumuser",
        email="premium@example.com",
        password="premiumpass123"
    )
    SubscriptionService.upgrade_tier(user.id, Tier.PREMIUM, "sub_premium")
    return user


@pytest.fixture
def cancelled_user():
    """Create a Premium user who cancelled with 15 days left."""
    user = User.objects.create_user(
        username="cancelleduser",
        email="cancelled@example.com",
        password="cancelledpass123"
    )
    SubscriptionRecord.objects.filter(user=user).update(
        tier=Tier.PREMIUM,
        status=SubscriptionRecord.Status.CANCELLED,
        end_date=timezone.now() + timedelta(days=15),
        external_subscription_ref="sub_cancelled",
    )
    return user


# ============================================================================
# CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def client():
    """Regular Django test client."""
    return Client()


@pytest.fixture
def authenticated_client(test_user):
    """Authenticated client for test_user."""
    client = Client()
    client.force_login(test_user)
    return client


@pytest.fixture
def premium_client(premium_user):
    """Authenticated client for premium_user."""
    client = Client()
    client.force_login(premium_user)
    return client
