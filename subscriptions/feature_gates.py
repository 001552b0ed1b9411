# subscriptions/feature_gates.py
"""
Static feature-gate tables.

- TIER_FEATURES: feature name -> tiers allowed to use it. A feature that is
  not listed is locked for every tier.
- FREE_TIER_LIMITS: usage-limited feature -> monthly quota on the Free tier.
  Paid tiers are unlimited for these features.

Both tables are read-only and built once at import time. Adding a feature
means adding an entry here; the lifecycle service never needs to change.
"""

from types import MappingProxyType

from django.db import models


class Tier(models.TextChoices):
    FREE = 'free', 'Free'
    PREMIUM = 'premium', 'Premium'
    ENTERPRISE = 'enterprise', 'Enterprise'


PAID_TIERS = frozenset({Tier.PREMIUM, Tier.ENTERPRISE})


class Feature:
    """Names of tier-gated features."""
    UNLIMITED_ROADMAPS = 'UNLIMITED_ROADMAPS'
    ADVANCED_EXPLANATIONS = 'ADVANCED_EXPLANATIONS'
    UNLIMITED_PROJECTS = 'UNLIMITED_PROJECTS'
    GITHUB_EXPORT = 'GITHUB_EXPORT'
    UNLIMITED_INTERVIEWS = 'UNLIMITED_INTERVIEWS'
    VOICE_MODE = 'VOICE_MODE'
    RESUME_OPTIMIZATION = 'RESUME_OPTIMIZATION'
    UNLIMITED_JOB_MATCHES = 'UNLIMITED_JOB_MATCHES'
    UNLIMITED_TASKS = 'UNLIMITED_TASKS'
    NOTE_SUMMARIZATION = 'NOTE_SUMMARIZATION'


class UsageFeature:
    """Names of usage-limited features (monthly counters)."""
    ROADMAPS = 'roadmaps'
    PROJECTS = 'projects'
    INTERVIEWS = 'interviews'
    RESUME_SCANS = 'resume_scans'
    TASKS = 'tasks'
    NOTE_SUMMARIZATIONS = 'note_summarizations'


# ==============================================================================
# TIER -> FEATURE ACCESS
# ==============================================================================

TIER_FEATURES = MappingProxyType({
    Feature.UNLIMITED_ROADMAPS: PAID_TIERS,
    Feature.ADVANCED_EXPLANATIONS: PAID_TIERS,
    Feature.UNLIMITED_PROJECTS: PAID_TIERS,
    Feature.GITHUB_EXPORT: PAID_TIERS,
    Feature.UNLIMITED_INTERVIEWS: PAID_TIERS,
    Feature.VOICE_MODE: PAID_TIERS,
    Feature.RESUME_OPTIMIZATION: PAID_TIERS,
    Feature.UNLIMITED_JOB_MATCHES: PAID_TIERS,
    Feature.UNLIMITED_TASKS: PAID_TIERS,
    Feature.NOTE_SUMMARIZATION: PAID_TIERS,
})


# ==============================================================================
# FREE TIER MONTHLY QUOTAS
# ==============================================================================

FREE_TIER_LIMITS = MappingProxyType({
    UsageFeature.ROADMAPS: 1,
    UsageFeature.PROJECTS: 3,
    UsageFeature.INTERVIEWS: 5,
    UsageFeature.RESUME_SCANS: 2,
    UsageFeature.TASKS: 50,
    UsageFeature.NOTE_SUMMARIZATIONS: 10,
})


def allowed_tiers(feature):
    """Tiers that may use ``feature``; empty for unknown features."""
    return TIER_FEATURES.get(feature, frozenset())


def free_tier_limit(feature):
    """Monthly Free-tier quota for ``feature``, or None if it is not metered."""
    return FREE_TIER_LIMITS.get(feature)
