"""Static tier limits table and effective-tier resolution."""

from datetime import datetime
from typing import Dict, Optional

from folio.core.clock import as_utc
from folio.models.artifact import ExportFormat
from folio.models.entitlement import UNLIMITED, Tier, TierLimits

SUBSCRIPTION_DAYS = 30

TIER_LIMITS: Dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        max_projects=3,
        max_exports_per_period=5,
        max_chapters_per_project=20,
        ai_credits_per_period=10,
        allowed_export_formats=frozenset({ExportFormat.HTML, ExportFormat.EPUB}),
        has_watermark=True,
    ),
    Tier.PRO: TierLimits(
        max_projects=20,
        max_exports_per_period=50,
        max_chapters_per_project=100,
        ai_credits_per_period=100,
        allowed_export_formats=frozenset(ExportFormat),
        has_watermark=False,
    ),
    Tier.ENTERPRISE: TierLimits(
        max_projects=UNLIMITED,
        max_exports_per_period=UNLIMITED,
        max_chapters_per_project=UNLIMITED,
        ai_credits_per_period=500,
        allowed_export_formats=frozenset(ExportFormat),
        has_watermark=False,
    ),
}


def limits_for(tier: Tier) -> TierLimits:
    return TIER_LIMITS.get(tier, TIER_LIMITS[Tier.FREE])


def effective_tier(tier: Tier, expires_at: Optional[datetime], now: datetime) -> Tier:
    """A lapsed subscription is treated as FREE until renewed."""
    expires_at = as_utc(expires_at)
    if tier != Tier.FREE and expires_at is not None and expires_at < as_utc(now):
        return Tier.FREE
    return tier


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED
