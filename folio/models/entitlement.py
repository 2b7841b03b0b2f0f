"""
folio/models/entitlement.py

Subscription tiers, their static limits and the per-user entitlement account.
"""

from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from folio.models.artifact import ExportFormat

UNLIMITED = -1


class Tier(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"

    @property
    def rank(self) -> int:
        return list(Tier).index(self)


class TierLimits(BaseModel):
    """
    Limits a tier grants.

    Numeric limits use -1 for unlimited.
    """

    model_config = ConfigDict(frozen=True)

    max_projects: int
    max_exports_per_period: int
    max_chapters_per_project: int
    ai_credits_per_period: int
    allowed_export_formats: FrozenSet[ExportFormat]
    has_watermark: bool

    def allows_format(self, fmt: ExportFormat) -> bool:
        return fmt in self.allowed_export_formats


class EntitlementAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    tier: Tier = Tier.FREE
    ai_credits: int = Field(ge=0)
    lifetime_credits: int = Field(ge=0)
    active_projects: int = Field(default=0, ge=0)
    exports_this_period: int = Field(default=0, ge=0)
    period_start: datetime
    subscription_expires_at: Optional[datetime] = None


class CreditLedgerEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: str
    event_type: str
    amount: int
    balance_after: int
    reason_code: str
    reference_id: Optional[str] = None
    created_at: datetime


class BillingInfo(BaseModel):
    """What the billing page shows: effective tier, balances, usage and limits."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    tier: Tier
    effective_tier: Tier
    subscription_expires_at: Optional[datetime] = None
    ai_credits: int
    lifetime_credits: int
    active_projects: int
    exports_this_period: int
    period_start: datetime
    limits: TierLimits
    recent_transactions: List[CreditLedgerEntry] = Field(default_factory=list)
