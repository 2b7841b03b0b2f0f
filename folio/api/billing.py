"""Billing API: balances, usage, credit purchases and tier upgrades."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from folio.api.deps import get_ledger, respond
from folio.core.auth import get_current_user_id
from folio.features.entitlements.service import EntitlementLedger
from folio.models.entitlement import Tier

router = APIRouter(prefix="/v1/billing", tags=["billing"])


class CreditPurchase(BaseModel):
    amount: int = Field(gt=0, le=10000)
    idempotency_key: Optional[str] = Field(default=None, max_length=200)


class TierUpgrade(BaseModel):
    tier: Tier


@router.get("")
def billing_info(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    return respond(request, ledger.get_billing_info(user_id))


@router.get("/history")
def credit_history(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    return respond(request, ledger.get_credit_history(user_id, limit=limit))


@router.post("/credits")
def purchase_credits(
    body: CreditPurchase,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    """Add purchased credits. Retrying with the same idempotency_key is a no-op."""
    account = ledger.grant_credits(user_id, body.amount, reason="purchase", idempotency_key=body.idempotency_key)
    return respond(request, account)


@router.post("/upgrade")
def upgrade(
    body: TierUpgrade,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    return respond(request, ledger.upgrade_tier(user_id, body.tier))
