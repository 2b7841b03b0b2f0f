"""
EntitlementLedger: per-account credit balance, usage counters and tier.

Every check-and-mutate is a single conditional UPDATE (`... WHERE ai_credits >= :amount
RETURNING ...`) executed in the same transaction as its journal row, so concurrent
callers can never overspend and a rejected call changes nothing.

Methods accept an optional `session` so callers can fold a ledger mutation into
their own transaction (project creation reserves its slot that way). Without one,
each call commits on its own.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Optional

from sqlalchemy import case, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from folio.core.clock import as_utc, utcnow
from folio.core.database import credit_ledger, entitlement_accounts, get_db_session
from folio.core.errors import (
    FormatNotAllowedError,
    InsufficientCreditsError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from folio.core.idempotency import check_and_set
from folio.core.metrics import credits_consumed_total, ledger_rejections_total
from folio.features.entitlements.tiers import SUBSCRIPTION_DAYS, effective_tier, is_unlimited, limits_for
from folio.models.artifact import ExportFormat
from folio.models.entitlement import BillingInfo, CreditLedgerEntry, EntitlementAccount, Tier, TierLimits

logger = logging.getLogger(__name__)

accounts = entitlement_accounts


def period_start_for(now: datetime) -> datetime:
    """Usage periods are calendar months (UTC)."""
    now = as_utc(now)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _to_account(row) -> EntitlementAccount:
    return EntitlementAccount(
        user_id=row.user_id,
        tier=Tier(row.tier),
        ai_credits=row.ai_credits,
        lifetime_credits=row.lifetime_credits,
        active_projects=row.active_projects,
        exports_this_period=row.exports_this_period,
        period_start=as_utc(row.period_start),
        subscription_expires_at=as_utc(row.subscription_expires_at),
    )


def _to_entry(row) -> CreditLedgerEntry:
    return CreditLedgerEntry(
        id=row.id,
        user_id=row.user_id,
        event_type=row.event_type,
        amount=row.amount,
        balance_after=row.balance_after,
        reason_code=row.reason_code,
        reference_id=row.reference_id,
        created_at=as_utc(row.created_at),
    )


class EntitlementLedger:
    def __init__(self, session_factory=None, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    @contextmanager
    def _session(self, session: Optional[Session] = None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        with get_db_session(self._session_factory) as own:
            yield own

    # -- account lifecycle -------------------------------------------------

    def _ensure_account(self, session: Session, user_id: str) -> None:
        """Create the account on first use (FREE, with the FREE allotment) and roll the period."""
        now = self._clock()
        allotment = limits_for(Tier.FREE).ai_credits_per_period
        values = dict(
            user_id=user_id,
            tier=Tier.FREE.value,
            ai_credits=allotment,
            lifetime_credits=allotment,
            active_projects=0,
            exports_this_period=0,
            period_start=period_start_for(now),
            created_at=now,
            updated_at=now,
        )
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(accounts).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
        elif dialect == "postgresql":
            stmt = pg_insert(accounts).values(**values).on_conflict_do_nothing(index_elements=["user_id"])
        else:
            exists = session.execute(select(accounts.c.user_id).where(accounts.c.user_id == user_id)).first()
            stmt = None if exists else insert(accounts).values(**values)

        if stmt is not None and session.execute(stmt).rowcount == 1:
            self._journal(session, user_id, "GRANT", allotment, allotment, "signup_allotment")
            logger.info(f"[ledger] account created user_id={user_id} tier=FREE credits={allotment}")

        self._roll_period(session, user_id, now)

    def _roll_period(self, session: Session, user_id: str, now: datetime) -> bool:
        """Start a new usage period if the stored one is from an earlier month."""
        start = period_start_for(now)
        row = session.execute(
            select(accounts).where(accounts.c.user_id == user_id, accounts.c.period_start < start).with_for_update()
        ).first()
        if row is None:
            return False

        tier = effective_tier(Tier(row.tier), row.subscription_expires_at, now)
        allotment = limits_for(tier).ai_credits_per_period
        new_balance = session.execute(
            update(accounts)
            .where(accounts.c.user_id == user_id, accounts.c.period_start < start)
            .values(
                exports_this_period=0,
                ai_credits=case((accounts.c.ai_credits < allotment, allotment), else_=accounts.c.ai_credits),
                period_start=start,
                updated_at=now,
            )
            .returning(accounts.c.ai_credits)
        ).scalar_one_or_none()
        if new_balance is None:
            return False
        if new_balance > row.ai_credits:
            self._journal(session, user_id, "TOPUP", new_balance - row.ai_credits, new_balance, "period_rollover")
        logger.info(f"[ledger] period rolled user_id={user_id} tier={tier.value} credits={new_balance}")
        return True

    def _journal(
        self,
        session: Session,
        user_id: str,
        event_type: str,
        amount: int,
        balance_after: int,
        reason_code: str,
        reference_id: Optional[str] = None,
    ) -> None:
        session.execute(
            credit_ledger.insert().values(
                user_id=user_id,
                event_type=event_type,
                amount=amount,
                balance_after=balance_after,
                reason_code=reason_code,
                reference_id=reference_id,
                created_at=self._clock(),
            )
        )

    def _read(self, session: Session, user_id: str):
        row = session.execute(select(accounts).where(accounts.c.user_id == user_id)).first()
        if row is None:
            raise NotFoundError("Entitlement account not found")
        return row

    def _limits(self, row) -> TierLimits:
        return limits_for(effective_tier(Tier(row.tier), row.subscription_expires_at, self._clock()))

    def _reject(self, error):
        ledger_rejections_total.inc({"reason": error.code})
        logger.info(f"[ledger] rejected code={error.code}: {error.message}")
        raise error

    def get_or_create_account(self, user_id: str, session: Optional[Session] = None) -> EntitlementAccount:
        with self._session(session) as s:
            self._ensure_account(s, user_id)
            return _to_account(self._read(s, user_id))

    def get_account(self, user_id: str, session: Optional[Session] = None) -> EntitlementAccount:
        with self._session(session) as s:
            return _to_account(self._read(s, user_id))

    def roll_period(self, user_id: str, now: Optional[datetime] = None) -> bool:
        with self._session() as s:
            self._ensure_account(s, user_id)
            return self._roll_period(s, user_id, now or self._clock())

    # -- reads -------------------------------------------------------------

    def get_tier_limits(self, user_id: str, session: Optional[Session] = None) -> TierLimits:
        """Limits of the effective tier; a lapsed subscription reads as FREE."""
        with self._session(session) as s:
            self._ensure_account(s, user_id)
            return self._limits(self._read(s, user_id))

    def get_effective_tier(self, user_id: str, session: Optional[Session] = None) -> Tier:
        with self._session(session) as s:
            self._ensure_account(s, user_id)
            row = self._read(s, user_id)
            return effective_tier(Tier(row.tier), row.subscription_expires_at, self._clock())

    def get_credit_history(self, user_id: str, limit: int = 50, session: Optional[Session] = None) -> List[CreditLedgerEntry]:
        with self._session(session) as s:
            rows = s.execute(
                select(credit_ledger)
                .where(credit_ledger.c.user_id == user_id)
                .order_by(credit_ledger.c.id.desc())
                .limit(limit)
            ).all()
            return [_to_entry(r) for r in rows]

    def get_billing_info(self, user_id: str) -> BillingInfo:
        with self._session() as s:
            self._ensure_account(s, user_id)
            row = self._read(s, user_id)
            tier = Tier(row.tier)
            effective = effective_tier(tier, row.subscription_expires_at, self._clock())
            return BillingInfo(
                user_id=user_id,
                tier=tier,
                effective_tier=effective,
                subscription_expires_at=as_utc(row.subscription_expires_at),
                ai_credits=row.ai_credits,
                lifetime_credits=row.lifetime_credits,
                active_projects=row.active_projects,
                exports_this_period=row.exports_this_period,
                period_start=as_utc(row.period_start),
                limits=limits_for(effective),
                recent_transactions=self.get_credit_history(user_id, limit=10, session=s),
            )

    # -- checks ------------------------------------------------------------

    def check_and_consume_credits(
        self,
        user_id: str,
        amount: int = 1,
        reason: str = "ai_generation",
        reference_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> int:
        """
        Atomically spend `amount` credits and return the new balance.

        Raises:
            InsufficientCreditsError: balance < amount; nothing is changed
        """
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        with self._session(session) as s:
            self._ensure_account(s, user_id)
            balance = s.execute(
                update(accounts)
                .where(accounts.c.user_id == user_id, accounts.c.ai_credits >= amount)
                .values(ai_credits=accounts.c.ai_credits - amount, updated_at=self._clock())
                .returning(accounts.c.ai_credits)
            ).scalar_one_or_none()

            if balance is None:
                current = self._read(s, user_id).ai_credits
                self._reject(InsufficientCreditsError(
                    f"Insufficient AI credits. You need {amount} credits but only have {current}. "
                    "Please upgrade your subscription or purchase more credits."
                ))

            self._journal(s, user_id, "CONSUME", -amount, balance, reason, reference_id)

        credits_consumed_total.inc(amount=amount)
        logger.info(f"[ledger] consumed user_id={user_id} amount={amount} balance={balance} reason={reason}")
        return balance

    def refund_credits(
        self,
        user_id: str,
        amount: int,
        reason: str = "provider_failure",
        reference_id: Optional[str] = None,
    ) -> int:
        """Return credits spent on a call the provider confirmed as failed. One refund per reference."""
        if amount <= 0:
            raise ValidationError("Refund amount must be positive")

        with self._session() as s:
            if reference_id and check_and_set(s, f"refund:{user_id}:{reference_id}", operation="refund"):
                logger.warning(f"[ledger] duplicate refund ignored user_id={user_id} reference={reference_id}")
                return self._read(s, user_id).ai_credits

            self._ensure_account(s, user_id)
            balance = s.execute(
                update(accounts)
                .where(accounts.c.user_id == user_id)
                .values(ai_credits=accounts.c.ai_credits + amount, updated_at=self._clock())
                .returning(accounts.c.ai_credits)
            ).scalar_one()
            self._journal(s, user_id, "REFUND", amount, balance, reason, reference_id)

        logger.info(f"[ledger] refunded user_id={user_id} amount={amount} balance={balance} reason={reason}")
        return balance

    def check_project_count_limit(self, user_id: str, session: Optional[Session] = None) -> None:
        with self._session(session) as s:
            self._ensure_account(s, user_id)
            row = self._read(s, user_id)
            limits = self._limits(row)
            if not is_unlimited(limits.max_projects) and row.active_projects >= limits.max_projects:
                self._reject(LimitExceededError(
                    f"Project limit reached ({limits.max_projects}). Upgrade your subscription to create more projects."
                ))

    def reserve_project_slot(self, user_id: str, session: Optional[Session] = None) -> int:
        """Count a new project against maxProjects; the check and the increment are one statement."""
        with self._session(session) as s:
            self._ensure_account(s, user_id)
            limits = self._limits(self._read(s, user_id))
            stmt = update(accounts).where(accounts.c.user_id == user_id)
            if not is_unlimited(limits.max_projects):
                stmt = stmt.where(accounts.c.active_projects < limits.max_projects)
            count = s.execute(
                stmt.values(active_projects=accounts.c.active_projects + 1, updated_at=self._clock())
                .returning(accounts.c.active_projects)
            ).scalar_one_or_none()
            if count is None:
                self._reject(LimitExceededError(
                    f"Project limit reached ({limits.max_projects}). Upgrade your subscription to create more projects."
                ))
            return count

    def release_project_slot(self, user_id: str, session: Optional[Session] = None) -> None:
        with self._session(session) as s:
            s.execute(
                update(accounts)
                .where(accounts.c.user_id == user_id, accounts.c.active_projects > 0)
                .values(active_projects=accounts.c.active_projects - 1, updated_at=self._clock())
            )

    def check_export_format_entitlement(self, user_id: str, fmt: ExportFormat, session: Optional[Session] = None) -> None:
        fmt = ExportFormat(fmt)
        if not self.get_tier_limits(user_id, session=session).allows_format(fmt):
            self._reject(FormatNotAllowedError(
                f"Your subscription tier does not support {fmt.value.upper()} exports. "
                "Please upgrade to PRO or ENTERPRISE to access this format."
            ))

    def reserve_export_slot(self, user_id: str, session: Optional[Session] = None) -> int:
        with self._session(session) as s:
            self._ensure_account(s, user_id)
            limits = self._limits(self._read(s, user_id))
            stmt = update(accounts).where(accounts.c.user_id == user_id)
            if not is_unlimited(limits.max_exports_per_period):
                stmt = stmt.where(accounts.c.exports_this_period < limits.max_exports_per_period)
            count = s.execute(
                stmt.values(exports_this_period=accounts.c.exports_this_period + 1, updated_at=self._clock())
                .returning(accounts.c.exports_this_period)
            ).scalar_one_or_none()
            if count is None:
                self._reject(LimitExceededError(
                    f"Export limit reached ({limits.max_exports_per_period} per month). "
                    "Upgrade your subscription for more exports."
                ))
            return count

    def release_export_slot(self, user_id: str, session: Optional[Session] = None) -> None:
        with self._session(session) as s:
            s.execute(
                update(accounts)
                .where(accounts.c.user_id == user_id, accounts.c.exports_this_period > 0)
                .values(exports_this_period=accounts.c.exports_this_period - 1, updated_at=self._clock())
            )

    # -- mutations ---------------------------------------------------------

    def grant_credits(
        self,
        user_id: str,
        amount: int,
        reason: str = "purchase",
        idempotency_key: Optional[str] = None,
    ) -> EntitlementAccount:
        """
        Add purchased credits to both the balance and the lifetime total.

        A repeated idempotency key is a no-op that returns the current account.
        """
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        with self._session() as s:
            if idempotency_key and check_and_set(s, f"grant:{user_id}:{idempotency_key}", operation="grant_credits"):
                logger.info(f"[ledger] duplicate grant ignored user_id={user_id} key={idempotency_key}")
                self._ensure_account(s, user_id)
                return _to_account(self._read(s, user_id))

            self._ensure_account(s, user_id)
            row = s.execute(
                update(accounts)
                .where(accounts.c.user_id == user_id)
                .values(
                    ai_credits=accounts.c.ai_credits + amount,
                    lifetime_credits=accounts.c.lifetime_credits + amount,
                    updated_at=self._clock(),
                )
                .returning(accounts.c.ai_credits)
            ).scalar_one()
            self._journal(s, user_id, "GRANT", amount, row, reason, idempotency_key)
            account = _to_account(self._read(s, user_id))

        logger.info(f"[ledger] granted user_id={user_id} amount={amount} balance={account.ai_credits}")
        return account

    def upgrade_tier(self, user_id: str, new_tier: Tier) -> EntitlementAccount:
        """
        Move to a higher tier for SUBSCRIPTION_DAYS.

        The balance is topped up to the new tier's allotment and never reduced;
        lifetime credits are untouched. Same-tier or lower-tier requests against
        the effective tier are rejected.
        """
        new_tier = Tier(new_tier)
        now = self._clock()
        with self._session() as s:
            self._ensure_account(s, user_id)
            row = s.execute(select(accounts).where(accounts.c.user_id == user_id).with_for_update()).first()
            current = effective_tier(Tier(row.tier), row.subscription_expires_at, now)
            if new_tier.rank <= current.rank:
                raise ValidationError(f"Cannot change tier from {current.value} to {new_tier.value}")

            allotment = limits_for(new_tier).ai_credits_per_period
            balance = s.execute(
                update(accounts)
                .where(accounts.c.user_id == user_id)
                .values(
                    tier=new_tier.value,
                    subscription_expires_at=now + timedelta(days=SUBSCRIPTION_DAYS),
                    ai_credits=case((accounts.c.ai_credits < allotment, allotment), else_=accounts.c.ai_credits),
                    updated_at=now,
                )
                .returning(accounts.c.ai_credits)
            ).scalar_one()
            if balance > row.ai_credits:
                self._journal(s, user_id, "TOPUP", balance - row.ai_credits, balance, f"upgrade_{new_tier.value.lower()}")
            account = _to_account(self._read(s, user_id))

        logger.info(f"[ledger] upgraded user_id={user_id} {current.value}->{new_tier.value} credits={account.ai_credits}")
        return account
