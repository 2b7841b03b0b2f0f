"""
folio/core/idempotency.py
Idempotency key management for mutating requests (credit grants, uploads).
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from folio.core.clock import utcnow
from folio.core.database import idempotency_keys


def check_and_set(session: Session, key: str, operation: str = "generic") -> bool:
    """
    Check if idempotency key exists, and set it if not (atomic).

    Must be the first write of the caller's transaction: a duplicate key rolls
    the session back, and the caller should stop there.

    Args:
        session: Open session whose transaction the key joins
        key: Idempotency key string
        operation: Operation type (for debugging/monitoring)

    Returns:
        True if key was already seen (duplicate request)
        False if key is new (first time seeing it)
    """
    try:
        session.execute(
            idempotency_keys.insert().values(
                key=key,
                scope=operation,
                created_at=utcnow(),
            )
        )
        return False
    except IntegrityError:
        # Duplicate key - UNIQUE constraint violation
        session.rollback()
        return True
