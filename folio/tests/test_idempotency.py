"""Tests for idempotency keys."""

from sqlalchemy import select

from folio.core.database import get_db_session, idempotency_keys
from folio.core.idempotency import check_and_set


def test_first_use_is_new_second_is_duplicate():
    with get_db_session() as session:
        assert check_and_set(session, "grant:alice:order-1", operation="grant_credits") is False
    with get_db_session() as session:
        assert check_and_set(session, "grant:alice:order-1", operation="grant_credits") is True

    with get_db_session() as session:
        rows = session.execute(select(idempotency_keys)).all()
    assert [(r.key, r.scope) for r in rows] == [("grant:alice:order-1", "grant_credits")]


def test_duplicate_rolls_back_the_callers_transaction():
    with get_db_session() as session:
        check_and_set(session, "refund:alice:r1", operation="refund")

    with get_db_session() as session:
        assert check_and_set(session, "refund:alice:r2", operation="refund") is False
        assert check_and_set(session, "refund:alice:r1", operation="refund") is True

    with get_db_session() as session:
        keys = session.execute(select(idempotency_keys.c.key)).scalars().all()
    assert keys == ["refund:alice:r1"]
