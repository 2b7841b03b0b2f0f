"""
Readability recomputation as queued work.

The handler is idempotent: it is keyed on (chapter id, content hash), skips
when the chapter changed after the job was enqueued, and skips when the stored
score already matches the content.
"""

import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy import select, update

from folio.core.clock import utcnow
from folio.core.database import chapters, get_db_session, readability_scores
from folio.features.analysis.readability import calculate_readability_metrics, content_hash
from folio.queue_client import enqueue_job

logger = logging.getLogger(__name__)

HANDLER = "folio.features.analysis.jobs.recompute_readability"


def readability_job_id(chapter_id: int, digest: str) -> str:
    return f"readability:{chapter_id}:{digest[:12]}"


def recompute_readability(chapter_id: int, expected_hash: str, session_factory=None) -> Dict[str, Any]:
    """RQ job: store readability metrics and word count for one chapter version."""
    with get_db_session(session_factory) as session:
        row = session.execute(select(chapters.c.content).where(chapters.c.id == chapter_id)).first()
        if row is None:
            logger.info(f"[analysis] chapter_id={chapter_id} gone, skipping")
            return {"status": "missing", "chapter_id": chapter_id}

        digest = content_hash(row.content)
        if digest != expected_hash:
            logger.info(f"[analysis] chapter_id={chapter_id} changed since enqueue, skipping stale job")
            return {"status": "stale", "chapter_id": chapter_id}

        stored = session.execute(
            select(readability_scores.c.content_hash).where(readability_scores.c.chapter_id == chapter_id)
        ).scalar_one_or_none()
        if stored == digest:
            return {"status": "unchanged", "chapter_id": chapter_id}

        metrics = calculate_readability_metrics(row.content)
        values = dict(metrics.model_dump(), content_hash=digest, calculated_at=utcnow())
        if stored is None:
            session.execute(readability_scores.insert().values(chapter_id=chapter_id, **values))
        else:
            session.execute(
                update(readability_scores).where(readability_scores.c.chapter_id == chapter_id).values(**values)
            )
        session.execute(
            update(chapters).where(chapters.c.id == chapter_id).values(word_count=metrics.word_count)
        )

    logger.info(
        f"[analysis] chapter_id={chapter_id} words={metrics.word_count} "
        f"ease={metrics.flesch_reading_ease} grade={metrics.flesch_kincaid_grade}"
    )
    return {"status": "updated", "chapter_id": chapter_id, "word_count": metrics.word_count}


def get_readability(chapter_id: int, session_factory=None) -> Optional[Dict[str, Any]]:
    with get_db_session(session_factory) as session:
        row = session.execute(
            select(readability_scores).where(readability_scores.c.chapter_id == chapter_id)
        ).first()
        return dict(row._mapping) if row else None


class AnalysisDispatcher:
    """Hands readability recomputation to the work queue."""

    def __init__(self, queue=None):
        self._queue = queue

    def enqueue_readability(self, chapter_id: int, content: str) -> Optional[str]:
        if not content or not content.strip():
            return None
        digest = content_hash(content)
        try:
            return enqueue_job(
                HANDLER,
                chapter_id,
                digest,
                job_id=readability_job_id(chapter_id, digest),
                queue=self._queue,
            )
        except RedisError as e:
            # Scores are derived data; the chapter write already committed.
            logger.warning(f"[analysis] enqueue failed chapter_id={chapter_id}: {e}")
            return None
