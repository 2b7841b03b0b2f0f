# folio/queue_client.py
"""
RQ queue client.

Jobs are enqueued by dotted function reference so the API process never
imports worker-only code paths. Connections are created lazily.
"""
import logging
from functools import lru_cache
from typing import Any, Callable, Optional, Union

from redis import Redis
from rq import Queue, Retry

from folio.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVALS = [5, 30, 120]


@lru_cache(maxsize=1)
def get_redis_connection() -> Redis:
    return Redis.from_url(settings.REDIS_URL)


@lru_cache(maxsize=1)
def get_queue() -> Queue:
    return Queue(settings.RQ_QUEUE, connection=get_redis_connection())


def enqueue_job(
    func: Union[str, Callable[..., Any]],
    *args: Any,
    job_id: Optional[str] = None,
    max_retries: int = 3,
    queue: Optional[Queue] = None,
    job_timeout: Optional[str] = None,
) -> str:
    """
    Enqueue `func(*args)` with at-least-once delivery.

    Args:
        func: Job function or its dotted path
        job_id: Deterministic id; re-enqueueing the same id replaces the pending job
        max_retries: Attempts after the first failure
        queue: Queue override (tests pass a fake)

    Returns:
        Job ID
    """
    q = queue or get_queue()
    job = q.enqueue(
        func,
        *args,
        job_id=job_id,
        retry=Retry(max=max_retries, interval=DEFAULT_RETRY_INTERVALS[:max_retries]),
        job_timeout=job_timeout or settings.ANALYSIS_JOB_TIMEOUT,
        result_ttl=3600,  # Keep result for 1 hour
        failure_ttl=24 * 3600,
    )
    logger.info(f"[queue] enqueued job_id={job.id} func={getattr(func, '__name__', func)}")
    return job.id
