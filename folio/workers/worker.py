# Run with: python -m folio.workers.worker
# or: rq worker -u $REDIS_URL folio
"""RQ worker entrypoint. Connections are passed explicitly (no rq Connection context)."""
import logging
import os

from dotenv import load_dotenv
from rq import Queue, Worker

from folio.core.config import settings
from folio.core.database import create_all_tables
from folio.core.logging import configure_logging
from folio.queue_client import get_redis_connection

logger = logging.getLogger("folio")


def main() -> None:
    load_dotenv()
    configure_logging(os.getenv("ENV", settings.ENV))
    create_all_tables()

    conn = get_redis_connection()
    queues = [Queue(name.strip(), connection=conn) for name in settings.RQ_QUEUE.split(",") if name.strip()]
    worker = Worker(queues, connection=conn)
    logger.info(f"Starting RQ worker queues={[q.name for q in queues]}")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
