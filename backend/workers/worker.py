# Run this with: rq worker -u redis://localhost:6379 gm-side-effects
# or: python -m backend.workers.worker (which will spin a small worker loop for dev)
import logging

from redis import Redis
from rq import Queue, Worker

from backend.core.config import settings
from backend.core.logging import configure_logging

configure_logging(settings.ENV)
logger = logging.getLogger("gm")


def main() -> None:
    if not settings.REDIS_URL:
        raise SystemExit("REDIS_URL is required to run the side-effect worker")
    conn = Redis.from_url(settings.REDIS_URL)
    worker = Worker([Queue(settings.SIDE_EFFECTS_QUEUE, connection=conn)], connection=conn)
    logger.info("Starting RQ side-effect worker.", extra={"queue": settings.SIDE_EFFECTS_QUEUE})
    worker.work()


if __name__ == '__main__':
    main()
