"""
Dramatiq broker configuration.

Redis-based message broker for the reconciliation queue.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from app.config.settings import settings

redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password or None,
    db=settings.redis_db,
)

redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=3,
        min_backoff=1000,
        max_backoff=60000,
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(
    "Dramatiq broker initialized",
    extra={
        "redis": f"redis://{settings.redis_host}:{settings.redis_port}/"
        f"{settings.redis_db}",
    },
)
