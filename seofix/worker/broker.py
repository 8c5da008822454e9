"""
Taskiq broker configuration.

Imported by whatever process enqueues fix runs and by the taskiq worker CLI
(``taskiq worker seofix.worker.broker:broker seofix.worker.tasks``).
"""

from taskiq_redis import ListQueueBroker, RedisAsyncResultBackend

from seofix.core.config import settings

__all__ = ("broker",)


def _redis_url(db: int) -> str:
    auth = f":{settings.REDIS_PASSWORD}@" if settings.REDIS_PASSWORD else ""
    return f"redis://{auth}{settings.REDIS_HOST}:{settings.REDIS_PORT}/{db}"


result_backend = RedisAsyncResultBackend(
    redis_url=_redis_url(settings.REDIS_DB_RESULTS),
    result_ex_time=3600,
)

broker = ListQueueBroker(
    url=_redis_url(settings.REDIS_DB_BROKER),
    queue_name="seofix:tasks",
).with_result_backend(result_backend)
