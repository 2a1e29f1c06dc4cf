from typing import List

import redis
from celery.utils.log import get_task_logger

from storefront.core.celery_app import celery_app
from storefront.services import cache_service

logger = get_task_logger(__name__)


@celery_app.task(
    bind=True,
    autoretry_for=(redis.RedisError,),
    retry_backoff=True,
    retry_backoff_max=60,
    retry_kwargs={"max_retries": 5},
)
def invalidate_cache_keys(self, keys: List[str]) -> int:
    """Delete cached read models after a committed write."""
    deleted = cache_service.invalidate(*keys)
    logger.info("cache_invalidated keys=%s deleted=%s", keys, deleted)
    return deleted
