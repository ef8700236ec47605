# backend/core/redis_client.py
import redis.asyncio as redis

from .config import settings


def create_redis_client(url: str = settings.redis_url) -> redis.Redis:
    return redis.from_url(url)
