from typing import Optional

from fastapi import Request
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from .settings import settings
from ..service.token_store import MemoryTokenStore, RedisTokenStore, TokenStore

redis_client: Optional[Redis] = None

if settings.REDIS_URL:
    redis_client = Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_TIMEOUT,
        socket_timeout=settings.REDIS_TIMEOUT,
        retry=Retry(ExponentialBackoff(cap=3, base=0.1), settings.REDIS_MAX_RETRIES)
    )


def get_redis() -> Optional[Redis]:
    return redis_client


def build_token_store() -> TokenStore:
    """Escolhe o backend do token store na inicialização do processo"""
    client = get_redis()
    if client is None:
        return MemoryTokenStore()
    return RedisTokenStore(client, fallback=MemoryTokenStore())


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store
