import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class TokenStore:
    """Armazenamento chave-valor com TTL para artefatos de recuperação"""

    backend_name = "abstract"

    async def store(self, key: str, record: Dict[str, Any], ttl_seconds: int) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    def cleanup_expired(self) -> int:
        return 0

    async def close(self) -> None:
        return None


class MemoryTokenStore(TokenStore):
    """
    Mapa em processo. A expiração é conferida pelo relógio na leitura
    e pela varredura periódica; nada sobrevive a um restart.
    """

    backend_name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def store(self, key: str, record: Dict[str, Any], ttl_seconds: int) -> None:
        self._data[key] = (json.dumps(record), self._clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() > expires_at:
            self._data.pop(key, None)
            return None

        return json.loads(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._data.items() if now > expires_at]

        for key in expired:
            del self._data[key]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired fallback tokens")

        return len(expired)

    def __len__(self) -> int:
        return len(self._data)


class RedisTokenStore(TokenStore):
    """
    Redis com expiração nativa (SETEX). Se o Redis estiver fora no momento
    da chamada, a operação cai no MemoryTokenStore de fallback.
    """

    backend_name = "redis"

    def __init__(self, client: Redis, fallback: Optional[MemoryTokenStore] = None):
        self.client = client
        self.fallback = fallback if fallback is not None else MemoryTokenStore()

    async def store(self, key: str, record: Dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self.client.setex(key, ttl_seconds, json.dumps(record))
            return
        except redis.RedisError as e:
            logger.warning(f"Redis storage failed, using fallback: {e}")

        await self.fallback.store(key, record, ttl_seconds)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            value = await self.client.get(key)
            if value is not None:
                return json.loads(value)
        except redis.RedisError as e:
            logger.warning(f"Redis retrieval failed, trying fallback: {e}")

        # Pode ter sido gravado no fallback durante uma queda do Redis
        return await self.fallback.get(key)

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis deletion failed: {e}")

        await self.fallback.delete(key)

    def cleanup_expired(self) -> int:
        # Redis expira sozinho; só o fallback precisa de varredura
        return self.fallback.cleanup_expired()

    async def close(self) -> None:
        try:
            await self.client.aclose()
        except redis.RedisError as e:
            logger.warning(f"Error closing Redis client: {e}")
