from fastapi import Request
import redis
from ..config.redis_config import get_redis
from ..config.settings import settings
from ..util.exceptions import RateLimitException
from ..util.logger import logger


class RateLimiter:
    def __init__(self, requests: int = 10, window: int = 60):
        self.requests = requests
        self.window = window

    async def __call__(self, request: Request) -> bool:
        client = get_redis()
        if not settings.RATE_LIMIT_ENABLED or client is None:
            return True

        # Identificador único
        host = request.client.host if request.client else "unknown"
        client_id = f"{host}:{request.url.path}"
        key = f"rate_limit:{client_id}"

        try:
            current = await client.incr(key)

            if current == 1:
                await client.expire(key, self.window)

            # Headers informativos
            request.state.rate_limit_remaining = max(0, self.requests - current)
            request.state.rate_limit_limit = self.requests

            if current > self.requests:
                ttl = await client.ttl(key)

                logger.warning(f"Rate limit exceeded for {client_id}")

                raise RateLimitException(retry_after=max(ttl, 1))

            return True

        except redis.RedisError as e:
            # Sem Redis, não bloqueia
            logger.error(f"Redis error in rate limiter: {e}")
            return True


# Limitadores específicos da recuperação
forgot_password_limiter = RateLimiter(requests=5, window=900)  # 5 pedidos em 15 minutos
verify_code_limiter = RateLimiter(requests=10, window=900)
reset_password_limiter = RateLimiter(requests=10, window=900)
