from typing import Any

from jose import JWTError, jwt
from loguru import logger

from nova_funded.core.config import settings


# ─── JWT ──────────────────────────────────────────────────────────────────────

def decode_token(token: str) -> dict[str, Any]:
    """
    Проверяет access-токен внешнего auth-провайдера.
    Токен подписан общим секретом (HS256), audience = "authenticated".
    """
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
        return payload
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise


# ─── Rate Limiting helpers (Redis-based) ──────────────────────────────────────

async def check_rate_limit(
    redis,
    key: str,
    limit: int,
    window_seconds: int = 60,
) -> bool:
    """
    Проверяет rate limit. Возвращает True если лимит не превышен.
    Фиксированное окно через Redis INCR + EXPIRE.
    """
    pipe = redis.pipeline()
    pipe.incr(key)
    pipe.expire(key, window_seconds)
    results = await pipe.execute()
    current_count = results[0]
    return current_count <= limit
