"""
FastAPI зависимости: аутентификация, политика доступа, rate limiting.
"""
import uuid
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.database import get_db, get_redis
from nova_funded.core.security import check_rate_limit, decode_token
from nova_funded.models.user import User, UserRole
from nova_funded.services.notification_service import NotificationFeed

# ─── Получение текущего пользователя ──────────────────────────────────────────

async def get_current_user(
    authorization: Annotated[Optional[str], Header()] = None,
    session: AsyncSession = Depends(get_db),
) -> User:
    """
    Извлекает пользователя из JWT auth-провайдера.
    При первом запросе создаёт профиль по claims токена.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing or invalid",
        )
    token = authorization.removeprefix("Bearer ").strip()
    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = await session.get(User, user_id)
    if user is None:
        user = User(id=user_id, email=payload.get("email"), role=UserRole.user)
        session.add(user)
        await session.commit()
        logger.info(f"New user profile created: id={user_id} email={user.email}")
    elif payload.get("email") and user.email != payload["email"]:
        user.email = payload["email"]
        await session.commit()

    if user.is_blocked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is blocked")

    return user


# ─── Политика доступа ─────────────────────────────────────────────────────────

ADMIN_ROLES = (UserRole.admin, UserRole.super_admin)


def can_administer(user: User) -> bool:
    return user.role in ADMIN_ROLES and not user.is_blocked


def can_manage_roles(user: User) -> bool:
    return user.role == UserRole.super_admin and not user.is_blocked


def require_role(*roles: UserRole):
    """Фабрика зависимостей для проверки ролей."""
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in roles]}",
            )
        return user
    return _check


def require_admin():
    return require_role(*ADMIN_ROLES)


def require_super_admin():
    return require_role(UserRole.super_admin)


# ─── Realtime фид ─────────────────────────────────────────────────────────────

async def get_notification_feed() -> NotificationFeed:
    return NotificationFeed(await get_redis())


# ─── Rate limiting ────────────────────────────────────────────────────────────

async def rate_limit_standard(user: User = Depends(get_current_user)) -> None:
    """100 запросов в минуту на пользователя."""
    from nova_funded.core.config import settings
    redis = await get_redis()
    key = f"rate:std:{user.id}"
    allowed = await check_rate_limit(redis, key, limit=settings.rate_limit_per_minute)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again in a minute.",
        )


async def rate_limit_verification(user: User = Depends(get_current_user)) -> None:
    """10 проверок транзакций в минуту — каждая ходит в explorer API."""
    from nova_funded.core.config import settings
    redis = await get_redis()
    key = f"rate:verify:{user.id}"
    allowed = await check_rate_limit(redis, key, limit=settings.rate_limit_verify_per_minute)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many verification attempts. Try again in a minute.",
        )
