"""
Выдача роли пользователю из консоли оператора.

    python -m nova_funded.tasks.grant_admin user@example.com --role admin
"""
import argparse
import asyncio
from typing import Optional

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.database import close_db, session_scope
from nova_funded.models.user import User, UserRole


async def grant_role(session: AsyncSession, email: str, role: UserRole) -> Optional[User]:
    """Профиль должен уже существовать: он создаётся при первом входе пользователя."""
    result = await session.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    user = result.scalar_one_or_none()
    if user is None:
        logger.error(f"No user profile with email {email}; the user must sign in once first")
        return None
    user.role = role
    await session.commit()
    logger.info(f"User {user.id} ({user.email}) is now {role.value}")
    return user


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Grant a role to an existing user")
    p.add_argument("email", help="E-mail of the user profile")
    p.add_argument(
        "--role",
        choices=[r.value for r in UserRole],
        default=UserRole.admin.value,
    )
    return p.parse_args()


async def _run(email: str, role: UserRole) -> int:
    user = None
    try:
        async with session_scope() as session:
            user = await grant_role(session, email, role)
    finally:
        await close_db()
    return 0 if user else 1


def main() -> None:
    args = parse_args()
    raise SystemExit(asyncio.run(_run(args.email, UserRole(args.role))))


if __name__ == "__main__":
    main()
