"""
/users — профиль текущего пользователя.
"""
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.api.dependencies import can_administer, get_current_user, rate_limit_standard
from nova_funded.core.database import get_db
from nova_funded.models.user import User
from nova_funded.schemas.common import APIResponse

router = APIRouter(prefix="/users", tags=["users"])


class UserOut(BaseModel):
    id: uuid.UUID
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    country: Optional[str]
    trading_experience: Optional[str]
    role: str
    is_admin: bool
    created_at: datetime


class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=128)
    last_name: Optional[str] = Field(None, max_length=128)
    phone: Optional[str] = Field(None, max_length=32)
    country: Optional[str] = Field(None, max_length=64)
    trading_experience: Optional[str] = Field(None, max_length=64)


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        country=user.country,
        trading_experience=user.trading_experience,
        role=user.role,
        is_admin=can_administer(user),
        created_at=user.created_at,
    )


@router.get("/me", response_model=APIResponse[UserOut])
async def get_me(
    user: User = Depends(get_current_user),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[UserOut]:
    return APIResponse(data=_user_out(user))


@router.patch("/me", response_model=APIResponse[UserOut])
async def update_me(
    body: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[UserOut]:
    """Обновляет только переданные поля профиля."""
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(user, field, value)
    await session.commit()
    if changes:
        logger.info(f"Profile updated: user_id={user.id} fields={sorted(changes)}")
    return APIResponse(data=_user_out(user))
