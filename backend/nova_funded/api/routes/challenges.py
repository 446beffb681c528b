"""
/challenges — испытания пользователя и журнал торговли.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nova_funded.api.dependencies import get_current_user, rate_limit_standard
from nova_funded.core.database import get_db
from nova_funded.models.challenge import TradingHistory, UserChallenge
from nova_funded.models.user import User
from nova_funded.schemas.common import APIResponse

router = APIRouter(prefix="/challenges", tags=["challenges"])

HISTORY_LIMIT = 50


# ─── Схемы ────────────────────────────────────────────────────────────────────

class UserChallengeOut(BaseModel):
    id: uuid.UUID
    plan_id: uuid.UUID
    plan_name: str
    account_size: Decimal
    payment_id: Optional[uuid.UUID]
    status: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    current_balance: Decimal
    highest_balance: Decimal
    lowest_balance: Decimal
    total_profit: Decimal
    trading_days: int
    # Правила тарифа
    profit_target: Decimal
    max_drawdown: Decimal
    daily_drawdown: Decimal
    min_trading_days: int
    evaluation_period: int


class TradingHistoryOut(BaseModel):
    id: uuid.UUID
    challenge_id: uuid.UUID
    trade_date: datetime
    profit_loss: Decimal
    balance_after: Decimal

    model_config = {"from_attributes": True}


def _challenge_out(ch: UserChallenge) -> UserChallengeOut:
    plan = ch.plan
    return UserChallengeOut(
        id=ch.id,
        plan_id=ch.plan_id,
        plan_name=plan.name,
        account_size=plan.account_size,
        payment_id=ch.payment_id,
        status=ch.status,
        start_date=ch.start_date,
        end_date=ch.end_date,
        current_balance=ch.current_balance,
        highest_balance=ch.highest_balance,
        lowest_balance=ch.lowest_balance,
        total_profit=ch.total_profit,
        trading_days=ch.trading_days,
        profit_target=plan.profit_target,
        max_drawdown=plan.max_drawdown,
        daily_drawdown=plan.daily_drawdown,
        min_trading_days=plan.min_trading_days,
        evaluation_period=plan.evaluation_period,
    )


async def _get_own_challenge(session: AsyncSession, challenge_id: uuid.UUID, user: User) -> UserChallenge:
    result = await session.execute(
        select(UserChallenge)
        .where(UserChallenge.id == challenge_id, UserChallenge.user_id == user.id)
        .options(selectinload(UserChallenge.plan))
    )
    challenge = result.scalar_one_or_none()
    if not challenge:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return challenge


# ─── Эндпоинты ────────────────────────────────────────────────────────────────

@router.get("/my", response_model=APIResponse[list[UserChallengeOut]])
async def my_challenges(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[list[UserChallengeOut]]:
    """Все испытания пользователя, новые сверху."""
    result = await session.execute(
        select(UserChallenge)
        .where(UserChallenge.user_id == user.id)
        .options(selectinload(UserChallenge.plan))
        .order_by(UserChallenge.created_at.desc())
    )
    return APIResponse(data=[_challenge_out(ch) for ch in result.scalars().all()])


@router.get("/history", response_model=APIResponse[list[TradingHistoryOut]])
async def my_trading_history(
    limit: int = Query(HISTORY_LIMIT, ge=1, le=200),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[list[TradingHistoryOut]]:
    """Последние записи журнала по всем испытаниям пользователя."""
    result = await session.execute(
        select(TradingHistory)
        .join(UserChallenge, TradingHistory.challenge_id == UserChallenge.id)
        .where(UserChallenge.user_id == user.id)
        .order_by(TradingHistory.trade_date.desc())
        .limit(limit)
    )
    return APIResponse(data=[TradingHistoryOut.model_validate(h) for h in result.scalars().all()])


@router.get("/{challenge_id}", response_model=APIResponse[UserChallengeOut])
async def get_challenge(
    challenge_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[UserChallengeOut]:
    challenge = await _get_own_challenge(session, challenge_id, user)
    return APIResponse(data=_challenge_out(challenge))


@router.get("/{challenge_id}/history", response_model=APIResponse[list[TradingHistoryOut]])
async def get_challenge_history(
    challenge_id: uuid.UUID,
    limit: int = Query(HISTORY_LIMIT, ge=1, le=200),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[list[TradingHistoryOut]]:
    challenge = await _get_own_challenge(session, challenge_id, user)
    result = await session.execute(
        select(TradingHistory)
        .where(TradingHistory.challenge_id == challenge.id)
        .order_by(TradingHistory.trade_date.desc())
        .limit(limit)
    )
    return APIResponse(data=[TradingHistoryOut.model_validate(h) for h in result.scalars().all()])
