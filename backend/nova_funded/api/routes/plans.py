"""
/plans — публичный каталог тарифов.
"""
import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.database import get_db
from nova_funded.core.exceptions import NotFoundError
from nova_funded.models.plan import TradingPlan
from nova_funded.schemas.common import APIResponse

router = APIRouter(prefix="/plans", tags=["plans"])


class PlanOut(BaseModel):
    id: uuid.UUID
    name: str
    account_size: Decimal
    price: Decimal
    profit_target: Decimal
    max_drawdown: Decimal
    daily_drawdown: Decimal
    profit_split: Decimal
    evaluation_period: int
    min_trading_days: int
    is_active: bool

    model_config = {"from_attributes": True}


@router.get("", response_model=APIResponse[list[PlanOut]])
async def list_plans(session: AsyncSession = Depends(get_db)) -> APIResponse[list[PlanOut]]:
    """Активные тарифы по возрастанию размера счёта."""
    stmt = (
        select(TradingPlan)
        .where(TradingPlan.is_active == True)
        .order_by(TradingPlan.account_size)
    )
    result = await session.execute(stmt)
    return APIResponse(data=[PlanOut.model_validate(p) for p in result.scalars().all()])


@router.get("/{plan_id}", response_model=APIResponse[PlanOut])
async def get_plan(plan_id: uuid.UUID, session: AsyncSession = Depends(get_db)) -> APIResponse[PlanOut]:
    plan = await session.get(TradingPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFoundError("Plan not found")
    return APIResponse(data=PlanOut.model_validate(plan))
