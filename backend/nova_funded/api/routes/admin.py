"""
/admin — административные эндпоинты (только admin/super_admin).
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.api.dependencies import get_notification_feed, require_admin, require_super_admin
from nova_funded.core.database import get_db
from nova_funded.models.base import utcnow
from nova_funded.models.challenge import TERMINAL_STATUSES, ChallengeStatus, UserChallenge
from nova_funded.models.payment import Payment, PaymentStatus
from nova_funded.models.plan import TradingPlan
from nova_funded.models.user import User, UserRole
from nova_funded.schemas.common import APIResponse
from nova_funded.services.notification_service import NotificationFeed, NotificationService
from nova_funded.services.payment_transitioner import PaymentTransitioner
from nova_funded.services.reconciliation import find_inconsistent_payments

router = APIRouter(prefix="/admin", tags=["admin"])


# ─── Схемы ────────────────────────────────────────────────────────────────────

class UserAdminOut(BaseModel):
    id: uuid.UUID
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    country: Optional[str]
    role: str
    is_blocked: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentAdminOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    email: Optional[str]
    plan_id: uuid.UUID
    plan_name: str
    amount: Decimal
    currency: str
    status: str
    transaction_hash: Optional[str]
    memo: Optional[str]
    confirmed_at: Optional[datetime]
    created_at: datetime


class ChallengeAdminOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    email: Optional[str]
    plan_name: str
    account_size: Decimal
    payment_id: Optional[uuid.UUID]
    status: str
    current_balance: Decimal
    total_profit: Decimal
    trading_days: int
    start_date: Optional[datetime]
    end_date: Optional[datetime]


class OverviewOut(BaseModel):
    total_users: int
    total_payments: int
    pending_payments: int
    active_challenges: int
    total_revenue: Decimal
    inconsistent_payments: int


class SetRoleRequest(BaseModel):
    role: UserRole


class ForcePaymentStatusRequest(BaseModel):
    status: PaymentStatus
    transaction_hash: Optional[str] = Field(None, max_length=128)


class SetChallengeStatusRequest(BaseModel):
    status: ChallengeStatus


class CreatePlanRequest(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    account_size: Decimal = Field(gt=0)
    price: Decimal = Field(gt=0)
    profit_target: Decimal = Field(Decimal("8.00"), ge=0, le=100)
    max_drawdown: Decimal = Field(Decimal("10.00"), ge=0, le=100)
    daily_drawdown: Decimal = Field(Decimal("5.00"), ge=0, le=100)
    profit_split: Decimal = Field(Decimal("80.00"), ge=0, le=100)
    evaluation_period: int = Field(30, ge=1)
    min_trading_days: int = Field(5, ge=0)
    is_active: bool = True


class UpdatePlanRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    account_size: Optional[Decimal] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, gt=0)
    profit_target: Optional[Decimal] = Field(None, ge=0, le=100)
    max_drawdown: Optional[Decimal] = Field(None, ge=0, le=100)
    daily_drawdown: Optional[Decimal] = Field(None, ge=0, le=100)
    profit_split: Optional[Decimal] = Field(None, ge=0, le=100)
    evaluation_period: Optional[int] = Field(None, ge=1)
    min_trading_days: Optional[int] = Field(None, ge=0)


def _payment_out(p: Payment, u: User, plan: TradingPlan) -> PaymentAdminOut:
    return PaymentAdminOut(
        id=p.id, user_id=p.user_id, email=u.email, plan_id=p.plan_id,
        plan_name=plan.name, amount=p.amount, currency=p.currency,
        status=p.status, transaction_hash=p.transaction_hash, memo=p.memo,
        confirmed_at=p.confirmed_at, created_at=p.created_at,
    )


async def _notifications(
    session: AsyncSession = Depends(get_db),
    feed: NotificationFeed = Depends(get_notification_feed),
) -> NotificationService:
    return NotificationService(session, feed)


# ─── Пользователи ─────────────────────────────────────────────────────────────

@router.get("/users", response_model=APIResponse[list[UserAdminOut]])
async def list_users(
    search: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    is_blocked: Optional[bool] = Query(None),
    limit: int = Query(50, le=200),
    offset: int = Query(0),
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[list[UserAdminOut]]:
    """Список пользователей с фильтрами."""
    stmt = select(User)
    if search:
        stmt = stmt.where(
            User.email.ilike(f"%{search}%")
            | User.first_name.ilike(f"%{search}%")
            | User.last_name.ilike(f"%{search}%")
        )
    if role:
        stmt = stmt.where(User.role == role)
    if is_blocked is not None:
        stmt = stmt.where(User.is_blocked == is_blocked)
    stmt = stmt.order_by(User.created_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return APIResponse(data=[UserAdminOut.model_validate(u) for u in result.scalars().all()])


@router.post("/users/{user_id}/role", response_model=APIResponse[dict])
async def set_user_role(
    user_id: uuid.UUID,
    body: SetRoleRequest,
    admin: User = Depends(require_super_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    """Смена роли. Только super_admin."""
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.id == admin.id and body.role != UserRole.super_admin:
        raise HTTPException(status_code=400, detail="Cannot demote yourself")
    user.role = body.role
    await session.commit()
    logger.info(f"Role changed by {admin.id}: user {user_id} -> {body.role.value}")
    return APIResponse(data={"user_id": user_id, "role": body.role.value})


@router.post("/users/{user_id}/block", response_model=APIResponse[dict])
async def block_user(
    user_id: uuid.UUID,
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    """Блокировка / разблокировка пользователя."""
    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role == UserRole.super_admin:
        raise HTTPException(status_code=403, detail="Cannot block super_admin")
    user.is_blocked = not user.is_blocked
    await session.commit()
    logger.info(f"User {user_id} is_blocked={user.is_blocked} (by {admin.id})")
    return APIResponse(data={"user_id": user_id, "is_blocked": user.is_blocked})


# ─── Платежи ──────────────────────────────────────────────────────────────────

@router.get("/payments", response_model=APIResponse[list[PaymentAdminOut]])
async def list_payments(
    status: Optional[PaymentStatus] = Query(None),
    limit: int = Query(100, le=500),
    offset: int = Query(0),
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[list[PaymentAdminOut]]:
    stmt = (
        select(Payment, User, TradingPlan)
        .join(User, Payment.user_id == User.id)
        .join(TradingPlan, Payment.plan_id == TradingPlan.id)
    )
    if status:
        stmt = stmt.where(Payment.status == status)
    stmt = stmt.order_by(Payment.created_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return APIResponse(data=[_payment_out(p, u, plan) for p, u, plan in result.all()])


@router.get("/payments/inconsistent", response_model=APIResponse[list[PaymentAdminOut]])
async def list_inconsistent_payments(
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[list[PaymentAdminOut]]:
    """Подтверждённые платежи, по которым не выдано испытание."""
    payments = await find_inconsistent_payments(session)
    out = []
    for p in payments:
        user = await session.get(User, p.user_id)
        plan = await session.get(TradingPlan, p.plan_id)
        out.append(_payment_out(p, user, plan))
    return APIResponse(data=out)


@router.post("/payments/{payment_id}/status", response_model=APIResponse[dict])
async def force_payment_status(
    payment_id: uuid.UUID,
    body: ForcePaymentStatusRequest,
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(_notifications),
) -> APIResponse[dict]:
    """Ручной override статуса платежа."""
    transitioner = PaymentTransitioner(session, notifications)
    payment = await transitioner.force_status(payment_id, body.status, body.transaction_hash)
    logger.info(f"Payment {payment_id} status forced to {body.status.value} by admin {admin.id}")
    return APIResponse(data={
        "payment_id": payment.id,
        "status": body.status.value,
        "transaction_hash": payment.transaction_hash,
    })


@router.post("/payments/{payment_id}/provision", response_model=APIResponse[dict])
async def provision_challenge(
    payment_id: uuid.UUID,
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(_notifications),
) -> APIResponse[dict]:
    """Выдаёт недостающее испытание по подтверждённому платежу."""
    transitioner = PaymentTransitioner(session, notifications)
    challenge = await transitioner.provision_missing_challenge(payment_id)
    return APIResponse(data={"payment_id": payment_id, "challenge_id": challenge.id})


# ─── Испытания ────────────────────────────────────────────────────────────────

@router.get("/challenges", response_model=APIResponse[list[ChallengeAdminOut]])
async def list_challenges(
    status: Optional[ChallengeStatus] = Query(None),
    limit: int = Query(100, le=500),
    offset: int = Query(0),
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[list[ChallengeAdminOut]]:
    stmt = (
        select(UserChallenge, User, TradingPlan)
        .join(User, UserChallenge.user_id == User.id)
        .join(TradingPlan, UserChallenge.plan_id == TradingPlan.id)
    )
    if status:
        stmt = stmt.where(UserChallenge.status == status)
    stmt = stmt.order_by(UserChallenge.created_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)

    return APIResponse(data=[
        ChallengeAdminOut(
            id=ch.id, user_id=ch.user_id, email=u.email, plan_name=plan.name,
            account_size=plan.account_size, payment_id=ch.payment_id,
            status=ch.status, current_balance=ch.current_balance,
            total_profit=ch.total_profit, trading_days=ch.trading_days,
            start_date=ch.start_date, end_date=ch.end_date,
        )
        for ch, u, plan in result.all()
    ])


@router.post("/challenges/{challenge_id}/status", response_model=APIResponse[dict])
async def set_challenge_status(
    challenge_id: uuid.UUID,
    body: SetChallengeStatusRequest,
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(_notifications),
) -> APIResponse[dict]:
    challenge = await session.get(UserChallenge, challenge_id)
    if not challenge:
        raise HTTPException(status_code=404, detail="Challenge not found")

    challenge.status = body.status
    if body.status in TERMINAL_STATUSES:
        challenge.end_date = challenge.end_date or utcnow()
    else:
        challenge.end_date = None
        if body.status == ChallengeStatus.active and challenge.start_date is None:
            challenge.start_date = utcnow()

    notifications.challenge_status_changed(challenge)
    await session.commit()
    await notifications.flush()
    logger.info(f"Challenge {challenge_id} status -> {body.status.value} (by {admin.id})")
    return APIResponse(data={
        "challenge_id": challenge_id,
        "status": body.status.value,
        "end_date": challenge.end_date,
    })


# ─── Тарифы ───────────────────────────────────────────────────────────────────

@router.post("/plans", response_model=APIResponse[dict])
async def create_plan(
    body: CreatePlanRequest,
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    """Создание нового тарифа."""
    plan = TradingPlan(**body.model_dump())
    session.add(plan)
    await session.commit()
    logger.info(f"Plan created: {plan.name} (${plan.account_size} for {plan.price})")
    return APIResponse(data={"id": plan.id, "name": plan.name})


@router.patch("/plans/{plan_id}", response_model=APIResponse[dict])
async def update_plan(
    plan_id: uuid.UUID,
    body: UpdatePlanRequest,
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    plan = await session.get(TradingPlan, plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(plan, field, value)
    await session.commit()
    return APIResponse(data={"id": plan.id, "updated": sorted(changes)})


@router.post("/plans/{plan_id}/active", response_model=APIResponse[dict])
async def set_plan_active(
    plan_id: uuid.UUID,
    is_active: bool = Query(...),
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    """Включение / отключение тарифа в каталоге."""
    plan = await session.get(TradingPlan, plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    plan.is_active = is_active
    await session.commit()
    return APIResponse(data={"id": plan.id, "is_active": plan.is_active})


# ─── Обзорная статистика ──────────────────────────────────────────────────────

@router.get("/stats/overview", response_model=APIResponse[OverviewOut])
async def get_overview(
    admin: User = Depends(require_admin()),
    session: AsyncSession = Depends(get_db),
) -> APIResponse[OverviewOut]:
    """Общая статистика платформы."""
    total_users = (await session.execute(select(func.count(User.id)))).scalar() or 0
    total_payments = (await session.execute(select(func.count(Payment.id)))).scalar() or 0

    pending_payments = (await session.execute(
        select(func.count(Payment.id)).where(Payment.status == PaymentStatus.pending)
    )).scalar() or 0

    active_challenges = (await session.execute(
        select(func.count(UserChallenge.id)).where(UserChallenge.status == ChallengeStatus.active)
    )).scalar() or 0

    # Выручка: сумма подтверждённых платежей
    revenue = (await session.execute(
        select(func.sum(Payment.amount)).where(Payment.status == PaymentStatus.confirmed)
    )).scalar() or 0

    inconsistent = await find_inconsistent_payments(session)

    return APIResponse(data=OverviewOut(
        total_users=total_users,
        total_payments=total_payments,
        pending_payments=pending_payments,
        active_challenges=active_challenges,
        total_revenue=Decimal(str(revenue)),
        inconsistent_payments=len(inconsistent),
    ))
