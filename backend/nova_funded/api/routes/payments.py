"""
/payments — создание платёжного intent и проверка USDT перевода.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.api.dependencies import (
    can_administer,
    get_current_user,
    get_notification_feed,
    rate_limit_standard,
    rate_limit_verification,
)
from nova_funded.core.database import get_db
from nova_funded.models.payment import Payment
from nova_funded.models.user import User
from nova_funded.schemas.common import APIResponse
from nova_funded.services.notification_service import NotificationFeed, NotificationService
from nova_funded.services.payment_intent import PaymentIntentService
from nova_funded.services.payment_service import PaymentService, PaymentStatusView

router = APIRouter(prefix="/payments", tags=["payments"])


# ─── Схемы ────────────────────────────────────────────────────────────────────

class CreateIntentRequest(BaseModel):
    plan_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None  # только для админа: intent от имени пользователя


class PaymentIntentOut(BaseModel):
    payment_id: uuid.UUID
    wallet_address: str
    amount: Decimal
    currency: str
    plan_name: str
    memo: str
    payment_uri: str


class VerifyPaymentRequest(BaseModel):
    payment_id: uuid.UUID
    transaction_hash: Optional[str] = Field(None, max_length=128)


class VerifyPaymentOut(BaseModel):
    success: bool
    message: str
    status: Optional[str] = None
    amount_paid: Optional[Decimal] = None
    details: Optional[str] = None
    challenge_id: Optional[uuid.UUID] = None


class PaymentOut(BaseModel):
    id: uuid.UUID
    plan_id: uuid.UUID
    amount: Decimal
    currency: str
    wallet_address: str
    memo: Optional[str]
    status: str
    transaction_hash: Optional[str]
    confirmed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Зависимости ──────────────────────────────────────────────────────────────

async def get_payment_service(
    session: AsyncSession = Depends(get_db),
    feed: NotificationFeed = Depends(get_notification_feed),
) -> AsyncGenerator[PaymentService, None]:
    service = PaymentService(session, notifications=NotificationService(session, feed))
    try:
        yield service
    finally:
        await service.close()


# ─── Эндпоинты ────────────────────────────────────────────────────────────────

@router.post("/intent", response_model=APIResponse[PaymentIntentOut])
async def create_intent(
    body: CreateIntentRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    feed: NotificationFeed = Depends(get_notification_feed),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[PaymentIntentOut]:
    """Создаёт pending-платёж на цену тарифа и возвращает реквизиты для перевода."""
    target_user_id = body.user_id or user.id
    if target_user_id != user.id and not can_administer(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot create a payment for another user",
        )

    notifications = NotificationService(session, feed)
    intent = await PaymentIntentService(session, notifications=notifications).create_intent(
        target_user_id, body.plan_id
    )
    return APIResponse(
        data=PaymentIntentOut(
            payment_id=intent.payment_id,
            wallet_address=intent.wallet_address,
            amount=intent.amount,
            currency=intent.currency,
            plan_name=intent.plan_name,
            memo=intent.memo,
            payment_uri=intent.payment_uri,
        ),
        message=f"Send exactly {intent.amount.normalize():f} {intent.currency} to the wallet address",
    )


@router.post("/verify", response_model=VerifyPaymentOut)
async def verify_payment(
    body: VerifyPaymentRequest,
    user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
    _: None = Depends(rate_limit_verification),
) -> VerifyPaymentOut:
    """
    Без transaction_hash — текущий статус платежа.
    С хешем — проверка перевода в сети TRON и активация испытания.
    """
    outcome = await service.verify_request(body.payment_id, user, body.transaction_hash)

    if isinstance(outcome, PaymentStatusView):
        return VerifyPaymentOut(
            success=True,
            message=f"Payment is {outcome.status}",
            status=outcome.status,
        )

    return VerifyPaymentOut(
        success=outcome.success,
        message=outcome.message,
        status="confirmed" if outcome.success else "pending",
        amount_paid=outcome.amount_paid,
        details=outcome.details,
        challenge_id=outcome.challenge_id,
    )


@router.get("/my", response_model=APIResponse[list[PaymentOut]])
async def my_payments(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[list[PaymentOut]]:
    result = await session.execute(
        select(Payment)
        .where(Payment.user_id == user.id)
        .order_by(Payment.created_at.desc())
    )
    return APIResponse(data=[PaymentOut.model_validate(p) for p in result.scalars().all()])


@router.get("/{payment_id}", response_model=APIResponse[PaymentOut])
async def get_payment(
    payment_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[PaymentOut]:
    payment = await session.get(Payment, payment_id)
    if payment is None or (payment.user_id != user.id and not can_administer(user)):
        raise HTTPException(status_code=404, detail="Payment not found")
    return APIResponse(data=PaymentOut.model_validate(payment))
