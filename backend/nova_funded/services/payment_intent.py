"""
Генерация платёжного intent: pending-платёж на фиксированный кошелёк платформы.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import quote

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.config import Settings, settings as default_settings
from nova_funded.core.exceptions import NotFoundError
from nova_funded.models.payment import Payment, PaymentStatus
from nova_funded.models.plan import TradingPlan
from nova_funded.models.user import User
from nova_funded.services.notification_service import NotificationService


@dataclass(frozen=True)
class PaymentIntent:
    payment_id: uuid.UUID
    wallet_address: str
    amount: Decimal
    currency: str
    plan_name: str
    memo: str

    @property
    def payment_uri(self) -> str:
        """Строка запроса оплаты для QR-кода."""
        return (
            f"tron:{self.wallet_address}?amount={self.amount.normalize():f}"
            f"&token={self.currency}&memo={quote(self.memo)}"
        )


def build_memo(plan_name: str, payment_id: uuid.UUID) -> str:
    return f"Payment for {plan_name} - ID: {payment_id}"


class PaymentIntentService:
    def __init__(
        self,
        session: AsyncSession,
        config: Settings | None = None,
        notifications: NotificationService | None = None,
    ):
        self.session = session
        self.config = config or default_settings
        self.notifications = notifications or NotificationService(session)

    async def create_intent(self, user_id: uuid.UUID, plan_id: uuid.UUID) -> PaymentIntent:
        """
        Создаёт pending-платёж на сумму plan.price.
        Повторный вызов создаёт ещё один независимый intent (идемпотентности нет).
        """
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        result = await self.session.execute(
            select(TradingPlan).where(
                TradingPlan.id == plan_id,
                TradingPlan.is_active == True,
            )
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            raise NotFoundError("Plan not found")

        payment_id = uuid.uuid4()
        memo = build_memo(plan.name, payment_id)
        payment = Payment(
            id=payment_id,
            user_id=user.id,
            plan_id=plan.id,
            amount=plan.price,
            currency=self.config.settlement_currency,
            wallet_address=self.config.receiving_wallet_address,
            memo=memo,
            status=PaymentStatus.pending,
        )
        self.session.add(payment)
        self.notifications.payment_created(payment, plan.name)
        await self.session.commit()
        await self.notifications.flush()

        logger.info(
            f"Payment intent created: payment_id={payment_id} user_id={user.id} "
            f"plan={plan.name} amount={plan.price} {payment.currency}"
        )
        return PaymentIntent(
            payment_id=payment_id,
            wallet_address=payment.wallet_address,
            amount=Decimal(plan.price),
            currency=payment.currency,
            plan_name=plan.name,
            memo=memo,
        )
