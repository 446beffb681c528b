"""
Сверка: подтверждённые платежи без выданного испытания (InconsistentState).
"""
from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.models.challenge import UserChallenge
from nova_funded.models.payment import Payment, PaymentStatus
from nova_funded.services.notification_service import NotificationService


async def find_inconsistent_payments(session: AsyncSession, limit: int = 200) -> list[Payment]:
    stmt = (
        select(Payment)
        .outerjoin(UserChallenge, UserChallenge.payment_id == Payment.id)
        .where(
            Payment.status == PaymentStatus.confirmed,
            UserChallenge.id.is_(None),
        )
        .order_by(Payment.confirmed_at)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


class ReconciliationService:
    def __init__(self, session: AsyncSession, notifications: NotificationService | None = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)

    async def run(self) -> list[Payment]:
        """Находит рассогласования, логирует каждое и шлёт один алерт оператору."""
        payments = await find_inconsistent_payments(self.session)
        if not payments:
            logger.debug("Reconciliation: no inconsistent payments")
            return payments

        for p in payments:
            logger.critical(
                f"INCONSISTENT STATE: payment {p.id} (user {p.user_id}, tx {p.transaction_hash}) "
                f"confirmed at {p.confirmed_at} without a challenge"
            )

        ids = "\n".join(f"• <code>{p.id}</code>" for p in payments[:20])
        more = f"\n…and {len(payments) - 20} more" if len(payments) > 20 else ""
        await self.notifications.send_to_super_admin(
            f"🚨 <b>{len(payments)} confirmed payment(s) without a challenge</b>\n{ids}{more}\n\n"
            "Use the admin console to provision the missing challenges."
        )
        return payments
