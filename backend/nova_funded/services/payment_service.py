"""
Обработка запроса на проверку оплаты: verifier + transitioner.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.config import Settings, settings as default_settings
from nova_funded.core.exceptions import ConflictError, InconsistentStateError, NotFoundError
from nova_funded.models.payment import Payment, PaymentStatus
from nova_funded.models.user import User
from nova_funded.services.notification_service import NotificationService
from nova_funded.services.payment_transitioner import (
    PaymentTransitioner,
    TransitionOutcome,
    canonical_tx_hash,
)
from nova_funded.services.payment_verifier import TransferVerifier
from nova_funded.services.tron.explorer import TronExplorer, get_explorer


@dataclass(frozen=True)
class PaymentStatusView:
    payment_id: uuid.UUID
    status: str
    amount: Decimal
    wallet_address: str
    transaction_hash: Optional[str] = None


class PaymentService:
    def __init__(
        self,
        session: AsyncSession,
        explorer: Optional[TronExplorer] = None,
        notifications: Optional[NotificationService] = None,
        config: Optional[Settings] = None,
    ):
        self.session = session
        self.config = config or default_settings
        self._explorer = explorer
        self._owns_explorer = explorer is None
        self.notifications = notifications or NotificationService(session)
        self.transitioner = PaymentTransitioner(session, self.notifications)

    @property
    def explorer(self) -> TronExplorer:
        if self._explorer is None:
            self._explorer = get_explorer(self.config)
        return self._explorer

    async def close(self) -> None:
        if self._owns_explorer and self._explorer is not None:
            await self._explorer.close()
            self._explorer = None

    async def get_status(self, payment_id: uuid.UUID, user: Optional[User] = None) -> PaymentStatusView:
        payment = await self._load_payment(payment_id, user)
        return PaymentStatusView(
            payment_id=payment.id,
            status=getattr(payment.status, "value", payment.status),
            amount=payment.amount,
            wallet_address=payment.wallet_address,
            transaction_hash=payment.transaction_hash,
        )

    async def verify_request(
        self,
        payment_id: uuid.UUID,
        user: Optional[User] = None,
        transaction_hash: Optional[str] = None,
    ) -> Union[PaymentStatusView, TransitionOutcome]:
        """Без хеша — только текущий статус, explorer не вызывается."""
        if not transaction_hash or not transaction_hash.strip():
            return await self.get_status(payment_id, user)
        return await self.verify(payment_id, transaction_hash, user)

    async def verify(
        self,
        payment_id: uuid.UUID,
        tx_hash: str,
        user: Optional[User] = None,
    ) -> TransitionOutcome:
        """
        Полная проверка: платёж должен быть pending, хеш не использован другим платежом.
        Хеш приводится к каноническому виду до сравнения и до запроса в explorer.
        VerificationError пробрасывается как есть: платёж не меняется.
        """
        payment = await self._load_payment(payment_id, user)
        tx_hash = canonical_tx_hash(tx_hash)

        try:
            if payment.status != PaymentStatus.pending:
                await self.transitioner.raise_not_pending(payment.id)

            used = await self.session.execute(
                select(Payment.id).where(
                    Payment.transaction_hash == tx_hash,
                    Payment.id != payment.id,
                )
            )
            if used.scalar_one_or_none() is not None:
                raise ConflictError("Transaction hash is already used by another payment")

            verifier = TransferVerifier(self.session, self.explorer, self.config)
            result = await verifier.verify(payment.id, tx_hash)
            return await self.transitioner.apply_verification(payment.id, tx_hash, result)
        except InconsistentStateError as e:
            await self.notifications.send_to_super_admin(
                f"🚨 <b>Inconsistent payment</b>\n<code>{e.payment_id}</code> is confirmed "
                "but has no challenge. Provision it from the admin console."
            )
            raise

    async def _load_payment(self, payment_id: uuid.UUID, user: Optional[User]) -> Payment:
        payment = await self.session.get(Payment, payment_id, populate_existing=True)
        # Чужой платёж для обычного пользователя неотличим от отсутствующего
        if payment is None or (user is not None and payment.user_id != user.id):
            logger.debug(f"Payment {payment_id} not found for user {getattr(user, 'id', None)}")
            raise NotFoundError("Payment not found")
        return payment
