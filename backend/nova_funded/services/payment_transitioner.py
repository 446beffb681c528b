"""
Применение результата верификации к платежу.

Подтверждение и создание испытания — одна транзакция БД:
  1. UPDATE payments ... WHERE status = 'pending' (compare-and-swap)
  2. INSERT user_challenges (payment_id уникален)
  3. COMMIT
Любая ошибка откатывает обе записи, платёж остаётся pending.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.exceptions import (
    ConflictError,
    InconsistentStateError,
    InvalidOperationError,
    NotFoundError,
)
from nova_funded.models.base import utcnow
from nova_funded.models.challenge import ChallengeStatus, UserChallenge
from nova_funded.models.payment import Payment, PaymentStatus
from nova_funded.services.notification_service import NotificationService
from nova_funded.services.payment_verifier import VerificationResult
from nova_funded.services.tron.address import normalize_tx_hash


def canonical_tx_hash(tx_hash: str) -> str:
    """Хеш в канонической форме для записи и сравнения; иначе InvalidOperationError (400)."""
    try:
        return normalize_tx_hash(tx_hash)
    except ValueError:
        raise InvalidOperationError(
            "Transaction hash must be 64 hex characters", detail={"transaction_hash": tx_hash}
        ) from None


@dataclass(frozen=True)
class TransitionOutcome:
    success: bool
    message: str
    amount_paid: Optional[Decimal] = None
    details: Optional[str] = None
    challenge_id: Optional[uuid.UUID] = None


class PaymentTransitioner:
    def __init__(self, session: AsyncSession, notifications: Optional[NotificationService] = None):
        self.session = session
        self.notifications = notifications or NotificationService(session)

    async def apply_verification(
        self,
        payment_id: uuid.UUID,
        tx_hash: str,
        result: VerificationResult,
    ) -> TransitionOutcome:
        if not result.verified:
            # В failed переводит только ручной override
            return TransitionOutcome(
                success=False,
                message="Payment verification failed",
                amount_paid=result.amount,
                details=result.reason,
            )

        tx_hash = canonical_tx_hash(tx_hash)
        now = utcnow()
        try:
            cas = await self.session.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == PaymentStatus.pending)
                .values(
                    status=PaymentStatus.confirmed,
                    confirmed_at=now,
                    transaction_hash=tx_hash,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if cas.rowcount != 1:
                await self.session.rollback()
                await self.raise_not_pending(payment_id)

            payment = await self.session.get(Payment, payment_id, populate_existing=True)
            challenge = self._new_challenge(payment, now)
            self.session.add(challenge)
            await self.session.flush()

            self.notifications.payment_confirmed(payment, result.amount)
            self.notifications.challenge_activated(challenge)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            self.notifications.discard()
            logger.warning(f"Payment {payment_id} transition rejected by constraint: {e.orig}")
            raise ConflictError(
                "Payment or transaction was already processed",
                detail={"payment_id": str(payment_id)},
            ) from e
        except SQLAlchemyError:
            await self.session.rollback()
            self.notifications.discard()
            logger.exception(
                f"Challenge provisioning failed for payment {payment_id}; "
                f"confirmation rolled back, payment stays pending"
            )
            raise

        await self.notifications.flush()
        logger.info(
            f"Payment {payment_id} confirmed (tx={tx_hash}, paid={result.amount}); "
            f"challenge {challenge.id} activated for user {payment.user_id}"
        )
        return TransitionOutcome(
            success=True,
            message="Payment verified and challenge created",
            amount_paid=result.amount,
            challenge_id=challenge.id,
        )

    # ─── Ручные операции администратора ───────────────────────────────────────

    async def force_status(
        self,
        payment_id: uuid.UUID,
        new_status: PaymentStatus,
        tx_hash: Optional[str] = None,
    ) -> Payment:
        """
        Ручной override статуса. Инварианты сохраняются:
        confirmed требует хеш транзакции и выставляет confirmed_at,
        любой другой статус сбрасывает confirmed_at.
        """
        payment = await self._get_payment(payment_id)
        previous = payment.status
        now = utcnow()

        try:
            if new_status == PaymentStatus.confirmed:
                tx_hash = canonical_tx_hash(tx_hash) if tx_hash else payment.transaction_hash
                if not tx_hash:
                    raise InvalidOperationError("A transaction hash is required to confirm a payment")
                payment.transaction_hash = tx_hash
                payment.status = PaymentStatus.confirmed
                payment.confirmed_at = payment.confirmed_at or now
                if await self._find_challenge(payment.id) is None:
                    challenge = self._new_challenge(payment, now)
                    self.session.add(challenge)
                    self.notifications.challenge_activated(challenge)
            else:
                payment.status = new_status
                payment.confirmed_at = None
                if tx_hash:
                    payment.transaction_hash = canonical_tx_hash(tx_hash)

            self.notifications.payment_status_changed(payment)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            self.notifications.discard()
            raise ConflictError("Transaction hash is already used by another payment") from e
        except InvalidOperationError:
            self.notifications.discard()
            raise

        await self.notifications.flush()
        logger.info(
            f"Admin override: payment {payment_id} {_value(previous)} -> {_value(new_status)}"
        )
        return payment

    async def provision_missing_challenge(self, payment_id: uuid.UUID) -> UserChallenge:
        """Ручное исправление InconsistentState: подтверждённый платёж без испытания."""
        payment = await self._get_payment(payment_id)
        if payment.status != PaymentStatus.confirmed:
            raise InvalidOperationError("Only confirmed payments can provision a challenge")
        if await self._find_challenge(payment.id) is not None:
            raise ConflictError("Challenge already exists for this payment")

        challenge = self._new_challenge(payment, utcnow())
        self.session.add(challenge)
        self.notifications.challenge_activated(challenge)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            self.notifications.discard()
            raise ConflictError("Challenge already exists for this payment") from e

        await self.notifications.flush()
        logger.info(f"Challenge {challenge.id} provisioned manually for payment {payment_id}")
        return challenge

    # ─── Вспомогательные методы ───────────────────────────────────────────────

    @staticmethod
    def _new_challenge(payment: Payment, now: datetime) -> UserChallenge:
        return UserChallenge(
            id=uuid.uuid4(),
            user_id=payment.user_id,
            plan_id=payment.plan_id,
            payment_id=payment.id,
            status=ChallengeStatus.active,
            start_date=now,
            current_balance=Decimal("0"),
            highest_balance=Decimal("0"),
            lowest_balance=Decimal("0"),
            total_profit=Decimal("0"),
            trading_days=0,
        )

    async def _get_payment(self, payment_id: uuid.UUID) -> Payment:
        payment = await self.session.get(Payment, payment_id, populate_existing=True)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    async def _find_challenge(self, payment_id: uuid.UUID) -> Optional[UserChallenge]:
        result = await self.session.execute(
            select(UserChallenge).where(UserChallenge.payment_id == payment_id)
        )
        return result.scalar_one_or_none()

    async def raise_not_pending(self, payment_id: uuid.UUID) -> None:
        payment = await self._get_payment(payment_id)
        if payment.status == PaymentStatus.confirmed:
            if await self._find_challenge(payment_id) is None:
                logger.critical(
                    f"INCONSISTENT STATE: payment {payment_id} is confirmed but has no challenge"
                )
                raise InconsistentStateError(
                    "Payment is confirmed but no challenge was provisioned",
                    payment_id=payment_id,
                )
            raise ConflictError("Payment is already confirmed", detail={"status": "confirmed"})
        raise ConflictError(
            f"Payment is {_value(payment.status)} and can no longer be verified",
            detail={"status": _value(payment.status)},
        )


def _value(status) -> str:
    return getattr(status, "value", status)
