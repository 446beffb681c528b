"""
Проверка USDT TRC20 перевода по хешу транзакции.

Только чтение и решение: платёж не изменяется, испытание не создаётся.
Сетевые ошибки и битые ответы explorer -> VerificationError (можно повторить),
неподходящая транзакция -> VerificationResult.rejected (повтор с тем же хешем бесполезен).
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.core.config import Settings, settings as default_settings
from nova_funded.core.exceptions import NotFoundError
from nova_funded.models.payment import Payment
from nova_funded.services.tron.explorer import NormalizedTransaction, TronExplorer


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    amount: Optional[Decimal] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, amount: Decimal) -> "VerificationResult":
        return cls(verified=True, amount=amount)

    @classmethod
    def rejected(cls, reason: str, amount: Optional[Decimal] = None) -> "VerificationResult":
        return cls(verified=False, amount=amount, reason=reason)


class TransferVerifier:
    def __init__(
        self,
        session: AsyncSession,
        explorer: TronExplorer,
        config: Settings | None = None,
    ):
        self.session = session
        self.explorer = explorer
        self.config = config or default_settings

    async def verify(self, payment_id: uuid.UUID, tx_hash: str) -> VerificationResult:
        payment = await self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")

        tx = await self.explorer.fetch_transaction(tx_hash.strip())
        result = self.evaluate(payment, tx)

        if result.verified:
            logger.info(
                f"Transfer verified: payment_id={payment_id} tx={tx_hash} amount={result.amount}"
            )
        else:
            logger.warning(
                f"Transfer rejected: payment_id={payment_id} tx={tx_hash} reason={result.reason}"
            )
        return result

    def evaluate(self, payment: Payment, tx: NormalizedTransaction) -> VerificationResult:
        """Сравнивает нормализованную транзакцию с требованиями платежа."""
        if not tx.success:
            return VerificationResult.rejected("Transaction failed on-chain")

        token_transfers = [
            t for t in tx.transfers
            if t.contract_address == self.config.usdt_contract_address
        ]
        if not token_transfers:
            return VerificationResult.rejected(
                f"Transaction is not a {self.config.settlement_currency} TRC20 transfer"
            )

        to_wallet = [t for t in token_transfers if t.to_address == payment.wallet_address]
        if not to_wallet:
            return VerificationResult.rejected("Transfer recipient does not match payment wallet")

        actual_amount = max(self.to_token_amount(t.raw_amount) for t in to_wallet)
        required = Decimal(payment.amount)
        if actual_amount < required:
            return VerificationResult.rejected(
                f"Insufficient amount: received {actual_amount}, required {required}",
                amount=actual_amount,
            )

        # Переплата допускается
        return VerificationResult.ok(actual_amount)

    def to_token_amount(self, raw_amount: int) -> Decimal:
        return Decimal(raw_amount) / self.config.token_unit
