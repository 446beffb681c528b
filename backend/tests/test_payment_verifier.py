"""
Тесты TransferVerifier — решение verified / rejected по нормализованной транзакции.

Покрывает:
- неуспешное исполнение в сети
- чужой контракт токена
- другой получатель
- недоплату и переплату
- перевод минимальных единиц в сумму токена
"""
from __future__ import annotations

import uuid
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from nova_funded.core.exceptions import NotFoundError, VerificationError
from nova_funded.services.payment_verifier import TransferVerifier, VerificationResult
from nova_funded.services.tron.explorer import NormalizedTransaction, TokenTransfer

USDT = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
FAKE_TOKEN = "TXLAQ63Xg1NAzckPwKHvzw7CSEmLMEqcdj"


# ── Helpers ───────────────────────────────────────────────────────────────────

def make_payment(wallet: str, amount: str = "100") -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), amount=Decimal(amount), wallet_address=wallet)


def make_tx(*transfers: TokenTransfer, success: bool = True) -> NormalizedTransaction:
    return NormalizedTransaction(tx_hash="ab" * 32, success=success, transfers=list(transfers))


def usdt(to: str, units: str) -> TokenTransfer:
    return TokenTransfer(
        contract_address=USDT,
        to_address=to,
        raw_amount=int(Decimal(units) * 10**6),
    )


@pytest.fixture
def verifier(config) -> TransferVerifier:
    return TransferVerifier(session=MagicMock(), explorer=MagicMock(), config=config)


# ── evaluate ──────────────────────────────────────────────────────────────────

def test_exact_amount_is_verified(verifier, wallet_address):
    result = verifier.evaluate(make_payment(wallet_address), make_tx(usdt(wallet_address, "100")))
    assert result == VerificationResult.ok(Decimal("100"))


def test_overpayment_is_accepted(verifier, wallet_address):
    result = verifier.evaluate(make_payment(wallet_address), make_tx(usdt(wallet_address, "100.5")))
    assert result.verified is True
    assert result.amount == Decimal("100.5")


def test_insufficient_amount_is_rejected(verifier, wallet_address):
    result = verifier.evaluate(make_payment(wallet_address), make_tx(usdt(wallet_address, "99.999999")))
    assert result.verified is False
    assert result.reason == "Insufficient amount: received 99.999999, required 100"
    assert result.amount == Decimal("99.999999")


def test_insufficient_amount_is_rejected_regardless_of_destination(verifier, wallet_address, other_wallet_address):
    result = verifier.evaluate(make_payment(wallet_address), make_tx(usdt(other_wallet_address, "50")))
    assert result.verified is False


def test_failed_transaction_is_rejected(verifier, wallet_address):
    tx = make_tx(usdt(wallet_address, "100"), success=False)
    result = verifier.evaluate(make_payment(wallet_address), tx)
    assert result.verified is False
    assert result.reason == "Transaction failed on-chain"


def test_other_token_contract_is_rejected(verifier, wallet_address):
    fake = TokenTransfer(contract_address=FAKE_TOKEN, to_address=wallet_address, raw_amount=500 * 10**6)
    result = verifier.evaluate(make_payment(wallet_address), make_tx(fake))
    assert result.verified is False
    assert "TRC20" in result.reason


def test_no_transfers_is_rejected(verifier, wallet_address):
    result = verifier.evaluate(make_payment(wallet_address), make_tx())
    assert result.verified is False


def test_wrong_destination_is_rejected(verifier, wallet_address, other_wallet_address):
    result = verifier.evaluate(make_payment(wallet_address), make_tx(usdt(other_wallet_address, "100")))
    assert result.verified is False
    assert result.reason == "Transfer recipient does not match payment wallet"


def test_largest_matching_transfer_wins(verifier, wallet_address, other_wallet_address):
    tx = make_tx(
        usdt(other_wallet_address, "1000"),
        usdt(wallet_address, "20"),
        usdt(wallet_address, "150"),
    )
    result = verifier.evaluate(make_payment(wallet_address), tx)
    assert result.verified is True
    assert result.amount == Decimal("150")


def test_to_token_amount_uses_six_decimals(verifier):
    assert verifier.to_token_amount(100_500_000) == Decimal("100.5")
    assert verifier.to_token_amount(1) == Decimal("0.000001")


# ── verify ────────────────────────────────────────────────────────────────────

async def test_verify_unknown_payment_raises_not_found(config):
    session = MagicMock()
    session.get = AsyncMock(return_value=None)
    explorer = MagicMock()
    explorer.fetch_transaction = AsyncMock()

    verifier = TransferVerifier(session, explorer, config)
    with pytest.raises(NotFoundError):
        await verifier.verify(uuid.uuid4(), "ab" * 32)
    explorer.fetch_transaction.assert_not_awaited()


async def test_verify_propagates_explorer_failure(config, wallet_address):
    session = MagicMock()
    session.get = AsyncMock(return_value=make_payment(wallet_address))
    explorer = MagicMock()
    explorer.fetch_transaction = AsyncMock(side_effect=VerificationError("down"))

    verifier = TransferVerifier(session, explorer, config)
    with pytest.raises(VerificationError):
        await verifier.verify(uuid.uuid4(), "ab" * 32)


async def test_verify_strips_hash_before_lookup(config, wallet_address):
    session = MagicMock()
    session.get = AsyncMock(return_value=make_payment(wallet_address))
    explorer = MagicMock()
    explorer.fetch_transaction = AsyncMock(return_value=make_tx(usdt(wallet_address, "100")))

    result = await TransferVerifier(session, explorer, config).verify(uuid.uuid4(), "  abc  ")
    assert result.verified is True
    explorer.fetch_transaction.assert_awaited_once_with("abc")
