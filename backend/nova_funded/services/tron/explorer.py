"""
Клиенты block explorer API сети TRON.

Два бэкенда с одним интерфейсом fetch_transaction(hash) -> NormalizedTransaction:
  - TronGridExplorer — при наличии TRON_API_KEY
  - TronScanExplorer — публичный API без ключа
Выбор статический (get_explorer), цепочки fallback нет.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from loguru import logger

from nova_funded.core.config import Settings, settings as default_settings
from nova_funded.core.exceptions import TransactionNotFoundError, VerificationError
from nova_funded.services.tron.address import normalize_address, word_to_address

# transfer(address,uint256)
TRC20_TRANSFER_SELECTOR = "a9059cbb"
TRIGGER_SMART_CONTRACT = "TriggerSmartContract"
CONTRACT_RET_SUCCESS = "SUCCESS"


@dataclass(frozen=True)
class TokenTransfer:
    contract_address: str
    to_address: str
    raw_amount: int  # в минимальных единицах токена


@dataclass(frozen=True)
class NormalizedTransaction:
    tx_hash: str
    success: bool
    transfers: list[TokenTransfer] = field(default_factory=list)


class TronExplorer:
    """Базовый клиент: HTTP, таймаут, перевод ошибок в VerificationError."""

    name = "base"

    def __init__(
        self,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    async def _get(self, path: str, params: dict | None = None) -> Any:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as e:
            logger.warning(f"{self.name} GET {path} timed out: {e}")
            raise VerificationError("Blockchain explorer timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} GET {path} HTTP error: {e}")
            raise VerificationError("Blockchain explorer request failed") from e
        except ValueError as e:
            logger.warning(f"{self.name} GET {path} returned invalid JSON: {e}")
            raise VerificationError("Blockchain explorer returned invalid JSON") from e

    async def fetch_transaction(self, tx_hash: str) -> NormalizedTransaction:
        data = await self._fetch_raw(tx_hash)
        try:
            return self._normalize(tx_hash, data)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"{self.name}: cannot parse transaction {tx_hash}: {e!r}")
            raise VerificationError("Malformed transaction data from explorer") from e

    async def _fetch_raw(self, tx_hash: str) -> Any:
        raise NotImplementedError

    def _normalize(self, tx_hash: str, data: Any) -> NormalizedTransaction:
        raise NotImplementedError

    async def close(self) -> None:
        await self._client.aclose()


class TronGridExplorer(TronExplorer):
    """TronGrid v1 (требует TRON-PRO-API-KEY). Адреса в ответе — hex."""

    name = "trongrid"

    def __init__(self, api_key: str, base_url: str, timeout: float = 5.0, transport=None):
        super().__init__(
            base_url=base_url,
            headers={"TRON-PRO-API-KEY": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def _fetch_raw(self, tx_hash: str) -> Any:
        return await self._get(f"/v1/transactions/{tx_hash}")

    def _normalize(self, tx_hash: str, data: Any) -> NormalizedTransaction:
        # v1 отдаёт {"data": [tx], "success": true}, wallet API отдаёт сам объект
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            data = data["data"][0] if data["data"] else {}
        if not data or "raw_data" not in data:
            raise TransactionNotFoundError(
                "Transaction not found on TronGrid yet", detail={"tx_hash": tx_hash}
            )

        ret = data.get("ret") or [{}]
        success = ret[0].get("contractRet") == CONTRACT_RET_SUCCESS

        transfers = []
        for contract in data["raw_data"].get("contract", []):
            if contract.get("type") != TRIGGER_SMART_CONTRACT:
                continue
            value = contract["parameter"]["value"]
            transfer = self._decode_transfer_call(value)
            if transfer is not None:
                transfers.append(transfer)

        return NormalizedTransaction(tx_hash=tx_hash, success=success, transfers=transfers)

    @staticmethod
    def _decode_transfer_call(value: dict) -> Optional[TokenTransfer]:
        """
        Декодирует вызов transfer(address,uint256):
        selector (8) + адрес получателя (64) + сумма (64).
        """
        call_data = (value.get("data") or "").lower()
        contract_address = value.get("contract_address")
        if not contract_address or len(call_data) < 136:
            return None
        if not call_data.startswith(TRC20_TRANSFER_SELECTOR):
            return None
        return TokenTransfer(
            contract_address=normalize_address(contract_address),
            to_address=word_to_address(call_data[8:72]),
            raw_amount=int(call_data[72:136], 16),
        )


class TronScanExplorer(TronExplorer):
    """Публичный TronScan API. Адреса в ответе — base58."""

    name = "tronscan"

    def __init__(self, base_url: str, timeout: float = 5.0, transport=None):
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)

    async def _fetch_raw(self, tx_hash: str) -> Any:
        return await self._get("/api/transaction-info", params={"hash": tx_hash})

    def _normalize(self, tx_hash: str, data: Any) -> NormalizedTransaction:
        if not data or "contractRet" not in data:
            raise TransactionNotFoundError(
                "Transaction not found on TronScan yet", detail={"tx_hash": tx_hash}
            )

        success = data["contractRet"] == CONTRACT_RET_SUCCESS
        transfers = [
            TokenTransfer(
                contract_address=normalize_address(t["contract_address"]),
                to_address=normalize_address(t["to_address"]),
                raw_amount=int(t["amount_str"]),
            )
            for t in data.get("trc20TransferInfo") or []
        ]
        return NormalizedTransaction(tx_hash=tx_hash, success=success, transfers=transfers)


def get_explorer(
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TronExplorer:
    """Выбирает бэкенд по наличию API ключа."""
    config = config or default_settings
    if config.use_trongrid:
        return TronGridExplorer(
            api_key=config.tron_api_key,
            base_url=config.trongrid_base_url,
            timeout=config.explorer_timeout_seconds,
            transport=transport,
        )
    return TronScanExplorer(
        base_url=config.tronscan_base_url,
        timeout=config.explorer_timeout_seconds,
        transport=transport,
    )
