"""
Доменные ошибки платёжного процесса.

NotFound и Conflict — ошибки клиента, повтор не поможет.
VerificationError — временный сбой explorer API, запрос можно повторить без изменений.
InconsistentStateError — платёж подтверждён, а испытание не создано: нужна ручная сверка.
"""
from typing import Any, Optional


class PaymentError(Exception):
    status_code: int = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(PaymentError):
    status_code = 404


class InvalidOperationError(PaymentError):
    status_code = 400


class ConflictError(PaymentError):
    status_code = 409


class VerificationError(PaymentError):
    """Сеть / таймаут / некорректный ответ explorer API."""
    status_code = 502


class TransactionNotFoundError(VerificationError):
    """Explorer ещё не знает о транзакции (может быть не подтверждена)."""


class InconsistentStateError(PaymentError):
    status_code = 500

    def __init__(self, message: str, payment_id: Any = None):
        self.payment_id = payment_id
        super().__init__(message, detail={"payment_id": str(payment_id)} if payment_id else None)
