import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_funded.core.database import Base
from nova_funded.models.base import TimestampMixin


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    failed = "failed"


class Payment(Base, TimestampMixin):
    """
    Платёжный intent и его жизненный цикл.
    pending -> confirmed (верификация транзакции) или ручной override админом.
    """
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trading_plans.id"), nullable=False, index=True
    )

    # Сумма в единицах токена (USDT)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="USDT")
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[PaymentStatus] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.pending
    )
    transaction_hash: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True, unique=True
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="payments")
    plan: Mapped["TradingPlan"] = relationship("TradingPlan", back_populates="payments")
    challenge: Mapped[Optional["UserChallenge"]] = relationship(
        "UserChallenge", back_populates="payment", uselist=False
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'confirmed') = (confirmed_at IS NOT NULL)",
            name="ck_payments_confirmed_at",
        ),
        CheckConstraint(
            "status != 'confirmed' OR transaction_hash IS NOT NULL",
            name="ck_payments_confirmed_tx_hash",
        ),
        Index("ix_payments_status", "status"),
        Index("ix_payments_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Payment id={self.id} amount={self.amount} status={self.status}>"
