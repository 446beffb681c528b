import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_funded.core.database import Base
from nova_funded.models.base import TimestampMixin, utcnow


class ChallengeStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    passed = "passed"
    failed = "failed"
    funded = "funded"


TERMINAL_STATUSES = (ChallengeStatus.passed, ChallengeStatus.failed, ChallengeStatus.funded)


class UserChallenge(Base, TimestampMixin):
    """Испытание, выданное пользователю после подтверждённой оплаты."""
    __tablename__ = "user_challenges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trading_plans.id"), nullable=False, index=True
    )
    # Не более одного испытания на платёж
    payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("payments.id"), nullable=True, unique=True
    )

    status: Mapped[ChallengeStatus] = mapped_column(
        String(16), nullable=False, default=ChallengeStatus.pending
    )
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Финансовые показатели
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    highest_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    lowest_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    total_profit: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    trading_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="challenges")
    plan: Mapped["TradingPlan"] = relationship("TradingPlan", back_populates="user_challenges")
    payment: Mapped[Optional["Payment"]] = relationship("Payment", back_populates="challenge")
    history: Mapped[list["TradingHistory"]] = relationship(
        "TradingHistory", back_populates="challenge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_user_challenges_status", "status"),
        Index("ix_user_challenges_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<UserChallenge id={self.id} user_id={self.user_id} status={self.status}>"


class TradingHistory(Base):
    """Журнал результатов торговли по испытанию. Только добавление."""
    __tablename__ = "trading_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_challenges.id", ondelete="CASCADE"),
        nullable=False, index=True
    )
    trade_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    profit_loss: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    challenge: Mapped["UserChallenge"] = relationship("UserChallenge", back_populates="history")

    __table_args__ = (
        Index("ix_trading_history_trade_date", "trade_date"),
    )

    def __repr__(self) -> str:
        return f"<TradingHistory id={self.id} challenge_id={self.challenge_id} pnl={self.profit_loss}>"
