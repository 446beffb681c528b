import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_funded.core.database import Base
from nova_funded.models.base import TimestampMixin

PERCENT_FIELDS = ("profit_target", "max_drawdown", "daily_drawdown", "profit_split")


class TradingPlan(Base, TimestampMixin):
    """Каталог тарифов (размер счёта, цена, цели и лимиты просадки)."""
    __tablename__ = "trading_plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)

    account_size: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    # Проценты
    profit_target: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("8.00")
    )
    max_drawdown: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("10.00")
    )
    daily_drawdown: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("5.00")
    )
    profit_split: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("80.00")
    )

    # Сроки
    evaluation_period: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    min_trading_days: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="plan")
    user_challenges: Mapped[list["UserChallenge"]] = relationship(
        "UserChallenge", back_populates="plan"
    )

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_trading_plans_price_positive"),
        CheckConstraint("account_size > 0", name="ck_trading_plans_account_size_positive"),
        *(
            CheckConstraint(
                f"{field} >= 0 AND {field} <= 100",
                name=f"ck_trading_plans_{field}_pct",
            )
            for field in PERCENT_FIELDS
        ),
        Index("ix_trading_plans_active", "is_active"),
        Index("ix_trading_plans_account_size", "account_size"),
    )

    def __repr__(self) -> str:
        return f"<TradingPlan id={self.id} name={self.name} size=${self.account_size}>"
