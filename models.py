import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from periods import local_now

MONEY = Numeric(12, 2, asdecimal=True)


def _values_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [member.value for member in cls],
        validate_strings=True,
    )


class WalletType(str, Enum):
    mobile_money = "Mobile Money"
    bank = "Bank"
    cash = "Cash"
    credit = "Credit"
    savings = "Savings"


class TransactionStatus(str, Enum):
    completed = "Completed"
    pending = "Pending"
    failed = "Failed"


class GoalPriority(str, Enum):
    high = "High"
    medium = "Medium"
    low = "Low"


class GoalStatus(str, Enum):
    active = "Active"
    paused = "Paused"
    completed = "Completed"


class BudgetType(str, Enum):
    fixed = "Fixed"
    variable = "Variable"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class SoftDeleteMixin:
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_onboarded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    monthly_income: Mapped[Decimal] = mapped_column(
        MONEY, default=Decimal("0.00"), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(10), default="KES", nullable=False)
    financial_goals: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    wallets: Mapped[list["Wallet"]] = relationship("Wallet", back_populates="user")


class Wallet(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "wallets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[WalletType] = mapped_column(
        _values_enum(WalletType, "wallettype"), nullable=False
    )
    balance: Mapped[Decimal] = mapped_column(
        MONEY, default=Decimal("0.00"), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(10), default="KES", nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    account_number: Mapped[Optional[str]] = mapped_column(String(100))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_synced: Mapped[Optional[datetime]] = mapped_column(DateTime)

    user: Mapped["User"] = relationship("User", back_populates="wallets")

    __table_args__ = (
        Index(
            "uq_wallet_user_default",
            "user_id",
            unique=True,
            sqlite_where=text("is_default = 1 AND deleted_at IS NULL"),
            postgresql_where=text("is_default AND deleted_at IS NULL"),
        ),
    )


class Transaction(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    wallet_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("wallets.id"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        _values_enum(TransactionStatus, "transactionstatus"),
        default=TransactionStatus.completed,
        nullable=False,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    receipt_url: Mapped[Optional[str]] = mapped_column(String(500))
    transaction_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    wallet: Mapped[Optional["Wallet"]] = relationship("Wallet")

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
        Index("ix_transactions_user_category", "user_id", "category"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )


class SavingGoal(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "saving_goals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(
        MONEY, default=Decimal("0.00"), nullable=False
    )
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    deadline: Mapped[Optional[date]] = mapped_column(Date)
    priority: Mapped[GoalPriority] = mapped_column(
        _values_enum(GoalPriority, "goalpriority"),
        default=GoalPriority.medium,
        nullable=False,
    )
    category: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[GoalStatus] = mapped_column(
        _values_enum(GoalStatus, "goalstatus"),
        default=GoalStatus.active,
        nullable=False,
        index=True,
    )

    __table_args__ = (
        CheckConstraint("target_amount > 0", name="ck_goal_target_positive"),
        CheckConstraint(
            "current_amount >= 0 AND current_amount <= target_amount",
            name="ck_goal_current_within_target",
        ),
    )

    @property
    def progress_percentage(self) -> float:
        if not self.target_amount:
            return 0.0
        return float(self.current_amount / self.target_amount * 100)

    @property
    def remaining_amount(self) -> Decimal:
        return self.target_amount - self.current_amount

    @property
    def days_remaining(self) -> Optional[int]:
        """Days until the deadline in local time; negative once it has passed."""
        if self.deadline is None:
            return None
        return (self.deadline - local_now().date()).days


class Budget(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "budgets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    limit_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    is_rollover: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    type: Mapped[BudgetType] = mapped_column(
        _values_enum(BudgetType, "budgettype"),
        default=BudgetType.variable,
        nullable=False,
    )
    alert_threshold: Mapped[int] = mapped_column(Integer, default=80, nullable=False)

    __table_args__ = (
        CheckConstraint("limit_amount > 0", name="ck_budget_limit_positive"),
        CheckConstraint(
            "alert_threshold >= 0 AND alert_threshold <= 100",
            name="ck_budget_alert_threshold_range",
        ),
        Index(
            "uq_budget_user_category",
            "user_id",
            "category",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
