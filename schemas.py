import datetime as dt
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    model_validator,
)

from models import (
    BudgetType,
    GoalPriority,
    GoalStatus,
    TransactionStatus,
    WalletType,
)


class PartialUpdate(BaseModel):
    """Base for PATCH-like bodies.

    Fields the client sends are applied even when zero or empty; fields it
    omits are left alone. Sending ``null`` is only accepted for columns that
    can be cleared.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required_columns(self):
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


# Auth


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class OnboardingIn(BaseModel):
    monthly_income: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    currency: str = Field(..., min_length=3, max_length=3)
    financial_goals: Optional[list[str]] = Field(None, max_length=20)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    is_onboarded: bool
    monthly_income: float
    currency: str
    financial_goals: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class AuthOut(BaseModel):
    user: UserOut
    token: str


# Wallets


class WalletIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: WalletType
    balance: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=1, max_length=10)
    color: str = Field(..., min_length=1, max_length=20)
    account_number: Optional[str] = Field(default=None, max_length=100)
    is_default: bool = False


class WalletUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"account_number"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[WalletType] = None
    balance: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2
    )
    currency: Optional[str] = Field(default=None, min_length=1, max_length=10)
    color: Optional[str] = Field(default=None, min_length=1, max_length=20)
    account_number: Optional[str] = Field(default=None, max_length=100)
    is_default: Optional[bool] = None


class TransferIn(BaseModel):
    from_wallet_id: uuid.UUID
    to_wallet_id: uuid.UUID
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class WalletOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    type: WalletType
    balance: float
    currency: str
    color: str
    account_number: Optional[str] = None
    is_default: bool
    last_synced: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# Transactions


class TransactionIn(BaseModel):
    wallet_id: Optional[uuid.UUID] = None
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    method: str = Field(default="", max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    status: Optional[TransactionStatus] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = Field(default=None, max_length=500)
    transaction_date: Optional[datetime] = None


class TransactionUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset(
        {"wallet_id", "notes", "receipt_url"}
    )

    wallet_id: Optional[uuid.UUID] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    method: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    status: Optional[TransactionStatus] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = Field(default=None, max_length=500)
    transaction_date: Optional[datetime] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    wallet_id: Optional[uuid.UUID] = None
    amount: float
    description: str = Field(validation_alias=AliasChoices("description", "name"))
    method: str
    category: str
    status: TransactionStatus
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    transaction_date: datetime
    created_at: datetime
    updated_at: datetime


# Goals


class GoalIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    target_amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=12,
        decimal_places=2,
        validation_alias=AliasChoices("target", "target_amount"),
    )
    current_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        max_digits=12,
        decimal_places=2,
        validation_alias=AliasChoices("current", "current_amount"),
    )
    color: str = Field(..., min_length=1, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)
    deadline: Optional[dt.date] = None
    priority: Optional[GoalPriority] = None
    category: Optional[str] = Field(default=None, max_length=100)
    status: Optional[GoalStatus] = None


class GoalUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset(
        {"icon", "deadline", "category"}
    )

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    target_amount: Optional[Decimal] = Field(
        default=None,
        gt=0,
        max_digits=12,
        decimal_places=2,
        validation_alias=AliasChoices("target", "target_amount"),
    )
    current_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        max_digits=12,
        decimal_places=2,
        validation_alias=AliasChoices("current", "current_amount"),
    )
    color: Optional[str] = Field(default=None, min_length=1, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)
    deadline: Optional[dt.date] = None
    priority: Optional[GoalPriority] = None
    category: Optional[str] = Field(default=None, max_length=100)
    status: Optional[GoalStatus] = None


class ProgressIn(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class GoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    target_amount: float
    current_amount: float
    color: str
    icon: Optional[str] = None
    deadline: Optional[date] = None
    priority: GoalPriority
    category: Optional[str] = None
    status: GoalStatus
    progress_percentage: float
    remaining_amount: float
    days_remaining: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# Budgets


class BudgetIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str = Field(..., min_length=1, max_length=100)
    limit_amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=12,
        decimal_places=2,
        validation_alias=AliasChoices("limit", "limit_amount"),
    )
    color: str = Field(..., min_length=1, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_rollover: bool = False
    type: Optional[BudgetType] = None
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)


class BudgetUpdate(PartialUpdate):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"icon"})

    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    limit_amount: Optional[Decimal] = Field(
        default=None,
        gt=0,
        max_digits=12,
        decimal_places=2,
        validation_alias=AliasChoices("limit", "limit_amount"),
    )
    color: Optional[str] = Field(default=None, min_length=1, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)
    is_rollover: Optional[bool] = None
    type: Optional[BudgetType] = None
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    category: str
    limit_amount: float
    color: str
    icon: Optional[str] = None
    is_rollover: bool
    type: BudgetType
    alert_threshold: int
    created_at: datetime
    updated_at: datetime
