from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config import get_settings
from models import (
    Budget,
    BudgetType,
    GoalPriority,
    GoalStatus,
    SavingGoal,
    Transaction,
    TransactionStatus,
    User,
    Wallet,
    WalletType,
)
from periods import local_now, month_end, month_start, to_local_naive
from repositories import (
    BudgetRepository,
    GoalRepository,
    TransactionFilters,
    TransactionRepository,
    UserRepository,
    WalletRepository,
)
from schemas import (
    BudgetIn,
    BudgetUpdate,
    GoalIn,
    GoalUpdate,
    TransactionIn,
    TransactionUpdate,
    WalletIn,
    WalletUpdate,
)
from security import hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_WALLET_NAME = "Main Wallet"
DEFAULT_WALLET_COLOR = "#6366F1"
DEFAULT_ALERT_THRESHOLD = 80


class ServiceError(ValueError):
    pass


class ValidationFailed(ServiceError):
    pass


class NotFound(ServiceError):
    pass


class Forbidden(ServiceError):
    pass


class BusinessRuleViolation(ServiceError):
    pass


class AuthenticationFailed(ServiceError):
    pass


@dataclass(frozen=True)
class Page:
    items: list
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


@dataclass(frozen=True)
class TransactionStats:
    total_income: Decimal
    total_expense: Decimal
    net_balance: Decimal
    transaction_count: int


@dataclass(frozen=True)
class GoalProgressSummary:
    total_goals: int
    completed_goals: int
    active_goals: int
    total_target: Decimal
    total_saved: Decimal
    overall_progress: float


@dataclass(frozen=True)
class BudgetStatus:
    budget_id: uuid.UUID
    category: str
    limit_amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    percentage_used: float
    is_over_budget: bool
    is_near_limit: bool
    alert_threshold: int


@dataclass(frozen=True)
class BudgetSummary:
    total_budgets: int
    total_limit: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    over_budget_count: int
    near_limit_count: int


def percentage(part: Decimal, whole: Decimal) -> float:
    if not whole:
        return 0.0
    return float(part / whole * 100)


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session)

    def register(self, name: str, email: str, password: str) -> tuple[User, str]:
        email = email.strip().lower()
        if self.users.find_by_email(email):
            raise BusinessRuleViolation("email already exists")
        user = User(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            is_onboarded=False,
            currency=get_settings().default_currency,
        )
        self.users.create(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user={user.id}")
        return user, issue_token(user.id, user.email)

    def login(self, email: str, password: str) -> tuple[User, str]:
        user = self.users.find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationFailed("invalid email or password")
        return user, issue_token(user.id, user.email)

    def get_user(self, user_id: uuid.UUID) -> User:
        user = self.users.find_by_id(user_id)
        if not user:
            raise NotFound("user not found")
        return user

    def update_profile(self, user_id: uuid.UUID, name: str, email: str) -> User:
        user = self.get_user(user_id)
        email = email.strip().lower()
        if email != user.email:
            existing = self.users.find_by_email(email)
            if existing and existing.id != user.id:
                raise BusinessRuleViolation("email already exists")
        user.name = name.strip()
        user.email = email
        self.users.update(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def complete_onboarding(
        self,
        user_id: uuid.UUID,
        monthly_income: Decimal,
        currency: str,
        financial_goals: Optional[list[str]] = None,
    ) -> User:
        user = self.get_user(user_id)
        currency = currency.strip().upper()
        if len(currency) != 3:
            raise ValidationFailed("currency must be a 3-letter code")
        if monthly_income < 0:
            raise ValidationFailed("monthly income cannot be negative")

        user.is_onboarded = True
        user.monthly_income = monthly_income
        user.currency = currency
        if financial_goals is not None:
            user.financial_goals = list(
                dict.fromkeys(g.strip() for g in financial_goals if g.strip())
            )
        self.users.update(user)

        wallets = WalletRepository(self.session)
        if wallets.count_by_user(user.id) == 0:
            wallets.create(
                Wallet(
                    user_id=user.id,
                    name=DEFAULT_WALLET_NAME,
                    type=WalletType.cash,
                    balance=ZERO,
                    currency=currency,
                    color=DEFAULT_WALLET_COLOR,
                    is_default=True,
                )
            )
            logger.info(f"default_wallet_created: user={user.id} currency={currency}")

        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_onboarded: user={user.id}")
        return user


class WalletService:
    def __init__(self, session: Session, user_id: uuid.UUID) -> None:
        self.session = session
        self.user_id = user_id
        self.wallets = WalletRepository(session)

    def _owned(self, wallet_id: uuid.UUID, label: str = "wallet") -> Wallet:
        wallet = self.wallets.find_by_id(wallet_id)
        if not wallet:
            raise NotFound(f"{label} not found")
        if wallet.user_id != self.user_id:
            raise Forbidden(f"unauthorized access to {label}")
        return wallet

    def create(self, data: WalletIn) -> Wallet:
        is_default = data.is_default or self.wallets.count_by_user(self.user_id) == 0
        if is_default:
            self.wallets.clear_default(self.user_id)
        wallet = Wallet(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            balance=data.balance,
            currency=(data.currency or get_settings().default_currency).upper(),
            color=data.color,
            account_number=data.account_number,
            is_default=is_default,
        )
        self.wallets.create(wallet)
        self.session.commit()
        self.session.refresh(wallet)
        if is_default:
            logger.info(f"wallet_default_changed: user={self.user_id} wallet={wallet.id}")
        return wallet

    def list(self) -> list[Wallet]:
        return self.wallets.find_by_user(self.user_id)

    def get(self, wallet_id: uuid.UUID) -> Wallet:
        return self._owned(wallet_id)

    def get_default(self) -> Wallet:
        wallet = self.wallets.find_default(self.user_id)
        if not wallet:
            raise NotFound("no default wallet found")
        return wallet

    def update(self, wallet_id: uuid.UUID, data: WalletUpdate) -> Wallet:
        wallet = self._owned(wallet_id)
        changes = data.changes()
        make_default = changes.pop("is_default", None)
        if "currency" in changes:
            changes["currency"] = changes["currency"].upper()
        for field, value in changes.items():
            setattr(wallet, field, value)
        if make_default and not wallet.is_default:
            self.wallets.clear_default(self.user_id)
            self.wallets.mark_default(wallet.id)
        self.wallets.update(wallet)
        self.session.commit()
        self.session.refresh(wallet)
        return wallet

    def delete(self, wallet_id: uuid.UUID) -> None:
        wallet = self._owned(wallet_id)
        if wallet.balance > 0:
            raise BusinessRuleViolation("cannot delete wallet with remaining balance")
        was_default = wallet.is_default
        self.wallets.soft_delete(wallet)
        if was_default:
            remaining = self.wallets.find_by_user(self.user_id)
            if remaining:
                self.wallets.mark_default(remaining[0].id)
                logger.info(
                    f"wallet_default_changed: user={self.user_id} wallet={remaining[0].id}"
                )
        self.session.commit()

    def set_default(self, wallet_id: uuid.UUID) -> Wallet:
        wallet = self._owned(wallet_id)
        self.wallets.clear_default(self.user_id)
        self.wallets.mark_default(wallet.id)
        self.session.commit()
        self.session.refresh(wallet)
        logger.info(f"wallet_default_changed: user={self.user_id} wallet={wallet.id}")
        return wallet

    def transfer(
        self, from_wallet_id: uuid.UUID, to_wallet_id: uuid.UUID, amount: Decimal
    ) -> tuple[Wallet, Wallet]:
        """Move ``amount`` between two of the caller's wallets.

        Both balance changes run inside one database transaction. The source
        is only debited when its balance covers the amount, so a failed
        transfer leaves both wallets untouched.
        """
        if amount <= 0:
            raise ValidationFailed("transfer amount must be greater than zero")
        if from_wallet_id == to_wallet_id:
            raise ValidationFailed("cannot transfer to the same wallet")
        source = self._owned(from_wallet_id, "source wallet")
        destination = self._owned(to_wallet_id, "destination wallet")

        try:
            if not self.wallets.withdraw(source.id, amount):
                raise BusinessRuleViolation("insufficient balance in source wallet")
            if not self.wallets.update_balance(destination.id, amount):
                raise ServiceError("failed to add to destination wallet")
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(source)
        self.session.refresh(destination)
        logger.info(
            f"wallet_transfer: user={self.user_id} from={source.id} "
            f"to={destination.id} amount={amount}"
        )
        return source, destination


class TransactionService:
    def __init__(self, session: Session, user_id: uuid.UUID) -> None:
        self.session = session
        self.user_id = user_id
        self.transactions = TransactionRepository(session)
        self.wallets = WalletRepository(session)

    def _check_wallet(self, wallet_id: uuid.UUID) -> None:
        wallet = self.wallets.find_by_id(wallet_id)
        if not wallet:
            raise NotFound("wallet not found")
        if wallet.user_id != self.user_id:
            raise Forbidden("unauthorized access to wallet")

    def create(self, data: TransactionIn) -> Transaction:
        if data.wallet_id:
            self._check_wallet(data.wallet_id)
        when = data.transaction_date
        txn = Transaction(
            user_id=self.user_id,
            wallet_id=data.wallet_id,
            amount=data.amount,
            name=data.description.strip(),
            method=data.method,
            category=data.category.strip(),
            status=data.status or TransactionStatus.completed,
            notes=data.notes,
            receipt_url=data.receipt_url,
            transaction_date=to_local_naive(when) if when else local_now(),
        )
        self.transactions.create(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: uuid.UUID) -> Transaction:
        txn = self.transactions.find_by_id(transaction_id)
        if not txn:
            raise NotFound("transaction not found")
        if txn.user_id != self.user_id:
            raise Forbidden("unauthorized access to transaction")
        return txn

    def update(self, transaction_id: uuid.UUID, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        changes = data.changes()
        if changes.get("wallet_id"):
            self._check_wallet(changes["wallet_id"])
        if "description" in changes:
            changes["name"] = changes.pop("description").strip()
        if "transaction_date" in changes:
            changes["transaction_date"] = to_local_naive(changes["transaction_date"])
        for field, value in changes.items():
            setattr(txn, field, value)
        self.transactions.update(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: uuid.UUID) -> None:
        txn = self.get(transaction_id)
        self.transactions.soft_delete(txn)
        self.session.commit()

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Transaction]:
        return self.transactions.find_by_user(self.user_id, limit, offset, filters)

    def list_with_count(
        self,
        limit: int,
        offset: int,
        filters: Optional[TransactionFilters] = None,
    ) -> Page:
        if limit < 1:
            raise ValidationFailed("limit must be at least 1")
        if offset < 0:
            raise ValidationFailed("offset cannot be negative")
        items = self.transactions.find_by_user(self.user_id, limit, offset, filters)
        total = self.transactions.count_by_user(self.user_id, filters)
        page = offset // limit + 1
        total_pages = math.ceil(total / limit)
        return Page(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

    def stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> TransactionStats:
        # Transactions carry no income/expense flag; every completed row is an expense.
        stmt = select(
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.amount), 0),
        ).where(
            Transaction.user_id == self.user_id,
            Transaction.deleted_at.is_(None),
            Transaction.status == TransactionStatus.completed,
        )
        if start:
            stmt = stmt.where(Transaction.transaction_date >= to_local_naive(start))
        if end:
            stmt = stmt.where(Transaction.transaction_date <= to_local_naive(end))
        count, total = self.session.execute(stmt).one()
        total_expense = Decimal(str(total or 0)).quantize(Decimal("0.01"))
        total_income = Decimal("0.00")
        return TransactionStats(
            total_income=total_income,
            total_expense=total_expense,
            net_balance=total_income - total_expense,
            transaction_count=int(count or 0),
        )


class GoalService:
    def __init__(self, session: Session, user_id: uuid.UUID) -> None:
        self.session = session
        self.user_id = user_id
        self.goals = GoalRepository(session)

    def _owned(self, goal_id: uuid.UUID) -> SavingGoal:
        goal = self.goals.find_by_id(goal_id)
        if not goal:
            raise NotFound("goal not found")
        if goal.user_id != self.user_id:
            raise Forbidden("unauthorized access to goal")
        return goal

    def create(self, data: GoalIn, *, today: Optional[date] = None) -> SavingGoal:
        today = today or local_now().date()
        if data.deadline and data.deadline < today:
            raise ValidationFailed("deadline must be in the future")
        if data.current_amount > data.target_amount:
            raise ValidationFailed("current amount cannot exceed target amount")

        status = data.status or GoalStatus.active
        if data.current_amount >= data.target_amount:
            status = GoalStatus.completed

        goal = SavingGoal(
            user_id=self.user_id,
            name=data.name.strip(),
            target_amount=data.target_amount,
            current_amount=data.current_amount,
            color=data.color,
            icon=data.icon,
            deadline=data.deadline,
            priority=data.priority or GoalPriority.medium,
            category=data.category,
            status=status,
        )
        self.goals.create(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def list(self) -> list[SavingGoal]:
        return self.goals.find_by_user(self.user_id)

    def get(self, goal_id: uuid.UUID) -> SavingGoal:
        return self._owned(goal_id)

    def update(
        self, goal_id: uuid.UUID, data: GoalUpdate, *, today: Optional[date] = None
    ) -> SavingGoal:
        today = today or local_now().date()
        goal = self._owned(goal_id)
        changes = data.changes()

        deadline = changes.get("deadline")
        if (
            deadline is not None
            and goal.status != GoalStatus.completed
            and deadline < today
        ):
            raise ValidationFailed("deadline must be in the future")

        target = changes.get("target_amount", goal.target_amount)
        current = changes.get("current_amount", goal.current_amount)
        if current > target:
            raise ValidationFailed("current amount cannot exceed target amount")

        for field, value in changes.items():
            setattr(goal, field, value)
        if goal.current_amount >= goal.target_amount:
            goal.status = GoalStatus.completed

        self.goals.update(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: uuid.UUID) -> None:
        goal = self._owned(goal_id)
        self.goals.soft_delete(goal)
        self.session.commit()

    def add_progress(self, goal_id: uuid.UUID, amount: Decimal) -> SavingGoal:
        """Add ``amount`` to the goal's savings.

        Progress is capped at the target. Any excess is dropped (and logged) and
        the goal completes in the same update.
        """
        if amount <= 0:
            raise ValidationFailed("amount must be greater than zero")
        goal = self._owned(goal_id)
        if goal.status == GoalStatus.completed:
            raise BusinessRuleViolation("cannot add progress to completed goal")
        overflow = goal.current_amount + amount - goal.target_amount

        if not self.goals.update_progress(goal.id, amount):
            self.session.rollback()
            raise BusinessRuleViolation("cannot add progress to completed goal")
        self.session.commit()
        self.session.refresh(goal)
        if overflow > 0:
            logger.info(
                f"goal_progress_capped: user={self.user_id} goal={goal.id} "
                f"requested={amount} dropped={overflow}"
            )
        if goal.status == GoalStatus.completed:
            logger.info(f"goal_completed: user={self.user_id} goal={goal.id}")
        return goal

    def progress_summary(self) -> GoalProgressSummary:
        goals = self.goals.find_by_user(self.user_id)
        completed = sum(1 for g in goals if g.status == GoalStatus.completed)
        total_target = sum((g.target_amount for g in goals), ZERO)
        total_saved = sum((g.current_amount for g in goals), ZERO)
        return GoalProgressSummary(
            total_goals=len(goals),
            completed_goals=completed,
            active_goals=len(goals) - completed,
            total_target=total_target,
            total_saved=total_saved,
            overall_progress=percentage(total_saved, total_target),
        )


class BudgetService:
    def __init__(self, session: Session, user_id: uuid.UUID) -> None:
        self.session = session
        self.user_id = user_id
        self.budgets = BudgetRepository(session)

    def _owned(self, budget_id: uuid.UUID) -> Budget:
        budget = self.budgets.find_by_id(budget_id)
        if not budget:
            raise NotFound("budget not found")
        if budget.user_id != self.user_id:
            raise Forbidden("unauthorized access to budget")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        category = data.category.strip()
        if self.budgets.find_by_user_and_category(self.user_id, category):
            raise BusinessRuleViolation("budget already exists for this category")
        budget = Budget(
            user_id=self.user_id,
            category=category,
            limit_amount=data.limit_amount,
            color=data.color,
            icon=data.icon,
            is_rollover=data.is_rollover,
            type=data.type or BudgetType.variable,
            alert_threshold=(
                DEFAULT_ALERT_THRESHOLD
                if data.alert_threshold is None
                else data.alert_threshold
            ),
        )
        self.budgets.create(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def list(self) -> list[Budget]:
        return self.budgets.find_by_user(self.user_id)

    def get(self, budget_id: uuid.UUID) -> Budget:
        return self._owned(budget_id)

    def update(self, budget_id: uuid.UUID, data: BudgetUpdate) -> Budget:
        budget = self._owned(budget_id)
        changes = data.changes()
        if "category" in changes:
            changes["category"] = changes["category"].strip()
            if changes["category"] != budget.category:
                clash = self.budgets.find_by_user_and_category(
                    self.user_id, changes["category"]
                )
                if clash and clash.id != budget.id:
                    raise BusinessRuleViolation(
                        "budget already exists for this category"
                    )
        for field, value in changes.items():
            setattr(budget, field, value)
        self.budgets.update(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: uuid.UUID) -> None:
        budget = self._owned(budget_id)
        self.budgets.soft_delete(budget)
        self.session.commit()

    def spent_by_category(self, start: datetime, end: datetime) -> dict[str, Decimal]:
        """Completed spend per category in ``[start, end)``."""
        stmt = (
            select(Transaction.category, func.sum(Transaction.amount))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.status == TransactionStatus.completed,
                Transaction.transaction_date >= start,
                Transaction.transaction_date < end,
            )
            .group_by(Transaction.category)
        )
        return {
            category: Decimal(str(total or 0)).quantize(Decimal("0.01"))
            for category, total in self.session.execute(stmt).all()
        }

    def check_status(self, *, now: Optional[datetime] = None) -> list[BudgetStatus]:
        now = now or local_now()
        spent = self.spent_by_category(month_start(now), month_end(now))
        statuses: list[BudgetStatus] = []
        for budget in self.budgets.find_by_user(self.user_id):
            spent_amount = spent.get(budget.category, Decimal("0.00"))
            used = percentage(spent_amount, budget.limit_amount)
            over = spent_amount > budget.limit_amount
            statuses.append(
                BudgetStatus(
                    budget_id=budget.id,
                    category=budget.category,
                    limit_amount=budget.limit_amount,
                    spent_amount=spent_amount,
                    remaining_amount=budget.limit_amount - spent_amount,
                    percentage_used=used,
                    is_over_budget=over,
                    is_near_limit=used >= budget.alert_threshold and not over,
                    alert_threshold=budget.alert_threshold,
                )
            )
        return statuses

    def summary(self, *, now: Optional[datetime] = None) -> BudgetSummary:
        statuses = self.check_status(now=now)
        return BudgetSummary(
            total_budgets=len(statuses),
            total_limit=sum((s.limit_amount for s in statuses), ZERO),
            total_spent=sum((s.spent_amount for s in statuses), ZERO),
            total_remaining=sum((s.remaining_amount for s in statuses), ZERO),
            over_budget_count=sum(1 for s in statuses if s.is_over_budget),
            near_limit_count=sum(1 for s in statuses if s.is_near_limit),
        )
