import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Select, case, func, literal, or_, select, update
from sqlalchemy.orm import Session

from models import (
    Budget,
    GoalStatus,
    SavingGoal,
    Transaction,
    TransactionStatus,
    User,
    Wallet,
)


@dataclass
class TransactionFilters:
    category: Optional[str] = None
    status: Optional[TransactionStatus] = None
    wallet_id: Optional[uuid.UUID] = None
    query: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class UserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        return self.session.scalar(stmt)

    def update(self, user: User) -> User:
        self.session.flush()
        return user


class WalletRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, wallet: Wallet) -> Wallet:
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def find_by_id(self, wallet_id: uuid.UUID) -> Optional[Wallet]:
        stmt = select(Wallet).where(Wallet.id == wallet_id, Wallet.deleted_at.is_(None))
        return self.session.scalar(stmt)

    def find_by_user(self, user_id: uuid.UUID) -> list[Wallet]:
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == user_id, Wallet.deleted_at.is_(None))
            .order_by(Wallet.is_default.desc(), Wallet.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def count_by_user(self, user_id: uuid.UUID) -> int:
        stmt = select(func.count(Wallet.id)).where(
            Wallet.user_id == user_id, Wallet.deleted_at.is_(None)
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def find_default(self, user_id: uuid.UUID) -> Optional[Wallet]:
        stmt = select(Wallet).where(
            Wallet.user_id == user_id,
            Wallet.is_default.is_(True),
            Wallet.deleted_at.is_(None),
        )
        return self.session.scalar(stmt)

    def clear_default(self, user_id: uuid.UUID) -> None:
        self.session.execute(
            update(Wallet)
            .where(
                Wallet.user_id == user_id,
                Wallet.is_default.is_(True),
                Wallet.deleted_at.is_(None),
            )
            .values(is_default=False, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )

    def mark_default(self, wallet_id: uuid.UUID) -> None:
        self.session.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id, Wallet.deleted_at.is_(None))
            .values(is_default=True, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )

    def update(self, wallet: Wallet) -> Wallet:
        self.session.flush()
        return wallet

    def update_balance(self, wallet_id: uuid.UUID, delta: Decimal) -> bool:
        result = self.session.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id, Wallet.deleted_at.is_(None))
            .values(balance=Wallet.balance + delta, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def withdraw(self, wallet_id: uuid.UUID, amount: Decimal) -> bool:
        """Decrement the balance only if it covers ``amount``."""
        result = self.session.execute(
            update(Wallet)
            .where(
                Wallet.id == wallet_id,
                Wallet.deleted_at.is_(None),
                Wallet.balance >= amount,
            )
            .values(balance=Wallet.balance - amount, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def soft_delete(self, wallet: Wallet) -> None:
        wallet.is_default = False
        wallet.deleted_at = datetime.utcnow()
        self.session.flush()


class TransactionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, txn: Transaction) -> Transaction:
        self.session.add(txn)
        self.session.flush()
        return txn

    def find_by_id(self, transaction_id: uuid.UUID) -> Optional[Transaction]:
        stmt = select(Transaction).where(
            Transaction.id == transaction_id, Transaction.deleted_at.is_(None)
        )
        return self.session.scalar(stmt)

    def _filtered(
        self, stmt: Select, user_id: uuid.UUID, filters: Optional[TransactionFilters]
    ) -> Select:
        stmt = stmt.where(
            Transaction.user_id == user_id, Transaction.deleted_at.is_(None)
        )
        if filters is None:
            return stmt
        if filters.category:
            stmt = stmt.where(Transaction.category == filters.category)
        if filters.status:
            stmt = stmt.where(Transaction.status == filters.status)
        if filters.wallet_id:
            stmt = stmt.where(Transaction.wallet_id == filters.wallet_id)
        if filters.query:
            like = f"%{filters.query.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Transaction.name).like(like),
                    func.lower(func.coalesce(Transaction.notes, "")).like(like),
                )
            )
        if filters.start:
            stmt = stmt.where(Transaction.transaction_date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.transaction_date <= filters.end)
        return stmt

    def find_by_user(
        self,
        user_id: uuid.UUID,
        limit: int,
        offset: int = 0,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        stmt = self._filtered(select(Transaction), user_id, filters)
        stmt = (
            stmt.order_by(
                Transaction.transaction_date.desc(), Transaction.created_at.desc()
            )
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def count_by_user(
        self, user_id: uuid.UUID, filters: Optional[TransactionFilters] = None
    ) -> int:
        stmt = self._filtered(select(func.count(Transaction.id)), user_id, filters)
        return int(self.session.execute(stmt).scalar_one() or 0)

    def update(self, txn: Transaction) -> Transaction:
        self.session.flush()
        return txn

    def soft_delete(self, txn: Transaction) -> None:
        txn.deleted_at = datetime.utcnow()
        self.session.flush()


class GoalRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, goal: SavingGoal) -> SavingGoal:
        self.session.add(goal)
        self.session.flush()
        return goal

    def find_by_id(self, goal_id: uuid.UUID) -> Optional[SavingGoal]:
        stmt = select(SavingGoal).where(
            SavingGoal.id == goal_id, SavingGoal.deleted_at.is_(None)
        )
        return self.session.scalar(stmt)

    def find_by_user(self, user_id: uuid.UUID) -> list[SavingGoal]:
        stmt = (
            select(SavingGoal)
            .where(SavingGoal.user_id == user_id, SavingGoal.deleted_at.is_(None))
            .order_by(SavingGoal.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def update(self, goal: SavingGoal) -> SavingGoal:
        self.session.flush()
        return goal

    def update_progress(self, goal_id: uuid.UUID, amount: Decimal) -> bool:
        """Add ``amount`` in one statement, clamping at the target.

        The goal flips to Completed in the same statement once the target is
        reached. Completed goals are not touched.
        """
        status_type = SavingGoal.__table__.c.status.type
        new_amount = SavingGoal.current_amount + amount
        result = self.session.execute(
            update(SavingGoal)
            .where(
                SavingGoal.id == goal_id,
                SavingGoal.deleted_at.is_(None),
                SavingGoal.status != GoalStatus.completed,
            )
            .values(
                current_amount=case(
                    (new_amount > SavingGoal.target_amount, SavingGoal.target_amount),
                    else_=new_amount,
                ),
                status=case(
                    (
                        new_amount >= SavingGoal.target_amount,
                        literal(GoalStatus.completed, status_type),
                    ),
                    else_=SavingGoal.status,
                ),
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def soft_delete(self, goal: SavingGoal) -> None:
        goal.deleted_at = datetime.utcnow()
        self.session.flush()


class BudgetRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, budget: Budget) -> Budget:
        self.session.add(budget)
        self.session.flush()
        return budget

    def find_by_id(self, budget_id: uuid.UUID) -> Optional[Budget]:
        stmt = select(Budget).where(Budget.id == budget_id, Budget.deleted_at.is_(None))
        return self.session.scalar(stmt)

    def find_by_user(self, user_id: uuid.UUID) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == user_id, Budget.deleted_at.is_(None))
            .order_by(Budget.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def find_by_user_and_category(
        self, user_id: uuid.UUID, category: str
    ) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == user_id,
            Budget.category == category,
            Budget.deleted_at.is_(None),
        )
        return self.session.scalar(stmt)

    def update(self, budget: Budget) -> Budget:
        self.session.flush()
        return budget

    def soft_delete(self, budget: Budget) -> None:
        budget.deleted_at = datetime.utcnow()
        self.session.flush()
