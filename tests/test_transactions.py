from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import TransactionStatus, User, WalletType
from repositories import TransactionFilters
from schemas import TransactionIn, TransactionUpdate, WalletIn
from services import Forbidden, NotFound, TransactionService, WalletService


def _user(session: Session, email: str = "amina@example.com") -> User:
    user = User(name="Amina", email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def _txn(
    description: str,
    amount: str,
    category: str = "Food",
    when: Optional[datetime] = None,
    **extra,
) -> TransactionIn:
    return TransactionIn(
        description=description,
        amount=Decimal(amount),
        category=category,
        transaction_date=when,
        **extra,
    )


def test_create_applies_defaults() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = TransactionService(session, user.id)

        txn = service.create(_txn("  Lunch at Java  ", "650"))

        assert txn.name == "Lunch at Java"
        assert txn.status == TransactionStatus.completed
        assert txn.method == ""
        assert txn.wallet_id is None
        assert txn.transaction_date is not None
        assert txn.amount == Decimal("650")


def test_create_rejects_foreign_or_missing_wallet() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        owner = _user(session)
        stranger = _user(session, email="otieno@example.com")
        wallet = WalletService(session, owner.id).create(
            WalletIn(name="M-Pesa", type=WalletType.mobile_money, color="#22C55E")
        )
        service = TransactionService(session, stranger.id)

        with pytest.raises(Forbidden):
            service.create(_txn("Fare", "100", wallet_id=wallet.id))

        with pytest.raises(NotFound):
            service.create(_txn("Fare", "100", wallet_id=owner.id))


def test_pagination_metadata() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        base = datetime(2026, 9, 1, 12, 0)
        for i in range(25):
            service.create(_txn(f"Item {i}", "10", when=base + timedelta(hours=i)))

        page = service.list_with_count(limit=10, offset=10)

        assert page.total == 25
        assert page.total_pages == 3
        assert page.page == 2
        assert page.has_next
        assert page.has_prev
        assert len(page.items) == 10
        # Newest first: offset 10 lands on the 15th item.
        assert page.items[0].name == "Item 14"

        last = service.list_with_count(limit=10, offset=20)
        assert len(last.items) == 5
        assert not last.has_next


def test_empty_listing_has_zero_pages() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        page = TransactionService(session, user.id).list_with_count(limit=20, offset=0)

        assert page.items == []
        assert page.total == 0
        assert page.total_pages == 0
        assert page.page == 1
        assert not page.has_next
        assert not page.has_prev


def test_filters_narrow_listing() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        service.create(_txn("Naivas groceries", "2400", "Food", datetime(2026, 9, 3)))
        service.create(
            _txn(
                "Matatu",
                "80",
                "Transport",
                datetime(2026, 9, 5),
                notes="to town via Naivas stage",
            )
        )
        service.create(
            _txn(
                "KPLC tokens",
                "1500",
                "Utilities",
                datetime(2026, 10, 2),
                status=TransactionStatus.pending,
            )
        )

        by_category = service.list_with_count(
            20, 0, TransactionFilters(category="Transport")
        )
        assert [t.name for t in by_category.items] == ["Matatu"]

        by_status = service.list_with_count(
            20, 0, TransactionFilters(status=TransactionStatus.pending)
        )
        assert [t.name for t in by_status.items] == ["KPLC tokens"]

        by_query = service.list_with_count(20, 0, TransactionFilters(query="naivas"))
        assert by_query.total == 2

        by_date = service.list_with_count(
            20,
            0,
            TransactionFilters(start=datetime(2026, 9, 4), end=datetime(2026, 9, 30)),
        )
        assert [t.name for t in by_date.items] == ["Matatu"]


def test_update_applies_only_sent_fields() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        txn = service.create(_txn("Lunch", "500", notes="team lunch"))

        updated = service.update(
            txn.id, TransactionUpdate(description="Team lunch", notes=None)
        )

        assert updated.name == "Team lunch"
        assert updated.notes is None
        assert updated.amount == Decimal("500")
        assert updated.category == "Food"


def test_update_rejects_null_for_required_columns() -> None:
    with pytest.raises(ValidationError):
        TransactionUpdate(status=None)
    with pytest.raises(ValidationError):
        TransactionUpdate(amount=None)
    with pytest.raises(ValidationError):
        TransactionUpdate(unknown="x")


def test_deleted_transaction_disappears() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        keep = service.create(_txn("Rent", "25000", "Housing"))
        drop = service.create(_txn("Typo", "1", "Food"))

        service.delete(drop.id)

        assert [t.id for t in service.list()] == [keep.id]
        with pytest.raises(NotFound):
            service.get(drop.id)


def test_other_users_transaction_is_forbidden() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        owner = _user(session)
        stranger = _user(session, email="otieno@example.com")
        txn = TransactionService(session, owner.id).create(_txn("Rent", "25000"))

        with pytest.raises(Forbidden, match="unauthorized access to transaction"):
            TransactionService(session, stranger.id).get(txn.id)


def test_stats_count_completed_rows_in_window() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = TransactionService(session, user.id)
        service.create(_txn("Groceries", "1200.50", when=datetime(2026, 10, 2)))
        service.create(_txn("Fuel", "3000", "Transport", datetime(2026, 10, 10)))
        service.create(
            _txn(
                "Refund pending",
                "999",
                when=datetime(2026, 10, 11),
                status=TransactionStatus.failed,
            )
        )
        service.create(_txn("Last month", "400", when=datetime(2026, 9, 28)))

        stats = service.stats(datetime(2026, 10, 1), datetime(2026, 10, 19, 12, 0))

        assert stats.transaction_count == 2
        assert stats.total_expense == Decimal("4200.50")
        assert stats.total_income == Decimal("0.00")
        assert stats.net_balance == Decimal("-4200.50")

        everything = service.stats()
        assert everything.transaction_count == 3
