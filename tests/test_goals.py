import logging
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import GoalPriority, GoalStatus, User
from schemas import GoalIn, GoalUpdate
from services import (
    BusinessRuleViolation,
    Forbidden,
    GoalService,
    ValidationFailed,
)

TODAY = date(2026, 10, 19)


def _user(session: Session, email: str = "amina@example.com") -> User:
    user = User(name="Amina", email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def _goal(name: str, target: str, current: str = "0", **extra) -> GoalIn:
    return GoalIn(
        name=name,
        target=Decimal(target),
        current=Decimal(current),
        color="#F59E0B",
        **extra,
    )


def test_create_applies_defaults() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        goal = GoalService(session, user.id).create(
            _goal("Emergency fund", "50000", "5000"), today=TODAY
        )

        assert goal.status == GoalStatus.active
        assert goal.priority == GoalPriority.medium
        assert goal.current_amount == Decimal("5000")
        assert goal.progress_percentage == pytest.approx(10.0)
        assert goal.remaining_amount == Decimal("45000")
        assert goal.days_remaining is None


def test_create_validates_amounts_and_deadline() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = GoalService(session, user.id)

        with pytest.raises(ValidationFailed, match="cannot exceed"):
            service.create(_goal("Laptop", "1000", "1500"), today=TODAY)
        with pytest.raises(ValidationFailed, match="deadline"):
            service.create(
                _goal("Laptop", "1000", deadline=date(2026, 10, 1)), today=TODAY
            )
        assert service.list() == []


def test_goal_created_at_target_is_completed() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        goal = GoalService(session, user.id).create(
            _goal("Phone", "30000", "30000"), today=TODAY
        )

        assert goal.status == GoalStatus.completed


def test_progress_clamps_at_target_and_completes(caplog) -> None:
    caplog.set_level(logging.INFO, logger="services")
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = GoalService(session, user.id)
        goal = service.create(_goal("Holiday", "1000", "900"), today=TODAY)

        goal = service.add_progress(goal.id, Decimal("50"))
        assert goal.current_amount == Decimal("950")
        assert goal.status == GoalStatus.active

        goal = service.add_progress(goal.id, Decimal("200"))
        assert goal.current_amount == Decimal("1000")
        assert goal.status == GoalStatus.completed
        assert "goal_progress_capped" in caplog.text
        assert "dropped=150" in caplog.text

        with pytest.raises(BusinessRuleViolation, match="completed goal"):
            service.add_progress(goal.id, Decimal("10"))
        assert service.get(goal.id).current_amount == Decimal("1000")


def test_progress_rejects_non_positive_amount() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = GoalService(session, user.id)
        goal = service.create(_goal("Holiday", "1000"), today=TODAY)

        with pytest.raises(ValidationFailed):
            service.add_progress(goal.id, Decimal("0"))
        with pytest.raises(ValidationFailed):
            service.add_progress(goal.id, Decimal("-5"))


def test_rejected_update_leaves_goal_unchanged() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = GoalService(session, user.id)
        goal = service.create(_goal("Car", "500000", "100000"), today=TODAY)

        with pytest.raises(ValidationFailed):
            service.update(
                goal.id, GoalUpdate(target_amount=Decimal("50000")), today=TODAY
            )
        with pytest.raises(ValidationFailed):
            service.update(
                goal.id, GoalUpdate(deadline=date(2026, 1, 1)), today=TODAY
            )

        fresh = service.get(goal.id)
        assert fresh.target_amount == Decimal("500000")
        assert fresh.deadline is None


def test_update_reaching_target_completes_goal() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = GoalService(session, user.id)
        goal = service.create(
            _goal("Car", "500000", "100000", category="Transport"), today=TODAY
        )

        goal = service.update(
            goal.id,
            GoalUpdate(current_amount=Decimal("500000"), category=None),
            today=TODAY,
        )

        assert goal.status == GoalStatus.completed
        assert goal.category is None


def test_progress_summary() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = GoalService(session, user.id)
        service.create(_goal("Phone", "1000", "1000"), today=TODAY)
        service.create(_goal("Holiday", "3000", "500"), today=TODAY)
        dropped = service.create(_goal("Old", "9000", "0"), today=TODAY)
        service.delete(dropped.id)

        summary = service.progress_summary()

        assert summary.total_goals == 2
        assert summary.completed_goals == 1
        assert summary.active_goals == 1
        assert summary.total_target == Decimal("4000")
        assert summary.total_saved == Decimal("1500")
        assert summary.overall_progress == pytest.approx(37.5)


def test_other_users_goal_is_forbidden() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        owner = _user(session)
        stranger = _user(session, email="otieno@example.com")
        goal = GoalService(session, owner.id).create(_goal("Phone", "1000"), today=TODAY)

        with pytest.raises(Forbidden):
            GoalService(session, stranger.id).add_progress(goal.id, Decimal("10"))


def test_days_remaining_counts_from_local_today(monkeypatch) -> None:
    monkeypatch.setattr("models.local_now", lambda: datetime(2026, 10, 19, 23, 30))
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        goal = GoalService(session, user.id).create(
            _goal("Rent deposit", "60000", deadline=date(2026, 11, 1)), today=TODAY
        )

        assert goal.days_remaining == 13
        monkeypatch.setattr("models.local_now", lambda: datetime(2026, 11, 3, 8, 0))
        assert goal.days_remaining == -2
