from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from analytics import (
    RECOMMEND_EMERGENCY_FUND,
    RECOMMEND_GOAL_CONTRIBUTIONS,
    RECOMMEND_REVIEW_BUDGETS,
    RECOMMEND_SAVE_MORE,
    AnalyticsService,
    rating_for,
    score_financial_health,
    trend_direction,
)
from database import Base
from models import TransactionStatus, User, WalletType
from schemas import BudgetIn, GoalIn, TransactionIn, WalletIn
from services import BudgetService, GoalService, TransactionService, WalletService

NOW = datetime(2026, 10, 19, 15, 30)


def _user(session: Session) -> User:
    user = User(name="Amina", email="amina@example.com", password_hash="x")
    session.add(user)
    session.commit()
    return user


def _spend(
    session: Session,
    user: User,
    category: str,
    amount: str,
    when: datetime,
    status: TransactionStatus = TransactionStatus.completed,
) -> None:
    TransactionService(session, user.id).create(
        TransactionIn(
            description=f"{category} spend",
            amount=Decimal(amount),
            category=category,
            status=status,
            transaction_date=when,
        )
    )


def _seed(session: Session) -> User:
    user = _user(session)
    WalletService(session, user.id).create(
        WalletIn(
            name="M-Pesa",
            type=WalletType.mobile_money,
            balance=Decimal("1200"),
            color="#22C55E",
        )
    )
    GoalService(session, user.id).create(
        GoalIn(
            name="Laptop",
            target=Decimal("1000"),
            current=Decimal("500"),
            color="#F59E0B",
        ),
        today=date(2026, 10, 19),
    )
    budgets = BudgetService(session, user.id)
    budgets.create(BudgetIn(category="Food", limit=Decimal("1000"), color="#EF4444"))
    budgets.create(
        BudgetIn(category="Transport", limit=Decimal("100"), color="#3B82F6")
    )

    _spend(session, user, "Food", "500", datetime(2026, 9, 14))
    _spend(session, user, "Food", "100", datetime(2026, 10, 2, 9, 0))
    _spend(session, user, "Food", "200", datetime(2026, 10, 10, 13, 0))
    _spend(session, user, "Transport", "100", datetime(2026, 10, 12, 18, 0))
    _spend(
        session,
        user,
        "Fun",
        "5000",
        datetime(2026, 10, 15),
        status=TransactionStatus.pending,
    )
    return user


def test_score_tiers() -> None:
    perfect = score_financial_health(25, 100, 100, 1.0)
    assert perfect.score == 100
    assert perfect.rating == "Excellent"
    assert perfect.recommendations == []
    assert perfect.debt_to_income == 0.0

    empty = score_financial_health(0, 0, 0, 0)
    assert empty.score == 0
    assert empty.rating == "Needs Improvement"
    assert empty.recommendations == [
        RECOMMEND_SAVE_MORE,
        RECOMMEND_REVIEW_BUDGETS,
        RECOMMEND_EMERGENCY_FUND,
        RECOMMEND_GOAL_CONTRIBUTIONS,
    ]

    middling = score_financial_health(10, 60, 50, 0.5, has_goals=False)
    assert middling.score == 20 + 15 + 15 + 15
    assert RECOMMEND_GOAL_CONTRIBUTIONS not in middling.recommendations


def test_rating_boundaries() -> None:
    assert rating_for(80) == "Excellent"
    assert rating_for(79) == "Good"
    assert rating_for(60) == "Good"
    assert rating_for(40) == "Fair"
    assert rating_for(39) == "Needs Improvement"


def test_trend_direction_compares_last_two_points() -> None:
    assert trend_direction([Decimal("1")]) == "stable"
    assert trend_direction([Decimal("-5"), Decimal("-3")]) == "up"
    assert trend_direction([Decimal("3"), Decimal("1")]) == "down"
    assert trend_direction([Decimal("2"), Decimal("2")]) == "stable"


def test_spending_by_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _seed(session)
        service = AnalyticsService(session, user.id)

        categories = service.spending_by_category(datetime(2026, 10, 1), NOW)

        assert [c.category for c in categories] == ["Food", "Transport"]
        food, transport = categories
        assert food.amount == Decimal("300")
        assert food.count == 2
        assert food.percentage == pytest.approx(75.0)
        assert food.budget_limit == Decimal("1000")
        assert transport.percentage == pytest.approx(25.0)
        assert sum(c.percentage for c in categories) == pytest.approx(100.0)


def test_spending_by_category_empty() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = AnalyticsService(session, user.id)

        assert service.spending_by_category(datetime(2026, 10, 1), NOW) == []


def test_income_vs_expense() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _seed(session)
        service = AnalyticsService(session, user.id)

        report = service.income_vs_expense("month", now=NOW)
        assert report.period == "month"
        assert [p.date for p in report.data_points] == [
            "2026-10-02",
            "2026-10-10",
            "2026-10-12",
        ]
        assert report.total_expense == Decimal("400")
        assert report.total_income == Decimal("0")
        assert report.net_amount == Decimal("-400")
        assert report.savings_rate == 0.0

        week = service.income_vs_expense("week", now=NOW)
        assert [p.date for p in week.data_points] == ["2026-10-12"]

        with pytest.raises(ValueError):
            service.income_vs_expense("decade", now=NOW)


def test_monthly_trends() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _seed(session)
        service = AnalyticsService(session, user.id)

        trends = service.monthly_trends(3, now=NOW)
        assert trends.months == ["Aug 2026", "Sep 2026", "Oct 2026"]
        assert trends.expense_data == [Decimal("0"), Decimal("500"), Decimal("400")]
        assert trends.savings_data == [Decimal("0"), Decimal("-500"), Decimal("-400")]
        assert trends.average_expense == Decimal("300.00")
        assert trends.average_income == Decimal("0.00")
        assert trends.trend_direction == "up"

        assert len(service.monthly_trends(0, now=NOW).months) == 6
        assert len(service.monthly_trends(30, now=NOW).months) == 24


def test_dashboard_summary() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _seed(session)
        summary = AnalyticsService(session, user.id).dashboard_summary(now=NOW)

        assert summary.total_balance == Decimal("1200")
        assert summary.total_income == Decimal("0")
        assert summary.total_expense == Decimal("400")
        assert summary.net_savings == Decimal("-400")
        assert summary.active_goals_count == 1
        assert summary.total_goals_progress == pytest.approx(50.0)
        assert summary.budget_alerts == 1
        assert summary.recent_transactions == 3
        assert [c.category for c in summary.top_categories] == ["Food", "Transport"]
        comparison = summary.month_comparison
        assert comparison.previous_month_expense == Decimal("500")
        assert comparison.expense_change == pytest.approx(-20.0)
        assert comparison.income_change == 0.0


def test_financial_health_and_insights() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _seed(session)
        service = AnalyticsService(session, user.id)

        health = service.financial_health(now=NOW)
        assert health.savings_ratio == 0.0
        assert health.budget_compliance == pytest.approx(100.0)
        assert health.goal_progress == pytest.approx(50.0)
        assert health.emergency_fund_ratio == pytest.approx(1.0)
        assert health.score == 0 + 25 + 15 + 25
        assert health.rating == "Good"
        assert health.recommendations == [RECOMMEND_SAVE_MORE]

        insight = service.insights(now=NOW)
        assert insight.generated_at == NOW
        assert insight.insight.startswith("You're doing well!")
        assert insight.insight.endswith(RECOMMEND_SAVE_MORE)
        assert insight.health_score.score == health.score


def test_financial_health_for_new_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        health = AnalyticsService(session, user.id).financial_health(now=NOW)

        assert health.score == 0
        assert health.rating == "Needs Improvement"
        assert RECOMMEND_GOAL_CONTRIBUTIONS not in health.recommendations
