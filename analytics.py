"""Read-only aggregations over a user's wallets, transactions, goals and budgets.

Every call re-reads the user's completed transactions (capped at
``TRANSACTION_SCAN_LIMIT`` rows) and folds them in Python. Money stays in
``Decimal``; percentages and ratios are floats and any zero denominator
yields 0.

Transactions carry no income/expense discriminator, so every completed
transaction is counted as an expense and income is always 0.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import GoalStatus, Transaction, TransactionStatus
from periods import (
    add_months,
    local_now,
    month_end,
    month_start,
    resolve_flow_period,
    to_local_naive,
)
from repositories import BudgetRepository, GoalRepository, WalletRepository
from services import percentage

TRANSACTION_SCAN_LIMIT = 10_000
DEFAULT_TREND_MONTHS = 6
MAX_TREND_MONTHS = 24
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

RECOMMEND_SAVE_MORE = "Try to save at least 10-20% of your income"
RECOMMEND_REVIEW_BUDGETS = "Review your budgets and track spending more carefully"
RECOMMEND_EMERGENCY_FUND = "Build an emergency fund covering 3-6 months of expenses"
RECOMMEND_GOAL_CONTRIBUTIONS = "Increase contributions to your savings goals"

INSIGHT_MESSAGES = (
    (
        80,
        "Excellent job! Your finances are in great shape. Keep up the good "
        "work with budgeting and saving.",
    ),
    (
        60,
        "You're doing well! There are a few areas where you can improve to "
        "achieve better financial health.",
    ),
    (
        40,
        "Your finances need some attention. Focus on the recommendations "
        "below to improve your financial health.",
    ),
    (
        0,
        "Your financial health needs significant improvement. Start by "
        "implementing the recommendations below.",
    ),
)


@dataclass
class CategorySpending:
    category: str
    amount: Decimal = ZERO
    count: int = 0
    percentage: float = 0.0
    budget_limit: Optional[Decimal] = None


@dataclass(frozen=True)
class MonthComparison:
    current_month_income: Decimal
    current_month_expense: Decimal
    previous_month_income: Decimal
    previous_month_expense: Decimal
    income_change: float
    expense_change: float


@dataclass(frozen=True)
class DashboardSummary:
    total_balance: Decimal
    total_income: Decimal
    total_expense: Decimal
    net_savings: Decimal
    active_goals_count: int
    total_goals_progress: float
    budget_alerts: int
    recent_transactions: int
    top_categories: list[CategorySpending]
    month_comparison: MonthComparison


@dataclass
class IncomeExpensePoint:
    date: str
    income: Decimal = ZERO
    expense: Decimal = ZERO


@dataclass(frozen=True)
class IncomeVsExpenseReport:
    period: str
    total_income: Decimal
    total_expense: Decimal
    net_amount: Decimal
    savings_rate: float
    data_points: list[IncomeExpensePoint]


@dataclass(frozen=True)
class MonthlyTrends:
    months: list[str]
    income_data: list[Decimal]
    expense_data: list[Decimal]
    savings_data: list[Decimal]
    average_income: Decimal
    average_expense: Decimal
    trend_direction: str


@dataclass(frozen=True)
class FinancialHealthScore:
    score: int
    rating: str
    savings_ratio: float
    budget_compliance: float
    goal_progress: float
    debt_to_income: float
    emergency_fund_ratio: float
    recommendations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Insight:
    insight: str
    generated_at: datetime
    health_score: FinancialHealthScore


def _tier(value: float, tiers: tuple[tuple[float, int], ...]) -> int:
    for threshold, points in tiers:
        if value >= threshold:
            return points
    return 0


def rating_for(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Needs Improvement"


def score_financial_health(
    savings_ratio: float,
    budget_compliance: float,
    goal_progress: float,
    emergency_fund_ratio: float,
    *,
    has_goals: bool = True,
) -> FinancialHealthScore:
    """Weighted 0-100 score.

    Savings ratio is worth 30 points, budget compliance 25, goal progress 20
    and the emergency fund ratio 25. Each metric below its top tier adds a
    recommendation.
    """
    score = (
        _tier(savings_ratio, ((20, 30), (10, 20), (5, 10)))
        + _tier(budget_compliance, ((80, 25), (60, 15), (40, 10)))
        + _tier(goal_progress, ((75, 20), (50, 15), (25, 10)))
        + _tier(emergency_fund_ratio, ((1.0, 25), (0.5, 15), (0.25, 10)))
    )

    recommendations: list[str] = []
    if savings_ratio < 10:
        recommendations.append(RECOMMEND_SAVE_MORE)
    if budget_compliance < 80:
        recommendations.append(RECOMMEND_REVIEW_BUDGETS)
    if emergency_fund_ratio < 1.0:
        recommendations.append(RECOMMEND_EMERGENCY_FUND)
    if goal_progress < 50 and has_goals:
        recommendations.append(RECOMMEND_GOAL_CONTRIBUTIONS)

    return FinancialHealthScore(
        score=score,
        rating=rating_for(score),
        savings_ratio=savings_ratio,
        budget_compliance=budget_compliance,
        goal_progress=goal_progress,
        debt_to_income=0.0,
        emergency_fund_ratio=emergency_fund_ratio,
        recommendations=recommendations,
    )


def trend_direction(series: list[Decimal]) -> str:
    if len(series) < 2:
        return "stable"
    recent, previous = series[-1], series[-2]
    if recent > previous:
        return "up"
    if recent < previous:
        return "down"
    return "stable"


def _change(current: Decimal, previous: Decimal) -> float:
    if not previous:
        return 0.0
    return float((current - previous) / previous * 100)


def _ratio(numerator: Decimal, denominator: Decimal) -> float:
    if not denominator:
        return 0.0
    return float(numerator / denominator)


class AnalyticsService:
    def __init__(self, session: Session, user_id: uuid.UUID) -> None:
        self.session = session
        self.user_id = user_id
        self.wallets = WalletRepository(session)
        self.goals = GoalRepository(session)
        self.budgets = BudgetRepository(session)

    def _completed_transactions(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.status == TransactionStatus.completed,
            )
            .order_by(Transaction.transaction_date.desc())
            .limit(TRANSACTION_SCAN_LIMIT)
        )
        return list(self.session.scalars(stmt).all())

    def _total_balance(self) -> Decimal:
        return sum((w.balance for w in self.wallets.find_by_user(self.user_id)), ZERO)

    @staticmethod
    def _by_category(
        transactions: list[Transaction],
    ) -> tuple[list[CategorySpending], Decimal]:
        buckets: dict[str, CategorySpending] = {}
        total = ZERO
        for txn in transactions:
            bucket = buckets.setdefault(txn.category, CategorySpending(txn.category))
            bucket.amount += txn.amount
            bucket.count += 1
            total += txn.amount
        for bucket in buckets.values():
            bucket.percentage = percentage(bucket.amount, total)
        ordered = sorted(buckets.values(), key=lambda b: (-b.amount, b.category))
        return ordered, total

    def dashboard_summary(self, *, now: Optional[datetime] = None) -> DashboardSummary:
        now = now or local_now()
        start = month_start(now)
        end = month_end(now)
        previous_start = add_months(start, -1)

        transactions = self._completed_transactions()
        this_month = [t for t in transactions if start <= t.transaction_date < end]
        last_month = [
            t for t in transactions if previous_start <= t.transaction_date < start
        ]
        categories, total_expense = self._by_category(this_month)
        spent = {c.category: c.amount for c in categories}

        goals = self.goals.find_by_user(self.user_id)
        total_target = sum((g.target_amount for g in goals), ZERO)
        total_current = sum((g.current_amount for g in goals), ZERO)

        budget_alerts = 0
        for budget in self.budgets.find_by_user(self.user_id):
            used = spent.get(budget.category, ZERO)
            if (
                used > budget.limit_amount
                or percentage(used, budget.limit_amount) >= budget.alert_threshold
            ):
                budget_alerts += 1

        previous_expense = sum((t.amount for t in last_month), ZERO)
        comparison = MonthComparison(
            current_month_income=ZERO,
            current_month_expense=total_expense,
            previous_month_income=ZERO,
            previous_month_expense=previous_expense,
            income_change=_change(ZERO, ZERO),
            expense_change=_change(total_expense, previous_expense),
        )

        total_income = ZERO
        return DashboardSummary(
            total_balance=self._total_balance(),
            total_income=total_income,
            total_expense=total_expense,
            net_savings=total_income - total_expense,
            active_goals_count=sum(
                1 for g in goals if g.status != GoalStatus.completed
            ),
            total_goals_progress=percentage(total_current, total_target),
            budget_alerts=budget_alerts,
            recent_transactions=len(this_month),
            top_categories=categories,
            month_comparison=comparison,
        )

    def spending_by_category(
        self, start: datetime, end: datetime
    ) -> list[CategorySpending]:
        start = to_local_naive(start)
        end = to_local_naive(end)
        window = [
            t for t in self._completed_transactions() if start <= t.transaction_date <= end
        ]
        categories, _ = self._by_category(window)
        limits = {b.category: b.limit_amount for b in self.budgets.find_by_user(self.user_id)}
        for bucket in categories:
            bucket.budget_limit = limits.get(bucket.category)
        return categories

    def income_vs_expense(
        self, period: str, *, now: Optional[datetime] = None
    ) -> IncomeVsExpenseReport:
        window = resolve_flow_period(period, now=now)
        daily: dict[str, IncomeExpensePoint] = {}
        total_expense = ZERO
        for txn in self._completed_transactions():
            if not window.start <= txn.transaction_date <= window.end:
                continue
            key = txn.transaction_date.strftime("%Y-%m-%d")
            point = daily.setdefault(key, IncomeExpensePoint(key))
            point.expense += txn.amount
            total_expense += txn.amount

        total_income = ZERO
        net = total_income - total_expense
        return IncomeVsExpenseReport(
            period=period,
            total_income=total_income,
            total_expense=total_expense,
            net_amount=net,
            savings_rate=percentage(net, total_income),
            data_points=[daily[key] for key in sorted(daily)],
        )

    def monthly_trends(
        self, months: int = DEFAULT_TREND_MONTHS, *, now: Optional[datetime] = None
    ) -> MonthlyTrends:
        if months <= 0:
            months = DEFAULT_TREND_MONTHS
        months = min(months, MAX_TREND_MONTHS)
        now = now or local_now()

        anchors = [add_months(month_start(now), -i) for i in range(months - 1, -1, -1)]
        expense: dict[tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
        keys = {(a.year, a.month) for a in anchors}
        for txn in self._completed_transactions():
            key = (txn.transaction_date.year, txn.transaction_date.month)
            if key in keys:
                expense[key] += txn.amount

        income_data = [ZERO for _ in anchors]
        expense_data = [expense[(a.year, a.month)] for a in anchors]
        savings_data = [inc - exp for inc, exp in zip(income_data, expense_data)]
        return MonthlyTrends(
            months=[a.strftime("%b %Y") for a in anchors],
            income_data=income_data,
            expense_data=expense_data,
            savings_data=savings_data,
            average_income=(sum(income_data, ZERO) / months).quantize(CENT),
            average_expense=(sum(expense_data, ZERO) / months).quantize(CENT),
            trend_direction=trend_direction(savings_data),
        )

    def financial_health(self, *, now: Optional[datetime] = None) -> FinancialHealthScore:
        now = now or local_now()
        start = month_start(now)
        end = month_end(now)
        this_month = [
            t for t in self._completed_transactions() if start <= t.transaction_date < end
        ]

        monthly_income = ZERO
        monthly_expense = sum((t.amount for t in this_month), ZERO)
        savings_ratio = percentage(monthly_income - monthly_expense, monthly_income)

        spent: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for txn in this_month:
            spent[txn.category] += txn.amount
        budgets = self.budgets.find_by_user(self.user_id)
        compliant = sum(1 for b in budgets if spent[b.category] <= b.limit_amount)
        budget_compliance = percentage(Decimal(compliant), Decimal(len(budgets)))

        goals = self.goals.find_by_user(self.user_id)
        goal_progress = percentage(
            sum((g.current_amount for g in goals), ZERO),
            sum((g.target_amount for g in goals), ZERO),
        )

        emergency_fund_ratio = _ratio(self._total_balance(), monthly_expense * 3)

        return score_financial_health(
            savings_ratio,
            budget_compliance,
            goal_progress,
            emergency_fund_ratio,
            has_goals=bool(goals),
        )

    def insights(self, *, now: Optional[datetime] = None) -> Insight:
        now = now or local_now()
        health = self.financial_health(now=now)
        message = next(text for floor, text in INSIGHT_MESSAGES if health.score >= floor)
        if health.recommendations:
            message = f"{message} {health.recommendations[0]}"
        return Insight(insight=message, generated_at=now, health_score=health)
