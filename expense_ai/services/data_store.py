"""
Read-only access to a user's financial history, plus pure aggregation
helpers used to build prompts and local (non-AI) answers.
"""
from __future__ import annotations

import datetime as dt
import logging
from collections import Counter, defaultdict
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from expense_ai.models import (
    BudgetModel,
    CategoryModel,
    ExpenseModel,
    IncomeModel,
    SavingsModel,
)
from expense_ai.schemas import (
    BudgetRecord,
    CategoryInfo,
    ExpenseRecord,
    IncomeSource,
    IncomeSummary,
    SavingsSummary,
)

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Other"
DEFAULT_PERIOD_DAYS = 180
PERIOD_DAYS: dict[str, int] = {
    "3months": 90,
    "6months": 180,
    "1year": 365,
    "2years": 730,
}
TOP_CATEGORY_COUNT = 5

DEFAULT_CATEGORIES: list[tuple[str, str, str]] = [
    ("Food & Dining", "🍽️", "#FF6B6B"),
    ("Transportation", "🚗", "#4ECDC4"),
    ("Shopping", "🛍️", "#45B7D1"),
    ("Entertainment", "🎬", "#96CEB4"),
    ("Bills & Utilities", "💡", "#FFEAA7"),
    ("Healthcare", "🏥", "#DDA0DD"),
    ("Travel", "✈️", "#98D8C8"),
    ("Education", "📚", "#F7DC6F"),
    ("Groceries", "🛒", "#85C1E9"),
    ("Fitness", "💪", "#F8C471"),
    ("Home & Garden", "🏠", "#A9DFBF"),
    ("Personal Care", "💄", "#F1948A"),
    ("Investment", "📈", "#82E0AA"),
    ("Income", "💰", "#5DADE2"),
    ("Other", "📋", "#BDC3C7"),
]


def seed_default_categories(db: Session) -> int:
    """Insert missing default categories; returns how many were added."""
    existing = {
        name for (name,) in db.query(CategoryModel.name).filter(CategoryModel.is_default.is_(True))
    }
    added = 0
    for name, icon, color in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        db.add(CategoryModel(name=name, icon=icon, color=color, is_default=True))
        added += 1
    if added:
        db.commit()
        logger.info("Seeded %d default categories", added)
    return added


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class FinancialDataStore:
    def __init__(
        self,
        db: Session,
        lookback_days: int = 30,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        self.db = db
        self.lookback_days = lookback_days
        self._today = today

    def with_session(self, db: Session) -> FinancialDataStore:
        return FinancialDataStore(db, self.lookback_days, self._today)

    def _expenses_since(self, user_id: int, since: dt.date) -> list[ExpenseRecord]:
        rows = (
            self.db.query(ExpenseModel, CategoryModel.name)
            .outerjoin(CategoryModel, ExpenseModel.category_id == CategoryModel.id)
            .filter(ExpenseModel.user_id == user_id, ExpenseModel.date >= since)
            .order_by(ExpenseModel.date.desc(), ExpenseModel.id.desc())
            .all()
        )
        return [
            ExpenseRecord(
                id=e.id,
                amount=e.amount,
                description=e.description,
                date=e.date,
                category_id=e.category_id,
                category_name=name or UNCATEGORIZED,
            )
            for e, name in rows
        ]

    def recent_expenses(self, user_id: int, days: int | None = None) -> list[ExpenseRecord]:
        since = self._today() - dt.timedelta(days=days or self.lookback_days)
        return self._expenses_since(user_id, since)

    def expenses_for_period(self, user_id: int, period: str) -> list[ExpenseRecord]:
        days = PERIOD_DAYS.get(period, DEFAULT_PERIOD_DAYS)
        return self._expenses_since(user_id, self._today() - dt.timedelta(days=days))

    def budgets(self, user_id: int) -> list[BudgetRecord]:
        rows = (
            self.db.query(BudgetModel, CategoryModel.name)
            .outerjoin(CategoryModel, BudgetModel.category_id == CategoryModel.id)
            .filter(BudgetModel.user_id == user_id)
            .all()
        )
        return [
            BudgetRecord(
                id=b.id,
                category_id=b.category_id,
                category_name=name,
                amount=b.amount or 0.0,
                period=b.period,
            )
            for b, name in rows
        ]

    def income(self, user_id: int) -> IncomeSummary:
        since = self._today() - dt.timedelta(days=self.lookback_days)
        rows = (
            self.db.query(IncomeModel.source, func.sum(IncomeModel.amount))
            .filter(IncomeModel.user_id == user_id, IncomeModel.date >= since)
            .group_by(IncomeModel.source)
            .all()
        )
        sources = [IncomeSource(source=source, amount=round(total or 0.0, 2)) for source, total in rows]
        return IncomeSummary(
            monthly_income=round(sum(s.amount for s in sources), 2),
            sources=sources,
        )

    def savings(self, user_id: int, total_spent: float = 0.0) -> SavingsSummary:
        since = self._today() - dt.timedelta(days=self.lookback_days)
        saved = (
            self.db.query(func.sum(SavingsModel.amount))
            .filter(SavingsModel.user_id == user_id, SavingsModel.date >= since)
            .scalar()
        ) or 0.0
        income = self.income(user_id).monthly_income
        rate = (income - total_spent) / income if income > 0 else 0.0
        return SavingsSummary(
            emergency_fund=round(saved, 2),
            investments=0.0,
            savings_rate=round(max(rate, 0.0), 4),
        )

    def categories(self) -> list[CategoryInfo]:
        rows = (
            self.db.query(CategoryModel)
            .filter(CategoryModel.is_default.is_(True))
            .order_by(CategoryModel.id)
            .all()
        )
        return [CategoryInfo(id=c.id, name=c.name, icon=c.icon or "") for c in rows]


# ---------------------------------------------------------------------------
# Aggregation helpers
# ---------------------------------------------------------------------------

def total_spent(expenses: list[ExpenseRecord]) -> float:
    return round(sum(e.amount for e in expenses), 2)


def category_breakdown(expenses: list[ExpenseRecord]) -> dict[str, float]:
    breakdown: dict[str, float] = defaultdict(float)
    for e in expenses:
        breakdown[e.category_name or UNCATEGORIZED] += e.amount
    return {name: round(amount, 2) for name, amount in breakdown.items()}


def top_categories(expenses: list[ExpenseRecord], limit: int = TOP_CATEGORY_COUNT) -> list[dict[str, Any]]:
    ranked = sorted(category_breakdown(expenses).items(), key=lambda kv: (-kv[1], kv[0]))
    return [{"category": name, "amount": amount} for name, amount in ranked[:limit]]


def monthly_spending(expenses: list[ExpenseRecord]) -> dict[str, dict[str, float]]:
    """``{"YYYY-MM": {category: amount}}``"""
    monthly: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for e in expenses:
        monthly[e.date.strftime("%Y-%m")][e.category_name or UNCATEGORIZED] += e.amount
    return {
        month: {name: round(amount, 2) for name, amount in cats.items()}
        for month, cats in sorted(monthly.items())
    }


def spending_patterns(expenses: list[ExpenseRecord]) -> dict[str, Any]:
    weeks: dict[tuple[int, int], float] = defaultdict(float)
    for e in expenses:
        year, week, _ = e.date.isocalendar()
        weeks[(year, week)] += e.amount
    weekly_average = sum(weeks.values()) / len(weeks) if weeks else 0.0

    descriptions = Counter(
        (e.description or "").strip().lower() for e in expenses if (e.description or "").strip()
    )
    recurring = sorted(desc for desc, count in descriptions.items() if count >= 2)

    return {
        "weekly_average": round(weekly_average, 2),
        "monthly_trend": _monthly_trend(monthly_spending(expenses)),
        "top_categories": top_categories(expenses),
        "recurring_expenses": recurring,
    }


def _monthly_trend(monthly: dict[str, dict[str, float]]) -> str:
    totals = [sum(cats.values()) for _, cats in sorted(monthly.items())]
    if len(totals) < 2 or totals[-2] == 0:
        return "stable"
    change = (totals[-1] - totals[-2]) / totals[-2]
    if change > 0.1:
        return "increasing"
    if change < -0.1:
        return "decreasing"
    return "stable"
