"""
Locally computed payloads used when the provider is off, failing, or has
nothing to work with.

Each payload has the same shape as its AI counterpart so callers never
branch on where a result came from.
"""
from __future__ import annotations

from expense_ai.pipeline.health import deterministic_score
from expense_ai.schemas import (
    BudgetRecommendations,
    BudgetRecord,
    ExpenseRecord,
    FinancialInsights,
    SavingsOpportunities,
    SpendingPredictions,
    TrendAnalysis,
)
from expense_ai.services.data_store import (
    category_breakdown,
    spending_patterns,
    top_categories,
    total_spent,
)

NO_DATA_NOTICE = "No expense data available yet - start tracking expenses to get insights"
AI_DISABLED_NOTICE = "AI features disabled - showing basic analysis"
AI_UNAVAILABLE_NOTICE = "AI analysis temporarily unavailable - showing basic analysis"

DAYS_PER_MONTH = 30
TIMEFRAME_MONTHS = {"week": 0.25, "month": 1, "quarter": 3, "year": 12}
EMERGENCY_FUND_MONTHS = (3, 6)
REDUCTION_AREA_COUNT = 2
PREDICTION_CONFIDENCE_CAP = 60
PREDICTION_SATURATION = 20


# ---------------------------------------------------------------------------
# Financial overview
# ---------------------------------------------------------------------------

def no_data_insights() -> FinancialInsights:
    return FinancialInsights(
        trends="No spending recorded in this period",
        budget_performance="No data",
        health_score=0,
        recommendations=["Start tracking expenses to get AI insights"],
    )


def _budget_performance(expenses: list[ExpenseRecord], budgets: list[BudgetRecord]) -> str:
    budget_total = sum(b.amount for b in budgets)
    spent = total_spent(expenses)
    if budget_total <= 0:
        return f"Spent ${spent:.2f}; no budgets set"
    return f"Spent ${spent:.2f} of ${budget_total:.2f} budgeted ({spent / budget_total * 100:.0f}%)"


def local_insights(
    expenses: list[ExpenseRecord], budgets: list[BudgetRecord], notice: str
) -> FinancialInsights:
    return FinancialInsights(
        trends=f"{len(expenses)} expenses totalling ${total_spent(expenses):.2f}",
        budget_performance=_budget_performance(expenses, budgets),
        top_categories=top_categories(expenses),
        health_score=deterministic_score(expenses, budgets).score,
        recommendations=[notice],
    )


# ---------------------------------------------------------------------------
# Budget recommendations
# ---------------------------------------------------------------------------

def no_data_budget_recommendations() -> BudgetRecommendations:
    return BudgetRecommendations(tips=["Track a month of expenses to get budget recommendations"])


def local_budget_recommendations(
    expenses: list[ExpenseRecord], notice: str
) -> BudgetRecommendations:
    breakdown = category_breakdown(expenses)
    ranked = sorted(breakdown, key=lambda name: (-breakdown[name], name))
    monthly = total_spent(expenses)
    low, high = EMERGENCY_FUND_MONTHS
    return BudgetRecommendations(
        recommended_budgets=breakdown,
        reduction_areas=ranked[:REDUCTION_AREA_COUNT],
        emergency_fund=(
            f"Aim for {low}-{high} months of expenses "
            f"(${monthly * low:.2f} - ${monthly * high:.2f})"
        ),
        savings_target="20% of income",
        tips=[notice],
    )


# ---------------------------------------------------------------------------
# Savings opportunities
# ---------------------------------------------------------------------------

def no_data_savings() -> SavingsOpportunities:
    return SavingsOpportunities(
        long_term_goals=["Track your expenses to discover savings opportunities"],
    )


def local_savings(expenses: list[ExpenseRecord], notice: str) -> SavingsOpportunities:
    patterns = spending_patterns(expenses)
    return SavingsOpportunities(
        recurring_savings=patterns["recurring_expenses"],
        long_term_goals=[notice],
    )


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------

def no_data_trends() -> TrendAnalysis:
    return TrendAnalysis(
        analysis="No expense data available for trend analysis",
        recommendations=["Start tracking expenses to enable trend analysis"],
    )


def default_trends(notice: str) -> TrendAnalysis:
    return TrendAnalysis(analysis=notice)


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

def local_predictions(
    expenses: list[ExpenseRecord], timeframe: str, lookback_days: int
) -> SpendingPredictions:
    """Straight-line projection of the lookback window onto *timeframe*."""
    if not expenses:
        return SpendingPredictions(alerts=["Not enough spending history for a prediction"])

    scale = TIMEFRAME_MONTHS.get(timeframe, 1) * DAYS_PER_MONTH / max(lookback_days, 1)
    breakdown = {name: round(amount * scale, 2) for name, amount in category_breakdown(expenses).items()}
    confidence = min(len(expenses), PREDICTION_SATURATION) / PREDICTION_SATURATION * PREDICTION_CONFIDENCE_CAP
    return SpendingPredictions(
        total_prediction=round(total_spent(expenses) * scale, 2),
        category_breakdown=breakdown,
        confidence=round(confidence, 1),
    )
