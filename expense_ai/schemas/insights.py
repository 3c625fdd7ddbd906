"""
Per-operation result payloads.

Every field has a default so that a partial provider answer is completed
with defaults; unknown keys are dropped so each payload keeps a fixed shape.
"""
from __future__ import annotations

import datetime as dt
import math
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from expense_ai.schemas.base import Text, TextList, clamp, round_half_up


def _bounded(low: float, high: float, default: float, integer: bool = False):
    def _validate(value: Any) -> float:
        if value is None:
            return default
        if isinstance(value, bool):
            raise ValueError("expected a number")
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"expected a number: {value!r}") from exc
        if not math.isfinite(number):
            raise ValueError("expected a finite number")
        number = clamp(number, low, high)
        return round_half_up(number) if integer else number

    return BeforeValidator(_validate)


class AIPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ExpenseAnalysis(AIPayload):
    pattern: Text = ""
    comparison: Text = ""
    suggestions: TextList = Field(default_factory=list)
    category_feedback: Text = ""
    impact_score: Annotated[float, _bounded(1, 10, 5)] = 5


class FinancialInsights(AIPayload):
    trends: Text = ""
    budget_performance: Text = ""
    top_categories: list[Any] = Field(default_factory=list)
    anomalies: list[Any] = Field(default_factory=list)
    health_score: Annotated[int, _bounded(0, 100, 0, integer=True)] = 0
    recommendations: TextList = Field(default_factory=list)


class BudgetRecommendations(AIPayload):
    recommended_budgets: dict[str, Any] = Field(default_factory=dict)
    reduction_areas: TextList = Field(default_factory=list)
    emergency_fund: Text = ""
    savings_target: Text = ""
    tips: TextList = Field(default_factory=list)


class SavingsOpportunities(AIPayload):
    subscriptions: list[Any] = Field(default_factory=list)
    recurring_savings: list[Any] = Field(default_factory=list)
    alternatives: list[Any] = Field(default_factory=list)
    seasonal_tips: TextList = Field(default_factory=list)
    long_term_goals: TextList = Field(default_factory=list)


class FinancialGoals(AIPayload):
    short_term: TextList = Field(default_factory=list)
    medium_term: TextList = Field(default_factory=list)
    long_term: TextList = Field(default_factory=list)
    emergency_fund: Text = ""
    investments: Text = ""


class SpendingPredictions(AIPayload):
    total_prediction: Annotated[float, _bounded(0, float("inf"), 0)] = 0
    category_breakdown: dict[str, Any] = Field(default_factory=dict)
    seasonal_factors: list[Any] = Field(default_factory=list)
    alerts: TextList = Field(default_factory=list)
    confidence: Annotated[float, _bounded(0, 100, 0)] = 0


class TrendAnalysis(AIPayload):
    category_trends: list[Any] = Field(default_factory=list)
    seasonal_patterns: list[Any] = Field(default_factory=list)
    anomalies: list[Any] = Field(default_factory=list)
    predictions: list[Any] = Field(default_factory=list)
    analysis: Text = ""
    recommendations: TextList = Field(default_factory=list)


class BudgetOptimization(AIPayload):
    optimized_budget: dict[str, Any] = Field(default_factory=dict)
    adjustments: list[Any] = Field(default_factory=list)
    savings_opportunities: list[Any] = Field(default_factory=list)
    goal_alignment: Text = ""


class CategoryAnswer(AIPayload):
    """Provider answer to a categorisation prompt."""
    category: Text = ""


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatReply(BaseModel):
    message: str
    timestamp: dt.datetime
    suggestions: list[str] = Field(default_factory=list)


class FinancialContext(BaseModel):
    monthly_spending: float = 0.0
    top_categories: dict[str, float] = Field(default_factory=dict)
    budget_status: list[dict[str, Any]] = Field(default_factory=list)
    recent_insights: Optional[Any] = None


# ---------------------------------------------------------------------------
# Provider answer for receipt extraction (converted into ParsedReceipt)
# ---------------------------------------------------------------------------

class ReceiptItemAnswer(AIPayload):
    description: Text = ""
    amount: Any = None
    category: Text = ""


class ReceiptStoreAnswer(AIPayload):
    name: Text = ""
    address: Optional[Text] = None


class ReceiptTotalsAnswer(AIPayload):
    subtotal: Any = None
    tax: Any = None
    total: Any = None


class ReceiptAnswer(AIPayload):
    store: Optional[ReceiptStoreAnswer] = None
    date: Optional[Text] = None
    time: Optional[Text] = None
    items: list[ReceiptItemAnswer] = Field(default_factory=list)
    totals: ReceiptTotalsAnswer = Field(default_factory=ReceiptTotalsAnswer)
    payment_method: Optional[Text] = None

    @field_validator("items", mode="before")
    @classmethod
    def _wrap_plain_items(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [{"description": v} if isinstance(v, str) else v for v in value]


# ---------------------------------------------------------------------------
# Operation inputs
# ---------------------------------------------------------------------------

class ExpenseInput(BaseModel):
    amount: float = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    category: Optional[str] = None
    date: Optional[dt.date] = None
