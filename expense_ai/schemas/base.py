"""
Canonical JSON schemas for the extraction & insight pipeline.

All pipeline stages produce and consume these Pydantic v2 models.
"""
from __future__ import annotations

import datetime as dt
import json
import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    computed_field,
    field_validator,
)

CENT = Decimal("0.01")
MAX_ITEM_AMOUNT = Decimal("1000")


# ---------------------------------------------------------------------------
# Lenient scalar types
# ---------------------------------------------------------------------------

def _to_cents(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(value, float):
        value = str(value)
    if isinstance(value, str):
        value = value.strip().replace("$", "").replace(",", "")
    if not isinstance(value, (str, int, Decimal)):
        raise ValueError(f"not an amount: {value!r}")
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise ValueError(f"not an amount: {value!r}")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        # more digits than the decimal context can hold
        raise ValueError(f"not an amount: {value!r}") from exc


Money = Annotated[
    Decimal,
    BeforeValidator(_to_cents),
    PlainSerializer(float, return_type=float, when_used="json"),
]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [_as_text(v) for v in value if v is not None and _as_text(v).strip()]


Text = Annotated[str, BeforeValidator(_as_text)]
TextList = Annotated[list[str], BeforeValidator(_as_text_list)]


def round_half_up(value: float) -> int:
    """Round to the nearest integer; ``ValueError`` for NaN, infinities and overflow."""
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a finite number: {value!r}") from exc


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Receipt
# ---------------------------------------------------------------------------

class StoreInfo(BaseModel):
    name: str
    address: Optional[str] = None


class LineItem(BaseModel):
    """A single purchased item. Never mutated; use ``model_copy(update=...)``."""
    model_config = ConfigDict(frozen=True)

    description: str = Field(..., min_length=1)
    amount: Money = Field(..., gt=0, lt=MAX_ITEM_AMOUNT)
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    date: dt.date


class ReceiptTotals(BaseModel):
    subtotal: Optional[Money] = Field(default=None, ge=0)
    tax: Optional[Money] = Field(default=None, ge=0)
    total: Optional[Money] = Field(default=None, ge=0)


class ParsedReceipt(BaseModel):
    store: Optional[StoreInfo] = None
    date: dt.date = Field(default_factory=dt.date.today)
    time: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    totals: ReceiptTotals = Field(default_factory=ReceiptTotals)
    payment_method: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def items_total(self) -> Money:
        return sum((item.amount for item in self.items), Decimal("0.00"))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def totals_mismatch(self) -> bool:
        """Printed total disagrees with the item sum (reported, never reconciled)."""
        if self.totals.total is None or not self.items:
            return False
        return self.totals.total != self.items_total


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

class CategoryInfo(BaseModel):
    id: int
    name: str
    icon: str = ""


class CategorySuggestion(BaseModel):
    category_id: int
    category_name: str
    confidence: float = Field(..., ge=0, le=1)


# ---------------------------------------------------------------------------
# Financial history (read from the data store)
# ---------------------------------------------------------------------------

class ExpenseRecord(BaseModel):
    id: Optional[int] = None
    amount: float
    description: Optional[str] = None
    date: dt.date
    category_id: Optional[int] = None
    category_name: Optional[str] = None


class BudgetRecord(BaseModel):
    id: Optional[int] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    amount: float = 0.0
    period: str = "monthly"


class IncomeSource(BaseModel):
    source: str
    amount: float


class IncomeSummary(BaseModel):
    monthly_income: float = 0.0
    sources: list[IncomeSource] = Field(default_factory=list)


class SavingsSummary(BaseModel):
    emergency_fund: float = 0.0
    investments: float = 0.0
    savings_rate: float = 0.0


# ---------------------------------------------------------------------------
# Health score
# ---------------------------------------------------------------------------

def _score_value(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError("score must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"score must be numeric: {value!r}") from exc
    if not math.isfinite(number):
        raise ValueError("score must be finite")
    return int(clamp(round_half_up(number), 0, 100))


class HealthScore(BaseModel):
    score: Annotated[int, BeforeValidator(_score_value)] = Field(..., ge=0, le=100)
    breakdown: dict[str, int | str] = Field(default_factory=dict)

    @field_validator("breakdown", mode="before")
    @classmethod
    def _coerce_breakdown(cls, value: Any) -> dict[str, int | str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("breakdown must be an object")
        coerced: dict[str, int | str] = {}
        for key, item in value.items():
            if isinstance(item, (int, float)) and not isinstance(item, bool):
                coerced[str(key)] = round_half_up(item)
            else:
                coerced[str(key)] = _as_text(item)
        return coerced


# ---------------------------------------------------------------------------
# Orchestrator result envelope
# ---------------------------------------------------------------------------

class ResultSource(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"      # provider answered, answer unusable
    HEURISTIC = "heuristic"    # deterministic computation stood in for AI
    DEFAULT = "default"        # AI disabled/unavailable, canned payload
    NO_DATA = "no_data"        # nothing to analyse yet


T = TypeVar("T")


class AIResult(BaseModel, Generic[T]):
    """Operation result; ``degraded`` marks anything not produced by the AI path."""
    data: T
    source: ResultSource = ResultSource.AI
    notice: Optional[str] = None
    cached_at: Optional[dt.datetime] = None
    expires_at: Optional[dt.datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def degraded(self) -> bool:
        return self.source != ResultSource.AI


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------

class InsightType(str, Enum):
    FINANCIAL_OVERVIEW = "financial_overview"
    BUDGET_RECOMMENDATIONS = "budget_recommendations"
    SAVINGS_OPPORTUNITIES = "savings_opportunities"
    FINANCIAL_GOALS = "financial_goals"
    TRENDS = "trends"


class AIInsight(BaseModel):
    id: Optional[int] = None
    user_id: int
    type: InsightType
    content: Any
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: dt.datetime
    expires_at: dt.datetime
