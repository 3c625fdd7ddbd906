"""
Provider response decoding.

``decode`` turns raw provider text into either ``Parsed(value)`` or
``Fallback(value, reason)`` where ``value`` has the same schema in both
cases. Decoding never raises: malformed output is always recovered into a
default-shaped object built by the caller-supplied fallback constructor.
"""
from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Generic, TypeVar, Union

from pydantic import BaseModel, ValidationError

from expense_ai.pipeline.category_matcher import match
from expense_ai.pipeline.normalizer import normalize
from expense_ai.pipeline.receipt_parser import DATE_PATTERN, detect_date, normalize_date
from expense_ai.schemas import (
    BudgetOptimization,
    BudgetRecommendations,
    CategoryInfo,
    ExpenseAnalysis,
    FinancialGoals,
    FinancialInsights,
    HealthScore,
    LineItem,
    ParsedReceipt,
    ReceiptAnswer,
    ReceiptTotals,
    SavingsOpportunities,
    StoreInfo,
    TrendAnalysis,
)
from expense_ai.schemas.base import _to_cents

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

NARRATIVE_LIMIT = 200
TIP_LIMIT = 100
NEUTRAL_HEALTH_SCORE = 75
MAX_CHAT_SUGGESTIONS = 3

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_SUGGESTION_WORDS = ("suggest", "recommend", "consider")


# ---------------------------------------------------------------------------
# Tagged result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True)
class Fallback(Generic[T]):
    value: T
    reason: str


Decoded = Union[Parsed[T], Fallback[T]]


def extract_json_block(text: str) -> str | None:
    """Strip code fences and return the outermost ``{...}`` span, if any."""
    cleaned = _FENCE.sub("", text)
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return None
    return cleaned[start:end + 1]


def decode(text: str | None, schema: type[T], fallback: Callable[[str], T]) -> Decoded[T]:
    raw = text or ""
    block = extract_json_block(raw)
    if block is None:
        logger.warning("%s: no JSON object in provider response", schema.__name__)
        return Fallback(fallback(raw), "no JSON object in response")
    try:
        return Parsed(schema.model_validate_json(block))
    except ValidationError as exc:
        logger.warning(
            "%s: provider response rejected (%d errors)", schema.__name__, exc.error_count()
        )
        return Fallback(fallback(raw), f"response did not match {schema.__name__}")


def summarize(text: str, limit: int = NARRATIVE_LIMIT) -> str:
    return text.strip()[:limit]


def extract_suggestions(text: str) -> list[str]:
    """Actionable lines from a free-text answer (at most three)."""
    found = [
        line.strip()
        for line in text.splitlines()
        if any(word in line.lower() for word in _SUGGESTION_WORDS)
    ]
    return found[:MAX_CHAT_SUGGESTIONS]


# ---------------------------------------------------------------------------
# Fallbacks for unusable provider output
# ---------------------------------------------------------------------------

def expense_analysis_fallback(raw: str) -> ExpenseAnalysis:
    return ExpenseAnalysis(
        pattern="Analysis generated",
        comparison=summarize(raw),
        suggestions=["Review spending in this category"],
        category_feedback="Category seems appropriate",
        impact_score=5,
    )


def insights_fallback(raw: str, health_score: int) -> FinancialInsights:
    return FinancialInsights(
        trends="Spending patterns analyzed",
        budget_performance="Performance tracked",
        health_score=health_score,
        recommendations=[summarize(raw, TIP_LIMIT)] if raw.strip() else [],
    )


def budget_recommendations_fallback(raw: str) -> BudgetRecommendations:
    return BudgetRecommendations(
        emergency_fund="Consider building an emergency fund",
        savings_target="20% of income",
        tips=[summarize(raw, TIP_LIMIT)] if raw.strip() else [],
    )


def savings_fallback(raw: str) -> SavingsOpportunities:
    return SavingsOpportunities(
        long_term_goals=[summarize(raw, TIP_LIMIT)] if raw.strip() else [],
    )


def trends_fallback(raw: str) -> TrendAnalysis:
    return TrendAnalysis(analysis=summarize(raw))


def optimization_fallback(raw: str) -> BudgetOptimization:
    return BudgetOptimization(goal_alignment=summarize(raw))


def health_score_fallback(raw: str) -> HealthScore:
    return HealthScore(
        score=NEUTRAL_HEALTH_SCORE,
        breakdown={"message": "Score estimated; detailed breakdown unavailable"},
    )


def default_goals(raw: str = "") -> FinancialGoals:
    return FinancialGoals(
        short_term=["Build emergency fund of $1000", "Reduce dining out by 20%"],
        medium_term=["Save $5000 for vacation", "Pay off credit card debt"],
        long_term=["Save for house down payment", "Build retirement fund"],
        emergency_fund="Aim for 3-6 months of expenses",
        investments="Consider index funds and retirement accounts",
    )


# ---------------------------------------------------------------------------
# Receipt answers
# ---------------------------------------------------------------------------

def _answer_date(value: str | None) -> dt.date | None:
    if not value:
        return None
    m = DATE_PATTERN.search(value)
    return normalize_date(m.group(1)) if m else None


def _answer_amount(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = _to_cents(value)
    except (ValueError, ArithmeticError):
        return None
    return amount if amount >= 0 else None


def receipt_from_answer(
    answer: ReceiptAnswer, raw_text: str, categories: list[CategoryInfo]
) -> ParsedReceipt | None:
    """Convert a provider receipt answer; ``None`` when nothing usable came back.

    Items the line-item invariants reject (blank description, amount outside
    ``(0, 1000)``) are dropped individually.
    """
    receipt_date = _answer_date(answer.date) or detect_date(normalize(raw_text)) or dt.date.today()

    items: list[LineItem] = []
    for entry in answer.items:
        amount = _answer_amount(entry.amount)
        suggestion = match(entry.category, categories)
        try:
            items.append(
                LineItem(
                    description=entry.description.strip(),
                    amount=amount,
                    date=receipt_date,
                    category_id=suggestion.category_id if suggestion else None,
                    category_name=suggestion.category_name if suggestion else None,
                )
            )
        except ValidationError:
            logger.info("Dropping implausible receipt item %r (%s)", entry.description, entry.amount)

    store = None
    if answer.store and answer.store.name.strip():
        store = StoreInfo(name=answer.store.name.strip(), address=answer.store.address or None)

    totals = ReceiptTotals(
        subtotal=_answer_amount(answer.totals.subtotal),
        tax=_answer_amount(answer.totals.tax),
        total=_answer_amount(answer.totals.total),
    )
    if store is None and not items and totals.total is None:
        return None

    return ParsedReceipt(
        store=store,
        date=receipt_date,
        time=answer.time or None,
        items=items,
        totals=totals,
        payment_method=answer.payment_method or None,
    )
