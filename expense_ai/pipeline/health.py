"""
Financial health score — bounded integer in [0, 100].

Two interchangeable strategies: a provider-backed estimate and a
deterministic budget-usage formula. Zero expenses always score 0.
"""
from __future__ import annotations

import logging

from fastapi.concurrency import run_in_threadpool

from expense_ai.errors import ServiceUnavailable
from expense_ai.pipeline.prompts import build_health_score_prompt
from expense_ai.pipeline.responses import Parsed, decode, health_score_fallback
from expense_ai.schemas import AIResult, BudgetRecord, ExpenseRecord, HealthScore, ResultSource
from expense_ai.schemas.base import clamp, round_half_up
from expense_ai.services.data_store import FinancialDataStore, total_spent
from expense_ai.services.provider import AIProvider

logger = logging.getLogger(__name__)

NEUTRAL_BUDGET_USAGE = 50.0
SCORE_OFFSET = 25
DATA_QUALITY_SATURATION = 20
NO_DATA_MESSAGE = "No expense data available"


def no_data_score() -> HealthScore:
    return HealthScore(score=0, breakdown={"message": NO_DATA_MESSAGE})


def _percent(value: float) -> int:
    return int(clamp(round_half_up(value), 0, 100))


def deterministic_score(expenses: list[ExpenseRecord], budgets: list[BudgetRecord]) -> HealthScore:
    if not expenses:
        return no_data_score()

    spent = sum(e.amount for e in expenses)
    budget_total = sum(b.amount or 0.0 for b in budgets)

    if budget_total > 0:
        usage = spent / budget_total * 100
        adherence = (1 - spent / budget_total) * 100
    else:
        usage = NEUTRAL_BUDGET_USAGE
        adherence = NEUTRAL_BUDGET_USAGE

    data_quality = min(len(expenses), DATA_QUALITY_SATURATION) / DATA_QUALITY_SATURATION * 100

    return HealthScore(
        score=_percent(100 - usage + SCORE_OFFSET),
        breakdown={
            "spending_control": _percent(100 - usage),
            "budget_adherence": _percent(adherence),
            "data_quality": _percent(data_quality),
        },
    )


class HealthScorer:
    def __init__(self, provider: AIProvider, store: FinancialDataStore):
        self.provider = provider
        self.store = store

    async def score(self, user_id: int) -> AIResult[HealthScore]:
        expenses = await run_in_threadpool(self.store.recent_expenses, user_id)
        if not expenses:
            return AIResult[HealthScore](
                data=no_data_score(),
                source=ResultSource.NO_DATA,
                notice="Start tracking expenses to get a health score",
            )

        budgets = await run_in_threadpool(self.store.budgets, user_id)
        if not self.provider.enabled:
            return AIResult[HealthScore](
                data=deterministic_score(expenses, budgets),
                source=ResultSource.HEURISTIC,
                notice="AI features disabled - showing basic score",
            )

        savings = await run_in_threadpool(self.store.savings, user_id, total_spent(expenses))
        prompt = build_health_score_prompt(expenses, budgets, savings)
        try:
            text = await self.provider.generate(prompt)
        except ServiceUnavailable as exc:
            logger.warning("Health score: provider unavailable (%s), using formula", exc.detail)
            return AIResult[HealthScore](
                data=deterministic_score(expenses, budgets),
                source=ResultSource.HEURISTIC,
                notice="AI analysis temporarily unavailable - showing basic score",
            )

        decoded = decode(text, HealthScore, health_score_fallback)
        if isinstance(decoded, Parsed):
            return AIResult[HealthScore](data=decoded.value, source=ResultSource.AI)
        return AIResult[HealthScore](
            data=decoded.value, source=ResultSource.FALLBACK, notice=decoded.reason
        )
