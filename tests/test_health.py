"""
Unit tests for the financial health score.
"""
import asyncio
import datetime as dt

import pytest

from expense_ai.errors import ServiceUnavailable
from expense_ai.pipeline.health import HealthScorer, deterministic_score
from expense_ai.schemas import BudgetRecord, ExpenseRecord, HealthScore, ResultSource
from expense_ai.services.provider import DisabledProvider

from .conftest import TODAY, USER_ID, ScriptedProvider


def _expenses(*amounts):
    return [ExpenseRecord(amount=a, date=TODAY, category_name="Food & Dining") for a in amounts]


class TestDeterministicScore:
    def test_no_expenses_scores_zero(self):
        score = deterministic_score([], [BudgetRecord(amount=500)])
        assert score.score == 0
        assert score.breakdown == {"message": "No expense data available"}

    def test_half_budget_used(self):
        score = deterministic_score(_expenses(250), [BudgetRecord(amount=500)])
        # 100 - 50 + 25
        assert score.score == 75
        assert score.breakdown["spending_control"] == 50
        assert score.breakdown["budget_adherence"] == 50
        assert score.breakdown["data_quality"] == 5

    def test_without_budget_usage_is_neutral(self):
        score = deterministic_score(_expenses(10, 20), [])
        assert score.score == 75
        assert score.breakdown["budget_adherence"] == 50

    def test_clamped_at_zero_when_overspent(self):
        score = deterministic_score(_expenses(900), [BudgetRecord(amount=100)])
        assert score.score == 0
        assert score.breakdown["budget_adherence"] == 0

    def test_clamped_at_hundred(self):
        score = deterministic_score(_expenses(1), [BudgetRecord(amount=1000)])
        assert score.score == 100

    def test_data_quality_saturates(self):
        score = deterministic_score(_expenses(*([1.0] * 40)), [BudgetRecord(amount=10_000)])
        assert score.breakdown["data_quality"] == 100


class TestHealthScoreSchema:
    @pytest.mark.parametrize("raw, expected", [(150, 100), (-3, 0), (72.5, 73), ("64", 64)])
    def test_score_clamped_and_rounded(self, raw, expected):
        assert HealthScore(score=raw).score == expected

    def test_breakdown_coerced(self):
        score = HealthScore(score=80, breakdown={"savings": 61.6, "note": ["ok"]})
        assert score.breakdown == {"savings": 62, "note": '["ok"]'}

    def test_non_numeric_score_rejected(self):
        with pytest.raises(ValueError):
            HealthScore(score="great")


class TestHealthScorer:
    def test_no_data(self, store):
        result = asyncio.run(HealthScorer(ScriptedProvider("{}"), store).score(USER_ID))
        assert result.source == ResultSource.NO_DATA
        assert result.data.score == 0

    def test_disabled_uses_formula(self, store, add_expense, add_budget):
        add_expense(250)
        add_budget(500)
        result = asyncio.run(HealthScorer(DisabledProvider(), store).score(USER_ID))
        assert result.source == ResultSource.HEURISTIC
        assert result.data.score == 75
        assert result.degraded

    def test_provider_failure_uses_formula(self, store, add_expense):
        add_expense(40)
        provider = ScriptedProvider(ServiceUnavailable("down"))
        result = asyncio.run(HealthScorer(provider, store).score(USER_ID))
        assert result.source == ResultSource.HEURISTIC
        assert "temporarily unavailable" in result.notice

    def test_ai_answer(self, store, add_expense):
        add_expense(40)
        provider = ScriptedProvider('```json\n{"score": 104.2, "breakdown": {"savings_rate": 40}}\n```')
        result = asyncio.run(HealthScorer(provider, store).score(USER_ID))
        assert result.source == ResultSource.AI
        assert result.data.score == 100
        assert result.data.breakdown == {"savings_rate": 40}

    def test_malformed_answer_is_neutral(self, store, add_expense):
        add_expense(40)
        result = asyncio.run(HealthScorer(ScriptedProvider("Your score is good"), store).score(USER_ID))
        assert result.source == ResultSource.FALLBACK
        assert result.data.score == 75

    def test_overflowing_answer_is_neutral(self, store, add_expense):
        add_expense(40)
        provider = ScriptedProvider('{"score": 80, "breakdown": {"savings_rate": 1e400}}')
        result = asyncio.run(HealthScorer(provider, store).score(USER_ID))
        assert result.source == ResultSource.FALLBACK
        assert result.data.score == 75

    def test_expenses_outside_lookback_are_ignored(self, store, add_expense):
        add_expense(40, on=TODAY - dt.timedelta(days=90))
        result = asyncio.run(HealthScorer(DisabledProvider(), store).score(USER_ID))
        assert result.source == ResultSource.NO_DATA
