"""
AI Orchestrator — one entry point per analytical operation.

Every operation follows the same path: gather context from the data
store, build a prompt, ask the provider, decode the answer. What happens
when a step fails is fixed per operation:

* malformed provider output is always recovered into a default-shaped
  payload (``source=fallback``);
* a disabled or failing provider degrades to a locally computed payload
  where one exists, otherwise ``ServiceUnavailable`` is raised;
* insight operations are served from the insight cache when a valid row
  exists and are coalesced per ``(user_id, type)`` while in flight;
* blocking data-store and cache calls run in the threadpool, and shared
  insight work opens its own session so no single request owns it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from expense_ai.errors import BadInput, ServiceUnavailable
from expense_ai.pipeline import defaults, receipt_parser
from expense_ai.pipeline.category_matcher import match
from expense_ai.pipeline.health import HealthScorer, deterministic_score
from expense_ai.pipeline.prompts import (
    build_budget_optimization_prompt,
    build_budget_recommendation_prompt,
    build_categorization_prompt,
    build_chat_prompt,
    build_expense_analysis_prompt,
    build_goals_prompt,
    build_insights_prompt,
    build_prediction_prompt,
    build_receipt_prompt,
    build_savings_prompt,
    build_trends_prompt,
)
from expense_ai.pipeline.responses import (
    Decoded,
    Parsed,
    budget_recommendations_fallback,
    decode,
    default_goals,
    expense_analysis_fallback,
    extract_suggestions,
    insights_fallback,
    optimization_fallback,
    receipt_from_answer,
    savings_fallback,
    summarize,
    trends_fallback,
)
from expense_ai.schemas import (
    AIInsight,
    AIResult,
    BudgetOptimization,
    BudgetRecommendations,
    CategoryAnswer,
    CategoryInfo,
    CategorySuggestion,
    ChatReply,
    ChatTurn,
    ExpenseAnalysis,
    ExpenseInput,
    ExpenseRecord,
    FinancialContext,
    FinancialGoals,
    FinancialInsights,
    HealthScore,
    InsightType,
    ParsedReceipt,
    ReceiptAnswer,
    ResultSource,
    SavingsOpportunities,
    SpendingPredictions,
    TrendAnalysis,
)
from expense_ai.services.data_store import (
    FinancialDataStore,
    category_breakdown,
    monthly_spending,
    spending_patterns,
    total_spent,
)
from expense_ai.services.insight_cache import InsightCache
from expense_ai.services.ocr import OCRService
from expense_ai.services.provider import AIProvider
from expense_ai.services.single_flight import SingleFlight

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)

HISTORY_DAYS = 90
MAX_HISTORY = 50
PREDICTION_PERIOD = "6months"
OPTIMIZATION_EXPENSES = 100
RECEIPT_HEURISTIC_NOTICE = "AI extraction unavailable - receipt parsed heuristically"
CATEGORY_HEURISTIC_NOTICE = "Category matched by name"


InsightCompute = Callable[[FinancialDataStore, InsightCache], Awaitable[AIResult[P]]]


class AIOrchestrator:
    def __init__(
        self,
        provider: AIProvider,
        store: FinancialDataStore,
        cache: InsightCache,
        *,
        flights: Optional[SingleFlight] = None,
        ocr: Optional[OCRService] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.provider = provider
        self.store = store
        self.cache = cache
        self.flights = flights or SingleFlight()
        self.ocr = ocr
        self.session_factory = session_factory
        self.health = HealthScorer(provider, store)
        # a Session is never used from two threads at once
        self._db_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    async def _blocking(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a synchronous data-store or cache call off the event loop."""
        async with self._db_lock:
            return await run_in_threadpool(fn, *args)

    def _require_provider(self) -> None:
        if not self.provider.enabled:
            raise ServiceUnavailable("AI service is not available")

    def _degraded_notice(self) -> str:
        return defaults.AI_DISABLED_NOTICE if not self.provider.enabled else defaults.AI_UNAVAILABLE_NOTICE

    async def _ask(self, prompt: str, schema: type[P], fallback: Callable[[str], P]) -> Decoded[P]:
        """Provider round trip; ``ServiceUnavailable`` propagates."""
        text = await self.provider.generate(prompt)
        return decode(text, schema, fallback)

    @staticmethod
    def _wrap(decoded: Decoded[P]) -> AIResult[P]:
        if isinstance(decoded, Parsed):
            return AIResult(data=decoded.value, source=ResultSource.AI)
        return AIResult(data=decoded.value, source=ResultSource.FALLBACK, notice=decoded.reason)

    async def _remember(
        self,
        cache: InsightCache,
        user_id: int,
        insight_type: InsightType,
        result: AIResult[P],
        **metadata: Any,
    ) -> AIResult[P]:
        stored = await self._blocking(
            cache.store,
            user_id,
            insight_type,
            result.data.model_dump(mode="json"),
            {"source": result.source.value, **metadata},
        )
        return result.model_copy(update={"cached_at": stored.created_at, "expires_at": stored.expires_at})

    def _from_cache(
        self,
        user_id: int,
        insight_type: InsightType,
        schema: type[P],
        metadata: dict[str, Any],
    ) -> Optional[AIResult[P]]:
        hit = self.cache.fetch_latest_valid(user_id, insight_type)
        if hit is None:
            return None
        if any(hit.metadata.get(key) != value for key, value in metadata.items()):
            return None
        try:
            data = schema.model_validate(hit.content)
            source = ResultSource(hit.metadata.get("source", ResultSource.AI.value))
        except (ValidationError, ValueError):
            logger.warning("Ignoring unreadable %s insight %s", insight_type.value, hit.id)
            return None
        logger.info("Serving cached %s insight %s for user %s", insight_type.value, hit.id, user_id)
        return AIResult(data=data, source=source, cached_at=hit.created_at, expires_at=hit.expires_at)

    async def _on_own_session(self, compute: InsightCompute[P]) -> AIResult[P]:
        """Run shared insight work on a session no request scope can close."""
        if self.session_factory is None:
            return await compute(self.store, self.cache)
        db = self.session_factory()
        try:
            return await compute(self.store.with_session(db), self.cache.with_session(db))
        finally:
            db.close()

    async def _cached_insight(
        self,
        user_id: int,
        insight_type: InsightType,
        schema: type[P],
        compute: InsightCompute[P],
        *,
        refresh: bool = False,
        **metadata: Any,
    ) -> AIResult[P]:
        if not refresh:
            cached = await self._blocking(self._from_cache, user_id, insight_type, schema, metadata)
            if cached is not None:
                return cached
        key = (user_id, insight_type, *sorted(metadata.items()))
        return await self.flights.do(key, lambda: self._on_own_session(compute))

    # ------------------------------------------------------------------
    # Expense analysis
    # ------------------------------------------------------------------

    async def analyze_expense(
        self,
        expense: ExpenseInput,
        history: Optional[list[ExpenseRecord]] = None,
        *,
        user_id: Optional[int] = None,
    ) -> AIResult[ExpenseAnalysis]:
        self._require_provider()
        if history is None:
            history = []
            if user_id is not None:
                recent = await self._blocking(self.store.recent_expenses, user_id, HISTORY_DAYS)
                history = recent[:MAX_HISTORY]
        prompt = build_expense_analysis_prompt(expense, history)
        return self._wrap(await self._ask(prompt, ExpenseAnalysis, expense_analysis_fallback))

    # ------------------------------------------------------------------
    # Cached insights
    # ------------------------------------------------------------------

    async def generate_financial_insights(
        self, user_id: int, *, refresh: bool = False
    ) -> AIResult[FinancialInsights]:
        async def compute(store: FinancialDataStore, cache: InsightCache) -> AIResult[FinancialInsights]:
            expenses = await self._blocking(store.recent_expenses, user_id)
            if not expenses:
                return AIResult(
                    data=defaults.no_data_insights(),
                    source=ResultSource.NO_DATA,
                    notice=defaults.NO_DATA_NOTICE,
                )
            budgets = await self._blocking(store.budgets, user_id)
            local_score = deterministic_score(expenses, budgets).score
            prompt = build_insights_prompt(total_spent(expenses), category_breakdown(expenses), budgets)
            try:
                decoded = await self._ask(
                    prompt, FinancialInsights, lambda raw: insights_fallback(raw, local_score)
                )
            except ServiceUnavailable:
                notice = self._degraded_notice()
                return AIResult(
                    data=defaults.local_insights(expenses, budgets, notice),
                    source=ResultSource.DEFAULT,
                    notice=notice,
                )
            return await self._remember(cache, user_id, InsightType.FINANCIAL_OVERVIEW, self._wrap(decoded))

        return await self._cached_insight(
            user_id, InsightType.FINANCIAL_OVERVIEW, FinancialInsights, compute, refresh=refresh
        )

    async def generate_budget_recommendations(
        self, user_id: int, *, refresh: bool = False
    ) -> AIResult[BudgetRecommendations]:
        async def compute(store: FinancialDataStore, cache: InsightCache) -> AIResult[BudgetRecommendations]:
            expenses = await self._blocking(store.recent_expenses, user_id)
            if not expenses:
                return AIResult(
                    data=defaults.no_data_budget_recommendations(),
                    source=ResultSource.NO_DATA,
                    notice=defaults.NO_DATA_NOTICE,
                )
            budgets = await self._blocking(store.budgets, user_id)
            prompt = build_budget_recommendation_prompt(monthly_spending(expenses), budgets)
            try:
                decoded = await self._ask(prompt, BudgetRecommendations, budget_recommendations_fallback)
            except ServiceUnavailable:
                notice = self._degraded_notice()
                return AIResult(
                    data=defaults.local_budget_recommendations(expenses, notice),
                    source=ResultSource.DEFAULT,
                    notice=notice,
                )
            return await self._remember(cache, user_id, InsightType.BUDGET_RECOMMENDATIONS, self._wrap(decoded))

        return await self._cached_insight(
            user_id, InsightType.BUDGET_RECOMMENDATIONS, BudgetRecommendations, compute, refresh=refresh
        )

    async def analyze_savings_opportunities(
        self, user_id: int, *, refresh: bool = False
    ) -> AIResult[SavingsOpportunities]:
        async def compute(store: FinancialDataStore, cache: InsightCache) -> AIResult[SavingsOpportunities]:
            expenses = await self._blocking(store.expenses_for_period, user_id, PREDICTION_PERIOD)
            if not expenses:
                return AIResult(
                    data=defaults.no_data_savings(),
                    source=ResultSource.NO_DATA,
                    notice=defaults.NO_DATA_NOTICE,
                )
            prompt = build_savings_prompt(spending_patterns(expenses))
            try:
                decoded = await self._ask(prompt, SavingsOpportunities, savings_fallback)
            except ServiceUnavailable:
                notice = self._degraded_notice()
                return AIResult(
                    data=defaults.local_savings(expenses, notice),
                    source=ResultSource.DEFAULT,
                    notice=notice,
                )
            return await self._remember(cache, user_id, InsightType.SAVINGS_OPPORTUNITIES, self._wrap(decoded))

        return await self._cached_insight(
            user_id, InsightType.SAVINGS_OPPORTUNITIES, SavingsOpportunities, compute, refresh=refresh
        )

    async def generate_financial_goals(
        self, user_id: int, *, refresh: bool = False
    ) -> AIResult[FinancialGoals]:
        async def compute(store: FinancialDataStore, cache: InsightCache) -> AIResult[FinancialGoals]:
            expenses = await self._blocking(store.recent_expenses, user_id)
            income = await self._blocking(store.income, user_id)
            prompt = build_goals_prompt(total_spent(expenses), category_breakdown(expenses), income)
            try:
                decoded = await self._ask(prompt, FinancialGoals, default_goals)
            except ServiceUnavailable:
                return AIResult(
                    data=default_goals(), source=ResultSource.DEFAULT, notice=self._degraded_notice()
                )
            return await self._remember(cache, user_id, InsightType.FINANCIAL_GOALS, self._wrap(decoded))

        return await self._cached_insight(
            user_id, InsightType.FINANCIAL_GOALS, FinancialGoals, compute, refresh=refresh
        )

    async def analyze_trends(
        self, user_id: int, period: str = PREDICTION_PERIOD, *, refresh: bool = False
    ) -> AIResult[TrendAnalysis]:
        async def compute(store: FinancialDataStore, cache: InsightCache) -> AIResult[TrendAnalysis]:
            expenses = await self._blocking(store.expenses_for_period, user_id, period)
            if not expenses:
                return AIResult(
                    data=defaults.no_data_trends(),
                    source=ResultSource.NO_DATA,
                    notice=defaults.NO_DATA_NOTICE,
                )
            prompt = build_trends_prompt(monthly_spending(expenses), period)
            try:
                decoded = await self._ask(prompt, TrendAnalysis, trends_fallback)
            except ServiceUnavailable:
                notice = self._degraded_notice()
                return AIResult(
                    data=defaults.default_trends(notice), source=ResultSource.DEFAULT, notice=notice
                )
            return await self._remember(cache, user_id, InsightType.TRENDS, self._wrap(decoded), period=period)

        return await self._cached_insight(
            user_id, InsightType.TRENDS, TrendAnalysis, compute, refresh=refresh, period=period
        )

    # ------------------------------------------------------------------
    # Uncached planning operations
    # ------------------------------------------------------------------

    async def generate_spending_predictions(
        self, user_id: int, timeframe: str = "month"
    ) -> AIResult[SpendingPredictions]:
        history = await self._blocking(self.store.expenses_for_period, user_id, PREDICTION_PERIOD)
        recent = await self._blocking(self.store.recent_expenses, user_id)
        if not history:
            return AIResult(
                data=defaults.local_predictions([], timeframe, self.store.lookback_days),
                source=ResultSource.NO_DATA,
                notice=defaults.NO_DATA_NOTICE,
            )
        try:
            decoded = await self._ask(
                build_prediction_prompt(monthly_spending(history), timeframe),
                SpendingPredictions,
                lambda raw: defaults.local_predictions(recent, timeframe, self.store.lookback_days),
            )
        except ServiceUnavailable:
            return AIResult(
                data=defaults.local_predictions(recent, timeframe, self.store.lookback_days),
                source=ResultSource.HEURISTIC,
                notice=self._degraded_notice(),
            )
        return self._wrap(decoded)

    async def optimize_budget(
        self, user_id: int, current_budget: dict[str, Any], goals: Any
    ) -> AIResult[BudgetOptimization]:
        self._require_provider()
        recent = await self._blocking(self.store.recent_expenses, user_id, HISTORY_DAYS)
        expenses = recent[:OPTIMIZATION_EXPENSES]
        prompt = build_budget_optimization_prompt(expenses, current_budget, goals)
        return self._wrap(await self._ask(prompt, BudgetOptimization, optimization_fallback))

    async def generate_health_score(self, user_id: int) -> AIResult[HealthScore]:
        return await self.health.score(user_id)

    # ------------------------------------------------------------------
    # Categorisation and receipts
    # ------------------------------------------------------------------

    @staticmethod
    def _match_description(
        description: str, categories: list[CategoryInfo], notice: str
    ) -> AIResult[Optional[CategorySuggestion]]:
        return AIResult(
            data=match(description, categories),
            source=ResultSource.HEURISTIC,
            notice=notice,
        )

    async def categorize(
        self, description: str, amount: float = 0.0
    ) -> AIResult[Optional[CategorySuggestion]]:
        if not description or not description.strip():
            raise BadInput("Description is required")

        categories = await self._blocking(self.store.categories)
        try:
            decoded = await self._ask(
                build_categorization_prompt(description, amount, categories),
                CategoryAnswer,
                lambda raw: CategoryAnswer(category=raw.strip()),
            )
        except ServiceUnavailable:
            return self._match_description(description, categories, self._degraded_notice())

        suggestion = match(decoded.value.category, categories)
        if suggestion is None:
            logger.info("Provider category %r matched nothing, matching description", decoded.value.category)
            return self._match_description(description, categories, CATEGORY_HEURISTIC_NOTICE)
        return self._wrap(decoded).model_copy(update={"data": suggestion})

    async def _parse_heuristically(
        self, text: str, source: ResultSource, notice: str
    ) -> AIResult[ParsedReceipt]:
        receipt = receipt_parser.parse(text)
        categories = await self._blocking(self.store.categories)
        items = []
        for item in receipt.items:
            suggestion = match(item.description, categories)
            if suggestion is not None:
                item = item.model_copy(
                    update={"category_id": suggestion.category_id, "category_name": suggestion.category_name}
                )
            items.append(item)
        return AIResult(data=receipt.model_copy(update={"items": items}), source=source, notice=notice)

    async def extract_from_receipt_text(self, text: str) -> AIResult[ParsedReceipt]:
        if not text or not text.strip():
            raise BadInput("Receipt text is required")

        try:
            decoded = await self._ask(build_receipt_prompt(text), ReceiptAnswer, lambda raw: ReceiptAnswer())
        except ServiceUnavailable:
            return await self._parse_heuristically(text, ResultSource.HEURISTIC, RECEIPT_HEURISTIC_NOTICE)

        receipt = None
        if isinstance(decoded, Parsed):
            categories = await self._blocking(self.store.categories)
            receipt = receipt_from_answer(decoded.value, text, categories)
        if receipt is None:
            logger.warning("Provider receipt answer unusable, parsing heuristically")
            return await self._parse_heuristically(text, ResultSource.FALLBACK, RECEIPT_HEURISTIC_NOTICE)
        return AIResult(data=receipt, source=ResultSource.AI)

    async def _categorize_items(self, receipt: ParsedReceipt) -> ParsedReceipt:
        items = []
        for item in receipt.items:
            if item.category_id is None:
                suggestion = (await self.categorize(item.description, float(item.amount))).data
                if suggestion is not None:
                    item = item.model_copy(
                        update={"category_id": suggestion.category_id, "category_name": suggestion.category_name}
                    )
            items.append(item)
        return receipt.model_copy(update={"items": items})

    async def analyze_receipt_image(self, image_bytes: bytes) -> AIResult[ParsedReceipt]:
        if self.ocr is None:
            raise ServiceUnavailable("OCR is not available")

        text = await self.ocr.extract_text(image_bytes)
        if not text.strip():
            raise BadInput("No text could be extracted from the image")

        result = await self.extract_from_receipt_text(text)
        if self.provider.enabled and result.data.items:
            result = result.model_copy(update={"data": await self._categorize_items(result.data)})
        return result

    # ------------------------------------------------------------------
    # Chat and context
    # ------------------------------------------------------------------

    def get_user_financial_context(self, user_id: int) -> FinancialContext:
        expenses = self.store.recent_expenses(user_id)
        latest = self.cache.fetch_latest_valid(user_id, InsightType.FINANCIAL_OVERVIEW)
        return FinancialContext(
            monthly_spending=total_spent(expenses),
            top_categories=category_breakdown(expenses),
            budget_status=[b.model_dump(mode="json") for b in self.store.budgets(user_id)],
            recent_insights=latest.content if latest else None,
        )

    async def chat_response(
        self, user_id: int, message: str, history: Optional[list[ChatTurn]] = None
    ) -> AIResult[ChatReply]:
        if not message or not message.strip():
            raise BadInput("Message is required")
        self._require_provider()

        context = await self._blocking(self.get_user_financial_context, user_id)
        prompt = build_chat_prompt(message, history or [], context)
        text = await self.provider.generate(prompt)
        if not text or not text.strip():
            raise ServiceUnavailable("AI provider returned an empty answer")

        logger.info("Chat answer for user %s: %s", user_id, summarize(text, 60))
        return AIResult(
            data=ChatReply(
                message=text.strip(),
                timestamp=datetime.now(timezone.utc),
                suggestions=extract_suggestions(text),
            ),
            source=ResultSource.AI,
        )

    def get_cached_insight(self, user_id: int, insight_type: InsightType) -> Optional[AIInsight]:
        return self.cache.fetch_latest_valid(user_id, insight_type)
