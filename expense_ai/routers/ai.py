"""
AI endpoints.

POST /api/ai/analyze-receipt          — receipt text → ParsedReceipt
POST /api/ai/analyze-receipt-image    — base64 image → OCR → ParsedReceipt
POST /api/ai/analyze-expense          — single expense analysis
GET  /api/ai/insights                 — financial overview (cached)
GET  /api/ai/budget-recommendations   — (cached)
GET  /api/ai/savings-opportunities    — (cached)
GET  /api/ai/financial-goals          — (cached)
GET  /api/ai/spending-predictions     — projection for a timeframe
GET  /api/ai/trends-analysis          — trends over a period (cached)
POST /api/ai/optimize-budget          — budget optimisation against goals
POST /api/ai/categorize               — description → category suggestion
GET  /api/ai/health-score             — financial health score
POST /api/ai/chat                     — free-text advisor
GET  /api/ai/cached-insights/{type}   — latest valid cached insight

Every response is ``{"success": true, "data", "source", "degraded", ...}``.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from expense_ai.dependencies import get_orchestrator, get_user_id
from expense_ai.errors import BadInput
from expense_ai.schemas import AIResult, InsightType
from expense_ai.schemas.requests import (
    AnalyzeExpenseRequest,
    AnalyzeReceiptRequest,
    CategorizeRequest,
    ChatRequest,
    OptimizeBudgetRequest,
    ReceiptImageRequest,
)
from expense_ai.services.orchestrator import AIOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ai")


def _respond(result: AIResult) -> dict:
    return {"success": True, **result.model_dump(mode="json")}


# ── POST /api/ai/analyze-receipt ─────────────────────────────────────────
@router.post("/analyze-receipt")
async def analyze_receipt(
    req: AnalyzeReceiptRequest, orchestrator: AIOrchestrator = Depends(get_orchestrator)
):
    logger.info("Analyze receipt text: len=%d", len(req.receipt_text))
    return _respond(await orchestrator.extract_from_receipt_text(req.receipt_text))


# ── POST /api/ai/analyze-receipt-image ───────────────────────────────────
@router.post("/analyze-receipt-image")
async def analyze_receipt_image(
    req: ReceiptImageRequest, orchestrator: AIOrchestrator = Depends(get_orchestrator)
):
    image_bytes = req.image_bytes()
    if not image_bytes:
        raise BadInput("Invalid image data")
    logger.info("Analyze receipt image: %d bytes", len(image_bytes))
    return _respond(await orchestrator.analyze_receipt_image(image_bytes))


# ── POST /api/ai/analyze-expense ─────────────────────────────────────────
@router.post("/analyze-expense")
async def analyze_expense(
    req: AnalyzeExpenseRequest,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.analyze_expense(req, user_id=user_id))


# ── GET /api/ai/insights ─────────────────────────────────────────────────
@router.get("/insights")
async def insights(
    refresh: bool = False,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.generate_financial_insights(user_id, refresh=refresh))


# ── GET /api/ai/budget-recommendations ───────────────────────────────────
@router.get("/budget-recommendations")
async def budget_recommendations(
    refresh: bool = False,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.generate_budget_recommendations(user_id, refresh=refresh))


# ── GET /api/ai/savings-opportunities ────────────────────────────────────
@router.get("/savings-opportunities")
async def savings_opportunities(
    refresh: bool = False,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.analyze_savings_opportunities(user_id, refresh=refresh))


# ── GET /api/ai/financial-goals ──────────────────────────────────────────
@router.get("/financial-goals")
async def financial_goals(
    refresh: bool = False,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.generate_financial_goals(user_id, refresh=refresh))


# ── GET /api/ai/spending-predictions ─────────────────────────────────────
@router.get("/spending-predictions")
async def spending_predictions(
    timeframe: str = Query("month", pattern="^(week|month|quarter|year)$"),
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.generate_spending_predictions(user_id, timeframe))


# ── GET /api/ai/trends-analysis ──────────────────────────────────────────
@router.get("/trends-analysis")
async def trends_analysis(
    period: str = Query("6months", pattern="^(3months|6months|1year|2years)$"),
    refresh: bool = False,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.analyze_trends(user_id, period, refresh=refresh))


# ── POST /api/ai/optimize-budget ─────────────────────────────────────────
@router.post("/optimize-budget")
async def optimize_budget(
    req: OptimizeBudgetRequest,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.optimize_budget(user_id, req.current_budget, req.goals))


# ── POST /api/ai/categorize ──────────────────────────────────────────────
@router.post("/categorize")
async def categorize(req: CategorizeRequest, orchestrator: AIOrchestrator = Depends(get_orchestrator)):
    return _respond(await orchestrator.categorize(req.description, req.amount))


# ── GET /api/ai/health-score ─────────────────────────────────────────────
@router.get("/health-score")
async def health_score(
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.generate_health_score(user_id))


# ── POST /api/ai/chat ────────────────────────────────────────────────────
@router.post("/chat")
async def chat(
    req: ChatRequest,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    return _respond(await orchestrator.chat_response(user_id, req.message, req.conversation_history))


# ── GET /api/ai/cached-insights/{insight_type} ───────────────────────────
@router.get("/cached-insights/{insight_type}")
def cached_insight(
    insight_type: InsightType,
    user_id: int = Depends(get_user_id),
    orchestrator: AIOrchestrator = Depends(get_orchestrator),
):
    insight = orchestrator.get_cached_insight(user_id, insight_type)
    if insight is None:
        logger.info("No valid %s insight for user %s", insight_type.value, user_id)
        raise HTTPException(status_code=404, detail="No cached insight")
    return {"success": True, "data": insight.model_dump(mode="json")}
