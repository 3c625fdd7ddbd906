"""
FastAPI dependencies shared by the routers.
"""
from __future__ import annotations

from datetime import timedelta

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from expense_ai.config import settings
from expense_ai.database import get_db
from expense_ai.services.data_store import FinancialDataStore
from expense_ai.services.insight_cache import InsightCache
from expense_ai.services.orchestrator import AIOrchestrator


def get_user_id(x_user_id: int = Header(..., alias="X-User-Id", gt=0)) -> int:
    """Identity is asserted by the gateway in front of this service."""
    return x_user_id


def get_orchestrator(request: Request, db: Session = Depends(get_db)) -> AIOrchestrator:
    state = request.app.state
    return AIOrchestrator(
        state.provider,
        FinancialDataStore(db, lookback_days=settings.EXPENSE_LOOKBACK_DAYS),
        InsightCache(db, ttl=timedelta(hours=settings.AI_CACHE_TTL_HOURS)),
        flights=state.flights,
        ocr=state.ocr,
        session_factory=state.session_factory,
    )
