"""
Receipt endpoints that never touch the AI provider.

POST /api/receipts/parse  — heuristic receipt parse of pasted text
"""
from __future__ import annotations

import logging

from fastapi import APIRouter

from expense_ai.errors import BadInput
from expense_ai.pipeline import receipt_parser
from expense_ai.schemas.requests import AnalyzeReceiptRequest

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/receipts/parse ─────────────────────────────────────────────
@router.post("/receipts/parse")
def parse_receipt(req: AnalyzeReceiptRequest):
    if not req.receipt_text.strip():
        raise BadInput("receipt_text must not be empty")

    logger.info("Parse receipt: len=%d", len(req.receipt_text))
    receipt = receipt_parser.parse(req.receipt_text)
    return {"success": True, "data": receipt.model_dump(mode="json")}
