"""
HTTP request bodies.
"""
from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field, field_validator

from expense_ai.schemas.insights import ChatTurn, ExpenseInput


class AnalyzeReceiptRequest(BaseModel):
    receipt_text: str


class ReceiptImageRequest(BaseModel):
    """Base64 image, optionally as a ``data:image/...;base64,`` URL."""
    image: str

    @field_validator("image")
    @classmethod
    def _strip_data_url(cls, value: str) -> str:
        if value.startswith("data:") and "," in value:
            value = value.split(",", 1)[1]
        return value.strip()

    def image_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.image, validate=True)
        except (binascii.Error, ValueError):
            return b""


class AnalyzeExpenseRequest(ExpenseInput):
    pass


class CategorizeRequest(BaseModel):
    description: str
    amount: float = 0.0


class OptimizeBudgetRequest(BaseModel):
    current_budget: dict[str, Any] = Field(default_factory=dict)
    goals: Any = None


class ChatRequest(BaseModel):
    message: str
    conversation_history: list[ChatTurn] = Field(default_factory=list)
