"""
Receipt extraction and insight pipeline.

Stage modules:
  - normalizer        raw text → trimmed non-empty lines
  - receipt_parser    lines → ParsedReceipt (heuristic, never raises)
  - category_matcher  free-text label → CategorySuggestion | None
  - prompts           context → provider prompt
  - responses         provider text → Parsed | Fallback
  - health            expenses + budgets → HealthScore
  - defaults          locally computed stand-ins for AI payloads
"""
from expense_ai.pipeline.category_matcher import match  # noqa: F401
from expense_ai.pipeline.receipt_parser import parse  # noqa: F401
