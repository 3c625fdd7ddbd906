"""
Text normalizer — raw OCR / pasted text → trimmed, non-empty lines.
"""
from __future__ import annotations

import re

_NUMERIC_LINE = re.compile(r"^\s*[\d.$\s]+\s*$")


def normalize(raw_text: str | None) -> list[str]:
    if not raw_text:
        return []
    return [line.strip() for line in raw_text.splitlines() if line.strip()]


def is_numeric_line(line: str) -> bool:
    """True for lines made only of digits, dots, dollar signs and spaces."""
    return bool(_NUMERIC_LINE.match(line))
