"""
Category matcher — two-way, case-insensitive containment.

Deliberately conservative: returns ``None`` rather than guessing with a
weaker similarity metric. First category (in the given order) wins.
"""
from __future__ import annotations

from typing import Iterable

from expense_ai.schemas import CategoryInfo, CategorySuggestion


def _confidence(label: str, name: str) -> float:
    if label == name:
        return 1.0
    shorter, longer = sorted((label, name), key=len)
    return round(len(shorter) / len(longer), 2)


def match(
    label: str | None, categories: Iterable[CategoryInfo]
) -> CategorySuggestion | None:
    needle = (label or "").strip().lower()
    if not needle:
        return None

    for category in categories:
        name = category.name.strip().lower()
        if not name:
            continue
        if name in needle or needle in name:
            return CategorySuggestion(
                category_id=category.id,
                category_name=category.name,
                confidence=_confidence(needle, name),
            )
    return None
