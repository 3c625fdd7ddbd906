"""
Heuristic receipt parser.

A fixed sequence of named extraction stages over normalized lines:
store → date/time → items → totals → payment method.  Every stage is
total; the parser as a whole never raises and always returns a
``ParsedReceipt`` (worst case: empty items, today's date).
"""
from __future__ import annotations

import datetime as dt
import logging
import re
from decimal import Decimal

from expense_ai.pipeline.normalizer import is_numeric_line, normalize
from expense_ai.schemas import LineItem, ParsedReceipt, ReceiptTotals, StoreInfo
from expense_ai.schemas.base import MAX_ITEM_AMOUNT, _to_cents

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

STORE_SCAN_LINES = 3
MIN_STORE_NAME_LENGTH = 4

DATE_PATTERN = re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4}|\d{4}-\d{2}-\d{2})")
TIME_PATTERN = re.compile(r"(\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AP]M)?)", re.IGNORECASE)
AMOUNT_PATTERN = re.compile(r"\$?(\d+\.\d{2})")

# Tried in order; first match wins
ITEM_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(.+?)\s+\$?(\d+\.\d{2})$"),
    re.compile(r"^(.+?)\s+(\d+\.\d{2})\s*$"),
    re.compile(r"^(.+?)\s+\$(\d+\.\d{2})\s*$"),
)
NON_ITEM_WORDS = ("TOTAL", "TAX", "SUBTOTAL")
PAYMENT_WORDS = ("CASH", "CREDIT", "DEBIT", "CARD")


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def detect_store(lines: list[str]) -> StoreInfo | None:
    for idx, line in enumerate(lines[:STORE_SCAN_LINES]):
        if len(line) < MIN_STORE_NAME_LENGTH or is_numeric_line(line):
            continue
        address = lines[idx + 1] if idx + 1 < len(lines) else None
        return StoreInfo(name=line, address=address)
    return None


def normalize_date(value: str) -> dt.date | None:
    """``M/D/YY[YY]`` (day-first as a second chance) or ``YYYY-MM-DD``."""
    if "-" in value:
        try:
            return dt.date.fromisoformat(value)
        except ValueError:
            return None

    first, second, year = (int(part) for part in value.split("/"))
    if year < 100:
        year += 2000
    for month, day in ((first, second), (second, first)):
        try:
            return dt.date(year, month, day)
        except ValueError:
            continue
    return None


def detect_date(lines: list[str]) -> dt.date | None:
    for line in lines:
        m = DATE_PATTERN.search(line)
        if m:
            return normalize_date(m.group(1))
    return None


def detect_time(lines: list[str]) -> str | None:
    for line in lines:
        m = TIME_PATTERN.search(line)
        if m:
            return m.group(1)
    return None


def extract_item(line: str, on_date: dt.date) -> LineItem | None:
    for pattern in ITEM_PATTERNS:
        m = pattern.match(line)
        if not m:
            continue
        description = m.group(1).strip()
        amount = Decimal(m.group(2))
        upper = description.upper()
        if (
            len(description) > 1
            and not any(word in upper for word in NON_ITEM_WORDS)
            and Decimal("0") < amount < MAX_ITEM_AMOUNT
        ):
            return LineItem(description=description, amount=amount, date=on_date)
    return None


def detect_items(lines: list[str], on_date: dt.date) -> list[LineItem]:
    items: list[LineItem] = []
    for line in lines:
        item = extract_item(line, on_date)
        if item is not None:
            items.append(item)
    return items


def extract_amount(line: str) -> Decimal | None:
    """First dollar amount on *line*; amounts too large to hold in cents are skipped."""
    m = AMOUNT_PATTERN.search(line)
    if not m:
        return None
    try:
        return _to_cents(m.group(1))
    except ValueError:
        logger.info("Ignoring unusable amount %r", m.group(1))
        return None


def detect_totals(lines: list[str]) -> ReceiptTotals:
    subtotal = tax = total = None
    for line in lines:
        upper = line.upper()
        is_subtotal = "SUBTOTAL" in upper or "SUB TOTAL" in upper

        if subtotal is None and is_subtotal:
            subtotal = extract_amount(line)
        if tax is None and "TAX" in upper:
            tax = extract_amount(line)
        if total is None and "TOTAL" in upper and not is_subtotal:
            total = extract_amount(line)

    return ReceiptTotals(subtotal=subtotal, tax=tax, total=total)


def detect_payment_method(lines: list[str]) -> str | None:
    for line in lines:
        upper = line.upper()
        if any(word in upper for word in PAYMENT_WORDS):
            return line
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(raw_text: str | None, today: dt.date | None = None) -> ParsedReceipt:
    """Parse *raw_text* into a ``ParsedReceipt``. Never raises."""
    lines = normalize(raw_text)
    receipt_date = detect_date(lines) or today or dt.date.today()

    receipt = ParsedReceipt(
        store=detect_store(lines),
        date=receipt_date,
        time=detect_time(lines),
        items=detect_items(lines, receipt_date),
        totals=detect_totals(lines),
        payment_method=detect_payment_method(lines),
    )
    logger.info(
        "Parsed receipt: %d lines, %d items, total=%s",
        len(lines), len(receipt.items), receipt.totals.total,
    )
    return receipt
