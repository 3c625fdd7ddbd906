"""
Unit tests for the heuristic receipt parser — normalizer, stages, full parse.
"""
import datetime as dt
from decimal import Decimal

import pytest

from expense_ai.pipeline.normalizer import is_numeric_line, normalize
from expense_ai.pipeline.receipt_parser import (
    detect_date,
    detect_items,
    detect_payment_method,
    detect_store,
    detect_time,
    detect_totals,
    extract_amount,
    extract_item,
    normalize_date,
    parse,
)

WALMART = (
    "Walmart\n123 Main St\n01/15/2024\nMilk 3.99\nBread 2.50\n"
    "SUBTOTAL 6.49\nTAX 0.52\nTOTAL 7.01\nCREDIT CARD"
)
ON = dt.date(2024, 1, 15)


# =====================================================================
# Normalizer
# =====================================================================
class TestNormalizer:
    def test_trims_and_drops_blank_lines(self):
        assert normalize("  Walmart \n\n   \n Milk 3.99\r\n") == ["Walmart", "Milk 3.99"]

    def test_none_and_empty(self):
        assert normalize(None) == []
        assert normalize("") == []

    def test_numeric_line(self):
        assert is_numeric_line("$ 12.50")
        assert is_numeric_line("0042")
        assert not is_numeric_line("Store 42")


# =====================================================================
# Stages
# =====================================================================
class TestStore:
    def test_first_plausible_line(self):
        store = detect_store(["Walmart", "123 Main St"])
        assert store.name == "Walmart"
        assert store.address == "123 Main St"

    def test_skips_short_and_numeric_lines(self):
        store = detect_store(["#12", "0042", "Target Store", "Somewhere"])
        assert store.name == "Target Store"

    def test_only_first_three_lines_are_considered(self):
        assert detect_store(["ab", "12.00", "x", "Walmart"]) is None

    def test_no_address_on_last_line(self):
        assert detect_store(["Walmart"]).address is None


class TestDate:
    def test_month_first(self):
        assert normalize_date("01/15/2024") == dt.date(2024, 1, 15)

    def test_two_digit_year(self):
        assert normalize_date("3/5/24") == dt.date(2024, 3, 5)

    def test_day_first_when_month_first_is_invalid(self):
        assert normalize_date("25/12/2023") == dt.date(2023, 12, 25)

    def test_iso(self):
        assert normalize_date("2024-02-29") == dt.date(2024, 2, 29)

    def test_invalid(self):
        assert normalize_date("31/31/2024") is None
        assert normalize_date("2024-13-01") is None

    def test_first_match_wins(self):
        assert detect_date(["no date", "Date: 2024-01-02", "01/03/2024"]) == dt.date(2024, 1, 2)

    def test_time(self):
        assert detect_time(["01/15/2024 10:42 AM"]) == "10:42 AM"
        assert detect_time(["nothing"]) is None


class TestItems:
    @pytest.mark.parametrize("line", ["Milk 3.99", "Milk $3.99", "Milk   3.99  "])
    def test_item_shapes(self, line):
        item = extract_item(line, ON)
        assert item.description == "Milk"
        assert item.amount == Decimal("3.99")
        assert item.date == ON

    @pytest.mark.parametrize("line", ["TOTAL 7.01", "Sub Total 6.49", "SALES TAX 0.52", "X 1.00"])
    def test_non_items_rejected(self, line):
        assert extract_item(line, ON) is None

    def test_amount_bounds(self):
        assert extract_item("Freebie 0.00", ON) is None
        assert extract_item("Television 1000.00", ON) is None
        assert extract_item("Laptop Bag 999.99", ON).amount == Decimal("999.99")

    def test_detect_items_in_order(self):
        items = detect_items(["Walmart", "Milk 3.99", "TOTAL 3.99", "Eggs 2.00"], ON)
        assert [i.description for i in items] == ["Milk", "Eggs"]


class TestTotals:
    def test_subtotal_not_taken_as_total(self):
        totals = detect_totals(["SUBTOTAL 6.49", "TAX 0.52", "TOTAL 7.01"])
        assert totals.subtotal == Decimal("6.49")
        assert totals.tax == Decimal("0.52")
        assert totals.total == Decimal("7.01")

    def test_sub_total_with_space(self):
        totals = detect_totals(["SUB TOTAL $10.00", "TOTAL $10.80"])
        assert totals.subtotal == Decimal("10.00")
        assert totals.total == Decimal("10.80")

    def test_first_amount_per_field_wins(self):
        totals = detect_totals(["TOTAL 5.00", "TOTAL 9.00"])
        assert totals.total == Decimal("5.00")

    def test_missing(self):
        totals = detect_totals(["Milk 3.99"])
        assert totals.subtotal is None and totals.tax is None and totals.total is None

    def test_amount_too_large_for_cents_is_skipped(self):
        assert extract_amount("TOTAL " + "9" * 30 + ".00") is None
        totals = detect_totals(["SUBTOTAL " + "1" * 40 + ".99", "TAX 0.52", "TOTAL 7.01"])
        assert totals.subtotal is None
        assert totals.tax == Decimal("0.52")
        assert totals.total == Decimal("7.01")

    def test_payment_method(self):
        assert detect_payment_method(["Milk 3.99", "VISA DEBIT ****1234"]) == "VISA DEBIT ****1234"
        assert detect_payment_method(["Milk 3.99"]) is None


# =====================================================================
# Full parse
# =====================================================================
class TestParse:
    def test_walmart_receipt(self):
        receipt = parse(WALMART)
        assert receipt.store.name == "Walmart"
        assert receipt.date == ON
        assert [(i.description, i.amount) for i in receipt.items] == [
            ("Milk", Decimal("3.99")),
            ("Bread", Decimal("2.50")),
        ]
        assert receipt.totals.subtotal == Decimal("6.49")
        assert receipt.totals.tax == Decimal("0.52")
        assert receipt.totals.total == Decimal("7.01")
        assert "CREDIT CARD" in receipt.payment_method

    def test_empty_input(self):
        today = dt.date(2024, 5, 1)
        receipt = parse("", today=today)
        assert receipt.store is None
        assert receipt.items == []
        assert receipt.totals.model_dump(exclude_none=True) == {}
        assert receipt.date == today

    def test_items_take_receipt_date(self):
        receipt = parse(WALMART)
        assert all(item.date == receipt.date for item in receipt.items)

    def test_total_mismatch_reported_not_reconciled(self):
        receipt = parse(WALMART)
        assert receipt.items_total == Decimal("6.49")
        assert receipt.totals.total == Decimal("7.01")
        assert receipt.totals_mismatch is True

    def test_json_amounts_are_numbers(self):
        data = parse(WALMART).model_dump(mode="json")
        assert data["items"][0]["amount"] == 3.99
        assert data["totals"]["total"] == 7.01

    def test_garbage_never_raises(self):
        receipt = parse("\x00\x01 ??? 99/99/9999 $$$ 12:")
        assert receipt.items == []

    def test_oversized_total_is_dropped(self):
        receipt = parse("Walmart\nMilk 3.99\nTOTAL " + "9" * 30 + ".00")
        assert receipt.totals.total is None
        assert [(i.description, i.amount) for i in receipt.items] == [("Milk", Decimal("3.99"))]

    @pytest.mark.parametrize(
        "text",
        [
            "Walmart\nSUB TOTAL " + "1" * 40 + ".99\nTAX " + "2" * 29 + ".00",
            "Corner Shop\nCaviar " + "9" * 35 + ".00\nTOTAL 1.00",
            "Corner Shop\n99/99/99\n0/0/0000\n2024-99-99\nTOTAL $" + "8" * 60 + ".25",
        ],
    )
    def test_oversized_numbers_never_raise(self, text):
        receipt = parse(text, today=ON)
        assert receipt.store is not None
        assert receipt.date == ON
