# tests/test_models.py
import datetime as dt
import math
from decimal import Decimal

import pytest

from footprint.decimal_utils import coerce_amount, parse_ambiguous_decimal
from footprint.exceptions import InputValidationError
from footprint.models import (
    Category,
    Season,
    Transaction,
    current_month_key,
    month_range,
    parse_month_key,
    season_for_month,
)


@pytest.mark.parametrize(
    "month, season",
    [
        ("2024-01", Season.WINTER),
        ("2024-03", Season.WINTER),
        ("2024-04", Season.SPRING),
        ("2024-05", Season.SPRING),
        ("2024-07", Season.SUMMER),
        ("2024-09", Season.SUMMER),
        ("2024-10", Season.FALL),
        ("2024-11", Season.FALL),
        ("2024-12", Season.WINTER),
    ],
)
def test_season_mapping(month, season):
    assert season_for_month(month) is season


@pytest.mark.parametrize("bad", [None, "", "2024-13", "2024-00", "2024-7", "July", "2024/07", 202407])
def test_parse_month_key_rejects_malformed(bad):
    with pytest.raises(InputValidationError):
        parse_month_key(bad)


def test_month_range_is_utc_half_open():
    start, end = month_range("2024-07")
    assert start == dt.datetime(2024, 7, 1, tzinfo=dt.timezone.utc)
    assert end == dt.datetime(2024, 8, 1, tzinfo=dt.timezone.utc)


def test_month_range_december_rolls_into_next_year():
    start, end = month_range("2023-12")
    assert start.year == 2023 and start.month == 12
    assert end == dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)


def test_current_month_key_is_zero_padded():
    assert current_month_key(dt.datetime(2025, 3, 9)) == "2025-03"


class TestCategory:
    def test_known_values_case_insensitive(self):
        assert Category.coerce("transport") is Category.TRANSPORT
        assert Category.coerce(" Utility ") is Category.UTILITY

    def test_unknown_becomes_others(self):
        assert Category.coerce("Groceries") is Category.OTHERS

    def test_absent_stays_none(self):
        assert Category.coerce(None) is None
        assert Category.coerce("") is None


class TestTransaction:
    def test_pocketbase_record_is_normalised(self):
        txn = Transaction.model_validate(
            {
                "id": "abc123",
                "collectionId": "xyz",
                "title": "MRT top-up",
                "category": "Transport",
                "amount": "1,234.50",
                "createDatetime": "2024-07-03 10:00:00.000Z",
            }
        )
        assert txn.category is Category.TRANSPORT
        assert txn.amount == pytest.approx(1234.50)
        assert txn.create_datetime == dt.datetime(2024, 7, 3, 10, 0, tzinfo=dt.timezone.utc)

    def test_missing_category_defaults_to_others_for_analysis(self):
        txn = Transaction.model_validate({"id": "1", "amount": 5})
        assert txn.category is None
        assert txn.effective_category is Category.OTHERS

    def test_garbage_amount_counts_as_zero(self):
        txn = Transaction.model_validate({"id": "1", "amount": "n/a"})
        assert math.isnan(txn.amount)
        assert txn.spend == 0.0

    def test_naive_timestamp_is_assumed_utc(self):
        txn = Transaction.model_validate({"id": "1", "createDatetime": "2024-07-03T10:00:00"})
        assert txn.create_datetime.utcoffset() == dt.timedelta(0)


class TestAmounts:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1,234.56", Decimal("1234.56")),
            ("1.234,56", Decimal("1234.56")),
            ("12,50", Decimal("12.50")),
            ("1,234,567", Decimal("1234567")),
            ("S$ 42.10", Decimal("42.10")),
        ],
    )
    def test_parse_ambiguous_decimal(self, raw, expected):
        assert parse_ambiguous_decimal(raw) == expected

    def test_coerce_amount(self):
        assert coerce_amount(None) == 0.0
        assert coerce_amount(7) == 7.0
        assert coerce_amount(Decimal("2.5")) == 2.5
        assert math.isnan(coerce_amount("abc"))
