"""Coercion of untrusted upstream fields."""

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from omnimarket.ingestion.normalize import (
    clip_text,
    coerce_volume,
    first_present,
    format_decimal,
    safe_parse_date,
    safe_parse_number,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "0"),
        ("abc", "0"),
        ("", "0"),
        ("12.5", "12.5"),
        (" 42 ", "42"),
        (-5, "-5"),
        ("-3.25", "-3.25"),
        ("12abc", "12"),
        ("3.5e2 shares", "3.5e2"),
        (".5", "0.5"),
        (0.1, "0.1"),
        (float("nan"), "0"),
        (math.inf, "0"),
        ("Infinity", "0"),
        ("1e40", "0"),
        ({"v": 1}, "0"),
        ([1], "0"),
    ],
)
def test_safe_parse_number(value, expected):
    parsed = safe_parse_number(value)
    assert isinstance(parsed, Decimal)
    assert parsed == Decimal(expected)


def test_format_decimal_drops_integral_fraction():
    assert format_decimal(500.0) == "500"
    assert format_decimal(-5.0) == "-5"
    assert format_decimal(0.0) == "0"
    assert format_decimal(-0.0) == "0"
    assert format_decimal(1234.75) == "1234.75"
    assert format_decimal(Decimal("12.5000000000")) == "12.5"


def test_format_decimal_never_uses_exponent_or_float_rounding():
    assert format_decimal(Decimal("0.00005")) == "0.00005"
    assert format_decimal(Decimal("1E+3")) == "1000"
    assert format_decimal(Decimal("12345678901234567.25")) == "12345678901234567.25"
    assert format_decimal(Decimal("-0.0000000000")) == "0"


def test_coerce_volume_matches_dashboard_strings():
    assert coerce_volume("abc") == "0"
    assert coerce_volume(None) == "0"
    assert coerce_volume(-5) == "-5"
    assert coerce_volume("600") == "600"
    assert coerce_volume("0.00005") == "0.00005"
    assert coerce_volume("12345678901234567.25") == "12345678901234567.25"


def test_safe_parse_date_iso_variants():
    expected = datetime(2026, 11, 3, 12, 0, tzinfo=timezone.utc)
    assert safe_parse_date("2026-11-03T12:00:00Z") == expected
    assert safe_parse_date("2026-11-03T12:00:00+00:00") == expected
    assert safe_parse_date("2026-11-03T14:00:00+02:00") == expected
    assert safe_parse_date("2026-11-03T12:00:00") == expected
    assert safe_parse_date("2026-11-03") == datetime(2026, 11, 3, tzinfo=timezone.utc)


def test_safe_parse_date_epoch_ms_and_datetime():
    assert safe_parse_date(1_767_225_600_000) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    naive = datetime(2026, 1, 2, 3, 4)
    assert safe_parse_date(naive) == naive.replace(tzinfo=timezone.utc)
    aware = datetime(2026, 1, 2, 5, 4, tzinfo=timezone(timedelta(hours=2)))
    assert safe_parse_date(aware) == datetime(2026, 1, 2, 3, 4, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", 0, 0.0, "not a date", "2026-13-45", True, float("nan"), {"d": 1}, 1e30])
def test_safe_parse_date_invalid_is_none(value):
    assert safe_parse_date(value) is None


def test_clip_text():
    assert clip_text("  hello  ", 3) == "hel"
    assert clip_text(None, 10, "fallback") == "fallback"
    assert clip_text("   ", 10, "fallback") == "fallback"
    assert clip_text(123, 10) == ""
    assert clip_text("  rules text ", 7, strip=False) == "  rules"
    assert clip_text("   ", 10, strip=False) == ""


def test_first_present_follows_truthiness():
    assert first_present(None, 0, "", "x") == "x"
    assert first_present(None, None) is None
    assert first_present(5, 6) == 5
