from datetime import date

import pytest

from mmt_forms.dates import (
    compact_date,
    current_month,
    days_in_month,
    month_bounds,
    normalize_date,
    parse_month,
    strip_separators,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("05.03.2024", "2024-03-05"),
        ("5.3.2024", "2024-03-05"),
        ("05/03/2024", "2024-03-05"),
        ("2024-03-05", "2024-03-05"),
        ("05032024", "2024-03-05"),
        ("05 03 2024", "2024-03-05"),
        (" 05.03.2024 ", "2024-03-05"),
        ("mars 2024", "mars 2024"),
        ("   ", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_date(raw, expected):
    assert normalize_date(raw) == expected


def test_parse_month():
    assert parse_month("2025-06") == (2025, 6)


@pytest.mark.parametrize("month", ["2025-13", "2025-6", "06.2025", ""])
def test_parse_month_rejects_invalid(month):
    with pytest.raises(ValueError):
        parse_month(month)


def test_month_helpers():
    assert current_month(date(2025, 2, 14)) == "2025-02"
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2025, 2) == 28
    assert month_bounds(2025, 6) == (date(2025, 6, 1), date(2025, 6, 30))


def test_compact_date():
    assert compact_date("2025-06-12") == "12062025"
    assert compact_date("") == ""
    assert compact_date("12.06.2025") == ""


def test_strip_separators():
    assert strip_separators("15.06.2025") == "15062025"

