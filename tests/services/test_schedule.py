from datetime import date, datetime

import pytest

from tribu.datetime_utils import add_months, to_iso_date
from tribu.services.schedule import next_contact_status, normalize_cadence, propose_next_contact


@pytest.mark.parametrize("value, expected", [
    ("s", "S"),
    ("R", "S"),
    (" monthly ", "1M"),
    ("3m", "3M"),
    ("6M", "6M"),
    ("yearly", "A"),
    ("c", "C"),
    ("", ""),
    (None, ""),
    ("2W", ""),
])
def test_normalize_cadence(value, expected):
    assert normalize_cadence(value) == expected


@pytest.mark.parametrize("cadence, expected", [
    ("S", "2025-01-08"),
    ("1M", "2025-02-01"),
    ("3M", "2025-04-01"),
    ("6M", "2025-07-01"),
    ("A", "2026-01-01"),
    ("C", ""),
    ("", ""),
])
def test_propose_next_contact(cadence, expected):
    assert propose_next_contact("2025-01-01", cadence) == expected


def test_propose_clamps_month_end():
    assert propose_next_contact("2025-01-31", "1M") == "2025-02-28"
    assert propose_next_contact(date(2024, 2, 29), "A") == "2025-02-28"


@pytest.mark.parametrize("when, cadence, expected", [
    ("", "S", "missing"),
    ("2025-01-01", "S", "past"),
    ("2025-03-10", "S", "ok"),
    ("2025-03-17", "S", "ok"),
    ("2025-03-18", "S", "too_far"),
    ("2030-01-01", "", "ok"),
    ("2030-01-01", "C", "ok"),
])
def test_next_contact_status(when, cadence, expected):
    assert next_contact_status(when, cadence, "2025-03-10") == expected


@pytest.mark.parametrize("value, expected", [
    (date(2025, 3, 1), "2025-03-01"),
    (datetime(2025, 3, 1, 23, 59), "2025-03-01"),
    ("2025-3-1", "2025-03-01"),
    ("2025/03/01", "2025-03-01"),
    ("2025-02-30", ""),
    ("01/03/2025", ""),
    (None, ""),
])
def test_to_iso_date(value, expected):
    assert to_iso_date(value) == expected


def test_add_months_crosses_year():
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
