import datetime
from decimal import Decimal

import pytest

from finance_tracker import utils


def test_is_valid_date_checks_format_and_calendar():
    assert utils.is_valid_date("2024-02-29")
    assert not utils.is_valid_date("2023-02-29")
    assert not utils.is_valid_date("2024-2-9")
    assert not utils.is_valid_date("")
    assert not utils.is_valid_date(None)


def test_is_valid_number():
    assert utils.is_valid_number(10)
    assert utils.is_valid_number("12.50")
    assert not utils.is_valid_number("abc")
    assert not utils.is_valid_number(float("inf"))
    assert not utils.is_valid_number(None)
    assert not utils.is_valid_number(True)


def test_format_currency_brazilian_style():
    assert utils.format_currency(1234.56) == "R$ 1.234,56"
    assert utils.format_currency(Decimal("-1234.5")) == "-R$ 1.234,50"
    assert utils.format_currency("x") == "R$ 0,00"


def test_br_dates_round_trip():
    assert utils.format_date_br("2025-01-31") == "31/01/2025"
    assert utils.parse_date_br("31/01/2025") == "2025-01-31"
    assert utils.parse_date_br("31/02/2025") is None
    assert utils.parse_date_br("2025-01-31") is None


def test_add_months_clamps_to_month_end():
    assert utils.add_months(datetime.date(2025, 1, 31), 1) == datetime.date(2025, 2, 28)
    assert utils.add_months(datetime.date(2024, 1, 31), 1) == datetime.date(2024, 2, 29)
    assert utils.add_months(datetime.date(2025, 11, 15), 3) == datetime.date(2026, 2, 15)
    assert utils.add_months(datetime.date(2025, 1, 15), -1) == datetime.date(2024, 12, 15)


def test_month_bounds():
    assert utils.month_bounds(2024, 2) == ("2024-02-01", "2024-02-29")
    assert utils.month_bounds(2025, 12) == ("2025-12-01", "2025-12-31")


def test_text_helpers():
    assert utils.sanitize_string("  abc  ", 2) == "ab"
    assert utils.sanitize_string(None) == ""
    assert utils.truncate_text("abcdefghij", 6) == "abc..."
    assert utils.truncate_text("abc", 6) == "abc"
    assert utils.remove_accents("Descrição Crédito") == "Descricao Credito"
    assert utils.capitalize_words("joão DA silva") == "João Da Silva"
    assert utils.is_valid_email("eu@exemplo.com")
    assert not utils.is_valid_email("eu@exemplo")


def test_get_days_difference_is_absolute():
    assert utils.get_days_difference("2025-01-10", "2025-01-01") == 9


def test_month_names():
    assert utils.MONTH_NAMES[0] == "Janeiro"
    assert utils.MONTH_SHORT_NAMES[11] == "Dez"


def test_retry_with_backoff_retries_then_succeeds(monkeypatch):
    sleeps = []
    monkeypatch.setattr(utils.time, "sleep", sleeps.append)
    attempts = {"n": 0}

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise ValueError("boom")
        return "ok"

    assert utils.retry_with_backoff(flaky, max_retries=3, base_delay=0.5) == "ok"
    assert sleeps == [0.5, 1.0]


def test_retry_with_backoff_reraises_last_error(monkeypatch):
    monkeypatch.setattr(utils.time, "sleep", lambda s: None)

    def always_fails():
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        utils.retry_with_backoff(always_fails, max_retries=2)
