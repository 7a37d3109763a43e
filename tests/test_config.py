"""Unit tests for core/config.py -- Settings defaults and startup validation."""

from decimal import Decimal
from pathlib import Path

import pytest

from core.config import Settings

_KEY = "k" * 32


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_defaults() -> None:
    s = _settings(secret_key=_KEY)
    assert s.csrf_enabled is False
    assert s.username_case_sensitive is True
    assert s.bcrypt_rounds == 10
    assert s.session_max_age == 1800
    assert s.database_url.startswith("sqlite:///")
    assert s.ticker == "AAPL"
    assert s.starting_balance_cents == 10_000_00
    assert Path(s.price_seed_file).is_file()


def test_debug_generates_secret_key() -> None:
    s = _settings(debug=True, secret_key="")
    assert len(s.secret_key) >= 32


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValueError, match="SECRET_KEY is required"):
        _settings(debug=False, secret_key="")


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValueError, match="at least 32 characters"):
        _settings(secret_key="too-short")


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_range(rounds: int) -> None:
    with pytest.raises(ValueError, match="BCRYPT_ROUNDS"):
        _settings(secret_key=_KEY, bcrypt_rounds=rounds)


def test_session_max_age_positive() -> None:
    with pytest.raises(ValueError, match="SESSION_MAX_AGE"):
        _settings(secret_key=_KEY, session_max_age=0)


def test_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("SECRET_KEY", _KEY)
    monkeypatch.setenv("CSRF_ENABLED", "true")
    monkeypatch.setenv("USERNAME_CASE_SENSITIVE", "false")
    monkeypatch.setenv("BCRYPT_ROUNDS", "12")
    s = _settings()
    assert s.csrf_enabled is True
    assert s.username_case_sensitive is False
    assert s.bcrypt_rounds == 12


@pytest.mark.parametrize("ticker", ["", "aapl", "TOO-LONG-TICKER", "$X"])
def test_ticker_validated(ticker: str) -> None:
    with pytest.raises(ValueError, match="TICKER"):
        _settings(secret_key=_KEY, ticker=ticker)


def test_starting_balance_non_negative() -> None:
    with pytest.raises(ValueError, match="STARTING_BALANCE"):
        _settings(secret_key=_KEY, starting_balance=Decimal("-0.01"))


def test_starting_balance_in_cents() -> None:
    assert _settings(secret_key=_KEY, starting_balance=Decimal("2500.50")).starting_balance_cents == 2500_50
