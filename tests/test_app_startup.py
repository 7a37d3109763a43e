"""
tests/test_app_startup.py -- The real lifespan wires the gate and the trading desk from Settings.

Other modules patch the lifespan; this one runs api.main.lifespan against an
in-memory database so the startup wiring itself is covered.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.main import lifespan
from asgi import app
from auth.security import SecurityConfig
from auth.store import UserStore
from core.config import get_settings
from market.ingest import parse_price_csv
from market.trading import TradingDesk


@pytest.fixture
def real_lifespan(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///file:startup_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    get_settings.cache_clear()
    app.router.lifespan_context = lifespan
    yield
    get_settings.cache_clear()


@pytest.mark.usefixtures("real_lifespan")
def test_startup_builds_security_config(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="stocksim.api"):
        with TestClient(app, follow_redirects=False) as client:
            security = app.state.security
            assert isinstance(security, SecurityConfig)
            assert isinstance(app.state.user_store, UserStore)
            assert security.provider.user_lookup is app.state.user_store
            assert security.provider.password_encoder is security.password_encoder
            assert security.password_encoder.rounds == 4
            assert security.csrf_enabled is False
            desk = app.state.trading_desk
            assert isinstance(desk, TradingDesk)
            assert desk.symbol == "AAPL"
            assert desk.starting_balance == 10_000_00
            assert desk.store.latest_price("AAPL").close == 235_00
            assert len(desk.store.recent_prices("AAPL", limit=100)) == 20
            assert client.get("/login").status_code == 200
            assert client.get("/dashboard").headers["location"] == "/login"
    assert any("CSRF protection is DISABLED" in r.getMessage() for r in caplog.records)


@pytest.mark.usefixtures("real_lifespan")
def test_startup_with_csrf_enabled(monkeypatch, caplog) -> None:
    monkeypatch.setenv("CSRF_ENABLED", "true")
    monkeypatch.setenv("USERNAME_CASE_SENSITIVE", "false")
    get_settings.cache_clear()
    with caplog.at_level(logging.WARNING, logger="stocksim.api"):
        with TestClient(app, follow_redirects=False):
            assert app.state.security.csrf_enabled is True
            assert app.state.user_store.case_sensitive is False
    assert not any("CSRF protection is DISABLED" in r.getMessage() for r in caplog.records)


@pytest.mark.usefixtures("real_lifespan")
def test_missing_seed_file_leaves_chart_empty(monkeypatch, tmp_path, caplog) -> None:
    monkeypatch.setenv("PRICE_SEED_FILE", str(tmp_path / "absent.csv"))
    monkeypatch.setenv("TICKER", "MSFT")
    monkeypatch.setenv("STARTING_BALANCE", "2500.50")
    get_settings.cache_clear()
    with caplog.at_level(logging.WARNING, logger="stocksim.api"):
        with TestClient(app, follow_redirects=False):
            desk = app.state.trading_desk
            assert desk.symbol == "MSFT"
            assert desk.starting_balance == 2500_50
            assert desk.store.latest_price("MSFT") is None
    assert any("Price seed file" in r.getMessage() for r in caplog.records)


@pytest.mark.usefixtures("real_lifespan")
def test_reseeding_is_idempotent() -> None:
    with TestClient(app, follow_redirects=False):
        store = app.state.trading_desk.store
        text = Path(get_settings().price_seed_file).read_text(encoding="utf-8")
        assert store.load_prices(parse_price_csv(text, "AAPL")) == 0
