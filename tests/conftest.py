"""
tests/conftest.py -- Shared test fixtures for stock simulator integration tests.

This module provides:
  - make_client: factory fixture; each call starts a TestClient on a fresh,
    isolated user store with its own SecurityConfig
  - web_client: make_client() with the default configuration, one user and
    three days of TEST prices (last close $100.00)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. A uuid in the name keeps every client's DB separate.

The session cookie lives in the TestClient's cookie jar, so each test gets
its own client -- a login in one test must never leak into another.

bcrypt runs with 4 rounds here; production defaults to 10.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.models import User
from auth.security import FormLoginConfig, SecurityConfig, build_security_config
from auth.store import UserStore
from market.models import PriceBar
from market.store import MarketStore
from market.trading import TradingDesk

TEST_ROUNDS = 4
DEFAULT_USERS = {"alice": "correct-horse-battery"}
TEST_SYMBOL = "TEST"
STARTING_BALANCE = 10_000_00
DEFAULT_PRICES = [
    PriceBar(TEST_SYMBOL, "2024-10-16", open=9_800, high=10_100, low=9_700, close=10_050, volume=1_000),
    PriceBar(TEST_SYMBOL, "2024-10-17", open=10_050, high=10_200, low=9_900, close=9_950, volume=1_200),
    PriceBar(TEST_SYMBOL, "2024-10-18", open=9_950, high=10_150, low=9_900, close=10_000, volume=900),
]

_CSRF_INPUT = re.compile(r'name="_csrf" value="([^"]+)"')


def extract_csrf(html: str) -> str:
    """Return the hidden _csrf value from a rendered form."""
    match = _CSRF_INPUT.search(html)
    assert match, "rendered page has no _csrf field"
    return match.group(1)


def _patch_lifespan(user_store: UserStore, security: SecurityConfig, desk: TradingDesk):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so routes see the
    isolated store rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.security = security
        app.state.trading_desk = desk
        yield

    return test_lifespan


@pytest.fixture
def make_client() -> Generator[Callable[..., TestClient], None, None]:
    """Yield a factory that builds a started TestClient.

    Keyword arguments:
      csrf_enabled:   enforce request-forgery tokens
      case_sensitive: username collation of the store
      form_login:     override FormLoginConfig
      users:          {username: plaintext password} created before start
      prices:         PriceBar list loaded into the market store

    follow_redirects=False is essential: tests assert on redirect Location
    headers, which disappear once the client follows them.
    """
    started: list[tuple[TestClient, UserStore, MarketStore]] = []

    def _make(
        *,
        csrf_enabled: bool = False,
        case_sensitive: bool = True,
        form_login: FormLoginConfig | None = None,
        users: dict[str, str] | None = None,
        prices: list[PriceBar] | None = None,
    ) -> TestClient:
        db_url = f"sqlite:///file:test_users_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
        store = UserStore(db_url, case_sensitive=case_sensitive)
        security = build_security_config(
            store,
            bcrypt_rounds=TEST_ROUNDS,
            csrf_enabled=csrf_enabled,
            form_login=form_login,
        )
        for username, password in (DEFAULT_USERS if users is None else users).items():
            store.create_user(User(username=username, hashed_password=security.password_encoder.encode(password)))

        market = MarketStore(db_url)
        market.load_prices(DEFAULT_PRICES if prices is None else prices)
        desk = TradingDesk(market, TEST_SYMBOL, STARTING_BALANCE)

        app.router.lifespan_context = _patch_lifespan(store, security, desk)
        client = TestClient(app, follow_redirects=False, raise_server_exceptions=True)
        client.__enter__()
        started.append((client, store, market))
        return client

    yield _make

    for client, store, market in started:
        client.__exit__(None, None, None)
        store.close()
        market.close()


@pytest.fixture
def web_client(make_client) -> TestClient:
    return make_client()


def login(client: TestClient, username: str = "alice", password: str = "correct-horse-battery", **extra):
    return client.post("/login", data={"username": username, "password": password, **extra})


def place(client: TestClient, action: str, quantity="1", **extra):
    return client.post("/trade", data={"action": action, "quantity": str(quantity), **extra})
