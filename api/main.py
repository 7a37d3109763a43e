"""
api/main.py -- FastAPI application entry point for the stock simulator gate.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. SessionMiddleware      -- signed cookie session; must wrap the two below
  2. log_requests           -- method, path, status, latency per request
  3. enforce_access_policy  -- public path or session principal, else login redirect

Starlette places the most recently added middleware outermost, which is why
SessionMiddleware is added after the two @app.middleware functions.

Lifespan builds the user store, the SecurityConfig and the trading desk on
startup (seeding price history from PRICE_SEED_FILE) and disposes the stores
on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.market import router as market_router
from auth.dependencies import SESSION_SAVED_REQUEST, SESSION_USER_ID, safe_local_path
from auth.errors import StorageFault
from auth.security import build_security_config
from auth.store import UserStore
from core.config import get_settings
from market.ingest import parse_price_csv
from market.store import MarketStore
from market.trading import TradingDesk

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("stocksim.api")

_settings = get_settings()

SESSION_COOKIE = "stocksim_session"


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire the login gate and the trading desk once per process.

    Startup order matters: the provider inside SecurityConfig holds a
    reference to the user store, so the store is created first.
    """
    settings = get_settings()
    logger.info("Stock simulator starting up")
    app.state.settings = settings
    app.state.user_store = UserStore(settings.database_url, case_sensitive=settings.username_case_sensitive)
    app.state.security = build_security_config(
        app.state.user_store,
        bcrypt_rounds=settings.bcrypt_rounds,
        csrf_enabled=settings.csrf_enabled,
    )
    if not settings.csrf_enabled:
        logger.warning("CSRF protection is DISABLED. Set CSRF_ENABLED=true outside local development.")
    logger.info(
        "Auth initialized (case_sensitive_usernames=%s, bcrypt_rounds=%d)",
        settings.username_case_sensitive,
        settings.bcrypt_rounds,
    )

    market_store = MarketStore(settings.database_url)
    _seed_prices(market_store, settings.price_seed_file, settings.ticker)
    app.state.trading_desk = TradingDesk(market_store, settings.ticker, settings.starting_balance_cents)

    yield

    market_store.close()
    app.state.user_store.close()
    logger.info("Stock simulator shutdown complete")


def _seed_prices(store: MarketStore, seed_file: str, ticker: str) -> None:
    """Load the price history CSV into the store. Rows already stored are skipped."""
    if not seed_file:
        return
    path = Path(seed_file)
    if not path.is_file():
        logger.warning("Price seed file %s not found; the chart stays empty until prices are loaded", path)
        return
    inserted = store.load_prices(parse_price_csv(path.read_text(encoding="utf-8"), ticker))
    logger.info("Loaded %d new %s price bars from %s", inserted, ticker, path.name)


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Stock Simulator",
    description="Session-authenticated stock trading simulator.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


def _error_json(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


# ---------------------------------------------------------------------------
# Access policy middleware
#
# Runs for every request before routing. Only the presence of a principal id
# in the session is checked here; handlers that need the User record load it
# through auth.dependencies.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def enforce_access_policy(request: Request, call_next):
    """Let public paths and authenticated sessions through; send everyone else to login.

    XMLHttpRequest callers get 401 JSON instead of a redirect they cannot
    follow usefully. An anonymous GET is remembered as the saved request so
    FormLoginConfig(always_use_default=False) can return to it after login.
    Paths a browser would read as another host ("//evil.example") are not saved.
    """
    security = request.app.state.security
    path = request.url.path
    if security.access_policy.is_public(path) or request.session.get(SESSION_USER_ID) is not None:
        return await call_next(request)

    if request.headers.get("X-Requested-With") == "XMLHttpRequest":
        return _error_json(401, "unauthorized", "Authentication required.")
    if request.method == "GET" and safe_local_path(path):
        query = request.url.query
        request.session[SESSION_SAVED_REQUEST] = f"{path}?{query}" if query else path
    return RedirectResponse(security.form_login.login_page, status_code=302)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie=SESSION_COOKIE,
    max_age=_settings.session_max_age,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(market_router, prefix="/api/v1", tags=["Market"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope. asgi.py wraps the
# HTTPException and StorageFault handlers so browser paths get an HTML page.
# ---------------------------------------------------------------------------


@app.exception_handler(StorageFault)
async def storage_fault_handler(request: Request, exc: StorageFault) -> JSONResponse:
    """Return 503 when a data store fails. The driver error goes to the log only."""
    logger.error("Storage fault on %s %s", request.method, request.url.path, exc_info=exc)
    return _error_json(503, exc.code, "A data store is unavailable.")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error_json(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_json(500, "internal_error", "An unexpected error occurred.")
