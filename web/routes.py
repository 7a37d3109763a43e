"""
web/routes.py -- Jinja2 template routes for the stock simulator web UI.

These routes serve server-rendered HTML. Whether a path needs a session is
decided by the access middleware in api/main.py before any handler here runs;
handlers for protected pages can therefore rely on a principal being present.

Every state-changing route depends on csrf_protect (a no-op unless
CSRF_ENABLED=true).

Routes:
  GET       /                -- redirect to /dashboard (auth required)
  GET       /login           -- login form (public)
  POST      /login           -- handle password login (public)
  GET       /register        -- registration form (public)
  POST      /register        -- create account, redirect /login?registered (public)
  GET|POST  /error           -- error page (public)
  GET       /dashboard       -- chart, account summary and order form (auth required)
  POST      /trade           -- place a Buy/Sell order, redirect /dashboard (auth required)
  POST      /perform_logout  -- clear session, redirect /login?logout
  GET       /perform_logout  -- same, only while CSRF protection is disabled
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.dependencies import (
    SESSION_SAVED_REQUEST,
    SESSION_USERNAME,
    csrf_protect,
    csrf_token,
    safe_local_path,
    start_session,
    try_get_current_user,
)
from auth.errors import AuthenticationError, StorageFault, UsernameTaken
from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES
from auth.security import SecurityConfig
from auth.store import UserStore
from market.models import ACTIONS
from market.trading import MAX_ORDER_QUANTITY, TradeRejected, TradingDesk
from web.chart import build_candle_chart

logger = logging.getLogger("stocksim.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Exposed as a Jinja2 global so every form template can embed the token
# without each handler adding it to the context.
templates.env.globals["csrf_token"] = csrf_token


def format_money(cents: int) -> str:
    """Format integer cents as dollars, e.g. 123456 -> "$1,234.56"."""
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100:,.2f}"


templates.env.filters["money"] = format_money
router = APIRouter(dependencies=[Depends(csrf_protect)])

_MIN_USERNAME = 3
_MAX_USERNAME = 50
_MIN_PASSWORD = 8

_CHART_CANDLES = 10
_RECENT_TRADES = 10
SESSION_NOTIFICATIONS = "notifications"

_ERROR_TITLES: dict[int, str] = {
    403: "Forbidden",
    404: "Page not found",
    500: "Something went wrong",
    503: "Service unavailable",
}


def _security(request: Request) -> SecurityConfig:
    return request.app.state.security


def render_error_page(request: Request, status_code: int, http_status: Optional[int] = None) -> HTMLResponse:
    """Render error.html with a fixed title for status_code.

    http_status defaults to status_code. Also used by the exception handlers
    in api/main.py.
    """
    return templates.TemplateResponse(
        request,
        "error.html",
        {"status_code": status_code, "title": _ERROR_TITLES.get(status_code, "Error")},
        status_code=http_status or status_code,
    )


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page.

    The ?error and ?logout flags select a fixed message. Query values are
    never echoed into the page.
    """
    params = request.query_params
    error_msg = "Invalid username or password." if "error" in params else None
    if "logout" in params:
        info_msg: Optional[str] = "You have been logged out."
    elif "registered" in params:
        info_msg = "Account created. Please log in."
    else:
        info_msg = None
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "error_msg": error_msg,
            "info_msg": info_msg,
            "processing_url": _security(request).form_login.processing_url,
        },
    )


@router.post("/login")
def login_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
) -> RedirectResponse:
    """Handle username/password login form submission.

    Unknown usernames and wrong passwords take the same redirect so the
    response never reveals whether an account exists. StorageFault is left
    to the application exception handler.
    """
    security = _security(request)
    try:
        user = security.provider.authenticate(username, password)
    except AuthenticationError as exc:
        logger.info("Login failed (%s) from %s", exc.code, request.client.host if request.client else "unknown")
        resp = RedirectResponse(security.form_login.failure_url, status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    target = security.form_login.default_success_url
    saved = safe_local_path(request.session.get(SESSION_SAVED_REQUEST))
    if saved and not security.form_login.always_use_default:
        target = saved
    start_session(request, user)
    logger.info("User %r logged in", user.username)
    resp = RedirectResponse(target, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.api_route("/perform_logout", methods=["GET", "POST"])
def logout(request: Request) -> RedirectResponse:
    """Clear the session and redirect to the login page.

    GET is only honoured while CSRF protection is off: a logout link is
    forgeable by any page, which is exactly what the token guards against.
    """
    security = _security(request)
    if request.method == "GET" and security.csrf_enabled:
        raise HTTPException(status_code=405, detail="Method Not Allowed")
    username = request.session.get(SESSION_USERNAME)
    request.session.clear()
    if username:
        logger.info("User %r logged out", username)
    return RedirectResponse(security.logout.success_url, status_code=302)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _validate_registration(username: str, password: str, confirm_password: str) -> Optional[str]:
    if not _MIN_USERNAME <= len(username) <= _MAX_USERNAME:
        return f"Username must be between {_MIN_USERNAME} and {_MAX_USERNAME} characters."
    if any(ch.isspace() for ch in username):
        return "Username must not contain spaces."
    if len(password) < _MIN_PASSWORD:
        return f"Password must be at least {_MIN_PASSWORD} characters."
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return "Password is too long."
    if password != confirm_password:
        return "Passwords do not match."
    return None


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "register.html", {"error_msg": None, "username": ""})


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
    confirm_password: str = Form(default=""),
):
    """Create an account and send the visitor to the login page.

    Validation failures re-render the form with status 400 and keep the
    submitted username (never the password).
    """
    username = username.strip()
    error_msg = _validate_registration(username, password, confirm_password)
    if error_msg is None:
        user_store: UserStore = request.app.state.user_store
        security = _security(request)
        try:
            user_store.create_user(User(username=username, hashed_password=security.password_encoder.encode(password)))
        except UsernameTaken:
            error_msg = "Username is already taken."
        else:
            logger.info("Registered user %r", username)
            return RedirectResponse("/login?registered", status_code=302)

    return templates.TemplateResponse(
        request,
        "register.html",
        {"error_msg": error_msg, "username": username},
        status_code=400,
    )


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.api_route("/error", methods=["GET", "POST"], response_class=HTMLResponse)
def error_page(request: Request) -> HTMLResponse:
    """Public error page. ?status selects the title; unknown values render a generic page."""
    try:
        status_code = int(request.query_params.get("status", "500"))
    except ValueError:
        status_code = 500
    if status_code not in _ERROR_TITLES:
        status_code = 500
    return render_error_page(request, status_code, http_status=200)


def _stale_session_redirect(request: Request) -> RedirectResponse:
    # Session outlived its user record; the access middleware only checks
    # that a principal id is present.
    request.session.clear()
    return RedirectResponse(_security(request).form_login.login_page, status_code=302)


def _notify(request: Request, severity: str, message: str) -> None:
    """Queue a notification for the next dashboard render."""
    queued = request.session.get(SESSION_NOTIFICATIONS) or []
    request.session[SESSION_NOTIFICATIONS] = [*queued, {"severity": severity, "message": message}]


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request):
    """Chart of recent candles, account summary, order form and notifications."""
    user = try_get_current_user(request)
    if user is None:
        return _stale_session_redirect(request)
    desk: TradingDesk = request.app.state.trading_desk
    bars = desk.store.recent_prices(desk.symbol, limit=_CHART_CANDLES)
    notifications = request.session.pop(SESSION_NOTIFICATIONS, None) or []
    if not bars:
        notifications.append(
            {"severity": "error", "message": "No stock data available. Please ensure the price table is populated."}
        )
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "user": user,
            "profile": desk.profile(user.id, user.username),
            "symbol": desk.symbol,
            "chart": build_candle_chart(bars),
            "latest": bars[-1] if bars else None,
            "trades": desk.store.list_trades(user.id, limit=_RECENT_TRADES),
            "notifications": notifications,
            "max_quantity": MAX_ORDER_QUANTITY,
            "logout_url": _security(request).logout.logout_url,
        },
    )


@router.post("/trade")
def trade(
    request: Request,
    action: str = Form(default=""),
    quantity: str = Form(default="1"),
) -> RedirectResponse:
    """Place a Buy or Sell order at the latest close and return to the dashboard.

    The outcome is shown as a notification on the next dashboard render.
    StorageFault is left to the application exception handler.
    """
    user = try_get_current_user(request)
    if user is None:
        return _stale_session_redirect(request)
    desk: TradingDesk = request.app.state.trading_desk
    try:
        qty = int(quantity.strip())
    except ValueError:
        qty = 0

    try:
        placed = desk.place_order(user.id, action, qty)
    except TradeRejected as exc:
        if action in ACTIONS:
            message = f"Failed to place {action} order for {qty} shares of {desk.symbol}: {exc.reason}."
        else:
            message = f"Failed to place order: {exc.reason}."
        _notify(request, "error", message)
    else:
        _notify(
            request,
            "success",
            f"{placed.action} order for {placed.quantity} shares of {placed.symbol} placed successfully!",
        )
    return RedirectResponse("/dashboard", status_code=303)


@router.get("/")
def home() -> RedirectResponse:
    return RedirectResponse("/dashboard", status_code=302)


# ---------------------------------------------------------------------------
# HTML error pages
# ---------------------------------------------------------------------------


def install_error_pages(app: FastAPI) -> None:
    """Render error.html for browser paths, keeping the JSON handlers for /api/.

    Wraps whatever handler the app already registered for each exception
    class, so it must run after api/main.py is imported and before the app
    starts serving. Calling it twice is a no-op.
    """
    if getattr(app.state, "error_pages_installed", False):
        return
    for exc_class in (StarletteHTTPException, StorageFault):
        app.add_exception_handler(exc_class, _html_error_handler(app.exception_handlers.get(exc_class)))
    app.state.error_pages_installed = True


def _html_error_handler(api_handler):
    async def handler(request: Request, exc: Exception):
        if request.url.path.startswith("/api/") and api_handler is not None:
            return await api_handler(request, exc)
        if isinstance(exc, StorageFault):
            logger.error("Storage fault on %s %s", request.method, request.url.path, exc_info=exc)
            return render_error_page(request, 503)
        return render_error_page(request, exc.status_code)

    return handler
