"""
auth/dependencies.py -- FastAPI Depends() helpers for the session principal.

The login route writes user_id and username into the signed session cookie
(Starlette SessionMiddleware). Every later request resolves the principal by
reading user_id back and loading the record from the user store, so a
deleted user loses access on the next request.

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
csrf_protect() enforces the per-session request-forgery token when the
security config enables it and is a no-op otherwise.

Layer rule: no imports from web/ or core/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import hmac
import secrets

from fastapi import HTTPException, Request

from auth.models import User

SESSION_USER_ID = "user_id"
SESSION_USERNAME = "username"
SESSION_CSRF_TOKEN = "csrf_token"
SESSION_SAVED_REQUEST = "saved_request"

CSRF_FORM_FIELD = "_csrf"
CSRF_HEADER = "X-CSRF-Token"

_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})


def try_get_current_user(request: Request) -> User | None:
    """Return the session principal, or None for an anonymous request.

    StorageFault from the lookup is not caught here.
    """
    user_id = request.session.get(SESSION_USER_ID)
    if user_id is None:
        return None
    return request.app.state.user_store.get_by_id(user_id)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def start_session(request: Request, user: User) -> None:
    """Replace whatever the session held with a fresh authenticated principal.

    Clearing first drops any pre-login state (saved request, old CSRF token)
    so nothing an anonymous visitor planted survives into the session.
    """
    request.session.clear()
    request.session[SESSION_USER_ID] = user.id
    request.session[SESSION_USERNAME] = user.username


def safe_local_path(target: str | None) -> str | None:
    """Return target if it is a same-site path, else None.

    Only paths that start with a single "/" are accepted. "//host" and
    "/\\host" are read by browsers as protocol-relative URLs and would
    redirect off-site.
    """
    if not target or not target.startswith("/") or target[1:2] in ("/", "\\"):
        return None
    return target


def csrf_token(request: Request) -> str:
    """Return this session's CSRF token, creating it on first use."""
    token = request.session.get(SESSION_CSRF_TOKEN)
    if not token:
        token = secrets.token_urlsafe(32)
        request.session[SESSION_CSRF_TOKEN] = token
    return token


async def csrf_protect(request: Request) -> None:
    """Reject state-changing requests that lack the session's CSRF token.

    The token is read from the X-CSRF-Token header first, then from the
    _csrf form field. FastAPI caches the parsed form on the request, so the
    route's own Form() parameters still see the body.
    """
    if not request.app.state.security.csrf_enabled or request.method in _SAFE_METHODS:
        return
    expected = request.session.get(SESSION_CSRF_TOKEN)
    supplied = request.headers.get(CSRF_HEADER)
    if not supplied:
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        supplied = value if isinstance(value, str) else None
    if not expected or not supplied or not hmac.compare_digest(expected, supplied):
        raise HTTPException(
            status_code=403,
            detail={"code": "csrf_failed", "message": "Missing or invalid CSRF token."},
        )
