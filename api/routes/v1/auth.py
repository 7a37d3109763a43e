"""
api/routes/v1/auth.py -- Session principal REST endpoint.

Routes:
  GET /api/v1/auth/me -- identity of the logged-in user (requires a session)

Login and logout are form posts handled by web/routes.py; the JSON API only
reads the session they establish.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import MeResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(user_id=current_user.id, username=current_user.username)
