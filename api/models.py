"""
API request and response models for the stock simulator JSON endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
market/models.py, which own the internal domain representation. Route
handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str


class CandleResponse(BaseModel):
    """One daily candle. Prices in dollars."""

    model_config = ConfigDict(frozen=True)

    date: str
    open: float
    high: float
    low: float
    close: float
    volume: int


class TradeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    symbol: str
    action: str
    quantity: int
    price: float
    created_at: str


class PortfolioResponse(BaseModel):
    """Response for GET /api/v1/market/portfolio."""

    model_config = ConfigDict(frozen=True)

    username: str
    symbol: str
    shares: int
    available_funds: float
    current_balance: float
    trades: list[TradeResponse]
