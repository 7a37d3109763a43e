"""
api/routes/v1/market.py -- Read-only market data for the session principal.

Routes:
  GET /api/v1/market/candles    -- latest daily candles for the ticker, oldest first
  GET /api/v1/market/portfolio  -- funds, shares and recent trades

Orders are placed through the CSRF-protected web form (POST /trade), not
through this API.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import CandleResponse, PortfolioResponse, TradeResponse
from auth.dependencies import get_current_user
from auth.models import User
from market.trading import TradingDesk

router = APIRouter(prefix="/market")

_RECENT_TRADES = 20


def _dollars(cents: int) -> float:
    return cents / 100


def _desk(request: Request) -> TradingDesk:
    return request.app.state.trading_desk


@router.get("/candles", response_model=list[CandleResponse])
def candles(
    request: Request,
    limit: int = Query(default=10, ge=1, le=250),
    current_user: User = Depends(get_current_user),
) -> list[CandleResponse]:
    desk = _desk(request)
    return [
        CandleResponse(
            date=bar.date,
            open=_dollars(bar.open),
            high=_dollars(bar.high),
            low=_dollars(bar.low),
            close=_dollars(bar.close),
            volume=bar.volume,
        )
        for bar in desk.store.recent_prices(desk.symbol, limit=limit)
    ]


@router.get("/portfolio", response_model=PortfolioResponse)
def portfolio(request: Request, current_user: User = Depends(get_current_user)) -> PortfolioResponse:
    """Return the account summary and the most recent trades, newest first."""
    desk = _desk(request)
    profile = desk.profile(current_user.id, current_user.username)
    trades = desk.store.list_trades(current_user.id, limit=_RECENT_TRADES)
    return PortfolioResponse(
        username=profile.name,
        symbol=profile.symbol,
        shares=profile.shares,
        available_funds=_dollars(profile.available_funds),
        current_balance=_dollars(profile.current_balance),
        trades=[
            TradeResponse(
                id=t.id,
                symbol=t.symbol,
                action=t.action,
                quantity=t.quantity,
                price=_dollars(t.price),
                created_at=t.created_at,
            )
            for t in trades
        ],
    )
