"""
market/models.py -- Domain dataclasses for prices, trades and the account summary.

Pure data containers. Money is held as integer cents everywhere below the
template layer so balances add up exactly; web/routes.py formats it for
display.
"""

from dataclasses import dataclass
from typing import Optional

BUY = "Buy"
SELL = "Sell"
ACTIONS = (BUY, SELL)


@dataclass
class PriceBar:
    """One daily OHLC candle for a ticker. Prices in cents."""

    symbol: str
    date: str  # YYYY-MM-DD
    open: int
    high: int
    low: int
    close: int
    volume: int = 0


@dataclass
class Trade:
    """A recorded buy or sell order.

    price is the per-share execution price in cents. id is None before the
    record is written to the database.
    """

    user_id: int
    symbol: str
    action: str  # "Buy" | "Sell"
    quantity: int
    price: int
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert

    @property
    def total(self) -> int:
        return self.quantity * self.price


@dataclass
class Profile:
    """Account summary shown beside the chart.

    available_funds is cash: the starting balance plus sale proceeds minus
    purchase costs. current_balance adds the held shares at the latest close.
    """

    name: str
    symbol: str
    shares: int
    available_funds: int
    current_balance: int
