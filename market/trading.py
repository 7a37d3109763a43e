"""
market/trading.py -- Order placement and account summary for one ticker.

TradingDesk executes Buy/Sell orders at the latest stored close and derives
each user's funds from their recorded trades:

    available_funds = starting_balance - purchases + sale proceeds
    current_balance = available_funds + shares held * latest close

Orders are rejected (TradeRejected) when there is no price data, the
quantity is out of range, a buy exceeds available funds, or a sell exceeds
shares held. The funds check and the insert run under one lock so two
concurrent orders from the same process cannot overdraw an account.

StorageFault from the store is not caught here.
"""

import logging
import threading

from market.models import ACTIONS, BUY, SELL, Profile, Trade
from market.store import MarketStore

logger = logging.getLogger("stocksim.market")

MAX_ORDER_QUANTITY = 1000


class TradeRejected(Exception):
    """An order that fails validation. reason is safe to show to the user."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class TradingDesk:
    """Places orders for a single symbol against a MarketStore."""

    def __init__(self, store: MarketStore, symbol: str, starting_balance: int) -> None:
        if starting_balance < 0:
            raise ValueError("starting_balance must not be negative")
        self.store = store
        self.symbol = symbol
        self.starting_balance = starting_balance
        self._lock = threading.Lock()

    def profile(self, user_id: int, name: str) -> Profile:
        shares, cash_flow = self.store.holdings(user_id, self.symbol)
        available = self.starting_balance + cash_flow
        latest = self.store.latest_price(self.symbol)
        holdings_value = shares * latest.close if latest is not None else 0
        return Profile(
            name=name,
            symbol=self.symbol,
            shares=shares,
            available_funds=available,
            current_balance=available + holdings_value,
        )

    def place_order(self, user_id: int, action: str, quantity: int) -> Trade:
        """Record an order at the latest close and return it with its id set."""
        if action not in ACTIONS:
            raise TradeRejected("unknown order type")
        if not 1 <= quantity <= MAX_ORDER_QUANTITY:
            raise TradeRejected(f"quantity must be between 1 and {MAX_ORDER_QUANTITY}")

        with self._lock:
            latest = self.store.latest_price(self.symbol)
            if latest is None:
                raise TradeRejected("no price data available")
            shares, cash_flow = self.store.holdings(user_id, self.symbol)
            if action == BUY and quantity * latest.close > self.starting_balance + cash_flow:
                raise TradeRejected("insufficient funds")
            if action == SELL and quantity > shares:
                raise TradeRejected("not enough shares")

            trade = Trade(user_id=user_id, symbol=self.symbol, action=action, quantity=quantity, price=latest.close)
            trade.id = self.store.record_trade(trade)

        logger.info("User %d placed %s order for %d %s at %d", user_id, action, quantity, self.symbol, trade.price)
        return trade
