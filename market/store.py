"""
market/store.py -- SQLAlchemy Core persistence for price history and trades.

Pattern: Repository + Data Mapper, as in auth/store.py. MarketStore owns the
prices and transactions tables; _row_to_bar and _row_to_trade are the
mappers.

Tables:
  prices        one row per (symbol, date) daily candle, prices in cents
  transactions  one row per recorded Buy/Sell order, linked to users.id

Failure mode: every SQLAlchemyError is re-raised as StorageFault with the
driver error chained.

Usage:
    store = MarketStore("sqlite:///market.db")
    store.load_prices(parse_price_csv(text, "AAPL"))
    bars = store.recent_prices("AAPL", limit=10)
    store.record_trade(Trade(user_id=1, symbol="AAPL", action="Buy", quantity=3, price=23500))
    store.close()
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    case,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import StorageFault
from market.models import BUY, SELL, PriceBar, Trade

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_prices = Table(
    "prices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", String(10), nullable=False),
    Column("date", String(10), nullable=False),  # YYYY-MM-DD
    Column("open", BigInteger, nullable=False),
    Column("high", BigInteger, nullable=False),
    Column("low", BigInteger, nullable=False),
    Column("close", BigInteger, nullable=False),
    Column("volume", BigInteger, nullable=False, server_default="0"),
    UniqueConstraint("symbol", "date", name="uq_price_symbol_date"),
)

_transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("symbol", String(10), nullable=False),
    Column("action", String(4), nullable=False),  # "Buy" | "Sell"
    Column("quantity", Integer, nullable=False),
    Column("price", BigInteger, nullable=False),  # cents per share
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageFault(f"market store {operation} failed") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class MarketStore:
    """Repository for price bars and trades."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        with _storage_errors("schema creation"):
            metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def load_prices(self, bars: Iterable[PriceBar]) -> int:
        """Insert bars whose (symbol, date) is not stored yet. Returns the number inserted.

        Re-loading the same file is a no-op, so the seed can run on every
        startup.
        """
        bars = list(bars)
        if not bars:
            return 0
        symbols = sorted({b.symbol for b in bars})
        with _storage_errors("price load"), self.engine.connect() as conn:
            existing = {
                (row.symbol, row.date)
                for row in conn.execute(select(_prices.c.symbol, _prices.c.date).where(_prices.c.symbol.in_(symbols)))
            }
            new_rows = [
                {
                    "symbol": b.symbol,
                    "date": b.date,
                    "open": b.open,
                    "high": b.high,
                    "low": b.low,
                    "close": b.close,
                    "volume": b.volume,
                }
                for b in bars
                if (b.symbol, b.date) not in existing
            ]
            if new_rows:
                conn.execute(_prices.insert(), new_rows)
                conn.commit()
        return len(new_rows)

    def recent_prices(self, symbol: str, limit: int = 10) -> list[PriceBar]:
        """Return the latest `limit` bars for symbol, oldest first."""
        with _storage_errors("price lookup"), self.engine.connect() as conn:
            rows = conn.execute(
                _prices.select().where(_prices.c.symbol == symbol).order_by(_prices.c.date.desc()).limit(limit)
            ).fetchall()
        return [_row_to_bar(r) for r in reversed(rows)]

    def latest_price(self, symbol: str) -> Optional[PriceBar]:
        bars = self.recent_prices(symbol, limit=1)
        return bars[0] if bars else None

    # ------------------------------------------------------------------
    # Trades
    # ------------------------------------------------------------------

    def record_trade(self, trade: Trade) -> int:
        """Insert a trade and return its assigned database ID."""
        with _storage_errors("trade insert"), self.engine.connect() as conn:
            result = conn.execute(
                _transactions.insert().values(
                    user_id=trade.user_id,
                    symbol=trade.symbol,
                    action=trade.action,
                    quantity=trade.quantity,
                    price=trade.price,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_trades(self, user_id: int, limit: Optional[int] = None) -> list[Trade]:
        """Return a user's trades, newest first."""
        query = (
            _transactions.select()
            .where(_transactions.c.user_id == user_id)
            .order_by(_transactions.c.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        with _storage_errors("trade lookup"), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_trade(r) for r in rows]

    def holdings(self, user_id: int, symbol: str) -> tuple[int, int]:
        """Return (shares held, net cash flow in cents) for one user and symbol.

        Net cash flow is sale proceeds minus purchase costs, so it is
        negative for a user who has only bought.
        """
        signed_qty = case((_transactions.c.action == BUY, _transactions.c.quantity), else_=-_transactions.c.quantity)
        signed_cash = case(
            (_transactions.c.action == SELL, _transactions.c.quantity * _transactions.c.price),
            else_=-(_transactions.c.quantity * _transactions.c.price),
        )
        query = select(
            func.coalesce(func.sum(signed_qty), 0),
            func.coalesce(func.sum(signed_cash), 0),
        ).where(_transactions.c.user_id == user_id, _transactions.c.symbol == symbol)
        with _storage_errors("holdings lookup"), self.engine.connect() as conn:
            shares, cash = conn.execute(query).one()
        return int(shares), int(cash)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_bar(row) -> PriceBar:
    return PriceBar(
        symbol=row.symbol,
        date=row.date,
        open=row.open,
        high=row.high,
        low=row.low,
        close=row.close,
        volume=row.volume,
    )


def _row_to_trade(row) -> Trade:
    return Trade(
        id=row.id,
        user_id=row.user_id,
        symbol=row.symbol,
        action=row.action,
        quantity=row.quantity,
        price=row.price,
        created_at=row.created_at,
    )
