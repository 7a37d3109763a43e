"""
market/ingest.py -- Parser for daily price history CSV exports.

Accepts the layout of a typical broker or exchange "historical data"
download:

    Date,Close/Last,Volume,Open,High,Low
    10/18/2024,$235.00,46431470,$236.18,$236.18,$234.01

Column order does not matter. "Close" is accepted in place of
"Close/Last". Prices may carry a "$" prefix and thousands separators.
Dates may be MM/DD/YYYY or ISO YYYY-MM-DD. Rows that fail to parse, or
whose high/low do not bracket open and close, are skipped.

No external dependencies beyond stdlib.
"""

import csv
import io
import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from market.models import PriceBar

logger = logging.getLogger("stocksim.market")

_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d")


def parse_price(value: str) -> int:
    """Convert a price string such as "$1,234.56" to integer cents.

    Raises ValueError for empty, non-numeric or negative input.
    """
    cleaned = (value or "").strip().replace("$", "").replace(",", "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"not a price: {value!r}") from exc
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"not a price: {value!r}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_date(value: str) -> Optional[str]:
    value = (value or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _parse_row(row: dict, symbol: str) -> Optional[PriceBar]:
    day = _parse_date(row.get("Date", ""))
    if day is None:
        return None
    close_raw = row.get("Close/Last") or row.get("Close") or ""
    try:
        bar = PriceBar(
            symbol=symbol,
            date=day,
            open=parse_price(row.get("Open", "")),
            high=parse_price(row.get("High", "")),
            low=parse_price(row.get("Low", "")),
            close=parse_price(close_raw),
            volume=int((row.get("Volume") or "0").replace(",", "").strip() or 0),
        )
    except ValueError:
        return None
    if bar.low > min(bar.open, bar.close) or bar.high < max(bar.open, bar.close):
        return None
    return bar


def parse_price_csv(content: str, symbol: str) -> list[PriceBar]:
    """Parse a price history CSV into bars sorted oldest first.

    Duplicate dates keep the first row seen.
    """
    bars: dict[str, PriceBar] = {}
    skipped = 0
    reader = csv.DictReader(io.StringIO(content.lstrip("\ufeff")))
    for row in reader:
        row = {(k or "").strip(): (v or "") for k, v in row.items()}
        bar = _parse_row(row, symbol)
        if bar is None:
            skipped += 1
            continue
        bars.setdefault(bar.date, bar)
    if skipped:
        logger.warning("Skipped %d unparseable %s price rows", skipped, symbol)
    return sorted(bars.values(), key=lambda b: date.fromisoformat(b.date))
