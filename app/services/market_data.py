# app/services/market_data.py
import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from datetime import datetime, time, timedelta
from typing import Callable, Deque, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import pandas as pd
import yfinance as yf

from app.config import settings
from app.models.order_model import MarketStatus
from app.utils.helpers import utcnow
from app.utils.logger import logger

# exchange -> (timezone, open, close); Monday to Friday, holidays not modelled
EXCHANGE_HOURS = {
    "NSE": (ZoneInfo("Asia/Kolkata"), time(9, 15), time(15, 30)),
    "BSE": (ZoneInfo("Asia/Kolkata"), time(9, 15), time(15, 30)),
    "NASDAQ": (ZoneInfo("America/New_York"), time(9, 30), time(16, 0)),
    "NYSE": (ZoneInfo("America/New_York"), time(9, 30), time(16, 0)),
}

YAHOO_SUFFIX = {"NSE": ".NS", "BSE": ".BO", "NASDAQ": "", "NYSE": ""}


def market_status_at(exchange: str, now: datetime) -> MarketStatus:
    """Open/closed state of `exchange` at the instant `now` (tz-aware)."""
    tz, open_at, close_at = EXCHANGE_HOURS.get(exchange, EXCHANGE_HOURS["NSE"])
    local = now.astimezone(tz)
    is_weekday = local.weekday() < 5

    if is_weekday and open_at <= local.time() < close_at:
        return MarketStatus(is_open=True, exchange=exchange, message="Market is open")

    # Next session: later today if before the open, else the next weekday
    next_day = local.date()
    if not (is_weekday and local.time() < open_at):
        next_day += timedelta(days=1)
    while next_day.weekday() >= 5:
        next_day += timedelta(days=1)
    next_open = datetime.combine(next_day, open_at, tzinfo=tz)

    return MarketStatus(
        is_open=False,
        exchange=exchange,
        next_open_time=next_open,
        message=f"{exchange} is closed. Opens at {next_open.strftime('%Y-%m-%d %H:%M %Z')}",
    )


class MarketDataPort(ABC):
    @abstractmethod
    async def get_historical_prices(
        self, ticker: str, minutes: int, exchange: str = "NSE"
    ) -> List[float]:
        """Prices over the last `minutes`, oldest first."""

    @abstractmethod
    async def check_market_status(self, exchange: str) -> MarketStatus:
        ...

    def record_quote(self, ticker: str, price: float) -> None:
        """Hook for ports that build their own history from observed quotes."""


class SimulatedMarketData(MarketDataPort):
    """
    Builds price history from the quotes the agent observes on each scan and
    uses the static exchange calendar for market status.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        max_samples: int = 1440,
    ):
        self.clock = clock
        self._quotes: Dict[str, Deque[Tuple[datetime, float]]] = defaultdict(
            lambda: deque(maxlen=max_samples)
        )

    def record_quote(self, ticker: str, price: float) -> None:
        self._quotes[ticker].append((self.clock(), price))

    async def get_historical_prices(
        self, ticker: str, minutes: int, exchange: str = "NSE"
    ) -> List[float]:
        cutoff = self.clock() - timedelta(minutes=minutes)
        return [price for at, price in self._quotes.get(ticker, ()) if at >= cutoff]

    async def check_market_status(self, exchange: str) -> MarketStatus:
        return market_status_at(exchange, self.clock())


class YFinanceMarketData(MarketDataPort):
    """Minute bars from Yahoo Finance; market status from the exchange calendar."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    @staticmethod
    def yahoo_symbol(ticker: str, exchange: str) -> str:
        return f"{ticker}{YAHOO_SUFFIX.get(exchange, '')}"

    async def get_historical_prices(
        self, ticker: str, minutes: int, exchange: str = "NSE"
    ) -> List[float]:
        symbol = self.yahoo_symbol(ticker, exchange)
        data = await asyncio.to_thread(
            yf.download,
            symbol,
            period="1d",
            interval="1m",
            progress=False,
            auto_adjust=False,
        )
        if data is None or data.empty:
            logger.warning(f"No minute data returned for {symbol}")
            return []

        closes = data["Close"]
        # Newer yfinance returns one column per ticker even for a single symbol
        if isinstance(closes, pd.DataFrame):
            closes = closes.iloc[:, 0]

        cutoff = pd.Timestamp(self.clock() - timedelta(minutes=minutes))
        index = closes.index
        if index.tz is None:
            index = index.tz_localize("UTC")
        window = closes[index.tz_convert("UTC") >= cutoff.tz_convert("UTC")]
        return [float(p) for p in window.dropna().tolist()]

    async def check_market_status(self, exchange: str) -> MarketStatus:
        return market_status_at(exchange, self.clock())


def build_market_data(provider: Optional[str] = None) -> MarketDataPort:
    provider = (provider or settings.MARKET_DATA_PROVIDER).lower()
    if provider == "yfinance":
        return YFinanceMarketData()
    return SimulatedMarketData()
