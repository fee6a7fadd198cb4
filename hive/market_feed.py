"""
market_feed.py — BTC candle feed for the Hive dashboard.

Pulls a bounded window of OHLC candles from the Binance public klines
endpoint (free, no API key). Every call is a fresh request: no cache, no
state beyond the last result.

Granularity presets:
  1h  "hourly view"  — 1-minute candles, 60 samples
  1d  "daily view"   — 1-hour candles, 24 samples
  1w  "weekly view"  — 1-day candles, 7 samples

Usage:
    feed = MarketFeed()
    candles = await feed.fetch_candles(Granularity.DAILY)
    print(candles[-1].close)
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import List, Optional

import httpx
from loguru import logger

from hive_models import Candle, FeedUnavailable


# ─── Constants ────────────────────────────────────────────────────────────────

BINANCE_BASE_URL = "https://api.binance.com"
KLINES_PATH = "/api/v3/klines"
DEFAULT_SYMBOL = "BTCUSDT"
DEFAULT_TIMEOUT = 8.0               # HTTP request timeout
MAX_KLINES = 1000                   # Binance per-request cap


# ─── Granularity ──────────────────────────────────────────────────────────────

class Granularity(str, Enum):
    """Chart window presets; value is the short label the dashboard shows."""
    HOURLY = "1h"
    DAILY  = "1d"
    WEEKLY = "1w"

    @property
    def interval(self) -> str:
        """Binance sub-interval for one candle."""
        return _PRESETS[self][0]

    @property
    def window_length(self) -> int:
        return _PRESETS[self][1]

    @classmethod
    def parse(cls, value) -> "Granularity":
        if isinstance(value, Granularity):
            return value
        return cls(str(value).strip().lower())


_PRESETS: dict[Granularity, tuple[str, int]] = {
    Granularity.HOURLY: ("1m", 60),
    Granularity.DAILY:  ("1h", 24),
    Granularity.WEEKLY: ("1d", 7),
}


# ─── Feed ─────────────────────────────────────────────────────────────────────

class MarketFeed:
    """
    Request/response adapter over Binance klines.

    fetch_candles() raises FeedUnavailable on any network, HTTP or parse
    failure. fetch_candles_with_retry() is the bounded-retry variant used by
    the automatic refresh path; user-facing code should call fetch_candles().
    """

    def __init__(
        self,
        base_url:      str = BINANCE_BASE_URL,
        symbol:        str = DEFAULT_SYMBOL,
        timeout:       float = DEFAULT_TIMEOUT,
        retries:       int = 3,
        retry_backoff: float = 0.5,
    ) -> None:
        self._base_url      = base_url.rstrip("/")
        self._symbol        = symbol
        self._timeout       = timeout
        self._retries       = max(1, retries)
        self._retry_backoff = retry_backoff
        self._last: List[Candle] = []
        self.request_count  = 0
        self.error_count    = 0

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def last_result(self) -> List[Candle]:
        return list(self._last)

    async def fetch_candles(
        self,
        granularity: Granularity,
        limit: Optional[int] = None,
    ) -> List[Candle]:
        """Fetch the candle window for a preset (limit overrides its length)."""
        granularity = Granularity.parse(granularity)
        count = min(limit or granularity.window_length, MAX_KLINES)
        params = {
            "symbol":   self._symbol,
            "interval": granularity.interval,
            "limit":    count,
        }
        self.request_count += 1

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(f"{self._base_url}{KLINES_PATH}", params=params)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.error_count += 1
            raise FeedUnavailable(f"klines request failed: {exc}") from exc

        if not isinstance(data, list):
            self.error_count += 1
            raise FeedUnavailable(f"klines response is not a list: {type(data).__name__}")

        try:
            candles = [Candle.from_kline(row) for row in data]
        except (TypeError, ValueError, IndexError, KeyError) as exc:
            self.error_count += 1
            raise FeedUnavailable(f"malformed kline row: {exc}") from exc

        candles.sort(key=lambda c: c.open_time)
        self._last = candles
        logger.debug(f"Fetched {len(candles)} {granularity.interval} candles for {self._symbol}")
        return candles

    async def fetch_candles_with_retry(
        self,
        granularity: Granularity,
        limit: Optional[int] = None,
    ) -> List[Candle]:
        """fetch_candles() with exponential backoff; re-raises the last failure."""
        attempt = 0
        while True:
            try:
                return await self.fetch_candles(granularity, limit)
            except FeedUnavailable:
                attempt += 1
                if attempt >= self._retries:
                    raise
                delay = self._retry_backoff * (2 ** (attempt - 1))
                logger.debug(f"Feed attempt {attempt}/{self._retries} failed, retrying in {delay:.2f}s")
                await asyncio.sleep(delay)
