"""Market data fetching.

Candles come from the Binance public klines endpoint. `MarketDataService`
adds a short-lived Redis cache and the shared retry policy on top of the raw
client.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass

import aiohttp
import pandas as pd
import redis.asyncio as aioredis

from trade_signals.errors import UpstreamError, UpstreamTimeoutError
from trade_signals.utils.constants import ANALYSIS_DAYS_BACK, ANALYSIS_INTERVAL, CANDLE_BUFFER
from trade_signals.utils.retry import retry_async
from trade_signals.utils.timeframes import candle_count

logger = logging.getLogger(__name__)

_KLINE_COLUMNS = ["open_time", "open", "high", "low", "close", "volume", "close_time"]


@dataclass(frozen=True)
class Candle:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int = 0


class BinanceCandleSource:
    """Thin aiohttp wrapper around GET /klines."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> list[Candle]:
        """Fetch chronological candles. Raises UpstreamError on non-2xx or timeout."""
        session = await self._get_session()
        params = {"symbol": symbol, "interval": interval, "limit": str(limit)}
        try:
            async with session.get(f"{self.base_url}/klines", params=params) as response:
                if response.status != 200:
                    body = await response.text()
                    raise UpstreamError(
                        f"Binance API error for {symbol} {interval}: {response.status} {body[:200]}"
                    )
                payload = await response.json()
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError(
                f"Binance API timeout for {symbol} {interval} after {self.timeout}s"
            ) from None
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Binance API request failed for {symbol} {interval}: {e}") from e

        candles = parse_klines(payload)
        logger.debug(f"Fetched {len(candles)} {interval} candles for {symbol}")
        return candles

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()


def parse_klines(payload) -> list[Candle]:
    """Parse the Binance kline array-of-arrays into sorted Candles.

    Rows with non-numeric prices are dropped.
    """
    if not isinstance(payload, list):
        raise UpstreamError(f"Unexpected klines payload type: {type(payload).__name__}")
    if not payload:
        return []

    try:
        df = pd.DataFrame([row[:7] for row in payload], columns=_KLINE_COLUMNS)
    except (TypeError, ValueError) as e:
        raise UpstreamError(f"Malformed klines payload: {e}") from e
    for col in ("open", "high", "low", "close", "volume"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["open_time"] = pd.to_numeric(df["open_time"], errors="coerce")
    df["close_time"] = pd.to_numeric(df["close_time"], errors="coerce").fillna(0)
    df = df.dropna(subset=["open_time", "open", "high", "low", "close"])
    df = df.sort_values("open_time")

    return [
        Candle(
            open_time=int(r.open_time),
            open=float(r.open),
            high=float(r.high),
            low=float(r.low),
            close=float(r.close),
            volume=float(r.volume) if pd.notna(r.volume) else 0.0,
            close_time=int(r.close_time),
        )
        for r in df.itertuples(index=False)
    ]


class MarketDataService:
    """Candle fetches with a Redis read-through cache and bounded retries."""

    def __init__(
        self,
        source: BinanceCandleSource,
        redis: aioredis.Redis | None = None,
        cache_ttl: int = 300,
        max_retries: int = 3,
        retry_base_delay: float = 0.1,
    ):
        self.source = source
        self.redis = redis
        self.cache_ttl = cache_ttl
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    @staticmethod
    def _cache_key(symbol: str, interval: str) -> str:
        return f"ohlcv:{symbol}:{interval}"

    async def get_candles(
        self,
        symbol: str,
        interval: str = ANALYSIS_INTERVAL,
        limit: int | None = None,
    ) -> list[Candle]:
        if limit is None:
            limit = candle_count(interval, ANALYSIS_DAYS_BACK, CANDLE_BUFFER)

        cached = await self._read_cache(symbol, interval)
        if cached is not None:
            logger.debug(f"Cache hit for {symbol} {interval}")
            return cached

        candles = await retry_async(
            lambda: self.source.fetch_candles(symbol, interval, limit),
            attempts=self.max_retries,
            base_delay=self.retry_base_delay,
            description=f"candle fetch {symbol} {interval}",
        )
        await self._write_cache(symbol, interval, candles)
        return candles

    # The cache is an optimisation; a Redis hiccup must not fail the job.
    async def _read_cache(self, symbol: str, interval: str) -> list[Candle] | None:
        if self.redis is None or self.cache_ttl <= 0:
            return None
        try:
            raw = await self.redis.get(self._cache_key(symbol, interval))
            if not raw:
                return None
            return [Candle(**row) for row in json.loads(raw)]
        except Exception as e:
            logger.warning(f"OHLCV cache read failed for {symbol}: {e}")
            return None

    async def _write_cache(self, symbol: str, interval: str, candles: list[Candle]):
        if self.redis is None or self.cache_ttl <= 0 or not candles:
            return
        try:
            await self.redis.set(
                self._cache_key(symbol, interval),
                json.dumps([asdict(c) for c in candles]),
                ex=self.cache_ttl,
            )
        except Exception as e:
            logger.warning(f"OHLCV cache write failed for {symbol}: {e}")
