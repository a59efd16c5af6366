import asyncio
import os

# The module-level engine is built at import time
os.environ.setdefault("TS_DATABASE_URL", "sqlite://")
os.environ.setdefault("TS_TELEGRAM_BOT_TOKEN", "")

import pytest

from trade_signals.database import create_db_and_tables, make_engine
from trade_signals.engine.queue import JobQueue
from trade_signals.engine.repository import SignalRepository
from trade_signals.schemas.interpretation import MarketInterpretation
from trade_signals.services.market_data import Candle
from trade_signals.services.metrics import MarketMetrics


class FakePipeline:
    """Buffers commands and replays them on execute(), like a MULTI/EXEC pipeline."""

    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self

        return queue

    async def execute(self):
        return [await getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.commands]


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio.Redis the service uses."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.strings: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def ping(self):
        return True

    async def hset(self, key, mapping=None, **kwargs):
        data = self.hashes.setdefault(key, {})
        for k, v in (mapping or {}).items():
            data[k] = str(v)
        return len(mapping or {})

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def brpop(self, keys, timeout=0):
        for key in keys:
            items = self.lists.get(key)
            if items:
                return key, items.pop()
        await asyncio.sleep(min(timeout, 0.01))
        return None

    async def llen(self, key):
        return len(self.lists.get(key, []))

    async def get(self, key):
        return self.strings.get(key)

    async def set(self, key, value, ex=None):
        self.strings[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self.ttls.pop(key, None)
            for store in (self.hashes, self.lists, self.strings):
                if store.pop(key, None) is not None:
                    removed += 1
        return removed

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def job_queue(fake_redis):
    return JobQueue(fake_redis, queue_name="test-queue", job_ttl=60, dequeue_timeout=0.05)


@pytest.fixture
def db_engine():
    engine = make_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(db_engine):
    return SignalRepository(db_engine)


@pytest.fixture
def make_candles():
    """Build candles from closes; each bar spans close +/- spread."""

    def _make(closes, spread=1.0):
        return [
            Candle(
                open_time=i * 14_400_000,
                open=close,
                high=close + spread,
                low=close - spread,
                close=close,
                volume=10.0,
                close_time=(i + 1) * 14_400_000 - 1,
            )
            for i, close in enumerate(closes)
        ]

    return _make


@pytest.fixture
def make_metrics():
    def _make(**overrides):
        values = dict(
            current_price=100.0,
            atr_percent=2.0,
            range_24h=5.0,
            trend_regime="uptrend",
            volatility_regime="high",
        )
        values.update(overrides)
        return MarketMetrics(**values)

    return _make


@pytest.fixture
def make_interpretation():
    def _make(**overrides):
        values = dict(
            bias="bullish",
            structure="trend",
            key_levels=[95.0],
            liquidity="below",
            volatility="high",
            confidence=0.9,
            reasoning="higher lows into support",
        )
        values.update(overrides)
        return MarketInterpretation(**values)

    return _make
