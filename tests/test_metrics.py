"""Tests for candle metrics and the tradeability gate."""

import pytest

from trade_signals.services.metrics import (
    calculate_atr_percent,
    calculate_metrics,
    calculate_range_percent,
    detect_trend_regime,
    detect_volatility_regime,
    is_market_tradeable,
)


class TestAtr:
    def test_too_few_candles_is_zero(self, make_candles):
        assert calculate_atr_percent(make_candles([100.0] * 13)) == 0.0

    def test_flat_closes_use_bar_range(self, make_candles):
        # Every true range is high - low = 2 on a close of 100
        candles = make_candles([100.0] * 20, spread=1.0)
        assert calculate_atr_percent(candles) == pytest.approx(2.0)

    def test_gap_widens_true_range(self, make_candles):
        closes = [100.0] * 14 + [110.0]
        candles = make_candles(closes, spread=1.0)
        # Last bar: high 111 vs prev close 100 -> TR 11; the other 13 are 2
        expected = (13 * 2 + 11) / 14 / 110 * 100
        assert calculate_atr_percent(candles) == pytest.approx(expected)


def test_range_percent(make_candles):
    candles = make_candles([100.0, 104.0, 98.0, 100.0], spread=1.0)
    # max high 105, min low 97, current 100
    assert calculate_range_percent(candles) == pytest.approx(8.0)


def test_range_percent_empty():
    assert calculate_range_percent([]) == 0.0


@pytest.mark.parametrize(
    "closes,expected",
    [
        ([100, 101, 102], "uptrend"),
        ([102, 101, 100], "downtrend"),
        ([100, 102, 101], "sideways"),
        ([100, 100, 100], "sideways"),
        ([100, 101], "sideways"),
    ],
)
def test_trend_regime(make_candles, closes, expected):
    assert detect_trend_regime(make_candles([float(c) for c in closes])) == expected


@pytest.mark.parametrize(
    "atr,expected",
    [(0.5, "low"), (0.99, "low"), (1.0, "normal"), (2.99, "normal"), (3.0, "high"), (7.5, "high")],
)
def test_volatility_regime_boundaries(atr, expected):
    assert detect_volatility_regime(atr) == expected


def test_calculate_metrics_empty_raises():
    with pytest.raises(ValueError):
        calculate_metrics([])


def test_calculate_metrics(make_candles):
    closes = [100.0 + i * 0.5 for i in range(60)]
    metrics = calculate_metrics(make_candles(closes, spread=1.5))

    assert metrics.current_price == pytest.approx(closes[-1])
    assert metrics.trend_regime == "uptrend"
    assert metrics.volatility_regime == "normal"  # ATR 3 on ~129.5
    assert metrics.sma20 == pytest.approx(sum(closes[-20:]) / 20)
    assert metrics.sma50 == pytest.approx(sum(closes[-50:]) / 50)


def test_calculate_metrics_short_history_has_no_sma(make_candles):
    metrics = calculate_metrics(make_candles([100.0] * 15))
    assert metrics.sma20 is None
    assert metrics.sma50 is None


class TestTradeable:
    def test_low_volatility_not_tradeable(self, make_metrics):
        assert not is_market_tradeable(make_metrics(volatility_regime="low"))

    def test_tight_range_not_tradeable(self, make_metrics):
        assert not is_market_tradeable(make_metrics(range_24h=0.4))

    def test_normal_market_tradeable(self, make_metrics):
        assert is_market_tradeable(make_metrics(volatility_regime="normal", range_24h=0.5))
