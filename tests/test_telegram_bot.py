"""Tests for chat reply formatting and the bot whitelist."""

from trade_signals.schemas.signal import SignalStatus
from trade_signals.services.telegram_bot import TelegramBot, format_signal_status


def test_pending_reply_points_to_status():
    text = format_signal_status(SignalStatus(job_id="abc", status="processing"))
    assert "processing" in text
    assert "/status abc" in text


def test_failed_reply_includes_error():
    text = format_signal_status(SignalStatus(job_id="abc", status="failed", error="Binance API timeout"))
    assert "Binance API timeout" in text


def test_no_trade_reply():
    status = SignalStatus(
        job_id="abc", status="completed",
        setup={"side": "no_trade", "reason": "low volatility regime"},
    )
    assert "low volatility regime" in format_signal_status(status)


def test_trade_reply_lists_targets():
    status = SignalStatus(
        job_id="abc",
        status="completed",
        setup={
            "side": "long", "entry": 95.0, "stop_loss": 91.58,
            "take_profits": [100.13, 103.55, 108.68], "risk_reward": 1.5,
            "confidence": 0.9, "reason": "LONG setup",
        },
    )
    text = format_signal_status(status)
    assert text.startswith("LONG setup")
    assert "TP3: 108.68" in text
    assert "Stop loss: 91.58" in text


def test_whitelist():
    assert TelegramBot("token", [])._is_authorized(123)
    bot = TelegramBot("token", [1, 2])
    assert bot._is_authorized(1)
    assert not bot._is_authorized(3)
