"""Telegram bot: request signals and poll their status from a chat."""

import asyncio
import logging
import threading
from typing import Optional

import redis.asyncio as aioredis
from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

from trade_signals.config import settings
from trade_signals.errors import ValidationError
from trade_signals.schemas.signal import SignalStatus
from trade_signals.services.signal_service import SignalService

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "/signal SYMBOL [holding] [risk] - request a trade setup\n"
    "    holding: scalp, daily, swing, auto (default auto)\n"
    "    risk: safe, growth, aggressive (default growth)\n"
    "/status JOB_ID - check a request\n"
    "/help - this message"
)


def format_signal_status(status: SignalStatus) -> str:
    """Plain-text rendering of a job status for chat replies."""
    if status.status == "failed":
        return f"Signal {status.job_id} failed: {status.error or 'unknown error'}"
    if status.status != "completed":
        return f"Signal {status.job_id} is {status.status}. Try /status {status.job_id} again shortly."

    setup = status.setup or {}
    if setup.get("side", "no_trade") == "no_trade":
        return f"No trade setup.\nReason: {setup.get('reason') or 'conditions not met'}"

    tps = setup.get("take_profits") or []
    lines = [
        f"{setup['side'].upper()} setup",
        f"Entry: {setup['entry']:.8g}",
        f"Stop loss: {setup['stop_loss']:.8g}",
    ]
    lines += [f"TP{i}: {tp:.8g}" for i, tp in enumerate(tps, start=1)]
    lines += [
        f"R:R {setup.get('risk_reward', 0):.2f} | confidence {setup.get('confidence', 0):.0%}",
        f"{setup.get('reason', '')}",
        "Not financial advice. No order has been placed.",
    ]
    return "\n".join(lines)


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop."""

    def __init__(self, token: str, chat_ids: list[int]):
        self.token = token
        self.chat_ids = set(chat_ids)
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._redis: Optional[aioredis.Redis] = None
        self._service: Optional[SignalService] = None

    def _is_authorized(self, user_id: int) -> bool:
        return not self.chat_ids or user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        if not update.effective_user or not self._is_authorized(update.effective_user.id):
            if update.message:
                await update.message.reply_text("Unauthorized.")
            return False
        return True

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(HELP_TEXT)

    async def _cmd_signal(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        args = context.args or []
        if not args:
            await update.message.reply_text("Usage: /signal SYMBOL [holding] [risk]")
            return

        payload = {"symbol": args[0]}
        if len(args) > 1:
            payload["holding"] = args[1].lower()
        if len(args) > 2:
            payload["risk"] = args[2].lower()

        owner_id = f"tg:{update.effective_user.id}"
        try:
            job_id = await self._service.create_signal_request(owner_id, payload)
        except ValidationError as e:
            await update.message.reply_text(str(e))
            return
        except Exception as e:
            logger.error(f"Telegram signal request failed: {e}", exc_info=True)
            await update.message.reply_text("Could not queue the request, please retry later.")
            return

        await update.message.reply_text(
            f"Queued {payload['symbol'].upper()} as {job_id}.\nUse /status {job_id}"
        )

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        if not context.args:
            await update.message.reply_text("Usage: /status JOB_ID")
            return

        status = await self._service.get_signal_status(context.args[0])
        if status.status == "not_found":
            await update.message.reply_text("Signal not found.")
            return
        await update.message.reply_text(format_signal_status(status))

    def _run_bot(self):
        """Run the bot in a background thread with its own event loop."""
        from trade_signals.main import build_signal_service

        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        # The API's Redis client belongs to the API loop; this thread needs its own
        self._redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        self._service = build_signal_service(self._redis)

        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        self._app.add_handler(CommandHandler(["start", "help"], self._cmd_help))
        self._app.add_handler(CommandHandler("signal", self._cmd_signal))
        self._app.add_handler(CommandHandler("status", self._cmd_status))

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        self._loop.run_forever()

    def start(self):
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            async def _shutdown():
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()
                if self._redis is not None:
                    await self._redis.aclose()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)


def init_bot() -> TelegramBot:
    """Build the bot from settings."""
    return TelegramBot(
        token=settings.telegram_bot_token,
        chat_ids=settings.telegram_chat_ids,
    )
