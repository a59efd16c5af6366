"""Process-wide logging setup."""

import json
import logging
import sys
from datetime import datetime, timezone

from trade_signals.config import settings

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        msg = {
            "ts": datetime.now(tz=timezone.utc).isoformat(timespec="seconds"),
            "lvl": record.levelname,
            "src": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            msg["exc"] = self.formatException(record.exc_info)
        return json.dumps(msg, ensure_ascii=False)


def setup_logging(level: str | None = None, json_output: bool | None = None):
    """Configure the root logger once per process."""
    level = (level or settings.log_level).upper()
    json_output = settings.log_json if json_output is None else json_output

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Third-party clients are chatty at INFO
    for noisy in ("httpx", "openai", "aiohttp.access", "telegram.ext"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
