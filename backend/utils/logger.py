"""
Structured logging for the copy trader.

Every logger lives under the ``copytrader`` namespace and carries a
``component`` tag (sync, executor, orders, feed, store, ...). Keyword
arguments passed to a log call become structured fields; ``with_context``
binds fields such as the transaction hash for the rest of a trade.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from utils.utcnow import utcnow

ROOT_LOGGER_NAME = "copytrader"

# Third-party loggers that only matter when something goes wrong.
_QUIET_LIBRARIES = ("httpx", "httpcore", "asyncio", "aiosqlite", "py_clob_client")


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


def _component(record: logging.LogRecord) -> str:
    return getattr(record, "component", None) or record.name


class JSONFormatter(logging.Formatter):
    """One JSON object per line, structured fields nested under ``data``."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": utcnow().isoformat() + "Z",
            "level": record.levelname,
            "component": _component(record),
            "message": record.getMessage(),
        }
        fields = _fields(record)
        if fields:
            log_data["data"] = fields
        if record.levelno >= logging.WARNING:
            log_data["source"] = f"{record.module}:{record.lineno}"
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Console format: ``time LEVEL [component] message key=value ...``"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        # Copy: other handlers must still see the original message.
        record = logging.makeLogRecord(record.__dict__)
        parts = [f"[{_component(record)}] {record.getMessage()}"]
        for key, value in _fields(record).items():
            parts.append(f"{key}={value if isinstance(value, (int, float)) else json.dumps(value, default=str)}")
        record.msg = " ".join(parts)
        record.args = None
        return super().format(record)


class ContextLogger:
    """Component logger whose keyword arguments become structured fields."""

    def __init__(self, component: str, context: Optional[dict[str, Any]] = None):
        self.component = component
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
        self._context: dict[str, Any] = dict(context or {})

    def with_context(self, **fields: Any) -> "ContextLogger":
        """Same component, with ``fields`` attached to every later message."""
        return ContextLogger(self.component, {**self._context, **fields})

    def _log(self, level: int, msg: str, exc_info: Any = None, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            msg,
            exc_info=exc_info,
            stacklevel=3,
            extra={"component": self.component, "fields": {**self._context, **fields}},
        )

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, **fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """Error with the active exception's traceback attached."""
        self._log(logging.ERROR, msg, exc_info=True, **fields)


def resolve_level(level: Optional[str]) -> int:
    """Map a level name to its logging constant, defaulting to INFO."""
    value = getattr(logging, str(level or "").strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str = "INFO", json_format: bool = True, log_file: Optional[str] = None):
    """Route all copy trader logs to stdout and, optionally, a JSON log file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_level(level))
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter() if json_format else TextFormatter())
    root_logger.addHandler(console_handler)

    # File output is always JSON.
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(component: str) -> ContextLogger:
    """Logger for a component outside the predefined set (loop runners, workers)."""
    return ContextLogger(component)


# One logger per service, shared by every module of that service.
sync_logger = ContextLogger("sync")
executor_logger = ContextLogger("executor")
order_logger = ContextLogger("orders")
feed_logger = ContextLogger("feed")
store_logger = ContextLogger("store")
