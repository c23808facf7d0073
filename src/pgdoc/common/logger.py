import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

# (invocation id, sub-command) of the pgdoc run currently executing.
_invocation_ctx: contextvars.ContextVar = contextvars.ContextVar("pgdoc_invocation", default=(None, None))

QUIET_LIBRARIES = ("httpx", "httpcore", "pymongo", "sqlalchemy.engine")


class InvocationFilter(logging.Filter):
    """Stamps every record with the current invocation id and sub-command."""

    def filter(self, record):
        record.invocation_id, record.command = _invocation_ctx.get()
        return True


@contextmanager
def invocation_context(invocation_id: str, command: Optional[str] = None) -> Iterator[None]:
    token = _invocation_ctx.set((invocation_id, command))
    try:
        yield
    finally:
        _invocation_ctx.reset(token)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers reading stderr."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key in ("invocation_id", "command"):
            value = getattr(record, key, None)
            if value:
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


TEXT_FORMAT = "%(asctime)s [%(invocation_id)s %(command)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "WARNING", json_format: bool = False):
    """Routes all logging to stderr.

    stdout is reserved for result payloads, so the root logger gets exactly
    one stderr handler and any previously installed handlers are removed.

    Args:
        level (str): The logging level (default: WARNING).
        json_format (bool): Emit JSON lines instead of text (default: False).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(InvocationFilter())
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    root_logger.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
