import atexit
import json
import logging
import os
import re
import sys

# Redact credentials that may appear in config dumps or broker URIs
REDACT = re.compile(
    r"(?i)[\"']?\b(pass(word)?|token|apikey|api_key|secret)\b[\"']?\s*[:=]\s*[\"']?([^\"',\s]+)[\"']?"
)


def redact(s: str) -> str:
    return REDACT.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)


class JsonRedactingHandler(logging.StreamHandler):
    """Emit dict messages as one JSON line each, other messages as text."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = record.msg
            if isinstance(msg, dict):
                line = json.dumps(msg, default=str, ensure_ascii=False)
            else:
                line = record.getMessage()
            line = redact(line)
            stream = self.stream if hasattr(self, "stream") else sys.stderr
            stream.write(line + "\n")
            self.flush()
        except Exception:
            self.handleError(record)


LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Module qualified names so caplog filters match the package path.
logger = logging.getLogger("addon.thingy_core")
ble_logger = logging.getLogger("addon.thingy_core.ble")
mqtt_logger = logging.getLogger("addon.thingy_core.mqtt")


def get_log_level(override: str | None = None) -> int:
    """Resolve a numeric level from ``override``, LOG_LEVEL or THINGY_LOG_LEVEL.

    Unknown or missing values fall back to logging.INFO.
    """
    lvl = override or os.environ.get("LOG_LEVEL") or os.environ.get("THINGY_LOG_LEVEL")
    if not lvl:
        return logging.INFO
    return LOG_LEVEL_MAP.get(str(lvl).strip().upper(), logging.INFO)


def setup_logging(level: str | int | None = None) -> int:
    """(Re)initialize the package handler; returns the numeric level applied.

    Child loggers (ble, mqtt) propagate to the package logger, so only the
    package logger carries a handler.
    """
    numeric_level = level if isinstance(level, int) else get_log_level(level)
    logger.setLevel(numeric_level)
    # Deduplicate handlers on restart
    for h in list(logger.handlers):
        if isinstance(h, JsonRedactingHandler):
            logger.removeHandler(h)
    handler = JsonRedactingHandler()
    handler.setLevel(numeric_level)
    logger.addHandler(handler)
    return numeric_level


def _flush_all_log_handlers() -> None:
    for log in (logging.getLogger(), logger):
        for h in getattr(log, "handlers", []):
            stream = getattr(h, "stream", None)
            if getattr(stream, "closed", False) is True:
                continue
            try:
                h.flush()
            except (OSError, ValueError):
                continue


atexit.register(_flush_all_log_handlers)


__all__ = [
    "LOG_LEVEL_MAP",
    "JsonRedactingHandler",
    "ble_logger",
    "get_log_level",
    "logger",
    "mqtt_logger",
    "redact",
    "setup_logging",
]
