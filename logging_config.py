from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Any, Dict, Iterable

from settings import get_settings

# record attributes set through ``extra=`` by the bridge modules
CONTEXT_KEYS = (
    "topic",
    "device_id",
    "location",
    "client",
    "field",
    "reason",
    "rc",
    "clock_drift",
    "bucket",
    "config_path",
)

_configured = False


def _render(value: Any) -> str:
    text = str(value)
    # device locations are free text, e.g. "living room"
    if not text or any(ch.isspace() for ch in text):
        return repr(text)
    return text


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for the bridge's context attributes."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        # timestamps carry a Z suffix
        self.converter = time.gmtime
        self.context_keys = tuple(CONTEXT_KEYS if extra_keys is None else extra_keys)

    def context(self, record: logging.LogRecord) -> str:
        return " ".join(
            f"{key}={_render(getattr(record, key))}"
            for key in self.context_keys
            if getattr(record, key, None) is not None
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = self.context(record)
        return f"{message} | {context}" if context else message


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "bridge": {
                "()": "logging_config.ContextualFormatter",
                "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "extra_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "bridge",
            }
        },
        "root": {"handlers": ["stderr"], "level": level},
        "loggers": {
            # influxdb-client's HTTP layer is chatty at DEBUG
            "urllib3": {"level": "WARNING"},
        },
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the bridge's stderr logging once per process."""
    global _configured
    if _configured:
        return
    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
