from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


WIRE_FORMATS = ("json", "text")

_LOG_LEVEL_ENV = "LOG_LEVEL"
_WIRE_FORMAT_ENV = "BRIDGE_WIRE_FORMAT"
_TLS_VERIFY_ENV = "BRIDGE_TLS_VERIFY"
_CONNECT_TIMEOUT_ENV = "BRIDGE_CONNECT_TIMEOUT"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    log_level: str
    wire_format: str
    tls_verify: bool
    connect_timeout: Optional[float]


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_wire_format(default: str) -> str:
    value = os.getenv(_WIRE_FORMAT_ENV)
    if value is None:
        return default
    candidate = value.strip().lower()
    return candidate if candidate in WIRE_FORMATS else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_timeout(default: Optional[float]) -> Optional[float]:
    value = os.getenv(_CONNECT_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        log_level=_read_log_level("INFO"),
        wire_format=_read_wire_format("json"),
        tls_verify=_read_bool_env(_TLS_VERIFY_ENV, False),
        connect_timeout=_read_timeout(None),
    )
