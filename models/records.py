"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Union


@dataclass(slots=True, frozen=True)
class Measurement:
    """One decoded sensor message, ready for the writer."""

    identity: str
    identity_tag: str
    reported_at: int
    pressure: float
    humidity: float
    temperature: float
    co2: int
    uptime: Optional[int] = None
    clock_drift: Optional[int] = None
    temperature_kelvin: bool = False


@dataclass(slots=True)
class DataPoint:
    """A single write unit for the time-series database."""

    measurement: str
    timestamp: int
    tags: Dict[str, str] = field(default_factory=dict)
    fields: Dict[str, Union[int, float]] = field(default_factory=dict)
