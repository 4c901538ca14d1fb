"""Data models for Dexcom Share Bridge."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# First run of decimal digits inside "/Date(1700000000000)/" or "Date(1700000000000-0500)"
_EPOCH_DIGITS = re.compile(r"\d+")

# Trend labels indexed by the numeric codes older Share API versions return
TREND_DIRECTIONS = [
    "None",
    "DoubleUp",
    "SingleUp",
    "FortyFiveUp",
    "Flat",
    "FortyFiveDown",
    "SingleDown",
    "DoubleDown",
    "NotComputable",
    "RateOutOfRange",
]

TREND_ARROWS = {
    "None": "",
    "DoubleUp": "↑↑",
    "SingleUp": "↑",
    "FortyFiveUp": "↗",
    "Flat": "→",
    "FortyFiveDown": "↘",
    "SingleDown": "↓",
    "DoubleDown": "↓↓",
    "NotComputable": "?",
    "RateOutOfRange": "-",
}


class Region(str, Enum):
    """Dexcom Share deployment region."""

    US = "us"
    OUS = "ous"
    JP = "jp"

    @classmethod
    def parse(cls, value: str | Region) -> Region:
        """Parse a region tag case-insensitively.

        Raises:
            ValueError: If the tag is not a known region
        """
        if isinstance(value, Region):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            supported = ", ".join(r.value for r in cls)
            raise ValueError(f"Unsupported region: {value}. Supported regions: {supported}") from None

    @property
    def base_url(self) -> str:
        # OUS and JP accounts are served by the same deployment
        if self is Region.US:
            return "https://share2.dexcom.com"
        return "https://shareous1.dexcom.com"


@dataclass(frozen=True)
class AccountCredentials:
    """Login details for one Share account."""

    username: str
    password: str = field(repr=False)
    region: Region = Region.OUS

    def __post_init__(self) -> None:
        object.__setattr__(self, "region", Region.parse(self.region))

    @property
    def base_url(self) -> str:
        return self.region.base_url


@dataclass(frozen=True)
class ShareTimestamp:
    """Timestamp in the Share wire format.

    The remote encodes times as wrapped integers, e.g. ``/Date(1700000000000)/``
    for UTC instants or ``Date(1700000000000-0500)`` for display times that
    carry the device's offset. The raw text is kept so it can be written back
    unchanged; ``epoch_ms`` is the first run of digits in it.
    """

    raw: str
    epoch_ms: int

    @classmethod
    def parse(cls, raw: str) -> ShareTimestamp:
        """Parse a Share timestamp string.

        Args:
            raw: Timestamp text as returned by the remote

        Returns:
            Parsed timestamp

        Raises:
            ValueError: If the text holds no epoch digits
        """
        if not isinstance(raw, str):
            raise ValueError(f"Share timestamp must be a string, got {type(raw).__name__}")
        match = _EPOCH_DIGITS.search(raw)
        if match is None:
            raise ValueError(f"No epoch value in Share timestamp: {raw!r}")
        return cls(raw=raw, epoch_ms=int(match.group(0)))

    @classmethod
    def from_epoch_ms(cls, epoch_ms: int, offset_minutes: int | None = None) -> ShareTimestamp:
        """Format epoch milliseconds in the Share wire format.

        Args:
            epoch_ms: Milliseconds since the Unix epoch
            offset_minutes: Optional UTC offset to append (display times)
        """
        if offset_minutes is None:
            return cls(raw=f"/Date({epoch_ms})/", epoch_ms=epoch_ms)

        sign = "-" if offset_minutes < 0 else "+"
        hours, minutes = divmod(abs(offset_minutes), 60)
        return cls(raw=f"/Date({epoch_ms}{sign}{hours:02d}{minutes:02d})/", epoch_ms=epoch_ms)

    def to_datetime(self) -> datetime:
        """UTC-aware datetime for this instant."""
        return datetime.fromtimestamp(self.epoch_ms / 1000, tz=timezone.utc)

    def __str__(self) -> str:
        return self.raw


def _trend_label(trend: Any) -> str:
    if isinstance(trend, bool):
        raise ValueError(f"Invalid trend: {trend!r}")
    if isinstance(trend, int):
        if 0 <= trend < len(TREND_DIRECTIONS):
            return TREND_DIRECTIONS[trend]
        raise ValueError(f"Unknown trend code: {trend}")
    if isinstance(trend, str) and trend:
        return trend
    raise ValueError(f"Invalid trend: {trend!r}")


@dataclass(frozen=True)
class GlucoseReading:
    """Estimated glucose value read from a Share account."""

    value: int  # mg/dL
    trend: str  # direction label, e.g. "Flat"
    sensor_time: ShareTimestamp  # ST
    received_time: ShareTimestamp  # WT
    display_time: ShareTimestamp  # DT, carries the device's UTC offset

    @classmethod
    def from_share(cls, payload: dict[str, Any]) -> GlucoseReading:
        """Build a reading from one element of a Share read response.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Reading must be an object, got {type(payload).__name__}")

        try:
            value = payload["Value"]
            trend = payload["Trend"]
            sensor_time = payload["ST"]
            received_time = payload["WT"]
            display_time = payload["DT"]
        except KeyError as e:
            raise ValueError(f"Reading is missing field {e}") from None

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Invalid glucose value: {value!r}")

        return cls(
            value=int(value),
            trend=_trend_label(trend),
            sensor_time=ShareTimestamp.parse(sensor_time),
            received_time=ShareTimestamp.parse(received_time),
            display_time=ShareTimestamp.parse(display_time),
        )

    @property
    def key(self) -> int:
        """Epoch milliseconds of the received time, used for deduplication."""
        return self.received_time.epoch_ms

    @property
    def timestamp(self) -> datetime:
        return self.received_time.to_datetime()

    @property
    def trend_arrow(self) -> str:
        return TREND_ARROWS.get(self.trend, "")

    def to_transfer_record(self) -> dict[str, Any]:
        """Project to the fields the Share write endpoint accepts."""
        return {
            "Trend": self.trend,
            "ST": str(self.sensor_time),
            "DT": str(self.display_time),
            "Value": self.value,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "trend": self.trend,
            "key": self.key,
        }

    def __str__(self) -> str:
        local_time = self.timestamp.astimezone()
        arrow = f" {self.trend_arrow}" if self.trend_arrow else ""
        return f"{self.value} mg/dL{arrow} ({self.trend}) at {local_time:%Y-%m-%d %H:%M:%S}"


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    success: bool = False
    read_count: int = 0
    write_count: int = 0
    skipped_count: int = 0
    errors: list[str] = field(default_factory=list)
    latest: GlucoseReading | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "readCount": self.read_count,
            "writeCount": self.write_count,
            "skippedCount": self.skipped_count,
            "errors": list(self.errors),
        }


@dataclass
class ConnectionStatus:
    """Connection test outcome for one account."""

    success: bool = False
    error: str | None = None
    latest_value: int | None = None  # source only


@dataclass
class ConnectionReport:
    """Connection test outcome for both accounts."""

    source: ConnectionStatus = field(default_factory=ConnectionStatus)
    destination: ConnectionStatus = field(default_factory=ConnectionStatus)

    @property
    def ok(self) -> bool:
        return self.source.success and self.destination.success
