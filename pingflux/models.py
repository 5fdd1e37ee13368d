"""Data models for traceroute runs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

RTT_SLOTS = 3


class FailureReason(str, Enum):
    """Why a run was classified as failed."""

    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn_error"
    NO_DATA = "no_data"
    INTERNAL_ERROR = "internal_error"


class HopRecord(BaseModel):
    """Single hop as reported by the traceroute utility.

    ``rtt_ms`` always holds exactly three samples; ``None`` marks a probe
    that timed out or was not reported.
    """

    model_config = ConfigDict(frozen=True)

    hop: int = Field(gt=0)
    rtt_ms: tuple[int | None, int | None, int | None] = (None, None, None)
    address: str | None = None

    @field_validator("rtt_ms", mode="before")
    @classmethod
    def pad_samples(cls, v: Any) -> tuple[int | None, ...]:
        """Pad or truncate the samples to exactly three slots."""
        samples = list(v or [])[:RTT_SLOTS]
        samples.extend([None] * (RTT_SLOTS - len(samples)))
        return tuple(samples)

    def to_row(self) -> dict[str, Any]:
        """Flat form used by the HTTP API and the database."""
        return {
            "hop": self.hop,
            "rtt1_ms": self.rtt_ms[0],
            "rtt2_ms": self.rtt_ms[1],
            "rtt3_ms": self.rtt_ms[2],
            "ip": self.address,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> HopRecord:
        return cls(
            hop=row["hop"],
            rtt_ms=(row.get("rtt1_ms"), row.get("rtt2_ms"), row.get("rtt3_ms")),
            address=row.get("ip"),
        )


class TracerouteRun(BaseModel):
    """Result of one engine invocation. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    target: str
    success: bool
    hops: tuple[HopRecord, ...] = ()
    failure_reason: FailureReason | None = None

    @property
    def ts(self) -> int:
        """Timestamp as epoch milliseconds."""
        return round(self.timestamp.timestamp() * 1000)

    def summary(self) -> dict[str, Any]:
        return {"ts": self.ts, "target": self.target, "success": self.success}

    def to_dict(self) -> dict[str, Any]:
        data = self.summary()
        data["failure_reason"] = (
            self.failure_reason.value if self.failure_reason else None
        )
        data["hops"] = [hop.to_row() for hop in self.hops]
        return data


class TracerouteRequest(BaseModel):
    """Caller input for a traceroute run.

    Values are taken as given; the engine clamps them to the configured
    ceilings before use.
    """

    target: Any = None
    max_hops: Any = Field(default=None, alias="maxHops")
    timeout_ms: Any = Field(default=None, alias="timeoutMs")

    model_config = ConfigDict(populate_by_name=True)
