"""Health scan data model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Status(str, Enum):
    WORKING = "working"
    BROKEN = "broken"
    MISSING_ASSETS = "missing-assets"
    UNKNOWN = "unknown"
    FLAKY = "flaky"

    @property
    def playable(self) -> bool:
        return self not in (Status.MISSING_ASSETS, Status.BROKEN)


@dataclass(frozen=True)
class ProbeSignals:
    """Black-box evidence gathered for one entry by the probe driver."""
    id: str
    title: str
    ready: bool
    avg_fps: float | None = None
    first_paint: float | None = None
    error_count: int = 0
    no_motion: bool = False
    no_response: bool = False


@dataclass(frozen=True)
class HealthResult:
    id: str
    title: str
    ready: bool
    avg_fps: float | None
    first_paint: float | None
    error_count: int
    stalled: bool
    no_motion: bool
    no_response: bool
    status: Status
    previous_status: Status
    note: str

    @property
    def regressed(self) -> bool:
        """Newly broken in this run."""
        return self.status is Status.BROKEN and self.previous_status is not Status.BROKEN

    @property
    def flags(self) -> list[str]:
        flags = []
        if not self.ready:
            flags.append("not-ready")
        if self.stalled:
            flags.append("stalled")
        if self.no_motion:
            flags.append("no-motion")
        if self.no_response:
            flags.append("no-response")
        return flags

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "ready": self.ready,
            "avgFps": self.avg_fps,
            "firstPaint": self.first_paint,
            "errorCount": self.error_count,
            "stalled": self.stalled,
            "noMotion": self.no_motion,
            "noResponse": self.no_response,
            "status": self.status.value,
            "previousStatus": self.previous_status.value,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HealthResult":
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            ready=bool(data.get("ready", False)),
            avg_fps=data.get("avgFps"),
            first_paint=data.get("firstPaint"),
            error_count=int(data.get("errorCount", 0)),
            stalled=bool(data.get("stalled", False)),
            no_motion=bool(data.get("noMotion", False)),
            no_response=bool(data.get("noResponse", False)),
            status=Status(data.get("status", "unknown")),
            previous_status=Status(data.get("previousStatus", data.get("status", "unknown"))),
            note=data.get("note", ""),
        )
