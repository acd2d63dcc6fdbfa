"""Bridge protocol -- the message contract between an embedded game and its host page.

Messages are plain objects posted across the frame boundary:

    { "source": "arcade-bridge", "type": "arcade:metrics", "payload": {...} }

The agent inside the game tags everything with AGENT_SOURCE; the host tags
control messages with HOST_SOURCE. Either side drops anything carrying the
wrong tag or arriving from another origin. There are no acknowledgements.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


AGENT_SOURCE = "arcade-bridge"
HOST_SOURCE = "arcade-parent"
WIRE_PREFIX = "arcade:"

# Agent-side emission limits
METRICS_INTERVAL_MS = 100.0
FRAME_WINDOW = 60

# Marker attribute on the injected <script> element
INJECTION_MARKER = "data-arcade-bridge"


class ChannelType(str, Enum):
    # inbound (agent -> host)
    READY = "ready"
    METRICS = "metrics"
    CONSOLE = "console"
    ERROR = "error"
    PAUSE_STATE = "pause-state"
    HIGHSCORES = "highscores"
    # outbound (host -> agent)
    FOCUS = "focus"
    BLUR = "blur"
    PAUSE = "pause"
    RESUME = "resume"
    TOGGLE_HELP = "toggle-help"
    REQUEST_HIGHSCORES = "request-highscores"

    @property
    def wire(self) -> str:
        return f"{WIRE_PREFIX}{self.value}"

    @property
    def is_control(self) -> bool:
        return self in CONTROL_TYPES

    @classmethod
    def from_wire(cls, raw: Any) -> "ChannelType | None":
        if not isinstance(raw, str) or not raw.startswith(WIRE_PREFIX):
            return None
        try:
            return cls(raw[len(WIRE_PREFIX):])
        except ValueError:
            return None


INBOUND_TYPES = frozenset({
    ChannelType.READY,
    ChannelType.METRICS,
    ChannelType.CONSOLE,
    ChannelType.ERROR,
    ChannelType.PAUSE_STATE,
    ChannelType.HIGHSCORES,
})

CONTROL_TYPES = frozenset({
    ChannelType.FOCUS,
    ChannelType.BLUR,
    ChannelType.PAUSE,
    ChannelType.RESUME,
    ChannelType.TOGGLE_HELP,
    ChannelType.REQUEST_HIGHSCORES,
})

# Controls the agent re-dispatches and then echoes back as pause-state
ECHOED_CONTROLS = frozenset({
    ChannelType.FOCUS,
    ChannelType.BLUR,
    ChannelType.PAUSE,
    ChannelType.RESUME,
})


@dataclass(frozen=True)
class TelemetryMessage:
    source: str
    type: ChannelType
    payload: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict:
        return {"source": self.source, "type": self.type.wire, "payload": self.payload}

    @classmethod
    def from_wire(cls, data: Any) -> "TelemetryMessage | None":
        """Parse a posted object. Returns None for anything that is not a bridge message."""
        if not isinstance(data, dict):
            return None
        source = data.get("source")
        if not isinstance(source, str):
            return None
        channel = ChannelType.from_wire(data.get("type"))
        if channel is None:
            return None
        payload = data.get("payload")
        return cls(source=source, type=channel, payload=payload if isinstance(payload, dict) else {})


def agent_message(channel: ChannelType, payload: dict | None = None) -> TelemetryMessage:
    if channel not in INBOUND_TYPES:
        raise ValueError(f"{channel.wire} is not a telemetry channel")
    return TelemetryMessage(source=AGENT_SOURCE, type=channel, payload=payload or {})


def control_message(channel: ChannelType, payload: dict | None = None) -> TelemetryMessage:
    if channel not in CONTROL_TYPES:
        raise ValueError(f"{channel.wire} is not a control channel")
    return TelemetryMessage(source=HOST_SOURCE, type=channel, payload=payload or {})


def accept(data: Any, origin: str, expected_origin: str, expected_source: str) -> TelemetryMessage | None:
    """Filter one posted message.

    Cross-origin senders and foreign source tags are discarded silently;
    that is not an error, just a message that was never meant for us.
    """
    if origin != expected_origin:
        return None
    message = TelemetryMessage.from_wire(data)
    if message is None or message.source != expected_source:
        return None
    return message


def accept_telemetry(data: Any, origin: str, host_origin: str) -> TelemetryMessage | None:
    """Host-side filter: only agent-tagged telemetry channels."""
    message = accept(data, origin, host_origin, AGENT_SOURCE)
    if message is None or message.type not in INBOUND_TYPES:
        return None
    return message


def accept_control(data: Any, origin: str, document_origin: str) -> TelemetryMessage | None:
    """Agent-side filter: only host-tagged control channels."""
    message = accept(data, origin, document_origin, HOST_SOURCE)
    if message is None or message.type not in CONTROL_TYPES:
        return None
    return message


def _finite(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


@dataclass(frozen=True)
class SurfaceSize:
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_payload(cls, raw: Any) -> "SurfaceSize | None":
        if not isinstance(raw, dict):
            return None
        width = _finite(raw.get("width"))
        height = _finite(raw.get("height"))
        if width is None or height is None:
            return None
        return cls(width=width, height=height)


@dataclass(frozen=True)
class MetricsSample:
    fps: float = 0.0
    frame_time_ms: float = 0.0
    frame_samples: int = 0
    canvas_size: SurfaceSize | None = None
    first_paint_ms: float | None = None
    device_pixel_ratio: float = 1.0

    def to_payload(self) -> dict:
        return {
            "fps": self.fps,
            "frameTimeMs": self.frame_time_ms,
            "frameSamples": self.frame_samples,
            "canvasSize": self.canvas_size.to_dict() if self.canvas_size else None,
            "firstPaintMs": self.first_paint_ms,
            "devicePixelRatio": self.device_pixel_ratio,
        }

    @classmethod
    def from_payload(cls, raw: Any) -> "MetricsSample":
        """Lenient parse: missing or non-finite numbers fall back to defaults."""
        raw = raw if isinstance(raw, dict) else {}
        samples = raw.get("frameSamples")
        return cls(
            fps=max(0.0, _finite(raw.get("fps")) or 0.0),
            frame_time_ms=max(0.0, _finite(raw.get("frameTimeMs")) or 0.0),
            frame_samples=samples if isinstance(samples, int) and not isinstance(samples, bool) and samples >= 0 else 0,
            canvas_size=SurfaceSize.from_payload(raw.get("canvasSize")),
            first_paint_ms=_finite(raw.get("firstPaintMs")),
            device_pixel_ratio=_finite(raw.get("devicePixelRatio")) or 1.0,
        )
