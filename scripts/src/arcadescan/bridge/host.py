"""Host-side telemetry accumulator.

The probe installs a listener in the host page that folds agent telemetry into
window.__healthScan. HealthWindow is the same fold in Python: it can consume
raw posted messages (handle) or be rebuilt from the in-page snapshot
(from_snapshot).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from arcadescan.bridge.protocol import ChannelType, MetricsSample, SurfaceSize, accept_telemetry


@dataclass
class HealthWindow:
    ready: bool = False
    metrics: list[MetricsSample] = field(default_factory=list)
    native_size: SurfaceSize | None = None
    device_pixel_ratio: float = 1.0
    errors: int = 0

    def handle(self, data: Any, origin: str, host_origin: str) -> bool:
        """Fold one posted message. Returns False when the message was discarded."""
        message = accept_telemetry(data, origin, host_origin)
        if message is None:
            return False
        payload = message.payload
        if message.type is ChannelType.READY:
            # readiness never reverts within a document lifetime
            self.ready = True
            size = SurfaceSize.from_payload(payload.get("canvasSize"))
            if size is not None:
                self.native_size = size
            self._update_ratio(payload.get("devicePixelRatio"))
        elif message.type is ChannelType.METRICS:
            self.metrics.append(MetricsSample.from_payload(payload))
            self._update_ratio(payload.get("devicePixelRatio"))
        elif message.type is ChannelType.ERROR:
            self.errors += 1
        return True

    def _update_ratio(self, raw: Any) -> None:
        if isinstance(raw, (int, float)) and not isinstance(raw, bool) and raw > 0:
            self.device_pixel_ratio = float(raw)

    def avg_fps(self) -> float | None:
        samples = [m.fps for m in self.metrics if math.isfinite(m.fps)]
        if not samples:
            return None
        return round(sum(samples) / len(samples), 2)

    def first_paint(self) -> float | None:
        for sample in self.metrics:
            if sample.first_paint_ms is not None:
                return sample.first_paint_ms
        return None

    @classmethod
    def from_snapshot(cls, raw: Any) -> "HealthWindow":
        """Rebuild from the window.__healthScan object read out of the page."""
        if not isinstance(raw, dict):
            return cls()
        ratio = raw.get("devicePixelRatio")
        errors = raw.get("errors")
        return cls(
            ready=raw.get("ready") is True,
            metrics=[MetricsSample.from_payload(m) for m in raw.get("metrics") or []],
            native_size=SurfaceSize.from_payload(raw.get("nativeSize")),
            device_pixel_ratio=float(ratio) if isinstance(ratio, (int, float)) and ratio > 0 else 1.0,
            errors=errors if isinstance(errors, int) and errors >= 0 else 0,
        )
