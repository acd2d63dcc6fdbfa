"""Scan configuration -- Pydantic models, env defaults, optional YAML overlay."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

DEFAULT_BASE_URL = os.environ.get(
    "ARCADE_DEV_SERVER_URL", os.environ.get("DEV_SERVER_URL", "http://127.0.0.1:5173")
)
DEFAULT_READY_TIMEOUT_MS = float(os.environ.get("ARCADE_READY_TIMEOUT", "10000"))

BROWSER_ARGS = [
    "--disable-renderer-backgrounding",
    "--disable-background-timer-throttling",
    "--autoplay-policy=no-user-gesture-required",
]


class Thresholds(BaseModel):
    """Empirical heuristics. Calibrate here, not in the algorithm."""
    motion_delta: float = Field(default=0.01, ge=0.0, le=1.0)
    response_delta: float = Field(default=0.01, ge=0.0, le=1.0)
    min_ticks: int = Field(default=30, ge=0)
    max_errors: int = Field(default=3, ge=0)
    settle_ms: float = Field(default=500, ge=0)
    activity_window_ms: float = Field(default=2000, gt=0)
    motion_gap_ms: float = Field(default=500, ge=0)
    response_wait_ms: float = Field(default=300, ge=0)
    key_press_delay_ms: float = Field(default=20, ge=0)
    signature_max_dimension: int = Field(default=128, ge=1)


class ScanConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    route_template: str = "/game/{id}"
    scan_marker: str = "healthscan=1"
    frame_selector: str = "iframe"
    readiness_timeout_ms: float = Field(default=DEFAULT_READY_TIMEOUT_MS, gt=0)
    reachability_timeout_ms: float = Field(default=5000, gt=0)
    headless: bool = True
    inject_agent: bool = True
    browser_args: list[str] = Field(default_factory=lambda: list(BROWSER_ARGS))
    thresholds: Thresholds = Field(default_factory=Thresholds)

    def entry_url(self, entry_id: str) -> str:
        route = self.route_template.format(id=entry_id)
        return f"{self.base_url.rstrip('/')}{route}?{self.scan_marker}"

    @property
    def readiness_timeout_label(self) -> str:
        seconds = self.readiness_timeout_ms / 1000
        return f"{seconds:g}s"


def load_config(path: str | Path | None = None, **overrides: Any) -> ScanConfig:
    """Load a scan config from an optional YAML file, then apply non-None overrides."""
    raw: dict = {}
    if path is not None:
        with open(Path(path), "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return ScanConfig(**raw)
