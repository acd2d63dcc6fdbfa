"""Embedded agent -- makes an uncooperative game observable without changing it.

This is the document-independent model of the agent that ships to the browser
as JavaScript (see arcadescan.bridge.script). Everything the agent touches in a
real page is reached through an explicit document object, so the same
interception, throttling and control rules can be exercised against a fake.

A document object provides:

    origin                      -- str, the document's origin
    device_pixel_ratio          -- float
    markers                     -- set[str], injection markers present in the DOM
    console                     -- dict[str, callable], the four logging severities
    add_error_listener(cb)      -- subscribe to uncaught errors (message, source, line, column, error)
    remove_error_listener(cb)
    request_animation_frame(cb) -- the per-frame scheduling primitive (replaceable)
    now()                       -- monotonic milliseconds
    find_surface()              -- SurfaceSize of the first drawable surface, or None
    post_to_parent(data, target_origin)
    dispatch_event(name)        -- fire a custom event on window and document
    storage_items()             -- iterable of (key, value) from local storage
    observe_mutations(cb), on_load(cb), set_timeout(cb, ms)
"""

from __future__ import annotations

import json
import traceback
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from arcadescan.bridge.protocol import (
    ECHOED_CONTROLS,
    FRAME_WINDOW,
    INJECTION_MARKER,
    METRICS_INTERVAL_MS,
    ChannelType,
    MetricsSample,
    accept_control,
    agent_message,
)

LEVELS = ("log", "info", "warn", "error")


def serialize_value(value: Any) -> Any:
    """Best-effort conversion of a console argument into something postable."""
    try:
        if value is None or isinstance(value, (str, bool, int, float)):
            return value
        if isinstance(value, BaseException):
            stack = "".join(traceback.format_exception(type(value), value, value.__traceback__))
            return {"name": type(value).__name__, "message": str(value), "stack": stack}
        return json.loads(json.dumps(value))
    except (TypeError, ValueError, RecursionError):
        return str(value)


@dataclass
class AgentContext:
    """Per-document-lifetime state shared by the interceptors and the emitter."""
    origin: str
    post: Callable[[dict, str], None]
    started_at: float
    ready: bool = False
    last_timestamp: float | None = None
    frame_times: deque = field(default_factory=lambda: deque(maxlen=FRAME_WINDOW))
    last_post: float = 0.0
    first_paint_ms: float | None = None
    sent: list[ChannelType] = field(default_factory=list)

    def emit(self, channel: ChannelType, payload: dict | None = None) -> None:
        message = agent_message(channel, payload)
        self.sent.append(channel)
        self.post(message.to_wire(), self.origin)


class MetricsThrottle:
    """Rolling frame-time window with a wall-clock rate limit on emission."""

    def __init__(self, ctx: AgentContext, interval_ms: float = METRICS_INTERVAL_MS):
        self.ctx = ctx
        self.interval_ms = interval_ms

    def record_frame(self, timestamp: float, now: float) -> MetricsSample | None:
        """Record one frame; return a sample when the interval has elapsed."""
        ctx = self.ctx
        if ctx.last_timestamp is not None:
            ctx.frame_times.append(timestamp - ctx.last_timestamp)
            if ctx.first_paint_ms is None:
                ctx.first_paint_ms = now - ctx.started_at
        ctx.last_timestamp = timestamp

        if timestamp - ctx.last_post < self.interval_ms:
            return None

        count = len(ctx.frame_times)
        average = sum(ctx.frame_times) / count if count else 0.0
        fps = 1000.0 / average if average > 0 else 0.0
        ctx.last_post = timestamp
        return MetricsSample(
            fps=round(fps, 2),
            frame_time_ms=round(average, 2),
            frame_samples=count,
            first_paint_ms=ctx.first_paint_ms,
        )


class FrameInterceptor:
    """Wraps the document's animation-frame primitive.

    Every wrapped callback records the frame first and then runs the original
    callback with the same timestamp. install() is idempotent and restore()
    puts the original binding back.
    """

    def __init__(self, document: Any, on_frame: Callable[[float], None]):
        self.document = document
        self.on_frame = on_frame
        self._original: Callable | None = None

    @property
    def installed(self) -> bool:
        return self._original is not None

    def install(self) -> None:
        if self.installed:
            return
        original = self.document.request_animation_frame
        on_frame = self.on_frame

        def wrapped_request_animation_frame(callback):
            def frame(timestamp):
                on_frame(timestamp)
                return callback(timestamp)
            return original(frame)

        self._original = original
        self.document.request_animation_frame = wrapped_request_animation_frame

    def restore(self) -> None:
        if self._original is None:
            return
        self.document.request_animation_frame = self._original
        self._original = None


class ConsoleInterceptor:
    """Forwards console output and uncaught errors without suppressing them."""

    def __init__(self, document: Any, ctx: AgentContext):
        self.document = document
        self.ctx = ctx
        self._originals: dict[str, Callable] = {}

    @property
    def installed(self) -> bool:
        return bool(self._originals)

    def install(self) -> None:
        if self.installed:
            return
        for level in LEVELS:
            original = self.document.console.get(level)
            self._originals[level] = original
            self.document.console[level] = self._wrap(level, original)
        self.document.add_error_listener(self._forward_error)

    def restore(self) -> None:
        if not self.installed:
            return
        for level, original in self._originals.items():
            self.document.console[level] = original
        self._originals = {}
        self.document.remove_error_listener(self._forward_error)

    def _wrap(self, level: str, original: Callable | None) -> Callable:
        ctx = self.ctx

        def forward(*args):
            ctx.emit(ChannelType.CONSOLE, {"level": level, "args": [serialize_value(a) for a in args]})
            if original is not None:
                return original(*args)
            return None

        return forward

    def _forward_error(self, message, source=None, line=None, column=None, error=None):
        stack = None
        if isinstance(error, BaseException):
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        self.ctx.emit(ChannelType.ERROR, {
            "message": str(message),
            "source": source,
            "line": line,
            "column": column,
            "stack": stack,
        })


class Agent:
    """One agent per embedded document lifetime."""

    def __init__(self, document: Any):
        self.document = document
        self.ctx = AgentContext(
            origin=document.origin,
            post=document.post_to_parent,
            started_at=document.now(),
            last_post=document.now(),
        )
        self.throttle = MetricsThrottle(self.ctx)
        self.frames = FrameInterceptor(document, self._on_frame)
        self.console = ConsoleInterceptor(document, self.ctx)

    def install(self) -> None:
        self.frames.install()
        self.console.install()
        doc = self.document
        doc.observe_mutations(self.send_ready_once)
        doc.on_load(self.send_ready_once)
        doc.set_timeout(self.send_ready_once, 0)

    def restore(self) -> None:
        self.frames.restore()
        self.console.restore()

    @property
    def ready(self) -> bool:
        return self.ctx.ready

    def send_ready_once(self) -> None:
        if self.ctx.ready:
            return
        size = self.document.find_surface()
        if size is None:
            return
        self.ctx.ready = True
        self.ctx.emit(ChannelType.READY, {
            "canvasSize": size.to_dict(),
            "devicePixelRatio": self.document.device_pixel_ratio or 1,
        })

    def _on_frame(self, timestamp: float) -> None:
        sample = self.throttle.record_frame(timestamp, self.document.now())
        if sample is not None:
            payload = sample.to_payload()
            size = self.document.find_surface()
            payload["canvasSize"] = size.to_dict() if size else None
            payload["devicePixelRatio"] = self.document.device_pixel_ratio or 1
            self.ctx.emit(ChannelType.METRICS, payload)
        self.send_ready_once()

    def handle_message(self, data: Any, origin: str) -> None:
        """Apply one control message posted by the host."""
        message = accept_control(data, origin, self.ctx.origin)
        if message is None:
            return

        if message.type in ECHOED_CONTROLS:
            self.document.dispatch_event(message.type.wire)
            self.ctx.emit(ChannelType.PAUSE_STATE, {"state": message.type.wire})
        elif message.type is ChannelType.TOGGLE_HELP:
            self.document.dispatch_event(message.type.wire)
        elif message.type is ChannelType.REQUEST_HIGHSCORES:
            entries = []
            try:
                for key, value in self.document.storage_items():
                    if key:
                        entries.append({"key": key, "value": value})
            except Exception as e:
                self.ctx.emit(ChannelType.ERROR, {
                    "message": "Failed to enumerate localStorage",
                    "stack": "".join(traceback.format_exception(type(e), e, e.__traceback__)),
                })
            self.ctx.emit(ChannelType.HIGHSCORES, {"entries": entries})


def inject_agent(document: Any) -> Agent | None:
    """Install an agent unless one is already present. Returns the new agent."""
    if INJECTION_MARKER in document.markers:
        return None
    document.markers.add(INJECTION_MARKER)
    agent = Agent(document)
    agent.install()
    return agent
