"""Health probe driver -- black-box liveness and input evidence for one entry.

The per-entry algorithm (HealthProbeDriver.probe) talks to the browser only
through a ProbeSession. PlaywrightSession is the real one; tests drive the
same algorithm with a scripted fake.

Per entry:
1. fresh listeners, navigate to the embedding route with the scan marker
2. wait (bounded) for the agent's readiness; fall back to a DOM probe
3. settle, then count animation frames in the game's own window for 2s
4. signature A, wait, signature B -> no-motion
5. press the first movement key, wait, signature C -> no-response
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rich.console import Console

from arcadescan.bridge.host import HealthWindow
from arcadescan.bridge.protocol import ChannelType, SurfaceSize
from arcadescan.bridge.script import agent_init_script, host_listener_script, post_control
from arcadescan.config import ScanConfig
from arcadescan.engine.models import ProbeSignals
from arcadescan.manifest import GameEntry
from arcadescan.probe.keys import movement_key
from arcadescan.probe.signature import FrameSignature, signature_delta

console = Console(stderr=True)


class EndpointUnreachable(RuntimeError):
    """The serving endpoint refused the connection. Nothing can be judged."""


class ProbeStepError(RuntimeError):
    """A single probe step failed (navigation, key dispatch)."""


class PrecheckError(RuntimeError):
    """The reachability pre-check failed for a reason other than an unreachable endpoint."""


@dataclass(frozen=True)
class AnimationActivity:
    tick_count: int
    elapsed_ms: float

    @property
    def fps(self) -> float | None:
        if self.elapsed_ms <= 0:
            return None
        return round(self.tick_count / (self.elapsed_ms / 1000), 2)


class ProbeSession:
    """What the probe needs from a browser. One session is reused across entries."""

    def reset_listeners(self) -> None:
        raise NotImplementedError

    def navigate(self, url: str) -> None:
        raise NotImplementedError

    def wait_ready(self, timeout_ms: float) -> bool:
        raise NotImplementedError

    def probe_surface(self) -> SurfaceSize | None:
        raise NotImplementedError

    def read_health(self) -> HealthWindow:
        raise NotImplementedError

    def measure_activity(self, window_ms: float) -> AnimationActivity | None:
        raise NotImplementedError

    def capture_signature(self, max_dimension: int) -> FrameSignature | None:
        raise NotImplementedError

    def press(self, key: str, delay_ms: float) -> None:
        raise NotImplementedError

    def wait(self, ms: float) -> None:
        raise NotImplementedError

    @property
    def console_errors(self) -> int:
        raise NotImplementedError

    @property
    def page_errors(self) -> int:
        raise NotImplementedError


class HealthProbeDriver:
    def __init__(self, config: ScanConfig, session: ProbeSession, verbose: bool = True):
        self.config = config
        self.session = session
        self.verbose = verbose

    def probe(self, entry: GameEntry) -> ProbeSignals:
        session = self.session
        t = self.config.thresholds

        if self.verbose:
            console.print(f"[cyan]probing {entry.id}[/cyan]")

        # listeners are cleared and reattached so counts never leak across entries
        session.reset_listeners()

        ready = False
        try:
            session.navigate(self.config.entry_url(entry.id))
            ready = session.wait_ready(self.config.readiness_timeout_ms)
        except ProbeStepError as e:
            if self.verbose:
                console.print(f"  [dim]navigation failed: {e}[/dim]")
        else:
            if not ready:
                ready = session.probe_surface() is not None
            if ready:
                session.wait(t.settle_ms)

        health = session.read_health()
        avg_fps = health.avg_fps()
        first_paint = health.first_paint()
        no_motion = False
        no_response = False

        if ready:
            activity = session.measure_activity(t.activity_window_ms)
            if activity is not None and activity.fps is not None:
                # driver-verified rate supersedes the agent's own report
                avg_fps = activity.fps
            no_motion, signature_b = self._check_motion(activity)
            no_response = self._check_response(entry, signature_b)

        health = session.read_health()
        errors = session.console_errors + max(session.page_errors, health.errors)

        return ProbeSignals(
            id=entry.id,
            title=entry.title,
            ready=ready,
            avg_fps=avg_fps,
            first_paint=first_paint,
            error_count=errors,
            no_motion=no_motion,
            no_response=no_response,
        )

    def _check_motion(self, activity: AnimationActivity | None) -> tuple[bool, FrameSignature | None]:
        session = self.session
        t = self.config.thresholds

        signature_a = session.capture_signature(t.signature_max_dimension)
        session.wait(t.motion_gap_ms)
        signature_b = session.capture_signature(t.signature_max_dimension)

        ticks = activity.tick_count if activity is not None else 0
        if signature_a is None or signature_b is None or ticks <= t.min_ticks:
            return True, signature_b
        delta = signature_delta(signature_a, signature_b)
        # None here means the surface changed size, which is visible change
        return delta is not None and delta < t.motion_delta, signature_b

    def _check_response(self, entry: GameEntry, signature_b: FrameSignature | None) -> bool:
        raw_input = entry.first_movement_input
        if raw_input is None:
            return False

        key = movement_key(raw_input)
        if key is None or signature_b is None:
            if self.verbose:
                console.print(f"  [dim]cannot confirm input response for {raw_input!r}[/dim]")
            return True

        session = self.session
        t = self.config.thresholds
        try:
            session.press(key, t.key_press_delay_ms)
        except ProbeStepError as e:
            if self.verbose:
                console.print(f"  [dim]key dispatch failed: {e}[/dim]")
            return True
        session.wait(t.response_wait_ms)
        signature_c = session.capture_signature(t.signature_max_dimension)
        if signature_c is None:
            return True
        delta = signature_delta(signature_b, signature_c)
        return delta is not None and delta < t.response_delta


# --- Playwright ---

_SURFACE_JS = """(selector) => {
  try {
    const iframe = document.querySelector(selector);
    if (!iframe || !(iframe instanceof HTMLIFrameElement)) return null;
    const doc = iframe.contentDocument;
    if (!doc) return null;
    const canvas = doc.querySelector('canvas');
    if (!canvas) return null;
    const width = canvas.width || Math.round(canvas.getBoundingClientRect().width);
    const height = canvas.height || Math.round(canvas.getBoundingClientRect().height);
    if (!width || !height) return null;
    return { width, height };
  } catch (err) {
    return null;
  }
}"""

_ACTIVITY_JS = """({ selector, windowMs }) => {
  const iframe = document.querySelector(selector);
  if (!iframe || !(iframe instanceof HTMLIFrameElement)) return null;
  const frameWindow = iframe.contentWindow;
  if (!frameWindow) return null;

  return new Promise((resolve) => {
    let ticks = 0;
    let done = false;
    const start = frameWindow.performance.now();
    const finish = () => {
      if (done) return;
      done = true;
      resolve({ tickCount: ticks, elapsedMs: frameWindow.performance.now() - start });
    };
    const step = () => {
      if (done) return;
      ticks += 1;
      if (frameWindow.performance.now() - start >= windowMs) {
        finish();
        return;
      }
      frameWindow.requestAnimationFrame(step);
    };
    // a frozen frame never ticks; stop waiting shortly after the window closes
    setTimeout(finish, windowMs + 1000);
    frameWindow.requestAnimationFrame(step);
  });
}"""

_READY_JS = "() => window.__healthScan && window.__healthScan.ready === true"


class PlaywrightSession(ProbeSession):
    """ProbeSession over one Playwright page, reused across all entries."""

    def __init__(self, page: Any, config: ScanConfig):
        from playwright.sync_api import Error as PlaywrightError

        self.page = page
        self.config = config
        self._error_type = PlaywrightError
        self._console_errors = 0
        self._page_errors = 0
        self._handlers: list[tuple[str, Any]] = []

        page.add_init_script(host_listener_script())
        if config.inject_agent:
            page.add_init_script(agent_init_script())

    def reset_listeners(self) -> None:
        for event, handler in self._handlers:
            self.page.remove_listener(event, handler)
        self._handlers = []
        self._console_errors = 0
        self._page_errors = 0

        def on_console(msg):
            if msg.type == "error":
                self._console_errors += 1

        def on_page_error(_error):
            self._page_errors += 1

        for event, handler in (("console", on_console), ("pageerror", on_page_error)):
            self.page.on(event, handler)
            self._handlers.append((event, handler))

    def navigate(self, url: str) -> None:
        try:
            self.page.goto(url, wait_until="domcontentloaded")
            self.page.bring_to_front()
        except self._error_type as e:
            raise ProbeStepError(str(e)) from e

    def wait_ready(self, timeout_ms: float) -> bool:
        try:
            self.page.wait_for_function(_READY_JS, timeout=timeout_ms)
        except self._error_type:
            return False
        return True

    def probe_surface(self) -> SurfaceSize | None:
        try:
            raw = self.page.evaluate(_SURFACE_JS, self.config.frame_selector)
        except self._error_type:
            return None
        return SurfaceSize.from_payload(raw)

    def read_health(self) -> HealthWindow:
        try:
            raw = self.page.evaluate("() => window.__healthScan")
        except self._error_type:
            return HealthWindow()
        return HealthWindow.from_snapshot(raw)

    def measure_activity(self, window_ms: float) -> AnimationActivity | None:
        try:
            raw = self.page.evaluate(
                _ACTIVITY_JS, {"selector": self.config.frame_selector, "windowMs": window_ms}
            )
        except self._error_type:
            return None
        if not isinstance(raw, dict):
            return None
        return AnimationActivity(tick_count=int(raw.get("tickCount", 0)), elapsed_ms=float(raw.get("elapsedMs", 0)))

    def capture_signature(self, max_dimension: int) -> FrameSignature | None:
        surface = self.page.frame_locator(self.config.frame_selector).locator("canvas").first
        try:
            png = surface.screenshot(timeout=2000)
        except self._error_type:
            return None
        return FrameSignature.from_png(png, max_dimension)

    def press(self, key: str, delay_ms: float) -> None:
        try:
            self.page.focus(self.config.frame_selector, timeout=2000)
            post_control(self.page, ChannelType.FOCUS, frame_selector=self.config.frame_selector)
            self.page.keyboard.press(key, delay=delay_ms)
        except self._error_type as e:
            raise ProbeStepError(str(e)) from e

    def wait(self, ms: float) -> None:
        self.page.wait_for_timeout(ms)

    @property
    def console_errors(self) -> int:
        return self._console_errors

    @property
    def page_errors(self) -> int:
        return self._page_errors


NETWORK_FAILURES = (
    "ECONNREFUSED",
    "ENOTFOUND",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_CONNECTION_TIMED_OUT",
    "ERR_NAME_NOT_RESOLVED",
    "ERR_ADDRESS_UNREACHABLE",
    "ERR_ADDRESS_INVALID",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_TIMED_OUT",
)


def is_network_failure(message: str) -> bool:
    return any(code in message for code in NETWORK_FAILURES)


def check_reachable(playwright: Any, config: ScanConfig, verbose: bool = True) -> None:
    """Raise EndpointUnreachable when nothing answers at the base URL.

    Connection, name-resolution and address failures and a navigation timeout
    all mean the endpoint is unreachable. Any other failure raises PrecheckError.
    """
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    if verbose:
        console.print(f"[cyan]checking serving endpoint at {config.base_url}[/cyan]")
    try:
        browser = playwright.chromium.launch(headless=config.headless, args=config.browser_args)
    except PlaywrightError as e:
        raise PrecheckError(f"could not launch the browser: {e}") from e
    try:
        page = browser.new_context().new_page()
        page.goto(config.base_url, wait_until="domcontentloaded", timeout=config.reachability_timeout_ms)
    except PlaywrightTimeoutError as e:
        raise EndpointUnreachable(
            f"{config.base_url} did not respond within {config.reachability_timeout_ms:g}ms"
        ) from e
    except PlaywrightError as e:
        message = str(e)
        if is_network_failure(message):
            raise EndpointUnreachable(f"{config.base_url} is unreachable: {message.splitlines()[0]}") from e
        raise PrecheckError(f"pre-check against {config.base_url} failed: {message}") from e
    finally:
        browser.close()

