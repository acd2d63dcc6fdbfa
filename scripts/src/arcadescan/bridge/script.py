"""Browser-side bridge scripts and the Playwright helpers that install them.

agent_script() renders the in-document agent (the JavaScript rendition of
arcadescan.bridge.agent). host_listener_script() runs in the host page and folds
agent telemetry into window.__healthScan, the object HealthWindow.from_snapshot
reads back. Both are rendered from the protocol constants so the two sides
cannot drift.
"""

from __future__ import annotations

from string import Template
from typing import Any

from arcadescan.bridge.protocol import (
    AGENT_SOURCE,
    FRAME_WINDOW,
    HOST_SOURCE,
    METRICS_INTERVAL_MS,
    WIRE_PREFIX,
    ChannelType,
    control_message,
)

_AGENT_TEMPLATE = Template(r"""(() => {
  const existing = window.__arcadeBridge;
  if (existing) {
    if (existing.document === document) return;
    // window reused across the initial about:blank navigation
    existing.restore();
  }

  const SOURCE = '$agent_source';
  const PARENT_SOURCE = '$host_source';
  const PREFIX = '$prefix';
  const INTERVAL = $interval;
  const WINDOW = $window;
  const ORIGIN = window.origin;
  const originalConsole = {};
  const state = {
    lastTimestamp: null,
    frameTimes: [],
    lastPost: performance.now(),
    firstPaint: null,
    start: performance.now()
  };
  let readySent = false;

  const serialize = (value) => {
    try {
      if (typeof value === 'string') return value;
      if (typeof value === 'number' || typeof value === 'boolean' || value === null) return value;
      if (value instanceof Error) {
        return { name: value.name, message: value.message, stack: value.stack };
      }
      if (typeof value === 'object') return JSON.parse(JSON.stringify(value));
      return String(value);
    } catch (err) {
      return String(value);
    }
  };

  const post = (type, payload) => {
    try {
      window.parent && window.parent.postMessage({ source: SOURCE, type: PREFIX + type, payload: payload || {} }, ORIGIN);
    } catch (err) {
      // the parent may be gone during navigation
    }
  };

  const detectSurface = () => {
    const canvas = document.querySelector('canvas');
    if (!canvas) return null;
    const rect = canvas.getBoundingClientRect();
    return { width: canvas.width || rect.width, height: canvas.height || rect.height };
  };

  const sendReadyOnce = () => {
    if (readySent) return;
    const size = detectSurface();
    if (!size) return;
    readySent = true;
    post('ready', { canvasSize: size, devicePixelRatio: window.devicePixelRatio || 1 });
  };

  const recordFrame = (timestamp) => {
    if (state.lastTimestamp != null) {
      state.frameTimes.push(timestamp - state.lastTimestamp);
      if (state.frameTimes.length > WINDOW) state.frameTimes.shift();
      if (state.firstPaint == null) state.firstPaint = performance.now() - state.start;
    }
    state.lastTimestamp = timestamp;
    if (timestamp - state.lastPost < INTERVAL) return;

    const count = state.frameTimes.length;
    const average = count > 0 ? state.frameTimes.reduce((acc, v) => acc + v, 0) / count : 0;
    const fps = average > 0 ? 1000 / average : 0;
    post('metrics', {
      fps: Number.isFinite(fps) ? Number(fps.toFixed(2)) : 0,
      frameTimeMs: Number(average.toFixed(2)),
      frameSamples: count,
      canvasSize: detectSurface(),
      firstPaintMs: state.firstPaint,
      devicePixelRatio: window.devicePixelRatio || 1
    });
    state.lastPost = timestamp;
  };

  const originalRequestAnimationFrame = window.requestAnimationFrame;
  window.requestAnimationFrame = function wrappedRequestAnimationFrame(callback) {
    return originalRequestAnimationFrame.call(window, (timestamp) => {
      recordFrame(timestamp);
      sendReadyOnce();
      callback(timestamp);
    });
  };

  ['log', 'info', 'warn', 'error'].forEach((level) => {
    const original = console[level];
    originalConsole[level] = original;
    console[level] = (...args) => {
      post('console', { level, args: args.map(serialize) });
      if (original) original.apply(console, args);
    };
  });

  // survives the game assigning its own window.onerror
  const onError = (event) => {
    const error = event.error;
    post('error', {
      message: String(event.message),
      source: event.filename,
      line: event.lineno,
      column: event.colno,
      stack: error && error.stack ? error.stack : null
    });
  };
  window.addEventListener('error', onError);

  const onMessage = (event) => {
    const data = event.data;
    if (!data || data.source !== PARENT_SOURCE) return;
    if (event.origin !== ORIGIN) return;
    const type = typeof data.type === 'string' ? data.type : '';

    switch (type) {
      case PREFIX + 'focus':
      case PREFIX + 'blur':
      case PREFIX + 'pause':
      case PREFIX + 'resume': {
        window.dispatchEvent(new CustomEvent(type));
        document.dispatchEvent(new CustomEvent(type));
        post('pause-state', { state: type });
        break;
      }
      case PREFIX + 'toggle-help': {
        window.dispatchEvent(new CustomEvent(type));
        document.dispatchEvent(new CustomEvent(type));
        break;
      }
      case PREFIX + 'request-highscores': {
        const entries = [];
        try {
          for (let i = 0; i < window.localStorage.length; i++) {
            const key = window.localStorage.key(i);
            if (!key) continue;
            entries.push({ key, value: window.localStorage.getItem(key) });
          }
        } catch (err) {
          post('error', {
            message: 'Failed to enumerate localStorage',
            stack: err instanceof Error ? err.stack : null
          });
        }
        post('highscores', { entries });
        break;
      }
      default:
        break;
    }
  };
  window.addEventListener('message', onMessage);

  const observer = new MutationObserver(() => sendReadyOnce());
  observer.observe(document, { childList: true, subtree: true });
  document.addEventListener('DOMContentLoaded', () => sendReadyOnce());
  window.addEventListener('load', () => sendReadyOnce());
  setTimeout(() => sendReadyOnce(), 0);

  window.__arcadeBridge = {
    document,
    restore() {
      Object.keys(originalConsole).forEach((level) => {
        console[level] = originalConsole[level];
      });
      window.requestAnimationFrame = originalRequestAnimationFrame;
      window.removeEventListener('error', onError);
      window.removeEventListener('message', onMessage);
      observer.disconnect();
    }
  };
})();""")

_HOST_LISTENER_TEMPLATE = Template(r"""(() => {
  if (window.top !== window) return;
  window.__healthScan = {
    ready: false,
    metrics: [],
    nativeSize: null,
    devicePixelRatio: window.devicePixelRatio || 1,
    errors: 0
  };
  window.addEventListener('message', (event) => {
    if (event.origin !== window.origin) return;
    const data = event.data;
    if (!data || data.source !== '$agent_source') return;
    const health = window.__healthScan;
    const payload = data.payload || {};
    switch (data.type) {
      case '$ready':
        health.ready = true;
        if (payload.canvasSize) health.nativeSize = payload.canvasSize;
        if (payload.devicePixelRatio) health.devicePixelRatio = payload.devicePixelRatio;
        break;
      case '$metrics':
        health.metrics.push(payload);
        if (payload.devicePixelRatio) health.devicePixelRatio = payload.devicePixelRatio;
        break;
      case '$error':
        health.errors += 1;
        break;
      default:
        break;
    }
  });
})();""")

_POST_CONTROL_JS = """({ selector, message }) => {
  const iframe = document.querySelector(selector);
  const target = iframe && iframe.contentWindow;
  if (!target) return false;
  target.postMessage(message, window.location.origin);
  return true;
}"""


def agent_script() -> str:
    return _AGENT_TEMPLATE.substitute(
        agent_source=AGENT_SOURCE,
        host_source=HOST_SOURCE,
        prefix=WIRE_PREFIX,
        interval=int(METRICS_INTERVAL_MS),
        window=FRAME_WINDOW,
    )


def host_listener_script() -> str:
    return _HOST_LISTENER_TEMPLATE.substitute(
        agent_source=AGENT_SOURCE,
        ready=ChannelType.READY.wire,
        metrics=ChannelType.METRICS.wire,
        error=ChannelType.ERROR.wire,
    )


def agent_init_script() -> str:
    """The agent as a page init script: runs in embedded frames only, before any game code."""
    return "if (window.top !== window) " + agent_script()


def post_control(page: Any, channel: ChannelType, payload: dict | None = None,
                 frame_selector: str = "iframe") -> bool:
    """Post a host control message into the embedded frame. False when no frame is attached."""
    message = control_message(channel, payload)
    return bool(page.evaluate(_POST_CONTROL_JS, {"selector": frame_selector, "message": message.to_wire()}))
