from arcadescan.bridge.agent import LEVELS, inject_agent, serialize_value
from arcadescan.bridge.protocol import AGENT_SOURCE, HOST_SOURCE, SurfaceSize

ORIGIN = "http://127.0.0.1:5173"


class FakeDocument:
    """Just enough of a browser document for the agent, with a manual clock."""

    def __init__(self, surface=None):
        self.origin = ORIGIN
        self.device_pixel_ratio = 2.0
        self.markers = set()
        self.printed = []
        self.console = {level: self._printer(level) for level in LEVELS}
        self.error_listeners = []
        self.clock = 0.0
        self.surface = surface
        self.posted = []
        self.events = []
        self.storage = {}
        self.storage_broken = False
        self.pending = []
        self.mutation_callbacks = []
        self.load_callbacks = []
        self.timers = []
        self.request_animation_frame = self._schedule

    def _printer(self, level):
        def write(*args):
            self.printed.append((level, args))
        return write

    def _schedule(self, callback):
        self.pending.append(callback)
        return len(self.pending)

    def run_frame(self, timestamp):
        self.clock = timestamp
        callbacks, self.pending = self.pending, []
        for callback in callbacks:
            callback(timestamp)

    def now(self):
        return self.clock

    def find_surface(self):
        return self.surface

    def post_to_parent(self, data, target_origin):
        self.posted.append((self.clock, data, target_origin))

    def dispatch_event(self, name):
        self.events.append(name)

    def storage_items(self):
        if self.storage_broken:
            raise PermissionError("storage disabled")
        return list(self.storage.items())

    def observe_mutations(self, callback):
        self.mutation_callbacks.append(callback)

    def on_load(self, callback):
        self.load_callbacks.append(callback)

    def set_timeout(self, callback, ms):
        self.timers.append(callback)

    def add_error_listener(self, callback):
        self.error_listeners.append(callback)

    def remove_error_listener(self, callback):
        self.error_listeners.remove(callback)

    def raise_error(self, *args):
        for listener in list(self.error_listeners):
            listener(*args)

    def messages(self, type_=None):
        return [data for _, data, _ in self.posted if type_ is None or data["type"] == type_]


def start_game_loop(doc, seen):
    def step(timestamp):
        seen.append(timestamp)
        doc.request_animation_frame(step)
    doc.request_animation_frame(step)


def control(type_):
    return {"source": HOST_SOURCE, "type": type_, "payload": {}}


def test_reinjection_is_a_no_op():
    doc = FakeDocument()
    first = inject_agent(doc)
    second = inject_agent(doc)
    assert first is not None
    assert second is None

    seen = []
    start_game_loop(doc, seen)
    for i in range(10):
        doc.run_frame(i * 16.0)

    assert len(seen) == 10
    # one interception: 10 frames give 9 inter-frame deltas, not 18
    assert len(first.ctx.frame_times) == 9


def test_wrapped_callback_runs_with_original_timestamp():
    doc = FakeDocument(surface=SurfaceSize(320, 240))
    inject_agent(doc)
    seen = []
    doc.request_animation_frame(seen.append)
    doc.run_frame(123.5)
    assert seen == [123.5]


def test_metrics_throttled_under_240hz():
    doc = FakeDocument(surface=SurfaceSize(320, 240))
    inject_agent(doc)
    start_game_loop(doc, [])

    frame = 1000.0 / 240
    for i in range(480):
        doc.run_frame(i * frame)

    emitted = [ts for ts, data, _ in doc.posted if data["type"] == "arcade:metrics"]
    assert 0 < len(emitted) <= 20
    assert all(b - a >= 100 for a, b in zip(emitted, emitted[1:]))

    last = doc.messages("arcade:metrics")[-1]["payload"]
    assert last["frameSamples"] == 60
    assert abs(last["fps"] - 240) < 0.5
    assert last["canvasSize"] == {"width": 320, "height": 240}
    assert last["devicePixelRatio"] == 2.0


def test_ready_fires_once_when_surface_appears():
    doc = FakeDocument()
    agent = inject_agent(doc)
    start_game_loop(doc, [])

    doc.run_frame(0.0)
    for callback in doc.timers:
        callback()
    assert doc.messages("arcade:ready") == []
    assert agent.ready is False

    doc.surface = SurfaceSize(640, 480)
    for callback in doc.mutation_callbacks:
        callback()
    doc.run_frame(16.0)
    for callback in doc.load_callbacks:
        callback()

    ready = doc.messages("arcade:ready")
    assert len(ready) == 1
    assert ready[0]["source"] == AGENT_SOURCE
    assert ready[0]["payload"] == {"canvasSize": {"width": 640, "height": 480}, "devicePixelRatio": 2.0}
    assert agent.ready is True


def test_console_forwarded_without_suppressing_output():
    doc = FakeDocument()
    inject_agent(doc)

    class Opaque:
        def __str__(self):
            return "<opaque>"

    doc.console["error"]("boom", ValueError("bad state"), {"lives": 3}, Opaque())

    assert doc.printed[0][0] == "error"
    forwarded = doc.messages("arcade:console")[0]["payload"]
    assert forwarded["level"] == "error"
    text, err, obj, opaque = forwarded["args"]
    assert text == "boom"
    assert err["name"] == "ValueError"
    assert err["message"] == "bad state"
    assert obj == {"lives": 3}
    assert opaque == "<opaque>"


def test_serialize_value_passes_primitives_through():
    assert serialize_value(None) is None
    assert serialize_value(3) == 3
    assert serialize_value(True) is True
    assert serialize_value([1, {"a": (2, 3)}]) == [1, {"a": [2, 3]}]


def test_uncaught_error_forwarded():
    doc = FakeDocument()
    inject_agent(doc)
    game_errors = []
    doc.add_error_listener(lambda *args: game_errors.append(args))
    doc.raise_error("Uncaught TypeError", "game.js", 12, 4, None)
    assert len(game_errors) == 1
    payload = doc.messages("arcade:error")[0]["payload"]
    assert payload == {"message": "Uncaught TypeError", "source": "game.js", "line": 12, "column": 4, "stack": None}


def test_pause_is_dispatched_and_echoed():
    doc = FakeDocument()
    agent = inject_agent(doc)
    agent.handle_message(control("arcade:pause"), ORIGIN)
    assert doc.events == ["arcade:pause"]
    assert doc.messages("arcade:pause-state")[0]["payload"] == {"state": "arcade:pause"}


def test_toggle_help_is_not_echoed():
    doc = FakeDocument()
    agent = inject_agent(doc)
    agent.handle_message(control("arcade:toggle-help"), ORIGIN)
    assert doc.events == ["arcade:toggle-help"]
    assert doc.messages() == []


def test_foreign_control_messages_ignored():
    doc = FakeDocument()
    agent = inject_agent(doc)
    agent.handle_message(control("arcade:pause"), "http://evil.example")
    agent.handle_message({"source": "other", "type": "arcade:pause"}, ORIGIN)
    assert doc.events == []
    assert doc.messages() == []


def test_highscores_enumerated():
    doc = FakeDocument()
    doc.storage = {"best": "4200", "": "ignored"}
    agent = inject_agent(doc)
    agent.handle_message(control("arcade:request-highscores"), ORIGIN)
    assert doc.messages("arcade:highscores")[0]["payload"] == {"entries": [{"key": "best", "value": "4200"}]}


def test_highscores_failure_reported_as_telemetry():
    doc = FakeDocument()
    doc.storage_broken = True
    agent = inject_agent(doc)
    agent.handle_message(control("arcade:request-highscores"), ORIGIN)
    assert doc.messages("arcade:error")[0]["payload"]["message"] == "Failed to enumerate localStorage"
    assert doc.messages("arcade:highscores")[0]["payload"] == {"entries": []}


def test_restore_puts_original_bindings_back():
    doc = FakeDocument()
    original_raf = doc.request_animation_frame
    original_log = doc.console["log"]
    agent = inject_agent(doc)
    assert doc.request_animation_frame is not original_raf

    agent.restore()
    assert doc.request_animation_frame is original_raf
    assert doc.console["log"] is original_log
    assert doc.error_listeners == []
