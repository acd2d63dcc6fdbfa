import pytest

from arcadescan.bridge.protocol import (
    AGENT_SOURCE,
    HOST_SOURCE,
    ChannelType,
    MetricsSample,
    TelemetryMessage,
    accept_control,
    accept_telemetry,
    agent_message,
    control_message,
)

ORIGIN = "http://127.0.0.1:5173"


def wire(source, type_, payload=None):
    return {"source": source, "type": type_, "payload": payload or {}}


def test_wire_names_are_prefixed():
    assert ChannelType.READY.wire == "arcade:ready"
    assert ChannelType.REQUEST_HIGHSCORES.wire == "arcade:request-highscores"
    assert ChannelType.from_wire("arcade:pause-state") is ChannelType.PAUSE_STATE


def test_unknown_wire_type_is_not_a_message():
    assert ChannelType.from_wire("arcade:explode") is None
    assert ChannelType.from_wire("ready") is None
    assert TelemetryMessage.from_wire(wire(AGENT_SOURCE, "arcade:explode")) is None
    assert TelemetryMessage.from_wire("not a dict") is None


def test_telemetry_accepted_from_agent_same_origin():
    msg = accept_telemetry(wire(AGENT_SOURCE, "arcade:metrics", {"fps": 60}), ORIGIN, ORIGIN)
    assert msg is not None
    assert msg.type is ChannelType.METRICS
    assert msg.payload == {"fps": 60}


def test_telemetry_with_foreign_tag_is_discarded():
    assert accept_telemetry(wire("someone-else", "arcade:ready"), ORIGIN, ORIGIN) is None
    assert accept_telemetry(wire(HOST_SOURCE, "arcade:ready"), ORIGIN, ORIGIN) is None


def test_cross_origin_is_discarded():
    data = wire(AGENT_SOURCE, "arcade:ready")
    assert accept_telemetry(data, "http://evil.example", ORIGIN) is None
    control = wire(HOST_SOURCE, "arcade:pause")
    assert accept_control(control, "http://evil.example", ORIGIN) is None


def test_control_channel_only_accepts_control_types():
    assert accept_control(wire(HOST_SOURCE, "arcade:pause"), ORIGIN, ORIGIN).type is ChannelType.PAUSE
    assert accept_control(wire(HOST_SOURCE, "arcade:ready"), ORIGIN, ORIGIN) is None
    assert accept_telemetry(wire(AGENT_SOURCE, "arcade:pause"), ORIGIN, ORIGIN) is None


def test_message_builders_reject_wrong_direction():
    with pytest.raises(ValueError):
        agent_message(ChannelType.PAUSE)
    with pytest.raises(ValueError):
        control_message(ChannelType.METRICS)
    assert control_message(ChannelType.BLUR).to_wire() == wire(HOST_SOURCE, "arcade:blur")


def test_metrics_sample_round_trip_and_lenient_parse():
    sample = MetricsSample(fps=59.5, frame_time_ms=16.8, frame_samples=60, first_paint_ms=12.0, device_pixel_ratio=2.0)
    assert MetricsSample.from_payload(sample.to_payload()) == sample

    parsed = MetricsSample.from_payload({"fps": float("nan"), "frameSamples": -3, "canvasSize": {"width": 320}})
    assert parsed.fps == 0.0
    assert parsed.frame_samples == 0
    assert parsed.canvas_size is None
    assert parsed.device_pixel_ratio == 1.0
