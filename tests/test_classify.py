import itertools

import pytest

from arcadescan.config import Thresholds
from arcadescan.engine.classify import PASS_NOTE, classify, excluded, should_mark_broken
from arcadescan.engine.models import HealthResult, ProbeSignals, Status


def signals(**overrides):
    base = dict(id="pixel-pong", title="Pixel Pong", ready=True, avg_fps=60.0, error_count=0)
    base.update(overrides)
    return ProbeSignals(**base)


@pytest.mark.parametrize("stalled, no_motion, no_response, many_errors",
                         list(itertools.product([False, True], repeat=4)))
def test_broken_iff_any_cause(stalled, no_motion, no_response, many_errors):
    errors = 4 if many_errors else 3
    expected = stalled or no_motion or no_response or many_errors
    assert should_mark_broken(stalled, no_motion, no_response, errors) is expected

    result = classify(
        signals(ready=not stalled, no_motion=no_motion, no_response=no_response, error_count=errors),
        previous_status=Status.WORKING,
    )
    assert (result.status is Status.BROKEN) is expected
    assert (result.note == PASS_NOTE) is (not expected)


def test_clean_entry_keeps_previous_status():
    for previous in (Status.WORKING, Status.UNKNOWN, Status.FLAKY, Status.BROKEN):
        result = classify(signals(), previous_status=previous)
        assert result.status is previous
        assert result.previous_status is previous
        assert result.note == PASS_NOTE


def test_stalled_note_names_timeout():
    result = classify(signals(ready=False), Status.WORKING, timeout_label="10s")
    assert result.stalled is True
    assert result.status is Status.BROKEN
    assert "not observed within 10s" in result.note


def test_notes_joined_in_fixed_order():
    result = classify(signals(ready=False, error_count=5, no_motion=True, no_response=True), Status.WORKING)
    parts = result.note.split("; ")
    assert parts[0].startswith("arcade:ready not observed")
    assert parts[1] == "High error count (5)"
    assert parts[2].startswith("No motion detected (frame delta < 1% or rAF ticks <= 30)")
    assert parts[3].startswith("No basic input response (<1% delta")


def test_error_threshold_is_configurable():
    strict = Thresholds(max_errors=0)
    assert classify(signals(error_count=1), Status.WORKING, thresholds=strict).status is Status.BROKEN
    assert classify(signals(error_count=1), Status.WORKING).status is Status.WORKING


def test_excluded_entries_pass_through_flagged():
    result = excluded("lost-game", "Lost Game")
    assert result.status is Status.MISSING_ASSETS
    assert result.previous_status is Status.MISSING_ASSETS
    assert result.stalled and result.no_motion and result.no_response
    assert result.ready is False
    assert result.note == "Excluded (missing assets)"


def test_result_serialises_with_camel_case_keys():
    result = classify(signals(error_count=2, first_paint=42.0), Status.UNKNOWN)
    data = result.to_dict()
    assert data["avgFps"] == 60.0
    assert data["firstPaint"] == 42.0
    assert data["errorCount"] == 2
    assert data["previousStatus"] == "unknown"
    assert HealthResult.from_dict(data) == result


def test_regressed_only_for_newly_broken():
    assert classify(signals(ready=False), Status.WORKING).regressed is True
    assert classify(signals(ready=False), Status.BROKEN).regressed is False
    assert classify(signals(), Status.WORKING).regressed is False
