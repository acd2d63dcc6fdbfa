"""Classification engine -- probe signals in, verdict out.

The engine only ever demotes: an entry with a concrete failing cause becomes
broken, everything else keeps its persisted status. It never promotes an
entry to working on its own.
"""

from __future__ import annotations

from arcadescan.config import Thresholds
from arcadescan.engine.models import HealthResult, ProbeSignals, Status

PASS_NOTE = "Pass"
EXCLUDED_NOTE = "Excluded (missing assets)"


def should_mark_broken(stalled: bool, no_motion: bool, no_response: bool,
                       error_count: int, max_errors: int = 3) -> bool:
    return stalled or no_motion or no_response or error_count > max_errors


def collect_issues(
    signals: ProbeSignals,
    thresholds: Thresholds,
    timeout_label: str,
) -> list[str]:
    """Human-readable reasons, in a fixed order."""
    issues = []
    if not signals.ready:
        issues.append(f"arcade:ready not observed within {timeout_label}")
    if signals.error_count > thresholds.max_errors:
        issues.append(f"High error count ({signals.error_count})")
    if signals.no_motion:
        issues.append(
            f"No motion detected (frame delta < {thresholds.motion_delta:.0%} "
            f"or rAF ticks <= {thresholds.min_ticks})"
        )
    if signals.no_response:
        issues.append(
            f"No basic input response (<{thresholds.response_delta:.0%} delta "
            "after simulated movement key)"
        )
    return issues


def classify(
    signals: ProbeSignals,
    previous_status: Status,
    thresholds: Thresholds | None = None,
    timeout_label: str = "10s",
) -> HealthResult:
    thresholds = thresholds or Thresholds()
    stalled = not signals.ready
    broken = should_mark_broken(
        stalled, signals.no_motion, signals.no_response,
        signals.error_count, thresholds.max_errors,
    )
    issues = collect_issues(signals, thresholds, timeout_label)
    return HealthResult(
        id=signals.id,
        title=signals.title,
        ready=signals.ready,
        avg_fps=signals.avg_fps,
        first_paint=signals.first_paint,
        error_count=signals.error_count,
        stalled=stalled,
        no_motion=signals.no_motion,
        no_response=signals.no_response,
        status=Status.BROKEN if broken else previous_status,
        previous_status=previous_status,
        note="; ".join(issues) if issues else PASS_NOTE,
    )


def excluded(entry_id: str, title: str, status: Status = Status.MISSING_ASSETS) -> HealthResult:
    """Pass-through row for an entry that is never probed.

    Flags are set as failing so the row cannot be read as healthy.
    """
    return HealthResult(
        id=entry_id,
        title=title,
        ready=False,
        avg_fps=None,
        first_paint=None,
        error_count=0,
        stalled=True,
        no_motion=True,
        no_response=True,
        status=status,
        previous_status=status,
        note=EXCLUDED_NOTE,
    )
