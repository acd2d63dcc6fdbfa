"""Manifest reconciliation -- opt-in write-back of newly broken entries.

Only entries that move from a non-broken status to broken in this run are
written. Entries that were already broken are left alone.
"""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from arcadescan.engine.models import HealthResult, Status
from arcadescan.manifest import Manifest, save_manifest

console = Console(stderr=True)


class ReconciliationError(RuntimeError):
    """The manifest could not be written; the report may now disagree with it."""


def regressions(results: list[HealthResult]) -> list[HealthResult]:
    return [r for r in results if r.regressed]


def apply_regressions(manifest: Manifest, results: list[HealthResult]) -> list[str]:
    """Mark regressed entries broken in memory. Returns the ids changed."""
    changed = []
    for result in regressions(results):
        if manifest.set_status(result.id, Status.BROKEN):
            changed.append(result.id)
    return changed


def reconcile(
    manifest: Manifest,
    results: list[HealthResult],
    manifest_path: str | Path,
    verbose: bool = True,
) -> list[str]:
    changed = apply_regressions(manifest, results)
    if not changed:
        if verbose:
            console.print("[dim]no manifest updates required[/dim]")
        return changed

    try:
        save_manifest(manifest, manifest_path)
    except OSError as e:
        raise ReconciliationError(f"Failed to write {manifest_path}: {e}") from e

    if verbose:
        console.print(f"[yellow]updated {manifest_path} with broken statuses: {', '.join(changed)}[/yellow]")
    return changed
