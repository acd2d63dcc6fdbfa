"""Post-scan check -- does the manifest agree with the latest health report?"""

from __future__ import annotations

from dataclasses import dataclass, field

from arcadescan.engine.models import HealthResult, Status
from arcadescan.manifest import Manifest


@dataclass
class CheckResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors


def find_offenders(results: list[HealthResult]) -> list[tuple[str, list[str]]]:
    """Entries still reported working while carrying a failure flag."""
    offenders = []
    for result in results:
        if result.status is not Status.WORKING:
            continue
        flags = result.flags
        if flags:
            offenders.append((result.id, flags))
    return offenders


def unreconciled(results: list[HealthResult], manifest: Manifest) -> list[str]:
    """Ids the report calls broken that the manifest still lists as playable."""
    ids = []
    for result in results:
        if result.status is not Status.BROKEN:
            continue
        entry = manifest.get(result.id)
        if entry is not None and entry.status.playable:
            ids.append(result.id)
    return ids


def format_table(header: list[str], rows: list[list[str]]) -> str:
    widths = [max([len(h)] + [len(str(row[i])) for row in rows]) for i, h in enumerate(header)]

    def fmt(row):
        return " | ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row))

    return "\n".join([fmt(header), "-+-".join("-" * w for w in widths)] + [fmt(r) for r in rows])


def check_report(results: list[HealthResult], manifest: Manifest) -> CheckResult:
    check = CheckResult()

    reported = {r.id for r in results}
    for game in manifest.games:
        if game.id not in reported:
            check.warnings.append(f"{game.id} is in the manifest but missing from the report")

    offenders = find_offenders(results)
    if offenders:
        table = format_table(["Game", "Flags"], [[gid, ", ".join(flags)] for gid, flags in offenders])
        check.errors.append(f"Health scan flagged playable titles:\n{table}")

    stale = unreconciled(results, manifest)
    if stale:
        check.errors.append(
            f"Broken titles are still included in the playable list: {', '.join(stale)}"
        )
    return check
