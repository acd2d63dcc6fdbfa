"""Health report rendering -- markdown table, JSON record set, console table.

Both files are regenerated wholesale on every run.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.table import Table

from arcadescan.engine.models import HealthResult, Status

console = Console(stderr=True)

COLUMNS = ["Id", "Game", "Ready", "Avg FPS", "Errors", "Stalled", "No Motion", "No Response", "Status", "Note"]


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def _fps(value: float | None) -> str:
    return f"{value:.2f}" if value is not None else "n/a"


def row_cells(result: HealthResult) -> list[str]:
    return [
        result.id,
        result.title,
        _yes_no(result.ready),
        _fps(result.avg_fps),
        str(result.error_count),
        _yes_no(result.stalled),
        _yes_no(result.no_motion),
        _yes_no(result.no_response),
        result.status.value,
        result.note,
    ]


def render_markdown(results: list[HealthResult], base_url: str) -> str:
    lines = [
        "# Automated Health Report",
        "",
        f"Base URL: {base_url}",
        "",
        "| " + " | ".join(COLUMNS) + " |",
        "| " + " | ".join("---" for _ in COLUMNS) + " |",
    ]
    for result in results:
        cells = [cell.replace("|", "\\|") for cell in row_cells(result)]
        lines.append("| " + " | ".join(cells) + " |")
    lines.append("")
    return "\n".join(lines)


def render_json(results: list[HealthResult], base_url: str, generated_at: datetime | None = None) -> dict:
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "generatedAt": generated_at.isoformat(),
        "baseUrl": base_url,
        "games": [r.to_dict() for r in results],
    }


def load_results(path: str | Path) -> list[HealthResult]:
    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)
    games = data.get("games") if isinstance(data, dict) else None
    return [HealthResult.from_dict(g) for g in games or [] if isinstance(g, dict)]


def write_reports(
    results: list[HealthResult],
    base_url: str,
    markdown_paths: list[str],
    json_paths: list[str],
    verbose: bool = True,
) -> list[str]:
    """Write every target. Returns the paths written."""
    written = []
    markdown = render_markdown(results, base_url)
    payload = json.dumps(render_json(results, base_url), indent=2)

    for target in markdown_paths:
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(markdown)
        written.append(target)

    for target in json_paths:
        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(payload)
        written.append(target)

    if verbose:
        console.print(
            f"[green]wrote markdown to {', '.join(markdown_paths)} "
            f"and json to {', '.join(json_paths)}[/green]"
        )
    return written


def _status_style(status: Status) -> str:
    if status is Status.BROKEN:
        return "bold red"
    if status is Status.WORKING:
        return "green"
    return "yellow"


def print_table(results: list[HealthResult], base_url: str) -> None:
    table = Table(title=f"Health scan: {base_url}", title_style="bold cyan", show_lines=False)
    for column in COLUMNS:
        justify = "right" if column in ("Avg FPS", "Errors") else "left"
        table.add_column(column, justify=justify)

    for result in results:
        cells = row_cells(result)
        style = _status_style(result.status)
        status = COLUMNS.index("Status")
        cells[status] = f"[{style}]{cells[status]}[/{style}]"
        table.add_row(*cells)

    console.print(table)
