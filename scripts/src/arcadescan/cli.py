"""arcade-health-scan / arcade-check -- health scan CLIs.

Usage:
    arcade-health-scan
    arcade-health-scan --write
    arcade-health-scan --report .tmp/health.json --markdown .tmp/health.md --timeout 15000
    arcade-check --report .tmp/health.json
"""

from __future__ import annotations

import argparse
import json
import sys

from rich.console import Console

console = Console(stderr=True)

DEFAULT_MANIFEST = "games.manifest.json"
DEFAULT_REPORT_JSON = "docs/health-report.json"
DEFAULT_REPORT_MD = "docs/health-report.md"


def scan_main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Probe every embedded game in a browser and report liveness and input response",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Exit codes:\n"
            "  0  all entries clean\n"
            "  1  one or more entries flagged broken\n"
            "  2  serving endpoint unreachable (no report written)\n"
            "  3  manifest write-back failed\n"
            "  4  pre-check failed for another reason (browser launch, unexpected error)\n"
        ),
    )
    parser.add_argument("--manifest", "-m", default=DEFAULT_MANIFEST, help="Path to games.manifest.json")
    parser.add_argument("--config", "-c", default=None, help="YAML scan config")
    parser.add_argument("--base-url", default=None, help="Serving endpoint (default: $DEV_SERVER_URL)")
    parser.add_argument("--timeout", type=float, default=None, help="Readiness timeout in ms")
    parser.add_argument("--report", action="append", default=None, help="JSON report path (repeatable)")
    parser.add_argument("--markdown", action="append", default=None, help="Markdown report path (repeatable)")
    parser.add_argument("--write", action="store_true", help="Write newly broken statuses back to the manifest")
    parser.add_argument("--headed", action="store_true", help="Run the browser headed")
    parser.add_argument("--json", action="store_true", help="Print the JSON report to stdout")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress progress output")
    args = parser.parse_args(argv)

    from arcadescan.config import load_config
    from arcadescan.manifest import ManifestError, load_manifest
    from arcadescan.probe.driver import EndpointUnreachable, PrecheckError
    from arcadescan.report.reconcile import ReconciliationError, reconcile
    from arcadescan.report.render import print_table, render_json, write_reports
    from arcadescan.scan import EXIT_PRECHECK_FAILED, EXIT_UNREACHABLE, EXIT_WRITE_FAILED, run_scan

    verbose = not args.quiet
    config = load_config(
        args.config,
        base_url=args.base_url,
        readiness_timeout_ms=args.timeout,
        headless=False if args.headed else None,
    )

    try:
        manifest = load_manifest(args.manifest)
    except (OSError, ManifestError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    try:
        outcome = run_scan(manifest, config, verbose=verbose)
    except EndpointUnreachable as e:
        console.print(f"[red]Serving endpoint is not reachable: {e}[/red]")
        console.print("[dim]Start the dev server before running the health scan.[/dim]")
        sys.exit(EXIT_UNREACHABLE)
    except PrecheckError as e:
        console.print(f"[red]Health scan pre-check failed: {e}[/red]")
        sys.exit(EXIT_PRECHECK_FAILED)

    write_reports(
        outcome.results,
        config.base_url,
        markdown_paths=args.markdown or [DEFAULT_REPORT_MD],
        json_paths=args.report or [DEFAULT_REPORT_JSON],
        verbose=verbose,
    )

    if args.json:
        print(json.dumps(render_json(outcome.results, config.base_url), indent=2))
    elif verbose:
        print_table(outcome.results, config.base_url)

    if args.write:
        try:
            reconcile(manifest, outcome.results, args.manifest, verbose=verbose)
        except ReconciliationError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(EXIT_WRITE_FAILED)

    sys.exit(outcome.exit_code)


def check_main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="Check the manifest against the latest health report")
    parser.add_argument("--manifest", "-m", default=DEFAULT_MANIFEST, help="Path to games.manifest.json")
    parser.add_argument("--report", "-r", default=DEFAULT_REPORT_JSON, help="JSON health report")
    args = parser.parse_args(argv)

    from arcadescan.manifest import load_manifest
    from arcadescan.report.check import check_report
    from arcadescan.report.render import load_results

    try:
        manifest = load_manifest(args.manifest)
        results = load_results(args.report)
    except (OSError, ValueError, KeyError) as e:
        console.print(f"[red]Failed to read health scan output: {e}[/red]")
        sys.exit(1)

    result = check_report(results, manifest)

    if result.warnings:
        console.print("\n[yellow]warnings:[/yellow]")
        for message in result.warnings:
            console.print(f"  - {message}", markup=False)

    if result.errors:
        console.print("\n[red]failures:[/red]")
        for message in result.errors:
            console.print(f"  - {message}", markup=False)
        sys.exit(1)

    console.print("\n[green]all validations passed.[/green]")
    sys.exit(0)


if __name__ == "__main__":
    scan_main()
