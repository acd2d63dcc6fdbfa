"""Health scan orchestration.

One browser, one page, entries strictly in manifest order. Probing entries
concurrently would let them share input focus and timers, so we don't.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console

from arcadescan.config import ScanConfig
from arcadescan.engine.classify import PASS_NOTE, classify, excluded
from arcadescan.engine.models import HealthResult, Status
from arcadescan.manifest import Manifest
from arcadescan.probe.driver import HealthProbeDriver, PlaywrightSession, check_reachable

console = Console(stderr=True)

EXIT_CLEAN = 0
EXIT_FLAGGED = 1
EXIT_UNREACHABLE = 2
EXIT_WRITE_FAILED = 3
EXIT_PRECHECK_FAILED = 4


@dataclass
class ScanOutcome:
    results: list[HealthResult] = field(default_factory=list)

    @property
    def flagged(self) -> list[HealthResult]:
        """Entries classified broken for a cause found in this run."""
        return [r for r in self.results if r.status is Status.BROKEN and r.note != PASS_NOTE]

    @property
    def exit_code(self) -> int:
        return EXIT_FLAGGED if self.flagged else EXIT_CLEAN


def probe_all(driver: HealthProbeDriver, manifest: Manifest, config: ScanConfig) -> list[HealthResult]:
    """Probe and classify every manifest entry. Every entry yields exactly one result."""
    results = []
    for game in manifest.games:
        if game.status is Status.MISSING_ASSETS:
            results.append(excluded(game.id, game.title, game.status))
            continue
        signals = driver.probe(game)
        results.append(classify(
            signals,
            previous_status=game.status,
            thresholds=config.thresholds,
            timeout_label=config.readiness_timeout_label,
        ))
    return results


def run_scan(manifest: Manifest, config: ScanConfig, verbose: bool = True) -> ScanOutcome:
    """Run the full scan against a live serving endpoint.

    Raises EndpointUnreachable before any entry is probed when nothing is
    listening at config.base_url.
    """
    from playwright.sync_api import sync_playwright

    with sync_playwright() as pw:
        check_reachable(pw, config, verbose=verbose)

        browser = pw.chromium.launch(headless=config.headless, args=config.browser_args)
        try:
            page = browser.new_context().new_page()
            session = PlaywrightSession(page, config)
            driver = HealthProbeDriver(config, session, verbose=verbose)
            results = probe_all(driver, manifest, config)
        finally:
            browser.close()

    outcome = ScanOutcome(results=results)
    if verbose:
        console.print(f"[bold]scanned {len(results)} entries, {len(outcome.flagged)} flagged[/bold]")
    return outcome
