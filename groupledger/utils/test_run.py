#!/usr/bin/env python3
"""
utils/test_run.py — GroupLedger  ·  Test Runner
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

Usage (run from anywhere; the script moves to the project root):
  python groupledger/utils/test_run.py                 # full suite
  python groupledger/utils/test_run.py --unit          # unit tests only
  python groupledger/utils/test_run.py --integration   # integration tests only
  python groupledger/utils/test_run.py --coverage      # with coverage report
  python groupledger/utils/test_run.py -x              # stop on first failure
  python groupledger/utils/test_run.py -k "ledger"     # filter by keyword

Requires the test extra:  pip install -e ".[test]"
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from rich import box
from rich.align import Align
from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

UNIT_PATH = "groupledger/tests/unit"
INTEGRATION_PATH = "groupledger/tests/integration"
COVERAGE_TARGETS = ("groupledger.app.services", "groupledger.app.schemas")

THEME = Theme({
    "good":   "bright_green",
    "warn":   "bright_yellow",
    "bad":    "bright_red",
    "dim":    "dim white",
    "muted":  "bright_black",
    "unit":   "cyan",
    "intg":   "magenta",
    "accent": "bright_cyan",
})

con = Console(theme=THEME, highlight=False)


# ═══════════════════════════════════════════════════════════════════════════
#  RESULTS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class TResult:
    nodeid:   str
    outcome:  str      # passed | failed | skipped
    duration: float
    longrepr: str = ""

    @property
    def tier(self) -> str:
        if "/unit/" in self.nodeid: return "unit"
        if "/integration/" in self.nodeid: return "integration"
        return "other"

    @property
    def module_stem(self) -> str:
        return Path(self.nodeid.split("::")[0]).stem


@dataclass
class Stats:
    results: list[TResult] = field(default_factory=list)
    elapsed: float = 0.0

    def count(self, outcome: str) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def ok(self) -> bool:
        return self.count("failed") == 0 and bool(self.results)


class Collector:
    """pytest plugin: records call-phase outcomes and advances the progress bar."""

    def __init__(self, progress: Progress, task_id):
        self.results: list[TResult] = []
        self._progress = progress
        self._task = task_id

    def pytest_collection_finish(self, session):
        self._progress.update(self._task, total=len(session.items))

    def pytest_runtest_logreport(self, report):
        if report.when != "call" and not (report.when == "setup" and report.outcome != "passed"):
            return

        longrepr = ""
        if report.outcome == "failed" and report.longrepr:
            lines = [ln.strip() for ln in str(report.longrepr).splitlines() if ln.strip()]
            longrepr = lines[-1][:160] if lines else ""

        self.results.append(TResult(report.nodeid, report.outcome, report.duration, longrepr))
        self._progress.advance(self._task)


# ═══════════════════════════════════════════════════════════════════════════
#  RENDERING
# ═══════════════════════════════════════════════════════════════════════════

def _fmt_time(s: float) -> str:
    if s < 60:
        return f"{s:.2f}s"
    m, sec = divmod(s, 60)
    return f"{int(m)}m {sec:.1f}s"


def render_tier_table(st: Stats) -> Table:
    table = Table(title="By tier", box=box.SIMPLE_HEAVY, title_style="muted")
    table.add_column("Tier")
    table.add_column("Passed", justify="right", style="good")
    table.add_column("Failed", justify="right", style="bad")
    table.add_column("Skipped", justify="right", style="warn")

    tiers: dict[str, list[TResult]] = defaultdict(list)
    for r in st.results:
        tiers[r.tier].append(r)

    for tier, style in (("unit", "unit"), ("integration", "intg"), ("other", "dim")):
        rows = tiers.get(tier)
        if not rows:
            continue
        table.add_row(
            Text(tier.upper(), style=style),
            str(sum(r.outcome == "passed" for r in rows)),
            str(sum(r.outcome == "failed" for r in rows)),
            str(sum(r.outcome == "skipped" for r in rows)),
        )
    return table


def render_slowest(results: list[TResult], n: int = 8) -> Table:
    table = Table(title="Slowest", box=box.SIMPLE_HEAVY, title_style="muted")
    table.add_column("Module", style="dim")
    table.add_column("Test")
    table.add_column("Time", justify="right")

    for r in sorted(results, key=lambda r: r.duration, reverse=True)[:n]:
        style = "good" if r.duration < 0.5 else "warn" if r.duration < 5 else "bad"
        table.add_row(r.module_stem, r.nodeid.split("::")[-1], Text(_fmt_time(r.duration), style=style))
    return table


def render_failures(results: list[TResult]) -> None:
    failed = [r for r in results if r.outcome == "failed"]
    if not failed:
        return
    table = Table(box=box.MINIMAL, show_header=False, expand=True)
    table.add_column("Test", style="bad", no_wrap=True)
    table.add_column("Reason", style="dim")
    for r in failed:
        table.add_row(r.nodeid, r.longrepr)
    con.print(Panel(table, title=f"[bad]{len(failed)} failed[/]", border_style="red"))


def render_verdict(st: Stats, ok: bool) -> None:
    passed, failed = st.count("passed"), st.count("failed")
    if ok:
        headline, border = "✔  ALL TESTS PASSED", "bright_green"
    else:
        headline, border = "✘  TEST RUN FAILED", "bright_red"
    con.print(Panel(
        Align.center(Text.assemble(
            (headline, f"bold {border}"),
            (f"\n{passed} passed · {failed} failed · {_fmt_time(st.elapsed)}", "dim"),
        )),
        border_style=border,
        padding=(1, 4),
    ))


# ═══════════════════════════════════════════════════════════════════════════
#  RUNNER
# ═══════════════════════════════════════════════════════════════════════════

def run(
        unit_only: bool = False,
        integration_only: bool = False,
        fail_fast: bool = False,
        with_coverage: bool = False,
        keyword: str = "",
        extra: list[str] | None = None,
) -> int:
    if unit_only:
        paths, mode = [UNIT_PATH], "Unit only"
    elif integration_only:
        paths, mode = [INTEGRATION_PATH], "Integration only"
    else:
        paths, mode = [UNIT_PATH, INTEGRATION_PATH], "Full suite"

    con.rule(f"[accent]GroupLedger tests[/] [muted]· {mode}[/]", style="muted")

    pytest_args = [*paths, "--tb=short", "-q"]
    if fail_fast:
        pytest_args.append("-x")
    if keyword:
        pytest_args += ["-k", keyword]
    if with_coverage:
        pytest_args += [f"--cov={target}" for target in COVERAGE_TARGETS]
        pytest_args += ["--cov-report=term-missing", "--cov-fail-under=90"]
    if extra:
        pytest_args += extra

    progress = Progress(
        SpinnerColumn("line", style="accent"),
        TextColumn("[dim]{task.description}[/]"),
        BarColumn(bar_width=32, style="muted", complete_style="accent"),
        MofNCompleteColumn(),
        console=con,
        transient=True,
    )
    task_id = progress.add_task("running tests", total=None)
    collector = Collector(progress, task_id)

    t0 = time.perf_counter()
    with progress:
        exit_code = pytest.main(pytest_args, plugins=[collector])
    st = Stats(results=collector.results, elapsed=time.perf_counter() - t0)

    con.print()
    render_failures(st.results)
    con.print(Columns([render_tier_table(st), render_slowest(st.results)], expand=True))

    run_ok = st.ok and exit_code == 0
    if with_coverage and exit_code != 0 and st.count("failed") == 0:
        con.print("[warn]Coverage gate failed[/] [dim](required: --cov-fail-under=90).[/]")

    render_verdict(st, run_ok)
    return 0 if run_ok else 1


def _cli() -> None:
    ap = argparse.ArgumentParser(
        prog="python groupledger/utils/test_run.py",
        description="GroupLedger test runner",
    )
    ap.add_argument("--unit", action="store_true", help=f"Unit tests only ({UNIT_PATH})")
    ap.add_argument("--integration", action="store_true", help=f"Integration tests only ({INTEGRATION_PATH})")
    ap.add_argument("--coverage", action="store_true", help="Coverage report (needs pytest-cov)")
    ap.add_argument("-x", "--fail-fast", action="store_true", help="Stop after first failure")
    ap.add_argument("-k", metavar="EXPR", default="", help="Filter tests by expression (pytest -k)")
    args, remainder = ap.parse_known_args()

    if args.unit and args.integration:
        con.print("[warn]--unit and --integration are mutually exclusive; running full suite.[/]")
        args.unit = args.integration = False

    # Project root holds pyproject.toml, which sets pythonpath for pytest.
    os.chdir(Path(__file__).resolve().parents[2])

    sys.exit(run(
        unit_only=args.unit,
        integration_only=args.integration,
        fail_fast=args.fail_fast,
        with_coverage=args.coverage,
        keyword=args.k,
        extra=remainder,
    ))


if __name__ == "__main__":
    _cli()
