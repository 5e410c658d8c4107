"""
main.py
-------
CLI entry point for access-log-analyzer.

Usage
-----
    python main.py --input /var/log/nginx/access.log
    python main.py -i access.log --config custom.env --format json --top 15

Options
-------
    --input    PATH   access log file (required)
    --config   PATH   .env-style file with setting overrides (optional)
    --output   PATH   report directory (default: OUTPUT_DIRECTORY)
    --format   FMT    markdown | json (default: REPORT_FORMAT)
    --top      INT    override TOP_IPS_COUNT / TOP_ERRORS_COUNT
    --verbose         enable DEBUG-level logging
    --version         print version and exit
"""

from __future__ import annotations

import dataclasses
import logging
import sys
import time
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# ── project imports ──────────────────────────────────────────────────────────
# Support both  python main.py  (project root) and installed package layout
sys.path.insert(0, str(Path(__file__).parent))

from config import load_settings
from analyzer.report import REPORT_FORMATS, format_number, write_report
from analyzer.stats import AnalysisResult, analyze_file

__version__ = "1.0.0"

console = Console()

TOP_ERROR_URLS_SHOWN = 3
URL_DISPLAY_WIDTH = 60


# ─────────────────────────────────────────────────────────────────────────────
# CLI definition
# ─────────────────────────────────────────────────────────────────────────────

@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--input", "-i", "input_path",
    required=True,
    type=click.Path(exists=True, readable=True, dir_okay=False),
    help="Path to the access log file to analyze.",
)
@click.option(
    "--config", "-c", "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help=".env-style file whose values override the environment.",
)
@click.option(
    "--output", "-o",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory for the report file (default: OUTPUT_DIRECTORY).",
)
@click.option(
    "--format", "-f", "fmt",
    default=None,
    type=click.Choice(REPORT_FORMATS, case_sensitive=False),
    help="Report format (default: REPORT_FORMAT).",
)
@click.option(
    "--top", "-n",
    default=None,
    type=click.IntRange(1, 100),
    help="Number of top IPs / error URLs to report.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable DEBUG-level logging.",
)
@click.version_option(__version__, prog_name="access-log-analyzer")
def main(
    input_path: str,
    config_path: str | None,
    output: str | None,
    fmt: str | None,
    top: int | None,
    verbose: bool,
) -> None:
    """Access Log Analyzer — traffic, errors, performance and attack heuristics."""

    # ── Logging setup ─────────────────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if verbose else logging.WARNING,
        format  = "%(levelname)s  %(name)s  %(message)s",
        stream  = sys.stderr,
    )

    # ── Settings ──────────────────────────────────────────────────────────
    try:
        settings = load_settings(config_path)
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]✖ Invalid configuration:[/bold red] {exc}")
        sys.exit(1)

    overrides: dict = {}
    if top:
        overrides.update(TOP_IPS_COUNT=top, TOP_ERRORS_COUNT=top)
    if output:
        overrides["OUTPUT_DIRECTORY"] = output
    if fmt:
        overrides["REPORT_FORMAT"] = fmt.lower()
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    if settings.REPORT_FORMAT not in REPORT_FORMATS:
        console.print(f"[bold red]✖ Unknown REPORT_FORMAT:[/bold red] {settings.REPORT_FORMAT!r}")
        sys.exit(1)

    console.rule("[bold cyan]Access Log Analyzer[/bold cyan]")

    # ── 1. Parse + aggregate ──────────────────────────────────────────────
    started = time.perf_counter()
    with console.status("[cyan]Analyzing log file…[/cyan]"):
        try:
            result, counters = analyze_file(input_path, settings)
        except (FileNotFoundError, PermissionError, ValueError, OSError) as exc:
            console.print(f"[bold red]✖ Cannot read log file:[/bold red] {exc}")
            sys.exit(1)
    duration = time.perf_counter() - started

    console.print(
        f"[green]✔[/green] Aggregated [bold]{format_number(counters.parsed_lines)}[/bold] of "
        f"{format_number(counters.total_lines)} lines from [italic]{input_path}[/italic] "
        f"in {duration:.2f}s"
    )
    if counters.skipped_lines:
        console.print(f"[yellow]⚠ Skipped {format_number(counters.skipped_lines)} unparseable line(s).[/yellow]")

    # ── 2. Report file ────────────────────────────────────────────────────
    try:
        report_path = write_report(result, settings.OUTPUT_DIRECTORY, settings.REPORT_FORMAT)
    except OSError as exc:
        console.print(f"[bold red]✖ Cannot write report:[/bold red] {exc}")
        sys.exit(1)

    # ── 3. Console summary ────────────────────────────────────────────────
    _render_summary(result, settings.SLOW_REQUEST_TIME)
    _render_recommendations(build_recommendations(result, settings))
    console.print(f"\n📊 Detailed report: [bold]{report_path}[/bold]")
    console.rule()


# ─────────────────────────────────────────────────────────────────────────────
# Recommendations
# ─────────────────────────────────────────────────────────────────────────────

def build_recommendations(result: AnalysisResult, settings) -> list[str]:
    recommendations: list[str] = []
    security = result.security_analysis
    rt = result.statistics.response_time_stats

    if security.suspicious_ips:
        recommendations.append(
            f"🔒 Consider blocking {len(security.suspicious_ips)} suspicious IP(s)"
        )
    if rt.slow_requests:
        recommendations.append(
            f"⚡ Investigate {format_number(rt.slow_requests)} slow request(s) "
            f"(over {settings.SLOW_REQUEST_TIME:g}s)"
        )
    if result.summary.error_rate > settings.ERROR_RATE_WARNING:
        recommendations.append(
            f"❗ High error rate ({result.summary.error_rate:.2f}%) — investigate error causes"
        )
    if security.sql_injection_attempts or security.xss_attempts:
        recommendations.append(
            "🛡 Add protective measures (WAF, rate limiting) against injection attempts"
        )
    if not recommendations:
        recommendations.append("✅ No significant problems detected")
    return recommendations


# ─────────────────────────────────────────────────────────────────────────────
# Rich rendering helpers
# ─────────────────────────────────────────────────────────────────────────────

def _render_summary(result: AnalysisResult, slow_threshold: float) -> None:
    """Print overview, security and performance panels."""
    summary  = result.summary
    security = result.security_analysis
    rt       = result.statistics.response_time_stats

    console.print()

    # ── Overview grid ─────────────────────────────────────────────────────
    overview = Table.grid(padding=(0, 4))
    overview.add_column(style="bold cyan",  no_wrap=True)
    overview.add_column(style="bold white", no_wrap=True)
    overview.add_column(style="bold cyan",  no_wrap=True)
    overview.add_column(style="bold white", no_wrap=True)

    ts_from = summary.start_time.strftime("%Y-%m-%d %H:%M") if summary.start_time else "—"
    ts_to   = summary.end_time.strftime("%Y-%m-%d %H:%M")   if summary.end_time   else "—"

    overview.add_row("Total Requests", format_number(summary.total_requests),
                     "Error Rate",     f"{summary.error_rate:.2f}%")
    overview.add_row("Avg Response",   f"{summary.avg_response_time:.3f}s",
                     "Period",         f"{ts_from}  →  {ts_to}")

    console.print(Panel(overview, title="[bold]📊 Access Log Summary[/bold]",
                        border_style="cyan", expand=False))

    # ── Security + performance ────────────────────────────────────────────
    sec_tbl = Table(box=box.SIMPLE_HEAVY, show_header=False)
    sec_tbl.add_column(style="bold")
    sec_tbl.add_column(justify="right")
    sec_tbl.add_row("SQL injection attempts", format_number(security.sql_injection_attempts))
    sec_tbl.add_row("XSS attempts",           format_number(security.xss_attempts))
    sec_tbl.add_row("Suspicious IPs",         format_number(len(security.suspicious_ips)))

    perf_tbl = Table(box=box.SIMPLE_HEAVY, show_header=False)
    perf_tbl.add_column(style="bold")
    perf_tbl.add_column(justify="right")
    perf_tbl.add_row(f"Slow requests (>{slow_threshold:g}s)", format_number(rt.slow_requests))
    perf_tbl.add_row("Max response time",  f"{rt.maximum:.3f}s")
    perf_tbl.add_row("95th percentile",    f"{rt.percentile_95:.3f}s")

    grid = Table.grid(padding=(0, 2))
    grid.add_column()
    grid.add_column()
    grid.add_row(
        Panel(sec_tbl,  title="[bold]🛡 Security[/bold]",    border_style="red",  expand=False),
        Panel(perf_tbl, title="[bold]⚡ Performance[/bold]", border_style="blue", expand=False),
    )
    console.print(grid)

    # ── Top error URLs ────────────────────────────────────────────────────
    top_errors = result.http_errors.top_error_urls[:TOP_ERROR_URLS_SHOWN]
    if top_errors:
        err_tbl = Table(box=box.SIMPLE_HEAVY, show_header=True, header_style="bold yellow")
        err_tbl.add_column("#",      justify="right", width=4, style="dim")
        err_tbl.add_column("URL",    style="cyan")
        err_tbl.add_column("Errors", justify="right", width=10)
        for rank, (url, count) in enumerate(top_errors, 1):
            if len(url) > URL_DISPLAY_WIDTH:
                url = url[:URL_DISPLAY_WIDTH - 3] + "..."
            err_tbl.add_row(str(rank), url, format_number(count))
        console.print(Panel(err_tbl, title="[bold]❗ Top Error URLs[/bold]",
                            border_style="yellow", expand=False))


def _render_recommendations(recommendations: list[str]) -> None:
    body = "\n".join(f"• {r}" for r in recommendations)
    console.print(Panel(body, title="[bold]💡 Recommendations[/bold]",
                        border_style="green", expand=False))


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
