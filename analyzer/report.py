"""
analyzer/report.py
------------------
Render an ``AnalysisResult`` as a Markdown or JSON report file.

Formatting only — every number shown here was computed by ``stats.py``.

Public API
----------
    format_number(n)                           -> str   ("1,234,567")
    status_text(code)                          -> str   ("Not Found")
    render_markdown(result, generated_at=None) -> str
    render_json(result)                        -> str
    write_report(result, output_dir, fmt)      -> Path
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from analyzer.stats import (
    AnalysisResult,
    HTTPErrors,
    SecurityAnalysis,
    Statistics,
    Summary,
    UserAgentAnalysis,
)

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("markdown", "json")
_EXTENSIONS = {"markdown": "md", "json": "json"}

SECTION_LIMIT = 10          # suspicious IPs / user agents listed per section
ATTACKER_LIMIT = 5          # IPs listed under the SQL / XSS headings
UA_DISPLAY_WIDTH = 80

_STATUS_TEXT: dict[int, str] = {
    200: "OK",
    301: "Moved Permanently",
    302: "Found",
    304: "Not Modified",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def format_number(n: int) -> str:
    """Thousands separators: 1234567 → '1,234,567'."""
    return f"{n:,}"


def status_text(code: int) -> str:
    return _STATUS_TEXT.get(code, "Unknown")


def _ts(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "—"


# ─────────────────────────────────────────────────────────────────────────────
# Markdown sections
# ─────────────────────────────────────────────────────────────────────────────

def _summary_md(summary: Summary) -> list[str]:
    return [
        "## Summary",
        "",
        f"- **Period:** {_ts(summary.start_time)} - {_ts(summary.end_time)}",
        f"- **Total requests:** {format_number(summary.total_requests)}",
        f"- **Error rate:** {summary.error_rate:.2f}%",
        f"- **Average response time:** {summary.avg_response_time:.3f}s",
        "",
    ]


def _status_lines(table: dict[int, int], empty: str) -> list[str]:
    if not table:
        return [empty]
    return [
        f"- **{status} {status_text(status)}:** {format_number(count)} requests"
        for status, count in sorted(table.items())
    ]


def _http_errors_md(errors: HTTPErrors) -> list[str]:
    lines = ["## HTTP Errors", "", "### 4xx (client errors)", ""]
    lines += _status_lines(errors.client_errors, "No 4xx errors detected.")
    lines += ["", "### 5xx (server errors)", ""]
    lines += _status_lines(errors.server_errors, "No 5xx errors detected.")
    lines += ["", "### Top error URLs", ""]
    if errors.top_error_urls:
        lines += [
            f"{rank}. `{url}`: {format_number(count)} errors"
            for rank, (url, count) in enumerate(errors.top_error_urls, 1)
        ]
    else:
        lines.append("No error URLs found.")
    lines.append("")
    return lines


def _security_md(security: SecurityAnalysis) -> list[str]:
    lines = ["## Security Analysis", ""]

    for title, total, attr in (
        ("SQL injection", security.sql_injection_attempts, "sql_attempts"),
        ("XSS",           security.xss_attempts,           "xss_attempts"),
    ):
        lines += [f"### {title}", "", f"- **Attempts:** {format_number(total)}"]
        attackers = [s for s in security.suspicious_ips if getattr(s, attr) > 0]
        if attackers:
            lines.append("- **Top source IPs:**")
            lines += [f"  - {s.ip}: {getattr(s, attr)} attempts" for s in attackers[:ATTACKER_LIMIT]]
        lines.append("")

    lines += ["### Suspicious IPs (block recommended)", ""]
    if security.suspicious_ips:
        for rank, s in enumerate(security.suspicious_ips[:SECTION_LIMIT], 1):
            reasons = []
            if s.sql_attempts:
                reasons.append(f"SQL injection: {s.sql_attempts}")
            if s.xss_attempts:
                reasons.append(f"XSS: {s.xss_attempts}")
            lines.append(
                f"{rank}. **{s.ip}** - {', '.join(reasons)} "
                f"(score {s.attack_score}, total requests: {s.total_requests})"
            )
    else:
        lines.append("No suspicious IPs detected.")
    lines.append("")
    return lines


def _statistics_md(stats: Statistics) -> list[str]:
    lines = ["## Statistics", "", "### Hourly traffic", "",
             "| Hour | Requests |", "|------|----------|"]
    lines += [
        f"| {hour:02d}:00-{hour + 1:02d}:00 | {format_number(count)} |"
        for hour, count in enumerate(stats.hourly_pattern)
    ]

    lines += ["", "### Top IP addresses", ""]
    if stats.top_ips:
        lines += [
            f"{rank}. **{ip}:** {format_number(count)} requests"
            for rank, (ip, count) in enumerate(stats.top_ips, 1)
        ]
    else:
        lines.append("No IP data.")

    rt = stats.response_time_stats
    lines += [
        "", "### Response time", "",
        f"- **Average:** {rt.average:.3f}s",
        f"- **Maximum:** {rt.maximum:.3f}s",
        f"- **95th percentile (sampled):** {rt.percentile_95:.3f}s",
        f"- **Slow requests:** {format_number(rt.slow_requests)}",
        "", "### Status codes", "",
        "| Status | Count |", "|--------|-------|",
    ]
    lines += [
        f"| {status} {status_text(status)} | {format_number(count)} |"
        for status, count in sorted(stats.status_codes.items())
    ]
    lines.append("")
    return lines


def _user_agents_md(ua: UserAgentAnalysis) -> list[str]:
    lines = ["## User Agent Analysis", ""]

    for title, table, empty in (
        ("Crawlers",     ua.crawlers,     "No crawlers detected."),
        ("Attack tools", ua.attack_tools, "No attack tools detected."),
    ):
        lines += [f"### {title}", ""]
        if table:
            lines += [
                f"- **{agent}:** {format_number(count)} requests"
                for agent, count in sorted(table.items(), key=lambda kv: kv[1], reverse=True)
            ]
        else:
            lines.append(empty)
        lines.append("")

    lines += ["### Suspicious user agents", ""]
    if ua.suspicious_uas:
        for rank, (agent, count) in enumerate(ua.suspicious_uas[:SECTION_LIMIT], 1):
            if len(agent) > UA_DISPLAY_WIDTH:
                agent = agent[:UA_DISPLAY_WIDTH - 3] + "..."
            lines.append(f"{rank}. `{agent}` - {format_number(count)} requests")
    else:
        lines.append("No suspicious user agents detected.")
    lines.append("")
    return lines


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def render_markdown(result: AnalysisResult, generated_at: datetime | None = None) -> str:
    generated_at = generated_at or datetime.now()
    lines = [
        "# Access Log Analysis Report",
        "",
        f"**Generated:** {generated_at:%Y-%m-%d %H:%M:%S}",
        "",
    ]
    lines += _summary_md(result.summary)
    lines += _http_errors_md(result.http_errors)
    lines += _security_md(result.security_analysis)
    lines += _statistics_md(result.statistics)
    lines += _user_agents_md(result.user_agent_analysis)
    return "\n".join(lines)


def render_json(result: AnalysisResult) -> str:
    return json.dumps(result.as_dict(), indent=2, ensure_ascii=False)


def write_report(result: AnalysisResult, output_dir: str, fmt: str = "markdown") -> Path:
    """
    Write the report to ``<output_dir>/analysis_report_YYYYMMDD_HHMMSS.<ext>``.

    Raises
    ------
    ValueError – unknown *fmt*.
    OSError    – directory cannot be created or file cannot be written.
    """
    if fmt not in REPORT_FORMATS:
        raise ValueError(f"Unknown report format {fmt!r}; expected one of {REPORT_FORMATS}")

    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)

    now = datetime.now()
    path = directory / f"analysis_report_{now:%Y%m%d_%H%M%S}.{_EXTENSIONS[fmt]}"
    content = render_markdown(result, now) if fmt == "markdown" else render_json(result)
    path.write_text(content, encoding="utf-8")

    logger.info("Report written to %s (%d chars)", path, len(content))
    return path
