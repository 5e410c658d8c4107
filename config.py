"""
config.py
---------
Central configuration loader for access-log-analyzer.

All settings are read from environment variables, which can be supplied via
a ``.env`` file in the project root (loaded automatically by python-dotenv).

Usage
-----
    from config import settings

    print(settings.SLOW_REQUEST_TIME)
    print(settings.SQL_INJECTION_PATTERNS)

Never import raw ``os.getenv()`` calls scattered across modules — import from
here instead so every key name and default lives in one place.

Pattern lists (``SQL_INJECTION_PATTERNS``, ``XSS_PATTERNS``,
``CRAWLER_USER_AGENTS``, ``ATTACK_TOOL_PATTERNS``) are comma-separated and
lowercased on load; the built-in defaults below apply when a key is unset.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values, load_dotenv

# Load .env from the project root (optional file)
_ENV_FILE = Path(__file__).parent / ".env"
load_dotenv(_ENV_FILE)


# ─────────────────────────────────────────────────────────────────────────────
# Built-in pattern lists
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_SQL_INJECTION_PATTERNS: tuple[str, ...] = (
    "union select",
    "union%20select",
    "union+select",
    "select * from",
    "' or '1'='1",
    "%27%20or%20",
    "' or 1=1",
    "or%201=1",
    "information_schema",
    "drop table",
    "insert into",
    "sleep(",
    "benchmark(",
    "waitfor delay",
    "load_file(",
)

DEFAULT_XSS_PATTERNS: tuple[str, ...] = (
    "<script",
    "%3cscript",
    "javascript:",
    "onerror=",
    "onload=",
    "alert(",
    "document.cookie",
    "<iframe",
    "%3ciframe",
    "<svg",
)

DEFAULT_CRAWLER_USER_AGENTS: tuple[str, ...] = (
    "googlebot",
    "bingbot",
    "yandexbot",
    "baiduspider",
    "duckduckbot",
    "slurp",
    "applebot",
    "ahrefsbot",
    "semrushbot",
    "mj12bot",
    "facebookexternalhit",
    "twitterbot",
)

DEFAULT_ATTACK_TOOL_PATTERNS: tuple[str, ...] = (
    "sqlmap",
    "nikto",
    "nmap",
    "masscan",
    "zgrab",
    "wpscan",
    "dirbuster",
    "gobuster",
    "nuclei",
    "acunetix",
    "havij",
    "hydra",
)


@dataclass(frozen=True)
class _Settings:
    """
    Immutable snapshot of all configuration values read at load time.

    Attributes
    ----------
    SLOW_REQUEST_TIME      : float – response time (s) above which a request
                                     counts as slow (default 3.0)
    ERROR_RATE_WARNING     : float – error-rate percentage that triggers the
                                     console warning (default 5.0)

    TOP_IPS_COUNT          : int   – length of the top client IP list
    TOP_ERRORS_COUNT       : int   – length of the top error URI list
    RESERVOIR_SIZE         : int   – response-time sample capacity (K)

    REPORT_FORMAT          : str   – "markdown" or "json"
    OUTPUT_DIRECTORY       : str   – where report files are written

    SQL_INJECTION_PATTERNS : tuple – lowercase substrings, matched on URI + UA
    XSS_PATTERNS           : tuple – lowercase substrings, matched on URI + UA
    CRAWLER_USER_AGENTS    : tuple – lowercase substrings, matched on UA
    ATTACK_TOOL_PATTERNS   : tuple – lowercase substrings, matched on UA
    """

    # ── Thresholds ────────────────────────────────────────────────────────
    SLOW_REQUEST_TIME:   float = field(default=3.0)
    ERROR_RATE_WARNING:  float = field(default=5.0)

    # ── Output limits ─────────────────────────────────────────────────────
    TOP_IPS_COUNT:       int   = field(default=10)
    TOP_ERRORS_COUNT:    int   = field(default=10)
    RESERVOIR_SIZE:      int   = field(default=1000)

    # ── Report ────────────────────────────────────────────────────────────
    REPORT_FORMAT:       str   = field(default="markdown")
    OUTPUT_DIRECTORY:    str   = field(default="./output")

    # ── Security patterns ─────────────────────────────────────────────────
    SQL_INJECTION_PATTERNS: tuple[str, ...] = field(default=DEFAULT_SQL_INJECTION_PATTERNS)
    XSS_PATTERNS:           tuple[str, ...] = field(default=DEFAULT_XSS_PATTERNS)
    CRAWLER_USER_AGENTS:    tuple[str, ...] = field(default=DEFAULT_CRAWLER_USER_AGENTS)
    ATTACK_TOOL_PATTERNS:   tuple[str, ...] = field(default=DEFAULT_ATTACK_TOOL_PATTERNS)

    # ── Factory: read from environment ───────────────────────────────────
    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "_Settings":
        """Read every key from *environ* (``os.environ`` when omitted)."""
        env = os.environ if environ is None else environ
        return cls(
            SLOW_REQUEST_TIME  = _env_float(env, "SLOW_REQUEST_TIME",  3.0),
            ERROR_RATE_WARNING = _env_float(env, "ERROR_RATE_WARNING", 5.0),
            TOP_IPS_COUNT      = _env_int(env, "TOP_IPS_COUNT",    10),
            TOP_ERRORS_COUNT   = _env_int(env, "TOP_ERRORS_COUNT", 10),
            RESERVOIR_SIZE     = _env_int(env, "RESERVOIR_SIZE",   1000),
            REPORT_FORMAT      = env.get("REPORT_FORMAT", "markdown").strip().lower(),
            OUTPUT_DIRECTORY   = env.get("OUTPUT_DIRECTORY", "./output").strip(),
            SQL_INJECTION_PATTERNS = _env_patterns(env, "SQL_INJECTION_PATTERNS", DEFAULT_SQL_INJECTION_PATTERNS),
            XSS_PATTERNS           = _env_patterns(env, "XSS_PATTERNS",           DEFAULT_XSS_PATTERNS),
            CRAWLER_USER_AGENTS    = _env_patterns(env, "CRAWLER_USER_AGENTS",    DEFAULT_CRAWLER_USER_AGENTS),
            ATTACK_TOOL_PATTERNS   = _env_patterns(env, "ATTACK_TOOL_PATTERNS",   DEFAULT_ATTACK_TOOL_PATTERNS),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Environment parsing helpers
# ─────────────────────────────────────────────────────────────────────────────

def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{key} must be >= 1, got {value}")
    return value


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {value}")
    return value


def _env_patterns(env: Mapping[str, str], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Comma-separated list → lowercase tuple; unset key keeps *default*."""
    raw = env.get(key)
    if raw is None:
        return default
    return tuple(p.strip().lower() for p in raw.split(",") if p.strip())


def load_settings(env_file: str | None = None) -> _Settings:
    """
    Build a fresh settings snapshot.

    When *env_file* is given its values are layered over the current
    environment for this snapshot only, so a per-run ``--config`` file wins
    over ``.env`` without touching ``os.environ``.
    """
    if not env_file:
        return _Settings.from_env()

    path = Path(env_file)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {env_file}")
    overrides = {k: v for k, v in dotenv_values(path).items() if v is not None}
    return _Settings.from_env({**os.environ, **overrides})


# Module-level singleton, import this in other modules
settings = _Settings.from_env()
