"""
analyzer/stats.py
-----------------
Turn the running state of a ``StreamingAggregator`` into an immutable
``AnalysisResult``.

``finalize()`` is read-only over the state and can be called on any prefix
of the stream; empty input yields zero-valued fields rather than errors.

Public API
----------
    finalize(state, top_ips=10, top_errors=10)  -> AnalysisResult
    calculate(records, settings=None)           -> AnalysisResult
    analyze_file(filepath, settings=None)       -> (AnalysisResult, ParseCounters)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

import config
from analyzer.aggregator import IPAttacks, RunningState, StreamingAggregator
from analyzer.parser import LogRecord, ParseCounters, iter_log_file
from analyzer.rules import ClassificationRules

logger = logging.getLogger(__name__)

TOP_N = 10                   # default length of top IP / top error URI lists
SUSPICIOUS_UA_LIMIT = 20

# Suspicious user-agent heuristic: rare or structurally unusual
SUSPICIOUS_UA_MAX_COUNT  = 5     # seen fewer than N times
SUSPICIOUS_UA_MIN_LENGTH = 10    # shorter than N characters
SUSPICIOUS_UA_MAX_LENGTH = 200   # longer than N characters

# Both attack classes weigh the same
SQL_WEIGHT = 2
XSS_WEIGHT = 2


# ─────────────────────────────────────────────────────────────────────────────
# Result dataclasses
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Summary:
    start_time:        datetime | None = None
    end_time:          datetime | None = None
    total_requests:    int             = 0
    error_requests:    int             = 0
    error_rate:        float           = 0.0    # percent, 0–100
    avg_response_time: float           = 0.0

    def as_dict(self) -> dict:
        return {
            "start_time":        self.start_time.isoformat() if self.start_time else None,
            "end_time":          self.end_time.isoformat()   if self.end_time   else None,
            "total_requests":    self.total_requests,
            "error_requests":    self.error_requests,
            "error_rate":        self.error_rate,
            "avg_response_time": self.avg_response_time,
        }


@dataclass(frozen=True)
class HTTPErrors:
    client_errors:  dict[int, int]              = field(default_factory=dict)   # 4xx
    server_errors:  dict[int, int]              = field(default_factory=dict)   # 5xx
    top_error_urls: tuple[tuple[str, int], ...] = ()

    def as_dict(self) -> dict:
        return {
            "client_errors":  {str(k): v for k, v in sorted(self.client_errors.items())},
            "server_errors":  {str(k): v for k, v in sorted(self.server_errors.items())},
            "top_error_urls": [{"url": u, "count": n} for u, n in self.top_error_urls],
        }


@dataclass(frozen=True)
class SuspiciousIP:
    ip:             str
    sql_attempts:   int
    xss_attempts:   int
    total_requests: int
    attack_score:   int

    def as_dict(self) -> dict:
        return {
            "ip":             self.ip,
            "sql_attempts":   self.sql_attempts,
            "xss_attempts":   self.xss_attempts,
            "total_requests": self.total_requests,
            "attack_score":   self.attack_score,
        }


@dataclass(frozen=True)
class SecurityAnalysis:
    sql_injection_attempts: int                        = 0
    xss_attempts:           int                        = 0
    suspicious_ips:         tuple[SuspiciousIP, ...]   = ()
    attacks_by_ip:          dict[str, IPAttacks]       = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "sql_injection_attempts": self.sql_injection_attempts,
            "xss_attempts":           self.xss_attempts,
            "suspicious_ips":         [s.as_dict() for s in self.suspicious_ips],
            "attacks_by_ip":          {ip: a.as_dict() for ip, a in self.attacks_by_ip.items()},
        }


@dataclass(frozen=True)
class ResponseTimeStats:
    average:       float = 0.0
    maximum:       float = 0.0
    percentile_95: float = 0.0     # sampled approximation
    slow_requests: int   = 0
    sample_size:   int   = 0

    def as_dict(self) -> dict:
        return {
            "average":       self.average,
            "maximum":       self.maximum,
            "percentile_95": self.percentile_95,
            "slow_requests": self.slow_requests,
            "sample_size":   self.sample_size,
        }


@dataclass(frozen=True)
class Statistics:
    hourly_pattern:      tuple[int, ...]             = (0,) * 24
    top_ips:             tuple[tuple[str, int], ...] = ()
    response_time_stats: ResponseTimeStats           = field(default_factory=ResponseTimeStats)
    status_codes:        dict[int, int]              = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "hourly_pattern":      list(self.hourly_pattern),
            "top_ips":             [{"ip": ip, "count": n} for ip, n in self.top_ips],
            "response_time_stats": self.response_time_stats.as_dict(),
            "status_codes":        {str(k): v for k, v in sorted(self.status_codes.items())},
        }


@dataclass(frozen=True)
class UserAgentAnalysis:
    crawlers:       dict[str, int]              = field(default_factory=dict)
    attack_tools:   dict[str, int]              = field(default_factory=dict)
    suspicious_uas: tuple[tuple[str, int], ...] = ()

    def as_dict(self) -> dict:
        return {
            "crawlers":       dict(self.crawlers),
            "attack_tools":   dict(self.attack_tools),
            "suspicious_uas": [{"user_agent": ua, "count": n} for ua, n in self.suspicious_uas],
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Everything a reporter needs; produced once per run by ``finalize()``."""

    summary:             Summary           = field(default_factory=Summary)
    http_errors:         HTTPErrors        = field(default_factory=HTTPErrors)
    security_analysis:   SecurityAnalysis  = field(default_factory=SecurityAnalysis)
    statistics:          Statistics        = field(default_factory=Statistics)
    user_agent_analysis: UserAgentAnalysis = field(default_factory=UserAgentAnalysis)

    def as_dict(self) -> dict:
        return {
            "summary":             self.summary.as_dict(),
            "http_errors":         self.http_errors.as_dict(),
            "security_analysis":   self.security_analysis.as_dict(),
            "statistics":          self.statistics.as_dict(),
            "user_agent_analysis": self.user_agent_analysis.as_dict(),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def finalize(
    state: RunningState,
    top_ips: int = TOP_N,
    top_errors: int = TOP_N,
) -> AnalysisResult:
    """
    Derive rankings, rates and the percentile estimate from *state*.

    Rankings sort by count descending; the order among equal counts is not
    guaranteed.
    """
    result = AnalysisResult(
        summary             = _summary(state),
        http_errors         = _http_errors(state, top_errors),
        security_analysis   = _security_analysis(state),
        statistics          = _statistics(state, top_ips),
        user_agent_analysis = _user_agent_analysis(state),
    )

    logger.info(
        "finalize: %d requests | error_rate=%.2f%% | p95=%.3fs | "
        "sql=%d | xss=%d | suspicious_ips=%d",
        result.summary.total_requests, result.summary.error_rate,
        result.statistics.response_time_stats.percentile_95,
        result.security_analysis.sql_injection_attempts,
        result.security_analysis.xss_attempts,
        len(result.security_analysis.suspicious_ips),
    )
    return result


def calculate(records: Iterable[LogRecord], settings=None) -> AnalysisResult:
    """
    Aggregate *records* in a single pass and finalize.

    Safe to pass a generator.  *settings* defaults to ``config.settings``.
    """
    if settings is None:
        settings = config.settings
    aggregator = _build_aggregator(settings)
    aggregator.update_many(records)
    return finalize(aggregator.state, settings.TOP_IPS_COUNT, settings.TOP_ERRORS_COUNT)


def analyze_file(filepath: str, settings=None) -> tuple[AnalysisResult, ParseCounters]:
    """
    Parse + aggregate + finalize one access-log file.

    Raises the same I/O errors as ``parser.iter_log_file()``.
    """
    counters = ParseCounters()
    result = calculate(iter_log_file(filepath, counters), settings)
    if counters.skipped_lines:
        logger.warning(
            "%s: skipped %d of %d lines (%s)",
            filepath, counters.skipped_lines, counters.total_lines,
            ", ".join(f"{kind.value}={n}" for kind, n in counters.skipped.items()),
        )
    return result, counters


# ─────────────────────────────────────────────────────────────────────────────
# Internal helpers
# ─────────────────────────────────────────────────────────────────────────────

def _build_aggregator(settings) -> StreamingAggregator:
    return StreamingAggregator(
        rules          = ClassificationRules.from_settings(settings),
        slow_threshold = settings.SLOW_REQUEST_TIME,
        reservoir_size = settings.RESERVOIR_SIZE,
    )


def _top(counter, limit: int) -> tuple[tuple, ...]:
    ranked = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    return tuple(ranked[:max(limit, 0)])


def _summary(state: RunningState) -> Summary:
    total = state.total_count
    error_rate = state.error_count / total * 100 if total else 0.0
    samples = state.response_time_count
    avg = state.response_time_sum / samples if samples else 0.0
    return Summary(
        start_time        = state.start_time,
        end_time          = state.end_time,
        total_requests    = total,
        error_requests    = state.error_count,
        error_rate        = error_rate,
        avg_response_time = avg,
    )


def _http_errors(state: RunningState, top_errors: int) -> HTTPErrors:
    client_errors: dict[int, int] = {}
    server_errors: dict[int, int] = {}
    for status, count in state.status_codes.items():
        if 400 <= status < 500:
            client_errors[status] = count
        elif status >= 500:
            server_errors[status] = count

    return HTTPErrors(
        client_errors  = client_errors,
        server_errors  = server_errors,
        top_error_urls = _top(state.error_uris, top_errors),
    )


def attack_score(sql_attempts: int, xss_attempts: int) -> int:
    return SQL_WEIGHT * sql_attempts + XSS_WEIGHT * xss_attempts


def _security_analysis(state: RunningState) -> SecurityAnalysis:
    sql_total = 0
    xss_total = 0
    suspicious: list[SuspiciousIP] = []

    for ip, attacks in state.attacks_by_ip.items():
        sql_total += attacks.sql_attempts
        xss_total += attacks.xss_attempts
        if attacks.sql_attempts or attacks.xss_attempts:
            suspicious.append(SuspiciousIP(
                ip             = ip,
                sql_attempts   = attacks.sql_attempts,
                xss_attempts   = attacks.xss_attempts,
                total_requests = attacks.total_requests,
                attack_score   = attack_score(attacks.sql_attempts, attacks.xss_attempts),
            ))

    suspicious.sort(key=lambda s: s.attack_score, reverse=True)

    return SecurityAnalysis(
        sql_injection_attempts = sql_total,
        xss_attempts           = xss_total,
        suspicious_ips         = tuple(suspicious),
        attacks_by_ip          = {
            ip: IPAttacks(a.sql_attempts, a.xss_attempts, a.total_requests)
            for ip, a in state.attacks_by_ip.items()
        },
    )


def percentile_95(samples: list[float]) -> float:
    """Value at index floor(0.95 * n) of the sorted sample; 0.0 when empty."""
    if not samples:
        return 0.0
    ordered = sorted(samples)
    idx = min(math.floor(0.95 * len(ordered)), len(ordered) - 1)
    return ordered[idx]


def _response_time_stats(state: RunningState) -> ResponseTimeStats:
    if state.response_time_count == 0:
        return ResponseTimeStats()
    return ResponseTimeStats(
        average       = state.response_time_sum / state.response_time_count,
        maximum       = state.response_time_max,
        percentile_95 = percentile_95(state.reservoir.samples),
        slow_requests = state.slow_count,
        sample_size   = len(state.reservoir),
    )


def _statistics(state: RunningState, top_ips: int) -> Statistics:
    return Statistics(
        hourly_pattern      = tuple(state.hourly),
        top_ips             = _top(state.client_ips, top_ips),
        response_time_stats = _response_time_stats(state),
        status_codes        = dict(state.status_codes),
    )


def is_suspicious_user_agent(user_agent: str, count: int) -> bool:
    """Rare, too short or too long; lengths count characters, not UTF-8 bytes."""
    return (
        count < SUSPICIOUS_UA_MAX_COUNT
        or len(user_agent) < SUSPICIOUS_UA_MIN_LENGTH
        or len(user_agent) > SUSPICIOUS_UA_MAX_LENGTH
    )


def _user_agent_analysis(state: RunningState) -> UserAgentAnalysis:
    # Crawler / attack-tool tables hold exactly the agents those rules matched
    candidates = {
        ua: count for ua, count in state.user_agents.items()
        if ua not in state.crawlers
        and ua not in state.attack_tools
        and is_suspicious_user_agent(ua, count)
    }
    return UserAgentAnalysis(
        crawlers       = dict(state.crawlers),
        attack_tools   = dict(state.attack_tools),
        suspicious_uas = _top(candidates, SUSPICIOUS_UA_LIMIT),
    )
