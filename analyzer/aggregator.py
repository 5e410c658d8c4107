"""
analyzer/aggregator.py
----------------------
Single-pass, bounded-memory aggregation over a stream of ``LogRecord``.

One ``StreamingAggregator`` owns one ``RunningState`` for the lifetime of one
file's analysis.  ``update()`` is called once per parsed record, strictly in
file order: the reservoir replacement index and the time-range seeding both
depend on arrival order, so records must never be fed concurrently.

Memory grows with the number of distinct keys (IPs, URIs, user agents,
status codes), not with the number of records.  The response-time sample is
hard-capped at ``reservoir_size``.  An adversarial flood of unique URIs or
user agents is the one input that still grows memory without bound; nothing
here guards against it.

Public API
----------
    StreamingAggregator(rules, slow_threshold, reservoir_size=1000)
    aggregator.update(record)
    aggregator.state      -> RunningState
    aggregator.finalize() -> AnalysisResult
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from analyzer.parser import LogRecord
from analyzer.rules import ClassificationRules

logger = logging.getLogger(__name__)

DEFAULT_RESERVOIR_SIZE = 1000
# After this many multiples of K observations the sample stops changing.
RESERVOIR_CHURN_FACTOR = 10


# ─────────────────────────────────────────────────────────────────────────────
# Response-time reservoir
# ─────────────────────────────────────────────────────────────────────────────

class ResponseTimeReservoir:
    """
    Fixed-capacity sample of response times for percentile estimation.

    Fill phase: the first K observations are appended as-is, so for streams
    of at most K records the sample is exact.

    Churn phase: observation number ``n`` (1-based) with ``K < n <= 10*K``
    overwrites slot ``n % K``.  Past ``10*K`` observations the sample is
    frozen.

    No random draws are made, so the sample is not uniform: once the cutoff
    passes it is biased toward the early part of the stream.  The resulting
    percentile is a trend indicator, not an exact order statistic.
    """

    __slots__ = ("capacity", "seen", "samples")

    def __init__(self, capacity: int = DEFAULT_RESERVOIR_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"reservoir capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.seen = 0
        self.samples: list[float] = []

    def add(self, value: float) -> None:
        self.seen += 1
        if len(self.samples) < self.capacity:
            self.samples.append(value)
        elif self.seen <= RESERVOIR_CHURN_FACTOR * self.capacity:
            self.samples[self.seen % self.capacity] = value

    def __len__(self) -> int:
        return len(self.samples)


# ─────────────────────────────────────────────────────────────────────────────
# Running state
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class IPAttacks:
    """Per-client-IP attack counters."""
    sql_attempts:   int = 0
    xss_attempts:   int = 0
    total_requests: int = 0

    def as_dict(self) -> dict:
        return {
            "sql_attempts":   self.sql_attempts,
            "xss_attempts":   self.xss_attempts,
            "total_requests": self.total_requests,
        }


@dataclass
class RunningState:
    """
    Mutable accumulation for one analysis run.

    Attributes
    ----------
    total_count        : int                  – records aggregated
    error_count        : int                  – records with status >= 400
    response_time_sum  : float                – sum over all records
    response_time_max  : float                – exact maximum
    slow_count         : int                  – response_time > threshold
    reservoir          : ResponseTimeReservoir
    client_ips         : Counter[str]         – every record
    error_uris         : Counter[str]         – error records only
    status_codes       : Counter[int]         – every record
    user_agents        : Counter[str]         – every record
    crawlers           : Counter[str]         – crawler user agents
    attack_tools       : Counter[str]         – attack-tool user agents
    attacks_by_ip      : dict[str, IPAttacks]
    hourly             : list[int]            – 24 buckets, hour of day
    start_time         : datetime | None      – earliest timestamp seen
    end_time           : datetime | None      – latest timestamp seen
    """

    reservoir:          ResponseTimeReservoir
    total_count:        int                   = 0
    error_count:        int                   = 0
    response_time_sum:  float                 = 0.0
    response_time_max:  float                 = 0.0
    slow_count:         int                   = 0
    client_ips:         Counter               = field(default_factory=Counter)
    error_uris:         Counter               = field(default_factory=Counter)
    status_codes:       Counter               = field(default_factory=Counter)
    user_agents:        Counter               = field(default_factory=Counter)
    crawlers:           Counter               = field(default_factory=Counter)
    attack_tools:       Counter               = field(default_factory=Counter)
    attacks_by_ip:      dict[str, IPAttacks]  = field(default_factory=dict)
    hourly:             list[int]             = field(default_factory=lambda: [0] * 24)
    start_time:         datetime | None       = None
    end_time:           datetime | None       = None

    @property
    def response_time_count(self) -> int:
        return self.reservoir.seen


# ─────────────────────────────────────────────────────────────────────────────
# Aggregator
# ─────────────────────────────────────────────────────────────────────────────

class StreamingAggregator:
    """Feed records in file order via ``update()``; read ``state`` afterwards."""

    def __init__(
        self,
        rules: ClassificationRules,
        slow_threshold: float = 3.0,
        reservoir_size: int = DEFAULT_RESERVOIR_SIZE,
    ) -> None:
        self.rules = rules
        self.slow_threshold = slow_threshold
        self.state = RunningState(reservoir=ResponseTimeReservoir(reservoir_size))

    def update(self, record: LogRecord) -> None:
        state = self.state

        # ── 1. Count + time range ─────────────────────────────────────────
        state.total_count += 1
        if (ts := record.timestamp) is not None:
            if state.start_time is None or ts < state.start_time:
                state.start_time = ts
            if state.end_time is None or ts > state.end_time:
                state.end_time = ts

        # ── 2. Response time ──────────────────────────────────────────────
        rt = record.response_time
        state.response_time_sum += rt
        if rt > state.response_time_max:
            state.response_time_max = rt
        state.reservoir.add(rt)
        if record.is_slow(self.slow_threshold):
            state.slow_count += 1

        # ── 3. Frequency tables + hourly histogram ────────────────────────
        state.client_ips[record.client_ip] += 1
        state.status_codes[record.status_code] += 1
        state.user_agents[record.user_agent] += 1
        state.hourly[ts.hour if ts is not None else 0] += 1

        # ── 4. Errors ─────────────────────────────────────────────────────
        if record.is_error:
            state.error_count += 1
            state.error_uris[record.uri] += 1

        # ── 5. Per-IP attack entry ────────────────────────────────────────
        attacks = state.attacks_by_ip.get(record.client_ip)
        if attacks is None:
            attacks = state.attacks_by_ip[record.client_ip] = IPAttacks()
        attacks.total_requests += 1

        # ── 6. Classification ─────────────────────────────────────────────
        verdict = self.rules.classify(record.uri, record.user_agent)
        if verdict.sql_injection:
            attacks.sql_attempts += 1
        if verdict.xss:
            attacks.xss_attempts += 1
        if verdict.crawler:
            state.crawlers[record.user_agent] += 1
        if verdict.attack_tool:
            state.attack_tools[record.user_agent] += 1
            logger.debug("Attack tool %r from %s", record.user_agent, record.client_ip)

    def update_many(self, records) -> int:
        """Apply ``update()`` to each record in order; return how many were fed."""
        fed = 0
        for record in records:
            self.update(record)
            fed += 1
        return fed

    def finalize(self, top_ips: int = 10, top_errors: int = 10):
        """Snapshot the current state as an ``AnalysisResult``; feeding may continue."""
        from analyzer.stats import finalize

        return finalize(self.state, top_ips, top_errors)
