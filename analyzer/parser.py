"""
analyzer/parser.py
------------------
Parse extended Nginx access-log lines (hosting-provider layout).

Line layout:
  $host $remote_addr [$time_local] "$request" $status "$http_referer"
  "$http_user_agent" $real_ip "$upstream_uri" ... $body_bytes_sent
  $request_time $upstream_response_time

Example line:
  example.com 98.43.13.94 [22/Sep/2021:21:26:10 +0000] "GET /wp-admin/ HTTP/1.0"
  302 "-" "Mozilla/5.0 (Macintosh)" 98.43.13.94 "/wp-admin/index.php" - - 472
  0.562 0.560

The format mixes fixed-position fields (host, client IP) with free-form quoted
segments and a numeric tail whose length varies with optional fields, so the
parser works positionally instead of with one monolithic regex:

  * whitespace tokens       → host, client IP, status anchor, real IP
  * first ``[...]`` segment → timestamp
  * ``"..."`` segments      → request line, referer, user agent, upstream URI
  * numeric runs            → response size + response time (line tail)

Lines that cannot be parsed raise a ``ParseFailure`` subclass.  The file
driver ``iter_log_file()`` skips them and keeps going — one bad line never
aborts a run.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterator

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logger = logging.getLogger(__name__)

MIN_FIELDS = 14
TIMESTAMP_FORMAT = "%d/%b/%Y:%H:%M:%S %z"

# Integer or decimal run anywhere in the line ("472", "0.562", "5.")
_NUMBER_PATTERN = re.compile(r"\d+\.?\d*")


# ---------------------------------------------------------------------------
# Parse failures
# ---------------------------------------------------------------------------

class FailureKind(str, Enum):
    EMPTY_LINE            = "EmptyLine"
    INSUFFICIENT_FIELDS   = "InsufficientFields"
    TIMESTAMP_PARSE_ERROR = "TimestampParseError"


class ParseFailure(ValueError):
    """Base class for a line that could not be turned into a LogRecord."""

    kind: FailureKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmptyLineError(ParseFailure):
    kind = FailureKind.EMPTY_LINE


class InsufficientFieldsError(ParseFailure):
    kind = FailureKind.INSUFFICIENT_FIELDS

    def __init__(self, found: int) -> None:
        super().__init__(
            f"insufficient fields in log line: got {found}, expected at least {MIN_FIELDS}"
        )
        self.found = found


class TimestampParseError(ParseFailure):
    kind = FailureKind.TIMESTAMP_PARSE_ERROR

    def __init__(self, raw: str) -> None:
        super().__init__(f"cannot parse timestamp {raw!r}")
        self.raw = raw


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass
class LogRecord:
    """
    Structured fields of one access-log line.

    ``timestamp`` is None when the line carries no ``[...]`` segment.
    Missing quoted segments leave the string fields empty; a missing numeric
    tail leaves ``response_size`` / ``response_time`` at zero.
    """

    domain:        str
    client_ip:     str
    timestamp:     datetime | None = None
    method:        str             = ""
    uri:           str             = ""
    protocol:      str             = ""
    status_code:   int             = 0
    referer:       str             = ""
    user_agent:    str             = ""
    real_ip:       str             = ""
    upstream_uri:  str             = ""
    response_size: int             = 0
    response_time: float           = 0.0

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def is_slow(self, threshold: float) -> bool:
        return self.response_time > threshold


@dataclass
class ParseCounters:
    """Line bookkeeping filled in by ``iter_log_file()``."""

    total_lines:  int     = 0
    parsed_lines: int     = 0
    skipped:      Counter = field(default_factory=Counter)   # FailureKind → n

    @property
    def skipped_lines(self) -> int:
        return sum(self.skipped.values())

    def as_dict(self) -> dict:
        return {
            "total_lines":   self.total_lines,
            "parsed_lines":  self.parsed_lines,
            "skipped_lines": self.skipped_lines,
            "skipped":       {kind.value: n for kind, n in self.skipped.items()},
        }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_line(line: str) -> LogRecord:
    """
    Parse a single access-log line.

    Raises
    ------
    EmptyLineError          – blank / whitespace-only input.
    InsufficientFieldsError – fewer than 14 whitespace-separated tokens.
    TimestampParseError     – a ``[...]`` segment exists but is not
                              ``DD/Mon/YYYY:HH:MM:SS ±ZZZZ``.
    """
    if not line or not line.strip():
        raise EmptyLineError("empty log line")

    parts = line.split()
    if len(parts) < MIN_FIELDS:
        raise InsufficientFieldsError(len(parts))

    record = LogRecord(domain=parts[0], client_ip=parts[1])

    # ── Timestamp [22/Sep/2021:21:26:10 +0000] ───────────────────────────
    raw_ts = _first_bracketed(line)
    if raw_ts is not None:
        try:
            record.timestamp = datetime.strptime(raw_ts, TIMESTAMP_FORMAT)
        except ValueError:
            raise TimestampParseError(raw_ts) from None

    # ── Request line, referer, user agent ────────────────────────────────
    quoted = _quoted_segments(line)
    if len(quoted) >= 3:
        request_parts = quoted[0].split()
        if len(request_parts) >= 3:
            record.method, record.uri, record.protocol = request_parts[:3]
        record.referer    = quoted[1]
        record.user_agent = quoted[2]

    # ── Status code = first exactly-3-digit token (anchor) ───────────────
    status_idx = -1
    for idx, part in enumerate(parts):
        if len(part) == 3 and part.isascii() and part.isdigit():
            record.status_code = int(part)
            status_idx = idx
            break

    # ── Real IP two tokens after the anchor, upstream URI quoted after it ─
    if status_idx >= 0 and status_idx + 2 < len(parts):
        record.real_ip = parts[status_idx + 2]

    tail_start = line.rfind(record.real_ip) + len(record.real_ip)
    upstream = _quoted_segments(line[tail_start:], limit=1)
    if upstream:
        record.upstream_uri = upstream[0]

    # ── Numeric tail: ... $body_bytes_sent $request_time ... ─────────────
    record.response_size, record.response_time = _numeric_tail(line)

    return record


def iter_log_file(filepath: str, counters: ParseCounters | None = None) -> Iterator[LogRecord]:
    """
    Stream LogRecords from *filepath*, one line at a time.

    Unparseable lines are skipped (logged at DEBUG, tallied in *counters*
    by failure kind); the generator never holds more than one line in memory.

    Raises
    ------
    FileNotFoundError  – if *filepath* does not exist.
    ValueError         – if *filepath* is not a regular file.
    PermissionError    – if the process lacks read access.
    """
    path = Path(filepath)

    if not path.exists():
        raise FileNotFoundError(f"Log file not found: {filepath}")
    if not path.is_file():
        raise ValueError(f"Path is not a regular file: {filepath}")

    if counters is None:
        counters = ParseCounters()

    with path.open("r", encoding="utf-8", errors="replace") as fh:
        for line_number, raw_line in enumerate(fh, start=1):
            counters.total_lines = line_number
            try:
                record = parse_line(raw_line)
            except ParseFailure as exc:
                counters.skipped[exc.kind] += 1
                logger.debug("Line %d skipped (%s): %s", line_number, exc.kind.value, exc.message)
                continue
            counters.parsed_lines += 1
            yield record

    logger.info(
        "Finished parsing '%s': %d total lines | %d parsed | %d skipped",
        filepath, counters.total_lines, counters.parsed_lines, counters.skipped_lines,
    )


# ---------------------------------------------------------------------------
# Internal helpers: plain string scanning
# ---------------------------------------------------------------------------

def _first_bracketed(line: str) -> str | None:
    """Content of the first non-empty ``[...]`` segment, or None."""
    start = line.find("[")
    while start != -1:
        end = line.find("]", start + 1)
        if end == -1:
            return None
        if end > start + 1:
            return line[start + 1:end]
        start = line.find("[", end + 1)
    return None


def _quoted_segments(text: str, limit: int | None = None) -> list[str]:
    """Contents of consecutive ``"..."`` pairs, left to right."""
    segments: list[str] = []
    pos = 0
    while limit is None or len(segments) < limit:
        start = text.find('"', pos)
        if start == -1:
            break
        end = text.find('"', start + 1)
        if end == -1:
            break
        segments.append(text[start + 1:end])
        pos = end + 1
    return segments


def _numeric_tail(line: str) -> tuple[int, float]:
    """
    Return (response_size, response_time) from the numeric runs in *line*.

    The last run is the response time.  The size is the second-to-last run,
    or the third-to-last when the second-to-last is a decimal (the request
    time sits between them), so ``... 100 0.250 0.200`` gives (100, 0.2).
    Anything else, e.g. ``... - 0.250 0.200``, leaves the size at 0.
    """
    numbers = _NUMBER_PATTERN.findall(line)
    if len(numbers) < 2:
        return 0, 0.0

    response_time = float(numbers[-1])
    response_size = 0
    for candidate in numbers[-3:-1][::-1]:
        if "." not in candidate:
            response_size = int(candidate)
            break
    return response_size, response_time


# ---------------------------------------------------------------------------
# Quick smoke-test  (python parser.py <logfile>)
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import sys
    import json

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    if len(sys.argv) != 2:
        print(f"Usage: python {sys.argv[0]} <access.log>")
        sys.exit(1)

    counts = ParseCounters()
    records = list(iter_log_file(sys.argv[1], counts))

    print(f"\n{json.dumps(counts.as_dict(), indent=2)}")

    if records:
        print("\n--- First 3 records ---")
        for rec in records[:3]:
            display = {**rec.__dict__, "timestamp": rec.timestamp.isoformat() if rec.timestamp else None}
            print(json.dumps(display, indent=2))
