"""
tests/test_report.py
--------------------
Unit tests cho analyzer/report.py — định dạng số, Markdown và ghi file.

Chạy:
    python -m pytest tests/test_report.py -v
"""

import json
import os
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from analyzer.parser import LogRecord                 # noqa: E402
from analyzer.report import (                         # noqa: E402
    format_number,
    render_json,
    render_markdown,
    status_text,
    write_report,
)
from analyzer.stats import AnalysisResult, calculate  # noqa: E402
from config import _Settings                          # noqa: E402


SETTINGS = _Settings(
    SQL_INJECTION_PATTERNS=("union select",),
    XSS_PATTERNS=("<script",),
    CRAWLER_USER_AGENTS=("googlebot",),
    ATTACK_TOOL_PATTERNS=("sqlmap",),
)

_T = datetime(2024, 10, 10, 8, 15, 0, tzinfo=timezone.utc)


def rec(ip="1.1.1.1", uri="/", status=200, ua="Mozilla/5.0 (X11; Linux x86_64)") -> LogRecord:
    return LogRecord(
        domain="example.com", client_ip=ip, timestamp=_T, method="GET",
        uri=uri, protocol="HTTP/1.1", status_code=status, referer="-",
        user_agent=ua, response_size=512, response_time=0.25,
    )


def sample_result() -> AnalysisResult:
    return calculate([
        rec(),
        rec(status=404, uri="/missing"),
        rec(status=502, uri="/api"),
        rec(ip="6.6.6.6", uri="/?id=1 union select 1"),
        rec(ua="Googlebot/2.1 (+http://www.google.com/bot.html)"),
    ], SETTINGS)


class TestFormatNumber(unittest.TestCase):

    def test_cases(self):
        cases = {
            0:       "0",
            42:      "42",
            999:     "999",
            1000:    "1,000",
            12345:   "12,345",
            1234567: "1,234,567",
        }
        for n, expected in cases.items():
            with self.subTest(n=n):
                self.assertEqual(format_number(n), expected)


class TestStatusText(unittest.TestCase):

    def test_known(self):
        self.assertEqual(status_text(404), "Not Found")
        self.assertEqual(status_text(502), "Bad Gateway")

    def test_unknown(self):
        self.assertEqual(status_text(418), "Unknown")


class TestRenderMarkdown(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.md = render_markdown(sample_result(), datetime(2024, 10, 11, 9, 0, 0))

    def test_headings_in_order(self):
        headings = [
            "# Access Log Analysis Report",
            "## Summary",
            "## HTTP Errors",
            "## Security Analysis",
            "## Statistics",
            "## User Agent Analysis",
        ]
        positions = [self.md.index(h) for h in headings]
        self.assertEqual(positions, sorted(positions))

    def test_generated_at(self):
        self.assertIn("**Generated:** 2024-10-11 09:00:00", self.md)

    def test_status_lines(self):
        self.assertIn("- **404 Not Found:** 1 requests", self.md)
        self.assertIn("- **502 Bad Gateway:** 1 requests", self.md)

    def test_hourly_rows(self):
        self.assertIn("| 00:00-01:00 | 0 |", self.md)
        self.assertIn("| 08:00-09:00 | 5 |", self.md)
        self.assertIn("| 23:00-24:00 | 0 |", self.md)

    def test_suspicious_ip_listed(self):
        self.assertIn("**6.6.6.6** - SQL injection: 1 (score 2, total requests: 1)", self.md)

    def test_crawler_listed(self):
        self.assertIn("Googlebot/2.1", self.md)

    def test_empty_result(self):
        md = render_markdown(AnalysisResult())
        self.assertIn("No 4xx errors detected.", md)
        self.assertIn("No 5xx errors detected.", md)
        self.assertIn("No suspicious IPs detected.", md)
        self.assertIn("No suspicious user agents detected.", md)

    def test_long_user_agent_truncated(self):
        long_ua = "A" * 300
        md = render_markdown(calculate([rec(ua=long_ua)], SETTINGS))
        self.assertNotIn(long_ua, md)
        self.assertIn("A" * 77 + "...", md)


class TestRenderJson(unittest.TestCase):

    def test_loads_back(self):
        data = json.loads(render_json(sample_result()))
        self.assertEqual(data["summary"]["total_requests"], 5)
        self.assertEqual(data["http_errors"]["client_errors"], {"404": 1})


class TestWriteReport(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.out = os.path.join(self._tmp.name, "nested", "reports")

    def tearDown(self):
        self._tmp.cleanup()

    def test_markdown_file(self):
        path = write_report(sample_result(), self.out, "markdown")
        self.assertTrue(path.is_file())
        self.assertEqual(path.suffix, ".md")
        self.assertTrue(path.name.startswith("analysis_report_"))
        self.assertIn("## Summary", path.read_text(encoding="utf-8"))

    def test_json_file(self):
        path = write_report(sample_result(), self.out, "json")
        self.assertEqual(path.suffix, ".json")
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        self.assertIn("statistics", data)

    def test_unknown_format(self):
        with self.assertRaises(ValueError):
            write_report(sample_result(), self.out, "html")
        self.assertFalse(os.path.exists(self.out))


if __name__ == "__main__":
    unittest.main(verbosity=2)
