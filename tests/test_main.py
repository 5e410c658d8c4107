"""
tests/test_main.py
------------------
Tests cho main.py — CLI (click.testing.CliRunner) và build_recommendations().

Chạy:
    python -m pytest tests/test_main.py -v
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import patch

from click.testing import CliRunner

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
import main as cli                                    # noqa: E402
from analyzer.stats import (                          # noqa: E402
    AnalysisResult,
    ResponseTimeStats,
    SecurityAnalysis,
    Statistics,
    Summary,
    SuspiciousIP,
)
from config import _Settings                          # noqa: E402

SETTINGS = _Settings(ERROR_RATE_WARNING=5.0, SLOW_REQUEST_TIME=3.0)

_LINE = (
    'example.com {ip} [01/Jan/2023:10:00:00 +0000] "GET {uri} HTTP/1.1" {status} '
    '"-" "Mozilla/5.0" {ip} "{uri}" - - 100 0.250 0.200'
)

_ATTACKER = SuspiciousIP("6.6.6.6", sql_attempts=2, xss_attempts=0, total_requests=3, attack_score=4)


def result_with(error_rate=0.0, suspicious=(), slow=0, sql=0) -> AnalysisResult:
    return AnalysisResult(
        summary=Summary(total_requests=100, error_rate=error_rate),
        security_analysis=SecurityAnalysis(sql_injection_attempts=sql, suspicious_ips=tuple(suspicious)),
        statistics=Statistics(response_time_stats=ResponseTimeStats(slow_requests=slow)),
    )


class TestRecommendations(unittest.TestCase):

    def test_nothing_to_do(self):
        self.assertEqual(
            cli.build_recommendations(result_with(), SETTINGS),
            ["✅ No significant problems detected"],
        )

    def test_every_problem(self):
        recs = cli.build_recommendations(
            result_with(error_rate=20.0, suspicious=[_ATTACKER], slow=4, sql=2), SETTINGS
        )
        self.assertEqual(len(recs), 4)
        self.assertTrue(any("1 suspicious IP" in r for r in recs))
        self.assertTrue(any("4 slow request" in r for r in recs))

    def test_error_rate_must_exceed_warning(self):
        at_limit = cli.build_recommendations(result_with(error_rate=5.0), SETTINGS)
        above = cli.build_recommendations(result_with(error_rate=5.01), SETTINGS)
        self.assertFalse(any("High error rate" in r for r in at_limit))
        self.assertTrue(any("High error rate" in r for r in above))


class TestCommand(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.out = os.path.join(self._tmp.name, "out")
        self.log = os.path.join(self._tmp.name, "access.log")
        with open(self.log, "w", encoding="utf-8") as fh:
            fh.write(_LINE.format(ip="1.2.3.4", uri="/", status=200) + "\n")
            fh.write(_LINE.format(ip="6.6.6.6", uri="/?q=<script>", status=404) + "\n")
            fh.write("garbage\n")
        self.runner = CliRunner()

    def tearDown(self):
        self._tmp.cleanup()

    @patch.dict(os.environ, {}, clear=True)
    def test_writes_report(self):
        res = self.runner.invoke(cli.main, ["-i", self.log, "-o", self.out])
        self.assertEqual(res.exit_code, 0, res.output)
        files = os.listdir(self.out)
        self.assertEqual(len(files), 1)
        self.assertTrue(files[0].endswith(".md"))
        self.assertIn("Recommendations", res.output)

    @patch.dict(os.environ, {}, clear=True)
    def test_json_format(self):
        res = self.runner.invoke(cli.main, ["-i", self.log, "-o", self.out, "-f", "json"])
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertTrue(os.listdir(self.out)[0].endswith(".json"))

    @patch.dict(os.environ, {}, clear=True)
    def test_config_file_sets_format(self):
        env_file = os.path.join(self._tmp.name, "run.env")
        with open(env_file, "w", encoding="utf-8") as fh:
            fh.write("REPORT_FORMAT=json\n")
        res = self.runner.invoke(cli.main, ["-i", self.log, "-o", self.out, "-c", env_file])
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertTrue(os.listdir(self.out)[0].endswith(".json"))
        self.assertNotIn("REPORT_FORMAT", os.environ)

    def test_missing_input(self):
        res = self.runner.invoke(cli.main, ["-i", "/nonexistent/access.log"])
        self.assertNotEqual(res.exit_code, 0)

    @patch.dict(os.environ, {"TOP_IPS_COUNT": "zero"}, clear=True)
    def test_invalid_configuration(self):
        res = self.runner.invoke(cli.main, ["-i", self.log, "-o", self.out])
        self.assertEqual(res.exit_code, 1)
        self.assertIn("Invalid configuration", res.output)


if __name__ == "__main__":
    unittest.main(verbosity=2)
