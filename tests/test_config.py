"""
tests/test_config.py
--------------------
Unit tests cho config.py — _Settings.from_env() và load_settings().

Mọi test chạy trong patch.dict(os.environ, clear=True) để không bị
.env của máy dev làm sai kết quả.

Chạy:
    python -m pytest tests/test_config.py -v
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
from config import (                    # noqa: E402
    DEFAULT_CRAWLER_USER_AGENTS,
    DEFAULT_SQL_INJECTION_PATTERNS,
    _Settings,
    load_settings,
)


class TestDefaults(unittest.TestCase):

    @patch.dict(os.environ, {}, clear=True)
    def test_unset_keys_use_defaults(self):
        s = _Settings.from_env()
        self.assertEqual(s.SLOW_REQUEST_TIME, 3.0)
        self.assertEqual(s.ERROR_RATE_WARNING, 5.0)
        self.assertEqual(s.TOP_IPS_COUNT, 10)
        self.assertEqual(s.RESERVOIR_SIZE, 1000)
        self.assertEqual(s.REPORT_FORMAT, "markdown")
        self.assertEqual(s.SQL_INJECTION_PATTERNS, DEFAULT_SQL_INJECTION_PATTERNS)
        self.assertEqual(s.CRAWLER_USER_AGENTS, DEFAULT_CRAWLER_USER_AGENTS)


class TestNumbers(unittest.TestCase):

    @patch.dict(os.environ, {"SLOW_REQUEST_TIME": "1.5", "TOP_IPS_COUNT": "25"}, clear=True)
    def test_parsed(self):
        s = _Settings.from_env()
        self.assertEqual(s.SLOW_REQUEST_TIME, 1.5)
        self.assertEqual(s.TOP_IPS_COUNT, 25)

    @patch.dict(os.environ, {"TOP_IPS_COUNT": "ten"}, clear=True)
    def test_invalid_int(self):
        with self.assertRaisesRegex(ValueError, "TOP_IPS_COUNT"):
            _Settings.from_env()

    @patch.dict(os.environ, {"RESERVOIR_SIZE": "0"}, clear=True)
    def test_non_positive_int(self):
        with self.assertRaisesRegex(ValueError, "RESERVOIR_SIZE"):
            _Settings.from_env()

    @patch.dict(os.environ, {"SLOW_REQUEST_TIME": "-1"}, clear=True)
    def test_negative_float(self):
        with self.assertRaisesRegex(ValueError, "SLOW_REQUEST_TIME"):
            _Settings.from_env()


class TestPatterns(unittest.TestCase):

    @patch.dict(os.environ, {"XSS_PATTERNS": " <SCRIPT , OnError= ,, "}, clear=True)
    def test_split_strip_lowercase(self):
        self.assertEqual(_Settings.from_env().XSS_PATTERNS, ("<script", "onerror="))

    @patch.dict(os.environ, {"ATTACK_TOOL_PATTERNS": ""}, clear=True)
    def test_empty_value_disables(self):
        self.assertEqual(_Settings.from_env().ATTACK_TOOL_PATTERNS, ())


class TestLoadSettings(unittest.TestCase):

    @patch.dict(os.environ, {}, clear=True)
    def test_env_file_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "run.env")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("TOP_ERRORS_COUNT=3\nREPORT_FORMAT=JSON\n")
            s = load_settings(path)
        self.assertEqual(s.TOP_ERRORS_COUNT, 3)
        self.assertEqual(s.REPORT_FORMAT, "json")

    def test_missing_env_file(self):
        with self.assertRaises(FileNotFoundError):
            load_settings("/nonexistent/run.env")

    @patch.dict(os.environ, {"TOP_IPS_COUNT": "7"}, clear=True)
    def test_without_file_reads_environment(self):
        self.assertEqual(load_settings().TOP_IPS_COUNT, 7)

    @patch.dict(os.environ, {"TOP_IPS_COUNT": "7"}, clear=True)
    def test_env_file_does_not_leak_into_process(self):
        """Giá trị từ --config chỉ áp dụng cho snapshot đó, không ghi vào os.environ."""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "run.env")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("TOP_IPS_COUNT=3\nRESERVOIR_SIZE=50\n")
            from_file = load_settings(path)
        self.assertEqual(from_file.TOP_IPS_COUNT, 3)
        self.assertEqual(from_file.RESERVOIR_SIZE, 50)

        self.assertEqual(os.environ["TOP_IPS_COUNT"], "7")
        self.assertNotIn("RESERVOIR_SIZE", os.environ)
        later = load_settings()
        self.assertEqual(later.TOP_IPS_COUNT, 7)
        self.assertEqual(later.RESERVOIR_SIZE, 1000)

    def test_from_env_explicit_mapping(self):
        s = _Settings.from_env({"SLOW_REQUEST_TIME": "0.5", "CRAWLER_USER_AGENTS": "Bot"})
        self.assertEqual(s.SLOW_REQUEST_TIME, 0.5)
        self.assertEqual(s.CRAWLER_USER_AGENTS, ("bot",))
        self.assertEqual(s.TOP_IPS_COUNT, 10)


if __name__ == "__main__":
    unittest.main(verbosity=2)
