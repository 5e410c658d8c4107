"""
analyzer/rules.py
-----------------
Security / crawler classification of (URI, user-agent) pairs.

Four independent predicates, each driven by an ordered list of lowercase
substring patterns supplied by ``config.settings``:

   Predicate           │ Haystack
   ────────────────────┼──────────────────────────────────
   is_sql_injection    │ lower(uri + " " + user_agent)
   is_xss              │ lower(uri + " " + user_agent)
   is_crawler          │ lower(user_agent)
   is_attack_tool      │ lower(user_agent)

A single matching pattern is enough; order only affects how early the scan
stops.  An empty pattern list makes the predicate always False.

Public API
----------
    ClassificationRules(sql, xss, crawler, attack_tool)
    ClassificationRules.from_settings(settings) -> ClassificationRules
    rules.classify(uri, user_agent)             -> Classification
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """All four verdicts for one request."""
    sql_injection: bool = False
    xss:           bool = False
    crawler:       bool = False
    attack_tool:   bool = False


@dataclass(frozen=True)
class ClassificationRules:
    """
    Immutable pattern set.

    Patterns are expected lowercase (``config`` lowercases on load); the
    constructor normalises again so hand-built rules behave the same way.
    """

    sql_injection_patterns: tuple[str, ...] = ()
    xss_patterns:           tuple[str, ...] = ()
    crawler_patterns:       tuple[str, ...] = ()
    attack_tool_patterns:   tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in ("sql_injection_patterns", "xss_patterns",
                     "crawler_patterns", "attack_tool_patterns"):
            object.__setattr__(self, name, _normalise(getattr(self, name)))

    @classmethod
    def from_settings(cls, settings) -> "ClassificationRules":
        rules = cls(
            sql_injection_patterns = settings.SQL_INJECTION_PATTERNS,
            xss_patterns           = settings.XSS_PATTERNS,
            crawler_patterns       = settings.CRAWLER_USER_AGENTS,
            attack_tool_patterns   = settings.ATTACK_TOOL_PATTERNS,
        )
        logger.debug(
            "Classification rules: sql=%d xss=%d crawler=%d attack_tool=%d",
            len(rules.sql_injection_patterns), len(rules.xss_patterns),
            len(rules.crawler_patterns), len(rules.attack_tool_patterns),
        )
        return rules

    # ── predicates ───────────────────────────────────────────────────────

    def is_sql_injection(self, uri: str, user_agent: str) -> bool:
        return _contains_any(f"{uri} {user_agent}".lower(), self.sql_injection_patterns)

    def is_xss(self, uri: str, user_agent: str) -> bool:
        return _contains_any(f"{uri} {user_agent}".lower(), self.xss_patterns)

    def is_crawler(self, user_agent: str) -> bool:
        return _contains_any(user_agent.lower(), self.crawler_patterns)

    def is_attack_tool(self, user_agent: str) -> bool:
        return _contains_any(user_agent.lower(), self.attack_tool_patterns)

    def classify(self, uri: str, user_agent: str) -> Classification:
        """Evaluate all four predicates, lowercasing each haystack once."""
        request = f"{uri} {user_agent}".lower()
        agent = user_agent.lower()
        return Classification(
            sql_injection = _contains_any(request, self.sql_injection_patterns),
            xss           = _contains_any(request, self.xss_patterns),
            crawler       = _contains_any(agent, self.crawler_patterns),
            attack_tool   = _contains_any(agent, self.attack_tool_patterns),
        )


def _normalise(patterns: Iterable[str]) -> tuple[str, ...]:
    # empty strings would match everything
    return tuple(p.lower() for p in patterns if p)


def _contains_any(haystack: str, patterns: tuple[str, ...]) -> bool:
    return any(pattern in haystack for pattern in patterns)
