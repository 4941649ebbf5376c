"""
Declarative detection patterns for the safety gate.

Every check the gate performs is data: a table of ``PatternRule`` entries
(regex, category, severity, description) evaluated by one
``PatternMatcher``. Tables are compiled once at import and are read-only
for the life of the process.

Keyword sets for the topicality heuristic live here as well; they are
matched as whole words, case-insensitively.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class PatternCategory(Enum):
    SQL_INJECTION = "sql_injection"
    BULK_EXTRACTION = "bulk_extraction"
    PROMPT_INJECTION = "prompt_injection"


@dataclass(frozen=True)
class PatternRule:
    """One detection rule."""

    pattern: re.Pattern[str]
    category: PatternCategory
    severity: float
    description: str

    @classmethod
    def compile(
        cls,
        regex: str,
        category: PatternCategory,
        severity: float,
        description: str,
    ) -> PatternRule:
        return cls(re.compile(regex, re.IGNORECASE), category, severity, description)


@dataclass(frozen=True)
class PatternMatch:
    rule: PatternRule
    text: str
    start: int


class PatternMatcher:
    """
    Evaluates a rule table against text.

    Example:
        matcher = PatternMatcher(PROMPT_INJECTION_RULES)
        hit = matcher.first_match("ignore all previous instructions")
        hit.rule.description  # 'instruction override'
    """

    def __init__(self, rules: tuple[PatternRule, ...]) -> None:
        self._rules = rules

    def first_match(self, text: str) -> PatternMatch | None:
        for rule in self._rules:
            m = rule.pattern.search(text)
            if m:
                return PatternMatch(rule, m.group(0), m.start())
        return None


# =============================================================================
# Rule Tables
# =============================================================================

_SQL = PatternCategory.SQL_INJECTION
_BULK = PatternCategory.BULK_EXTRACTION
_PROMPT = PatternCategory.PROMPT_INJECTION

SQL_INJECTION_RULES: tuple[PatternRule, ...] = (
    PatternRule.compile(r"(\bOR\b|\bAND\b)\s*\d+\s*=\s*\d+", _SQL, 0.9, "boolean tautology"),
    PatternRule.compile(r"';\s*--", _SQL, 0.9, "comment terminator"),
    PatternRule.compile(r"\bUNION\s+SELECT\b", _SQL, 0.9, "UNION SELECT"),
    PatternRule.compile(r"\bDROP\s+TABLE\b", _SQL, 1.0, "DROP TABLE"),
    PatternRule.compile(r"\bINSERT\s+INTO\b", _SQL, 0.9, "INSERT INTO"),
    PatternRule.compile(r"\bDELETE\s+FROM\b", _SQL, 1.0, "DELETE FROM"),
    PatternRule.compile(r"\bEXEC\s*\(", _SQL, 0.9, "EXEC call"),
)

BULK_EXTRACTION_RULES: tuple[PatternRule, ...] = (
    PatternRule.compile(r"(list|show(\s+me)?|give\s+me)\s+all\s+(vehicles?|cars?|data)", _BULK, 0.8, "list all vehicles"),
    PatternRule.compile(r"(list|show(\s+me)?)\s+all\b", _BULK, 0.7, "bare show all"),
    PatternRule.compile(r"give\s+me\s+(everything|all(\s+the)?\s+data)", _BULK, 0.8, "give me everything"),
    PatternRule.compile(r"every\s+(car|vehicle)", _BULK, 0.7, "every vehicle"),
    PatternRule.compile(r"\d{2,}\s+(cars?|vehicles?|results?)", _BULK, 0.6, "numeric result count"),
)

PROMPT_INJECTION_RULES: tuple[PatternRule, ...] = (
    PatternRule.compile(r"ignore\s+.*\s*instructions?", _PROMPT, 0.9, "instruction override"),
    PatternRule.compile(r"ignore\s+.*\s*prompts?", _PROMPT, 0.9, "prompt override"),
    PatternRule.compile(r"you\s+are\s+now", _PROMPT, 0.8, "role override"),
    PatternRule.compile(r"new\s+instructions?", _PROMPT, 0.8, "new instructions"),
    PatternRule.compile(r"disregard.*instructions?", _PROMPT, 0.9, "disregard instructions"),
    PatternRule.compile(r"\bact\s+as\b", _PROMPT, 0.7, "act as"),
    PatternRule.compile(r"pretend\s+(you\s+are|to\s+be)", _PROMPT, 0.7, "pretend"),
    PatternRule.compile(r"\broleplay\b", _PROMPT, 0.7, "roleplay"),
    PatternRule.compile(r"show\s+me\s+(your|the)\s+(system\s+prompt|instructions?)", _PROMPT, 0.9, "system prompt extraction"),
    PatternRule.compile(r"what\s+are\s+your\s+(rules?|guidelines?|instructions?)", _PROMPT, 0.8, "rule extraction"),
    PatternRule.compile(r"reveal.*prompt", _PROMPT, 0.9, "prompt reveal"),
    PatternRule.compile(r"\bDAN\s+mode\b", _PROMPT, 1.0, "DAN mode"),
    PatternRule.compile(r"developer\s+mode", _PROMPT, 1.0, "developer mode"),
    PatternRule.compile(r"\bjailbreak\b", _PROMPT, 1.0, "jailbreak"),
    PatternRule.compile(r"dump\s+(database|index)", _PROMPT, 1.0, "data dump"),
)


# =============================================================================
# Topicality Keywords
# =============================================================================

# Weak words such as "price" or "show" are absent so they never
# rescue a query that names an off-topic subject.
VEHICLE_KEYWORDS: frozenset[str] = frozenset({
    "car", "cars", "vehicle", "vehicles", "bmw", "audi", "mercedes", "toyota", "ford",
    "honda", "nissan", "suv", "sedan", "hatchback", "estate", "coupe", "convertible",
    "truck", "van", "mileage", "engine", "transmission", "petrol", "diesel",
    "electric", "features", "leather", "navigation", "parking", "automatic",
    "manual", "horsepower", "mpg", "warranty", "km", "miles", "used", "new",
    "driving",
})

OFF_TOPIC_KEYWORDS: frozenset[str] = frozenset({
    "weather", "news", "recipe", "movie", "music", "song", "album", "pizza",
    "sports", "football", "basketball", "politics", "election", "stock",
    "crypto", "bitcoin", "ethereum", "investment", "restaurant", "hotel",
    "vacation", "flight", "travel", "make", "cook",
})


def _keyword_pattern(words: frozenset[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


_VEHICLE_RE = _keyword_pattern(VEHICLE_KEYWORDS)
_OFF_TOPIC_RE = _keyword_pattern(OFF_TOPIC_KEYWORDS)


def has_vehicle_keyword(text: str) -> bool:
    return _VEHICLE_RE.search(text) is not None


def has_off_topic_keyword(text: str) -> bool:
    return _OFF_TOPIC_RE.search(text) is not None
