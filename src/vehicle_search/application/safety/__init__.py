"""
Safety Module

Provides:
- SafetyGuardrail: ordered pre-parse checks (length, characters, bulk
  extraction, prompt injection, topicality, rate limit)
- SessionRateLimiter: per-session fixed-window counters
- AbuseMonitor: behavioural tracking, risk levels and session blocks
- PatternMatcher and the detection rule tables
"""

from .abuse_monitor import AbuseMonitor
from .guardrail import SafetyGuardrail, is_off_topic
from .patterns import (
    BULK_EXTRACTION_RULES,
    PROMPT_INJECTION_RULES,
    SQL_INJECTION_RULES,
    PatternCategory,
    PatternMatcher,
    PatternRule,
)
from .rate_limiter import SessionRateLimiter

__all__ = [
    "SafetyGuardrail",
    "is_off_topic",
    "SessionRateLimiter",
    "AbuseMonitor",
    "PatternMatcher",
    "PatternRule",
    "PatternCategory",
    "SQL_INJECTION_RULES",
    "BULK_EXTRACTION_RULES",
    "PROMPT_INJECTION_RULES",
]
