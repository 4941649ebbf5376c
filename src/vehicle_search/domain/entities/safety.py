"""
Safety domain entities: gate results, abuse patterns, risk and blocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SafetyViolationType(Enum):
    OFF_TOPIC = "off_topic"
    PROMPT_INJECTION = "prompt_injection"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    EXCESSIVE_LENGTH = "excessive_length"
    INVALID_CHARACTERS = "invalid_characters"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    BULK_EXTRACTION = "bulk_extraction"
    SESSION_BLOCKED = "session_blocked"


@dataclass(frozen=True)
class SafetyValidationResult:
    """Outcome of the safety gate. ``message`` is safe to show to users."""

    is_valid: bool
    violation_type: SafetyViolationType | None = None
    message: str | None = None
    retry_after: float | None = None

    @classmethod
    def ok(cls) -> SafetyValidationResult:
        return cls(is_valid=True)

    @classmethod
    def violation(
        cls,
        violation_type: SafetyViolationType,
        message: str,
        retry_after: float | None = None,
    ) -> SafetyValidationResult:
        return cls(False, violation_type, message, retry_after)


@dataclass(frozen=True)
class RateLimitResult:
    is_allowed: bool
    remaining_requests: int = 0
    retry_after: float = 0.0


class PatternType(Enum):
    RAPID_REQUESTS = "rapid_requests"
    REPEATED_QUERIES = "repeated_queries"
    OFF_TOPIC_FLOOD = "off_topic_flood"
    PROMPT_INJECTION_ATTEMPTS = "prompt_injection_attempts"
    BULK_EXTRACTION = "bulk_extraction"


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


RISK_RECOMMENDATIONS: dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: "Block session immediately and investigate",
    RiskLevel.HIGH: "Restrict access and monitor closely",
    RiskLevel.MEDIUM: "Increase monitoring frequency",
    RiskLevel.LOW: "Normal operation - continue monitoring",
}


def risk_level_for(severity: float) -> RiskLevel:
    """Map a 0-1 severity to a risk level."""
    if severity >= 0.9:
        return RiskLevel.CRITICAL
    if severity >= 0.7:
        return RiskLevel.HIGH
    if severity >= 0.4:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


@dataclass(frozen=True)
class SuspiciousPattern:
    type: PatternType
    description: str
    severity: float
    occurrences: int = 0


@dataclass
class SuspiciousActivityReport:
    session_id: str
    patterns: list[SuspiciousPattern] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendation: str = RISK_RECOMMENDATIONS[RiskLevel.LOW]

    @property
    def is_suspicious(self) -> bool:
        return bool(self.patterns)

    @property
    def max_severity(self) -> float:
        return max((p.severity for p in self.patterns), default=0.0)

    def has_pattern(self, pattern_type: PatternType) -> bool:
        return any(p.type is pattern_type for p in self.patterns)


@dataclass(frozen=True)
class SessionBlockInfo:
    """A time-boxed block. Times are epoch seconds."""

    session_id: str
    blocked_at: float
    duration: float
    reason: str

    @property
    def expires_at(self) -> float:
        return self.blocked_at + self.duration

    def is_active(self, now: float) -> bool:
        return now - self.blocked_at < self.duration


@dataclass
class AbuseReport:
    """Aggregated abuse view of a session over a time window."""

    session_id: str
    window_start: float
    window_end: float
    total_queries: int = 0
    off_topic_queries: int = 0
    injection_attempts: int = 0
    large_result_requests: int = 0
    rate_limit_violations: int = 0
    requests_in_window: int = 0
    patterns: list[SuspiciousPattern] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendation: str = RISK_RECOMMENDATIONS[RiskLevel.LOW]
    is_blocked: bool = False
    block_info: SessionBlockInfo | None = None


class SecurityEventType(Enum):
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    PROMPT_INJECTION = "prompt_injection"
    BULK_EXTRACTION = "bulk_extraction"
    OFF_TOPIC = "off_topic"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    SESSION_BLOCKED = "session_blocked"
    SESSION_UNBLOCKED = "session_unblocked"
