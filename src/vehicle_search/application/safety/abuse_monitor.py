"""
Abuse Monitor - per-session behavioural tracking, risk scoring and blocks.

Tracking lives in the session's typed ``SessionCounters``; blocks live in
their own TTL cache keyed ``blocked_session:{sid}`` so a block outlives a
cleared session and never travels with session data.

Detection rules (severity in 0-1):

    RapidRequests            > 5 requests in 10 s       min(0.5 + 0.1 * excess, 1.0)
    RepeatedQueries          same query > 3 times       0.6
    OffTopicFlood            >= 6 queries, ratio > 0.5  0.7
    PromptInjectionAttempts  > 2 attempts               0.9
    BulkExtraction           > 3 large-result requests  0.8

Risk is the maximum severity (>= 0.9 critical, >= 0.7 high, >= 0.4 medium).
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Callable
from typing import Any

from cachetools import TLRUCache

from vehicle_search.config import AbuseSettings
from vehicle_search.core.exceptions import SessionNotFoundError
from vehicle_search.domain.entities.conversation import SessionCounters
from vehicle_search.domain.entities.safety import (
    RISK_RECOMMENDATIONS,
    AbuseReport,
    PatternType,
    RiskLevel,
    SecurityEventType,
    SessionBlockInfo,
    SuspiciousActivityReport,
    SuspiciousPattern,
    risk_level_for,
)

from ..session.manager import SessionManager

logger = logging.getLogger(__name__)

DEFAULT_REPORT_WINDOW = 3600.0

_EVENT_LEVELS: dict[SecurityEventType, int] = {
    SecurityEventType.SESSION_BLOCKED: logging.CRITICAL,
    SecurityEventType.PROMPT_INJECTION: logging.CRITICAL,
    SecurityEventType.BULK_EXTRACTION: logging.ERROR,
    SecurityEventType.SUSPICIOUS_ACTIVITY: logging.ERROR,
    SecurityEventType.RATE_LIMIT_EXCEEDED: logging.WARNING,
    SecurityEventType.OFF_TOPIC: logging.INFO,
    SecurityEventType.SESSION_UNBLOCKED: logging.INFO,
}


def _block_expiry(_key: str, info: SessionBlockInfo, _now: float) -> float:
    return info.expires_at


def normalize_query(query: str) -> str:
    return query.strip().lower()


class AbuseMonitor:
    """
    Tracks behaviour per session and manages time-boxed blocks.

    Example:
        monitor = AbuseMonitor(session_manager)
        await monitor.track_query(sid, "bmw under 20k", result_count=12)
        report = await monitor.detect_suspicious_activity(sid)
        if report.risk_level is RiskLevel.CRITICAL:
            monitor.block_session(sid, 3600, "critical risk")
    """

    def __init__(
        self,
        session_manager: SessionManager,
        settings: AbuseSettings | None = None,
        clock: Callable[[], float] = time.time,
        max_blocks: int = 100_000,
    ) -> None:
        self._sessions = session_manager
        self._settings = settings or AbuseSettings()
        self._clock = clock
        self._blocks: TLRUCache[str, SessionBlockInfo] = TLRUCache(
            maxsize=max_blocks,
            ttu=_block_expiry,
            timer=clock,
        )

    @staticmethod
    def block_key(session_id: str) -> str:
        return f"blocked_session:{session_id}"

    # =====================================================================
    # Tracking
    # =====================================================================

    async def track_query(
        self,
        session_id: str,
        query: str,
        *,
        off_topic: bool = False,
        injection: bool = False,
        rate_limited: bool = False,
        result_count: int = 0,
    ) -> None:
        """
        Record one query. A missing session is logged and ignored.

        Request timestamps are kept for the longer of the rapid-request window
        and ``request_history_seconds`` so abuse reports can look back further
        than rapid-request detection does.
        """
        now = self._clock()
        retention = max(
            self._settings.rapid_request_window_seconds,
            self._settings.request_history_seconds,
        )
        try:
            async with self._sessions.mutate(session_id) as session:
                counters = session.counters
                timestamps = counters.request_timestamps
                while timestamps and now - timestamps[0] > retention:
                    timestamps.popleft()
                timestamps.append(now)
                counters.query_history.append(query)
                counters.total_queries += 1
                if off_topic:
                    counters.off_topic_count += 1
                if injection:
                    counters.injection_count += 1
                if rate_limited:
                    counters.rate_limit_violations += 1
                if result_count >= self._settings.large_result_threshold:
                    counters.large_result_count += 1
        except SessionNotFoundError:
            logger.warning(f"Cannot track query for unknown session {session_id}")

    async def record_result_count(self, session_id: str, result_count: int) -> None:
        """Count a large result set for a query that was already tracked."""
        if result_count < self._settings.large_result_threshold:
            return
        try:
            async with self._sessions.mutate(session_id) as session:
                session.counters.large_result_count += 1
        except SessionNotFoundError:
            logger.warning(f"Cannot record result count for unknown session {session_id}")

    # =====================================================================
    # Detection
    # =====================================================================

    async def detect_suspicious_activity(self, session_id: str) -> SuspiciousActivityReport:
        try:
            session = await self._sessions.get_session(session_id)
        except SessionNotFoundError:
            logger.warning(f"Cannot analyse unknown session {session_id}")
            return SuspiciousActivityReport(session_id=session_id)

        patterns = self._detect_patterns(session.counters, self._clock())
        risk = self._risk_for(patterns)
        report = SuspiciousActivityReport(
            session_id=session_id,
            patterns=patterns,
            risk_level=risk,
            recommendation=RISK_RECOMMENDATIONS[risk],
        )
        if report.is_suspicious:
            self.log_security_event(
                SecurityEventType.SUSPICIOUS_ACTIVITY,
                session_id,
                {
                    "risk_level": risk.value,
                    "patterns": [p.type.value for p in patterns],
                },
            )
        return report

    def _detect_patterns(self, counters: SessionCounters, now: float) -> list[SuspiciousPattern]:
        s = self._settings
        patterns: list[SuspiciousPattern] = []

        recent = sum(1 for t in counters.request_timestamps if now - t <= s.rapid_request_window_seconds)
        if recent > s.rapid_request_threshold:
            excess = recent - s.rapid_request_threshold
            patterns.append(
                SuspiciousPattern(
                    PatternType.RAPID_REQUESTS,
                    f"{recent} requests in {s.rapid_request_window_seconds:.0f} seconds",
                    min(0.5 + 0.1 * excess, 1.0),
                    recent,
                )
            )

        if counters.query_history:
            query, count = Counter(normalize_query(q) for q in counters.query_history).most_common(1)[0]
            if count > s.repeated_query_threshold:
                patterns.append(
                    SuspiciousPattern(
                        PatternType.REPEATED_QUERIES,
                        f"Query repeated {count} times: {query[:50]}",
                        0.6,
                        count,
                    )
                )

        if (
            counters.total_queries >= s.off_topic_min_queries
            and counters.off_topic_ratio > s.off_topic_ratio_threshold
        ):
            patterns.append(
                SuspiciousPattern(
                    PatternType.OFF_TOPIC_FLOOD,
                    f"{counters.off_topic_ratio:.0%} of queries are off-topic",
                    0.7,
                    counters.off_topic_count,
                )
            )

        if counters.injection_count > s.injection_attempt_threshold:
            patterns.append(
                SuspiciousPattern(
                    PatternType.PROMPT_INJECTION_ATTEMPTS,
                    f"{counters.injection_count} prompt injection attempts",
                    0.9,
                    counters.injection_count,
                )
            )

        if counters.large_result_count > s.large_result_request_threshold:
            patterns.append(
                SuspiciousPattern(
                    PatternType.BULK_EXTRACTION,
                    f"{counters.large_result_count} large result requests",
                    0.8,
                    counters.large_result_count,
                )
            )
        return patterns

    @staticmethod
    def _risk_for(patterns: list[SuspiciousPattern]) -> RiskLevel:
        return risk_level_for(max((p.severity for p in patterns), default=0.0))

    # =====================================================================
    # Blocking
    # =====================================================================

    def block_session(self, session_id: str, duration: float, reason: str) -> SessionBlockInfo:
        if duration <= 0:
            raise ValueError("Block duration must be positive")
        info = SessionBlockInfo(
            session_id=session_id,
            blocked_at=self._clock(),
            duration=duration,
            reason=reason,
        )
        self._blocks[self.block_key(session_id)] = info
        self.log_security_event(
            SecurityEventType.SESSION_BLOCKED,
            session_id,
            {"duration": duration, "reason": reason},
        )
        return info

    def unblock_session(self, session_id: str) -> bool:
        removed = self._blocks.pop(self.block_key(session_id), None) is not None
        if removed:
            self.log_security_event(SecurityEventType.SESSION_UNBLOCKED, session_id, {})
        return removed

    def get_block_info(self, session_id: str) -> SessionBlockInfo | None:
        info = self._blocks.get(self.block_key(session_id))
        if info is None or not info.is_active(self._clock()):
            return None
        return info

    def is_session_blocked(self, session_id: str) -> bool:
        return self.get_block_info(session_id) is not None

    def apply_auto_block(self, report: SuspiciousActivityReport) -> SessionBlockInfo | None:
        """Block the session when its risk level is configured for auto-blocking."""
        level = report.risk_level
        if level not in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            return None
        if level.value not in self._settings.auto_block_levels:
            logger.warning(
                f"Session {report.session_id} at {level.value} risk, not auto-blocked: "
                f"{report.recommendation}"
            )
            return None
        duration = self._settings.block_durations.get(level.value)
        if not duration:
            logger.warning(f"No block duration configured for risk level {level.value}")
            return None
        reasons = ", ".join(p.type.value for p in report.patterns)
        return self.block_session(report.session_id, duration, f"{level.value} risk: {reasons}")

    # =====================================================================
    # Reporting
    # =====================================================================

    async def generate_abuse_report(
        self,
        session_id: str,
        window: float = DEFAULT_REPORT_WINDOW,
    ) -> AbuseReport:
        now = self._clock()
        block = self.get_block_info(session_id)
        report = AbuseReport(
            session_id=session_id,
            window_start=now - window,
            window_end=now,
            is_blocked=block is not None,
            block_info=block,
        )
        try:
            session = await self._sessions.get_session(session_id)
        except SessionNotFoundError:
            logger.warning(f"Abuse report requested for unknown session {session_id}")
            return report

        counters = session.counters
        report.total_queries = counters.total_queries
        report.off_topic_queries = counters.off_topic_count
        report.injection_attempts = counters.injection_count
        report.large_result_requests = counters.large_result_count
        report.rate_limit_violations = counters.rate_limit_violations
        report.requests_in_window = sum(1 for t in counters.request_timestamps if now - t <= window)
        report.patterns = self._detect_patterns(counters, now)
        report.risk_level = self._risk_for(report.patterns)
        report.recommendation = RISK_RECOMMENDATIONS[report.risk_level]
        return report

    def log_security_event(
        self,
        event_type: SecurityEventType,
        session_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        level = _EVENT_LEVELS.get(event_type, logging.WARNING)
        logger.log(
            level,
            f"Security event {event_type.value} for session {session_id}: {details or {}}",
        )
