"""
Tests for AbuseMonitor - tracking, pattern detection, risk levels and blocks.
"""

from __future__ import annotations

import logging

import pytest

from vehicle_search.application.safety import AbuseMonitor
from vehicle_search.config import AbuseSettings
from vehicle_search.domain.entities import PatternType, RiskLevel, SecurityEventType


@pytest.fixture
def monitor(session_manager, clock):
    return AbuseMonitor(session_manager, AbuseSettings(), clock=clock)


@pytest.fixture
async def sid(session_manager):
    return (await session_manager.create_session()).session_id


class TestTracking:
    async def test_counters_are_updated(self, monitor, session_manager, sid):
        await monitor.track_query(sid, "bmw", off_topic=True, injection=True, result_count=60)
        counters = (await session_manager.get_session(sid)).counters
        assert counters.total_queries == 1
        assert counters.off_topic_count == 1
        assert counters.injection_count == 1
        assert counters.large_result_count == 1
        assert list(counters.query_history) == ["bmw"]

    async def test_old_timestamps_are_pruned(self, monitor, session_manager, sid, clock):
        await monitor.track_query(sid, "a")
        clock.advance(3601)
        await monitor.track_query(sid, "b")
        counters = (await session_manager.get_session(sid)).counters
        assert list(counters.request_timestamps) == [clock.now]

    async def test_timestamps_outlive_rapid_window(self, monitor, session_manager, sid, clock):
        await monitor.track_query(sid, "a")
        clock.advance(11)
        await monitor.track_query(sid, "b")
        counters = (await session_manager.get_session(sid)).counters
        assert len(counters.request_timestamps) == 2

    async def test_rate_limit_violations_are_counted(self, monitor, session_manager, sid):
        await monitor.track_query(sid, "bmw", rate_limited=True)
        await monitor.track_query(sid, "audi")
        counters = (await session_manager.get_session(sid)).counters
        assert counters.rate_limit_violations == 1

    async def test_unknown_session_is_ignored(self, monitor):
        await monitor.track_query("missing", "bmw")
        await monitor.record_result_count("missing", 500)

    async def test_record_result_count_threshold(self, monitor, session_manager, sid):
        await monitor.record_result_count(sid, 49)
        await monitor.record_result_count(sid, 50)
        assert (await session_manager.get_session(sid)).counters.large_result_count == 1


class TestDetection:
    async def test_clean_session(self, monitor, sid):
        await monitor.track_query(sid, "bmw estate")
        report = await monitor.detect_suspicious_activity(sid)
        assert not report.is_suspicious
        assert report.risk_level is RiskLevel.LOW

    async def test_rapid_requests(self, monitor, sid):
        for i in range(6):
            await monitor.track_query(sid, f"query {i}")
        report = await monitor.detect_suspicious_activity(sid)
        assert report.has_pattern(PatternType.RAPID_REQUESTS)
        assert report.max_severity == pytest.approx(0.6)
        assert report.risk_level is RiskLevel.MEDIUM

    async def test_rapid_requests_outside_window(self, monitor, sid, clock):
        for i in range(6):
            await monitor.track_query(sid, f"query {i}")
            clock.advance(3)
        report = await monitor.detect_suspicious_activity(sid)
        assert not report.has_pattern(PatternType.RAPID_REQUESTS)

    async def test_rapid_request_severity_caps_at_critical(self, monitor, sid):
        for i in range(10):
            await monitor.track_query(sid, f"query {i}")
        report = await monitor.detect_suspicious_activity(sid)
        assert report.risk_level is RiskLevel.CRITICAL

    async def test_repeated_queries_are_normalized(self, monitor, sid, clock):
        for text in ("BMW X5", "bmw x5 ", " Bmw X5", "bmw x5"):
            await monitor.track_query(sid, text)
            clock.advance(5)
        report = await monitor.detect_suspicious_activity(sid)
        assert report.has_pattern(PatternType.REPEATED_QUERIES)
        assert report.risk_level is RiskLevel.MEDIUM

    async def test_off_topic_flood(self, monitor, sid, clock):
        for i in range(6):
            await monitor.track_query(sid, f"q{i}", off_topic=i < 4)
            clock.advance(5)
        report = await monitor.detect_suspicious_activity(sid)
        assert report.has_pattern(PatternType.OFF_TOPIC_FLOOD)
        assert report.risk_level is RiskLevel.HIGH

    async def test_off_topic_needs_minimum_queries(self, monitor, sid, clock):
        for i in range(5):
            await monitor.track_query(sid, f"q{i}", off_topic=True)
            clock.advance(5)
        report = await monitor.detect_suspicious_activity(sid)
        assert not report.has_pattern(PatternType.OFF_TOPIC_FLOOD)

    async def test_injection_attempts(self, monitor, sid, clock):
        for i in range(3):
            await monitor.track_query(sid, f"q{i}", injection=True)
            clock.advance(5)
        report = await monitor.detect_suspicious_activity(sid)
        assert report.has_pattern(PatternType.PROMPT_INJECTION_ATTEMPTS)
        assert report.risk_level is RiskLevel.CRITICAL
        assert report.recommendation == "Block session immediately and investigate"

    async def test_bulk_extraction(self, monitor, sid):
        for _ in range(4):
            await monitor.record_result_count(sid, 100)
        report = await monitor.detect_suspicious_activity(sid)
        assert report.has_pattern(PatternType.BULK_EXTRACTION)
        assert report.risk_level is RiskLevel.HIGH

    async def test_unknown_session(self, monitor):
        report = await monitor.detect_suspicious_activity("missing")
        assert not report.is_suspicious


class TestBlocking:
    def test_block_and_expire(self, monitor, clock):
        info = monitor.block_session("s1", 100, "manual")
        assert info.expires_at == clock.now + 100
        assert monitor.is_session_blocked("s1")
        clock.advance(101)
        assert monitor.get_block_info("s1") is None

    def test_block_requires_positive_duration(self, monitor):
        with pytest.raises(ValueError):
            monitor.block_session("s1", 0, "manual")

    def test_unblock(self, monitor):
        monitor.block_session("s1", 100, "manual")
        assert monitor.unblock_session("s1") is True
        assert monitor.unblock_session("s1") is False
        assert not monitor.is_session_blocked("s1")

    def test_block_key(self):
        assert AbuseMonitor.block_key("abc") == "blocked_session:abc"

    async def test_auto_block_critical(self, monitor, sid, clock):
        for i in range(3):
            await monitor.track_query(sid, f"q{i}", injection=True)
        report = await monitor.detect_suspicious_activity(sid)
        block = monitor.apply_auto_block(report)
        assert block is not None
        assert block.duration == 3600.0
        assert "prompt_injection_attempts" in block.reason

    async def test_high_risk_not_blocked_by_default(self, monitor, sid):
        for _ in range(4):
            await monitor.record_result_count(sid, 100)
        report = await monitor.detect_suspicious_activity(sid)
        assert monitor.apply_auto_block(report) is None
        assert not monitor.is_session_blocked(sid)

    async def test_high_risk_blocked_when_configured(self, session_manager, clock, sid):
        monitor = AbuseMonitor(
            session_manager, AbuseSettings(auto_block_levels=["critical", "high"]), clock=clock
        )
        for _ in range(4):
            await monitor.record_result_count(sid, 100)
        block = monitor.apply_auto_block(await monitor.detect_suspicious_activity(sid))
        assert block is not None
        assert block.duration == 1800.0

    async def test_block_outlives_session(self, monitor, session_manager, sid):
        monitor.block_session(sid, 100, "manual")
        await session_manager.clear_session(sid)
        assert monitor.is_session_blocked(sid)


class TestReporting:
    async def test_abuse_report(self, monitor, sid, clock):
        await monitor.track_query(sid, "bmw", off_topic=False)
        await monitor.track_query(sid, "weather", off_topic=True)
        monitor.block_session(sid, 100, "manual")
        report = await monitor.generate_abuse_report(sid, window=60)
        assert report.total_queries == 2
        assert report.off_topic_queries == 1
        assert report.requests_in_window == 2
        assert report.window_end - report.window_start == 60
        assert report.is_blocked
        assert report.block_info.reason == "manual"

    async def test_report_counts_requests_across_its_window(self, monitor, sid, clock):
        for query in ("bmw", "audi", "ford"):
            await monitor.track_query(sid, query)
            clock.advance(30)

        report = await monitor.generate_abuse_report(sid, window=60)
        assert report.requests_in_window == 2

        report = await monitor.generate_abuse_report(sid, window=3600)
        assert report.requests_in_window == 3
        assert all(p.type is not PatternType.RAPID_REQUESTS for p in report.patterns)

    async def test_report_includes_rate_limit_violations(self, monitor, sid):
        await monitor.track_query(sid, "bmw", rate_limited=True)
        await monitor.track_query(sid, "bmw", rate_limited=True)
        report = await monitor.generate_abuse_report(sid)
        assert report.rate_limit_violations == 2

    async def test_report_for_unknown_session(self, monitor):
        report = await monitor.generate_abuse_report("missing")
        assert report.total_queries == 0
        assert report.risk_level is RiskLevel.LOW

    def test_security_event_levels(self, monitor, caplog):
        with caplog.at_level(logging.INFO, logger="vehicle_search.application.safety.abuse_monitor"):
            monitor.log_security_event(SecurityEventType.PROMPT_INJECTION, "s1", {"x": 1})
            monitor.log_security_event(SecurityEventType.OFF_TOPIC, "s1")
        levels = [r.levelno for r in caplog.records]
        assert levels == [logging.CRITICAL, logging.INFO]
