"""
Safety Guardrail - first stage of every conversational turn.

Checks run in a fixed order and stop at the first failure:

    1. Length            (2-500 characters, not blank)
    2. Characters        (SQL injection patterns, >30% special characters)
    3. Bulk extraction   (before prompt injection: "show me all cars" is a
                          data-dump request, not a jailbreak)
    4. Prompt injection  (role override, instruction override, prompt leaks)
    5. Inappropriate content (pluggable hook, allows everything by default)
    6. Off-topic         (off-topic term present AND no strong domain term)
    7. Rate limit        (per-session minute/hour windows)

The gate never raises for bad input. It returns a SafetyValidationResult
whose message is fixed and user-safe; the matched detail only goes to the
log, with the query truncated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from vehicle_search.domain.entities.safety import SafetyValidationResult, SafetyViolationType

from .patterns import (
    BULK_EXTRACTION_RULES,
    PROMPT_INJECTION_RULES,
    SQL_INJECTION_RULES,
    PatternMatcher,
    has_off_topic_keyword,
    has_vehicle_keyword,
)
from .rate_limiter import SessionRateLimiter

logger = logging.getLogger(__name__)

EMPTY_QUERY_MESSAGE = "Query cannot be empty or contain only whitespace"
MALICIOUS_PATTERN_MESSAGE = "Query contains potentially malicious patterns"
SPECIAL_CHARACTERS_MESSAGE = "Query contains excessive special characters"
BULK_EXTRACTION_MESSAGE = (
    "This query appears to be attempting bulk data extraction. Please refine your search criteria."
)
PROMPT_INJECTION_MESSAGE = "Query contains potentially malicious content and cannot be processed."
INAPPROPRIATE_CONTENT_MESSAGE = "Query contains inappropriate content and cannot be processed."
OFF_TOPIC_MESSAGE = "Query is not related to vehicle search. Please ask about cars or vehicles."

_LOG_PREVIEW = 50


def _preview(query: str) -> str:
    return query if len(query) <= _LOG_PREVIEW else query[:_LOG_PREVIEW] + "..."


def special_character_ratio(query: str) -> float:
    if not query:
        return 0.0
    special = sum(1 for c in query if not c.isalnum() and not c.isspace())
    return special / len(query)


class SafetyGuardrail:
    """
    Validates raw query text before any parsing happens.

    Example:
        guardrail = SafetyGuardrail(SessionRateLimiter())
        result = await guardrail.validate("BMW under 20k", "session-1")
        if not result.is_valid:
            reply(result.message)
    """

    def __init__(
        self,
        rate_limiter: SessionRateLimiter | None = None,
        *,
        min_length: int = 2,
        max_length: int = 500,
        max_special_char_ratio: float = 0.3,
        content_filter: Callable[[str], bool] | None = None,
    ) -> None:
        self._rate_limiter = rate_limiter or SessionRateLimiter()
        self._min_length = min_length
        self._max_length = max_length
        self._max_special_ratio = max_special_char_ratio
        self._content_filter = content_filter
        self._sql = PatternMatcher(SQL_INJECTION_RULES)
        self._bulk = PatternMatcher(BULK_EXTRACTION_RULES)
        self._injection = PatternMatcher(PROMPT_INJECTION_RULES)

    async def validate(self, query: str | None, session_id: str | None) -> SafetyValidationResult:
        """Run every check in order; the first failure wins."""
        text = query or ""

        for check in (
            self._check_length,
            self._check_characters,
            self._check_bulk_extraction,
            self._check_prompt_injection,
            self._check_inappropriate_content,
            self._check_off_topic,
        ):
            result = check(text)
            if not result.is_valid:
                return result

        rate = await self._rate_limiter.check(session_id)
        if not rate.is_allowed:
            return SafetyValidationResult.violation(
                SafetyViolationType.RATE_LIMIT_EXCEEDED,
                f"Rate limit exceeded. Please try again in {rate.retry_after:.0f} seconds.",
                retry_after=rate.retry_after,
            )
        return SafetyValidationResult.ok()

    def reset_rate_limits(self, session_id: str) -> None:
        self._rate_limiter.reset(session_id)

    # =====================================================================
    # Individual checks (pure, no side effects beyond logging)
    # =====================================================================

    def _check_length(self, query: str) -> SafetyValidationResult:
        if not query.strip():
            return SafetyValidationResult.violation(SafetyViolationType.EXCESSIVE_LENGTH, EMPTY_QUERY_MESSAGE)
        if len(query) > self._max_length:
            return SafetyValidationResult.violation(
                SafetyViolationType.EXCESSIVE_LENGTH,
                f"Query exceeds maximum length of {self._max_length} characters",
            )
        if len(query) < self._min_length:
            return SafetyValidationResult.violation(
                SafetyViolationType.EXCESSIVE_LENGTH,
                f"Query must be at least {self._min_length} characters",
            )
        return SafetyValidationResult.ok()

    def _check_characters(self, query: str) -> SafetyValidationResult:
        hit = self._sql.first_match(query)
        if hit:
            logger.warning(f"SQL injection pattern ({hit.rule.description}) in query: {_preview(query)}")
            return SafetyValidationResult.violation(SafetyViolationType.INVALID_CHARACTERS, MALICIOUS_PATTERN_MESSAGE)

        ratio = special_character_ratio(query)
        if ratio > self._max_special_ratio:
            logger.warning(f"Excessive special characters ({ratio:.0%}) in query: {_preview(query)}")
            return SafetyValidationResult.violation(SafetyViolationType.INVALID_CHARACTERS, SPECIAL_CHARACTERS_MESSAGE)
        return SafetyValidationResult.ok()

    def _check_bulk_extraction(self, query: str) -> SafetyValidationResult:
        hit = self._bulk.first_match(query)
        if hit:
            logger.warning(f"Bulk extraction attempt ({hit.rule.description}) in query: {_preview(query)}")
            return SafetyValidationResult.violation(SafetyViolationType.BULK_EXTRACTION, BULK_EXTRACTION_MESSAGE)
        return SafetyValidationResult.ok()

    def _check_prompt_injection(self, query: str) -> SafetyValidationResult:
        hit = self._injection.first_match(query)
        if hit:
            logger.warning(f"Prompt injection ({hit.rule.description}) in query: {_preview(query)}")
            return SafetyValidationResult.violation(SafetyViolationType.PROMPT_INJECTION, PROMPT_INJECTION_MESSAGE)
        return SafetyValidationResult.ok()

    def _check_inappropriate_content(self, query: str) -> SafetyValidationResult:
        if self._content_filter is not None and self._content_filter(query):
            logger.warning(f"Inappropriate content in query: {_preview(query)}")
            return SafetyValidationResult.violation(
                SafetyViolationType.INAPPROPRIATE_CONTENT, INAPPROPRIATE_CONTENT_MESSAGE
            )
        return SafetyValidationResult.ok()

    def _check_off_topic(self, query: str) -> SafetyValidationResult:
        if is_off_topic(query):
            logger.info(f"Off-topic query rejected: {_preview(query)}")
            return SafetyValidationResult.violation(SafetyViolationType.OFF_TOPIC, OFF_TOPIC_MESSAGE)
        return SafetyValidationResult.ok()


def is_off_topic(query: str) -> bool:
    """
    Off-topic only when an off-topic term appears with no strong domain term.

    Weak terms ("price", "show") never rescue a query that mentions an
    off-topic subject. Queries with no keywords of either kind are allowed,
    whether or not they contain digits.
    """
    if not query or not query.strip():
        return False
    return has_off_topic_keyword(query) and not has_vehicle_keyword(query)
