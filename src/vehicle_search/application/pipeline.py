"""
ConversationalSearchPipeline - one conversational turn, end to end.

Control flow:
    raw text + session id
    -> session lookup (a missing/expired session is replaced)
    -> block check -> Safety Gate -> Abuse Monitor (track, detect, auto-block)
    -> Query Understanding -> Reference Resolver
    -> Attribute Mapper (+ comparative / reference constraints, refinement merge)
    -> Query Composer -> Strategy Orchestrator -> Result Ranker
    -> SearchState replacement + conversation history

Architecture Decision:
    Turns of one session run strictly in order under a per-session turn
    lock. Inside a turn, session writes take the SessionManager's
    mutation lock (turn lock first, mutation lock second, never the other
    way round). Turns of different sessions never wait on each other.

Outcomes:
    TurnResult           ranked vehicles
    SafetyRejection      the gate refused the text, or the session is blocked
    ClarificationNeeded  a reference could not be resolved, or nothing to search
Only ExactSearchError (and programming errors) escape as exceptions.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from types import TracebackType

from vehicle_search.core.async_utils import KeyedLock
from vehicle_search.core.exceptions import ExactSearchError
from vehicle_search.domain.entities.conversation import (
    ConversationMessage,
    ConversationSession,
    MessageRole,
    ResultSummary,
    SearchState,
)
from vehicle_search.domain.entities.query import (
    ConstraintOperator,
    ConstraintType,
    MappedQuery,
    MappingMetadata,
    ParsedQuery,
    QueryIntent,
    ResolvedQuery,
    SearchConstraint,
)
from vehicle_search.domain.entities.safety import (
    AbuseReport,
    SafetyValidationResult,
    SafetyViolationType,
    SecurityEventType,
)
from vehicle_search.domain.entities.turn import (
    ClarificationNeeded,
    SafetyRejection,
    TurnOutcome,
    TurnResult,
)

from .composition import QueryComposer
from .mapping import AttributeMapper
from .resolution import REFERENCE_FIELD, QueryRefiner, ReferenceResolver
from .safety import AbuseMonitor, SafetyGuardrail
from .search import ResultRanker, SearchOrchestrator
from .session import SessionCleanupWorker, SessionManager
from .understanding import QueryContext, QueryUnderstandingService

logger = logging.getLogger(__name__)

SESSION_BLOCKED_MESSAGE = (
    "This session has been temporarily blocked due to suspicious activity. Please try again later."
)
NOTHING_TO_SEARCH_MESSAGE = (
    "I can help you find a vehicle. What make, budget or type of car are you looking for?"
)

# Violation kinds that are also security events
_VIOLATION_EVENTS: dict[SafetyViolationType, SecurityEventType] = {
    SafetyViolationType.RATE_LIMIT_EXCEEDED: SecurityEventType.RATE_LIMIT_EXCEEDED,
    SafetyViolationType.PROMPT_INJECTION: SecurityEventType.PROMPT_INJECTION,
    SafetyViolationType.BULK_EXTRACTION: SecurityEventType.BULK_EXTRACTION,
    SafetyViolationType.OFF_TOPIC: SecurityEventType.OFF_TOPIC,
}

_FOLLOW_UP_INTENTS = (QueryIntent.REFINE, QueryIntent.COMPARE)


class ConversationalSearchPipeline:
    """
    Example:
        pipeline = container.pipeline()
        outcome = await pipeline.process_turn(None, "BMW under £25k in Manchester")
        match outcome:
            case TurnResult(results=results):
                show(results)
            case SafetyRejection() | ClarificationNeeded():
                reply(outcome.message)
        follow_up = await pipeline.process_turn(outcome.session_id, "cheaper")
    """

    def __init__(
        self,
        sessions: SessionManager,
        guardrail: SafetyGuardrail,
        abuse_monitor: AbuseMonitor,
        understanding: QueryUnderstandingService,
        resolver: ReferenceResolver,
        mapper: AttributeMapper,
        composer: QueryComposer,
        orchestrator: SearchOrchestrator,
        ranker: ResultRanker,
        refiner: QueryRefiner | None = None,
        cleanup_worker: SessionCleanupWorker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions = sessions
        self._guardrail = guardrail
        self._abuse = abuse_monitor
        self._understanding = understanding
        self._resolver = resolver
        self._mapper = mapper
        self._composer = composer
        self._orchestrator = orchestrator
        self._ranker = ranker
        self._refiner = refiner or QueryRefiner()
        self._cleanup = cleanup_worker
        self._clock = clock
        self._turn_locks = KeyedLock()

    # =====================================================================
    # Lifecycle
    # =====================================================================

    def start(self) -> None:
        """Start background session cleanup, if configured."""
        if self._cleanup is not None:
            self._cleanup.start()

    async def aclose(self) -> None:
        if self._cleanup is not None:
            await self._cleanup.stop()

    async def __aenter__(self) -> ConversationalSearchPipeline:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # =====================================================================
    # Turn
    # =====================================================================

    async def process_turn(
        self,
        session_id: str | None,
        query_text: str,
        max_results: int = 10,
    ) -> TurnOutcome:
        """
        Process one user turn.

        Raises:
            InvalidParameterError: max_results outside the allowed range
            ExactSearchError: the exact search backend failed
        """
        self._orchestrator.validate_max_results(max_results)

        session = await self._sessions.get_or_create(session_id)
        sid = session.session_id
        new_session = sid != session_id

        async with self._turn_locks(sid):
            block = self._abuse.get_block_info(sid)
            if block is not None:
                self._abuse.log_security_event(
                    SecurityEventType.SESSION_BLOCKED, sid, {"reason": block.reason, "rejected": True}
                )
                return self._blocked(sid, block.expires_at, new_session)

            validation = await self._guardrail.validate(query_text, sid)
            await self._abuse.track_query(
                sid,
                query_text or "",
                off_topic=validation.violation_type is SafetyViolationType.OFF_TOPIC,
                injection=validation.violation_type is SafetyViolationType.PROMPT_INJECTION,
                rate_limited=validation.violation_type is SafetyViolationType.RATE_LIMIT_EXCEEDED,
            )
            report = await self._abuse.detect_suspicious_activity(sid)
            block = self._abuse.apply_auto_block(report)

            if not validation.is_valid:
                event = _VIOLATION_EVENTS.get(validation.violation_type)
                if event is not None:
                    self._abuse.log_security_event(event, sid, {"violation": validation.violation_type.value})
                return SafetyRejection(sid, validation, new_session)
            if block is not None:
                return self._blocked(sid, block.expires_at, new_session)

            return await self._search_turn(sid, query_text, max_results, new_session)

    async def _search_turn(
        self,
        session_id: str,
        query_text: str,
        max_results: int,
        new_session: bool,
    ) -> TurnOutcome:
        session = await self._sessions.get_session(session_id)
        state = session.search_state
        context = QueryContext(has_previous_results=state.has_results, last_query=state.last_query or None)

        parsed = await self._understanding.parse(query_text, context)
        await self._sessions.add_message(
            session_id,
            ConversationMessage(MessageRole.USER, query_text, timestamp=self._clock(), parsed_query=parsed),
        )

        resolved = self._resolver.resolve(query_text, session)
        if resolved.has_unresolved:
            return await self._clarify(session_id, resolved.clarification or NOTHING_TO_SEARCH_MESSAGE, parsed, new_session)
        if parsed.intent is QueryIntent.OFF_TOPIC and not parsed.entities and not resolved.resolved_values:
            return await self._clarify(session_id, NOTHING_TO_SEARCH_MESSAGE, parsed, new_session)

        mapped = self._build_mapped_query(parsed, resolved, state)
        composed = self._composer.compose(mapped)
        strategy = self._orchestrator.plan(composed, max_results)
        try:
            search = await self._orchestrator.execute(composed, strategy, max_results, query_text)
        except ExactSearchError:
            logger.exception(f"Search failed for session {session_id}")
            await self._sessions.add_message(
                session_id,
                ConversationMessage(MessageRole.ASSISTANT, "Search is temporarily unavailable.", timestamp=self._clock()),
            )
            raise
        ranked, diversity = self._ranker.rank(search.results, composed, strategy, max_results)
        await self._abuse.record_result_count(session_id, search.total_count)

        result_ids = [r.vehicle_id for r in ranked]
        await self._sessions.update_search_state(
            session_id,
            SearchState(
                last_query=query_text,
                last_result_ids=result_ids,
                active_filters=self._refiner.active_filters_from(composed.constraints),
                viewed_vehicle_ids=_viewed_ids(state, resolved),
                last_search_at=self._clock(),
            ),
        )
        await self._sessions.add_message(
            session_id,
            ConversationMessage(
                MessageRole.ASSISTANT,
                f"Found {len(ranked)} vehicle(s).",
                timestamp=self._clock(),
                result_summary=ResultSummary(count=len(ranked), result_ids=tuple(result_ids)),
            ),
        )

        logger.info(
            f"Turn for session {session_id}: intent={parsed.intent.value}, "
            f"{len(composed.constraints)} constraint(s), {strategy.type.value}, {len(ranked)} result(s)"
        )
        return TurnResult(
            session_id=session_id,
            results=ranked,
            parsed_query=parsed,
            composed_query=composed,
            strategy=strategy,
            total_count=search.total_count,
            warnings=composed.warnings + search.warnings,
            diversity=diversity,
            degraded=search.degraded,
            search_duration_ms=search.search_duration_ms,
            new_session=new_session,
        )

    def _build_mapped_query(
        self,
        parsed: ParsedQuery,
        resolved: ResolvedQuery,
        state: SearchState,
    ) -> MappedQuery:
        mapped = self._mapper.map(parsed)
        constraints = mapped.constraints + list(resolved.constraints.values())

        if parsed.intent in _FOLLOW_UP_INTENTS or resolved.has_comparatives or resolved.has_vehicle_reference:
            constraints = self._refiner.merge(constraints, state.active_filters)
        constraints.extend(reference_constraints(resolved))

        return MappedQuery(
            constraints=constraints,
            metadata=MappingMetadata.from_constraints(constraints),
            unmapped_concepts=mapped.unmapped_concepts,
            semantic_terms=mapped.semantic_terms,
        )

    async def _clarify(
        self,
        session_id: str,
        message: str,
        parsed: ParsedQuery,
        new_session: bool,
    ) -> ClarificationNeeded:
        await self._sessions.add_message(
            session_id,
            ConversationMessage(MessageRole.ASSISTANT, message, timestamp=self._clock()),
        )
        logger.info(f"Clarification needed for session {session_id}")
        return ClarificationNeeded(session_id, message, parsed, new_session)

    def _blocked(self, session_id: str, expires_at: float, new_session: bool) -> SafetyRejection:
        retry_after = max(0.0, expires_at - self._clock())
        return SafetyRejection(
            session_id,
            SafetyValidationResult.violation(
                SafetyViolationType.SESSION_BLOCKED,
                SESSION_BLOCKED_MESSAGE,
                retry_after=retry_after,
            ),
            new_session,
        )

    # =====================================================================
    # Queries
    # =====================================================================

    async def get_abuse_report(self, session_id: str, window: float = 3600.0) -> AbuseReport:
        return await self._abuse.generate_abuse_report(session_id, window)

    async def get_session(self, session_id: str) -> ConversationSession:
        return await self._sessions.get_session(session_id)

    # =====================================================================
    # Moderation
    # =====================================================================

    async def unblock_session(self, session_id: str) -> bool:
        """Lift an abuse block and clear the session's rate-limit windows.

        Returns True if a block was removed.
        """
        async with self._turn_locks(session_id):
            self._guardrail.reset_rate_limits(session_id)
            return self._abuse.unblock_session(session_id)


def reference_constraints(resolved: ResolvedQuery) -> list[SearchConstraint]:
    """``id`` constraints for resolved vehicle references."""
    values = resolved.resolved_values
    if "vehicle_id" in values:
        return [
            SearchConstraint(REFERENCE_FIELD, ConstraintOperator.EQUALS, values["vehicle_id"], ConstraintType.EXACT)
        ]
    if values.get("vehicle_ids"):
        return [
            SearchConstraint(
                REFERENCE_FIELD, ConstraintOperator.IN, tuple(values["vehicle_ids"]), ConstraintType.EXACT
            )
        ]
    return []


def _viewed_ids(state: SearchState, resolved: ResolvedQuery) -> list[str]:
    viewed = list(state.viewed_vehicle_ids)
    if "vehicle_id" in resolved.resolved_values:
        viewed.append(resolved.resolved_values["vehicle_id"])
    return list(dict.fromkeys(viewed))
