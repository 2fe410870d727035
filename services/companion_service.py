"""
AI Companion Service
Answers a user's question about their own wellbeing data and applies the
crisis and insight policy to the turn
"""
from typing import Iterable, List, Optional, Set
import asyncio
import logging
import os
import time

import schemas
from services import context_signals, crisis_policy, response_assembler
from services.context_aggregator import ContextAggregator
from services.persistence_service import AIPersistenceService
from services.search_service import SearchService, DEFAULT_MATCH_COUNT, DEFAULT_SIMILARITY_THRESHOLD

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class CompanionService:
    """Orchestrates aggregation, retrieval, rendering and policy side effects"""

    def __init__(
        self,
        aggregator: ContextAggregator,
        search_service: SearchService,
        persistence: AIPersistenceService,
        gemini_service=None,
        crisis_detectors: Iterable[crisis_policy.CrisisDetector] = (),
        match_count: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
    ):
        """
        Initialize the companion.

        Args:
            aggregator: Builds the user's context snapshot
            search_service: Ranks records against the question
            persistence: Insert-only sink for logs and notifications
            gemini_service: GeminiService; None returns the templated reply as-is
            crisis_detectors: Extra detectors consulted after keyword matching
            match_count: Maximum retrieval results per question
            similarity_threshold: Minimum semantic similarity
        """
        self.aggregator = aggregator
        self.search_service = search_service
        self.persistence = persistence
        self.gemini_service = gemini_service
        self.crisis_detectors = list(crisis_detectors)
        self.match_count = match_count or int(os.getenv("COMPANION_MATCH_COUNT", str(DEFAULT_MATCH_COUNT)))
        self.similarity_threshold = similarity_threshold if similarity_threshold is not None else float(
            os.getenv("COMPANION_SIMILARITY_THRESHOLD", str(DEFAULT_SIMILARITY_THRESHOLD))
        )

    async def respond(self, user_id: str, query_text: str) -> schemas.CompanionResponse:
        """
        Answer one question.

        Args:
            user_id: Requesting user
            query_text: Free-text question

        Returns:
            CompanionResponse

        Raises:
            ValueError: If user_id or query_text is blank
            RecordStoreUnavailableError: If the record store cannot be reached
        """
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required")
        if not query_text or not query_text.strip():
            raise ValueError("message is required")

        started = time.perf_counter()
        context = await self.aggregator.get_full_user_context(user_id)

        outcome = await self.search_service.search_with_method(
            query_text,
            self.match_count,
            self.similarity_threshold,
            user_id=user_id,
            context=context,
        )
        tables_queried: List[str] = []
        for result in outcome.results:
            if result.table_name not in tables_queried:
                tables_queried.append(result.table_name)

        response_text = response_assembler.render(query_text, outcome.results)
        intent = response_assembler.describe_intent(outcome.results) if outcome.results else outcome.intent

        generation_started = time.perf_counter()
        ai_model = "template"
        if self.gemini_service is not None:
            generated = await self._generate(query_text, context, outcome)
            if generated:
                response_text = generated
                ai_model = self.gemini_service.model_name
        generation_ms = _elapsed_ms(generation_started)

        notified: Set[str] = set()
        crisis_detected = crisis_policy.detect_crisis_keywords(query_text, self.crisis_detectors)
        if crisis_detected:
            escalated = await self._handle_crisis(user_id, query_text, context, notified)
            name = context_signals.get_preferred_name(context)
            response_text = crisis_policy.crisis_support_message(name, escalated) + "\n\n" + response_text

        if crisis_policy.should_generate_insight(context, query_text):
            await self._log_insight(user_id, context, query_text, notified)

        if context_signals.should_notify_therapist(context):
            risk = context_signals.get_crisis_risk_level(context)
            await self._notify_therapists(user_id, context, f"Crisis risk level is {risk.value}", notified)

        processing_time = schemas.ProcessingTime(
            embedding_ms=outcome.embedding_ms,
            search_ms=outcome.search_ms,
            generation_ms=generation_ms,
            total_ms=_elapsed_ms(started),
        )

        await self._log_turn(user_id, query_text, response_text, tables_queried, outcome, ai_model,
                             processing_time, intent)

        return schemas.CompanionResponse(
            response_text=response_text,
            tables_queried=tables_queried,
            intent_classified=intent,
            search_method=outcome.search_method,
            crisis_detected=crisis_detected,
            processing_time=processing_time,
        )

    async def _generate(self, query_text: str, context: schemas.UserContext, outcome) -> Optional[str]:
        grounding = response_assembler.build_grounding_context(outcome.results, outcome.search_method)
        preferences = context.user_preferences
        try:
            reply = await asyncio.to_thread(
                self.gemini_service.generate_grounded_reply,
                query_text,
                grounding,
                context_signals.get_preferred_name(context),
                preferences.communication_style if preferences else None,
            )
            return reply["content"]
        except Exception as e:
            logger.error(f"Generation failed, using templated reply: {e}")
            return None

    async def _side_effect(self, func, *args, description: str):
        """Run a sink call in a worker thread; failures are logged, never raised."""
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as e:
            logger.error(f"Failed to {description}: {e}")
            return None

    async def _handle_crisis(self, user_id: str, query_text: str, context: schemas.UserContext,
                             notified: Set[str]) -> bool:
        record = crisis_policy.build_crisis_intervention(user_id, query_text, context)
        await self._side_effect(self.persistence.log_crisis_intervention, record,
                                description="log crisis intervention")
        logger.warning(
            f"Crisis intervention for user {user_id}: risk={record.risk_level.value}, "
            f"type={record.intervention_type}"
        )

        if record.intervention_type != "therapist_notification":
            return False
        return await self._notify_therapists(
            user_id, context, f"Crisis intervention triggered (risk level {record.risk_level.value})", notified
        )

    async def _log_insight(self, user_id: str, context: schemas.UserContext, query_text: str,
                           notified: Set[str]) -> None:
        insight = crisis_policy.build_insight(user_id, context, query_text)
        await self._side_effect(self.persistence.log_insight, insight, description="log insight")
        logger.info(f"Insight for user {user_id}: {insight.insight_type.value} ({insight.severity_level.value})")

        if insight.therapist_notified:
            await self._notify_therapists(user_id, context, insight.title, notified)

    async def _notify_therapists(self, user_id: str, context: schemas.UserContext, reason: str,
                                 notified: Set[str]) -> bool:
        """
        Create a notification for each active therapist, once per turn.

        Returns:
            True if at least one therapist has been notified this turn
        """
        therapist_ids = [rel.therapist_id for rel in context.therapist_relationship if rel.therapist_id]
        if not therapist_ids:
            logger.warning(f"No active therapist to notify for user {user_id}")
            return False

        name = context_signals.get_preferred_name(context)
        for therapist_id in therapist_ids:
            if therapist_id in notified:
                continue
            notified.add(therapist_id)
            await self._side_effect(
                self.persistence.create_notification,
                therapist_id,
                "Client wellbeing alert",
                f"{name} may need support. {reason}. Please review their recent activity.",
                "crisis_alert",
                description="notify therapist",
            )
        return True

    async def _log_turn(self, user_id: str, query_text: str, response_text: str, tables_queried: List[str],
                        outcome, ai_model: str, processing_time: schemas.ProcessingTime,
                        intent: schemas.QueryIntent) -> None:
        conversation_id = f"companion-{user_id}"
        await self._side_effect(self.persistence.log_conversation, user_id, conversation_id, "user", query_text,
                                description="log user message")
        await self._side_effect(
            self.persistence.log_conversation,
            user_id,
            conversation_id,
            "assistant",
            response_text,
            {"tables_queried": tables_queried, "result_ids": [result.id for result in outcome.results]},
            ai_model,
            description="log assistant message",
        )
        await self._side_effect(
            self.persistence.log_companion_interaction,
            user_id,
            query_text,
            response_text,
            tables_queried,
            processing_time,
            {
                "rag_results_count": len(outcome.results),
                "search_method": outcome.search_method,
                "intent_classified": intent.value,
            },
            description="log companion interaction",
        )
