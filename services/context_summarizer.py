"""
Context Summarization Service
Generates and caches a narrative wellbeing summary per user
"""
from typing import Optional
from datetime import datetime, timedelta, timezone
import asyncio
import os
import logging

import schemas
from services import context_signals
from services.context_aggregator import ContextAggregator
from services.persistence_service import AIPersistenceService

logger = logging.getLogger(__name__)

FALLBACK_GENERATOR = "fallback"


class ContextSummarizer:
    """Service for summarizing a user's context into the summary cache"""

    def __init__(self, persistence: AIPersistenceService, gemini_service=None):
        """
        Initialize context summarizer.

        Args:
            persistence: Sink that stores the summary cache row
            gemini_service: GeminiService instance; None uses the fallback summary only
        """
        self.persistence = persistence
        self.gemini_service = gemini_service
        self.summary_expiry_hours = int(
            os.getenv("CONTEXT_SUMMARY_EXPIRY_HOURS", "24")
        )

    def is_fresh(self, cache: Optional[schemas.SummaryCache], now: Optional[datetime] = None) -> bool:
        if cache is None or cache.refreshed_at is None:
            return False
        now = context_signals.resolve_now(now)
        return now - context_signals.as_utc(cache.refreshed_at) < timedelta(hours=self.summary_expiry_hours)

    async def generate_summary(self, context: schemas.UserContext) -> schemas.SummaryCache:
        """
        Generate a narrative summary using Gemini, falling back to a
        deterministic summary if generation is unavailable or fails.

        Args:
            context: UserContext snapshot

        Returns:
            SummaryCache with the new summary
        """
        now = datetime.now(timezone.utc)
        if self.gemini_service is None:
            return schemas.SummaryCache(
                summary=self._generate_fallback_summary(context),
                generated_by=FALLBACK_GENERATOR,
                refreshed_at=now,
            )

        context_text = ContextAggregator.format_context_for_llm(context)
        summary_prompt = f"""Summarize the following wellbeing data for a mental health companion in a warm, concise, non-clinical tone. Focus on:
1. Recent mood and its direction
2. Recurring triggers
3. Therapy engagement and homework
4. Small wins worth celebrating
5. Anything the care team should keep an eye on

Do not diagnose. Use short Markdown bullets.

Wellbeing Data:
{context_text}

Provide the summary:"""

        try:
            content = await asyncio.to_thread(
                self.gemini_service.generate_content_sync, summary_prompt, 0.4
            )
            if not content or not content.strip():
                raise ValueError("empty summary")
            return schemas.SummaryCache(
                summary=content.strip(),
                generated_by=self.gemini_service.model_name,
                refreshed_at=now,
            )
        except Exception as e:
            logger.error(f"Error generating context summary: {e}")
            return schemas.SummaryCache(
                summary=self._generate_fallback_summary(context),
                generated_by=FALLBACK_GENERATOR,
                refreshed_at=now,
            )

    def _generate_fallback_summary(self, context: schemas.UserContext) -> str:
        """Generate a simple text summary without AI."""
        parts = [f"Summary for {context_signals.get_preferred_name(context)}"]

        if context.mood_entries:
            latest = max(context.mood_entries, key=lambda entry: context_signals.as_utc(entry.created_at))
            parts.append(
                f"Mood: {context_signals.get_mood_trend(context).value} "
                f"(latest {latest.mood_score}/10 across {len(context.mood_entries)} entries)"
            )
        else:
            parts.append("Mood: no entries recorded yet")

        triggers = context_signals.get_recent_triggers(context)
        if triggers:
            parts.append(f"Recent triggers: {', '.join(sorted(triggers))}")

        progress = context_signals.get_therapy_progress(context)
        parts.append(
            f"Homework: {progress.completed_homework}/{progress.total_homework} completed; "
            f"{progress.sessions_last_30_days} sessions in the last 30 days"
        )

        if context.micro_wins:
            parts.append(f"Micro wins: {len(context.micro_wins)} recorded")

        risk = context_signals.get_crisis_risk_level(context)
        if risk != schemas.RiskLevel.low:
            parts.append(f"Attention: crisis risk level is {risk.value}")

        return "\n".join(parts)

    async def get_or_generate_summary(
        self,
        user_id: str,
        context: schemas.UserContext,
        force_refresh: bool = False
    ) -> schemas.SummaryResponse:
        """
        Get cached summary or generate new one.

        Args:
            user_id: User ID
            context: UserContext snapshot (its summary_cache is the cached value)
            force_refresh: Force generation of new summary

        Returns:
            SummaryResponse
        """
        if not force_refresh and self.is_fresh(context.summary_cache):
            cache = context.summary_cache
            return schemas.SummaryResponse(
                user_id=user_id,
                summary=cache.summary,
                generated_by=cache.generated_by,
                refreshed_at=cache.refreshed_at,
                cached=True,
            )

        summary = await self.generate_summary(context)
        await asyncio.to_thread(
            self.persistence.upsert_summary_cache,
            user_id, summary.summary, summary.generated_by, summary.refreshed_at,
        )

        return schemas.SummaryResponse(
            user_id=user_id,
            summary=summary.summary,
            generated_by=summary.generated_by,
            refreshed_at=summary.refreshed_at,
            cached=False,
        )
