"""
Context Aggregator
Builds one UserContext snapshot from every record category in parallel
"""
from typing import Dict, Any, List, Optional, Type
from datetime import datetime, timezone
import asyncio
import logging
import os

from pydantic import ValidationError

import schemas
from services import context_signals
from services.record_store import RecordStore, CONTEXT_CATEGORIES, SINGLETON_CATEGORIES

logger = logging.getLogger(__name__)

# Record category -> UserContext field
CONTEXT_FIELDS: Dict[str, str] = {
    "profiles": "profile",
    "mood_entries": "mood_entries",
    "journal_entries": "journal_entries",
    "tasks": "tasks",
    "therapy_homework": "therapy_homework",
    "assessments": "assessments",
    "assessment_results": "assessment_results",
    "therapy_sessions": "therapy_sessions",
    "notes": "clinical_notes",
    "monitoring_entries": "monitoring_entries",
    "chat_messages": "chat_messages",
    "chat_tags": "chat_tags",
    "ai_conversations": "ai_conversations",
    "ai_insights": "ai_insights",
    "user_preferences": "user_preferences",
    "crisis_interventions": "crisis_interventions",
    "biometrics_hourly": "biometrics",
    "micro_wins": "micro_wins",
    "notifications": "notifications",
    "summary_cache": "summary_cache",
    "therapist_client_relations": "therapist_relationship",
}

CONTEXT_MODELS: Dict[str, Type[schemas.ContextRecord]] = {
    "mood_entries": schemas.MoodEntry,
    "journal_entries": schemas.JournalEntry,
    "tasks": schemas.TaskItem,
    "therapy_homework": schemas.HomeworkItem,
    "assessments": schemas.Assessment,
    "assessment_results": schemas.AssessmentResult,
    "therapy_sessions": schemas.TherapySession,
    "notes": schemas.ClinicalNote,
    "monitoring_entries": schemas.MonitoringEntry,
    "chat_messages": schemas.ChatMessage,
    "chat_tags": schemas.ChatTag,
    "ai_conversations": schemas.AIConversation,
    "ai_insights": schemas.AIInsight,
    "user_preferences": schemas.UserPreferences,
    "crisis_interventions": schemas.CrisisIntervention,
    "biometrics_hourly": schemas.Biometric,
    "micro_wins": schemas.MicroWin,
    "notifications": schemas.Notification,
    "summary_cache": schemas.SummaryCache,
    "therapist_client_relations": schemas.TherapistRelationship,
}


def _validate(model: Type[schemas.ContextRecord], row: Dict[str, Any]) -> schemas.ContextRecord:
    # Stored NULLs fall back to field defaults (empty lists included)
    return model.model_validate({key: value for key, value in row.items() if value is not None})


def normalize_profile(row: Dict[str, Any]) -> schemas.UserProfile:
    """Copy only non-PHI profile fields; email and phone never leave the store."""
    return _validate(schemas.UserProfile, {
        "id": row.get("id"),
        "first_name": row.get("first_name"),
        "last_name": row.get("last_name"),
        "preferred_name": row.get("first_name"),
        "role": row.get("role"),
        "created_at": row.get("created_at"),
    })


class ContextAggregator:
    """Aggregates a user's records into a typed, immutable UserContext"""

    def __init__(self, record_store: RecordStore, category_timeout: Optional[float] = None):
        """
        Initialize the aggregator.

        Args:
            record_store: Source of per-category records
            category_timeout: Seconds allowed for each category read
        """
        self.record_store = record_store
        self.category_timeout = category_timeout or float(
            os.getenv("CONTEXT_CATEGORY_TIMEOUT_SECONDS", "10")
        )

    async def get_full_user_context(self, user_id: str) -> schemas.UserContext:
        """
        Fetch every category concurrently and assemble the snapshot.

        A category that fails or times out is logged and left empty; it is
        omitted from data_sources. Only a missing user id or an unreachable
        store fail the whole call.

        Args:
            user_id: User to aggregate

        Returns:
            UserContext snapshot

        Raises:
            ValueError: If user_id is missing or blank
            RecordStoreUnavailableError: If the store cannot be reached
        """
        if not user_id or not str(user_id).strip():
            raise ValueError("user_id is required")

        await self.record_store.check_connection()

        results = await asyncio.gather(
            *(self._fetch_category(category, user_id) for category in CONTEXT_CATEGORIES),
            return_exceptions=True,
        )

        fields: Dict[str, Any] = {}
        data_sources: List[str] = []
        for category, result in zip(CONTEXT_CATEGORIES, results):
            if isinstance(result, BaseException):
                logger.error(f"Context category '{category}' failed for user {user_id}: {result!r}")
                continue
            data_sources.append(category)
            fields[CONTEXT_FIELDS[category]] = self._normalize(category, result)

        context = schemas.UserContext(
            **fields,
            context_generated_at=datetime.now(timezone.utc),
            data_sources=data_sources,
        )

        logger.info(
            f"Built context for user {user_id}: {len(context.mood_entries)} moods, "
            f"{len(context.journal_entries)} journals, {len(context.therapy_sessions)} sessions, "
            f"{len(data_sources)}/{len(CONTEXT_CATEGORIES)} sources"
        )
        return context

    async def _fetch_category(self, category: str, user_id: str):
        return await asyncio.wait_for(
            self.record_store.fetch(category, user_id),
            timeout=self.category_timeout,
        )

    def _normalize(self, category: str, data):
        if category in SINGLETON_CATEGORIES:
            if not data:
                return None
            return self._normalize_row(category, data)

        rows = []
        for row in data or []:
            record = self._normalize_row(category, row)
            if record is not None:
                rows.append(record)
        return rows

    def _normalize_row(self, category: str, row: Dict[str, Any]):
        try:
            if category == "profiles":
                return normalize_profile(row)
            return _validate(CONTEXT_MODELS[category], row)
        except ValidationError as e:
            logger.warning(f"Skipping malformed {category} row {row.get('id')}: {e.error_count()} errors")
            return None

    @staticmethod
    def format_context_for_llm(context: schemas.UserContext) -> str:
        """
        Render the snapshot as sectioned text for model grounding.

        Args:
            context: UserContext snapshot

        Returns:
            Plain-text context block
        """
        lines: List[str] = []
        name = context_signals.get_preferred_name(context)
        lines.append("=== USER ===")
        lines.append(f"Preferred name: {name}")
        lines.append(f"Interaction level: {context_signals.get_ai_interaction_level(context).value}")
        lines.append("")

        lines.append("=== WELLBEING SIGNALS ===")
        lines.append(f"Mood trend: {context_signals.get_mood_trend(context).value}")
        lines.append(f"Crisis risk level: {context_signals.get_crisis_risk_level(context).value}")
        triggers = context_signals.get_recent_triggers(context)
        lines.append(f"Recent triggers: {', '.join(sorted(triggers)) if triggers else 'none'}")
        progress = context_signals.get_therapy_progress(context)
        lines.append(
            f"Homework completed: {progress.completed_homework}/{progress.total_homework}, "
            f"sessions in last 30 days: {progress.sessions_last_30_days}"
        )
        if progress.goals:
            lines.append(f"Therapy goals: {', '.join(progress.goals)}")
        lines.append("")

        if context.mood_entries:
            lines.append("=== RECENT MOODS ===")
            for entry in context.mood_entries[:10]:
                trigger = f" (trigger: {entry.trigger})" if entry.trigger else ""
                lines.append(f"- {entry.created_at:%Y-%m-%d}: {entry.mood_score}/10{trigger}")
            lines.append("")

        if context.journal_entries:
            lines.append("=== RECENT JOURNAL ENTRIES ===")
            for entry in context.journal_entries[:5]:
                lines.append(f"- {entry.created_at:%Y-%m-%d}: {entry.content[:200]}")
            lines.append("")

        if context.therapy_sessions:
            lines.append("=== THERAPY SESSIONS ===")
            for session in context.therapy_sessions[:5]:
                techniques = ", ".join(session.techniques_used) or "n/a"
                lines.append(
                    f"- {session.session_date:%Y-%m-%d} {session.session_type or 'session'} "
                    f"(techniques: {techniques})"
                )
            lines.append("")

        open_homework = [hw for hw in context.therapy_homework if hw.status != "completed" and not hw.is_archived]
        if open_homework:
            lines.append("=== OPEN HOMEWORK ===")
            for hw in open_homework[:5]:
                lines.append(f"- {hw.title} [{hw.status or 'assigned'}]")
            lines.append("")

        if context.micro_wins:
            lines.append("=== MICRO WINS ===")
            for win in context.micro_wins[:5]:
                lines.append(f"- {win.win_text}")
            lines.append("")

        lines.append(f"Context generated at: {context.context_generated_at.isoformat()}")
        return "\n".join(lines)
