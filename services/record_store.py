"""
Record Store
Typed, read-mostly access to a user's records across every tracked category
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Set, Tuple, Union
import asyncio
import logging

from sqlalchemy import text, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

import models

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
FetchResult = Union[List[Row], Optional[Row]]

# Category name -> row limit (None = unlimited). Rows are returned newest first.
CATEGORY_LIMITS: Dict[str, Optional[int]] = {
    "profiles": 1,
    "mood_entries": 100,
    "journal_entries": 50,
    "tasks": None,
    "therapy_homework": None,
    "assessments": None,
    "assessment_results": 20,
    "therapy_sessions": 20,
    "notes": 50,
    "monitoring_entries": 30,
    "chat_messages": 100,
    "chat_tags": 200,
    "ai_conversations": 100,
    "ai_insights": 50,
    "user_preferences": 1,
    "crisis_interventions": 20,
    "biometrics_hourly": 100,
    "micro_wins": 50,
    "notifications": 20,
    "summary_cache": 1,
    "therapist_client_relations": None,
}

# Categories that make up a user context snapshot
CONTEXT_CATEGORIES: List[str] = list(CATEGORY_LIMITS.keys())

SINGLETON_CATEGORIES = {"profiles", "user_preferences", "summary_cache"}


class RecordStoreUnavailableError(Exception):
    """Raised when the underlying storage transport cannot be reached."""


class RecordStore(ABC):
    """Per-user query interface over the persisted records."""

    @abstractmethod
    async def check_connection(self) -> None:
        """Raise RecordStoreUnavailableError if the store is unreachable."""

    @abstractmethod
    async def fetch(self, category: str, user_id: str) -> FetchResult:
        """
        Read one category for a user.

        Args:
            category: Category (table) name, see CATEGORY_LIMITS
            user_id: Owner of the records

        Returns:
            List of row dicts newest first, or a single row dict / None for
            singleton categories
        """

    @abstractmethod
    async def get_record_embeddings(self, user_id: str) -> List[Row]:
        """Indexed embedding rows visible to the user (own rows plus shared ones)."""

    @abstractmethod
    async def upsert_record_embeddings(self, rows: List[Row]) -> int:
        """Insert or replace embedding rows keyed by (table_name, record_id)."""

    @abstractmethod
    async def delete_record_embeddings(self, user_id: str, keep_keys: Set[Tuple[str, str]]) -> int:
        """
        Delete the user's own embedding rows whose (table_name, record_id) is
        not in keep_keys. Shared rows are left alone.

        Returns:
            Number of rows deleted
        """


def _row_to_dict(obj) -> Row:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


def _full_name(profile: Optional[models.Profile]) -> Optional[str]:
    if profile is None:
        return None
    return f"{profile.first_name or ''} {profile.last_name or ''}".strip() or None


class SQLRecordStore(RecordStore):
    """
    RecordStore backed by the SQLAlchemy models.

    Every read opens its own session and runs in a worker thread, so
    concurrent category reads never share a connection.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the store.

        Args:
            session_factory: Callable returning a new Session (e.g. SessionLocal)
        """
        self.session_factory = session_factory
        self._readers = {
            "profiles": self.get_profile,
            "mood_entries": self.get_mood_entries,
            "journal_entries": self.get_journal_entries,
            "tasks": self.get_tasks,
            "therapy_homework": self.get_therapy_homework,
            "assessments": self.get_assessments,
            "assessment_results": self.get_assessment_results,
            "therapy_sessions": self.get_therapy_sessions,
            "notes": self.get_notes,
            "monitoring_entries": self.get_monitoring_entries,
            "chat_messages": self.get_chat_messages,
            "chat_tags": self.get_chat_tags,
            "ai_conversations": self.get_ai_conversations,
            "ai_insights": self.get_ai_insights,
            "user_preferences": self.get_user_preferences,
            "crisis_interventions": self.get_crisis_interventions,
            "biometrics_hourly": self.get_biometrics,
            "micro_wins": self.get_micro_wins,
            "notifications": self.get_notifications,
            "summary_cache": self.get_summary_cache,
            "therapist_client_relations": self.get_therapist_relations,
            "coping_tools": self.get_coping_tools,
        }

    # ------------------------------------------------------------------
    # Async interface
    # ------------------------------------------------------------------

    async def check_connection(self) -> None:
        await asyncio.to_thread(self._ping)

    async def fetch(self, category: str, user_id: str) -> FetchResult:
        reader = self._readers.get(category)
        if reader is None:
            raise ValueError(f"Unknown record category: {category}")
        return await asyncio.to_thread(reader, user_id)

    async def get_record_embeddings(self, user_id: str) -> List[Row]:
        return await asyncio.to_thread(self._get_record_embeddings, user_id)

    async def upsert_record_embeddings(self, rows: List[Row]) -> int:
        return await asyncio.to_thread(self._upsert_record_embeddings, rows)

    async def delete_record_embeddings(self, user_id: str, keep_keys: Set[Tuple[str, str]]) -> int:
        return await asyncio.to_thread(self._delete_record_embeddings, user_id, keep_keys)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _ping(self) -> None:
        try:
            with self.session_factory() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Record store unreachable: {e}")
            raise RecordStoreUnavailableError("Record store is unreachable") from e

    def _limited(self, query, category: str):
        limit = CATEGORY_LIMITS.get(category)
        return query.limit(limit) if limit else query

    # ------------------------------------------------------------------
    # Singleton categories
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> Optional[Row]:
        with self.session_factory() as db:
            profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
            return _row_to_dict(profile) if profile else None

    def get_user_preferences(self, user_id: str) -> Optional[Row]:
        with self.session_factory() as db:
            prefs = db.query(models.UserPreference).filter(
                models.UserPreference.user_id == user_id
            ).first()
            return _row_to_dict(prefs) if prefs else None

    def get_summary_cache(self, user_id: str) -> Optional[Row]:
        with self.session_factory() as db:
            cache = db.query(models.SummaryCache).filter(
                models.SummaryCache.client_id == user_id
            ).first()
            return _row_to_dict(cache) if cache else None

    # ------------------------------------------------------------------
    # Mental health tracking
    # ------------------------------------------------------------------

    def get_mood_entries(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.MoodEntry).filter(
                models.MoodEntry.user_id == user_id
            ).order_by(models.MoodEntry.created_at.desc())
            return [_row_to_dict(entry) for entry in self._limited(query, "mood_entries").all()]

    def get_journal_entries(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.JournalEntry).filter(
                models.JournalEntry.user_id == user_id
            ).order_by(models.JournalEntry.created_at.desc())
            return [_row_to_dict(entry) for entry in self._limited(query, "journal_entries").all()]

    def get_monitoring_entries(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.MonitoringEntry).filter(
                models.MonitoringEntry.client_id == user_id
            ).order_by(models.MonitoringEntry.entry_date.desc())
            return [_row_to_dict(entry) for entry in self._limited(query, "monitoring_entries").all()]

    def get_notes(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.Note).filter(
                models.Note.user_id == user_id
            ).order_by(models.Note.created_at.desc())
            return [_row_to_dict(note) for note in self._limited(query, "notes").all()]

    # ------------------------------------------------------------------
    # Tasks, homework and assessments
    # ------------------------------------------------------------------

    def get_tasks(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            tasks = db.query(models.Task).filter(
                models.Task.client_id == user_id
            ).order_by(models.Task.created_at.desc()).all()
            return [_row_to_dict(task) for task in tasks]

    def get_therapy_homework(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            homework = db.query(models.TherapyHomework).filter(
                models.TherapyHomework.client_id == user_id
            ).order_by(models.TherapyHomework.created_at.desc()).all()
            return [_row_to_dict(item) for item in homework]

    def get_assessments(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            assessments = db.query(models.Assessment).filter(
                models.Assessment.client_id == user_id
            ).order_by(models.Assessment.created_at.desc()).all()
            return [_row_to_dict(assessment) for assessment in assessments]

    def get_assessment_results(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.AssessmentResult, models.Assessment.instrument).join(
                models.Assessment, models.AssessmentResult.assessment_id == models.Assessment.id
            ).filter(
                models.Assessment.client_id == user_id
            ).order_by(models.AssessmentResult.completed_at.desc())

            results = []
            for result, instrument in self._limited(query, "assessment_results").all():
                row = _row_to_dict(result)
                row["instrument"] = instrument
                results.append(row)
            return results

    # ------------------------------------------------------------------
    # Sessions and relationships
    # ------------------------------------------------------------------

    def get_therapy_sessions(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.TherapySession).filter(
                models.TherapySession.client_id == user_id
            ).order_by(models.TherapySession.session_date.desc())

            sessions = []
            for session in self._limited(query, "therapy_sessions").all():
                row = _row_to_dict(session)
                row["therapist_name"] = _full_name(session.therapist)
                sessions.append(row)
            return sessions

    def get_therapist_relations(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            relations = db.query(models.TherapistClientRelation).filter(
                models.TherapistClientRelation.client_id == user_id,
                models.TherapistClientRelation.status == "active"
            ).order_by(models.TherapistClientRelation.created_at.desc()).all()

            rows = []
            for relation in relations:
                row = _row_to_dict(relation)
                row["therapist_name"] = _full_name(relation.therapist)
                rows.append(row)
            return rows

    # ------------------------------------------------------------------
    # Conversations and AI logs
    # ------------------------------------------------------------------

    def get_chat_messages(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.ChatMessage).filter(
                models.ChatMessage.client_id == user_id
            ).order_by(models.ChatMessage.created_at.desc())

            messages = []
            for message in self._limited(query, "chat_messages").all():
                row = _row_to_dict(message)
                row["metadata"] = row.pop("metadata_json")
                messages.append(row)
            return messages

    def get_chat_tags(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.ChatTag).filter(
                models.ChatTag.client_id == user_id
            ).order_by(models.ChatTag.ts.desc())
            return [_row_to_dict(tag) for tag in self._limited(query, "chat_tags").all()]

    def get_ai_conversations(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.AIConversation).filter(
                models.AIConversation.user_id == user_id
            ).order_by(models.AIConversation.created_at.desc())
            return [_row_to_dict(conv) for conv in self._limited(query, "ai_conversations").all()]

    def get_ai_insights(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.AIInsight).filter(
                models.AIInsight.user_id == user_id
            ).order_by(models.AIInsight.created_at.desc())
            return [_row_to_dict(insight) for insight in self._limited(query, "ai_insights").all()]

    def get_crisis_interventions(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.CrisisIntervention).filter(
                models.CrisisIntervention.user_id == user_id
            ).order_by(models.CrisisIntervention.created_at.desc())
            return [_row_to_dict(crisis) for crisis in self._limited(query, "crisis_interventions").all()]

    # ------------------------------------------------------------------
    # Wellness and system
    # ------------------------------------------------------------------

    def get_biometrics(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.BiometricHourly).filter(
                models.BiometricHourly.client_id == user_id
            ).order_by(models.BiometricHourly.recorded_at.desc())
            return [_row_to_dict(metric) for metric in self._limited(query, "biometrics_hourly").all()]

    def get_micro_wins(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.MicroWin).filter(
                models.MicroWin.client_id == user_id
            ).order_by(models.MicroWin.detected_at.desc())
            return [_row_to_dict(win) for win in self._limited(query, "micro_wins").all()]

    def get_notifications(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            query = db.query(models.Notification).filter(
                models.Notification.user_id == user_id
            ).order_by(models.Notification.created_at.desc())
            return [_row_to_dict(notif) for notif in self._limited(query, "notifications").all()]

    def get_coping_tools(self, user_id: str) -> List[Row]:
        """User-created coping tools followed by the shared defaults."""
        with self.session_factory() as db:
            tools = db.query(models.CopingTool).filter(
                or_(models.CopingTool.user_id == user_id, models.CopingTool.is_default.is_(True))
            ).order_by(models.CopingTool.is_default.asc(), models.CopingTool.created_at.desc()).all()
            return [_row_to_dict(tool) for tool in tools]

    # ------------------------------------------------------------------
    # Embedding index
    # ------------------------------------------------------------------

    def _get_record_embeddings(self, user_id: str) -> List[Row]:
        with self.session_factory() as db:
            rows = db.query(models.RecordEmbedding).filter(
                or_(models.RecordEmbedding.user_id == user_id, models.RecordEmbedding.user_id.is_(None))
            ).order_by(models.RecordEmbedding.table_name, models.RecordEmbedding.record_id).all()
            return [_row_to_dict(row) for row in rows]

    def _upsert_record_embeddings(self, rows: List[Row]) -> int:
        db: Session = self.session_factory()
        try:
            for row in rows:
                existing = db.query(models.RecordEmbedding).filter(
                    models.RecordEmbedding.table_name == row["table_name"],
                    models.RecordEmbedding.record_id == row["record_id"]
                ).first()
                if existing:
                    existing.content = row["content"]
                    existing.embedding_vector = row["embedding_vector"]
                    existing.embedding_model = row.get("embedding_model")
                    existing.user_id = row.get("user_id")
                else:
                    db.add(models.RecordEmbedding(
                        user_id=row.get("user_id"),
                        table_name=row["table_name"],
                        record_id=row["record_id"],
                        content=row["content"],
                        embedding_vector=row["embedding_vector"],
                        embedding_model=row.get("embedding_model"),
                    ))
            db.commit()
            return len(rows)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def _delete_record_embeddings(self, user_id: str, keep_keys: Set[Tuple[str, str]]) -> int:
        db: Session = self.session_factory()
        try:
            stale = [
                row for row in db.query(models.RecordEmbedding).filter(
                    models.RecordEmbedding.user_id == user_id
                ).all()
                if (row.table_name, row.record_id) not in keep_keys
            ]
            for row in stale:
                db.delete(row)
            db.commit()
            return len(stale)
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
