"""
AI Persistence Service
Insert-only logging of companion conversations, insights, crisis
interventions and therapist notifications
"""
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

import models
import schemas

logger = logging.getLogger(__name__)


class AIPersistenceService:
    """
    Writes one row per event. Failures are logged and rolled back and never
    raised to the caller; the return value reports whether the write landed.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize persistence service.

        Args:
            session_factory: Callable returning a new Session
        """
        self.session_factory = session_factory

    def _insert(self, row, description: str) -> Optional[str]:
        db = self.session_factory()
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info(f"Logged {description} {row.id}")
            return row.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error logging {description}: {e}")
            return None
        finally:
            db.close()

    def log_conversation(
        self,
        user_id: str,
        conversation_id: Optional[str],
        message_type: str,
        content: str,
        context_used: Optional[Dict[str, Any]] = None,
        ai_model: Optional[str] = None,
        confidence_score: Optional[float] = None,
    ) -> bool:
        """
        Log one conversation turn.

        Args:
            user_id: User the turn belongs to
            conversation_id: Conversation grouping id
            message_type: "user" or "assistant"
            content: Message text
            context_used: Summary of the evidence used for the reply
            ai_model: Model that produced the reply
            confidence_score: Optional confidence

        Returns:
            True if the row was written
        """
        row = models.AIConversation(
            user_id=user_id,
            conversation_id=conversation_id,
            message_type=message_type,
            content=content,
            context_used=context_used or {},
            ai_model=ai_model,
            confidence_score=confidence_score,
        )
        return self._insert(row, "AI conversation") is not None

    def log_insight(self, insight: schemas.InsightRecord) -> Optional[str]:
        row = models.AIInsight(
            user_id=insight.user_id,
            insight_type=insight.insight_type.value,
            title=insight.title,
            description=insight.description,
            confidence_score=insight.confidence_score,
            severity_level=insight.severity_level.value,
            data_sources=insight.data_sources,
            actionable_recommendations=insight.actionable_recommendations,
            therapist_notified=insight.therapist_notified,
            metadata_json=insight.metadata,
        )
        return self._insert(row, "AI insight")

    def log_crisis_intervention(self, record: schemas.CrisisInterventionRecord) -> Optional[str]:
        row = models.CrisisIntervention(
            user_id=record.user_id,
            trigger_source=record.trigger_source,
            risk_level=record.risk_level.value,
            intervention_type=record.intervention_type,
            ai_assessment=record.ai_assessment,
            metadata_json=record.metadata,
        )
        return self._insert(row, "crisis intervention")

    def log_companion_interaction(
        self,
        user_id: str,
        query: str,
        response: str,
        tables_queried: List[str],
        processing_time: schemas.ProcessingTime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        row = models.AICompanionLog(
            user_id=user_id,
            query=query,
            response=response,
            tables_queried=tables_queried,
            embedding_time_ms=processing_time.embedding_ms,
            generation_time_ms=processing_time.generation_ms,
            total_time_ms=processing_time.total_ms,
            metadata_json=metadata or {},
        )
        return self._insert(row, "companion interaction") is not None

    def create_notification(self, user_id: str, title: str, message: str,
                            notification_type: str = "crisis_alert") -> Optional[str]:
        row = models.Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
        )
        return self._insert(row, "notification")

    def upsert_summary_cache(self, user_id: str, summary: str, generated_by: str,
                             refreshed_at: Optional[datetime] = None) -> bool:
        """
        Replace the user's cached narrative summary.

        Returns:
            True if the cache row was written
        """
        refreshed_at = refreshed_at or datetime.now(timezone.utc)
        db = self.session_factory()
        try:
            cache = db.query(models.SummaryCache).filter(models.SummaryCache.client_id == user_id).first()
            if cache:
                cache.summary = summary
                cache.generated_by = generated_by
                cache.refreshed_at = refreshed_at
            else:
                db.add(models.SummaryCache(
                    client_id=user_id,
                    summary=summary,
                    generated_by=generated_by,
                    refreshed_at=refreshed_at,
                ))
            db.commit()
            logger.info(f"Refreshed summary cache for user {user_id}")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error updating summary cache for user {user_id}: {e}")
            return False
        finally:
            db.close()
