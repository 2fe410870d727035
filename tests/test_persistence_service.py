"""Tests for the insert-only persistence sink."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import models
import schemas
from schemas import InsightType, RiskLevel
from services.persistence_service import AIPersistenceService


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'sink.db'}", connect_args={"check_same_thread": False})
    models.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = factory()
    db.add(models.Profile(id="u1", first_name="Sam"))
    db.commit()
    db.close()
    yield factory
    engine.dispose()


def test_log_conversation(session_factory):
    sink = AIPersistenceService(session_factory)

    assert sink.log_conversation("u1", "companion-u1", "user", "How is my mood?")

    db = session_factory()
    row = db.query(models.AIConversation).one()
    assert row.message_type == "user"
    assert row.context_used == {}
    db.close()


def test_log_insight_and_crisis(session_factory):
    sink = AIPersistenceService(session_factory)
    insight = schemas.InsightRecord(
        user_id="u1", insight_type=InsightType.mood_pattern, title="Mood Trend Analysis: stable",
        description="Steady", severity_level=RiskLevel.low, metadata={"mood_trend": "stable"},
    )
    crisis = schemas.CrisisInterventionRecord(
        user_id="u1", risk_level=RiskLevel.high, intervention_type="therapist_notification",
        ai_assessment="Crisis keywords detected", metadata={"detection_method": "keyword_analysis"},
    )

    insight_id = sink.log_insight(insight)
    crisis_id = sink.log_crisis_intervention(crisis)

    db = session_factory()
    stored_insight = db.query(models.AIInsight).filter(models.AIInsight.id == insight_id).one()
    stored_crisis = db.query(models.CrisisIntervention).filter(models.CrisisIntervention.id == crisis_id).one()
    assert stored_insight.insight_type == "mood_pattern"
    assert stored_insight.metadata_json == {"mood_trend": "stable"}
    assert stored_crisis.risk_level == "high"
    assert stored_crisis.resolved_at is None
    db.close()


def test_log_companion_interaction_and_notification(session_factory):
    sink = AIPersistenceService(session_factory)

    assert sink.log_companion_interaction(
        "u1", "my mood", "reply", ["mood_entries"],
        schemas.ProcessingTime(embedding_ms=3, search_ms=4, generation_ms=5, total_ms=12),
    )
    assert sink.create_notification("u1", "Client wellbeing alert", "Please review")

    db = session_factory()
    log = db.query(models.AICompanionLog).one()
    assert log.tables_queried == ["mood_entries"]
    assert log.total_time_ms == 12
    assert db.query(models.Notification).one().type == "crisis_alert"
    db.close()


def test_summary_cache_is_replaced(session_factory):
    sink = AIPersistenceService(session_factory)

    assert sink.upsert_summary_cache("u1", "first", "fallback")
    assert sink.upsert_summary_cache("u1", "second", "gemini-2.0-flash")

    db = session_factory()
    rows = db.query(models.SummaryCache).all()
    assert [(row.summary, row.generated_by) for row in rows] == [("second", "gemini-2.0-flash")]
    db.close()


def test_write_failures_are_reported_not_raised(tmp_path):
    # No tables created
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    sink = AIPersistenceService(sessionmaker(bind=engine))

    assert sink.log_conversation("u1", None, "user", "hello") is False
    assert sink.create_notification("t1", "title", "message") is None
    assert sink.upsert_summary_cache("u1", "summary", "fallback") is False
