import uuid

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=_uuid)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)  # PHI, never copied into a context snapshot
    phone = Column(String, nullable=True)  # PHI
    role = Column(String, nullable=False, default="client")  # client, therapist, admin
    created_at = Column(DateTime, nullable=False, server_default=func.now())


# ============ MENTAL HEALTH TRACKING ============

class MoodEntry(Base):
    __tablename__ = "mood_entries"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    mood_score = Column(Integer, nullable=False)  # 1-10
    trigger = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    mood_score = Column(Integer, nullable=True)
    tags = Column(JSON, nullable=True)  # list of strings
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class MonitoringEntry(Base):
    __tablename__ = "monitoring_entries"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    mood_rating = Column(Integer, nullable=True)
    energy_level = Column(Integer, nullable=True)
    sleep_quality = Column(Integer, nullable=True)
    stress_level = Column(Integer, nullable=True)
    anxiety_level = Column(Integer, nullable=True)
    sleep_hours = Column(Float, nullable=True)
    exercise_minutes = Column(Integer, nullable=True)
    social_interaction = Column(Boolean, nullable=True)
    journal_entry = Column(Text, nullable=True)
    gratitude_note = Column(Text, nullable=True)
    entry_date = Column(Date, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class Note(Base):
    __tablename__ = "notes"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


# ============ TASKS & HOMEWORK ============

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    task_type = Column(String, nullable=True)
    priority = Column(String, nullable=True)  # low, medium, high
    category = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")  # pending, in_progress, completed
    due_at = Column(DateTime, nullable=True)
    completion_criteria = Column(Text, nullable=True)
    max_completions = Column(Integer, nullable=True)
    completion_percentage = Column(Integer, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class TherapyHomework(Base):
    __tablename__ = "therapy_homework"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    homework_type = Column(String, nullable=True)
    instructions = Column(Text, nullable=True)
    resources = Column(JSON, nullable=True)
    due_date = Column(DateTime, nullable=True)
    estimated_duration_minutes = Column(Integer, nullable=True)
    difficulty_level = Column(String, nullable=True)
    status = Column(String, nullable=False, default="assigned")  # assigned, in_progress, completed
    completion_percentage = Column(Integer, nullable=True)
    completion_notes = Column(Text, nullable=True)
    mood_before = Column(Integer, nullable=True)
    mood_after = Column(Integer, nullable=True)
    ai_generated = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


# ============ ASSESSMENTS & SESSIONS ============

class Assessment(Base):
    __tablename__ = "assessments"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    instrument = Column(String, nullable=False)  # PHQ-9, GAD-7, ...
    schedule = Column(String, nullable=True)  # weekly, monthly, once
    next_due_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    results = relationship("AssessmentResult", back_populates="assessment")


class AssessmentResult(Base):
    __tablename__ = "assessment_results"

    id = Column(String, primary_key=True, default=_uuid)
    assessment_id = Column(String, ForeignKey("assessments.id"), nullable=False, index=True)
    score = Column(Float, nullable=True)
    interpretation = Column(Text, nullable=True)
    severity_level = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=False, server_default=func.now())

    assessment = relationship("Assessment", back_populates="results")


class TherapySession(Base):
    __tablename__ = "therapy_sessions"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    therapist_id = Column(String, ForeignKey("profiles.id"), nullable=True)
    session_date = Column(DateTime, nullable=False)
    session_type = Column(String, nullable=True)  # individual, group, intake
    duration_minutes = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    goals = Column(JSON, nullable=True)
    homework_assigned = Column(JSON, nullable=True)
    techniques_used = Column(JSON, nullable=True)
    mood_before = Column(Integer, nullable=True)
    mood_after = Column(Integer, nullable=True)
    session_rating = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    therapist = relationship("Profile", foreign_keys=[therapist_id])


class TherapistClientRelation(Base):
    __tablename__ = "therapist_client_relations"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    therapist_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    status = Column(String, nullable=False, default="active")  # active, paused, terminated
    start_date = Column(Date, nullable=True)
    session_frequency = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    therapist = relationship("Profile", foreign_keys=[therapist_id])


# ============ CONVERSATIONS ============

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    sender = Column(String, nullable=False)  # client, therapist, ai
    message_type = Column(String, nullable=True)
    session_id = Column(String, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class ChatTag(Base):
    __tablename__ = "chat_tags"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    tag = Column(String, nullable=False)
    tag_category = Column(String, nullable=True)
    score = Column(Float, nullable=True)
    confidence = Column(Float, nullable=True)
    extracted_by = Column(String, nullable=True)
    ts = Column(DateTime, nullable=False, server_default=func.now())


class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    conversation_id = Column(String, nullable=True)
    message_type = Column(String, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    context_used = Column(JSON, nullable=True)
    ai_model = Column(String, nullable=True)
    confidence_score = Column(Float, nullable=True)
    user_feedback = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class AIInsight(Base):
    __tablename__ = "ai_insights"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    insight_type = Column(String, nullable=False)  # mood_pattern, trigger_pattern, progress_trend, risk_assessment, recommendation
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    confidence_score = Column(Float, nullable=True)
    severity_level = Column(String, nullable=True)  # low, medium, high, critical
    data_sources = Column(JSON, nullable=True)
    actionable_recommendations = Column(JSON, nullable=True)
    therapist_notified = Column(Boolean, nullable=False, default=False)
    user_acknowledged = Column(Boolean, nullable=False, default=False)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class UserPreference(Base):
    __tablename__ = "user_preferences"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, unique=True)
    preferred_name = Column(String, nullable=True)
    communication_style = Column(String, nullable=True)
    therapy_goals = Column(JSON, nullable=True)
    triggers_to_avoid = Column(JSON, nullable=True)
    preferred_coping_strategies = Column(JSON, nullable=True)
    ai_interaction_level = Column(String, nullable=True)  # minimal, standard, comprehensive
    language_preference = Column(String, nullable=True)


class CrisisIntervention(Base):
    __tablename__ = "crisis_interventions"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    trigger_source = Column(String, nullable=False)  # chat_message, journal_entry, mood_entry
    risk_level = Column(String, nullable=False)  # low, medium, high, critical
    intervention_type = Column(String, nullable=False)  # automated_response, therapist_notification
    ai_assessment = Column(Text, nullable=True)
    outcome = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


# ============ WELLNESS & SYSTEM ============

class BiometricHourly(Base):
    __tablename__ = "biometrics_hourly"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    metric = Column(String, nullable=False)  # heart_rate, steps, sleep_minutes
    value = Column(Float, nullable=True)
    source = Column(String, nullable=True)
    recorded_at = Column(DateTime, nullable=False, server_default=func.now())


class MicroWin(Base):
    __tablename__ = "micro_wins"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    win_text = Column(Text, nullable=False)
    detected_from = Column(String, nullable=True)
    confidence_score = Column(Float, nullable=True)
    celebrated = Column(Boolean, nullable=False, default=False)
    detected_at = Column(DateTime, nullable=False, server_default=func.now())


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=True)  # crisis_alert, insight, reminder
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class SummaryCache(Base):
    __tablename__ = "summary_cache"

    id = Column(String, primary_key=True, default=_uuid)
    client_id = Column(String, ForeignKey("profiles.id"), nullable=False, unique=True)
    summary = Column(Text, nullable=False)
    generated_by = Column(String, nullable=True)  # model name or "fallback"
    refreshed_at = Column(DateTime, nullable=False, server_default=func.now())


class CopingTool(Base):
    __tablename__ = "coping_tools"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=True, index=True)  # NULL for default tools
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)  # breathing, mindfulness, grounding, cognitive, physical
    duration = Column(String, nullable=True)
    steps = Column(JSON, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


# ============ AI COMPANION INFRASTRUCTURE ============

class RecordEmbedding(Base):
    __tablename__ = "record_embeddings"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=True, index=True)  # NULL for shared records
    table_name = Column(String, nullable=False)
    record_id = Column(String, nullable=False)
    content = Column(Text, nullable=False)  # Text that was embedded
    embedding_vector = Column(JSON, nullable=False)  # list of floats
    embedding_model = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class AICompanionLog(Base):
    __tablename__ = "ai_companion_log"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    query = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    tables_queried = Column(JSON, nullable=True)
    embedding_time_ms = Column(Integer, nullable=True)
    generation_time_ms = Column(Integer, nullable=True)
    total_time_ms = Column(Integer, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
