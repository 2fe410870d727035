from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Tuple
from datetime import date, datetime
from enum import Enum

# ============ ENUMS ============
class RiskLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


RISK_ORDER = [RiskLevel.low, RiskLevel.medium, RiskLevel.high, RiskLevel.critical]


class MoodTrend(str, Enum):
    improving = "improving"
    declining = "declining"
    stable = "stable"


class QueryIntent(str, Enum):
    personal_mood_data = "personal_mood_data"
    personal_session_data = "personal_session_data"
    personal_progress_data = "personal_progress_data"
    coping_tools_info = "coping_tools_info"
    general_search = "general_search"


class InsightType(str, Enum):
    mood_pattern = "mood_pattern"
    trigger_pattern = "trigger_pattern"
    progress_trend = "progress_trend"
    risk_assessment = "risk_assessment"
    recommendation = "recommendation"


class AIInteractionLevel(str, Enum):
    minimal = "minimal"
    standard = "standard"
    comprehensive = "comprehensive"


# ============ CONTEXT RECORD SCHEMAS ============
class ContextRecord(BaseModel):
    """Base for every normalized record in a user context snapshot."""

    class Config:
        from_attributes = True
        frozen = True


class UserProfile(ContextRecord):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    preferred_name: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None


class MoodEntry(ContextRecord):
    id: str
    mood_score: int = Field(..., description="Mood score from 1 to 10")
    trigger: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class JournalEntry(ContextRecord):
    id: str
    content: str = ""
    mood_score: Optional[int] = None
    tags: Tuple[str, ...] = ()
    created_at: datetime


class TaskItem(ContextRecord):
    id: str
    title: str
    description: Optional[str] = None
    task_type: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    due_at: Optional[datetime] = None
    completion_criteria: Optional[str] = None
    max_completions: Optional[int] = None
    completion_percentage: Optional[int] = None
    is_archived: bool = False
    created_at: Optional[datetime] = None


class HomeworkItem(ContextRecord):
    id: str
    title: str
    description: Optional[str] = None
    homework_type: Optional[str] = None
    instructions: Optional[str] = None
    resources: Optional[Any] = None
    due_date: Optional[datetime] = None
    estimated_duration_minutes: Optional[int] = None
    difficulty_level: Optional[str] = None
    status: Optional[str] = None
    completion_percentage: Optional[int] = None
    completion_notes: Optional[str] = None
    mood_before: Optional[int] = None
    mood_after: Optional[int] = None
    ai_generated: bool = False
    is_archived: bool = False
    created_at: Optional[datetime] = None


class Assessment(ContextRecord):
    id: str
    instrument: str
    schedule: Optional[str] = None
    next_due_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AssessmentResult(ContextRecord):
    id: str
    score: Optional[float] = None
    interpretation: Optional[str] = None
    severity_level: Optional[str] = None
    instrument: Optional[str] = Field(None, description="Parent assessment's instrument name")
    completed_at: Optional[datetime] = None


class TherapySession(ContextRecord):
    id: str
    session_date: datetime
    session_type: Optional[str] = None
    duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    goals: Tuple[str, ...] = ()
    homework_assigned: Tuple[str, ...] = ()
    techniques_used: Tuple[str, ...] = ()
    mood_before: Optional[int] = None
    mood_after: Optional[int] = None
    session_rating: Optional[int] = None
    therapist_name: Optional[str] = None


class ClinicalNote(ContextRecord):
    id: str
    content: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MonitoringEntry(ContextRecord):
    id: str
    mood_rating: Optional[int] = None
    energy_level: Optional[int] = None
    sleep_quality: Optional[int] = None
    stress_level: Optional[int] = None
    anxiety_level: Optional[int] = None
    sleep_hours: Optional[float] = None
    exercise_minutes: Optional[int] = None
    social_interaction: Optional[bool] = None
    journal_entry: Optional[str] = None
    gratitude_note: Optional[str] = None
    entry_date: date
    created_at: Optional[datetime] = None


class ChatMessage(ContextRecord):
    id: str
    content: str = ""
    sender: Optional[str] = None
    message_type: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class ChatTag(ContextRecord):
    id: str
    tag: str
    tag_category: Optional[str] = None
    score: Optional[float] = None
    confidence: Optional[float] = None
    extracted_by: Optional[str] = None
    ts: Optional[datetime] = None


class AIConversation(ContextRecord):
    id: str
    conversation_id: Optional[str] = None
    message_type: Optional[str] = None
    content: str = ""
    context_used: Optional[Any] = None
    ai_model: Optional[str] = None
    confidence_score: Optional[float] = None
    user_feedback: Optional[str] = None
    created_at: Optional[datetime] = None


class AIInsight(ContextRecord):
    id: str
    insight_type: str
    title: str
    description: str = ""
    confidence_score: Optional[float] = None
    severity_level: Optional[str] = None
    actionable_recommendations: Tuple[str, ...] = ()
    therapist_notified: bool = False
    user_acknowledged: bool = False
    created_at: Optional[datetime] = None


class UserPreferences(ContextRecord):
    preferred_name: Optional[str] = None
    communication_style: Optional[str] = None
    therapy_goals: Tuple[str, ...] = ()
    triggers_to_avoid: Tuple[str, ...] = ()
    preferred_coping_strategies: Tuple[str, ...] = ()
    ai_interaction_level: Optional[AIInteractionLevel] = None
    language_preference: Optional[str] = None


class CrisisIntervention(ContextRecord):
    id: str
    trigger_source: Optional[str] = None
    risk_level: Optional[str] = None
    intervention_type: Optional[str] = None
    ai_assessment: Optional[str] = None
    outcome: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Biometric(ContextRecord):
    id: str
    metric: str
    value: Optional[float] = None
    source: Optional[str] = None
    recorded_at: Optional[datetime] = None


class MicroWin(ContextRecord):
    id: str
    win_text: str
    detected_from: Optional[str] = None
    confidence_score: Optional[float] = None
    celebrated: bool = False
    detected_at: Optional[datetime] = None


class Notification(ContextRecord):
    id: str
    title: str
    message: str = ""
    type: Optional[str] = None
    read: bool = False
    created_at: Optional[datetime] = None


class SummaryCache(ContextRecord):
    summary: str
    generated_by: Optional[str] = None
    refreshed_at: Optional[datetime] = None


class TherapistRelationship(ContextRecord):
    id: str
    therapist_id: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    session_frequency: Optional[str] = None
    therapist_name: Optional[str] = None
    notes: Optional[str] = None


class CopingTool(ContextRecord):
    id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    duration: Optional[str] = None
    steps: Tuple[str, ...] = ()
    is_default: bool = False


# ============ USER CONTEXT ============
class UserContext(ContextRecord):
    """
    Point-in-time snapshot of everything known about one user.

    Record collections are tuples of frozen models. Free-form JSON payloads
    such as ChatMessage.metadata are kept as read.
    """
    profile: Optional[UserProfile] = None
    mood_entries: Tuple[MoodEntry, ...] = ()
    journal_entries: Tuple[JournalEntry, ...] = ()
    tasks: Tuple[TaskItem, ...] = ()
    therapy_homework: Tuple[HomeworkItem, ...] = ()
    assessments: Tuple[Assessment, ...] = ()
    assessment_results: Tuple[AssessmentResult, ...] = ()
    therapy_sessions: Tuple[TherapySession, ...] = ()
    clinical_notes: Tuple[ClinicalNote, ...] = ()
    monitoring_entries: Tuple[MonitoringEntry, ...] = ()
    chat_messages: Tuple[ChatMessage, ...] = ()
    chat_tags: Tuple[ChatTag, ...] = ()
    ai_conversations: Tuple[AIConversation, ...] = ()
    ai_insights: Tuple[AIInsight, ...] = ()
    user_preferences: Optional[UserPreferences] = None
    crisis_interventions: Tuple[CrisisIntervention, ...] = ()
    biometrics: Tuple[Biometric, ...] = ()
    micro_wins: Tuple[MicroWin, ...] = ()
    notifications: Tuple[Notification, ...] = ()
    summary_cache: Optional[SummaryCache] = None
    therapist_relationship: Tuple[TherapistRelationship, ...] = ()
    context_generated_at: datetime
    data_sources: Tuple[str, ...] = Field((), description="Categories whose read succeeded")


# ============ DERIVED SIGNAL SCHEMAS ============
class TherapyProgress(BaseModel):
    completed_homework: int = 0
    total_homework: int = 0
    sessions_last_30_days: int = 0
    goals: List[str] = []


# ============ RETRIEVAL SCHEMAS ============
class RetrievalResult(BaseModel):
    id: str = Field(..., description="Source record id")
    table_name: str = Field(..., description="Source table of the fragment")
    preview: str = Field(..., description="Short human-scannable preview")
    full_content: str
    score: float = Field(..., ge=0.0, le=1.0, description="Normalized similarity score")
    query_intent: QueryIntent
    relevance_reason: str
    metadata: Dict[str, Any] = {}


class SearchRequest(BaseModel):
    user_id: str = Field(..., description="User whose records are searched")
    query: str = Field(..., description="Free-text query")
    match_count: int = Field(8, ge=1, le=50)
    similarity_threshold: float = Field(0.75, ge=0.0, le=1.0)


class SearchResponse(BaseModel):
    query: str
    search_method: str
    intent_classified: QueryIntent
    results: List[RetrievalResult]


# ============ POLICY SCHEMAS ============
class InsightRecord(BaseModel):
    user_id: str
    insight_type: InsightType
    title: str
    description: str
    confidence_score: float = 0.8
    severity_level: RiskLevel = RiskLevel.low
    data_sources: List[str] = []
    actionable_recommendations: List[str] = []
    therapist_notified: bool = False
    metadata: Dict[str, Any] = {}


class CrisisInterventionRecord(BaseModel):
    user_id: str
    trigger_source: str = "chat_message"
    risk_level: RiskLevel
    intervention_type: str
    ai_assessment: str
    metadata: Dict[str, Any] = {}


# ============ COMPANION SCHEMAS ============
class CompanionRequest(BaseModel):
    user_id: str = Field(..., description="Requesting user's id")
    message: str = Field(..., description="Free-text question for the companion")


class ProcessingTime(BaseModel):
    embedding_ms: int = 0
    search_ms: int = 0
    generation_ms: int = 0
    total_ms: int = 0


class CompanionResponse(BaseModel):
    response_text: str
    tables_queried: List[str] = []
    intent_classified: QueryIntent
    search_method: str
    crisis_detected: bool = False
    processing_time: ProcessingTime = ProcessingTime()


class IndexResponse(BaseModel):
    user_id: str
    processed: int
    success: int
    error: int


class SummaryResponse(BaseModel):
    user_id: str
    summary: str
    generated_by: Optional[str] = None
    refreshed_at: Optional[datetime] = None
    cached: bool = False
