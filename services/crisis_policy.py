"""
Crisis & Insight Policy
Stateless decision rules over a user's context snapshot and the live message
"""
from typing import Callable, Iterable, Optional
from collections import Counter
from datetime import datetime, timedelta
import logging

import schemas
from schemas import InsightType, MoodTrend, RiskLevel
from services import context_signals

logger = logging.getLogger(__name__)

# Matched case-insensitively as substrings of the message
CRISIS_KEYWORDS = [
    "suicide", "suicidal", "kill myself", "end my life", "want to die",
    "self harm", "hurt myself", "cut myself", "overdose", "hopeless",
    "worthless", "better off dead", "no point", "can't go on", "give up",
    "end it all",
]

TRIGGER_TOPIC_WORDS = ["stress", "anxiety", "work", "family", "relationship"]

MOOD_SHIFT_THRESHOLD = 2
SESSION_GAP_DAYS = 7
INSIGHT_CONFIDENCE = 0.8
INSIGHT_DATA_SOURCES = ["mood_entries", "journal_entries", "chat_messages"]

CrisisDetector = Callable[[str], bool]


def detect_crisis_keywords(text: str, extra_detectors: Iterable[CrisisDetector] = ()) -> bool:
    """
    Check a message for high-risk phrases.

    Args:
        text: Raw user message
        extra_detectors: Additional detectors; any True result counts as a hit

    Returns:
        True if the message should trigger a crisis intervention
    """
    lowered = (text or "").lower()
    if any(keyword in lowered for keyword in CRISIS_KEYWORDS):
        return True
    for detector in extra_detectors:
        try:
            if detector(text):
                return True
        except Exception as e:
            logger.error(f"Crisis detector {getattr(detector, '__name__', detector)} failed: {e}")
    return False


def _days_since_last_session(context: schemas.UserContext, now: datetime) -> Optional[float]:
    if not context.therapy_sessions:
        return None
    last = max(context_signals.as_utc(session.session_date) for session in context.therapy_sessions)
    return (now - last) / timedelta(days=1)


def _mood_shift(context: schemas.UserContext) -> Optional[float]:
    """Difference between the 5 newest and the next 5 mood averages."""
    ordered = sorted(
        context.mood_entries, key=lambda entry: context_signals.as_utc(entry.created_at), reverse=True
    )
    if len(ordered) < 5:
        return None
    recent = [entry.mood_score for entry in ordered[:5]]
    older = [entry.mood_score for entry in ordered[5:10]]
    if not older:
        return None
    return sum(recent) / len(recent) - sum(older) / len(older)


def _mentions_trigger_topic(message: str) -> bool:
    lowered = (message or "").lower()
    return any(word in lowered for word in TRIGGER_TOPIC_WORDS)


def _session_gap_exceeded(context: schemas.UserContext, now: datetime) -> bool:
    days = _days_since_last_session(context, now)
    return days is not None and days > SESSION_GAP_DAYS


def should_generate_insight(context: schemas.UserContext, message: str,
                            now: Optional[datetime] = None) -> bool:
    """
    Decide whether this turn is worth an insight record.

    Any one of these is enough: a mood shift of more than 2 points between
    the 5 newest entries and the 5 before them, a trigger topic in the
    message, or more than 7 days since the last session.
    """
    now = context_signals.resolve_now(now)
    shift = _mood_shift(context)
    if shift is not None and abs(shift) > MOOD_SHIFT_THRESHOLD:
        return True
    if _mentions_trigger_topic(message):
        return True
    return _session_gap_exceeded(context, now)


def _primary_trigger(context: schemas.UserContext, now: datetime) -> Optional[str]:
    recent = context_signals.get_recent_triggers(context, now=now)
    if not recent:
        return None
    counts = Counter(
        entry.trigger.strip() for entry in context.mood_entries
        if entry.trigger and entry.trigger.strip() in recent
    )
    # Most frequent, ties broken alphabetically
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[0][0]


def build_insight(user_id: str, context: schemas.UserContext, message: str,
                  now: Optional[datetime] = None) -> schemas.InsightRecord:
    """
    Synthesize the insight for this turn.

    Precedence: risk assessment (medium or worse), then trigger pattern,
    then mood pattern (5+ moods), then progress trend (session gap), then a
    general recommendation.

    Args:
        user_id: User the insight belongs to
        context: UserContext snapshot
        message: The message that prompted the insight
        now: Reference time (defaults to current UTC time)

    Returns:
        InsightRecord ready for the persistence sink
    """
    now = context_signals.resolve_now(now)
    mood_trend = context_signals.get_mood_trend(context)
    risk_level = context_signals.get_crisis_risk_level(context)
    recent_triggers = sorted(context_signals.get_recent_triggers(context, now=now))
    name = context_signals.get_preferred_name(context)

    if risk_level in (RiskLevel.medium, RiskLevel.high, RiskLevel.critical):
        insight_type = InsightType.risk_assessment
        title = f"Wellness Check: {risk_level.value} Support Needed"
        description = ("Based on your recent activity and mood patterns, it appears you might benefit "
                       "from additional support. Your wellbeing is important.")
        severity = RiskLevel.high if risk_level == RiskLevel.medium else RiskLevel.critical
        recommendations = [
            "Reach out to your support network",
            "Consider contacting your therapist",
            "Use crisis resources if needed",
            "Practice immediate self-care activities",
        ]
    elif recent_triggers:
        trigger = _primary_trigger(context, now)
        insight_type = InsightType.trigger_pattern
        title = f"Trigger Pattern Identified: {trigger}"
        description = (f'I\'ve noticed that "{trigger}" appears frequently in your recent entries. '
                       "Understanding this pattern can help you prepare better coping strategies.")
        severity = RiskLevel.medium
        recommendations = [
            f"Develop specific coping strategies for {trigger}",
            "Practice grounding techniques when triggered",
            "Discuss this pattern with your therapist",
            "Consider trigger avoidance strategies when possible",
        ]
    elif len(context.mood_entries) >= 5:
        insight_type = InsightType.mood_pattern
        title = f"Mood Trend Analysis: {mood_trend.value}"
        description = f"Based on your recent mood entries, I've noticed your mood has been {mood_trend.value}. "
        if mood_trend == MoodTrend.declining:
            severity = RiskLevel.medium
            description += "This suggests you might benefit from additional support or coping strategies."
            recommendations = [
                "Consider scheduling a check-in with your therapist",
                "Practice daily mindfulness exercises",
                "Maintain regular sleep schedule",
                "Engage in physical activity",
            ]
        elif mood_trend == MoodTrend.improving:
            severity = RiskLevel.low
            description += "This is a positive sign that your coping strategies are working well."
            recommendations = [
                "Continue with current coping strategies",
                "Reflect on what has been helping",
                "Consider sharing this progress with your therapist",
            ]
        else:
            severity = RiskLevel.low
            description += "Steady tracking like this makes changes easier to spot early."
            recommendations = ["Keep logging your mood daily"]
    elif _session_gap_exceeded(context, now):
        days = int(_days_since_last_session(context, now))
        progress = context_signals.get_therapy_progress(context, now=now)
        insight_type = InsightType.progress_trend
        title = f"Progress Check-in: {days} days since your last session"
        description = (f"It has been {days} days since your last therapy session. You have completed "
                       f"{progress.completed_homework} of {progress.total_homework} homework items.")
        severity = RiskLevel.low
        recommendations = [
            "Review your open homework before the next session",
            "Note anything you want to bring up with your therapist",
            "Consider booking your next session",
        ]
    else:
        insight_type = InsightType.recommendation
        strategies = context.user_preferences.preferred_coping_strategies if context.user_preferences else []
        title = f"Personalized Recommendation for {name}"
        description = "Small, regular check-ins help you notice patterns in how you feel."
        severity = RiskLevel.low
        recommendations = ([f"Try {strategy} when things feel heavy" for strategy in strategies[:3]]
                           or ["Log your mood once a day", "Try a short breathing exercise"])

    return schemas.InsightRecord(
        user_id=user_id,
        insight_type=insight_type,
        title=title,
        description=description,
        confidence_score=INSIGHT_CONFIDENCE,
        severity_level=severity,
        data_sources=list(INSIGHT_DATA_SOURCES),
        actionable_recommendations=recommendations,
        therapist_notified=severity == RiskLevel.critical,
        metadata={
            "generated_from_conversation": True,
            "user_message_trigger": (message or "")[:100],
            "mood_trend": mood_trend.value,
            "recent_triggers": recent_triggers,
        },
    )


def build_crisis_intervention(user_id: str, message: str,
                              context: Optional[schemas.UserContext]) -> schemas.CrisisInterventionRecord:
    """
    Build the crisis-intervention record for a flagged message.

    Risk comes from the context, or defaults to medium when no context is
    available. High and critical risk escalate to a therapist notification.
    """
    risk_level = context_signals.get_crisis_risk_level(context) if context is not None else RiskLevel.medium
    intervention_type = (
        "therapist_notification" if risk_level in (RiskLevel.high, RiskLevel.critical)
        else "automated_response"
    )
    return schemas.CrisisInterventionRecord(
        user_id=user_id,
        trigger_source="chat_message",
        risk_level=risk_level,
        intervention_type=intervention_type,
        ai_assessment=(f"Crisis keywords detected in user message. Risk level assessed as "
                       f"{risk_level.value}. Immediate support recommended."),
        metadata={
            "triggering_message": (message or "")[:200],
            "detection_method": "keyword_analysis",
            "user_context_available": context is not None,
        },
    )


def crisis_support_message(name: str, therapist_notified: bool = False) -> str:
    """Fixed supportive reply prepended when a crisis is detected."""
    message = (f"Hi {name}, I'm really glad you told me how you're feeling. You don't have to go through "
               "this alone. If you are in immediate danger, please contact your local emergency number "
               "or a crisis line such as 988 (US) right now.")
    if therapist_notified:
        message += " I've also let your care team know so they can follow up with you."
    return message
