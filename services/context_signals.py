"""
Derived signals computed from a UserContext snapshot.

Every function here is pure: the same snapshot (and reference time) always
gives the same answer, and nothing is read from or written to storage.
"""
from typing import List, Optional, Set
from datetime import datetime, timedelta, timezone

import schemas
from schemas import RiskLevel, MoodTrend, AIInteractionLevel, RISK_ORDER

MOOD_TREND_WINDOW = 7
RISK_MOOD_WINDOW = 5
PROGRESS_SESSION_DAYS = 30

# Matched case-sensitively against journal content
JOURNAL_CRISIS_KEYWORDS = ["suicide", "kill myself", "end it all", "want to die"]


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are stored in UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now else datetime.now(timezone.utc)


def max_risk(*levels: RiskLevel) -> RiskLevel:
    return max(levels, key=RISK_ORDER.index)


def get_mood_trend(context: schemas.UserContext) -> MoodTrend:
    """
    Compare the oldest and newest score among the 7 most recent moods.

    Args:
        context: UserContext snapshot

    Returns:
        improving, declining or stable (fewer than 2 entries is stable)
    """
    ordered = sorted(context.mood_entries, key=lambda entry: as_utc(entry.created_at))
    window = ordered[-MOOD_TREND_WINDOW:]
    if len(window) < 2:
        return MoodTrend.stable

    first, last = window[0].mood_score, window[-1].mood_score
    if last > first:
        return MoodTrend.improving
    if last < first:
        return MoodTrend.declining
    return MoodTrend.stable


def get_recent_triggers(context: schemas.UserContext, days: int = 7,
                        now: Optional[datetime] = None) -> Set[str]:
    """Distinct non-empty triggers from mood entries in the last ``days`` days."""
    cutoff = resolve_now(now) - timedelta(days=days)
    return {
        entry.trigger.strip()
        for entry in context.mood_entries
        if entry.trigger and entry.trigger.strip() and as_utc(entry.created_at) >= cutoff
    }


def get_therapy_progress(context: schemas.UserContext,
                         now: Optional[datetime] = None) -> schemas.TherapyProgress:
    cutoff = resolve_now(now) - timedelta(days=PROGRESS_SESSION_DAYS)

    goals: List[str] = []
    for session in context.therapy_sessions:
        for goal in session.goals:
            if goal not in goals:
                goals.append(goal)

    return schemas.TherapyProgress(
        completed_homework=sum(1 for hw in context.therapy_homework if hw.status == "completed"),
        total_homework=len(context.therapy_homework),
        sessions_last_30_days=sum(
            1 for session in context.therapy_sessions if as_utc(session.session_date) >= cutoff
        ),
        goals=goals,
    )


def get_crisis_risk_level(context: schemas.UserContext) -> RiskLevel:
    """
    Ordinal crisis risk for the user.

    An unresolved crisis intervention is critical outright. Otherwise the
    recent mood average and a journal keyword scan are checked on their own
    and the higher of the two levels is returned.

    Args:
        context: UserContext snapshot

    Returns:
        RiskLevel
    """
    if any(crisis.resolved_at is None for crisis in context.crisis_interventions):
        return RiskLevel.critical

    mood_risk = RiskLevel.low
    recent = sorted(context.mood_entries, key=lambda entry: as_utc(entry.created_at), reverse=True)
    recent = recent[:RISK_MOOD_WINDOW]
    if recent:
        average = sum(entry.mood_score for entry in recent) / len(recent)
        if average < 3:
            mood_risk = RiskLevel.high
        elif average < 5:
            mood_risk = RiskLevel.medium

    journal_risk = RiskLevel.low
    for entry in context.journal_entries:
        if any(keyword in entry.content for keyword in JOURNAL_CRISIS_KEYWORDS):
            journal_risk = RiskLevel.high
            break

    return max_risk(mood_risk, journal_risk)


def get_preferred_name(context: schemas.UserContext) -> str:
    if context.user_preferences and context.user_preferences.preferred_name:
        return context.user_preferences.preferred_name
    if context.profile and context.profile.first_name:
        return context.profile.first_name
    return "there"


def get_ai_interaction_level(context: schemas.UserContext) -> AIInteractionLevel:
    if context.user_preferences and context.user_preferences.ai_interaction_level:
        return context.user_preferences.ai_interaction_level
    return AIInteractionLevel.standard


def should_notify_therapist(context: schemas.UserContext) -> bool:
    return get_crisis_risk_level(context) in (RiskLevel.high, RiskLevel.critical)
