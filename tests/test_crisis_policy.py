"""Tests for crisis detection and insight synthesis rules."""

import pytest

import schemas
from factories import NOW, days_ago, make_context, moods
from schemas import InsightType, RiskLevel
from services import crisis_policy


@pytest.mark.parametrize("message", [
    "I want to end it all",
    "Sometimes I feel HOPELESS",
    "I keep thinking about self harm",
    "honestly I can't go on like this",
])
def test_detects_crisis_phrases(message):
    assert crisis_policy.detect_crisis_keywords(message)


@pytest.mark.parametrize("message", ["I had a nice walk", "", "My sister visited"])
def test_ordinary_messages_are_not_flagged(message):
    assert not crisis_policy.detect_crisis_keywords(message)


def test_extra_detectors_are_consulted():
    assert crisis_policy.detect_crisis_keywords("I took all my pills", [lambda text: "pills" in text])


def test_failing_detector_is_ignored():
    def broken(text):
        raise RuntimeError("model offline")

    assert not crisis_policy.detect_crisis_keywords("I had a nice walk", [broken])


def test_crisis_record_without_context_is_medium():
    message = "I want to end it all " + "x" * 300

    record = crisis_policy.build_crisis_intervention("u1", message, None)

    assert record.risk_level == RiskLevel.medium
    assert record.intervention_type == "automated_response"
    assert record.trigger_source == "chat_message"
    assert len(record.metadata["triggering_message"]) == 200
    assert record.metadata["detection_method"] == "keyword_analysis"
    assert record.metadata["user_context_available"] is False
    assert "Risk level assessed as medium" in record.ai_assessment


def test_high_risk_crisis_escalates_to_therapist():
    context = make_context(mood_entries=moods(2, 2, 2))

    record = crisis_policy.build_crisis_intervention("u1", "I want to end it all", context)

    assert record.risk_level == RiskLevel.high
    assert record.intervention_type == "therapist_notification"
    assert record.metadata["user_context_available"] is True


def test_insight_triggered_by_topic_word():
    assert crisis_policy.should_generate_insight(make_context(), "Work has been rough", now=NOW)


def test_insight_triggered_by_session_gap():
    context = make_context(therapy_sessions=[schemas.TherapySession(id="s1", session_date=days_ago(10))])
    assert crisis_policy.should_generate_insight(context, "hello", now=NOW)


def test_insight_triggered_by_mood_shift():
    # Five older entries around 3, five newest around 8
    context = make_context(mood_entries=moods(3, 3, 3, 3, 3, 8, 8, 8, 8, 8))
    assert crisis_policy.should_generate_insight(context, "hello", now=NOW)


def test_no_insight_without_signals():
    context = make_context(
        mood_entries=moods(6, 6, 6, 6, 6, 7, 7, 7, 7, 7),
        therapy_sessions=[schemas.TherapySession(id="s1", session_date=days_ago(2))],
    )
    assert not crisis_policy.should_generate_insight(context, "hello", now=NOW)


def test_medium_risk_insight_is_high_severity():
    insight = crisis_policy.build_insight("u1", make_context(mood_entries=moods(4, 4)), "hi", now=NOW)

    assert insight.insight_type == InsightType.risk_assessment
    assert insight.severity_level == RiskLevel.high
    assert insight.therapist_notified is False
    assert insight.confidence_score == 0.8
    assert insight.data_sources == ["mood_entries", "journal_entries", "chat_messages"]


def test_critical_risk_insight_notifies_therapist():
    context = make_context(crisis_interventions=[schemas.CrisisIntervention(id="c1")])

    insight = crisis_policy.build_insight("u1", context, "hi", now=NOW)

    assert insight.insight_type == InsightType.risk_assessment
    assert insight.severity_level == RiskLevel.critical
    assert insight.therapist_notified is True


def test_trigger_pattern_uses_most_frequent_trigger():
    context = make_context(mood_entries=[
        schemas.MoodEntry(id="m1", mood_score=7, trigger="work", created_at=days_ago(1)),
        schemas.MoodEntry(id="m2", mood_score=7, trigger="work", created_at=days_ago(2)),
        schemas.MoodEntry(id="m3", mood_score=7, trigger="family", created_at=days_ago(3)),
    ])

    insight = crisis_policy.build_insight("u1", context, "hi", now=NOW)

    assert insight.insight_type == InsightType.trigger_pattern
    assert insight.title == "Trigger Pattern Identified: work"
    assert insight.severity_level == RiskLevel.medium
    assert insight.metadata["recent_triggers"] == ["family", "work"]


def test_trigger_ties_break_alphabetically():
    context = make_context(mood_entries=[
        schemas.MoodEntry(id="m1", mood_score=7, trigger="sleep", created_at=days_ago(1)),
        schemas.MoodEntry(id="m2", mood_score=7, trigger="exams", created_at=days_ago(2)),
    ])
    insight = crisis_policy.build_insight("u1", context, "hi", now=NOW)
    assert insight.title == "Trigger Pattern Identified: exams"


def test_mood_pattern_with_enough_entries():
    context = make_context(mood_entries=moods(5, 6, 6, 7, 8))

    insight = crisis_policy.build_insight("u1", context, "hi", now=NOW)

    assert insight.insight_type == InsightType.mood_pattern
    assert insight.title == "Mood Trend Analysis: improving"
    assert insight.severity_level == RiskLevel.low


def test_progress_trend_after_session_gap():
    context = make_context(therapy_sessions=[schemas.TherapySession(id="s1", session_date=days_ago(10))])

    insight = crisis_policy.build_insight("u1", context, "hi", now=NOW)

    assert insight.insight_type == InsightType.progress_trend
    assert "10 days" in insight.title


def test_recommendation_fallback_uses_preferred_strategies():
    context = make_context(user_preferences=schemas.UserPreferences(
        preferred_name="Sam", preferred_coping_strategies=["journaling"],
    ))

    insight = crisis_policy.build_insight("u1", context, "x" * 150, now=NOW)

    assert insight.insight_type == InsightType.recommendation
    assert insight.title == "Personalized Recommendation for Sam"
    assert insight.actionable_recommendations == ["Try journaling when things feel heavy"]
    assert len(insight.metadata["user_message_trigger"]) == 100
    assert insight.metadata["generated_from_conversation"] is True


def test_crisis_support_message():
    assert crisis_policy.crisis_support_message("Sam").startswith("Hi Sam,")
    assert "care team" not in crisis_policy.crisis_support_message("Sam")
    assert "care team" in crisis_policy.crisis_support_message("Sam", therapist_notified=True)
