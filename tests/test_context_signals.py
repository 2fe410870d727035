"""Tests for the derived-signal calculators."""

import schemas
from factories import NOW, days_ago, make_context, moods
from schemas import AIInteractionLevel, MoodTrend, RiskLevel
from services import context_signals


def test_mood_trend_improving_over_last_seven():
    context = make_context(mood_entries=moods(4, 4, 4, 4, 4, 4, 8))
    assert context_signals.get_mood_trend(context) == MoodTrend.improving


def test_mood_trend_declining():
    context = make_context(mood_entries=moods(8, 4))
    assert context_signals.get_mood_trend(context) == MoodTrend.declining


def test_mood_trend_single_or_no_entry_is_stable():
    assert context_signals.get_mood_trend(make_context(mood_entries=moods(3))) == MoodTrend.stable
    assert context_signals.get_mood_trend(make_context()) == MoodTrend.stable


def test_mood_trend_ignores_entries_outside_window():
    # Oldest entry (9) falls outside the 7-entry window
    context = make_context(mood_entries=moods(9, 1, 1, 1, 1, 1, 1, 2))
    assert context_signals.get_mood_trend(context) == MoodTrend.improving


def test_mood_trend_independent_of_input_order():
    entries = moods(3, 5, 7)
    context = make_context(mood_entries=list(reversed(entries)))
    assert context_signals.get_mood_trend(context) == MoodTrend.improving


def test_recent_triggers_window_and_blanks():
    context = make_context(mood_entries=[
        schemas.MoodEntry(id="m1", mood_score=4, trigger="work", created_at=days_ago(1)),
        schemas.MoodEntry(id="m2", mood_score=4, trigger="work", created_at=days_ago(2)),
        schemas.MoodEntry(id="m3", mood_score=5, trigger="  ", created_at=days_ago(2)),
        schemas.MoodEntry(id="m4", mood_score=5, trigger="family", created_at=days_ago(10)),
    ])
    assert context_signals.get_recent_triggers(context, now=NOW) == {"work"}


def test_therapy_progress():
    context = make_context(
        therapy_homework=[
            schemas.HomeworkItem(id="h1", title="Thought record", status="completed"),
            schemas.HomeworkItem(id="h2", title="Walk", status="assigned"),
        ],
        therapy_sessions=[
            schemas.TherapySession(id="s1", session_date=days_ago(3), goals=["sleep", "anxiety"]),
            schemas.TherapySession(id="s2", session_date=days_ago(45), goals=["sleep"]),
        ],
    )

    progress = context_signals.get_therapy_progress(context, now=NOW)

    assert progress.completed_homework == 1
    assert progress.total_homework == 2
    assert progress.sessions_last_30_days == 1
    assert progress.goals == ["sleep", "anxiety"]


def test_unresolved_intervention_is_critical():
    context = make_context(
        mood_entries=moods(9, 9, 9),
        crisis_interventions=[schemas.CrisisIntervention(id="c1", risk_level="high")],
    )
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.critical


def test_resolved_intervention_does_not_raise_risk():
    context = make_context(
        mood_entries=moods(8, 8),
        crisis_interventions=[schemas.CrisisIntervention(id="c1", resolved_at=days_ago(2))],
    )
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.low


def test_low_mood_average_is_high_risk():
    context = make_context(mood_entries=moods(2, 2, 2, 2, 2))
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.high


def test_middling_mood_average_is_medium_risk():
    context = make_context(mood_entries=moods(4, 4, 4))
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.medium


def test_only_five_newest_moods_count_toward_risk():
    context = make_context(mood_entries=moods(1, 1, 1, 8, 8, 8, 8, 8))
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.low


def test_journal_keyword_raises_risk_over_good_moods():
    context = make_context(
        mood_entries=moods(8, 8),
        journal_entries=[schemas.JournalEntry(id="j1", content="Some days I want to die", created_at=NOW)],
    )
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.high


def test_journal_keywords_are_case_sensitive():
    context = make_context(
        journal_entries=[schemas.JournalEntry(id="j1", content="Read a SUICIDE prevention leaflet",
                                              created_at=NOW)],
    )
    assert context_signals.get_crisis_risk_level(context) == RiskLevel.low


def test_empty_context_is_low_risk():
    assert context_signals.get_crisis_risk_level(make_context()) == RiskLevel.low


def test_preferred_name_fallbacks():
    assert context_signals.get_preferred_name(make_context()) == "there"
    assert context_signals.get_preferred_name(
        make_context(profile=schemas.UserProfile(id="u1", first_name="Sam"))
    ) == "Sam"
    assert context_signals.get_preferred_name(make_context(
        profile=schemas.UserProfile(id="u1", first_name="Samantha"),
        user_preferences=schemas.UserPreferences(preferred_name="Sam"),
    )) == "Sam"


def test_ai_interaction_level_defaults_to_standard():
    assert context_signals.get_ai_interaction_level(make_context()) == AIInteractionLevel.standard
    context = make_context(user_preferences=schemas.UserPreferences(ai_interaction_level="minimal"))
    assert context_signals.get_ai_interaction_level(context) == AIInteractionLevel.minimal


def test_should_notify_therapist():
    assert not context_signals.should_notify_therapist(make_context(mood_entries=moods(4, 4)))
    assert context_signals.should_notify_therapist(make_context(mood_entries=moods(2, 2)))
