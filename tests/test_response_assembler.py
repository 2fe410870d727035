"""Tests for the intent-specific response assembler."""

import pytest

from factories import InMemoryRecordStore, make_context, make_result, moods
from schemas import QueryIntent
from services import response_assembler
from services.response_assembler import GUIDANCE_TEMPLATE
from services.search_service import SearchService


def _numbered_lines(text, heading):
    section = text.split(f"**{heading}:**\n", 1)[1].split("\n\n", 1)[0]
    return section.splitlines()


def test_no_results_returns_guidance():
    text = response_assembler.render("asdkjaskjd", [])
    assert text == GUIDANCE_TEMPLATE.format(query="asdkjaskjd")
    assert '"asdkjaskjd"' in text


@pytest.mark.asyncio
async def test_mood_reply_lists_each_entry():
    context = make_context(mood_entries=moods(6, 7, 8))
    results = await SearchService(InMemoryRecordStore()).search(
        "What mood entries do I have?", user_id="u1", context=context
    )

    text = response_assembler.render("What mood entries do I have?", results)

    assert response_assembler.describe_intent(results) == QueryIntent.personal_mood_data
    assert text.startswith("**Your Mood Entries**")
    assert "I found 3 mood-related entries" in text
    lines = _numbered_lines(text, "Recent Mood Tracking")
    assert len(lines) == 3
    assert all("/10" in line for line in lines)
    assert text.endswith("consistent tracking. This is great for understanding your emotional "
                         "patterns and progress!")


def test_mood_reply_with_only_patterns_asks_for_check_ins():
    results = [make_result("Mood pattern: 2026-01-01 stress 7/10", QueryIntent.personal_mood_data,
                           table_name="monitoring_entries")]
    text = response_assembler.render("my mood", results)
    assert "**Emotional Patterns Detected:**" in text
    assert "Your monitoring entries show some emotional patterns" in text
    assert "I don't see many recorded mood entries" not in text


def test_mood_reply_without_mood_entries_suggests_tracking():
    results = [make_result("Journal entry: 2026-01-01 felt calm", QueryIntent.personal_mood_data,
                           table_name="journal_entries")]
    text = response_assembler.render("my mood", results)
    assert "**Other Related Records:**" in text
    assert "Consider tracking your mood regularly" in text


def test_unrecognized_labels_go_under_other_records():
    results = [
        make_result("Mood entry: 2026-01-01 mood 6/10", QueryIntent.personal_mood_data),
        make_result("Journal entry: 2026-01-01 felt calm", QueryIntent.personal_mood_data,
                    table_name="journal_entries"),
    ]
    text = response_assembler.render("my mood", results)
    assert _numbered_lines(text, "Other Related Records") == ["1. 2026-01-01 felt calm"]


def test_session_reply_has_next_steps():
    results = [
        make_result("Therapy task: Thought record [assigned]", QueryIntent.personal_session_data,
                    table_name="therapy_homework"),
        make_result("Session context: 2026-01-05 individual session", QueryIntent.personal_session_data,
                    table_name="therapy_sessions"),
    ]
    text = response_assembler.render("my sessions", results)
    assert "**Assigned Therapy Tasks:**" in text
    assert "**Session Notes:**" in text
    assert "You have active therapy tasks assigned" in text


def test_progress_reply():
    results = [make_result("Progress entry: 2026-01-05 PHQ-9 score 8", QueryIntent.personal_progress_data,
                           table_name="assessment_results")]
    text = response_assembler.render("how am i doing", results)
    assert text.startswith("**Your Progress Summary**")
    assert "**Progress Insights:**" in text


def test_tools_reply_shows_at_most_three_tools():
    results = [
        make_result(f"Coping tool: Tool {index}", QueryIntent.coping_tools_info, table_name="coping_tools")
        for index in range(1, 6)
    ]
    text = response_assembler.render("coping tools", results)
    assert _numbered_lines(text, "Recommended Techniques") == ["1. Tool 1", "2. Tool 2", "3. Tool 3"]
    assert "**How to use:**" in text


def test_tools_reply_without_tools():
    results = [make_result("Journal entry: breathing felt hard", QueryIntent.coping_tools_info,
                           table_name="journal_entries")]
    text = response_assembler.render("breathing", results)
    assert "I didn't find specific tools matching your query" in text


def test_general_reply_lists_records_and_examples():
    results = [make_result("Journal entry: 2026-01-01 went hiking", QueryIntent.general_search,
                           table_name="journal_entries")]
    text = response_assembler.render("hiking", results)
    assert 'Based on your query "hiking"' in text
    assert "1. 2026-01-01 went hiking (journal_entries)" in text
    assert '"How am I progressing?"' in text


def test_preview_ellipsis_is_stripped_from_evidence():
    results = [make_result("Mood entry: " + "x" * 20 + "...", QueryIntent.personal_mood_data)]
    text = response_assembler.render("mood", results)
    assert "1. " + "x" * 20 + "\n" in text


def test_describe_intent_prefers_first_specific_intent():
    results = [
        make_result("Journal entry: a", QueryIntent.general_search),
        make_result("Therapy task: b", QueryIntent.personal_session_data),
    ]
    assert response_assembler.describe_intent(results) == QueryIntent.personal_session_data
    assert response_assembler.describe_intent([]) == QueryIntent.general_search


def test_build_grounding_context():
    assert response_assembler.build_grounding_context([], "keyword") == (
        "No relevant information found in the database for this query.\n"
    )

    result = make_result("Mood entry: mood 6/10", QueryIntent.personal_mood_data, score=0.8, record_id="m1")
    text = response_assembler.build_grounding_context([result], "embedding")

    assert text.startswith("Relevant information from the database (via embedding search):")
    assert 'From table "mood_entries" (ID: m1, similarity: 80.0%, intent: personal_mood_data)' in text
