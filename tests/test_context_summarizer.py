"""Tests for the cached wellbeing summary."""

from datetime import datetime, timedelta, timezone

import pytest

import schemas
from factories import FakeGemini, RecordingPersistence, make_context, moods
from services.context_summarizer import FALLBACK_GENERATOR, ContextSummarizer


def _cache(hours_old):
    return schemas.SummaryCache(
        summary="cached summary",
        generated_by="gemini-2.0-flash",
        refreshed_at=datetime.now(timezone.utc) - timedelta(hours=hours_old),
    )


def test_is_fresh(monkeypatch):
    monkeypatch.setenv("CONTEXT_SUMMARY_EXPIRY_HOURS", "24")
    summarizer = ContextSummarizer(RecordingPersistence())

    assert not summarizer.is_fresh(None)
    assert summarizer.is_fresh(_cache(1))
    assert not summarizer.is_fresh(_cache(30))


@pytest.mark.asyncio
async def test_fresh_cache_is_returned_without_writing():
    persistence = RecordingPersistence()
    context = make_context(summary_cache=_cache(1))

    response = await ContextSummarizer(persistence).get_or_generate_summary("u1", context)

    assert response.cached is True
    assert response.summary == "cached summary"
    assert persistence.summaries == []


@pytest.mark.asyncio
async def test_stale_cache_is_regenerated_with_fallback():
    persistence = RecordingPersistence()
    context = make_context(summary_cache=_cache(48), mood_entries=moods(4, 6))

    response = await ContextSummarizer(persistence).get_or_generate_summary("u1", context)

    assert response.cached is False
    assert response.generated_by == FALLBACK_GENERATOR
    assert "Mood: improving (latest 6/10 across 2 entries)" in response.summary
    assert persistence.summaries[0]["user_id"] == "u1"
    assert persistence.summaries[0]["summary"] == response.summary


@pytest.mark.asyncio
async def test_force_refresh_ignores_fresh_cache():
    persistence = RecordingPersistence()
    context = make_context(summary_cache=_cache(1))

    response = await ContextSummarizer(persistence, FakeGemini(reply="Narrative summary")).get_or_generate_summary(
        "u1", context, force_refresh=True
    )

    assert response.cached is False
    assert response.summary == "Narrative summary"
    assert response.generated_by == "fake-gemini"


@pytest.mark.asyncio
async def test_generation_failure_uses_fallback():
    summary = await ContextSummarizer(RecordingPersistence(), FakeGemini(fail=True)).generate_summary(make_context())

    assert summary.generated_by == FALLBACK_GENERATOR
    assert "Mood: no entries recorded yet" in summary.summary


@pytest.mark.asyncio
async def test_fallback_flags_elevated_risk():
    summary = await ContextSummarizer(RecordingPersistence()).generate_summary(
        make_context(mood_entries=moods(2, 2))
    )
    assert "Attention: crisis risk level is high" in summary.summary
