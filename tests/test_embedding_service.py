"""Tests for the Gemini embedding wrapper with the provider call stubbed out."""

import pytest

from services import embedding_service
from services.embedding_service import EmbeddingError, EmbeddingService


@pytest.fixture
def provider(monkeypatch):
    calls = []
    response = {"value": None, "error": None}

    def fake_embed_content(model, content, task_type):
        calls.append({"model": model, "content": content, "task_type": task_type})
        if response["error"]:
            raise response["error"]
        return response["value"]

    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(embedding_service.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(embedding_service.genai, "embed_content", fake_embed_content)
    return calls, response


def test_missing_api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "")
    with pytest.raises(ValueError):
        EmbeddingService()


def test_batch_embedding_masks_pii(provider):
    calls, response = provider
    response["value"] = {"embedding": [[0.1, 0.2], [0.3, 0.4]]}

    vectors = EmbeddingService().embed_texts(["Email me at sam@example.com", "Mood entry: 6/10"])

    assert vectors == [[0.1, 0.2], [0.3, 0.4]]
    assert calls[0]["content"] == ["Email me at s***@***.com", "Mood entry: 6/10"]
    assert calls[0]["task_type"] == "retrieval_document"


def test_single_query_vector_is_unwrapped(provider):
    calls, response = provider
    response["value"] = {"embedding": [1, 0]}

    assert EmbeddingService().embed_query("how is my mood") == [1.0, 0.0]
    assert calls[0]["task_type"] == "retrieval_query"


def test_provider_error_is_wrapped(provider):
    _, response = provider
    response["error"] = RuntimeError("quota exceeded")

    with pytest.raises(EmbeddingError):
        EmbeddingService().embed_texts(["hello"])


def test_count_mismatch_is_rejected(provider):
    _, response = provider
    response["value"] = {"embedding": [[0.1, 0.2]]}

    with pytest.raises(EmbeddingError):
        EmbeddingService().embed_texts(["one", "two"])


def test_empty_inputs(provider):
    calls, _ = provider
    service = EmbeddingService()

    assert service.embed_texts([]) == []
    with pytest.raises(EmbeddingError):
        service.embed_query("   ")
    assert calls == []
