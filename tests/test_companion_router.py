"""HTTP tests for the companion router with storage and providers overridden."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

import main
from factories import (
    FakeEmbeddingService,
    InMemoryRecordStore,
    RecordingPersistence,
    moods_oldest_first,
)
from routers import companion


@pytest.fixture
def store():
    return InMemoryRecordStore(data={"u1": {
        "profiles": {"id": "u1", "first_name": "Sam", "email": "sam@example.com"},
        "mood_entries": moods_oldest_first(6, 7, 8),
    }})


@pytest.fixture
def persistence():
    return RecordingPersistence()


@pytest.fixture
def client(store, persistence):
    main.app.dependency_overrides[companion.get_record_store] = lambda: store
    main.app.dependency_overrides[companion.get_persistence] = lambda: persistence
    main.app.dependency_overrides[companion.get_embedding_service] = lambda: None
    main.app.dependency_overrides[companion.get_generation_service] = lambda: None
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


def test_chat(client, persistence):
    response = client.post("/companion/chat", json={"user_id": "u1", "message": "What mood entries do I have?"})

    assert response.status_code == 200
    body = response.json()
    assert body["intent_classified"] == "personal_mood_data"
    assert body["search_method"] == "keyword"
    assert body["tables_queried"] == ["mood_entries"]
    assert body["crisis_detected"] is False
    assert "I found 3 mood-related entries" in body["response_text"]
    assert len(persistence.interactions) == 1


def test_chat_blank_message(client):
    response = client.post("/companion/chat", json={"user_id": "u1", "message": "  "})
    assert response.status_code == 400


def test_chat_store_unavailable(client, store):
    store.reachable = False
    response = client.post("/companion/chat", json={"user_id": "u1", "message": "my mood"})
    assert response.status_code == 503


def test_context(client):
    response = client.get("/companion/context/u1")

    assert response.status_code == 200
    body = response.json()
    assert body["profile"]["first_name"] == "Sam"
    assert "email" not in body["profile"]
    assert len(body["mood_entries"]) == 3
    assert "mood_entries" in body["data_sources"]


def test_search(client):
    response = client.post("/companion/search", json={"user_id": "u1", "query": "my mood", "match_count": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["search_method"] == "keyword"
    assert body["intent_classified"] == "personal_mood_data"
    assert len(body["results"]) == 2


def test_search_requires_query(client):
    response = client.post("/companion/search", json={"user_id": "u1", "query": " "})
    assert response.status_code == 400


def test_index_without_provider(client):
    response = client.post("/companion/index/u1")
    assert response.status_code == 503


def test_index_with_provider(client, store):
    main.app.dependency_overrides[companion.get_embedding_service] = lambda: FakeEmbeddingService()

    response = client.post("/companion/index/u1")

    assert response.status_code == 200
    assert response.json() == {"user_id": "u1", "processed": 3, "success": 3, "error": 0}
    assert len(store.embeddings) == 3

def test_index_database_error(client, store, monkeypatch):
    main.app.dependency_overrides[companion.get_embedding_service] = lambda: FakeEmbeddingService()
    read = store.fetch

    async def fetch(category, user_id):
        if category == "coping_tools":
            raise SQLAlchemyError("connection reset")
        return await read(category, user_id)

    monkeypatch.setattr(store, "fetch", fetch)

    response = client.post("/companion/index/u1")

    assert response.status_code == 503
    assert response.json()["detail"] == "Record store is unavailable, please try again later"



def test_summary(client, persistence):
    response = client.post("/companion/summary/u1", params={"force_refresh": True})

    assert response.status_code == 200
    body = response.json()
    assert body["cached"] is False
    assert body["generated_by"] == "fallback"
    assert body["summary"].startswith("Summary for Sam")
    assert persistence.summaries[0]["user_id"] == "u1"
