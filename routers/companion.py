"""
AI Companion API Router
Endpoints for context retrieval, search and companion chat
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
import logging
import os

import schemas
from database import SessionLocal
from services.companion_service import CompanionService
from services.context_aggregator import ContextAggregator
from services.context_summarizer import ContextSummarizer
from services.embedding_indexer import EmbeddingIndexer
from services.embedding_service import EmbeddingService
from services.gemini_service import GeminiService, get_gemini_service
from services.persistence_service import AIPersistenceService
from services.record_store import RecordStore, RecordStoreUnavailableError, SQLRecordStore
from services.search_service import SearchService

logger = logging.getLogger(__name__)

router = APIRouter()

_record_store: Optional[RecordStore] = None
_embedding_service: Optional[EmbeddingService] = None


def get_record_store() -> RecordStore:
    """Get or create the shared record store."""
    global _record_store
    if _record_store is None:
        _record_store = SQLRecordStore(SessionLocal)
    return _record_store


def get_persistence() -> AIPersistenceService:
    return AIPersistenceService(SessionLocal)


def get_embedding_service() -> Optional[EmbeddingService]:
    """Shared embedding service, or None when no API key is configured."""
    global _embedding_service
    if _embedding_service is None:
        try:
            _embedding_service = EmbeddingService()
        except ValueError as e:
            logger.warning(f"Semantic search disabled: {e}")
            return None
    return _embedding_service


def get_generation_service() -> Optional[GeminiService]:
    """Shared Gemini service, or None when generation is disabled or unconfigured."""
    if os.getenv("COMPANION_USE_GENERATION", "true").lower() not in ("1", "true", "yes"):
        return None
    try:
        return get_gemini_service()
    except ValueError as e:
        logger.warning(f"Generation disabled, using templated replies: {e}")
        return None


def get_aggregator(record_store: RecordStore = Depends(get_record_store)) -> ContextAggregator:
    return ContextAggregator(record_store)


def get_search_service(
    record_store: RecordStore = Depends(get_record_store),
    aggregator: ContextAggregator = Depends(get_aggregator),
    embedding_service: Optional[EmbeddingService] = Depends(get_embedding_service),
) -> SearchService:
    return SearchService(record_store, aggregator=aggregator, embedding_service=embedding_service)


def get_companion_service(
    aggregator: ContextAggregator = Depends(get_aggregator),
    search_service: SearchService = Depends(get_search_service),
    persistence: AIPersistenceService = Depends(get_persistence),
    gemini_service: Optional[GeminiService] = Depends(get_generation_service),
) -> CompanionService:
    return CompanionService(aggregator, search_service, persistence, gemini_service=gemini_service)


def _unavailable(e: Exception) -> HTTPException:
    logger.error(f"Record store unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Record store is unavailable, please try again later"
    )


@router.post("/chat", response_model=schemas.CompanionResponse)
async def companion_chat(
    request: schemas.CompanionRequest,
    companion: CompanionService = Depends(get_companion_service)
):
    """Answer a question about the user's own wellbeing data."""
    try:
        return await companion.respond(request.user_id, request.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RecordStoreUnavailableError as e:
        raise _unavailable(e)


@router.get("/context/{user_id}", response_model=schemas.UserContext)
async def get_user_context(
    user_id: str,
    aggregator: ContextAggregator = Depends(get_aggregator)
):
    """Return the aggregated context snapshot for a user."""
    try:
        return await aggregator.get_full_user_context(user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RecordStoreUnavailableError as e:
        raise _unavailable(e)


@router.post("/search", response_model=schemas.SearchResponse)
async def search_records(
    request: schemas.SearchRequest,
    search_service: SearchService = Depends(get_search_service)
):
    """Rank a user's records against a query without generating a reply."""
    if not request.user_id.strip() or not request.query.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id and query are required")

    outcome = await search_service.search_with_method(
        request.query,
        request.match_count,
        request.similarity_threshold,
        user_id=request.user_id,
    )
    return schemas.SearchResponse(
        query=request.query,
        search_method=outcome.search_method,
        intent_classified=outcome.intent,
        results=outcome.results,
    )


@router.post("/index/{user_id}", response_model=schemas.IndexResponse)
async def index_user_records(
    user_id: str,
    record_store: RecordStore = Depends(get_record_store),
    aggregator: ContextAggregator = Depends(get_aggregator),
    embedding_service: Optional[EmbeddingService] = Depends(get_embedding_service),
):
    """Rebuild the semantic search index for a user."""
    if embedding_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Embedding provider is not configured"
        )

    indexer = EmbeddingIndexer(record_store, aggregator, embedding_service)
    try:
        stats = await indexer.index_user_records(user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (RecordStoreUnavailableError, SQLAlchemyError) as e:
        raise _unavailable(e)
    return schemas.IndexResponse(user_id=user_id, **stats)


@router.post("/summary/{user_id}", response_model=schemas.SummaryResponse)
async def refresh_summary(
    user_id: str,
    force_refresh: bool = False,
    aggregator: ContextAggregator = Depends(get_aggregator),
    persistence: AIPersistenceService = Depends(get_persistence),
    gemini_service: Optional[GeminiService] = Depends(get_generation_service),
):
    """Return the cached wellbeing summary, regenerating it when stale."""
    try:
        context = await aggregator.get_full_user_context(user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RecordStoreUnavailableError as e:
        raise _unavailable(e)

    summarizer = ContextSummarizer(persistence, gemini_service)
    return await summarizer.get_or_generate_summary(user_id, context, force_refresh=force_refresh)
