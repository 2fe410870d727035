"""
Search service: ranks a user's records against a free-text question.

Semantic search over the record_embeddings index is tried first. If the
embedding provider or the index fails for any reason, a deterministic
keyword / intent search over the user's context snapshot is used instead.
"""
from typing import List, Dict, Any, Optional, NamedTuple, Sequence
import asyncio
import logging
import math
import re
import time

import schemas
from schemas import QueryIntent
from services.fragments import Fragment, build_fragments, make_preview
from services.record_store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_MATCH_COUNT = 8
DEFAULT_SIMILARITY_THRESHOLD = 0.75

# Checked in order; the first set with a hit wins
INTENT_PHRASES = [
    (QueryIntent.personal_mood_data, ("mood", "feeling", "feel", "emotion")),
    (QueryIntent.personal_session_data, ("session", "therapy task", "homework", "therapist", "appointment")),
    (QueryIntent.personal_progress_data, ("progress", "improv", "how am i doing")),
    (QueryIntent.coping_tools_info, ("breathing", "coping", "tool", "technique", "mindful", "grounding")),
]

INTENT_TABLES: Dict[QueryIntent, List[str]] = {
    QueryIntent.personal_mood_data: ["mood_entries", "monitoring_entries"],
    QueryIntent.personal_session_data: ["therapy_sessions", "therapy_homework", "tasks"],
    QueryIntent.personal_progress_data: ["assessment_results", "micro_wins", "mood_entries"],
    QueryIntent.coping_tools_info: ["coping_tools", "ai_insights"],
}

INTENT_DESCRIPTIONS = {
    QueryIntent.personal_mood_data: "mood",
    QueryIntent.personal_session_data: "therapy session",
    QueryIntent.personal_progress_data: "progress",
    QueryIntent.coping_tools_info: "coping tools",
    QueryIntent.general_search: "general",
}

# Keyword scores stay below the default semantic threshold
INTENT_BASE_SCORE = 0.5
GENERAL_BASE_SCORE = 0.3
MAX_KEYWORD_SCORE = 0.7

STOPWORDS = {
    "a", "about", "all", "am", "an", "and", "any", "are", "can", "did", "do", "does",
    "for", "from", "have", "how", "i", "in", "is", "it", "me", "my", "of", "on", "or",
    "show", "tell", "that", "the", "there", "this", "to", "was", "what", "when",
    "where", "which", "with", "you", "your",
}

TOKEN_PATTERN = re.compile(r"[a-z0-9']+")


class SearchOutcome(NamedTuple):
    results: List[schemas.RetrievalResult]
    search_method: str
    intent: QueryIntent
    embedding_ms: int
    search_ms: int


def classify_query_intent(query_text: str) -> QueryIntent:
    """
    Classify a question by testing it against fixed phrase sets.

    Args:
        query_text: Raw user question

    Returns:
        QueryIntent (general_search when nothing matches)
    """
    lowered = (query_text or "").lower()
    for intent, phrases in INTENT_PHRASES:
        if any(phrase in lowered for phrase in phrases):
            return intent
    return QueryIntent.general_search


def query_terms(query_text: str) -> List[str]:
    terms = []
    for token in TOKEN_PATTERN.findall((query_text or "").lower()):
        if len(token) > 2 and token not in STOPWORDS and token not in terms:
            terms.append(token)
    return terms


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class SearchService:
    """Two-path retrieval over a user's records"""

    def __init__(self, record_store: RecordStore, aggregator=None, embedding_service=None):
        """
        Initialize search service.

        Args:
            record_store: Source of indexed embeddings and coping tools
            aggregator: ContextAggregator used when the fallback path needs a
                snapshot and none was passed in
            embedding_service: EmbeddingService; None disables the semantic path
        """
        self.record_store = record_store
        self.aggregator = aggregator
        self.embedding_service = embedding_service

    async def search(
        self,
        query_text: str,
        match_count: int = DEFAULT_MATCH_COUNT,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        user_id: Optional[str] = None,
        context: Optional[schemas.UserContext] = None,
    ) -> List[schemas.RetrievalResult]:
        """
        Rank the user's records against a question.

        Never raises for provider or index failures; the keyword path is the
        last resort and returns an empty list when nothing matches.

        Returns:
            RetrievalResults ordered by descending score, at most match_count
        """
        outcome = await self.search_with_method(
            query_text, match_count, similarity_threshold, user_id=user_id, context=context
        )
        return outcome.results

    async def search_with_method(
        self,
        query_text: str,
        match_count: int = DEFAULT_MATCH_COUNT,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        user_id: Optional[str] = None,
        context: Optional[schemas.UserContext] = None,
    ) -> SearchOutcome:
        """Same as search(), also reporting which path answered and its timings."""
        intent = classify_query_intent(query_text)
        match_count = max(1, match_count)
        embedding_ms = 0

        if self.embedding_service is not None and user_id:
            started = time.perf_counter()
            try:
                query_vector = await asyncio.to_thread(self.embedding_service.embed_query, query_text)
                embedding_ms = int((time.perf_counter() - started) * 1000)

                search_started = time.perf_counter()
                results = await self._embedding_search(
                    user_id, query_vector, intent, match_count, similarity_threshold
                )
                search_ms = int((time.perf_counter() - search_started) * 1000)
                logger.info(f"Semantic search returned {len(results)} results for user {user_id}")
                return SearchOutcome(results, "embedding", intent, embedding_ms, search_ms)
            except Exception as e:
                embedding_ms = int((time.perf_counter() - started) * 1000)
                logger.warning(f"Semantic search failed, using keyword fallback: {e}")

        search_started = time.perf_counter()
        results = await self._keyword_search(query_text, intent, match_count, user_id, context)
        search_ms = int((time.perf_counter() - search_started) * 1000)
        return SearchOutcome(results, "keyword", intent, embedding_ms, search_ms)

    # ------------------------------------------------------------------
    # Semantic path
    # ------------------------------------------------------------------

    async def _embedding_search(
        self,
        user_id: str,
        query_vector: List[float],
        intent: QueryIntent,
        match_count: int,
        similarity_threshold: float,
    ) -> List[schemas.RetrievalResult]:
        rows = await self.record_store.get_record_embeddings(user_id)
        # Shared rows alone do not make a usable index for this user
        if not any(row.get("user_id") == user_id for row in rows):
            raise LookupError(f"No indexed records for user {user_id}")

        by_table: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows:
            by_table.setdefault(row["table_name"], []).append(row)
        per_table_limit = max(1, match_count // len(by_table))

        candidates: List[schemas.RetrievalResult] = []
        for table_name in sorted(by_table):
            scored = []
            for row in by_table[table_name]:
                score = cosine_similarity(query_vector, row["embedding_vector"])
                if score >= similarity_threshold:
                    scored.append((score, row))
            scored.sort(key=lambda item: item[0], reverse=True)

            for score, row in scored[:per_table_limit]:
                candidates.append(schemas.RetrievalResult(
                    id=str(row["record_id"]),
                    table_name=table_name,
                    preview=make_preview(row["content"]),
                    full_content=row["content"],
                    score=min(1.0, max(0.0, score)),
                    query_intent=intent,
                    relevance_reason=f"Semantic similarity of {score:.0%} to your question",
                    metadata={
                        "table": table_name,
                        "primary_key": "id",
                        "search_method": "embedding",
                    },
                ))

        candidates.sort(key=lambda result: result.score, reverse=True)
        return candidates[:match_count]

    # ------------------------------------------------------------------
    # Keyword fallback path
    # ------------------------------------------------------------------

    async def _keyword_search(
        self,
        query_text: str,
        intent: QueryIntent,
        match_count: int,
        user_id: Optional[str],
        context: Optional[schemas.UserContext],
    ) -> List[schemas.RetrievalResult]:
        try:
            if context is None:
                if self.aggregator is None or not user_id:
                    logger.warning("Keyword search has no context to search")
                    return []
                context = await self.aggregator.get_full_user_context(user_id)

            tables = INTENT_TABLES.get(intent)
            coping_tools: List[schemas.CopingTool] = []
            if user_id and (tables is None or "coping_tools" in tables):
                coping_tools = await self._load_coping_tools(user_id)

            fragments = build_fragments(context, user_id=user_id, coping_tools=coping_tools, tables=tables)
            results = self._rank_fragments(fragments, query_text, intent)
        except Exception as e:
            logger.error(f"Keyword search failed: {e}")
            return []

        logger.info(f"Keyword search ({intent.value}) returned {len(results[:match_count])} results")
        return results[:match_count]

    async def _load_coping_tools(self, user_id: str) -> List[schemas.CopingTool]:
        try:
            rows = await self.record_store.fetch("coping_tools", user_id)
        except Exception as e:
            logger.warning(f"Could not load coping tools for user {user_id}: {e}")
            return []
        return [schemas.CopingTool.model_validate(
            {key: value for key, value in row.items() if value is not None}
        ) for row in rows or []]

    def _rank_fragments(
        self,
        fragments: List[Fragment],
        query_text: str,
        intent: QueryIntent,
    ) -> List[schemas.RetrievalResult]:
        terms = query_terms(query_text)
        topic = INTENT_DESCRIPTIONS[intent]

        results: List[schemas.RetrievalResult] = []
        for fragment in fragments:
            lowered = fragment.content.lower()
            matched = [term for term in terms if term in lowered]
            overlap = len(matched) / len(terms) if terms else 0.0

            if intent == QueryIntent.general_search:
                if not matched:
                    continue
                score = GENERAL_BASE_SCORE + (MAX_KEYWORD_SCORE - GENERAL_BASE_SCORE) * overlap
                reason = f"Shares terms with your question: {', '.join(matched)}"
            else:
                score = INTENT_BASE_SCORE + (MAX_KEYWORD_SCORE - INTENT_BASE_SCORE) * overlap
                reason = f"Relevant to your {topic} question"
                if matched:
                    reason += f" (matched: {', '.join(matched)})"

            results.append(schemas.RetrievalResult(
                id=fragment.record_id,
                table_name=fragment.table_name,
                preview=make_preview(fragment.content),
                full_content=fragment.content,
                score=round(min(score, MAX_KEYWORD_SCORE), 4),
                query_intent=intent,
                relevance_reason=reason,
                metadata={
                    "table": fragment.table_name,
                    "primary_key": "id",
                    "search_method": "keyword",
                    "matched_terms": matched,
                },
            ))

        # Stable: equal scores keep table order, newest record first
        results.sort(key=lambda result: result.score, reverse=True)
        return results
