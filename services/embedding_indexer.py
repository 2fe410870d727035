"""
Embedding indexer: embeds a user's searchable records into record_embeddings
so the semantic search path has something to rank.
"""
from typing import Dict, List
import asyncio
import logging

import schemas
from services.context_aggregator import ContextAggregator
from services.embedding_service import EmbeddingService
from services.fragments import Fragment, build_fragments
from services.record_store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 16


class EmbeddingIndexer:
    def __init__(self, record_store: RecordStore, aggregator: ContextAggregator,
                 embedding_service: EmbeddingService):
        self.record_store = record_store
        self.aggregator = aggregator
        self.embedding_service = embedding_service

    async def index_user_records(self, user_id: str, batch_size: int = DEFAULT_BATCH_SIZE) -> Dict[str, int]:
        """
        Rebuild the embedding index for one user.

        A failed batch is counted as errors and does not stop the remaining
        batches. The user's own rows for records that no longer exist
        (deleted or archived) are removed afterwards.

        Args:
            user_id: User whose records are indexed
            batch_size: Fragments per embedding request

        Returns:
            Dictionary with 'processed', 'success' and 'error' counts
        """
        context = await self.aggregator.get_full_user_context(user_id)
        tool_rows = await self.record_store.fetch("coping_tools", user_id)
        coping_tools = [
            schemas.CopingTool.model_validate({k: v for k, v in row.items() if v is not None})
            for row in tool_rows or []
        ]

        fragments = build_fragments(context, user_id=user_id, coping_tools=coping_tools)
        batch_size = max(1, batch_size)
        stats = {"processed": 0, "success": 0, "error": 0}

        for start in range(0, len(fragments), batch_size):
            batch = fragments[start:start + batch_size]
            stats["processed"] += len(batch)
            try:
                vectors = await asyncio.to_thread(
                    self.embedding_service.embed_texts, [fragment.content for fragment in batch]
                )
                rows = self._to_rows(batch, vectors)
                await self.record_store.upsert_record_embeddings(rows)
                stats["success"] += len(batch)
            except Exception as e:
                stats["error"] += len(batch)
                logger.error(f"Failed to index batch {start // batch_size} for user {user_id}: {e}")

        keep_keys = {
            (fragment.table_name, fragment.record_id)
            for fragment in fragments if fragment.user_id == user_id
        }
        removed = await self.record_store.delete_record_embeddings(user_id, keep_keys)
        if removed:
            logger.info(f"Removed {removed} stale index rows for user {user_id}")

        logger.info(
            f"Indexed records for user {user_id}: {stats['success']}/{stats['processed']} succeeded"
        )
        return stats

    def _to_rows(self, batch: List[Fragment], vectors: List[List[float]]) -> List[Dict]:
        return [
            {
                "user_id": fragment.user_id,
                "table_name": fragment.table_name,
                "record_id": fragment.record_id,
                "content": fragment.content,
                "embedding_vector": vector,
                "embedding_model": self.embedding_service.model_name,
            }
            for fragment, vector in zip(batch, vectors)
        ]
