"""
Embedding service using Google embeddings.
Masks PII before embedding and supports batch operations.
"""
from typing import List, Optional
import logging
import os
import google.generativeai as genai
from services.pii_masking import PIIMaskingService

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when the embedding provider fails or returns an unusable payload."""


class EmbeddingService:
    def __init__(self, pii_masker: Optional[PIIMaskingService] = None):
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable is required")
        genai.configure(api_key=api_key)
        self.model_name = os.getenv("EMBEDDING_MODEL", "gemini-embedding-001")
        self.pii_masker = pii_masker or PIIMaskingService()

    def embed_texts(self, texts: List[str], task_type: str = "retrieval_document") -> List[List[float]]:
        """
        Embed a batch of texts.

        Args:
            texts: Texts to embed
            task_type: Provider task hint (retrieval_document or retrieval_query)

        Returns:
            One vector per input text, in order

        Raises:
            EmbeddingError: If the provider call fails or the response is malformed
        """
        if not texts:
            return []

        masked = self.pii_masker.mask_fragments(texts)
        try:
            res = genai.embed_content(
                model=self.model_name,
                content=masked,
                task_type=task_type,
            )
        except Exception as e:
            logger.error(f"Embedding request failed: {e}")
            raise EmbeddingError(f"Failed to embed texts: {str(e)}") from e

        vectors = res.get("embedding") if isinstance(res, dict) else None
        if not vectors:
            raise EmbeddingError("Embedding response contained no vectors")
        # A single input comes back as a flat vector
        if not isinstance(vectors[0], list):
            vectors = [vectors]
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return [[float(value) for value in vector] for vector in vectors]

    def embed_query(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty query")
        return self.embed_texts([text], task_type="retrieval_query")[0]
