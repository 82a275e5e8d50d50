"""
Embedding Generator
Converts text to vector embeddings using OpenAI text-embedding-3-small.

Architecture:
- Model: text-embedding-3-small (OpenAI), truncated to EMBEDDING_DIM
- Dimensions: 1024 by default so probe vectors match the knowledge_base collection
- Async client for request-path probes; sync batch helper for the indexing script
"""

import os
from typing import List, Optional

import numpy as np
import openai
from openai import AsyncOpenAI, OpenAI
from tqdm import tqdm

from generation.errors import EmbeddingUnavailable


def _l2_normalize(vector: List[float]) -> List[float]:
    arr = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr.tolist()
    return (arr / norm).tolist()


class EmbeddingGenerator:
    """
    Generate embeddings for text using OpenAI embeddings.

    Probe vectors must share the knowledge_base collection size (EMBEDDING_DIM).
    """

    DEFAULT_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "1024"))

    def __init__(self, model_name: str = DEFAULT_MODEL, api_key: str = None):
        """
        Args:
            model_name: OpenAI model name
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
        """
        self.model_name = model_name
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")

        if not self.api_key:
            raise RuntimeError(
                "OPENAI_API_KEY not set. Please set environment variable or pass api_key parameter."
            )

        self.client = AsyncOpenAI(api_key=self.api_key)
        self._sync_client: Optional[OpenAI] = None

    async def embed(
        self,
        text: str,
        dimension: int = EMBEDDING_DIM,
        normalize: bool = True,
    ) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingUnavailable: on any API or transport failure, or an empty input
        """
        if not text or not text.strip():
            raise EmbeddingUnavailable("Cannot embed empty text")
        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.model_name,
                dimensions=dimension,
            )
        except openai.OpenAIError as e:
            raise EmbeddingUnavailable(f"Embedding request failed: {e}") from e

        embedding = response.data[0].embedding
        return _l2_normalize(embedding) if normalize else embedding

    def generate_embeddings_batch(
        self,
        texts: List[str],
        batch_size: int = 100,
        show_progress: bool = True,
        dimension: int = EMBEDDING_DIM,
    ) -> List[List[float]]:
        """
        Generate normalized embeddings for multiple texts (batched, synchronous).

        Used by seed_knowledge_base.py. A failed batch raises EmbeddingUnavailable.
        """
        if not texts:
            return []
        if self._sync_client is None:
            self._sync_client = OpenAI(api_key=self.api_key)

        processed_texts = [text if text and text.strip() else " " for text in texts]
        batches = [
            processed_texts[i:i + batch_size]
            for i in range(0, len(processed_texts), batch_size)
        ]
        iterator = tqdm(batches, desc="Batches") if show_progress and len(batches) > 1 else batches

        all_embeddings: List[List[float]] = []
        for batch in iterator:
            try:
                response = self._sync_client.embeddings.create(
                    input=batch,
                    model=self.model_name,
                    dimensions=dimension,
                )
            except openai.OpenAIError as e:
                raise EmbeddingUnavailable(f"Batch embedding failed: {e}") from e
            all_embeddings.extend(_l2_normalize(item.embedding) for item in response.data)
        return all_embeddings


# Singleton instance for reuse
_embedding_generator: Optional[EmbeddingGenerator] = None


def get_embedding_generator() -> EmbeddingGenerator:
    """
    Shared generator; the OpenAI client is built on first use.
    """
    global _embedding_generator
    if _embedding_generator is None:
        _embedding_generator = EmbeddingGenerator()
    return _embedding_generator
