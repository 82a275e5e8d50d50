"""
Embeddings package
Handles text-to-vector conversion and the Qdrant-backed context store
"""

from .generator import (
    EmbeddingGenerator,
    get_embedding_generator,
)

__all__ = [
    "EmbeddingGenerator",
    "get_embedding_generator",
]
