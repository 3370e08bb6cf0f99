"""Abstract base class for embedding backends."""

from abc import ABC, abstractmethod
from enum import Enum

import numpy as np


class EmbeddingKind(str, Enum):
    """Role of the text being embedded.

    Asymmetric models (e5, nomic) encode stored passages and search queries
    with different prefixes.
    """

    PASSAGE = "passage"
    QUERY = "query"


class EmbeddingError(Exception):
    """Raised by a backend when an embedding cannot be produced."""

    def __init__(self, message: str, backend: str | None = None):
        super().__init__(message)
        self.backend = backend


class EmbeddingBackend(ABC):
    """Abstract interface for embedding generation.

    Embedding backends convert text into dense vector representations.
    Implementations may run a local model (sentence-transformers) or call
    a local server (Ollama).
    """

    @abstractmethod
    def is_ready(self) -> bool:
        """Check whether the backend can produce embeddings right now."""

    @abstractmethod
    def embed(
        self, texts: list[str], kind: EmbeddingKind = EmbeddingKind.PASSAGE
    ) -> np.ndarray:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of text strings to embed.
            kind: Whether the texts are stored passages or queries.

        Returns:
            NumPy array of shape (len(texts), dimension).

        Raises:
            EmbeddingError: If generation fails.
        """

    def embed_query(self, query: str) -> np.ndarray:
        """Generate embedding for a single query.

        Returns:
            NumPy array of shape (dimension,).
        """
        return self.embed([query], kind=EmbeddingKind.QUERY)[0]

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Get the embedding vector dimension."""

    @property
    def name(self) -> str:
        """Get backend name for logging."""
        return self.__class__.__name__

    def close(self) -> None:
        """Release backend resources."""


__all__ = ["EmbeddingBackend", "EmbeddingError", "EmbeddingKind"]
