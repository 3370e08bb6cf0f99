"""Guarded access to an embedding backend.

The reconciliation engine treats embeddings as optional enrichment. This
service turns every backend failure (not ready, error, timeout, wrong
dimension, non-finite values) into a missing embedding plus a warning.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING

import numpy as np

from ..config import EnvVar, get_environment, is_semantic_enabled
from ..similarity.text import build_document_text
from .base import EmbeddingBackend, EmbeddingKind

if TYPE_CHECKING:
    from ..library.models import Candidate

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Per-item embedding generation that never raises.

    Args:
        backend: Backend to call. None disables embeddings.
        enabled: Semantic feature flag.
        dimension: Expected vector length. Defaults to the backend's.
        timeout: Seconds to wait for one embedding call.
    """

    def __init__(
        self,
        backend: EmbeddingBackend | None = None,
        *,
        enabled: bool = False,
        dimension: int | None = None,
        timeout: float = 30.0,
    ):
        self._backend = backend
        self._enabled = enabled
        self._dimension = dimension
        self._timeout = timeout
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_environment(
        cls, backend: EmbeddingBackend | None = None
    ) -> EmbeddingService:
        """Build a service from SENTENCIFY_SEMANTIC_ENABLED and EMBEDDING_* vars."""
        enabled = is_semantic_enabled()
        if backend is None and enabled:
            from .factory import create_backend_from_environment

            backend = create_backend_from_environment()
        return cls(
            backend,
            enabled=enabled,
            dimension=get_environment(EnvVar.EMBEDDING_DIMENSION),
            timeout=get_environment(EnvVar.EMBEDDING_TIMEOUT),
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def backend(self) -> EmbeddingBackend | None:
        return self._backend

    @property
    def dimension(self) -> int | None:
        if self._dimension is not None:
            return self._dimension
        return self._backend.dimension if self._backend else None

    def is_available(self) -> bool:
        """True when the flag is on and the backend reports ready."""
        if not self._enabled or self._backend is None:
            return False
        try:
            return bool(self._backend.is_ready())
        except Exception as e:
            logger.warning(f"Embedding backend readiness check failed: {e}")
            return False

    def _call(self, text: str, kind: EmbeddingKind) -> np.ndarray:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="sentencify-embed"
            )
        future = self._executor.submit(self._backend.embed, [text], kind)
        return future.result(timeout=self._timeout)

    def embed_text(
        self, text: str, kind: EmbeddingKind = EmbeddingKind.PASSAGE
    ) -> list[float] | None:
        """Embed one text, or return None on any failure."""
        if self._backend is None or not text.strip():
            return None

        try:
            result = self._call(text, kind)
        except FutureTimeoutError:
            logger.warning(
                f"Embedding timed out after {self._timeout}s on {self._backend.name}; "
                "starting a fresh worker"
            )
            self._abandon_worker()
            return None
        except Exception as e:
            logger.warning(f"Embedding failed on {self._backend.name}: {e}")
            return None

        vector = np.asarray(result, dtype=np.float32).reshape(-1)
        expected = self.dimension
        if expected is not None and vector.shape[0] != expected:
            logger.warning(
                f"Discarding embedding of length {vector.shape[0]}, expected {expected}"
            )
            return None
        if not np.all(np.isfinite(vector)):
            logger.warning("Discarding embedding with non-finite values")
            return None
        return vector.tolist()

    def embed_document(
        self,
        title: str,
        keywords: str | list[str] | None,
        content: str | None,
    ) -> list[float] | None:
        """Embed a model's document text as a passage."""
        return self.embed_text(build_document_text(title, keywords, content))

    def embed_candidate(self, candidate: Candidate) -> list[float] | None:
        return self.embed_document(candidate.title, candidate.keywords, candidate.content)

    def _abandon_worker(self) -> None:
        # The timed-out call keeps its thread; later calls must not queue behind it.
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def close(self) -> None:
        self._abandon_worker()
        if self._backend is not None:
            self._backend.close()


__all__ = ["EmbeddingService"]
