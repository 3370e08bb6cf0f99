"""Local sentence-transformers embedding backend.

Runs inference on this machine. The model is loaded lazily on first use
and cached under the configured models directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ..config import get_models_dir
from .base import EmbeddingBackend, EmbeddingError, EmbeddingKind
from .model_spec import DEFAULT_LOCAL_MODEL, ModelSpec

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)


class LocalBackend(EmbeddingBackend):
    """Local sentence-transformers embedding backend.

    Example:
        >>> backend = LocalBackend()
        >>> backend.embed(["horas extras habituais"]).shape
        (1, 384)
    """

    def __init__(
        self,
        spec: ModelSpec = DEFAULT_LOCAL_MODEL.spec,
        device: str | None = None,
        normalize: bool = True,
        models_dir: Path | str | None = None,
    ):
        """Initialize local backend.

        Args:
            spec: Model to run.
            device: Device for computation ('cuda', 'cpu', or None for auto).
            normalize: Whether to normalize embeddings for cosine similarity.
            models_dir: Model cache directory. Defaults to the configured one.
        """
        self._spec = spec
        self._device = device
        self._normalize = normalize
        self._models_dir = get_models_dir(models_dir)
        self._model: SentenceTransformer | None = None
        self._load_error: Exception | None = None

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    @property
    def dimension(self) -> int:
        return self._spec.dimension

    @property
    def name(self) -> str:
        return f"local:{self._spec.name}"

    def _get_model(self) -> SentenceTransformer:
        """Lazily initialize the sentence-transformers model.

        Raises:
            EmbeddingError: If the library is missing or the model fails to load.
        """
        if self._model is not None:
            return self._model
        if self._load_error is not None:
            raise EmbeddingError(f"Model unavailable: {self._load_error}", self.name)

        try:
            from sentence_transformers import SentenceTransformer

            self._models_dir.mkdir(parents=True, exist_ok=True)
            self._model = SentenceTransformer(
                self._spec.name,
                device=self._device,
                cache_folder=str(self._models_dir),
            )
        except ImportError as e:
            self._load_error = e
            raise EmbeddingError(
                "sentence-transformers required for local embeddings. "
                "Install with: pip install sentencify[local]",
                self.name,
            ) from e
        except (OSError, ValueError, RuntimeError) as e:
            self._load_error = e
            raise EmbeddingError(f"Failed to load model: {e}", self.name) from e

        logger.info(f"Loaded model '{self._spec.name}' on device '{self._model.device}'")
        return self._model

    def is_ready(self) -> bool:
        """Load the model on first call; False if it cannot be loaded."""
        try:
            self._get_model()
        except EmbeddingError as e:
            logger.warning(f"Local embedding backend not ready: {e}")
            return False
        return True

    def embed(
        self, texts: list[str], kind: EmbeddingKind = EmbeddingKind.PASSAGE
    ) -> np.ndarray:
        if not texts:
            return np.array([]).reshape(0, self.dimension)

        model = self._get_model()
        prefix = self._spec.prefix_for(kind)
        try:
            embeddings = model.encode(
                [prefix + text for text in texts],
                normalize_embeddings=self._normalize,
                show_progress_bar=False,
            )
        except (RuntimeError, ValueError) as e:
            raise EmbeddingError(f"Encoding failed: {e}", self.name) from e
        return np.asarray(embeddings, dtype=np.float32)


__all__ = ["LocalBackend"]
