"""Ollama embedding backend.

Calls a local Ollama server over HTTP.
"""

from __future__ import annotations

import logging

import httpx
import numpy as np

from ..config import EnvVar, get_environment
from .base import EmbeddingBackend, EmbeddingError, EmbeddingKind
from .model_spec import DEFAULT_OLLAMA_MODEL, ModelSpec

logger = logging.getLogger(__name__)


class OllamaBackend(EmbeddingBackend):
    """Embeddings from an Ollama server's /api/embeddings endpoint.

    Args:
        spec: Model to request.
        host: Server URL. Defaults to OLLAMA_HOST.
        timeout: HTTP timeout in seconds.
        client: Preconfigured httpx client (mainly for tests).
    """

    def __init__(
        self,
        spec: ModelSpec = DEFAULT_OLLAMA_MODEL.spec,
        host: str | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self._spec = spec
        self._host = (host or get_environment(EnvVar.OLLAMA_HOST)).rstrip("/")
        self._client = client or httpx.Client(base_url=self._host, timeout=timeout)

    @property
    def dimension(self) -> int:
        return self._spec.dimension

    @property
    def name(self) -> str:
        return f"ollama:{self._spec.name}"

    def is_ready(self) -> bool:
        """Check the server answers and has the model pulled."""
        try:
            response = self._client.get("/api/tags", timeout=2.0)
            response.raise_for_status()
            models = response.json().get("models", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Ollama not reachable at {self._host}: {e}")
            return False

        names = {m.get("name", "") for m in models}
        available = any(n.split(":")[0] == self._spec.name for n in names)
        if not available:
            logger.warning(f"Ollama model '{self._spec.name}' is not pulled")
        return available

    def _embed_one(self, text: str) -> list[float]:
        try:
            response = self._client.post(
                "/api/embeddings",
                json={"model": self._spec.name, "prompt": text},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Ollama request failed: {e}", self.name) from e

        vector = response.json().get("embedding")
        if not vector:
            raise EmbeddingError("Ollama returned no embedding", self.name)
        return vector

    def embed(
        self, texts: list[str], kind: EmbeddingKind = EmbeddingKind.PASSAGE
    ) -> np.ndarray:
        if not texts:
            return np.array([]).reshape(0, self.dimension)

        prefix = self._spec.prefix_for(kind)
        vectors = np.asarray(
            [self._embed_one(prefix + text) for text in texts], dtype=np.float32
        )
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms

    def close(self) -> None:
        self._client.close()


__all__ = ["OllamaBackend"]
