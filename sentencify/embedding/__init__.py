"""Embedding backends for the optional semantic feature.

Provides pluggable backends for dense vector generation:
- LocalBackend: sentence-transformers, runs on this machine
- OllamaBackend: a local Ollama server over HTTP

Use `create_backend()` to pick one by model and `EmbeddingService` to call
it without ever failing a save:
    >>> from sentencify.embedding import EmbeddingService, create_backend
    >>> service = EmbeddingService(create_backend("intfloat/multilingual-e5-small"), enabled=True)
    >>> service.embed_document("Horas Extras", "jornada", "<p>...</p>")
"""

from .base import EmbeddingBackend, EmbeddingError, EmbeddingKind
from .factory import create_backend, create_backend_from_environment
from .model_spec import (
    DEFAULT_LOCAL_MODEL,
    DEFAULT_OLLAMA_MODEL,
    EmbeddingModel,
    ModelSpec,
    ProviderType,
    get_model_spec,
)
from .service import EmbeddingService

__all__ = [
    # Base class
    "EmbeddingBackend",
    "EmbeddingError",
    "EmbeddingKind",
    # Model specification system
    "DEFAULT_LOCAL_MODEL",
    "DEFAULT_OLLAMA_MODEL",
    "EmbeddingModel",
    "ModelSpec",
    "ProviderType",
    "get_model_spec",
    # Factory
    "create_backend",
    "create_backend_from_environment",
    # Service
    "EmbeddingService",
]
