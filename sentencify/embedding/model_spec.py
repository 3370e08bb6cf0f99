"""Model specification system for embedding backends.

Provides a unified way to define and select embedding models across
providers (local sentence-transformers, Ollama).
"""

from dataclasses import dataclass
from enum import Enum

from .base import EmbeddingKind


class ProviderType(Enum):
    """Available embedding backend providers."""

    LOCAL = "local"
    OLLAMA = "ollama"


@dataclass(frozen=True)
class ModelSpec:
    """Specification for an embedding model.

    Attributes:
        name: Model identifier as understood by the provider.
        dimension: Output embedding vector dimension.
        provider: Which backend provider to use.
        max_tokens: Maximum input context length.
        passage_prefix: Text prepended to stored passages.
        query_prefix: Text prepended to search queries.
        description: Human-readable description.
        size_mb: Approximate model size in megabytes (for local models).
    """

    name: str
    dimension: int
    provider: ProviderType
    max_tokens: int = 512
    passage_prefix: str = ""
    query_prefix: str = ""
    description: str = ""
    size_mb: int | None = None

    @property
    def is_local(self) -> bool:
        return self.provider == ProviderType.LOCAL

    def prefix_for(self, kind: EmbeddingKind) -> str:
        return self.query_prefix if kind == EmbeddingKind.QUERY else self.passage_prefix


class EmbeddingModel(Enum):
    """Registry of known embedding models.

    Example:
        >>> EmbeddingModel.E5_SMALL.spec.dimension
        384
    """

    # Multilingual models suited to Portuguese legal text
    E5_SMALL = ModelSpec(
        name="intfloat/multilingual-e5-small",
        dimension=384,
        provider=ProviderType.LOCAL,
        passage_prefix="passage: ",
        query_prefix="query: ",
        description="Small multilingual e5, fast on CPU",
        size_mb=470,
    )

    E5_BASE = ModelSpec(
        name="intfloat/multilingual-e5-base",
        dimension=768,
        provider=ProviderType.LOCAL,
        passage_prefix="passage: ",
        query_prefix="query: ",
        description="Base multilingual e5, better quality",
        size_mb=1110,
    )

    MINILM_MULTILINGUAL = ModelSpec(
        name="sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2",
        dimension=384,
        provider=ProviderType.LOCAL,
        max_tokens=128,
        description="Multilingual paraphrase model, symmetric",
        size_mb=470,
    )

    # Ollama-served models
    OLLAMA_NOMIC = ModelSpec(
        name="nomic-embed-text",
        dimension=768,
        provider=ProviderType.OLLAMA,
        max_tokens=8192,
        passage_prefix="search_document: ",
        query_prefix="search_query: ",
        description="Nomic embed served by Ollama",
    )

    OLLAMA_MXBAI = ModelSpec(
        name="mxbai-embed-large",
        dimension=1024,
        provider=ProviderType.OLLAMA,
        description="mxbai large served by Ollama",
    )

    @property
    def spec(self) -> ModelSpec:
        """Get the ModelSpec for this model."""
        return self.value

    @classmethod
    def by_name(cls, name: str) -> "EmbeddingModel | None":
        """Look up model by name string."""
        for model in cls:
            if model.spec.name == name:
                return model
        return None

    @classmethod
    def list_for(cls, provider: ProviderType) -> list["EmbeddingModel"]:
        return [m for m in cls if m.spec.provider == provider]


DEFAULT_LOCAL_MODEL = EmbeddingModel.E5_SMALL
DEFAULT_OLLAMA_MODEL = EmbeddingModel.OLLAMA_NOMIC


def get_model_spec(
    model: str | EmbeddingModel | ModelSpec,
) -> ModelSpec:
    """Resolve a model reference to its ModelSpec.

    Raises:
        ValueError: If model name not found in registry.
    """
    if isinstance(model, ModelSpec):
        return model
    if isinstance(model, EmbeddingModel):
        return model.spec
    found = EmbeddingModel.by_name(model)
    if found:
        return found.spec
    raise ValueError(f"Unknown model: {model}")


__all__ = [
    "DEFAULT_LOCAL_MODEL",
    "DEFAULT_OLLAMA_MODEL",
    "EmbeddingModel",
    "ModelSpec",
    "ProviderType",
    "get_model_spec",
]
