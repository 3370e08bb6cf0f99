"""Backend factory for creating embedding backends from model specs."""

from __future__ import annotations

import logging

from ..config import EnvVar, get_environment
from .base import EmbeddingBackend
from .model_spec import EmbeddingModel, ModelSpec, ProviderType, get_model_spec

logger = logging.getLogger(__name__)


def create_backend(
    model: str | EmbeddingModel | ModelSpec = EmbeddingModel.E5_SMALL,
    *,
    device: str | None = None,
    host: str | None = None,
    **kwargs,
) -> EmbeddingBackend:
    """Create an embedding backend from a model specification.

    Args:
        model: Model name, registry member or explicit ModelSpec.
        device: Device for local models ('cuda', 'cpu', or None for auto).
        host: Server URL for Ollama models.
        **kwargs: Additional arguments passed to backend constructor.

    Returns:
        Configured EmbeddingBackend instance.

    Raises:
        ValueError: If model is unknown or its provider unsupported.

    Example:
        >>> backend = create_backend("intfloat/multilingual-e5-small", device="cpu")
        >>> backend = create_backend(EmbeddingModel.OLLAMA_NOMIC)
    """
    spec = get_model_spec(model)

    if spec.provider == ProviderType.LOCAL:
        from .local import LocalBackend

        return LocalBackend(spec=spec, device=device, **kwargs)
    elif spec.provider == ProviderType.OLLAMA:
        from .ollama import OllamaBackend

        return OllamaBackend(spec=spec, host=host, **kwargs)
    else:
        raise ValueError(f"Unsupported provider type: {spec.provider}")


def create_backend_from_environment() -> EmbeddingBackend | None:
    """Build the backend named by EMBEDDING_BACKEND / EMBEDDING_MODEL.

    Models outside the registry are accepted with the configured
    EMBEDDING_DIMENSION.

    Returns:
        Backend instance, or None when EMBEDDING_BACKEND is 'none'.

    Raises:
        ValueError: If EMBEDDING_BACKEND names an unknown provider.
    """
    provider_name = (get_environment(EnvVar.EMBEDDING_BACKEND) or "none").lower()
    if provider_name == "none":
        return None

    try:
        provider = ProviderType(provider_name)
    except ValueError as e:
        raise ValueError(f"Unknown embedding backend: {provider_name}") from e

    model_name = get_environment(EnvVar.EMBEDDING_MODEL)
    known = EmbeddingModel.by_name(model_name)
    if known is not None and known.spec.provider == provider:
        spec = known.spec
    else:
        spec = ModelSpec(
            name=model_name,
            dimension=get_environment(EnvVar.EMBEDDING_DIMENSION),
            provider=provider,
        )
        logger.info(f"Using unregistered {provider.value} model '{model_name}'")

    return create_backend(spec)


__all__ = ["create_backend", "create_backend_from_environment"]
