"""Centralized configuration management for sentencify.

Provides unified access to all configuration via the `get_environment()` function.

Example:
    >>> from sentencify.config import EnvVar, get_environment
    >>>
    >>> threshold = get_environment(EnvVar.SIMILARITY_THRESHOLD)  # 0.8
    >>>
    >>> # List available variables by category
    >>> for var in list_environment_variables("embedding"):
    ...     info = get_environment_info(var)
    ...     print(f"{info.name}: {info.description}")

Environment Variable Categories:
    library: Similarity threshold and semantic feature flag
    embedding: Embedding backend, model, dimension and timeout
    storage: Data directory, database and model cache paths
    logging: Log level
"""

from .lib import (
    # Core types
    EnvConfig,
    EnvVar,
    # Main interface
    get_data_dir,
    get_db_path,
    get_environment,
    get_environment_info,
    get_models_dir,
    get_similarity_threshold,
    is_semantic_enabled,
    # Introspection
    list_environment_variables,
)

__all__ = [
    # Core types
    "EnvConfig",
    "EnvVar",
    # Main interface
    "get_environment",
    "get_environment_info",
    # Convenience functions
    "get_data_dir",
    "get_db_path",
    "get_models_dir",
    "get_similarity_threshold",
    "is_semantic_enabled",
    # Introspection
    "list_environment_variables",
]
