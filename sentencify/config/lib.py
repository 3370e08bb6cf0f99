"""Centralized environment configuration management for sentencify.

Provides a unified interface for all environment variables with:
- Single `get_environment()` function for all configuration
- Type-safe enum with metadata (default, type, description)
- Consistent resolution: override > environment > default

Example:
    >>> from sentencify.config import EnvVar, get_environment
    >>>
    >>> threshold = get_environment(EnvVar.SIMILARITY_THRESHOLD)  # float
    >>> semantic = get_environment(EnvVar.SEMANTIC_ENABLED)  # bool
    >>>
    >>> # Override at runtime
    >>> threshold = get_environment(EnvVar.SIMILARITY_THRESHOLD, override=0.9)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, overload

# =============================================================================
# Environment Variable Configuration
# =============================================================================


@dataclass(frozen=True)
class EnvConfig:
    """Metadata for an environment variable.

    Attributes:
        name: Environment variable name (e.g., "EMBEDDING_TIMEOUT").
        default: Default value if not set in environment.
        var_type: Python type for value conversion (str, int, float, bool, Path).
        description: Human-readable description.
        category: Grouping category for documentation.
    """

    name: str
    default: Any
    var_type: type
    description: str = ""
    category: str = "general"


class EnvVar(Enum):
    """All environment variables used by sentencify.

    Categories:
        - library: Similarity gate and semantic feature switches
        - embedding: Embedding provider configuration
        - storage: Data directory and database paths
        - logging: Log output
    """

    # -------------------------------------------------------------------------
    # Library Behaviour
    # -------------------------------------------------------------------------
    SIMILARITY_THRESHOLD = EnvConfig(
        name="SENTENCIFY_SIMILARITY_THRESHOLD",
        default=0.80,
        var_type=float,
        description="Minimum cosine score treated as a duplicate (0-1)",
        category="library",
    )
    SEMANTIC_ENABLED = EnvConfig(
        name="SENTENCIFY_SEMANTIC_ENABLED",
        default=False,
        var_type=bool,
        description="Generate embeddings for saved models",
        category="library",
    )

    # -------------------------------------------------------------------------
    # Embedding Configuration
    # -------------------------------------------------------------------------
    EMBEDDING_BACKEND = EnvConfig(
        name="EMBEDDING_BACKEND",
        default="none",
        var_type=str,
        description="Embedding backend: 'local', 'ollama' or 'none'",
        category="embedding",
    )
    EMBEDDING_MODEL = EnvConfig(
        name="EMBEDDING_MODEL",
        default="intfloat/multilingual-e5-small",
        var_type=str,
        description="Embedding model name",
        category="embedding",
    )
    EMBEDDING_DIMENSION = EnvConfig(
        name="EMBEDDING_DIMENSION",
        default=384,
        var_type=int,
        description="Expected embedding vector length",
        category="embedding",
    )
    EMBEDDING_TIMEOUT = EnvConfig(
        name="EMBEDDING_TIMEOUT",
        default=30.0,
        var_type=float,
        description="Seconds to wait for a single embedding call",
        category="embedding",
    )
    OLLAMA_HOST = EnvConfig(
        name="OLLAMA_HOST",
        default="http://localhost:11434",
        var_type=str,
        description="Ollama server URL for embeddings",
        category="embedding",
    )

    # -------------------------------------------------------------------------
    # Storage Paths
    # -------------------------------------------------------------------------
    DATA_DIR = EnvConfig(
        name="SENTENCIFY_DATA_DIR",
        default=None,  # Computed from cwd
        var_type=Path,
        description="Library data directory",
        category="storage",
    )
    DB_PATH = EnvConfig(
        name="SENTENCIFY_DB_PATH",
        default=None,  # {data_dir}/library.db
        var_type=Path,
        description="SQLite database holding the model library",
        category="storage",
    )
    MODELS_DIR = EnvConfig(
        name="SENTENCIFY_MODELS_DIR",
        default=None,  # {data_dir}/models
        var_type=Path,
        description="Local embedding model cache",
        category="storage",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    LOG_LEVEL = EnvConfig(
        name="LOG_LEVEL",
        default="INFO",
        var_type=str,
        description="Log level name (DEBUG, INFO, WARNING, ...)",
        category="logging",
    )


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def _parse_bool(value: str) -> bool | None:
    """Parse string to boolean.

    Recognizes: true/false, 1/0, yes/no (case-insensitive).
    Returns None for unrecognized values.
    """
    normalized = value.lower().strip()
    if normalized in ("true", "1", "yes"):
        return True
    if normalized in ("false", "0", "no"):
        return False
    return None


def _convert_value(value: str | None, var_type: type, default: Any) -> Any:
    """Convert string value to target type.

    Args:
        value: Raw string value from environment (or None).
        var_type: Target Python type.
        default: Default value if conversion fails or value is None.

    Returns:
        Converted value or default.
    """
    if value is None:
        return default

    if var_type is str:
        return value

    if var_type is int:
        try:
            return int(value)
        except ValueError:
            return default

    if var_type is float:
        try:
            return float(value)
        except ValueError:
            return default

    if var_type is bool:
        result = _parse_bool(value)
        return result if result is not None else default

    if var_type is Path:
        return Path(value).expanduser()

    return value


# =============================================================================
# Main Interface
# =============================================================================


@overload
def get_environment(env_var: EnvVar, override: int) -> int: ...
@overload
def get_environment(env_var: EnvVar, override: float) -> float: ...
@overload
def get_environment(env_var: EnvVar, override: str) -> str: ...
@overload
def get_environment(env_var: EnvVar, override: bool) -> bool: ...
@overload
def get_environment(env_var: EnvVar, override: Path) -> Path: ...
@overload
def get_environment(env_var: EnvVar, override: None = None) -> Any: ...


def get_environment(env_var: EnvVar, override: Any = None) -> Any:
    """Get environment variable value with type conversion.

    Resolution priority:
        1. Explicit override parameter (highest)
        2. Environment variable value
        3. Default from EnvConfig (lowest)

    Args:
        env_var: Environment variable enum member.
        override: Optional override value (bypasses env lookup).

    Returns:
        Value converted to the appropriate type.
    """
    config: EnvConfig = env_var.value

    if override is not None:
        return override

    raw_value = os.environ.get(config.name)
    return _convert_value(raw_value, config.var_type, config.default)


def get_environment_info(env_var: EnvVar) -> EnvConfig:
    """Get metadata for an environment variable."""
    return env_var.value


# =============================================================================
# Convenience Functions
# =============================================================================


def get_data_dir(override: Path | str | None = None) -> Path:
    """Get the library data directory.

    Resolution: override > SENTENCIFY_DATA_DIR > {cwd}/.sentencify
    """
    if override is not None:
        return Path(override)

    env_path = get_environment(EnvVar.DATA_DIR)
    if env_path:
        return env_path

    return Path.cwd() / ".sentencify"


def get_db_path(override: Path | str | None = None) -> Path:
    """Get the SQLite database path.

    Resolution: override > SENTENCIFY_DB_PATH > {data_dir}/library.db
    """
    if override is not None:
        return Path(override)

    env_path = get_environment(EnvVar.DB_PATH)
    if env_path:
        return env_path

    return get_data_dir() / "library.db"


def get_models_dir(override: Path | str | None = None) -> Path:
    """Get the embedding model cache directory."""
    if override is not None:
        return Path(override)

    env_path = get_environment(EnvVar.MODELS_DIR)
    if env_path:
        return env_path

    return get_data_dir() / "models"


def get_similarity_threshold(override: float | None = None) -> float:
    """Get the duplicate threshold, clamped to [0, 1]."""
    value = float(get_environment(EnvVar.SIMILARITY_THRESHOLD, override=override))
    return min(1.0, max(0.0, value))


def is_semantic_enabled(override: bool | None = None) -> bool:
    """Check whether embeddings should be generated on save."""
    return bool(get_environment(EnvVar.SEMANTIC_ENABLED, override=override))


def list_environment_variables(category: str | None = None) -> list[EnvVar]:
    """List all environment variables, optionally filtered by category.

    Args:
        category: Filter by category (library, embedding, storage, logging).
                 None returns all variables.

    Returns:
        List of EnvVar enum members.
    """
    if category is None:
        return list(EnvVar)

    return [var for var in EnvVar if var.value.category == category]


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
