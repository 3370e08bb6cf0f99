"""Tests for configuration management."""

from pathlib import Path

import pytest

from .lib import (
    EnvConfig,
    EnvVar,
    get_data_dir,
    get_db_path,
    get_environment,
    get_environment_info,
    get_models_dir,
    get_similarity_threshold,
    is_semantic_enabled,
    list_environment_variables,
)

# =============================================================================
# Tests for get_environment (main interface)
# =============================================================================


class TestGetEnvironment:
    """Tests for the unified get_environment interface."""

    @pytest.mark.unit
    def test_returns_default_when_not_set(self, monkeypatch):
        """Returns default value when env var is not set."""
        monkeypatch.delenv("SENTENCIFY_SIMILARITY_THRESHOLD", raising=False)
        assert get_environment(EnvVar.SIMILARITY_THRESHOLD) == 0.80

    @pytest.mark.unit
    def test_override_takes_priority(self, monkeypatch):
        """Override parameter takes highest priority."""
        monkeypatch.setenv("EMBEDDING_DIMENSION", "768")
        assert get_environment(EnvVar.EMBEDDING_DIMENSION, override=128) == 128

    @pytest.mark.unit
    def test_int_type_conversion(self, monkeypatch):
        """Integer type conversion from string."""
        monkeypatch.setenv("EMBEDDING_DIMENSION", "768")
        result = get_environment(EnvVar.EMBEDDING_DIMENSION)
        assert result == 768
        assert isinstance(result, int)

    @pytest.mark.unit
    def test_float_type_conversion(self, monkeypatch):
        """Float type conversion from string."""
        monkeypatch.setenv("EMBEDDING_TIMEOUT", "2.5")
        result = get_environment(EnvVar.EMBEDDING_TIMEOUT)
        assert result == 2.5
        assert isinstance(result, float)

    @pytest.mark.unit
    def test_bool_type_conversion_true(self, monkeypatch):
        """Boolean type conversion for true values."""
        for value in ("true", "1", "yes", "TRUE", "Yes"):
            monkeypatch.setenv("SENTENCIFY_SEMANTIC_ENABLED", value)
            assert get_environment(EnvVar.SEMANTIC_ENABLED) is True

    @pytest.mark.unit
    def test_bool_type_conversion_false(self, monkeypatch):
        """Boolean type conversion for false values."""
        for value in ("false", "0", "no", "FALSE", "No"):
            monkeypatch.setenv("SENTENCIFY_SEMANTIC_ENABLED", value)
            assert get_environment(EnvVar.SEMANTIC_ENABLED) is False

    @pytest.mark.unit
    def test_unrecognized_bool_returns_default(self, monkeypatch):
        monkeypatch.setenv("SENTENCIFY_SEMANTIC_ENABLED", "maybe")
        assert get_environment(EnvVar.SEMANTIC_ENABLED) is False

    @pytest.mark.unit
    def test_invalid_number_returns_default(self, monkeypatch):
        """Invalid numeric values return the default."""
        monkeypatch.setenv("EMBEDDING_DIMENSION", "not-a-number")
        monkeypatch.setenv("EMBEDDING_TIMEOUT", "soon")
        assert get_environment(EnvVar.EMBEDDING_DIMENSION) == 384
        assert get_environment(EnvVar.EMBEDDING_TIMEOUT) == 30.0

    @pytest.mark.unit
    def test_path_type(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTENCIFY_DATA_DIR", str(tmp_path))
        result = get_environment(EnvVar.DATA_DIR)
        assert isinstance(result, Path)
        assert result == tmp_path


class TestGetEnvironmentInfo:
    """Tests for environment variable metadata."""

    @pytest.mark.unit
    def test_returns_env_config(self):
        """Returns EnvConfig dataclass."""
        info = get_environment_info(EnvVar.EMBEDDING_DIMENSION)
        assert isinstance(info, EnvConfig)
        assert info.name == "EMBEDDING_DIMENSION"
        assert info.default == 384
        assert info.var_type is int
        assert info.category == "embedding"

    @pytest.mark.unit
    def test_every_variable_is_described(self):
        for var in EnvVar:
            assert get_environment_info(var).description


class TestListEnvironmentVariables:
    """Tests for listing environment variables."""

    @pytest.mark.unit
    def test_returns_all_variables(self):
        result = list_environment_variables()
        assert len(result) == len(EnvVar)

    @pytest.mark.unit
    def test_filter_by_category(self):
        library_vars = list_environment_variables("library")
        assert library_vars == [EnvVar.SIMILARITY_THRESHOLD, EnvVar.SEMANTIC_ENABLED]
        assert EnvVar.OLLAMA_HOST in list_environment_variables("embedding")


# =============================================================================
# Tests for convenience functions
# =============================================================================


class TestLibrarySettings:
    """Tests for threshold and semantic flag helpers."""

    @pytest.mark.unit
    def test_threshold_is_clamped(self, monkeypatch):
        monkeypatch.setenv("SENTENCIFY_SIMILARITY_THRESHOLD", "1.7")
        assert get_similarity_threshold() == 1.0
        assert get_similarity_threshold(override=-0.2) == 0.0

    @pytest.mark.unit
    def test_threshold_from_env(self, monkeypatch):
        monkeypatch.setenv("SENTENCIFY_SIMILARITY_THRESHOLD", "0.65")
        assert get_similarity_threshold() == pytest.approx(0.65)

    @pytest.mark.unit
    def test_semantic_flag_default_off(self, monkeypatch):
        monkeypatch.delenv("SENTENCIFY_SEMANTIC_ENABLED", raising=False)
        assert is_semantic_enabled() is False
        assert is_semantic_enabled(override=True) is True


class TestPaths:
    """Tests for data, database and model directory resolution."""

    @pytest.mark.unit
    def test_data_dir_override(self, tmp_path):
        assert get_data_dir(str(tmp_path / "x")) == tmp_path / "x"

    @pytest.mark.unit
    def test_data_dir_defaults_to_cwd(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SENTENCIFY_DATA_DIR", raising=False)
        monkeypatch.chdir(tmp_path)
        assert get_data_dir() == tmp_path / ".sentencify"

    @pytest.mark.unit
    def test_db_path_follows_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SENTENCIFY_DB_PATH", raising=False)
        monkeypatch.setenv("SENTENCIFY_DATA_DIR", str(tmp_path))
        assert get_db_path() == tmp_path / "library.db"

    @pytest.mark.unit
    def test_db_path_env_beats_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SENTENCIFY_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("SENTENCIFY_DB_PATH", str(tmp_path / "other.db"))
        assert get_db_path() == tmp_path / "other.db"

    @pytest.mark.unit
    def test_models_dir_follows_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SENTENCIFY_MODELS_DIR", raising=False)
        monkeypatch.setenv("SENTENCIFY_DATA_DIR", str(tmp_path))
        assert get_models_dir() == tmp_path / "models"
