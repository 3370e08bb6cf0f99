"""Tests for embedding backends, registry and the guarded service."""

import httpx
import numpy as np
import pytest

from sentencify.conftest import FakeEmbeddingBackend, make_candidate

from .base import EmbeddingKind
from .factory import create_backend, create_backend_from_environment
from .local import LocalBackend
from .model_spec import (
    DEFAULT_LOCAL_MODEL,
    EmbeddingModel,
    ModelSpec,
    ProviderType,
    get_model_spec,
)
from .ollama import OllamaBackend
from .service import EmbeddingService

# =============================================================================
# Model Registry
# =============================================================================


class TestModelSpec:
    """Tests for the model registry."""

    @pytest.mark.unit
    def test_default_local_model(self):
        spec = DEFAULT_LOCAL_MODEL.spec
        assert spec.name == "intfloat/multilingual-e5-small"
        assert spec.dimension == 384
        assert spec.is_local

    @pytest.mark.unit
    def test_prefixes(self):
        spec = EmbeddingModel.E5_SMALL.spec
        assert spec.prefix_for(EmbeddingKind.PASSAGE) == "passage: "
        assert spec.prefix_for(EmbeddingKind.QUERY) == "query: "
        assert EmbeddingModel.MINILM_MULTILINGUAL.spec.prefix_for(EmbeddingKind.QUERY) == ""

    @pytest.mark.unit
    def test_lookup(self):
        assert get_model_spec("nomic-embed-text") is EmbeddingModel.OLLAMA_NOMIC.spec
        assert get_model_spec(EmbeddingModel.E5_BASE).dimension == 768
        with pytest.raises(ValueError, match="Unknown model"):
            get_model_spec("no-such-model")

    @pytest.mark.unit
    def test_list_for_provider(self):
        ollama = EmbeddingModel.list_for(ProviderType.OLLAMA)
        assert ollama and all(m.spec.provider == ProviderType.OLLAMA for m in ollama)


# =============================================================================
# Factory
# =============================================================================


class TestFactory:
    """Tests for backend construction."""

    @pytest.mark.unit
    def test_local_backend_is_lazy(self, tmp_path):
        backend = create_backend(EmbeddingModel.E5_SMALL, models_dir=tmp_path)
        assert isinstance(backend, LocalBackend)
        assert backend.dimension == 384
        assert backend.name == "local:intfloat/multilingual-e5-small"

    @pytest.mark.unit
    def test_ollama_backend(self):
        backend = create_backend("nomic-embed-text", host="http://ollama:11434")
        assert isinstance(backend, OllamaBackend)
        assert backend.dimension == 768
        backend.close()

    @pytest.mark.unit
    def test_environment_none(self, monkeypatch):
        monkeypatch.setenv("EMBEDDING_BACKEND", "none")
        assert create_backend_from_environment() is None

    @pytest.mark.unit
    def test_environment_unknown_provider(self, monkeypatch):
        monkeypatch.setenv("EMBEDDING_BACKEND", "carrier-pigeon")
        with pytest.raises(ValueError, match="Unknown embedding backend"):
            create_backend_from_environment()

    @pytest.mark.unit
    def test_environment_unregistered_model(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EMBEDDING_BACKEND", "local")
        monkeypatch.setenv("EMBEDDING_MODEL", "my-org/custom-model")
        monkeypatch.setenv("EMBEDDING_DIMENSION", "256")
        monkeypatch.setenv("SENTENCIFY_MODELS_DIR", str(tmp_path))
        backend = create_backend_from_environment()
        assert isinstance(backend, LocalBackend)
        assert backend.spec == ModelSpec(
            name="my-org/custom-model", dimension=256, provider=ProviderType.LOCAL
        )


# =============================================================================
# Ollama Backend
# =============================================================================


def _ollama(handler) -> OllamaBackend:
    client = httpx.Client(
        base_url="http://ollama.test", transport=httpx.MockTransport(handler)
    )
    return OllamaBackend(
        spec=EmbeddingModel.OLLAMA_NOMIC.spec, host="http://ollama.test", client=client
    )


class TestOllamaBackend:
    """Tests for the Ollama HTTP backend."""

    @pytest.mark.unit
    def test_embed_sends_prefixed_prompt_and_normalizes(self):
        prompts = []

        def handler(request: httpx.Request) -> httpx.Response:
            import json

            body = json.loads(request.content)
            prompts.append(body["prompt"])
            assert request.url.path == "/api/embeddings"
            assert body["model"] == "nomic-embed-text"
            return httpx.Response(200, json={"embedding": [3.0, 4.0]})

        vectors = _ollama(handler).embed(["horas extras"])
        assert prompts == ["search_document: horas extras"]
        np.testing.assert_allclose(vectors, [[0.6, 0.8]], rtol=1e-6)

    @pytest.mark.unit
    def test_query_prefix(self):
        prompts = []

        def handler(request: httpx.Request) -> httpx.Response:
            import json

            prompts.append(json.loads(request.content)["prompt"])
            return httpx.Response(200, json={"embedding": [1.0, 0.0]})

        _ollama(handler).embed_query("ferias")
        assert prompts == ["search_query: ferias"]

    @pytest.mark.unit
    def test_http_error_raises_embedding_error(self):
        from .base import EmbeddingError

        backend = _ollama(lambda request: httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(EmbeddingError):
            backend.embed(["x"])

    @pytest.mark.unit
    def test_is_ready_checks_pulled_models(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"models": [{"name": "nomic-embed-text:latest"}]})

        assert _ollama(handler).is_ready() is True

    @pytest.mark.unit
    def test_not_ready_when_model_missing_or_unreachable(self):
        missing = _ollama(lambda r: httpx.Response(200, json={"models": [{"name": "llama3:8b"}]}))
        assert missing.is_ready() is False

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert _ollama(refuse).is_ready() is False


# =============================================================================
# Embedding Service
# =============================================================================


class TestEmbeddingService:
    """Tests for the never-raising service wrapper."""

    @pytest.mark.unit
    def test_disabled_service_is_unavailable(self, fake_backend):
        service = EmbeddingService(fake_backend, enabled=False)
        assert service.is_available() is False

    @pytest.mark.unit
    def test_not_ready_backend_is_unavailable(self):
        service = EmbeddingService(FakeEmbeddingBackend(ready=False), enabled=True)
        assert service.is_available() is False

    @pytest.mark.unit
    def test_embeds_document_text(self, fake_backend):
        service = EmbeddingService(fake_backend, enabled=True)
        vector = service.embed_document("Horas Extras", ["jornada"], "<p>corpo</p>")
        assert isinstance(vector, list)
        assert len(vector) == 8
        assert fake_backend.calls == [("Horas Extras jornada corpo", EmbeddingKind.PASSAGE)]
        service.close()

    @pytest.mark.unit
    def test_embed_candidate(self, fake_backend):
        service = EmbeddingService(fake_backend, enabled=True)
        vector = service.embed_candidate(make_candidate("Horas"))
        assert np.linalg.norm(vector) == pytest.approx(1.0, rel=1e-5)
        service.close()

    @pytest.mark.unit
    def test_backend_failure_returns_none(self):
        service = EmbeddingService(FakeEmbeddingBackend(fail_marker="quebra"), enabled=True)
        assert service.embed_text("isto quebra") is None
        assert service.embed_text("isto funciona") is not None
        service.close()

    @pytest.mark.unit
    def test_timeout_returns_none(self):
        service = EmbeddingService(
            FakeEmbeddingBackend(delay=0.5), enabled=True, timeout=0.05
        )
        assert service.embed_text("lento") is None
        service.close()

    @pytest.mark.unit
    def test_call_after_timeout_is_not_queued_behind_it(self):
        backend = FakeEmbeddingBackend(delay=1.0, slow_marker="lento")
        service = EmbeddingService(backend, enabled=True, timeout=0.3)

        assert service.embed_text("texto lento") is None
        assert service.embed_text("texto rapido") is not None
        assert service.embed_text("outro texto") is not None
        service.close()

    @pytest.mark.unit
    def test_wrong_dimension_returns_none(self, fake_backend):
        service = EmbeddingService(fake_backend, enabled=True, dimension=16)
        assert service.embed_text("texto") is None
        service.close()

    @pytest.mark.unit
    def test_non_finite_vector_returns_none(self):
        class NaNBackend(FakeEmbeddingBackend):
            def embed(self, texts, kind=EmbeddingKind.PASSAGE):
                return np.full((len(texts), self.dimension), np.nan, dtype=np.float32)

        service = EmbeddingService(NaNBackend(), enabled=True)
        assert service.embed_text("texto") is None
        service.close()

    @pytest.mark.unit
    def test_blank_text_is_not_sent(self, fake_backend):
        service = EmbeddingService(fake_backend, enabled=True)
        assert service.embed_text("   ") is None
        assert fake_backend.calls == []

    @pytest.mark.unit
    def test_from_environment_disabled(self, monkeypatch):
        monkeypatch.setenv("SENTENCIFY_SEMANTIC_ENABLED", "false")
        service = EmbeddingService.from_environment()
        assert service.enabled is False
        assert service.backend is None

    @pytest.mark.unit
    def test_from_environment_with_backend(self, monkeypatch, fake_backend):
        monkeypatch.setenv("SENTENCIFY_SEMANTIC_ENABLED", "true")
        monkeypatch.setenv("EMBEDDING_DIMENSION", "8")
        monkeypatch.setenv("EMBEDDING_TIMEOUT", "5")
        service = EmbeddingService.from_environment(backend=fake_backend)
        assert service.enabled and service.dimension == 8
        assert service.is_available()
