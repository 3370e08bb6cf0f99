"""Shared test fixtures for sentencify."""

from __future__ import annotations

import time
import zlib
from collections.abc import Sequence

import numpy as np
import pytest

from sentencify.embedding import EmbeddingBackend, EmbeddingError, EmbeddingKind
from sentencify.library import (
    Candidate,
    ChangeLedger,
    InMemoryStorage,
    LibraryStore,
    Model,
)
from sentencify.similarity import SimilarityResult

# =============================================================================
# Fake Backends
# =============================================================================


class FakeEmbeddingBackend(EmbeddingBackend):
    """Deterministic embedding backend for tests.

    Vectors are seeded from a CRC of the text, so equal texts give equal
    vectors across runs.

    Args:
        dimension: Output dimension.
        ready: Value reported by is_ready().
        fail_marker: Texts containing this substring raise EmbeddingError.
        delay: Seconds to sleep per call.
        slow_marker: When set, only texts containing this substring sleep.
    """

    def __init__(
        self,
        dimension: int = 8,
        ready: bool = True,
        fail_marker: str | None = None,
        delay: float = 0.0,
        slow_marker: str | None = None,
    ):
        self._dimension = dimension
        self.ready = ready
        self.fail_marker = fail_marker
        self.delay = delay
        self.slow_marker = slow_marker
        self.calls: list[tuple[str, EmbeddingKind]] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def name(self) -> str:
        return "fake:test"

    def is_ready(self) -> bool:
        return self.ready

    def embed(
        self, texts: list[str], kind: EmbeddingKind = EmbeddingKind.PASSAGE
    ) -> np.ndarray:
        slow = self.slow_marker is None or any(self.slow_marker in t for t in texts)
        if self.delay and slow:
            time.sleep(self.delay)
        vectors = np.zeros((len(texts), self._dimension), dtype=np.float32)
        for i, text in enumerate(texts):
            self.calls.append((text, kind))
            if self.fail_marker and self.fail_marker in text:
                raise EmbeddingError("synthetic failure", self.name)
            rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
            vectors[i] = rng.standard_normal(self._dimension)
            vectors[i] /= np.linalg.norm(vectors[i])
        return vectors


class ScriptedSimilarityIndex:
    """Similarity index returning pre-set scores by title.

    `rules` maps a candidate title to ``(matched_title, score)``. The first
    corpus member with that title is reported when the score reaches the
    threshold.
    """

    def __init__(self, rules: dict[str, tuple[str, float]] | None = None):
        self.rules = dict(rules or {})
        self.lookups: list[tuple[str, list[str]]] = []

    def find_similar(
        self,
        candidate,
        corpus: Sequence[Model],
        threshold: float = 0.80,
    ) -> SimilarityResult:
        self.lookups.append((candidate.title, [m.title for m in corpus]))
        rule = self.rules.get(candidate.title)
        if rule is None:
            return SimilarityResult.no_match()
        matched_title, score = rule
        if score < threshold:
            return SimilarityResult.no_match()
        for model in corpus:
            if model.title == matched_title:
                return SimilarityResult(has_similar=True, matched_model=model, score=score)
        return SimilarityResult.no_match()


# =============================================================================
# Builders
# =============================================================================


def make_candidate(title: str, content: str | None = None, **kwargs) -> Candidate:
    """Build a candidate with a body derived from the title."""
    return Candidate(
        title=title,
        content=content if content is not None else f"<p>{title} conteudo especifico</p>",
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_backend() -> FakeEmbeddingBackend:
    return FakeEmbeddingBackend(dimension=8)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def ledger() -> ChangeLedger:
    return ChangeLedger()


@pytest.fixture
def store(storage: InMemoryStorage, ledger: ChangeLedger) -> LibraryStore:
    """Empty in-memory library."""
    return LibraryStore(persistence=storage, ledger=ledger)


@pytest.fixture
def seeded_store(store: LibraryStore) -> LibraryStore:
    """Library holding two unrelated models."""
    store.commit(
        [
            make_candidate(
                "Horas Extras",
                "<p>Pagamento de horas extras habituais com adicional.</p>",
                keywords="jornada, sobrejornada",
            ),
            make_candidate(
                "Dano Moral",
                "<p>Indenizacao por assedio moral no ambiente laboral.</p>",
                keywords=["assedio", "indenizacao"],
            ),
        ]
    )
    return store
