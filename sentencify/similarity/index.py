"""Corpus-relative duplicate detection.

`SimilarityIndex` keeps TF-IDF vectors for the most recent corpus snapshot
it was asked about and answers "is this candidate a near-duplicate of
something already there?". The store invalidates it after every mutation.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .text import document_text_for
from .vectorizer import SparseVector, TextVectorizer

if TYPE_CHECKING:
    from ..library.models import Candidate, Model

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.80


@dataclass
class SimilarityResult:
    """Outcome of a similarity lookup.

    Attributes:
        has_similar: True when a corpus member scored at or above threshold.
        matched_model: Best scoring member, when has_similar.
        score: Its cosine score in [0, 1].
    """

    has_similar: bool
    matched_model: Model | None = None
    score: float = 0.0

    @classmethod
    def no_match(cls) -> SimilarityResult:
        return cls(has_similar=False)


def _identity(item: Model | Candidate) -> str:
    key = getattr(item, "key", None)
    return key if key is not None else item.id


class SimilarityIndex:
    """Cached TF-IDF index over a corpus snapshot.

    The cache is keyed by the content of the corpus it was built from, so a
    different comparison set (for instance the corpus plus in-batch
    candidates) rebuilds it. `invalidate` drops it unconditionally and
    records the store generation it corresponds to.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._vectorizer: TextVectorizer | None = None
        self._vectors: list[tuple[Model, SparseVector]] = []
        self._cache_key: tuple | None = None
        self._generation = 0
        self._builds = 0

    @property
    def generation(self) -> int:
        """Store generation the index was last invalidated for."""
        return self._generation

    @property
    def is_valid(self) -> bool:
        return self._cache_key is not None

    @property
    def builds(self) -> int:
        """How many times vectors were (re)built."""
        return self._builds

    def invalidate(self, generation: int | None = None) -> None:
        """Drop cached vectors.

        Args:
            generation: Corpus generation now current, if known.
        """
        with self._lock:
            self._vectorizer = None
            self._vectors = []
            self._cache_key = None
            if generation is not None:
                self._generation = generation

    @staticmethod
    def _key_for(corpus: Sequence[Model]) -> tuple:
        return tuple((m.id, m.title, m.keyword_text, m.content) for m in corpus)

    def _ensure(self, corpus: Sequence[Model]) -> TextVectorizer:
        key = self._key_for(corpus)
        if self._vectorizer is not None and key == self._cache_key:
            return self._vectorizer

        texts = [document_text_for(m) for m in corpus]
        vectorizer = TextVectorizer().fit(texts)
        self._vectors = [
            (model, vectorizer.transform(text)) for model, text in zip(corpus, texts)
        ]
        self._vectorizer = vectorizer
        self._cache_key = key
        self._builds += 1
        logger.debug(f"Built similarity vectors for {len(corpus)} models")
        return vectorizer

    def scores(
        self,
        candidate: Model | Candidate,
        corpus: Sequence[Model],
    ) -> list[tuple[Model, float]]:
        """Score the candidate against every corpus member, in corpus order.

        Members sharing the candidate's identity are left out.
        """
        with self._lock:
            vectorizer = self._ensure(corpus)
            query = vectorizer.transform(document_text_for(candidate))
            own = _identity(candidate)
            return [
                (model, TextVectorizer.cosine(query, vector))
                for model, vector in self._vectors
                if model.id != own
            ]

    def find_similar(
        self,
        candidate: Model | Candidate,
        corpus: Sequence[Model],
        threshold: float = DEFAULT_THRESHOLD,
    ) -> SimilarityResult:
        """Find the best scoring corpus member at or above threshold.

        On equal top scores the first member in corpus order wins. Never
        raises on bad input: failures are logged and reported as no match.

        Raises:
            ValueError: If threshold is outside [0, 1].
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")

        try:
            scored = self.scores(candidate, corpus)
        except Exception as e:
            logger.warning(f"Similarity lookup failed, treating as no match: {e}")
            return SimilarityResult.no_match()

        best: Model | None = None
        best_score = 0.0
        for model, score in scored:
            if score > 0.0 and score >= threshold and score > best_score:
                best, best_score = model, score

        if best is None:
            return SimilarityResult.no_match()

        logger.debug(f"Candidate '{candidate.title}' matches {best.id} ({best_score:.3f})")
        return SimilarityResult(has_similar=True, matched_model=best, score=best_score)


__all__ = ["DEFAULT_THRESHOLD", "SimilarityIndex", "SimilarityResult"]
