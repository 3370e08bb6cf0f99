"""TF-IDF vectorizer over a corpus snapshot.

Vectors are sparse ``{term: weight}`` mappings, L2-normalized so that the
cosine similarity of two vectors is their dot product.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Mapping

from .text import tokenize

SparseVector = dict[str, float]


class TextVectorizer:
    """Term-frequency / inverse-document-frequency weighting.

    Term frequency is the raw count of a term in the document. Document
    frequency is counted over the snapshot passed to `fit`:

        idf(term) = log(N / max(1, df(term))) + 1    for N > 0
        idf(term) = 0                                for N == 0

    An empty snapshot therefore yields zero vectors for everything.

    Example:
        >>> vectorizer = TextVectorizer().fit(["horas extras habituais"])
        >>> vec = vectorizer.transform("horas extras habituais")
        >>> round(TextVectorizer.cosine(vec, vec), 3)
        1.0
    """

    def __init__(self) -> None:
        self._doc_freq: Counter[str] = Counter()
        self._size = 0

    @property
    def corpus_size(self) -> int:
        return self._size

    @property
    def vocabulary(self) -> frozenset[str]:
        return frozenset(self._doc_freq)

    def fit(self, documents: Iterable[str]) -> TextVectorizer:
        """Compute document frequencies over a snapshot of documents."""
        doc_freq: Counter[str] = Counter()
        size = 0
        for document in documents:
            size += 1
            doc_freq.update(set(tokenize(document)))
        self._doc_freq = doc_freq
        self._size = size
        return self

    def idf(self, term: str) -> float:
        if self._size == 0:
            return 0.0
        return math.log(self._size / max(1, self._doc_freq.get(term, 0))) + 1.0

    def transform(self, text: str) -> SparseVector:
        """Vectorize one document with the fitted idf weights."""
        counts = Counter(tokenize(text))
        weights = {
            term: count * self.idf(term) for term, count in counts.items()
        }
        return self.normalize(weights)

    @staticmethod
    def normalize(weights: Mapping[str, float]) -> SparseVector:
        norm = math.sqrt(sum(w * w for w in weights.values()))
        if norm == 0:
            return {}
        return {term: w / norm for term, w in weights.items() if w}

    @staticmethod
    def cosine(a: Mapping[str, float], b: Mapping[str, float]) -> float:
        """Cosine of two normalized sparse vectors, clamped to [0, 1]."""
        if not a or not b:
            return 0.0
        if len(b) < len(a):
            a, b = b, a
        dot = sum(weight * b.get(term, 0.0) for term, weight in a.items())
        # Rounding absorbs float error so identical vectors score exactly 1.0
        return min(1.0, max(0.0, round(dot, 9)))


__all__ = ["SparseVector", "TextVectorizer"]
