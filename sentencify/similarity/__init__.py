"""Lexical similarity for duplicate detection.

Provides TF-IDF vectors over the current library snapshot and a cached
index answering near-duplicate lookups:
    >>> from sentencify.similarity import SimilarityIndex
    >>> result = SimilarityIndex().find_similar(candidate, store.models)
    >>> if result.has_similar:
    ...     print(result.matched_model.title, result.score)
"""

from .index import DEFAULT_THRESHOLD, SimilarityIndex, SimilarityResult
from .text import (
    STOPWORDS,
    build_document_text,
    document_text_for,
    strip_markup,
    tokenize,
)
from .vectorizer import SparseVector, TextVectorizer

__all__ = [
    # Index
    "DEFAULT_THRESHOLD",
    "SimilarityIndex",
    "SimilarityResult",
    # Vectorizer
    "SparseVector",
    "TextVectorizer",
    # Text
    "STOPWORDS",
    "build_document_text",
    "document_text_for",
    "strip_markup",
    "tokenize",
]
