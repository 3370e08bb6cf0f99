"""sentencify: similarity-gated model library for decision drafting."""

from sentencify.library import Candidate, LibraryStore, Model, SaveContext
from sentencify.reconcile import (
    Cancel,
    ConflictState,
    ReconciliationEngine,
    ReconciliationOutcome,
    Replace,
    SaveAsNew,
    Skip,
)
from sentencify.similarity import SimilarityIndex, SimilarityResult

__version__ = "0.1.0"

__all__ = [
    # Library
    "Candidate",
    "LibraryStore",
    "Model",
    "SaveContext",
    # Similarity
    "SimilarityIndex",
    "SimilarityResult",
    # Reconciliation
    "Cancel",
    "ConflictState",
    "ReconciliationEngine",
    "ReconciliationOutcome",
    "Replace",
    "SaveAsNew",
    "Skip",
]
