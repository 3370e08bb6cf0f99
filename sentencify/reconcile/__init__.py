"""Similarity-gated save and resumable conflict resolution.

    >>> from sentencify.reconcile import ReconciliationEngine, Replace, Skip
    >>> engine = ReconciliationEngine(store)
    >>> outcome = engine.submit_batch(candidates)
    >>> if outcome.paused:
    ...     outcome = engine.resolve(Replace())
"""

from .errors import (
    EngineBusyError,
    InvalidResolutionError,
    InvalidStateError,
    ReconciliationError,
)
from .lib import ProgressCallback, ReconciliationEngine
from .models import (
    Cancel,
    ConflictState,
    EngineState,
    OutcomeStatus,
    ReconciliationOutcome,
    Replace,
    Resolution,
    SaveAsNew,
    Skip,
    parse_resolution,
)

__all__ = [
    # Engine
    "ReconciliationEngine",
    "ProgressCallback",
    "EngineState",
    # State and results
    "ConflictState",
    "OutcomeStatus",
    "ReconciliationOutcome",
    # Resolutions
    "Cancel",
    "Replace",
    "Resolution",
    "SaveAsNew",
    "Skip",
    "parse_resolution",
    # Errors
    "EngineBusyError",
    "InvalidResolutionError",
    "InvalidStateError",
    "ReconciliationError",
]
