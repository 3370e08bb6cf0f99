"""State, resolutions and outcomes of the reconciliation engine.

`ConflictState` is plain data: it can be dumped to JSON, held by a UI or
written to disk, and handed back to an engine to continue where the batch
paused.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from ..library.models import Candidate, Model, Replacement, SaveContext


class EngineState(str, Enum):
    """Engine lifecycle states."""

    IDLE = "idle"
    AWAITING_RESOLUTION = "awaiting_resolution"
    COMMITTING = "committing"


# =============================================================================
# Resolutions
# =============================================================================


class Skip(BaseModel):
    """Discard the conflicting candidate and continue."""

    kind: Literal["skip"] = "skip"


class SaveAsNew(BaseModel):
    """Keep the conflicting candidate as a brand-new model."""

    kind: Literal["save_as_new"] = "save_as_new"


class Replace(BaseModel):
    """Overwrite an existing model with the candidate, keeping its id.

    Attributes:
        existing_id: Model to overwrite. Defaults to the matched model.
    """

    kind: Literal["replace"] = "replace"
    existing_id: str | None = None


class Cancel(BaseModel):
    """Abandon the whole operation; nothing from it is saved."""

    kind: Literal["cancel"] = "cancel"


Resolution = Annotated[Skip | SaveAsNew | Replace | Cancel, Field(discriminator="kind")]

_resolution_adapter: TypeAdapter[Resolution] = TypeAdapter(Resolution)


def parse_resolution(data: dict | str) -> Skip | SaveAsNew | Replace | Cancel:
    """Build a resolution from a dict or a bare kind name."""
    if isinstance(data, str):
        data = {"kind": data}
    return _resolution_adapter.validate_python(data)


# =============================================================================
# Conflict State
# =============================================================================


class ConflictState(BaseModel):
    """A paused reconciliation waiting for a human decision.

    Attributes:
        candidate: The candidate that triggered the conflict.
        matched_model_id: Id of the best match. For a match against an
            earlier candidate of the same batch this is that candidate's key.
        matched_title: Title of the match, for display.
        score: Similarity score of the match.
        matched_pending: True when the match is an in-batch candidate that
            has not been committed yet.
        context: Where the save came from.
        remaining_queue: Candidates not yet examined, in order.
        accepted_so_far: Candidates accepted as new, awaiting commit.
        skipped_count: Candidates discarded so far.
        pending_replacements: Replacements awaiting commit.
    """

    candidate: Candidate
    matched_model_id: str
    matched_title: str = ""
    score: float = Field(ge=0.0, le=1.0)
    matched_pending: bool = False
    context: SaveContext = SaveContext.SINGLE_SAVE
    remaining_queue: list[Candidate] = Field(default_factory=list)
    accepted_so_far: list[Candidate] = Field(default_factory=list)
    skipped_count: int = Field(default=0, ge=0)
    pending_replacements: list[Replacement] = Field(default_factory=list)

    @property
    def is_batch(self) -> bool:
        return self.context == SaveContext.BULK_SAVE

    @property
    def processed_count(self) -> int:
        """Candidates decided so far, excluding the current one."""
        return (
            len(self.accepted_so_far)
            + len(self.pending_replacements)
            + self.skipped_count
        )


# =============================================================================
# Outcome
# =============================================================================


class OutcomeStatus(str, Enum):
    """How a submit or resolve call ended."""

    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class ReconciliationOutcome(BaseModel):
    """Result of a submit or resolve call.

    For every finished operation
    ``len(inserted) + len(replaced) + skipped_count + discarded_count``
    equals the number of candidates submitted.
    """

    status: OutcomeStatus
    context: SaveContext = SaveContext.SINGLE_SAVE
    conflict: ConflictState | None = None
    inserted: list[Model] = Field(default_factory=list)
    replaced: list[Model] = Field(default_factory=list)
    skipped_count: int = 0
    discarded_count: int = 0

    @property
    def paused(self) -> bool:
        return self.status == OutcomeStatus.PAUSED

    @property
    def saved_count(self) -> int:
        return len(self.inserted) + len(self.replaced)

    def summary(self) -> str:
        """One-line message for the user."""
        if self.status == OutcomeStatus.PAUSED and self.conflict is not None:
            return (
                f"Similar model found: '{self.conflict.matched_title}' "
                f"({self.conflict.score:.0%})."
            )
        if self.status == OutcomeStatus.CANCELLED:
            return f"Cancelled. {self.skipped_count + self.discarded_count} model(s) not saved."

        text = f"{len(self.inserted)} model(s) added"
        if self.replaced:
            text += f", {len(self.replaced)} replaced"
        text += "."
        if self.skipped_count:
            text += f" {self.skipped_count} skipped."
        return text


__all__ = [
    "Cancel",
    "ConflictState",
    "EngineState",
    "OutcomeStatus",
    "ReconciliationOutcome",
    "Replace",
    "Resolution",
    "SaveAsNew",
    "Skip",
    "parse_resolution",
]
