"""Data contracts for the model library.

A *model* is a reusable decision-text template kept in the user's library.
A *candidate* is model-shaped input that has not been admitted yet; it only
becomes a `Model` (and receives an id) when the store commits it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

MODEL_ID_PREFIX = "model:"
DEFAULT_CATEGORY = "Mérito"


def generate_model_id() -> str:
    """Create a new unique model id."""
    return f"{MODEL_ID_PREFIX}{uuid4()}"


def generate_candidate_key() -> str:
    """Create a new unique pending-candidate key."""
    return f"candidate:{uuid4()}"


def utc_now() -> datetime:
    return datetime.now(UTC)


class SaveContext(str, Enum):
    """Where a save request originated."""

    SINGLE_SAVE = "single_save"
    BULK_SAVE = "bulk_save"
    EXTRACTED_SAVE = "extracted_save"
    SAVE_AS_NEW_FROM_PREVIEW = "save_as_new_from_preview"


class ChangeOperation(str, Enum):
    """Kind of change recorded in the ledger."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def _require_text(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} must not be blank")
    return value


class _ModelFields(BaseModel):
    """Fields shared by stored models and unsaved candidates."""

    title: str = Field(..., description="Short human title")
    content: str = Field(..., description="Rich-text (HTML) body")
    keywords: str | list[str] = Field(
        default="",
        description="Free-text keywords or a tag list",
    )
    category: str = Field(default=DEFAULT_CATEGORY, description="Open category label")
    embedding: list[float] | None = Field(
        default=None,
        description="Dense semantic vector, present only if generation succeeded",
    )

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        return _require_text(value, "title")

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        return _require_text(value, "content")

    @property
    def keyword_text(self) -> str:
        """Keywords flattened to a single space-separated string."""
        if isinstance(self.keywords, list):
            return " ".join(k for k in self.keywords if k)
        return self.keywords


class Model(_ModelFields):
    """A committed member of the library.

    Attributes:
        id: Unique, stable identifier. Never changes, even on replace.
        favorite: User flag, irrelevant to reconciliation.
        created_at: Set once on insertion.
        updated_at: Refreshed on every update or replace.
    """

    id: str = Field(..., description="Unique model identifier")
    favorite: bool = Field(default=False)
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @classmethod
    def from_candidate(
        cls,
        candidate: Candidate,
        *,
        model_id: str | None = None,
        created_at: datetime | None = None,
        now: datetime | None = None,
    ) -> Model:
        """Materialize a candidate as a stored model.

        Args:
            candidate: Source candidate.
            model_id: Id to use; a fresh one is generated when omitted.
            created_at: Creation time to keep (replacements keep the original).
            now: Timestamp for updated_at (and created_at when not kept).
        """
        stamp = now or utc_now()
        return cls(
            id=model_id or generate_model_id(),
            title=candidate.title,
            content=candidate.content,
            keywords=candidate.keywords,
            category=candidate.category,
            embedding=candidate.embedding,
            created_at=created_at or stamp,
            updated_at=stamp,
        )


class Candidate(_ModelFields):
    """A model-shaped value awaiting admission to the library.

    `key` identifies the candidate inside a batch while it is pending. It is
    never a model id and never collides with one. The engine assigns a fresh
    key whenever a candidate is queued, so a key read from input never
    decides what the candidate is compared against.
    """

    key: str = Field(default_factory=generate_candidate_key)
    context: SaveContext | None = Field(default=None)

    def as_provisional_model(self) -> Model:
        """View this candidate as a corpus member keyed by its candidate key."""
        return Model(
            id=self.key,
            title=self.title,
            content=self.content,
            keywords=self.keywords,
            category=self.category,
            embedding=self.embedding,
        )


class Replacement(BaseModel):
    """A candidate that will overwrite an existing model, keeping its id."""

    existing_id: str
    candidate: Candidate


class ChangeEntry(BaseModel):
    """One pending change for an external sync collaborator.

    For deletes only the id and timestamp are kept in `model`.
    """

    operation: ChangeOperation
    model_id: str
    model: Model | None = None
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def create(cls, model: Model) -> ChangeEntry:
        return cls(operation=ChangeOperation.CREATE, model_id=model.id, model=model)

    @classmethod
    def update(cls, model: Model) -> ChangeEntry:
        return cls(operation=ChangeOperation.UPDATE, model_id=model.id, model=model)

    @classmethod
    def delete(cls, model_id: str) -> ChangeEntry:
        return cls(operation=ChangeOperation.DELETE, model_id=model_id)


class CommitResult(BaseModel):
    """Outcome of a successful store commit."""

    inserted: list[Model] = Field(default_factory=list)
    replaced: list[Model] = Field(default_factory=list)
    generation: int = 0

    @property
    def total(self) -> int:
        return len(self.inserted) + len(self.replaced)


__all__ = [
    "DEFAULT_CATEGORY",
    "MODEL_ID_PREFIX",
    "Candidate",
    "ChangeEntry",
    "ChangeOperation",
    "CommitResult",
    "Model",
    "Replacement",
    "SaveContext",
    "generate_candidate_key",
    "generate_model_id",
    "utc_now",
]
