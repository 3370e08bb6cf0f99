"""Library store: exclusive owner of the model corpus.

Every other component sees the corpus only as an immutable tuple snapshot
and asks for changes through the store. Each successful mutation
    1. is durably persisted before memory is touched,
    2. is swapped in as a whole under one lock,
    3. is reported to the change ledger in one batch,
    4. invalidates the similarity index for the new generation.

A change sink that raises does not undo a persisted mutation. Its entries
are kept and offered again, ahead of newer ones, on the next mutation.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from ..similarity import SimilarityIndex
from .errors import DuplicateModelError, ModelNotFoundError, PersistenceError
from .ledger import ChangeLedger, ChangeSink
from .models import (
    Candidate,
    ChangeEntry,
    CommitResult,
    Model,
    Replacement,
    generate_model_id,
    utc_now,
)
from .storage import InMemoryStorage, SQLiteStorage
from .storage.protocol import ModelPersistence

logger = logging.getLogger(__name__)

SERIALIZATION_VERSION = 1

# Fields a caller may change through update()
EDITABLE_FIELDS = frozenset(
    {"title", "content", "keywords", "category", "embedding", "favorite"}
)


class LibraryStore:
    """Owner of the model corpus, its change ledger and index invalidation.

    Example:
        >>> store = LibraryStore(persistence=SQLiteStorage("library.db"))
        >>> store.load()
        >>> result = store.commit([Candidate(title="Horas Extras", content="...")])
        >>> result.inserted[0].id
        'model:...'

    Args:
        persistence: Durable backend. Defaults to an in-memory one.
        ledger: Receiver of change batches. Defaults to a ChangeLedger.
        index: Similarity index to invalidate after mutations.
        embedding_dimension: Expected embedding length. Vectors of another
            length are dropped on write. None disables the check.
    """

    def __init__(
        self,
        persistence: ModelPersistence | None = None,
        ledger: ChangeSink | None = None,
        index: SimilarityIndex | None = None,
        embedding_dimension: int | None = None,
    ):
        self._persistence = persistence or InMemoryStorage()
        self._ledger = ledger if ledger is not None else ChangeLedger()
        self._index = index or SimilarityIndex()
        self._embedding_dimension = embedding_dimension
        self._models: tuple[Model, ...] = ()
        self._generation = 0
        self._undelivered: list[ChangeEntry] = []
        self._lock = threading.RLock()

    # =========================================================================
    # Read Access
    # =========================================================================

    @property
    def models(self) -> tuple[Model, ...]:
        """Immutable snapshot of the corpus in display order."""
        return self._models

    @property
    def generation(self) -> int:
        """Bumped by every successful mutation."""
        return self._generation

    @property
    def index(self) -> SimilarityIndex:
        return self._index

    @property
    def ledger(self) -> ChangeSink:
        return self._ledger

    @property
    def undelivered_changes(self) -> list[ChangeEntry]:
        """Entries the change sink rejected, awaiting the next mutation."""
        return list(self._undelivered)

    @property
    def embedding_dimension(self) -> int | None:
        return self._embedding_dimension

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding the corpus and index together."""
        return self._lock

    def get(self, model_id: str) -> Model | None:
        for model in self._models:
            if model.id == model_id:
                return model
        return None

    def require(self, model_id: str) -> Model:
        """Get a model or raise ModelNotFoundError."""
        model = self.get(model_id)
        if model is None:
            raise ModelNotFoundError(model_id)
        return model

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, model_id: object) -> bool:
        return any(m.id == model_id for m in self._models)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def load(self) -> int:
        """Populate the corpus from persistence.

        Returns:
            Number of models loaded.
        """
        self._persistence.initialize()
        loaded = self._persistence.load()
        self._check_unique(loaded)
        with self._lock:
            self._swap([self._sanitize(m) for m in loaded], changes=[])
        logger.info(f"Loaded {len(loaded)} models")
        return len(loaded)

    def close(self) -> None:
        self._persistence.close()

    # =========================================================================
    # Mutations
    # =========================================================================

    def commit(
        self,
        insertions: Sequence[Candidate] = (),
        replacements: Sequence[Replacement] = (),
    ) -> CommitResult:
        """Apply insertions and replacements as one logical update.

        Insertions get fresh store-generated ids and are appended in order.
        Replacements keep the existing id, creation time and favorite flag,
        take every content field from the candidate and refresh updated_at.

        Args:
            insertions: Candidates to add as new models.
            replacements: Candidates overwriting existing models.

        Returns:
            CommitResult with the models as stored.

        Raises:
            ModelNotFoundError: A replacement targets an unknown id.
            DuplicateModelError: Two replacements target the same id.
            PersistenceError: The write failed; nothing changed.
        """
        if not insertions and not replacements:
            return CommitResult(generation=self._generation)

        with self._lock:
            now = utc_now()
            next_models = list(self._models)
            positions = {m.id: i for i, m in enumerate(next_models)}

            replaced: list[Model] = []
            targeted: set[str] = set()
            for replacement in replacements:
                pos = positions.get(replacement.existing_id)
                if pos is None:
                    raise ModelNotFoundError(replacement.existing_id)
                if replacement.existing_id in targeted:
                    raise DuplicateModelError(replacement.existing_id)
                targeted.add(replacement.existing_id)

                old = next_models[pos]
                new = Model.from_candidate(
                    replacement.candidate,
                    model_id=old.id,
                    created_at=old.created_at,
                    now=now,
                )
                new = self._sanitize(new.model_copy(update={"favorite": old.favorite}))
                next_models[pos] = new
                replaced.append(new)

            inserted: list[Model] = []
            for candidate in insertions:
                model_id = generate_model_id()
                while model_id in positions:
                    model_id = generate_model_id()
                positions[model_id] = len(next_models)
                model = self._sanitize(Model.from_candidate(candidate, model_id=model_id, now=now))
                next_models.append(model)
                inserted.append(model)

            self._write(next_models)
            changes = [ChangeEntry.update(m) for m in replaced]
            changes += [ChangeEntry.create(m) for m in inserted]
            self._swap(next_models, changes)

            logger.info(
                f"Committed {len(inserted)} new and {len(replaced)} replaced "
                f"models (generation {self._generation})"
            )
            return CommitResult(
                inserted=inserted, replaced=replaced, generation=self._generation
            )

    def update(self, model_id: str, **fields: Any) -> Model:
        """Edit an existing model in place.

        Edits never go through duplicate detection.

        Raises:
            ModelNotFoundError: Unknown id.
            ValueError: A field is not editable.
            PersistenceError: The write failed; nothing changed.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        with self._lock:
            old = self.require(model_id)
            data = old.model_dump()
            data.update(fields)
            data["updated_at"] = utc_now()
            new = self._sanitize(Model.model_validate(data))

            next_models = [new if m.id == model_id else m for m in self._models]
            self._write(next_models)
            self._swap(next_models, [ChangeEntry.update(new)])
            return new

    def set_favorite(self, model_id: str, favorite: bool = True) -> Model:
        return self.update(model_id, favorite=favorite)

    def delete(self, model_id: str) -> Model:
        """Remove a model from the library.

        Raises:
            ModelNotFoundError: Unknown id.
            PersistenceError: The write failed; nothing changed.
        """
        with self._lock:
            old = self.require(model_id)
            next_models = [m for m in self._models if m.id != model_id]
            self._write(next_models)
            self._swap(next_models, [ChangeEntry.delete(model_id)])
            logger.info(f"Deleted model {model_id}")
            return old

    # =========================================================================
    # Serialization
    # =========================================================================

    def serialize(self) -> dict[str, Any]:
        """Export the corpus as a JSON-compatible payload."""
        return {
            "version": SERIALIZATION_VERSION,
            "models": [m.model_dump(mode="json") for m in self._models],
        }

    def restore(self, payload: dict[str, Any]) -> int:
        """Replace the corpus with a payload produced by `serialize`.

        No ledger entries are produced: restored data is not a user edit.

        Returns:
            Number of models restored.

        Raises:
            ValueError: Unsupported payload version.
            pydantic.ValidationError: A model entry is malformed.
            DuplicateModelError: Two entries share an id.
            PersistenceError: The write failed; nothing changed.
        """
        version = payload.get("version", SERIALIZATION_VERSION)
        if version != SERIALIZATION_VERSION:
            raise ValueError(f"Unsupported library payload version: {version}")

        models = [Model.model_validate(item) for item in payload.get("models", [])]
        self._check_unique(models)
        models = [self._sanitize(m) for m in models]

        with self._lock:
            self._write(models)
            self._swap(models, changes=[])
        logger.info(f"Restored {len(models)} models")
        return len(models)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_unique(models: Sequence[Model]) -> None:
        seen: set[str] = set()
        for model in models:
            if model.id in seen:
                raise DuplicateModelError(model.id)
            seen.add(model.id)

    def _sanitize(self, model: Model) -> Model:
        """Drop an embedding whose length does not match the configured one."""
        dim = self._embedding_dimension
        if dim is None or model.embedding is None or len(model.embedding) == dim:
            return model
        logger.warning(
            f"Dropping embedding of {model.id}: length {len(model.embedding)} != {dim}"
        )
        return model.model_copy(update={"embedding": None})

    def _write(self, models: list[Model]) -> None:
        try:
            ok = self._persistence.persist(models)
        except Exception as e:
            raise PersistenceError(f"Failed to persist library: {e}", cause=e) from e
        if not ok:
            raise PersistenceError("Persistence backend rejected the write")

    def _swap(self, models: list[Model], changes: list[ChangeEntry]) -> None:
        self._models = tuple(models)
        self._generation += 1
        try:
            if changes:
                self._publish(changes)
        finally:
            self._index.invalidate(self._generation)

    def _publish(self, changes: list[ChangeEntry]) -> None:
        entries = self._undelivered + changes
        try:
            self._ledger.record_changes(entries)
        except Exception as e:
            logger.error(
                f"Change sink rejected {len(entries)} entries: {e}; "
                "keeping them for the next mutation"
            )
            self._undelivered = entries
            return
        self._undelivered = []


def open_library(
    db_path: Path | str,
    *,
    ledger: ChangeSink | None = None,
    embedding_dimension: int | None = None,
) -> LibraryStore:
    """Create a SQLite-backed store and load its corpus."""
    store = LibraryStore(
        persistence=SQLiteStorage(db_path),
        ledger=ledger,
        embedding_dimension=embedding_dimension,
    )
    store.load()
    return store


__all__ = ["EDITABLE_FIELDS", "LibraryStore", "SERIALIZATION_VERSION", "open_library"]
