"""Similarity-gated save and batch reconciliation.

The engine admits candidates into the library one submit/resolve cycle at a
time. A candidate that looks like a duplicate pauses the operation in an
explicit `ConflictState`; the caller answers with a resolution and the
engine continues from the remaining queue.

State machine:

    IDLE --submit (no conflict)--> COMMITTING --> IDLE
    IDLE --submit (conflict)-----> AWAITING_RESOLUTION
    AWAITING_RESOLUTION --resolve--> AWAITING_RESOLUTION (next conflict)
                                   | COMMITTING --> IDLE
                                   | IDLE (skip of a single save, cancel)
    COMMITTING --persistence failure during resolve--> AWAITING_RESOLUTION
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from ..embedding import EmbeddingService
from ..library import LibraryStore
from ..library.errors import PersistenceError
from ..library.models import (
    Candidate,
    Model,
    Replacement,
    SaveContext,
    generate_candidate_key,
)
from ..similarity import DEFAULT_THRESHOLD, SimilarityIndex
from .errors import (
    EngineBusyError,
    InvalidResolutionError,
    InvalidStateError,
)
from .models import (
    Cancel,
    ConflictState,
    EngineState,
    OutcomeStatus,
    ReconciliationOutcome,
    Replace,
    SaveAsNew,
    Skip,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class ReconciliationEngine:
    """Admit candidates into a library, pausing on near-duplicates.

    Example:
        >>> engine = ReconciliationEngine(store)
        >>> outcome = engine.submit_batch([a, b, c])
        >>> while outcome.paused:
        ...     outcome = engine.resolve(Skip())
        >>> print(outcome.summary())
        2 model(s) added. 1 skipped.

    Args:
        store: Library to admit candidates into.
        embeddings: Embedding service used at commit time. None behaves
            like a disabled semantic feature.
        threshold: Minimum score treated as a duplicate.
        index: Similarity index. Defaults to the store's own index.
        on_progress: Called as ``(done, total)`` after each embedding so a
            host can refresh its UI between slow calls.
    """

    def __init__(
        self,
        store: LibraryStore,
        embeddings: EmbeddingService | None = None,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        index: SimilarityIndex | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self._store = store
        self._embeddings = embeddings
        self._index = index or store.index
        self._on_progress = on_progress
        self._threshold = self._check_threshold(threshold)
        self._state = EngineState.IDLE
        self._conflict: ConflictState | None = None
        self._busy = threading.Lock()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def store(self) -> LibraryStore:
        return self._store

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        self._threshold = self._check_threshold(value)

    @staticmethod
    def _check_threshold(value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {value}")
        return float(value)

    def current_conflict(self) -> ConflictState | None:
        """The conflict awaiting resolution, if any."""
        return self._conflict

    # =========================================================================
    # Entry Points
    # =========================================================================

    def submit_single(
        self,
        candidate: Candidate,
        context: SaveContext = SaveContext.SINGLE_SAVE,
    ) -> ReconciliationOutcome:
        """Save one candidate unless it looks like an existing model.

        Raises:
            InvalidStateError: A conflict is awaiting resolution.
            EngineBusyError: Called from inside another cycle.
            PersistenceError: The commit could not be persisted.
        """
        with self._cycle():
            self._require(EngineState.IDLE, "submit")
            candidate = candidate.model_copy(
                update={"context": context, "key": generate_candidate_key()}
            )

            match = self._index.find_similar(candidate, self._store.models, self._threshold)
            if match.has_similar:
                return self._pause(
                    ConflictState(
                        candidate=candidate,
                        matched_model_id=match.matched_model.id,
                        matched_title=match.matched_model.title,
                        score=match.score,
                        context=context,
                    )
                )
            return self._commit(context, [candidate], [], skipped=0)

    def submit_batch(self, candidates: Sequence[Candidate]) -> ReconciliationOutcome:
        """Save candidates in order, pausing at the first near-duplicate.

        Each candidate is compared with the library (pending replacements
        applied) plus the candidates already accepted from this batch.

        Raises:
            InvalidStateError: A conflict is awaiting resolution.
            EngineBusyError: Called from inside another cycle.
            PersistenceError: The commit could not be persisted.
        """
        with self._cycle():
            self._require(EngineState.IDLE, "submit")
            queue = [
                c.model_copy(
                    update={
                        "context": SaveContext.BULK_SAVE,
                        "key": generate_candidate_key(),
                    }
                )
                for c in candidates
            ]
            logger.info(f"Reconciling batch of {len(queue)} candidates")
            return self._process_batch(queue, [], [], skipped=0)

    def resolve(
        self, resolution: Skip | SaveAsNew | Replace | Cancel
    ) -> ReconciliationOutcome:
        """Answer the pending conflict and continue.

        If the final commit cannot be persisted, the conflict is put back
        unchanged so the same resolution can be retried.

        Raises:
            InvalidStateError: No conflict is pending.
            InvalidResolutionError: The resolution does not apply; the
                conflict stays pending.
            EngineBusyError: Called from inside another cycle.
            PersistenceError: The commit could not be persisted.
        """
        with self._cycle():
            self._require(EngineState.AWAITING_RESOLUTION, "resolve")
            conflict = self._conflict
            accepted = list(conflict.accepted_so_far)
            replacements = list(conflict.pending_replacements)
            skipped = conflict.skipped_count

            match resolution:
                case Skip():
                    logger.info(f"Skipping '{conflict.candidate.title}'")
                    skipped += 1
                case SaveAsNew():
                    accepted.append(conflict.candidate)
                case Replace():
                    target = self._replacement_target(conflict, resolution)
                    replacements.append(
                        Replacement(existing_id=target, candidate=conflict.candidate)
                    )
                case Cancel():
                    return self._cancel(conflict)
                case _:
                    raise InvalidResolutionError(f"Unknown resolution: {resolution!r}")

            self._conflict = None
            self._state = EngineState.IDLE
            try:
                if conflict.is_batch:
                    return self._process_batch(
                        list(conflict.remaining_queue), accepted, replacements, skipped
                    )
                return self._commit(conflict.context, accepted, replacements, skipped)
            except PersistenceError:
                logger.warning(
                    f"Commit failed; conflict on '{conflict.candidate.title}' "
                    "is pending again"
                )
                self._conflict = conflict
                self._state = EngineState.AWAITING_RESOLUTION
                raise

    def restore_conflict(self, conflict: ConflictState) -> None:
        """Resume a conflict previously taken from `current_conflict`.

        Raises:
            InvalidStateError: The engine is not idle.
        """
        with self._cycle():
            self._require(EngineState.IDLE, "restore a conflict")
            self._pause(conflict)

    # =========================================================================
    # Processing
    # =========================================================================

    @contextmanager
    def _cycle(self) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise EngineBusyError()
        try:
            yield
        finally:
            self._busy.release()

    def _require(self, state: EngineState, operation: str) -> None:
        if self._state != state:
            raise InvalidStateError(operation, self._state.value)

    def _pause(self, conflict: ConflictState) -> ReconciliationOutcome:
        self._conflict = conflict
        self._state = EngineState.AWAITING_RESOLUTION
        logger.info(
            f"Conflict: '{conflict.candidate.title}' resembles "
            f"{conflict.matched_model_id} ({conflict.score:.2f})"
        )
        return ReconciliationOutcome(
            status=OutcomeStatus.PAUSED,
            context=conflict.context,
            conflict=conflict,
            skipped_count=conflict.skipped_count,
        )

    def _comparison_set(
        self, accepted: list[Candidate], replacements: list[Replacement]
    ) -> list[Model]:
        """Library as it will look after this batch commits, so far."""
        overlay = {r.existing_id: r.candidate for r in replacements}
        corpus: list[Model] = []
        for model in self._store.models:
            replacement = overlay.get(model.id)
            if replacement is not None:
                model = model.model_copy(
                    update={
                        "title": replacement.title,
                        "content": replacement.content,
                        "keywords": replacement.keywords,
                    }
                )
            corpus.append(model)
        corpus.extend(c.as_provisional_model() for c in accepted)
        return corpus

    def _process_batch(
        self,
        queue: list[Candidate],
        accepted: list[Candidate],
        replacements: list[Replacement],
        skipped: int,
    ) -> ReconciliationOutcome:
        while queue:
            current = queue.pop(0)
            comparison = self._comparison_set(accepted, replacements)
            match = self._index.find_similar(current, comparison, self._threshold)
            if match.has_similar:
                pending_keys = {c.key for c in accepted}
                return self._pause(
                    ConflictState(
                        candidate=current,
                        matched_model_id=match.matched_model.id,
                        matched_title=match.matched_model.title,
                        score=match.score,
                        matched_pending=match.matched_model.id in pending_keys,
                        context=SaveContext.BULK_SAVE,
                        remaining_queue=queue,
                        accepted_so_far=accepted,
                        skipped_count=skipped,
                        pending_replacements=replacements,
                    )
                )
            accepted.append(current)

        return self._commit(SaveContext.BULK_SAVE, accepted, replacements, skipped)

    def _replacement_target(self, conflict: ConflictState, resolution: Replace) -> str:
        target = resolution.existing_id or conflict.matched_model_id

        pending_keys = {c.key for c in conflict.accepted_so_far}
        if target in pending_keys or (
            target == conflict.matched_model_id and conflict.matched_pending
        ):
            raise InvalidResolutionError(
                "Cannot replace a candidate that has not been saved yet; "
                "skip it or save it as new",
                existing_id=target,
            )
        if target not in self._store:
            raise InvalidResolutionError(
                f"Model to replace no longer exists: {target}", existing_id=target
            )
        if any(r.existing_id == target for r in conflict.pending_replacements):
            raise InvalidResolutionError(
                f"Model {target} is already being replaced in this batch",
                existing_id=target,
            )
        return target

    def _cancel(self, conflict: ConflictState) -> ReconciliationOutcome:
        skipped = conflict.skipped_count + 1 + len(conflict.remaining_queue)
        discarded = len(conflict.accepted_so_far) + len(conflict.pending_replacements)
        self._conflict = None
        self._state = EngineState.IDLE
        logger.info(f"Cancelled: {skipped} skipped, {discarded} accepted discarded")
        return ReconciliationOutcome(
            status=OutcomeStatus.CANCELLED,
            context=conflict.context,
            skipped_count=skipped,
            discarded_count=discarded,
        )

    # =========================================================================
    # Commit
    # =========================================================================

    def _commit(
        self,
        context: SaveContext,
        accepted: list[Candidate],
        replacements: list[Replacement],
        skipped: int,
    ) -> ReconciliationOutcome:
        self._state = EngineState.COMMITTING
        try:
            incoming = self._prepare_embeddings(
                accepted + [r.candidate for r in replacements]
            )
            insertions = incoming[: len(accepted)]
            prepared = [
                Replacement(existing_id=r.existing_id, candidate=c)
                for r, c in zip(replacements, incoming[len(accepted):])
            ]
            result = self._store.commit(insertions, prepared)
        finally:
            self._state = EngineState.IDLE
            self._conflict = None

        outcome = ReconciliationOutcome(
            status=OutcomeStatus.COMPLETED,
            context=context,
            inserted=result.inserted,
            replaced=result.replaced,
            skipped_count=skipped,
        )
        logger.info(outcome.summary())
        return outcome

    def _prepare_embeddings(self, candidates: list[Candidate]) -> list[Candidate]:
        """Fill in missing embeddings; strip them when the feature is off."""
        service = self._embeddings
        if service is None or not service.enabled:
            return [
                c.model_copy(update={"embedding": None}) if c.embedding is not None else c
                for c in candidates
            ]

        missing = sum(1 for c in candidates if c.embedding is None)
        if not missing or not service.is_available():
            return candidates

        prepared: list[Candidate] = []
        done = 0
        for candidate in candidates:
            if candidate.embedding is None:
                vector = service.embed_candidate(candidate)
                if vector is None:
                    logger.warning(f"No embedding for '{candidate.title}'")
                else:
                    candidate = candidate.model_copy(update={"embedding": vector})
                done += 1
                if self._on_progress is not None:
                    self._on_progress(done, missing)
            prepared.append(candidate)
        return prepared


__all__ = ["ProgressCallback", "ReconciliationEngine"]
