"""Tests for the reconciliation engine."""

import random

import pytest
from pydantic import ValidationError

from sentencify.conftest import (
    FakeEmbeddingBackend,
    ScriptedSimilarityIndex,
    make_candidate,
)
from sentencify.embedding import EmbeddingService
from sentencify.library import (
    Candidate,
    InMemoryStorage,
    LibraryStore,
    PersistenceError,
    SaveContext,
)

from .errors import EngineBusyError, InvalidResolutionError, InvalidStateError
from .lib import ReconciliationEngine
from .models import (
    Cancel,
    ConflictState,
    EngineState,
    OutcomeStatus,
    ReconciliationOutcome,
    Replace,
    SaveAsNew,
    Skip,
    parse_resolution,
)


def _titles(models) -> list[str]:
    return [m.title for m in models]


def _batch_of_three() -> list[Candidate]:
    """A, B and C where only B is scripted to resemble something."""
    return [make_candidate("A"), make_candidate("B"), make_candidate("C")]


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    """End-to-end walkthroughs of the save flows."""

    @pytest.mark.unit
    def test_single_save_into_empty_library(self, store):
        engine = ReconciliationEngine(store)
        outcome = engine.submit_single(make_candidate("Horas Extras"))

        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.conflict is None
        assert len(store) == 1
        assert store.models[0].title == "Horas Extras"
        assert engine.state == EngineState.IDLE

    @pytest.mark.unit
    def test_identical_single_save_is_flagged(self, store):
        store.commit(
            [make_candidate("Horas Extras", "pagamento de horas extras habituais")]
        )
        engine = ReconciliationEngine(store)

        outcome = engine.submit_single(
            make_candidate("Horas Extras", "pagamento de horas extras habituais")
        )

        assert outcome.paused
        assert outcome.conflict.matched_model_id == store.models[0].id
        assert outcome.conflict.score == pytest.approx(1.0)
        assert engine.state == EngineState.AWAITING_RESOLUTION
        assert len(store) == 1

    @pytest.mark.unit
    def test_batch_pauses_at_in_batch_duplicate_then_skip(self, store):
        index = ScriptedSimilarityIndex({"B": ("A", 0.85)})
        engine = ReconciliationEngine(store, index=index)

        outcome = engine.submit_batch(_batch_of_three())

        assert outcome.paused
        conflict = outcome.conflict
        assert conflict.candidate.title == "B"
        assert conflict.matched_pending
        assert conflict.matched_model_id == conflict.accepted_so_far[0].key
        assert _titles(conflict.remaining_queue) == ["C"]
        assert _titles(conflict.accepted_so_far) == ["A"]
        assert len(store) == 0

        final = engine.resolve(Skip())

        assert final.status == OutcomeStatus.COMPLETED
        assert _titles(store.models) == ["A", "C"]
        assert final.skipped_count == 1
        assert final.summary() == "2 model(s) added. 1 skipped."

    @pytest.mark.unit
    def test_batch_replace_of_existing_model(self, seeded_store):
        existing = seeded_store.models[0]
        index = ScriptedSimilarityIndex({"B": ("Horas Extras", 0.85)})
        engine = ReconciliationEngine(seeded_store, index=index)

        outcome = engine.submit_batch(_batch_of_three())
        assert outcome.conflict.matched_model_id == existing.id
        assert not outcome.conflict.matched_pending

        final = engine.resolve(Replace(existing_id=existing.id))

        assert final.status == OutcomeStatus.COMPLETED
        assert len(seeded_store) == 4
        replaced = seeded_store.get(existing.id)
        assert replaced.title == "B"
        assert replaced.content == "<p>B conteudo especifico</p>"
        assert replaced.created_at == existing.created_at
        assert _titles(seeded_store.models) == ["B", "Dano Moral", "A", "C"]
        assert [m.id for m in final.replaced] == [existing.id]
        assert _titles(final.inserted) == ["A", "C"]

    @pytest.mark.unit
    def test_higher_threshold_lets_batch_through(self, store):
        index = ScriptedSimilarityIndex({"B": ("A", 0.85)})
        engine = ReconciliationEngine(store, index=index, threshold=0.95)

        outcome = engine.submit_batch(_batch_of_three())

        assert outcome.status == OutcomeStatus.COMPLETED
        assert _titles(store.models) == ["A", "B", "C"]
        assert outcome.skipped_count == 0

    @pytest.mark.unit
    def test_exact_duplicate_within_batch_with_real_index(self, store):
        engine = ReconciliationEngine(store)
        batch = [
            make_candidate("Ferias", "<p>ferias vencidas pagas em dobro</p>"),
            make_candidate("Ferias", "<p>ferias vencidas pagas em dobro</p>"),
            make_candidate("Aviso Previo", "<p>aviso previo indenizado proporcional</p>"),
        ]

        outcome = engine.submit_batch(batch)

        assert outcome.paused
        assert outcome.conflict.candidate.title == "Ferias"
        assert _titles(outcome.conflict.remaining_queue) == ["Aviso Previo"]
        assert outcome.conflict.matched_pending
        assert outcome.conflict.score == 1.0

    @pytest.mark.unit
    @pytest.mark.parametrize("repeat", ["same_object", "model_copy"])
    def test_repeated_candidate_in_batch_is_flagged(self, store, repeat):
        first = make_candidate("Ferias", "<p>ferias vencidas pagas em dobro</p>")
        second = first if repeat == "same_object" else first.model_copy()
        engine = ReconciliationEngine(store)

        outcome = engine.submit_batch([first, second])

        assert outcome.paused
        assert outcome.conflict.matched_pending
        assert outcome.conflict.score == 1.0
        assert outcome.conflict.candidate.key != outcome.conflict.matched_model_id
        assert len(store) == 0

        final = engine.resolve(Skip())
        assert _titles(store.models) == ["Ferias"]
        assert final.skipped_count == 1

    @pytest.mark.unit
    def test_caller_supplied_keys_are_replaced(self, store):
        batch = [
            make_candidate("Ferias", "<p>ferias vencidas pagas em dobro</p>", key="k1"),
            make_candidate("Ferias", "<p>ferias vencidas pagas em dobro</p>", key="k1"),
        ]
        engine = ReconciliationEngine(store)

        outcome = engine.submit_batch(batch)

        assert outcome.paused
        keys = {outcome.conflict.candidate.key, outcome.conflict.accepted_so_far[0].key}
        assert len(keys) == 2
        assert "k1" not in keys

    @pytest.mark.unit
    def test_single_save_keyed_like_stored_model_is_flagged(self, seeded_store):
        stored = seeded_store.models[0]
        engine = ReconciliationEngine(seeded_store)

        outcome = engine.submit_single(
            make_candidate(
                stored.title, stored.content, keywords=stored.keywords, key=stored.id
            )
        )

        assert outcome.paused
        assert outcome.conflict.matched_model_id == stored.id
        assert outcome.conflict.candidate.key != stored.id


# =============================================================================
# Resolutions
# =============================================================================


class TestResolutions:
    """Tests for each resolution and the invalid cases."""

    @pytest.fixture
    def paused_single(self, seeded_store):
        index = ScriptedSimilarityIndex({"Horas Extras 2": ("Horas Extras", 0.9)})
        engine = ReconciliationEngine(seeded_store, index=index)
        outcome = engine.submit_single(make_candidate("Horas Extras 2"))
        assert outcome.paused
        return engine

    @pytest.mark.unit
    def test_skip_single_commits_nothing(self, paused_single, storage):
        calls = storage.persist_calls
        outcome = paused_single.resolve(Skip())

        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.skipped_count == 1
        assert outcome.saved_count == 0
        assert len(paused_single.store) == 2
        assert storage.persist_calls == calls
        assert paused_single.state == EngineState.IDLE

    @pytest.mark.unit
    def test_save_as_new_single(self, paused_single):
        outcome = paused_single.resolve(SaveAsNew())

        assert _titles(outcome.inserted) == ["Horas Extras 2"]
        assert outcome.inserted[0].id.startswith("model:")
        assert len(paused_single.store) == 3
        assert outcome.context == SaveContext.SINGLE_SAVE

    @pytest.mark.unit
    def test_replace_defaults_to_matched_model(self, paused_single):
        target = paused_single.current_conflict().matched_model_id
        outcome = paused_single.resolve(Replace())

        assert [m.id for m in outcome.replaced] == [target]
        assert paused_single.store.get(target).title == "Horas Extras 2"
        assert len(paused_single.store) == 2

    @pytest.mark.unit
    def test_replace_keeps_favorite(self, paused_single):
        target = paused_single.current_conflict().matched_model_id
        paused_single.store.set_favorite(target, True)

        paused_single.resolve(Replace())

        assert paused_single.store.get(target).favorite is True

    @pytest.mark.unit
    def test_replace_missing_model_is_rejected(self, paused_single):
        conflict = paused_single.current_conflict()
        paused_single.store.delete(conflict.matched_model_id)

        with pytest.raises(InvalidResolutionError) as exc_info:
            paused_single.resolve(Replace())

        assert exc_info.value.existing_id == conflict.matched_model_id
        assert paused_single.state == EngineState.AWAITING_RESOLUTION
        assert paused_single.current_conflict() == conflict

        outcome = paused_single.resolve(SaveAsNew())
        assert outcome.status == OutcomeStatus.COMPLETED

    @pytest.mark.unit
    def test_replace_unknown_explicit_id_is_rejected(self, paused_single):
        with pytest.raises(InvalidResolutionError):
            paused_single.resolve(Replace(existing_id="model:missing"))

    @pytest.mark.unit
    def test_replace_pending_candidate_is_rejected(self, store):
        index = ScriptedSimilarityIndex({"B": ("A", 0.85)})
        engine = ReconciliationEngine(store, index=index)
        outcome = engine.submit_batch(_batch_of_three())

        with pytest.raises(InvalidResolutionError):
            engine.resolve(Replace())
        with pytest.raises(InvalidResolutionError):
            engine.resolve(Replace(existing_id=outcome.conflict.accepted_so_far[0].key))

        assert engine.state == EngineState.AWAITING_RESOLUTION
        assert len(store) == 0

    @pytest.mark.unit
    def test_replace_twice_in_one_batch_is_rejected(self, seeded_store):
        target = seeded_store.models[0]
        # B2 matches the pending overlay of B1 on the same model
        index = ScriptedSimilarityIndex(
            {"B1": ("Horas Extras", 0.9), "B2": ("B1", 0.9)}
        )
        engine = ReconciliationEngine(seeded_store, index=index)

        engine.submit_batch([make_candidate("B1"), make_candidate("B2")])
        outcome = engine.resolve(Replace())

        assert outcome.paused
        assert outcome.conflict.matched_model_id == target.id
        assert len(outcome.conflict.pending_replacements) == 1
        with pytest.raises(InvalidResolutionError):
            engine.resolve(Replace())

        final = engine.resolve(SaveAsNew())
        assert seeded_store.get(target.id).title == "B1"
        assert _titles(final.inserted) == ["B2"]

    @pytest.mark.unit
    def test_cancel_discards_everything(self, seeded_store, storage):
        before = seeded_store.models
        calls = storage.persist_calls
        index = ScriptedSimilarityIndex(
            {"B": ("Horas Extras", 0.9), "D": ("Dano Moral", 0.9)}
        )
        engine = ReconciliationEngine(seeded_store, index=index)
        batch = [make_candidate(t) for t in ("A", "B", "C", "D", "E")]

        engine.submit_batch(batch)
        engine.resolve(Replace())
        outcome = engine.resolve(Cancel())

        assert outcome.status == OutcomeStatus.CANCELLED
        # D and E are skipped; A, the replacement and C are discarded
        assert outcome.skipped_count == 2
        assert outcome.discarded_count == 3
        assert outcome.summary() == "Cancelled. 5 model(s) not saved."
        assert seeded_store.models == before
        assert storage.persist_calls == calls
        assert engine.state == EngineState.IDLE
        assert engine.current_conflict() is None

    @pytest.mark.unit
    def test_cancel_single(self, paused_single):
        outcome = paused_single.resolve(Cancel())
        assert outcome.skipped_count == 1
        assert outcome.discarded_count == 0
        assert len(paused_single.store) == 2


# =============================================================================
# State Machine
# =============================================================================


class TestStateMachine:
    """Tests for state guards, busy detection and failure handling."""

    @pytest.mark.unit
    def test_resolve_while_idle(self, store):
        engine = ReconciliationEngine(store)
        with pytest.raises(InvalidStateError):
            engine.resolve(Skip())

    @pytest.mark.unit
    def test_submit_while_awaiting(self, store):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        engine.submit_batch(_batch_of_three())

        with pytest.raises(InvalidStateError):
            engine.submit_single(make_candidate("X"))
        with pytest.raises(InvalidStateError):
            engine.submit_batch([make_candidate("Y")])
        assert engine.current_conflict().candidate.title == "B"

    @pytest.mark.unit
    def test_reentrant_call_is_busy(self, store):
        errors = []

        def on_progress(done, total):
            try:
                engine.submit_single(make_candidate("Nested"))
            except EngineBusyError as e:
                errors.append(e)

        service = EmbeddingService(FakeEmbeddingBackend(), enabled=True)
        engine = ReconciliationEngine(store, service, on_progress=on_progress)

        engine.submit_batch(
            [
                make_candidate("Ferias", "<p>ferias vencidas em dobro</p>"),
                make_candidate("Aviso", "<p>aviso previo indenizado</p>"),
            ]
        )

        assert len(errors) == 2
        assert _titles(store.models) == ["Ferias", "Aviso"]
        assert engine.state == EngineState.IDLE
        service.close()

    @pytest.mark.unit
    def test_persistence_failure_leaves_library_unchanged(self, seeded_store, storage):
        before = seeded_store.models
        generation = seeded_store.generation
        ledger_batches = seeded_store.ledger.batches
        storage.fail = True
        engine = ReconciliationEngine(seeded_store)

        with pytest.raises(PersistenceError):
            engine.submit_single(make_candidate("Aviso Previo"))

        assert seeded_store.models == before
        assert seeded_store.generation == generation
        assert seeded_store.ledger.batches == ledger_batches
        assert engine.state == EngineState.IDLE

    @pytest.mark.unit
    def test_persistence_failure_on_resume(self, store, storage):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        engine.submit_batch(_batch_of_three())
        storage.fail = True

        conflict = engine.current_conflict()

        with pytest.raises(PersistenceError):
            engine.resolve(Skip())

        assert engine.state == EngineState.AWAITING_RESOLUTION
        assert engine.current_conflict() == conflict
        assert len(store) == 0

        storage.fail = False
        final = engine.resolve(Skip())

        assert final.status == OutcomeStatus.COMPLETED
        assert _titles(store.models) == ["A", "C"]
        assert final.skipped_count == 1
        assert engine.state == EngineState.IDLE

    @pytest.mark.unit
    def test_persistence_failure_on_single_resume_keeps_conflict(
        self, seeded_store, storage
    ):
        index = ScriptedSimilarityIndex({"Novo": ("Horas Extras", 0.9)})
        engine = ReconciliationEngine(seeded_store, index=index)
        engine.submit_single(make_candidate("Novo"))
        storage.fail = True

        with pytest.raises(PersistenceError):
            engine.resolve(Replace())

        assert engine.state == EngineState.AWAITING_RESOLUTION
        assert engine.current_conflict().candidate.title == "Novo"
        assert _titles(seeded_store.models) == ["Horas Extras", "Dano Moral"]

        storage.fail = False
        final = engine.resolve(Replace())
        assert _titles(final.replaced) == ["Novo"]

    @pytest.mark.unit
    def test_commit_records_one_ledger_batch(self, store, ledger):
        engine = ReconciliationEngine(store)
        engine.submit_batch(
            [
                make_candidate("Ferias", "<p>ferias vencidas em dobro</p>"),
                make_candidate("Aviso", "<p>aviso previo indenizado</p>"),
            ]
        )
        assert ledger.batches == 1
        assert len(ledger) == 2

    @pytest.mark.unit
    def test_commit_invalidates_index(self, store):
        engine = ReconciliationEngine(store)
        engine.submit_single(make_candidate("Ferias", "<p>ferias vencidas</p>"))
        assert store.index.generation == store.generation
        assert not store.index.is_valid

    @pytest.mark.unit
    def test_failing_change_sink_does_not_fail_save(self):
        class _DownSink:
            def record_changes(self, entries):
                raise RuntimeError("sync service unavailable")

        store = LibraryStore(ledger=_DownSink())
        engine = ReconciliationEngine(store)

        outcome = engine.submit_single(make_candidate("Ferias", "<p>ferias vencidas</p>"))

        assert outcome.status == OutcomeStatus.COMPLETED
        assert len(store) == 1
        assert store.index.generation == store.generation
        assert len(store.undelivered_changes) == 1
        assert engine.state == EngineState.IDLE

    @pytest.mark.unit
    @pytest.mark.parametrize("threshold", [-0.01, 1.01])
    def test_threshold_validation(self, store, threshold):
        with pytest.raises(ValueError):
            ReconciliationEngine(store, threshold=threshold)
        engine = ReconciliationEngine(store)
        with pytest.raises(ValueError):
            engine.threshold = threshold

    @pytest.mark.unit
    def test_empty_batch_completes(self, store, storage):
        outcome = ReconciliationEngine(store).submit_batch([])
        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.saved_count == 0
        assert storage.persist_calls == 0


# =============================================================================
# Conflict State Persistence
# =============================================================================


class TestConflictRestore:
    """Tests for holding a paused batch outside the engine."""

    @pytest.mark.unit
    def test_json_round_trip_resumes_batch(self, store):
        index = ScriptedSimilarityIndex({"B": ("A", 0.85)})
        engine = ReconciliationEngine(store, index=index)
        outcome = engine.submit_batch(_batch_of_three())
        payload = outcome.conflict.model_dump_json()

        restored = ConflictState.model_validate_json(payload)
        assert restored == outcome.conflict

        other = ReconciliationEngine(store, index=index)
        other.restore_conflict(restored)
        assert other.state == EngineState.AWAITING_RESOLUTION

        final = other.resolve(Skip())
        assert _titles(store.models) == ["A", "C"]
        assert final.skipped_count == 1

    @pytest.mark.unit
    def test_restore_requires_idle(self, store):
        index = ScriptedSimilarityIndex({"B": ("A", 0.85)})
        engine = ReconciliationEngine(store, index=index)
        outcome = engine.submit_batch(_batch_of_three())

        with pytest.raises(InvalidStateError):
            engine.restore_conflict(outcome.conflict)

    @pytest.mark.unit
    def test_processed_count(self, store):
        index = ScriptedSimilarityIndex({"C": ("A", 0.85)})
        engine = ReconciliationEngine(store, index=index)
        outcome = engine.submit_batch(_batch_of_three())
        assert outcome.conflict.processed_count == 2
        assert outcome.conflict.is_batch


# =============================================================================
# Embeddings
# =============================================================================


class TestCommitEmbeddings:
    """Tests for embedding generation at commit time."""

    @pytest.mark.unit
    def test_generates_missing_embeddings(self, store, fake_backend):
        progress = []
        service = EmbeddingService(fake_backend, enabled=True)
        engine = ReconciliationEngine(
            store, service, on_progress=lambda done, total: progress.append((done, total))
        )

        engine.submit_batch(
            [
                make_candidate("Ferias", "<p>ferias vencidas em dobro</p>"),
                make_candidate("Aviso", "<p>aviso previo indenizado</p>"),
            ]
        )

        assert all(len(m.embedding) == 8 for m in store.models)
        assert progress == [(1, 2), (2, 2)]
        service.close()

    @pytest.mark.unit
    def test_keeps_existing_embedding(self, store, fake_backend):
        service = EmbeddingService(fake_backend, enabled=True)
        engine = ReconciliationEngine(store, service)

        engine.submit_single(make_candidate("Ferias", embedding=[0.5] * 8))

        assert store.models[0].embedding == [0.5] * 8
        assert fake_backend.calls == []
        service.close()

    @pytest.mark.unit
    def test_failure_is_per_item(self, store):
        service = EmbeddingService(FakeEmbeddingBackend(fail_marker="quebra"), enabled=True)
        engine = ReconciliationEngine(store, service)

        outcome = engine.submit_batch(
            [
                make_candidate("Ferias", "<p>ferias vencidas em dobro</p>"),
                make_candidate("Aviso", "<p>aviso quebra indenizado</p>"),
            ]
        )

        assert outcome.status == OutcomeStatus.COMPLETED
        ferias, aviso = store.models
        assert ferias.embedding is not None
        assert aviso.embedding is None
        service.close()

    @pytest.mark.unit
    def test_backend_not_ready_commits_without_embeddings(self, store):
        backend = FakeEmbeddingBackend(ready=False)
        engine = ReconciliationEngine(store, EmbeddingService(backend, enabled=True))

        engine.submit_single(make_candidate("Ferias"))

        assert store.models[0].embedding is None
        assert backend.calls == []

    @pytest.mark.unit
    @pytest.mark.parametrize("with_service", [True, False])
    def test_feature_off_strips_embeddings(self, store, fake_backend, with_service):
        service = EmbeddingService(fake_backend, enabled=False) if with_service else None
        engine = ReconciliationEngine(store, service)

        engine.submit_single(make_candidate("Ferias", embedding=[0.5] * 8))

        assert store.models[0].embedding is None
        assert fake_backend.calls == []

    @pytest.mark.unit
    def test_replacement_gets_embedding(self, seeded_store, fake_backend):
        target = seeded_store.models[0].id
        service = EmbeddingService(fake_backend, enabled=True)
        index = ScriptedSimilarityIndex({"Novo": ("Horas Extras", 0.9)})
        engine = ReconciliationEngine(seeded_store, service, index=index)

        engine.submit_single(make_candidate("Novo"))
        engine.resolve(Replace())

        assert len(seeded_store.get(target).embedding) == 8
        service.close()

    @pytest.mark.unit
    def test_slow_item_does_not_starve_later_items(self, store):
        backend = FakeEmbeddingBackend(delay=1.0, slow_marker="lento")
        service = EmbeddingService(backend, enabled=True, timeout=0.3)
        engine = ReconciliationEngine(store, service)

        engine.submit_batch(
            [
                make_candidate("Ferias", "<p>ferias lento vencidas em dobro</p>"),
                make_candidate("Aviso", "<p>aviso previo indenizado</p>"),
                make_candidate("Horas", "<p>horas extras habituais</p>"),
                make_candidate("Dano", "<p>dano moral por assedio</p>"),
            ]
        )

        assert [m.embedding is not None for m in store.models] == [
            False,
            True,
            True,
            True,
        ]
        service.close()


# =============================================================================
# Resolutions and Outcomes
# =============================================================================


class TestResolutionParsing:
    """Tests for resolution payloads and outcome summaries."""

    @pytest.mark.unit
    def test_parse_by_kind(self):
        assert parse_resolution("skip") == Skip()
        assert parse_resolution({"kind": "save_as_new"}) == SaveAsNew()
        assert parse_resolution({"kind": "replace", "existing_id": "model:1"}) == Replace(
            existing_id="model:1"
        )
        assert parse_resolution("cancel") == Cancel()

    @pytest.mark.unit
    def test_parse_unknown_kind(self):
        with pytest.raises(ValidationError):
            parse_resolution("merge")

    @pytest.mark.unit
    def test_summary_of_empty_completion(self):
        outcome = ReconciliationOutcome(status=OutcomeStatus.COMPLETED)
        assert outcome.summary() == "0 model(s) added."

    @pytest.mark.unit
    def test_paused_summary(self, store):
        index = ScriptedSimilarityIndex({"B": ("A", 0.85)})
        outcome = ReconciliationEngine(store, index=index).submit_batch(_batch_of_three())
        assert outcome.summary() == "Similar model found: 'A' (85%)."


# =============================================================================
# Properties
# =============================================================================


def _random_run(seed: int):
    """Run a random batch with random resolutions.

    Returns:
        (batch, final outcome, conflicting candidate titles in order, store)
    """
    rng = random.Random(seed)
    store = LibraryStore(persistence=InMemoryStorage())
    store.commit([make_candidate(f"Base {i}") for i in range(3)])

    size = rng.randint(1, 12)
    batch = [make_candidate(f"Item {i}") for i in range(size)]
    rules = {}
    for i, candidate in enumerate(batch):
        if rng.random() < 0.4:
            pool = [f"Base {j}" for j in range(3)] + [f"Item {j}" for j in range(i)]
            rules[candidate.title] = (rng.choice(pool), rng.uniform(0.8, 1.0))

    engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex(rules))
    outcome = engine.submit_batch(batch)
    conflicts = []
    while outcome.paused:
        conflict = outcome.conflict
        conflicts.append(conflict.candidate.title)
        choice = rng.choice(["skip", "new", "replace"])
        if choice == "replace":
            try:
                outcome = engine.resolve(Replace())
                continue
            except InvalidResolutionError:
                choice = "skip"
        outcome = engine.resolve(Skip() if choice == "skip" else SaveAsNew())
    return batch, outcome, conflicts, store


class TestProperties:
    """Randomized checks of the engine's guarantees."""

    @pytest.mark.unit
    @pytest.mark.parametrize("seed", range(20))
    def test_conservation(self, seed):
        batch, outcome, _, _ = _random_run(seed)
        total = (
            len(outcome.inserted)
            + len(outcome.replaced)
            + outcome.skipped_count
            + outcome.discarded_count
        )
        assert total == len(batch)

    @pytest.mark.unit
    @pytest.mark.parametrize("seed", range(20))
    def test_conflicts_follow_submission_order(self, seed):
        batch, _, conflicts, _ = _random_run(seed)
        order = [c.title for c in batch]
        positions = [order.index(title) for title in conflicts]
        assert positions == sorted(positions)
        assert len(set(positions)) == len(positions)

    @pytest.mark.unit
    @pytest.mark.parametrize("seed", range(20))
    def test_inserted_keep_submission_order(self, seed):
        batch, outcome, _, store = _random_run(seed)
        order = [c.title for c in batch]
        inserted = _titles(outcome.inserted)
        assert inserted == sorted(inserted, key=order.index)
        assert len({m.id for m in store.models}) == len(store)

    @pytest.mark.unit
    def test_replace_is_idempotent_on_size_and_id(self, seeded_store):
        target = seeded_store.models[1]
        index = ScriptedSimilarityIndex({"Novo": ("Dano Moral", 0.9)})
        engine = ReconciliationEngine(seeded_store, index=index)

        for _ in range(2):
            engine.submit_single(make_candidate("Novo", "<p>conteudo novo</p>"))
            engine.resolve(Replace())
            index.rules["Novo"] = ("Novo", 0.9)

        replaced = seeded_store.get(target.id)
        assert len(seeded_store) == 2
        assert replaced.content == "<p>conteudo novo</p>"
        assert seeded_store.models[1].id == target.id

    @pytest.mark.unit
    def test_identical_candidate_always_flagged(self, store):
        text = "<p>rescisao indireta por falta grave do empregador</p>"
        store.commit([make_candidate("Rescisao Indireta", text)])

        for threshold in (0.0, 0.5, 0.8, 0.99, 1.0):
            engine = ReconciliationEngine(store, threshold=threshold)
            outcome = engine.submit_single(make_candidate("Rescisao Indireta", text))
            assert outcome.paused, threshold
            engine.resolve(Cancel())

    @pytest.mark.unit
    def test_raising_threshold_never_adds_conflicts(self):
        seed = [
            make_candidate("Horas Extras", "<p>pagamento de horas extras habituais</p>"),
            make_candidate("Dano Moral", "<p>indenizacao por assedio moral</p>"),
        ]
        batch = [
            make_candidate("Horas Extras", "<p>pagamento de horas extras habituais</p>"),
            make_candidate("Horas Noturnas", "<p>adicional de horas noturnas</p>"),
            make_candidate("Dano Moral Coletivo", "<p>dano moral coletivo e assedio</p>"),
            make_candidate("Ferias", "<p>ferias vencidas em dobro</p>"),
        ]

        counts = []
        for threshold in (0.05, 0.2, 0.4, 0.6, 0.8, 1.0):
            store = LibraryStore(persistence=InMemoryStorage())
            store.commit([c.model_copy() for c in seed])
            engine = ReconciliationEngine(store, threshold=threshold)
            outcome = engine.submit_batch([c.model_copy() for c in batch])
            flagged = 0
            while outcome.paused:
                flagged += 1
                outcome = engine.resolve(Skip())
            counts.append(flagged)

        assert counts == sorted(counts, reverse=True)
        assert counts[-1] >= 1
