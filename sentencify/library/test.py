"""Tests for the model library.

Tests cover:
- Data contracts and validation
- Change ledger coalescing
- LibraryStore commit, edit, delete and serialization
- Persistence failure semantics and index invalidation
- SQLite persistence backend
"""

import random
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from sentencify.conftest import make_candidate

from .errors import DuplicateModelError, ModelNotFoundError, PersistenceError
from .ledger import ChangeLedger
from .lib import LibraryStore, open_library
from .models import (
    MODEL_ID_PREFIX,
    Candidate,
    ChangeEntry,
    ChangeOperation,
    Model,
    Replacement,
    SaveContext,
)
from .storage import InMemoryStorage, SQLiteStorage

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test storage."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class ExplodingStorage(InMemoryStorage):
    """Persistence that raises instead of returning False."""

    def persist(self, models):
        raise OSError("disk full")


# =============================================================================
# Data Contracts
# =============================================================================


class TestModels:
    """Tests for Model and Candidate contracts."""

    @pytest.mark.unit
    @pytest.mark.parametrize("field", ["title", "content"])
    def test_blank_required_fields_rejected(self, field):
        data = {"title": "Horas", "content": "<p>x</p>", field: "   "}
        with pytest.raises(ValidationError):
            Candidate(**data)

    @pytest.mark.unit
    def test_candidate_keys_are_unique_and_not_model_ids(self):
        a, b = make_candidate("A"), make_candidate("B")
        assert a.key != b.key
        assert not a.key.startswith(MODEL_ID_PREFIX)

    @pytest.mark.unit
    def test_keyword_text(self):
        assert make_candidate("A", keywords=["x1", "", "y2"]).keyword_text == "x1 y2"
        assert make_candidate("A", keywords="livre").keyword_text == "livre"

    @pytest.mark.unit
    def test_from_candidate_stamps_times(self):
        model = Model.from_candidate(make_candidate("A"))
        assert model.id.startswith(MODEL_ID_PREFIX)
        assert model.created_at == model.updated_at
        assert model.created_at.tzinfo is not None

    @pytest.mark.unit
    def test_context_is_optional(self):
        candidate = make_candidate("A", context=SaveContext.EXTRACTED_SAVE)
        assert candidate.context == SaveContext.EXTRACTED_SAVE
        assert make_candidate("B").context is None


# =============================================================================
# Change Ledger
# =============================================================================


class TestChangeLedger:
    """Tests for pending-change coalescing."""

    @pytest.fixture
    def model(self) -> Model:
        return Model.from_candidate(make_candidate("A"))

    @pytest.mark.unit
    def test_carried_over_entries_keep_folding(self, model):
        ledger = ChangeLedger([ChangeEntry.create(model)])
        ledger.record_changes([ChangeEntry.delete(model.id)])
        assert ledger.pending() == []

    @pytest.mark.unit
    def test_records_in_order(self, ledger):
        a = Model.from_candidate(make_candidate("A"))
        b = Model.from_candidate(make_candidate("B"))
        ledger.record_changes([ChangeEntry.create(a), ChangeEntry.update(b)])
        assert [(e.operation, e.model_id) for e in ledger.pending()] == [
            (ChangeOperation.CREATE, a.id),
            (ChangeOperation.UPDATE, b.id),
        ]
        assert ledger.batches == 1

    @pytest.mark.unit
    def test_create_then_update_stays_create(self, ledger, model):
        ledger.record_changes([ChangeEntry.create(model)])
        edited = model.model_copy(update={"title": "A2"})
        ledger.record_changes([ChangeEntry.update(edited)])
        (entry,) = ledger.pending()
        assert entry.operation == ChangeOperation.CREATE
        assert entry.model.title == "A2"

    @pytest.mark.unit
    def test_delete_of_unsynced_create_drops_entry(self, ledger, model):
        ledger.record_changes([ChangeEntry.create(model)])
        ledger.record_changes([ChangeEntry.delete(model.id)])
        assert ledger.pending() == []

    @pytest.mark.unit
    def test_update_then_delete_keeps_only_id(self, ledger, model):
        ledger.record_changes([ChangeEntry.update(model)])
        ledger.record_changes([ChangeEntry(operation=ChangeOperation.DELETE, model_id=model.id, model=model)])
        (entry,) = ledger.pending()
        assert entry.operation == ChangeOperation.DELETE
        assert entry.model is None

    @pytest.mark.unit
    def test_later_change_moves_to_end(self, ledger):
        a = Model.from_candidate(make_candidate("A"))
        b = Model.from_candidate(make_candidate("B"))
        ledger.record_changes([ChangeEntry.update(a), ChangeEntry.update(b)])
        ledger.record_changes([ChangeEntry.update(a)])
        assert [e.model_id for e in ledger.pending()] == [b.id, a.id]

    @pytest.mark.unit
    def test_drain_clears(self, ledger, model):
        ledger.record_changes([ChangeEntry.update(model)])
        assert len(ledger.drain()) == 1
        assert len(ledger) == 0


# =============================================================================
# LibraryStore
# =============================================================================


class TestCommit:
    """Tests for LibraryStore.commit."""

    @pytest.mark.unit
    def test_first_commit_into_empty_library(self, store):
        result = store.commit([make_candidate("Horas Extras")])
        assert len(store) == 1
        assert result.inserted[0].id.startswith(MODEL_ID_PREFIX)
        assert store.models[0] == result.inserted[0]

    @pytest.mark.unit
    def test_insertions_get_fresh_unique_ids_in_order(self, store):
        result = store.commit([make_candidate(t) for t in "ABCDE"])
        ids = [m.id for m in store.models]
        assert len(set(ids)) == 5
        assert [m.title for m in store.models] == list("ABCDE")
        assert {m.id for m in result.inserted} == set(ids)

    @pytest.mark.unit
    def test_replacement_keeps_id_position_and_created_at(self, seeded_store):
        original = seeded_store.models[0]
        seeded_store.set_favorite(original.id)
        candidate = make_candidate("Horas Extras v2", "<p>novo texto</p>")

        result = seeded_store.commit(replacements=[Replacement(existing_id=original.id, candidate=candidate)])

        updated = seeded_store.models[0]
        assert len(seeded_store) == 2
        assert updated.id == original.id
        assert updated.title == "Horas Extras v2"
        assert updated.content == "<p>novo texto</p>"
        assert updated.created_at == original.created_at
        assert updated.updated_at >= original.updated_at
        assert updated.favorite is True
        assert result.replaced == [updated]

    @pytest.mark.unit
    def test_replacement_of_unknown_id(self, store):
        with pytest.raises(ModelNotFoundError):
            store.commit(replacements=[Replacement(existing_id="model:nope", candidate=make_candidate("A"))])
        assert store.generation == 0

    @pytest.mark.unit
    def test_two_replacements_of_same_id(self, seeded_store):
        target = seeded_store.models[0].id
        with pytest.raises(DuplicateModelError):
            seeded_store.commit(
                replacements=[
                    Replacement(existing_id=target, candidate=make_candidate("X")),
                    Replacement(existing_id=target, candidate=make_candidate("Y")),
                ]
            )

    @pytest.mark.unit
    def test_empty_commit_changes_nothing(self, store, storage, ledger):
        result = store.commit([], [])
        assert result.total == 0
        assert store.generation == 0
        assert storage.persist_calls == 0
        assert ledger.batches == 0

    @pytest.mark.unit
    def test_one_ledger_batch_per_commit(self, seeded_store, ledger):
        ledger.drain()
        batches = ledger.batches
        target = seeded_store.models[1].id
        seeded_store.commit(
            [make_candidate("C"), make_candidate("D")],
            [Replacement(existing_id=target, candidate=make_candidate("B2"))],
        )
        assert ledger.batches == batches + 1
        operations = sorted(e.operation.value for e in ledger.pending())
        assert operations == ["create", "create", "update"]

    @pytest.mark.unit
    def test_embedding_of_wrong_length_is_dropped(self, storage):
        store = LibraryStore(persistence=storage, embedding_dimension=4)
        store.commit(
            [
                make_candidate("A", embedding=[0.1, 0.2, 0.3, 0.4]),
                make_candidate("B", embedding=[0.1, 0.2]),
            ]
        )
        assert store.models[0].embedding == [0.1, 0.2, 0.3, 0.4]
        assert store.models[1].embedding is None


class TestPersistenceFailure:
    """A failed write must leave the library untouched."""

    @pytest.mark.unit
    @pytest.mark.parametrize("storage_factory", [lambda: InMemoryStorage(fail=True), ExplodingStorage])
    def test_commit_failure_leaves_state(self, storage_factory):
        ledger = ChangeLedger()
        store = LibraryStore(persistence=storage_factory(), ledger=ledger)
        before = (store.models, store.generation, store.index.generation)

        with pytest.raises(PersistenceError):
            store.commit([make_candidate("A")])

        assert (store.models, store.generation, store.index.generation) == before
        assert ledger.batches == 0

    @pytest.mark.unit
    def test_cause_is_kept(self):
        store = LibraryStore(persistence=ExplodingStorage())
        with pytest.raises(PersistenceError) as info:
            store.commit([make_candidate("A")])
        assert isinstance(info.value.cause, OSError)

    @pytest.mark.unit
    def test_update_and_delete_failures(self, seeded_store, storage):
        snapshot = seeded_store.models
        storage.fail = True
        with pytest.raises(PersistenceError):
            seeded_store.update(snapshot[0].id, title="Outro")
        with pytest.raises(PersistenceError):
            seeded_store.delete(snapshot[0].id)
        assert seeded_store.models == snapshot


class TestEditing:
    """Tests for update, favorite and delete."""

    @pytest.mark.unit
    def test_update_fields(self, seeded_store, ledger):
        ledger.drain()
        target = seeded_store.models[0]
        updated = seeded_store.update(target.id, title="Horas Extras Noturnas", keywords=["noturno"])
        assert updated.id == target.id
        assert seeded_store.get(target.id).title == "Horas Extras Noturnas"
        assert ledger.pending()[0].operation == ChangeOperation.UPDATE

    @pytest.mark.unit
    def test_update_rejects_unknown_fields(self, seeded_store):
        with pytest.raises(ValueError, match="id"):
            seeded_store.update(seeded_store.models[0].id, id="model:other")

    @pytest.mark.unit
    def test_update_validates(self, seeded_store):
        with pytest.raises(ValidationError):
            seeded_store.update(seeded_store.models[0].id, title="")

    @pytest.mark.unit
    def test_update_unknown_model(self, store):
        with pytest.raises(ModelNotFoundError):
            store.update("model:missing", title="x")

    @pytest.mark.unit
    def test_delete(self, seeded_store, ledger):
        target = seeded_store.models[0]
        seeded_store.delete(target.id)
        assert target.id not in seeded_store
        assert len(seeded_store) == 1
        # Created and deleted before any sync: nothing left to send for it
        assert all(e.model_id != target.id for e in ledger.pending())


class _FlakySink:
    """Change sink that raises until `fail` is cleared."""

    def __init__(self):
        self.fail = True
        self.received: list[ChangeEntry] = []

    def record_changes(self, entries: list[ChangeEntry]) -> None:
        if self.fail:
            raise RuntimeError("sync service unavailable")
        self.received.extend(entries)


class TestIndexInvalidation:
    """The similarity index always reflects the latest corpus generation."""

    @pytest.mark.unit
    @pytest.mark.parametrize("seed", range(5))
    def test_index_generation_tracks_every_mutation(self, store, seed):
        rng = random.Random(seed)
        for step in range(25):
            models = store.models
            action = rng.choice(["insert", "replace", "update", "delete", "favorite"])
            if action != "insert" and not models:
                action = "insert"

            if action == "insert":
                store.commit([make_candidate(f"M{step}")])
            elif action == "replace":
                target = rng.choice(models).id
                store.commit(replacements=[Replacement(existing_id=target, candidate=make_candidate(f"R{step}"))])
            elif action == "update":
                store.update(rng.choice(models).id, content=f"<p>edit {step}</p>")
            elif action == "delete":
                store.delete(rng.choice(models).id)
            else:
                store.set_favorite(rng.choice(models).id)

            assert store.index.generation == store.generation
            assert not store.index.is_valid

    @pytest.mark.unit
    def test_failing_change_sink_keeps_commit_and_invalidates(self):
        sink = _FlakySink()
        store = LibraryStore(ledger=sink)

        result = store.commit([make_candidate("Ferias")])

        assert len(store) == 1
        assert store.generation == 1
        assert store.index.generation == store.generation
        assert not store.index.is_valid
        assert [e.model_id for e in store.undelivered_changes] == [result.inserted[0].id]

        sink.fail = False
        second = store.commit([make_candidate("Aviso")])

        assert store.undelivered_changes == []
        assert [e.model_id for e in sink.received] == [
            result.inserted[0].id,
            second.inserted[0].id,
        ]

    @pytest.mark.unit
    def test_lookup_after_commit_sees_new_model(self, store):
        candidate = Candidate(title="Horas Extras", content="pagamento de horas extras habituais")
        assert not store.index.find_similar(candidate, store.models).has_similar
        store.commit([candidate.model_copy(update={"key": "candidate:other"})])
        assert store.index.find_similar(candidate, store.models).has_similar


class TestSerialization:
    """Tests for serialize and restore."""

    @pytest.mark.unit
    def test_restore_round_trip(self, seeded_store, ledger):
        payload = seeded_store.serialize()
        assert payload["version"] == 1

        other = LibraryStore(ledger=ChangeLedger())
        assert other.restore(payload) == 2
        assert other.models == seeded_store.models
        assert other.index.generation == other.generation == 1

    @pytest.mark.unit
    def test_restore_rejects_duplicate_ids(self, seeded_store):
        payload = seeded_store.serialize()
        payload["models"].append(payload["models"][0])
        with pytest.raises(DuplicateModelError):
            LibraryStore().restore(payload)

    @pytest.mark.unit
    def test_restore_rejects_unknown_version(self):
        with pytest.raises(ValueError, match="version"):
            LibraryStore().restore({"version": 99, "models": []})

    @pytest.mark.unit
    def test_restore_records_no_changes(self, seeded_store):
        ledger = ChangeLedger()
        LibraryStore(ledger=ledger).restore(seeded_store.serialize())
        assert ledger.batches == 0


# =============================================================================
# SQLite Storage
# =============================================================================


class TestSQLiteStorage:
    """Tests for the SQLite persistence backend."""

    @pytest.mark.integration
    def test_persist_and_load_preserve_order_and_fields(self, temp_dir):
        storage = SQLiteStorage(temp_dir / "library.db")
        storage.initialize()
        models = [
            Model.from_candidate(make_candidate("B", keywords=["x", "y"], embedding=[0.5, 0.25])),
            Model.from_candidate(make_candidate("A", keywords="livre")).model_copy(update={"favorite": True}),
        ]
        assert storage.persist(models) is True
        loaded = storage.load()
        storage.close()

        assert loaded == models
        assert storage_count_after_reopen(temp_dir / "library.db") == 2

    @pytest.mark.integration
    def test_persist_replaces_previous_rows(self, temp_dir):
        storage = SQLiteStorage(temp_dir / "library.db")
        storage.initialize()
        storage.persist([Model.from_candidate(make_candidate(t)) for t in "ABC"])
        storage.persist([Model.from_candidate(make_candidate("D"))])
        assert [m.title for m in storage.load()] == ["D"]
        storage.close()

    @pytest.mark.unit
    def test_requires_initialize(self, temp_dir):
        storage = SQLiteStorage(temp_dir / "library.db")
        with pytest.raises(RuntimeError, match="not initialized"):
            storage.load()

    @pytest.mark.integration
    def test_open_library_reloads_committed_models(self, temp_dir):
        db_path = temp_dir / "nested" / "library.db"
        store = open_library(db_path)
        store.commit([make_candidate("Horas Extras"), make_candidate("Ferias")])
        store.close()

        reopened = open_library(db_path)
        assert [m.title for m in reopened.models] == ["Horas Extras", "Ferias"]
        assert reopened.index.generation == reopened.generation
        reopened.close()


def storage_count_after_reopen(db_path: Path) -> int:
    storage = SQLiteStorage(db_path)
    storage.initialize()
    try:
        return storage.count()
    finally:
        storage.close()
