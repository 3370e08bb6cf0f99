"""Tests for the command line front end."""

import json

import pytest

from sentencify.__main__ import choose_resolution, main, run_until_done
from sentencify.conftest import ScriptedSimilarityIndex, make_candidate
from sentencify.reconcile import (
    OutcomeStatus,
    ReconciliationEngine,
    Replace,
    SaveAsNew,
    Skip,
)

HORAS = "<p>pagamento de horas extras habituais</p>"
FERIAS = "<p>ferias vencidas pagas em dobro</p>"


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("SENTENCIFY_SEMANTIC_ENABLED", "false")
    return str(tmp_path / "library.db")


def _run(capsys, *argv) -> tuple[int, str]:
    code = main(list(argv))
    return code, capsys.readouterr().out


# =============================================================================
# Commands
# =============================================================================


class TestCommands:
    """Tests driving main() against a SQLite library."""

    @pytest.mark.integration
    def test_add_and_list(self, db, capsys):
        code, out = _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        assert code == 0
        assert "1 model(s) added." in out

        code, out = _run(capsys, "list", "--db", db, "--json")
        models = json.loads(out)
        assert [m["title"] for m in models] == ["Horas Extras"]

    @pytest.mark.integration
    def test_duplicate_skipped_by_policy(self, db, capsys):
        _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        code, out = _run(
            capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS,
            "--on-conflict", "skip",
        )
        assert code == 0
        assert "looks like 'Horas Extras'" in out
        assert "0 model(s) added. 1 skipped." in out

    @pytest.mark.integration
    def test_import_with_replace_policy(self, db, capsys, tmp_path):
        _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        source = tmp_path / "batch.json"
        source.write_text(
            json.dumps(
                [
                    {"title": "Horas Extras", "content": HORAS, "keywords": "jornada"},
                    {"title": "Ferias", "content": FERIAS},
                ]
            ),
            encoding="utf-8",
        )

        code, out = _run(capsys, "import", "--db", db, str(source), "--on-conflict", "replace")

        assert code == 0
        assert "1 model(s) added, 1 replaced." in out
        _, listed = _run(capsys, "list", "--db", db, "--json")
        models = json.loads(listed)
        assert [m["title"] for m in models] == ["Horas Extras", "Ferias"]
        assert models[0]["keywords"] == "jornada"

    @pytest.mark.integration
    def test_import_ignores_keys_in_file(self, db, capsys, tmp_path):
        source = tmp_path / "batch.json"
        entry = {"title": "Ferias", "content": FERIAS, "key": "candidate:shared"}
        source.write_text(json.dumps([entry, entry]), encoding="utf-8")

        code, out = _run(capsys, "import", "--db", db, str(source), "--on-conflict", "skip")

        assert code == 0
        assert "1 model(s) added. 1 skipped." in out
        _, listed = _run(capsys, "list", "--db", db, "--json")
        assert [m["title"] for m in json.loads(listed)] == ["Ferias"]

    @pytest.mark.integration
    def test_ledger_survives_sessions_and_drains(self, db, capsys):
        _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        _run(capsys, "add", "--db", db, "-t", "Ferias", "-c", FERIAS)

        _, out = _run(capsys, "ledger", "--db", db, "--json")
        entries = json.loads(out)
        assert [e["operation"] for e in entries] == ["create", "create"]

        _run(capsys, "ledger", "--db", db, "--drain")
        _, out = _run(capsys, "ledger", "--db", db, "--json")
        assert json.loads(out) == []

    @pytest.mark.integration
    def test_delete_of_unsynced_model_leaves_no_change(self, db, capsys):
        _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        _, listed = _run(capsys, "list", "--db", db, "--json")
        model_id = json.loads(listed)[0]["id"]

        code, _ = _run(capsys, "delete", "--db", db, model_id)
        assert code == 0
        _, out = _run(capsys, "ledger", "--db", db, "--json")
        assert json.loads(out) == []

    @pytest.mark.integration
    def test_delete_unknown(self, db, capsys):
        code, _ = _run(capsys, "delete", "--db", db, "model:missing")
        assert code == 1

    @pytest.mark.integration
    def test_export_and_restore(self, db, capsys, tmp_path):
        _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        target = tmp_path / "export.json"
        assert _run(capsys, "export", "--db", db, str(target))[0] == 0

        other = str(tmp_path / "other.db")
        code, out = _run(capsys, "restore", "--db", other, str(target))
        assert code == 0
        assert "Restored 1 model(s)" in out
        _, listed = _run(capsys, "list", "--db", other, "--json")
        assert json.loads(listed) == json.loads(target.read_text(encoding="utf-8"))["models"]

    @pytest.mark.integration
    def test_check_reports_best_match(self, db, capsys):
        _run(capsys, "add", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        code, out = _run(capsys, "check", "--db", db, "-t", "Horas Extras", "-c", HORAS)
        assert code == 0
        assert "Similar model found: 'Horas Extras' (100%)" in out

        _, out = _run(capsys, "check", "--db", db, "-t", "Ferias", "-c", FERIAS)
        assert "No model at or above 0.80" in out

    @pytest.mark.integration
    def test_add_requires_fields(self, db, capsys):
        assert _run(capsys, "add", "--db", db, "-t", "Sem corpo")[0] == 1

    @pytest.mark.integration
    def test_add_rejects_blank_title(self, db, capsys):
        assert _run(capsys, "add", "--db", db, "-t", "  ", "-c", HORAS)[0] == 1

    @pytest.mark.unit
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1


# =============================================================================
# Conflict Prompting
# =============================================================================


class TestPrompting:
    """Tests for interactive conflict handling."""

    @pytest.mark.unit
    def test_policy_maps_to_resolution(self, store):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        outcome = engine.submit_batch([make_candidate("A"), make_candidate("B")])
        assert choose_resolution(outcome, "new") == SaveAsNew()
        assert choose_resolution(outcome, "skip") == Skip()
        assert choose_resolution(outcome, "replace") == Replace()

    @pytest.mark.unit
    def test_prompt_repeats_until_valid(self, store, capsys):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        outcome = engine.submit_batch([make_candidate("A"), make_candidate("B")])
        answers = iter(["x", "n"])

        assert choose_resolution(outcome, None, lambda _: next(answers)) == SaveAsNew()
        assert "Please answer" in capsys.readouterr().out

    @pytest.mark.unit
    def test_end_of_input_cancels(self, store):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        outcome = engine.submit_batch([make_candidate("A"), make_candidate("B")])

        def closed(_):
            raise EOFError

        final = run_until_done(engine, outcome, None, closed)
        assert final.status == OutcomeStatus.CANCELLED
        assert len(store) == 0

    @pytest.mark.unit
    def test_invalid_replace_is_asked_again(self, store):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        outcome = engine.submit_batch([make_candidate("A"), make_candidate("B")])
        answers = iter(["r", "s"])

        final = run_until_done(engine, outcome, None, lambda _: next(answers))

        assert final.status == OutcomeStatus.COMPLETED
        assert [m.title for m in store.models] == ["A"]
        assert final.skipped_count == 1

    @pytest.mark.unit
    def test_replace_policy_falls_back_to_skip(self, store):
        engine = ReconciliationEngine(store, index=ScriptedSimilarityIndex({"B": ("A", 0.9)}))
        outcome = engine.submit_batch([make_candidate("A"), make_candidate("B")])

        final = run_until_done(engine, outcome, "replace")

        assert [m.title for m in store.models] == ["A"]
        assert final.skipped_count == 1
