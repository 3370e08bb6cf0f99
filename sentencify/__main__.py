"""CLI entry point for sentencify.

This module is the terminal front end of the model library: it saves
models through the reconciliation engine and asks how to handle
near-duplicates, either interactively or through `--on-conflict`.
"""

import argparse
import json
import subprocess
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError

from sentencify.config import (
    EnvVar,
    get_db_path,
    get_environment,
    get_environment_info,
    get_similarity_threshold,
    list_environment_variables,
)
from sentencify.core import get_logger, setup_logging
from sentencify.embedding import EmbeddingService
from sentencify.library import (
    Candidate,
    ChangeEntry,
    ChangeLedger,
    LibraryError,
    LibraryStore,
    open_library,
)
from sentencify.reconcile import (
    InvalidResolutionError,
    ReconciliationEngine,
    ReconciliationError,
    ReconciliationOutcome,
    parse_resolution,
)

# Load environment variables from .env file
load_dotenv()

logger = get_logger("cli")

LEDGER_FILENAME = "ledger.json"

CONFLICT_POLICIES = {
    "skip": "skip",
    "new": "save_as_new",
    "replace": "replace",
    "cancel": "cancel",
}

PROMPT_KEYS = {
    "s": "skip",
    "n": "save_as_new",
    "r": "replace",
    "c": "cancel",
}

_ledger_adapter = TypeAdapter(list[ChangeEntry])
_candidates_adapter = TypeAdapter(list[Candidate])


# =============================================================================
# Session Helpers
# =============================================================================


def _ledger_path(db_path: Path) -> Path:
    return db_path.parent / LEDGER_FILENAME


def _load_ledger(path: Path) -> ChangeLedger:
    if not path.exists():
        return ChangeLedger()
    return ChangeLedger(_ledger_adapter.validate_json(path.read_bytes()))


def _save_ledger(ledger: ChangeLedger, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_ledger_adapter.dump_json(ledger.pending(), indent=2))


@contextmanager
def library_session(
    db: Path | None = None,
    *,
    with_embeddings: bool = False,
) -> Iterator[tuple[LibraryStore, ChangeLedger, EmbeddingService | None]]:
    """Open the library and its ledger, saving the ledger on exit.

    Args:
        db: Database path override.
        with_embeddings: Build the embedding service from the environment.
    """
    db_path = get_db_path(db)
    ledger_path = _ledger_path(db_path)
    ledger = _load_ledger(ledger_path)

    service = EmbeddingService.from_environment() if with_embeddings else None
    dimension = service.dimension if service is not None and service.enabled else None
    store = open_library(db_path, ledger=ledger, embedding_dimension=dimension)
    try:
        yield store, ledger, service
    finally:
        _save_ledger(ledger, ledger_path)
        store.close()
        if service is not None:
            service.close()


def _read_candidates(path: Path) -> list[Candidate]:
    """Read candidates from a JSON list or an exported library payload."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("models", [data])
    return _candidates_adapter.validate_python(data)


def _progress(done: int, total: int) -> None:
    logger.info(f"Embedding {done}/{total}")


# =============================================================================
# Conflict Resolution
# =============================================================================


def describe_conflict(outcome: ReconciliationOutcome) -> str:
    conflict = outcome.conflict
    where = "this batch" if conflict.matched_pending else "the library"
    lines = [
        f"'{conflict.candidate.title}' looks like '{conflict.matched_title}' "
        f"from {where} (score {conflict.score:.2f})",
    ]
    if conflict.is_batch:
        lines.append(
            f"  {conflict.processed_count} decided, "
            f"{len(conflict.remaining_queue)} remaining"
        )
    return "\n".join(lines)


def choose_resolution(
    outcome: ReconciliationOutcome,
    policy: str | None,
    prompt: Callable[[str], str] = input,
):
    """Pick a resolution from the policy, or ask the user."""
    if policy is not None:
        return parse_resolution(CONFLICT_POLICIES[policy])

    options = "[s]kip, save as [n]ew, [r]eplace, [c]ancel"
    if outcome.conflict.matched_pending:
        options = "[s]kip, save as [n]ew, [c]ancel"
    while True:
        try:
            answer = prompt(f"{options}? ").strip().lower()[:1]
        except EOFError:
            return parse_resolution("cancel")
        if answer in PROMPT_KEYS:
            return parse_resolution(PROMPT_KEYS[answer])
        print(f"Please answer one of: {options}")


def run_until_done(
    engine: ReconciliationEngine,
    outcome: ReconciliationOutcome,
    policy: str | None,
    prompt: Callable[[str], str] = input,
) -> ReconciliationOutcome:
    """Resolve conflicts until the operation completes or is cancelled."""
    while outcome.paused:
        print(describe_conflict(outcome))
        resolution = choose_resolution(outcome, policy, prompt)
        try:
            outcome = engine.resolve(resolution)
        except InvalidResolutionError as e:
            logger.warning(str(e))
            if policy is not None:
                # A fixed policy cannot ask again; fall back to skipping
                outcome = engine.resolve(parse_resolution("skip"))
    return outcome


# =============================================================================
# Library Commands
# =============================================================================


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the list command."""
    with library_session(args.db) as (store, _ledger, _service):
        if args.json:
            print(json.dumps(store.serialize()["models"], indent=2, ensure_ascii=False))
            return 0

        if not len(store):
            logger.info("Library is empty")
            return 0

        for model in store.models:
            star = "*" if model.favorite else " "
            print(f"{star} {model.id}  {model.title}  [{model.category}]")
        logger.info(f"{len(store)} model(s)")
    return 0


def _save(args: argparse.Namespace, candidates: list[Candidate], batch: bool) -> int:
    threshold = get_similarity_threshold(args.threshold)
    with library_session(args.db, with_embeddings=True) as (store, _ledger, service):
        engine = ReconciliationEngine(
            store, service, threshold=threshold, on_progress=_progress
        )
        if batch:
            outcome = engine.submit_batch(candidates)
        else:
            outcome = engine.submit_single(candidates[0])
        outcome = run_until_done(engine, outcome, args.on_conflict)
    print(outcome.summary())
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Handle the add command."""
    if args.file is None and (not args.title or not args.content):
        logger.error("add needs --title and --content, or --file")
        return 1

    try:
        if args.file:
            candidates = _read_candidates(args.file)
        else:
            fields = {"title": args.title, "content": args.content}
            if args.keywords:
                fields["keywords"] = args.keywords
            if args.category:
                fields["category"] = args.category
            candidates = [Candidate(**fields)]
    except (OSError, ValueError) as e:
        logger.error(f"Could not read model: {e}")
        return 1

    if len(candidates) != 1:
        logger.error(f"{args.file} holds {len(candidates)} models; use import")
        return 1

    try:
        return _save(args, candidates, batch=False)
    except (LibraryError, ReconciliationError, ValueError) as e:
        logger.error(f"Save failed: {e}")
        return 1


def cmd_import(args: argparse.Namespace) -> int:
    """Handle the import command."""
    try:
        candidates = _read_candidates(args.file)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read {args.file}: {e}")
        return 1

    logger.info(f"Importing {len(candidates)} model(s) from {args.file}")
    try:
        return _save(args, candidates, batch=True)
    except (LibraryError, ReconciliationError, ValueError) as e:
        logger.error(f"Import failed: {e}")
        return 1


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the check command: score a model without saving it."""
    try:
        candidate = Candidate(
            title=args.title, content=args.content, keywords=args.keywords or ""
        )
    except ValidationError as e:
        logger.error(f"Invalid model: {e}")
        return 1

    threshold = get_similarity_threshold(args.threshold)
    with library_session(args.db) as (store, _ledger, _service):
        corpus = store.models
        result = store.index.find_similar(candidate, corpus, threshold)
        ranked = sorted(
            store.index.scores(candidate, corpus), key=lambda pair: pair[1], reverse=True
        )

    for model, score in ranked[: args.top]:
        print(f"{score:.3f}  {model.id}  {model.title}")
    if result.has_similar:
        print(f"Similar model found: '{result.matched_model.title}' ({result.score:.0%})")
    else:
        print(f"No model at or above {threshold:.2f}")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Handle the delete command."""
    try:
        with library_session(args.db) as (store, _ledger, _service):
            model = store.delete(args.model_id)
    except LibraryError as e:
        logger.error(f"Delete failed: {e}")
        return 1
    print(f"Deleted '{model.title}'")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Handle the export command."""
    with library_session(args.db) as (store, _ledger, _service):
        payload = store.serialize()
    args.file.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    logger.info(f"Exported {len(payload['models'])} model(s) to {args.file}")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    """Handle the restore command: replace the library with an export."""
    try:
        payload = json.loads(args.file.read_text(encoding="utf-8"))
        with library_session(args.db) as (store, _ledger, _service):
            count = store.restore(payload)
    except (OSError, ValueError, ValidationError, LibraryError) as e:
        logger.error(f"Restore failed: {e}")
        return 1
    print(f"Restored {count} model(s)")
    return 0


def cmd_ledger(args: argparse.Namespace) -> int:
    """Handle the ledger command."""
    with library_session(args.db) as (_store, ledger, _service):
        entries = ledger.drain() if args.drain else ledger.pending()

    if args.json:
        print(_ledger_adapter.dump_json(entries, indent=2).decode("utf-8"))
        return 0

    for entry in entries:
        title = entry.model.title if entry.model is not None else ""
        print(f"{entry.operation.value:<7} {entry.model_id}  {title}")
    action = "Drained" if args.drain else "Pending"
    logger.info(f"{action}: {len(entries)} change(s)")
    return 0


def cmd_env(_args: argparse.Namespace) -> int:
    """Handle the env command."""
    for var in list_environment_variables():
        info = get_environment_info(var)
        print(f"{info.name:<34} {get_environment(var)!s:<40} {info.description}")
    return 0


def cmd_test(extra_args: list[str]) -> int:
    """Run pytest with provided arguments and test tier options.

    Usage:
        python -m sentencify test                # Run all tests
        python -m sentencify test --unit         # Run only unit tests
        python -m sentencify test --integration  # Run SQLite/file tests
        python -m sentencify test -k "ledger"    # Run tests matching pattern
    """
    tier_markers = {
        "--unit": ["-m", "unit"],
        "--integration": ["-m", "integration"],
        "--all": [],
    }

    pytest_args: list[str] = []
    remaining_args: list[str] = []

    for arg in extra_args:
        if arg in tier_markers:
            pytest_args.extend(tier_markers[arg])
        else:
            remaining_args.append(arg)

    cmd = [sys.executable, "-m", "pytest", *pytest_args, *remaining_args]
    logger.info(f"Running: {' '.join(cmd)}")

    try:
        return subprocess.call(cmd)
    except KeyboardInterrupt:
        return 130


# =============================================================================
# Argument Parsing
# =============================================================================


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Library database (default: SENTENCIFY_DB_PATH or .sentencify/library.db)",
    )


def _add_save_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--on-conflict",
        type=str,
        default=None,
        choices=sorted(CONFLICT_POLICIES),
        help="Resolve every conflict this way instead of asking",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Duplicate threshold (default: SENTENCIFY_SIMILARITY_THRESHOLD)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m sentencify",
        description="Manage a library of reusable text models",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    list_parser = subparsers.add_parser("list", help="List models")
    _add_common(list_parser)
    list_parser.add_argument("--json", action="store_true", help="Print JSON")
    list_parser.set_defaults(func=cmd_list)

    add_parser = subparsers.add_parser("add", help="Save one model")
    _add_common(add_parser)
    _add_save_options(add_parser)
    add_parser.add_argument("--title", "-t", type=str, default=None)
    add_parser.add_argument("--content", "-c", type=str, default=None)
    add_parser.add_argument("--keywords", "-k", type=str, default=None)
    add_parser.add_argument("--category", type=str, default=None)
    add_parser.add_argument(
        "--file", "-f", type=Path, default=None, help="JSON file holding one model"
    )
    add_parser.set_defaults(func=cmd_add)

    import_parser = subparsers.add_parser("import", help="Save models from a JSON file")
    _add_common(import_parser)
    _add_save_options(import_parser)
    import_parser.add_argument("file", type=Path, help="JSON list or exported library")
    import_parser.set_defaults(func=cmd_import)

    check_parser = subparsers.add_parser(
        "check", help="Show the closest models without saving"
    )
    _add_common(check_parser)
    check_parser.add_argument("--title", "-t", type=str, required=True)
    check_parser.add_argument("--content", "-c", type=str, required=True)
    check_parser.add_argument("--keywords", "-k", type=str, default=None)
    check_parser.add_argument("--threshold", type=float, default=None)
    check_parser.add_argument(
        "--top", type=int, default=5, help="Scores to show (default: 5)"
    )
    check_parser.set_defaults(func=cmd_check)

    delete_parser = subparsers.add_parser("delete", help="Delete a model")
    _add_common(delete_parser)
    delete_parser.add_argument("model_id", type=str)
    delete_parser.set_defaults(func=cmd_delete)

    export_parser = subparsers.add_parser("export", help="Write the library to JSON")
    _add_common(export_parser)
    export_parser.add_argument("file", type=Path)
    export_parser.set_defaults(func=cmd_export)

    restore_parser = subparsers.add_parser(
        "restore", help="Replace the library with an exported JSON file"
    )
    _add_common(restore_parser)
    restore_parser.add_argument("file", type=Path)
    restore_parser.set_defaults(func=cmd_restore)

    ledger_parser = subparsers.add_parser("ledger", help="Show pending sync changes")
    _add_common(ledger_parser)
    ledger_parser.add_argument(
        "--drain", action="store_true", help="Clear pending changes after printing"
    )
    ledger_parser.add_argument("--json", action="store_true", help="Print JSON")
    ledger_parser.set_defaults(func=cmd_ledger)

    env_parser = subparsers.add_parser("env", help="Show configuration variables")
    env_parser.set_defaults(func=cmd_env)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    argv = sys.argv[1:] if argv is None else argv
    setup_logging(get_environment(EnvVar.LOG_LEVEL))

    # pytest receives its arguments untouched
    if argv and argv[0] == "test":
        return cmd_test(argv[1:])

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 1

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
