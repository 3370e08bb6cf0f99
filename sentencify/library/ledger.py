"""Pending-change ledger consumed by an external sync collaborator.

The store reports every mutation here in one batched call. The ledger keeps
at most one pending entry per model id, folding successive changes:

- a later change replaces an earlier one for the same id and moves to the end
- create followed by update stays a create (carrying the newer model)
- delete of a model still pending as a create drops the entry entirely
- delete keeps only the id and timestamp
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from .models import ChangeEntry, ChangeOperation

logger = logging.getLogger(__name__)


class ChangeSink(Protocol):
    """Receiver of committed changes."""

    def record_changes(self, entries: list[ChangeEntry]) -> None:
        """Record one batch of changes produced by a single store call."""
        ...


class ChangeLedger:
    """In-memory coalescing ledger of changes awaiting sync.

    Args:
        entries: Pending entries carried over from an earlier session.
    """

    def __init__(self, entries: list[ChangeEntry] | None = None) -> None:
        self._pending: list[ChangeEntry] = list(entries or [])
        self._batches = 0
        self._lock = threading.Lock()

    @property
    def batches(self) -> int:
        """Number of record_changes calls received."""
        return self._batches

    def record_changes(self, entries: list[ChangeEntry]) -> None:
        with self._lock:
            self._batches += 1
            for entry in entries:
                self._fold(entry)
        logger.debug(f"Recorded {len(entries)} change(s); {len(self)} pending")

    def _fold(self, entry: ChangeEntry) -> None:
        existing = next(
            (e for e in self._pending if e.model_id == entry.model_id), None
        )
        self._pending = [e for e in self._pending if e.model_id != entry.model_id]
        was_create = existing is not None and existing.operation == ChangeOperation.CREATE

        if was_create and entry.operation == ChangeOperation.UPDATE:
            self._pending.append(
                entry.model_copy(update={"operation": ChangeOperation.CREATE})
            )
            return

        if was_create and entry.operation == ChangeOperation.DELETE:
            return

        if entry.operation == ChangeOperation.DELETE:
            entry = ChangeEntry(
                operation=ChangeOperation.DELETE,
                model_id=entry.model_id,
                updated_at=entry.updated_at,
            )
        self._pending.append(entry)

    def pending(self) -> list[ChangeEntry]:
        """Snapshot of pending entries in arrival order."""
        with self._lock:
            return list(self._pending)

    def drain(self) -> list[ChangeEntry]:
        """Return all pending entries and clear the ledger."""
        with self._lock:
            drained, self._pending = self._pending, []
        return drained

    def __len__(self) -> int:
        return len(self._pending)


__all__ = ["ChangeLedger", "ChangeSink"]
