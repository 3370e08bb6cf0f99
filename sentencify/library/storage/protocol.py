"""Persistence protocol for the model library.

Defines the interface that all persistence backends must implement.
"""

from typing import Protocol

from ..models import Model


class ModelPersistence(Protocol):
    """Protocol for durable storage of the full corpus.

    The store hands over the complete next corpus and only adopts it in
    memory when `persist` reports success.
    """

    def initialize(self) -> None:
        """Prepare storage (create tables, directories, etc.)."""
        ...

    def close(self) -> None:
        """Release storage resources."""
        ...

    def persist(self, models: list[Model]) -> bool:
        """Durably replace the stored corpus with `models`.

        Args:
            models: Complete corpus in display order.

        Returns:
            True if the write succeeded, False otherwise. Implementations
            may also raise; the store treats both as failure.
        """
        ...

    def load(self) -> list[Model]:
        """Load the stored corpus in display order."""
        ...


__all__ = ["ModelPersistence"]
