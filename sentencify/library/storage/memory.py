"""In-memory persistence backend for tests and ephemeral sessions."""

from ..models import Model


class InMemoryStorage:
    """Keeps the last persisted corpus in a list.

    Args:
        models: Initial stored corpus.
        fail: When True every persist call reports failure.
    """

    def __init__(self, models: list[Model] | None = None, fail: bool = False):
        self._models = [m.model_copy(deep=True) for m in models or []]
        self.fail = fail
        self.persist_calls = 0

    def initialize(self) -> None:
        pass

    def close(self) -> None:
        pass

    def persist(self, models: list[Model]) -> bool:
        self.persist_calls += 1
        if self.fail:
            return False
        self._models = [m.model_copy(deep=True) for m in models]
        return True

    def load(self) -> list[Model]:
        return [m.model_copy(deep=True) for m in self._models]


__all__ = ["InMemoryStorage"]
