"""Exceptions raised by the reconciliation engine."""


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""


class InvalidStateError(ReconciliationError):
    """Raised when an operation is not allowed in the engine's current state."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while engine is {state}")
        self.operation = operation
        self.state = state


class InvalidResolutionError(ReconciliationError):
    """Raised when a resolution cannot be applied to the pending conflict.

    The engine stays in its awaiting state; the caller may resolve again.
    """

    def __init__(self, message: str, existing_id: str | None = None):
        super().__init__(message)
        self.existing_id = existing_id


class EngineBusyError(ReconciliationError):
    """Raised when a call arrives while another submit/resolve cycle runs."""

    def __init__(self) -> None:
        super().__init__("Reconciliation engine is busy with another operation")


__all__ = [
    "EngineBusyError",
    "InvalidResolutionError",
    "InvalidStateError",
    "ReconciliationError",
]
