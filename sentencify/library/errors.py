"""Exceptions raised by the model library."""


class LibraryError(Exception):
    """Base exception for library store failures."""


class PersistenceError(LibraryError):
    """Raised when the persistence collaborator refuses or fails a write.

    The in-memory corpus is left exactly as it was before the call.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ModelNotFoundError(LibraryError):
    """Raised when an operation references an id absent from the corpus."""

    def __init__(self, model_id: str):
        super().__init__(f"Model not found: {model_id}")
        self.model_id = model_id


class DuplicateModelError(LibraryError):
    """Raised when restored data contains the same id twice."""

    def __init__(self, model_id: str):
        super().__init__(f"Duplicate model id: {model_id}")
        self.model_id = model_id


__all__ = [
    "DuplicateModelError",
    "LibraryError",
    "ModelNotFoundError",
    "PersistenceError",
]
