"""Model library: corpus ownership, persistence and change tracking.

    >>> from sentencify.library import Candidate, LibraryStore
    >>> store = LibraryStore()
    >>> store.commit([Candidate(title="Horas Extras", content="<p>...</p>")])
"""

from .errors import (
    DuplicateModelError,
    LibraryError,
    ModelNotFoundError,
    PersistenceError,
)
from .ledger import ChangeLedger, ChangeSink
from .lib import LibraryStore, open_library
from .models import (
    DEFAULT_CATEGORY,
    Candidate,
    ChangeEntry,
    ChangeOperation,
    CommitResult,
    Model,
    Replacement,
    SaveContext,
    generate_model_id,
)
from .storage import InMemoryStorage, ModelPersistence, SQLiteStorage

__all__ = [
    # Store
    "LibraryStore",
    "open_library",
    # Models
    "DEFAULT_CATEGORY",
    "Candidate",
    "ChangeEntry",
    "ChangeOperation",
    "CommitResult",
    "Model",
    "Replacement",
    "SaveContext",
    "generate_model_id",
    # Ledger
    "ChangeLedger",
    "ChangeSink",
    # Persistence
    "InMemoryStorage",
    "ModelPersistence",
    "SQLiteStorage",
    # Errors
    "DuplicateModelError",
    "LibraryError",
    "ModelNotFoundError",
    "PersistenceError",
]
