"""SQLite persistence backend for the model library.

The whole corpus is rewritten inside a single transaction so a failed write
never leaves a half-updated table behind.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from ..models import Model

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS models (
    id TEXT PRIMARY KEY,
    position INTEGER NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    keywords TEXT,  -- JSON (string or array)
    category TEXT,
    favorite INTEGER DEFAULT 0,
    embedding TEXT,  -- JSON array or NULL
    created_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_models_position ON models(position);
"""


class SQLiteStorage:
    """SQLite-based persistence for the model corpus.

    Args:
        db_path: Path to SQLite database file.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection."""
        if self._conn is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database file and schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode = WAL")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

        logger.info(f"Initialized SQLite storage at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def persist(self, models: list[Model]) -> bool:
        """Replace the stored corpus in one transaction."""
        conn = self._get_conn()
        rows = [self._model_to_row(i, m) for i, m in enumerate(models)]
        try:
            with conn:
                conn.execute("DELETE FROM models")
                conn.executemany(
                    """
                    INSERT INTO models (
                        id, position, title, content, keywords, category,
                        favorite, embedding, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to persist {len(models)} models: {e}")
            return False
        return True

    def load(self) -> list[Model]:
        """Load all models ordered by position."""
        conn = self._get_conn()
        rows = conn.execute("SELECT * FROM models ORDER BY position").fetchall()
        return [self._row_to_model(row) for row in rows]

    def count(self) -> int:
        conn = self._get_conn()
        return conn.execute("SELECT COUNT(*) FROM models").fetchone()[0]

    # =========================================================================
    # Row Conversion
    # =========================================================================

    @staticmethod
    def _model_to_row(position: int, model: Model) -> tuple:
        return (
            model.id,
            position,
            model.title,
            model.content,
            json.dumps(model.keywords),
            model.category,
            int(model.favorite),
            json.dumps(model.embedding) if model.embedding is not None else None,
            model.created_at.isoformat() if model.created_at else None,
            model.updated_at.isoformat() if model.updated_at else None,
        )

    @staticmethod
    def _row_to_model(row: sqlite3.Row) -> Model:
        return Model(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            keywords=json.loads(row["keywords"]) if row["keywords"] else "",
            category=row["category"] or "",
            favorite=bool(row["favorite"]),
            embedding=json.loads(row["embedding"]) if row["embedding"] else None,
            created_at=(
                datetime.fromisoformat(row["created_at"]) if row["created_at"] else None
            ),
            updated_at=(
                datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None
            ),
        )


__all__ = ["SQLiteStorage", "SCHEMA_SQL"]
