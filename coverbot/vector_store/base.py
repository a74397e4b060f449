"""SQLite metadata store shared by the knowledge index."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING

from coverbot.config import config
from coverbot.errors import IndexUnavailableError
from coverbot.location import normalize_insurance_type, normalize_state
from coverbot.models import MatchMetadata, RetrievedMatch

if TYPE_CHECKING:
    from coverbot.models import KnowledgePassage, SearchFilters

DEFAULT_DOC_TYPE = "knowledge"
VALID_DOC_TYPES = {
    "knowledge",
    "regulation",
    "definition",
    "policy",
    "claim",
    "faq",
    "coverage",
    "carrier",
    "market",
}
UNTITLED = "Untitled"

_PASSAGE_COLUMNS = (
    "vector_id, passage_id, content, doc_type, title, insurance_type, state, source"
)

logger = config.get_logger(__name__)


class PassageMetadataStore:
    """Schema management and row helpers for passage metadata kept in SQLite."""

    def __init__(self, db_path: Path, timeout: float | None = None) -> None:
        """Initialize metadata store and ensure schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self.timeout = timeout if timeout is not None else config.INDEX_TIMEOUT
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        """Open a connection bounded by the configured busy timeout.

        Raises:
            IndexUnavailableError: If the database cannot be opened.

        Returns:
            Open SQLite connection.
        """
        try:
            return sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as exc:
            msg = f"Cannot open knowledge metadata at {self.db_path}"
            raise IndexUnavailableError(msg) from exc

    def _create_tables(self) -> None:
        """Create passage table and filter indexes if they don't exist."""
        with closing(self._connect()) as conn, conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS passages (
                    vector_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    passage_id TEXT NOT NULL UNIQUE,
                    content TEXT NOT NULL,
                    doc_type TEXT NOT NULL DEFAULT 'knowledge',
                    title TEXT NOT NULL DEFAULT 'Untitled',
                    insurance_type TEXT,
                    state TEXT,
                    source TEXT,
                    chunk_index INTEGER DEFAULT 0,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute(
                (
                    "CREATE INDEX IF NOT EXISTS idx_passages_filters "
                    "ON passages(insurance_type, state)"
                ),
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_passages_title ON passages(title)",
            )
        logger.debug("Knowledge metadata schema verified at %s", self.db_path)

    @staticmethod
    def _normalize_doc_type(doc_type: str | None) -> str:
        """Sanitize doc_type to a supported value.

        Returns:
            A supported doc_type string.
        """
        value = (doc_type or "").strip().lower()
        if value not in VALID_DOC_TYPES:
            return DEFAULT_DOC_TYPE
        return value

    @staticmethod
    def _existing_vector_id(cursor: sqlite3.Cursor, passage_id: str) -> int | None:
        cursor.execute(
            "SELECT vector_id FROM passages WHERE passage_id = ?",
            (passage_id,),
        )
        row = cursor.fetchone()
        return int(row[0]) if row else None

    @staticmethod
    def _document_vector_ids(cursor: sqlite3.Cursor, document_id: str) -> list[int]:
        """Find every stored chunk of a document, whatever its chunk count.

        Returns:
            Vector ids of rows named ``<document_id>_chunk_<n>``.
        """
        prefix = f"{document_id}_chunk_"
        cursor.execute(
            (
                "SELECT vector_id, passage_id FROM passages "
                "WHERE substr(passage_id, 1, ?) = ?"
            ),
            (len(prefix), prefix),
        )
        return [
            int(vector_id)
            for vector_id, passage_id in cursor.fetchall()
            if passage_id[len(prefix) :].isdigit()
        ]

    def _insert_passage_row(
        self,
        cursor: sqlite3.Cursor,
        passage: KnowledgePassage,
    ) -> int:
        """Persist a passage row and return the vector id assigned to it.

        Raises:
            RuntimeError: If the row cannot be inserted.

        Returns:
            Integer id used for the passage's vector in the FAISS index.
        """
        metadata = passage.metadata
        cursor.execute(
            """
            INSERT INTO passages (
                passage_id,
                content,
                doc_type,
                title,
                insurance_type,
                state,
                source,
                chunk_index
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                passage.id,
                passage.text,
                self._normalize_doc_type(metadata.type),
                metadata.title.strip() or UNTITLED,
                normalize_insurance_type(metadata.insurance_type),
                normalize_state(metadata.state),
                metadata.source,
                int(passage.extra.get("chunk_index", 0)),
            ),
        )

        row_id = cursor.lastrowid
        if row_id is None:
            msg = f"Failed to insert passage row for '{passage.id}'"
            raise RuntimeError(msg)
        return int(row_id)

    @staticmethod
    def _delete_passage_row(cursor: sqlite3.Cursor, vector_id: int) -> None:
        cursor.execute("DELETE FROM passages WHERE vector_id = ?", (vector_id,))

    @staticmethod
    def _build_match_from_row(row: tuple, score: float) -> RetrievedMatch:
        """Create a RetrievedMatch from a metadata row.

        Returns:
            Immutable match carrying the passage text and metadata.
        """
        (
            _vector_id,
            passage_id,
            content,
            doc_type,
            title,
            insurance_type,
            state,
            source,
        ) = row

        return RetrievedMatch(
            id=passage_id,
            text=content,
            score=score,
            metadata=MatchMetadata(
                type=doc_type,
                title=title,
                insurance_type=insurance_type,
                state=state,
                source=source,
            ),
        )

    @staticmethod
    def _fetch_row(
        cursor: sqlite3.Cursor,
        vector_id: int,
        filters: SearchFilters | None,
    ) -> tuple | None:
        """Fetch a passage row by vector id if it satisfies the filters.

        A passage without an insurance line or state applies to all of them.
        Carrier profiles are not scoped by state and market data is not
        scoped by insurance line.

        Returns:
            Row tuple, or None if missing or filtered out.
        """
        insurance_type = filters.insurance_type if filters else None
        state = filters.state if filters else None
        cursor.execute(
            f"""
            SELECT {_PASSAGE_COLUMNS}
            FROM passages
            WHERE vector_id = ?
              AND (? IS NULL OR insurance_type IS NULL OR insurance_type = ?
                   OR doc_type = 'market')
              AND (? IS NULL OR state IS NULL OR state = ?
                   OR doc_type = 'carrier')
            """,  # noqa: S608
            (int(vector_id), insurance_type, insurance_type, state, state),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        if filters and filters.doc_types and row[3] not in filters.doc_types:
            return None
        return row

    def count(self) -> int:
        """Return the number of stored passages."""
        with closing(self._connect()) as conn:
            (total,) = conn.execute("SELECT COUNT(*) FROM passages").fetchone()
        return int(total)
