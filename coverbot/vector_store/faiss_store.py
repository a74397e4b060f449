"""FAISS-backed knowledge index with SQLite metadata."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING

import faiss
import numpy as np

from coverbot.config import config
from coverbot.errors import DimensionMismatchError, IndexUnavailableError
from coverbot.vector_store.base import PassageMetadataStore

if TYPE_CHECKING:
    from collections.abc import Iterator

    from coverbot.models import KnowledgePassage, RetrievedMatch, SearchFilters

logger = config.get_logger(__name__)


class KnowledgeIndex(PassageMetadataStore):
    """Vector search over insurance knowledge passages.

    Embeddings live in a FAISS inner-product index keyed by the SQLite row id,
    so cosine similarity comes straight out of the index and passage metadata
    (type, title, insurance line, state) is hydrated lazily per hit.
    """

    backend = "faiss"

    def __init__(
        self,
        db_path: Path | None = None,
        index_path: Path | None = None,
        dimension: int | None = None,
        raw_top_k_multiplier: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Configure FAISS-backed knowledge index.

        Args:
            db_path: SQLite metadata path. If None, uses config.INDEX_DB_PATH.
            index_path: FAISS index file. If None, uses config.FAISS_INDEX_PATH.
            dimension: Expected embedding width. If None, uses
                config.EMBEDDING_DIMENSION.
            raw_top_k_multiplier: Over-fetch factor applied before metadata
                filtering. If None, uses config.VECTOR_RAW_TOP_K_MULTIPLIER.
            timeout: SQLite busy timeout in seconds. If None, uses
                config.INDEX_TIMEOUT.
        """
        self.index_path = Path(index_path or config.FAISS_INDEX_PATH)
        self.index_path.parent.mkdir(exist_ok=True, parents=True)

        self.index: faiss.IndexIDMap | None = None
        self.expected_dimension = dimension or config.EMBEDDING_DIMENSION
        self.raw_top_k_multiplier = max(
            1,
            raw_top_k_multiplier
            if raw_top_k_multiplier is not None
            else config.VECTOR_RAW_TOP_K_MULTIPLIER,
        )
        self._write_lock = threading.Lock()

        super().__init__(db_path or config.INDEX_DB_PATH, timeout=timeout)

    @property
    def dimension(self) -> int:
        """Width of vectors this index accepts."""
        if self.index is not None:
            return int(self.index.d)
        return self.expected_dimension

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized embedding vector.
        """
        vector = np.array(embedding, dtype="float32").reshape(-1)
        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector
        faiss.normalize_L2(vector.reshape(1, -1))
        return vector

    def _check_dimension(self, width: int) -> None:
        if width != self.dimension:
            raise DimensionMismatchError(expected=self.dimension, actual=width)

    def _init_index(self) -> faiss.IndexIDMap:
        """Initialize an empty FAISS index.

        Returns:
            The new ID-mapped index.
        """
        base_index = faiss.IndexFlatIP(self.expected_dimension)
        self.index = faiss.IndexIDMap(base_index)
        logger.info(
            "Initialized FAISS IndexIDMap with dimension %d", self.expected_dimension
        )
        return self.index

    def add_passages(self, passages: list[KnowledgePassage]) -> int:
        """Add passages and their embeddings to the index and metadata store.

        Passages whose id already exists replace the stored copy. Passages
        tagged with a ``document_id`` first drop every stored chunk of that
        document, so re-ingesting shorter content leaves no stale chunks.

        Raises:
            DimensionMismatchError: If an embedding width mismatches the index.
            RuntimeError: If the FAISS index cannot store provided ids.

        Returns:
            Number of passages written.
        """
        if not passages:
            return 0

        embeddings_batch: list[np.ndarray] = []
        vector_ids: list[int] = []
        replaced_ids: list[int] = []

        with self._write_lock:
            index = self.index if self.index is not None else self._init_index()

            with closing(self._connect()) as conn, conn:
                cursor = conn.cursor()

                document_ids = {
                    str(passage.extra["document_id"])
                    for passage in passages
                    if passage.extra.get("document_id")
                }
                for document_id in sorted(document_ids):
                    for previous in self._document_vector_ids(cursor, document_id):
                        self._delete_passage_row(cursor, previous)
                        replaced_ids.append(previous)

                for passage in passages:
                    if passage.embedding is None:
                        logger.warning(
                            "Skipping passage %s without embedding", passage.id
                        )
                        continue

                    embedding = self._normalize_embedding(passage.embedding)
                    self._check_dimension(embedding.shape[0])

                    previous = self._existing_vector_id(cursor, passage.id)
                    if previous is not None:
                        self._delete_passage_row(cursor, previous)
                        replaced_ids.append(previous)

                    vector_id = self._insert_passage_row(cursor, passage)
                    embeddings_batch.append(embedding)
                    vector_ids.append(vector_id)

            if replaced_ids:
                index.remove_ids(np.asarray(replaced_ids, dtype="int64"))
                logger.info("Replaced %d existing passages", len(replaced_ids))

            if not embeddings_batch:
                logger.warning("No embeddings added to FAISS index")
                return 0

            vectors = np.vstack(embeddings_batch).astype("float32")
            ids_array = np.asarray(vector_ids, dtype="int64")
            try:
                index.add_with_ids(vectors, ids_array)  # pyright: ignore[reportCallIssue]
            except RuntimeError:
                logger.exception(
                    "FAISS index does not support add_with_ids; "
                    "ensure IndexIDMap is used."
                )
                raise

        logger.info("Added %d vectors to FAISS index", len(vector_ids))
        return len(vector_ids)

    def search(
        self,
        vector: np.ndarray,
        k: int = 5,
        filters: SearchFilters | None = None,
    ) -> Iterator[RetrievedMatch]:
        """Search for passages similar to ``vector``.

        The FAISS lookup runs immediately; metadata rows are fetched lazily as
        the returned iterator is consumed, so it can be read only once.

        Raises:
            DimensionMismatchError: If the query width differs from the index.
            IndexUnavailableError: If the FAISS index cannot be searched.

        Returns:
            Iterator of at most ``k`` matches in descending score order.
        """
        query = self._normalize_embedding(vector)
        self._check_dimension(query.shape[0])

        index = self.index
        if index is None or index.ntotal == 0 or k <= 0:
            logger.warning("Knowledge index is empty; returning no results")
            return iter(())

        filtered = bool(filters and filters.as_dict())
        raw_top_k = max(k, self.raw_top_k_multiplier * k) if filtered else k
        raw_top_k = min(raw_top_k, index.ntotal)

        try:
            scores, vector_ids = index.search(query.reshape(1, -1), raw_top_k)  # pyright: ignore[reportCallIssue]
        except RuntimeError as exc:
            msg = "FAISS search failed"
            raise IndexUnavailableError(msg) from exc

        return self._iter_matches(scores[0], vector_ids[0], k, filters)

    def _iter_matches(
        self,
        scores: np.ndarray,
        vector_ids: np.ndarray,
        k: int,
        filters: SearchFilters | None,
    ) -> Iterator[RetrievedMatch]:
        """Hydrate raw FAISS hits into matches, applying metadata filters.

        Raises:
            IndexUnavailableError: If the metadata store fails mid-iteration.
        """
        yielded = 0
        try:
            with closing(self._connect()) as conn:
                cursor = conn.cursor()
                for score, vector_id in zip(scores, vector_ids, strict=True):
                    if yielded >= k:
                        break
                    if int(vector_id) == -1:  # faiss pads missing hits with -1
                        continue
                    row = self._fetch_row(cursor, int(vector_id), filters)
                    if row is None:
                        continue
                    yield self._build_match_from_row(
                        row, float(np.clip(score, 0.0, 1.0))
                    )
                    yielded += 1
        except sqlite3.Error as exc:
            msg = "Knowledge metadata lookup failed"
            raise IndexUnavailableError(msg) from exc

    def save(self) -> None:
        """Persist FAISS index to disk."""
        index = self.index
        if index is None:
            logger.warning("No FAISS index to save")
            return

        with self._write_lock:
            self.index_path.parent.mkdir(exist_ok=True, parents=True)
            faiss.write_index(index, str(self.index_path))
        logger.info("Saved FAISS index to %s", self.index_path)

    def load(self) -> None:
        """Load the FAISS index from disk.

        Raises:
            DimensionMismatchError: If the stored index width differs from the
                configured embedding dimension.
            IndexUnavailableError: If the index file cannot be read.
        """
        if not self.index_path.exists():
            logger.warning(
                "FAISS index not found at %s. Start with an empty index.",
                self.index_path,
            )
            self.index = None
            return

        try:
            loaded_index = faiss.read_index(str(self.index_path))
        except RuntimeError as exc:
            msg = f"Cannot read FAISS index at {self.index_path}"
            raise IndexUnavailableError(msg) from exc

        if loaded_index.d != self.expected_dimension:
            raise DimensionMismatchError(
                expected=self.expected_dimension, actual=int(loaded_index.d)
            )

        if not isinstance(loaded_index, (faiss.IndexIDMap, faiss.IndexIDMap2)):
            logger.warning(
                "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                type(loaded_index).__name__,
            )
            loaded_index = faiss.IndexIDMap(loaded_index)

        self.index = loaded_index
        logger.info(
            "Loaded FAISS index from %s with %d vectors",
            self.index_path,
            loaded_index.ntotal,
        )
