"""Knowledge-base ingestion: Load -> Split -> Embed -> Store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .config import config
from .document_processing import DocumentLoader, TextChunker
from .models import MatchMetadata

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .embeddings import EmbeddingService
    from .models import KnowledgePassage
    from .vector_store import KnowledgeIndex

logger = config.get_logger(__name__)

REQUIRED_RECORD_FIELDS = ("id", "title", "content")


def record_metadata(record: dict[str, Any]) -> MatchMetadata:
    """Build passage metadata from a knowledge record.

    Accepts both ``insuranceType`` and ``insurance_type`` spellings.

    Returns:
        Metadata shared by every chunk of the record.
    """
    nested = record.get("metadata") or {}
    return MatchMetadata(
        type=str(record.get("type") or "knowledge"),
        title=str(record["title"]),
        insurance_type=record.get("insuranceType") or record.get("insurance_type"),
        state=record.get("state"),
        source=record.get("source") or nested.get("source"),
    )


def load_records(path: Path) -> list[dict[str, Any]]:
    """Read knowledge records from a JSON file holding a list of objects.

    Raises:
        ValueError: If the file is not a list of records with id, title and
            content.

    Returns:
        Parsed records.
    """
    with path.open(encoding="utf-8") as file:
        records = json.load(file)

    if not isinstance(records, list):
        msg = f"Knowledge file {path} must contain a JSON list"
        raise ValueError(msg)  # noqa: TRY004

    for position, record in enumerate(records):
        missing = [field for field in REQUIRED_RECORD_FIELDS if not record.get(field)]
        if missing:
            msg = f"Record {position} in {path} is missing {', '.join(missing)}"
            raise ValueError(msg)
    return records


class KnowledgeIngestor:
    """Chunks knowledge content, embeds it and writes it to the index."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        knowledge_index: KnowledgeIndex,
        chunker: TextChunker | None = None,
    ) -> None:
        self.embedding_service = embedding_service
        self.knowledge_index = knowledge_index
        self.chunker = chunker or TextChunker()

    def _store(self, passages: list[KnowledgePassage]) -> int:
        if not passages:
            logger.warning("Nothing to ingest")
            return 0

        embeddings = self.embedding_service.embed_batch([p.text for p in passages])
        for passage, embedding in zip(passages, embeddings, strict=True):
            passage.embedding = embedding

        written = self.knowledge_index.add_passages(passages)
        self.knowledge_index.save()
        return written

    def ingest_records(self, records: Iterable[dict[str, Any]]) -> int:
        """Ingest structured knowledge records.

        Returns:
            Number of passages written to the index.
        """
        passages: list[KnowledgePassage] = []
        for record in records:
            passages.extend(
                self.chunker.chunk_text(
                    str(record["content"]),
                    base_id=str(record["id"]),
                    metadata=record_metadata(record),
                )
            )

        written = self._store(passages)
        logger.info("Ingested %d knowledge passages", written)
        return written

    def ingest_file(
        self,
        file_path: Path,
        *,
        doc_type: str = "knowledge",
        title: str | None = None,
        insurance_type: str | None = None,
        state: str | None = None,
    ) -> int:
        """Ingest a PDF, TXT or Markdown document.

        Returns:
            Number of passages written to the index.
        """
        logger.info("Starting ingestion for document: %s", file_path)

        text = DocumentLoader.load_document(file_path)
        metadata = MatchMetadata(
            type=doc_type,
            title=title or file_path.stem.replace("_", " ").title(),
            insurance_type=insurance_type,
            state=state,
            source=file_path.name,
        )
        passages = self.chunker.chunk_text(
            text, base_id=file_path.stem, metadata=metadata
        )

        written = self._store(passages)
        logger.info("Document ingestion completed: %d passages", written)
        return written
