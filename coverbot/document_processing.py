"""Document loading and text chunking for the knowledge base."""

import re
from pathlib import Path

import pypdf

from .config import config
from .models import KnowledgePassage, MatchMetadata

logger = config.get_logger(__name__)

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+|(?<=[.!?][\"')\]])\s+")


class DocumentLoader:
    """Handles loading of PDF, TXT and Markdown documents."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Load text content from a PDF file.

        Returns:
            The extracted text content from the PDF as a string.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                pages = [page.extract_text() or "" for page in pdf_reader.pages]
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            return "\n\n".join(pages)

    @staticmethod
    def load_txt(file_path: Path) -> str:
        """Load text content from a TXT or Markdown file.

        Returns:
            The extracted text content from the file as a string.
        """
        try:
            with file_path.open(encoding="utf-8") as file:
                text = file.read()
            logger.info("Successfully loaded text file %s", file_path.name)
        except Exception:
            logger.exception("Error loading text file %s", file_path)
            raise
        else:
            return text

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf(file_path)
        if file_ext in {".txt", ".md"}:
            return cls.load_txt(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)


class TextChunker:
    """Sentence-preserving chunking with a trailing-context overlap."""

    def __init__(
        self,
        chunk_size: int | None = None,
        overlap: int | None = None,
    ) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: Maximum characters per chunk (before overlap is
                prepended). If None, uses config.CHUNK_SIZE.
            overlap: Characters carried over from the previous chunk. If None,
                uses config.CHUNK_OVERLAP.

        Raises:
            ValueError: If overlap is not smaller than chunk_size.
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.overlap = config.CHUNK_OVERLAP if overlap is None else overlap
        if self.chunk_size <= 0 or not 0 <= self.overlap < self.chunk_size:
            msg = (
                f"Invalid chunking parameters: chunk_size={self.chunk_size}, "
                f"overlap={self.overlap}"
            )
            raise ValueError(msg)

    def _split_long(self, sentence: str) -> list[str]:
        """Break a sentence longer than chunk_size at word boundaries.

        Returns:
            Pieces no longer than chunk_size.
        """
        pieces = []
        start = 0
        while start < len(sentence):
            end = start + self.chunk_size
            piece = sentence[start:end]
            # Ensure we don't break in the middle of a word (except for last piece)
            if end < len(sentence) and not sentence[end].isspace():
                last_space = piece.rfind(" ")
                # At least half chunk size to prevent too small pieces after adjustment
                if last_space > self.chunk_size // 2:
                    end = start + last_space
                    piece = sentence[start:end]
            if piece.strip():
                pieces.append(piece.strip())
            start = end
        return pieces

    def split_text(self, text: str) -> list[str]:
        """Split text into chunks that end on sentence boundaries where possible.

        Returns:
            Chunk strings; every chunk after the first starts with up to
            ``overlap`` characters from the end of the previous one.
        """
        sentences = [s for s in _SENTENCE_BREAK.split(" ".join(text.split())) if s]

        chunks: list[str] = []
        current = ""
        for sentence in sentences:
            if len(sentence) > self.chunk_size:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(self._split_long(sentence))
                continue

            candidate = f"{current} {sentence}" if current else sentence
            if len(candidate) <= self.chunk_size:
                current = candidate
            else:
                chunks.append(current)
                current = sentence
        if current:
            chunks.append(current)

        if self.overlap == 0 or len(chunks) < 2:  # noqa: PLR2004
            return chunks

        overlapped = [chunks[0]]
        for previous, chunk in zip(chunks, chunks[1:], strict=False):
            tail = previous[-self.overlap :]
            # Start the carried-over text on a word boundary
            if len(previous) > self.overlap and " " in tail:
                tail = tail[tail.index(" ") + 1 :]
            overlapped.append(f"{tail} {chunk}" if tail else chunk)
        return overlapped

    def chunk_text(
        self,
        text: str,
        base_id: str,
        metadata: MatchMetadata,
    ) -> list[KnowledgePassage]:
        """Split text into passages sharing the document's metadata.

        Returns:
            Passages with ids ``<base_id>_chunk_<n>``.
        """
        passages = [
            KnowledgePassage(
                id=f"{base_id}_chunk_{i}",
                text=chunk,
                metadata=metadata,
                extra={"chunk_index": i, "document_id": base_id},
            )
            for i, chunk in enumerate(self.split_text(text))
        ]
        logger.info("Text from %s split into %d chunks", base_id, len(passages))
        return passages
