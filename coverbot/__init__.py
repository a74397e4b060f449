"""Coverbot - retrieval-grounded insurance assistant."""

from .chat import ChatService, format_source_citations
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .errors import (
    DimensionMismatchError,
    EmbeddingError,
    IndexUnavailableError,
    RAGError,
    ValidationError,
)
from .ingest import KnowledgeIngestor
from .location import Location, parse_location
from .models import (
    ConversationContext,
    CustomerProfile,
    QueryOptions,
    RAGResponse,
    RetrievedMatch,
    Source,
)
from .pipeline import QueryPipeline, create_pipeline
from .vector_store import KnowledgeIndex

__all__ = [
    "ChatService",
    "ConversationContext",
    "CustomerProfile",
    "DimensionMismatchError",
    "DocumentLoader",
    "EmbeddingError",
    "EmbeddingService",
    "IndexUnavailableError",
    "KnowledgeIndex",
    "KnowledgeIngestor",
    "Location",
    "QueryOptions",
    "QueryPipeline",
    "RAGError",
    "RAGResponse",
    "RetrievedMatch",
    "Source",
    "TextChunker",
    "ValidationError",
    "create_pipeline",
    "format_source_citations",
    "parse_location",
]
