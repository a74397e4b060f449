"""Knowledge index adapters."""

from .base import DEFAULT_DOC_TYPE, UNTITLED, VALID_DOC_TYPES, PassageMetadataStore
from .faiss_store import KnowledgeIndex

__all__ = [
    "DEFAULT_DOC_TYPE",
    "UNTITLED",
    "VALID_DOC_TYPES",
    "KnowledgeIndex",
    "PassageMetadataStore",
]
