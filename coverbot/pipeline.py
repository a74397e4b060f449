"""Query pipeline turning a user question into grounded context and sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from .config import config
from .context import assemble_context
from .embeddings import EmbeddingService
from .errors import (
    DimensionMismatchError,
    EmbeddingError,
    IndexUnavailableError,
    ValidationError,
)
from .location import normalize_insurance_type, normalize_state
from .models import ConversationContext, QueryOptions, RAGResponse, SearchFilters
from .ranking import select_matches, to_sources, weight_matches
from .routing import contextual_query_text, doc_types_for_sources, route_sources
from .vector_store import KnowledgeIndex

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    import numpy as np

    from .models import RetrievedMatch

logger = config.get_logger(__name__)


class Embedder(Protocol):
    """Text-to-vector contract the pipeline depends on."""

    @property
    def dimension(self) -> int: ...

    def embed(self, text: str) -> np.ndarray: ...


class VectorIndex(Protocol):
    """Similarity-search contract the pipeline depends on."""

    @property
    def dimension(self) -> int: ...

    def search(
        self,
        vector: np.ndarray,
        k: int,
        filters: SearchFilters | None,
    ) -> Iterable[RetrievedMatch]: ...


def verify_dimensions(embedder: Embedder, index: VectorIndex) -> None:
    """Fail fast when the embedding model and index disagree on vector width.

    Raises:
        DimensionMismatchError: If the widths differ.
    """
    if embedder.dimension != index.dimension:
        raise DimensionMismatchError(
            expected=index.dimension, actual=embedder.dimension
        )


def clamp_top_k(top_k: int | None, max_top_k: int | None = None) -> int:
    """Bound the requested passage count to ``[1, max_top_k]``.

    Returns:
        Clamped top-k value; the configured default when ``top_k`` is None.
    """
    max_top_k = config.RAG_MAX_TOP_K if max_top_k is None else max_top_k
    if top_k is None:
        top_k = config.RAG_TOP_K
    return max(1, min(int(top_k), max_top_k))


def select_doc_types(
    question: str,
    context: ConversationContext | None,
    options: QueryOptions,
    *,
    route_by_question: bool = False,
) -> frozenset[str] | None:
    """Decide which passage types a query may retrieve.

    Sources named in ``options`` win. Otherwise, with ``route_by_question``,
    sources are picked from the question keywords and customer state.

    Returns:
        Doc types to restrict the search to, or None for all of them.
    """
    if options.sources is not None:
        return doc_types_for_sources(options.sources)
    if route_by_question:
        return doc_types_for_sources(route_sources(question, context))
    return None


def derive_filters(
    context: ConversationContext | None,
    options: QueryOptions,
    doc_types: frozenset[str] | None = None,
) -> SearchFilters:
    """Merge option and conversation fields into normalized search filters.

    Explicit options win over values carried by the conversation context.
    Values that do not normalize to a known insurance line or US state are
    dropped rather than passed to the index.

    Returns:
        Filters for the knowledge index.
    """
    inferred_type = context.insurance_type if context else None
    inferred_state = context.state if context else None
    insurance_type = options.insurance_type or inferred_type
    state = options.state or inferred_state
    return SearchFilters(
        insurance_type=normalize_insurance_type(insurance_type),
        state=normalize_state(state),
        doc_types=doc_types,
    )


@dataclass(frozen=True)
class PipelineSettings:
    """Tunables for retrieval, ranking and assembly."""

    relevance_floor: float = 0.7
    max_sources: int = 3
    context_budget: int = 4000
    boundary_window: int = 50
    max_top_k: int = 20
    route_by_question: bool = False
    contextual_query: bool = False
    include_source_details: bool = False
    source_weights: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_config(cls) -> PipelineSettings:
        return cls(
            relevance_floor=config.RAG_RELEVANCE_FLOOR,
            max_sources=config.RAG_MAX_SOURCES,
            context_budget=config.RAG_CONTEXT_BUDGET,
            boundary_window=config.RAG_BOUNDARY_WINDOW,
            max_top_k=config.RAG_MAX_TOP_K,
            route_by_question=config.RAG_ROUTE_BY_QUESTION,
            contextual_query=config.RAG_CONTEXTUAL_QUERY,
            include_source_details=config.RAG_INCLUDE_SOURCE_DETAILS,
            source_weights=dict(config.RAG_SOURCE_WEIGHTS),
        )


class QueryPipeline:
    """Embed -> search -> filter -> dedupe -> rank -> assemble.

    The pipeline owns no connections: the embedding service and knowledge
    index are built once by the caller and shared across requests. Each call
    is independent and keeps no state between requests.

    Retrieval only enhances an answer, so every upstream failure degrades to
    an empty response instead of raising.
    """

    def __init__(
        self,
        embedding_service: Embedder,
        vector_index: VectorIndex,
        settings: PipelineSettings | None = None,
    ) -> None:
        """Initialize the pipeline with its collaborators.

        Args:
            embedding_service: Converts the question into a vector.
            vector_index: Searches the knowledge base.
            settings: Ranking and budget tunables. If None, read from config.
        """
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        self.settings = settings or PipelineSettings.from_config()

    def check_health(self) -> None:
        """Verify collaborator compatibility; call once at startup.

        Raises:
            DimensionMismatchError: If embedding and index widths differ.
        """
        verify_dimensions(self.embedding_service, self.vector_index)

    @staticmethod
    def _validate(query_text: str | None) -> str:
        text = (query_text or "").strip()
        if not text:
            msg = "Query text is empty"
            raise ValidationError(msg)
        return text

    def _retrieve(
        self,
        query_text: str,
        top_k: int,
        filters: SearchFilters,
    ) -> list[RetrievedMatch] | None:
        """Run embedding and index search, draining the lazy result.

        Returns:
            Raw matches in index order, or None if retrieval failed.
        """
        try:
            query_embedding = self.embedding_service.embed(query_text)
        except EmbeddingError:
            logger.exception("Embedding failed; continuing without retrieval")
            return None

        try:
            return list(self.vector_index.search(query_embedding, top_k, filters))
        except IndexUnavailableError:
            logger.exception(
                "Knowledge index unavailable; continuing without retrieval"
            )
        except DimensionMismatchError:
            logger.exception("Embedding and index dimensions disagree")
        return None

    def query(
        self,
        query_text: str,
        context: ConversationContext | None = None,
        options: QueryOptions | None = None,
    ) -> RAGResponse:
        """Retrieve grounding context for a question.

        Args:
            query_text: The user's question.
            context: Conversation turns and customer fields, read-only here.
            options: Top-k and explicit filter overrides.

        Returns:
            RAGResponse with assembled context (None when nothing relevant was
            found) and up to ``max_sources`` sources, most relevant first.
        """
        try:
            query_text = self._validate(query_text)
        except ValidationError:
            logger.debug("Skipping retrieval for empty query")
            return RAGResponse.empty()

        options = options or QueryOptions(top_k=config.RAG_TOP_K)
        doc_types = select_doc_types(
            query_text,
            context,
            options,
            route_by_question=self.settings.route_by_question,
        )
        filters = derive_filters(context, options, doc_types)
        top_k = clamp_top_k(options.top_k, self.settings.max_top_k)

        logger.info(
            "Processing query (top_k=%d, filters=%s): %s",
            top_k,
            filters.as_dict(),
            query_text,
        )

        embed_text = (
            contextual_query_text(query_text, filters)
            if self.settings.contextual_query
            else query_text
        )
        raw_matches = self._retrieve(embed_text, top_k, filters)
        if not raw_matches:
            return RAGResponse.empty()

        weighted = weight_matches(raw_matches, self.settings.source_weights)
        ranked = select_matches(weighted, self.settings.relevance_floor)
        if not ranked:
            logger.info(
                "No matches above relevance floor %.2f (of %d retrieved)",
                self.settings.relevance_floor,
                len(raw_matches),
            )
            return RAGResponse.empty()

        assembled = assemble_context(
            ranked,
            budget=self.settings.context_budget,
            window=self.settings.boundary_window,
            include_source_details=self.settings.include_source_details,
        )
        sources = to_sources(ranked, self.settings.max_sources)

        logger.info("Retrieved %d relevant passages", len(ranked))
        for i, match in enumerate(ranked):
            logger.debug(
                "  Passage %d: %s (score: %.4f)",
                i + 1,
                match.metadata.title,
                match.score,
            )

        return RAGResponse(context=assembled, sources=sources)


def create_pipeline(
    embedding_service: Embedder | None = None,
    vector_index: VectorIndex | None = None,
    settings: PipelineSettings | None = None,
) -> QueryPipeline:
    """Build the pipeline once at startup and verify its collaborators.

    Missing collaborators are constructed from configuration; the FAISS index
    is loaded from disk.

    Raises:
        DimensionMismatchError: If the embedding and index widths differ.

    Returns:
        Ready-to-use QueryPipeline.
    """
    if embedding_service is None:
        embedding_service = EmbeddingService()
    if vector_index is None:
        knowledge_index = KnowledgeIndex()
        knowledge_index.load()
        vector_index = knowledge_index

    pipeline = QueryPipeline(embedding_service, vector_index, settings)
    pipeline.check_health()
    logger.info(
        "Query pipeline ready (dimension=%d)", pipeline.vector_index.dimension
    )
    return pipeline
