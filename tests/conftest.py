"""Test configuration and fixtures for Coverbot tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- EmbeddingService fixtures
- Text processing fixtures
- Knowledge index fixtures
- Query pipeline and chat fixtures
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np
import pytest

from coverbot import (
    ChatService,
    EmbeddingService,
    KnowledgeIndex,
    QueryPipeline,
    RetrievedMatch,
    TextChunker,
)
from coverbot.errors import IndexUnavailableError
from coverbot.models import KnowledgePassage, MatchMetadata
from coverbot.pipeline import PipelineSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SAMPLE_KNOWLEDGE_PATH = PROJECT_ROOT / "data" / "knowledge_base.json"


class TestConstants:
    """Centralized test constants to avoid repetition across test files."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_OPENAI_MODEL = "text-embedding-3-small"
    DEFAULT_EMBEDDING_DIMENSION = 384

    # Text Chunking Configuration
    SMALL_CHUNK_SIZE = 100
    SMALL_CHUNK_OVERLAP = 20
    DEFAULT_CHUNK_SIZE = 500
    DEFAULT_CHUNK_OVERLAP = 100

    # Retrieval Configuration
    RELEVANCE_FLOOR = 0.7
    MAX_SOURCES = 3
    CONTEXT_BUDGET = 4000
    MAX_TOP_K = 20


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        self.calls.append(text)
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def embed_batch(
        self,
        texts: list[str],
        batch_size: int = 100,  # noqa: ARG002
    ) -> list[np.ndarray]:
        """Generate batch of mock embeddings."""
        return [self.embed(text) for text in texts]


class FakeVectorIndex:
    """In-memory stand-in for the knowledge index.

    Replays a fixed list of matches and records every search call. With
    ``fail_after`` set, the result iterator raises IndexUnavailableError after
    yielding that many matches.
    """

    def __init__(
        self,
        matches: list[RetrievedMatch] | None = None,
        dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION,
        fail_after: int | None = None,
    ) -> None:
        self.matches = list(matches or [])
        self.dimension = dimension
        self.fail_after = fail_after
        self.calls: list[tuple[np.ndarray, int, object]] = []

    def search(self, vector, k, filters):  # noqa: ANN001, ANN201
        self.calls.append((vector, k, filters))
        return self._replay(k)

    def _replay(self, k):  # noqa: ANN001, ANN202
        for yielded, match in enumerate(self.matches[:k]):
            if self.fail_after is not None and yielded >= self.fail_after:
                msg = "index went away"
                raise IndexUnavailableError(msg)
            yield match


class FakeStream:
    """Iterable stand-in for an OpenAI streaming completion."""

    def __init__(self, pieces: list[str | None]) -> None:
        self.pieces = pieces
        self.closed = False

    def __iter__(self):  # noqa: ANN204
        for piece in self.pieces:
            yield Mock(choices=[Mock(delta=Mock(content=piece))])

    def close(self) -> None:
        self.closed = True


def make_match(  # noqa: PLR0913
    title: str,
    score: float,
    *,
    text: str | None = None,
    match_id: str | None = None,
    doc_type: str = "regulation",
    insurance_type: str | None = "auto",
    state: str | None = None,
) -> RetrievedMatch:
    """Build a RetrievedMatch with sensible defaults for tests."""
    return RetrievedMatch(
        id=match_id or f"{title.lower().replace(' ', '_')}_{score}",
        text=text if text is not None else f"Passage about {title}.",
        score=score,
        metadata=MatchMetadata(
            type=doc_type,
            title=title,
            insurance_type=insurance_type,
            state=state,
        ),
    )


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [Mock(embedding=emb) for emb in embeddings]
    return mock_response


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch the OpenAI embeddings.create method."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def embedding_service_factory():
    """Factory for creating EmbeddingService instances with different configurations."""

    def _create_service(api_key=None, model=None, dimension=None):  # noqa: ANN202
        return EmbeddingService(
            api_key=api_key or TestConstants.TEST_API_KEY,
            model=model or TestConstants.TEST_OPENAI_MODEL,
            dimension=dimension,
        )

    return _create_service


@pytest.fixture
def embedding_service(embedding_service_factory):
    """Default EmbeddingService with test API key for most tests."""
    return embedding_service_factory()


@pytest.fixture
def text_chunker_small():
    """Text chunker configured for small chunks (100/20)."""
    return TextChunker(
        chunk_size=TestConstants.SMALL_CHUNK_SIZE,
        overlap=TestConstants.SMALL_CHUNK_OVERLAP,
    )


@pytest.fixture
def text_chunker_default():
    """Text chunker configured with default settings (500/100)."""
    return TextChunker(
        chunk_size=TestConstants.DEFAULT_CHUNK_SIZE,
        overlap=TestConstants.DEFAULT_CHUNK_OVERLAP,
    )


@pytest.fixture
def mock_embedding_service():
    """Fresh MockEmbeddingService so call records don't leak between tests."""
    return MockEmbeddingService()


@pytest.fixture
def temp_knowledge_index(tmp_path) -> KnowledgeIndex:
    """Create a temporary FAISS knowledge index for testing."""
    return KnowledgeIndex(
        db_path=tmp_path / "knowledge.db",
        index_path=tmp_path / "faiss" / "knowledge.faiss",
        dimension=TestConstants.DEFAULT_EMBEDDING_DIMENSION,
    )


@pytest.fixture
def passage_factory(mock_embedding_service):
    """Factory that builds embedded knowledge passages."""

    def _create_passage(  # noqa: PLR0913
        passage_id: str,
        text: str,
        *,
        title: str,
        doc_type: str = "regulation",
        insurance_type: str | None = "auto",
        state: str | None = None,
    ) -> KnowledgePassage:
        return KnowledgePassage(
            id=passage_id,
            text=text,
            metadata=MatchMetadata(
                type=doc_type,
                title=title,
                insurance_type=insurance_type,
                state=state,
            ),
            embedding=mock_embedding_service.embed(text),
        )

    return _create_passage


@pytest.fixture
def sample_passages(passage_factory):
    """A small insurance knowledge set spanning states and lines."""
    return [
        passage_factory(
            "ca_auto_min_chunk_0",
            "California requires 15/30/5 minimum liability coverage.",
            title="California Minimum Auto Insurance Requirements",
            state="CA",
        ),
        passage_factory(
            "tx_auto_min_chunk_0",
            "Texas requires 30/60/25 minimum liability coverage.",
            title="Texas Minimum Auto Insurance Requirements",
            state="TX",
        ),
        passage_factory(
            "comprehensive_def_chunk_0",
            "Comprehensive coverage pays for theft, fire and hail damage.",
            title="What is Comprehensive Coverage?",
            doc_type="definition",
        ),
        passage_factory(
            "ca_renters_chunk_0",
            "Renters insurance in California covers personal property.",
            title="California Renters Insurance Basics",
            insurance_type="renters",
            state="CA",
        ),
    ]


@pytest.fixture
def pipeline_settings():
    return PipelineSettings(
        relevance_floor=TestConstants.RELEVANCE_FLOOR,
        max_sources=TestConstants.MAX_SOURCES,
        context_budget=TestConstants.CONTEXT_BUDGET,
        boundary_window=50,
        max_top_k=TestConstants.MAX_TOP_K,
    )


@pytest.fixture
def pipeline_factory(mock_embedding_service, pipeline_settings):
    """Factory for QueryPipeline instances backed by a FakeVectorIndex."""

    def _create_pipeline(
        matches: list[RetrievedMatch] | None = None,
        *,
        fail_after: int | None = None,
        settings: PipelineSettings | None = None,
    ) -> QueryPipeline:
        index = FakeVectorIndex(matches, fail_after=fail_after)
        return QueryPipeline(
            mock_embedding_service,
            index,
            settings or pipeline_settings,
        )

    return _create_pipeline


@pytest.fixture
def chat_service_factory():
    """Factory for ChatService instances with a mocked completion client."""

    def _create_chat_service(
        pipeline,  # noqa: ANN001
        pieces: list[str | None] | None = None,
    ) -> tuple[ChatService, FakeStream]:
        stream = FakeStream(pieces if pieces is not None else ["Hello", " there"])
        client = Mock()
        client.chat.completions.create.return_value = stream
        return ChatService(pipeline, client=client), stream

    return _create_chat_service


@pytest.fixture
def match_factory():
    """Factory for RetrievedMatch objects."""
    return make_match


@pytest.fixture
def fake_index_factory():
    """Factory for FakeVectorIndex instances."""
    return FakeVectorIndex


@pytest.fixture
def embeddings_response_factory():
    """Factory for mocked OpenAI embeddings API responses."""
    return create_mock_openai_response


@pytest.fixture(scope="session")
def sample_knowledge_path():
    """Path to the bundled sample insurance knowledge base."""
    return SAMPLE_KNOWLEDGE_PATH
