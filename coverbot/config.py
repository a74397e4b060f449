"""Configuration management for the Coverbot RAG engine."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_weights(name: str) -> dict[str, float]:
    """Parse ``source=weight`` pairs such as ``knowledge=1.2,carriers=1.1``."""
    weights: dict[str, float] = {}
    for pair in os.getenv(name, "").split(","):
        if not pair.strip():
            continue
        source, _, weight = pair.partition("=")
        weights[source.strip().lower()] = float(weight)
    return weights


class Config:
    """Application configuration loaded from environment variables."""

    # OpenAI Configuration
    @classmethod
    def get_openai_api_key(cls) -> str:
        """Get OpenAI API key from environment variables.

        Returns:
            OpenAI API key from environment or empty string if not set.
        """
        return os.getenv("OPENAI_API_KEY", "")

    OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    OPENAI_LOG_LEVEL: str = os.getenv("OPENAI_LOG_LEVEL", "WARNING").upper()

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Embedding Configuration
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSION: int = int(os.getenv("EMBEDDING_DIMENSION", "1536"))
    EMBEDDING_TIMEOUT: float = float(os.getenv("EMBEDDING_TIMEOUT", "8.0"))
    EMBEDDING_MAX_RETRIES: int = int(os.getenv("EMBEDDING_MAX_RETRIES", "2"))

    # Chat Model Configuration
    CHAT_MODEL: str = os.getenv("CHAT_MODEL", "gpt-4.1-nano-2025-04-14")
    CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "2000"))
    CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
    CHAT_TIMEOUT: float = float(os.getenv("CHAT_TIMEOUT", "60.0"))

    # Retrieval Configuration
    ENABLE_RAG: bool = _env_flag("ENABLE_RAG", "true")
    RAG_TOP_K: int = int(os.getenv("RAG_TOP_K", "5"))
    RAG_MAX_TOP_K: int = int(os.getenv("RAG_MAX_TOP_K", "20"))
    RAG_RELEVANCE_FLOOR: float = float(os.getenv("RAG_RELEVANCE_FLOOR", "0.7"))
    RAG_MAX_SOURCES: int = int(os.getenv("RAG_MAX_SOURCES", "3"))
    RAG_CONTEXT_BUDGET: int = int(os.getenv("RAG_CONTEXT_BUDGET", "4000"))
    RAG_BOUNDARY_WINDOW: int = int(os.getenv("RAG_BOUNDARY_WINDOW", "50"))
    RAG_ROUTE_BY_QUESTION: bool = _env_flag("RAG_ROUTE_BY_QUESTION", "false")
    RAG_CONTEXTUAL_QUERY: bool = _env_flag("RAG_CONTEXTUAL_QUERY", "false")
    RAG_INCLUDE_SOURCE_DETAILS: bool = _env_flag("RAG_INCLUDE_SOURCE_DETAILS", "false")
    RAG_SOURCE_WEIGHTS: dict[str, float] = _env_weights("RAG_SOURCE_WEIGHTS")

    # Chunking Configuration
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "1000"))
    CHUNK_OVERLAP: int = int(os.getenv("CHUNK_OVERLAP", "200"))

    # Knowledge Index Configuration
    INDEX_DB_PATH: Path = Path(os.getenv("INDEX_DB_PATH", "data/knowledge.db"))
    FAISS_INDEX_PATH: Path = Path(
        os.getenv("FAISS_INDEX_PATH", "data/faiss/knowledge.faiss")
    )
    INDEX_TIMEOUT: float = float(os.getenv("INDEX_TIMEOUT", "5.0"))
    VECTOR_RAW_TOP_K_MULTIPLIER: int = int(
        os.getenv("VECTOR_RAW_TOP_K_MULTIPLIER", "4")
    )

    # API Header Configuration
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "Coverbot/1.0")
    API_TEST_HEADER_NAME: str | None = os.getenv("API_TEST_HEADER_NAME")
    API_TEST_HEADER_VALUE: str | None = os.getenv("API_TEST_HEADER_VALUE")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values.

        Raises:
            ValueError: If OPENAI_API_KEY is not set or a retrieval setting
                is out of range.
        """
        if not cls.get_openai_api_key():
            msg = (
                "OPENAI_API_KEY is required. Please set it in .env file or environment."
            )
            raise ValueError(msg)
        if not 0.0 <= cls.RAG_RELEVANCE_FLOOR <= 1.0:
            msg = f"RAG_RELEVANCE_FLOOR must be within [0, 1], got {cls.RAG_RELEVANCE_FLOOR}"
            raise ValueError(msg)
        if cls.RAG_CONTEXT_BUDGET <= 0:
            msg = f"RAG_CONTEXT_BUDGET must be positive, got {cls.RAG_CONTEXT_BUDGET}"
            raise ValueError(msg)
        negative = sorted(
            source for source, weight in cls.RAG_SOURCE_WEIGHTS.items() if weight < 0
        )
        if negative:
            msg = f"RAG_SOURCE_WEIGHTS must be non-negative, got {negative}"
            raise ValueError(msg)

    @classmethod
    def setup_logging(cls) -> None:
        """Setup basic logging configuration.

        Configure logging once at process startup with console output,
        a simple format and a level taken from the environment.
        """
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Third-party loggers are noisy at INFO
        for noisy in ("openai", "httpx"):
            logging.getLogger(noisy).setLevel(
                getattr(logging, cls.OPENAI_LOG_LEVEL, logging.WARNING)
            )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    @classmethod
    def get_api_headers(cls) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if cls.API_USER_AGENT:
            headers["User-Agent"] = cls.API_USER_AGENT

        if cls.API_TEST_HEADER_NAME and cls.API_TEST_HEADER_VALUE:
            headers[cls.API_TEST_HEADER_NAME] = cls.API_TEST_HEADER_VALUE

        return headers


config = Config()
