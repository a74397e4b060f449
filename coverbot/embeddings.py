"""OpenAI embeddings service."""

import numpy as np
from openai import OpenAI, OpenAIError

from .config import config
from .errors import EmbeddingError

logger = config.get_logger(__name__)

MAX_INPUT_CHARS = 8000


def preprocess_text(text: str) -> str:
    """Collapse whitespace and cap length before sending text to the model.

    Returns:
        Cleaned text, truncated with a trailing ellipsis when too long.
    """
    processed = " ".join(text.split())
    if len(processed) > MAX_INPUT_CHARS:
        processed = processed[:MAX_INPUT_CHARS] + "..."
    return processed


class EmbeddingService:
    """Handles OpenAI embeddings generation.

    One instance is built at startup and shared; the underlying OpenAI
    client is safe for concurrent use.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        dimension: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the EmbeddingService with OpenAI API key and model.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
            dimension: Expected vector width. If None, uses
                config.EMBEDDING_DIMENSION.
            timeout: Per-request timeout in seconds. If None, uses
                config.EMBEDDING_TIMEOUT.
        """
        api_key = api_key or config.get_openai_api_key()
        default_headers = config.get_api_headers()
        self.client = OpenAI(
            api_key=api_key,
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            timeout=timeout if timeout is not None else config.EMBEDDING_TIMEOUT,
            max_retries=config.EMBEDDING_MAX_RETRIES,
        )
        self.model = model or config.EMBEDDING_MODEL
        self._dimension = dimension or config.EMBEDDING_DIMENSION

    @property
    def dimension(self) -> int:
        return self._dimension

    def _request_kwargs(self) -> dict[str, object]:
        # text-embedding-3-* models accept an explicit output width
        if self.model.startswith("text-embedding-3"):
            return {"dimensions": self._dimension}
        return {}

    def embed(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: The embedding vector for the input text.

        Raises:
            EmbeddingError: If the text is empty or the model call fails.
        """
        processed = preprocess_text(text or "")
        if not processed:
            msg = "Cannot embed empty text"
            raise EmbeddingError(msg)

        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=processed,
                **self._request_kwargs(),
            )
        except OpenAIError as exc:
            logger.exception("Error generating embedding")
            msg = f"Embedding request failed: {exc}"
            raise EmbeddingError(msg) from exc

        return np.asarray(response.data[0].embedding, dtype=np.float32)

    def embed_batch(
        self,
        texts: list[str],
        batch_size: int = 100,
    ) -> list[np.ndarray]:
        """Get embeddings for multiple texts in batches.

        Args:
            texts: List of input texts to generate embeddings for.
            batch_size: Number of texts to process in each batch.

        Returns:
            list[np.ndarray]: List of embedding vectors for the input texts.

        Raises:
            EmbeddingError: If any text is empty or a batch request fails.
        """
        embeddings: list[np.ndarray] = []

        for i in range(0, len(texts), batch_size):
            batch_texts = [preprocess_text(text) for text in texts[i : i + batch_size]]
            if not all(batch_texts):
                msg = "Cannot embed empty text in batch"
                raise EmbeddingError(msg)
            try:
                response = self.client.embeddings.create(
                    model=self.model,
                    input=batch_texts,
                    **self._request_kwargs(),
                )
            except OpenAIError as exc:
                logger.exception("Error generating batch embeddings")
                msg = f"Batch embedding request failed: {exc}"
                raise EmbeddingError(msg) from exc

            embeddings.extend(
                np.asarray(data.embedding, dtype=np.float32) for data in response.data
            )
            logger.info("Generated embeddings for batch %d", i // batch_size + 1)

        return embeddings
