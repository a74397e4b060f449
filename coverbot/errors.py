"""Exception hierarchy for the retrieval stack."""


class RAGError(Exception):
    """Base class for retrieval-augmented generation failures."""


class ValidationError(RAGError):
    """The query cannot be run as given (e.g. empty question text)."""


class EmbeddingError(RAGError):
    """The embedding model rejected the input or could not be reached."""


class IndexUnavailableError(RAGError):
    """The knowledge index could not be read or searched."""


class DimensionMismatchError(RAGError):
    """Embedding width differs from the width the index was built with."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension {actual} does not match "
            f"index dimension {expected}"
        )
