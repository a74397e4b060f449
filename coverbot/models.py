"""Data models for the retrieval pipeline and chat flow."""

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

Role = Literal["user", "assistant", "system"]


@dataclass(frozen=True)
class ConversationMessage:
    """A single turn in the conversation."""

    role: Role
    content: str


@dataclass
class ConversationContext:
    """Conversation turns plus the structured fields known about the customer.

    Owned and mutated by the caller; the query pipeline only reads it.
    """

    messages: list[ConversationMessage] = field(default_factory=list)
    insurance_type: str | None = None
    state: str | None = None

    def add_message(self, role: Role, content: str) -> None:
        self.messages.append(ConversationMessage(role=role, content=content))

    def last_user_message(self) -> str | None:
        """Return the content of the most recent user turn, if any."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return None


@dataclass(frozen=True)
class CustomerProfile:
    """Free-text profile fields collected from the shopper."""

    age: int | None = None
    location: str | None = None
    insurance_type: str | None = None


@dataclass(frozen=True)
class QueryOptions:
    """Per-request retrieval options."""

    top_k: int = 5
    insurance_type: str | None = None
    state: str | None = None
    sources: tuple[str, ...] | None = None


@dataclass(frozen=True)
class SearchFilters:
    """Metadata constraints passed to the knowledge index."""

    insurance_type: str | None = None
    state: str | None = None
    doc_types: frozenset[str] | None = None

    def as_dict(self) -> dict[str, str]:
        """Return only the filters that are set."""
        values = {
            "insurance_type": self.insurance_type,
            "state": self.state,
            "doc_types": ",".join(sorted(self.doc_types or ())),
        }
        return {key: value for key, value in values.items() if value}


@dataclass(frozen=True)
class MatchMetadata:
    """Descriptive fields stored alongside each indexed passage."""

    type: str
    title: str
    insurance_type: str | None = None
    state: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class RetrievedMatch:
    """A passage returned by the knowledge index with its similarity score."""

    id: str
    text: str
    score: float
    metadata: MatchMetadata


@dataclass(frozen=True)
class Source:
    """Citation entry for a passage used to ground an answer."""

    type: str
    title: str
    relevance: float


@dataclass(frozen=True)
class RAGResponse:
    """Assembled context and attributions returned by the query pipeline.

    ``context`` is None when nothing cleared the relevance floor, which tells
    the caller to answer without grounding.
    """

    context: str | None
    sources: tuple[Source, ...] = ()

    @classmethod
    def empty(cls) -> "RAGResponse":
        return cls(context=None, sources=())


@dataclass
class KnowledgePassage:
    """A chunk of knowledge-base text awaiting (or holding) its embedding."""

    id: str
    text: str
    metadata: MatchMetadata
    embedding: np.ndarray | None = None
    extra: dict[str, Any] = field(default_factory=dict)
