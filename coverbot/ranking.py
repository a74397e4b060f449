"""Relevance filtering, deduplication and ranking of retrieved passages."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from .config import config
from .models import Source
from .routing import source_for_doc_type

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from .models import RetrievedMatch

UNTITLED_KEYS = {"", "untitled"}


def above_floor(
    matches: Iterable[RetrievedMatch],
    floor: float | None = None,
) -> list[RetrievedMatch]:
    """Keep matches scoring at or above the relevance floor, in input order.

    Returns:
        Matches with ``score >= floor``.
    """
    floor = config.RAG_RELEVANCE_FLOOR if floor is None else floor
    return [match for match in matches if match.score >= floor]


def weight_matches(
    matches: Iterable[RetrievedMatch],
    weights: Mapping[str, float] | None = None,
) -> list[RetrievedMatch]:
    """Scale each score by the weight of the source its passage comes from.

    Weighted scores are clipped to [0, 1] so the relevance floor and the
    cited relevance keep their meaning.

    Returns:
        Matches with adjusted scores, in input order.
    """
    weights = config.RAG_SOURCE_WEIGHTS if weights is None else weights
    if not weights:
        return list(matches)
    return [_weighted(match, weights) for match in matches]


def _weighted(match: RetrievedMatch, weights: Mapping[str, float]) -> RetrievedMatch:
    weight = weights.get(source_for_doc_type(match.metadata.type), 1.0)
    return replace(match, score=min(1.0, max(0.0, match.score * weight)))


def _title_key(match: RetrievedMatch) -> str | None:
    key = " ".join(match.metadata.title.split()).casefold()
    return None if key in UNTITLED_KEYS else key


def rank_matches(matches: Sequence[RetrievedMatch]) -> list[RetrievedMatch]:
    """Sort by descending score; equal scores keep their retrieval order.

    Returns:
        New list of matches, highest score first.
    """
    return sorted(matches, key=lambda match: -match.score)


def deduplicate_by_title(matches: Sequence[RetrievedMatch]) -> list[RetrievedMatch]:
    """Collapse matches that cite the same title to their best-scoring one.

    Titles compare case- and whitespace-insensitively. Untitled passages are
    never merged with each other.

    Returns:
        Ranked matches with one entry per title.
    """
    seen: set[str] = set()
    unique: list[RetrievedMatch] = []
    for match in rank_matches(matches):
        key = _title_key(match)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(match)
    return unique


def select_matches(
    matches: Iterable[RetrievedMatch],
    floor: float | None = None,
) -> list[RetrievedMatch]:
    """Apply floor, title dedup and stable ranking in one pass.

    Matches without any text are dropped; they cannot ground an answer.

    Returns:
        Matches eligible for context assembly, best first.
    """
    with_text = [match for match in matches if match.text.strip()]
    return deduplicate_by_title(above_floor(with_text, floor))


def to_sources(
    matches: Sequence[RetrievedMatch],
    limit: int | None = None,
) -> tuple[Source, ...]:
    """Build citation entries from the top ranked matches.

    Returns:
        At most ``limit`` sources, in the order given.
    """
    limit = config.RAG_MAX_SOURCES if limit is None else limit
    return tuple(
        Source(
            type=match.metadata.type,
            title=match.metadata.title,
            relevance=match.score,
        )
        for match in matches[:limit]
    )


def select_sources(
    sources: Iterable[Source],
    floor: float | None = None,
    limit: int | None = None,
) -> list[Source]:
    """Filter, sort and cap citation entries for display.

    Running it on its own output returns the same list.

    Returns:
        Up to ``limit`` sources with relevance at or above the floor,
        highest first, ties in input order.
    """
    floor = config.RAG_RELEVANCE_FLOOR if floor is None else floor
    limit = config.RAG_MAX_SOURCES if limit is None else limit
    relevant = [source for source in sources if source.relevance >= floor]
    relevant.sort(key=lambda source: -source.relevance)
    return relevant[:limit]
