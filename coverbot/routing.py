"""Knowledge source routing and query enrichment.

The knowledge index holds several kinds of passages in one table. They are
grouped into sources that can be searched selectively and weighted:

- ``knowledge``: regulations, definitions, FAQs and other reference text
- ``carriers``: carrier profiles
- ``market``: local market data
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import ConversationContext, SearchFilters

logger = config.get_logger(__name__)

SOURCE_DOC_TYPES: dict[str, frozenset[str]] = {
    "knowledge": frozenset(
        {
            "knowledge",
            "regulation",
            "definition",
            "policy",
            "claim",
            "faq",
            "coverage",
        }
    ),
    "carriers": frozenset({"carrier"}),
    "market": frozenset({"market"}),
}
DEFAULT_SOURCES = ("knowledge", "carriers")

_SOURCE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "knowledge": ("what", "how", "require", "coverage", "deductible"),
    "carriers": (
        "geico",
        "progressive",
        "state farm",
        "carrier",
        "company",
        "which insurer",
    ),
    "market": ("local", "area", "zip", "neighborhood"),
}

_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("coverage", ("coverage", "deductible")),
    ("claims", ("claim",)),
    ("pricing", ("price", "cost", "quote")),
    ("regulations", ("require", "minimum", "law")),
    ("discounts", ("discount",)),
)


def source_for_doc_type(doc_type: str) -> str:
    """Name the source a passage type belongs to; unknown types are knowledge."""
    for source, doc_types in SOURCE_DOC_TYPES.items():
        if doc_type in doc_types:
            return source
    return "knowledge"


def route_sources(
    question: str,
    context: ConversationContext | None = None,
) -> tuple[str, ...]:
    """Pick the sources worth searching for a question.

    Keyword hits select sources; a known customer state adds market data.
    With no hit at all, reference knowledge and carriers are searched.

    Returns:
        Source names in a fixed order.
    """
    lowered = question.lower()
    selected = {
        source
        for source, keywords in _SOURCE_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    }
    if context is not None and context.state:
        selected.add("market")

    if not selected:
        return DEFAULT_SOURCES
    return tuple(source for source in SOURCE_DOC_TYPES if source in selected)


def doc_types_for_sources(sources: Iterable[str]) -> frozenset[str] | None:
    """Expand source names into the passage types to search.

    Returns:
        Union of the sources' doc types, or None (search everything) when no
        known source is named.
    """
    doc_types: set[str] = set()
    for source in sources:
        known = SOURCE_DOC_TYPES.get(source.strip().lower())
        if known is None:
            logger.warning("Ignoring unknown knowledge source '%s'", source)
            continue
        doc_types |= known
    return frozenset(doc_types) or None


def extract_category(question: str) -> str:
    """Classify the question's topic for query enrichment."""
    lowered = question.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "general"


def contextual_query_text(question: str, filters: SearchFilters) -> str:
    """Prefix the question with its insurance line, state and topic.

    Returns:
        Text to embed in place of the bare question.
    """
    parts = []
    if filters.insurance_type:
        parts.append(f"Insurance Type: {filters.insurance_type}")
    if filters.state:
        parts.append(f"State: {filters.state}")
    parts.append(f"Category: {extract_category(question)}")
    return f"{'. '.join(parts)}. Content: {question}"
