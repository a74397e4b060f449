"""Assembly of retrieved passages into a size-bounded context block."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .config import config

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import RetrievedMatch

PASSAGE_SEPARATOR = "\n\n"

_SENTENCE_END = re.compile(r"[.!?][\"')\]]*(?=\s)")


def truncate_at_boundary(text: str, limit: int, window: int | None = None) -> str:
    """Cut ``text`` to at most ``limit`` characters at a clean boundary.

    A sentence end inside the last ``window`` characters before the cutoff is
    preferred, then whitespace in the same window. Without either the text is
    cut hard at ``limit``.

    Returns:
        Truncated text, right-stripped. Empty if ``limit`` is not positive.
    """
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text

    window = config.RAG_BOUNDARY_WINDOW if window is None else window
    # Cutting right before whitespace splits nothing
    if text[limit].isspace():
        return text[:limit].rstrip()

    head = text[: limit + 1]
    lower_bound = max(0, limit - window)

    sentence_cut = None
    for found in _SENTENCE_END.finditer(head):
        if found.end() > limit:
            break
        if found.end() >= lower_bound:
            sentence_cut = found.end()
    if sentence_cut:
        return text[:sentence_cut].rstrip()

    space_cut = max(
        (i for i in range(limit - 1, lower_bound - 1, -1) if text[i].isspace()),
        default=None,
    )
    if space_cut:
        return text[:space_cut].rstrip()

    return text[:limit]


def label_passage(match: RetrievedMatch) -> str:
    """Prefix passage text with its title and append its source, when known.

    Returns:
        Text in the form ``title: text [Source: source]``.
    """
    text = match.text.strip()
    title = match.metadata.title.strip()
    if title and title.casefold() != "untitled":
        text = f"{title}: {text}"
    if match.metadata.source:
        text = f"{text} [Source: {match.metadata.source}]"
    return text


def assemble_context(
    matches: Sequence[RetrievedMatch],
    budget: int | None = None,
    window: int | None = None,
    include_source_details: bool = False,
) -> str | None:
    """Join ranked passages into one context string within ``budget`` characters.

    Passages are added whole while they fit. The first one that would overflow
    is truncated at a sentence or word boundary and assembly stops there. With
    ``include_source_details`` each passage is labelled with its title and
    source first.

    Returns:
        Context text, or None when no match has any text.
    """
    if not matches:
        return None

    budget = config.RAG_CONTEXT_BUDGET if budget is None else budget
    parts: list[str] = []
    used = 0

    for match in matches:
        if not match.text.strip():
            continue
        text = label_passage(match) if include_source_details else match.text.strip()
        separator = len(PASSAGE_SEPARATOR) if parts else 0
        remaining = budget - used - separator
        if remaining <= 0:
            break
        if len(text) <= remaining:
            parts.append(text)
            used += separator + len(text)
            continue

        truncated = truncate_at_boundary(text, remaining, window)
        if truncated:
            parts.append(truncated)
        break

    if not parts:
        return None
    return PASSAGE_SEPARATOR.join(parts)
