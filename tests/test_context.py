"""Tests for boundary-aware truncation and context assembly."""

from dataclasses import replace

import pytest

from coverbot.context import (
    PASSAGE_SEPARATOR,
    assemble_context,
    label_passage,
    truncate_at_boundary,
)
from coverbot.models import MatchMetadata

LONG_PASSAGE = " ".join(
    f"Liability coverage rule number {i} applies to every insured driver."
    for i in range(80)
)


def test_truncate_returns_text_that_fits():
    assert truncate_at_boundary("short text", 100) == "short text"


def test_truncate_non_positive_limit():
    assert not truncate_at_boundary("anything", 0)
    assert not truncate_at_boundary("anything", -5)


def test_truncate_cuts_before_whitespace_at_limit():
    assert truncate_at_boundary("hello world", 5) == "hello"


def test_truncate_prefers_sentence_end():
    text = "Alpha beta gamma. Delta epsilon zeta eta theta."

    assert truncate_at_boundary(text, 25, window=50) == "Alpha beta gamma."


def test_truncate_falls_back_to_word_boundary():
    assert truncate_at_boundary("one two three four five six", 10) == "one two"


def test_truncate_ignores_sentence_end_outside_window():
    text = "Short. " + "word " * 30

    result = truncate_at_boundary(text, 100, window=20)

    assert len(result) == 96
    assert result.endswith("word")


def test_truncate_hard_cuts_without_boundary_in_window():
    text = "a " + "b" * 100

    assert truncate_at_boundary("x" * 100, 30, window=10) == "x" * 30
    assert truncate_at_boundary(text, 60, window=50) == text[:60]


def test_assemble_context_empty_matches():
    assert assemble_context([]) is None


def test_assemble_context_joins_in_rank_order(match_factory):
    matches = [
        match_factory("A", 0.95, text="Alpha passage."),
        match_factory("B", 0.72, text="Beta passage."),
    ]

    context = assemble_context(matches, budget=4000)

    assert context == f"Alpha passage.{PASSAGE_SEPARATOR}Beta passage."


def test_assemble_context_truncates_overflowing_passage(match_factory):
    first = "First passage sentence. " * 12
    second = "Second passage sentence. " * 12
    third = "Third passage sentence keeps going. " * 10
    matches = [
        match_factory("A", 0.9, text=first),
        match_factory("B", 0.85, text=second),
        match_factory("C", 0.8, text=third),
    ]

    context = assemble_context(matches, budget=700, window=50)

    assert len(context) <= 700
    assert context.startswith(first.strip())
    assert "Third passage" in context
    assert context.endswith(".")


def test_assemble_context_stops_after_truncation(match_factory):
    matches = [
        match_factory("A", 0.9, text=LONG_PASSAGE),
        match_factory("B", 0.8, text="Never included."),
    ]

    context = assemble_context(matches, budget=500)

    assert "Never included." not in context
    assert LONG_PASSAGE.startswith(context)


@pytest.mark.parametrize("budget", [1, 10, 57, 250, 999, 4000])
def test_assemble_context_respects_budget(match_factory, budget):
    matches = [match_factory(f"T{i}", 0.9, text=LONG_PASSAGE) for i in range(3)]

    context = assemble_context(matches, budget=budget)

    assert len(context) <= budget


@pytest.mark.parametrize("budget", [120, 333, 1000, 2500])
def test_assemble_context_does_not_cut_mid_word(match_factory, budget):
    match = match_factory("A", 0.9, text=LONG_PASSAGE)

    context = assemble_context([match], budget=budget)

    assert LONG_PASSAGE.startswith(context)
    assert LONG_PASSAGE[len(context)].isspace()


def test_assemble_context_blank_passages_only(match_factory):
    matches = [match_factory("A", 0.9, text="   "), match_factory("B", 0.8, text="")]

    assert assemble_context(matches) is None


def test_assemble_context_skips_blank_passage(match_factory):
    matches = [
        match_factory("A", 0.9, text="\n\t"),
        match_factory("B", 0.8, text="Beta passage."),
    ]

    assert assemble_context(matches) == "Beta passage."


def test_label_passage_with_title_and_source(match_factory):
    match = replace(
        match_factory("Texas Minimums", 0.9, text="Texas requires 30/60/25."),
        metadata=MatchMetadata(
            type="regulation",
            title="Texas Minimums",
            source="Texas Department of Insurance",
        ),
    )

    assert label_passage(match) == (
        "Texas Minimums: Texas requires 30/60/25. "
        "[Source: Texas Department of Insurance]"
    )


def test_label_passage_skips_untitled(match_factory):
    match = match_factory("Untitled", 0.9, text="Bare text.")

    assert label_passage(match) == "Bare text."


def test_assemble_context_with_source_details(match_factory):
    matches = [
        match_factory("Alpha", 0.95, text="Alpha passage."),
        match_factory("Beta", 0.72, text="Beta passage."),
    ]

    context = assemble_context(matches, include_source_details=True)

    assert context == f"Alpha: Alpha passage.{PASSAGE_SEPARATOR}Beta: Beta passage."


def test_labelled_context_respects_budget(match_factory):
    matches = [match_factory("Long", 0.9, text=LONG_PASSAGE)]

    context = assemble_context(matches, budget=300, include_source_details=True)

    assert len(context) <= 300
    assert context.startswith("Long: Liability coverage")
