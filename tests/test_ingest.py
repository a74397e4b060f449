"""Tests for knowledge ingestion into the FAISS index."""

import json

import pytest

from coverbot import KnowledgeIngestor
from coverbot.ingest import load_records, record_metadata
from coverbot.models import SearchFilters

SAMPLE_RECORD_COUNT = 8


@pytest.fixture
def ingestor(mock_embedding_service, temp_knowledge_index, text_chunker_default):
    return KnowledgeIngestor(
        mock_embedding_service, temp_knowledge_index, text_chunker_default
    )


def test_load_sample_records(sample_knowledge_path):
    records = load_records(sample_knowledge_path)

    assert len(records) == SAMPLE_RECORD_COUNT
    assert {record["id"] for record in records} >= {
        "ca_auto_min_2024",
        "tx_auto_min_2024",
        "comprehensive_coverage_def",
    }


def test_load_records_rejects_non_list(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"id": "x"}), encoding="utf-8")

    with pytest.raises(ValueError, match="JSON list"):
        load_records(path)


def test_load_records_rejects_missing_fields(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps([{"id": "x", "title": "No content"}]), encoding="utf-8")

    with pytest.raises(ValueError, match="missing content"):
        load_records(path)


def test_record_metadata_accepts_both_key_styles():
    camel = record_metadata(
        {"id": "a", "title": "A", "content": "c", "insuranceType": "auto"}
    )
    snake = record_metadata(
        {
            "id": "b",
            "title": "B",
            "content": "c",
            "insurance_type": "home",
            "metadata": {"source": "Insurance Information Institute"},
        }
    )

    assert camel.insurance_type == "auto"
    assert camel.type == "knowledge"
    assert snake.insurance_type == "home"
    assert snake.source == "Insurance Information Institute"


def test_ingest_records_writes_and_saves(
    ingestor, temp_knowledge_index, sample_knowledge_path, mock_embedding_service
):
    written = ingestor.ingest_records(load_records(sample_knowledge_path))

    assert written == SAMPLE_RECORD_COUNT
    assert temp_knowledge_index.count() == SAMPLE_RECORD_COUNT
    assert temp_knowledge_index.index_path.exists()

    records = load_records(sample_knowledge_path)
    tx_record = next(r for r in records if r.get("state") == "TX")
    query = mock_embedding_service.embed(tx_record["content"])
    results = list(
        temp_knowledge_index.search(query, k=8, filters=SearchFilters(state="TX"))
    )
    assert results[0].id == "tx_auto_min_2024_chunk_0"
    assert "ca_auto_min_2024_chunk_0" not in {match.id for match in results}
    assert {match.metadata.state for match in results} <= {"TX", None}
    assert results[0].metadata.title == "Texas Minimum Auto Insurance Requirements"
    assert results[0].metadata.source == "Texas Department of Insurance"


def test_ingest_records_is_repeatable(
    ingestor, temp_knowledge_index, sample_knowledge_path
):
    records = load_records(sample_knowledge_path)

    ingestor.ingest_records(records)
    ingestor.ingest_records(records)

    assert temp_knowledge_index.count() == SAMPLE_RECORD_COUNT
    assert temp_knowledge_index.index.ntotal == SAMPLE_RECORD_COUNT


def test_reingesting_shorter_content_drops_stale_chunks(
    ingestor, temp_knowledge_index, mock_embedding_service
):
    long_record = {
        "id": "claims_faq",
        "type": "faq",
        "title": "How to File a Claim",
        "content": "Report the loss to your insurer promptly. " * 40,
    }
    short_record = {**long_record, "content": "File claims online within 30 days."}

    first = ingestor.ingest_records([long_record])
    second = ingestor.ingest_records([short_record])

    assert first > 1
    assert second == 1
    assert temp_knowledge_index.count() == 1
    assert temp_knowledge_index.index.ntotal == 1
    results = list(
        temp_knowledge_index.search(
            mock_embedding_service.embed(long_record["content"]), k=5
        )
    )
    assert [match.text for match in results] == [short_record["content"]]


def test_ingest_records_chunks_long_content(ingestor, temp_knowledge_index):
    record = {
        "id": "long_faq",
        "type": "faq",
        "title": "Long FAQ",
        "content": "Claims are filed online or by phone. " * 60,
    }

    written = ingestor.ingest_records([record])

    assert written > 1
    assert temp_knowledge_index.count() == written


def test_ingest_nothing(ingestor, temp_knowledge_index):
    assert ingestor.ingest_records([]) == 0
    assert not temp_knowledge_index.index_path.exists()


def test_ingest_file(ingestor, temp_knowledge_index, tmp_path, mock_embedding_service):
    doc_path = tmp_path / "ohio_auto_rules.txt"
    text = "Ohio requires 25/50/25 liability coverage for every driver."
    doc_path.write_text(text, encoding="utf-8")

    written = ingestor.ingest_file(
        doc_path, doc_type="regulation", insurance_type="auto", state="Ohio"
    )

    assert written == 1
    (match,) = temp_knowledge_index.search(mock_embedding_service.embed(text), k=1)
    assert match.id == "ohio_auto_rules_chunk_0"
    assert match.metadata.title == "Ohio Auto Rules"
    assert match.metadata.state == "OH"
    assert match.metadata.source == "ohio_auto_rules.txt"
