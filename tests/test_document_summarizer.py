"""Tests for document summaries and their malformed-output fallback."""

import json

from amicus_drafter.processors.document_summarizer import EMPTY_SUMMARY, DocumentSummarizer
from conftest import FakeModelClient

DOCUMENT = {
    "id": "doc1",
    "title": "Carpenter v. United States",
    "citation": "585 U.S. 296 (2018)",
    "doc_type": "dissent",
    "text": "Justice Gorsuch, dissenting. Property law should decide the case.",
}


def test_parses_json_summary():
    payload = {
        "ai_summary": "The dissent would ground the rule in property law.",
        "key_arguments": ["Positive law", "Bailment"],
        "legal_standard": "Property-based test",
        "notable_quotes": ["Property law should decide"],
        "cited_cases": ["Katz v. United States, 389 U.S. 347 (1967)"],
    }
    client = FakeModelClient(responses={1: "Summary:\n```json\n" + json.dumps(payload) + "\n```"})

    summary = DocumentSummarizer(client=client).summarize(DOCUMENT, "Smith v. Jones")

    assert summary["ai_summary"] == payload["ai_summary"]
    assert summary["key_arguments"] == ["Positive law", "Bailment"]
    assert summary["cited_cases"] == payload["cited_cases"]
    assert summary["strengths"] == []
    assert summary["document_id"] == "doc1"
    assert "summarized_at" in summary


def test_malformed_output_falls_back_without_raising():
    client = FakeModelClient(responses={1: "The dissent argues for a property baseline."})

    summary = DocumentSummarizer(client=client).summarize(DOCUMENT)

    assert summary["ai_summary"] == "The dissent argues for a property baseline."
    for key in ("key_arguments", "notable_quotes", "cited_cases", "strengths", "weaknesses"):
        assert summary[key] == []
    assert EMPTY_SUMMARY["ai_summary"] == ""


def test_wrong_field_types_are_dropped():
    client = FakeModelClient(responses={1: '{"ai_summary": 42, "key_arguments": "not a list"}'})

    summary = DocumentSummarizer(client=client).summarize(DOCUMENT)

    assert summary["ai_summary"] == ""
    assert summary["key_arguments"] == []


def test_prompt_depends_on_document_type():
    client = FakeModelClient(responses={1: "{}", 2: "{}"})
    summarizer = DocumentSummarizer(client=client)

    summarizer.summarize(DOCUMENT)
    summarizer.summarize(dict(DOCUMENT, doc_type="brief_amicus"))

    assert "dissenting opinion" in client.calls[0]["prompt"]
    assert "party or amicus brief" in client.calls[1]["prompt"]
    assert DOCUMENT["text"] in client.calls[0]["prompt"]
