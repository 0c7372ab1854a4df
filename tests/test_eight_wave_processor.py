"""Tests for single-wave execution."""

import pytest

from amicus_drafter.processors.eight_wave_processor import (
    TOTAL_WAVES,
    WAVE_NAMES,
    InvalidWaveError,
    InvalidWaveInputError,
    WaveContext,
    WaveResult,
    execute_wave,
    get_wave,
)
from amicus_drafter.processors.model_client import (
    EmptyResponseError,
    ModelAuthError,
    ModelRateLimitError,
)
from amicus_drafter.utils.json_extract import WAVE_REPORT_MARKER
from conftest import OUTLINE, FakeModelClient, make_brief

JOB_ID = "job-123"

HISTORY = {
    "founding_documents": [{"title": "The Federalist No. 78", "key_quote": "least dangerous"}],
    "historical_cases": [{"title": "Entick v. Carrington"}],
    "colonial_examples": [],
}


@pytest.fixture
def bare_context():
    return WaveContext(approved_outline=OUTLINE)


@pytest.fixture
def full_context():
    return WaveContext.from_dict({
        "approvedOutline": OUTLINE,
        "caseInformation": {"caseName": "Smith v. Jones", "transcript": "Initial call notes."},
        "strategyChatHistory": [{"role": "user", "content": "Lead with history."}],
        "historicalResearch": HISTORY,
        "selectedDocuments": [{"id": "d1", "title": "Carpenter Opinion", "content": "Cell-site records."}],
        "justiceAnalysis": {"Gorsuch": {"strategy": "property"}},
    })


def test_wave_table():
    assert TOTAL_WAVES == 8
    assert WAVE_NAMES[1] == "Backbone Draft"
    assert WAVE_NAMES[8] == "Final Consolidation"
    assert get_wave(7).name == "Bluebook Citations"


@pytest.mark.parametrize("wave_number", [0, 9, -1, True, "1", 1.0, None])
def test_invalid_wave_number_rejected_before_model_call(bare_context, wave_number):
    client = FakeModelClient()

    with pytest.raises(InvalidWaveError):
        execute_wave(wave_number, bare_context, "brief", JOB_ID, client=client)
    assert client.calls == []


def test_wave1_requires_outline():
    client = FakeModelClient()

    with pytest.raises(InvalidWaveInputError, match="approved outline"):
        execute_wave(1, WaveContext(approved_outline="   "), None, JOB_ID, client=client)
    assert client.calls == []


@pytest.mark.parametrize("wave_number", range(2, 9))
def test_later_waves_require_current_brief(bare_context, wave_number):
    client = FakeModelClient()

    with pytest.raises(InvalidWaveInputError):
        execute_wave(wave_number, bare_context, "", JOB_ID, client=client)
    assert client.calls == []


def test_wave1_backbone_from_outline_only(bare_context):
    client = FakeModelClient()

    result = execute_wave(1, bare_context, None, JOB_ID, client=client)

    assert isinstance(result, WaveResult)
    assert result.wave_number == 1
    assert result.wave_name == "Backbone Draft"
    assert result.word_count > 0
    assert result.sources_used == []
    assert result.brief_id == JOB_ID
    assert "PASS-1" in result.brief_content
    assert WAVE_REPORT_MARKER not in result.brief_content
    assert len(client.calls) == 1
    assert result.thoughts and all(t.wave == 1 for t in result.thoughts)
    assert result.source_map["citationPlaceholders"] == 1


def test_wave1_prompt_excludes_research(full_context):
    client = FakeModelClient()

    execute_wave(1, full_context, None, JOB_ID, client=client)

    prompt = client.calls[0]["prompt"]
    assert "The Federalist No. 78" not in prompt
    assert "Carpenter Opinion" not in prompt
    assert "Initial call notes." in prompt


def test_wave2_integrates_historical_sources(full_context):
    client = FakeModelClient()
    b1 = execute_wave(1, full_context, None, JOB_ID, client=client).brief_content

    result = execute_wave(2, full_context, b1, JOB_ID, client=client)

    assert result.wave_number == 2
    assert result.brief_content != b1
    assert result.sources_used == ["The Federalist No. 78", "Entick v. Carrington"]
    assert result.citations_added == 2
    assert b1 in client.calls[1]["prompt"]


def test_section_changes_merge_wave_report(full_context):
    result = execute_wave(2, full_context, make_brief("B1"), JOB_ID, client=FakeModelClient())

    intro = next(c for c in result.section_changes if c["section"] == "I. INTRODUCTION")
    assert intro["action"] == "enhanced_historical"
    assert result.source_map["modelNotes"] == "PASS-1"


@pytest.mark.parametrize("wave_number, reason", [
    (2, "No historical research found"),
    (3, "No selected documents found"),
    (4, "No justice analysis found"),
])
def test_waves_without_inputs_pass_brief_through(bare_context, wave_number, reason):
    client = FakeModelClient()
    brief = make_brief("B1")

    result = execute_wave(wave_number, bare_context, brief, JOB_ID, client=client)

    assert client.calls == []
    assert result.skipped is True
    assert result.brief_content == brief
    assert result.wave_number == wave_number
    assert result.source_map == {"skipped": reason}


def test_wave3_reports_document_usage(full_context):
    result = execute_wave(3, full_context, make_brief("B2"), JOB_ID, client=FakeModelClient())

    assert result.sources_used == ["Carpenter Opinion"]
    assert result.source_map["documentUsage"][0]["docId"] == "d1"


def test_wave4_targets_named_justices(full_context):
    result = execute_wave(4, full_context, make_brief("B3"), JOB_ID, client=FakeModelClient())

    assert result.sources_used == ["Gorsuch"]


def test_wave6_without_reference_uses_court_standards(bare_context):
    result = execute_wave(6, bare_context, make_brief("B5"), JOB_ID, client=FakeModelClient())

    assert result.sources_used == ["supreme_court_standards"]


def test_wave7_records_table_of_authorities(bare_context):
    result = execute_wave(7, bare_context, make_brief("B6"), JOB_ID, client=FakeModelClient())

    table = result.source_map["tableOfAuthorities"]
    assert table["Supreme Court Cases"] == ["Marbury v. Madison, 5 U.S. 137"]
    assert result.source_map["placeholdersBefore"] == 1


def test_wave8_completion_report_uses_target(bare_context):
    client = FakeModelClient()
    result = execute_wave(8, bare_context, make_brief("B7"), JOB_ID, client=client, target_word_count=50)

    report = result.source_map["completionReport"]
    assert report["targetWordCount"] == 50
    assert report["finalWordCount"] == result.word_count
    assert client.calls[0]["max_tokens"] == 16000


def test_model_error_propagates(bare_context):
    client = FakeModelClient(responses={1: ModelRateLimitError("429 from upstream")})

    with pytest.raises(ModelRateLimitError):
        execute_wave(1, bare_context, None, JOB_ID, client=client)


def test_auth_error_propagates(bare_context):
    client = FakeModelClient(responses={1: ModelAuthError("bad key")})

    with pytest.raises(ModelAuthError):
        execute_wave(5, bare_context, make_brief("B4"), JOB_ID, client=client)


def test_report_without_brief_is_empty_response(bare_context):
    client = FakeModelClient(responses={1: f'{WAVE_REPORT_MARKER}\n{{"notes": "nothing"}}'})

    with pytest.raises(EmptyResponseError):
        execute_wave(1, bare_context, None, JOB_ID, client=client)


def test_malformed_report_falls_back(bare_context):
    client = FakeModelClient(responses={1: f"I. INTRODUCTION\nText.\n{WAVE_REPORT_MARKER}\n{{not json"})

    result = execute_wave(1, bare_context, None, JOB_ID, client=client)

    assert result.brief_content == "I. INTRODUCTION\nText."
    assert all("summary" not in change for change in result.section_changes)
    assert "modelNotes" not in result.source_map


def test_wave_result_dict_uses_camel_case(bare_context):
    result = execute_wave(1, bare_context, None, JOB_ID, client=FakeModelClient())
    data = result.to_dict()

    assert data["waveNumber"] == 1
    assert data["briefId"] == JOB_ID
    assert data["thoughts"][0]["waveName"] == "Backbone Draft"
    assert WaveResult.from_dict(data) == result


def test_context_from_camel_case_dict():
    context = WaveContext.from_dict({
        "approvedOutline": OUTLINE,
        "historicalResearch": {"foundingDocuments": [{"title": "A", "keyQuote": "q"}]},
        "justiceAnalysis": {"Gorsuch": {"keyFactors": ["x"]}},
        "unknownField": 1,
    })

    assert context.approved_outline == OUTLINE
    assert context.historical_research["founding_documents"][0]["key_quote"] == "q"
    assert "Gorsuch" in context.justice_analysis


@pytest.mark.parametrize("field, value", [
    ("reference_brief", [{"content": "Model brief"}]),
    ("justice_analysis", ["Gorsuch", "Kagan"]),
    ("historical_research", [{"title": "The Federalist No. 78"}]),
    ("strategy_chat_history", ["Lead with history."]),
])
def test_malformed_research_rejected_before_model_call(field, value):
    client = FakeModelClient()
    context = WaveContext(approved_outline=OUTLINE, **{field: value})

    with pytest.raises(InvalidWaveInputError, match=field):
        execute_wave(6, context, make_brief("PASS-5"), JOB_ID, client=client)
    assert client.calls == []


def test_malformed_historical_sources_rejected():
    context = WaveContext(approved_outline=OUTLINE,
                          historical_research={"founding_documents": "The Federalist"})

    with pytest.raises(InvalidWaveInputError, match="founding_documents"):
        execute_wave(2, context, make_brief("PASS-1"), JOB_ID, client=FakeModelClient())
