"""Pytest configuration and fixtures."""

import os
import tempfile

import pytest

# Set before any amicus_drafter module reads its configuration
os.environ.setdefault("AMICUS_PROJECTS_DIR", tempfile.mkdtemp(prefix="amicus-test-"))
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["AMICUS_LOG_LEVEL"] = "WARNING"

from amicus_drafter.storage.case_store import CaseStore  # noqa: E402

OUTLINE = "I. Introduction\nII. Argument\nIII. Conclusion"


def make_brief(marker: str) -> str:
    """A small brief with point headings and a wave report."""
    return f"""I. INTRODUCTION
Amicus respectfully submits this brief {marker}. This Court held in Marbury v. Madison, 5 U.S. 137 (1803) that judicial review is constitutional. [CITATION NEEDED]

II. ARGUMENT
The Federalist No. 78 confirms the point. Moreover, opponents may argue the clause is narrow. However, the text is clear.

III. CONCLUSION
The judgment should be reversed.

=== WAVE REPORT ===
{{"section_changes": [{{"section": "INTRODUCTION", "change": "revised {marker}"}}], "notes": "{marker}"}}"""


class FakeModelClient:
    """Stands in for ModelClient; records every call.

    Each call returns make_brief('PASS-<n>') unless `responses` supplies a
    value for that call number. An exception value is raised instead of
    returned. `on_call` runs before the response is produced.
    """

    def __init__(self, responses=None, on_call=None):
        self.responses = dict(responses or {})
        self.on_call = on_call
        self.calls = []

    def generate(self, prompt, system=None, model=None, max_tokens=8000, temperature=0.5):
        self.calls.append({
            "prompt": prompt,
            "system": system,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        number = len(self.calls)
        if self.on_call:
            self.on_call(number)
        response = self.responses.get(number, make_brief(f"PASS-{number}"))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_client():
    return FakeModelClient()


@pytest.fixture
def store(tmp_path):
    return CaseStore(tmp_path / "projects")


@pytest.fixture
def seeded_case(store):
    """A case with every kind of research the waves consume."""
    case = store.create_case({
        "case_name": "Smith v. Jones",
        "constitutional_question": "Does the Fourth Amendment reach cell-site records?",
        "transcript": "Attorney: we lead with the original public meaning.",
    })
    store.save_research_result(case["id"], "approved_outline", {"outline": OUTLINE})
    store.save_research_result(case["id"], "strategy_chat", [
        {"role": "user", "content": "Lead with history."},
        {"role": "assistant", "content": "Founding-era searches support that."},
    ])
    store.save_research_result(case["id"], "historical_research", {
        "founding_documents": [
            {"title": "The Federalist No. 78", "significance": "Judicial review", "key_quote": "least dangerous"},
        ],
        "historical_cases": [
            {"title": "Entick v. Carrington", "significance": "General warrants", "case_context": "1765"},
        ],
        "colonial_examples": [],
    })
    store.save_research_result(case["id"], "justice_analysis", {
        "Gorsuch": {"key_factors": ["property-based Fourth Amendment"], "strategy": "originalism"},
    })
    store.add_document(case["id"], {
        "filename": "opinion.txt",
        "title": "Carpenter v. United States",
        "citation": "585 U.S. 296 (2018)",
        "doc_type": "decision",
        "text": "The Court held that acquiring cell-site records was a search.",
    })
    store.add_document(case["id"], {
        "filename": "unused.txt",
        "title": "Unselected Memo",
        "doc_type": "record",
        "text": "Not part of the brief.",
        "selected": False,
    })
    return store.get_case(case["id"])
