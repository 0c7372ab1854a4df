"""
Document Summarizer

Type-specific summaries of reference documents (decisions, dissents, party
and amicus briefs, records). The model is asked for JSON; anything it returns
that is not a usable object falls back to EMPTY_SUMMARY with the raw text kept
as the summary.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from amicus_drafter.processors.model_client import ModelClient
from amicus_drafter.utils.json_extract import extract_json_object

logger = logging.getLogger(__name__)

MAX_DOCUMENT_CHARS = 150000

EMPTY_SUMMARY = {
    'ai_summary': '',
    'key_arguments': [],
    'legal_standard': '',
    'notable_quotes': [],
    'cited_cases': [],
    'strengths': [],
    'weaknesses': [],
}

_LIST_FIELDS = ('key_arguments', 'notable_quotes', 'cited_cases', 'strengths', 'weaknesses')
_TEXT_FIELDS = ('ai_summary', 'legal_standard')

SUMMARY_FORMAT = """Respond ONLY with a JSON object using these exact fields:
{
  "ai_summary": "3-5 sentence summary",
  "key_arguments": ["argument1", "argument2"],
  "legal_standard": "the governing test or standard",
  "notable_quotes": ["verbatim quote with pinpoint page"],
  "cited_cases": ["Case v. Name, 123 U.S. 456 (1900)"],
  "strengths": ["point useful to our amicus position"],
  "weaknesses": ["point the other side will exploit"]
}"""

FOCUS_BY_TYPE = {
    'decision': """You are analyzing a court decision. Focus on:
1. The legal holding and disposition
2. The steps of the court's reasoning
3. Essential facts and procedural history
4. Quotable passages and key precedents""",
    'dissent': """You are analyzing a dissenting opinion. Focus on:
1. The core disagreement with the majority
2. The dissent's alternative reasoning and proposed outcome
3. Flaws the dissent identifies in the majority opinion
4. Quotable passages""",
    'brief': """You are analyzing a party or amicus brief. Focus on:
1. The main arguments and the relief requested
2. The legal standard the brief advocates
3. Statutory and policy arguments
4. Vulnerable points in the argument""",
    'record': """You are analyzing material from the record. Focus on:
1. Facts relevant to the constitutional question
2. Admissions and key testimony with page references
3. Procedural posture""",
}

DOC_TYPE_ALIASES = {
    'concurrence': 'decision',
    'opinion': 'decision',
    'brief_petitioner': 'brief',
    'brief_respondent': 'brief',
    'brief_amicus': 'brief',
}


def normalize_summary(parsed: Dict, raw_text: str) -> Dict:
    """Coerce a parsed object into the EMPTY_SUMMARY shape."""
    summary = copy.deepcopy(EMPTY_SUMMARY)
    for key in _LIST_FIELDS:
        value = parsed.get(key)
        if isinstance(value, list):
            summary[key] = [str(v) for v in value]
    for key in _TEXT_FIELDS:
        if isinstance(parsed.get(key), str):
            summary[key] = parsed[key]

    if parsed == EMPTY_SUMMARY and raw_text:
        # Nothing parsed; keep the prose the model gave us
        summary['ai_summary'] = raw_text.strip()[:2000]
    return summary


class DocumentSummarizer:
    """Summarizes one uploaded document with a single model call."""

    def __init__(self, client: Optional[ModelClient] = None, model: Optional[str] = None):
        self.client = client or ModelClient()
        self.model = model

    def summarize(self, document: Dict, case_name: str = '') -> Dict:
        doc_type = (document.get('doc_type') or 'record').lower()
        focus = FOCUS_BY_TYPE.get(DOC_TYPE_ALIASES.get(doc_type, doc_type), FOCUS_BY_TYPE['record'])

        text = document.get('text') or ''
        if len(text) > MAX_DOCUMENT_CHARS:
            text = text[:MAX_DOCUMENT_CHARS]

        prompt = f"""{focus}

This summary supports an amicus brief in: {case_name or 'the pending case'}

DOCUMENT: {document.get('title') or document.get('filename', 'Untitled')}
CITATION: {document.get('citation') or 'Unknown'}

{SUMMARY_FORMAT}

Document text:
{text}"""

        raw = self.client.generate(prompt, model=self.model, max_tokens=4000, temperature=0.2)
        parsed = extract_json_object(raw, EMPTY_SUMMARY)
        summary = normalize_summary(parsed, raw)
        summary['document_id'] = document.get('id')
        summary['summarized_at'] = datetime.now(timezone.utc).isoformat()

        logger.info('Summarized document %s (%d cited cases)',
                    document.get('id'), len(summary['cited_cases']))
        return summary
