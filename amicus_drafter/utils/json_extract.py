"""
JSON extraction from model output

Models asked for JSON often wrap it in prose or Markdown fences. These helpers
pull out the first balanced {...} block and fall back to a caller supplied
default instead of raising.
"""

import copy
import json
import logging
import re
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

WAVE_REPORT_MARKER = '=== WAVE REPORT ==='

DEFAULT_WAVE_REPORT = {
    'section_changes': [],
    'notes': '',
}


def strip_fences(text: str) -> str:
    """Remove a leading/trailing Markdown code fence."""
    cleaned = text.strip()
    if cleaned.startswith('```'):
        cleaned = re.sub(r'^```\w*\n?', '', cleaned)
        cleaned = re.sub(r'\n?```$', '', cleaned)
    return cleaned.strip()


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} substring, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find('{')
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == '\\':
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == '{':
                depth += 1
            elif ch == '}':
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find('{', start + 1)
    return None


def extract_json_object(text: Optional[str], default: Dict) -> Dict:
    """Parse the first JSON object found in text.

    Returns a deep copy of default when no object is present, the object does
    not parse, or it parses to something other than a dict.
    """
    if not text:
        logger.warning('Empty model response where JSON was expected')
        return copy.deepcopy(default)

    cleaned = strip_fences(text)
    candidate = find_balanced_object(cleaned)
    if candidate is None:
        logger.warning('No JSON object found in model response (%d chars)', len(text))
        return copy.deepcopy(default)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning('Could not parse JSON from model response: %s', e)
        return copy.deepcopy(default)

    if not isinstance(parsed, dict):
        return copy.deepcopy(default)
    return parsed


def split_wave_report(text: str) -> Tuple[str, Dict]:
    """Split generated text into (brief, report).

    The report is the JSON block after WAVE_REPORT_MARKER. Missing or broken
    reports yield DEFAULT_WAVE_REPORT; its keys are always present.
    """
    if WAVE_REPORT_MARKER not in text:
        return text.strip(), copy.deepcopy(DEFAULT_WAVE_REPORT)

    brief, _, tail = text.partition(WAVE_REPORT_MARKER)
    report = extract_json_object(tail, DEFAULT_WAVE_REPORT)

    if not isinstance(report.get('section_changes'), list):
        report['section_changes'] = []
    if not isinstance(report.get('notes'), str):
        report['notes'] = ''
    return brief.strip(), report
