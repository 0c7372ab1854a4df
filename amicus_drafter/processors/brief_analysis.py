"""
Brief analysis helpers

Cheap, regex-based measurements of generated brief text. They feed the
section changes and source maps recorded for each wave.
"""

import re
from typing import Dict, List

PLACEHOLDER_PATTERN = re.compile(r'\[CITATION NEEDED[^\]]*\]', re.IGNORECASE)

CITATION_PATTERN = re.compile(
    r"[A-Z][\w.'&-]*\s+v\.\s+[A-Z][\w.'&-]*"
    r'|U\.S\.\s+Const\.'
    r'|\d+\s+U\.S\.C\.\s+§+\s*\d+'
    r'|\d+\s+U\.S\.\s+\d+'
)
CASE_PATTERN = re.compile(r"[A-Z][\w.'&-]*\s+v\.\s+[A-Z][\w.'&-]*")
STATUTE_PATTERN = re.compile(r'\d+\s+U\.S\.C\.\s+§+\s*\d+')
CONSTITUTION_PATTERN = re.compile(r'U\.S\.\s+Const\.[^.;)]*')
SUPREME_COURT_PATTERN = re.compile(r"[A-Z][\w.'&-]*\s+v\.\s+[A-Z][\w.'&-]*(?:\s+[A-Z][\w.'&-]*)*,\s+\d+\s+U\.S\.\s+\d+")
REPORTER_PATTERN = re.compile(r"[A-Z][\w.'&-]*\s+v\.\s+[A-Z][\w.'&-]*(?:\s+[A-Z][\w.'&-]*)*,\s+\d+\s+F\.\s*(?:2d|3d|4th)?\s*\d+")

HEADING_PATTERN = re.compile(
    r'^(?:#{1,4}\s+.+'
    r'|[IVXL]+\.\s+.+'
    r"|[A-Z][A-Z0-9 ,.;:'()&-]{3,})$"
)

JUSTICES = ('Roberts', 'Thomas', 'Alito', 'Sotomayor', 'Kagan', 'Gorsuch', 'Kavanaugh', 'Barrett', 'Jackson')

APPROACHES = (
    'originalist', 'textualist', 'living constitution',
    'strict constructionist', 'judicial restraint', 'judicial activism',
)

COUNTERARGUMENT_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r'to be sure[^.]*\.',
        r'while opponents may argue[^.]*\.',
        r'although critics claim[^.]*\.',
        r'some might contend[^.]*\.',
    )
]

REBUTTAL_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r'however[^.]*\.',
        r'but this argument fails[^.]*\.',
        r'this contention is wrong[^.]*\.',
        r'this reasoning is flawed[^.]*\.',
    )
]

TOA_CATEGORIES = (
    'Constitutional Provisions',
    'Supreme Court Cases',
    'Court of Appeals Cases',
    'District Court Cases',
    'State Cases',
    'Statutes',
    'Legislative Materials',
    'Secondary Sources',
)


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


def parse_brief_sections(content: str) -> List[Dict]:
    """Split brief text into sections at heading lines.

    A heading is a Markdown heading, a Roman-numeral point heading, or an
    all-caps line. Text before the first heading becomes its own section.
    """
    sections = []
    title = None
    lines: List[str] = []

    def flush():
        body = '\n'.join(lines).strip()
        if title is None and not body:
            return
        sections.append({
            'id': f'section-{len(sections) + 1}',
            'title': title or f'Section {len(sections) + 1}',
            'content': body,
        })

    for line in (content or '').splitlines():
        stripped = line.strip()
        if stripped and HEADING_PATTERN.match(stripped):
            flush()
            title = stripped.lstrip('#').strip()
            lines = []
        else:
            lines.append(line)
    flush()
    return sections


def count_placeholders(text: str) -> int:
    return len(PLACEHOLDER_PATTERN.findall(text or ''))


def count_citations(text: str) -> int:
    return len(CITATION_PATTERN.findall(text or ''))


def count_citations_by_type(text: str) -> Dict[str, int]:
    cases = len(CASE_PATTERN.findall(text))
    statutes = len(STATUTE_PATTERN.findall(text))
    constitutional = len(re.findall(r'U\.S\.\s+Const\.', text))
    return {
        'total': cases + statutes + constitutional,
        'cases': cases,
        'statutes': statutes,
        'constitutional': constitutional,
    }


def extract_new_citations(new_text: str, old_text: str) -> List[str]:
    """Citations in new_text that do not appear anywhere in old_text."""
    old = set(CITATION_PATTERN.findall(old_text or ''))
    new = []
    for cite in CITATION_PATTERN.findall(new_text or ''):
        if cite not in old and cite not in new:
            new.append(cite)
    return new


def extract_justice_references(text: str) -> List[str]:
    lowered = text.lower()
    return [name for name in JUSTICES if name.lower() in lowered]


def extract_constitutional_approaches(text: str) -> List[str]:
    lowered = text.lower()
    return [a for a in APPROACHES if a in lowered]


def extract_counterarguments(text: str) -> List[str]:
    found = []
    for pattern in COUNTERARGUMENT_PATTERNS:
        found.extend(pattern.findall(text))
    return found


def extract_rebuttals(text: str) -> List[str]:
    found = []
    for pattern in REBUTTAL_PATTERNS:
        found.extend(pattern.findall(text))
    return found


def find_document_usage(title: str, sections: List[Dict]) -> List[str]:
    """Titles of the sections that mention a document by title."""
    if not title:
        return []
    needle = title.lower()
    return [s['title'] for s in sections if needle in s['content'].lower()]


def is_standardized_heading(title: str) -> bool:
    return bool(re.match(r'^[A-Z\s]+$', title) or re.match(r'^[IVX]+\.', title))


def _clamp(value: float, low: float = 1, high: float = 10) -> float:
    return max(low, min(high, value))


def assess_formal_tone(text: str) -> int:
    lowered = text.lower()
    score = 5
    for marker in ('respectfully', 'this court', 'constitutional', 'precedent', 'holding'):
        if marker in lowered:
            score += 1
    for marker in ('you ', 'we think', 'obviously', 'clearly'):
        if marker in lowered:
            score -= 1
    return int(_clamp(score))


def assess_transitions(text: str) -> int:
    lowered = text.lower()
    count = sum(
        lowered.count(t)
        for t in ('moreover', 'furthermore', 'additionally', 'in addition', 'similarly', 'consequently')
    )
    return int(_clamp(count))


def assess_citation_consistency(text: str) -> float:
    return _clamp(len(CASE_PATTERN.findall(text)) / 5)


def assess_bluebook_compliance(text: str) -> int:
    """Share of case citations carrying a reporter cite, scaled to 0-10."""
    total = len(CASE_PATTERN.findall(text))
    if total == 0:
        return 5
    proper = len(SUPREME_COURT_PATTERN.findall(text)) + len(REPORTER_PATTERN.findall(text))
    return round(min(proper, total) / total * 10)


def extract_table_of_authorities(text: str) -> Dict[str, List[str]]:
    table = {category: [] for category in TOA_CATEGORIES}

    def unique(items):
        seen = []
        for item in items:
            item = item.strip()
            if item not in seen:
                seen.append(item)
        return seen

    table['Constitutional Provisions'] = unique(CONSTITUTION_PATTERN.findall(text))
    table['Supreme Court Cases'] = unique(SUPREME_COURT_PATTERN.findall(text))
    table['Court of Appeals Cases'] = unique(REPORTER_PATTERN.findall(text))
    table['Statutes'] = unique(STATUTE_PATTERN.findall(text))
    return table


def assess_argument_strength(text: str) -> int:
    lowered = text.lower()
    score = 5.0
    for marker in ('therefore', 'consequently', 'thus', 'accordingly', 'because', 'since'):
        score += min(lowered.count(marker) * 0.1, 1)
    return round(min(10, score))


def assess_narrative_flow(text: str) -> int:
    lowered = text.lower()
    score = 5.0
    for marker in ('first', 'second', 'third', 'finally', 'next', 'then', 'moreover', 'furthermore'):
        if marker in lowered:
            score += 0.5
    return round(min(10, score))


def assess_constitutional_depth(text: str) -> int:
    lowered = text.lower()
    terms = (
        'constitutional', 'amendment', 'clause', 'precedent',
        'judicial review', 'due process', 'equal protection',
    )
    score = sum(lowered.count(term) * 0.1 for term in terms)
    return round(_clamp(score))
