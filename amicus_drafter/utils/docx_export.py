"""
Word export for finished amicus briefs
"""

import re
from pathlib import Path
from typing import Dict

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_LINE_SPACING
from docx.shared import Pt

from amicus_drafter.processors.brief_analysis import HEADING_PATTERN

DOCX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'

_BOLD = re.compile(r'\*\*([^*]+)\*\*')
_UNDERLINED = re.compile(r'(_[^_]+_)')
_MARKDOWN_HEADING = re.compile(r'^#{1,6}\s*')


def clean_markdown(text: str) -> str:
    """Turn **bold** into _underline_ and drop stray markers."""
    text = _BOLD.sub(r'_\1_', text)
    return text.replace('**', '')


def add_formatted_paragraph(doc, text: str):
    """Add a paragraph, rendering _Case Name_ spans underlined."""
    p = doc.add_paragraph()
    for part in _UNDERLINED.split(clean_markdown(text)):
        if part.startswith('_') and part.endswith('_') and len(part) > 2:
            run = p.add_run(part[1:-1])
            run.underline = True
        elif part:
            p.add_run(part)
    return p


def build_brief_document(case: Dict, content: str):
    doc = Document()

    style = doc.styles['Normal']
    style.font.name = 'Courier New'
    style.font.size = Pt(12)
    style.paragraph_format.line_spacing_rule = WD_LINE_SPACING.DOUBLE

    title = doc.add_paragraph()
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    title.add_run(case.get('case_name', '')).bold = True

    court = doc.add_paragraph(f"In the {case.get('court_level') or 'Supreme Court'}")
    court.alignment = WD_ALIGN_PARAGRAPH.CENTER

    heading = doc.add_paragraph()
    heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
    heading.add_run("BRIEF OF AMICUS CURIAE").bold = True
    doc.add_page_break()

    for line in content.split('\n'):
        if not line.strip():
            continue
        if HEADING_PATTERN.match(line.strip()):
            p = doc.add_paragraph()
            p.add_run(clean_markdown(_MARKDOWN_HEADING.sub('', line.strip()))).bold = True
        else:
            add_formatted_paragraph(doc, line)

    doc.add_paragraph("")
    doc.add_paragraph("Respectfully submitted,")
    doc.add_paragraph("_______________________")
    doc.add_paragraph("Counsel for Amicus Curiae")
    return doc


def export_brief(case: Dict, content: str, output_path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    build_brief_document(case, content).save(output_path)
    return output_path
