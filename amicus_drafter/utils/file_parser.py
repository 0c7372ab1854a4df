"""
File Parser Utility
Extracts text from uploaded reference documents (PDF, DOCX, TXT)
"""

from pathlib import Path

import pdfplumber
from docx import Document

SUPPORTED_EXTENSIONS = ('.pdf', '.docx', '.txt')


def allowed_file(filename: str, allowed=None) -> bool:
    allowed = allowed or {ext.lstrip('.') for ext in SUPPORTED_EXTENSIONS}
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed


def parse_file(file_path) -> str:
    path = Path(file_path)
    extension = path.suffix.lower()

    if extension == '.pdf':
        return parse_pdf(path)
    elif extension == '.docx':
        return parse_docx(path)
    elif extension == '.txt':
        return parse_txt(path)
    else:
        raise ValueError(f"Unsupported file type: {extension}")


def parse_pdf(file_path) -> str:
    """Extract text from PDF with page markers so pinpoint cites survive"""
    text_parts = []
    with pdfplumber.open(file_path) as pdf:
        for i, page in enumerate(pdf.pages, 1):
            page_text = page.extract_text() or ""
            if page_text.strip():
                text_parts.append(f"--- PAGE {i} ---\n{page_text}")
    return "\n\n".join(text_parts)


def parse_docx(file_path) -> str:
    doc = Document(str(file_path))
    paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]
    return "\n\n".join(paragraphs)


def parse_txt(file_path) -> str:
    # Court filings often arrive as cp1252; keep going rather than reject the upload
    with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
        return f.read()
