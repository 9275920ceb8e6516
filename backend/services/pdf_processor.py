"""PDF text extraction utilities."""
import io
import logging
import re

import fitz  # PyMuPDF
import pdfplumber

from config import settings
from exceptions import ExtractionError
from schemas import ExtractedText

logger = logging.getLogger("StatementPipeline.PDF")

_ALNUM_RE = re.compile(r"[A-Za-z0-9]")


def extract_text_with_pdfplumber(pdf_bytes: bytes) -> list[dict]:
    """
    Extract text from each page of a PDF using pdfplumber.
    Returns a list of {page_number, text} dicts.
    """
    pages = []
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        for i, page in enumerate(pdf.pages):
            text = page.extract_text() or ""
            pages.append({"page_number": i + 1, "text": text})
    return pages


def extract_text_with_pymupdf(pdf_bytes: bytes) -> list[dict]:
    """
    Extract text from each page using PyMuPDF.
    Returns a list of {page_number, text} dicts.
    """
    pages = []
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        for i, page in enumerate(doc):
            pages.append({"page_number": i + 1, "text": page.get_text()})
    finally:
        doc.close()
    return pages


def get_metadata(pdf_bytes: bytes) -> dict:
    """Extract PDF metadata using PyMuPDF."""
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    try:
        metadata = dict(doc.metadata or {})
        metadata["page_count"] = doc.page_count
        metadata["is_encrypted"] = doc.is_encrypted
    finally:
        doc.close()
    return metadata


def clean_text(text: str) -> str:
    """Collapse runs of spaces/tabs, turn form feeds into newlines, cap blank lines."""
    text = text.replace("\f", "\n")
    text = re.sub(r"[ \t\r\u00a0]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_preview(text: str, length: int = None) -> str:
    """First characters of the statement, used for cheap bank detection."""
    return text[: length or settings.PREVIEW_CHARS]


def is_likely_scanned(text: str) -> bool:
    """Very short text or a low alphanumeric share means a scan or garbled text layer."""
    if len(text) < settings.SCANNED_MIN_CHARS:
        return True
    ratio = len(_ALNUM_RE.findall(text)) / len(text)
    return ratio < settings.SCANNED_MIN_ALNUM_RATIO


def extract(pdf_bytes: bytes) -> ExtractedText:
    """
    Turn a decrypted PDF into cleaned text.

    pdfplumber is tried first; PyMuPDF is the fallback when pdfplumber cannot
    open the document. Raises ExtractionError when neither can.
    """
    try:
        pages = extract_text_with_pdfplumber(pdf_bytes)
    except Exception as e:
        logger.warning("pdfplumber failed (%s), falling back to PyMuPDF", e)
        try:
            pages = extract_text_with_pymupdf(pdf_bytes)
        except Exception as e2:
            raise ExtractionError(f"Could not read PDF text layer: {e2}") from e2
    if not pages:
        raise ExtractionError("PDF has no pages")

    text = clean_text("\n\n".join(p["text"] for p in pages))

    try:
        metadata = get_metadata(pdf_bytes)
    except Exception as e:
        logger.debug("Metadata unavailable: %s", e)
        metadata = {}

    scanned = is_likely_scanned(text)
    logger.info("Extracted %d chars from %d pages%s", len(text), len(pages), " (looks scanned)" if scanned else "")
    return ExtractedText(
        text=text,
        page_count=len(pages),
        is_likely_scanned=scanned,
        metadata=metadata,
    )
