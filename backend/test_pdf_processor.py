"""Text extraction from decrypted statements."""
import pytest

from conftest import make_pdf
from exceptions import ExtractionError
from services import pdf_processor


def test_extract_reads_text_layer(statement_pdf):
    extracted = pdf_processor.extract(statement_pdf)

    assert extracted.page_count == 1
    assert "SWIGGY BANGALORE" in extracted.text
    assert "HSBC" in extracted.text
    assert not extracted.is_likely_scanned
    assert extracted.metadata["page_count"] == 1


def test_falls_back_to_pymupdf_when_pdfplumber_fails(statement_pdf, monkeypatch):
    def broken(_):
        raise RuntimeError("pdfplumber exploded")

    monkeypatch.setattr(pdf_processor, "extract_text_with_pdfplumber", broken)
    extracted = pdf_processor.extract(statement_pdf)

    assert "SWIGGY BANGALORE" in extracted.text


def test_unreadable_bytes_raise_extraction_error():
    with pytest.raises(ExtractionError):
        pdf_processor.extract(b"%PDF-garbage that is not a document")


def test_short_text_is_flagged_as_scanned():
    extracted = pdf_processor.extract(make_pdf("Page 1"))
    assert extracted.is_likely_scanned


@pytest.mark.parametrize("text,scanned", [
    ("", True),
    ("x" * 99, True),
    ("~!@#$%^&*()_+{}|:<>?" * 10, True),
    ("05/01/2024 SWIGGY BANGALORE 450.00\n" * 5, False),
])
def test_is_likely_scanned(text, scanned):
    assert pdf_processor.is_likely_scanned(text) is scanned


def test_clean_text_collapses_whitespace():
    raw = "HSBC   Bank\t\tIndia\f\n\n\n\n  Total   Due:  1,000.00  "
    assert pdf_processor.clean_text(raw) == "HSBC Bank India\n\nTotal Due: 1,000.00"


def test_extract_preview_default_length():
    text = "A" * 2000
    assert len(pdf_processor.extract_preview(text)) == 500
    assert pdf_processor.extract_preview(text, 20) == "A" * 20
