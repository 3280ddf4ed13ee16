"""
PDF extractor tests — page text, validation, quality assessment.
"""

import pytest

from conftest import make_pdf
from rfp_intake.pdf_extractor import PDFExtractor


def test_extract_pages_keeps_page_order():
    pdf_bytes = make_pdf(["First page text", "", "Third page LED display"])
    result = PDFExtractor().extract_pages_from_bytes(pdf_bytes, "rfp.pdf")

    assert result["page_count"] == 3
    assert "First page" in result["pages"][0]
    assert result["pages"][1] == ""
    assert "LED display" in result["pages"][2]
    assert result["extraction_quality"] == "poor"


def test_count_pages_and_page_limit():
    pdf_bytes = make_pdf(["a", "b", "c"])
    assert PDFExtractor().count_pages(pdf_bytes) == 3

    with pytest.raises(ValueError, match="max 2"):
        list(PDFExtractor(max_pages=2).iter_pages(pdf_bytes))


def test_validate_rejects_name_and_size():
    extractor = PDFExtractor(max_file_size_mb=0.001)
    with pytest.raises(ValueError, match="must be a PDF"):
        extractor.validate(b"x", "notes.docx")
    with pytest.raises(ValueError, match="too large"):
        extractor.validate(b"x" * 20000, "big.pdf")


def test_unreadable_pdf_raises_value_error():
    with pytest.raises(ValueError, match="Failed to read PDF"):
        PDFExtractor().count_pages(b"not a pdf")


def test_assess_quality_thresholds():
    extractor = PDFExtractor()
    assert extractor._assess_quality("x" * 250, 2) == "good"
    assert extractor._assess_quality("x" * 100, 2) == "fair"
    assert extractor._assess_quality("x" * 10, 2) == "poor"
    assert extractor._assess_quality("", 0) == "poor"
