"""
PDF Text Extractor.

Extracts per-page text from uploaded RFP documents using pdfplumber.
pdfplumber handles tables and spec-sheet layouts better than PyPDF2.

Page order and numbering are preserved (1-based) because the signal
filter reports retained pages and drawing candidates by page number.

Does NOT implement OCR. If a PDF is scanned images, it flags
extraction_quality as "poor" and warns the user.
"""

import io
import logging
from typing import Iterator, Tuple

from .config import settings

logger = logging.getLogger(__name__)


class PDFExtractor:
    """
    Extracts page text from RFP PDFs.
    Uses pdfplumber for text extraction.
    """

    def __init__(self, max_pages: int = None, max_file_size_mb: float = None):
        self.max_pages = max_pages or settings.MAX_PDF_PAGES
        self.max_file_size_mb = max_file_size_mb or settings.MAX_UPLOAD_MB

    def extract_pages_from_bytes(self, file_bytes: bytes, filename: str = "upload.pdf") -> dict:
        """
        Extract text from in-memory bytes (for API upload).

        Returns: {
            "pages": [str, ...],        # one entry per page, "" for blank pages
            "text": str,                # pages joined with blank lines
            "page_count": int,
            "file_size_mb": float,
            "extraction_quality": str,  # "good" | "fair" | "poor"
        }
        """
        file_size_mb = self.validate(file_bytes, filename)
        pages = [text for _, text in self.iter_pages(file_bytes)]
        full_text = "\n\n".join(text for text in pages if text)

        return {
            "pages": pages,
            "text": full_text,
            "page_count": len(pages),
            "file_size_mb": file_size_mb,
            "extraction_quality": self._assess_quality(full_text, len(pages)),
        }

    def count_pages(self, file_bytes: bytes) -> int:
        """Page count without extracting text."""
        import pdfplumber

        try:
            with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
                return len(pdf.pages)
        except Exception as e:
            logger.error(f"PDF open error: {e}")
            raise ValueError(f"Failed to read PDF: {str(e)}")

    def iter_pages(self, file_bytes: bytes) -> Iterator[Tuple[int, str]]:
        """
        Yield (page_number, text) one page at a time.

        Pages are flushed from pdfplumber's cache after extraction so a
        1000-page document never holds more than one page's layout objects.
        """
        import pdfplumber

        try:
            pdf = pdfplumber.open(io.BytesIO(file_bytes))
        except Exception as e:
            logger.error(f"PDF open error: {e}")
            raise ValueError(f"Failed to read PDF: {str(e)}")

        with pdf:
            page_count = len(pdf.pages)
            if page_count > self.max_pages:
                raise ValueError(
                    f"PDF has {page_count} pages (max {self.max_pages})"
                )

            for index, page in enumerate(pdf.pages, start=1):
                try:
                    text = page.extract_text() or ""
                except Exception as e:
                    logger.warning(f"Text extraction failed on page {index}: {e}")
                    text = ""
                page.flush_cache()
                yield index, text

    def validate(self, file_bytes: bytes, filename: str = "upload.pdf") -> float:
        """Reject non-PDF names and oversized uploads. Returns size in MB."""
        if filename and not filename.lower().endswith(".pdf"):
            raise ValueError("File must be a PDF")

        file_size_mb = round(len(file_bytes) / (1024 * 1024), 2)
        if file_size_mb > self.max_file_size_mb:
            raise ValueError(
                f"File too large: {file_size_mb} MB (max {self.max_file_size_mb} MB)"
            )
        return file_size_mb

    def _assess_quality(self, text: str, page_count: int) -> str:
        """
        Assess extraction quality based on text density.

        "good": > 100 chars per page average
        "fair": 20-100 chars per page
        "poor": < 20 chars per page (likely scanned/image PDF)
        """
        if page_count == 0:
            return "poor"

        chars_per_page = len(text) / page_count

        if chars_per_page > 100:
            return "good"
        elif chars_per_page > 20:
            return "fair"
        else:
            return "poor"
