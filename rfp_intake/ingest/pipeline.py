"""
PDF ingestion — extraction plus filtering with soft degradation.

If text extraction fails outright, the caller gets filter_result=None and
fallback="unfiltered": the original document goes to the LLM workspace
as-is instead of a filtered text blob.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import settings
from ..pdf_extractor import PDFExtractor
from ..schemas import FilterResult
from .smart_filter import FilterConfig, smart_filter_pages
from .streaming_filter import StreamingFilterConfig, should_use_streaming, streaming_filter_pages

logger = logging.getLogger(__name__)


@dataclass
class IngestOutcome:
    filter_result: Optional[FilterResult]
    total_pages: int = 0
    extraction_quality: str = "poor"
    file_size_mb: float = 0.0
    fallback: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def prompt_text(self) -> str:
        """Text to place in the extraction prompt; empty when degraded."""
        if self.filter_result is None:
            return ""
        return self.filter_result.filtered_text

    @property
    def source_text(self) -> str:
        """Best available plain text for regex extraction."""
        if self.filter_result is None:
            return ""
        return self.filter_result.full_text or self.filter_result.filtered_text


def filter_pdf_bytes(
    file_bytes: bytes,
    filename: str = "upload.pdf",
    extractor: PDFExtractor = None,
    config: FilterConfig = None,
    streaming_config: StreamingFilterConfig = None,
    streaming_threshold: int = None,
) -> IngestOutcome:
    """
    Validate, extract and filter a PDF upload.

    Raises ValueError only for upload validation (extension, size).
    Extraction failures degrade to the unfiltered fallback.
    """
    extractor = extractor or PDFExtractor()
    threshold = streaming_threshold or settings.STREAMING_PAGE_THRESHOLD

    file_size_mb = extractor.validate(file_bytes, filename)

    try:
        total_pages = extractor.count_pages(file_bytes)
        if should_use_streaming(total_pages, threshold):
            logger.info(f"{filename}: {total_pages} pages, using streaming filter")
            counter = _CharCounter(extractor.iter_pages(file_bytes))
            result = streaming_filter_pages(counter, total_pages, streaming_config)
            quality = _quality(counter.chars, total_pages)
        else:
            extraction = extractor.extract_pages_from_bytes(file_bytes, filename)
            result = smart_filter_pages(extraction["pages"], extraction["page_count"], config)
            quality = extraction["extraction_quality"]
    except ValueError as e:
        logger.warning(f"PDF text extraction failed for {filename}, using unfiltered document: {e}")
        return IngestOutcome(
            filter_result=None,
            file_size_mb=file_size_mb,
            fallback="unfiltered",
            warnings=[
                f"Text extraction failed ({e}). The original document will be "
                "embedded unfiltered."
            ],
        )

    warnings = []
    if quality == "poor":
        warnings.append(
            "PDF appears to be scanned images with little selectable text. "
            "OCR would improve results. Consider pasting the text manually."
        )

    return IngestOutcome(
        filter_result=result,
        total_pages=result.total_pages,
        extraction_quality=quality,
        file_size_mb=file_size_mb,
        warnings=warnings,
    )


class _CharCounter:
    """Pass-through iterator that tallies extracted characters."""

    def __init__(self, pages):
        self._pages = pages
        self.chars = 0

    def __iter__(self):
        for page_number, text in self._pages:
            self.chars += len(text)
            yield page_number, text


def _quality(chars: int, page_count: int) -> str:
    # Same thresholds as PDFExtractor._assess_quality, on a running count
    if page_count == 0:
        return "poor"
    chars_per_page = chars / page_count
    if chars_per_page > 100:
        return "good"
    elif chars_per_page > 20:
        return "fair"
    return "poor"
