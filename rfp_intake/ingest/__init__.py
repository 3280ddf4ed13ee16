"""
PDF signal filtering.

Scores pages by keyword signal so that only technical and pricing content
(not legal boilerplate) goes into the extraction prompt. Documents above
the streaming threshold are filtered in fixed-size chunks.
"""

from .smart_filter import FilterConfig, PageScore, score_page, smart_filter_pages
from .streaming_filter import StreamingFilterConfig, should_use_streaming, streaming_filter_pages
from .pipeline import IngestOutcome, filter_pdf_bytes
