"""
Streaming smart filter — tournament selection for very large PDFs.

Pages arrive one at a time and are scored in fixed-size chunks. Each chunk
keeps its must-keep pages plus its top_per_chunk best-scoring pages; the
rest of the chunk's text is released before the next chunk is read. A final
round keeps every must-keep survivor and fills the remaining slots with the
best of the rest.

Memory is bounded by chunk_size + (number of chunks x top_per_chunk) pages
rather than by document length.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..schemas import FilterResult
from .smart_filter import FilterConfig, PageScore, render_pages, score_page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamingFilterConfig(FilterConfig):
    chunk_size: int = 300
    top_per_chunk: int = 50
    final_max_pages: int = 150
    max_chars: int = 450_000


def should_use_streaming(total_pages: int, threshold: int = 300) -> bool:
    return total_pages > threshold


def _by_score(page: PageScore):
    return (-page.score, page.page_number)


def select_from_chunk(chunk: List[PageScore], config: StreamingFilterConfig) -> List[PageScore]:
    """Must-keep pages always survive; other pages compete for top_per_chunk slots."""
    must_keep = [p for p in chunk if p.is_must_keep]
    others = sorted((p for p in chunk if not p.is_must_keep), key=_by_score)
    return must_keep + others[:config.top_per_chunk]


def final_round(survivors: List[PageScore], config: StreamingFilterConfig) -> List[PageScore]:
    must_keep = [p for p in survivors if p.is_must_keep]
    rest = sorted((p for p in survivors if not p.is_must_keep), key=_by_score)
    slots = max(0, config.final_max_pages - len(must_keep))
    return sorted(must_keep + rest[:slots], key=lambda p: p.page_number)


def _header(total: int, chunks: int, numbers: List[int]) -> str:
    return (
        "SMART_FILTER_STREAMING\n"
        f"TOTAL_PAGES={total}\n"
        f"RETAINED_PAGES={len(numbers)}\n"
        f"CHUNKS_PROCESSED={chunks}\n"
        f"PAGES={','.join(str(n) for n in numbers)}\n\n"
    )


def streaming_filter_pages(
    pages: Iterable[Tuple[int, str]],
    total_pages: Optional[int] = None,
    config: StreamingFilterConfig = None,
) -> FilterResult:
    """
    Filter (page_number, text) pairs arriving in page order.

    full_text is not assembled in this mode; only chunk survivors are held.
    """
    config = config or StreamingFilterConfig()

    survivors: List[PageScore] = []
    chunk: List[PageScore] = []
    chunk_index = 0
    seen = 0

    for page_number, text in pages:
        seen += 1
        chunk.append(score_page(text, page_number, config, chunk_index=chunk_index))
        if len(chunk) >= config.chunk_size:
            kept = select_from_chunk(chunk, config)
            logger.debug(f"Chunk {chunk_index + 1}: kept {len(kept)} of {len(chunk)} pages")
            survivors.extend(kept)
            chunk = []
            chunk_index += 1

    if chunk:
        survivors.extend(select_from_chunk(chunk, config))
        chunk_index += 1

    total = max(total_pages or 0, seen)
    final = final_round(survivors, config)
    reserved = len(_header(total, chunk_index, [p.page_number for p in final]))
    emitted, body = render_pages(final, config.max_chars, show_chunk=True, reserved=reserved)
    numbers = [p.page_number for p in emitted]
    header = _header(total, chunk_index, numbers)

    logger.info(
        f"Streaming filter kept {len(emitted)} of {total} pages across {chunk_index} chunks"
    )

    return FilterResult(
        full_text=None,
        filtered_text=header + body,
        retained_pages=len(emitted),
        total_pages=total,
        drawing_candidates=[p.page_number for p in emitted if p.is_drawing_candidate],
        retained_page_numbers=numbers,
        chunks_processed=chunk_index,
        mode="streaming",
    )
