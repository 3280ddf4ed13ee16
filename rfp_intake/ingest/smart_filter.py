"""
Smart filter — page scoring and retention for RFP PDFs.

Every page gets an additive integer score:
    +6  per signal keyword present (schedule, pixel pitch, structural, ...)
    -3  per noise keyword present (indemnification, arbitration, ...)
    +8  when any measurement pattern matches (dimensions, voltage, ...)
    +15 when the page looks like a drawing sheet
    +25 when a must-keep phrase (CSI section numbers, schedules) appears

Retention keeps drawing candidates, must-keep pages and pages scoring at
least min_score, capped by page count and a character budget.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from ..schemas import FilterResult

logger = logging.getLogger(__name__)


SIGNAL_KEYWORDS = (
    "schedule", "pricing", "bid form", "display", "led", "specification",
    "technical", "qty", "quantity", "pixel pitch", "resolution", "nits",
    "brightness", "cabinet", "module", "diode", "refresh rate",
    "viewing angle", "warranty", "spare parts", "maintenance", "structural",
    "steel", "weight", "lbs", "kg", "power", "voltage", "amps", "circuit",
    "data", "fiber", "cat6",
    "division 27", "division 26", "section 11", "active area", "dimensions",
)

NOISE_KEYWORDS = (
    "indemnification", "insurance", "liability", "termination", "arbitration",
    "force majeure", "governing law", "jurisdiction", "severability", "waiver",
    "confidentiality", "intellectual property", "compliance",
    "equal opportunity", "harassment", "drug-free", "background check",
)

# Section numbers and schedule titles that carry the display scope
MUST_KEEP_PHRASES = (
    "11 06 60", "11.06.60", "110660",
    "11 63 10", "11.63.10", "116310",
    "section 11", "division 11",
    "led display schedule", "display schedule",
    "schedule of displays", "av schedule",
    "exhibit b", "cost schedule", "bid form", "exhibit a",
    "thornton tomasetti", "tte",
    "division 26", "26 51", "sports lighting",
    "division 27", "27 41", "sound system",
)

MEASUREMENT_PATTERNS = (
    r"\b\d+(?:\.\d+)?\s?(?:ft|feet|in|inch|inches|mm|cm|m|v|vac|amp|amps|hz|w|kw)\b",
    r"\b\d{2,4}\s?x\s?\d{2,4}\b",
    r"\b\d+(?:\.\d+)?\s?'\s?[x×]\s?\d+(?:\.\d+)?\s?'",
)

DRAWING_TERMS = ("scale", "detail", "elevation", "section", "plan", "drawing", "dwg")

_SHEET_TAG = re.compile(r"\bav-\d+", re.IGNORECASE)
_SHEET_NUMBER = re.compile(r"\bsheet\b.*\d", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class FilterConfig:
    """Tunables for page scoring and retention."""
    signal_keywords: Tuple[str, ...] = SIGNAL_KEYWORDS
    noise_keywords: Tuple[str, ...] = NOISE_KEYWORDS
    must_keep_phrases: Tuple[str, ...] = MUST_KEEP_PHRASES
    measurement_patterns: Tuple[str, ...] = MEASUREMENT_PATTERNS
    drawing_terms: Tuple[str, ...] = DRAWING_TERMS

    signal_weight: int = 6
    noise_weight: int = 3
    measurement_bonus: int = 8
    drawing_bonus: int = 15
    must_keep_bonus: int = 25
    drawing_max_chars: int = 350

    min_score: int = 8
    max_pages: int = 120
    large_doc_threshold: int = 250
    large_doc_max_pages: int = 80
    max_chars: int = 350_000


@dataclass
class PageScore:
    page_number: int  # 1-based
    text: str
    score: int
    is_drawing_candidate: bool = False
    is_must_keep: bool = False
    chunk_index: int = 0
    matched_signals: List[str] = field(default_factory=list)


@lru_cache(maxsize=32)
def _phrase_patterns(phrases: Tuple[str, ...]) -> Tuple[Tuple[str, "re.Pattern"], ...]:
    # Word-boundary match so "led" does not fire inside "scheduled"
    return tuple(
        (phrase, re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", re.IGNORECASE))
        for phrase in phrases
    )


@lru_cache(maxsize=32)
def _compiled(patterns: Tuple[str, ...]) -> Tuple["re.Pattern", ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def _present(text: str, phrases: Tuple[str, ...]) -> List[str]:
    return [phrase for phrase, pattern in _phrase_patterns(phrases) if pattern.search(text)]


def looks_like_drawing(text: str, config: FilterConfig = None) -> bool:
    """Short page carrying sheet vocabulary (scale, elevation, AV-101, Sheet 3 of 12)."""
    config = config or FilterConfig()
    stripped = text.strip()
    if not stripped or len(stripped) >= config.drawing_max_chars:
        return False
    if _present(stripped, config.drawing_terms):
        return True
    return bool(_SHEET_TAG.search(stripped) or _SHEET_NUMBER.search(stripped))


def score_page(
    text: str,
    page_number: int,
    config: FilterConfig = None,
    chunk_index: int = 0,
) -> PageScore:
    """Score one page. Pure: the same text and config always give the same score."""
    config = config or FilterConfig()
    text = text or ""

    signals = _present(text, config.signal_keywords)
    noise = _present(text, config.noise_keywords)
    score = len(signals) * config.signal_weight - len(noise) * config.noise_weight

    if any(p.search(text) for p in _compiled(config.measurement_patterns)):
        score += config.measurement_bonus

    is_drawing = looks_like_drawing(text, config)
    if is_drawing:
        score += config.drawing_bonus

    is_must_keep = bool(_present(text, config.must_keep_phrases))
    if is_must_keep:
        score += config.must_keep_bonus

    return PageScore(
        page_number=page_number,
        text=text,
        score=score,
        is_drawing_candidate=is_drawing,
        is_must_keep=is_must_keep,
        chunk_index=chunk_index,
        matched_signals=signals,
    )


def page_cap(total_pages: int, config: FilterConfig) -> int:
    """Smaller documents may keep more pages; very large ones are cut harder."""
    if total_pages > config.large_doc_threshold:
        return config.large_doc_max_pages
    return config.max_pages


def render_pages(
    pages: Sequence[PageScore],
    max_chars: int,
    show_chunk: bool = False,
    reserved: int = 0,
) -> Tuple[List[PageScore], str]:
    """
    Emit page blocks in the given order until the character budget is spent.
    Returns (emitted pages, body text). Pages past the budget are dropped
    and do not count as retained. `reserved` characters (the header) are
    charged against the budget up front.
    """
    emitted = []
    blocks = []
    used = reserved
    for page in pages:
        label = f"Score: {page.score}"
        if show_chunk:
            label += f", Chunk: {page.chunk_index + 1}"
        block = f"--- PAGE {page.page_number} ({label}) ---\n{page.text.strip()}\n\n"
        if used + len(block) > max_chars:
            logger.info(
                f"Character budget {max_chars} reached at page {page.page_number}; "
                f"{len(pages) - len(emitted)} selected pages dropped"
            )
            break
        emitted.append(page)
        blocks.append(block)
        used += len(block)
    return emitted, "".join(blocks)


def _header(total: int, numbers: List[int]) -> str:
    return (
        "SMART_FILTER\n"
        f"TOTAL_PAGES={total}\n"
        f"RETAINED_PAGES={len(numbers)}\n"
        f"PAGES={','.join(str(n) for n in numbers)}\n\n"
    )


def smart_filter_pages(
    pages: Sequence[str],
    total_pages: Optional[int] = None,
    config: FilterConfig = None,
) -> FilterResult:
    """
    Filter an ordered list of page texts (page 1 first).

    total_pages is the count reported by the PDF parser; it can exceed
    len(pages) when trailing pages failed extraction.
    """
    config = config or FilterConfig()
    total = max(total_pages or 0, len(pages))

    scored = [score_page(text, number, config) for number, text in enumerate(pages, start=1)]
    kept = [
        p for p in scored
        if p.is_drawing_candidate or p.is_must_keep or p.score >= config.min_score
    ]
    kept.sort(key=lambda p: (-p.score, p.page_number))
    selected = sorted(kept[:page_cap(total, config)], key=lambda p: p.page_number)

    # Header over every selected page is the longest the real header can get
    reserved = len(_header(total, [p.page_number for p in selected]))
    emitted, body = render_pages(selected, config.max_chars, reserved=reserved)
    numbers = [p.page_number for p in emitted]
    header = _header(total, numbers)

    logger.info(f"Smart filter kept {len(emitted)} of {total} pages")

    return FilterResult(
        full_text="\n\n".join(pages),
        filtered_text=header + body,
        retained_pages=len(emitted),
        total_pages=total,
        drawing_candidates=[p.page_number for p in emitted if p.is_drawing_candidate],
        retained_page_numbers=numbers,
        chunks_processed=1,
        mode="standard",
    )


