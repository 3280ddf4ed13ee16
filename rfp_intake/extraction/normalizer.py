"""
Extraction normalizer and gap detector.

Reconciles screen records from several extraction sources (LLM JSON,
spreadsheet rows, regex text extraction) into one record per screen, then
reports which required fields are still missing before the screen can be
priced.

Merge policy: records are matched by normalized screen name. For each
field, sources are consulted in the caller's priority order and the first
non-null value wins. Every disagreement with the winning value is recorded
on the merged record, so conflicts surface for human review instead of
being resolved silently.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..schemas import (
    SCREEN_FIELDS, ExtractionSummary, FieldConflict, GapReport, ScreenGap, ScreenRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = ("llm", "spreadsheet", "regex")

# Confidence assumed for a field when the source record does not carry one
DEFAULT_SOURCE_CONFIDENCE = {"spreadsheet": 1.0, "llm": 0.7, "regex": 0.6}

REQUIRED_FIELDS = {
    "pixel_pitch_mm": "Pixel Pitch (mm)",
    "width_ft": "Width (ft)",
    "height_ft": "Height (ft)",
    "is_curved": "Curvature",
    "service_type": "Service Type",
    "product_type": "Product Type",
}

HIGH_CONFIDENCE = 0.8

# LLM JSON key -> ScreenRecord field
LLM_FIELD_ALIASES = {
    "name": "name",
    "screenName": "name",
    "pitchMm": "pixel_pitch_mm",
    "pixelPitch": "pixel_pitch_mm",
    "pixel_pitch_mm": "pixel_pitch_mm",
    "widthFt": "width_ft",
    "width_ft": "width_ft",
    "heightFt": "height_ft",
    "height_ft": "height_ft",
    "quantity": "quantity",
    "serviceType": "service_type",
    "service_type": "service_type",
    "productType": "product_type",
    "product_type": "product_type",
    "isCurved": "is_curved",
    "formFactor": "is_curved",
    "costPerSqFt": "cost_per_sqft",
    "desiredMargin": "margin_pct",
    "brightnessNits": "brightness_nits",
    "brightness": "brightness_nits",
    "description": "description",
}

_NUMERIC_FIELDS = {
    "pixel_pitch_mm", "width_ft", "height_ft", "cost_per_sqft",
    "margin_pct", "brightness_nits",
}
_INT_FIELDS = {"quantity", "pixels_h", "pixels_w"}
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def normalize_name(name: str) -> str:
    """Match key for screen names: case, punctuation and spacing insensitive."""
    return re.sub(r"[^a-z0-9]+", " ", (name or "").lower()).strip()


# --- LLM payload -> ScreenRecord ---

def _coerce(field: str, value: Any) -> Any:
    if value is None or value == "":
        return None
    if field == "is_curved":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("curved", "true", "yes"):
            return True
        if text in ("straight", "flat", "false", "no"):
            return False
        return None
    if field in _NUMERIC_FIELDS or field in _INT_FIELDS:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            match = _NUMBER.search(str(value).replace(",", ""))
            if not match:
                return None
            number = float(match.group(0))
        return int(round(number)) if field in _INT_FIELDS else number
    return str(value).strip()


def _unwrap(raw: Any):
    """{value, citation, confidence} -> (value, citation, confidence); bare values pass through."""
    if isinstance(raw, dict) and "value" in raw:
        confidence = raw.get("confidence")
        try:
            confidence = float(confidence) if confidence is not None else None
        except (TypeError, ValueError):
            confidence = None
        if confidence is not None:
            confidence = min(1.0, max(0.0, confidence))
        return raw.get("value"), raw.get("citation"), confidence
    return raw, None, None


def screens_from_llm_payload(payload: Any, min_confidence: float = 0.0) -> List[ScreenRecord]:
    """
    Convert LLM output ({"screens": [...]} or a bare list) to ScreenRecords.

    Values whose reported confidence is below min_confidence are dropped to
    None so they show up as gaps rather than as trusted data.
    """
    if isinstance(payload, dict):
        raw_screens = payload.get("screens") or payload.get("displays") or []
    elif isinstance(payload, list):
        raw_screens = payload
    else:
        return []

    records = []
    for index, raw in enumerate(raw_screens):
        if not isinstance(raw, dict):
            continue
        values: Dict[str, Any] = {}
        confidence: Dict[str, float] = {}
        citation = None

        for key, raw_value in raw.items():
            field = LLM_FIELD_ALIASES.get(key)
            if field is None:
                continue
            value, cite, conf = _unwrap(raw_value)
            value = _coerce(field, value) if field != "name" else (str(value).strip() if value else None)
            if value is None:
                continue
            if field != "name" and conf is not None and conf < min_confidence:
                logger.debug(f"Dropping low-confidence {field}={value!r} ({conf})")
                continue
            values[field] = value
            if field != "name":
                confidence[field] = conf if conf is not None else DEFAULT_SOURCE_CONFIDENCE["llm"]
            citation = citation or cite

        name = values.pop("name", None) or f"Screen {index + 1}"
        records.append(ScreenRecord(
            name=name,
            source=f"llm:{citation}" if citation else f"llm:screen[{index}]",
            field_confidence=confidence,
            **values,
        ))
    return records


# --- Merge ---

def _ordered_sources(sources: Dict[str, Any], priority: Sequence[str]) -> List[str]:
    ordered = [s for s in priority if s in sources]
    ordered += sorted(s for s in sources if s not in ordered)
    return ordered


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, (int, float)) and isinstance(b, (int, float)) \
            and not isinstance(a, bool) and not isinstance(b, bool):
        return abs(a - b) <= max(1e-6, abs(a) * 0.005)
    if isinstance(a, str) and isinstance(b, str):
        return a.strip().lower() == b.strip().lower()
    return a == b


def merge_screen_records(
    sources: Dict[str, Iterable[ScreenRecord]],
    priority: Sequence[str] = DEFAULT_PRIORITY,
    min_confidence: float = 0.0,
) -> List[ScreenRecord]:
    """
    Merge per-source screen lists into one record per screen.

    priority lists source keys, highest first; keys not named are consulted
    after them in alphabetical order. Values below min_confidence are
    skipped in favour of the next source.
    """
    order = _ordered_sources(sources, priority)
    groups: Dict[str, Dict[str, List[ScreenRecord]]] = {}
    display_names: Dict[str, str] = {}
    for source in order:
        for record in sources[source]:
            key = normalize_name(record.name)
            groups.setdefault(key, {}).setdefault(source, []).append(record)
            display_names.setdefault(key, record.name)

    merged = []
    for key, by_source in groups.items():
        values: Dict[str, Any] = {}
        confidence: Dict[str, float] = {}
        field_sources: Dict[str, str] = {}
        conflicts: List[FieldConflict] = []
        provenance: List[str] = []

        candidates_by_field = {field: [] for field in SCREEN_FIELDS}
        for source in order:
            for record in by_source.get(source, []):
                if record.source not in provenance:
                    provenance.append(record.source)
                for field in SCREEN_FIELDS:
                    value = getattr(record, field)
                    if value is None:
                        continue
                    conf = record.field_confidence.get(
                        field, DEFAULT_SOURCE_CONFIDENCE.get(source, 0.5),
                    )
                    if conf < min_confidence:
                        continue
                    candidates_by_field[field].append((source, value, conf))

        for field, candidates in candidates_by_field.items():
            if not candidates:
                continue
            kept_source, kept_value, kept_conf = candidates[0]
            values[field] = kept_value
            confidence[field] = kept_conf
            field_sources[field] = kept_source
            for other_source, other_value, _ in candidates[1:]:
                if not _same(kept_value, other_value):
                    conflicts.append(FieldConflict(
                        field=field,
                        kept_value=kept_value,
                        kept_source=kept_source,
                        other_value=other_value,
                        other_source=other_source,
                    ))

        if conflicts:
            logger.info(
                f"{display_names[key]}: {len(conflicts)} conflicting values kept by priority "
                f"{list(order)}"
            )

        merged.append(ScreenRecord(
            name=display_names[key],
            source="; ".join(provenance),
            field_confidence=confidence,
            field_sources=field_sources,
            conflicts=conflicts,
            **values,
        ))
    return merged


# --- Gap detection ---

def detect_missing_fields(record: ScreenRecord) -> List[str]:
    return [label for field, label in REQUIRED_FIELDS.items() if getattr(record, field) is None]


def detect_extraction_accuracy(text: Optional[str]) -> str:
    """"High" when the document carries Section 11 06 60 (LED displays)."""
    if text and re.search(r"11[ .]?06[ .]?60", text):
        return "High"
    return "Standard"


def build_extraction_summary(records: Sequence[ScreenRecord]) -> ExtractionSummary:
    total = len(records) * len(REQUIRED_FIELDS)
    extracted = 0
    high = 0
    low = 0
    missing = []
    for record in records:
        for field, label in REQUIRED_FIELDS.items():
            if getattr(record, field) is None:
                missing.append(f"{record.name}: {label}")
                continue
            extracted += 1
            if record.field_confidence.get(field, 0.0) >= HIGH_CONFIDENCE:
                high += 1
            else:
                low += 1
    return ExtractionSummary(
        total_fields=total,
        extracted_fields=extracted,
        completion_rate=round(extracted / total, 4) if total else 0.0,
        high_confidence_fields=high,
        low_confidence_fields=low,
        missing_fields=missing,
    )


def build_gap_report(
    records: Sequence[ScreenRecord],
    extraction_accuracy: str = "Standard",
) -> GapReport:
    screens = []
    for record in records:
        missing = detect_missing_fields(record)
        values = {field: getattr(record, field) for field in SCREEN_FIELDS}
        values["area_sq_ft"] = record.area_sq_ft
        screens.append(ScreenGap(
            name=record.name,
            source=record.source,
            values=values,
            field_confidence=record.field_confidence,
            missing_fields=missing,
            conflicts=[c.model_dump() for c in record.conflicts],
            status="usable" if not missing else "gap_fill",
        ))

    summary = build_extraction_summary(records)
    if extraction_accuracy != "High":
        summary.missing_fields.append("Division 11 Data")

    return GapReport(
        extraction_accuracy=extraction_accuracy,
        screens=screens,
        extraction_summary=summary,
    )
