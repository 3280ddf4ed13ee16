"""
Extraction normalizer and gap detector tests.

Tests:
1-3.  LLM payload conversion
4-7.  Multi-source merge (priority, conflicts, confidence floor)
8-11. Gap detection and report shape
"""

from rfp_intake.extraction.normalizer import (
    build_gap_report,
    detect_extraction_accuracy,
    detect_missing_fields,
    merge_screen_records,
    normalize_name,
    screens_from_llm_payload,
)
from rfp_intake.schemas import ScreenRecord


def _complete(name="Concourse", source="spreadsheet:LED Cost Sheet!R3", **overrides):
    values = dict(
        pixel_pitch_mm=4.0, width_ft=90.0, height_ft=18.0, quantity=1,
        service_type="Front", product_type="LED Display", is_curved=False,
    )
    values.update(overrides)
    return ScreenRecord(name=name, source=source, **values)


# ============================================================
# 1-3. LLM payload conversion
# ============================================================

def test_screens_from_llm_payload_wrapped_values():
    payload = {"screens": [{
        "name": {"value": "Concourse", "citation": "p.12", "confidence": 0.95},
        "pitchMm": {"value": "4 mm", "citation": "p.12", "confidence": 0.9},
        "widthFt": {"value": 90, "confidence": 0.8},
        "heightFt": 18,
        "formFactor": {"value": "Curved", "confidence": 0.7},
    }]}
    [record] = screens_from_llm_payload(payload)

    assert record.name == "Concourse"
    assert record.source == "llm:p.12"
    assert record.pixel_pitch_mm == 4.0
    assert record.width_ft == 90.0
    assert record.height_ft == 18.0
    assert record.is_curved is True
    assert record.field_confidence["pixel_pitch_mm"] == 0.9
    # Bare values get the default LLM confidence
    assert record.field_confidence["height_ft"] == 0.7


def test_screens_from_llm_payload_drops_low_confidence():
    payload = [{"name": "Ribbon", "widthFt": {"value": 400, "confidence": 0.2}, "heightFt": 3}]
    [record] = screens_from_llm_payload(payload, min_confidence=0.6)

    assert record.width_ft is None
    assert record.height_ft == 3.0
    assert "width_ft" not in record.field_confidence


def test_screens_from_llm_payload_rejects_garbage():
    assert screens_from_llm_payload("not a payload") == []
    assert screens_from_llm_payload({"screens": ["x", None]}) == []
    [unnamed] = screens_from_llm_payload({"screens": [{"quantity": "2 units"}]})
    assert unnamed.name == "Screen 1"
    assert unnamed.quantity == 2


# ============================================================
# 4-7. Merge
# ============================================================

def test_merge_priority_first_non_null_wins():
    llm = ScreenRecord(name="Concourse", source="llm:p.3", width_ft=92.0)
    sheet = _complete(width_ft=90.0)
    regex = ScreenRecord(name="concourse", source="regex:(1) Concourse", brightness_nits=5000)

    [merged] = merge_screen_records({"llm": [llm], "spreadsheet": [sheet], "regex": [regex]})

    assert merged.width_ft == 92.0
    assert merged.field_sources["width_ft"] == "llm"
    assert merged.height_ft == 18.0
    assert merged.field_sources["height_ft"] == "spreadsheet"
    assert merged.brightness_nits == 5000
    assert merged.field_sources["brightness_nits"] == "regex"
    assert merged.source == "llm:p.3; spreadsheet:LED Cost Sheet!R3; regex:(1) Concourse"


def test_merge_records_conflicts():
    llm = ScreenRecord(name="Concourse", source="llm:p.3", width_ft=92.0, service_type="front")
    sheet = _complete(width_ft=90.0)

    [merged] = merge_screen_records(
        {"llm": [llm], "spreadsheet": [sheet]}, priority=["spreadsheet", "llm"],
    )

    assert merged.width_ft == 90.0
    conflicts = {c.field: c for c in merged.conflicts}
    assert set(conflicts) == {"width_ft"}  # "front" vs "Front" is not a conflict
    assert conflicts["width_ft"].kept_source == "spreadsheet"
    assert conflicts["width_ft"].other_value == 92.0


def test_merge_confidence_floor_falls_through():
    llm = ScreenRecord(
        name="Concourse", source="llm:p.3", width_ft=92.0, field_confidence={"width_ft": 0.3},
    )
    regex = ScreenRecord(name="Concourse", source="regex:(1) Concourse", width_ft=90.0,
                         field_confidence={"width_ft": 0.9})

    [merged] = merge_screen_records({"llm": [llm], "regex": [regex]}, min_confidence=0.6)
    assert merged.width_ft == 90.0
    assert merged.field_sources["width_ft"] == "regex"


def test_merge_keeps_distinct_screens_and_unknown_sources():
    merged = merge_screen_records({
        "vision": [ScreenRecord(name="Ribbon", source="vision:p.40", height_ft=3.0)],
        "llm": [ScreenRecord(name="Concourse", source="llm:p.3", width_ft=92.0)],
    })
    assert [r.name for r in merged] == ["Concourse", "Ribbon"]
    assert normalize_name("  Main-Board ") == normalize_name("main board")


# ============================================================
# 8-11. Gap detection
# ============================================================

def test_detect_missing_fields_labels():
    record = ScreenRecord(name="Ribbon", source="regex:(2) Ribbon", width_ft=400.0)
    assert detect_missing_fields(record) == [
        "Pixel Pitch (mm)", "Height (ft)", "Curvature", "Service Type", "Product Type",
    ]
    assert detect_missing_fields(_complete()) == []


def test_detect_extraction_accuracy():
    assert detect_extraction_accuracy("SECTION 11 06 60 LED DISPLAY SCHEDULE") == "High"
    assert detect_extraction_accuracy("Section 11.06.60") == "High"
    assert detect_extraction_accuracy("Division 27 audio") == "Standard"
    assert detect_extraction_accuracy(None) == "Standard"


def test_gap_report_statuses_and_summary():
    records = [_complete(), ScreenRecord(name="Ribbon", source="regex:(2) Ribbon", width_ft=400.0)]
    report = build_gap_report(records, "High")

    assert [s.status for s in report.screens] == ["usable", "gap_fill"]
    assert report.screens[0].values["area_sq_ft"] == 1620.0
    summary = report.extraction_summary
    assert summary.total_fields == 12
    assert summary.extracted_fields == 7
    assert summary.completion_rate == round(7 / 12, 4)
    assert "Ribbon: Pixel Pitch (mm)" in summary.missing_fields
    assert "Division 11 Data" not in summary.missing_fields


def test_gap_report_camel_case_and_division_11_gap():
    report = build_gap_report([_complete()], "Standard")
    body = report.model_dump(by_alias=True)

    assert body["extractionAccuracy"] == "Standard"
    assert body["extractionSummary"]["missingFields"] == ["Division 11 Data"]
    assert body["screens"][0]["missingFields"] == []
    assert body["screens"][0]["fieldConfidence"] == {}
