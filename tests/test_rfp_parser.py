"""
RFP text extractor tests.

Tests:
1-6.   Field extractors
7-10.  Location discovery and document-level fields
11-12. ScreenRecord conversion and product validation
"""

from pathlib import Path

from rfp_intake.rfp_parser import (
    calculate_confidence,
    extract_dimensions,
    extract_electrical,
    extract_minimum_nits,
    extract_pitch,
    extract_quantity,
    extract_rfp_requirements,
    extract_service_type,
    format_rfp_for_ingestion,
    location_to_screen_record,
    validate_product_against_location,
)


# --- Fixtures ---

FIXTURE_DIR = Path(__file__).parent / "fixtures"


def _sample_rfp_text():
    """Load the sample RFP excerpt."""
    path = FIXTURE_DIR / "sample_rfp_excerpt.txt"
    return path.read_text(encoding="utf-8")


# ============================================================
# 1-6. Field extractors
# ============================================================

def test_extract_minimum_nits():
    assert extract_minimum_nits("Minimum Nits: 5000") == (5000, 0.9)
    assert extract_minimum_nits("Minimum Nits = 1,500") == (1500, 0.9)
    assert extract_minimum_nits("bright enough") == (None, 0.0)


def test_extract_dimensions():
    dims, confidence = extract_dimensions("Dimensions: 90' x 18'")
    assert dims == {"width_feet": 90.0, "height_feet": 18.0}
    assert confidence == 0.9
    assert extract_dimensions("no size given") == (None, 0.0)


def test_extract_pitch_sub_and_exact():
    sub, sub_conf = extract_pitch("Pixel Pitch: Sub 4 mm")
    assert sub == {"preferred": "Sub 4 mm", "minimum": 3.0}
    assert sub_conf == 0.6

    exact, exact_conf = extract_pitch("Pixel Pitch: 2.5mm")
    assert exact["minimum"] == 2.5
    assert exact_conf == 0.9


def test_extract_quantity_forms():
    assert extract_quantity("Screens 7-9") == (3, 0.6)
    assert extract_quantity("Quantity: 9") == (9, 0.9)
    assert extract_quantity("4 screens along the fascia") == (4, 0.6)
    assert extract_quantity("one display") == (None, 0.0)


def test_extract_service_type_word_boundaries():
    assert extract_service_type("Maintenance Access: Front and rear")[0] == "Front/Rear"
    assert extract_service_type("Maintenance Access: Rear")[0] == "Rear"
    # "storefront" and "backlit" are not service directions
    assert extract_service_type("storefront backlit signage") == (None, 0.0)


def test_extract_electrical():
    electrical, confidence = extract_electrical("Power: 30A 208V 3 Phase")
    assert electrical["amperage"] == "30A"
    assert electrical["voltage"] == "208V"
    assert electrical["phase"] == "3 Phase"
    assert confidence == 0.9


# ============================================================
# 7-10. Locations and document fields
# ============================================================

def test_numbered_locations_from_sample():
    parsed = extract_rfp_requirements(_sample_rfp_text())

    assert parsed["client_name"] == "Westfield Valley Fair"
    assert parsed["project_title"].startswith("RFP for LED Display Replacement")
    assert parsed["metadata"]["method"] == "numbered_list"
    assert [loc["location_name"] for loc in parsed["locations"]] == ["Concourse", "9A Underpass 1-4"]

    concourse = parsed["locations"][0]
    assert concourse["location_number"] == 1
    assert concourse["dimensions"] == {"width_feet": 90.0, "height_feet": 18.0}
    assert concourse["technical_requirements"]["minimum_nits"] == 5000
    assert concourse["technical_requirements"]["minimum_refresh_rate"] == 3840
    assert concourse["technical_requirements"]["ip_rating"] == "65"
    assert concourse["technical_requirements"]["color_temperature"] == {"min": 3200, "max": 9300}
    assert concourse["technical_requirements"]["led_lifetime_hours"] == 100000
    assert concourse["service_requirements"]["service_type"] == "Front"
    assert concourse["structural"]["current_weight_lbs"] == 4500
    assert concourse["is_curved"] is True
    assert concourse["quantity"] == 1

    underpass = parsed["locations"][1]
    assert underpass["quantity"] == 4
    assert underpass["structural"]["transparent_display_required"] is True
    assert underpass["electrical"] is None


def test_confidence_is_bounded():
    parsed = extract_rfp_requirements(_sample_rfp_text())
    # 11 of 12 tracked slots: the underpass has no IP rating
    assert parsed["metadata"]["confidence"] == 91.7
    assert calculate_confidence([]) == 0.0
    assert 0.0 <= calculate_confidence(parsed["locations"]) <= 100.0


def test_dimension_anchor_fallback():
    parsed = extract_rfp_requirements("The Main Atrium display measures 30' x 10' overall.")

    assert parsed["metadata"]["method"] == "dimension_anchor"
    assert len(parsed["locations"]) == 1
    assert parsed["locations"][0]["location_name"] == "The Main Atrium"
    assert parsed["locations"][0]["dimensions"]["width_feet"] == 30.0


def test_empty_text():
    parsed = extract_rfp_requirements("")
    assert parsed["locations"] == []
    assert parsed["client_name"] == "Unknown Client"
    assert parsed["metadata"]["confidence"] == 0.0


# ============================================================
# 11-12. Conversion and validation
# ============================================================

def test_location_to_screen_record():
    parsed = extract_rfp_requirements(_sample_rfp_text())
    record = location_to_screen_record(parsed["locations"][0])

    assert record.name == "Concourse"
    assert record.source == "regex:(1) Concourse"
    assert record.pixel_pitch_mm == 3.0
    assert record.width_ft == 90.0
    assert record.height_ft == 18.0
    assert record.quantity is None
    assert record.is_curved is True
    assert record.brightness_nits == 5000
    assert record.field_confidence["width_ft"] == 0.9
    assert record.field_confidence["pixel_pitch_mm"] == 0.6
    assert "quantity" not in record.field_confidence
    assert record.area_sq_ft == 1620.0


def test_validate_product_against_location():
    location = extract_rfp_requirements(_sample_rfp_text())["locations"][0]

    good = validate_product_against_location(
        {"pixel_pitch": "2.5mm", "brightness_nits": 6000, "ip_rating": "IP65"}, location,
    )
    assert good == {"meets_requirements": True, "gaps": [], "score": 100}

    weak = validate_product_against_location(
        {"pixel_pitch": 4, "brightness_nits": 4000, "ip_rating": "IP54"}, location,
    )
    assert weak["score"] == 100 - 20 - 30 - 15
    assert not weak["meets_requirements"]
    assert len(weak["gaps"]) == 3


def test_format_rfp_for_ingestion():
    parsed = extract_rfp_requirements(_sample_rfp_text())
    markdown = format_rfp_for_ingestion(parsed)

    assert markdown.startswith("# RFP: RFP for LED Display Replacement")
    assert "### Concourse (Quantity: 1)" in markdown
    assert "**Dimensions:** 90' x 18'" in markdown
    assert "**REQUIREMENT: Transparent display required**" in markdown
