"""
RFP Text Extractor — regex fallback for per-location display requirements.

Used alongside (or instead of) LLM extraction. Locations are found via the
numbered-list convention RFPs use for display schedules:

    (1) Concourse
        Dimensions: 90' x 18'
        Pixel Pitch: Sub 4 mm
        Minimum Nits: 5000
    (2) 9A Underpass 1-4
        ...

Each field has its own extractor: text -> (value or None, confidence).
Extractors never depend on one another, so any subset can match.
When no numbered locations exist, dimension matches anchor the locations
and a name is guessed from nearby capitalised words.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional, Tuple

from .schemas import ScreenRecord

logger = logging.getLogger(__name__)

# Confidence for a labelled regex hit ("Minimum Nits: 5000") vs. a looser match
LABELLED = 0.9
LOOSE = 0.6

_LOCATION = re.compile(r"\((\d+)\)[ \t]+([A-Za-z0-9][A-Za-z0-9 \t\-]*)")
_NEXT_LOCATION = re.compile(r"\(\d+\)[ \t]+[A-Za-z0-9]")

_DIMENSIONS = re.compile(
    r"(\d+(?:\.\d+)?)\s*['’]\s*[x×X]\s*(\d+(?:\.\d+)?)\s*['’]"
)
_PITCH = re.compile(
    r"Pixel Pitch\s*:\s*(Sub\s*\d+(?:\.\d+)?\s*mm|\d+(?:\.\d+)?\s*mm|Option\s*\d+\s*Pixel Pitch)",
    re.IGNORECASE,
)
_NITS = re.compile(r"Minimum Nits\s*[:=]\s*([\d,]+)", re.IGNORECASE)
_REFRESH = re.compile(r"Minimum Refresh Rate\s*[:>\s]*([\d,]+)\s*Hz", re.IGNORECASE)
_ANGLE = re.compile(
    r"(Horizontal|Vertical)\s*(?:Viewing\s*)?Angle\s*:?\s*(\d+)\s*[°º]?", re.IGNORECASE,
)
_IP_LABELLED = re.compile(r"Preferred IP Rating\s*:?\s*(?:IP\s*)?(\d{2})", re.IGNORECASE)
_IP_LOOSE = re.compile(r"\bIP\s?(\d{2})\b")
_COLOR_TEMP = re.compile(
    r"Color Temperature\s*:?\s*([\d,]+)\s*[-–]\s*([\d,]+)\s*[º°]?\s*K(?:elvin)?",
    re.IGNORECASE,
)
_LIFETIME = re.compile(r"Minimum LED Lifetime\s*:?\s*([\d,]+)\s*Hours", re.IGNORECASE)
_ACCESS = re.compile(r"Maintenance Access\s*:?[ \t]*([^\r\n]+)", re.IGNORECASE)
_WEIGHT = re.compile(r"Current Weight\s*:?\s*([\d,]+)\s*lbs", re.IGNORECASE)
_ELECTRICAL = re.compile(r"(\d+)[ ]?A[ \t]*/?[ \t]*(\d+)[ ]?V\b[ \t]*([^\r\n]*)", re.IGNORECASE)
_QUANTITY = re.compile(
    r"(?:Screens?|Displays?)\s*(\d+)\s*[-–]\s*(\d+)"
    r"|Quantity\s*:?\s*(\d+)"
    r"|(\d+)\s*screens?\b",
    re.IGNORECASE,
)
_CURVED = re.compile(r"\b(curved|convex|concave|radius|wrap(?:s|ped)? around)\b", re.IGNORECASE)
_FLAT = re.compile(r"\b(flat|straight|planar)\b", re.IGNORECASE)
_CLIENT_LABELLED = re.compile(r"(?:Client|Owner)\s*:\s*([^\r\n]+)", re.IGNORECASE)
_CLIENT_KNOWN = re.compile(r"(Unibail-Rodamco-Westfield|Westfield|URW)", re.IGNORECASE)
_TITLE = re.compile(
    r"Large Format LED Digital Displays|LED\s+Bid\s+Package|RFP\s+for\s+LED[^\r\n]*",
    re.IGNORECASE,
)
_CAPITALISED = re.compile(r"[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*")

# Fields counted toward the completeness signal
CONFIDENCE_FIELDS = 6


def _to_int(text: str) -> Optional[int]:
    try:
        return int(text.replace(",", ""))
    except (TypeError, ValueError):
        return None


# --- Field extractors ---

def extract_dimensions(text: str) -> Tuple[Optional[dict], float]:
    """First `W' x H'` pair -> {"width_feet", "height_feet"}."""
    match = _DIMENSIONS.search(text)
    if not match:
        return None, 0.0
    return {
        "width_feet": float(match.group(1)),
        "height_feet": float(match.group(2)),
    }, LABELLED


def extract_pitch(text: str) -> Tuple[Optional[dict], float]:
    """
    "Pixel Pitch: 4 mm" -> preferred "4 mm", minimum 4.0
    "Pixel Pitch: Sub 4 mm" -> preferred "Sub 4 mm", minimum 3.0
    """
    match = _PITCH.search(text)
    if not match:
        return None, 0.0
    preferred = re.sub(r"\s+", " ", match.group(1).strip())
    number = re.search(r"\d+(?:\.\d+)?", preferred)
    minimum = None
    confidence = LABELLED
    if preferred.lower().startswith("sub"):
        minimum = float(number.group(0)) - 1 if number else 3.0
        confidence = LOOSE
    elif preferred.lower().startswith("option"):
        confidence = LOOSE
    elif number:
        minimum = float(number.group(0))
    return {"preferred": preferred, "minimum": minimum}, confidence


def extract_minimum_nits(text: str) -> Tuple[Optional[int], float]:
    match = _NITS.search(text)
    value = _to_int(match.group(1)) if match else None
    return (value, LABELLED) if value is not None else (None, 0.0)


def extract_refresh_rate(text: str) -> Tuple[Optional[int], float]:
    match = _REFRESH.search(text)
    value = _to_int(match.group(1)) if match else None
    return (value, LABELLED) if value is not None else (None, 0.0)


def extract_viewing_angles(text: str) -> Tuple[Optional[dict], float]:
    """{"horizontal": deg, "vertical": deg}; either may be None."""
    angles = {"horizontal": None, "vertical": None}
    for axis, degrees in _ANGLE.findall(text):
        key = axis.lower()
        if angles[key] is None:
            angles[key] = int(degrees)
    if angles["horizontal"] is None and angles["vertical"] is None:
        return None, 0.0
    return angles, LABELLED


def extract_ip_rating(text: str) -> Tuple[Optional[str], float]:
    match = _IP_LABELLED.search(text)
    if match:
        return match.group(1), LABELLED
    match = _IP_LOOSE.search(text)
    if match:
        return match.group(1), LOOSE
    return None, 0.0


def extract_color_temperature(text: str) -> Tuple[Optional[dict], float]:
    match = _COLOR_TEMP.search(text)
    if not match:
        return None, 0.0
    low, high = _to_int(match.group(1)), _to_int(match.group(2))
    if low is None or high is None:
        return None, 0.0
    return {"min": min(low, high), "max": max(low, high)}, LABELLED


def extract_led_lifetime(text: str) -> Tuple[Optional[int], float]:
    match = _LIFETIME.search(text)
    value = _to_int(match.group(1)) if match else None
    return (value, LABELLED) if value is not None else (None, 0.0)


def extract_maintenance_access(text: str) -> Tuple[Optional[str], float]:
    match = _ACCESS.search(text)
    if not match or not match.group(1).strip():
        return None, 0.0
    return match.group(1).strip(), LABELLED


def extract_service_type(text: str) -> Tuple[Optional[str], float]:
    """Front / Rear / Front/Rear / Top, from the access line or free text."""
    access, _ = extract_maintenance_access(text)
    haystack = (access or text).lower()
    front = bool(re.search(r"\bfront\b", haystack))
    rear = bool(re.search(r"\b(?:rear|back)\b", haystack))
    confidence = LABELLED if access else LOOSE
    if front and rear:
        return "Front/Rear", confidence
    if front:
        return "Front", confidence
    if rear:
        return "Rear", confidence
    if re.search(r"\btop[- ]serv", haystack):
        return "Top", confidence
    return None, 0.0


def extract_transparent(text: str) -> Tuple[Optional[bool], float]:
    if "transparent" in text.lower():
        return True, LABELLED
    return None, 0.0


def extract_current_weight(text: str) -> Tuple[Optional[int], float]:
    match = _WEIGHT.search(text)
    value = _to_int(match.group(1)) if match else None
    return (value, LABELLED) if value is not None else (None, 0.0)


def extract_electrical(text: str) -> Tuple[Optional[dict], float]:
    """"30A 208V 3 Phase" -> amperage "30A", voltage "208V", phase "3 Phase"."""
    match = _ELECTRICAL.search(text)
    if not match:
        return None, 0.0
    return {
        "amperage": f"{match.group(1)}A",
        "voltage": f"{match.group(2)}V",
        "phase": match.group(3).strip() or None,
        "use_existing_infrastructure": "use existing infrastructure" in text.lower(),
    }, LABELLED


def extract_quantity(text: str) -> Tuple[Optional[int], float]:
    """"Screens 7-9" -> 3, "Quantity: 9" -> 9, "4 screens" -> 4."""
    match = _QUANTITY.search(text)
    if not match:
        return None, 0.0
    if match.group(1) and match.group(2):
        low, high = int(match.group(1)), int(match.group(2))
        if high >= low:
            return high - low + 1, LOOSE
        return None, 0.0
    if match.group(3):
        return int(match.group(3)), LABELLED
    return int(match.group(4)), LOOSE


def extract_curvature(text: str) -> Tuple[Optional[bool], float]:
    if _CURVED.search(text):
        return True, LOOSE
    if _FLAT.search(text):
        return False, LOOSE
    return None, 0.0


# --- Document-level extraction ---

def extract_client_name(text: str) -> str:
    match = _CLIENT_LABELLED.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _CLIENT_KNOWN.search(text)
    return match.group(1) if match else "Unknown Client"


def extract_project_title(text: str) -> str:
    match = _TITLE.search(text)
    return match.group(0).strip() if match else "LED Display Project"


def parse_location(name: str, text: str, number: Optional[int] = None) -> dict:
    """Run every field extractor over one location's slice of text."""
    dims, dims_conf = extract_dimensions(text)
    pitch, pitch_conf = extract_pitch(text)
    nits, nits_conf = extract_minimum_nits(text)
    refresh, refresh_conf = extract_refresh_rate(text)
    angles, angles_conf = extract_viewing_angles(text)
    ip, ip_conf = extract_ip_rating(text)
    color, color_conf = extract_color_temperature(text)
    lifetime, lifetime_conf = extract_led_lifetime(text)
    access, access_conf = extract_maintenance_access(text)
    service, service_conf = extract_service_type(text)
    transparent, _ = extract_transparent(text)
    weight, weight_conf = extract_current_weight(text)
    electrical, electrical_conf = extract_electrical(text)
    quantity, quantity_conf = extract_quantity(text)
    curved, curved_conf = extract_curvature(text)

    special_notes = []
    if transparent:
        special_notes.append("Transparent display required")

    return {
        "location_name": name,
        "location_number": number,
        "quantity": quantity or 1,
        "dimensions": {
            "width_feet": dims["width_feet"] if dims else None,
            "height_feet": dims["height_feet"] if dims else None,
        },
        "pitch_requirement": pitch or {"preferred": None, "minimum": None},
        "technical_requirements": {
            "minimum_nits": nits,
            "minimum_refresh_rate": refresh,
            "viewing_angle_horizontal": angles["horizontal"] if angles else None,
            "viewing_angle_vertical": angles["vertical"] if angles else None,
            "ip_rating": ip,
            "color_temperature": color or {"min": None, "max": None},
            "led_lifetime_hours": lifetime,
        },
        "service_requirements": {
            "access_method": access,
            "service_type": service,
        },
        "structural": {
            "transparent_display_required": bool(transparent),
            "current_weight_lbs": weight,
            "use_existing_infrastructure": True if weight is not None else None,
        },
        "electrical": electrical,
        "is_curved": curved,
        "special_notes": special_notes,
        "field_confidence": {
            "dimensions": dims_conf,
            "pitch": pitch_conf,
            "minimum_nits": nits_conf,
            "refresh_rate": refresh_conf,
            "viewing_angles": angles_conf,
            "ip_rating": ip_conf,
            "color_temperature": color_conf,
            "led_lifetime": lifetime_conf,
            "maintenance_access": access_conf,
            "service_type": service_conf,
            "current_weight": weight_conf,
            "electrical": electrical_conf,
            "quantity": quantity_conf,
            "curvature": curved_conf,
        },
    }


def find_locations(text: str) -> list:
    """Numbered-list locations, each sliced up to the next marker."""
    locations = []
    for match in _LOCATION.finditer(text):
        start = match.start()
        following = _NEXT_LOCATION.search(text, match.end())
        end = following.start() if following else len(text)
        name = re.sub(r"\s+", " ", match.group(2)).strip(" -")
        locations.append(parse_location(name, text[start:end], int(match.group(1))))
    return locations


def find_locations_by_dimensions(text: str) -> list:
    """Fallback: one location per `W' x H'` match, named from the preceding 200 chars."""
    locations = []
    for index, match in enumerate(_DIMENSIONS.finditer(text)):
        context = text[max(0, match.start() - 200):match.start()]
        names = _CAPITALISED.findall(context)
        name = names[-1] if names else f"Location {index + 1}"
        location = parse_location(name, match.group(0))
        location["field_confidence"]["location_name"] = LOOSE if names else 0.0
        locations.append(location)
    return locations


def calculate_confidence(locations: list) -> float:
    """
    Percentage of tracked slots filled across all locations, 0-100.
    Tracked: width, height, preferred pitch, minimum nits, IP rating, access.
    """
    if not locations:
        return 0.0
    filled = 0
    for loc in locations:
        slots = [
            loc["dimensions"]["width_feet"],
            loc["dimensions"]["height_feet"],
            loc["pitch_requirement"]["preferred"],
            loc["technical_requirements"]["minimum_nits"],
            loc["technical_requirements"]["ip_rating"],
            loc["service_requirements"]["access_method"],
        ]
        filled += sum(1 for value in slots if value is not None)
    total = len(locations) * CONFIDENCE_FIELDS
    return round(min(100.0, max(0.0, filled / total * 100)), 1)


def extract_rfp_requirements(text: str) -> dict:
    """
    Parse RFP text into {client_name, project_title, locations, metadata}.
    """
    text = text or ""
    locations = find_locations(text)
    method = "numbered_list"
    if not locations:
        locations = find_locations_by_dimensions(text)
        method = "dimension_anchor"

    logger.info(f"RFP regex extraction found {len(locations)} locations via {method}")

    return {
        "client_name": extract_client_name(text),
        "project_title": extract_project_title(text),
        "locations": locations,
        "metadata": {
            "extracted_at": datetime.now(timezone.utc).isoformat(),
            "confidence": calculate_confidence(locations),
            "method": method,
        },
    }


def location_to_screen_record(location: dict) -> ScreenRecord:
    conf = location["field_confidence"]
    pitch = location["pitch_requirement"]
    number = location.get("location_number")
    label = f"({number}) {location['location_name']}" if number else location["location_name"]

    record = ScreenRecord(
        name=location["location_name"],
        source=f"regex:{label}",
        pixel_pitch_mm=pitch.get("minimum"),
        width_ft=location["dimensions"]["width_feet"],
        height_ft=location["dimensions"]["height_feet"],
        quantity=location["quantity"] if conf["quantity"] else None,
        service_type=location["service_requirements"]["service_type"],
        is_curved=location["is_curved"],
        brightness_nits=location["technical_requirements"]["minimum_nits"],
    )
    record.field_confidence = {
        field: value for field, value in {
            "pixel_pitch_mm": conf["pitch"] if pitch.get("minimum") is not None else 0.0,
            "width_ft": conf["dimensions"],
            "height_ft": conf["dimensions"],
            "quantity": conf["quantity"],
            "service_type": conf["service_type"],
            "is_curved": conf["curvature"],
            "brightness_nits": conf["minimum_nits"],
        }.items() if value > 0
    }
    return record


def format_rfp_for_ingestion(parsed: dict) -> str:
    """Markdown summary of a parsed RFP for upload to the LLM workspace."""
    sections = [
        f"# RFP: {parsed['project_title']}",
        f"Client: {parsed['client_name']}",
        f"Extracted: {parsed['metadata']['extracted_at']}",
        f"Confidence: {parsed['metadata']['confidence']:.1f}%",
        "",
        "## Locations",
    ]
    for loc in parsed["locations"]:
        dims = loc["dimensions"]
        tech = loc["technical_requirements"]
        parts = [
            f"### {loc['location_name']} (Quantity: {loc['quantity']})",
            "",
            f"**Dimensions:** {_or_na(dims['width_feet'])}' x {_or_na(dims['height_feet'])}'",
            f"**Pixel Pitch:** {loc['pitch_requirement']['preferred'] or 'Not specified'}",
            f"**Minimum Brightness:** {_or_unspecified(tech['minimum_nits'])}",
            f"**IP Rating:** {_or_unspecified(tech['ip_rating'])}",
            f"**Service Access:** {_or_unspecified(loc['service_requirements']['access_method'])}",
        ]
        if loc["special_notes"]:
            parts.append(f"**Special Notes:** {', '.join(loc['special_notes'])}")
        if loc["structural"]["transparent_display_required"]:
            parts.append("**REQUIREMENT: Transparent display required**")
        sections.append("\n".join(parts))
    return "\n".join(sections)


def _or_na(value) -> str:
    return "N/A" if value is None else f"{value:g}"


def _or_unspecified(value) -> str:
    return "Not specified" if value is None else str(value)


def validate_product_against_location(product: dict, location: dict) -> dict:
    """
    Check a catalog product against one location's requirements.

    product keys: pixel_pitch, brightness_nits, ip_rating, transparent.
    Meets requirements when the score (100 minus penalties) is at least 70.
    """
    gaps = []
    score = 100
    tech = location["technical_requirements"]

    minimum_pitch = location["pitch_requirement"].get("minimum")
    product_pitch = _safe_float(product.get("pixel_pitch"))
    if minimum_pitch and product_pitch is not None and product_pitch > minimum_pitch:
        gaps.append(
            f"Pixel pitch {product_pitch:g}mm exceeds minimum requirement of {minimum_pitch:g}mm"
        )
        score -= 20

    product_nits = _safe_float(product.get("brightness_nits"))
    if tech["minimum_nits"] and product_nits is not None and product_nits < tech["minimum_nits"]:
        gaps.append(
            f"Brightness {product_nits:g} below requirement of {tech['minimum_nits']}"
        )
        score -= 30

    product_ip = _safe_float(product.get("ip_rating"))
    if tech["ip_rating"] and product_ip is not None and product_ip < int(tech["ip_rating"]):
        gaps.append(f"IP rating {product_ip:g} below requirement of IP{tech['ip_rating']}")
        score -= 15

    if location["structural"]["transparent_display_required"] and not product.get("transparent"):
        gaps.append("Product is not a transparent display but RFP requires transparent technology")
        score -= 40

    return {
        "meets_requirements": score >= 70,
        "gaps": gaps,
        "score": max(0, score),
    }


def _safe_float(val) -> Optional[float]:
    if val is None:
        return None
    try:
        return float(str(val).upper().replace("IP", "").replace("MM", "").strip())
    except (ValueError, TypeError):
        return None
