"""
Standard estimator workbook — "LED Cost Sheet" plus install tabs.

Each screen is a row on the cost sheet whose first cell looks like a
project name ("Main LED Scoreboard", "RB.02 Ribbon North") and whose pitch
cell is filled. Cost-sheet financials are read from fixed column offsets.

Structure and labor detail lives on the install tabs ("Install (In-Bowl)",
"Install (Concourse)"): the screen's name appears as a row, followed by
labelled sub-rows (FABRICATE SECONDARY STEEL, INSTALL LED DISPLAYS, ...)
until the next project marker. Screens with no install-tab entry fall back
to splitting the cost-sheet install column, then to percent-of-hardware.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..schemas import (
    LineItem, ParsedProposal, ProposalPricing, ScreenAudit, ScreenBreakdown, ScreenRecord,
)
from ..pricing import aggregate_totals
from .workbook import (
    WorkbookData, cell, normalize_text, text_of, to_float, to_optional_float, to_optional_int,
)

logger = logging.getLogger(__name__)

COST_SHEET_NAMES = ("LED Cost Sheet", "LED Sheet")
INSTALL_SHEET_NAMES = ("Install (In-Bowl)", "Install (Concourse)")
MARGIN_SHEET_NAME = "Margin Analysis"

# Contains "LED", or a coded prefix like "RB." / "VB.02"
PROJECT_NAME_PATTERN = re.compile(r"\bLED\b|^[A-Z]{1,4}\.\s*\w")
# Coded screen IDs ("VB.03", "RB.04") always start a new screen block
CODED_ID_PATTERN = re.compile(r"^[A-Z]{1,4}\.\s*\d")
_ALTERNATE = re.compile(r"alt(?:ernate)?\b")

# Sub-row label fragment -> breakdown field, first match wins
INSTALL_SUBROW_FIELDS = (
    ("fabricate secondary steel", "structure"),
    ("secondary steel", "structure"),
    ("structural", "structure"),
    ("steel", "structure"),
    ("install led display", "labor"),
    ("labor", "labor"),
    ("electrical", "power"),
    ("power", "power"),
    ("data", "power"),
    ("project management", "pm"),
    ("engineering", "engineering"),
    ("travel", "travel"),
    ("per diem", "travel"),
)


@dataclass(frozen=True)
class CostSheetLayout:
    """Fixed 0-based column offsets for the cost sheet and install tabs."""
    name: int = 0
    quantity: int = 1
    service_type: int = 2
    area: int = 3
    pitch: int = 4
    height: int = 5
    width: int = 6
    pixels_h: int = 7
    pixels_w: int = 9
    brightness: int = 12
    hardware: int = 16
    install: int = 17
    other: int = 18
    shipping: int = 19
    total_cost: int = 20
    sell_price: int = 22
    margin: int = 23
    bond: int = 24
    final_total: int = 25
    header_search_rows: int = 5

    install_label: int = 0
    install_cost: int = 4
    install_lookahead: int = 25

    mirror_label: int = 0
    mirror_sell_price: int = 5

    # Percent-of-hardware fallback when a screen has no install detail at all
    fallback_structure_pct: float = 0.20
    fallback_top_structure_pct: float = 0.10
    fallback_labor_pct: float = 0.15
    fallback_pm_pct: float = 0.02


def is_project_marker(label: str) -> bool:
    return bool(label) and bool(PROJECT_NAME_PATTERN.search(label))


def is_alternate(label: str) -> bool:
    # "Alt 1", "Alt-2", "Alternate B"; "Altitude Display" is a real screen
    return bool(_ALTERNATE.match(label.strip().lower()))


def subrow_field(label: str) -> Optional[str]:
    lowered = normalize_text(label)
    for fragment, field_name in INSTALL_SUBROW_FIELDS:
        if fragment in lowered:
            return field_name
    return None


def find_header_row(rows: List[List], layout: CostSheetLayout) -> int:
    for index in range(min(len(rows), layout.header_search_rows)):
        for value in rows[index]:
            if isinstance(value, str) and value.strip().lower().startswith("display"):
                return index
    return 1


def scan_install_detail(
    workbook: WorkbookData,
    screen_name: str,
    known_names: set,
    layout: CostSheetLayout,
) -> Optional[Dict[str, float]]:
    """
    Accumulate labelled install sub-rows for one screen.

    Returns None when no install tab has a row with this exact name.
    Unrecognised labelled rows with a cost count as generic install.
    """
    target = normalize_text(screen_name)

    for sheet_name in INSTALL_SHEET_NAMES:
        actual = workbook.find(sheet_name)
        if actual is None:
            continue
        rows = workbook.sheets[actual]

        start = next(
            (i for i, row in enumerate(rows)
             if normalize_text(cell(rows, i, layout.install_label)) == target),
            None,
        )
        if start is None:
            continue

        totals = {"structure": 0.0, "labor": 0.0, "power": 0.0, "pm": 0.0,
                  "engineering": 0.0, "travel": 0.0, "install": 0.0}
        end = min(len(rows), start + 1 + layout.install_lookahead)
        for i in range(start + 1, end):
            label = text_of(cell(rows, i, layout.install_label))
            if not label:
                continue
            if normalize_text(label) in known_names or CODED_ID_PATTERN.match(label.strip()):
                break
            field_name = subrow_field(label)
            if field_name is None and is_project_marker(label):
                break
            cost = to_float(cell(rows, i, layout.install_cost))
            totals[field_name or "install"] += cost

        logger.debug(f"Install detail for '{screen_name}' from {actual} row {start + 1}: {totals}")
        return totals

    return None


def fallback_install(
    hardware: float,
    install_col: float,
    other_col: float,
    service_type: Optional[str],
    layout: CostSheetLayout,
) -> Dict[str, float]:
    if install_col or other_col:
        return {
            "structure": install_col * 0.5,
            "labor": install_col * 0.5 + other_col,
        }
    top = bool(service_type) and service_type.strip().lower() == "top"
    structure_pct = layout.fallback_top_structure_pct if top else layout.fallback_structure_pct
    return {
        "structure": hardware * structure_pct,
        "labor": hardware * layout.fallback_labor_pct,
        "pm": hardware * layout.fallback_pm_pct,
    }


def find_mirror_items(rows: List[List], screen_name: str, layout: CostSheetLayout) -> List[LineItem]:
    """Sell-price line items listed under the screen on the Margin Analysis tab."""
    target = normalize_text(screen_name)
    for i, row in enumerate(rows):
        label = normalize_text(cell(rows, i, layout.mirror_label))
        if not label or target not in label:
            continue
        items = []
        for j in range(i + 1, len(rows)):
            sub_label = text_of(cell(rows, j, layout.mirror_label))
            if not sub_label or "TOTAL" in sub_label.upper() or is_project_marker(sub_label):
                break
            sell = to_float(cell(rows, j, layout.mirror_sell_price))
            if sell > 0:
                items.append(LineItem(description=sub_label, sell_price=round(sell, 2),
                                      category=_mirror_category(sub_label)))
        return items
    return []


def _mirror_category(label: str) -> str:
    field_name = subrow_field(label)
    return {
        "structure": "structure", "labor": "install", "power": "electrical",
        "pm": "pm", "engineering": "engineering",
    }.get(field_name, "led" if "led" in label.lower() else "other")


def parse(workbook: WorkbookData, layout: CostSheetLayout = None) -> ParsedProposal:
    layout = layout or CostSheetLayout()
    sheet_name = workbook.find(*COST_SHEET_NAMES)
    rows = workbook.rows(*COST_SHEET_NAMES)
    margin_sheet = workbook.find(MARGIN_SHEET_NAME)

    header_row = find_header_row(rows, layout)
    candidates = []
    for i in range(header_row + 1, len(rows)):
        label = text_of(cell(rows, i, layout.name))
        if not is_project_marker(label) or cell(rows, i, layout.pitch) in (None, ""):
            continue
        if is_alternate(label):
            continue
        candidates.append(i)

    known_names = {normalize_text(cell(rows, i, layout.name)) for i in candidates}

    screens: List[ScreenRecord] = []
    audits: List[ScreenAudit] = []
    line_items: List[LineItem] = []
    warnings: List[str] = []

    for i in candidates:
        record, audit = _parse_row(workbook, rows, i, sheet_name, known_names, layout, warnings)
        screens.append(record)
        audits.append(audit)
        if margin_sheet:
            line_items.extend(find_mirror_items(workbook.sheets[margin_sheet], record.name, layout))

    internal_audit = aggregate_totals(audits)
    client_name = text_of(cell(rows, 0, 0))
    client_name = re.sub(r"^project name:\s*", "", client_name, flags=re.IGNORECASE) or "New Project"

    totals = internal_audit.totals
    return ParsedProposal(
        client_name=client_name,
        proposal_name="LED Display Proposal",
        format="standard",
        screens=screens,
        internal_audit=internal_audit,
        line_items=line_items,
        pricing=ProposalPricing(
            subtotal=totals.sell_price,
            grand_total=totals.final_total,
        ),
        warnings=warnings,
    )


def _parse_row(workbook, rows, i, sheet_name, known_names, layout, warnings):
    name = text_of(cell(rows, i, layout.name))
    quantity = to_optional_int(cell(rows, i, layout.quantity)) or 1
    pitch = to_optional_float(cell(rows, i, layout.pitch))
    height = to_optional_float(cell(rows, i, layout.height))
    width = to_optional_float(cell(rows, i, layout.width))
    service_type = text_of(cell(rows, i, layout.service_type)) or None
    pixels_h = to_optional_int(cell(rows, i, layout.pixels_h))
    pixels_w = to_optional_int(cell(rows, i, layout.pixels_w))

    brightness = to_optional_float(cell(rows, i, layout.brightness))
    if not brightness:
        brightness = None

    hardware = to_float(cell(rows, i, layout.hardware))
    install_col = to_float(cell(rows, i, layout.install))
    other_col = to_float(cell(rows, i, layout.other))

    detail = scan_install_detail(workbook, name, known_names, layout)
    if detail is None:
        detail = fallback_install(hardware, install_col, other_col, service_type, layout)

    breakdown = ScreenBreakdown(
        hardware=round(hardware, 2),
        shipping=round(to_float(cell(rows, i, layout.shipping)), 2),
        **{k: round(v, 2) for k, v in detail.items()},
    )

    total_cost = to_optional_float(cell(rows, i, layout.total_cost))
    if total_cost is None:
        total_cost = (
            breakdown.hardware + breakdown.structure + breakdown.install + breakdown.labor
            + breakdown.power + breakdown.shipping + breakdown.pm + breakdown.engineering
            + breakdown.travel
        )
    breakdown.total_cost = round(total_cost, 2)
    breakdown.sell_price = round(to_float(cell(rows, i, layout.sell_price)), 2)
    breakdown.margin_amount = round(to_float(cell(rows, i, layout.margin)), 2)
    breakdown.bond_cost = round(to_float(cell(rows, i, layout.bond)), 2)
    final_total = to_optional_float(cell(rows, i, layout.final_total))
    if final_total is None:
        final_total = breakdown.sell_price + breakdown.bond_cost
    breakdown.final_total = round(final_total, 2)

    record = ScreenRecord(
        name=name,
        source=f"spreadsheet:{sheet_name}!R{i + 1}",
        pixel_pitch_mm=pitch,
        width_ft=width,
        height_ft=height,
        quantity=quantity,
        service_type=service_type,
        product_type="LED Display",
        brightness_nits=brightness,
        pixels_h=pixels_h,
        pixels_w=pixels_w,
        margin_pct=(
            round(breakdown.margin_amount / breakdown.sell_price, 4)
            if breakdown.sell_price else None
        ),
        description=_describe(pixels_h, pixels_w, brightness),
    )
    record.field_confidence = {
        f: 1.0 for f in ("pixel_pitch_mm", "width_ft", "height_ft", "quantity",
                         "service_type", "brightness_nits", "margin_pct")
        if getattr(record, f) is not None
    }

    area = record.area_sq_ft or 0.0
    stored_area = to_optional_float(cell(rows, i, layout.area))
    if stored_area and area and abs(stored_area - area) > max(0.01, area * 0.005):
        message = (
            f"{name}: stored area {stored_area} sq ft differs from "
            f"width x height x quantity = {area} sq ft; using the recomputed value"
        )
        logger.warning(message)
        warnings.append(message)

    breakdown.selling_price_per_sqft = round(breakdown.final_total / area, 2) if area else 0.0

    audit = ScreenAudit(
        name=name,
        quantity=quantity,
        area_sq_ft=round(area, 2),
        pixel_resolution=(pixels_h or 0) * (pixels_w or 0),
        pixel_matrix=f"{pixels_h or 0} x {pixels_w or 0} @ {pitch}mm" if pitch else None,
        breakdown=breakdown,
    )
    return record, audit


def _describe(pixels_h, pixels_w, brightness) -> str:
    description = f"Resolution: {pixels_h or 0}h x {pixels_w or 0}w."
    if brightness:
        description += f" Brightness: {brightness:g} nits."
    return description
