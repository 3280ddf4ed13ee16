"""
Margin-analysis workbook ("Margin Analysis (CAD)" / "(USD)", Scotiabank layout).

Project info sits at B2 ("Scotiabank Arena - LED Upgrades"). From row 7,
column B holds line descriptions with cost in C, sell in D and margin % in F.

LED lines embed their geometry in the description:
    "Main Bowl Ribbon - 2.5mm LED Video Displays 1.2m h x 40.5m w (Qty 2)"
Dimensions are metric and converted to feet. Other lines are categorised by
keyword. SUB TOTAL and TAX rows close the sheet.
"""

import logging
import re
from typing import List, Optional

from ..schemas import (
    LineItem, ParsedProposal, ProposalPricing, ScreenAudit, ScreenBreakdown, ScreenRecord,
)
from ..pricing import aggregate_totals
from .workbook import (
    SheetNotFoundError, WorkbookData, cell, normalize_text, text_of, to_float, to_optional_float,
)

logger = logging.getLogger(__name__)

SHEET_PATTERN = re.compile(r"^margin analysis \((cad|usd)\)$", re.IGNORECASE)
FIRST_LINE_ROW = 6
DEFAULT_TAX_RATE = 0.13  # Ontario HST
FEET_PER_METRE = 3.28084

_DIMENSIONS = re.compile(r"(\d+(?:\.\d+)?)\s*m\s*h\s*x\s*(\d+(?:\.\d+)?)\s*m\s*w", re.IGNORECASE)
_PITCH = re.compile(r"(\d+(?:\.\d+)?)\s*mm", re.IGNORECASE)
_QTY = re.compile(r"\(\s*Qty\s*(\d+)\s*\)", re.IGNORECASE)

# Description keyword -> line item category, first match wins
CATEGORY_KEYWORDS = (
    ("structural", "structure"),
    ("install", "install"),
    ("electrical", "electrical"),
    ("project management", "pm"),
    ("engineering", "engineering"),
    ("warranty", "warranty"),
)


def find_sheet(workbook: WorkbookData) -> Optional[str]:
    for name in workbook.sheet_names:
        if SHEET_PATTERN.match(normalize_text(name)):
            return name
    return None


def is_led_line(description: str) -> bool:
    lowered = description.lower()
    return "led" in lowered and bool(_PITCH.search(description))


def categorise(description: str) -> Optional[str]:
    lowered = description.lower()
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in lowered:
            return category
    return None


def parse(workbook: WorkbookData) -> ParsedProposal:
    sheet_name = find_sheet(workbook)
    if sheet_name is None:
        raise SheetNotFoundError("Margin Analysis (CAD)", workbook.sheet_names)
    rows = workbook.sheets[sheet_name]
    currency = SHEET_PATTERN.match(normalize_text(sheet_name)).group(1).upper()

    project_info = text_of(cell(rows, 1, 1)) or "Scotiabank Arena"
    client_name = project_info.split(" - ")[0].strip() or project_info

    screens: List[ScreenRecord] = []
    audits: List[ScreenAudit] = []
    line_items: List[LineItem] = []
    subtotal: Optional[float] = None
    tax = 0.0
    tax_rate = DEFAULT_TAX_RATE

    for i in range(FIRST_LINE_ROW, len(rows)):
        description = text_of(cell(rows, i, 1))
        if not description:
            continue
        upper = description.upper()

        if "SUB TOTAL" in upper or "SUBTOTAL" in upper:
            subtotal = to_float(cell(rows, i, 3))
            continue
        if upper == "TAX":
            tax_rate = to_optional_float(cell(rows, i, 2)) or DEFAULT_TAX_RATE
            tax = to_float(cell(rows, i, 3))
            continue

        cost = round(to_float(cell(rows, i, 2)), 2)
        sell = round(to_float(cell(rows, i, 3)), 2)

        if is_led_line(description):
            record, audit = _led_screen(description, cost, sell, to_optional_float(cell(rows, i, 5)),
                                        f"spreadsheet:{sheet_name}!R{i + 1}")
            screens.append(record)
            audits.append(audit)
            category = "led"
        else:
            category = categorise(description)
            if category is None:
                continue

        line_items.append(LineItem(
            description=description, cost=cost, sell_price=sell,
            margin=round(sell - cost, 2), category=category,
        ))

    if subtotal is None:
        subtotal = round(sum(item.sell_price for item in line_items), 2)
        if tax == 0.0:
            tax = round(subtotal * tax_rate, 2)

    return ParsedProposal(
        client_name=client_name,
        proposal_name=project_info,
        format="scotiabank",
        screens=screens,
        internal_audit=aggregate_totals(audits),
        line_items=line_items,
        pricing=ProposalPricing(
            subtotal=round(subtotal, 2),
            tax=round(tax, 2),
            tax_rate=tax_rate,
            grand_total=round(subtotal + tax, 2),
            currency=currency,
        ),
    )


def _led_screen(description: str, cost: float, sell: float, margin_pct, source: str):
    dims = _DIMENSIONS.search(description)
    height = round(float(dims.group(1)) * FEET_PER_METRE, 2) if dims else None
    width = round(float(dims.group(2)) * FEET_PER_METRE, 2) if dims else None
    pitch = _PITCH.search(description)
    qty = _QTY.search(description)
    quantity = int(qty.group(1)) if qty else 1

    if margin_pct is None and sell:
        margin_pct = round((sell - cost) / sell, 4)

    record = ScreenRecord(
        name=description.split(" - ")[0].split("-")[0].strip(),
        source=source,
        pixel_pitch_mm=float(pitch.group(1)) if pitch else None,
        width_ft=width,
        height_ft=height,
        quantity=quantity,
        product_type="LED Display",
        margin_pct=margin_pct,
        description=description,
    )
    record.field_confidence = {
        f: 1.0 for f in ("pixel_pitch_mm", "quantity", "margin_pct")
        if getattr(record, f) is not None
    }
    if dims:
        # Converted from metric, so not an exact read of the sheet
        record.field_confidence.update({"width_ft": 0.95, "height_ft": 0.95})

    area = record.area_sq_ft or 0.0
    breakdown = ScreenBreakdown(
        hardware=cost,
        total_cost=cost,
        sell_price=sell,
        margin_amount=round(sell - cost, 2),
        final_total=sell,
        selling_price_per_sqft=round(sell / area, 2) if area else 0.0,
    )
    audit = ScreenAudit(
        name=record.name, quantity=quantity, area_sq_ft=round(area, 2), breakdown=breakdown,
    )
    return record, audit
