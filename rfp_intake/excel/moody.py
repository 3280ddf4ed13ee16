"""
Venue bid-form workbook ("Bid Form" + "Summary" tabs, Moody Center layout).

The Summary tab carries the project name at A3, the default margin at B4,
and one screen per row from row 8 until a "Subtotal" row:

    B description ("Center Hung: Main Faces")   C pitch text ("6mm")
    D quantity   E height ft   F width ft   G area
    H unit cost  I extended cost   J margin   K unit sell

A "GRAND TOTALS" row further down carries the extended cost/sell totals.
"""

import logging
import re
from typing import List

from ..schemas import (
    LineItem, ParsedProposal, ProposalPricing, ScreenAudit, ScreenBreakdown, ScreenRecord,
)
from ..pricing import aggregate_totals
from .workbook import WorkbookData, cell, text_of, to_float, to_optional_float, to_optional_int

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "Summary"
FIRST_SCREEN_ROW = 7
LAST_SCREEN_ROW = 13
DEFAULT_MARGIN = 0.25

_PITCH = re.compile(r"(\d+(?:\.\d+)?)")


def parse(workbook: WorkbookData) -> ParsedProposal:
    rows = workbook.rows(SUMMARY_SHEET)

    project_name = text_of(cell(rows, 2, 0)) or "Moody Center"
    default_margin = to_optional_float(cell(rows, 3, 1))
    if default_margin is None or not 0 <= default_margin < 1:
        default_margin = DEFAULT_MARGIN

    screens: List[ScreenRecord] = []
    audits: List[ScreenAudit] = []
    line_items: List[LineItem] = []

    for i in range(FIRST_SCREEN_ROW, min(LAST_SCREEN_ROW + 1, len(rows))):
        description = text_of(cell(rows, i, 1))
        if not description or "subtotal" in description.lower():
            break

        pitch_match = _PITCH.search(text_of(cell(rows, i, 2)))
        quantity = to_optional_int(cell(rows, i, 3)) or 1
        height = to_optional_float(cell(rows, i, 4))
        width = to_optional_float(cell(rows, i, 5))
        ext_cost = to_float(cell(rows, i, 8))
        row_margin = to_optional_float(cell(rows, i, 9))
        unit_sell = to_float(cell(rows, i, 10))
        sell = round(unit_sell * quantity, 2)

        record = ScreenRecord(
            name=description.split(":")[0].strip(),
            source=f"spreadsheet:{SUMMARY_SHEET}!R{i + 1}",
            pixel_pitch_mm=float(pitch_match.group(1)) if pitch_match else None,
            width_ft=width,
            height_ft=height,
            quantity=quantity,
            product_type="LED Display",
            margin_pct=row_margin if row_margin is not None else default_margin,
            cost_per_sqft=to_optional_float(cell(rows, i, 7)),
            description=description,
        )
        record.field_confidence = {
            f: 1.0 for f in ("pixel_pitch_mm", "width_ft", "height_ft", "quantity", "margin_pct")
            if getattr(record, f) is not None
        }

        area = record.area_sq_ft or 0.0
        stored_area = to_optional_float(cell(rows, i, 6))
        if stored_area and area and abs(stored_area - area) > max(0.01, area * 0.005):
            logger.warning(
                f"{record.name}: stored area {stored_area} differs from recomputed {area}"
            )

        breakdown = ScreenBreakdown(
            hardware=round(ext_cost, 2),
            total_cost=round(ext_cost, 2),
            sell_price=sell,
            margin_amount=round(sell - ext_cost, 2),
            final_total=sell,
            selling_price_per_sqft=round(sell / area, 2) if area else 0.0,
        )
        screens.append(record)
        audits.append(ScreenAudit(
            name=record.name, quantity=quantity, area_sq_ft=round(area, 2), breakdown=breakdown,
        ))
        line_items.append(LineItem(
            description=description, cost=round(ext_cost, 2), sell_price=sell,
            margin=round(sell - ext_cost, 2), category="led",
        ))

    internal_audit = aggregate_totals(audits)

    grand_total = internal_audit.totals.final_total
    for i in range(len(rows)):
        if "GRAND TOTALS" in text_of(cell(rows, i, 1)).upper():
            grand_total = to_float(cell(rows, i, 8), grand_total)
            break

    return ParsedProposal(
        client_name=project_name,
        proposal_name=project_name,
        format="moody",
        screens=screens,
        internal_audit=internal_audit,
        line_items=line_items,
        pricing=ProposalPricing(
            subtotal=internal_audit.totals.sell_price,
            grand_total=round(grand_total, 2),
            currency="USD",
        ),
    )
