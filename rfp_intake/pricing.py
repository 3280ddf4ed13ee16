"""
Screen pricing — divisor margin model.

Pure math, no AI. For one ScreenRecord:
    hardware   = area x cost/sqft x quantity
    structure  = hardware x (10% top service | 20% front/rear), x1.25 when curved
    install    = flat fee, x1.15 when curved
    labor      = hardware x 15%, x1.15 when curved
    ...percent-of-hardware and per-sqft line items...
    total cost = sum of all line items (bond excluded)
    sell price = total cost / (1 - margin)
    bond       = sell price x bond %
    final      = sell price + bond

Audits are recomputed from the record on every call and never cached.
"""

import logging
from typing import Iterable, List

from .schemas import InternalAudit, PricingOptions, ScreenAudit, ScreenBreakdown, ScreenRecord

logger = logging.getLogger(__name__)

MM_PER_FOOT = 304.8

# Summed straight across screens; selling_price_per_sqft is recomputed instead
SUMMED_FIELDS = [
    name for name in ScreenBreakdown.model_fields if name != "selling_price_per_sqft"
]


def structure_pct(service_type: str, options: PricingOptions) -> float:
    if service_type and service_type.strip().lower() == "top":
        return options.top_service_structure_pct
    return options.structure_pct


def pixel_matrix(record: ScreenRecord) -> tuple:
    """(pixels_h, pixels_w, label) from physical size and pitch; zeros when unknown."""
    if record.pixels_h and record.pixels_w:
        pitch = record.pixel_pitch_mm or 0
        return record.pixels_h, record.pixels_w, f"{record.pixels_h} x {record.pixels_w} @ {pitch}mm"
    if not record.pixel_pitch_mm or record.height_ft is None or record.width_ft is None:
        return 0, 0, None
    pixels_h = round(record.height_ft * MM_PER_FOOT / record.pixel_pitch_mm)
    pixels_w = round(record.width_ft * MM_PER_FOOT / record.pixel_pitch_mm)
    return pixels_h, pixels_w, f"{pixels_h} x {pixels_w} @ {record.pixel_pitch_mm}mm"


def compute_screen_audit(record: ScreenRecord, options: PricingOptions = None) -> ScreenAudit:
    """
    Price one screen.

    Record values (cost_per_sqft, margin_pct) override the option defaults.
    Raises ValueError when the effective margin is 1 or more.
    """
    options = options or PricingOptions()

    quantity = record.quantity or 1
    margin = record.margin_pct if record.margin_pct is not None else options.margin_pct
    if margin >= 1:
        raise ValueError(
            f"Invalid margin: {margin * 100:.0f}%. Margin must be less than 100% "
            "for the divisor margin model."
        )
    cost_per_sqft = (
        record.cost_per_sqft if record.cost_per_sqft is not None else options.cost_per_sqft
    )

    unit_area = round((record.width_ft or 0) * (record.height_ft or 0), 2)
    total_area = round(unit_area * quantity, 2)

    curved = bool(record.is_curved)
    structure_multiplier = options.curved_structure_multiplier if curved else 1.0
    labor_multiplier = options.curved_labor_multiplier if curved else 1.0

    hardware = round(round(unit_area * cost_per_sqft, 2) * quantity, 2)
    b = ScreenBreakdown(
        hardware=hardware,
        structure=round(hardware * structure_pct(record.service_type, options) * structure_multiplier, 2),
        install=round(options.install_flat * labor_multiplier, 2),
        labor=round(hardware * options.labor_pct * labor_multiplier, 2),
        power=round(hardware * options.power_pct, 2),
        shipping=round(total_area * options.shipping_per_sqft, 2),
        pm=round(total_area * options.pm_per_sqft, 2),
        general_conditions=round(hardware * options.general_conditions_pct, 2),
        travel=round(hardware * options.travel_pct, 2),
        submittals=round(hardware * options.submittals_pct, 2),
        engineering=round(hardware * options.engineering_pct, 2),
        permits=round(options.permits_flat, 2),
        cms=round(hardware * options.cms_pct, 2),
    )

    b.total_cost = round(
        b.hardware + b.structure + b.install + b.labor + b.power + b.shipping
        + b.pm + b.general_conditions + b.travel + b.submittals + b.engineering
        + b.permits + b.cms + b.demolition,
        2,
    )
    b.sell_price = round(b.total_cost / (1 - margin), 2)
    b.bond_cost = round(b.sell_price * options.bond_pct, 2)
    b.final_total = round(b.sell_price + b.bond_cost, 2)
    b.margin_amount = round(b.sell_price - b.total_cost, 2)
    b.selling_price_per_sqft = round(b.final_total / total_area, 2) if total_area > 0 else 0.0

    pixels_h, pixels_w, matrix = pixel_matrix(record)

    return ScreenAudit(
        name=record.name,
        product_type=record.product_type or "LED Display",
        quantity=quantity,
        area_sq_ft=total_area,
        pixel_resolution=pixels_h * pixels_w,
        pixel_matrix=matrix,
        breakdown=b,
    )


def aggregate_totals(audits: Iterable[ScreenAudit]) -> InternalAudit:
    """
    Project totals: straight sum of every breakdown field, except the
    per-sqft selling price, which is final_total / total area.
    """
    audits: List[ScreenAudit] = list(audits)
    sums = {name: 0.0 for name in SUMMED_FIELDS}
    total_area = 0.0

    for audit in audits:
        total_area += audit.area_sq_ft
        for name in SUMMED_FIELDS:
            sums[name] += getattr(audit.breakdown, name)

    totals = ScreenBreakdown(**{name: round(value, 2) for name, value in sums.items()})
    totals.selling_price_per_sqft = (
        round(totals.final_total / total_area, 2) if total_area > 0 else 0.0
    )

    return InternalAudit(
        per_screen=audits,
        totals=totals,
        total_area_sq_ft=round(total_area, 2),
    )


def price_screens(records: Iterable[ScreenRecord], options: PricingOptions = None) -> InternalAudit:
    return aggregate_totals(compute_screen_audit(r, options) for r in records)
