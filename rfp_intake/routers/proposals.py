"""
Proposals API.

POST /api/proposals/import-excel       — Import an estimator workbook
GET  /api/proposals/{id}               — Proposal with its screens
POST /api/proposals/{id}/recalculate   — Re-price stored screens
POST /api/proposals/gaps               — Merge extraction sources, report gaps
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..database import get_db
from ..excel import WorkbookImportError, parse_workbook
from ..extraction import build_gap_report, merge_screen_records
from ..pricing import price_screens
from ..schemas import GapRequest, ParsedProposal, PricingOptions, ProposalOut, ScreenRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proposals", tags=["proposals"])

WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm")


def default_pricing_options() -> PricingOptions:
    return PricingOptions(
        cost_per_sqft=settings.DEFAULT_COST_PER_SQFT,
        margin_pct=settings.DEFAULT_MARGIN,
        bond_pct=settings.BOND_PCT,
    )


def _save_proposal(db: Session, parsed: ParsedProposal, filename: str) -> models.Proposal:
    """Proposal and all screens in one commit; nothing is written on failure."""
    proposal = models.Proposal(
        client_name=parsed.client_name,
        proposal_name=parsed.proposal_name,
        source_format=parsed.format,
        source_filename=filename,
        currency=parsed.pricing.currency,
        subtotal=parsed.pricing.subtotal,
        tax=parsed.pricing.tax,
        tax_rate=parsed.pricing.tax_rate,
        grand_total=parsed.pricing.grand_total,
        totals_json=parsed.internal_audit.totals.model_dump(),
        line_items_json=[item.model_dump() for item in parsed.line_items],
    )
    audits = parsed.internal_audit.per_screen
    for position, screen in enumerate(parsed.screens):
        breakdown = audits[position].breakdown.model_dump() if position < len(audits) else None
        proposal.screens.append(models.ProposalScreen(
            position=position,
            name=screen.name,
            source=screen.source,
            pixel_pitch_mm=screen.pixel_pitch_mm,
            width_ft=screen.width_ft,
            height_ft=screen.height_ft,
            quantity=screen.quantity,
            service_type=screen.service_type,
            product_type=screen.product_type,
            is_curved=screen.is_curved,
            cost_per_sqft=screen.cost_per_sqft,
            margin_pct=screen.margin_pct,
            brightness_nits=screen.brightness_nits,
            description=screen.description,
            breakdown_json=breakdown,
        ))

    try:
        db.add(proposal)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(proposal)
    return proposal


def _get_proposal(db: Session, proposal_id: int) -> models.Proposal:
    proposal = db.query(models.Proposal).filter(models.Proposal.id == proposal_id).first()
    if not proposal:
        raise HTTPException(status_code=404, detail="Proposal not found")
    return proposal


# --- Endpoints ---

@router.post("/import-excel")
def import_excel(file: UploadFile = File(...), db: Session = Depends(get_db)):
    """
    Import an estimator workbook (standard cost sheet, Moody bid form or
    Scotiabank margin analysis) and store it as a proposal.
    """
    if not file.filename or not file.filename.lower().endswith(WORKBOOK_EXTENSIONS):
        raise HTTPException(status_code=400, detail="File must be an Excel workbook (.xlsx)")

    file_bytes = file.file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="File is empty")

    try:
        parsed = parse_workbook(file_bytes)
    except WorkbookImportError as e:
        logger.warning(f"Workbook import failed for {file.filename}: {e}")
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "sheet_names": e.sheet_names},
        )

    proposal = _save_proposal(db, parsed, file.filename)
    logger.info(
        f"Imported {file.filename} as proposal {proposal.id} "
        f"({parsed.format}, {len(parsed.screens)} screens)"
    )

    return {
        "proposal_id": proposal.id,
        "filename": file.filename,
        **parsed.model_dump(),
    }


@router.get("/{proposal_id}", response_model=ProposalOut)
def get_proposal(proposal_id: int, db: Session = Depends(get_db)):
    return _get_proposal(db, proposal_id)


@router.post("/{proposal_id}/recalculate")
def recalculate_proposal(
    proposal_id: int,
    options: Optional[PricingOptions] = Body(None),
    db: Session = Depends(get_db),
):
    """
    Re-price every stored screen with the given pricing options.

    Screen-level cost_per_sqft and margin_pct still override the options.
    Nothing is cached: the audit is rebuilt from the stored dimensions.
    """
    proposal = _get_proposal(db, proposal_id)
    options = options or default_pricing_options()
    records = [ScreenRecord.model_validate(screen) for screen in proposal.screens]

    try:
        audit = price_screens(records, options)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    for screen, screen_audit in zip(proposal.screens, audit.per_screen):
        screen.breakdown_json = screen_audit.breakdown.model_dump()

    totals = audit.totals
    proposal.totals_json = totals.model_dump()
    proposal.subtotal = totals.sell_price
    proposal.tax = round(totals.sell_price * (proposal.tax_rate or 0.0), 2)
    proposal.grand_total = round(totals.final_total + proposal.tax, 2)
    db.commit()

    return {
        "proposal_id": proposal.id,
        "internal_audit": audit.model_dump(),
        "subtotal": proposal.subtotal,
        "tax": proposal.tax,
        "grand_total": proposal.grand_total,
        "currency": proposal.currency,
    }


@router.post("/gaps")
def detect_gaps(request: GapRequest):
    """Merge screen lists from several extraction sources and report what is missing."""
    min_confidence = (
        request.min_confidence if request.min_confidence is not None
        else settings.GAP_FILL_MIN_CONFIDENCE
    )
    merged = merge_screen_records(request.sources, request.priority, min_confidence)
    report = build_gap_report(merged, request.extraction_accuracy or "Standard")
    return report.model_dump(by_alias=True)
