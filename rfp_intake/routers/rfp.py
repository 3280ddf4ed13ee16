"""
RFP intake API.

POST /api/rfp/filter       — Upload PDF, return signal-filter stats and text
POST /api/rfp/upload       — Upload PDF, filter, extract screens, gap report
POST /api/rfp/parse-text   — Regex (optionally LLM) extraction from pasted text
GET  /api/rfp/{analysis_id} — Stored analysis
"""

import logging
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from .. import models
from ..config import settings
from ..database import get_db
from ..extraction import (
    RfpExtractionService, build_gap_report, detect_extraction_accuracy, merge_screen_records,
)
from ..ingest import IngestOutcome, filter_pdf_bytes
from ..pdf_extractor import PDFExtractor
from ..rfp_parser import extract_rfp_requirements, location_to_screen_record
from ..schemas import ParseTextRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rfp", tags=["rfp"])

# Singletons
_extractor = PDFExtractor()
_service = RfpExtractionService()


def _read_pdf_upload(file: UploadFile) -> bytes:
    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="File must be a PDF")

    file_bytes = file.file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="File is empty")

    file_size_mb = len(file_bytes) / (1024 * 1024)
    if file_size_mb > settings.MAX_UPLOAD_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {file_size_mb:.1f} MB (max {settings.MAX_UPLOAD_MB} MB)",
        )
    return file_bytes


def _ingest(file_bytes: bytes, filename: str) -> IngestOutcome:
    try:
        return filter_pdf_bytes(file_bytes, filename, extractor=_extractor)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _drawing_scan_status(outcome: IngestOutcome) -> str:
    result = outcome.filter_result
    if result is None or not result.drawing_candidates:
        return "no_candidates"
    if not settings.VISION_API_KEY:
        logger.info(
            f"{len(result.drawing_candidates)} drawing candidates found; "
            "vision scan not configured"
        )
        return "not_configured"
    # TODO: send candidate pages to the vision model once a provider is chosen
    return "pending"


def _require_llm():
    if not _service.llm.is_configured():
        raise HTTPException(status_code=500, detail="ANYTHING_LLM_BASE_URL / ANYTHING_LLM_KEY not configured")


def _store_analysis(
    db: Session,
    filename: str,
    total_pages: int,
    retained_pages: int,
    status: str,
    requirements: dict,
    gap_report: dict,
    warnings: list,
) -> str:
    analysis_id = str(uuid.uuid4())
    db.add(models.RfpAnalysis(
        id=analysis_id,
        filename=filename,
        total_pages=total_pages,
        retained_pages=retained_pages,
        extraction_status=status,
        confidence=requirements["metadata"]["confidence"],
        gap_report_json=gap_report,
        requirements_json=requirements,
        warnings_json=warnings,
    ))
    db.commit()
    return analysis_id


# --- Endpoints ---

@router.post("/filter")
def filter_rfp(file: UploadFile = File(...)):
    """
    Run the PDF signal filter only.

    Returns page statistics and the filtered text block that would be sent
    to the extraction model.
    """
    file_bytes = _read_pdf_upload(file)
    outcome = _ingest(file_bytes, file.filename)
    result = outcome.filter_result

    return {
        "filename": file.filename,
        "file_size_mb": round(outcome.file_size_mb, 2),
        "extraction_quality": outcome.extraction_quality,
        "fallback": outcome.fallback,
        "total_pages": outcome.total_pages,
        "retained_pages": result.retained_pages if result else 0,
        "retained_page_numbers": result.retained_page_numbers if result else [],
        "drawing_candidates": result.drawing_candidates if result else [],
        "mode": result.mode if result else None,
        "chunks_processed": result.chunks_processed if result else 0,
        "drawing_scan": _drawing_scan_status(outcome),
        "filtered_text": outcome.prompt_text,
        "warnings": outcome.warnings,
    }


@router.post("/upload")
def upload_rfp(
    file: UploadFile = File(...),
    use_llm: bool = False,
    db: Session = Depends(get_db),
):
    """
    Upload an RFP PDF and extract LED screen requirements.

    Regex extraction always runs on the extracted text. With use_llm, the
    filtered text (or, when filtering failed, the raw document) also goes
    through the LLM chain, and both sources are merged with LLM values
    taking priority.
    """
    file_bytes = _read_pdf_upload(file)
    if use_llm:
        _require_llm()

    outcome = _ingest(file_bytes, file.filename)
    warnings = list(outcome.warnings)
    text = outcome.source_text

    requirements = extract_rfp_requirements(text)
    sources = {"regex": [location_to_screen_record(loc) for loc in requirements["locations"]]}

    status = "regex"
    venue = None
    if use_llm:
        if outcome.fallback == "unfiltered":
            llm_result = _service.extract_unfiltered(file_bytes, file.filename)
        else:
            llm_result = _service.extract(outcome.prompt_text)
        status = llm_result["status"]
        venue = llm_result["venue"]
        warnings.extend(llm_result["warnings"])
        if llm_result["screens"]:
            sources["llm"] = llm_result["screens"]

    merged = merge_screen_records(sources, min_confidence=0.0)
    accuracy = detect_extraction_accuracy(text)
    gap_report = build_gap_report(merged, accuracy).model_dump(by_alias=True)

    result = outcome.filter_result
    retained = result.retained_pages if result else 0
    analysis_id = _store_analysis(
        db, file.filename, outcome.total_pages, retained, status, requirements, gap_report, warnings,
    )

    return {
        "analysis_id": analysis_id,
        "filename": file.filename,
        "file_size_mb": round(outcome.file_size_mb, 2),
        "extraction_quality": outcome.extraction_quality,
        "fallback": outcome.fallback,
        "total_pages": outcome.total_pages,
        "retained_pages": retained,
        "drawing_scan": _drawing_scan_status(outcome),
        "extraction_status": status,
        "venue": venue,
        "client_name": requirements["client_name"],
        "project_title": requirements["project_title"],
        "confidence": requirements["metadata"]["confidence"],
        "gap_report": gap_report,
        "warnings": warnings,
    }


@router.post("/parse-text")
def parse_text(request: ParseTextRequest, db: Session = Depends(get_db)):
    """
    Extract screen requirements from pasted RFP text.
    For users who copy/paste the display schedule out of a document.
    """
    if not request.text or not request.text.strip():
        raise HTTPException(status_code=400, detail="Text is empty")
    if request.use_llm:
        _require_llm()

    requirements = extract_rfp_requirements(request.text)
    sources = {"regex": [location_to_screen_record(loc) for loc in requirements["locations"]]}
    warnings = []
    status = "regex"

    if request.use_llm:
        llm_result = _service.extract(request.text)
        status = llm_result["status"]
        warnings.extend(llm_result["warnings"])
        if llm_result["screens"]:
            sources["llm"] = llm_result["screens"]

    merged = merge_screen_records(sources)
    gap_report = build_gap_report(
        merged, detect_extraction_accuracy(request.text),
    ).model_dump(by_alias=True)

    analysis_id = _store_analysis(
        db, "pasted-text", 0, 0, status, requirements, gap_report, warnings,
    )

    return {
        "analysis_id": analysis_id,
        "filename": "pasted-text",
        "extraction_status": status,
        "client_name": requirements["client_name"],
        "project_title": requirements["project_title"],
        "confidence": requirements["metadata"]["confidence"],
        "locations": requirements["locations"],
        "gap_report": gap_report,
        "warnings": warnings,
    }


@router.get("/{analysis_id}")
def get_analysis(analysis_id: str, db: Session = Depends(get_db)):
    analysis = db.query(models.RfpAnalysis).filter(
        models.RfpAnalysis.id == analysis_id,
    ).first()
    if not analysis:
        raise HTTPException(status_code=404, detail="RFP analysis not found")

    return {
        "analysis_id": analysis.id,
        "filename": analysis.filename,
        "total_pages": analysis.total_pages,
        "retained_pages": analysis.retained_pages,
        "extraction_status": analysis.extraction_status,
        "confidence": analysis.confidence,
        "requirements": analysis.requirements_json,
        "gap_report": analysis.gap_report_json,
        "warnings": analysis.warnings_json or [],
        "created_at": analysis.created_at.isoformat() if analysis.created_at else None,
    }
