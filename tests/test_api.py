"""
API endpoint tests.

Tests:
1-4.   RFP filter endpoint (stats, validation, size limit)
5-9.   RFP upload / parse-text (regex, LLM merge, search fallback, config errors)
10-11. Stored analyses
12-16. Proposal import, fetch, recalculate, unknown formats
17.    Gap report endpoint
"""

import json
from pathlib import Path
from unittest.mock import patch

from conftest import make_pdf, make_workbook
from rfp_intake.config import settings
from rfp_intake.routers import rfp as rfp_router


FIXTURE_DIR = Path(__file__).parent / "fixtures"


def _sample_rfp_text():
    return (FIXTURE_DIR / "sample_rfp_excerpt.txt").read_text(encoding="utf-8")


def _pdf_upload(pages, filename="rfp.pdf"):
    return {"file": (filename, make_pdf(pages), "application/pdf")}


LLM_RESPONSE = json.dumps({
    "screens": [{
        "name": {"value": "Concourse", "citation": "p.2", "confidence": 0.95},
        "pitchMm": {"value": 4, "citation": "p.2", "confidence": 0.9},
        "productType": {"value": "Indoor LED", "citation": "p.2", "confidence": 0.8},
        "widthFt": {"value": 92, "citation": "p.2", "confidence": 0.9},
    }],
    "venue": "Westfield Valley Fair, San Jose",
})


# ============================================================
# 1-4. Filter endpoint
# ============================================================

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_filter_endpoint_stats(client):
    pages = [
        "The contractor shall coordinate with the owner.",
        "Division 11 06 60 LED Display Schedule\nConcourse display 90' x 18'",
        "Indemnification and insurance.",
    ]
    response = client.post("/api/rfp/filter", files=_pdf_upload(pages))
    assert response.status_code == 200

    data = response.json()
    assert data["total_pages"] == 3
    assert data["retained_page_numbers"] == [2]
    assert data["mode"] == "standard"
    assert data["fallback"] is None
    assert data["filtered_text"].startswith("SMART_FILTER")
    assert data["drawing_scan"] == "no_candidates"


def test_filter_endpoint_reports_unconfigured_drawing_scan(client):
    pages = ["ELEVATION\nAV-101\nSCALE 1/8 in", "LED display schedule"]
    response = client.post("/api/rfp/filter", files=_pdf_upload(pages))
    data = response.json()

    assert 1 in data["drawing_candidates"]
    assert data["drawing_scan"] == "not_configured"


def test_filter_endpoint_rejects_non_pdf(client):
    response = client.post(
        "/api/rfp/filter", files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert "PDF" in response.json()["detail"]


def test_filter_endpoint_size_limit(client):
    with patch.object(settings, "MAX_UPLOAD_MB", 0):
        response = client.post("/api/rfp/filter", files=_pdf_upload(["LED display"]))
    assert response.status_code == 413


def test_filter_endpoint_degrades_for_unreadable_pdf(client):
    response = client.post(
        "/api/rfp/filter", files={"file": ("broken.pdf", b"%PDF-1.4 garbage", "application/pdf")},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["fallback"] == "unfiltered"
    assert data["retained_pages"] == 0
    assert data["warnings"]


# ============================================================
# 5-9. Upload and parse-text
# ============================================================

def test_upload_regex_only(client):
    response = client.post("/api/rfp/upload", files=_pdf_upload([_sample_rfp_text()]))
    assert response.status_code == 200

    data = response.json()
    assert data["extraction_status"] == "regex"
    assert data["client_name"] == "Westfield Valley Fair"
    names = [s["name"] for s in data["gap_report"]["screens"]]
    assert "Concourse" in names
    assert data["gap_report"]["extractionAccuracy"] == "High"


def test_upload_with_llm_requires_configuration(client):
    response = client.post(
        "/api/rfp/upload?use_llm=true", files=_pdf_upload([_sample_rfp_text()]),
    )
    assert response.status_code == 500


def test_upload_merges_llm_over_regex(client):
    llm = rfp_router._service.llm
    with patch.object(llm, "is_configured", return_value=True), \
         patch.object(llm, "chat", return_value=LLM_RESPONSE) as chat:
        response = client.post(
            "/api/rfp/upload?use_llm=true", files=_pdf_upload([_sample_rfp_text()]),
        )

    assert response.status_code == 200
    assert chat.called
    data = response.json()
    assert data["extraction_status"] == "llm"
    assert data["venue"]["address"] == "Westfield Valley Fair, San Jose"

    concourse = next(s for s in data["gap_report"]["screens"] if s["name"] == "Concourse")
    # LLM wins on width; regex fills the height the LLM did not give
    assert concourse["values"]["width_ft"] == 92.0
    assert concourse["values"]["height_ft"] == 18.0
    assert concourse["values"]["product_type"] == "Indoor LED"
    assert any(c["field"] == "width_ft" for c in concourse["conflicts"])


def test_parse_text_search_fallback(client):
    service = rfp_router._service
    with patch.object(service.llm, "is_configured", return_value=True), \
         patch.object(service.llm, "chat", return_value="Sorry, I could not read that."), \
         patch.object(service.search, "search_venue_address", return_value="2855 Stevens Creek Blvd"):
        response = client.post(
            "/api/rfp/parse-text", json={"text": _sample_rfp_text(), "use_llm": True},
        )

    assert response.status_code == 200
    data = response.json()
    assert data["extraction_status"] == "search_fallback"
    assert "LLM response was not valid JSON" in data["warnings"]
    assert len(data["locations"]) == 2


def test_parse_text_rejects_empty(client):
    response = client.post("/api/rfp/parse-text", json={"text": "   "})
    assert response.status_code == 400


# ============================================================
# 10-11. Stored analyses
# ============================================================

def test_analysis_is_stored(client):
    created = client.post("/api/rfp/parse-text", json={"text": _sample_rfp_text()}).json()
    response = client.get(f"/api/rfp/{created['analysis_id']}")

    assert response.status_code == 200
    data = response.json()
    assert data["filename"] == "pasted-text"
    assert data["extraction_status"] == "regex"
    assert data["confidence"] == created["confidence"]
    assert data["gap_report"] == created["gap_report"]


def test_unknown_analysis_404(client):
    assert client.get("/api/rfp/does-not-exist").status_code == 404


# ============================================================
# 12-16. Proposals
# ============================================================

def standard_cost_sheet() -> bytes:
    """One front-service screen, 20' x 10', priced on the sheet at a 25% margin."""
    return make_workbook({"LED Cost Sheet": {
        (0, 0): "Project Name: Acme Arena",
        (1, 0): "Display",
        (2, 0): "Main LED Scoreboard", (2, 1): 1, (2, 2): "Front", (2, 3): 200,
        (2, 4): 6, (2, 5): 10, (2, 6): 20,
        (2, 16): 24000, (2, 17): 10000, (2, 18): 2000, (2, 19): 500, (2, 20): 36500,
        (2, 22): 48666.67, (2, 23): 12166.67, (2, 24): 730, (2, 25): 49396.67,
    }})


def _import(client, data, filename="estimate.xlsx"):
    return client.post(
        "/api/proposals/import-excel",
        files={"file": (filename, data, "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
    )


def test_import_excel_persists_proposal(client, db):
    response = _import(client, standard_cost_sheet())
    assert response.status_code == 200

    data = response.json()
    assert data["format"] == "standard"
    assert len(data["screens"]) == 1

    fetched = client.get(f"/api/proposals/{data['proposal_id']}").json()
    assert fetched["client_name"] == "Acme Arena"
    assert fetched["source_format"] == "standard"
    assert fetched["source_filename"] == "estimate.xlsx"
    assert [s["name"] for s in fetched["screens"]] == ["Main LED Scoreboard"]
    assert fetched["screens"][0]["breakdown_json"]["final_total"] == 49396.67


def test_import_excel_unknown_format(client, db):
    from rfp_intake import models

    response = _import(client, make_workbook({"Sheet1": {(0, 0): "hello"}}))
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["sheet_names"] == ["Sheet1"]
    assert db.query(models.Proposal).count() == 0


def test_import_excel_rejects_other_extensions(client):
    response = _import(client, b"a,b,c", filename="estimate.csv")
    assert response.status_code == 400


def test_recalculate_proposal(client):
    proposal_id = _import(client, standard_cost_sheet()).json()["proposal_id"]

    response = client.post(f"/api/proposals/{proposal_id}/recalculate")
    assert response.status_code == 200
    data = response.json()

    # 20' x 10' front service at the sheet's 25% margin and $120/sqft
    main = data["internal_audit"]["per_screen"][0]["breakdown"]
    assert main["total_cost"] == 44028.0
    assert main["final_total"] == 59584.56
    assert data["grand_total"] == 59584.56

    fetched = client.get(f"/api/proposals/{proposal_id}").json()
    assert fetched["grand_total"] == 59584.56
    assert fetched["screens"][0]["breakdown_json"]["final_total"] == 59584.56


def test_recalculate_rejects_bad_margin_and_missing_proposal(client):
    proposal_id = _import(client, standard_cost_sheet()).json()["proposal_id"]

    bad = client.post(f"/api/proposals/{proposal_id}/recalculate", json={"margin_pct": 1.0})
    assert bad.status_code == 422
    assert client.post("/api/proposals/9999/recalculate").status_code == 404
    assert client.get("/api/proposals/9999").status_code == 404


# ============================================================
# 17. Gap report endpoint
# ============================================================

def test_gaps_endpoint(client):
    response = client.post("/api/proposals/gaps", json={
        "sources": {
            "llm": [{"name": "Concourse", "source": "llm:p.2", "width_ft": 92}],
            "regex": [{
                "name": "concourse", "source": "regex:(1) Concourse",
                "width_ft": 90, "height_ft": 18, "field_confidence": {"width_ft": 0.9, "height_ft": 0.9},
            }],
        },
        "extraction_accuracy": "High",
    })
    assert response.status_code == 200

    report = response.json()
    assert report["extractionAccuracy"] == "High"
    [screen] = report["screens"]
    assert screen["values"]["width_ft"] == 92.0
    assert screen["values"]["height_ft"] == 18.0
    assert screen["status"] == "gap_fill"
    assert "Pixel Pitch (mm)" in screen["missingFields"]
    assert report["extractionSummary"]["totalFields"] == 6
