"""
Shared test fixtures — SQLite test database, test client, PDF/workbook builders.
"""

import io
import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Keep external services unconfigured unless a test patches them in
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["ANYTHING_LLM_BASE_URL"] = ""
os.environ["ANYTHING_LLM_KEY"] = ""
os.environ["SERPER_API_KEY"] = ""
os.environ["VISION_API_KEY"] = ""

from rfp_intake.database import Base, get_db
from rfp_intake.main import app


TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


@pytest.fixture
def db():
    """Direct database session for test setup/assertions."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_pdf(pages) -> bytes:
    """Build a PDF with one page per string in `pages`."""
    from fpdf import FPDF
    pdf = FPDF()
    pdf.set_font("Helvetica", "", 10)
    for text in pages:
        pdf.add_page()
        for line in text.split("\n"):
            safe_line = line.encode("latin-1", errors="replace").decode("latin-1")
            pdf.cell(0, 5, safe_line, new_x="LMARGIN", new_y="NEXT")
    return bytes(pdf.output())


def make_workbook(sheets: dict) -> bytes:
    """
    Build an .xlsx in memory. `sheets` maps sheet name -> {(row, col): value}
    with 0-based row/column indices.
    """
    import openpyxl
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for name, cells in sheets.items():
        ws = wb.create_sheet(title=name)
        for (row, col), value in cells.items():
            ws.cell(row=row + 1, column=col + 1, value=value)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
