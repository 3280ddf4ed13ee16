from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .database import engine, Base
from .routers import proposals, rfp

logger = logging.getLogger("rfp_intake")

# Create tables (handles new tables but won't add columns to existing ones)
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="RFP Intake Service",
    description="LED display RFP filtering, screen extraction and estimator workbook import",
    version="0.3.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(rfp.router, prefix="/api")
app.include_router(proposals.router, prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok", "app": "rfp-intake"}
