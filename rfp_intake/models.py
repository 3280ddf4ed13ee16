from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, index=True)
    client_name = Column(String, nullable=False)
    proposal_name = Column(String, nullable=False)
    # DECISION: source format stored as VARCHAR so new workbook variants need no migration
    source_format = Column(String, default="manual")
    source_filename = Column(String, nullable=True)
    currency = Column(String, default="USD")
    subtotal = Column(Float, default=0.0)
    tax = Column(Float, default=0.0)
    tax_rate = Column(Float, default=0.0)
    grand_total = Column(Float, default=0.0)
    totals_json = Column(JSON, nullable=True)      # InternalAudit.totals snapshot
    line_items_json = Column(JSON, nullable=True)  # Non-screen line items
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    screens = relationship(
        "ProposalScreen", back_populates="proposal",
        cascade="all, delete-orphan", order_by="ProposalScreen.position",
    )


class ProposalScreen(Base):
    __tablename__ = "proposal_screens"

    id = Column(Integer, primary_key=True, index=True)
    proposal_id = Column(Integer, ForeignKey("proposals.id"), nullable=False)
    position = Column(Integer, default=0)
    name = Column(String, nullable=False)
    source = Column(String, nullable=False)
    pixel_pitch_mm = Column(Float, nullable=True)
    width_ft = Column(Float, nullable=True)
    height_ft = Column(Float, nullable=True)
    quantity = Column(Integer, nullable=True)
    service_type = Column(String, nullable=True)
    product_type = Column(String, nullable=True)
    is_curved = Column(Boolean, nullable=True)
    cost_per_sqft = Column(Float, nullable=True)
    margin_pct = Column(Float, nullable=True)
    brightness_nits = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    breakdown_json = Column(JSON, nullable=True)  # ScreenBreakdown at time of last save

    proposal = relationship("Proposal", back_populates="screens")


class RfpAnalysis(Base):
    """Stored RFP analysis — users revisit extractions during gap fill."""
    __tablename__ = "rfp_analyses"

    id = Column(String, primary_key=True)  # UUID
    filename = Column(String, nullable=True)
    total_pages = Column(Integer, nullable=True)
    retained_pages = Column(Integer, nullable=True)
    extraction_status = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)
    gap_report_json = Column(JSON, nullable=True)
    requirements_json = Column(JSON, nullable=True)
    warnings_json = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
