from pydantic import BaseModel, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime


# Fields a ScreenRecord can carry, in merge order
SCREEN_FIELDS = [
    "pixel_pitch_mm", "width_ft", "height_ft", "quantity",
    "service_type", "product_type", "is_curved",
    "cost_per_sqft", "margin_pct", "brightness_nits",
    "pixels_h", "pixels_w", "description",
]


class FilterResult(BaseModel):
    full_text: Optional[str] = None  # None in streaming mode; only survivors are held
    filtered_text: str
    retained_pages: int
    total_pages: int
    drawing_candidates: List[int] = []
    retained_page_numbers: List[int] = []
    chunks_processed: int = 1
    mode: Literal["standard", "streaming"] = "standard"

    @model_validator(mode="after")
    def _check_page_sets(self):
        if self.retained_pages > self.total_pages:
            raise ValueError(
                f"retained_pages ({self.retained_pages}) exceeds total_pages ({self.total_pages})"
            )
        stray = set(self.drawing_candidates) - set(self.retained_page_numbers)
        if stray:
            raise ValueError(f"Drawing candidates not retained: {sorted(stray)}")
        return self


class FieldConflict(BaseModel):
    field: str
    kept_value: Any
    kept_source: str
    other_value: Any
    other_source: str


class ScreenRecord(BaseModel):
    name: str
    source: str  # provenance: "spreadsheet:LED Cost Sheet!R7", "llm:<citation>", "regex:(1) Concourse"
    pixel_pitch_mm: Optional[float] = None
    width_ft: Optional[float] = None
    height_ft: Optional[float] = None
    quantity: Optional[int] = None
    service_type: Optional[str] = None
    product_type: Optional[str] = None
    is_curved: Optional[bool] = None
    cost_per_sqft: Optional[float] = None
    margin_pct: Optional[float] = None
    brightness_nits: Optional[float] = None
    pixels_h: Optional[int] = None
    pixels_w: Optional[int] = None
    description: Optional[str] = None
    field_confidence: Dict[str, float] = {}
    field_sources: Dict[str, str] = {}
    conflicts: List[FieldConflict] = []

    @field_validator("field_confidence")
    @classmethod
    def _confidence_in_range(cls, value):
        for field, confidence in value.items():
            if not 0.0 <= confidence <= 1.0:
                raise ValueError(f"Confidence for {field} must be within [0, 1], got {confidence}")
        return value

    @computed_field
    @property
    def area_sq_ft(self) -> Optional[float]:
        """Width x height x quantity; recomputed on every access, never stored."""
        if self.width_ft is None or self.height_ft is None:
            return None
        quantity = self.quantity if self.quantity is not None else 1
        return round(self.width_ft * self.height_ft * quantity, 4)

    class Config:
        from_attributes = True


class ScreenBreakdown(BaseModel):
    hardware: float = 0.0
    structure: float = 0.0
    install: float = 0.0
    labor: float = 0.0
    power: float = 0.0
    shipping: float = 0.0
    pm: float = 0.0
    general_conditions: float = 0.0
    travel: float = 0.0
    submittals: float = 0.0
    engineering: float = 0.0
    permits: float = 0.0
    cms: float = 0.0
    demolition: float = 0.0
    margin_amount: float = 0.0
    sell_price: float = 0.0
    bond_cost: float = 0.0
    total_cost: float = 0.0
    final_total: float = 0.0
    selling_price_per_sqft: float = 0.0


class ScreenAudit(BaseModel):
    name: str
    product_type: str = "LED Display"
    quantity: int = 1
    area_sq_ft: float = 0.0
    pixel_resolution: int = 0
    pixel_matrix: Optional[str] = None
    breakdown: ScreenBreakdown


class InternalAudit(BaseModel):
    per_screen: List[ScreenAudit] = []
    totals: ScreenBreakdown = Field(default_factory=ScreenBreakdown)
    total_area_sq_ft: float = 0.0


class LineItem(BaseModel):
    description: str
    cost: float = 0.0
    sell_price: float = 0.0
    margin: float = 0.0
    category: Literal[
        "led", "structure", "install", "electrical", "pm",
        "engineering", "warranty", "other",
    ] = "other"


class ProposalPricing(BaseModel):
    subtotal: float = 0.0
    tax: float = 0.0
    tax_rate: float = 0.0
    grand_total: float = 0.0
    currency: str = "USD"


class ParsedProposal(BaseModel):
    client_name: str
    proposal_name: str
    format: str
    screens: List[ScreenRecord] = []
    internal_audit: InternalAudit = Field(default_factory=InternalAudit)
    line_items: List[LineItem] = []
    pricing: ProposalPricing = Field(default_factory=ProposalPricing)
    warnings: List[str] = []


class PricingOptions(BaseModel):
    cost_per_sqft: float = 120.0
    margin_pct: float = 0.25
    install_flat: float = 5000.0
    labor_pct: float = 0.15
    power_pct: float = 0.15
    shipping_per_sqft: float = 0.14
    pm_per_sqft: float = 0.5
    general_conditions_pct: float = 0.02
    travel_pct: float = 0.03
    submittals_pct: float = 0.01
    engineering_pct: float = 0.02
    permits_flat: float = 500.0
    cms_pct: float = 0.02
    bond_pct: float = 0.015
    top_service_structure_pct: float = 0.10
    structure_pct: float = 0.20
    curved_structure_multiplier: float = 1.25
    curved_labor_multiplier: float = 1.15

    @field_validator("margin_pct")
    @classmethod
    def _margin_below_one(cls, value):
        if value >= 1:
            raise ValueError("margin_pct must be below 1 (divisor margin model)")
        return value


# --- Gap report (UI shape, camelCase on the wire) ---

class _CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ExtractionSummary(_CamelModel):
    total_fields: int = 0
    extracted_fields: int = 0
    completion_rate: float = 0.0
    high_confidence_fields: int = 0
    low_confidence_fields: int = 0
    missing_fields: List[str] = []


class ScreenGap(_CamelModel):
    name: str
    source: str
    values: Dict[str, Any] = {}
    field_confidence: Dict[str, float] = {}
    missing_fields: List[str] = []
    conflicts: List[Dict[str, Any]] = []
    status: Literal["usable", "gap_fill"] = "gap_fill"


class GapReport(_CamelModel):
    extraction_accuracy: Literal["High", "Standard"] = "Standard"
    screens: List[ScreenGap] = []
    extraction_summary: ExtractionSummary = Field(default_factory=ExtractionSummary)


# --- Request bodies ---

class ParseTextRequest(BaseModel):
    text: str
    use_llm: bool = False


class GapRequest(BaseModel):
    sources: Dict[str, List[ScreenRecord]]
    priority: List[str] = ["llm", "spreadsheet", "regex"]
    extraction_accuracy: Optional[Literal["High", "Standard"]] = None
    min_confidence: Optional[float] = None


class ProposalScreenOut(BaseModel):
    id: int
    position: int
    name: str
    source: str
    pixel_pitch_mm: Optional[float] = None
    width_ft: Optional[float] = None
    height_ft: Optional[float] = None
    quantity: Optional[int] = None
    service_type: Optional[str] = None
    product_type: Optional[str] = None
    is_curved: Optional[bool] = None
    cost_per_sqft: Optional[float] = None
    margin_pct: Optional[float] = None
    breakdown_json: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class ProposalOut(BaseModel):
    id: int
    client_name: str
    proposal_name: str
    source_format: str
    source_filename: Optional[str] = None
    currency: str
    subtotal: float
    tax: float
    tax_rate: float
    grand_total: float
    totals_json: Optional[Dict[str, Any]] = None
    line_items_json: Optional[List[Dict[str, Any]]] = None
    created_at: datetime
    screens: List[ProposalScreenOut] = []

    class Config:
        from_attributes = True
