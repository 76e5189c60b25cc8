"""
BOQ data contracts — the extraction payload and the editable project state.

LineItem mirrors the JSON produced by the drawing-extraction step exactly
(camelCase on the wire, snake_case in Python). Everything else here is state
owned by a ProjectSession: rate build-ups, payment overrides, percentage
knobs and document metadata.
"""
from datetime import date
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.services.config import (
    DEFAULT_ADVANCE_RECOVERY,
    DEFAULT_CONTINGENCY_PCT,
    DEFAULT_CURRENCY,
    DEFAULT_OVERHEAD_PCT,
    DEFAULT_PREVIOUS_PAYMENTS,
    DEFAULT_PROFIT_PCT,
    DEFAULT_RETENTION_PCT,
    DEFAULT_VAT_PCT,
)


class AppMode(str, Enum):
    ESTIMATION = "ESTIMATION"   # Takeoff / priced BOQ
    PAYMENT = "PAYMENT"         # Interim valuation / payment certificate


class BoqCategory(str, Enum):
    GENERAL_EXTERNAL = "General & External"
    SUB_STRUCTURE = "Sub Structure"
    SUPER_STRUCTURE = "Super Structure"
    MASONRY = "Masonry & Partitioning"
    FINISHING = "Finishing Works"
    OPENINGS = "Openings (Doors/Windows)"
    ROOFING = "Roofing"
    ELECTRICAL = "Electrical"
    MECHANICAL = "Mechanical"
    SANITARY = "Sanitary & Plumbing"


class Confidence(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class CamelModel(BaseModel):
    """Base for every wire model: camelCase aliases, snake_case attributes."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ── Extraction contract ─────────────────────────────────────────────────────

class LineItem(CamelModel):
    """One measured quantity. Negative quantity = deduction."""
    id: str
    description: str
    bill_item_description: Optional[str] = Field(
        None, description="Generic bill wording, e.g. 'Sub Structure: Excavation - Trenching'"
    )
    location_description: Optional[str] = Field(None, description="Where on the drawing, e.g. 'Axis A-1'")
    source_ref: Optional[str] = Field(None, description="Drawing reference, e.g. 'Drg-01'")
    timesing: float = 1.0
    dimension: str = ""
    quantity: float
    unit: str
    category: BoqCategory
    confidence: Confidence = Confidence.HIGH
    estimated_rate: Optional[float] = None
    contract_rate: Optional[float] = None
    contract_quantity: Optional[float] = None
    previous_quantity: Optional[float] = None

    @property
    def bill_text(self) -> str:
        """Text the bill name is derived from (bill wording, else description)."""
        return self.bill_item_description or self.description

    @property
    def is_deduction(self) -> bool:
        return self.quantity < 0

    @property
    def needs_review(self) -> bool:
        return self.confidence == Confidence.LOW.value


class RebarItem(CamelModel):
    id: str
    member: str
    bar_type: str
    shape_code: str
    no_of_members: float
    bars_per_member: float
    total_bars: float
    length_per_bar: float
    total_length: float
    total_weight: float


class TechnicalQuery(CamelModel):
    id: str
    query: str
    assumption: str
    impact_level: Literal["Low", "Medium", "High"] = "Medium"


class TakeoffResult(CamelModel):
    """A full extraction batch: the line items plus project-level context."""
    id: Optional[str] = None
    is_paid: bool = False
    date: Optional[str] = None
    project_name: str = "Untitled Project"
    source_files: List[str] = Field(default_factory=list)
    drawing_type: Optional[str] = None
    unit_system: Literal["metric", "imperial"] = "metric"
    items: List[LineItem] = Field(default_factory=list)
    rebar_items: List[RebarItem] = Field(default_factory=list)
    technical_queries: List[TechnicalQuery] = Field(default_factory=list)
    summary: str = ""


# ── Rate build-up ───────────────────────────────────────────────────────────

class RateComponent(CamelModel):
    name: str = ""
    cost: float = 0.0   # currency per unit, not rate × quantity

    @field_validator("cost", mode="before")
    @classmethod
    def _blank_cost_is_zero(cls, v):
        if v is None or v == "":
            return 0.0
        return v


class RateBreakdown(CamelModel):
    """
    First-principles unit rate:
        prime    = Σmaterials + Σlabor + Σplant
        overhead = prime × overhead%
        profit   = (prime + overhead) × profit%
        final    = prime + overhead + profit
    """
    materials: List[RateComponent] = Field(default_factory=list)
    labor: List[RateComponent] = Field(default_factory=list)
    plant: List[RateComponent] = Field(default_factory=list)
    overhead_pct: float = DEFAULT_OVERHEAD_PCT
    profit_pct: float = DEFAULT_PROFIT_PCT

    @classmethod
    def blank(cls) -> "RateBreakdown":
        """Starting point for a new build-up: one empty row per resource."""
        return cls(
            materials=[RateComponent()],
            labor=[RateComponent()],
            plant=[RateComponent()],
        )

    @property
    def material_cost(self) -> float:
        return sum(c.cost for c in self.materials)

    @property
    def labor_cost(self) -> float:
        return sum(c.cost for c in self.labor)

    @property
    def plant_cost(self) -> float:
        return sum(c.cost for c in self.plant)

    @property
    def prime_cost(self) -> float:
        return self.material_cost + self.labor_cost + self.plant_cost

    @property
    def overhead_amount(self) -> float:
        return self.prime_cost * (self.overhead_pct / 100)

    @property
    def profit_amount(self) -> float:
        return (self.prime_cost + self.overhead_amount) * (self.profit_pct / 100)

    @property
    def final_rate(self) -> float:
        return self.prime_cost + self.overhead_amount + self.profit_amount


# ── Session state ───────────────────────────────────────────────────────────

class PaymentOverride(CamelModel):
    """Contract / previous quantities typed in (or seeded) for one BOQ group."""
    contract: Optional[float] = None
    previous: Optional[float] = None


class ProjectSettings(CamelModel):
    contingency_pct: float = DEFAULT_CONTINGENCY_PCT
    vat_pct: float = DEFAULT_VAT_PCT
    retention_pct: float = DEFAULT_RETENTION_PCT
    advance_recovery: float = DEFAULT_ADVANCE_RECOVERY
    previous_payments: float = DEFAULT_PREVIOUS_PAYMENTS
    project_currency: str = DEFAULT_CURRENCY
    unit_system: Literal["metric", "imperial"] = "metric"
    is_final_account: bool = False


class TakeoffMetadata(CamelModel):
    project_name: str = "Sample Villa Project"
    client: str = ""
    contractor: str = ""
    consultant: str = ""


def _today() -> str:
    return date.today().isoformat()


class CertificateMetadata(CamelModel):
    cert_no: str = "01"
    valuation_date: str = Field(default_factory=_today)
    client_name: str = "Client Name PLC"
    contractor_name: str = "Contractor Name"
    contract_ref: str = "REF-2025-001"
    project_title: str = ""


class SignatureEntry(CamelModel):
    name: str = ""
    date: str = ""


class Signatures(CamelModel):
    prepared: SignatureEntry = Field(default_factory=lambda: SignatureEntry(date=_today()))
    checked: SignatureEntry = Field(default_factory=SignatureEntry)
    approved: SignatureEntry = Field(default_factory=SignatureEntry)
