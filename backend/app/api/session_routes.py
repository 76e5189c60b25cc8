"""
Project Session API Routes

POST   /api/sessions                          — open a session from an extraction batch
POST   /api/sessions/demo                     — open a session on the sample villa takeoff
GET    /api/sessions                          — saved projects, newest first
GET    /api/sessions/{id}                     — session summary
DELETE /api/sessions/{id}                     — drop a session
POST   /api/sessions/{id}/batches             — merge another extraction batch
GET    /api/sessions/{id}/items               — line items (+ distinct sources)
PATCH  /api/sessions/{id}/items/{index}       — edit one line item
PUT    /api/sessions/{id}/unit-prices         — manual unit price for a bill name
POST   /api/sessions/{id}/rate-suggestions    — apply a suggested rate range
GET    /api/sessions/{id}/rate-breakdown      — current (or blank) build-up for a group
PUT    /api/sessions/{id}/rate-breakdown      — save a build-up; sets the unit price
PUT    /api/sessions/{id}/overrides           — contract / previous quantity (payment)
PATCH  /api/sessions/{id}/settings            — percentages, currency, final-account flag
PATCH  /api/sessions/{id}/metadata            — takeoff / certificate metadata, signatures
GET    /api/sessions/{id}/boq                 — grouped + valued BOQ
GET    /api/sessions/{id}/certificate         — payment certificate (payment mode)
GET    /api/sessions/{id}/analytics           — cost composition + category costs
GET    /api/sessions/{id}/takeoff             — takeoff sheet rows (search / source filter)
POST   /api/sessions/{id}/unlock              — spend a credit to unlock exports
"""
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.deps import get_registry, get_session, get_wallet
from app.models.boq_schema import (
    AppMode,
    BoqCategory,
    CamelModel,
    CertificateMetadata,
    RateBreakdown,
    Signatures,
    TakeoffMetadata,
    TakeoffResult,
)
from app.services.certificate_engine import amount_in_words, certificate_title, certification_sentence
from app.services.demo_project import DEFAULT_SOURCE_FILE, generate_demo_project
from app.services.grouping_engine import GroupKey
from app.services.rate_analysis_engine import build_up_summary
from app.services.report_engine import takeoff_sheet
from app.services.session_store import ProjectSession, SessionRegistry
from app.services.wallet_service import InsufficientCreditsError, WalletService

router = APIRouter(prefix="/api/sessions", tags=["Project Sessions"])
logger = logging.getLogger("constructai-session-routes")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class CreateSessionRequest(BaseModel):
    mode: AppMode = AppMode.ESTIMATION
    project: TakeoffResult


class DemoSessionRequest(BaseModel):
    mode: AppMode = AppMode.ESTIMATION
    source_file: str = DEFAULT_SOURCE_FILE
    floor_count: int = Field(1, ge=1, le=100)
    story_height: float = Field(3.0, gt=0)
    unit_system: Literal["metric", "imperial"] = "metric"
    scopes: List[str] = Field(default_factory=list)
    include_rebar: bool = False


class ItemUpdateRequest(CamelModel):
    """Partial line item edit; accepts the same camelCase keys as LineItem."""
    description: Optional[str] = None
    bill_item_description: Optional[str] = None
    location_description: Optional[str] = None
    source_ref: Optional[str] = None
    timesing: Optional[float] = None
    dimension: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    category: Optional[BoqCategory] = None
    estimated_rate: Optional[float] = None
    contract_rate: Optional[float] = None


class GroupRef(BaseModel):
    name: str
    unit: str
    category: str

    def key(self) -> GroupKey:
        return GroupKey(self.name, self.unit, self.category)


class UnitPriceRequest(BaseModel):
    name: str
    rate: Optional[float] = None     # None clears the manual price


class RateSuggestionRequest(BaseModel):
    name: str
    suggestion: str


class RateBreakdownRequest(BaseModel):
    group: GroupRef
    breakdown: RateBreakdown


class OverrideRequest(BaseModel):
    group: GroupRef
    field: Literal["contract", "previous"]
    value: Optional[float] = None


class SettingsUpdateRequest(BaseModel):
    contingency_pct: Optional[float] = Field(None, ge=0)
    vat_pct: Optional[float] = Field(None, ge=0)
    retention_pct: Optional[float] = Field(None, ge=0)
    advance_recovery: Optional[float] = None
    previous_payments: Optional[float] = None
    project_currency: Optional[str] = None
    unit_system: Optional[Literal["metric", "imperial"]] = None
    is_final_account: Optional[bool] = None


class MetadataUpdateRequest(BaseModel):
    takeoff: Optional[TakeoffMetadata] = None
    certificate: Optional[CertificateMetadata] = None
    signatures: Optional[Signatures] = None


# ── Helpers ─────────────────────────────────────────────────────────────────

def _require_group(session: ProjectSession, key: GroupKey):
    group = session.recompute().group(key)
    if group is None:
        raise HTTPException(status_code=404, detail=f"BOQ group '{key.label}' not found")
    return group


def _require_payment(session: ProjectSession) -> None:
    if session.mode is not AppMode.PAYMENT:
        raise HTTPException(status_code=400, detail="Only available for payment-mode sessions")


# ── Session lifecycle ───────────────────────────────────────────────────────

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
    wallet: WalletService = Depends(get_wallet),
):
    session = registry.create(body.project, body.mode)
    session.is_paid = wallet.is_unlocked(session.id)
    return session.summary_dict()


@router.post("/demo", status_code=status.HTTP_201_CREATED)
async def create_demo_session(
    body: DemoSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
    wallet: WalletService = Depends(get_wallet),
):
    project = generate_demo_project(
        source_file=body.source_file,
        floor_count=body.floor_count,
        story_height=body.story_height,
        unit_system=body.unit_system,
        scopes=body.scopes,
        include_rebar=body.include_rebar,
    )
    session = registry.create(project, body.mode)
    session.is_paid = wallet.is_unlocked(session.id)
    return session.summary_dict()


@router.get("")
async def list_sessions(registry: SessionRegistry = Depends(get_registry)):
    return {"sessions": [s.summary_dict() for s in registry.list_sessions()]}


@router.get("/{session_id}")
async def get_session_summary(session: ProjectSession = Depends(get_session)):
    return session.summary_dict()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session: ProjectSession = Depends(get_session), registry: SessionRegistry = Depends(get_registry)):
    registry.delete(session.id)


@router.post("/{session_id}/batches")
async def merge_batch(batch: TakeoffResult, session: ProjectSession = Depends(get_session)):
    added = session.merge_batch(batch)
    return {"added": added, **session.summary_dict()}


# ── Line items ──────────────────────────────────────────────────────────────

@router.get("/{session_id}/items")
async def list_items(session: ProjectSession = Depends(get_session)):
    return {
        "items": [i.model_dump(by_alias=True) for i in session.items],
        "sources": session.store.unique_sources(),
        "category_order": session.store.category_appearance_order(),
    }


@router.patch("/{session_id}/items/{index}")
async def update_item(index: int, body: ItemUpdateRequest, session: ProjectSession = Depends(get_session)):
    changes = body.model_dump(exclude_unset=True)
    try:
        item = session.update_item(index, **changes)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return item.model_dump(by_alias=True)


# ── Rates ───────────────────────────────────────────────────────────────────

@router.put("/{session_id}/unit-prices")
async def set_unit_price(body: UnitPriceRequest, session: ProjectSession = Depends(get_session)):
    if body.rate is None:
        session.clear_unit_price(body.name)
    else:
        session.set_unit_price(body.name, body.rate)
    return {"unit_prices": dict(session.unit_prices)}


@router.post("/{session_id}/rate-suggestions")
async def apply_rate_suggestion(body: RateSuggestionRequest, session: ProjectSession = Depends(get_session)):
    value = session.apply_rate_suggestion(body.name, body.suggestion)
    return {"name": body.name, "applied": value is not None, "rate": value}


@router.get("/{session_id}/rate-breakdown")
async def get_rate_breakdown(name: str, unit: str, category: str, session: ProjectSession = Depends(get_session)):
    key = GroupKey(name, unit, category)
    _require_group(session, key)
    breakdown = session.rate_breakdown_for(key)
    return {
        "breakdown": breakdown.model_dump(by_alias=True),
        "summary": build_up_summary(breakdown),
        "saved": key in session.rate_breakdowns,
    }


@router.put("/{session_id}/rate-breakdown")
async def save_rate_breakdown(body: RateBreakdownRequest, session: ProjectSession = Depends(get_session)):
    key = body.group.key()
    _require_group(session, key)
    final_rate = session.save_rate_breakdown(key, body.breakdown)
    return {"unit_price": final_rate, "summary": build_up_summary(body.breakdown)}


# ── Payment overrides / knobs / metadata ───────────────────────────────────

@router.put("/{session_id}/overrides")
async def set_override(body: OverrideRequest, session: ProjectSession = Depends(get_session)):
    _require_payment(session)
    key = body.group.key()
    _require_group(session, key)
    override = session.set_payment_override(key, body.field, body.value)
    return override.model_dump()


@router.patch("/{session_id}/settings")
async def update_settings(body: SettingsUpdateRequest, session: ProjectSession = Depends(get_session)):
    try:
        settings = session.update_settings(**body.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return settings.model_dump(by_alias=True)


@router.patch("/{session_id}/metadata")
async def update_metadata(body: MetadataUpdateRequest, session: ProjectSession = Depends(get_session)):
    if body.takeoff is not None:
        session.takeoff_meta = body.takeoff
    if body.certificate is not None:
        session.cert_meta = body.certificate
    if body.signatures is not None:
        session.signatures = body.signatures
    return {
        "takeoff": session.takeoff_meta.model_dump(by_alias=True),
        "certificate": session.cert_meta.model_dump(by_alias=True),
        "signatures": session.signatures.model_dump(by_alias=True),
    }


# ── Derived documents ───────────────────────────────────────────────────────

@router.get("/{session_id}/boq")
async def get_boq(session: ProjectSession = Depends(get_session)):
    snap = session.recompute()
    return {
        "session_id": session.id,
        "currency": session.settings.project_currency,
        **snap.valuation.to_dict(),
    }


@router.get("/{session_id}/certificate")
async def get_certificate(session: ProjectSession = Depends(get_session)):
    _require_payment(session)
    s = session.settings
    cert = session.recompute().certificate
    return {
        "title": certificate_title(s.is_final_account),
        "metadata": session.cert_meta.model_dump(by_alias=True),
        "currency": s.project_currency,
        **cert.to_dict(),
        "amount_in_words": amount_in_words(cert.amount_due, s.project_currency),
        "certification": certification_sentence(cert.amount_due, s.project_currency),
    }


@router.get("/{session_id}/analytics")
async def get_analytics(session: ProjectSession = Depends(get_session)):
    return session.recompute().analytics.to_dict()


@router.get("/{session_id}/takeoff")
async def get_takeoff(search: str = "", source: str = "All", session: ProjectSession = Depends(get_session)):
    sheet = takeoff_sheet(
        session.store.filtered(search, source),
        session.store.category_appearance_order(),
        session.takeoff_meta,
        session.signatures,
        unit_system=session.settings.unit_system,
    )
    return {"sources": session.store.unique_sources(), "rows": sheet.rows}


@router.post("/{session_id}/unlock")
async def unlock_session(
    session: ProjectSession = Depends(get_session),
    wallet: WalletService = Depends(get_wallet),
):
    if session.is_paid:
        return {"session_id": session.id, "is_paid": True, "credits": wallet.balance()}
    try:
        wallet.require_unlock(session.id)
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    session.is_paid = True
    return {"session_id": session.id, "is_paid": True, "credits": wallet.balance()}
