"""
Project sessions — single-process, in-memory editing state.

A ProjectSession owns one project's line items plus everything the user layers
on top (unit prices, rate build-ups, payment overrides, percentages, document
metadata). Every mutating call is followed by an explicit recompute(); the
whole pipeline
    grouping -> valuation -> {certificate, analytics}
runs in full each time and nothing is cached between calls.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from app.models.boq_schema import (
    AppMode,
    CertificateMetadata,
    LineItem,
    PaymentOverride,
    ProjectSettings,
    RateBreakdown,
    RebarItem,
    Signatures,
    TakeoffMetadata,
    TakeoffResult,
    TechnicalQuery,
)
from app.services.certificate_engine import CertificateResult, calculate_certificate
from app.services.grouping_engine import BoqGroup, GroupKey, find_group, group_items, group_key_for
from app.services.perf_monitor import tracker
from app.services.rate_analysis_engine import AnalyticsDecomposer, AnalyticsResult
from app.services.takeoff_store import LineItemStore
from app.services.valuation_engine import ValuationEngine, ValuationResult, parse_rate_suggestion

logger = logging.getLogger("constructai-session")

BATCH_SEPARATOR = "\n\n--- ADDITIONAL BATCH ---\n"
OVERRIDE_FIELDS = ("contract", "previous")


@dataclass
class ProjectSnapshot:
    """Result of one full recompute."""
    groups: List[BoqGroup]
    valuation: ValuationResult
    certificate: CertificateResult
    analytics: AnalyticsResult
    duration_ms: float

    def group(self, key: GroupKey) -> Optional[BoqGroup]:
        return find_group(self.groups, key)


class ProjectSession:

    def __init__(self, project: TakeoffResult, mode: AppMode | str = AppMode.ESTIMATION):
        self.id: str = project.id or str(uuid.uuid4())
        self.mode: AppMode = AppMode(mode)
        self.project_name: str = project.project_name
        self.drawing_type: Optional[str] = project.drawing_type
        self.summary: str = project.summary
        self.date: str = project.date or datetime.now(timezone.utc).isoformat()
        self.source_files: List[str] = list(project.source_files)
        # Never taken from the payload; only a wallet unlock opens exports
        self.is_paid: bool = False

        self.store = LineItemStore()
        self.rebar_items: List[RebarItem] = list(project.rebar_items)
        self.technical_queries: List[TechnicalQuery] = list(project.technical_queries)

        self.unit_prices: Dict[str, float] = {}
        self.rate_breakdowns: Dict[GroupKey, RateBreakdown] = {}
        self.overrides: Dict[GroupKey, PaymentOverride] = {}

        self.settings = ProjectSettings(unit_system=project.unit_system)
        self.takeoff_meta = TakeoffMetadata(project_name=project.project_name)
        self.cert_meta = CertificateMetadata(project_title=project.project_name)
        self.signatures = Signatures()

        self.load_items(project.items)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[LineItem]:
        return self.store.items

    def load_items(self, items: Iterable[LineItem]) -> None:
        items = list(items)
        self.store.load(items)
        self._seed_overrides(items)

    def merge_batch(self, batch: TakeoffResult) -> int:
        """
        Append a new extraction batch: items, rebar and source files are
        concatenated; id, paid status, name, drawing type and unit system stay.
        """
        added = self.store.merge_batch(batch.items)
        self._seed_overrides(batch.items)
        self.rebar_items.extend(batch.rebar_items)
        self.technical_queries.extend(batch.technical_queries)
        self.source_files.extend(batch.source_files)
        if batch.summary:
            self.summary = self.summary + BATCH_SEPARATOR + batch.summary
        self.date = datetime.now(timezone.utc).isoformat()
        logger.info(f"Session {self.id}: merged {added} items", extra={"session_id": self.id})
        return added

    def update_item(self, index: int, **changes) -> LineItem:
        return self.store.update_item(index, **changes)

    def _seed_overrides(self, items: Iterable[LineItem]) -> None:
        """Payment mode: contract/previous quantities supplied with items become overrides."""
        if self.mode is not AppMode.PAYMENT:
            return
        seeded: Dict[GroupKey, PaymentOverride] = {}
        for item in items:
            if item.contract_quantity is not None or item.previous_quantity is not None:
                seeded[group_key_for(item)] = PaymentOverride(
                    contract=item.contract_quantity,
                    previous=item.previous_quantity,
                )
        self.overrides.update(seeded)

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def set_unit_price(self, bill_name: str, rate: float) -> None:
        self.unit_prices[bill_name] = rate

    def clear_unit_price(self, bill_name: str) -> None:
        self.unit_prices.pop(bill_name, None)

    def apply_rate_suggestion(self, bill_name: str, suggestion: str) -> Optional[float]:
        """Use the low end of a suggested range as the unit price. None if unparseable."""
        value = parse_rate_suggestion(suggestion)
        if value is not None:
            self.unit_prices[bill_name] = value
        return value

    def rate_breakdown_for(self, key: GroupKey) -> RateBreakdown:
        return self.rate_breakdowns.get(key) or RateBreakdown.blank()

    def save_rate_breakdown(self, key: GroupKey, breakdown: RateBreakdown) -> float:
        """Store a build-up and make its final rate (2dp) the group's unit price."""
        self.rate_breakdowns[key] = breakdown
        final_rate = round(breakdown.final_rate, 2)
        self.unit_prices[key.name] = final_rate
        return final_rate

    # ------------------------------------------------------------------
    # Payment overrides and knobs
    # ------------------------------------------------------------------

    def set_payment_override(self, key: GroupKey, field: str, value: Optional[float]) -> PaymentOverride:
        if field not in OVERRIDE_FIELDS:
            raise ValueError(f"Override field must be one of {OVERRIDE_FIELDS}, got '{field}'")
        current = self.overrides.get(key) or PaymentOverride()
        updated = current.model_copy(update={field: value})
        self.overrides[key] = updated
        return updated

    def update_settings(self, **changes) -> ProjectSettings:
        self.settings = ProjectSettings.model_validate({**self.settings.model_dump(), **changes})
        return self.settings

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def recompute(self) -> ProjectSnapshot:
        start = time.perf_counter()
        s = self.settings
        with tracker.stage("grouping"):
            groups = group_items(self.store.items, self.mode, self.overrides)
        with tracker.stage("valuation"):
            valuation = ValuationEngine(s.contingency_pct, s.vat_pct).value(groups, self.unit_prices, self.mode)
        with tracker.stage("certificate"):
            certificate = calculate_certificate(
                valuation.totals.cumulative,
                retention_pct=s.retention_pct,
                advance_recovery=s.advance_recovery,
                vat_pct=s.vat_pct,
                previous_payments=s.previous_payments,
            )
        with tracker.stage("analytics"):
            analytics = AnalyticsDecomposer(self.rate_breakdowns).analyse(valuation)

        duration_ms = round((time.perf_counter() - start) * 1000, 3)
        tracker.record_recompute(duration_ms)
        logger.debug(
            f"Session {self.id}: recomputed {len(groups)} groups",
            extra={"session_id": self.id, "duration_ms": duration_ms},
        )
        return ProjectSnapshot(
            groups=groups,
            valuation=valuation,
            certificate=certificate,
            analytics=analytics,
            duration_ms=duration_ms,
        )

    def summary_dict(self) -> dict:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "project_name": self.project_name,
            "drawing_type": self.drawing_type,
            "date": self.date,
            "is_paid": self.is_paid,
            "item_count": len(self.store),
            "source_files": list(self.source_files),
            "sources": self.store.unique_sources(),
            "rebar_count": len(self.rebar_items),
            "technical_query_count": len(self.technical_queries),
            "settings": self.settings.model_dump(by_alias=True),
            "summary": self.summary,
        }


class SessionRegistry:
    """Process-local session map. Nothing survives a restart."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, ProjectSession] = {}

    def create(self, project: TakeoffResult, mode: AppMode | str = AppMode.ESTIMATION) -> ProjectSession:
        session = ProjectSession(project, mode)
        with self._lock:
            self._sessions[session.id] = session
        logger.info(
            f"Session created: {len(session.store)} items, mode={session.mode.value}",
            extra={"session_id": session.id},
        )
        return session

    def get(self, session_id: str) -> Optional[ProjectSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def list_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def list_sessions(self) -> List[ProjectSession]:
        """Most recently created or merged first."""
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.date, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
