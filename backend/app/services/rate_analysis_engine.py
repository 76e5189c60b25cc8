"""
Rate Analysis & Analytics — cost build-ups and the project cost decomposition.

Covers:
  - Rate build-up summary (prime cost, overhead, profit, final rate)
  - CostModel variant per group:
        ExplicitCost(breakdown)  -> per-unit costs × total quantity
        HeuristicCost()          -> 50/30/10/10 split of total × rate
  - Project composition pie: Materials / Labor / Plant / Overhead & Profit
  - Category cost bars from the contract totals
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Mapping, Optional, Union

from app.models.boq_schema import RateBreakdown
from app.services.config import HEURISTIC_SPLIT
from app.services.grouping_engine import BoqGroup, GroupKey
from app.services.valuation_engine import ValuationResult

logger = logging.getLogger("constructai-rate-analysis")

PIE_LABELS = ("Materials", "Labor", "Plant", "Overhead & Profit")


def build_up_summary(breakdown: RateBreakdown) -> dict:
    return {
        "material_cost": breakdown.material_cost,
        "labor_cost": breakdown.labor_cost,
        "plant_cost": breakdown.plant_cost,
        "prime_cost": breakdown.prime_cost,
        "overhead_pct": breakdown.overhead_pct,
        "overhead_amount": breakdown.overhead_amount,
        "profit_pct": breakdown.profit_pct,
        "profit_amount": breakdown.profit_amount,
        "final_rate": breakdown.final_rate,
        "final_rate_rounded": round(breakdown.final_rate, 2),
    }


# ── Cost models ───────────────────────────────────────────────────────────────

@dataclass
class ExplicitCost:
    breakdown: RateBreakdown


@dataclass
class HeuristicCost:
    split: dict = field(default_factory=lambda: dict(HEURISTIC_SPLIT))


CostModel = Union[ExplicitCost, HeuristicCost]


@dataclass
class CostBuckets:
    materials: float = 0.0
    labor: float = 0.0
    plant: float = 0.0
    overhead: float = 0.0
    profit: float = 0.0

    @property
    def total(self) -> float:
        return self.materials + self.labor + self.plant + self.overhead + self.profit

    def add(self, other: "CostBuckets") -> None:
        self.materials += other.materials
        self.labor += other.labor
        self.plant += other.plant
        self.overhead += other.overhead
        self.profit += other.profit


def cost_model_for(group: BoqGroup, breakdowns: Mapping[GroupKey, RateBreakdown]) -> CostModel:
    breakdown = breakdowns.get(group.key)
    if breakdown is not None:
        return ExplicitCost(breakdown)
    return HeuristicCost()


def decompose(group: BoqGroup, rate: float, model: CostModel) -> CostBuckets:
    if isinstance(model, ExplicitCost):
        bd = model.breakdown
        qty = group.total_quantity
        return CostBuckets(
            materials=bd.material_cost * qty,
            labor=bd.labor_cost * qty,
            plant=bd.plant_cost * qty,
            overhead=bd.overhead_amount * qty,
            profit=bd.profit_amount * qty,
        )
    if isinstance(model, HeuristicCost):
        total_cost = group.total_quantity * rate
        s = model.split
        return CostBuckets(
            materials=total_cost * s["materials"],
            labor=total_cost * s["labor"],
            plant=total_cost * s["plant"],
            overhead=total_cost * s["overhead"],
            profit=total_cost * s["profit"],
        )
    raise TypeError(f"Unsupported cost model: {type(model).__name__}")


# ── Analytics rollup ──────────────────────────────────────────────────────────

@dataclass
class AnalyticsResult:
    buckets: CostBuckets
    pie: list[dict]
    category_costs: list[dict]
    total_project_cost: float
    explicit_groups: int = 0
    heuristic_groups: int = 0

    def to_dict(self) -> dict:
        return {
            "buckets": asdict(self.buckets),
            "pie": self.pie,
            "category_costs": self.category_costs,
            "total_project_cost": self.total_project_cost,
            "explicit_groups": self.explicit_groups,
            "heuristic_groups": self.heuristic_groups,
        }


class AnalyticsDecomposer:
    """Rolls every valued group into project-wide cost buckets."""

    def __init__(self, breakdowns: Optional[Mapping[GroupKey, RateBreakdown]] = None):
        self.breakdowns = breakdowns or {}

    def analyse(self, valuation: ValuationResult) -> AnalyticsResult:
        buckets = CostBuckets()
        explicit = heuristic = 0
        for gv in valuation.groups:
            model = cost_model_for(gv.group, self.breakdowns)
            if isinstance(model, ExplicitCost):
                explicit += 1
            else:
                heuristic += 1
            buckets.add(decompose(gv.group, gv.rate, model))

        total = buckets.total
        values = (buckets.materials, buckets.labor, buckets.plant, buckets.overhead + buckets.profit)
        pie = [
            {
                "name": label,
                "value": value,
                "share_pct": (value / total * 100) if total else 0.0,
            }
            for label, value in zip(PIE_LABELS, values)
        ]
        category_costs = [
            {"name": cat, "cost": valuation.category_totals[cat].contract}
            for cat in valuation.categories
        ]
        logger.debug(f"Analytics: {explicit} build-ups, {heuristic} heuristic groups")
        return AnalyticsResult(
            buckets=buckets,
            pie=pie,
            category_costs=category_costs,
            total_project_cost=total,
            explicit_groups=explicit,
            heuristic_groups=heuristic,
        )
