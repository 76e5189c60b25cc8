"""
ValuationEngine — prices BOQ groups and layers the markup chain.

Covers:
  - Rate resolution: manual unit price > contract rate > AI estimated rate > 0
  - Per-group contract / previous / current / cumulative amounts
  - Project totals and per-category totals (category display order)
  - Markup chain on all four columns:
        estimation: contingency -> taxable -> VAT -> grand total
        payment:    VAT straight on the sub-total (no contingency)
  - Rate-suggestion text parsing ("1,200 - 1,500 ETB" -> 1200.0)

Full precision throughout; rounding happens only in report_engine.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from app.models.boq_schema import AppMode
from app.services.config import DEFAULT_CONTINGENCY_PCT, DEFAULT_VAT_PCT
from app.services.grouping_engine import BoqGroup, ordered_categories

logger = logging.getLogger("constructai-valuation")

_SUGGESTION_NUMBER_RE = re.compile(r"([0-9,]+)")


# ── Data Classes ──────────────────────────────────────────────────────────────

@dataclass
class AmountSet:
    """The four money columns of a valuation."""
    contract: float = 0.0
    previous: float = 0.0
    current: float = 0.0
    cumulative: float = 0.0

    def add(self, other: "AmountSet") -> None:
        self.contract += other.contract
        self.previous += other.previous
        self.current += other.current
        self.cumulative += other.cumulative

    def plus(self, other: "AmountSet") -> "AmountSet":
        return AmountSet(
            self.contract + other.contract,
            self.previous + other.previous,
            self.current + other.current,
            self.cumulative + other.cumulative,
        )

    def scaled(self, pct: float) -> "AmountSet":
        f = pct / 100
        return AmountSet(self.contract * f, self.previous * f, self.current * f, self.cumulative * f)

    def to_dict(self) -> dict:
        return {
            "contract": self.contract,
            "previous": self.previous,
            "current": self.current,
            "cumulative": self.cumulative,
        }


@dataclass
class GroupValuation:
    group: BoqGroup
    rate: float
    amounts: AmountSet

    def to_dict(self) -> dict:
        return {**self.group.to_dict(), "rate": self.rate, "amounts": self.amounts.to_dict()}


@dataclass
class MarkupChain:
    contingency_pct: float
    vat_pct: float
    contingency: AmountSet
    taxable: AmountSet
    vat: AmountSet
    grand_total: AmountSet

    def to_dict(self) -> dict:
        return {
            "contingency_pct": self.contingency_pct,
            "vat_pct": self.vat_pct,
            "contingency": self.contingency.to_dict(),
            "taxable": self.taxable.to_dict(),
            "vat": self.vat.to_dict(),
            "grand_total": self.grand_total.to_dict(),
        }


@dataclass
class ValuationResult:
    mode: AppMode
    groups: list[GroupValuation]
    categories: list[str]
    category_totals: dict[str, AmountSet]
    totals: AmountSet
    markups: MarkupChain
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "groups": [g.to_dict() for g in self.groups],
            "categories": list(self.categories),
            "category_totals": {c: t.to_dict() for c, t in self.category_totals.items()},
            "totals": self.totals.to_dict(),
            "markups": self.markups.to_dict(),
            "warnings": list(self.warnings),
        }


# ── Helpers ───────────────────────────────────────────────────────────────────

def resolve_rate(group: BoqGroup, unit_prices: Mapping[str, float]) -> float:
    """
    Effective unit rate for a group. A manual price is honoured whenever one
    is set for the bill name, including an explicit 0.
    """
    if group.name in unit_prices and unit_prices[group.name] is not None:
        return float(unit_prices[group.name])
    if group.contract_rate is not None:
        return group.contract_rate
    return group.estimated_rate or 0.0


def group_amounts(group: BoqGroup, rate: float) -> AmountSet:
    previous = group.previous_quantity * rate
    current = group.executed_quantity * rate
    return AmountSet(
        contract=group.total_quantity * rate,
        previous=previous,
        current=current,
        cumulative=previous + current,
    )


def apply_markups(
    totals: AmountSet,
    mode: AppMode | str,
    contingency_pct: float = DEFAULT_CONTINGENCY_PCT,
    vat_pct: float = DEFAULT_VAT_PCT,
) -> MarkupChain:
    """
    Estimation: contingency = totals × c%; taxable = totals + contingency.
    Payment:    contingency = 0; taxable = totals.
    Both:       vat = taxable × v%; grand = taxable + vat.
    """
    mode = AppMode(mode)
    contingency = totals.scaled(contingency_pct) if mode is AppMode.ESTIMATION else AmountSet()
    taxable = totals.plus(contingency)
    vat = taxable.scaled(vat_pct)
    return MarkupChain(
        contingency_pct=contingency_pct if mode is AppMode.ESTIMATION else 0.0,
        vat_pct=vat_pct,
        contingency=contingency,
        taxable=taxable,
        vat=vat,
        grand_total=taxable.plus(vat),
    )


def parse_rate_suggestion(text: str) -> Optional[float]:
    """First digit/comma run of a suggested range; None when there is none."""
    match = _SUGGESTION_NUMBER_RE.search(text or "")
    if not match:
        return None
    digits = match.group(1).replace(",", "")
    if not digits:
        return None
    return float(digits)


# ── Engine ────────────────────────────────────────────────────────────────────

class ValuationEngine:

    def __init__(
        self,
        contingency_pct: float = DEFAULT_CONTINGENCY_PCT,
        vat_pct: float = DEFAULT_VAT_PCT,
    ):
        self.contingency_pct = contingency_pct
        self.vat_pct = vat_pct

    def value(
        self,
        groups: Sequence[BoqGroup],
        unit_prices: Optional[Mapping[str, float]] = None,
        mode: AppMode | str = AppMode.ESTIMATION,
    ) -> ValuationResult:
        mode = AppMode(mode)
        unit_prices = unit_prices or {}
        categories = ordered_categories(groups)
        category_totals = {cat: AmountSet() for cat in categories}
        totals = AmountSet()
        valued: list[GroupValuation] = []
        warnings: list[str] = []

        for g in groups:
            rate = resolve_rate(g, unit_prices)
            amounts = group_amounts(g, rate)
            valued.append(GroupValuation(group=g, rate=rate, amounts=amounts))
            category_totals[g.category].add(amounts)
            totals.add(amounts)
            if rate == 0 and g.total_quantity != 0:
                warnings.append(f"No rate for '{g.name}' ({g.unit})")

        markups = apply_markups(totals, mode, self.contingency_pct, self.vat_pct)
        if warnings:
            logger.debug(f"{len(warnings)} priced groups have a zero rate")
        return ValuationResult(
            mode=mode,
            groups=valued,
            categories=categories,
            category_totals=category_totals,
            totals=totals,
            markups=markups,
            warnings=warnings,
        )
