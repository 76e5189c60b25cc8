"""
Grouping Engine — collapses measured line items into Bill-of-Quantities groups.

Covers:
  - Canonical bill name (text after the first ':' of the bill wording)
  - Composite group identity (bill name, unit, category)
  - Quantity accumulation: total (estimation) or executed (payment)
  - Payment overrides for contract / previous quantities
  - Executed / previous percentage of contract, zero-guarded
  - Stable ordering: category first appearance, then group first appearance

Pure functions; every call builds fresh groups from the item list.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, NamedTuple, Optional, Sequence

from app.models.boq_schema import AppMode, LineItem, PaymentOverride
from app.services.config import UNSEEN_CATEGORY_ORDER

logger = logging.getLogger("constructai-grouping")


class GroupKey(NamedTuple):
    """Value-equal identity of a BOQ group. A '|' inside a name cannot collide."""
    name: str
    unit: str
    category: str

    @property
    def label(self) -> str:
        return f"{self.name} ({self.unit}) / {self.category}"


@dataclass
class BoqGroup:
    key: GroupKey
    name: str
    unit: str
    category: str
    order_index: int
    estimated_rate: float = 0.0
    contract_rate: Optional[float] = None
    items: list[LineItem] = field(default_factory=list)
    total_quantity: float = 0.0        # contract quantity in payment mode
    executed_quantity: float = 0.0     # current-batch quantity (payment)
    previous_quantity: float = 0.0
    executed_percentage: float = 0.0
    previous_percentage: float = 0.0

    @property
    def cumulative_quantity(self) -> float:
        return self.previous_quantity + self.executed_quantity

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "unit": self.unit,
            "category": self.category,
            "order_index": self.order_index,
            "item_ids": [i.id for i in self.items],
            "estimated_rate": self.estimated_rate,
            "contract_rate": self.contract_rate,
            "total_quantity": self.total_quantity,
            "executed_quantity": self.executed_quantity,
            "previous_quantity": self.previous_quantity,
            "cumulative_quantity": self.cumulative_quantity,
            "executed_percentage": self.executed_percentage,
            "previous_percentage": self.previous_percentage,
        }


def canonical_bill_name(text: str) -> str:
    """'Sub Structure: Excavation - Trenching' -> 'Excavation - Trenching'."""
    if ":" in text:
        return text.split(":", 1)[1].strip()
    return text


def group_key_for(item: LineItem) -> GroupKey:
    return GroupKey(canonical_bill_name(item.bill_text), item.unit, item.category)


def category_appearance_order(items: Iterable[LineItem]) -> dict[str, int]:
    """Category -> index of its first item in the unsorted list."""
    order: dict[str, int] = {}
    for index, item in enumerate(items):
        if item.category not in order:
            order[item.category] = index
    return order


def ordered_categories(groups: Iterable[BoqGroup]) -> list[str]:
    """Distinct categories in the order the (sorted) groups present them."""
    seen: list[str] = []
    for g in groups:
        if g.category not in seen:
            seen.append(g.category)
    return seen


def group_items(
    items: Sequence[LineItem],
    mode: AppMode | str = AppMode.ESTIMATION,
    overrides: Optional[Mapping[GroupKey, PaymentOverride]] = None,
) -> list[BoqGroup]:
    """
    Build the sorted BOQ groups for one item list.

    Estimation: total_quantity = Σ member quantities.
    Payment:    executed_quantity = Σ member quantities;
                total_quantity = override.contract, else executed_quantity;
                previous_quantity = override.previous, else 0.
    """
    mode = AppMode(mode)
    overrides = overrides or {}
    category_order = category_appearance_order(items)

    groups: dict[GroupKey, BoqGroup] = {}
    for index, item in enumerate(items):
        key = group_key_for(item)
        group = groups.get(key)
        if group is None:
            # First member fixes unit, category and the rates
            group = BoqGroup(
                key=key,
                name=key.name,
                unit=item.unit,
                category=item.category,
                order_index=index,
                estimated_rate=item.estimated_rate or 0.0,
                contract_rate=item.contract_rate,
            )
            groups[key] = group
        group.items.append(item)
        if mode is AppMode.PAYMENT:
            group.executed_quantity += item.quantity
        else:
            group.total_quantity += item.quantity

    for group in groups.values():
        if mode is AppMode.PAYMENT:
            saved = overrides.get(group.key) or PaymentOverride()
            group.total_quantity = saved.contract if saved.contract is not None else group.executed_quantity
            group.previous_quantity = saved.previous if saved.previous is not None else 0.0
        if group.total_quantity != 0:
            group.executed_percentage = group.executed_quantity / group.total_quantity * 100
            group.previous_percentage = group.previous_quantity / group.total_quantity * 100

    result = sorted(
        groups.values(),
        key=lambda g: (category_order.get(g.category, UNSEEN_CATEGORY_ORDER), g.order_index),
    )
    logger.debug(f"Grouped {len(items)} items into {len(result)} BOQ groups ({mode.value})")
    return result


def find_group(groups: Iterable[BoqGroup], key: GroupKey) -> Optional[BoqGroup]:
    for g in groups:
        if g.key == key:
            return g
    return None
