"""
Line-Item Store — the editable list of measured quantities.

Holds data and edit operations only. Items are addressed by list position
because IDs may repeat across merged extraction batches.
"""
import logging
import re
from typing import Iterable, List, Optional

from app.models.boq_schema import LineItem
from app.services.grouping_engine import category_appearance_order

logger = logging.getLogger("constructai-takeoff")

# Signed integer or decimal: "12.5", "-3", "0.60", ".5"
_NUMBER_RE = re.compile(r"[+-]?(?:[0-9]*[.])?[0-9]+")

# Edits to these fields re-derive quantity from the dimension formula
RECOMPUTE_FIELDS = frozenset({"dimension", "timesing"})

SOURCE_FILTER_ALL = "All"
UNKNOWN_SOURCE = "Unknown"


def parse_dimension_numbers(dimension: str) -> List[float]:
    """All numeric tokens in a dimension formula, in order."""
    return [float(tok) for tok in _NUMBER_RE.findall(dimension or "")]


def recompute_quantity(dimension: str, timesing: float, current: float) -> float:
    """
    quantity = round(Π numbers(dimension) × timesing, 2)

    A formula with no numbers ("Count", "Item") leaves *current* untouched.
    """
    numbers = parse_dimension_numbers(dimension)
    if not numbers:
        return current
    product = 1.0
    for n in numbers:
        product *= n
    return round(product * timesing, 2)


class LineItemStore:

    def __init__(self, items: Optional[Iterable[LineItem]] = None):
        self._items: List[LineItem] = list(items or [])

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> List[LineItem]:
        return list(self._items)

    def load(self, items: Iterable[LineItem]) -> None:
        """Replace the whole list with a new analysis batch."""
        self._items = list(items)
        logger.info(f"Loaded {len(self._items)} line items")

    def merge_batch(self, items: Iterable[LineItem]) -> int:
        """Append a batch after the existing items; existing IDs and order are kept."""
        batch = list(items)
        self._items = self._items + batch
        logger.info(f"Merged batch of {len(batch)} items (total {len(self._items)})")
        return len(batch)

    def get(self, index: int) -> LineItem:
        if index < 0 or index >= len(self._items):
            raise IndexError(f"Line item index {index} out of range (0..{len(self._items) - 1})")
        return self._items[index]

    def update_item(self, index: int, **changes) -> LineItem:
        """
        Apply field edits (last write wins). A dimension or timesing edit
        re-derives quantity once, after all changes are applied.
        """
        current = self.get(index)
        unknown = [k for k in changes if k not in LineItem.model_fields]
        if unknown:
            raise ValueError(f"Unknown line item field(s): {', '.join(sorted(unknown))}")

        updated = LineItem.model_validate({**current.model_dump(), **changes})
        if RECOMPUTE_FIELDS & changes.keys():
            updated.quantity = recompute_quantity(updated.dimension, updated.timesing, updated.quantity)
        self._items[index] = updated
        return updated

    def category_appearance_order(self) -> dict:
        return category_appearance_order(self._items)

    def unique_sources(self) -> List[str]:
        """Distinct drawing references in first-seen order; missing -> 'Unknown'."""
        seen: List[str] = []
        for item in self._items:
            source = item.source_ref or UNKNOWN_SOURCE
            if source not in seen:
                seen.append(source)
        return seen

    def filtered(self, search_term: str = "", source: str = SOURCE_FILTER_ALL) -> List[LineItem]:
        """
        Items matching a free-text search (any field, case-insensitive) and a
        drawing-source filter. Used by the takeoff sheet only.
        """
        term = (search_term or "").lower()
        result = []
        for item in self._items:
            if term and term not in item.model_dump_json(by_alias=True).lower():
                continue
            if source != SOURCE_FILTER_ALL and (item.source_ref or UNKNOWN_SOURCE) != source:
                continue
            result.append(item)
        return result
