from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Union

from .errors import ValidationError


@dataclass(frozen=True)
class CartRequestItem:
    """One line of the caller's shopping request."""

    name: str
    unit: str | None = None
    qty: int = 1

    @property
    def query(self) -> str:
        """Search term, also used as the result's key."""
        return " ".join(p for p in (self.name, self.unit) if p).strip()

    @staticmethod
    def from_dict(row: Mapping[str, Any]) -> "CartRequestItem":
        if not isinstance(row, Mapping):
            raise ValidationError(f"Item must be an object, got {type(row).__name__}")
        name = str(row.get("name") or "").strip()
        if not name:
            raise ValidationError("Item is missing a name")
        unit = row.get("unit")
        unit = str(unit).strip() if unit not in (None, "") else None
        return CartRequestItem(name=name, unit=unit or None, qty=coerce_qty(row.get("qty")))


def coerce_qty(raw: Any) -> int:
    """Positive integer quantity; absent, non-numeric or < 1 becomes 1."""
    if raw is None or isinstance(raw, bool):
        return 1
    try:
        val = float(raw)
    except (TypeError, ValueError):
        return 1
    if math.isnan(val) or math.isinf(val):
        return 1
    return max(1, int(val))


def parse_items(rows: Any) -> list[CartRequestItem]:
    if not isinstance(rows, list) or not rows:
        raise ValidationError("items[] required")
    return [CartRequestItem.from_dict(r) for r in rows]


# ---- per-item outcomes -----------------------------------------------------


@dataclass(frozen=True)
class Added:
    query: str
    title: str
    # Achieved quantity; may be below the request when increments failed.
    qty: int


@dataclass(frozen=True)
class NotFound:
    query: str
    reason: str


@dataclass(frozen=True)
class Failed:
    query: str
    error: str


ItemResult = Union[Added, NotFound, Failed]


# ---- progress stream -------------------------------------------------------


@dataclass(frozen=True)
class BatchProgress:
    processed: int
    total: int
    query: str
    result: ItemResult


@dataclass(frozen=True)
class BatchPause:
    processed: int
    total: int
    seconds: float


@dataclass(frozen=True)
class BatchComplete:
    status: str
    total: int
    processed: int
    cookie_applied: bool
    subtotal: str | None = None


BatchEvent = Union[BatchProgress, BatchPause, BatchComplete]
