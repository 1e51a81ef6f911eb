"""Line item construction and edit semantics."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from schemas.documents import Dimensions, LineItem, MeasurementType, new_item_id
from schemas.intents import ParsedLineItem


_SQFT_UNITS = {"sqft", "sq ft", "sf"}
_LINEAR_UNITS = {"ft", "linear_ft", "lf"}
_HOUR_UNITS = {"hr", "hour", "hours"}
_SERVICE_UNITS = {"unit", "job", "ea"}
_MEASUREMENT_TYPES = {"service", "sqft", "linear_ft", "unit", "hour", "job"}


def _number(value: Any) -> float | None:
    """Finite float or None; strings from stored JSON are accepted."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def derive_total(quantity: float, rate: float) -> float:
    return round(quantity * rate, 2)


def seed_item(raw: Mapping[str, Any] | LineItem) -> LineItem:
    """Copy a stored line item with a fresh id, recovering unusable numbers.

    Quantity defaults to 1 when missing or negative, total to 0, and a
    missing rate is recovered as ``total / quantity`` (0 for a zero quantity).
    A stored total that disagrees with ``quantity * rate`` is kept as an
    override.
    """
    data = raw.model_dump() if isinstance(raw, LineItem) else dict(raw)

    quantity = _number(data.get("quantity"))
    if quantity is None or quantity < 0:
        quantity = 1.0
    total = _number(data.get("total")) or 0.0
    rate = _number(data.get("rate"))
    if rate is None:
        rate = total / quantity if quantity else 0.0
    rate = max(rate, 0.0)

    measurement = data.get("measurement_type")
    dimensions = data.get("dimensions")
    return LineItem(
        id=new_item_id(),
        description=str(data.get("description") or ""),
        quantity=quantity,
        unit=str(data.get("unit") or "unit"),
        rate=rate,
        total=total,
        measurement_type=measurement if measurement in _MEASUREMENT_TYPES else None,
        dimensions=Dimensions.model_validate(dimensions) if dimensions else None,
        total_overridden=bool(data.get("total_overridden"))
        or abs(total - derive_total(quantity, rate)) > 0.005,
    )


def infer_measurement_type(
    unit: str | None, quantity: float, dimensions: Dimensions | None
) -> MeasurementType | None:
    if dimensions is not None and (dimensions.width or dimensions.length):
        return "sqft"
    unit_l = (unit or "").strip().lower()
    if unit_l in _SQFT_UNITS:
        return "sqft"
    if unit_l in _LINEAR_UNITS:
        return "linear_ft"
    if unit_l in _HOUR_UNITS:
        return "hour"
    if quantity == 1 and (not unit_l or unit_l in _SERVICE_UNITS):
        return "service"
    return None


def from_parsed(parsed: ParsedLineItem) -> LineItem:
    """Normalize a parser line item into a draft line item."""
    quantity = parsed.quantity if parsed.quantity and parsed.quantity > 0 else 1.0
    rate = parsed.rate if parsed.rate is not None and parsed.rate >= 0 else None
    if parsed.total is not None:
        total = parsed.total
        if rate is None:
            rate = round(total / quantity, 2)
    else:
        total = derive_total(quantity, rate) if rate is not None else 0.0
    rate = rate or 0.0

    measurement = parsed.measurement_type
    if measurement not in _MEASUREMENT_TYPES:
        measurement = infer_measurement_type(parsed.unit, quantity, parsed.dimensions)

    return LineItem(
        description=parsed.description,
        quantity=quantity,
        unit=parsed.unit or "unit",
        rate=rate,
        total=total,
        measurement_type=measurement,
        dimensions=parsed.dimensions,
        total_overridden=abs(total - derive_total(quantity, rate)) > 0.005,
    )


def edit_item(item: LineItem, **changes: Any) -> LineItem:
    """Return ``item`` with ``changes`` applied, keeping the total invariant.

    Touching quantity or rate re-derives the total and clears any override; an
    explicit total (without quantity/rate) marks the item as overridden.
    """
    unknown = set(changes) - set(LineItem.model_fields)
    if unknown:
        raise ValueError(f"Unknown line item fields: {sorted(unknown)}")

    data = item.model_dump()
    data.update({k: v for k, v in changes.items() if k != "total_overridden"})
    updated = LineItem.model_validate(data)

    if "quantity" in changes or "rate" in changes:
        updated.total = derive_total(updated.quantity, updated.rate)
        updated.total_overridden = False
    elif "total" in changes:
        updated.total_overridden = True
    return updated


def make_item(
    description: str,
    quantity: float | None = None,
    unit: str | None = None,
    rate: float | None = None,
) -> LineItem:
    qty = quantity if quantity is not None else 1.0
    price = rate if rate is not None else 0.0
    return LineItem(
        description=description,
        quantity=qty,
        unit=unit or "unit",
        rate=price,
        total=derive_total(qty, price),
    )
