"""Seed lot entity."""

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.common.exceptions.custom_exceptions import BrokenLineageError, InvalidDateError, InvalidQuantityError

from .lot_status import LotStatus, to_status
from .seed_level import SeedLevel, to_level

# Quantities are kept to the gram
QUANTITY_PRECISION = 3


def round_quantity(quantity: float) -> float:
    return round(quantity, QUANTITY_PRECISION) + 0.0


@dataclass
class SeedLot:
    """
    A traceable batch of seed at one generation level.

    Lots reference each other by id only (`parent_lot_id`, `source_lot_id`);
    the repository is the arena that resolves those references.
    """

    id: str
    variety_id: int
    level: SeedLevel
    quantity_total: float
    quantity_available: float
    status: LotStatus
    custodian_id: int | None
    production_date: datetime
    parent_lot_id: str | None = None
    expiry_date: datetime | None = None
    batch_number: str | None = None
    notes: str | None = None
    source_lot_id: str | None = None  # Set on sub-lots materialized by a partial transfer
    version: int = 1
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Coerces enum fields and checks the record-local invariants."""
        self.level = to_level(self.level)
        self.status = to_status(self.status)
        self.quantity_total = round_quantity(self.quantity_total)
        self.quantity_available = round_quantity(self.quantity_available)

        if self.quantity_total < 0:
            raise InvalidQuantityError(self.quantity_total, "total quantity cannot be negative")
        if self.quantity_available < 0:
            raise InvalidQuantityError(self.quantity_available, "available quantity cannot be negative")
        if self.quantity_available > self.quantity_total:
            raise InvalidQuantityError(self.quantity_available, "available quantity cannot exceed total quantity")

        if self.level == SeedLevel.GO and self.parent_lot_id is not None:
            raise BrokenLineageError(self.id, self.parent_lot_id, reason="a GO lot cannot have a parent")
        if self.level != SeedLevel.GO and self.parent_lot_id is None:
            raise BrokenLineageError(self.id, reason=f"a {self.level} lot requires a parent")

        if self.expiry_date is not None and self.expiry_date <= self.production_date:
            raise InvalidDateError("expiry_date", self.expiry_date, "must be after the production date")

    @property
    def is_root(self) -> bool:
        return self.parent_lot_id is None

    @property
    def is_transfer_split(self) -> bool:
        return self.source_lot_id is not None

    def with_changes(self, **changes: Any) -> "SeedLot":
        """Returns a validated copy; the receiver is left untouched."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Plain, JSON-friendly representation."""
        data = dataclasses.asdict(self)
        data["level"] = self.level.value
        data["status"] = self.status.value
        for key in ("production_date", "expiry_date", "created_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data
