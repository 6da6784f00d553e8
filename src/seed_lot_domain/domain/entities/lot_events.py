"""Domain events emitted by the ledger after a unit of work commits."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .lot_status import LotStatus
from .seed_level import SeedLevel


@dataclass(frozen=True)
class LotEvent:
    lot_id: str
    occurred_at: datetime
    actor_id: str

    @property
    def event_type(self) -> str:
        return type(self).__name__

    @property
    def quantity_delta(self) -> float:
        """Change of the lot's available quantity caused by this event."""
        return 0.0

    def payload(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class LotCreated(LotEvent):
    level: SeedLevel
    variety_id: int
    quantity: float
    custodian_id: int | None
    parent_lot_id: str | None = None

    @property
    def quantity_delta(self) -> float:
        return self.quantity

    def payload(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "variety_id": self.variety_id,
            "quantity": self.quantity,
            "custodian_id": self.custodian_id,
            "parent_lot_id": self.parent_lot_id,
        }


@dataclass(frozen=True)
class LotTransferred(LotEvent):
    from_custodian_id: int | None
    to_custodian_id: int
    quantity: float
    remaining_available: float
    transferred_lot_id: str  # Equal to lot_id for a whole-lot transfer
    notes: str | None = None

    @property
    def is_split(self) -> bool:
        return self.transferred_lot_id != self.lot_id

    @property
    def quantity_delta(self) -> float:
        return -self.quantity if self.is_split else 0.0

    def payload(self) -> dict[str, Any]:
        return {
            "from_custodian_id": self.from_custodian_id,
            "to_custodian_id": self.to_custodian_id,
            "quantity": self.quantity,
            "remaining_available": self.remaining_available,
            "transferred_lot_id": self.transferred_lot_id,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class StatusChanged(LotEvent):
    previous_status: LotStatus
    new_status: LotStatus
    notes: str | None = None

    def payload(self) -> dict[str, Any]:
        return {
            "previous_status": self.previous_status.value,
            "new_status": self.new_status.value,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class QuantityDebited(LotEvent):
    """A parent lot lost availability to a newly derived child."""

    quantity: float
    child_lot_id: str
    remaining_available: float

    @property
    def quantity_delta(self) -> float:
        return -self.quantity

    def payload(self) -> dict[str, Any]:
        return {
            "quantity": self.quantity,
            "child_lot_id": self.child_lot_id,
            "remaining_available": self.remaining_available,
        }


@dataclass(frozen=True)
class LotUpdated(LotEvent):
    changes: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return dict(self.changes)


@dataclass(frozen=True)
class LotDeleted(LotEvent):
    pass
