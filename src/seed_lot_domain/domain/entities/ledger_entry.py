"""Ledger entry entity."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class LedgerEntry:
    """One append-only audit record, keyed by lot id and timestamp."""

    lot_id: str
    recorded_at: datetime
    event_type: str
    actor_id: str
    quantity_delta: float = 0.0
    payload: dict[str, Any] = field(default_factory=dict)
    id: int | None = None  # For persistence, if it has a unique DB ID
