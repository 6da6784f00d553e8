# src/seed_lot_domain/infrastructure/events/event_sinks.py
"""Event sink implementations for ledger lifecycle events."""

import logging

from src.seed_lot_domain.domain.entities.ledger_entry import LedgerEntry
from src.seed_lot_domain.domain.entities.lot_events import LotEvent
from src.seed_lot_domain.domain.repositories.event_sink import IEventSink
from src.seed_lot_domain.domain.repositories.seed_lot_repository import ISeedLotRepository

logger = logging.getLogger(__name__)


class LoggingEventSink(IEventSink):
    """Writes every event to the application log."""

    def publish(self, event: LotEvent) -> None:
        logger.info(f"[{event.event_type}] lot={event.lot_id} actor={event.actor_id} {event.payload()}")


class AuditTrailEventSink(IEventSink):
    """Appends every event to the lot's append-only ledger."""

    def __init__(self, lot_repo: ISeedLotRepository) -> None:
        self.lot_repo = lot_repo

    def publish(self, event: LotEvent) -> None:
        self.lot_repo.append_ledger_entry(
            LedgerEntry(
                lot_id=event.lot_id,
                recorded_at=event.occurred_at,
                event_type=event.event_type,
                actor_id=event.actor_id,
                quantity_delta=event.quantity_delta,
                payload=event.payload(),
            )
        )


class CompositeEventSink(IEventSink):
    """Fans each event out to several sinks, in order."""

    def __init__(self, sinks: list[IEventSink]) -> None:
        self.sinks = sinks

    def publish(self, event: LotEvent) -> None:
        for sink in self.sinks:
            sink.publish(event)
