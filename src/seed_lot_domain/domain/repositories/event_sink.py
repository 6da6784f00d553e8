"""Event sink interface."""
from abc import ABC, abstractmethod

from src.seed_lot_domain.domain.entities.lot_events import LotEvent


class IEventSink(ABC):
    @abstractmethod
    def publish(self, event: LotEvent) -> None:
        """Receives a committed ledger event."""
        pass
