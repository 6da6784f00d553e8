# src/seed_lot_domain/infrastructure/persistence/in_memory_seed_lot_repository.py
"""In-memory implementation of the seed lot repository."""

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from src.common.dtos.seed_lot_dtos import LotFilterDTO
from src.common.exceptions.custom_exceptions import ConcurrentModificationError
from src.seed_lot_domain.domain.entities.ledger_entry import LedgerEntry
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot
from src.seed_lot_domain.domain.repositories.seed_lot_repository import ISeedLotRepository

logger = logging.getLogger(__name__)


class InMemorySeedLotRepository(ISeedLotRepository):
    """
    Arena of lots keyed by id, guarded by one re-entrant lock.

    A unit of work holds the lock for its whole duration and restores a
    snapshot of the arena if an exception escapes it.
    """

    def __init__(self) -> None:
        self._lots: dict[str, SeedLot] = {}
        self._ledger: list[LedgerEntry] = []
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._lock:
            # Nested units join the outermost one
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = (dict(self._lots), len(self._ledger))
            self._depth = 1
            try:
                yield
            except BaseException:
                self._lots, ledger_size = snapshot
                del self._ledger[ledger_size:]
                logger.debug("In-memory unit of work rolled back")
                raise
            finally:
                self._depth = 0

    def get_lot(self, lot_id: str, include_inactive: bool = False) -> Optional[SeedLot]:
        with self._lock:
            lot = self._lots.get(lot_id)
            if lot is None or (not lot.is_active and not include_inactive):
                return None
            return copy.deepcopy(lot)

    def find_lots(self, lot_filter: LotFilterDTO) -> list[SeedLot]:
        with self._lock:
            matches = [copy.deepcopy(lot) for lot_id, lot in sorted(self._lots.items()) if lot_filter.matches(lot)]
        end = None if lot_filter.limit is None else lot_filter.offset + lot_filter.limit
        return matches[lot_filter.offset : end]

    def find_children(self, parent_lot_id: str) -> list[SeedLot]:
        return self.find_lots(LotFilterDTO(parent_lot_id=parent_lot_id))

    def add_lot(self, lot: SeedLot) -> None:
        with self._lock:
            if lot.id in self._lots:
                raise ConcurrentModificationError(lot.id, expected_version=0, actual_version=self._lots[lot.id].version)
            self._lots[lot.id] = copy.deepcopy(lot)

    def update_lot(self, lot: SeedLot, expected_version: int) -> SeedLot:
        with self._lock:
            stored = self._lots.get(lot.id)
            if stored is None or stored.version != expected_version:
                raise ConcurrentModificationError(
                    lot.id, expected_version, actual_version=stored.version if stored else None
                )
            updated = lot.with_changes(version=expected_version + 1)
            self._lots[lot.id] = updated
            return copy.deepcopy(updated)

    def next_lot_sequence(self, id_prefix: str) -> int:
        with self._lock:
            sequences = [
                int(lot_id[len(id_prefix) :])
                for lot_id in self._lots
                if lot_id.startswith(id_prefix) and lot_id[len(id_prefix) :].isdigit()
            ]
        return max(sequences, default=0) + 1

    def append_ledger_entry(self, entry: LedgerEntry) -> None:
        with self._lock:
            self._ledger.append(entry)

    def get_ledger_entries(self, lot_id: str) -> list[LedgerEntry]:
        with self._lock:
            entries = [entry for entry in self._ledger if entry.lot_id == lot_id]
        return sorted(entries, key=lambda entry: entry.recorded_at)
