# src/seed_lot_domain/domain/repositories/seed_lot_repository.py
"""Seed lot repository interface."""
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional

from src.common.dtos.seed_lot_dtos import LotFilterDTO
from src.seed_lot_domain.domain.entities.ledger_entry import LedgerEntry
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot


class ISeedLotRepository(ABC):
    """
    Persistence port for lot records.

    Lots handed out are detached copies: mutating one does not change the store
    until it is written back with `update_lot`.
    """

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[None]:
        """Transactional scope: commits on normal exit, rolls back when an exception escapes."""
        pass

    @abstractmethod
    def get_lot(self, lot_id: str, include_inactive: bool = False) -> Optional[SeedLot]:
        """Retrieves a lot by id, or None."""
        pass

    @abstractmethod
    def find_lots(self, lot_filter: LotFilterDTO) -> list[SeedLot]:
        """Retrieves lots matching every set field of the filter, ordered by id."""
        pass

    @abstractmethod
    def find_children(self, parent_lot_id: str) -> list[SeedLot]:
        """Retrieves active lots whose parent_lot_id equals the given id."""
        pass

    @abstractmethod
    def add_lot(self, lot: SeedLot) -> None:
        """Inserts a new lot; fails with ConcurrentModificationError when the id is taken."""
        pass

    @abstractmethod
    def update_lot(self, lot: SeedLot, expected_version: int) -> SeedLot:
        """
        Writes `lot` if the stored version still equals `expected_version`.

        Returns the stored copy with its version incremented; raises
        ConcurrentModificationError on a version mismatch.
        """
        pass

    @abstractmethod
    def next_lot_sequence(self, id_prefix: str) -> int:
        """Next free sequence number for lot ids starting with `id_prefix`."""
        pass

    @abstractmethod
    def append_ledger_entry(self, entry: LedgerEntry) -> None:
        """Appends an audit record; entries are never updated."""
        pass

    @abstractmethod
    def get_ledger_entries(self, lot_id: str) -> list[LedgerEntry]:
        """Retrieves audit records of a lot, oldest first."""
        pass
