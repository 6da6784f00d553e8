# src/seed_lot_domain/application/seed_lot_service.py
"""Application service for the seed lot ledger."""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Any

from src.common.config.settings import settings
from src.common.dtos.seed_lot_dtos import (
    ChangeStatusDTO,
    ConsistencyReportDTO,
    CreateDerivedLotDTO,
    CreateRootLotDTO,
    GenealogyStatsDTO,
    LedgerContextDTO,
    LotFilterDTO,
    TransferLotDTO,
    TransferResultDTO,
    UpdateLotMetadataDTO,
    VarietyStatDTO,
)
from src.common.exceptions.custom_exceptions import LotNotFoundError
from src.seed_lot_domain.application.genealogy_export import export_genealogy
from src.seed_lot_domain.domain.entities.ledger_entry import LedgerEntry
from src.seed_lot_domain.domain.entities.lot_status import LotStatus
from src.seed_lot_domain.domain.entities.seed_level import rank_of
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot, round_quantity
from src.seed_lot_domain.domain.repositories.event_sink import IEventSink
from src.seed_lot_domain.domain.repositories.seed_lot_repository import ISeedLotRepository
from src.seed_lot_domain.domain.services.genealogy_resolver import Genealogy, GenealogyResolver
from src.seed_lot_domain.domain.services.ledger_engine import LedgerEngine

logger = logging.getLogger(__name__)

_EXPIRY_EXCLUDED = (LotStatus.REJECTED, LotStatus.DISTRIBUTED)


class SeedLotApplicationService:
    """
    Boundary between the transport layer and the ledger.

    The `*_from_payload` methods accept the loosely-typed request bodies of
    the controller layer and convert them to commands before the engine sees
    them; everything else takes typed DTOs.
    """

    def __init__(self, lot_repo: ISeedLotRepository, event_sink: IEventSink) -> None:
        """Initializes the SeedLotApplicationService."""
        self.lot_repo = lot_repo
        self.engine = LedgerEngine(lot_repo=lot_repo, event_sink=event_sink)
        self.resolver = GenealogyResolver(lot_repo=lot_repo)

    # --- commands ---

    def create_root_lot(self, command: CreateRootLotDTO, context: LedgerContextDTO) -> SeedLot:
        return self.engine.create_root_lot(command, context)

    def create_derived_lot(self, command: CreateDerivedLotDTO, context: LedgerContextDTO) -> SeedLot:
        return self.engine.create_derived_lot(command, context)

    def create_lot_from_payload(self, payload: dict[str, Any], context: LedgerContextDTO) -> SeedLot:
        """Creates a derived lot when the payload names a parent, a root lot otherwise."""
        if payload.get("parent_lot_id") or payload.get("parentLotId"):
            return self.engine.create_derived_lot(CreateDerivedLotDTO.from_payload(payload), context)
        return self.engine.create_root_lot(CreateRootLotDTO.from_payload(payload), context)

    def transfer(self, command: TransferLotDTO, context: LedgerContextDTO) -> TransferResultDTO:
        return self.engine.transfer(command, context)

    def transfer_from_payload(
        self, lot_id: str, payload: dict[str, Any], context: LedgerContextDTO
    ) -> TransferResultDTO:
        return self.engine.transfer(TransferLotDTO.from_payload(lot_id, payload), context)

    def change_status(self, command: ChangeStatusDTO, context: LedgerContextDTO) -> SeedLot:
        return self.engine.change_status(command, context)

    def change_status_from_payload(self, lot_id: str, payload: dict[str, Any], context: LedgerContextDTO) -> SeedLot:
        return self.engine.change_status(ChangeStatusDTO.from_payload(lot_id, payload), context)

    def update_metadata(self, command: UpdateLotMetadataDTO, context: LedgerContextDTO) -> SeedLot:
        return self.engine.update_metadata(command, context)

    def update_metadata_from_payload(
        self, lot_id: str, payload: dict[str, Any], context: LedgerContextDTO
    ) -> SeedLot:
        return self.engine.update_metadata(UpdateLotMetadataDTO.from_payload(lot_id, payload), context)

    def delete_lot(self, lot_id: str, context: LedgerContextDTO) -> None:
        self.engine.delete_lot(lot_id, context)

    # --- reads ---

    def get_lot(self, lot_id: str) -> SeedLot:
        """Retrieves a lot by id; raises LotNotFoundError when it does not exist."""
        lot = self.lot_repo.get_lot(lot_id)
        if lot is None:
            raise LotNotFoundError(lot_id)
        return lot

    def list_lots(self, lot_filter: LotFilterDTO) -> list[SeedLot]:
        return self.lot_repo.find_lots(lot_filter)

    def get_genealogy(self, lot_id: str) -> Genealogy:
        return self.resolver.genealogy_of(lot_id)

    def get_genealogy_stats(self, lot_id: str) -> GenealogyStatsDTO:
        return self.resolver.stats_of(lot_id)

    def check_genealogy_consistency(self, lot_id: str) -> ConsistencyReportDTO:
        return self.resolver.check_consistency(lot_id)

    def export_genealogy(self, lot_id: str, fmt: str = "json") -> str:
        return export_genealogy(self.resolver.genealogy_of(lot_id), fmt)

    def get_lot_history(self, lot_id: str) -> list[LedgerEntry]:
        """Audit trail of a lot, oldest first."""
        return self.lot_repo.get_ledger_entries(lot_id)

    def get_expiring_lots(self, context: LedgerContextDTO, days_ahead: int | None = None) -> list[SeedLot]:
        """Active lots expiring within `days_ahead` days, soonest first; rejected and distributed stock is skipped."""
        days = settings.EXPIRY_WARNING_DAYS if days_ahead is None else days_ahead
        now = context.now()
        horizon = now + timedelta(days=days)

        expiring = [
            lot
            for lot in self.lot_repo.find_lots(LotFilterDTO())
            if lot.expiry_date is not None and now <= lot.expiry_date <= horizon and lot.status not in _EXPIRY_EXCLUDED
        ]
        expiring.sort(key=lambda lot: lot.expiry_date)
        logger.info(f"{len(expiring)} lot(s) expire within {days} days")
        return expiring

    def get_stats_by_variety(self, variety_id: int) -> list[VarietyStatDTO]:
        """
        Lot count and total produced quantity grouped by level and status.

        Transfer sub-lots are counted as lots but add no quantity: their seed is
        already in the source lot's total.
        """
        groups: dict[tuple, list[SeedLot]] = defaultdict(list)
        for lot in self.lot_repo.find_lots(LotFilterDTO(variety_id=variety_id)):
            groups[(lot.level, lot.status)].append(lot)

        return [
            VarietyStatDTO(
                level=level,
                status=status,
                count=len(lots),
                total_quantity=round_quantity(sum(lot.quantity_total for lot in lots if not lot.is_transfer_split)),
            )
            for (level, status), lots in sorted(
                groups.items(), key=lambda item: (rank_of(item[0][0]), item[0][1].value)
            )
        ]
