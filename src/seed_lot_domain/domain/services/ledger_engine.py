# src/seed_lot_domain/domain/services/ledger_engine.py
"""Ledger engine: the only writer of lot quantity, lineage, custody and status."""

import logging
import math
from datetime import datetime

from src.common.dtos.seed_lot_dtos import (
    ChangeStatusDTO,
    CreateDerivedLotDTO,
    CreateRootLotDTO,
    LedgerContextDTO,
    TransferLotDTO,
    TransferResultDTO,
    UpdateLotMetadataDTO,
)
from src.common.exceptions.custom_exceptions import (
    InsufficientQuantityError,
    InvalidDateError,
    InvalidLevelSequenceError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    LedgerError,
    LotHasChildrenError,
    LotNotFoundError,
    LotNotMutableError,
    NoOpTransferError,
    ParentNotEligibleError,
)
from src.common.utils.date_utils import ensure_aware
from src.seed_lot_domain.domain.entities.lot_events import (
    LotCreated,
    LotDeleted,
    LotEvent,
    LotTransferred,
    LotUpdated,
    QuantityDebited,
    StatusChanged,
)
from src.seed_lot_domain.domain.entities.lot_status import (
    DERIVATION_ELIGIBLE,
    INITIAL_STATUS,
    can_transition,
    is_terminal,
)
from src.seed_lot_domain.domain.entities.seed_level import (
    MAX_LOT_QUANTITY,
    SeedLevel,
    is_valid_derivation,
    meets_minimum_quantity,
    minimum_quantity_of,
    next_level_of,
)
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot, round_quantity
from src.seed_lot_domain.domain.repositories.event_sink import IEventSink
from src.seed_lot_domain.domain.repositories.seed_lot_repository import ISeedLotRepository
from src.seed_lot_domain.domain.services.lot_identity import (
    estimate_expiry_date,
    generate_batch_number,
    lot_id_prefix,
    parse_lot_id,
)

logger = logging.getLogger(__name__)


class LedgerEngine:
    """
    Creates, derives, transfers and re-statuses seed lots.

    Every operation validates its input first, then reads and checks the
    business rules, then writes inside one repository unit of work. Events are
    published only after that unit of work has committed.
    """

    def __init__(self, lot_repo: ISeedLotRepository, event_sink: IEventSink) -> None:
        self.lot_repo = lot_repo
        self.event_sink = event_sink

    # --- lot creation ---

    def create_root_lot(self, command: CreateRootLotDTO, context: LedgerContextDTO) -> SeedLot:
        """Records a new GO lot with no parent."""
        try:
            now = context.now()
            quantity = self._validate_quantity(command.quantity)
            production_date = self._validate_production_date(command.production_date, now)
            expiry_date = self._resolve_expiry_date(command.expiry_date, production_date, SeedLevel.GO)
            self._warn_below_minimum(SeedLevel.GO, quantity)
            variety_code = command.variety_code or command.variety_id

            with self.lot_repo.unit_of_work():
                lot_id, sequence = self._allocate_lot_id(SeedLevel.GO, variety_code, production_date.year)
                lot = SeedLot(
                    id=lot_id,
                    variety_id=command.variety_id,
                    level=SeedLevel.GO,
                    quantity_total=quantity,
                    quantity_available=quantity,
                    status=INITIAL_STATUS,
                    custodian_id=command.custodian_id,
                    production_date=production_date,
                    expiry_date=expiry_date,
                    batch_number=command.batch_number or generate_batch_number(variety_code, production_date, sequence),
                    notes=command.notes,
                    created_at=now,
                    updated_at=now,
                )
                self.lot_repo.add_lot(lot)
        except LedgerError as e:
            logger.warning(f"Root lot creation rejected for variety {command.variety_id}: {e}")
            raise

        logger.info(f"Root lot {lot.id} created with {lot.quantity_total} kg for variety {lot.variety_id}")
        self._publish(
            [
                LotCreated(
                    lot_id=lot.id,
                    occurred_at=now,
                    actor_id=context.actor_id,
                    level=lot.level,
                    variety_id=lot.variety_id,
                    quantity=lot.quantity_total,
                    custodian_id=lot.custodian_id,
                )
            ]
        )
        return lot

    def create_derived_lot(self, command: CreateDerivedLotDTO, context: LedgerContextDTO) -> SeedLot:
        """
        Derives a next-generation lot, debiting its quantity from the parent.

        The parent debit and the child insert share one unit of work, so the
        sum of children created from a parent can never exceed what the parent
        had available when each child was recorded.
        """
        try:
            now = context.now()
            quantity = self._validate_quantity(command.quantity)
            production_date = self._validate_production_date(command.production_date, now)
            expiry_date = self._resolve_expiry_date(command.expiry_date, production_date, command.level)

            with self.lot_repo.unit_of_work():
                parent = self._require_lot(command.parent_lot_id)
                if parent.status not in DERIVATION_ELIGIBLE:
                    raise ParentNotEligibleError(parent.id, parent.status)
                if not is_valid_derivation(parent.level, command.level):
                    raise InvalidLevelSequenceError(parent.level, command.level, next_level_of(parent.level))
                if quantity > parent.quantity_available:
                    raise InsufficientQuantityError(parent.id, quantity, parent.quantity_available)

                self._warn_below_minimum(command.level, quantity)
                variety_code = command.variety_code or self._variety_code_of(parent)
                lot_id, sequence = self._allocate_lot_id(command.level, variety_code, production_date.year)

                updated_parent = self.lot_repo.update_lot(
                    parent.with_changes(
                        quantity_available=round_quantity(parent.quantity_available - quantity),
                        updated_at=now,
                    ),
                    expected_version=parent.version,
                )
                lot = SeedLot(
                    id=lot_id,
                    variety_id=parent.variety_id,
                    level=command.level,
                    quantity_total=quantity,
                    quantity_available=quantity,
                    status=INITIAL_STATUS,
                    custodian_id=command.custodian_id,
                    production_date=production_date,
                    parent_lot_id=parent.id,
                    expiry_date=expiry_date,
                    batch_number=command.batch_number or generate_batch_number(variety_code, production_date, sequence),
                    notes=command.notes,
                    created_at=now,
                    updated_at=now,
                )
                self.lot_repo.add_lot(lot)
        except LedgerError as e:
            logger.warning(f"Derivation of a {command.level} lot from {command.parent_lot_id} rejected: {e}")
            raise

        logger.info(
            f"Lot {lot.id} ({lot.level}) derived from {parent.id} with {lot.quantity_total} kg; "
            f"{updated_parent.quantity_available} kg left on the parent"
        )
        self._publish(
            [
                QuantityDebited(
                    lot_id=parent.id,
                    occurred_at=now,
                    actor_id=context.actor_id,
                    quantity=quantity,
                    child_lot_id=lot.id,
                    remaining_available=updated_parent.quantity_available,
                ),
                LotCreated(
                    lot_id=lot.id,
                    occurred_at=now,
                    actor_id=context.actor_id,
                    level=lot.level,
                    variety_id=lot.variety_id,
                    quantity=lot.quantity_total,
                    custodian_id=lot.custodian_id,
                    parent_lot_id=parent.id,
                ),
            ]
        )
        return lot

    # --- custody ---

    def transfer(self, command: TransferLotDTO, context: LedgerContextDTO) -> TransferResultDTO:
        """
        Ships `quantity` of a lot to another custodian.

        Moving the whole available quantity re-assigns the lot in place. A
        partial move debits the source and materializes a sub-lot at the
        destination with the same level and lineage; availability summed over
        source and sub-lot equals the source's availability before the move.
        """
        try:
            now = context.now()
            quantity = self._validate_quantity(command.quantity)

            with self.lot_repo.unit_of_work():
                lot = self._require_lot(command.lot_id)
                if is_terminal(lot.status):
                    raise LotNotMutableError(lot.id, lot.status)
                if quantity > lot.quantity_available:
                    raise InsufficientQuantityError(lot.id, quantity, lot.quantity_available)
                if command.target_custodian_id == lot.custodian_id:
                    raise NoOpTransferError(lot.id, lot.custodian_id)

                if quantity == lot.quantity_available:
                    source = self.lot_repo.update_lot(
                        lot.with_changes(custodian_id=command.target_custodian_id, updated_at=now),
                        expected_version=lot.version,
                    )
                    transferred = source
                else:
                    source = self.lot_repo.update_lot(
                        lot.with_changes(
                            quantity_available=round_quantity(lot.quantity_available - quantity),
                            updated_at=now,
                        ),
                        expected_version=lot.version,
                    )
                    transferred = self._split_lot(lot, command, quantity, now)
                    self.lot_repo.add_lot(transferred)
        except LedgerError as e:
            logger.warning(f"Transfer of {command.quantity} kg from lot {command.lot_id} rejected: {e}")
            raise

        result = TransferResultDTO(source_lot=source, transferred_lot=transferred)
        logger.info(
            f"Transferred {quantity} kg of lot {lot.id} from custodian {lot.custodian_id} "
            f"to {command.target_custodian_id} (as {transferred.id})"
        )
        self._publish(
            [
                LotTransferred(
                    lot_id=lot.id,
                    occurred_at=now,
                    actor_id=context.actor_id,
                    from_custodian_id=lot.custodian_id,
                    to_custodian_id=command.target_custodian_id,
                    quantity=quantity,
                    remaining_available=source.quantity_available if result.is_split else 0.0,
                    transferred_lot_id=transferred.id,
                    notes=command.notes,
                )
            ]
        )
        return result

    # --- status and metadata ---

    def change_status(self, command: ChangeStatusDTO, context: LedgerContextDTO) -> SeedLot:
        """Moves a lot along one edge of the status machine; quantities are untouched."""
        try:
            now = context.now()
            with self.lot_repo.unit_of_work():
                lot = self._require_lot(command.lot_id)
                if not can_transition(lot.status, command.new_status):
                    raise InvalidStatusTransitionError(lot.id, lot.status, command.new_status)
                updated = self.lot_repo.update_lot(
                    lot.with_changes(status=command.new_status, updated_at=now),
                    expected_version=lot.version,
                )
        except LedgerError as e:
            logger.warning(f"Status change of lot {command.lot_id} to {command.new_status} rejected: {e}")
            raise

        logger.info(f"Lot {lot.id} status {lot.status} -> {updated.status}")
        self._publish(
            [
                StatusChanged(
                    lot_id=lot.id,
                    occurred_at=now,
                    actor_id=context.actor_id,
                    previous_status=lot.status,
                    new_status=updated.status,
                    notes=command.notes,
                )
            ]
        )
        return updated

    def update_metadata(self, command: UpdateLotMetadataDTO, context: LedgerContextDTO) -> SeedLot:
        """Edits notes, expiry date or batch number; legal in every status."""
        changes = command.changes()
        if "expiry_date" in changes:
            changes["expiry_date"] = ensure_aware(changes["expiry_date"])

        try:
            now = context.now()
            with self.lot_repo.unit_of_work():
                lot = self._require_lot(command.lot_id)
                if not changes:
                    return lot
                updated = self.lot_repo.update_lot(
                    lot.with_changes(**changes, updated_at=now),
                    expected_version=lot.version,
                )
        except LedgerError as e:
            logger.warning(f"Metadata update of lot {command.lot_id} rejected: {e}")
            raise

        logger.info(f"Lot {lot.id} metadata updated: {', '.join(sorted(changes))}")
        payload = {key: value.isoformat() if isinstance(value, datetime) else value for key, value in changes.items()}
        self._publish([LotUpdated(lot_id=lot.id, occurred_at=now, actor_id=context.actor_id, changes=payload)])
        return updated

    def delete_lot(self, lot_id: str, context: LedgerContextDTO) -> None:
        """Soft-deletes a lot that no surviving lot uses as its parent."""
        try:
            now = context.now()
            with self.lot_repo.unit_of_work():
                lot = self._require_lot(lot_id)
                children = self.lot_repo.find_children(lot.id)
                if children:
                    raise LotHasChildrenError(lot.id, len(children))
                self.lot_repo.update_lot(
                    lot.with_changes(is_active=False, updated_at=now),
                    expected_version=lot.version,
                )
        except LedgerError as e:
            logger.warning(f"Deletion of lot {lot_id} rejected: {e}")
            raise

        logger.info(f"Lot {lot_id} deleted")
        self._publish([LotDeleted(lot_id=lot_id, occurred_at=now, actor_id=context.actor_id)])

    # --- helpers ---

    def _require_lot(self, lot_id: str) -> SeedLot:
        lot = self.lot_repo.get_lot(lot_id)
        if lot is None:
            raise LotNotFoundError(lot_id)
        return lot

    def _allocate_lot_id(self, level: SeedLevel, variety_code: str | int, year: int) -> tuple[str, int]:
        prefix = lot_id_prefix(level, variety_code, year)
        sequence = self.lot_repo.next_lot_sequence(prefix)
        return f"{prefix}{sequence:04d}", sequence

    def _split_lot(self, lot: SeedLot, command: TransferLotDTO, quantity: float, now: datetime) -> SeedLot:
        """Builds the destination sub-lot of a partial transfer."""
        variety_code = self._variety_code_of(lot)
        sub_lot_id, _ = self._allocate_lot_id(lot.level, variety_code, now.year)
        return SeedLot(
            id=sub_lot_id,
            variety_id=lot.variety_id,
            level=lot.level,
            quantity_total=quantity,
            quantity_available=quantity,
            status=lot.status,
            custodian_id=command.target_custodian_id,
            production_date=lot.production_date,
            parent_lot_id=lot.parent_lot_id,
            expiry_date=lot.expiry_date,
            batch_number=lot.batch_number,
            notes=command.notes,
            source_lot_id=lot.id,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _variety_code_of(lot: SeedLot) -> str | int:
        parts = parse_lot_id(lot.id)
        return parts.variety_code if parts else lot.variety_id

    @staticmethod
    def _validate_quantity(quantity: float) -> float:
        """Returns the quantity rounded to the gram, or raises InvalidQuantityError."""
        if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
            raise InvalidQuantityError(quantity, "quantity must be a number")
        if not math.isfinite(quantity) or round_quantity(quantity) <= 0:
            raise InvalidQuantityError(quantity)
        if quantity > MAX_LOT_QUANTITY:
            raise InvalidQuantityError(quantity, f"quantity cannot exceed {MAX_LOT_QUANTITY} kg")
        return round_quantity(quantity)

    @staticmethod
    def _validate_production_date(production_date: datetime | None, now: datetime) -> datetime:
        if production_date is None:
            raise InvalidDateError("production_date", None, "is required")
        production_date = ensure_aware(production_date)
        if production_date > now:
            raise InvalidDateError("production_date", production_date, "cannot be in the future")
        return production_date

    @staticmethod
    def _resolve_expiry_date(expiry_date: datetime | None, production_date: datetime, level: SeedLevel) -> datetime:
        if expiry_date is None:
            return estimate_expiry_date(production_date, level)
        expiry_date = ensure_aware(expiry_date)
        if expiry_date <= production_date:
            raise InvalidDateError("expiry_date", expiry_date, "must be after the production date")
        return expiry_date

    @staticmethod
    def _warn_below_minimum(level: SeedLevel, quantity: float) -> None:
        if not meets_minimum_quantity(level, quantity):
            logger.warning(
                f"{quantity} kg is below the usual {minimum_quantity_of(level)} kg minimum for a {level} lot"
            )

    def _publish(self, events: list[LotEvent]) -> None:
        """Hands committed events to the sink; a failing sink cannot undo a committed operation."""
        for event in events:
            try:
                self.event_sink.publish(event)
            except Exception as e:
                logger.error(f"Event sink failed on {event.event_type} for lot {event.lot_id}: {e}")
