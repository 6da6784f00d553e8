"""Data Transfer Objects for the seed lot ledger."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from src.common.exceptions.custom_exceptions import InvalidDateError, InvalidPayloadError
from src.common.utils.date_utils import now_utc, parse_datetime
from src.seed_lot_domain.domain.entities.lot_status import LotStatus, to_status
from src.seed_lot_domain.domain.entities.seed_level import SeedLevel, to_level
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot


# --- payload helpers ---


def _pick(payload: dict[str, Any], *keys: str) -> Any:
    """Returns the first present key; transport payloads mix snake_case and camelCase."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _required(payload: dict[str, Any], *keys: str) -> Any:
    value = _pick(payload, *keys)
    if value is None or value == "":
        raise InvalidPayloadError(keys[0], "field is required")
    return value


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidPayloadError(name, f"expected a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidPayloadError(name, f"expected a number, got {value!r}")


def _as_int(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidPayloadError(name, f"expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayloadError(name, f"expected an integer, got {value!r}")


def _as_datetime(name: str, value: Any) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise InvalidDateError(name, value, "not a valid ISO date")


# --- operation context ---


@dataclass(frozen=True)
class LedgerContextDTO:
    """Who performs an operation and which clock it reads; passed into every ledger call."""

    actor_id: str
    clock: Callable[[], datetime] = now_utc

    def now(self) -> datetime:
        return self.clock()


# --- commands ---


@dataclass
class CreateRootLotDTO:
    variety_id: int
    quantity: float
    custodian_id: Optional[int]
    production_date: datetime
    expiry_date: Optional[datetime] = None
    batch_number: Optional[str] = None
    notes: Optional[str] = None
    variety_code: Optional[str] = None  # Used to build the lot id; defaults to the variety id

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "CreateRootLotDTO":
        """Converts a loosely-typed request body into a root lot command."""
        return cls(
            variety_id=_as_int("variety_id", _required(data, "variety_id", "varietyId")),
            quantity=_as_float("quantity", _required(data, "quantity")),
            custodian_id=_as_int("custodian_id", _pick(data, "custodian_id", "custodianId", "multiplierId")),
            production_date=_as_datetime("production_date", _required(data, "production_date", "productionDate")),
            expiry_date=_as_datetime("expiry_date", _pick(data, "expiry_date", "expiryDate")),
            batch_number=_pick(data, "batch_number", "batchNumber"),
            notes=_pick(data, "notes"),
            variety_code=_pick(data, "variety_code", "varietyCode"),
        )


@dataclass
class CreateDerivedLotDTO:
    parent_lot_id: str
    level: SeedLevel
    quantity: float
    custodian_id: Optional[int]
    production_date: datetime
    expiry_date: Optional[datetime] = None
    batch_number: Optional[str] = None
    notes: Optional[str] = None
    variety_code: Optional[str] = None

    def __post_init__(self) -> None:
        self.level = to_level(self.level)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "CreateDerivedLotDTO":
        return cls(
            parent_lot_id=str(_required(data, "parent_lot_id", "parentLotId")),
            level=_required(data, "level"),
            quantity=_as_float("quantity", _required(data, "quantity")),
            custodian_id=_as_int("custodian_id", _pick(data, "custodian_id", "custodianId", "multiplierId")),
            production_date=_as_datetime("production_date", _required(data, "production_date", "productionDate")),
            expiry_date=_as_datetime("expiry_date", _pick(data, "expiry_date", "expiryDate")),
            batch_number=_pick(data, "batch_number", "batchNumber"),
            notes=_pick(data, "notes"),
            variety_code=_pick(data, "variety_code", "varietyCode"),
        )


@dataclass
class TransferLotDTO:
    lot_id: str
    target_custodian_id: int
    quantity: float
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, lot_id: str, data: dict[str, Any]) -> "TransferLotDTO":
        return cls(
            lot_id=lot_id,
            target_custodian_id=_as_int(
                "target_custodian_id",
                _required(data, "target_custodian_id", "targetCustodianId", "targetMultiplierId"),
            ),
            quantity=_as_float("quantity", _required(data, "quantity")),
            notes=_pick(data, "notes"),
        )


@dataclass
class ChangeStatusDTO:
    lot_id: str
    new_status: LotStatus
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        self.new_status = to_status(self.new_status)

    @classmethod
    def from_payload(cls, lot_id: str, data: dict[str, Any]) -> "ChangeStatusDTO":
        return cls(lot_id=lot_id, new_status=_required(data, "status", "new_status"), notes=_pick(data, "notes"))


@dataclass
class UpdateLotMetadataDTO:
    """Metadata edit; fields left as None are not touched."""

    lot_id: str
    notes: Optional[str] = None
    expiry_date: Optional[datetime] = None
    batch_number: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("notes", self.notes),
                ("expiry_date", self.expiry_date),
                ("batch_number", self.batch_number),
            )
            if value is not None
        }

    @classmethod
    def from_payload(cls, lot_id: str, data: dict[str, Any]) -> "UpdateLotMetadataDTO":
        immutable = {"variety_id", "varietyId", "level", "parent_lot_id", "parentLotId", "quantity", "status"}
        rejected = sorted(immutable.intersection(key for key, value in data.items() if value is not None))
        if rejected:
            raise InvalidPayloadError(rejected[0], "field cannot be changed by a metadata edit")
        return cls(
            lot_id=lot_id,
            notes=_pick(data, "notes"),
            expiry_date=_as_datetime("expiry_date", _pick(data, "expiry_date", "expiryDate")),
            batch_number=_pick(data, "batch_number", "batchNumber"),
        )


@dataclass
class LotFilterDTO:
    variety_id: Optional[int] = None
    level: Optional[SeedLevel] = None
    status: Optional[LotStatus] = None
    custodian_id: Optional[int] = None
    parent_lot_id: Optional[str] = None
    source_lot_id: Optional[str] = None
    include_inactive: bool = False
    limit: Optional[int] = None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.level is not None:
            self.level = to_level(self.level)
        if self.status is not None:
            self.status = to_status(self.status)

    def matches(self, lot: SeedLot) -> bool:
        """Predicate form of the filter, for stores that filter in memory."""
        if not self.include_inactive and not lot.is_active:
            return False
        return (
            (self.variety_id is None or lot.variety_id == self.variety_id)
            and (self.level is None or lot.level == self.level)
            and (self.status is None or lot.status == self.status)
            and (self.custodian_id is None or lot.custodian_id == self.custodian_id)
            and (self.parent_lot_id is None or lot.parent_lot_id == self.parent_lot_id)
            and (self.source_lot_id is None or lot.source_lot_id == self.source_lot_id)
        )

    @classmethod
    def from_query(cls, data: dict[str, Any]) -> "LotFilterDTO":
        return cls(
            variety_id=_as_int("variety_id", _pick(data, "variety_id", "varietyId")),
            level=_pick(data, "level"),
            status=_pick(data, "status"),
            custodian_id=_as_int("custodian_id", _pick(data, "custodian_id", "custodianId", "multiplierId")),
            parent_lot_id=_pick(data, "parent_lot_id", "parentLotId"),
            source_lot_id=_pick(data, "source_lot_id", "sourceLotId"),
            include_inactive=str(_pick(data, "include_inactive", "includeInactive") or "").lower() in ("1", "true"),
            limit=_as_int("limit", _pick(data, "limit", "pageSize")),
            offset=_as_int("offset", _pick(data, "offset")) or 0,
        )


# --- results ---


@dataclass
class TransferResultDTO:
    """Outcome of a transfer; `transferred_lot` is the source itself for a whole-lot move."""

    source_lot: SeedLot
    transferred_lot: SeedLot

    @property
    def is_split(self) -> bool:
        return self.source_lot.id != self.transferred_lot.id

    @property
    def total_available(self) -> float:
        if not self.is_split:
            return self.source_lot.quantity_available
        return self.source_lot.quantity_available + self.transferred_lot.quantity_available


@dataclass
class GenealogyStatsDTO:
    total_ancestors: int
    total_descendants: int
    total_direct_children: int
    has_parent: bool
    depth: int
    descendants_by_level: dict[str, int] = field(default_factory=dict)
    total_quantity_in_descendants: float = 0.0
    custodians: list[int] = field(default_factory=list)


@dataclass
class ConsistencyReportDTO:
    lot_id: str
    issues: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues


@dataclass
class VarietyStatDTO:
    level: SeedLevel
    status: LotStatus
    count: int
    total_quantity: float
