# tests/test_seed_lot_domain/test_infrastructure/test_in_memory_seed_lot_repository.py

from datetime import datetime, timedelta

import pytest
import pytz

from src.common.dtos.seed_lot_dtos import LotFilterDTO
from src.common.exceptions.custom_exceptions import ConcurrentModificationError
from src.seed_lot_domain.domain.entities.ledger_entry import LedgerEntry
from src.seed_lot_domain.domain.entities.lot_status import LotStatus
from src.seed_lot_domain.domain.entities.seed_level import SeedLevel
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot


def _lot(lot_id: str, **overrides) -> SeedLot:
    values = dict(
        id=lot_id,
        variety_id=7,
        level=SeedLevel.GO,
        quantity_total=500.0,
        quantity_available=500.0,
        status=LotStatus.PENDING,
        custodian_id=10,
        production_date=datetime(2024, 3, 15, tzinfo=pytz.utc),
    )
    values.update(overrides)
    return SeedLot(**values)


def test_add_and_get_lot_returns_copies(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))

    fetched = lot_repository.get_lot("SL-GO-2024-DIH-0001")
    fetched.notes = "edited outside the store"

    assert lot_repository.get_lot("SL-GO-2024-DIH-0001").notes is None


def test_get_lot_unknown_returns_none(lot_repository) -> None:
    assert lot_repository.get_lot("missing") is None


def test_add_lot_rejects_duplicate_id(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))

    with pytest.raises(ConcurrentModificationError):
        lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))


def test_update_lot_bumps_version(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))
    lot = lot_repository.get_lot("SL-GO-2024-DIH-0001")

    updated = lot_repository.update_lot(lot.with_changes(quantity_available=300.0), expected_version=1)

    assert updated.version == 2
    assert lot_repository.get_lot(lot.id).quantity_available == 300.0


def test_update_lot_with_stale_version_fails(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))
    lot = lot_repository.get_lot("SL-GO-2024-DIH-0001")
    lot_repository.update_lot(lot.with_changes(notes="first"), expected_version=1)

    with pytest.raises(ConcurrentModificationError) as exc_info:
        lot_repository.update_lot(lot.with_changes(notes="second"), expected_version=1)

    assert exc_info.value.actual_version == 2
    assert lot_repository.get_lot(lot.id).notes == "first"


def test_update_unknown_lot_fails(lot_repository) -> None:
    with pytest.raises(ConcurrentModificationError):
        lot_repository.update_lot(_lot("SL-GO-2024-DIH-0404"), expected_version=1)


def test_find_lots_filters_and_paginates(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0002", custodian_id=11))
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0003", variety_id=8))
    lot_repository.add_lot(_lot("SL-G1-2024-DIH-0001", level=SeedLevel.G1, parent_lot_id="SL-GO-2024-DIH-0001"))

    assert [lot.id for lot in lot_repository.find_lots(LotFilterDTO(variety_id=7, level="GO"))] == [
        "SL-GO-2024-DIH-0001",
        "SL-GO-2024-DIH-0002",
    ]
    assert [lot.id for lot in lot_repository.find_lots(LotFilterDTO(custodian_id=11))] == ["SL-GO-2024-DIH-0002"]
    assert [lot.id for lot in lot_repository.find_children("SL-GO-2024-DIH-0001")] == ["SL-G1-2024-DIH-0001"]
    assert [lot.id for lot in lot_repository.find_lots(LotFilterDTO(limit=2, offset=1))] == [
        "SL-GO-2024-DIH-0001",
        "SL-GO-2024-DIH-0002",
    ]


def test_soft_deleted_lots_are_hidden_by_default(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001", is_active=False))

    assert lot_repository.get_lot("SL-GO-2024-DIH-0001") is None
    assert lot_repository.get_lot("SL-GO-2024-DIH-0001", include_inactive=True) is not None
    assert lot_repository.find_lots(LotFilterDTO()) == []
    assert len(lot_repository.find_lots(LotFilterDTO(include_inactive=True))) == 1


def test_next_lot_sequence_counts_per_prefix(lot_repository) -> None:
    assert lot_repository.next_lot_sequence("SL-GO-2024-DIH-") == 1

    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0004"))
    lot_repository.add_lot(_lot("SL-GO-2024-ABC-0009"))

    assert lot_repository.next_lot_sequence("SL-GO-2024-DIH-") == 5
    assert lot_repository.next_lot_sequence("SL-GO-2025-DIH-") == 1


def test_unit_of_work_rolls_back_on_error(lot_repository) -> None:
    lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))
    lot = lot_repository.get_lot("SL-GO-2024-DIH-0001")

    with pytest.raises(RuntimeError):
        with lot_repository.unit_of_work():
            lot_repository.update_lot(lot.with_changes(quantity_available=0.0), expected_version=1)
            lot_repository.add_lot(_lot("SL-GO-2024-DIH-0002"))
            lot_repository.append_ledger_entry(
                LedgerEntry(lot_id=lot.id, recorded_at=lot.production_date, event_type="X", actor_id="a")
            )
            raise RuntimeError("boom")

    assert lot_repository.get_lot(lot.id).quantity_available == 500.0
    assert lot_repository.get_lot(lot.id).version == 1
    assert lot_repository.get_lot("SL-GO-2024-DIH-0002") is None
    assert lot_repository.get_ledger_entries(lot.id) == []


def test_nested_unit_of_work_joins_outer(lot_repository) -> None:
    with pytest.raises(RuntimeError):
        with lot_repository.unit_of_work():
            with lot_repository.unit_of_work():
                lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))
            assert lot_repository.get_lot("SL-GO-2024-DIH-0001") is not None
            raise RuntimeError("outer fails")

    assert lot_repository.get_lot("SL-GO-2024-DIH-0001") is None


def test_unit_of_work_commits_on_success(lot_repository) -> None:
    with lot_repository.unit_of_work():
        lot_repository.add_lot(_lot("SL-GO-2024-DIH-0001"))

    assert lot_repository.get_lot("SL-GO-2024-DIH-0001") is not None


def test_ledger_entries_are_sorted_by_time(lot_repository) -> None:
    base = datetime(2024, 6, 1, tzinfo=pytz.utc)
    lot_repository.append_ledger_entry(
        LedgerEntry(lot_id="L", recorded_at=base + timedelta(hours=1), event_type="StatusChanged", actor_id="a")
    )
    lot_repository.append_ledger_entry(LedgerEntry(lot_id="L", recorded_at=base, event_type="LotCreated", actor_id="a"))
    lot_repository.append_ledger_entry(
        LedgerEntry(lot_id="OTHER", recorded_at=base, event_type="LotCreated", actor_id="a")
    )

    assert [entry.event_type for entry in lot_repository.get_ledger_entries("L")] == ["LotCreated", "StatusChanged"]
