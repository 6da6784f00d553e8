# tests/test_seed_lot_domain/test_domain/test_genealogy_resolver.py
"""Tests for ancestry, descendant trees, statistics and consistency audits."""

from datetime import datetime

import pytest
import pytz

from src.common.dtos.seed_lot_dtos import TransferLotDTO
from src.common.exceptions.custom_exceptions import BrokenLineageError, LotNotFoundError
from src.seed_lot_domain.domain.entities.lot_status import LotStatus
from src.seed_lot_domain.domain.entities.seed_level import SeedLevel
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot


def _orphan_lot(lot_id: str, parent_lot_id: str, level: SeedLevel = SeedLevel.G1, quantity: float = 100.0) -> SeedLot:
    """A lot written straight into the store, bypassing the engine's checks."""
    return SeedLot(
        id=lot_id,
        variety_id=7,
        level=level,
        quantity_total=quantity,
        quantity_available=quantity,
        status=LotStatus.CERTIFIED,
        custodian_id=99,
        production_date=datetime(2024, 3, 15, tzinfo=pytz.utc),
        parent_lot_id=parent_lot_id,
    )


# --- ancestors ---


def test_ancestors_of_returns_root_first(lineage, genealogy_resolver):
    ancestors = genealogy_resolver.ancestors_of(lineage["L2"])

    assert [lot.id for lot in ancestors] == [lineage["L0"], lineage["L1"]]


def test_ancestors_of_root_is_empty(lineage, genealogy_resolver):
    assert genealogy_resolver.ancestors_of(lineage["L0"]) == []


def test_ancestors_of_unknown_lot(genealogy_resolver):
    with pytest.raises(LotNotFoundError):
        genealogy_resolver.ancestors_of("SL-GO-2024-DIH-0404")


def test_ancestors_of_with_missing_parent_reports_broken_lineage(genealogy_resolver, lot_repository):
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-DIH-0007", parent_lot_id="SL-GO-2024-DIH-0404"))

    with pytest.raises(BrokenLineageError) as exc_info:
        genealogy_resolver.ancestors_of("SL-G1-2024-DIH-0007")

    assert exc_info.value.missing_lot_id == "SL-GO-2024-DIH-0404"
    assert exc_info.value.is_client_error is False


def test_ancestors_of_follows_soft_deleted_parents(lineage, genealogy_resolver, lot_repository):
    l1 = lot_repository.get_lot(lineage["L1"])
    lot_repository.update_lot(l1.with_changes(is_active=False), expected_version=l1.version)

    ancestors = genealogy_resolver.ancestors_of(lineage["L2"])

    assert [lot.id for lot in ancestors] == [lineage["L0"], lineage["L1"]]


def test_ancestors_of_stops_on_parent_cycle(genealogy_resolver, lot_repository):
    """Two corrupted records naming each other as parent must not loop forever."""
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-AAA-0001", parent_lot_id="SL-G1-2024-BBB-0001"))
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-BBB-0001", parent_lot_id="SL-G1-2024-AAA-0001"))

    with pytest.raises(BrokenLineageError):
        genealogy_resolver.ancestors_of("SL-G1-2024-AAA-0001")


# --- descendants ---


def test_descendants_of_builds_tree(lineage, genealogy_resolver):
    tree = genealogy_resolver.descendants_of(lineage["L0"])

    assert tree.lot.id == lineage["L0"]
    assert [child.lot.id for child in tree.children] == [lineage["L1"]]
    assert [grandchild.lot.id for grandchild in tree.children[0].children] == [lineage["L2"]]
    assert tree.children[0].children[0].children == []
    assert [node.lot.id for node in tree.iter_descendants()] == [lineage["L1"], lineage["L2"]]
    assert tree.height() == 2


def test_descendants_are_loaded_lazily_and_once(lineage, genealogy_resolver, lot_repository, mocker):
    spy = mocker.spy(lot_repository, "find_children")

    tree = genealogy_resolver.descendants_of(lineage["L0"])
    assert spy.call_count == 0

    tree.children
    tree.children
    assert spy.call_count == 1
    spy.assert_called_once_with(lineage["L0"])


def test_descendants_skip_soft_deleted_lots(lineage, ledger_engine, genealogy_resolver, ledger_context):
    ledger_engine.delete_lot(lineage["L2"], ledger_context)

    tree = genealogy_resolver.descendants_of(lineage["L1"])

    assert tree.children == []


def test_descendant_tree_deeper_than_sequence_is_rejected(genealogy_resolver, lot_repository):
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-AAA-0001", parent_lot_id="SL-G1-2024-BBB-0001"))
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-BBB-0001", parent_lot_id="SL-G1-2024-AAA-0001"))

    tree = genealogy_resolver.descendants_of("SL-G1-2024-AAA-0001")

    with pytest.raises(BrokenLineageError):
        list(tree.iter_descendants())


def test_partial_transfer_sub_lot_appears_beside_its_source(lineage, ledger_engine, genealogy_resolver, ledger_context):
    result = ledger_engine.transfer(
        TransferLotDTO(lot_id=lineage["L2"], target_custodian_id=40, quantity=100.0), ledger_context
    )

    tree = genealogy_resolver.descendants_of(lineage["L1"])

    assert sorted(child.lot.id for child in tree.children) == sorted([lineage["L2"], result.transferred_lot.id])


# --- genealogy ---


def test_genealogy_of_middle_lot(lineage, genealogy_resolver):
    genealogy = genealogy_resolver.genealogy_of(lineage["L1"])

    assert genealogy.lot.id == lineage["L1"]
    assert [lot.id for lot in genealogy.ancestors] == [lineage["L0"]]
    assert genealogy.total_generations == 3

    data = genealogy.to_dict()
    assert set(data) == {"current_lot", "ancestors", "descendants", "total_generations"}
    assert data["current_lot"]["level"] == "G1"
    assert data["descendants"][0]["id"] == lineage["L2"]
    assert data["descendants"][0]["children"] == []


def test_genealogy_reads_are_repeatable(lineage, genealogy_resolver):
    first = genealogy_resolver.genealogy_of(lineage["L1"]).to_dict()
    second = genealogy_resolver.genealogy_of(lineage["L1"]).to_dict()

    assert first == second


def test_genealogy_of_single_lot(ledger_engine, genealogy_resolver, root_lot_command, ledger_context):
    lot = ledger_engine.create_root_lot(root_lot_command, ledger_context)

    genealogy = genealogy_resolver.genealogy_of(lot.id)

    assert genealogy.ancestors == []
    assert genealogy.total_generations == 1


# --- statistics ---


def test_stats_of_root(lineage, genealogy_resolver):
    stats = genealogy_resolver.stats_of(lineage["L0"])

    assert stats.total_ancestors == 0
    assert stats.total_descendants == 2
    assert stats.total_direct_children == 1
    assert stats.has_parent is False
    assert stats.depth == 1
    assert stats.descendants_by_level == {"G1": 1, "G2": 1}
    assert stats.total_quantity_in_descendants == 550.0
    assert stats.custodians == [20, 30]


def test_stats_of_middle_lot(lineage, genealogy_resolver):
    stats = genealogy_resolver.stats_of(lineage["L1"])

    assert stats.total_ancestors == 1
    assert stats.total_descendants == 1
    assert stats.has_parent is True
    assert stats.depth == 2
    assert stats.descendants_by_level == {"G2": 1}
    assert stats.custodians == [10, 30]


def test_stats_leave_transfer_sub_lots_out_of_counts_and_quantities(
    lineage, ledger_engine, genealogy_resolver, ledger_context
):
    ledger_engine.transfer(TransferLotDTO(lot_id=lineage["L2"], target_custodian_id=40, quantity=100.0), ledger_context)

    stats = genealogy_resolver.stats_of(lineage["L1"])

    assert stats.total_descendants == 1
    assert stats.total_direct_children == 1
    assert stats.descendants_by_level == {"G2": 1}
    assert stats.total_quantity_in_descendants == 150.0
    assert stats.custodians == [10, 30, 40]
    assert genealogy_resolver.stats_of(lineage["L0"]).total_quantity_in_descendants == 550.0


# --- consistency ---


def test_check_consistency_of_healthy_tree(lineage, ledger_engine, genealogy_resolver, ledger_context):
    ledger_engine.transfer(TransferLotDTO(lot_id=lineage["L2"], target_custodian_id=40, quantity=100.0), ledger_context)

    report = genealogy_resolver.check_consistency(lineage["L0"])

    assert report.is_consistent
    assert report.issues == []
    assert report.lot_id == lineage["L0"]


def test_check_consistency_walks_sub_lots_split_from_a_root(
    lineage, ledger_engine, genealogy_resolver, lot_repository, ledger_context, derived_command
):
    split = ledger_engine.transfer(
        TransferLotDTO(lot_id=lineage["L0"], target_custodian_id=40, quantity=100.0), ledger_context
    ).transferred_lot
    child = ledger_engine.create_derived_lot(derived_command(split.id, SeedLevel.G1, 60.0), ledger_context)

    assert genealogy_resolver.check_consistency(lineage["L0"]).is_consistent

    stored = lot_repository.get_lot(child.id)
    lot_repository.update_lot(stored.with_changes(quantity_available=10.0), expected_version=stored.version)

    report = genealogy_resolver.check_consistency(lineage["L0"])

    assert report.issues == [f"conservation broken at lot {child.id}: available + consumed (10.0) != total (60.0)"]


def test_check_consistency_reports_broken_conservation(lineage, genealogy_resolver, lot_repository):
    l1 = lot_repository.get_lot(lineage["L1"])
    lot_repository.update_lot(l1.with_changes(quantity_available=300.0), expected_version=l1.version)

    report = genealogy_resolver.check_consistency(lineage["L0"])

    assert not report.is_consistent
    assert report.issues == [
        f"conservation broken at lot {lineage['L1']}: available + consumed (450.0) != total (400.0)"
    ]


def test_check_consistency_reports_children_exceeding_parent(lineage, genealogy_resolver, lot_repository):
    l0 = lot_repository.get_lot(lineage["L0"])
    lot_repository.update_lot(
        l0.with_changes(quantity_total=300.0, quantity_available=0.0), expected_version=l0.version
    )

    report = genealogy_resolver.check_consistency(lineage["L0"])

    assert any(issue.startswith(f"quantity inconsistency at lot {lineage['L0']}") for issue in report.issues)
    assert any(issue.startswith(f"conservation broken at lot {lineage['L0']}") for issue in report.issues)


def test_check_consistency_reports_invalid_hierarchy(lineage, genealogy_resolver, lot_repository):
    lot_repository.add_lot(_orphan_lot("SL-G3-2024-DIH-0001", parent_lot_id=lineage["L0"], level=SeedLevel.G3))

    report = genealogy_resolver.check_consistency(lineage["L0"])

    assert f"invalid hierarchy: {lineage['L0']} (GO) -> SL-G3-2024-DIH-0001 (G3)" in report.issues


def test_check_consistency_reports_cycles(genealogy_resolver, lot_repository):
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-AAA-0001", parent_lot_id="SL-G1-2024-BBB-0001"))
    lot_repository.add_lot(_orphan_lot("SL-G1-2024-BBB-0001", parent_lot_id="SL-G1-2024-AAA-0001"))

    report = genealogy_resolver.check_consistency("SL-G1-2024-AAA-0001")

    assert "cycle detected at lot SL-G1-2024-AAA-0001" in report.issues


def test_check_consistency_of_unknown_lot(genealogy_resolver):
    with pytest.raises(LotNotFoundError):
        genealogy_resolver.check_consistency("missing")
