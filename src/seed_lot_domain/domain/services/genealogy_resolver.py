# src/seed_lot_domain/domain/services/genealogy_resolver.py
"""Ancestry and descendant trees of seed lots."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from src.common.dtos.seed_lot_dtos import ConsistencyReportDTO, GenealogyStatsDTO, LotFilterDTO
from src.common.exceptions.custom_exceptions import BrokenLineageError, LotNotFoundError
from src.seed_lot_domain.domain.entities.seed_level import LEVEL_SEQUENCE, is_valid_derivation
from src.seed_lot_domain.domain.entities.seed_lot import SeedLot, round_quantity
from src.seed_lot_domain.domain.repositories.seed_lot_repository import ISeedLotRepository

logger = logging.getLogger(__name__)

# A lineage can never be longer than the generation sequence
MAX_GENEALOGY_DEPTH = len(LEVEL_SEQUENCE)

QUANTITY_TOLERANCE = 1e-6


class GenealogyNode:
    """
    One lot in a descendant tree.

    Children are fetched from the store the first time `children` is read and
    kept on the node afterwards.
    """

    def __init__(self, lot: SeedLot, load_children: Callable[[str], list[SeedLot]], depth: int = 0) -> None:
        self.lot = lot
        self.depth = depth
        self._load_children = load_children
        self._children: Optional[list["GenealogyNode"]] = None

    @property
    def children(self) -> list["GenealogyNode"]:
        if self._children is None:
            if self.depth >= MAX_GENEALOGY_DEPTH:
                raise BrokenLineageError(self.lot.id, reason="descendant tree deeper than the generation sequence")
            self._children = [
                GenealogyNode(child, self._load_children, self.depth + 1) for child in self._load_children(self.lot.id)
            ]
        return self._children

    def iter_descendants(self) -> Iterator["GenealogyNode"]:
        """Depth-first walk over every node below this one."""
        for child in self.children:
            yield child
            yield from child.iter_descendants()

    def height(self) -> int:
        """Number of generations below this node."""
        return max((1 + child.height() for child in self.children), default=0)

    def to_dict(self) -> dict[str, Any]:
        data = self.lot.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass
class Genealogy:
    lot: SeedLot
    ancestors: list[SeedLot]
    descendants: GenealogyNode

    @property
    def total_generations(self) -> int:
        return len(self.ancestors) + self.descendants.height() + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_lot": self.lot.to_dict(),
            "ancestors": [ancestor.to_dict() for ancestor in self.ancestors],
            "descendants": self.descendants.to_dict()["children"],
            "total_generations": self.total_generations,
        }


class GenealogyResolver:
    """Read-only walks over parent/child pointers stored in the lot repository."""

    def __init__(self, lot_repo: ISeedLotRepository) -> None:
        self.lot_repo = lot_repo

    def ancestors_of(self, lot_id: str) -> list[SeedLot]:
        """
        Returns the lineage above a lot, root first, without the lot itself.

        Raises BrokenLineageError if a referenced parent is missing or the
        chain is longer than the generation sequence allows.
        """
        lot = self._require_lot(lot_id)
        ancestors: list[SeedLot] = []
        current = lot
        while current.parent_lot_id is not None:
            if len(ancestors) >= MAX_GENEALOGY_DEPTH:
                raise BrokenLineageError(lot.id, reason="ancestor chain longer than the generation sequence")
            parent = self.lot_repo.get_lot(current.parent_lot_id, include_inactive=True)
            if parent is None:
                raise BrokenLineageError(current.id, current.parent_lot_id)
            ancestors.append(parent)
            current = parent
        ancestors.reverse()
        return ancestors

    def descendants_of(self, lot_id: str) -> GenealogyNode:
        """Returns the lazily expanded tree rooted at the lot."""
        return GenealogyNode(self._require_lot(lot_id), self.lot_repo.find_children)

    def genealogy_of(self, lot_id: str) -> Genealogy:
        lot = self._require_lot(lot_id)
        return Genealogy(
            lot=lot,
            ancestors=self.ancestors_of(lot_id),
            descendants=GenealogyNode(lot, self.lot_repo.find_children),
        )

    def stats_of(self, lot_id: str) -> GenealogyStatsDTO:
        """
        Summarizes a lot's lineage.

        Transfer sub-lots hold seed already counted on their source lot, so they
        only contribute their custodian.
        """
        genealogy = self.genealogy_of(lot_id)
        descendants = [node.lot for node in genealogy.descendants.iter_descendants()]
        produced = [lot for lot in descendants if not lot.is_transfer_split]

        custodians = {lot.custodian_id for lot in genealogy.ancestors + descendants if lot.custodian_id is not None}
        by_level = Counter(lot.level.value for lot in produced)
        direct_children = [node.lot for node in genealogy.descendants.children if not node.lot.is_transfer_split]

        return GenealogyStatsDTO(
            total_ancestors=len(genealogy.ancestors),
            total_descendants=len(produced),
            total_direct_children=len(direct_children),
            has_parent=genealogy.lot.parent_lot_id is not None,
            depth=len(genealogy.ancestors) + 1,
            descendants_by_level=dict(by_level),
            total_quantity_in_descendants=round_quantity(sum(lot.quantity_total for lot in produced)),
            custodians=sorted(custodians),
        )

    def check_consistency(self, lot_id: str) -> ConsistencyReportDTO:
        """
        Audits the tree below a lot and reports every problem found.

        Checks, per lot: no repeated ids (cycles), children one level down,
        derived children within the parent's total, and conservation of the
        lot's own quantity against what its children and transfer splits took.
        """
        root = self._require_lot(lot_id)
        report = ConsistencyReportDTO(lot_id=root.id)
        visited: set[str] = set()
        pending = [root]

        while pending:
            lot = pending.pop()
            if lot.id in visited:
                report.issues.append(f"cycle detected at lot {lot.id}")
                continue
            visited.add(lot.id)

            children = self.lot_repo.find_lots(LotFilterDTO(parent_lot_id=lot.id, include_inactive=True))
            splits = self.lot_repo.find_lots(LotFilterDTO(source_lot_id=lot.id, include_inactive=True))
            derived = [child for child in children if not child.is_transfer_split]

            for child in derived:
                if not is_valid_derivation(lot.level, child.level):
                    report.issues.append(f"invalid hierarchy: {lot.id} ({lot.level}) -> {child.id} ({child.level})")

            derived_total = sum(child.quantity_total for child in derived)
            if derived_total > lot.quantity_total + QUANTITY_TOLERANCE:
                report.issues.append(
                    f"quantity inconsistency at lot {lot.id}: children total ({derived_total}) "
                    f"> parent ({lot.quantity_total})"
                )

            accounted = lot.quantity_available + derived_total + sum(split.quantity_total for split in splits)
            if abs(accounted - lot.quantity_total) > QUANTITY_TOLERANCE:
                report.issues.append(
                    f"conservation broken at lot {lot.id}: available + consumed ({accounted}) "
                    f"!= total ({lot.quantity_total})"
                )

            pending.extend(children)
            # Sub-lots split from a root share its missing parent and are only reachable from their source
            pending.extend(split for split in splits if split.parent_lot_id is None)

        if report.issues:
            logger.warning(f"Genealogy of lot {root.id} has {len(report.issues)} consistency issue(s)")
        return report

    def _require_lot(self, lot_id: str) -> SeedLot:
        lot = self.lot_repo.get_lot(lot_id)
        if lot is None:
            raise LotNotFoundError(lot_id)
        return lot
