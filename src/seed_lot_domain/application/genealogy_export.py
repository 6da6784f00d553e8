"""Text exports of a lot genealogy: JSON, CSV and Graphviz DOT."""

import csv
import io
import json

from src.common.exceptions.custom_exceptions import InvalidPayloadError
from src.seed_lot_domain.domain.entities.lot_status import LotStatus
from src.seed_lot_domain.domain.services.genealogy_resolver import Genealogy, GenealogyNode

SUPPORTED_FORMATS = ("json", "csv", "dot")

_CSV_HEADER = ["parent_id", "parent_level", "child_id", "child_level", "quantity", "production_date", "status"]

_DOT_COLORS = {LotStatus.CERTIFIED: "green", LotStatus.REJECTED: "red"}


def export_genealogy(genealogy: Genealogy, fmt: str = "json") -> str:
    fmt = (fmt or "").lower()
    if fmt == "json":
        return json.dumps(genealogy.to_dict(), indent=2)
    if fmt == "csv":
        return _to_csv(genealogy)
    if fmt == "dot":
        return _to_dot(genealogy)
    raise InvalidPayloadError("format", f"unsupported export format {fmt!r}, expected one of {SUPPORTED_FORMATS}")


def _to_csv(genealogy: Genealogy) -> str:
    """One row per parent/child edge, ancestors included."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(_CSV_HEADER)

    chain = genealogy.ancestors + [genealogy.lot]
    for parent, child in zip(chain, chain[1:]):
        writer.writerow(_edge_row(parent.id, parent.level.value, child))

    def write_edges(node: GenealogyNode) -> None:
        for child in node.children:
            writer.writerow(_edge_row(node.lot.id, node.lot.level.value, child.lot))
            write_edges(child)

    write_edges(genealogy.descendants)
    return buffer.getvalue()


def _edge_row(parent_id: str, parent_level: str, child) -> list:
    return [
        parent_id,
        parent_level,
        child.id,
        child.level.value,
        child.quantity_total,
        child.production_date.date().isoformat(),
        child.status.value,
    ]


def _to_dot(genealogy: Genealogy) -> str:
    lines = ["digraph Genealogy {", "  rankdir=TB;", "  node [shape=box];"]

    def add_node(lot) -> None:
        label = f"{lot.id}\\n{lot.level.value}\\n{lot.quantity_total:g}kg"
        color = _DOT_COLORS.get(lot.status, "black")
        lines.append(f'  "{lot.id}" [label="{label}", color="{color}"];')

    chain = genealogy.ancestors + [genealogy.lot]
    for lot in chain:
        add_node(lot)
    for parent, child in zip(chain, chain[1:]):
        lines.append(f'  "{parent.id}" -> "{child.id}";')

    def add_subtree(node: GenealogyNode) -> None:
        for child in node.children:
            add_node(child.lot)
            lines.append(f'  "{node.lot.id}" -> "{child.lot.id}";')
            add_subtree(child)

    add_subtree(genealogy.descendants)
    lines.append("}")
    return "\n".join(lines)
