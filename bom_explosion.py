"""
BOM (Bill of Materials) Explosion

Expands a finished good into the total quantities of the base components
(items with no BOM of their own) needed to produce it, through every level
of the BOM graph.

Quantities are exact fractions throughout; rounding to each component's
decimal precision happens once, when the aggregated result is emitted.
"""

import logging
from datetime import date
from fractions import Fraction
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Set, Tuple

import pandas as pd

from bom_config import (
    DEFAULT_DECIMAL_PRECISION,
    MAX_DECIMAL_PRECISION,
    MAX_EXPLOSION_DEPTH,
    MIN_DECIMAL_PRECISION,
    ROUNDING,
)
from bom_errors import (
    CyclicBom,
    ExplosionTooDeep,
    InvalidPrecision,
    InvalidQuantity,
    InvalidScrapRate,
    UnknownItem,
)
from bom_model import Bom, BomGraph, BomLine, ExplodedComponent, ExplosionResult, Item, round_quantity, to_fraction
from bom_sources import InMemoryEntityStore
from bom_validation import validate_graph

logger = logging.getLogger(__name__)

Occurrence = Tuple[str, Fraction, Tuple[str, ...]]


class TreeNode(NamedTuple):
    """One node of an explosion tree."""
    level: int
    item_id: str
    quantity: Fraction
    path: Tuple[str, ...]
    is_base: bool


# ---------- Explosion Engine ----------

def walk(graph: BomGraph, root_item_id: str, quantity, as_of: date,
         include_optional: bool = False, max_depth: int = MAX_EXPLOSION_DEPTH,
         items=None) -> Iterator[TreeNode]:
    """
    Depth-first walk of the explosion tree of ``root_item_id``.

    Yields every node, manufactured or base, in BOM line order. ``path`` of a
    node lists the finished goods above it, root first.

    Raises:
        InvalidQuantity: quantity is not positive, or a BOM has a
            non-positive output or line quantity
        InvalidScrapRate: a line of an expanded BOM has scrap of 100% or more
        CyclicBom: an item is reached again below itself
        ExplosionTooDeep: more than ``max_depth`` BOM levels
        OverlappingEffectivePeriod: two BOMs of one item apply on ``as_of``
        UnknownItem: ``items`` is given and lacks an item of the tree
    """
    qty = to_fraction(quantity)
    if qty <= 0:
        raise InvalidQuantity(f"Quantity to explode must be greater than 0, got {qty}",
                              item_id=root_item_id)
    return _walk(graph, str(root_item_id), qty, as_of, include_optional, max_depth, (), items)


def _walk(graph: BomGraph, item_id: str, qty: Fraction, as_of: date,
          include_optional: bool, max_depth: int, path: Tuple[str, ...],
          items=None, parent_bom_id: Optional[str] = None) -> Iterator[TreeNode]:
    if item_id in path:
        raise CyclicBom(path[path.index(item_id):] + (item_id,))
    if items is not None and items.get_item(item_id) is None:
        raise UnknownItem(item_id, bom_id=parent_bom_id)

    bom = graph.active_bom(item_id, as_of)
    if bom is None:
        yield TreeNode(len(path), item_id, qty, path, True)
        return

    if len(path) >= max_depth:
        raise ExplosionTooDeep(path + (item_id,), max_depth)

    yield TreeNode(len(path), item_id, qty, path, False)

    scale = qty / _output_quantity(bom)
    below = path + (item_id,)
    for line in _lines_to_explode(bom, include_optional):
        required = line.quantity_per_unit * scale / line.scrap_factor
        logger.debug("%s -> %s: %s", item_id, line.component_item_id, required)
        yield from _walk(graph, line.component_item_id, required, as_of,
                         include_optional, max_depth, below, items, bom.bom_id)


def _output_quantity(bom: Bom) -> Fraction:
    if bom.output_quantity <= 0:
        raise InvalidQuantity(
            f"BOM {bom.bom_id}: output quantity must be greater than 0, got {bom.output_quantity}",
            bom_id=bom.bom_id, item_id=bom.finished_good_id)
    return bom.output_quantity


def _lines_to_explode(bom: Bom, include_optional: bool) -> List[BomLine]:
    """Check every line of ``bom``, then return the ones to expand."""
    for line in bom.lines:
        if not 0 <= line.scrap_percentage < 100:
            raise InvalidScrapRate(bom.bom_id, line.component_item_id, line.scrap_percentage)
        if line.quantity_per_unit <= 0:
            raise InvalidQuantity(
                f"BOM {bom.bom_id}: quantity for component {line.component_item_id} "
                f"must be greater than 0",
                bom_id=bom.bom_id, item_id=line.component_item_id)
    return [line for line in bom.lines if include_optional or not line.is_optional]


def explode_occurrences(graph: BomGraph, root_item_id: str, quantity, as_of: date,
                        include_optional: bool = False,
                        max_depth: int = MAX_EXPLOSION_DEPTH, items=None) -> Iterator[Occurrence]:
    """Stream of ``(base item id, exact quantity, path)``, one per tree leaf."""
    nodes = walk(graph, root_item_id, quantity, as_of, include_optional, max_depth, items)
    return ((node.item_id, node.quantity, node.path) for node in nodes if node.is_base)


# ---------- Aggregator ----------

def aggregate(occurrences: Iterable[Occurrence],
              precision_for: Optional[Callable[[str], int]] = None,
              rounding: str = ROUNDING) -> ExplosionResult:
    """
    Merge repeated base components into one total each.

    Exact quantities are summed first and rounded afterwards, so the result
    does not depend on how many branches reached a component.
    """
    totals: Dict[str, Fraction] = {}
    paths: Dict[str, Set[Tuple[str, ...]]] = {}
    for item_id, qty, path in occurrences:
        totals[item_id] = totals.get(item_id, Fraction(0)) + to_fraction(qty)
        paths.setdefault(item_id, set()).add(tuple(path))

    if precision_for is None:
        precision_for = _default_precision

    components = []
    for item_id in sorted(totals):
        precision = precision_for(item_id)
        components.append(
            ExplodedComponent(
                item_id=item_id,
                quantity=round_quantity(totals[item_id], precision, rounding),
                exact_quantity=totals[item_id],
                precision=precision,
                paths=tuple(sorted(paths[item_id])),
            )
        )
    return ExplosionResult(components)


def _default_precision(item_id: str) -> int:
    return DEFAULT_DECIMAL_PRECISION


def precision_lookup(items) -> Callable[[str], int]:
    """Precision resolver backed by an entity store."""
    if items is None:
        return _default_precision

    def lookup(item_id: str) -> int:
        if items.get_item(item_id) is None:
            raise UnknownItem(item_id)
        precision = items.get_decimal_precision(item_id)
        if not MIN_DECIMAL_PRECISION <= precision <= MAX_DECIMAL_PRECISION:
            raise InvalidPrecision(item_id, precision, MIN_DECIMAL_PRECISION, MAX_DECIMAL_PRECISION)
        return precision

    return lookup


def explode(graph: BomGraph, root_item_id: str, quantity, as_of: date,
            include_optional: bool = False, items=None,
            max_depth: int = MAX_EXPLOSION_DEPTH) -> ExplosionResult:
    """
    Explode ``quantity`` units of ``root_item_id`` into base components.

    Args:
        graph: Snapshot of the active BOMs
        root_item_id: Item to produce
        quantity: Units to produce, must be positive
        as_of: Date selecting which BOM revision applies
        include_optional: Expand optional lines too
        items: Optional entity store supplying decimal precision per item
        max_depth: Maximum number of nested BOM levels

    Returns:
        ExplosionResult ordered by component id

    The first structural problem met aborts the explosion with a BomError.
    """
    occurrences = explode_occurrences(graph, root_item_id, quantity, as_of,
                                      include_optional, max_depth, items)
    result = aggregate(occurrences, precision_lookup(items))
    logger.info("Exploded %s x %s as of %s: %d base component(s)",
                quantity, root_item_id, as_of, len(result))
    return result


# ---------- Facade ----------

class BOMExplosion:
    """
    Convenience wrapper binding a BOM graph, an optional entity store and
    an effectivity date.
    """

    def __init__(self, graph: BomGraph, items=None, as_of: Optional[date] = None,
                 max_depth: int = MAX_EXPLOSION_DEPTH):
        """
        Args:
            graph: BOM graph snapshot
            items: Entity store used for names and decimal precision
            as_of: Effectivity date; defaults to today
            max_depth: Maximum number of nested BOM levels
        """
        self.graph = graph
        self.items = items
        self.as_of = as_of or date.today()
        self.max_depth = max_depth

    def explode(self, sku: str, quantity=1, include_optional: bool = False) -> ExplosionResult:
        return explode(self.graph, sku, quantity, self.as_of, include_optional,
                       self.items, self.max_depth)

    def explode_tree(self, sku: str, quantity=1,
                     include_optional: bool = False) -> List[Tuple[int, str, Fraction, str]]:
        """
        Full explosion tree.

        Returns:
            List of tuples: (level, sku, quantity, item_type)
        """
        rows = []
        for node in walk(self.graph, sku, quantity, self.as_of, include_optional,
                         self.max_depth, self.items):
            if node.is_base:
                item_type = "Raw Material"
            elif node.level == 0:
                item_type = "Finished Good"
            else:
                item_type = "Compound"
            rows.append((node.level, node.item_id, node.quantity, item_type))
        return rows

    def display_topology(self, sku: str, quantity=1, include_optional: bool = False) -> str:
        """Indented text rendering of the explosion tree."""
        lines = []
        lines.append("=" * 80)
        lines.append(f"BOM EXPLOSION FOR: {sku} (Quantity: {quantity}, As of: {self.as_of})")
        lines.append("=" * 80)
        lines.append("")

        for level, item_sku, qty, item_type in self.explode_tree(sku, quantity, include_optional):
            indent = "  " * level
            prefix = "└─ " if level > 0 else ""
            lines.append(f"{indent}{prefix}{self._label(item_sku)} (Qty: {float(qty):.2f}) [{item_type}]")

        lines.append("")
        lines.append("=" * 80)

        return "\n".join(lines)

    def get_summary(self, sku: str, quantity=1, include_optional: bool = False):
        """Rounded total per base component."""
        return self.explode(sku, quantity, include_optional).quantities()

    def to_dataframe(self, sku: str, quantity=1, include_optional: bool = False) -> pd.DataFrame:
        """Explosion tree as a DataFrame, one row per node."""
        rows = [
            {
                "level": level,
                "component_id": item_sku,
                "component_name": self._name(item_sku),
                "required_qty": float(qty),
                "item_type": item_type,
            }
            for level, item_sku, qty, item_type in self.explode_tree(sku, quantity, include_optional)
        ]
        return pd.DataFrame(rows, columns=["level", "component_id", "component_name",
                                           "required_qty", "item_type"])

    def where_used(self, sku: str) -> List[str]:
        return self.graph.where_used(sku)

    def _name(self, sku: str) -> str:
        item = self.items.get_item(sku) if self.items is not None else None
        return item.name if item is not None and item.name else sku

    def _label(self, sku: str) -> str:
        name = self._name(sku)
        return sku if name == sku else f"{sku} - {name}"


# ---------- Sample Data ----------

def create_sample_bom_data() -> Tuple[List[Bom], List[Item]]:
    """
    Sample BOMs: two widgets sharing sub-assemblies and screws.

    Returns:
        (boms, items)
    """
    def bom(fg, *lines):
        return Bom(bom_id=f"BOM-{fg}", finished_good_id=fg,
                   lines=[BomLine(c, q) for c, q in lines])

    boms = [
        # Finished Goods
        bom("FG001", ("COMP001", 2), ("COMP002", 1), ("RM001", 4)),
        bom("FG002", ("COMP001", 1), ("COMP003", 2), ("RM002", "0.5")),
        # Compounds
        bom("COMP001", ("RM003", 2), ("RM004", 1), ("RM001", 8)),
        bom("COMP002", ("RM005", 1), ("RM006", 1), ("RM001", 4)),
        bom("COMP003", ("RM007", 2), ("RM008", 1), ("RM002", "0.2")),
    ]
    names = {
        "FG001": "Widget A", "FG002": "Widget B",
        "COMP001": "Frame Assembly", "COMP002": "Motor Assembly", "COMP003": "Gear Assembly",
        "RM001": "Screws", "RM002": "Lubricant", "RM003": "Steel Sheet", "RM004": "Paint",
        "RM005": "Motor", "RM006": "Wiring", "RM007": "Gear", "RM008": "Shaft",
    }
    items = [
        Item(sku, name, is_manufactured=not sku.startswith("RM"),
             decimal_precision=2 if sku == "RM002" else 0)
        for sku, name in names.items()
    ]
    return boms, items


def create_laptop_bom_data() -> Tuple[List[Bom], List[Item]]:
    """Laptop -> Motherboard -> Screw, plus RAM with 5% scrap and an optional case."""
    boms = [
        Bom(
            bom_id="BOM-LAPTOP",
            finished_good_id="LAPTOP",
            output_quantity=1,
            lines=[
                BomLine("MOTHERBOARD", 1),
                BomLine("RAM", 2, scrap_percentage=5),
                BomLine("CASE", 1, is_optional=True),
            ],
        ),
        Bom(
            bom_id="BOM-MOTHERBOARD",
            finished_good_id="MOTHERBOARD",
            output_quantity=1,
            lines=[BomLine("SCREW", 4)],
        ),
    ]
    items = [
        Item("LAPTOP", "Laptop", is_manufactured=True, decimal_precision=0),
        Item("MOTHERBOARD", "Motherboard", is_manufactured=True, decimal_precision=0),
        Item("RAM", "RAM stick", decimal_precision=0),
        Item("SCREW", "Screw", decimal_precision=0),
        Item("CASE", "Carry case", decimal_precision=0),
    ]
    return boms, items


def main():
    """
    Demonstrate BOM validation and explosion on the sample data.
    """
    boms, items = create_sample_bom_data()
    graph = BomGraph.from_boms(boms)
    store = InMemoryEntityStore(items)

    report = validate_graph(graph, store)
    print(f"Validation: {'OK' if report.is_valid else 'FAILED'}")
    for violation in report.violations:
        print(f"  {violation.code}: {violation.message}")

    bom_tool = BOMExplosion(graph, store)

    for sku in ("FG001", "FG002"):
        print(bom_tool.display_topology(sku, 1))
        print(f"\nRAW MATERIALS SUMMARY FOR {sku}:")
        print("-" * 40)
        for component, qty in bom_tool.get_summary(sku, 1).items():
            print(f"{component}: {qty}")
        print("\n" + "=" * 80 + "\n")


if __name__ == "__main__":
    main()
