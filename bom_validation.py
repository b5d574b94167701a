"""
BOM graph validation.

Checks a whole BomGraph for structural problems and reports every violation
found in a single pass. Validation never raises; the caller decides whether
a non-empty report blocks persistence.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Type

from bom_errors import (
    BomError,
    BomValidationError,
    CyclicBom,
    DuplicateBomCode,
    DuplicateComponent,
    EmptyBom,
    InvalidDateRange,
    InvalidQuantity,
    InvalidScrapRate,
    OverlappingEffectivePeriod,
    SelfReference,
    UnknownItem,
)
from bom_model import Bom, BomGraph

logger = logging.getLogger(__name__)

# DFS node states
_UNVISITED, _ON_STACK, _DONE = 0, 1, 2


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of validating a BOM graph."""
    violations: Tuple[BomError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def of_type(self, error_type: Type[BomError]) -> List[BomError]:
        return [v for v in self.violations if isinstance(v, error_type)]

    def for_bom(self, bom_id: str) -> List[BomError]:
        return [v for v in self.violations if v.bom_id == bom_id]

    def raise_for_violations(self) -> None:
        if self.violations:
            raise BomValidationError(self)


def validate_graph(graph: BomGraph, items=None) -> ValidationReport:
    """
    Validate every BOM in ``graph``.

    Args:
        graph: Snapshot of the active BOMs
        items: Optional entity store; when given, every referenced item
               must exist in it

    Returns:
        ValidationReport listing all violations, ordered by finished good
    """
    violations: List[BomError] = []

    for fg in graph.finished_goods():
        boms = graph.boms_for(fg)
        for bom in boms:
            violations.extend(_check_bom(bom, items))
        violations.extend(_check_overlaps(fg, boms))

    violations.extend(_check_codes(graph))
    violations.extend(_find_cycles(graph))

    report = ValidationReport(tuple(violations))
    if report.is_valid:
        logger.info("BOM graph valid: %d BOMs", len(graph))
    else:
        logger.warning(
            "BOM graph has %d violation(s): %s",
            len(violations),
            ", ".join(sorted(Counter(v.code for v in violations))),
        )
    return report


def _check_bom(bom: Bom, items=None) -> List[BomError]:
    """Single-BOM rules: lines, quantities, dates, references."""
    found: List[BomError] = []

    if items is not None and items.get_item(bom.finished_good_id) is None:
        found.append(UnknownItem(bom.finished_good_id, bom_id=bom.bom_id))

    if bom.output_quantity <= 0:
        found.append(InvalidQuantity(
            f"BOM {bom.bom_id}: output quantity must be greater than 0, got {bom.output_quantity}",
            bom_id=bom.bom_id, item_id=bom.finished_good_id))

    if (bom.effective_from is not None and bom.effective_to is not None
            and bom.effective_from > bom.effective_to):
        found.append(InvalidDateRange(bom.bom_id, bom.effective_from, bom.effective_to))

    if not bom.lines:
        found.append(EmptyBom(bom.bom_id, bom.finished_good_id))

    seen = set()
    duplicates = set()
    for line in bom.lines:
        component = line.component_item_id
        first_time = component not in seen
        if component == bom.finished_good_id:
            found.append(SelfReference(bom.bom_id, component))
        if not first_time and component not in duplicates:
            found.append(DuplicateComponent(bom.bom_id, component))
            duplicates.add(component)
        seen.add(component)

        if line.quantity_per_unit <= 0:
            found.append(InvalidQuantity(
                f"BOM {bom.bom_id}: quantity for component {component} must be greater than 0",
                bom_id=bom.bom_id, item_id=component))
        if not 0 <= line.scrap_percentage < 100:
            found.append(InvalidScrapRate(bom.bom_id, component, line.scrap_percentage))
        if items is not None and items.get_item(component) is None and first_time:
            found.append(UnknownItem(component, bom_id=bom.bom_id))

    return found


def _check_overlaps(fg: str, boms) -> List[BomError]:
    found: List[BomError] = []
    for i, first in enumerate(boms):
        for second in boms[i + 1:]:
            if first.overlaps(second):
                found.append(OverlappingEffectivePeriod(fg, [first.bom_id, second.bom_id]))
    return found


def _check_codes(graph: BomGraph) -> List[BomError]:
    by_code: Dict[str, List[str]] = {}
    for bom in graph:
        if bom.code and bom.code.strip():
            by_code.setdefault(bom.code.strip().upper(), []).append(bom.bom_id)
    return [
        DuplicateBomCode(code, sorted(ids))
        for code, ids in sorted(by_code.items())
        if len(ids) > 1
    ]


def _find_cycles(graph: BomGraph) -> List[CyclicBom]:
    """
    Depth-first search over finished good -> component edges.

    Roots and children are visited in ascending id order, so the reported
    paths are the same on every run. Each back edge is reported once.
    """
    state: Dict[str, int] = {}
    cycles: List[CyclicBom] = []

    def visit(node: str, stack: Tuple[str, ...]) -> None:
        state[node] = _ON_STACK
        stack = stack + (node,)
        for child in graph.component_ids(node):
            if child == node:
                # Reported as SelfReference
                continue
            child_state = state.get(child, _UNVISITED)
            if child_state == _ON_STACK:
                start = stack.index(child)
                path = stack[start:] + (child,)
                cycles.append(CyclicBom(path, bom_id=_bom_with_component(graph, node, child)))
            elif child_state == _UNVISITED and graph.is_manufactured(child):
                visit(child, stack)
        state[node] = _DONE

    for fg in graph.finished_goods():
        if state.get(fg, _UNVISITED) == _UNVISITED:
            visit(fg, ())

    return cycles


def _bom_with_component(graph: BomGraph, fg: str, component: str) -> Optional[str]:
    for bom in graph.boms_for(fg):
        if component in bom.component_ids():
            return bom.bom_id
    return None
