"""
BOM error taxonomy.

The validator collects instances of these classes into a report; the
explosion engine raises them. Every error keeps the identifiers needed to
render an actionable message (BOM id, item id, path).
"""

from typing import Optional, Sequence, Tuple


class BomError(Exception):
    """Base class for every BOM integrity or explosion problem."""

    def __init__(self, message: str, bom_id: Optional[str] = None,
                 item_id: Optional[str] = None, path: Sequence[str] = ()):
        super().__init__(message)
        self.message = message
        self.bom_id = bom_id
        self.item_id = item_id
        self.path: Tuple[str, ...] = tuple(path)

    @property
    def code(self) -> str:
        return type(self).__name__

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return (self.message, self.bom_id, self.item_id, self.path) == (
            other.message, other.bom_id, other.item_id, other.path)

    def __hash__(self):
        return hash((type(self).__name__, self.message, self.bom_id, self.item_id, self.path))

    def __repr__(self):
        return f"{self.code}({self.message!r})"


class DuplicateComponent(BomError):
    """A BOM lists the same component on more than one line."""

    def __init__(self, bom_id: str, item_id: str):
        super().__init__(
            f"BOM {bom_id} lists component {item_id} more than once",
            bom_id=bom_id, item_id=item_id)


class SelfReference(BomError):
    """A BOM line references the BOM's own finished good."""

    def __init__(self, bom_id: str, item_id: str):
        super().__init__(
            f"BOM {bom_id}: finished good {item_id} cannot be a component of itself",
            bom_id=bom_id, item_id=item_id)


class InvalidDateRange(BomError):
    def __init__(self, bom_id: str, effective_from, effective_to):
        super().__init__(
            f"BOM {bom_id}: effective_from {effective_from} is after effective_to {effective_to}",
            bom_id=bom_id)
        self.effective_from = effective_from
        self.effective_to = effective_to


class OverlappingEffectivePeriod(BomError):
    """Two active BOMs of one finished good apply on the same date."""

    def __init__(self, item_id: str, bom_ids: Sequence[str]):
        ids = tuple(bom_ids)
        super().__init__(
            f"Finished good {item_id} has overlapping active BOMs: {', '.join(ids)}",
            bom_id=ids[0] if ids else None, item_id=item_id)
        self.bom_ids = ids


class CyclicBom(BomError):
    """
    Following component -> finished good edges revisits a node.

    ``path`` is the full cycle, with the first node repeated at the end,
    e.g. ``("A", "B", "C", "A")``.
    """

    def __init__(self, path: Sequence[str], bom_id: Optional[str] = None):
        path = tuple(path)
        super().__init__(
            f"Cyclic BOM structure: {' -> '.join(path)}",
            bom_id=bom_id, item_id=path[0] if path else None, path=path)


class InvalidScrapRate(BomError):
    def __init__(self, bom_id: str, item_id: str, scrap_percentage):
        super().__init__(
            f"BOM {bom_id}: scrap percentage {scrap_percentage} for component {item_id} "
            f"must be at least 0 and below 100",
            bom_id=bom_id, item_id=item_id)
        self.scrap_percentage = scrap_percentage


class ExplosionTooDeep(BomError):
    def __init__(self, path: Sequence[str], max_depth: int):
        path = tuple(path)
        super().__init__(
            f"BOM explosion exceeded {max_depth} levels at {' -> '.join(path)}",
            item_id=path[-1] if path else None, path=path)
        self.max_depth = max_depth


class UnknownItem(BomError):
    """A referenced identifier is missing from the entity store snapshot."""

    def __init__(self, item_id: str, bom_id: Optional[str] = None):
        where = f" (referenced by BOM {bom_id})" if bom_id else ""
        super().__init__(f"Item {item_id} not found{where}", bom_id=bom_id, item_id=item_id)


class InvalidQuantity(BomError, ValueError):
    def __init__(self, message: str, bom_id: Optional[str] = None,
                 item_id: Optional[str] = None):
        super().__init__(message, bom_id=bom_id, item_id=item_id)


class InvalidPrecision(BomError, ValueError):
    """An item's decimal precision is outside the supported range."""

    def __init__(self, item_id: str, precision, minimum: int, maximum: int):
        super().__init__(
            f"Item {item_id}: decimal precision must be between {minimum} and {maximum}, "
            f"got {precision}",
            item_id=item_id)
        self.precision = precision


class EmptyBom(BomError):
    def __init__(self, bom_id: str, item_id: str):
        super().__init__(
            f"BOM {bom_id} for {item_id} needs at least one component",
            bom_id=bom_id, item_id=item_id)


class DuplicateBomCode(BomError):
    def __init__(self, code: str, bom_ids: Sequence[str]):
        ids = tuple(bom_ids)
        super().__init__(
            f"BOM code '{code}' is used by {', '.join(ids)}",
            bom_id=ids[0] if ids else None)
        self.bom_code = code
        self.bom_ids = ids


class BomValidationError(BomError):
    """Raised by ``ValidationReport.raise_for_violations``."""

    def __init__(self, report):
        count = len(report.violations)
        first = report.violations[0].message if count else ""
        super().__init__(f"{count} BOM violation(s); first: {first}")
        self.report = report
