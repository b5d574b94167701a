"""
bom_model.py

Data types for multi-level Bills of Materials.

A BOM graph is held as an index (finished good id -> BOM revisions) instead
of an object graph, so cycles in the data never become reference cycles in
memory and path tracking is a plain tuple-membership check.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Decimal,
)
from fractions import Fraction
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import networkx as nx
import pandas as pd

from bom_config import DEFAULT_DECIMAL_PRECISION, ROUNDING_MODES
from bom_errors import OverlappingEffectivePeriod

logger = logging.getLogger(__name__)


def to_fraction(value) -> Fraction:
    """
    Convert a caller-supplied quantity to an exact rational.

    Floats go through their shortest ``repr`` so ``0.1`` means one tenth,
    not the nearest binary fraction.
    """
    if isinstance(value, Fraction):
        return value
    if isinstance(value, float):
        return Fraction(repr(value))
    if isinstance(value, str):
        # European decimal comma, as found in ERP exports
        return Fraction(value.strip().replace(",", "."))
    return Fraction(value)


def round_quantity(value: Fraction, precision: int, rounding: str) -> Decimal:
    """
    Round an exact quantity to ``precision`` decimal places.

    Works on the integer numerator and denominator, so the result is
    correct for any magnitude and the value is rounded exactly once.
    """
    if rounding not in ROUNDING_MODES:
        raise ValueError(f"Unknown rounding mode {rounding!r}")
    scaled = to_fraction(value) * 10 ** precision
    negative = scaled < 0
    quotient, remainder = divmod(abs(scaled.numerator), scaled.denominator)
    twice = 2 * remainder

    if not remainder or rounding == ROUND_DOWN:
        away = False
    elif rounding == ROUND_UP:
        away = True
    elif rounding == ROUND_CEILING:
        away = not negative
    elif rounding == ROUND_FLOOR:
        away = negative
    elif rounding == ROUND_HALF_UP:
        away = twice >= scaled.denominator
    elif rounding == ROUND_HALF_DOWN:
        away = twice > scaled.denominator
    elif rounding == ROUND_HALF_EVEN:
        away = twice > scaled.denominator or (twice == scaled.denominator and quotient % 2 == 1)
    else:
        # ROUND_05UP
        away = quotient % 10 in (0, 5)

    if away:
        quotient += 1
    digits = tuple(int(d) for d in str(quotient))
    return Decimal((1 if negative else 0, digits, -precision))


# ---------- Data Models ----------

@dataclass(frozen=True)
class Item:
    """Snapshot of an entity-store item."""
    item_id: str
    name: str = ""
    is_manufactured: bool = False
    decimal_precision: int = DEFAULT_DECIMAL_PRECISION


@dataclass(frozen=True)
class BomLine:
    """One component line of a BOM."""
    component_item_id: str
    quantity_per_unit: Fraction
    scrap_percentage: Fraction = Fraction(0)
    is_optional: bool = False
    sequence: int = 0
    notes: str = ""

    def __post_init__(self):
        object.__setattr__(self, "component_item_id", str(self.component_item_id))
        object.__setattr__(self, "quantity_per_unit", to_fraction(self.quantity_per_unit))
        object.__setattr__(self, "scrap_percentage", to_fraction(self.scrap_percentage))

    @property
    def scrap_factor(self) -> Fraction:
        """Share of input that survives production, e.g. 4/5 for 20% scrap."""
        return 1 - self.scrap_percentage / 100


@dataclass(frozen=True)
class Bom:
    """
    A BOM revision.

    The effective period is half-open: the BOM applies on ``effective_from``
    and stops applying on ``effective_to``. Missing ends are unbounded.
    """
    bom_id: str
    finished_good_id: str
    lines: Tuple[BomLine, ...] = ()
    output_quantity: Fraction = Fraction(1)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_active: bool = True
    code: Optional[str] = None
    name: str = ""
    version: Optional[str] = None
    company_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "bom_id", str(self.bom_id))
        object.__setattr__(self, "finished_good_id", str(self.finished_good_id))
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "output_quantity", to_fraction(self.output_quantity))

    def is_effective(self, as_of: date) -> bool:
        if self.effective_from is not None and as_of < self.effective_from:
            return False
        if self.effective_to is not None and as_of >= self.effective_to:
            return False
        return True

    def overlaps(self, other: "Bom") -> bool:
        """True when both effective periods share at least one date."""
        if self._is_empty_period() or other._is_empty_period():
            return False
        starts_before_other_ends = (
            self.effective_from is None
            or other.effective_to is None
            or self.effective_from < other.effective_to
        )
        other_starts_before_end = (
            other.effective_from is None
            or self.effective_to is None
            or other.effective_from < self.effective_to
        )
        return starts_before_other_ends and other_starts_before_end

    def _is_empty_period(self) -> bool:
        return (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_from >= self.effective_to
        )

    def component_ids(self) -> List[str]:
        return [line.component_item_id for line in self.lines]


def supersede(bom: Bom, new_bom_id: str, effective_from: date,
              lines: Optional[Iterable[BomLine]] = None,
              output_quantity=None, version: Optional[str] = None,
              code: Optional[str] = None) -> Tuple[Bom, Bom]:
    """
    Revise a BOM without touching its history.

    Returns the old revision closed at ``effective_from`` and a new revision
    starting on that date. Lines and output quantity default to a copy of the
    old revision's. The new revision inherits the old one's end date.
    """
    closed = replace(bom, effective_to=effective_from)
    revised = replace(
        bom,
        bom_id=new_bom_id,
        lines=tuple(lines) if lines is not None else bom.lines,
        output_quantity=output_quantity if output_quantity is not None else bom.output_quantity,
        effective_from=effective_from,
        effective_to=bom.effective_to,
        version=version,
        code=code,
        is_active=True,
    )
    return closed, revised


class BomGraph:
    """
    Immutable snapshot of a company's active BOMs, indexed by finished good.

    Built once per validation or explosion request; never persisted.
    """

    def __init__(self, boms: Iterable[Bom] = ()):
        index: Dict[str, List[Bom]] = {}
        count = 0
        for bom in boms:
            if not bom.is_active:
                continue
            index.setdefault(bom.finished_good_id, []).append(bom)
            count += 1
        self._index: Mapping[str, Tuple[Bom, ...]] = {
            fg: tuple(sorted(revisions, key=_revision_key))
            for fg, revisions in sorted(index.items())
        }
        self._count = count
        logger.debug("Built BOM graph: %d finished goods, %d BOMs", len(self._index), count)

    @classmethod
    def from_boms(cls, boms: Iterable[Bom]) -> "BomGraph":
        return cls(boms)

    @classmethod
    def from_repository(cls, repository, company_id) -> "BomGraph":
        """Snapshot every active BOM the repository holds for a company."""
        return cls(repository.get_all_boms(company_id))

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[Bom]:
        for revisions in self._index.values():
            yield from revisions

    def __contains__(self, item_id) -> bool:
        return item_id in self._index

    def finished_goods(self) -> List[str]:
        return list(self._index)

    def boms_for(self, item_id: str) -> Tuple[Bom, ...]:
        return self._index.get(item_id, ())

    def is_manufactured(self, item_id: str) -> bool:
        return item_id in self._index

    def active_bom(self, item_id: str, as_of: date) -> Optional[Bom]:
        """
        The single BOM effective for ``item_id`` on ``as_of``, or None.

        Raises OverlappingEffectivePeriod if more than one applies.
        """
        effective = [bom for bom in self.boms_for(item_id) if bom.is_effective(as_of)]
        if len(effective) > 1:
            raise OverlappingEffectivePeriod(item_id, [bom.bom_id for bom in effective])
        return effective[0] if effective else None

    def component_ids(self, item_id: str) -> List[str]:
        """Components of every revision of ``item_id``, ascending."""
        ids = set()
        for bom in self.boms_for(item_id):
            ids.update(bom.component_ids())
        return sorted(ids)

    def to_digraph(self) -> nx.DiGraph:
        """
        Render the graph as a networkx DiGraph (finished good -> component).

        Edge attribute ``quantity`` is the largest per-unit quantity across
        revisions; ``boms`` lists the BOM ids contributing the edge.
        """
        g = nx.DiGraph()
        for bom in self:
            g.add_node(bom.finished_good_id, manufactured=True)
            for line in bom.lines:
                child = line.component_item_id
                if child not in g:
                    g.add_node(child, manufactured=self.is_manufactured(child))
                if g.has_edge(bom.finished_good_id, child):
                    data = g[bom.finished_good_id][child]
                    data["quantity"] = max(data["quantity"], line.quantity_per_unit)
                    data["boms"].append(bom.bom_id)
                else:
                    g.add_edge(bom.finished_good_id, child,
                               quantity=line.quantity_per_unit, boms=[bom.bom_id])
        return g

    def where_used(self, item_id: str) -> List[str]:
        """Every finished good consuming ``item_id`` at any level, ascending."""
        g = self.to_digraph()
        if item_id not in g:
            return []
        return sorted(nx.ancestors(g, item_id))


def _revision_key(bom: Bom):
    return (bom.effective_from or date.min, bom.bom_id)


# ---------- Explosion Output ----------

@dataclass(frozen=True)
class ExplodedComponent:
    """Total requirement for one base component."""
    item_id: str
    quantity: Decimal
    exact_quantity: Fraction
    precision: int
    paths: Tuple[Tuple[str, ...], ...] = field(default_factory=tuple)


class ExplosionResult:
    """
    Ordered mapping from base component id to its ExplodedComponent.

    Entries are kept ascending by item id.
    """

    def __init__(self, components: Iterable[ExplodedComponent] = ()):
        self._components: "OrderedDict[str, ExplodedComponent]" = OrderedDict(
            (c.item_id, c) for c in sorted(components, key=lambda c: c.item_id)
        )

    def __getitem__(self, item_id: str) -> ExplodedComponent:
        return self._components[item_id]

    def __contains__(self, item_id) -> bool:
        return item_id in self._components

    def __iter__(self) -> Iterator[str]:
        return iter(self._components)

    def __len__(self) -> int:
        return len(self._components)

    def __eq__(self, other):
        if not isinstance(other, ExplosionResult):
            return NotImplemented
        return list(self._components.values()) == list(other._components.values())

    def __repr__(self):
        body = ", ".join(f"{k}={v.quantity}" for k, v in self._components.items())
        return f"ExplosionResult({body})"

    def items(self):
        return self._components.items()

    def values(self):
        return self._components.values()

    def get(self, item_id: str, default=None):
        return self._components.get(item_id, default)

    def quantities(self) -> Dict[str, Decimal]:
        """Rounded quantity per base component."""
        return {item_id: c.quantity for item_id, c in self._components.items()}

    def to_dataframe(self):
        """One row per (component, reaching path), for reporting."""
        rows = []
        for component in self._components.values():
            for path in component.paths or ((),):
                rows.append(
                    {
                        "component_id": component.item_id,
                        "quantity": component.quantity,
                        "precision": component.precision,
                        "path": " > ".join(path),
                        "level": len(path),
                    }
                )
        return pd.DataFrame(rows, columns=["component_id", "quantity", "precision", "path", "level"])
