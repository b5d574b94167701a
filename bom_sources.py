"""
bom_sources.py

Collaborators that feed the BOM core: the entity store (item master data)
and the BOM repository. The core only reads from them.

In-memory implementations back tests and batch jobs; the DataFrame loaders
turn uploaded BOM tables into model objects.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Protocol

import pandas as pd

from bom_config import DEFAULT_DECIMAL_PRECISION, MAX_DECIMAL_PRECISION, MIN_DECIMAL_PRECISION
from bom_errors import InvalidPrecision, OverlappingEffectivePeriod, UnknownItem
from bom_model import Bom, BomLine, Item, to_fraction

logger = logging.getLogger(__name__)


# ---------- Interfaces ----------

class EntityStore(Protocol):
    def get_item(self, item_id: str) -> Optional[Item]:
        ...

    def get_decimal_precision(self, item_id: str) -> int:
        ...


class BomRepository(Protocol):
    def get_active_bom(self, finished_good_id: str, as_of: date) -> Optional[Bom]:
        ...

    def get_all_boms(self, company_id) -> List[Bom]:
        ...


# ---------- In-memory implementations ----------

class InMemoryEntityStore:
    """Entity store over a fixed set of items."""

    def __init__(self, items: Iterable[Item] = ()):
        self._items: Dict[str, Item] = {}
        for item in items:
            self.add_item(item)

    def add_item(self, item: Item) -> None:
        if not MIN_DECIMAL_PRECISION <= item.decimal_precision <= MAX_DECIMAL_PRECISION:
            raise InvalidPrecision(item.item_id, item.decimal_precision,
                                   MIN_DECIMAL_PRECISION, MAX_DECIMAL_PRECISION)
        self._items[item.item_id] = item

    def __contains__(self, item_id) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def get_item(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    def get_decimal_precision(self, item_id: str) -> int:
        item = self._items.get(item_id)
        if item is None:
            raise UnknownItem(item_id)
        return item.decimal_precision


class InMemoryBomRepository:
    """BOM repository over a fixed list of BOMs, grouped by company."""

    def __init__(self, boms: Iterable[Bom] = ()):
        self._boms: List[Bom] = list(boms)

    def add_bom(self, bom: Bom) -> None:
        self._boms.append(bom)

    def get_all_boms(self, company_id=None) -> List[Bom]:
        """Active BOMs of a company; ``None`` matches every company."""
        return [
            bom for bom in self._boms
            if bom.is_active and (company_id is None or bom.company_id == company_id)
        ]

    def get_active_bom(self, finished_good_id: str, as_of: date) -> Optional[Bom]:
        matches = [
            bom for bom in self._boms
            if bom.is_active and bom.finished_good_id == finished_good_id and bom.is_effective(as_of)
        ]
        if len(matches) > 1:
            raise OverlappingEffectivePeriod(finished_good_id, [bom.bom_id for bom in matches])
        return matches[0] if matches else None


# ---------- DataFrame loaders ----------

ITEM_COLUMNS = {"item_id"}
BOM_COLUMNS = {"bom_id", "finished_good_id"}
LINE_COLUMNS = {"bom_id", "component_item_id", "quantity_per_unit"}


def _require_columns(df: pd.DataFrame, required, what: str) -> None:
    missing = set(required) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns in {what} data: {sorted(missing)}")


def _is_blank(value) -> bool:
    return value is None or (not isinstance(value, str) and pd.isna(value)) or str(value).strip() == ""


def _optional_date(value) -> Optional[date]:
    if _is_blank(value):
        return None
    return pd.Timestamp(value).date()


def _flag(value, default: bool = False) -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "x"}
    return bool(value)


def _text(value, default=None):
    return default if _is_blank(value) else str(value).strip()


def items_from_dataframe(df: pd.DataFrame) -> InMemoryEntityStore:
    """
    Build an entity store from an item master table.

    Expected columns: ``item_id``; optional ``name``, ``is_manufactured``
    and ``decimal_precision``.
    """
    _require_columns(df, ITEM_COLUMNS, "item")
    store = InMemoryEntityStore()
    for _, row in df.iterrows():
        precision = row.get("decimal_precision")
        store.add_item(
            Item(
                item_id=str(row["item_id"]).strip(),
                name=_text(row.get("name"), ""),
                is_manufactured=_flag(row.get("is_manufactured")),
                decimal_precision=DEFAULT_DECIMAL_PRECISION if _is_blank(precision) else int(precision),
            )
        )
    logger.info("Loaded %d items", len(store))
    return store


def boms_from_dataframe(headers: pd.DataFrame, lines: pd.DataFrame) -> List[Bom]:
    """
    Build BOMs from a header table and a line table joined on ``bom_id``.

    Header columns: ``bom_id``, ``finished_good_id``; optional
    ``output_quantity``, ``effective_from``, ``effective_to``, ``is_active``,
    ``code``, ``name``, ``version``, ``company_id``.

    Line columns: ``bom_id``, ``component_item_id``, ``quantity_per_unit``;
    optional ``scrap_percentage``, ``is_optional``, ``sequence``, ``notes``.
    Lines keep their ``sequence`` order, falling back to row order.
    """
    _require_columns(headers, BOM_COLUMNS, "BOM header")
    _require_columns(lines, LINE_COLUMNS, "BOM line")

    lines_by_bom: Dict[str, List[BomLine]] = {}
    for position, (_, row) in enumerate(lines.iterrows()):
        sequence = row.get("sequence")
        line = BomLine(
            component_item_id=str(row["component_item_id"]).strip(),
            quantity_per_unit=to_fraction(str(row["quantity_per_unit"])),
            scrap_percentage=to_fraction(str(row["scrap_percentage"]))
            if not _is_blank(row.get("scrap_percentage")) else 0,
            is_optional=_flag(row.get("is_optional")),
            sequence=position if _is_blank(sequence) else int(sequence),
            notes=_text(row.get("notes"), ""),
        )
        lines_by_bom.setdefault(str(row["bom_id"]).strip(), []).append(line)

    boms: List[Bom] = []
    for _, row in headers.iterrows():
        bom_id = str(row["bom_id"]).strip()
        output_quantity = row.get("output_quantity")
        boms.append(
            Bom(
                bom_id=bom_id,
                finished_good_id=str(row["finished_good_id"]).strip(),
                lines=sorted(lines_by_bom.get(bom_id, []), key=lambda line: line.sequence),
                output_quantity=1 if _is_blank(output_quantity) else to_fraction(str(output_quantity)),
                effective_from=_optional_date(row.get("effective_from")),
                effective_to=_optional_date(row.get("effective_to")),
                is_active=_flag(row.get("is_active"), default=True),
                code=_text(row.get("code")),
                name=_text(row.get("name"), ""),
                version=_text(row.get("version")),
                company_id=_text(row.get("company_id")),
            )
        )

    orphans = set(lines_by_bom) - {bom.bom_id for bom in boms}
    if orphans:
        logger.warning("Ignoring lines for unknown BOM ids: %s", ", ".join(sorted(orphans)))
    logger.info("Loaded %d BOMs with %d lines", len(boms), len(lines))
    return boms


def _merge_line(lines: List[BomLine], line: BomLine, parent: str) -> None:
    """Append ``line``, summing it into an earlier line for the same component."""
    for i, existing in enumerate(lines):
        if existing.component_item_id != line.component_item_id:
            continue
        if existing.scrap_percentage != line.scrap_percentage:
            raise ValueError(
                f"Component {line.component_item_id} is listed under {parent} "
                f"with different scrap rates")
        lines[i] = replace(existing, quantity_per_unit=existing.quantity_per_unit + line.quantity_per_unit)
        logger.debug("Merged repeated component %s under %s", line.component_item_id, parent)
        return
    lines.append(line)


QUANTITY_COLUMNS = ["Comp. Qty (BUn)", "Comp. Qty", "Quantity", "quantity_per_unit"]


def boms_from_indented_dataframe(df: pd.DataFrame, root_item_id: Optional[str] = None,
                                 effective_from: Optional[date] = None) -> List[Bom]:
    """
    Build BOMs from an indented multi-level BOM export.

    Hierarchy comes from ``Level`` (1, 2, 3, ...) and components from
    ``Component number``; a quantity column such as ``Comp. Qty (BUn)`` is
    used when present, otherwise every quantity is 1. A column whose name
    contains "scrap" supplies the scrap percentage.

    Parent-finding rule:
    - A row at level L > 1 belongs to the closest previous row with a lower
      level.
    - Level 1 rows belong to ``root_item_id``. Without one, the first Level 1
      row is the root and later Level 1 rows are its children.

    A component listed more than once under the same parent becomes one line
    with the summed quantity.

    One BOM is produced per parent. A sub-assembly listed again under another
    parent keeps the components of its first listing.
    """
    _require_columns(df, {"Level", "Component number"}, "indented BOM")

    df = df.copy()
    df["Level"] = df["Level"].astype(int)
    qty_col = next((c for c in QUANTITY_COLUMNS if c in df.columns), None)
    scrap_col = next((c for c in df.columns if "scrap" in str(c).lower()), None)

    # Stack of ancestors: {"level": int, "comp": str, "node": int}
    stack: List[Dict] = []
    if root_item_id is not None:
        stack = [{"level": 0, "comp": str(root_item_id), "node": -1}]
    node_comp: Dict[int, str] = {-1: str(root_item_id)}
    node_lines: Dict[int, List[BomLine]] = {}

    for node, (_, row) in enumerate(df.iterrows()):
        level = int(row["Level"])
        comp = str(row["Component number"]).strip()

        if not stack:
            if level != 1:
                raise ValueError(f"Indented BOM must start at Level 1, got Level {level} for {comp}")
            # First Level 1 row is the root of the explosion
            stack = [{"level": 0, "comp": comp, "node": -1}]
            node_comp[-1] = comp
            continue

        while stack[-1]["level"] >= level:
            stack.pop()
        parent = stack[-1]

        quantity = 1
        if qty_col is not None and not _is_blank(row[qty_col]):
            quantity = to_fraction(str(row[qty_col]))
        scrap = 0
        if scrap_col is not None and not _is_blank(row[scrap_col]):
            scrap = to_fraction(str(row[scrap_col]))

        lines = node_lines.setdefault(parent["node"], [])
        _merge_line(lines, BomLine(comp, quantity, scrap_percentage=scrap, sequence=len(lines)),
                    parent["comp"])

        node_comp[node] = comp
        stack.append({"level": level, "comp": comp, "node": node})

    boms: List[Bom] = []
    built = set()
    for node, lines in node_lines.items():
        parent = node_comp[node]
        if parent in built:
            continue
        built.add(parent)
        boms.append(Bom(bom_id=f"BOM-{parent}", finished_good_id=parent, lines=lines,
                        effective_from=effective_from))

    logger.info("Parsed indented BOM for %s: %d BOMs", node_comp[-1], len(boms))
    return boms
