#!/usr/bin/env python3
"""
Example usage script for BOM validation and explosion

Shows explosion with scrap and optional components, BOM revisions selected
by effectivity date, and how validation reports broken BOM structures.
"""

import logging
from datetime import date

from bom_explosion import BOMExplosion, create_laptop_bom_data, explode
from bom_model import Bom, BomGraph, BomLine, supersede
from bom_sources import InMemoryBomRepository, InMemoryEntityStore
from bom_validation import validate_graph


def example_laptop():
    """Multi-level explosion with scrap and an optional line"""
    print("=" * 80)
    print("EXAMPLE 1: Laptop")
    print("=" * 80)

    boms, items = create_laptop_bom_data()
    bom_tool = BOMExplosion(BomGraph.from_boms(boms), InMemoryEntityStore(items),
                            as_of=date(2024, 1, 1))
    print(bom_tool.display_topology("LAPTOP", 10))

    for include_optional in (False, True):
        label = "with" if include_optional else "without"
        print(f"\nBASE COMPONENTS FOR 10 LAPTOPS ({label} optional lines):")
        print("-" * 40)
        result = bom_tool.explode("LAPTOP", 10, include_optional=include_optional)
        for component in result.values():
            paths = "; ".join(" > ".join(p) for p in component.paths)
            print(f"{component.item_id}: {component.quantity}  via {paths}")
    print()


def example_revisions():
    """A revised BOM applies from its effective date onwards"""
    print("=" * 80)
    print("EXAMPLE 2: BOM Revisions")
    print("=" * 80)

    original = Bom("BOM-STOOL-1", "STOOL", lines=[BomLine("LEG", 3), BomLine("SEAT", 1)],
                   effective_from=date(2023, 1, 1), company_id="ACME")
    closed, revised = supersede(original, "BOM-STOOL-2", date(2024, 1, 1),
                                lines=[BomLine("LEG", 4), BomLine("SEAT", 1)])
    repository = InMemoryBomRepository([closed, revised])
    graph = BomGraph.from_repository(repository, "ACME")

    for as_of in (date(2023, 6, 1), date(2024, 6, 1)):
        result = explode(graph, "STOOL", 1, as_of)
        print(f"As of {as_of}: LEG x {result['LEG'].quantity}")
    print()


def example_validation():
    """Validation collects every problem at once"""
    print("=" * 80)
    print("EXAMPLE 3: Validation")
    print("=" * 80)

    graph = BomGraph.from_boms([
        Bom("BOM-A", "A", lines=[BomLine("B", 1), BomLine("X", 1), BomLine("X", 2)]),
        Bom("BOM-B", "B", lines=[BomLine("C", 1)]),
        Bom("BOM-C", "C", lines=[BomLine("A", 1), BomLine("C", 1)]),
    ])
    report = validate_graph(graph)
    for violation in report.violations:
        print(f"  {violation.code}: {violation.message}")
    print()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("BOM EXPLOSION TOOL - USAGE EXAMPLES")
    print("=" * 80)
    print()

    example_laptop()
    example_revisions()
    example_validation()

    print("=" * 80)
    print("All examples completed successfully!")
    print("=" * 80)
