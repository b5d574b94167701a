"""
Tests for BOM graph validation
"""

import unittest
from datetime import date

from bom_errors import (
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
from bom_explosion import create_laptop_bom_data, create_sample_bom_data
from bom_model import Bom, BomGraph, BomLine, Item
from bom_sources import InMemoryEntityStore
from bom_validation import validate_graph


class TestValidGraphs(unittest.TestCase):

    def test_sample_data_is_valid(self):
        boms, items = create_sample_bom_data()
        report = validate_graph(BomGraph.from_boms(boms), InMemoryEntityStore(items))
        self.assertTrue(report.is_valid)
        self.assertEqual(report.violations, ())
        report.raise_for_violations()

    def test_laptop_data_is_valid(self):
        boms, items = create_laptop_bom_data()
        self.assertTrue(validate_graph(BomGraph.from_boms(boms), InMemoryEntityStore(items)).is_valid)

    def test_adjacent_revisions_do_not_overlap(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P-1", "P", lines=[BomLine("X", 1)],
                effective_from=date(2023, 1, 1), effective_to=date(2024, 1, 1)),
            Bom("BOM-P-2", "P", lines=[BomLine("X", 2)], effective_from=date(2024, 1, 1)),
        ])
        self.assertTrue(validate_graph(graph).is_valid)

    def test_shared_component_is_not_a_cycle(self):
        """A diamond (two paths to one sub-assembly) is acyclic"""
        graph = BomGraph.from_boms([
            Bom("BOM-A", "A", lines=[BomLine("B", 1), BomLine("C", 1)]),
            Bom("BOM-B", "B", lines=[BomLine("D", 1)]),
            Bom("BOM-C", "C", lines=[BomLine("D", 1)]),
            Bom("BOM-D", "D", lines=[BomLine("X", 1)]),
        ])
        self.assertTrue(validate_graph(graph).is_valid)

    def test_inactive_boms_are_ignored(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", lines=[BomLine("X", 1), BomLine("X", 1)], is_active=False),
        ])
        self.assertTrue(validate_graph(graph).is_valid)


class TestLineRules(unittest.TestCase):

    def test_duplicate_component(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", lines=[BomLine("X", 1), BomLine("Y", 1), BomLine("X", 2), BomLine("X", 3)]),
        ])
        report = validate_graph(graph)
        self.assertEqual(report.violations, (DuplicateComponent("BOM-P", "X"),))

    def test_self_reference(self):
        graph = BomGraph.from_boms([Bom("BOM-P", "P", lines=[BomLine("X", 1), BomLine("P", 1)])])
        report = validate_graph(graph)
        self.assertEqual(report.violations, (SelfReference("BOM-P", "P"),))
        self.assertEqual(report.of_type(CyclicBom), [])

    def test_invalid_quantities(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", output_quantity=0, lines=[BomLine("X", 0)]),
        ])
        found = validate_graph(graph).of_type(InvalidQuantity)
        self.assertEqual(len(found), 2)
        self.assertEqual({v.item_id for v in found}, {"P", "X"})

    def test_invalid_scrap(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", lines=[BomLine("X", 1, scrap_percentage=100),
                                     BomLine("Y", 1, scrap_percentage=-5),
                                     BomLine("Z", 1, scrap_percentage="99.9")]),
        ])
        found = validate_graph(graph).of_type(InvalidScrapRate)
        self.assertEqual([v.item_id for v in found], ["X", "Y"])

    def test_empty_bom(self):
        graph = BomGraph.from_boms([Bom("BOM-P", "P")])
        self.assertEqual(validate_graph(graph).violations, (EmptyBom("BOM-P", "P"),))

    def test_unknown_items(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", lines=[BomLine("X", 1), BomLine("GHOST", 1)]),
        ])
        store = InMemoryEntityStore([Item("P", is_manufactured=True), Item("X")])
        report = validate_graph(graph, store)
        self.assertEqual(report.violations, (UnknownItem("GHOST", bom_id="BOM-P"),))


class TestGraphRules(unittest.TestCase):

    def test_invalid_date_range(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", lines=[BomLine("X", 1)],
                effective_from=date(2024, 2, 1), effective_to=date(2024, 1, 1)),
        ])
        found = validate_graph(graph).of_type(InvalidDateRange)
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].bom_id, "BOM-P")

    def test_overlapping_effective_period(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P-1", "P", lines=[BomLine("X", 1)], effective_from=date(2023, 1, 1)),
            Bom("BOM-P-2", "P", lines=[BomLine("X", 2)],
                effective_from=date(2023, 6, 1), effective_to=date(2023, 9, 1)),
        ])
        found = validate_graph(graph).of_type(OverlappingEffectivePeriod)
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].bom_ids, ("BOM-P-1", "BOM-P-2"))
        self.assertEqual(found[0].item_id, "P")

    def test_open_ended_revisions_overlap(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P-1", "P", lines=[BomLine("X", 1)]),
            Bom("BOM-P-2", "P", lines=[BomLine("X", 2)]),
        ])
        self.assertEqual(len(validate_graph(graph).of_type(OverlappingEffectivePeriod)), 1)

    def test_duplicate_bom_code(self):
        graph = BomGraph.from_boms([
            Bom("BOM-P", "P", lines=[BomLine("X", 1)], code="bom-001"),
            Bom("BOM-Q", "Q", lines=[BomLine("X", 1)], code="BOM-001"),
        ])
        found = validate_graph(graph).of_type(DuplicateBomCode)
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].bom_ids, ("BOM-P", "BOM-Q"))

    def test_direct_cycle(self):
        graph = BomGraph.from_boms([
            Bom("BOM-A", "A", lines=[BomLine("B", 1)]),
            Bom("BOM-B", "B", lines=[BomLine("A", 1)]),
        ])
        report = validate_graph(graph)
        self.assertEqual(report.violations, (CyclicBom(("A", "B", "A"), bom_id="BOM-B"),))

    def test_indirect_cycle_path_follows_edges(self):
        graph = BomGraph.from_boms([
            Bom("BOM-A", "A", lines=[BomLine("B", 1)]),
            Bom("BOM-B", "B", lines=[BomLine("C", 1)]),
            Bom("BOM-C", "C", lines=[BomLine("A", 1), BomLine("RAW", 1)]),
        ])
        cycles = validate_graph(graph).of_type(CyclicBom)
        self.assertEqual(len(cycles), 1)
        path = cycles[0].path
        self.assertEqual(path, ("A", "B", "C", "A"))
        for parent, child in zip(path, path[1:]):
            self.assertIn(child, graph.component_ids(parent))

    def test_cycle_reporting_is_deterministic(self):
        boms = [
            Bom("BOM-C", "C", lines=[BomLine("A", 1)]),
            Bom("BOM-B", "B", lines=[BomLine("C", 1)]),
            Bom("BOM-A", "A", lines=[BomLine("B", 1)]),
        ]
        first = validate_graph(BomGraph.from_boms(boms))
        second = validate_graph(BomGraph.from_boms(reversed(boms)))
        self.assertEqual(first.violations, second.violations)
        self.assertEqual(first.violations[0].path, ("A", "B", "C", "A"))

    def test_cycle_across_revisions(self):
        """Edges of every active revision count, whatever their dates"""
        graph = BomGraph.from_boms([
            Bom("BOM-A", "A", lines=[BomLine("B", 1)], effective_to=date(2024, 1, 1)),
            Bom("BOM-B", "B", lines=[BomLine("A", 1)], effective_from=date(2024, 1, 1)),
        ])
        self.assertEqual(len(validate_graph(graph).of_type(CyclicBom)), 1)

    def test_collects_all_violations(self):
        graph = BomGraph.from_boms([
            Bom("BOM-A", "A", lines=[BomLine("B", 1), BomLine("X", 1), BomLine("X", 2)]),
            Bom("BOM-B", "B", lines=[BomLine("C", 1)],
                effective_from=date(2024, 5, 1), effective_to=date(2024, 4, 1)),
            Bom("BOM-C", "C", lines=[BomLine("A", 1), BomLine("C", 1)]),
        ])
        report = validate_graph(graph)
        self.assertFalse(report.is_valid)
        self.assertEqual(
            [v.code for v in report.violations],
            ["DuplicateComponent", "InvalidDateRange", "SelfReference", "CyclicBom"],
        )
        self.assertEqual(len(report.for_bom("BOM-C")), 2)

        with self.assertRaises(BomValidationError) as ctx:
            report.raise_for_violations()
        self.assertIs(ctx.exception.report, report)


if __name__ == "__main__":
    unittest.main()
