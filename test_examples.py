"""
Smoke tests for the usage examples
"""

import io
import unittest
from contextlib import redirect_stdout

import examples


def capture(func):
    out = io.StringIO()
    with redirect_stdout(out):
        func()
    return out.getvalue()


class TestExamples(unittest.TestCase):

    def test_laptop(self):
        text = capture(examples.example_laptop)
        self.assertIn("LAPTOP - Laptop", text)
        self.assertIn("SCREW: 40", text)
        self.assertIn("RAM: 21", text)
        self.assertIn("CASE: 10", text)

    def test_revisions(self):
        text = capture(examples.example_revisions)
        self.assertIn("As of 2023-06-01: LEG x 3.0000", text)
        self.assertIn("As of 2024-06-01: LEG x 4.0000", text)

    def test_validation(self):
        text = capture(examples.example_validation)
        self.assertIn("DuplicateComponent", text)
        self.assertIn("SelfReference", text)
        self.assertIn("A -> B -> C -> A", text)


if __name__ == "__main__":
    unittest.main()
