"""
Tests for environment-driven settings
"""

import os
import unittest
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP
from unittest import mock

from bom_config import ROUNDING, ROUNDING_MODES, _int_env, _rounding_env


class TestSettings(unittest.TestCase):

    def test_default_rounding_is_a_decimal_mode(self):
        self.assertIn(ROUNDING, ROUNDING_MODES)

    def test_rounding_env(self):
        with mock.patch.dict(os.environ, {"BOM_TEST_ROUNDING": " round_half_even "}):
            self.assertEqual(_rounding_env("BOM_TEST_ROUNDING", ROUND_HALF_UP), ROUND_HALF_EVEN)
        with mock.patch.dict(os.environ, {"BOM_TEST_ROUNDING": ""}):
            self.assertEqual(_rounding_env("BOM_TEST_ROUNDING", ROUND_HALF_UP), ROUND_HALF_UP)

    def test_rounding_env_rejects_unknown_mode(self):
        with mock.patch.dict(os.environ, {"BOM_TEST_ROUNDING": "ROUND_NEAREST"}):
            with self.assertRaises(ValueError):
                _rounding_env("BOM_TEST_ROUNDING", ROUND_HALF_UP)

    def test_int_env(self):
        with mock.patch.dict(os.environ, {"BOM_TEST_DEPTH": "12"}):
            self.assertEqual(_int_env("BOM_TEST_DEPTH", 32), 12)
        with mock.patch.dict(os.environ, {"BOM_TEST_DEPTH": "deep"}):
            with self.assertRaises(ValueError):
                _int_env("BOM_TEST_DEPTH", 32)


if __name__ == "__main__":
    unittest.main()
