import unittest
from datetime import datetime, timedelta

import fakes  # noqa: F401

from utils.pure import (
    format_money,
    format_remaining,
    generate_markdown_table,
    seconds_until_midnight,
)


class PureTestCase(unittest.TestCase):
    def test_markdown_table(self):
        table = generate_markdown_table(["Item", "Qty"], [["Milk", "2"], ["Bread | Brown", "1"]], ["l", "r"])
        lines = table.splitlines()
        self.assertEqual(lines[0], "| Item | Qty |")
        self.assertEqual(lines[1], "| :--- | ---: |")
        self.assertEqual(lines[3], "| Bread \\| Brown | 1 |")

    def test_markdown_table_first_row_as_header(self):
        table = generate_markdown_table(None, [["Name", "Email"], ["Asha", "a@b.c"]])
        self.assertTrue(table.startswith("| Name | Email |"))
        self.assertEqual(generate_markdown_table(None, []), "")
        with self.assertRaises(ValueError):
            generate_markdown_table(["a", "b"], [["1", "2"]], ["l"])

    def test_money_and_countdown(self):
        self.assertEqual(format_money(120), "₹120")
        self.assertEqual(format_money(120.5), "₹120.50")
        self.assertEqual(format_remaining(timedelta(minutes=9, seconds=5)), "09:05")
        self.assertEqual(format_remaining(timedelta(seconds=-3)), "00:00")

    def test_seconds_until_midnight(self):
        self.assertEqual(seconds_until_midnight(datetime(2024, 5, 1, 23, 59, 30)), 30.0)
        self.assertEqual(seconds_until_midnight(datetime(2024, 12, 31, 12, 0)), 12 * 3600.0)
        # exactly midnight waits for the next one
        self.assertEqual(seconds_until_midnight(datetime(2024, 5, 2)), 24 * 3600.0)


if __name__ == "__main__":
    unittest.main()
