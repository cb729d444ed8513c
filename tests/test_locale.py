"""Tests for ExpenseSplitter.settings.locale."""
import datetime
import unittest
from decimal import Decimal

from ExpenseSplitter.settings.locale import format_currency_value, format_date_value, parse_date


class TestLocale(unittest.TestCase):

    def test_currency(self):
        self.assertEqual(format_currency_value(Decimal('1234.5')), '$1,234.50')
        self.assertEqual(format_currency_value(12, 'en_GB', 'GBP'), '£12.00')
        self.assertEqual(format_currency_value(Decimal('1234.5'), 'de_DE', 'EUR'), '1.234,50\xa0€')

    def test_currency_with_unknown_locale(self):
        self.assertEqual(format_currency_value(Decimal('5'), 'xx_XX'), '5')

    def test_parse_date(self):
        self.assertEqual(parse_date('2025-01-05T00:00:00.000Z'), datetime.date(2025, 1, 5))
        self.assertEqual(parse_date('2025-01-05'), datetime.date(2025, 1, 5))
        self.assertEqual(parse_date(datetime.datetime(2025, 1, 5, 12)), datetime.date(2025, 1, 5))
        self.assertIsNone(parse_date(''))
        self.assertIsNone(parse_date(None))
        self.assertIsNone(parse_date('yesterday'))

    def test_format_date(self):
        self.assertEqual(format_date_value('2025-01-05T00:00:00.000Z'), 'Jan 5, 2025')
        self.assertEqual(format_date_value(datetime.date(2025, 1, 5), 'de_DE'), '05.01.2025')
        self.assertEqual(format_date_value('not a date'), '')
