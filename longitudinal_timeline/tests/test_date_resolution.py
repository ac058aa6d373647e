"""
Unit Tests for Date Resolution

Tests absolute and relative timestamp parsing, baseline handling and
date formatting.
"""

import unittest
from datetime import date, datetime

from longitudinal_timeline.lib.date_resolution import (
    days_between,
    format_date,
    is_relative_offset,
    parse_date,
    resolve_date,
    try_parse_date,
)
from longitudinal_timeline.lib.exception_handling import MalformedDateError, MissingBaselineError


class TestParseDate(unittest.TestCase):
    """Test absolute timestamp parsing"""

    def test_iso_date(self):
        """Test plain ISO date"""
        self.assertEqual(parse_date('2024-03-15', 'f'), datetime(2024, 3, 15))

    def test_iso_datetime_with_zulu(self):
        """Test UTC timestamps are converted to naive UTC"""
        self.assertEqual(parse_date('2024-03-15T10:30:00Z', 'f'), datetime(2024, 3, 15, 10, 30))

    def test_offset_converted_to_utc(self):
        """Test timezone offsets are normalized to UTC"""
        self.assertEqual(parse_date('2024-03-15T10:30:00+05:30', 'f'), datetime(2024, 3, 15, 5, 0))

    def test_alternate_formats(self):
        """Test common export formats"""
        self.assertEqual(parse_date('03/15/2024', 'f'), datetime(2024, 3, 15))
        self.assertEqual(parse_date('15-Mar-2024', 'f'), datetime(2024, 3, 15))
        self.assertEqual(parse_date('March 15, 2024', 'f'), datetime(2024, 3, 15))

    def test_date_object(self):
        """Test date objects become midnight datetimes"""
        self.assertEqual(parse_date(date(2024, 3, 15), 'f'), datetime(2024, 3, 15))

    def test_malformed_raises(self):
        """Test unparseable text raises MalformedDateError naming the field"""
        with self.assertRaises(MalformedDateError) as ctx:
            parse_date('sometime last spring', 'imaging[0].studyDate')
        self.assertEqual(ctx.exception.field_name, 'imaging[0].studyDate')
        self.assertIn('imaging[0].studyDate', str(ctx.exception))

    def test_try_parse_returns_none(self):
        """Test try_parse_date swallows only parse failures"""
        self.assertIsNone(try_parse_date('not a date'))
        self.assertIsNone(try_parse_date(None))
        self.assertIsNone(try_parse_date('day_14'))
        self.assertEqual(try_parse_date('2024-01-01'), datetime(2024, 1, 1))


class TestResolveDate(unittest.TestCase):
    """Test relative day offsets"""

    def setUp(self):
        self.baseline = datetime(2024, 1, 10)

    def test_relative_offset_detection(self):
        """Test day_N variants are recognized"""
        self.assertTrue(is_relative_offset('day_14'))
        self.assertTrue(is_relative_offset('Day 0'))
        self.assertTrue(is_relative_offset('day-3'))
        self.assertFalse(is_relative_offset('2024-01-10'))
        self.assertFalse(is_relative_offset(14))

    def test_relative_offset_resolves_against_baseline(self):
        """Test day_N adds N days to the baseline"""
        self.assertEqual(resolve_date('day_14', 'f', self.baseline), datetime(2024, 1, 24))
        self.assertEqual(resolve_date('Day 0', 'f', self.baseline), self.baseline)

    def test_relative_offset_without_baseline(self):
        """Test day_N with no baseline is fatal"""
        with self.assertRaises(MissingBaselineError):
            resolve_date('day_14', 'labResults[0].testDate', None)

    def test_absolute_ignores_baseline(self):
        """Test absolute dates do not need a baseline"""
        self.assertEqual(resolve_date('2024-02-01', 'f', None), datetime(2024, 2, 1))


class TestDateHelpers(unittest.TestCase):
    """Test day arithmetic and formatting"""

    def test_days_between(self):
        """Test whole-day difference, signed"""
        self.assertEqual(days_between(datetime(2024, 2, 7), datetime(2024, 1, 8)), 30)
        self.assertEqual(days_between(datetime(2024, 1, 8), datetime(2024, 2, 7)), -30)

    def test_days_between_truncates(self):
        """Test partial days are truncated"""
        self.assertEqual(days_between(datetime(2024, 1, 2, 12), datetime(2024, 1, 1)), 1)

    def test_format_date_midnight(self):
        """Test midnight renders as a plain date"""
        self.assertEqual(format_date(datetime(2024, 1, 8)), '2024-01-08')

    def test_format_date_with_time(self):
        """Test non-midnight keeps the time"""
        self.assertEqual(format_date(datetime(2024, 1, 8, 9, 15)), '2024-01-08T09:15:00')

    def test_format_none(self):
        """Test None passes through"""
        self.assertIsNone(format_date(None))


if __name__ == '__main__':
    unittest.main()
