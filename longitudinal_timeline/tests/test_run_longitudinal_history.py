"""
Unit Tests for the Longitudinal History Runner

Tests command line exit codes and written output.
"""

import json
import os
import tempfile
import unittest

import pandas as pd

from longitudinal_timeline.scripts.run_longitudinal_history import main
from longitudinal_timeline.tests.fixtures import SAMPLE_EVENT_COUNT, advanced_record, sample_record


class TestRunner(unittest.TestCase):
    """Test the command line entry point"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def write_json(self, name, data):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, 'w') as f:
            json.dump(data, f)
        return path

    def test_single_record_csv(self):
        """Test a record exports to the output file"""
        record_path = self.write_json('patient.json', sample_record())
        output_path = os.path.join(self.tmpdir.name, 'out', 'patient.csv')
        code = main([record_path, '--format', 'csv', '--output', output_path, '--as-of', '2024-06-01'])
        self.assertEqual(code, 0)
        self.assertEqual(len(pd.read_csv(output_path)), SAMPLE_EVENT_COUNT)

    def test_population_json(self):
        """Test a list of records writes a population summary"""
        record_path = self.write_json('cohort.json', [sample_record(), advanced_record()])
        output_path = os.path.join(self.tmpdir.name, 'cohort_summary.json')
        code = main([record_path, '--output', output_path, '--workers', '1'])
        self.assertEqual(code, 0)
        with open(output_path) as f:
            summary = json.load(f)
        self.assertEqual(summary['processed'], 2)

    def test_population_rejects_markdown(self):
        """Test population runs only render csv or json"""
        record_path = self.write_json('cohort.json', [sample_record()])
        self.assertEqual(main([record_path, '--format', 'markdown', '--workers', '1']), 2)

    def test_fatal_error(self):
        """Test a fatal record error exits with 1"""
        record_path = self.write_json('bad.json', {'labResults': [{'testDate': 'day_3', 'testName': 'WBC', 'value': 4}]})
        self.assertEqual(main([record_path]), 1)

    def test_bad_as_of(self):
        """Test an unparseable reference date exits with 2"""
        record_path = self.write_json('patient.json', sample_record())
        self.assertEqual(main([record_path, '--as-of', 'soon']), 2)

    def test_unreadable_record(self):
        """Test a missing file or invalid JSON exits with 2"""
        self.assertEqual(main([os.path.join(self.tmpdir.name, 'missing.json')]), 2)
        broken_path = os.path.join(self.tmpdir.name, 'broken.json')
        with open(broken_path, 'w') as f:
            f.write('{"abhaId": ')
        self.assertEqual(main([broken_path]), 2)

    def test_unknown_format(self):
        """Test argparse rejects unknown formats"""
        record_path = self.write_json('patient.json', sample_record())
        with self.assertRaises(SystemExit):
            main([record_path, '--format', 'pdf'])


if __name__ == '__main__':
    unittest.main()
