"""
Unit Tests for Longitudinal History Export Adapter

Tests JSON, CSV, HTML and Markdown projections of a generated history.
"""

import json
import unittest
from datetime import datetime
from io import StringIO

import pandas as pd

from longitudinal_timeline.lib.exception_handling import UnsupportedExportFormatError
from longitudinal_timeline.lib.export_adapter import (
    CSV_COLUMNS,
    EXPORTERS,
    export_history,
    to_dataframe,
    to_json,
)
from longitudinal_timeline.orchestration.longitudinal_history import generate_longitudinal_history
from longitudinal_timeline.tests.fixtures import SAMPLE_EVENT_COUNT, sample_record


class TestExportAdapter(unittest.TestCase):
    """Test each export format of the sample history"""

    def setUp(self):
        self.history = generate_longitudinal_history(sample_record(), as_of=datetime(2024, 6, 1))

    def test_json(self):
        """Test JSON round-trips to the history dictionary"""
        data = json.loads(export_history(self.history, 'json'))
        self.assertEqual(data['patient_id'], 'ABHA-0001')
        self.assertEqual(data['total_events'], SAMPLE_EVENT_COUNT)
        self.assertEqual(data['insights']['risk_assessment']['risk_category'], 'moderate')

    def test_json_non_finite_is_null(self):
        """Test NaN correlation renders as null"""
        text = to_json({'patient_id': 'P', 'correlation': float('nan'), 'nested': [float('inf')]})
        data = json.loads(text)
        self.assertIsNone(data['correlation'])
        self.assertEqual(data['nested'], [None])

    def test_csv(self):
        """Test one row per event in timeline order"""
        frame = pd.read_csv(StringIO(export_history(self.history, 'csv')))
        self.assertEqual(list(frame.columns), CSV_COLUMNS)
        self.assertEqual(len(frame), SAMPLE_EVENT_COUNT)
        self.assertEqual(frame.iloc[0]['Title'], 'Symptom Report')
        self.assertEqual(frame.iloc[-1]['Kind'], 'trial-enrollment')

    def test_csv_dates_are_date_only(self):
        """Test timestamps with a time of day export as yyyy-mm-dd"""
        record = sample_record()
        record['medicalHistory'][0]['date'] = '2023-12-20T10:30:00'
        history = generate_longitudinal_history(record, as_of=datetime(2024, 6, 1))
        self.assertEqual(history.to_dict()['timeline'][0]['events'][0]['date'], '2023-12-20T10:30:00')
        frame = to_dataframe(history)
        self.assertEqual(frame.iloc[0]['Date'], '2023-12-20')
        self.assertTrue(frame['Date'].str.fullmatch(r"\d{4}-\d{2}-\d{2}").all())

    def test_dataframe_sources(self):
        """Test the Source column carries the source system"""
        frame = to_dataframe(self.history)
        self.assertIn('PACS', set(frame['Source']))
        self.assertIn('CLINICAL_TRIALS', set(frame['Source']))

    def test_html(self):
        """Test the timeline fragment structure"""
        text = export_history(self.history, 'html')
        self.assertTrue(text.startswith('<div class="longitudinal-timeline" data-patient-id="ABHA-0001">'))
        self.assertEqual(text.count('<section class="timeline-period">'), 5)
        self.assertEqual(text.count('class="timeline-event importance-'), SAMPLE_EVENT_COUNT)
        self.assertIn('importance-critical', text)

    def test_html_escapes(self):
        """Test free text is escaped"""
        record = sample_record()
        record['medicalHistory'][0]['description'] = 'Cough <severe> & fever'
        text = export_history(generate_longitudinal_history(record), 'html')
        self.assertIn('Cough &lt;severe&gt; &amp; fever', text)
        self.assertNotIn('<severe>', text)

    def test_markdown(self):
        """Test markdown sections"""
        text = export_history(self.history, 'Markdown')
        self.assertTrue(text.startswith('# Longitudinal History: ABHA-0001'))
        self.assertIn('## Risk Assessment', text)
        self.assertIn('## Key Milestones', text)
        self.assertIn('### January 2024', text)

    def test_accepts_dict(self):
        """Test exporters accept the serialized history"""
        self.assertEqual(export_history(self.history.to_dict(), 'csv'), export_history(self.history, 'csv'))

    def test_unsupported_format(self):
        """Test unknown formats are rejected"""
        with self.assertRaises(UnsupportedExportFormatError) as ctx:
            export_history(self.history, 'pdf')
        self.assertEqual(ctx.exception.supported, sorted(EXPORTERS))
        self.assertIsInstance(ctx.exception, ValueError)


if __name__ == '__main__':
    unittest.main()
