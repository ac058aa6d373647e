"""
Unit Tests for Event Extractor

Tests section-by-section event extraction from a Canonical Record,
including date recovery warnings and fatal baseline errors.
"""

import unittest
from datetime import datetime

from longitudinal_timeline.lib.clinical_event import EventKind, Importance
from longitudinal_timeline.lib.event_extractor import extract_events, extract_trial_phase
from longitudinal_timeline.lib.exception_handling import DataQualityTracker, MissingBaselineError
from longitudinal_timeline.tests.fixtures import SAMPLE_EVENT_COUNT, sample_record


class TestSampleExtraction(unittest.TestCase):
    """Test extraction of the full sample record"""

    def setUp(self):
        self.tracker = DataQualityTracker()
        self.events = extract_events(sample_record(), tracker=self.tracker)
        self.by_id = {e.event_id: e for e in self.events}

    def test_event_count(self):
        """Test one event per extractable fact"""
        self.assertEqual(len(self.events), SAMPLE_EVENT_COUNT)

    def test_every_event_valid(self):
        """Test each event carries the payload registered for its kind"""
        for event in self.events:
            self.assertEqual(event.validate(), [], event.event_id)

    def test_diagnosis_event(self):
        """Test diagnosis event"""
        diagnosis = self.by_id['diagnosis-0']
        self.assertEqual(diagnosis.kind, EventKind.DIAGNOSIS)
        self.assertEqual(diagnosis.importance, Importance.CRITICAL)
        self.assertEqual(diagnosis.date, datetime(2024, 1, 10))
        self.assertEqual(diagnosis.details.stage, 'IIIA')

    def test_history_importance(self):
        """Test diagnosis visits are high importance, others medium"""
        self.assertEqual(self.by_id['history-0'].importance, Importance.MEDIUM)
        self.assertEqual(self.by_id['history-0'].title, 'Symptom Report')
        self.assertEqual(self.by_id['history-1'].importance, Importance.HIGH)
        self.assertEqual(self.by_id['history-1'].details.provider, 'Dr. Iyer')

    def test_lab_events(self):
        """Test abnormal and tumor marker labs are high importance"""
        hemoglobin = self.by_id['lab-0-0']
        self.assertTrue(hemoglobin.details.is_abnormal)
        self.assertEqual(hemoglobin.importance, Importance.HIGH)
        self.assertEqual(hemoglobin.details.numeric_value, 9.0)
        self.assertEqual(hemoglobin.source_system, 'LIS')

        cea = self.by_id['lab-2-0']
        self.assertEqual(cea.details.test_name, 'CEA')
        self.assertTrue(cea.details.is_tumor_marker)
        self.assertEqual(cea.details.unit, 'ng/mL')
        self.assertEqual(cea.details.panel_name, 'Tumor markers')
        self.assertEqual(cea.importance, Importance.HIGH)

    def test_imaging_comparison(self):
        """Test studies of one body region are compared in date order"""
        first, second = self.by_id['imaging-0'], self.by_id['imaging-1']
        self.assertEqual(first.details.body_region, 'chest')
        self.assertEqual(second.details.body_region, 'chest')
        self.assertEqual(first.details.comparison_status, 'baseline')
        self.assertEqual(second.details.comparison_status, 'improvement')
        self.assertEqual(second.details.comparison_confidence, 0.8)
        self.assertEqual(first.title, 'CT Study')
        self.assertEqual(first.source_system, 'PACS')

    def test_pathology_events(self):
        """Test collection and report events with turnaround"""
        collection = self.by_id['pathology-0-collection']
        report = self.by_id['pathology-0-report']
        self.assertEqual(collection.importance, Importance.MEDIUM)
        self.assertEqual(report.importance, Importance.HIGH)
        self.assertEqual(report.details.turnaround_days, 3)

    def test_genomics_event(self):
        """Test mutation count and actionable annotation"""
        genomics = self.by_id['genomics-0']
        self.assertEqual(genomics.details.mutation_count, 2)
        self.assertEqual([m.gene for m in genomics.details.actionable_mutations], ['EGFR'])
        self.assertIn('Osimertinib', genomics.details.actionable_mutations[0].therapy_options)
        self.assertEqual(genomics.description, '2 mutations identified, 1 actionable')

    def test_treatment_events(self):
        """Test start, end and adverse events of one course"""
        start = self.by_id['treatment-0-start']
        end = self.by_id['treatment-0-end']
        self.assertEqual(start.importance, Importance.CRITICAL)
        self.assertEqual(start.title, 'Targeted Therapy Started')
        self.assertEqual(start.details.line, 1)
        self.assertEqual(start.details.line_label, 'First-line')
        self.assertEqual(start.details.intent, 'curative')
        self.assertEqual(end.details.duration_days, 86)
        self.assertEqual(end.details.response, 'Partial Response')

        rash = self.by_id['treatment-0-ae-0']
        self.assertEqual(rash.date, datetime(2024, 2, 1))
        self.assertEqual(rash.details.severity, 'moderate')
        self.assertEqual(rash.details.offset_days, 7)
        self.assertEqual(rash.importance, Importance.MEDIUM)

    def test_trial_event(self):
        """Test trial enrollment with phase"""
        trial = self.by_id['trial-0']
        self.assertEqual(trial.details.phase, 'Phase II')
        self.assertEqual(trial.source_system, 'CLINICAL_TRIALS')

    def test_tracker_counts(self):
        """Test per-section completeness metadata"""
        metadata = self.tracker.get_completeness_metadata()
        self.assertEqual(metadata['completeness_score'], 1.0)
        self.assertEqual(metadata['sections']['lab_results'], {'entries': 4, 'events': 4, 'warnings': 0})
        self.assertEqual(metadata['warning_count'], 0)


class TestDateRecovery(unittest.TestCase):
    """Test malformed and missing dates"""

    def test_malformed_date_warning(self):
        """Test an unparseable study date is placed at the baseline with a warning"""
        record = sample_record()
        record['imaging'][1]['studyDate'] = 'sometime in April'
        tracker = DataQualityTracker()
        events = {e.event_id: e for e in extract_events(record, tracker=tracker)}

        study = events['imaging-1']
        self.assertEqual(study.date, datetime(2024, 1, 10))
        self.assertEqual(len(study.warnings), 1)
        self.assertEqual(study.warnings[0].code, 'malformed_date')
        self.assertEqual(study.warnings[0].field, 'imaging[1].studyDate')
        self.assertEqual(tracker.warnings[0]['event_id'], 'imaging-1')
        self.assertEqual(tracker.warnings[0]['section'], 'imaging')

    def test_missing_date_warning(self):
        """Test a history entry without a date is flagged"""
        record = sample_record()
        del record['medicalHistory'][0]['date']
        events = {e.event_id: e for e in extract_events(record)}
        self.assertEqual(events['history-0'].warnings[0].code, 'missing_date')

    def test_relative_offset(self):
        """Test day_N lab timestamps resolve against the diagnosis date"""
        record = sample_record()
        record['labResults'][1]['testDate'] = 'day_28'
        events = {e.event_id: e for e in extract_events(record)}
        self.assertEqual(events['lab-1-0'].date, datetime(2024, 2, 7))
        self.assertFalse(events['lab-1-0'].has_warnings)

    def test_relative_offset_without_baseline(self):
        """Test day_N with no derivable baseline is fatal"""
        record = {'labResults': [{'testDate': 'day_14', 'testName': 'WBC', 'value': 4.2}]}
        with self.assertRaises(MissingBaselineError):
            extract_events(record)

    def test_negative_turnaround(self):
        """Test a report dated before its collection is clamped to zero"""
        record = sample_record()
        record['pathologyReports'][0]['reportDate'] = '2024-01-01'
        events = {e.event_id: e for e in extract_events(record)}
        report = events['pathology-0-report']
        self.assertEqual(report.details.turnaround_days, 0)
        self.assertEqual(report.warnings[0].code, 'negative_turnaround')

    def test_negative_duration(self):
        """Test an end date before the start date leaves duration unset"""
        record = sample_record()
        record['treatments'][0]['endDate'] = '2024-01-20'
        events = {e.event_id: e for e in extract_events(record)}
        end = events['treatment-0-end']
        self.assertIsNone(end.details.duration_days)
        self.assertEqual(end.warnings[0].code, 'negative_duration')


class TestSectionRules(unittest.TestCase):
    """Test individual extraction rules"""

    def test_empty_record(self):
        """Test absent sections contribute nothing"""
        self.assertEqual(extract_events({'abhaId': 'X'}), [])

    def test_empty_lab_panel(self):
        """Test a lab entry with no observations still yields one event"""
        tracker = DataQualityTracker()
        events = extract_events({'labResults': [
            {'testDate': '2024-01-05', 'observations': {}},
            {'testDate': '2024-01-06', 'panelName': 'Liver panel', 'results': []},
        ]}, tracker=tracker)
        self.assertEqual([e.event_id for e in events], ['lab-0-0', 'lab-1-0'])
        self.assertIsNone(events[0].details.value)
        self.assertEqual(events[0].details.test_name, 'Lab Panel')
        self.assertEqual(events[1].title, 'Liver panel Result')
        self.assertEqual(events[0].warnings[0].code, 'empty_panel')
        self.assertEqual(events[0].warnings[0].field, 'labResults[0]')
        self.assertEqual(tracker.get_completeness_metadata()['sections']['lab_results'],
                         {'entries': 2, 'events': 2, 'warnings': 2})

    def test_adverse_event_clamped_to_end(self):
        """Test adverse events of a short course are dated at its end"""
        record = {
            'cancerType': {'stage': 'IV', 'diagnosisDate': '2024-01-01'},
            'treatments': [{'type': 'chemotherapy', 'startDate': '2024-01-10', 'endDate': '2024-01-13',
                            'adverseEvents': ['Nausea']}],
        }
        events = {e.event_id: e for e in extract_events(record)}
        self.assertEqual(events['treatment-0-ae-0'].date, datetime(2024, 1, 13))
        self.assertEqual(events['treatment-0-start'].details.intent, 'palliative')

    def test_lines_follow_start_dates(self):
        """Test line numbers follow chronological order, not record order"""
        record = {
            'cancerType': {'diagnosisDate': '2024-01-01'},
            'treatments': [
                {'type': 'immunotherapy', 'startDate': '2024-06-01'},
                {'type': 'chemotherapy', 'startDate': '2024-02-01'},
            ],
        }
        events = {e.event_id: e for e in extract_events(record)}
        self.assertEqual(events['treatment-0-start'].details.line, 2)
        self.assertEqual(events['treatment-1-start'].details.line, 1)
        self.assertEqual(events['treatment-0-start'].details.intent, 'unknown')

    def test_configurable_adverse_event_offset(self):
        """Test the adverse event offset is a parameter"""
        record = sample_record()
        events = {e.event_id: e for e in extract_events(record, adverse_event_offset_days=14)}
        self.assertEqual(events['treatment-0-ae-0'].date, datetime(2024, 2, 8))

    def test_body_region_series(self):
        """Test studies of different regions are separate series"""
        record = {
            'cancerType': {'diagnosisDate': '2024-01-01'},
            'imaging': [
                {'modality': 'CT', 'description': 'CT chest', 'studyDate': '2024-01-05', 'findings': 'Mass'},
                {'modality': 'MRI', 'description': 'MRI brain', 'studyDate': '2024-02-05',
                 'findings': 'New enhancing lesion'},
            ],
        }
        events = {e.event_id: e for e in extract_events(record)}
        self.assertEqual(events['imaging-1'].details.body_region, 'head')
        self.assertEqual(events['imaging-1'].details.comparison_status, 'baseline')

    def test_trial_phase(self):
        """Test phase extraction from trial names"""
        self.assertEqual(extract_trial_phase('A Phase 2 study'), 'Phase II')
        self.assertEqual(extract_trial_phase('PHASE III randomized'), 'Phase III')
        self.assertIsNone(extract_trial_phase('Observational registry'))
        self.assertIsNone(extract_trial_phase(None))


if __name__ == '__main__':
    unittest.main()
