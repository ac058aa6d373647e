"""
Unit Tests for Context Enricher

Tests days-from-diagnosis, clinical phases, related events and lab trends.
"""

import unittest

from longitudinal_timeline.lib.clinical_event import ClinicalPhase, EventKind
from longitudinal_timeline.lib.context_enricher import (
    classify_clinical_phase,
    compute_lab_trend,
    enrich,
    relationship_label,
)
from longitudinal_timeline.lib.event_extractor import extract_events
from longitudinal_timeline.lib.timeline_assembler import sort_events
from longitudinal_timeline.tests.fixtures import lab_event, sample_record


class TestEnrichSample(unittest.TestCase):
    """Test enrichment of the sample record"""

    def setUp(self):
        sorted_events = sort_events(extract_events(sample_record()))
        self.enriched = enrich(sorted_events)
        self.by_id = {e.event_id: e for e in self.enriched}

    def test_order_preserved(self):
        """Test enrichment keeps the sorted order and numbers it"""
        self.assertEqual([e.sequence_index for e in self.enriched], list(range(len(self.enriched))))

    def test_days_from_diagnosis(self):
        """Test signed offsets from the diagnosis event"""
        self.assertEqual(self.by_id['diagnosis-0'].days_from_diagnosis, 0)
        self.assertEqual(self.by_id['history-0'].days_from_diagnosis, -21)
        self.assertEqual(self.by_id['treatment-0-start'].days_from_diagnosis, 15)

    def test_clinical_phases(self):
        """Test phases follow days from diagnosis"""
        self.assertEqual(self.by_id['history-0'].clinical_phase, ClinicalPhase.PRE_DIAGNOSIS)
        self.assertEqual(self.by_id['treatment-0-start'].clinical_phase, ClinicalPhase.INITIAL_WORKUP)
        self.assertEqual(self.by_id['lab-1-0'].clinical_phase, ClinicalPhase.INITIAL_WORKUP)
        self.assertEqual(self.by_id['lab-3-0'].clinical_phase, ClinicalPhase.ACTIVE_TREATMENT)
        self.assertEqual(self.by_id['trial-0'].clinical_phase, ClinicalPhase.ACTIVE_TREATMENT)

    def test_lab_trends(self):
        """Test trends against the previous result of the same test"""
        self.assertEqual(self.by_id['lab-0-0'].trend, 'baseline')
        self.assertEqual(self.by_id['lab-1-0'].trend, 'improving')
        self.assertEqual(self.by_id['lab-3-0'].trend, 'improving')
        self.assertIsNone(self.by_id['imaging-0'].trend)

    def test_related_events(self):
        """Test related events within seven days and their relationships"""
        start = self.by_id['treatment-0-start']
        related = {r.event_id: r for r in start.related_events}
        self.assertEqual(set(related), {'genomics-0', 'treatment-0-ae-0', 'treatment-0-ae-1'})
        self.assertEqual(related['treatment-0-ae-0'].relationship, 'treatment-toxicity')
        self.assertEqual(related['treatment-0-ae-0'].days_difference, 7)
        self.assertEqual(related['genomics-0'].days_difference, -5)

    def test_enriched_is_not_mutation(self):
        """Test the original event is wrapped, not changed"""
        event = self.by_id['diagnosis-0']
        self.assertEqual(event.kind, EventKind.DIAGNOSIS)
        self.assertEqual(event.event.title, 'Cancer Diagnosis')

    def test_to_dict_has_context(self):
        """Test enrichment fields are serialized"""
        data = self.by_id['lab-1-0'].to_dict()
        self.assertEqual(data['trend'], 'improving')
        self.assertEqual(data['clinical_phase'], 'initial-workup')
        self.assertIn('related_events', data)


class TestEnrichRules(unittest.TestCase):
    """Test individual enrichment rules"""

    def test_no_diagnosis_defaults_to_zero(self):
        """Test days_from_diagnosis is 0 without a diagnosis event"""
        enriched = enrich([lab_event('a', '2024-01-01', 'WBC', 4), lab_event('b', '2024-06-01', 'WBC', 4)])
        self.assertEqual([e.days_from_diagnosis for e in enriched], [0, 0])
        self.assertEqual(enriched[1].clinical_phase, ClinicalPhase.INITIAL_WORKUP)

    def test_phase_thresholds(self):
        """Test phase boundaries are inclusive"""
        self.assertEqual(classify_clinical_phase(-1), ClinicalPhase.PRE_DIAGNOSIS)
        self.assertEqual(classify_clinical_phase(30), ClinicalPhase.INITIAL_WORKUP)
        self.assertEqual(classify_clinical_phase(31), ClinicalPhase.PRIMARY_TREATMENT)
        self.assertEqual(classify_clinical_phase(365), ClinicalPhase.ACTIVE_TREATMENT)
        self.assertEqual(classify_clinical_phase(366), ClinicalPhase.LONG_TERM_FOLLOW_UP)
        self.assertEqual(classify_clinical_phase(40, (10, 20, 50)), ClinicalPhase.ACTIVE_TREATMENT)

    def test_relationship_default(self):
        """Test unlisted pairs are temporal proximity"""
        self.assertEqual(relationship_label(EventKind.GENOMICS, EventKind.TREATMENT_START),
                         'biomarker-guided-selection')
        self.assertEqual(relationship_label(EventKind.TREATMENT_START, EventKind.GENOMICS),
                         'temporal-proximity')

    def test_non_numeric_predecessor_is_baseline(self):
        """Test a previous non-numeric result restarts the series"""
        events = [lab_event('a', '2024-01-01', 'CEA', 'pending'), lab_event('b', '2024-02-01', 'CEA', 5.0)]
        self.assertEqual(compute_lab_trend(events, 1), 'baseline')
        self.assertIsNone(compute_lab_trend(events, 0))

    def test_stable_trend(self):
        """Test changes within the threshold are stable"""
        events = [lab_event('a', '2024-01-01', 'WBC', 5.0), lab_event('b', '2024-02-01', 'wbc', 5.2)]
        self.assertEqual(compute_lab_trend(events, 1), 'stable')

    def test_zero_previous_value(self):
        """Test a rise from zero is an infinite change"""
        events = [lab_event('a', '2024-01-01', 'CEA', 0.0), lab_event('b', '2024-02-01', 'CEA', 2.0)]
        self.assertEqual(compute_lab_trend(events, 1), 'declining')

    def test_window_is_configurable(self):
        """Test related-event window"""
        events = [lab_event('a', '2024-01-01', 'WBC', 4), lab_event('b', '2024-01-11', 'WBC', 4)]
        self.assertEqual(enrich(events)[0].related_events, ())
        self.assertEqual(len(enrich(events, window_days=10)[0].related_events), 1)


if __name__ == '__main__':
    unittest.main()
