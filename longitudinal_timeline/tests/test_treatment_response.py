"""
Unit Tests for Treatment Response Analysis

Tests treatment period windows, effectiveness scoring, toxicity, the
treatment journey and imaging attribution.
"""

import unittest
from datetime import datetime

from longitudinal_timeline.lib.clinical_event import (
    AdverseEventDetails,
    Event,
    EventCategory,
    EventKind,
    Importance,
    ResponseCategory,
)
from longitudinal_timeline.lib.context_enricher import enrich
from longitudinal_timeline.lib.event_extractor import extract_events
from longitudinal_timeline.lib.timeline_assembler import sort_events
from longitudinal_timeline.lib.treatment_response import (
    TreatmentPeriod,
    analyze_treatment_effectiveness,
    analyze_treatment_response,
    classify_toxicity,
    classify_treatment_sequence,
    identify_treatment_periods,
    map_treatment_journey,
    score_treatment_period,
)
from longitudinal_timeline.tests.fixtures import (
    imaging_event,
    lab_event,
    sample_record,
    treatment_end_event,
    treatment_start_event,
)


def adverse_event(course_index, index, when, severity):
    return Event(
        event_id=f"treatment-{course_index}-ae-{index}",
        kind=EventKind.ADVERSE_EVENT,
        date=datetime.fromisoformat(when),
        title='Adverse Event',
        description=severity,
        details=AdverseEventDetails(course_index=course_index, description=severity, severity=severity),
        source='treatments',
        source_system='EMR',
        category=EventCategory.SAFETY,
        importance=Importance.MEDIUM,
    )


class TestSamplePeriods(unittest.TestCase):
    """Test the treatment period of the sample record"""

    def setUp(self):
        events = enrich(sort_events(extract_events(sample_record())))
        self.periods = identify_treatment_periods(events)
        self.period = self.periods[0]

    def test_single_period(self):
        """Test one period per course"""
        self.assertEqual(len(self.periods), 1)
        self.assertEqual(self.period.status, 'completed')
        self.assertEqual(self.period.duration_days, 86)

    def test_evidence(self):
        """Test imaging, biomarker and toxicity evidence in the window"""
        self.assertEqual(self.period.imaging_response, 'improving')
        self.assertEqual(self.period.biomarker_response, 'no-biomarkers')
        self.assertEqual(self.period.toxicity_severity, 'moderate')
        self.assertEqual(len(self.period.adverse_events), 2)

    def test_effectiveness(self):
        """Test partial response plus improving imaging saturates at 1.0"""
        self.assertEqual(self.period.effectiveness, 1.0)

    def test_to_dict(self):
        """Test serialized period"""
        data = self.period.to_dict()
        self.assertEqual(data['line_label'], 'First-line')
        self.assertEqual(data['start_date'], '2024-01-25')
        self.assertEqual(data['end_date'], '2024-04-20')
        self.assertEqual(data['adverse_events'][0]['severity'], 'moderate')

    def test_effectiveness_summary(self):
        """Test aggregate effectiveness"""
        summary = analyze_treatment_effectiveness(self.periods)
        self.assertEqual(summary['overall_effectiveness'], 1.0)
        self.assertEqual(summary['best_response'], 'partial')
        self.assertEqual(summary['treatment_sequence'], 'single-treatment')
        self.assertEqual(summary['interpretation'], 'Highly effective treatment course')


class TestScoring(unittest.TestCase):
    """Test effectiveness scoring"""

    def test_score_components(self):
        """Test each evidence weight"""
        start = treatment_start_event(0, '2024-01-01')
        self.assertEqual(score_treatment_period(TreatmentPeriod(start_event=start)), 0.5)
        self.assertEqual(score_treatment_period(TreatmentPeriod(
            start_event=start, clinical_response='Stable Disease', imaging_response='stable')), 0.7)
        self.assertEqual(score_treatment_period(TreatmentPeriod(
            start_event=start, biomarker_response='improving')), 0.6)

    def test_score_clamped(self):
        """Test complete response with every bonus stays at 1.0"""
        period = TreatmentPeriod(
            start_event=treatment_start_event(0, '2024-01-01'),
            clinical_response='Complete Response',
            imaging_response='improving',
            biomarker_response='improving',
        )
        self.assertEqual(score_treatment_period(period), 1.0)

    def test_toxicity_does_not_change_score(self):
        """Test toxicity is reported beside the score"""
        start = treatment_start_event(0, '2024-01-01')
        quiet = TreatmentPeriod(start_event=start)
        toxic = TreatmentPeriod(start_event=start, toxicity_severity='severe')
        self.assertEqual(score_treatment_period(quiet), score_treatment_period(toxic))

    def test_toxicity_classification(self):
        """Test toxicity tiers"""
        self.assertEqual(classify_toxicity([]), 'none')
        self.assertEqual(classify_toxicity([adverse_event(0, 0, '2024-01-08', 'mild'),
                                            adverse_event(0, 1, '2024-01-08', 'severe')]), 'severe')
        self.assertEqual(classify_toxicity([adverse_event(0, 0, '2024-01-08', 'mild'),
                                            adverse_event(0, 1, '2024-01-08', 'moderate')]), 'mild')

    def test_sequence(self):
        """Test effectiveness sequences"""
        self.assertEqual(classify_treatment_sequence([]), 'no-treatments')
        self.assertEqual(classify_treatment_sequence([0.5, 0.7]), 'improving')
        self.assertEqual(classify_treatment_sequence([0.7, 0.5]), 'declining')
        self.assertEqual(classify_treatment_sequence([0.6, 0.6]), 'consistent')
        self.assertEqual(classify_treatment_sequence([0.5, 0.7, 0.6]), 'fluctuating')

    def test_response_text(self):
        """Test free-text response mapping"""
        self.assertEqual(ResponseCategory.from_text('PR'), ResponseCategory.PARTIAL_RESPONSE)
        self.assertEqual(ResponseCategory.from_text('Progressive Disease'), ResponseCategory.PROGRESSIVE_DISEASE)
        self.assertIsNone(ResponseCategory.from_text('not evaluable'))


class TestWindows(unittest.TestCase):
    """Test observation windows"""

    def setUp(self):
        self.events = [
            treatment_start_event(0, '2024-01-01'),
            lab_event('l0', '2024-01-01', 'CEA', 20.0),
            imaging_event('i0', '2024-01-01', 'Mass', 'baseline'),
            lab_event('l1', '2024-03-01', 'CEA', 8.0),
            imaging_event('i1', '2024-03-05', 'Reduction', 'improvement'),
            lab_event('l2', '2025-06-01', 'CEA', 30.0),
        ]

    def test_ongoing_course_uses_follow_up(self):
        """Test an ongoing course is observed for the follow-up window"""
        period = identify_treatment_periods(self.events)[0]
        self.assertEqual(period.status, 'ongoing')
        self.assertEqual(period.imaging_response, 'improving')
        self.assertEqual(period.biomarker_response, 'improving')
        self.assertEqual(period.biomarker_changes, {'CEA': -60.0})
        self.assertEqual(period.effectiveness, 0.8)

    def test_ongoing_course_uses_as_of(self):
        """Test as_of bounds the window of an ongoing course"""
        period = identify_treatment_periods(self.events, as_of=datetime(2024, 2, 1))[0]
        self.assertEqual(period.imaging_response, 'no-imaging')
        self.assertEqual(period.biomarker_response, 'no-biomarkers')
        self.assertEqual(period.effectiveness, 0.5)

    def test_same_day_imaging_excluded(self):
        """Test imaging on the start date is not a response assessment"""
        period = identify_treatment_periods(self.events[:3])[0]
        self.assertEqual(period.imaging_response, 'no-imaging')

    def test_end_event_bounds_window(self):
        """Test a completed course stops at its end date"""
        events = self.events + [treatment_end_event(0, '2024-02-15', 'Stable Disease', 45)]
        period = identify_treatment_periods(sort_events(events))[0]
        self.assertEqual(period.imaging_response, 'no-imaging')
        self.assertEqual(period.clinical_response, 'Stable Disease')
        self.assertEqual(period.effectiveness, 0.6)


class TestJourney(unittest.TestCase):
    """Test treatment journey and imaging attribution"""

    def setUp(self):
        self.events = [
            treatment_start_event(0, '2024-01-01', regimen='Carboplatin', line=1),
            treatment_end_event(0, '2024-03-01', 'Partial Response', 60, regimen='Carboplatin'),
            imaging_event('i0', '2024-03-10', 'Reduction', 'improvement'),
            treatment_start_event(1, '2024-05-01', regimen='Pembrolizumab', line=2),
            treatment_end_event(1, '2024-08-01', 'PD', 92, regimen='Pembrolizumab'),
            imaging_event('i1', '2024-08-10', 'New lesion', 'progression'),
        ]
        self.periods = identify_treatment_periods(self.events)

    def test_journey(self):
        """Test lines, durations and response rates"""
        journey = map_treatment_journey(self.periods)
        self.assertEqual(journey['total_treatments'], 2)
        self.assertEqual([line['line'] for line in journey['treatment_lines']], [1, 2])
        self.assertEqual(journey['average_duration_days'], 76.0)
        self.assertEqual(journey['response_rates']['partial'], 50.0)
        self.assertEqual(journey['response_rates']['progressive'], 50.0)
        self.assertEqual(journey['treatment_types'], ['chemotherapy'])

    def test_empty_journey(self):
        """Test no treatments"""
        journey = map_treatment_journey([])
        self.assertEqual(journey['total_treatments'], 0)
        self.assertIsNone(journey['average_duration_days'])
        self.assertEqual(analyze_treatment_effectiveness([])['status'], 'no-treatments')

    def test_imaging_attributed_to_latest_treatment(self):
        """Test each study links to the most recent earlier treatment"""
        responses = analyze_treatment_response(self.events)
        self.assertEqual(responses[0]['response'], 'improving')
        self.assertEqual(responses[0]['post_treatment_studies'], 1)
        self.assertEqual(responses[1]['response'], 'progressing')
        self.assertEqual(responses[1]['confidence'], 0.7)

    def test_best_response(self):
        """Test best response across courses"""
        summary = analyze_treatment_effectiveness(self.periods)
        self.assertEqual(summary['best_response'], 'partial')


if __name__ == '__main__':
    unittest.main()
