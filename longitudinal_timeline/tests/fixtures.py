"""
Shared Canonical Record fixtures and event builders for the test suite.
"""

import copy
from datetime import datetime

from longitudinal_timeline.lib.clinical_event import (
    EventCategory,
    Event,
    EventKind,
    ImagingDetails,
    Importance,
    LabResultDetails,
    TreatmentEndDetails,
    TreatmentStartDetails,
)


SAMPLE_RECORD = {
    'abhaId': 'ABHA-0001',
    'demographics': {'age': 58, 'gender': 'female', 'state': 'Karnataka'},
    'cancerType': {
        'primary': 'Non-small cell lung cancer',
        'stage': 'IIIA',
        'histology': 'Adenocarcinoma',
        'grade': 'G2',
        'diagnosisDate': '2024-01-10',
    },
    'medicalHistory': [
        {'date': '2023-12-20', 'type': 'symptom', 'description': 'Persistent cough and weight loss',
         'provider': 'Dr. Rao'},
        {'date': '2024-01-10', 'type': 'diagnosis', 'description': 'Lung adenocarcinoma confirmed',
         'provider': 'Dr. Iyer'},
    ],
    'labResults': [
        {'testDate': '2024-01-08', 'testName': 'Hemoglobin', 'value': 9.0, 'unit': 'g/dL',
         'referenceRange': '12-16'},
        {'testDate': '2024-02-07', 'testName': 'Hemoglobin', 'value': 11.0, 'unit': 'g/dL',
         'referenceRange': '12-16'},
        {'timestamp': '2024-01-08', 'panelName': 'Tumor markers', 'observations': {'CEA': 12.5}},
        {'timestamp': '2024-04-10', 'panelName': 'Tumor markers', 'observations': {'CEA': 6.0}},
    ],
    'imaging': [
        {'studyId': 'IMG-1', 'modality': 'CT', 'bodyRegion': 'chest', 'studyDate': '2024-01-05',
         'description': 'CT chest with contrast', 'findings': '3.2 cm mass in right upper lobe'},
        {'studyId': 'IMG-2', 'modality': 'CT', 'studyDate': '2024-04-15',
         'description': 'CT chest follow-up',
         'findings': 'Interval reduction in right upper lobe mass, no new lesions'},
    ],
    'pathologyReports': [
        {'reportId': 'PATH-1', 'specimenType': 'Lung biopsy', 'collectionDate': '2024-01-07',
         'reportDate': '2024-01-10', 'diagnosis': 'Adenocarcinoma of lung'},
    ],
    'genomics': {
        'mutationProfile': [
            {'gene': 'EGFR', 'variant': 'L858R', 'vaf': 0.32},
            {'gene': 'TP53', 'variant': 'R273H'},
        ],
        'tmb': 4.2,
        'msi': 'MSS',
        'reportDate': '2024-01-20',
    },
    'treatments': [
        {'treatmentId': 'TX-1', 'type': 'targeted_therapy', 'regimen': 'Osimertinib',
         'startDate': '2024-01-25', 'endDate': '2024-04-20', 'response': 'Partial Response',
         'adverseEvents': ['Rash', 'Diarrhea']},
    ],
    'clinicalTrials': [
        {'trialId': 'NCT0000001', 'trialName': 'A Phase 2 study of adjuvant osimertinib',
         'enrollmentDate': '2024-05-02', 'status': 'enrolled', 'arm': 'A'},
    ],
}

# diagnosis 1, history 2, labs 4, imaging 2, pathology 2, genomics 1,
# treatment start/end 2 + adverse events 2, trial 1
SAMPLE_EVENT_COUNT = 17


def sample_record():
    """Fresh deep copy of SAMPLE_RECORD."""
    return copy.deepcopy(SAMPLE_RECORD)


def advanced_record():
    """Stage IV, 70 years old, progressive disease on first-line chemotherapy."""
    return {
        'abhaId': 'ABHA-0002',
        'demographics': {'age': 70, 'gender': 'male'},
        'cancerType': {'primary': 'Pancreatic adenocarcinoma', 'stage': 'IV', 'diagnosisDate': '2023-06-01'},
        'treatments': [
            {'treatmentId': 'TX-9', 'type': 'chemotherapy', 'regimen': 'FOLFIRINOX',
             'startDate': '2023-06-20', 'endDate': '2023-10-01', 'response': 'Progressive Disease',
             'adverseEvents': ['Neutropenia grade 3']},
        ],
    }


def lab_event(event_id, when, test_name, value, **kwargs):
    numeric = value if isinstance(value, (int, float)) else None
    return Event(
        event_id=event_id,
        kind=EventKind.LAB_RESULT,
        date=when if isinstance(when, datetime) else datetime.fromisoformat(when),
        title=f"{test_name} Result",
        description=f"{test_name}: {value}",
        details=LabResultDetails(test_name=test_name, value=str(value), numeric_value=numeric, **kwargs),
        source='lab_results',
        source_system='LIS',
        category=EventCategory.LABORATORY,
        importance=Importance.LOW,
    )


def imaging_event(event_id, when, findings, status=None, body_region='chest', importance=Importance.LOW):
    return Event(
        event_id=event_id,
        kind=EventKind.IMAGING,
        date=datetime.fromisoformat(when),
        title='CT Study',
        description=findings,
        details=ImagingDetails(modality='CT', body_region=body_region, findings=findings,
                               comparison_status=status),
        source='imaging',
        source_system='PACS',
        category=EventCategory.IMAGING,
        importance=importance,
    )


def treatment_start_event(course_index, when, regimen='Carboplatin', line=1):
    return Event(
        event_id=f"treatment-{course_index}-start",
        kind=EventKind.TREATMENT_START,
        date=datetime.fromisoformat(when),
        title='Chemotherapy Started',
        description=f"Initiated {regimen}",
        details=TreatmentStartDetails(course_index=course_index, treatment_type='chemotherapy',
                                      regimen=regimen, line=line),
        source='treatments',
        source_system='EMR',
        category=EventCategory.TREATMENT,
        importance=Importance.CRITICAL,
    )


def treatment_end_event(course_index, when, response=None, duration_days=None, regimen='Carboplatin'):
    return Event(
        event_id=f"treatment-{course_index}-end",
        kind=EventKind.TREATMENT_END,
        date=datetime.fromisoformat(when),
        title='Chemotherapy Completed',
        description=f"Completed {regimen}",
        details=TreatmentEndDetails(course_index=course_index, treatment_type='chemotherapy',
                                    regimen=regimen, duration_days=duration_days, response=response),
        source='treatments',
        source_system='EMR',
        category=EventCategory.TREATMENT,
        importance=Importance.HIGH,
    )
