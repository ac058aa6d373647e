#!/usr/bin/env python3
"""
Canonical Record Data Models

Typed, read-only view of the normalized per-patient record produced by the
ingestion layer. The engine consumes records as JSON-like mappings; this module
validates their structure loosely and exposes each section as dataclasses.

Every section is optional. A section that is present with the wrong container
type (e.g. labResults given as a mapping) is a structural violation and raises
InvalidRecordError. Timestamps are kept raw here; the event extractor resolves
them so that warnings attach to the events they affect.

Usage:
    from longitudinal_timeline.lib.canonical_record import CanonicalRecord

    record = CanonicalRecord.from_dict(patient_json)
    baseline = record.baseline_date()
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .date_resolution import try_parse_date
from .exception_handling import InvalidRecordError


NUMERIC_VALUE_PATTERN = re.compile(r"^\s*[<>≤≥=~]*\s*(-?\d+(?:\.\d+)?)")
REFERENCE_RANGE_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:-|–|to)\s*(-?\d+(?:\.\d+)?)")


def parse_numeric(value: Any) -> Optional[float]:
    """Leading numeric value of a lab result ("11.2 g/dL" -> 11.2), else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = NUMERIC_VALUE_PATTERN.match(str(value))
    return float(match.group(1)) if match else None


def parse_reference_range(reference_range: Any) -> Optional[Tuple[float, float]]:
    """Parse "12-16" or "12 to 16" into (low, high)."""
    if not reference_range:
        return None
    match = REFERENCE_RANGE_PATTERN.match(str(reference_range))
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present, non-None value among camelCase/snake_case aliases."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _mapping(data: Dict[str, Any], section: str, *keys: str) -> Dict[str, Any]:
    value = _get(data, *keys)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidRecordError(f"Section '{section}' must be a mapping, got {type(value).__name__}")
    return value


def _entries(data: Dict[str, Any], section: str, *keys: str) -> List[Dict[str, Any]]:
    value = _get(data, *keys)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidRecordError(f"Section '{section}' must be a list, got {type(value).__name__}")
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            raise InvalidRecordError(f"Entry {section}[{index}] must be a mapping, got {type(entry).__name__}")
    return value


# ============================================================================
# SECTION MODELS
# ============================================================================

@dataclass
class Demographics:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    age: Optional[float] = None
    date_of_birth: Any = None
    sex: Optional[str] = None
    locale: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Demographics':
        age = _get(data, 'age')
        return cls(
            first_name=_get(data, 'firstName', 'first_name'),
            last_name=_get(data, 'lastName', 'last_name'),
            age=parse_numeric(age),
            date_of_birth=_get(data, 'dateOfBirth', 'date_of_birth', 'birthDate'),
            sex=_get(data, 'gender', 'sex'),
            locale=_get(data, 'locale', 'state', 'city'),
        )


@dataclass
class CancerClassification:
    primary: Optional[str] = None
    stage: Optional[str] = None
    histology: Optional[str] = None
    grade: Optional[str] = None
    diagnosis_date: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CancerClassification':
        return cls(
            primary=_get(data, 'primary', 'primarySite', 'primary_site'),
            stage=_get(data, 'stage'),
            histology=_get(data, 'histology'),
            grade=_get(data, 'grade'),
            diagnosis_date=_get(data, 'diagnosisDate', 'diagnosis_date'),
        )


@dataclass
class HistoryEntry:
    date: Any = None
    entry_type: Optional[str] = None
    description: Optional[str] = None
    provider: Optional[str] = None
    source_system: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistoryEntry':
        return cls(
            date=_get(data, 'date', 'visitDate', 'visit_date'),
            entry_type=_get(data, 'type', 'entryType', 'entry_type'),
            description=_get(data, 'description', 'notes'),
            provider=_get(data, 'provider'),
            source_system=_get(data, 'sourceSystem', 'source_system'),
        )


@dataclass
class LabObservation:
    test_name: str
    value: Any = None
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    interpretation: Optional[str] = None

    @property
    def numeric_value(self) -> Optional[float]:
        return parse_numeric(self.value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_name: str = 'Unknown Test') -> 'LabObservation':
        return cls(
            test_name=str(_get(data, 'testName', 'test_name', 'name', default=default_name)),
            value=_get(data, 'value', 'result'),
            unit=_get(data, 'unit', 'units'),
            reference_range=_get(data, 'referenceRange', 'reference_range'),
            interpretation=_get(data, 'interpretation', 'flag'),
        )


@dataclass
class LabResult:
    """One lab-result record: a single analyte or a panel of observations."""
    timestamp: Any = None
    test_id: Optional[str] = None
    panel_name: Optional[str] = None
    observations: List[LabObservation] = field(default_factory=list)
    source_system: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LabResult':
        observations: List[LabObservation] = []
        raw_observations = _get(data, 'observations')
        raw_results = _get(data, 'results')
        if isinstance(raw_observations, dict):
            for name, value in raw_observations.items():
                if isinstance(value, dict):
                    observations.append(LabObservation.from_dict(value, default_name=name))
                else:
                    observations.append(LabObservation(test_name=str(name), value=value))
        elif isinstance(raw_results, list):
            observations = [LabObservation.from_dict(item) for item in raw_results if isinstance(item, dict)]
        elif raw_observations is not None or raw_results is not None:
            raise InvalidRecordError("Lab result observations must be a mapping or results a list")
        else:
            observations = [LabObservation.from_dict(data)]

        return cls(
            timestamp=_get(data, 'testDate', 'test_date', 'timestamp', 'date', 'collectionDate'),
            test_id=_get(data, 'testId', 'test_id'),
            panel_name=_get(data, 'panelName', 'panel_name'),
            observations=observations,
            source_system=_get(data, 'sourceSystem', 'source_system'),
        )


@dataclass
class ImagingStudy:
    study_id: Optional[str] = None
    modality: Optional[str] = None
    body_region: Optional[str] = None
    study_date: Any = None
    description: Optional[str] = None
    findings: Optional[str] = None
    image_reference: Optional[str] = None
    source_system: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ImagingStudy':
        return cls(
            study_id=_get(data, 'studyId', 'study_id'),
            modality=_get(data, 'modality'),
            body_region=_get(data, 'bodyRegion', 'body_region'),
            study_date=_get(data, 'studyDate', 'study_date', 'date'),
            description=_get(data, 'description'),
            findings=_get(data, 'findings', 'impression'),
            image_reference=_get(data, 'dicomUrl', 'dicom_url', 'imageReference'),
            source_system=_get(data, 'sourceSystem', 'source_system'),
        )


@dataclass
class PathologyReport:
    report_id: Optional[str] = None
    specimen_type: Optional[str] = None
    collection_date: Any = None
    report_date: Any = None
    findings: Optional[str] = None
    diagnosis: Optional[str] = None
    source_system: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PathologyReport':
        return cls(
            report_id=_get(data, 'reportId', 'report_id'),
            specimen_type=_get(data, 'specimenType', 'specimen_type'),
            collection_date=_get(data, 'collectionDate', 'collection_date'),
            report_date=_get(data, 'reportDate', 'report_date'),
            findings=_get(data, 'findings'),
            diagnosis=_get(data, 'diagnosis'),
            source_system=_get(data, 'sourceSystem', 'source_system'),
        )


@dataclass
class Mutation:
    gene: str
    variant: Optional[str] = None
    allele_fraction: Optional[float] = None
    interpretation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Mutation':
        return cls(
            gene=str(_get(data, 'gene', default='UNKNOWN')),
            variant=_get(data, 'variant'),
            allele_fraction=parse_numeric(_get(data, 'vaf', 'alleleFraction', 'allele_fraction')),
            interpretation=_get(data, 'interpretation', 'significance'),
        )


@dataclass
class GenomicProfile:
    mutations: List[Mutation] = field(default_factory=list)
    tmb: Optional[float] = None
    msi: Optional[str] = None
    report_date: Any = None
    source_system: Optional[str] = None

    @property
    def is_present(self) -> bool:
        return bool(self.mutations) or self.tmb is not None or bool(self.msi) or self.report_date is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GenomicProfile':
        return cls(
            mutations=[Mutation.from_dict(m) for m in _entries(data, 'genomics.mutationProfile',
                                                                'mutationProfile', 'mutation_profile', 'mutations')],
            tmb=parse_numeric(_get(data, 'tmb')),
            msi=_get(data, 'msi'),
            report_date=_get(data, 'reportDate', 'report_date'),
            source_system=_get(data, 'sourceSystem', 'source_system'),
        )


@dataclass
class TreatmentCourse:
    treatment_id: Optional[str] = None
    treatment_type: Optional[str] = None
    regimen: Optional[str] = None
    start_date: Any = None
    end_date: Any = None
    response: Optional[str] = None
    adverse_events: List[str] = field(default_factory=list)
    source_system: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TreatmentCourse':
        raw_adverse = _get(data, 'adverseEvents', 'adverse_events', default=[])
        if not isinstance(raw_adverse, list):
            raise InvalidRecordError("Treatment adverseEvents must be a list")
        adverse_events = []
        for item in raw_adverse:
            if isinstance(item, dict):
                adverse_events.append(str(_get(item, 'description', 'event', 'name', default='')))
            else:
                adverse_events.append(str(item))
        return cls(
            treatment_id=_get(data, 'treatmentId', 'treatment_id'),
            treatment_type=_get(data, 'type', 'treatmentType', 'treatment_type'),
            regimen=_get(data, 'regimen'),
            start_date=_get(data, 'startDate', 'start_date'),
            end_date=_get(data, 'endDate', 'end_date'),
            response=_get(data, 'response'),
            adverse_events=adverse_events,
            source_system=_get(data, 'sourceSystem', 'source_system'),
        )


@dataclass
class TrialEnrollment:
    trial_id: Optional[str] = None
    trial_name: Optional[str] = None
    enrollment_date: Any = None
    status: Optional[str] = None
    arm: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrialEnrollment':
        return cls(
            trial_id=_get(data, 'trialId', 'trial_id'),
            trial_name=_get(data, 'trialName', 'trial_name', 'name'),
            enrollment_date=_get(data, 'enrollmentDate', 'enrollment_date'),
            status=_get(data, 'status'),
            arm=_get(data, 'arm'),
        )


# ============================================================================
# RECORD
# ============================================================================

@dataclass
class CanonicalRecord:
    """
    Normalized per-patient clinical dataset.

    Attributes mirror the ingestion layer's sections; all but patient_id may be empty.
    """
    patient_id: str
    demographics: Demographics = field(default_factory=Demographics)
    cancer: CancerClassification = field(default_factory=CancerClassification)
    medical_history: List[HistoryEntry] = field(default_factory=list)
    lab_results: List[LabResult] = field(default_factory=list)
    imaging: List[ImagingStudy] = field(default_factory=list)
    pathology_reports: List[PathologyReport] = field(default_factory=list)
    genomics: GenomicProfile = field(default_factory=GenomicProfile)
    treatments: List[TreatmentCourse] = field(default_factory=list)
    clinical_trials: List[TrialEnrollment] = field(default_factory=list)
    baseline: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> 'CanonicalRecord':
        """
        Build a record from a JSON-like mapping.

        Raises:
            InvalidRecordError: if the record or one of its sections has the wrong shape
        """
        if isinstance(data, CanonicalRecord):
            return data
        if not isinstance(data, dict):
            raise InvalidRecordError(f"Canonical Record must be a mapping, got {type(data).__name__}")

        patient_id = _get(data, 'abhaId', 'abha_id', 'patientId', 'patient_id', 'id', default='unknown')

        return cls(
            patient_id=str(patient_id),
            demographics=Demographics.from_dict(_mapping(data, 'demographics', 'demographics')),
            cancer=CancerClassification.from_dict(_mapping(data, 'cancerType', 'cancerType', 'cancer_type')),
            medical_history=[HistoryEntry.from_dict(e) for e in
                             _entries(data, 'medicalHistory', 'medicalHistory', 'medical_history')],
            lab_results=[LabResult.from_dict(e) for e in
                         _entries(data, 'labResults', 'labResults', 'lab_results')],
            imaging=[ImagingStudy.from_dict(e) for e in _entries(data, 'imaging', 'imaging')],
            pathology_reports=[PathologyReport.from_dict(e) for e in
                               _entries(data, 'pathologyReports', 'pathologyReports', 'pathology_reports')],
            genomics=GenomicProfile.from_dict(_mapping(data, 'genomics', 'genomics')),
            treatments=[TreatmentCourse.from_dict(e) for e in _entries(data, 'treatments', 'treatments')],
            clinical_trials=[TrialEnrollment.from_dict(e) for e in
                             _entries(data, 'clinicalTrials', 'clinicalTrials', 'clinical_trials')],
            baseline=_get(data, 'baselineDate', 'baseline_date'),
        )

    def baseline_date(self) -> Optional[datetime]:
        """
        Case baseline used for relative day offsets and placeholder dates.

        Precedence: explicit baselineDate, diagnosis date, earliest visit-history
        date, earliest parseable absolute date anywhere in the record.
        """
        for candidate in (self.baseline, self.cancer.diagnosis_date):
            parsed = try_parse_date(candidate)
            if parsed is not None:
                return parsed

        history_dates = [try_parse_date(entry.date) for entry in self.medical_history]
        history_dates = [d for d in history_dates if d is not None]
        if history_dates:
            return min(history_dates)

        other_dates = [try_parse_date(value) for value in self._absolute_date_candidates()]
        other_dates = [d for d in other_dates if d is not None]
        return min(other_dates) if other_dates else None

    def _absolute_date_candidates(self) -> List[Any]:
        candidates: List[Any] = [lab.timestamp for lab in self.lab_results]
        candidates += [study.study_date for study in self.imaging]
        for report in self.pathology_reports:
            candidates += [report.collection_date, report.report_date]
        candidates.append(self.genomics.report_date)
        for course in self.treatments:
            candidates += [course.start_date, course.end_date]
        candidates += [trial.enrollment_date for trial in self.clinical_trials]
        return candidates

    def section_counts(self) -> Dict[str, int]:
        """Number of entries present per section."""
        return {
            'cancer_type': 1 if self.cancer.diagnosis_date is not None else 0,
            'medical_history': len(self.medical_history),
            'lab_results': len(self.lab_results),
            'imaging': len(self.imaging),
            'pathology_reports': len(self.pathology_reports),
            'genomics': 1 if self.genomics.is_present else 0,
            'treatments': len(self.treatments),
            'clinical_trials': len(self.clinical_trials),
        }
