"""
Clinical Event Data Models for the Longitudinal Timeline

Canonical event representation shared by every stage of the engine.

An Event is a tagged union: the `kind` discriminant selects exactly one
details payload dataclass (DETAILS_BY_KIND). Events and their payloads are
frozen; enrichment wraps an Event in an EnrichedEvent instead of mutating it.

Key Features:
- Enumerated kinds, categories and importance levels
- One frozen details payload per event kind
- Structured per-event warnings for recovered data quality problems
- to_dict() serialization excluding None values
"""

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .date_resolution import format_date


class EventKind(str, Enum):
    """Enumeration of event kinds"""
    DIAGNOSIS = "diagnosis"
    HISTORY_ENTRY = "history-entry"
    LAB_RESULT = "lab-result"
    IMAGING = "imaging"
    PATHOLOGY_COLLECTION = "pathology-collection"
    PATHOLOGY_REPORT = "pathology-report"
    GENOMICS = "genomics"
    TREATMENT_START = "treatment-start"
    TREATMENT_END = "treatment-end"
    ADVERSE_EVENT = "adverse-event"
    TRIAL_ENROLLMENT = "trial-enrollment"


class EventCategory(str, Enum):
    DIAGNOSIS = "diagnosis"
    CLINICAL = "clinical"
    LABORATORY = "laboratory"
    IMAGING = "imaging"
    PATHOLOGY = "pathology"
    MOLECULAR = "molecular"
    TREATMENT = "treatment"
    SAFETY = "safety"
    RESEARCH = "research"


class Importance(str, Enum):
    """Event importance, ordered low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return ['low', 'medium', 'high', 'critical'].index(self.value)


class ClinicalPhase(str, Enum):
    PRE_DIAGNOSIS = "pre-diagnosis"
    INITIAL_WORKUP = "initial-workup"
    PRIMARY_TREATMENT = "primary-treatment"
    ACTIVE_TREATMENT = "active-treatment"
    LONG_TERM_FOLLOW_UP = "long-term-follow-up"


class ResponseCategory(Enum):
    """Treatment response assessment categories"""
    COMPLETE_RESPONSE = "complete"
    PARTIAL_RESPONSE = "partial"
    STABLE_DISEASE = "stable"
    PROGRESSIVE_DISEASE = "progressive"

    @classmethod
    def from_text(cls, text: Optional[str]) -> Optional['ResponseCategory']:
        """Map free-text response ("Partial Response", "PD", ...) to a category."""
        if not text:
            return None
        value = text.strip().lower()
        abbreviations = {'cr': cls.COMPLETE_RESPONSE, 'pr': cls.PARTIAL_RESPONSE,
                         'sd': cls.STABLE_DISEASE, 'pd': cls.PROGRESSIVE_DISEASE}
        if value in abbreviations:
            return abbreviations[value]
        if 'complete' in value:
            return cls.COMPLETE_RESPONSE
        if 'partial' in value:
            return cls.PARTIAL_RESPONSE
        if 'progress' in value:
            return cls.PROGRESSIVE_DISEASE
        if 'stable' in value:
            return cls.STABLE_DISEASE
        return None


@dataclass(frozen=True)
class EventWarning:
    """
    Data quality problem recovered while building an event.

    Attributes:
        code: malformed_date | missing_date | negative_turnaround | negative_duration | empty_panel
        field: Record field that caused it (e.g. 'imaging[2].studyDate')
        message: Human-readable description
        value: Offending raw value, if any
    """
    code: str
    field: str
    message: str
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)


# ============================================================================
# DETAILS PAYLOADS (one per EventKind)
# ============================================================================

@dataclass(frozen=True)
class DiagnosisDetails:
    primary: Optional[str] = None
    stage: Optional[str] = None
    histology: Optional[str] = None
    grade: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntryDetails:
    entry_type: Optional[str] = None
    provider: Optional[str] = None


@dataclass(frozen=True)
class LabResultDetails:
    test_name: str
    value: Optional[str] = None
    numeric_value: Optional[float] = None
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    interpretation: Optional[str] = None
    is_abnormal: bool = False
    is_tumor_marker: bool = False
    panel_name: Optional[str] = None
    test_id: Optional[str] = None


@dataclass(frozen=True)
class ImagingDetails:
    modality: Optional[str] = None
    body_region: str = 'unspecified'
    findings: Optional[str] = None
    study_id: Optional[str] = None
    image_reference: Optional[str] = None
    comparison_status: Optional[str] = None
    comparison_confidence: Optional[float] = None


@dataclass(frozen=True)
class PathologyCollectionDetails:
    report_id: Optional[str] = None
    specimen_type: Optional[str] = None


@dataclass(frozen=True)
class PathologyReportDetails:
    report_id: Optional[str] = None
    specimen_type: Optional[str] = None
    diagnosis: Optional[str] = None
    findings: Optional[str] = None
    turnaround_days: Optional[int] = None


@dataclass(frozen=True)
class MutationEntry:
    gene: str
    variant: Optional[str] = None
    allele_fraction: Optional[float] = None
    interpretation: Optional[str] = None


@dataclass(frozen=True)
class ActionableMutation:
    gene: str
    variant: Optional[str]
    therapy_class: str
    therapy_options: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GenomicsDetails:
    mutations: Tuple[MutationEntry, ...] = ()
    actionable_mutations: Tuple[ActionableMutation, ...] = ()
    tmb: Optional[float] = None
    msi: Optional[str] = None

    @property
    def mutation_count(self) -> int:
        return len(self.mutations)


@dataclass(frozen=True)
class TreatmentStartDetails:
    course_index: int
    treatment_type: Optional[str] = None
    regimen: Optional[str] = None
    treatment_id: Optional[str] = None
    line: int = 1
    line_label: Optional[str] = None
    intent: str = 'unknown'


@dataclass(frozen=True)
class TreatmentEndDetails:
    course_index: int
    treatment_type: Optional[str] = None
    regimen: Optional[str] = None
    treatment_id: Optional[str] = None
    duration_days: Optional[int] = None
    response: Optional[str] = None


@dataclass(frozen=True)
class AdverseEventDetails:
    course_index: int
    description: str
    severity: str = 'mild'
    treatment_id: Optional[str] = None
    offset_days: int = 0


@dataclass(frozen=True)
class TrialEnrollmentDetails:
    trial_id: Optional[str] = None
    trial_name: Optional[str] = None
    phase: Optional[str] = None
    status: Optional[str] = None
    arm: Optional[str] = None


EventDetails = Union[
    DiagnosisDetails, HistoryEntryDetails, LabResultDetails, ImagingDetails,
    PathologyCollectionDetails, PathologyReportDetails, GenomicsDetails,
    TreatmentStartDetails, TreatmentEndDetails, AdverseEventDetails, TrialEnrollmentDetails,
]

DETAILS_BY_KIND = {
    EventKind.DIAGNOSIS: DiagnosisDetails,
    EventKind.HISTORY_ENTRY: HistoryEntryDetails,
    EventKind.LAB_RESULT: LabResultDetails,
    EventKind.IMAGING: ImagingDetails,
    EventKind.PATHOLOGY_COLLECTION: PathologyCollectionDetails,
    EventKind.PATHOLOGY_REPORT: PathologyReportDetails,
    EventKind.GENOMICS: GenomicsDetails,
    EventKind.TREATMENT_START: TreatmentStartDetails,
    EventKind.TREATMENT_END: TreatmentEndDetails,
    EventKind.ADVERSE_EVENT: AdverseEventDetails,
    EventKind.TRIAL_ENROLLMENT: TrialEnrollmentDetails,
}


# ============================================================================
# EVENT / ENRICHED EVENT
# ============================================================================

@dataclass(frozen=True)
class Event:
    """
    One timestamped clinical occurrence extracted from the Canonical Record.

    `details` must be the payload type registered for `kind` in DETAILS_BY_KIND.
    """
    event_id: str
    kind: EventKind
    date: datetime
    title: str
    description: str
    details: EventDetails
    source: str
    source_system: str
    category: EventCategory
    importance: Importance
    warnings: Tuple[EventWarning, ...] = ()

    def validate(self) -> List[str]:
        """
        Validate event structure.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []
        if not self.event_id:
            errors.append("event_id is required")
        if not isinstance(self.date, datetime):
            errors.append(f"date must be a datetime, got {type(self.date).__name__}")
        expected = DETAILS_BY_KIND.get(self.kind)
        if expected is None:
            errors.append(f"Unknown event kind: {self.kind}")
        elif not isinstance(self.details, expected):
            errors.append(f"{self.kind.value} event requires {expected.__name__}, got {type(self.details).__name__}")
        return errors

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding None values"""
        return _serialize(self)


@dataclass(frozen=True)
class RelatedEvent:
    event_id: str
    kind: EventKind
    days_difference: int
    relationship: str

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)


@dataclass(frozen=True)
class EnrichedEvent:
    """An Event plus context derived from its position in the sorted timeline."""
    event: Event
    days_from_diagnosis: int = 0
    related_events: Tuple[RelatedEvent, ...] = ()
    clinical_phase: ClinicalPhase = ClinicalPhase.INITIAL_WORKUP
    trend: Optional[str] = None
    sequence_index: int = 0

    # Read-through accessors so stages can treat Event and EnrichedEvent alike

    @property
    def event_id(self) -> str:
        return self.event.event_id

    @property
    def kind(self) -> EventKind:
        return self.event.kind

    @property
    def date(self) -> datetime:
        return self.event.date

    @property
    def title(self) -> str:
        return self.event.title

    @property
    def description(self) -> str:
        return self.event.description

    @property
    def details(self) -> EventDetails:
        return self.event.details

    @property
    def source(self) -> str:
        return self.event.source

    @property
    def source_system(self) -> str:
        return self.event.source_system

    @property
    def category(self) -> EventCategory:
        return self.event.category

    @property
    def importance(self) -> Importance:
        return self.event.importance

    @property
    def warnings(self) -> Tuple[EventWarning, ...]:
        return self.event.warnings

    def to_dict(self) -> Dict[str, Any]:
        """Flattened event dictionary with enrichment fields appended."""
        result = self.event.to_dict()
        result['days_from_diagnosis'] = self.days_from_diagnosis
        result['related_events'] = [r.to_dict() for r in self.related_events]
        result['clinical_phase'] = self.clinical_phase.value
        if self.trend is not None:
            result['trend'] = self.trend
        result['sequence_index'] = self.sequence_index
        return result


AnyEvent = Union[Event, EnrichedEvent]


def _serialize(value: Any) -> Any:
    """Recursive dataclass -> dict conversion; drops None fields, renders enums and dates."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_date(value)
    if hasattr(value, '__dataclass_fields__'):
        result = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            result[f.name] = _serialize(item)
        if isinstance(value, GenomicsDetails):
            result['mutation_count'] = value.mutation_count
        return result
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value
