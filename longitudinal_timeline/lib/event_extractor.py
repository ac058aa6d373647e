#!/usr/bin/env python3
"""
Event Extractor

Maps each section of a Canonical Record into a flat list of typed Events.

Extraction rules per section:
  - cancerType        -> one diagnosis event (critical) when a diagnosis date exists
  - medicalHistory    -> one history-entry event per visit
  - labResults        -> one lab-result event per individual observation; an
                         empty panel gives one valueless event with a warning
  - imaging           -> one imaging event per study, with body region and
                         comparison against the previous study of its series
  - pathologyReports  -> a collection event and a report event per report
  - genomics          -> one genomics event with actionable-gene annotation
  - treatments        -> treatment-start, optional treatment-end, and one
                         adverse-event per listed adverse event
  - clinicalTrials    -> one trial-enrollment event per enrollment

Absent sections contribute no events. Unparseable or missing dates are
recovered in place: the event is dated at the case baseline and carries an
EventWarning naming the field. A relative "day_N" timestamp with no baseline
raises MissingBaselineError.

Usage:
    from longitudinal_timeline.lib.event_extractor import extract_events

    events = extract_events(record_dict)
"""

import re
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

from .canonical_record import CanonicalRecord, LabObservation, parse_reference_range
from .clinical_event import (
    ActionableMutation,
    AdverseEventDetails,
    DiagnosisDetails,
    Event,
    EventCategory,
    EventKind,
    EventWarning,
    GenomicsDetails,
    HistoryEntryDetails,
    ImagingDetails,
    Importance,
    LabResultDetails,
    MutationEntry,
    PathologyCollectionDetails,
    PathologyReportDetails,
    TreatmentEndDetails,
    TreatmentStartDetails,
    TrialEnrollmentDetails,
)
from .clinical_vocabulary import (
    ABNORMAL_INTERPRETATION_KEYWORDS,
    ACTIONABLE_GENES,
    IMAGING_HIGH_IMPORTANCE_KEYWORDS,
    IMAGING_MEDIUM_IMPORTANCE_KEYWORDS,
    actionable_gene_key,
    classify_adverse_event_severity,
    classify_body_region,
    default_lab_unit,
    format_history_title,
    format_treatment_type,
    is_blood_count,
    is_tumor_marker,
    mentions_any,
)
from .date_resolution import days_between, resolve_date
from .exception_handling import DataQualityTracker, MalformedDateError, MissingBaselineError
from .imaging_response import classify_imaging_series
from .structured_logging import get_logger
from .treatment_ordinality import TreatmentOrdinalityProcessor, infer_treatment_intent


DEFAULT_ADVERSE_EVENT_OFFSET_DAYS = 7
EMPTY_PANEL_NAME = 'Lab Panel'

TRIAL_PHASE_PATTERN = re.compile(r"phase\s+(i{1,3}|[1-3])\b", re.IGNORECASE)
ROMAN_PHASES = {'1': 'I', '2': 'II', '3': 'III'}


class EventExtractor:
    """
    Builds Events from one Canonical Record.

    Attributes:
        record: Parsed CanonicalRecord
        baseline: Case baseline for relative offsets and placeholder dates
        adverse_event_offset_days: Fixed offset from course start for adverse events
        tracker: DataQualityTracker collecting section counts and warnings
    """

    def __init__(
        self,
        record: CanonicalRecord,
        adverse_event_offset_days: int = DEFAULT_ADVERSE_EVENT_OFFSET_DAYS,
        tracker: Optional[DataQualityTracker] = None
    ):
        self.record = record
        self.baseline = record.baseline_date()
        self.adverse_event_offset_days = adverse_event_offset_days
        self.tracker = tracker or DataQualityTracker()
        self.logger = get_logger(__name__, patient_id=record.patient_id, stage='extraction')

    def extract_all(self) -> List[Event]:
        """Run every section extractor in fixed order."""
        section_extractors = [
            ('cancer_type', self._extract_diagnosis),
            ('medical_history', self._extract_history),
            ('lab_results', self._extract_labs),
            ('imaging', self._extract_imaging),
            ('pathology_reports', self._extract_pathology),
            ('genomics', self._extract_genomics),
            ('treatments', self._extract_treatments),
            ('clinical_trials', self._extract_trials),
        ]
        counts = self.record.section_counts()

        events: List[Event] = []
        for section_name, extractor in section_extractors:
            self.tracker.mark_entries(section_name, counts[section_name])
            section_events = extractor()
            self.tracker.mark_events(section_name, len(section_events))
            for event in section_events:
                for warning in event.warnings:
                    self.tracker.log_warning(section_name, dict(warning.to_dict(), event_id=event.event_id))
            events.extend(section_events)

        self.logger.info(f"Extracted {len(events)} events from {sum(1 for c in counts.values() if c)} sections")
        return events

    # ------------------------------------------------------------------
    # Date handling
    # ------------------------------------------------------------------

    def _resolve(self, raw: Any, field_name: str) -> Tuple[datetime, List[EventWarning]]:
        """
        Resolve a timestamp, falling back to the baseline placeholder.

        Raises:
            MissingBaselineError: relative offset, or a placeholder needed, with no baseline
        """
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            placeholder = self._placeholder(field_name, raw)
            return placeholder, [EventWarning(
                code='missing_date',
                field=field_name,
                message=f"No date recorded in {field_name}; dated at case baseline",
            )]
        try:
            return resolve_date(raw, field_name, self.baseline), []
        except MalformedDateError as e:
            self.logger.warning(str(e))
            placeholder = self._placeholder(field_name, raw)
            return placeholder, [EventWarning(
                code='malformed_date',
                field=field_name,
                message=e.message,
                value=str(raw),
            )]

    def _placeholder(self, field_name: str, raw: Any) -> datetime:
        if self.baseline is None:
            raise MissingBaselineError(field_name, raw, patient_id=self.record.patient_id)
        return self.baseline

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _extract_diagnosis(self) -> List[Event]:
        cancer = self.record.cancer
        if cancer.diagnosis_date is None:
            return []
        event_date, warnings = self._resolve(cancer.diagnosis_date, 'cancerType.diagnosisDate')
        primary = cancer.primary or 'cancer'
        return [Event(
            event_id='diagnosis-0',
            kind=EventKind.DIAGNOSIS,
            date=event_date,
            title='Cancer Diagnosis',
            description=f"Diagnosed with {primary}",
            details=DiagnosisDetails(
                primary=cancer.primary,
                stage=cancer.stage,
                histology=cancer.histology,
                grade=cancer.grade,
            ),
            source='cancer_type',
            source_system='EMR',
            category=EventCategory.DIAGNOSIS,
            importance=Importance.CRITICAL,
            warnings=tuple(warnings),
        )]

    def _extract_history(self) -> List[Event]:
        events = []
        for index, entry in enumerate(self.record.medical_history):
            event_date, warnings = self._resolve(entry.date, f"medicalHistory[{index}].date")
            title = format_history_title(entry.entry_type)
            is_diagnosis = (entry.entry_type or '').strip().lower() == 'diagnosis'
            events.append(Event(
                event_id=f"history-{index}",
                kind=EventKind.HISTORY_ENTRY,
                date=event_date,
                title=title,
                description=entry.description or title,
                details=HistoryEntryDetails(entry_type=entry.entry_type, provider=entry.provider),
                source='medical_history',
                source_system=entry.source_system or 'EMR',
                category=EventCategory.CLINICAL,
                importance=Importance.HIGH if is_diagnosis else Importance.MEDIUM,
                warnings=tuple(warnings),
            ))
        return events

    def _extract_labs(self) -> List[Event]:
        events = []
        for index, lab in enumerate(self.record.lab_results):
            event_date, warnings = self._resolve(lab.timestamp, f"labResults[{index}].testDate")
            observations = lab.observations
            if not observations:
                # Empty panel still yields one valueless event
                observations = [LabObservation(test_name=lab.panel_name or EMPTY_PANEL_NAME)]
                warnings = warnings + [EventWarning(
                    code='empty_panel',
                    field=f"labResults[{index}]",
                    message="Lab panel has no observations; recorded without a value",
                )]
            for obs_index, observation in enumerate(observations):
                events.append(self._build_lab_event(
                    f"lab-{index}-{obs_index}", event_date, warnings, observation,
                    lab.source_system, lab.panel_name, lab.test_id
                ))
        return events

    def _build_lab_event(self, event_id: str, event_date: datetime, warnings: List[EventWarning],
                         observation: LabObservation, source_system: Optional[str],
                         panel_name: Optional[str], test_id: Optional[str]) -> Event:
        test_name = observation.test_name
        unit = observation.unit or default_lab_unit(test_name)
        numeric_value = observation.numeric_value
        tumor_marker = is_tumor_marker(test_name)
        abnormal = self._is_abnormal(observation, numeric_value)

        if abnormal or tumor_marker:
            importance = Importance.HIGH
        elif is_blood_count(test_name):
            importance = Importance.MEDIUM
        else:
            importance = Importance.LOW

        value_text = None if observation.value is None else str(observation.value)
        description = f"{test_name}: {value_text if value_text is not None else 'no value'}"
        if unit:
            description += f" {unit}"
        if observation.interpretation:
            description += f" ({observation.interpretation})"

        return Event(
            event_id=event_id,
            kind=EventKind.LAB_RESULT,
            date=event_date,
            title=f"{test_name} Result",
            description=description,
            details=LabResultDetails(
                test_name=test_name,
                value=value_text,
                numeric_value=numeric_value,
                unit=unit,
                reference_range=observation.reference_range,
                interpretation=observation.interpretation,
                is_abnormal=abnormal,
                is_tumor_marker=tumor_marker,
                panel_name=panel_name,
                test_id=test_id,
            ),
            source='lab_results',
            source_system=source_system or 'LIS',
            category=EventCategory.LABORATORY,
            importance=importance,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _is_abnormal(observation: LabObservation, numeric_value: Optional[float]) -> bool:
        if mentions_any(observation.interpretation, ABNORMAL_INTERPRETATION_KEYWORDS):
            return True
        bounds = parse_reference_range(observation.reference_range)
        if bounds is not None and numeric_value is not None:
            low, high = bounds
            return numeric_value < low or numeric_value > high
        return False

    def _extract_imaging(self) -> List[Event]:
        studies = self.record.imaging
        resolved = [self._resolve(study.study_date, f"imaging[{i}].studyDate") for i, study in enumerate(studies)]
        regions = [_body_region(study) for study in studies]

        # Comparison series: same body region, date order (stable)
        comparisons = {}
        for region in dict.fromkeys(regions):
            members = [i for i in range(len(studies)) if regions[i] == region]
            members.sort(key=lambda i: resolved[i][0])
            series = classify_imaging_series([studies[i].findings for i in members])
            comparisons.update(zip(members, series))

        events = []
        for index, study in enumerate(studies):
            event_date, warnings = resolved[index]
            modality = study.modality or 'Imaging'
            findings = study.findings
            if mentions_any(findings, IMAGING_HIGH_IMPORTANCE_KEYWORDS):
                importance = Importance.HIGH
            elif mentions_any(findings, IMAGING_MEDIUM_IMPORTANCE_KEYWORDS):
                importance = Importance.MEDIUM
            else:
                importance = Importance.LOW

            comparison = comparisons[index]
            events.append(Event(
                event_id=f"imaging-{index}",
                kind=EventKind.IMAGING,
                date=event_date,
                title=f"{modality} Study",
                description=study.description or findings or f"{modality} imaging study",
                details=ImagingDetails(
                    modality=study.modality,
                    body_region=regions[index],
                    findings=findings,
                    study_id=study.study_id,
                    image_reference=study.image_reference,
                    comparison_status=comparison.status,
                    comparison_confidence=comparison.confidence,
                ),
                source='imaging',
                source_system=study.source_system or 'PACS',
                category=EventCategory.IMAGING,
                importance=importance,
                warnings=tuple(warnings),
            ))
        return events

    def _extract_pathology(self) -> List[Event]:
        events = []
        for index, report in enumerate(self.record.pathology_reports):
            collected, collection_warnings = self._resolve(
                report.collection_date, f"pathologyReports[{index}].collectionDate")
            reported, report_warnings = self._resolve(
                report.report_date, f"pathologyReports[{index}].reportDate")
            source_system = report.source_system or 'PATHOLOGY'
            specimen = report.specimen_type or 'Tissue'

            turnaround = None
            if not collection_warnings and not report_warnings:
                turnaround = days_between(reported, collected)
                if turnaround < 0:
                    report_warnings.append(EventWarning(
                        code='negative_turnaround',
                        field=f"pathologyReports[{index}].reportDate",
                        message=f"Report date precedes collection date by {-turnaround} days; turnaround set to 0",
                        value=str(report.report_date),
                    ))
                    turnaround = 0

            events.append(Event(
                event_id=f"pathology-{index}-collection",
                kind=EventKind.PATHOLOGY_COLLECTION,
                date=collected,
                title='Tissue Sample Collection',
                description=f"{specimen} specimen collected",
                details=PathologyCollectionDetails(report_id=report.report_id, specimen_type=report.specimen_type),
                source='pathology_reports',
                source_system=source_system,
                category=EventCategory.PATHOLOGY,
                importance=Importance.MEDIUM,
                warnings=tuple(collection_warnings),
            ))
            events.append(Event(
                event_id=f"pathology-{index}-report",
                kind=EventKind.PATHOLOGY_REPORT,
                date=reported,
                title='Pathology Report Available',
                description=report.diagnosis or report.findings or 'Pathology report finalized',
                details=PathologyReportDetails(
                    report_id=report.report_id,
                    specimen_type=report.specimen_type,
                    diagnosis=report.diagnosis,
                    findings=report.findings,
                    turnaround_days=turnaround,
                ),
                source='pathology_reports',
                source_system=source_system,
                category=EventCategory.PATHOLOGY,
                importance=Importance.HIGH,
                warnings=tuple(report_warnings),
            ))
        return events

    def _extract_genomics(self) -> List[Event]:
        profile = self.record.genomics
        if not profile.is_present:
            return []
        event_date, warnings = self._resolve(profile.report_date, 'genomics.reportDate')

        mutations = tuple(
            MutationEntry(gene=m.gene, variant=m.variant, allele_fraction=m.allele_fraction,
                          interpretation=m.interpretation)
            for m in profile.mutations
        )
        actionable = []
        for mutation in profile.mutations:
            key = actionable_gene_key(mutation.gene)
            if key is None:
                continue
            therapy_class, options = ACTIONABLE_GENES[key]
            actionable.append(ActionableMutation(
                gene=mutation.gene,
                variant=mutation.variant,
                therapy_class=therapy_class,
                therapy_options=tuple(options),
            ))

        description = f"{len(mutations)} mutations identified"
        if actionable:
            description += f", {len(actionable)} actionable"
        return [Event(
            event_id='genomics-0',
            kind=EventKind.GENOMICS,
            date=event_date,
            title='Genomic Profile Available',
            description=description,
            details=GenomicsDetails(
                mutations=mutations,
                actionable_mutations=tuple(actionable),
                tmb=profile.tmb,
                msi=profile.msi,
            ),
            source='genomics',
            source_system=profile.source_system or 'GENOMICS',
            category=EventCategory.MOLECULAR,
            importance=Importance.HIGH,
            warnings=tuple(warnings),
        )]

    def _extract_treatments(self) -> List[Event]:
        courses = self.record.treatments
        starts = [self._resolve(c.start_date, f"treatments[{i}].startDate") for i, c in enumerate(courses)]
        lines = TreatmentOrdinalityProcessor(
            [date if not warnings else None for date, warnings in starts]
        ).assign_all_ordinality()
        intent = infer_treatment_intent(self.record.cancer.stage)

        events = []
        for index, course in enumerate(courses):
            start_date, start_warnings = starts[index]
            label = format_treatment_type(course.treatment_type)
            regimen = course.regimen or label
            source_system = course.source_system or 'EMR'
            line_number, line_text = lines[index]

            events.append(Event(
                event_id=f"treatment-{index}-start",
                kind=EventKind.TREATMENT_START,
                date=start_date,
                title=f"{label} Started",
                description=f"Initiated {regimen}",
                details=TreatmentStartDetails(
                    course_index=index,
                    treatment_type=course.treatment_type,
                    regimen=course.regimen,
                    treatment_id=course.treatment_id,
                    line=line_number,
                    line_label=line_text,
                    intent=intent,
                ),
                source='treatments',
                source_system=source_system,
                category=EventCategory.TREATMENT,
                importance=Importance.CRITICAL,
                warnings=tuple(start_warnings),
            ))

            end_date = None
            if course.end_date is not None:
                end_date, end_warnings = self._resolve(course.end_date, f"treatments[{index}].endDate")
                duration = None
                if not start_warnings and not end_warnings:
                    duration = days_between(end_date, start_date)
                    if duration < 0:
                        end_warnings.append(EventWarning(
                            code='negative_duration',
                            field=f"treatments[{index}].endDate",
                            message='End date precedes start date; duration unavailable',
                            value=str(course.end_date),
                        ))
                        duration = None
                description = f"Completed {regimen}"
                if course.response:
                    description += f" - {course.response}"
                events.append(Event(
                    event_id=f"treatment-{index}-end",
                    kind=EventKind.TREATMENT_END,
                    date=end_date,
                    title=f"{label} Completed",
                    description=description,
                    details=TreatmentEndDetails(
                        course_index=index,
                        treatment_type=course.treatment_type,
                        regimen=course.regimen,
                        treatment_id=course.treatment_id,
                        duration_days=duration,
                        response=course.response,
                    ),
                    source='treatments',
                    source_system=source_system,
                    category=EventCategory.TREATMENT,
                    importance=Importance.HIGH,
                    warnings=tuple(end_warnings),
                ))

            ae_date = start_date + timedelta(days=self.adverse_event_offset_days)
            if end_date is not None and start_date <= end_date < ae_date:
                ae_date = end_date
            for ae_index, adverse_event in enumerate(course.adverse_events):
                severity = classify_adverse_event_severity(adverse_event)
                events.append(Event(
                    event_id=f"treatment-{index}-ae-{ae_index}",
                    kind=EventKind.ADVERSE_EVENT,
                    date=ae_date,
                    title=f"Adverse Event: {adverse_event}",
                    description=f"{adverse_event} ({severity}) during {regimen}",
                    details=AdverseEventDetails(
                        course_index=index,
                        description=adverse_event,
                        severity=severity,
                        treatment_id=course.treatment_id,
                        offset_days=days_between(ae_date, start_date),
                    ),
                    source='treatments',
                    source_system=source_system,
                    category=EventCategory.SAFETY,
                    importance=Importance.MEDIUM,
                    warnings=tuple(start_warnings),
                ))
        return events

    def _extract_trials(self) -> List[Event]:
        events = []
        for index, trial in enumerate(self.record.clinical_trials):
            event_date, warnings = self._resolve(trial.enrollment_date, f"clinicalTrials[{index}].enrollmentDate")
            name = trial.trial_name or trial.trial_id or 'clinical trial'
            events.append(Event(
                event_id=f"trial-{index}",
                kind=EventKind.TRIAL_ENROLLMENT,
                date=event_date,
                title='Clinical Trial Enrollment',
                description=f"Enrolled in {name}",
                details=TrialEnrollmentDetails(
                    trial_id=trial.trial_id,
                    trial_name=trial.trial_name,
                    phase=extract_trial_phase(trial.trial_name),
                    status=trial.status,
                    arm=trial.arm,
                ),
                source='clinical_trials',
                source_system='CLINICAL_TRIALS',
                category=EventCategory.RESEARCH,
                importance=Importance.HIGH,
                warnings=tuple(warnings),
            ))
        return events


def _body_region(study) -> str:
    """Explicit region, else keyword lookup over description, then findings."""
    if study.body_region:
        return study.body_region
    region = classify_body_region(study.description)
    if region == 'unspecified':
        region = classify_body_region(study.findings)
    return region


def extract_trial_phase(trial_name: Optional[str]) -> Optional[str]:
    """'Phase II' from "A Phase 2 study of ..."; None when absent."""
    if not trial_name:
        return None
    match = TRIAL_PHASE_PATTERN.search(trial_name)
    if not match:
        return None
    phase = match.group(1).upper()
    return f"Phase {ROMAN_PHASES.get(phase, phase)}"


def extract_events(
    record: Any,
    adverse_event_offset_days: int = DEFAULT_ADVERSE_EVENT_OFFSET_DAYS,
    tracker: Optional[DataQualityTracker] = None
) -> List[Event]:
    """
    Convert a Canonical Record into a flat list of Events.

    Args:
        record: Canonical Record mapping (or CanonicalRecord)
        adverse_event_offset_days: Days after course start used to date adverse events
        tracker: Optional tracker receiving section counts and warnings

    Returns:
        Events in extraction order (section order, then entry order)

    Raises:
        InvalidRecordError: record structure is unusable
        MissingBaselineError: relative or missing timestamp with no derivable baseline
    """
    canonical = CanonicalRecord.from_dict(record)
    return EventExtractor(canonical, adverse_event_offset_days, tracker).extract_all()
