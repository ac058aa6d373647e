#!/usr/bin/env python3
"""
Exception Handling Framework

Tiered exception handling (FATAL vs RECOVERABLE) for the longitudinal engine,
plus a data quality tracker so that per-event recoveries are surfaced in the
output instead of being silently dropped.

Usage:
    from longitudinal_timeline.lib.exception_handling import (
        MissingBaselineError, MalformedDateError, DataQualityTracker
    )

    # FATAL errors - propagate to the caller
    raise MissingBaselineError("labResults[2].testDate", "day_14")

    # RECOVERABLE errors - convert to a warning and continue
    try:
        event_date = parse_date(raw, field_name)
    except MalformedDateError as e:
        tracker.log_warning("lab_results", {"code": "malformed_date", "message": e.message})

    completeness = tracker.get_completeness_metadata()
"""

import logging
from typing import Optional, Dict, Any, List
from dataclasses import dataclass
from enum import Enum


logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels for tiered exception handling."""
    FATAL = "fatal"              # Propagates to the caller
    RECOVERABLE = "recoverable"  # Recovered in place, surfaced as a warning
    WARNING = "warning"          # Data quality note only


class LongitudinalEngineError(Exception):
    """Base class for every error raised by the engine."""

    severity = ErrorSeverity.FATAL
    label = "ENGINE ERROR"

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        patient_id: Optional[str] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.patient_id = patient_id
        self.original_exception = original_exception

    def __str__(self):
        parts = [f"{self.label}: {self.message}"]
        if self.stage:
            parts.append(f"Stage: {self.stage}")
        if self.patient_id:
            parts.append(f"Patient: {self.patient_id}")
        if self.original_exception:
            parts.append(f"Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}")
        return " | ".join(parts)


class FatalError(LongitudinalEngineError):
    """
    Fatal error - the record cannot be processed.

    Examples:
        - Relative lab timestamp with no case baseline
        - Record section with the wrong container type
    """
    severity = ErrorSeverity.FATAL
    label = "FATAL ERROR"


class RecoverableError(LongitudinalEngineError):
    """
    Recoverable error - handled where it occurs, processing continues.

    Examples:
        - One unparseable timestamp in an otherwise valid record
        - A record with nothing to extract (rendered as an empty state)
    """
    severity = ErrorSeverity.RECOVERABLE
    label = "RECOVERABLE ERROR"

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        patient_id: Optional[str] = None,
        original_exception: Optional[Exception] = None,
        recovery_action: Optional[str] = None
    ):
        super().__init__(message, stage=stage, patient_id=patient_id,
                         original_exception=original_exception)
        self.recovery_action = recovery_action

    def __str__(self):
        text = super().__str__()
        if self.recovery_action:
            text = f"{text} | Recovery: {self.recovery_action}"
        return text


class MalformedDateError(RecoverableError):
    """A source timestamp could not be parsed under any recognized format."""

    def __init__(self, field_name: str, raw_value: Any, stage: Optional[str] = 'extraction'):
        super().__init__(
            f"Unparseable date in {field_name}: {raw_value!r}",
            stage=stage,
            recovery_action="dated at case baseline"
        )
        self.field_name = field_name
        self.raw_value = raw_value


class EmptyRecordError(RecoverableError):
    """The Canonical Record produced no events at all."""

    def __init__(self, patient_id: Optional[str] = None):
        super().__init__(
            "Record has no extractable events",
            stage='extraction',
            patient_id=patient_id,
            recovery_action="returned empty history"
        )


class MissingBaselineError(FatalError):
    """A relative day offset appeared with no case baseline to resolve it."""

    def __init__(self, field_name: str, raw_value: Any, patient_id: Optional[str] = None):
        super().__init__(
            f"Relative timestamp {raw_value!r} in {field_name} has no case baseline to resolve against",
            stage='extraction',
            patient_id=patient_id
        )
        self.field_name = field_name
        self.raw_value = raw_value


class InvalidRecordError(FatalError):
    """The Canonical Record violates the expected structure."""


class UnsupportedExportFormatError(ValueError):
    """Requested export format is not one of the supported projections."""

    def __init__(self, fmt: str, supported: List[str]):
        super().__init__(f"Unsupported export format '{fmt}'. Supported: {', '.join(supported)}")
        self.fmt = fmt
        self.supported = supported


@dataclass
class SectionExtraction:
    """
    Tracks extraction of one Canonical Record section.

    Attributes:
        section_name: Record section (e.g., 'lab_results', 'imaging')
        entry_count: Entries present in the record
        event_count: Events produced from those entries
        warning_count: Data quality warnings raised while extracting
    """
    section_name: str
    entry_count: int = 0
    event_count: int = 0
    warning_count: int = 0


class DataQualityTracker:
    """
    Tracks per-section extraction counts and data quality warnings.

    Gives the output a record of which sections contributed events and which
    entries needed recovery, so partial data is never mistaken for complete data.
    """

    def __init__(self):
        self.sections: Dict[str, SectionExtraction] = {}
        self.warnings: List[Dict[str, Any]] = []

    def _section(self, section_name: str) -> SectionExtraction:
        if section_name not in self.sections:
            self.sections[section_name] = SectionExtraction(section_name=section_name)
        return self.sections[section_name]

    def mark_entries(self, section_name: str, entry_count: int):
        """Record how many entries a section holds."""
        self._section(section_name).entry_count = entry_count

    def mark_events(self, section_name: str, event_count: int):
        """Record how many events a section produced."""
        self._section(section_name).event_count += event_count

    def log_warning(
        self,
        section_name: str,
        warning: Dict[str, Any],
        severity: ErrorSeverity = ErrorSeverity.WARNING
    ):
        """Log a data quality warning for later reporting."""
        self._section(section_name).warning_count += 1
        entry = {'section': section_name, 'severity': severity.value}
        entry.update(warning)
        self.warnings.append(entry)
        logger.debug(f"Data quality warning in {section_name}: {warning.get('code', 'unspecified')}")

    def get_completeness_score(self) -> float:
        """
        Fraction of non-empty sections that produced at least one event.

        Returns:
            Float between 0.0 and 1.0 (1.0 when no section had entries)
        """
        populated = [s for s in self.sections.values() if s.entry_count > 0]
        if not populated:
            return 1.0
        contributing = sum(1 for s in populated if s.event_count > 0)
        return contributing / len(populated)

    def get_completeness_metadata(self) -> Dict[str, Any]:
        """Return completeness metadata for the output structure."""
        return {
            'completeness_score': round(self.get_completeness_score(), 3),
            'sections': {
                name: {
                    'entries': s.entry_count,
                    'events': s.event_count,
                    'warnings': s.warning_count
                }
                for name, s in self.sections.items()
            },
            'warning_count': len(self.warnings)
        }
