"""
Population Summary

Runs the longitudinal history pipeline over many Canonical Records and rolls
the per-patient results up into population tallies:
  - patient count and average events per patient
  - treatment outcome tallies (best observed response per patient)
  - completeness buckets (>= 0.8 complete, >= 0.5 partial, else minimal)
  - risk category distribution

Patients are independent, so with max_workers > 1 they are processed in a
ProcessPoolExecutor. Results keep input order either way.
"""

import logging
from collections import Counter
from concurrent.futures import ProcessPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from ..lib.exception_handling import LongitudinalEngineError
from .engine_config import EngineConfig
from .longitudinal_history import generate_longitudinal_history

logger = logging.getLogger(__name__)


COMPLETE_THRESHOLD = 0.8
PARTIAL_THRESHOLD = 0.5


def completeness_bucket(score: Optional[float]) -> str:
    if score is None:
        return 'minimal'
    if score >= COMPLETE_THRESHOLD:
        return 'complete'
    if score >= PARTIAL_THRESHOLD:
        return 'partial'
    return 'minimal'


def summarize_patient(record: Any, config: EngineConfig, as_of: Optional[datetime] = None) -> Dict[str, Any]:
    """
    One population row for one record.

    Engine errors are reported on the row with status 'failed' instead of
    aborting the population run.
    """
    try:
        history = generate_longitudinal_history(record, config, as_of)
    except LongitudinalEngineError as e:
        patient_id = record.get('abhaId') or record.get('patientId') if isinstance(record, dict) else None
        logger.error(f"Failed to process patient {patient_id}: {e}")
        return {'patient_id': patient_id, 'status': 'failed', 'error': str(e), 'total_events': 0}

    data = history.to_dict()
    insights = data['insights']
    risk = insights.get('risk_assessment') or {}
    effectiveness = insights.get('treatment_effectiveness') or {}
    completeness = insights.get('data_completeness') or {}
    return {
        'patient_id': data['patient_id'],
        'status': data['status'],
        'total_events': data['total_events'],
        'total_treatments': data['treatment_journey']['total_treatments'],
        'best_response': effectiveness.get('best_response'),
        'data_quality_score': completeness.get('data_quality_score'),
        'completeness': completeness_bucket(completeness.get('data_quality_score')),
        'risk_score': risk.get('risk_score'),
        'risk_category': risk.get('risk_category'),
        'warning_count': len(data['warnings']),
    }


def summarize_population(
    records: Sequence[Any],
    config: Optional[EngineConfig] = None,
    max_workers: Optional[int] = None,
    as_of: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Population roll-up over many records.

    Args:
        records: Canonical Record mappings
        config: Pipeline tunables (defaults when None)
        max_workers: Worker processes; None uses config.max_workers, 1 runs sequentially
        as_of: Reference time passed to every patient run

    Returns:
        {'patient_count', 'processed', 'failed', 'average_events',
         'treatment_outcomes', 'completeness', 'risk_distribution', 'patients'}
    """
    config = config or EngineConfig()
    workers = max_workers if max_workers is not None else config.max_workers
    logger.info(f"Summarizing population of {len(records)} records ({workers} workers)")

    rows: List[Optional[Dict[str, Any]]] = [None] * len(records)
    if workers > 1 and len(records) > 1:
        with ProcessPoolExecutor(max_workers=workers) as executor:
            future_to_index = {
                executor.submit(summarize_patient, record, config, as_of): index
                for index, record in enumerate(records)
            }
            for future in as_completed(future_to_index):
                rows[future_to_index[future]] = future.result()
    else:
        for index, record in enumerate(records):
            rows[index] = summarize_patient(record, config, as_of)

    processed = [row for row in rows if row['status'] != 'failed']
    summary = {
        'patient_count': len(rows),
        'processed': len(processed),
        'failed': len(rows) - len(processed),
        'average_events': round(sum(r['total_events'] for r in processed) / len(processed), 1) if processed else 0,
        'treatment_outcomes': dict(Counter(r.get('best_response') or 'not-recorded' for r in processed)),
        'completeness': dict(Counter(r['completeness'] for r in processed)),
        'risk_distribution': dict(Counter(r['risk_category'] for r in processed if r.get('risk_category'))),
        'patients': rows,
    }
    logger.info(f"Population summary: {summary['processed']} processed, {summary['failed']} failed")
    return summary


def population_dataframe(summary: Dict[str, Any]) -> pd.DataFrame:
    """Per-patient rows of a population summary as a DataFrame."""
    return pd.DataFrame(summary['patients'])
