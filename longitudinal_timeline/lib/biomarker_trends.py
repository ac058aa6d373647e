"""
Biomarker Trend Analysis

Per-test trend direction and magnitude over a series of lab values:
  - ordinary least-squares slope over the value sequence indexed 0..n-1
  - Pearson correlation (NaN when either variance is zero; callers treat NaN
    as "insufficient variation", not as an error)
  - percent change from first to last sample
  - clinical direction through the per-test directionality table

Usage:
    from longitudinal_timeline.lib.biomarker_trends import compute_trend

    result = compute_trend([9.0, 11.0], test_name='Hemoglobin')
    result.direction       # 'improving'
    result.change_percent  # 22.22
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .canonical_record import parse_numeric
from .clinical_event import AnyEvent, EventKind
from .clinical_vocabulary import (
    BIOMARKER_INTERPRETATIONS,
    classify_change,
    is_blood_count,
    is_tumor_marker,
    normalize_test_name,
)

logger = logging.getLogger(__name__)


DEFAULT_STABLE_THRESHOLD_PERCENT = 10.0
HIGH_SIGNIFICANCE_PERCENT = 50.0
MODERATE_SIGNIFICANCE_PERCENT = 20.0
DEFAULT_SIGNIFICANCE_THRESHOLDS = (HIGH_SIGNIFICANCE_PERCENT, MODERATE_SIGNIFICANCE_PERCENT)


@dataclass(frozen=True)
class TrendResult:
    """
    Trend of one biomarker.

    Attributes:
        test_name: Display name of the test
        sample_count: Number of numeric samples
        direction: improving | declining | increasing | decreasing | stable, or
            None when there are fewer than two samples
        slope: OLS slope per sample
        correlation: Pearson r of value against sample index (NaN on zero variance)
        change_percent: (last - first) / first * 100, None when first is 0
        clinical_interpretation: Short interpretation string
        clinical_significance: high | moderate | low by magnitude of change
        status: analyzed | insufficient-data
    """
    test_name: str
    sample_count: int
    direction: Optional[str]
    slope: Optional[float]
    correlation: Optional[float]
    change_percent: Optional[float]
    first_value: Optional[float]
    last_value: Optional[float]
    clinical_interpretation: str
    clinical_significance: Optional[str]
    status: str = 'analyzed'

    @property
    def trend(self) -> Optional[str]:
        return self.direction

    @property
    def has_variation(self) -> bool:
        return self.correlation is not None and not math.isnan(self.correlation)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'test_name': self.test_name,
            'sample_count': self.sample_count,
            'direction': self.direction,
            'slope': self.slope,
            'correlation': self.correlation,
            'change_percent': self.change_percent,
            'first_value': self.first_value,
            'last_value': self.last_value,
            'clinical_interpretation': self.clinical_interpretation,
            'clinical_significance': self.clinical_significance,
            'status': self.status,
        }


def linear_regression(values: Sequence[float]) -> Dict[str, float]:
    """
    OLS slope and Pearson correlation of values against their index.

    Returns:
        {'slope': float, 'intercept': float, 'correlation': float or NaN}
    """
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    x_dev = x - x.mean()
    y_dev = y - y.mean()
    sxx = float(np.sum(x_dev ** 2))
    syy = float(np.sum(y_dev ** 2))
    sxy = float(np.sum(x_dev * y_dev))

    slope = sxy / sxx if sxx > 0 else 0.0
    intercept = float(y.mean()) - slope * float(x.mean())
    denominator = math.sqrt(sxx * syy)
    correlation = sxy / denominator if denominator > 0 else float('nan')
    return {'slope': slope, 'intercept': intercept, 'correlation': correlation}


def classify_significance(
    change_percent: Optional[float],
    thresholds: Tuple[float, float] = DEFAULT_SIGNIFICANCE_THRESHOLDS
) -> Optional[str]:
    """high / moderate / low by |change_percent| against (high, moderate) bounds."""
    if change_percent is None:
        return None
    high, moderate = thresholds
    magnitude = abs(change_percent)
    if magnitude > high:
        return 'high'
    if magnitude > moderate:
        return 'moderate'
    return 'low'


def interpret_trend(test_name: Optional[str], direction: Optional[str], has_variation: bool) -> str:
    if direction is None:
        return 'Insufficient data for trend analysis'
    if direction == 'stable':
        return 'Stable values' if has_variation else 'Stable values, insufficient variation for correlation'
    if is_tumor_marker(test_name) and direction in BIOMARKER_INTERPRETATIONS['tumor_marker']:
        return BIOMARKER_INTERPRETATIONS['tumor_marker'][direction]
    if is_blood_count(test_name) and direction in BIOMARKER_INTERPRETATIONS['blood_count']:
        return BIOMARKER_INTERPRETATIONS['blood_count'][direction]
    if direction in ('improving', 'declining'):
        return f"Clinically {direction} trend"
    return f"{direction.capitalize()} trend without established clinical directionality"


def compute_trend(
    values: Sequence[Any],
    test_name: Optional[str] = None,
    threshold_percent: float = DEFAULT_STABLE_THRESHOLD_PERCENT,
    significance_thresholds: Tuple[float, float] = DEFAULT_SIGNIFICANCE_THRESHOLDS
) -> TrendResult:
    """
    Trend of a series of values of one test.

    Args:
        values: Values in chronological order; non-numeric entries are skipped
        test_name: Test name, used for directionality and interpretation
        threshold_percent: Changes within this percentage are 'stable'
        significance_thresholds: (high, moderate) bounds on |change_percent|

    Returns:
        TrendResult
    """
    numeric = [v for v in (parse_numeric(value) for value in values) if v is not None]
    name = test_name or 'unknown'

    if len(numeric) < 2:
        return TrendResult(
            test_name=name,
            sample_count=len(numeric),
            direction=None,
            slope=None,
            correlation=None,
            change_percent=None,
            first_value=numeric[0] if numeric else None,
            last_value=numeric[-1] if numeric else None,
            clinical_interpretation=interpret_trend(test_name, None, False),
            clinical_significance=None,
            status='insufficient-data',
        )

    regression = linear_regression(numeric)
    first, last = numeric[0], numeric[-1]
    if first != 0:
        change_percent = round((last - first) / abs(first) * 100, 2)
    elif last == 0:
        change_percent = 0.0
    else:
        change_percent = None

    slope = round(regression['slope'], 4)
    correlation = regression['correlation']
    if not math.isnan(correlation):
        correlation = round(correlation, 4)

    if slope == 0:
        direction = 'stable'
    elif change_percent is None:
        direction = classify_change(test_name, math.copysign(float('inf'), last - first), threshold_percent)
    else:
        direction = classify_change(test_name, change_percent, threshold_percent)

    has_variation = not math.isnan(correlation)
    return TrendResult(
        test_name=name,
        sample_count=len(numeric),
        direction=direction,
        slope=slope,
        correlation=correlation,
        change_percent=change_percent,
        first_value=first,
        last_value=last,
        clinical_interpretation=interpret_trend(test_name, direction, has_variation),
        clinical_significance=classify_significance(change_percent, significance_thresholds),
    )


def group_lab_series(events: Sequence[AnyEvent]) -> Dict[str, List[AnyEvent]]:
    """
    Lab-result events grouped by test name (case-insensitive), date order kept.

    Keys are the display name of the first occurrence.
    """
    display_names: Dict[str, str] = {}
    series: Dict[str, List[AnyEvent]] = {}
    for event in events:
        if event.kind != EventKind.LAB_RESULT:
            continue
        key = normalize_test_name(event.details.test_name)
        if key not in display_names:
            display_names[key] = event.details.test_name
            series[display_names[key]] = []
        series[display_names[key]].append(event)
    return series


def analyze_biomarker_trends(
    events: Sequence[AnyEvent],
    threshold_percent: float = DEFAULT_STABLE_THRESHOLD_PERCENT,
    significance_thresholds: Tuple[float, float] = DEFAULT_SIGNIFICANCE_THRESHOLDS
) -> Dict[str, TrendResult]:
    """
    TrendResult per test name over date-sorted events.

    Returns:
        Mapping display test name -> TrendResult (tests with no numeric values omitted)
    """
    trends = {}
    for test_name, series in group_lab_series(events).items():
        values = [e.details.numeric_value for e in series if e.details.numeric_value is not None]
        if not values:
            continue
        trends[test_name] = compute_trend(values, test_name, threshold_percent, significance_thresholds)
    logger.debug(f"Computed trends for {len(trends)} biomarkers")
    return trends


def summarize_biomarker_trends(trends: Dict[str, TrendResult]) -> Dict[str, Any]:
    """Output structure for insights.biomarker_trends."""
    significant = [
        {
            'test_name': name,
            'direction': result.direction,
            'change_percent': result.change_percent,
            'significance': result.clinical_significance,
            'interpretation': result.clinical_interpretation,
        }
        for name, result in trends.items()
        if result.clinical_significance in ('high', 'moderate')
    ]
    return {
        'total_biomarkers': len(trends),
        'trends': {name: result.to_dict() for name, result in trends.items()},
        'significant_changes': significant,
    }
