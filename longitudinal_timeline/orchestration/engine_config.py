"""
Engine Configuration

Tunables of the longitudinal history pipeline. Defaults live in code; a YAML
file may override any subset of them, either flat or grouped by section:

    enrichment:
      related_window_days: 7
      phase_thresholds: [30, 90, 365]
    care:
      care_gap_days: 30

Usage:
    from longitudinal_timeline.orchestration.engine_config import load_engine_config

    config = load_engine_config('config/engine_config.yaml')
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)


CONFIG_SECTIONS = ('extraction', 'timeline', 'enrichment', 'analytics', 'care', 'processing')


@dataclass
class EngineConfig:
    """
    Pipeline tunables.

    Attributes:
        adverse_event_offset_days: Days after course start used to date adverse events
        key_findings_limit: Key findings per timeline period
        related_window_days: +/- window for related events
        trend_threshold_percent: Minimum change for a non-stable lab trend
        phase_thresholds: Upper bounds (days) of workup, primary and active phases
        biomarker_response_threshold_percent: Stable band for per-course biomarker response
        significance_high_percent: |change| above which a biomarker change is high significance
        significance_moderate_percent: |change| above which it is moderate significance
        follow_up_window_days: Observation window for ongoing courses and imaging attribution
        care_gap_days: Consecutive events further apart than this form a care gap
        interaction_window_days: Window for cross-source interactions
        milestone_lookahead: Events after a milestone weighed for its impact
        max_workers: Worker processes for population runs (1 = sequential)
    """
    adverse_event_offset_days: int = 7
    key_findings_limit: int = 3
    related_window_days: int = 7
    trend_threshold_percent: float = 10.0
    phase_thresholds: Tuple[int, int, int] = (30, 90, 365)
    biomarker_response_threshold_percent: float = 20.0
    significance_high_percent: float = 50.0
    significance_moderate_percent: float = 20.0
    follow_up_window_days: int = 365
    care_gap_days: int = 30
    interaction_window_days: int = 7
    milestone_lookahead: int = 5
    max_workers: int = 1

    @property
    def significance_thresholds(self) -> Tuple[float, float]:
        return (self.significance_high_percent, self.significance_moderate_percent)

    def validate(self) -> List[str]:
        """
        Validate configuration values.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []
        for name in ('adverse_event_offset_days', 'related_window_days', 'care_gap_days',
                     'interaction_window_days', 'follow_up_window_days'):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be non-negative, got {getattr(self, name)}")
        for name in ('key_findings_limit', 'milestone_lookahead', 'max_workers'):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in ('trend_threshold_percent', 'biomarker_response_threshold_percent'):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be non-negative, got {getattr(self, name)}")

        if len(self.phase_thresholds) != 3:
            errors.append(f"phase_thresholds needs exactly 3 values, got {len(self.phase_thresholds)}")
        elif not (0 <= self.phase_thresholds[0] < self.phase_thresholds[1] < self.phase_thresholds[2]):
            errors.append(f"phase_thresholds must be strictly increasing, got {list(self.phase_thresholds)}")

        if self.significance_moderate_percent > self.significance_high_percent:
            errors.append("significance_moderate_percent must not exceed significance_high_percent")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['phase_thresholds'] = list(self.phase_thresholds)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        """
        Build a config from flat or section-grouped values over the defaults.

        Unknown keys are logged and ignored.
        """
        known = {f.name for f in fields(cls)}
        flat: Dict[str, Any] = {}
        for key, value in data.items():
            if key in CONFIG_SECTIONS and isinstance(value, dict):
                flat.update(value)
            else:
                flat[key] = value

        values = {}
        for key, value in flat.items():
            if key not in known:
                logger.warning(f"Ignoring unknown engine config key: {key}")
                continue
            values[key] = value
        if 'phase_thresholds' in values:
            values['phase_thresholds'] = tuple(values['phase_thresholds'])
        return cls(**values)


def load_engine_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load engine configuration.

    Args:
        path: YAML file; None returns the in-code defaults

    Raises:
        ValueError: file content is not a mapping, or values fail validation
    """
    if path is None:
        return EngineConfig()

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Engine config {path} must be a mapping, got {type(data).__name__}")

    config = EngineConfig.from_dict(data)
    errors = config.validate()
    if errors:
        logger.error(f"Invalid engine config {path}: {'; '.join(errors)}")
        raise ValueError(f"Invalid engine config {path}: {'; '.join(errors)}")

    logger.info(f"Loaded engine config from {path}")
    return config
