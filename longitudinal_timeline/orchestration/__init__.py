"""
Orchestration for the Longitudinal Timeline Engine

Wires the pipeline stages together for one record (generate_longitudinal_history)
or many (summarize_population), with YAML-backed tunables (EngineConfig).
"""

from .engine_config import EngineConfig, load_engine_config
from .longitudinal_history import EmptyHistory, LongitudinalHistory, generate_longitudinal_history
from .population_summary import summarize_population

__version__ = "1.0.0"

__all__ = [
    'EngineConfig',
    'load_engine_config',
    'LongitudinalHistory',
    'EmptyHistory',
    'generate_longitudinal_history',
    'summarize_population',
]
