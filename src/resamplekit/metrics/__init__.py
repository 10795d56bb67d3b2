"""
Metric computation and collection module.
"""

from .registry import METRICS, metric_set
from .collector import (
    collect,
    failures,
    collect_predictions,
    collect_extracts,
    collect_models
)

__all__ = [
    'METRICS',
    'metric_set',
    'collect',
    'failures',
    'collect_predictions',
    'collect_extracts',
    'collect_models'
]
