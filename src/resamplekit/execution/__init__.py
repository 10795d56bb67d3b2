"""
Resample execution module.
"""

from .results import FailureNote, ResampleResult
from .scheduler import (
    Scheduler,
    SerialScheduler,
    ThreadScheduler,
    ProcessScheduler,
    JoblibScheduler,
    make_scheduler
)
from .models import SklearnModel
from .executor import RunOptions, ResampleExecutor, evaluate_partition, fit_resamples

__all__ = [
    'FailureNote',
    'ResampleResult',
    'Scheduler',
    'SerialScheduler',
    'ThreadScheduler',
    'ProcessScheduler',
    'JoblibScheduler',
    'make_scheduler',
    'SklearnModel',
    'RunOptions',
    'ResampleExecutor',
    'evaluate_partition',
    'fit_resamples'
]
