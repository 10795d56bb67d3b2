"""
resamplekit - resampling-based model evaluation and comparison.
"""

from .exceptions import (
    ResamplingError,
    InsufficientDataError,
    ModelFitError,
    MetricComputeError,
    ComparatorPreconditionError,
    SamplerNonConvergenceWarning
)
from .partitioning import (
    Partition,
    VFold,
    RepeatedVFold,
    StratifiedVFold,
    GroupVFold,
    Bootstrap,
    MonteCarloCV,
    RollingOrigin,
    ValidationSplit,
    LeaveOneOut,
    generate
)
from .execution import ResampleExecutor, ResampleResult, RunOptions, SklearnModel
from .metrics import collect, failures, metric_set
from .comparison import ModelComparator, PriorSpec, contrast, summarize

__version__ = "0.1.0"

__all__ = [
    'ResamplingError',
    'InsufficientDataError',
    'ModelFitError',
    'MetricComputeError',
    'ComparatorPreconditionError',
    'SamplerNonConvergenceWarning',
    'Partition',
    'VFold',
    'RepeatedVFold',
    'StratifiedVFold',
    'GroupVFold',
    'Bootstrap',
    'MonteCarloCV',
    'RollingOrigin',
    'ValidationSplit',
    'LeaveOneOut',
    'generate',
    'ResampleExecutor',
    'ResampleResult',
    'RunOptions',
    'SklearnModel',
    'collect',
    'failures',
    'metric_set',
    'ModelComparator',
    'PriorSpec',
    'contrast',
    'summarize'
]
