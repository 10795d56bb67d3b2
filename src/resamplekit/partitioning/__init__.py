"""
Partition generation module.
"""

from .schemes import (
    Partition,
    PartitionScheme,
    VFold,
    RepeatedVFold,
    StratifiedVFold,
    GroupVFold,
    Bootstrap,
    MonteCarloCV,
    RollingOrigin,
    ValidationSplit,
    LeaveOneOut,
    scheme_from_config
)
from .generator import generate

__all__ = [
    'Partition',
    'PartitionScheme',
    'VFold',
    'RepeatedVFold',
    'StratifiedVFold',
    'GroupVFold',
    'Bootstrap',
    'MonteCarloCV',
    'RollingOrigin',
    'ValidationSplit',
    'LeaveOneOut',
    'scheme_from_config',
    'generate'
]
