"""
Model comparison module.
"""

from .design import PriorSpec, ModelDesign, build_design
from .samplers import Sampler, BootstrapSampler, MixedLMSampler, make_sampler
from .posterior import (
    ComparisonResult,
    Contrast,
    contrast,
    summarize,
    summarize_posterior,
    split_rhat
)
from .comparator import ModelComparator

__all__ = [
    'PriorSpec',
    'ModelDesign',
    'build_design',
    'Sampler',
    'BootstrapSampler',
    'MixedLMSampler',
    'make_sampler',
    'ComparisonResult',
    'Contrast',
    'contrast',
    'summarize',
    'summarize_posterior',
    'split_rhat',
    'ModelComparator'
]
