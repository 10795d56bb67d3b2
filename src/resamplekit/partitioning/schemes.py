"""
Resampling Schemes
==================

Each scheme carries only the parameters needed to regenerate its
partition sequence from ``(n, seed)``:

1. VFold / RepeatedVFold / StratifiedVFold / GroupVFold
2. Bootstrap
3. MonteCarloCV
4. RollingOrigin
5. ValidationSplit
6. LeaveOneOut
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import numpy as np


@dataclass(frozen=True, eq=False)
class Partition:
    """One analysis/assessment split, stored as integer positions."""
    id: str
    analysis: np.ndarray = field(repr=False)
    assessment: np.ndarray = field(repr=False)
    repeat: Optional[int] = None
    fold: Optional[int] = None

    def __post_init__(self):
        for name in ('analysis', 'assessment'):
            arr = np.asarray(getattr(self, name), dtype=np.int64)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def fingerprint(self) -> str:
        """Stable hash of both index arrays."""
        digest = hashlib.sha1()
        digest.update(self.analysis.tobytes())
        digest.update(b'|')
        digest.update(self.assessment.tobytes())
        return digest.hexdigest()[:16]


class PartitionScheme:
    """Base class for resampling schemes."""

    name: str = ''

    def describe(self) -> str:
        params = ', '.join(f"{k}={v}" for k, v in vars(self).items())
        return f"{self.name}({params})"


def _check_positive(value: int, label: str, minimum: int = 1):
    if int(value) != value or value < minimum:
        raise ValueError(f"{label} must be an integer >= {minimum}, got {value!r}")


def _check_prop(prop: float):
    if not 0 < prop < 1:
        raise ValueError(f"prop must be in (0, 1), got {prop!r}")


@dataclass(frozen=True)
class VFold(PartitionScheme):
    v: int = 10
    name = 'vfold'

    def __post_init__(self):
        _check_positive(self.v, 'v', minimum=2)


@dataclass(frozen=True)
class RepeatedVFold(PartitionScheme):
    v: int = 10
    repeats: int = 1
    name = 'repeated_vfold'

    def __post_init__(self):
        _check_positive(self.v, 'v', minimum=2)
        _check_positive(self.repeats, 'repeats')


@dataclass(frozen=True)
class StratifiedVFold(PartitionScheme):
    strata_column: str
    v: int = 10
    bins: int = 4
    name = 'stratified_vfold'

    def __post_init__(self):
        _check_positive(self.v, 'v', minimum=2)
        _check_positive(self.bins, 'bins')


@dataclass(frozen=True)
class GroupVFold(PartitionScheme):
    group_column: str
    v: int = 10
    name = 'group_vfold'

    def __post_init__(self):
        _check_positive(self.v, 'v', minimum=2)


@dataclass(frozen=True)
class Bootstrap(PartitionScheme):
    times: int = 25
    name = 'bootstrap'

    def __post_init__(self):
        _check_positive(self.times, 'times')


@dataclass(frozen=True)
class MonteCarloCV(PartitionScheme):
    prop: float = 0.75
    times: int = 25
    name = 'mc_cv'

    def __post_init__(self):
        _check_prop(self.prop)
        _check_positive(self.times, 'times')


@dataclass(frozen=True)
class RollingOrigin(PartitionScheme):
    initial: int
    assess: int = 1
    skip: int = 0
    cumulative: bool = True
    name = 'rolling_origin'

    def __post_init__(self):
        _check_positive(self.initial, 'initial')
        _check_positive(self.assess, 'assess')
        _check_positive(self.skip, 'skip', minimum=0)


@dataclass(frozen=True)
class ValidationSplit(PartitionScheme):
    prop: float = 0.75
    name = 'validation_split'

    def __post_init__(self):
        _check_prop(self.prop)


@dataclass(frozen=True)
class LeaveOneOut(PartitionScheme):
    name = 'loo'


SCHEMES = {
    cls.name: cls
    for cls in (VFold, RepeatedVFold, StratifiedVFold, GroupVFold, Bootstrap,
                MonteCarloCV, RollingOrigin, ValidationSplit, LeaveOneOut)
}


def scheme_from_config(config: Mapping[str, Any]) -> PartitionScheme:
    """
    Build a scheme from a plain mapping.

    Parameters
    ----------
    config : Mapping
        Must hold ``scheme`` (e.g. 'vfold', 'bootstrap'); the remaining
        keys are passed to the scheme

    Returns
    -------
    PartitionScheme
        Validated scheme instance
    """
    params = dict(config)
    name = params.pop('scheme', None)
    if name not in SCHEMES:
        raise ValueError(f"Unknown resampling scheme: {name}")

    try:
        return SCHEMES[name](**params)
    except TypeError as e:
        raise ValueError(f"Invalid parameters for {name}: {e}") from e
