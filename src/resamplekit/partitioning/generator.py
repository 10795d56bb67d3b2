"""
Partition Generation
====================

Deterministic partition sequences: identical ``(scheme, n, seed)`` always
yields identical index arrays. A scheme that needs several independent
random streams (repeats, bootstrap resamples) derives them from the seed
with ``numpy.random.SeedSequence.spawn``.
"""

import logging
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from ..config import get_settings
from ..exceptions import InsufficientDataError
from .schemes import (
    Bootstrap,
    GroupVFold,
    LeaveOneOut,
    MonteCarloCV,
    Partition,
    PartitionScheme,
    RepeatedVFold,
    RollingOrigin,
    StratifiedVFold,
    ValidationSplit,
    VFold,
)
from .strata import make_strata

logger = logging.getLogger(__name__)


def _label(prefix: str, i: int, total: int) -> str:
    width = max(2, len(str(total)))
    return f"{prefix}{i:0{width}d}"


def _child_rngs(seed: int, k: int) -> List[np.random.Generator]:
    return [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(k)]


def _complement(n: int, idx: np.ndarray) -> np.ndarray:
    return np.setdiff1d(np.arange(n), idx, assume_unique=False)


def _vfold_blocks(n: int, v: int, rng: np.random.Generator) -> List[np.ndarray]:
    """Permute [0, n) and split into v blocks, larger blocks first."""
    if n < v:
        raise InsufficientDataError(f"V-fold needs at least v={v} rows, got n={n}")
    perm = rng.permutation(n)
    # array_split gives the first n % v blocks one extra element
    return [np.sort(block) for block in np.array_split(perm, v)]


def _vfold(scheme: VFold, n: int, seed: int, data) -> List[Partition]:
    blocks = _vfold_blocks(n, scheme.v, np.random.default_rng(seed))
    return [
        Partition(
            id=_label('Fold', i + 1, scheme.v),
            analysis=_complement(n, block),
            assessment=block,
            fold=i + 1
        )
        for i, block in enumerate(blocks)
    ]


def _repeated_vfold(scheme: RepeatedVFold, n: int, seed: int, data) -> List[Partition]:
    partitions = []
    for r, rng in enumerate(_child_rngs(seed, scheme.repeats), start=1):
        blocks = _vfold_blocks(n, scheme.v, rng)
        repeat_label = _label('Repeat', r, scheme.repeats)
        for f, block in enumerate(blocks, start=1):
            partitions.append(Partition(
                id=f"{repeat_label}_{_label('Fold', f, scheme.v)}",
                analysis=_complement(n, block),
                assessment=block,
                repeat=r,
                fold=f
            ))
    return partitions


def _stratified_vfold(scheme: StratifiedVFold, n: int, seed: int,
                      data: pd.DataFrame) -> List[Partition]:
    if n < scheme.v:
        raise InsufficientDataError(f"V-fold needs at least v={scheme.v} rows, got n={n}")
    if scheme.strata_column not in data.columns:
        raise ValueError(f"Missing strata column: {scheme.strata_column}")

    strata = make_strata(data[scheme.strata_column], scheme.bins, scheme.v)
    rng = np.random.default_rng(seed)

    # Rotating the starting fold per stratum keeps overall fold sizes within one
    fold_of = np.empty(n, dtype=np.int64)
    offset = 0
    for s in np.unique(strata):
        members = rng.permutation(np.flatnonzero(strata == s))
        fold_of[members] = (offset + np.arange(len(members))) % scheme.v
        offset += len(members)

    partitions = []
    for f in range(scheme.v):
        assessment = np.flatnonzero(fold_of == f)
        partitions.append(Partition(
            id=_label('Fold', f + 1, scheme.v),
            analysis=np.flatnonzero(fold_of != f),
            assessment=assessment,
            fold=f + 1
        ))
    return partitions


def _group_vfold(scheme: GroupVFold, n: int, seed: int,
                 data: pd.DataFrame) -> List[Partition]:
    if scheme.group_column not in data.columns:
        raise ValueError(f"Missing group column: {scheme.group_column}")

    groups = data[scheme.group_column].to_numpy()
    unique = pd.unique(groups)
    if len(unique) < scheme.v:
        raise InsufficientDataError(
            f"Group V-fold needs at least v={scheme.v} groups, got {len(unique)}"
        )

    rng = np.random.default_rng(seed)
    partitions = []
    for f, block in enumerate(np.array_split(rng.permutation(len(unique)), scheme.v), start=1):
        in_fold = np.isin(groups, unique[block])
        partitions.append(Partition(
            id=_label('Fold', f, scheme.v),
            analysis=np.flatnonzero(~in_fold),
            assessment=np.flatnonzero(in_fold),
            fold=f
        ))
    return partitions


def _bootstrap(scheme: Bootstrap, n: int, seed: int, data) -> List[Partition]:
    if n < 1:
        raise InsufficientDataError("Bootstrap needs at least one row")

    partitions = []
    for i, rng in enumerate(_child_rngs(seed, scheme.times), start=1):
        draws = np.sort(rng.integers(0, n, size=n))
        partitions.append(Partition(
            id=_label('Bootstrap', i, scheme.times),
            analysis=draws,
            assessment=_complement(n, draws)
        ))
    return partitions


def _split_sizes(prop: float, n: int, label: str) -> int:
    n_analysis = int(np.floor(prop * n))
    if n_analysis < 1 or n_analysis >= n:
        raise InsufficientDataError(
            f"{label} with prop={prop} leaves an empty side for n={n}"
        )
    return n_analysis


def _mc_cv(scheme: MonteCarloCV, n: int, seed: int, data) -> List[Partition]:
    n_analysis = _split_sizes(scheme.prop, n, 'Monte Carlo CV')

    partitions = []
    for i, rng in enumerate(_child_rngs(seed, scheme.times), start=1):
        analysis = np.sort(rng.choice(n, size=n_analysis, replace=False))
        partitions.append(Partition(
            id=_label('Resample', i, scheme.times),
            analysis=analysis,
            assessment=_complement(n, analysis)
        ))
    return partitions


def _rolling_origin(scheme: RollingOrigin, n: int, seed: int, data) -> List[Partition]:
    window = scheme.initial + scheme.assess
    if n < window:
        raise InsufficientDataError(
            f"Rolling origin needs initial + assess = {window} rows, got n={n}"
        )

    stride = scheme.skip + 1
    count = (n - window) // stride + 1

    partitions = []
    for i in range(count):
        s = i * stride
        start = 0 if scheme.cumulative else s
        end = s + scheme.initial
        partitions.append(Partition(
            id=_label('Slice', i + 1, count),
            analysis=np.arange(start, end),
            assessment=np.arange(end, end + scheme.assess)
        ))
    return partitions


def _validation_split(scheme: ValidationSplit, n: int, seed: int, data) -> List[Partition]:
    n_analysis = _split_sizes(scheme.prop, n, 'Validation split')
    perm = np.random.default_rng(seed).permutation(n)
    return [Partition(
        id='validation',
        analysis=np.sort(perm[:n_analysis]),
        assessment=np.sort(perm[n_analysis:])
    )]


def _loo(scheme: LeaveOneOut, n: int, seed: int, data) -> List[Partition]:
    if n < 2:
        raise InsufficientDataError(f"Leave-one-out needs at least 2 rows, got n={n}")
    return [
        Partition(
            id=_label('Resample', i + 1, n),
            analysis=_complement(n, np.array([i])),
            assessment=np.array([i])
        )
        for i in range(n)
    ]


_GENERATORS: Dict[type, Callable] = {
    VFold: _vfold,
    RepeatedVFold: _repeated_vfold,
    StratifiedVFold: _stratified_vfold,
    GroupVFold: _group_vfold,
    Bootstrap: _bootstrap,
    MonteCarloCV: _mc_cv,
    RollingOrigin: _rolling_origin,
    ValidationSplit: _validation_split,
    LeaveOneOut: _loo,
}

_NEEDS_DATA = (StratifiedVFold, GroupVFold)


def generate(
    scheme: PartitionScheme,
    n: int,
    seed: Optional[int] = None,
    data: Optional[pd.DataFrame] = None
) -> List[Partition]:
    """
    Generate the ordered partition sequence for a scheme.

    Parameters
    ----------
    scheme : PartitionScheme
        Resampling scheme
    n : int
        Number of rows in the dataset
    seed : int, optional
        Non-negative seed; the configured default seed when omitted
    data : pd.DataFrame, optional
        Dataset, required by stratified and grouped schemes

    Returns
    -------
    List[Partition]
        Partitions in generation order (ids sort in the same order)
    """
    if type(scheme) not in _GENERATORS:
        raise ValueError(f"Unknown resampling scheme: {scheme!r}")
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")

    if seed is None:
        seed = get_settings().DEFAULT_SEED
        logger.debug(f"No seed given, using default seed {seed}")
    if seed < 0:
        raise ValueError(f"seed must be non-negative, got {seed}")

    if isinstance(scheme, _NEEDS_DATA):
        if data is None:
            raise ValueError(f"{scheme.name} needs the dataset to read its column from")
        if len(data) != n:
            raise ValueError(f"n={n} does not match dataset length {len(data)}")

    partitions = _GENERATORS[type(scheme)](scheme, n, seed, data)

    logger.info(f"Generated {len(partitions)} partitions for {scheme.describe()} (n={n}, seed={seed})")

    return partitions
