"""
Stratification helpers: bin a column into strata and pool small strata.
"""

import logging
from typing import List

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def make_strata(values: pd.Series, bins: int, min_size: int) -> np.ndarray:
    """
    Assign every row to a stratum.

    Numeric columns are cut at quantiles into ``bins`` groups (duplicate
    cut-points dropped); any other column is binned by category identity,
    categories in sorted order. Strata with fewer than ``min_size``
    members are merged into their smaller neighbour until every stratum is
    large enough or only one remains.

    Parameters
    ----------
    values : pd.Series
        Stratification column
    bins : int
        Number of quantile bins for numeric columns
    min_size : int
        Minimum members per stratum (the number of folds)

    Returns
    -------
    np.ndarray
        Stratum code (0..k-1) per row, adjacent codes are adjacent bins
    """
    if values.isna().any():
        raise ValueError(f"Strata column '{values.name}' contains missing values")

    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        codes = pd.qcut(values, q=bins, labels=False, duplicates='drop')
        codes = np.asarray(codes, dtype=np.int64)
    else:
        categories = sorted(pd.unique(values), key=str)
        codes = pd.Categorical(values, categories=categories).codes.astype(np.int64)

    # Drop empty codes so groups are contiguous
    present = np.unique(codes)
    groups: List[List[int]] = [[int(c)] for c in present]
    sizes = [int((codes == c).sum()) for c in present]

    while len(groups) > 1 and min(sizes) < min_size:
        i = int(np.argmin(sizes))
        if i == 0:
            j = 1
        elif i == len(groups) - 1:
            j = i - 1
        else:
            j = i - 1 if sizes[i - 1] <= sizes[i + 1] else i + 1

        logger.warning(
            f"Stratum {groups[i]} has {sizes[i]} rows (< {min_size}); "
            f"merging into adjacent stratum {groups[j]}"
        )
        lo, hi = min(i, j), max(i, j)
        groups[lo] = groups[lo] + groups[hi]
        sizes[lo] = sizes[lo] + sizes[hi]
        del groups[hi]
        del sizes[hi]

    mapping = {code: k for k, members in enumerate(groups) for code in members}
    return np.array([mapping[c] for c in codes], dtype=np.int64)
