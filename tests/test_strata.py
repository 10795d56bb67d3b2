import logging

import numpy as np
import pandas as pd
import pytest

from resamplekit.exceptions import InsufficientDataError
from resamplekit.partitioning import StratifiedVFold, generate
from resamplekit.partitioning.strata import make_strata


def test_numeric_column_cut_at_quantiles():
    values = pd.Series(np.arange(100, dtype=float), name='price')
    codes = make_strata(values, bins=4, min_size=5)

    assert sorted(np.unique(codes).tolist()) == [0, 1, 2, 3]
    assert np.bincount(codes).tolist() == [25, 25, 25, 25]
    # Lower values land in lower bins
    assert codes[0] == 0 and codes[-1] == 3


def test_categorical_column_binned_by_identity():
    values = pd.Series(['b', 'a', 'c', 'a', 'b', 'c'] * 5, name='kind')
    codes = make_strata(values, bins=4, min_size=2)

    assert len(np.unique(codes)) == 3
    assert codes[1] == codes[3]


def test_small_stratum_merged_into_smaller_neighbour(caplog):
    values = pd.Series(['a'] * 50 + ['b'] * 2 + ['c'] * 48, name='kind')

    with caplog.at_level(logging.WARNING):
        codes = make_strata(values, bins=4, min_size=5)

    assert len(np.unique(codes)) == 2
    assert codes[50] == codes[60]
    assert codes[0] != codes[50]
    assert 'merging' in caplog.text


def test_missing_strata_values_rejected():
    values = pd.Series([1.0, np.nan, 3.0], name='x')
    with pytest.raises(ValueError, match="missing values"):
        make_strata(values, bins=2, min_size=1)


def test_stratified_vfold_balances_strata_across_folds():
    data = pd.DataFrame({'y': np.random.default_rng(0).uniform(size=100)})
    partitions = generate(StratifiedVFold(strata_column='y', v=5, bins=4), 100, seed=3, data=data)
    quartile = pd.qcut(data['y'], 4, labels=False).to_numpy()

    assessed = np.concatenate([p.assessment for p in partitions])
    assert sorted(assessed.tolist()) == list(range(100))

    for p in partitions:
        assert len(p.assessment) == 20
        assert np.bincount(quartile[p.assessment], minlength=4).tolist() == [5, 5, 5, 5]
        assert len(np.intersect1d(p.analysis, p.assessment)) == 0


def test_stratified_vfold_is_deterministic():
    data = pd.DataFrame({'kind': list('aabbbcccc') * 4})
    scheme = StratifiedVFold(strata_column='kind', v=3)

    first = generate(scheme, len(data), seed=10, data=data)
    second = generate(scheme, len(data), seed=10, data=data)
    assert [p.fingerprint for p in first] == [p.fingerprint for p in second]


def test_stratified_vfold_insufficient_rows():
    data = pd.DataFrame({'y': [1.0, 2.0]})
    with pytest.raises(InsufficientDataError):
        generate(StratifiedVFold(strata_column='y', v=3), 2, seed=1, data=data)
