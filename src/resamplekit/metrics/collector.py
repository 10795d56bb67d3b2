"""
Metric Collection
=================

Turns per-partition results into tables:
1. Raw estimates (one row per partition and metric)
2. Summaries (mean, standard error, number of partitions)
3. Failed partitions, predictions and extracts for diagnostics

Partitions carrying a failure note never enter the estimate tables.
"""

import logging
from typing import Dict, Iterable, List

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

RAW_COLUMNS = ['partition_id', 'metric', 'estimate']
SUMMARY_COLUMNS = ['metric', 'mean', 'standard_error', 'n']


def _successful(results: Iterable) -> List:
    return [r for r in results if r.failure is None]


def collect(results: Iterable, summarize: bool = True) -> pd.DataFrame:
    """
    Collect metric estimates.

    Parameters
    ----------
    results : Iterable[ResampleResult]
        Results of one model
    summarize : bool
        Summarize per metric instead of returning raw estimates

    Returns
    -------
    pd.DataFrame
        Raw: partition_id, metric, estimate.
        Summarized: metric, mean, standard_error (sd / sqrt(n)), n
    """
    results = list(results)
    ok = _successful(results)

    if len(ok) < len(results):
        logger.info(f"Excluding {len(results) - len(ok)} failed partition(s) from collection")

    raw = pd.DataFrame(
        [
            {'partition_id': r.partition_id, 'metric': name, 'estimate': value}
            for r in ok
            for name, value in r.metrics.items()
        ],
        columns=RAW_COLUMNS
    )

    if not summarize:
        return raw

    rows = []
    # Keep metric order of first appearance
    for metric in pd.unique(raw['metric']):
        values = raw.loc[raw['metric'] == metric, 'estimate'].to_numpy(dtype=float)
        k = len(values)
        standard_error = values.std(ddof=1) / np.sqrt(k) if k > 1 else np.nan
        rows.append({
            'metric': metric,
            'mean': values.mean(),
            'standard_error': standard_error,
            'n': k
        })

    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def failures(results: Iterable) -> pd.DataFrame:
    """Partitions excluded from aggregation, with the recorded error."""
    return pd.DataFrame(
        [
            {
                'partition_id': r.partition_id,
                'error': r.failure.error_type,
                'stage': r.failure.stage,
                'message': r.failure.message
            }
            for r in results if r.failure is not None
        ],
        columns=['partition_id', 'error', 'stage', 'message']
    )


def collect_predictions(results: Iterable, summarize: bool = False) -> pd.DataFrame:
    """
    Collect saved assessment-set predictions.

    Parameters
    ----------
    results : Iterable[ResampleResult]
        Results run with ``save_predictions``
    summarize : bool
        Average predictions per original row; rows predicted by several
        resamples (bootstrap, repeated V-fold) collapse to one

    Returns
    -------
    pd.DataFrame
        partition_id, row, observed, predicted (raw) or
        row, observed, predicted, n (summarized)
    """
    frames = [r.predictions for r in _successful(results) if r.predictions is not None]
    if not frames:
        raise ValueError("No saved predictions; run with save_predictions=True")

    predictions = pd.concat(frames, ignore_index=True)
    if not summarize:
        return predictions

    if pd.api.types.is_numeric_dtype(predictions['predicted']):
        agg = {'observed': 'first', 'predicted': 'mean', 'partition_id': 'count'}
    else:
        # Majority vote for class predictions
        agg = {
            'observed': 'first',
            'predicted': lambda s: s.value_counts().index[0],
            'partition_id': 'count'
        }

    summary = predictions.groupby('row', sort=True).agg(agg)
    return summary.rename(columns={'partition_id': 'n'}).reset_index()


def collect_extracts(results: Iterable) -> pd.DataFrame:
    """Extractor payloads per partition (failed fits have none)."""
    return pd.DataFrame(
        [
            {'partition_id': r.partition_id, 'extract': r.extract, 'extract_error': r.extract_error}
            for r in _successful(results)
        ],
        columns=['partition_id', 'extract', 'extract_error'],
        dtype=object
    )


def collect_models(results_by_model: Dict[str, Iterable], summarize: bool = True) -> pd.DataFrame:
    """
    Stack collected metrics of several models with a ``model`` column.

    Parameters
    ----------
    results_by_model : Dict[str, Iterable[ResampleResult]]
        Model name -> results
    summarize : bool
        Passed to ``collect``

    Returns
    -------
    pd.DataFrame
        Collected tables with a leading ``model`` column
    """
    frames = []
    for name, results in results_by_model.items():
        table = collect(results, summarize=summarize)
        table.insert(0, 'model', name)
        frames.append(table)

    if not frames:
        columns = SUMMARY_COLUMNS if summarize else RAW_COLUMNS
        return pd.DataFrame(columns=['model'] + columns)

    return pd.concat(frames, ignore_index=True)
