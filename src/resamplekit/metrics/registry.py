"""
Performance Metrics
===================

Named metric functions with the ``compute(observed, predicted) -> float``
signature, built on ``sklearn.metrics``:

1. Regression: rmse, mae, rsq (squared correlation), rsq_trad
2. Classification: accuracy, kap, mcc
"""

from typing import Callable, Dict

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    cohen_kappa_score,
    matthews_corrcoef,
    mean_absolute_error,
    mean_squared_error,
    r2_score
)

MetricFn = Callable[[np.ndarray, np.ndarray], float]


def rmse(observed, predicted) -> float:
    """Root mean squared error."""
    return float(np.sqrt(mean_squared_error(observed, predicted)))


def mae(observed, predicted) -> float:
    """Mean absolute error."""
    return float(mean_absolute_error(observed, predicted))


def rsq(observed, predicted) -> float:
    """Squared Pearson correlation between observed and predicted."""
    observed = np.asarray(observed, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if len(observed) < 2 or np.std(observed) == 0 or np.std(predicted) == 0:
        return float('nan')
    return float(np.corrcoef(observed, predicted)[0, 1] ** 2)


def rsq_trad(observed, predicted) -> float:
    """Traditional coefficient of determination."""
    return float(r2_score(observed, predicted))


def accuracy(observed, predicted) -> float:
    return float(accuracy_score(observed, predicted))


def kap(observed, predicted) -> float:
    return float(cohen_kappa_score(observed, predicted))


def mcc(observed, predicted) -> float:
    return float(matthews_corrcoef(observed, predicted))


METRICS: Dict[str, MetricFn] = {
    'rmse': rmse,
    'mae': mae,
    'rsq': rsq,
    'rsq_trad': rsq_trad,
    'accuracy': accuracy,
    'kap': kap,
    'mcc': mcc,
}


def metric_set(*names: str) -> Dict[str, MetricFn]:
    """
    Resolve metric names to functions.

    Parameters
    ----------
    *names : str
        Registered metric names

    Returns
    -------
    Dict[str, MetricFn]
        Ordered name -> function mapping
    """
    unknown = [name for name in names if name not in METRICS]
    if unknown:
        raise ValueError(f"Unknown metric(s): {', '.join(unknown)}")
    return {name: METRICS[name] for name in names}
