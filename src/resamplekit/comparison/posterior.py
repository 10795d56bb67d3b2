"""
Posterior Summaries
===================

Contrasts between models are differences of posterior draws; summaries
report a point estimate, an equal-tailed credible interval, the
probability that the difference is positive and the probability that it
lies inside the region of practical equivalence (ROPE).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd


@dataclass(frozen=True, eq=False)
class ComparisonResult:
    """Draws of per-model mean performance"""
    draws: pd.DataFrame = field(repr=False)
    metric: str
    models: List[str]
    reference: str
    transform: str
    sampler: str
    rhat: Dict[str, float] = field(default_factory=dict)
    converged: bool = True

    def model_draws(self, model: str) -> np.ndarray:
        if model not in self.models:
            raise ValueError(f"Unknown model: {model}")
        return self.draws[model].to_numpy(dtype=float)


@dataclass(frozen=True, eq=False)
class Contrast:
    """Draws of mean(model_a) - mean(model_b)"""
    model_a: str
    model_b: str
    metric: str
    difference: np.ndarray = field(repr=False)

    @property
    def label(self) -> str:
        return f"{self.model_a} vs {self.model_b}"


def split_rhat(draws: np.ndarray) -> float:
    """
    Split potential scale reduction factor.

    Parameters
    ----------
    draws : np.ndarray
        Shape (chains, iterations)

    Returns
    -------
    float
        R-hat; NaN when fewer than 4 iterations or no within-chain variance
    """
    draws = np.asarray(draws, dtype=float)
    n = draws.shape[1] // 2
    if n < 2:
        return float('nan')

    halves = np.concatenate([draws[:, :n], draws[:, n:2 * n]], axis=0)
    within = halves.var(axis=1, ddof=1).mean()
    if within == 0:
        return float('nan')

    between = n * halves.mean(axis=1).var(ddof=1)
    var_hat = (n - 1) / n * within + between / n
    return float(np.sqrt(var_hat / within))


def contrast(
    posterior: ComparisonResult,
    model_a: str,
    model_b: str,
    seed: Optional[int] = None,
    n_draws: Optional[int] = None
) -> Contrast:
    """
    Posterior distribution of mean(model_a) - mean(model_b).

    Parameters
    ----------
    posterior : ComparisonResult
        Fitted posterior
    model_a, model_b : str
        Models to contrast
    seed : int, optional
        Seed for subsampling, only used with ``n_draws``
    n_draws : int, optional
        Subsample this many draws without replacement

    Returns
    -------
    Contrast
        Difference draws
    """
    difference = posterior.model_draws(model_a) - posterior.model_draws(model_b)

    if n_draws is not None and n_draws < len(difference):
        rng = np.random.default_rng(seed)
        difference = difference[np.sort(rng.choice(len(difference), size=n_draws, replace=False))]

    return Contrast(model_a=model_a, model_b=model_b, metric=posterior.metric,
                    difference=difference)


def summarize(contrast: Contrast, effect_size: float, level: float = 0.90) -> Dict[str, Any]:
    """
    Summarize a contrast.

    Parameters
    ----------
    contrast : Contrast
        Difference draws
    effect_size : float
        Half-width of the region of practical equivalence; a judgement call
        made by the analyst, never estimated from the data
    level : float
        Credible interval mass

    Returns
    -------
    Dict[str, Any]
        point_estimate, lower, upper, prob_positive, prob_rope
    """
    if effect_size is None or not effect_size > 0:
        raise ValueError(f"effect_size must be a positive number, got {effect_size!r}")
    if not 0 < level < 1:
        raise ValueError(f"level must be in (0, 1), got {level!r}")

    diff = contrast.difference
    alpha = 1 - level

    # Exact ties split evenly between the two directions
    prob_positive = np.mean(diff > 0) + 0.5 * np.mean(diff == 0)

    return {
        'contrast': contrast.label,
        'metric': contrast.metric,
        'point_estimate': float(np.mean(diff)),
        'lower': float(np.quantile(diff, alpha / 2)),
        'upper': float(np.quantile(diff, 1 - alpha / 2)),
        'level': level,
        'prob_positive': float(prob_positive),
        'effect_size': effect_size,
        'prob_rope': float(np.mean(np.abs(diff) <= effect_size)),
    }


def summarize_posterior(posterior: ComparisonResult, level: float = 0.90) -> pd.DataFrame:
    """Posterior mean and credible interval of each model's mean metric."""
    alpha = 1 - level
    rows = []
    for model in posterior.models:
        draws = posterior.model_draws(model)
        rows.append({
            'model': model,
            'mean': draws.mean(),
            'lower': np.quantile(draws, alpha / 2),
            'upper': np.quantile(draws, 1 - alpha / 2),
            'rhat': posterior.rhat.get(model, np.nan)
        })
    return pd.DataFrame(rows)
