"""
Model Comparison
================

Compares models that were resampled over the same partitions:

1. Paired frequentist contrasts on per-partition differences; the
   partition-to-partition variation shared by both models cancels in the
   difference
2. All pairwise contrasts with multiplicity-adjusted p-values
3. Hierarchical Bayesian comparison with a random intercept per partition
"""

import logging
import warnings
from itertools import combinations
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from ..config import get_settings
from ..exceptions import ComparatorPreconditionError, SamplerNonConvergenceWarning
from .design import PriorSpec, build_design, coefficients_to_means, get_transform
from .posterior import ComparisonResult, split_rhat
from .samplers import BootstrapSampler, Sampler, make_sampler

logger = logging.getLogger(__name__)


class ModelComparator:
    """Compare per-partition metrics of two or more models."""

    def __init__(self, results_by_model: Mapping[str, Iterable], metric: str):
        """
        Initialize comparator and check that the models are comparable.

        Parameters
        ----------
        results_by_model : Mapping[str, Iterable[ResampleResult]]
            Model name -> results over a shared partition sequence
        metric : str
            Metric to compare

        Raises
        ------
        ComparatorPreconditionError
            Fewer than two models, different partition sets, a missing
            metric or fewer than two partitions that succeeded everywhere
        """
        self.metric = metric
        self.results = {name: list(results) for name, results in results_by_model.items()}
        self.models = list(self.results)
        self.table = self._build_table()

        logger.info(
            f"Comparing {len(self.models)} models on '{metric}' "
            f"over {len(self.table)} partitions"
        )

    def _build_table(self) -> pd.DataFrame:
        if len(self.models) < 2:
            raise ComparatorPreconditionError("At least two models are needed for a comparison")

        fingerprints = {
            name: {r.partition_id: r.fingerprint for r in results}
            for name, results in self.results.items()
        }
        first = self.models[0]
        for name in self.models[1:]:
            if set(fingerprints[name]) != set(fingerprints[first]):
                missing = set(fingerprints[first]) ^ set(fingerprints[name])
                raise ComparatorPreconditionError(
                    f"Models '{first}' and '{name}' were run over different partition ids "
                    f"(differing: {sorted(missing)[:5]})"
                )
            if fingerprints[name] != fingerprints[first]:
                raise ComparatorPreconditionError(
                    f"Models '{first}' and '{name}' share partition ids but not their indices; "
                    f"they come from different scheme instances or seeds"
                )

        columns = {}
        for name, results in self.results.items():
            values = {}
            for r in results:
                if r.failure is not None:
                    continue
                if self.metric not in r.metrics:
                    raise ComparatorPreconditionError(
                        f"Metric '{self.metric}' missing for model '{name}' on {r.partition_id}"
                    )
                values[r.partition_id] = r.metrics[self.metric]
            columns[name] = pd.Series(values, dtype=float)

        table = pd.DataFrame(columns).sort_index()
        table.index.name = 'partition_id'

        incomplete = table.index[table.isna().any(axis=1)]
        if len(incomplete):
            logger.warning(
                f"Dropping {len(incomplete)} partition(s) that failed for at least one model: "
                f"{list(incomplete)}"
            )
            table = table.drop(index=incomplete)

        if len(table) < 2:
            raise ComparatorPreconditionError(
                f"Only {len(table)} partition(s) succeeded for every model; need at least 2"
            )

        return table

    def _check_model(self, model: str):
        if model not in self.models:
            raise ValueError(f"Unknown model: {model}")

    def paired_contrast(self, model_a: str, model_b: str, level: float = 0.95) -> Dict[str, Any]:
        """
        One-sample location estimate on per-partition differences.

        Parameters
        ----------
        model_a, model_b : str
            Models to contrast (difference is a - b)
        level : float
            Confidence level

        Returns
        -------
        Dict[str, Any]
            mean, std_err, lower, upper, statistic, df, p_value, n
        """
        self._check_model(model_a)
        self._check_model(model_b)

        d = (self.table[model_a] - self.table[model_b]).to_numpy()
        k = len(d)
        mean = d.mean()
        std_err = d.std(ddof=1) / np.sqrt(k)
        df = k - 1

        if std_err > 0:
            half_width = stats.t.ppf(0.5 + level / 2, df) * std_err
            statistic = mean / std_err
            p_value = 2 * stats.t.sf(abs(statistic), df)
        else:
            half_width, statistic, p_value = 0.0, np.nan, np.nan

        return {
            'contrast': f"{model_a} vs {model_b}",
            'metric': self.metric,
            'mean': mean,
            'std_err': std_err,
            'lower': mean - half_width,
            'upper': mean + half_width,
            'level': level,
            'statistic': statistic,
            'df': df,
            'p_value': p_value,
            'n': k
        }

    def pairwise_contrasts(self, level: float = 0.95, adjust: str = 'holm') -> pd.DataFrame:
        """
        Paired contrasts for every model pair.

        Parameters
        ----------
        level : float
            Confidence level
        adjust : str
            statsmodels ``multipletests`` method for the p-values

        Returns
        -------
        pd.DataFrame
            One row per pair with ``p_adj``
        """
        rows = [self.paired_contrast(a, b, level) for a, b in combinations(self.models, 2)]
        results = pd.DataFrame(rows)

        results['p_adj'] = np.nan
        valid = results['p_value'].notna()
        if valid.any():
            _, p_adj, _, _ = multipletests(results.loc[valid, 'p_value'], method=adjust)
            results.loc[valid, 'p_adj'] = p_adj

        return results

    def fit_posterior(
        self,
        sampler: Union[Sampler, str, None] = None,
        reference: Optional[str] = None,
        priors: Optional[PriorSpec] = None,
        chains: Optional[int] = None,
        iterations: Optional[int] = None,
        seed: Optional[int] = None,
        transform: str = 'identity'
    ) -> ComparisonResult:
        """
        Hierarchical Bayesian comparison.

        Parameters
        ----------
        sampler : Sampler or str, optional
            Draw source; BootstrapSampler when omitted
        reference : str, optional
            Baseline model; the first model when omitted
        priors : PriorSpec, optional
            Priors handed to the sampler
        chains, iterations : int, optional
            Draw layout; configured defaults when omitted
        seed : int, optional
            Run seed; each chain gets its own spawned stream
        transform : str
            'identity' or 'logit' for metrics bounded in (0, 1)

        Returns
        -------
        ComparisonResult
            Per-model mean draws, R-hat per model and a convergence flag
        """
        settings = get_settings()
        if sampler is None:
            sampler = BootstrapSampler()
        elif isinstance(sampler, str):
            sampler = make_sampler(sampler)
        priors = priors or PriorSpec()
        chains = chains if chains is not None else settings.CHAINS
        iterations = iterations if iterations is not None else settings.ITERATIONS
        seed = seed if seed is not None else settings.DEFAULT_SEED
        reference = reference or self.models[0]
        self._check_model(reference)

        if chains < 1 or iterations < 1:
            raise ValueError("chains and iterations must be >= 1")

        design = build_design(self.table, reference, get_transform(transform))

        logger.info(
            f"Sampling posterior with {sampler.name}: {chains} chains x {iterations} "
            f"iterations, reference '{reference}', seed {seed}"
        )
        coefs = sampler.fit(design, priors, chains, iterations, seed)

        missing = [c for c in ['chain', 'draw'] + design.coef_names if c not in coefs.columns]
        if missing:
            raise ValueError(f"Sampler output is missing columns: {missing}")

        draws = coefficients_to_means(coefs, design)
        draws.insert(0, 'draw', coefs['draw'].to_numpy())
        draws.insert(0, 'chain', coefs['chain'].to_numpy())

        rhat = {}
        for model in design.models:
            per_chain = draws.pivot(index='chain', columns='draw', values=model).to_numpy()
            rhat[model] = split_rhat(per_chain)

        threshold = settings.RHAT_THRESHOLD
        unmixed = {m: r for m, r in rhat.items() if np.isfinite(r) and r > threshold}
        if unmixed:
            logger.warning(f"R-hat above {threshold}: {unmixed}")
            warnings.warn(
                f"Posterior chains have not converged (R-hat > {threshold} for {sorted(unmixed)})",
                SamplerNonConvergenceWarning,
                stacklevel=2
            )

        return ComparisonResult(
            draws=draws,
            metric=self.metric,
            models=design.models,
            reference=reference,
            transform=transform,
            sampler=sampler.name,
            rhat=rhat,
            converged=not unmixed
        )
