"""
Posterior Draw Sources
======================

Numerical collaborators satisfying the ``Sampler`` contract

    fit(design, priors, chains, iterations, seed) -> DataFrame

returning one row per draw with ``chain``, ``draw`` and one column per
coefficient of the design. Every chain draws from its own stream spawned
from ``seed``.

1. BootstrapSampler - resamples whole partitions, keeping model pairing
2. MixedLMSampler - statsmodels random-intercept fit with variance
   components at their prior-regularised mode, normal approximation to the
   fixed-effect posterior under the Normal coefficient prior

Draws from MixedLMSampler depend on the statsmodels optimizer; identical
seeds reproduce them only as far as that optimizer is deterministic on
the platform.
"""

import logging
import warnings
from typing import List, Protocol, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import optimize, stats

from ..exceptions import SamplerNonConvergenceWarning
from .design import INTERCEPT, ModelDesign, PriorSpec

logger = logging.getLogger(__name__)


class Sampler(Protocol):
    """External posterior sampler."""

    name: str

    def fit(self, design: ModelDesign, priors: PriorSpec, chains: int,
            iterations: int, seed: int) -> pd.DataFrame:
        ...


def chain_streams(seed: int, chains: int) -> List[np.random.Generator]:
    """Independent, reproducible random streams, one per chain."""
    return [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(chains)]


def _frame(chain_draws: List[np.ndarray], names: List[str]) -> pd.DataFrame:
    frames = []
    for c, draws in enumerate(chain_draws, start=1):
        frame = pd.DataFrame(draws, columns=names)
        frame.insert(0, 'draw', np.arange(1, len(draws) + 1))
        frame.insert(0, 'chain', c)
        frames.append(frame)
    return pd.concat(frames, ignore_index=True)


class BootstrapSampler:
    """
    Bootstrap distribution of per-model means.

    Partitions are resampled with replacement as whole rows of the
    partition x model table, so every draw keeps the pairing between
    models. Priors cannot be used; anything other than the default
    ``PriorSpec`` is reported with a ``UserWarning``.
    """

    name = 'bootstrap'

    def fit(self, design: ModelDesign, priors: PriorSpec, chains: int,
            iterations: int, seed: int) -> pd.DataFrame:
        if priors != PriorSpec():
            logger.warning(f"Bootstrap sampler ignores priors: {priors}")
            warnings.warn(
                "BootstrapSampler does not use priors; use MixedLMSampler for a prior-dependent fit",
                UserWarning,
                stacklevel=2
            )

        values = design.table[design.models].to_numpy(dtype=float)
        k = len(values)

        chain_draws = []
        for rng in chain_streams(seed, chains):
            idx = rng.integers(0, k, size=(iterations, k))
            means = values[idx].mean(axis=1)
            coefs = means.copy()
            coefs[:, 1:] = means[:, 1:] - means[:, [0]]
            chain_draws.append(coefs)

        return _frame(chain_draws, [INTERCEPT] + design.models[1:])


def variance_components_mode(design: ModelDesign, priors: PriorSpec,
                             start: Tuple[float, float]) -> Tuple[float, float]:
    """
    Posterior mode of the random-intercept and residual standard deviations.

    The partition x model table is balanced, so the restricted likelihood
    factors into the between-partition and within-partition sums of squares
    of a two-way layout. Priors, on the scale of sd(response):

    - random intercept sd: half Student-t(``random_intercept_df``) or
      half Normal, scaled by ``random_intercept_scale``
    - residual sd: Exponential(``residual_rate``)

    Parameters
    ----------
    design : ModelDesign
        Design built from a complete partition x model table
    priors : PriorSpec
        Prior settings
    start : tuple of float
        Starting (tau, sigma), usually the REML estimates

    Returns
    -------
    Tuple[float, float]
        (tau, sigma) at the mode
    """
    table = design.table[design.models].to_numpy(dtype=float)
    k, m = table.shape
    grand = table.mean()
    row_means = table.mean(axis=1)
    col_means = table.mean(axis=0)

    ss_within = float(((table - row_means[:, None] - col_means[None, :] + grand) ** 2).sum())
    ss_between = float(m * ((row_means - grand) ** 2).sum())
    df_within = (k - 1) * (m - 1)
    df_between = k - 1

    sd = max(float(np.std(design.response)), 1e-12)
    tau_scale = priors.random_intercept_scale * sd
    sigma_scale = sd / priors.residual_rate

    def neg_log_posterior(log_sd):
        tau, sigma = np.exp(log_sd)
        within = sigma ** 2
        between = within + m * tau ** 2
        loglik = -0.5 * (df_within * np.log(within) + ss_within / within
                         + df_between * np.log(between) + ss_between / between)

        if priors.family == 'student_t':
            log_prior = stats.t.logpdf(tau, df=priors.random_intercept_df, scale=tau_scale)
        else:
            log_prior = stats.norm.logpdf(tau, scale=tau_scale)
        log_prior += stats.expon.logpdf(sigma, scale=sigma_scale)

        # Optimised on the log scale
        return -(loglik + log_prior + log_sd.sum())

    bounds = [(np.log(sd * 1e-6), np.log(sd * 1e3))] * 2
    x0 = np.clip(np.log(np.maximum(start, sd * 1e-6)), bounds[0][0], bounds[0][1])

    opt = optimize.minimize(neg_log_posterior, x0, method='L-BFGS-B', bounds=bounds)
    if not opt.success:
        warnings.warn(
            f"Variance component optimisation did not converge: {opt.message}",
            SamplerNonConvergenceWarning,
            stacklevel=2
        )

    tau, sigma = np.exp(opt.x)
    return float(tau), float(sigma)


def fixed_effect_covariance(design: ModelDesign, tau: float, sigma: float) -> np.ndarray:
    """Covariance of (intercept, differences) for a balanced design."""
    k, m = len(design.table), len(design.models)
    means_cov = (tau ** 2 * np.ones((m, m)) + sigma ** 2 * np.eye(m)) / k

    # Reference mean, then each model minus the reference
    contrast = np.eye(m)
    contrast[1:, 0] = -1.0
    return contrast @ means_cov @ contrast.T


class MixedLMSampler:
    """
    Normal approximation to the random-intercept model posterior.

    Fits ``response ~ model + (1 | partition)`` by REML with statsmodels.
    The random-intercept and residual standard deviations are then moved to
    their posterior mode under the ``PriorSpec`` variance priors, and the
    fixed-effect estimate is combined with the Normal(0, coef_scale * sd)
    prior by precision weighting before drawing from the resulting normal.
    """

    name = 'mixedlm'

    def __init__(self, reml: bool = True):
        self.reml = reml

    def fit(self, design: ModelDesign, priors: PriorSpec, chains: int,
            iterations: int, seed: int) -> pd.DataFrame:
        names = design.coef_names

        model = sm.MixedLM(design.response, design.exog, groups=design.groups)
        result = model.fit(reml=self.reml)
        if not result.converged:
            warnings.warn(
                "MixedLM optimizer did not converge",
                SamplerNonConvergenceWarning,
                stacklevel=2
            )

        beta = result.fe_params.loc[names].to_numpy(dtype=float)
        reml_tau = float(np.sqrt(max(np.asarray(result.cov_re)[0, 0], 0.0)))
        reml_sigma = float(np.sqrt(result.scale))

        tau, sigma = variance_components_mode(design, priors, (reml_tau, reml_sigma))
        logger.info(
            f"Variance components (REML -> {priors.family} prior mode): "
            f"tau {reml_tau:.4g} -> {tau:.4g}, sigma {reml_sigma:.4g} -> {sigma:.4g}"
        )
        cov = fixed_effect_covariance(design, tau, sigma)

        # Precision-weighted combination with the zero-centred Normal prior
        scale = priors.coef_scale * max(float(np.std(design.response)), 1e-12)
        likelihood_precision = np.linalg.pinv(cov)
        post_cov = np.linalg.pinv(likelihood_precision + np.eye(len(names)) / scale ** 2)
        post_mean = post_cov @ likelihood_precision @ beta

        logger.info(f"MixedLM fixed effects: {dict(zip(names, np.round(post_mean, 6)))}")

        chain_draws = [
            rng.multivariate_normal(post_mean, post_cov, size=iterations, method='eigh')
            for rng in chain_streams(seed, chains)
        ]
        return _frame(chain_draws, names)


SAMPLERS = {
    BootstrapSampler.name: BootstrapSampler,
    MixedLMSampler.name: MixedLMSampler,
}


def make_sampler(name: str) -> Sampler:
    if name not in SAMPLERS:
        raise ValueError(f"Unknown sampler: {name}")
    return SAMPLERS[name]()
