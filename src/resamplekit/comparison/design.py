"""
Hierarchical Model Design
=========================

Response is the per-partition metric value; fixed effects are an intercept
(the reference model) plus one indicator per other model; a random
intercept is indexed by partition id.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List

import numpy as np
import pandas as pd
from scipy.special import expit, logit

INTERCEPT = '(Intercept)'


@dataclass(frozen=True)
class Transform:
    """Response transformation and its inverse"""
    name: str
    func: Callable[[np.ndarray], np.ndarray] = field(repr=False)
    inverse: Callable[[np.ndarray], np.ndarray] = field(repr=False)

    def check(self, values: np.ndarray):
        if self.name == 'logit' and (np.any(values <= 0) or np.any(values >= 1)):
            raise ValueError("logit transform needs metric values strictly inside (0, 1)")


TRANSFORMS: Dict[str, Transform] = {
    'identity': Transform('identity', lambda x: np.asarray(x, dtype=float),
                          lambda x: np.asarray(x, dtype=float)),
    'logit': Transform('logit', logit, expit),
}


def get_transform(name: str) -> Transform:
    if name not in TRANSFORMS:
        raise ValueError(f"Unknown transform: {name}")
    return TRANSFORMS[name]


PRIOR_FAMILIES = ('student_t', 'normal')


@dataclass(frozen=True)
class PriorSpec:
    """
    Priors for the hierarchical model.

    Fixed effects: Normal(0, coef_scale * sd(response)), wide and symmetric.
    Random intercept: zero-centred Student-t with ``random_intercept_df``
    degrees of freedom (``family='student_t'``) or Normal (``'normal'``).
    Residual scale: Exponential(``residual_rate`` / sd(response)).
    """
    family: str = 'student_t'
    coef_scale: float = 10.0
    random_intercept_df: float = 1.0
    random_intercept_scale: float = 1.0
    residual_rate: float = 1.0

    def __post_init__(self):
        if self.family not in PRIOR_FAMILIES:
            raise ValueError(f"Unknown prior family: {self.family}")
        for name in ('coef_scale', 'random_intercept_df', 'random_intercept_scale', 'residual_rate'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass(frozen=True, eq=False)
class ModelDesign:
    """Long-format design plus the wide partition x model table it came from"""
    table: pd.DataFrame
    response: np.ndarray
    exog: pd.DataFrame
    groups: np.ndarray
    models: List[str]
    reference: str
    transform: Transform

    @property
    def coef_names(self) -> List[str]:
        return list(self.exog.columns)


def build_design(table: pd.DataFrame, reference: str, transform: Transform) -> ModelDesign:
    """
    Build the mixed-model design from a partition x model table.

    Parameters
    ----------
    table : pd.DataFrame
        Index: partition id; columns: model names; values: metric estimates
    reference : str
        Baseline model absorbed into the intercept
    transform : Transform
        Applied to the metric before modelling

    Returns
    -------
    ModelDesign
        Design with the reference model first
    """
    if reference not in table.columns:
        raise ValueError(f"Unknown reference model: {reference}")

    models = [reference] + [m for m in table.columns if m != reference]
    values = table[models].to_numpy(dtype=float)
    transform.check(values)
    transformed = pd.DataFrame(transform.func(values), index=table.index, columns=models)

    long = transformed.reset_index(names='partition_id').melt(
        id_vars='partition_id', var_name='model', value_name='response'
    )

    exog = pd.DataFrame({INTERCEPT: np.ones(len(long))})
    for model in models[1:]:
        exog[model] = (long['model'] == model).astype(float).to_numpy()

    return ModelDesign(
        table=transformed,
        response=long['response'].to_numpy(dtype=float),
        exog=exog,
        groups=long['partition_id'].to_numpy(),
        models=models,
        reference=reference,
        transform=transform
    )


def coefficients_to_means(coefs: pd.DataFrame, design: ModelDesign) -> pd.DataFrame:
    """Per-model means on the original metric scale from coefficient draws."""
    intercept = coefs[INTERCEPT].to_numpy(dtype=float)
    means = {design.reference: intercept}
    for model in design.models[1:]:
        means[model] = intercept + coefs[model].to_numpy(dtype=float)

    return pd.DataFrame({m: design.transform.inverse(v) for m, v in means.items()})
