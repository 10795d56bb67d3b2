import numpy as np
import pandas as pd
import pytest

from resamplekit.config import get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; tests that touch the environment need a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def linear_data():
    """
    Linear regression data: y = 3 + 2*x1 - x2 + noise.
    """
    rng = np.random.default_rng(2023)
    n = 120
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    y = 3 + 2 * x1 - x2 + rng.normal(scale=0.5, size=n)
    return pd.DataFrame({'x1': x1, 'x2': x2, 'y': y})


@pytest.fixture
def tiny_data():
    """Ten rows with a constant-ish outcome."""
    return pd.DataFrame({'x': np.arange(10, dtype=float), 'y': np.arange(10, dtype=float) * 0.5})


def mean_fit(data):
    """Null model: predicts the analysis-set mean."""
    return float(data['y'].mean())


def mean_predict(fitted, data):
    return np.full(len(data), fitted)
