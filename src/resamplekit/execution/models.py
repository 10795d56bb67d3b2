"""
Adapter that lets scikit-learn estimators act as the model collaborator.
"""

from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.base import clone


class SklearnModel:
    """
    Fit/predict pair around a scikit-learn estimator or pipeline.

    Every call to ``fit`` works on a fresh ``clone`` of the estimator, so
    partitions never share fitted state.
    """

    def __init__(
        self,
        estimator,
        outcome: str,
        predictors: Optional[List[str]] = None
    ):
        """
        Parameters
        ----------
        estimator : sklearn estimator
            Unfitted estimator or Pipeline
        outcome : str
            Outcome column
        predictors : List[str], optional
            Predictor columns; every other column when omitted
        """
        self.estimator = estimator
        self.outcome = outcome
        self.predictors = predictors

    def _features(self, data: pd.DataFrame) -> pd.DataFrame:
        if self.predictors is not None:
            return data[self.predictors]
        return data.drop(columns=[self.outcome])

    def fit(self, data: pd.DataFrame):
        """Fit a fresh copy of the estimator on an analysis set."""
        model = clone(self.estimator)
        model.fit(self._features(data), data[self.outcome])
        return model

    def predict(self, fitted, data: pd.DataFrame) -> np.ndarray:
        """Predict an assessment set with a fitted estimator."""
        return np.asarray(fitted.predict(self._features(data)))

    def __repr__(self):
        return f"SklearnModel({self.estimator!r}, outcome={self.outcome!r})"
