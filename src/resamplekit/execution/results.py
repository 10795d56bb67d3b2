"""
Per-partition resample outcomes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd

from ..exceptions import PartitionError


@dataclass(frozen=True)
class FailureNote:
    """Why a partition was excluded from aggregation"""
    error: PartitionError
    stage: str
    traceback: str = field(default='', repr=False)

    @property
    def error_type(self) -> str:
        return type(self.error).__name__

    @property
    def message(self) -> str:
        return self.error.message


@dataclass(frozen=True, eq=False)
class ResampleResult:
    """Outcome of one fit/predict/metric cycle"""
    partition_id: str
    fingerprint: str
    metrics: Dict[str, float] = field(default_factory=dict)
    predictions: Optional[pd.DataFrame] = field(default=None, repr=False)
    extract: Any = field(default=None, repr=False)
    extract_error: Optional[str] = None
    failure: Optional[FailureNote] = None
    elapsed: float = 0.0

    @property
    def failed(self) -> bool:
        return self.failure is not None
