"""
Resampling Errors
=================

Error taxonomy shared by all stages:

1. InsufficientDataError - scheme incompatible with the data size (fatal)
2. ModelFitError / MetricComputeError - captured per partition (non-fatal)
3. ComparatorPreconditionError - mismatched partitions across models (fatal)
4. SamplerNonConvergenceWarning - posterior usable but flagged
"""


class ResamplingError(Exception):
    """Base class for all resampling errors."""


class InsufficientDataError(ResamplingError):
    """Scheme parameters are incompatible with the dataset size."""


class PartitionError(ResamplingError):
    """Error raised while evaluating a single partition."""

    def __init__(self, partition_id: str, message: str):
        super().__init__(partition_id, message)
        self.partition_id = partition_id
        self.message = message

    def __str__(self):
        return f"{self.partition_id}: {self.message}"


class ModelFitError(PartitionError):
    """Model fitting (or prediction) failed on a partition."""


class MetricComputeError(PartitionError):
    """A metric could not be computed on a partition."""


class ComparatorPreconditionError(ResamplingError):
    """Models being compared were not run over the same partitions."""


class SamplerNonConvergenceWarning(UserWarning):
    """Posterior chains did not mix; summaries should be treated with care."""
