"""
Resample Execution
==================

Runs fit -> predict -> metric cycles over each partition:
1. Each partition is an independent task on a scheduler
2. Fit, prediction and metric failures are recorded on that partition only
3. Results come back sorted by partition id whatever the completion order
"""

import logging
import threading
import time
import traceback
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..config import get_settings
from ..exceptions import MetricComputeError, ModelFitError, PartitionError
from ..metrics.registry import metric_set
from ..partitioning import Partition, PartitionScheme, generate
from .results import FailureNote, ResampleResult
from .scheduler import Scheduler, make_scheduler

logger = logging.getLogger(__name__)

FitFn = Callable[[pd.DataFrame], Any]
PredictFn = Callable[[Any, pd.DataFrame], Any]
ExtractFn = Callable[[Any], Any]
MetricFns = Union[Mapping[str, Callable], Sequence[str]]


@dataclass
class RunOptions:
    """Options for one resampling run"""
    seed: Optional[int] = None
    save_predictions: bool = False
    extract_fn: Optional[ExtractFn] = None
    worker_count: Optional[int] = None
    backend: Optional[str] = None

    def __post_init__(self):
        settings = get_settings()
        if self.seed is None:
            self.seed = settings.DEFAULT_SEED
        if self.worker_count is None:
            self.worker_count = settings.WORKER_COUNT
        if self.backend is None:
            self.backend = settings.BACKEND


def _failure(partition: Partition, error_cls, stage: str, exc: BaseException,
             started: float) -> ResampleResult:
    error = error_cls(partition.id, f"{type(exc).__name__}: {exc}")
    logger.warning(f"Partition {partition.id} failed at {stage}: {error.message}")
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return ResampleResult(
        partition_id=partition.id,
        fingerprint=partition.fingerprint,
        failure=FailureNote(error=error, stage=stage, traceback=trace),
        elapsed=time.perf_counter() - started
    )


def evaluate_partition(
    partition: Partition,
    data: pd.DataFrame,
    fit_fn: FitFn,
    predict_fn: PredictFn,
    metric_fns: Mapping[str, Callable],
    outcome: str,
    save_predictions: bool = False,
    extract_fn: Optional[ExtractFn] = None
) -> ResampleResult:
    """
    Fit, predict and score a single partition.

    Errors raised by the collaborators are captured on the returned result
    instead of propagating.

    Parameters
    ----------
    partition : Partition
        Analysis/assessment positions
    data : pd.DataFrame
        Full dataset
    fit_fn : callable
        ``fit_fn(analysis_data) -> fitted``
    predict_fn : callable
        ``predict_fn(fitted, assessment_data) -> predictions``
    metric_fns : Mapping[str, callable]
        ``metric(observed, predicted) -> float``
    outcome : str
        Outcome column holding observed values
    save_predictions : bool
        Keep (row, observed, predicted) on the result
    extract_fn : callable, optional
        ``extract_fn(fitted) -> payload`` attached to the result

    Returns
    -------
    ResampleResult
        Metrics or a failure note
    """
    started = time.perf_counter()

    analysis = data.iloc[partition.analysis]
    assessment = data.iloc[partition.assessment]

    try:
        fitted = fit_fn(analysis)
    except Exception as e:
        return _failure(partition, ModelFitError, 'fit', e, started)

    extract, extract_error = None, None
    if extract_fn is not None:
        try:
            extract = extract_fn(fitted)
        except Exception as e:
            extract_error = f"{type(e).__name__}: {e}"
            logger.warning(f"Extractor failed on {partition.id}: {extract_error}")

    try:
        predicted = np.asarray(predict_fn(fitted, assessment)).ravel()
        if len(predicted) != len(assessment):
            raise ValueError(
                f"predicted {len(predicted)} values for {len(assessment)} rows"
            )
    except Exception as e:
        return _failure(partition, ModelFitError, 'predict', e, started)

    observed = assessment[outcome].to_numpy()

    metrics = {}
    for name, metric_fn in metric_fns.items():
        try:
            if len(observed) == 0:
                raise ValueError("empty assessment set")
            value = float(metric_fn(observed, predicted))
            if not np.isfinite(value):
                raise ValueError(f"non-finite estimate {value}")
        except Exception as e:
            return _failure(partition, MetricComputeError, f"metric:{name}", e, started)
        metrics[name] = value

    predictions = None
    if save_predictions:
        predictions = pd.DataFrame({
            'partition_id': partition.id,
            'row': partition.assessment,
            'observed': observed,
            'predicted': predicted
        })

    elapsed = time.perf_counter() - started
    logger.debug(f"Partition {partition.id}: {metrics} ({elapsed:.3f}s)")

    return ResampleResult(
        partition_id=partition.id,
        fingerprint=partition.fingerprint,
        metrics=metrics,
        predictions=predictions,
        extract=extract,
        extract_error=extract_error,
        elapsed=elapsed
    )


class ResampleExecutor:
    """Evaluate a model over a partition sequence."""

    def __init__(
        self,
        options: Optional[RunOptions] = None,
        scheduler: Optional[Scheduler] = None
    ):
        """
        Initialize executor.

        Parameters
        ----------
        options : RunOptions, optional
            Default run options
        scheduler : Scheduler, optional
            Scheduler to use instead of one built from the options
        """
        self.options = options or RunOptions()
        self.scheduler = scheduler

    def run(
        self,
        data: pd.DataFrame,
        partitions: Iterable[Partition],
        fit_fn: FitFn,
        predict_fn: PredictFn,
        metric_fns: MetricFns,
        outcome: str,
        options: Optional[RunOptions] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[ResampleResult]:
        """
        Run fit/evaluate cycles over every partition.

        Parameters
        ----------
        data : pd.DataFrame
            Dataset the partitions index into
        partitions : Iterable[Partition]
            Partition sequence
        fit_fn, predict_fn : callable
            Model collaborator
        metric_fns : Mapping[str, callable] or sequence of metric names
            Metrics to compute
        outcome : str
            Outcome column
        options : RunOptions, optional
            Overrides the executor's default options
        cancel_event : threading.Event, optional
            When set, partitions not yet started are skipped

        Returns
        -------
        List[ResampleResult]
            One result per finished partition, sorted by partition id
        """
        options = options or self.options
        partitions = list(partitions)

        if outcome not in data.columns:
            raise ValueError(f"Missing outcome column: {outcome}")
        if not isinstance(metric_fns, Mapping):
            metric_fns = metric_set(*metric_fns)
        if not metric_fns:
            raise ValueError("At least one metric is required")

        ids = [p.id for p in partitions]
        if len(set(ids)) != len(ids):
            raise ValueError("Partition ids must be unique")

        scheduler = self.scheduler or make_scheduler(options.backend, options.worker_count)

        logger.info(
            f"Running {len(partitions)} partitions on {type(scheduler).__name__} "
            f"with metrics {list(metric_fns)}"
        )
        started = time.perf_counter()

        for partition in partitions:
            scheduler.submit(partial(
                evaluate_partition,
                partition,
                data,
                fit_fn,
                predict_fn,
                dict(metric_fns),
                outcome,
                options.save_predictions,
                options.extract_fn
            ))

        def worker_failure(index, exc):
            # Errors outside evaluate_partition, e.g. a task that cannot be pickled
            return _failure(partitions[index], PartitionError, 'worker', exc, started)

        results = sorted(scheduler.join(cancel_event, on_error=worker_failure),
                         key=lambda r: r.partition_id)

        n_failed = sum(r.failed for r in results)
        logger.info(
            f"Finished {len(results)}/{len(partitions)} partitions "
            f"({n_failed} failed) in {time.perf_counter() - started:.2f}s"
        )

        return results

    def run_scheme(
        self,
        data: pd.DataFrame,
        scheme: PartitionScheme,
        fit_fn: FitFn,
        predict_fn: PredictFn,
        metric_fns: MetricFns,
        outcome: str,
        options: Optional[RunOptions] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[ResampleResult]:
        """Generate partitions from ``options.seed`` and run them."""
        options = options or self.options
        partitions = generate(scheme, len(data), options.seed, data=data)
        return self.run(data, partitions, fit_fn, predict_fn, metric_fns, outcome,
                        options=options, cancel_event=cancel_event)


def fit_resamples(
    model,
    data: pd.DataFrame,
    partitions: Iterable[Partition],
    metric_fns: MetricFns,
    options: Optional[RunOptions] = None,
    cancel_event: Optional[threading.Event] = None
) -> List[ResampleResult]:
    """
    Run a model adapter (``fit``/``predict``/``outcome``) over partitions.

    Parameters
    ----------
    model : SklearnModel or compatible
        Object with ``fit(data)``, ``predict(fitted, data)`` and ``outcome``
    data : pd.DataFrame
        Dataset
    partitions : Iterable[Partition]
        Partition sequence shared by every model being compared
    metric_fns : Mapping[str, callable] or sequence of metric names
        Metrics to compute
    options : RunOptions, optional
        Run options

    Returns
    -------
    List[ResampleResult]
        Results sorted by partition id
    """
    executor = ResampleExecutor(options)
    return executor.run(data, partitions, model.fit, model.predict, metric_fns,
                        model.outcome, cancel_event=cancel_event)
