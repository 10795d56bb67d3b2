import threading
import time

import numpy as np
import pytest
from sklearn.linear_model import LinearRegression
from sklearn.tree import DecisionTreeRegressor

from resamplekit.exceptions import MetricComputeError, ModelFitError, PartitionError
from resamplekit.execution import (
    ResampleExecutor,
    RunOptions,
    SerialScheduler,
    SklearnModel,
    fit_resamples
)
from resamplekit.metrics import collect, failures, metric_set
from resamplekit.partitioning import Bootstrap, VFold, generate

from conftest import mean_fit, mean_predict


def serial_options(**kwargs):
    return RunOptions(backend='serial', worker_count=1, **kwargs)


def test_sklearn_model_over_vfold(linear_data):
    partitions = generate(VFold(v=10), len(linear_data), seed=1)
    model = SklearnModel(LinearRegression(), outcome='y')

    results = fit_resamples(model, linear_data, partitions, ['rmse', 'rsq'], serial_options())

    assert [r.partition_id for r in results] == [p.id for p in partitions]
    assert not any(r.failed for r in results)
    summary = collect(results, summarize=True).set_index('metric')
    assert summary.loc['rmse', 'mean'] < 0.8
    assert summary.loc['rsq', 'mean'] > 0.9
    assert summary.loc['rmse', 'n'] == 10


def test_sklearn_model_clones_estimator(linear_data):
    estimator = LinearRegression()
    model = SklearnModel(estimator, outcome='y', predictors=['x1'])

    fitted = model.fit(linear_data)

    assert fitted is not estimator
    assert not hasattr(estimator, 'coef_')
    assert model.predict(fitted, linear_data).shape == (len(linear_data),)


def test_one_failing_fold_is_isolated(tiny_data):
    partitions = generate(VFold(v=5), 10, seed=3)

    def fit_fn(data):
        # Fails only on the fold that holds row 0 out
        if 0 not in data.index:
            raise RuntimeError("singular design")
        return mean_fit(data)

    results = ResampleExecutor(serial_options()).run(
        tiny_data, partitions, fit_fn, mean_predict, metric_set('rmse'), 'y'
    )

    assert len(results) == 5
    failed = [r for r in results if r.failed]
    assert len(failed) == 1
    assert isinstance(failed[0].failure.error, ModelFitError)
    assert failed[0].failure.stage == 'fit'
    assert 'singular design' in failed[0].failure.message
    assert 0 in next(p for p in partitions if p.id == failed[0].partition_id).assessment

    summary = collect(results, summarize=True)
    ok = [r.metrics['rmse'] for r in results if not r.failed]
    assert summary.loc[0, 'n'] == 4
    assert summary.loc[0, 'mean'] == pytest.approx(np.mean(ok))
    assert summary.loc[0, 'standard_error'] == pytest.approx(np.std(ok, ddof=1) / 2)

    table = failures(results)
    assert table['error'].tolist() == ['ModelFitError']


def test_metric_failure_excludes_partition(tiny_data):
    partitions = generate(VFold(v=2), 10, seed=3)

    def broken_metric(observed, predicted):
        raise ZeroDivisionError("boom")

    results = ResampleExecutor(serial_options()).run(
        tiny_data, partitions, mean_fit, mean_predict,
        {'rmse': metric_set('rmse')['rmse'], 'broken': broken_metric}, 'y'
    )

    assert all(r.failed for r in results)
    assert isinstance(results[0].failure.error, MetricComputeError)
    assert results[0].failure.stage == 'metric:broken'
    assert collect(results, summarize=True).empty


def test_non_finite_metric_is_a_failure(tiny_data):
    partitions = generate(VFold(v=2), 10, seed=3)

    results = ResampleExecutor(serial_options()).run(
        tiny_data, partitions, mean_fit, mean_predict, ['rsq'], 'y'
    )

    # Constant predictions have no correlation with the outcome
    assert all(isinstance(r.failure.error, MetricComputeError) for r in results)


def test_prediction_length_mismatch(tiny_data):
    partitions = generate(VFold(v=2), 10, seed=3)

    results = ResampleExecutor(serial_options()).run(
        tiny_data, partitions, mean_fit, lambda fitted, data: [fitted], ['rmse'], 'y'
    )

    assert all(r.failure.stage == 'predict' for r in results)


def test_save_predictions(tiny_data):
    partitions = generate(VFold(v=5), 10, seed=3)

    results = ResampleExecutor(serial_options(save_predictions=True)).run(
        tiny_data, partitions, mean_fit, mean_predict, ['rmse'], 'y'
    )

    for r, p in zip(results, partitions):
        assert r.predictions['row'].tolist() == p.assessment.tolist()
        assert r.predictions['observed'].tolist() == tiny_data['y'].iloc[p.assessment].tolist()
        assert (r.predictions['partition_id'] == p.id).all()


def test_extractor_payload_attached(linear_data):
    partitions = generate(VFold(v=3), len(linear_data), seed=3)
    model = SklearnModel(LinearRegression(), outcome='y')
    options = serial_options(extract_fn=lambda fitted: fitted.coef_.tolist())

    results = fit_resamples(model, linear_data, partitions, ['rmse'], options)

    for r in results:
        assert len(r.extract) == 2
        assert r.extract[0] == pytest.approx(2, abs=0.3)


def test_extractor_failure_does_not_exclude_partition(tiny_data):
    partitions = generate(VFold(v=2), 10, seed=3)

    def extract_fn(fitted):
        raise KeyError('coef_')

    results = ResampleExecutor(serial_options(extract_fn=extract_fn)).run(
        tiny_data, partitions, mean_fit, mean_predict, ['rmse'], 'y'
    )

    assert not any(r.failed for r in results)
    assert all('KeyError' in r.extract_error for r in results)
    assert all(r.extract is None for r in results)


def test_results_sorted_regardless_of_completion_order(tiny_data):
    partitions = generate(VFold(v=5), 10, seed=3)

    def slow_fit(data):
        # Earlier folds finish last
        time.sleep(0.01 * (10 - len(set(data.index) - {0, 1})))
        return mean_fit(data)

    options = RunOptions(backend='thread', worker_count=4)
    results = ResampleExecutor(options).run(
        tiny_data, partitions, slow_fit, mean_predict, ['rmse'], 'y'
    )

    assert [r.partition_id for r in results] == sorted(p.id for p in partitions)


@pytest.mark.parametrize('backend', ['process', 'joblib'])
def test_worker_processes_match_serial_run(linear_data, backend):
    partitions = generate(VFold(v=5), len(linear_data), seed=1)
    model = SklearnModel(LinearRegression(), outcome='y')

    serial = fit_resamples(model, linear_data, partitions, ['rmse', 'mae'], serial_options())
    pooled = fit_resamples(model, linear_data, partitions, ['rmse', 'mae'],
                           RunOptions(backend=backend, worker_count=2))

    assert [r.partition_id for r in pooled] == [p.id for p in partitions]
    assert not any(r.failed for r in pooled)
    for expected, got in zip(serial, pooled):
        assert got.fingerprint == expected.fingerprint
        assert got.metrics == pytest.approx(expected.metrics)


def test_unpicklable_task_fails_partitions_not_the_run(tiny_data):
    partitions = generate(VFold(v=5), 10, seed=3)
    options = RunOptions(backend='process', worker_count=2, extract_fn=lambda fitted: fitted)

    results = ResampleExecutor(options).run(
        tiny_data, partitions, mean_fit, mean_predict, ['rmse'], 'y'
    )

    assert [r.partition_id for r in results] == [p.id for p in partitions]
    assert all(r.failed for r in results)
    assert all(r.failure.stage == 'worker' for r in results)
    assert all(isinstance(r.failure.error, PartitionError) for r in results)
    assert failures(results)['stage'].unique().tolist() == ['worker']


def test_empty_out_of_bag_set_is_metric_failure(tiny_data):
    data = tiny_data.iloc[:1]
    partitions = generate(Bootstrap(times=2), 1, seed=1)

    results = ResampleExecutor(serial_options()).run(
        data, partitions, mean_fit, mean_predict, ['rmse'], 'y'
    )

    assert all(isinstance(r.failure.error, MetricComputeError) for r in results)


def test_cancel_returns_partial_results(tiny_data):
    partitions = generate(VFold(v=5), 10, seed=3)
    cancel = threading.Event()
    calls = []

    def fit_fn(data):
        calls.append(1)
        if len(calls) == 2:
            cancel.set()
        return mean_fit(data)

    executor = ResampleExecutor(serial_options(), scheduler=SerialScheduler())
    results = executor.run(tiny_data, partitions, fit_fn, mean_predict, ['rmse'], 'y',
                           cancel_event=cancel)

    assert [r.partition_id for r in results] == [partitions[0].id, partitions[1].id]
    assert not any(r.failed for r in results)


def test_run_scheme_uses_option_seed(linear_data):
    model = SklearnModel(DecisionTreeRegressor(random_state=0), outcome='y')
    executor = ResampleExecutor(serial_options(seed=5))

    first = executor.run_scheme(linear_data, VFold(v=4), model.fit, model.predict, ['rmse'], 'y')
    second = executor.run_scheme(linear_data, VFold(v=4), model.fit, model.predict, ['rmse'], 'y')

    assert [r.fingerprint for r in first] == [r.fingerprint for r in second]
    assert [r.metrics for r in first] == [r.metrics for r in second]


def test_missing_outcome_column(tiny_data):
    partitions = generate(VFold(v=2), 10, seed=3)
    with pytest.raises(ValueError, match="outcome"):
        ResampleExecutor(serial_options()).run(
            tiny_data, partitions, mean_fit, mean_predict, ['rmse'], 'price'
        )


def test_unknown_metric_name(tiny_data):
    partitions = generate(VFold(v=2), 10, seed=3)
    with pytest.raises(ValueError, match="Unknown metric"):
        ResampleExecutor(serial_options()).run(
            tiny_data, partitions, mean_fit, mean_predict, ['auc'], 'y'
        )
