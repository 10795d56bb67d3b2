import pytest
import yaml
from pydantic import ValidationError

from resamplekit.config import get_settings, load_config
from resamplekit.execution import RunOptions
from resamplekit.partitioning import RollingOrigin, scheme_from_config


@pytest.fixture
def sample_config_file(tmp_path):
    data = {
        'project': {'name': 'ames'},
        'resampling': {
            'scheme': 'rolling_origin',
            'initial': 20,
            'assess': 5,
            'skip': 4,
            'cumulative': False
        },
        'run': {
            'seed': 1001,
            'outcome': 'Sale_Price',
            'metrics': ['rmse', 'rsq'],
            'backend': 'serial'
        },
        'comparison': {
            'metric': 'rsq',
            'reference': 'linear_reg',
            'effect_size': 0.02,
            'chains': 2,
            'iterations': 500
        }
    }
    path = tmp_path / "config.yaml"
    with open(path, 'w') as f:
        yaml.safe_dump(data, f)
    return path


def test_load_config_from_yaml(sample_config_file):
    config = load_config(sample_config_file)

    assert config.project['name'] == 'ames'
    assert config.run.seed == 1001
    assert config.run.metrics == ['rmse', 'rsq']
    assert config.comparison.effect_size == 0.02
    assert config.comparison.prior_family == 'student_t'

    scheme = scheme_from_config(config.resampling.scheme_params())
    assert scheme == RollingOrigin(initial=20, assess=5, skip=4, cumulative=False)


def test_effect_size_must_be_given():
    with pytest.raises(ValidationError):
        load_config({'comparison': {'metric': 'rmse'}})


def test_effect_size_must_be_positive():
    with pytest.raises(ValidationError):
        load_config({'comparison': {'effect_size': 0}})


def test_invalid_proportion_rejected():
    with pytest.raises(ValidationError):
        load_config({'resampling': {'scheme': 'mc_cv', 'prop': 1.2},
                     'comparison': {'effect_size': 0.1}})


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv('RESAMPLEKIT_DEFAULT_SEED', '7')
    monkeypatch.setenv('RESAMPLEKIT_BACKEND', 'serial')
    get_settings.cache_clear()

    settings = get_settings()
    assert settings.DEFAULT_SEED == 7

    options = RunOptions()
    assert options.seed == 7
    assert options.backend == 'serial'


def test_run_section_defaults_follow_settings(monkeypatch):
    monkeypatch.setenv('RESAMPLEKIT_CHAINS', '3')
    get_settings.cache_clear()

    config = load_config({'comparison': {'effect_size': 0.5}})
    assert config.comparison.chains == 3
    assert config.resampling.scheme == 'vfold'


def test_omitted_run_section_reads_current_settings(monkeypatch):
    monkeypatch.setenv('RESAMPLEKIT_DEFAULT_SEED', '7')
    monkeypatch.setenv('RESAMPLEKIT_BACKEND', 'process')
    get_settings.cache_clear()

    config = load_config({'comparison': {'effect_size': 0.5}})

    assert config.run.seed == 7
    assert config.run.backend == 'process'
    assert config.comparison.seed == config.run.seed
