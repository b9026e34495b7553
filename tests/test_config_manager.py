import json
import os

import pytest
import yaml

from hedge_trimmer.config import (
    ConfigManager,
    ConfigurationError,
    HedgeTrimmerConfig,
    LogLevel,
    build_logging_config,
    load_config,
)

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def raw_config():
    return {
        'monitor': {
            'symbol': 'EURUSD',
            'check_interval_seconds': 2,
            'trim_fraction': 0.6,
            'max_retries': 4,
        },
        'logging': {
            'level': 'DEBUG',
            'enable_detailed_logging': True,
        },
        'broker': {
            'type': 'paper',
            'positions': [
                {'side': 'long', 'volume': 100000, 'entry_price': 1.11, 'net_profit': 50.0},
            ],
        },
    }


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name='config.yaml'):
        path = tmp_path / name
        with open(path, 'w', encoding='utf-8') as f:
            if name.endswith('.json'):
                json.dump(data, f)
            else:
                yaml.safe_dump(data, f)
        return path
    return _write


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for env_var in ConfigManager.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)

# ------------------------- Tests ------------------------- #

def test_load_yaml(write_config, raw_config):
    config = ConfigManager(write_config(raw_config), env_file=None).load_config()

    assert config.monitor.symbol == 'EURUSD'
    assert config.monitor.check_interval_seconds == 2
    assert config.monitor.trim_fraction == pytest.approx(0.6)
    assert config.monitor.max_retries == 4
    assert config.monitor.log_interval_seconds == 60
    assert config.logging.level is LogLevel.DEBUG
    assert config.logging.enable_detailed_logging is True
    assert config.broker.positions[0].volume == 100000


def test_load_json(write_config, raw_config):
    config = load_config(write_config(raw_config, name='config.json'))
    assert config.monitor.max_retries == 4


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / 'empty.yaml'
    path.write_text('')

    config = ConfigManager(path, env_file=None).load_config()

    assert config == HedgeTrimmerConfig()
    assert config.monitor.trim_fraction == pytest.approx(0.75)
    assert config.monitor.max_retries == 3


@pytest.mark.parametrize("fraction", [0.1, 0.95])
def test_trim_fraction_bounds_are_inclusive(write_config, raw_config, fraction):
    raw_config['monitor']['trim_fraction'] = fraction
    config = ConfigManager(write_config(raw_config), env_file=None).load_config()
    assert config.monitor.trim_fraction == pytest.approx(fraction)


@pytest.mark.parametrize("section, key, value", [
    ('monitor', 'trim_fraction', 0.05),
    ('monitor', 'trim_fraction', 0.96),
    ('monitor', 'symbol', '   '),
    ('monitor', 'check_interval_seconds', 0),
    ('monitor', 'max_retries', 0),
    ('monitor', 'max_retries', 11),
    ('broker', 'type', 'mt5'),
    ('broker', 'failure_rate', 1.5),
])
def test_invalid_values_raise_configuration_error(write_config, raw_config, section, key, value):
    raw_config[section][key] = value
    manager = ConfigManager(write_config(raw_config), env_file=None)

    with pytest.raises(ConfigurationError):
        manager.load_config()


def test_invalid_paper_position_side(write_config, raw_config):
    raw_config['broker']['positions'][0]['side'] = 'flat'
    with pytest.raises(ConfigurationError):
        ConfigManager(write_config(raw_config), env_file=None).load_config()


def test_missing_and_unsupported_files(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / 'missing.yaml', env_file=None).load_config()

    path = tmp_path / 'config.toml'
    path.write_text('monitor = 1')
    with pytest.raises(ConfigurationError):
        ConfigManager(path, env_file=None).load_config()

    with pytest.raises(ConfigurationError):
        ConfigManager(env_file=None).load_config()


def test_malformed_yaml(tmp_path):
    path = tmp_path / 'bad.yaml'
    path.write_text('monitor: [unclosed')

    with pytest.raises(ConfigurationError):
        ConfigManager(path, env_file=None).load_config()


def test_env_overrides(write_config, raw_config, monkeypatch):
    monkeypatch.setenv('HEDGE_SYMBOL', 'GBPUSD')
    monkeypatch.setenv('HEDGE_TRIM_FRACTION', '0.5')
    monkeypatch.setenv('HEDGE_MAX_RETRIES', '7')
    monkeypatch.setenv('HEDGE_SANDBOX', 'false')
    monkeypatch.setenv('HEDGE_LOG_LEVEL', 'WARNING')

    config = ConfigManager(write_config(raw_config), env_file=None).load_config()

    assert config.monitor.symbol == 'GBPUSD'
    assert config.monitor.trim_fraction == pytest.approx(0.5)
    assert config.monitor.max_retries == 7
    assert config.broker.sandbox is False
    assert config.logging.level is LogLevel.WARNING


def test_env_override_out_of_range_is_fatal(write_config, raw_config, monkeypatch):
    monkeypatch.setenv('HEDGE_TRIM_FRACTION', '0.99')
    with pytest.raises(ConfigurationError):
        ConfigManager(write_config(raw_config), env_file=None).load_config()


def test_env_override_not_a_number(write_config, raw_config, monkeypatch):
    monkeypatch.setenv('HEDGE_MAX_RETRIES', 'many')
    with pytest.raises(ConfigurationError):
        ConfigManager(write_config(raw_config), env_file=None).load_config()


def test_dotenv_file_is_read(write_config, raw_config, tmp_path):
    env_file = tmp_path / '.env'
    env_file.write_text('HEDGE_SYMBOL=USDJPY\n')

    try:
        config = ConfigManager(write_config(raw_config), env_file=env_file).load_config()
    finally:
        os.environ.pop('HEDGE_SYMBOL', None)

    assert config.monitor.symbol == 'USDJPY'


def test_create_default_and_reload(tmp_path):
    path = tmp_path / 'nested' / 'default.yaml'
    created = ConfigManager.create_default_config(path)

    manager = ConfigManager(path, env_file=None)
    loaded = manager.load_config()

    assert loaded == created
    assert manager.is_loaded
    assert manager.get_monitor_params().symbol == 'EURUSD'
    assert manager.reload() == loaded


def test_getters_require_loaded_config():
    with pytest.raises(ValueError):
        ConfigManager(env_file=None).get_config()


def test_build_logging_config(raw_config):
    raw_config['logging'].update({
        'file': True,
        'file_path': 'var/log/trimmer.log',
        'colors': False,
    })
    config = ConfigManager.validate(raw_config)

    logging_config = build_logging_config(config)['logging']

    assert logging_config['level'] == 'DEBUG'
    assert logging_config['file'] is True
    assert logging_config['file_config'] == {'directory': 'var/log', 'filename': 'trimmer.log'}
    assert logging_config['console_config'] == {'colors': False}
    assert logging_config['error_file'] is False
