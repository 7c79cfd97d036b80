"""
Unit tests for formulary.config module
"""
import json
import logging
import os
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest
import toml
import yaml

from formulary.config import (
    apply_env_overrides,
    configure_logging,
    expand_path,
    get_config_path,
    get_default_config,
    load_config,
    merge_configs,
    save_config,
)
from formulary.exit_codes import ConfigError


class TestDefaults(unittest.TestCase):
    """Test default configuration structure"""

    def test_sections(self):
        config = get_default_config()
        for section in ('general', 'fetch', 'verify', 'install', 'dependencies', 'logging'):
            self.assertIn(section, config)

    def test_values(self):
        config = get_default_config()
        self.assertEqual(config['fetch']['max_retries'], 3)
        self.assertEqual(config['fetch']['backoff_seconds'], 1.0)
        self.assertEqual(config['verify']['timeout_seconds'], 30)
        self.assertEqual(config['dependencies']['provided'], [])
        self.assertTrue(config['dependencies']['check_path'])

    def test_fresh_copy_each_call(self):
        a = get_default_config()
        a['general']['prefix'] = '/elsewhere'
        self.assertNotEqual(get_default_config()['general']['prefix'], '/elsewhere')


def test_config_path_default(isolated_home):
    assert get_config_path() == isolated_home / '.formulary' / 'config.json'


def test_config_path_env(tmp_path, monkeypatch):
    path = tmp_path / 'custom.yaml'
    path.write_text('general: {}\n')
    monkeypatch.setenv('FORMULARY_CONFIG', str(path))
    assert get_config_path() == path


def test_load_config_no_file():
    assert load_config() == get_default_config()


@pytest.mark.parametrize("suffix, dump", [
    ('.json', lambda data, f: json.dump(data, f)),
    ('.yaml', lambda data, f: yaml.safe_dump(data, f)),
    ('.toml', lambda data, f: toml.dump(data, f)),
])
def test_load_config_formats(tmp_path, monkeypatch, suffix, dump):
    path = tmp_path / f'config{suffix}'
    with open(path, 'w') as f:
        dump({'fetch': {'max_retries': 7}}, f)
    monkeypatch.setenv('FORMULARY_CONFIG', str(path))

    config = load_config()
    assert config['fetch']['max_retries'] == 7
    # untouched keys keep their defaults
    assert config['fetch']['timeout_seconds'] == 300


def test_load_config_invalid_file(tmp_path, monkeypatch):
    path = tmp_path / 'config.json'
    path.write_text('{not json')
    monkeypatch.setenv('FORMULARY_CONFIG', str(path))
    with pytest.raises(ConfigError) as exc_info:
        load_config()
    assert exc_info.value.exit_code == 66


def test_load_config_non_mapping(tmp_path, monkeypatch):
    path = tmp_path / 'config.yaml'
    path.write_text('- a\n- b\n')
    monkeypatch.setenv('FORMULARY_CONFIG', str(path))
    with pytest.raises(ConfigError):
        load_config()


def test_save_config_round_trip(tmp_path):
    path = tmp_path / 'nested' / 'config.yaml'
    config = get_default_config()
    config['install']['parallel'] = 4
    assert save_config(config, path) == path
    with open(path) as f:
        assert yaml.safe_load(f)['install']['parallel'] == 4


def test_merge_configs_nested():
    merged = merge_configs({'a': {'x': 1, 'y': 2}, 'b': 1}, {'a': {'y': 3}, 'c': 4})
    assert merged == {'a': {'x': 1, 'y': 3}, 'b': 1, 'c': 4}


class TestEnvOverrides:
    """FORMULARY_SECTION_KEY environment overrides."""

    def test_multi_word_key(self, monkeypatch):
        monkeypatch.setenv('FORMULARY_FETCH_MAX_RETRIES', '5')
        config = apply_env_overrides(get_default_config())
        assert config['fetch']['max_retries'] == 5

    def test_bool_and_float(self, monkeypatch):
        monkeypatch.setenv('FORMULARY_DEPENDENCIES_CHECK_PATH', 'false')
        monkeypatch.setenv('FORMULARY_FETCH_BACKOFF_SECONDS', '0.5')
        config = apply_env_overrides(get_default_config())
        assert config['dependencies']['check_path'] is False
        assert config['fetch']['backoff_seconds'] == 0.5

    def test_string_value(self, monkeypatch):
        monkeypatch.setenv('FORMULARY_GENERAL_PREFIX', '/opt/tools')
        config = apply_env_overrides(get_default_config())
        assert config['general']['prefix'] == '/opt/tools'

    def test_unknown_keys_ignored(self, monkeypatch):
        monkeypatch.setenv('FORMULARY_NOPE_THING', '1')
        assert apply_env_overrides(get_default_config()) == get_default_config()

    def test_applied_by_load_config(self, monkeypatch):
        monkeypatch.setenv('FORMULARY_VERIFY_TIMEOUT_SECONDS', '9')
        assert load_config()['verify']['timeout_seconds'] == 9


def test_configure_logging_levels():
    config = get_default_config()
    configure_logging(config, verbose=True)
    assert logging.getLogger('formulary').level == logging.DEBUG

    config['logging']['level'] = 'warning'
    configure_logging(config)
    assert logging.getLogger('formulary').level == logging.WARNING


def test_expand_path(isolated_home):
    assert expand_path('~/x') == isolated_home / 'x'
