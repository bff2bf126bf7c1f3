"""Tests for CLI configuration module."""

import json

import pytest

from cli.config import Config
from common.constants import DB_PROVIDER
from uploader.exceptions import ValidationError


def test_config_creates_default_file(tmp_path):
    """Test that config file is created with defaults if missing."""
    config_path = tmp_path / '.vidswarm' / 'config.json'
    config = Config(config_path)

    assert config_path.exists()
    assert config.data['timeout'] == 30
    assert config.data['max_retries'] == 3
    assert config.data['retry_backoff_multiplier'] == 2
    assert config.get_timeout() == 30


def test_config_loads_existing_file(tmp_path):
    """Test loading existing config file."""
    config_path = tmp_path / '.vidswarm' / 'config.json'
    config_path.parent.mkdir(parents=True)
    with open(config_path, 'w') as f:
        json.dump({'kubo_api_url': 'http://ipfs:5001', 'max_retries': 7}, f)

    config = Config(config_path)

    assert config.data['kubo_api_url'] == 'http://ipfs:5001'
    assert config.get_retry_config() == {'max_retries': 7, 'retry_backoff_multiplier': 2}
    assert config.data['timeout'] == 30


def test_corrupt_config_falls_back_to_defaults(tmp_path):
    """Test that unreadable JSON is backed up and defaults are used."""
    config_path = tmp_path / '.vidswarm' / 'config.json'
    config_path.parent.mkdir(parents=True)
    config_path.write_text('{not json')

    config = Config(config_path)

    assert config.data == Config.DEFAULT_CONFIG
    assert config_path.with_suffix('.json.bak').exists()


def test_save_persists_changes(temp_config):
    """Test that save writes the current data."""
    temp_config.data['db_provider'] = 'https://db.example.video/api/v1/'
    temp_config.save()

    with open(temp_config.config_path) as f:
        assert json.load(f)['db_provider'] == 'https://db.example.video/api/v1/'


def test_to_settings_passes_values_through(temp_config):
    """Test conversion into UploaderSettings."""
    temp_config.data.update({
        'kubo_api_url': 'http://ipfs:5001',
        'default_transcoder': '/ip4/10.0.0.2/tcp/4001/ipfs/QmWorker',
        'job_timeout': 120,
        'send_retries': 4,
    })

    settings = temp_config.to_settings()

    assert settings.kubo_api_url == 'http://ipfs:5001'
    assert settings.default_transcoder == '/ip4/10.0.0.2/tcp/4001/ipfs/QmWorker'
    assert settings.job_timeout == 120
    assert settings.send_retries == 4


def test_to_settings_rejects_invalid_values(temp_config):
    """Test that invalid config values surface as ValidationError."""
    temp_config.data['send_retries'] = -1
    with pytest.raises(ValidationError):
        temp_config.to_settings()


def test_db_provider_default(temp_config):
    """Test metadata index URL lookup."""
    temp_config.data.pop('db_provider')
    assert temp_config.get_db_provider() == DB_PROVIDER
