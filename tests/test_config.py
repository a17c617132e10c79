"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from fluxion.config import Config, load_config

ENV_VARS = [
    'FLUXION_RELAY_HOST', 'FLUXION_RELAY_PORT', 'FLUXION_RELAY_URL',
    'FLUXION_ICE_SERVERS', 'FLUXION_MAX_BUFFERED_AMOUNT',
    'FLUXION_BUFFER_POLL_INTERVAL', 'FLUXION_METADATA_DELAY',
    'FLUXION_NEGOTIATION_TIMEOUT', 'FLUXION_LINGER_TIMEOUT',
    'FLUXION_OUTPUT_DIR', 'FLUXION_LOG_LEVEL',
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the caller's environment and any .env file."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    """Built-in defaults."""

    def test_defaults(self):
        config = Config()

        assert config.relay_port == 8080
        assert config.relay_url == 'ws://localhost:8080'
        assert config.max_buffered_amount == 1024 * 1024
        assert config.negotiation_timeout is None
        assert config.ice_servers == ['stun:stun.l.google.com:19302']

    def test_ice_server_lists_are_not_shared(self):
        a, b = Config(), Config()
        a.ice_servers.append('stun:example.org')

        assert b.ice_servers == ['stun:stun.l.google.com:19302']


class TestEnvironment:
    """FLUXION_* variables."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('FLUXION_RELAY_PORT', '9000')
        monkeypatch.setenv('FLUXION_ICE_SERVERS', 'stun:a.example, stun:b.example')
        monkeypatch.setenv('FLUXION_NEGOTIATION_TIMEOUT', '30')
        monkeypatch.setenv('FLUXION_OUTPUT_DIR', '/tmp/incoming')

        config = Config.from_env()

        assert config.relay_port == 9000
        assert config.ice_servers == ['stun:a.example', 'stun:b.example']
        assert config.negotiation_timeout == 30.0
        assert config.output_dir == Path('/tmp/incoming')

    def test_timeout_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv('FLUXION_NEGOTIATION_TIMEOUT', 'none')

        assert Config.from_env().negotiation_timeout is None


class TestFile:
    """JSON config files."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / 'config.json'
        Config(relay_url='ws://relay.example:8080', linger_timeout=5.0).save(path)

        loaded = Config.from_file(path)

        assert loaded.relay_url == 'ws://relay.example:8080'
        assert loaded.linger_timeout == 5.0
        assert json.loads(path.read_text())['relay_url'] == 'ws://relay.example:8080'

    def test_missing_file_gives_defaults(self, tmp_path):
        assert Config.from_file(tmp_path / 'missing.json') == Config()

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'relay_url': 'ws://file:1', 'relay_port': 7000}))
        monkeypatch.setenv('FLUXION_RELAY_URL', 'ws://env:2')

        config = load_config(path)

        assert config.relay_url == 'ws://env:2'
        assert config.relay_port == 7000
