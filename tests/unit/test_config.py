"""Tests for configuration management."""

import pytest
import tempfile
import yaml
from pathlib import Path

from cosmo_feed.config.settings import (
    FeedSettings,
    TransportConfig,
    ReconnectConfig,
    load_settings,
    substitute_env_vars,
)


class TestFeedSettings:
    """Test FeedSettings validation."""

    def test_default_settings(self):
        """Test default settings creation."""
        settings = FeedSettings()

        assert settings.service_name == "cosmo-feed"
        assert settings.transport.url == "ws://localhost:8000/connect"
        assert settings.reconnect.strategy == "fixed"
        assert settings.reconnect.delay_seconds == 3.0
        assert settings.enrichment.timeout_seconds == 10.0
        assert settings.enrichment.max_concurrency is None
        assert settings.store.max_records == 1000
        assert settings.server.display_threshold == 100

    def test_environment_validation(self):
        """Test environment validation."""
        for env in ['local', 'dev', 'prod']:
            assert FeedSettings(environment=env).environment == env

        with pytest.raises(ValueError, match="Environment must be"):
            FeedSettings(environment="staging")

    def test_reconnect_strategy_validation(self):
        """Only fixed and exponential strategies are accepted."""
        assert ReconnectConfig(strategy="exponential").strategy == "exponential"

        with pytest.raises(ValueError, match="Strategy must be"):
            ReconnectConfig(strategy="linear")

    def test_non_positive_values_rejected(self):
        """Delays, timeouts and sizes must be positive."""
        with pytest.raises(ValueError):
            ReconnectConfig(delay_seconds=0)

        with pytest.raises(ValueError):
            FeedSettings(enrichment={'timeout_seconds': -1})

        with pytest.raises(ValueError):
            FeedSettings(store={'max_records': 0})

    def test_transport_url_scheme(self):
        """Transport URL must be a WebSocket URL."""
        with pytest.raises(ValueError, match="ws://"):
            TransportConfig(url="http://example.com/connect")

    def test_log_level_normalized(self):
        """Log level is upper-cased and validated."""
        settings = FeedSettings(logging={'level': 'debug', 'format': 'TEXT'})
        assert settings.logging.level == "DEBUG"
        assert settings.logging.format == "text"

        with pytest.raises(ValueError, match="Invalid log level"):
            FeedSettings(logging={'level': 'verbose'})

    def test_nested_env_override(self, monkeypatch):
        """Nested values can be overridden from the environment."""
        monkeypatch.setenv("TRANSPORT__URL", "wss://stream.example/connect")
        monkeypatch.setenv("ENRICHMENT__MAX_CONCURRENCY", "8")

        settings = FeedSettings()

        assert settings.transport.url == "wss://stream.example/connect"
        assert settings.enrichment.max_concurrency == 8


class TestConfigLoading:
    """Test configuration loading from files and environment."""

    def _write_yaml(self, data) -> str:
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(data, f)
            return f.name

    def test_load_from_yaml_file(self):
        """Test loading configuration from YAML file."""
        path = self._write_yaml({
            'service_name': 'yaml-feed',
            'environment': 'dev',
            'reconnect': {'strategy': 'exponential', 'delay_seconds': 1.5},
            'store': {'max_records': 25},
        })

        settings = load_settings(path)

        assert settings.service_name == 'yaml-feed'
        assert settings.environment == 'dev'
        assert settings.reconnect.strategy == 'exponential'
        assert settings.reconnect.delay_seconds == 1.5
        assert settings.store.max_records == 25

    def test_yaml_env_substitution(self, monkeypatch):
        """${VAR} and ${VAR:-default} are expanded from the environment."""
        monkeypatch.setenv("FEED_WS_URL", "ws://from-env:9000/connect")
        monkeypatch.delenv("FEED_HTTP_PORT", raising=False)

        path = self._write_yaml({
            'transport': {'url': '${FEED_WS_URL}', 'force_secure': '${FEED_FORCE_SECURE:-true}'},
            'server': {'port': '${FEED_HTTP_PORT:-9090}'},
        })

        settings = load_settings(path)

        assert settings.transport.url == "ws://from-env:9000/connect"
        assert settings.transport.force_secure is True
        assert settings.server.port == 9090

    def test_missing_required_env_var(self, monkeypatch):
        """A required variable that is not set is a configuration error."""
        monkeypatch.delenv("FEED_MISSING_VAR", raising=False)
        path = self._write_yaml({'transport': {'url': '${FEED_MISSING_VAR}'}})

        with pytest.raises(ValueError, match="FEED_MISSING_VAR"):
            load_settings(path)

    def test_missing_config_file(self):
        """Test error when config file doesn't exist."""
        with pytest.raises(FileNotFoundError):
            load_settings("/nonexistent/feed.yaml")

    def test_load_without_file(self):
        """Without a file, defaults and environment are used."""
        assert isinstance(load_settings(), FeedSettings)

    def test_substitute_env_vars_recurses(self, monkeypatch):
        """Substitution walks dicts and lists and leaves other values alone."""
        monkeypatch.setenv("FEED_NAME", "nested")

        result = substitute_env_vars({'a': ['${FEED_NAME}', 3], 'b': {'c': 'x-${FEED_NAME}'}, 'd': None})

        assert result == {'a': ['nested', 3], 'b': {'c': 'x-nested'}, 'd': None}

    def test_shipped_local_config(self, monkeypatch):
        """The example config in config/ loads with its defaults."""
        for var in ("FEED_WS_URL", "FEED_FORCE_SECURE", "FEED_HTTP_PORT", "LOG_LEVEL"):
            monkeypatch.delenv(var, raising=False)

        settings = load_settings(str(Path(__file__).parents[2] / "config" / "local.yaml"))

        assert settings.transport.url == "ws://localhost:8000/connect"
        assert settings.transport.force_secure is False
        assert settings.reconnect.delay_seconds == 3.0
        assert settings.enrichment.timeout_seconds == 10.0
        assert settings.server.port == 8080
        assert settings.logging.format == "text"
