"""Configuration settings using Pydantic for validation."""

from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os
import re


class TransportConfig(BaseModel):
    """Token-creation stream endpoint configuration."""
    url: str = Field(default="ws://localhost:8000/connect", description="WebSocket endpoint publishing new token events")
    force_secure: bool = Field(default=False, description="Upgrade ws:// to wss:// (hosting page served over https)")
    open_timeout_seconds: float = Field(default=10.0, gt=0, description="Handshake timeout")
    ping_interval_seconds: float = Field(default=20.0, gt=0, description="Keepalive ping interval")
    ping_timeout_seconds: float = Field(default=10.0, gt=0, description="Keepalive pong timeout")
    max_message_bytes: int = Field(default=2**20, gt=0, description="Maximum inbound frame size")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('ws://', 'wss://')):
            raise ValueError("Transport URL must use ws:// or wss://")
        return v


class ReconnectConfig(BaseModel):
    """Reconnection policy for the stream supervisor."""
    strategy: str = Field(default="fixed", description="Reconnect strategy: fixed or exponential")
    delay_seconds: float = Field(default=3.0, gt=0, description="Fixed delay / initial backoff delay")
    max_delay_seconds: float = Field(default=60.0, gt=0, description="Backoff cap for exponential strategy")
    multiplier: float = Field(default=2.0, ge=1.0, description="Backoff multiplier for exponential strategy")
    jitter: bool = Field(default=False, description="Add jitter to exponential backoff")

    @field_validator('strategy')
    @classmethod
    def validate_strategy(cls, v):
        if v not in ['fixed', 'exponential']:
            raise ValueError("Strategy must be 'fixed' or 'exponential'")
        return v


class EnrichmentConfig(BaseModel):
    """Metadata lookup configuration."""
    timeout_seconds: float = Field(default=10.0, gt=0, description="Per-lookup timeout")
    max_concurrency: Optional[int] = Field(default=None, ge=1, description="Cap on in-flight lookups (unset = unbounded)")
    user_agent: str = Field(default="CosmoFeed/1.0", description="User-Agent sent with metadata lookups")


class StoreConfig(BaseModel):
    """Feed store configuration."""
    max_records: int = Field(default=1000, ge=1, description="Maximum records retained before oldest eviction")


class ServerConfig(BaseModel):
    """Feed/health HTTP server configuration."""
    enabled: bool = Field(default=True, description="Serve the feed over HTTP")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    display_threshold: int = Field(default=100, ge=1, description="Count above which the feed size renders as 'N+'")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")
    output: str = Field(default="stdout", description="Log output destination")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class FeedSettings(BaseSettings):
    """Main feed service settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Service configuration
    service_name: str = Field(default="cosmo-feed", description="Service name")
    environment: str = Field(default="local", description="Environment: local, dev, prod")

    # Component configurations
    transport: TransportConfig = Field(default_factory=TransportConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in ['local', 'dev', 'prod']:
            raise ValueError("Environment must be 'local', 'dev', or 'prod'")
        return v


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Args:
        obj: Configuration object (dict, list, string, or other)

    Returns:
        Object with environment variables substituted

    Raises:
        ValueError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)
            else:
                var_name = var_expr.strip()
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(f"Required environment variable '{var_name}' is not set")
                return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def load_settings(config_file: Optional[str] = None) -> FeedSettings:
    """
    Load settings from config file and environment variables.

    The config file supports environment variable substitution using ${VAR_NAME} syntax.
    Values present in the file win over plain environment variables; anything the
    file leaves out falls back to the environment and then to the defaults.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        FeedSettings: Validated configuration object

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If config file doesn't exist
    """

    if config_file and os.path.exists(config_file):
        import yaml

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        config_data = substitute_env_vars(raw_config)
        return FeedSettings(**config_data)

    elif config_file:
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    return FeedSettings()
