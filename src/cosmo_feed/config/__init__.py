"""Configuration for the feed service."""

from .settings import (
    FeedSettings,
    TransportConfig,
    ReconnectConfig,
    EnrichmentConfig,
    StoreConfig,
    ServerConfig,
    LoggingConfig,
    load_settings,
)
