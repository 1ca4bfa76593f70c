"""Pytest configuration and shared fixtures."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from cosmo_feed.config.settings import (
    FeedSettings,
    TransportConfig,
    ReconnectConfig,
    EnrichmentConfig,
    StoreConfig,
    ServerConfig,
)
from cosmo_feed.models import TokenMetadata


_CLOSE = object()


class FakeTransport:
    """In-memory stand-in for the WebSocket transport."""

    def __init__(self, url: str = "ws://feed.test/connect"):
        self.url = url
        self.open_calls = 0
        self.close_calls = 0
        self.open_errors: List[Exception] = []
        self.is_open = False
        self._queue: Optional[asyncio.Queue] = None

    async def open(self):
        self.open_calls += 1
        if self.open_errors:
            raise self.open_errors.pop(0)
        self._queue = asyncio.Queue()
        self.is_open = True

    async def receive(self):
        queue = self._queue
        while True:
            item = await queue.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, message):
        if not isinstance(message, (str, bytes)):
            message = json.dumps(message)
        self._queue.put_nowait(message)

    def drop(self):
        """Simulate the peer closing the connection."""
        self._queue.put_nowait(_CLOSE)

    def fail(self, error: Exception):
        """Simulate an abrupt protocol failure mid-stream."""
        self._queue.put_nowait(error)

    async def close(self):
        self.close_calls += 1
        self.is_open = False


class FakeMetadataClient:
    """Metadata client returning canned documents after configurable delays."""

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0
        self.started = False
        self.closed = False

    def respond(self, uri: str, result: Any, delay: float = 0.0):
        self.responses[uri] = result
        self.delays[uri] = delay

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True

    async def fetch(self, uri: str) -> TokenMetadata:
        self.calls.append(uri)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(uri, 0.0))
            result = self.responses.get(uri, {})
            if isinstance(result, Exception):
                raise result
            return TokenMetadata.model_validate(result)
        finally:
            self.active -= 1


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def test_settings() -> FeedSettings:
    """Create test configuration."""
    return FeedSettings(
        service_name="test-feed",
        environment="local",
        transport=TransportConfig(url="ws://feed.test/connect"),
        reconnect=ReconnectConfig(strategy="fixed", delay_seconds=0.05),
        enrichment=EnrichmentConfig(timeout_seconds=0.5),
        store=StoreConfig(max_records=50),
        server=ServerConfig(enabled=False),
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_metadata_client() -> FakeMetadataClient:
    return FakeMetadataClient()


@pytest.fixture
def sample_token_message() -> Dict[str, Any]:
    """Sample token-creation message as published on the stream."""
    return {
        'name': 'Foo',
        'symbol': 'FOO',
        'uri': 'http://meta.test/a.json',
        'mint': 'A',
    }


@pytest.fixture
def sample_metadata() -> Dict[str, Any]:
    """Sample metadata document served from a token URI."""
    return {
        'name': 'Foo Coin',
        'symbol': 'FOOC',
        'description': 'A coin about foo',
        'image': 'http://meta.test/a.png',
        'twitter': 'https://x.com/foo',
        'telegram': 'https://t.me/foo',
        'website': 'https://foo.example',
        'showName': True,
        'attributes': [{'trait_type': 'rarity', 'value': 'common'}],
    }


@pytest.fixture
def wait_for():
    """Async polling helper: ``await wait_for(lambda: cond)``."""
    return wait_until
