"""WebSocket transport for the token-creation stream."""

import asyncio
import logging
from typing import AsyncIterator, Union

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException

from ..config.settings import TransportConfig
from ..errors import TransportError

logger = logging.getLogger(__name__)


def resolve_stream_url(url: str, secure: bool) -> str:
    """Upgrade ``ws://`` to ``wss://`` when the feed must be reached securely."""
    if secure and url.startswith('ws://'):
        return 'wss://' + url[len('ws://'):]
    return url


class WebSocketTransport:
    """
    Owns one WebSocket connection to the token stream.

    The transport has no retry logic of its own: ``open`` either connects or
    raises, ``receive`` ends when the peer closes cleanly, and reconnection is the
    supervisor's job.
    """

    def __init__(self, config: TransportConfig):
        self.config = config
        self.url = resolve_stream_url(config.url, config.force_secure)
        self.websocket = None
        self.stats = {
            'connection_count': 0,
            'messages_received': 0,
        }

    async def open(self):
        """Establish the WebSocket connection."""
        logger.info(f"Connecting to token stream: {self.url}")

        try:
            self.websocket = await websockets.connect(
                self.url,
                open_timeout=self.config.open_timeout_seconds,
                ping_interval=self.config.ping_interval_seconds,
                ping_timeout=self.config.ping_timeout_seconds,
                close_timeout=10,
                max_size=self.config.max_message_bytes,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e

        self.stats['connection_count'] += 1
        logger.info(f"Connected to token stream: {self.url}")

    async def receive(self) -> AsyncIterator[Union[str, bytes]]:
        """
        Yield raw frames until the connection closes.

        A clean close handshake ends the iteration. An abnormal close (aborted
        socket, keepalive timeout, missing close frame) raises ``TransportError``.
        """
        if self.websocket is None:
            raise TransportError("Transport is not open")

        try:
            async for raw_message in self.websocket:
                self.stats['messages_received'] += 1
                yield raw_message
        except ConnectionClosedOK as e:
            logger.info(f"Token stream closed by peer: {e}")
        except ConnectionClosedError as e:
            raise TransportError(f"Token stream closed abnormally: {e}") from e

    async def close(self):
        """Close the connection if one is open."""
        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            await websocket.close()
            logger.info("Disconnected from token stream")

    @property
    def is_open(self) -> bool:
        return self.websocket is not None
