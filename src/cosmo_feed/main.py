"""Cosmo Feed Service - live token feed with background metadata enrichment."""

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .clients.metadata_client import MetadataClient
from .clients.transport import WebSocketTransport
from .config.settings import FeedSettings, load_settings
from .decoder import EventDecoder
from .enrichment import EnrichmentPool
from .models import FeedRecord
from .server import FeedServer
from .store import FeedStore
from .supervisor import ConnectionSupervisor
from .utils.logging import setup_logging
from .utils.retry import build_reconnect_policy


logger = logging.getLogger(__name__)


class FeedService:
    """
    Wires the stream supervisor, decoder, feed store and enrichment pool.

    Data flow: transport -> decoder -> store (Pending placeholder) ->
    enrichment pool (background lookup) -> store (merge by identity).
    """

    def __init__(
        self,
        settings: FeedSettings,
        transport=None,
        metadata_client=None
    ):
        self.settings = settings

        self.store = FeedStore(max_records=settings.store.max_records)
        self.decoder = EventDecoder()
        self.metadata_client = metadata_client or MetadataClient(settings.enrichment)
        self.pool = EnrichmentPool(
            self.store,
            self.metadata_client,
            timeout_seconds=settings.enrichment.timeout_seconds,
            max_concurrency=settings.enrichment.max_concurrency
        )

        self.transport = transport or WebSocketTransport(settings.transport)
        self.supervisor = ConnectionSupervisor(
            self.transport,
            self.handle_message,
            policy=build_reconnect_policy(settings.reconnect)
        )

        self.server: Optional[FeedServer] = None
        if settings.server.enabled:
            self.server = FeedServer(
                self,
                host=settings.server.host,
                port=settings.server.port,
                display_threshold=settings.server.display_threshold
            )

        self._shutdown_event = asyncio.Event()
        self._running = False
        logger.info(f"{settings.service_name} initialized for {self.transport.url}")

    def handle_message(self, raw_message) -> Optional[FeedRecord]:
        """Decode one raw message and hand it to the enrichment pool."""
        event = self.decoder.try_decode(raw_message)
        if event is None:
            return None
        return self.pool.submit(event)

    async def start(self):
        """Start all components; returns once the first connection attempt is under way."""
        if self._running:
            return
        self._running = True
        logger.info("Starting Cosmo Feed Service")

        await self.metadata_client.start()
        if self.server:
            await self.server.start()

        self.supervisor.start()

    async def stop(self):
        """Tear down: stop the stream, discard late lookups, close HTTP resources."""
        if not self._running:
            return
        self._running = False
        logger.info("Stopping Cosmo Feed Service")

        await self.supervisor.shutdown()

        self.pool.close()
        self.store.close()
        await self.pool.drain(timeout=self.settings.enrichment.timeout_seconds + 1)

        await self.metadata_client.close()
        if self.server:
            await self.server.stop()

        logger.info("Cosmo Feed Service stopped")

    async def run(self):
        """Run until a shutdown signal arrives."""
        self._setup_signal_handlers()

        try:
            await self.start()
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    def request_shutdown(self):
        self._shutdown_event.set()

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                signal.signal(signum, lambda s, frame: loop.call_soon_threadsafe(self._on_signal, s))

    def _on_signal(self, signum):
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.request_shutdown()

    def health_check(self) -> Dict[str, Any]:
        """Perform health check."""
        health_status = {
            "service": self.settings.service_name,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "running": self._running,
            "components": {
                "stream": self.supervisor.health_check(),
                "decoder": {"status": "healthy", "stats": self.decoder.get_stats()},
                "store": {"status": "healthy", "stats": self.store.get_stats()},
                "enrichment": {"status": "healthy", "stats": self.pool.get_stats()},
            }
        }

        if not self._running or self.store.closed:
            health_status["status"] = "unhealthy"
        elif any(
            component.get("status") != "healthy"
            for component in health_status["components"].values()
        ):
            health_status["status"] = "degraded"

        return health_status


async def main():
    """Main entry point."""
    config_file = os.getenv("CONFIG_FILE")

    try:
        settings = load_settings(config_file)
    except (ValueError, FileNotFoundError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(settings.logging, settings.service_name)
    service = FeedService(settings)

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
