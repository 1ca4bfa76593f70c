"""HTTP endpoints exposing the feed and service health."""

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from aiohttp import web, web_request
from aiohttp.web_response import Response

from .store import display_count

if TYPE_CHECKING:
    from .main import FeedService


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(data) -> str:
    return json.dumps(data, default=str)


class FeedHandler:
    """Feed and health HTTP handler."""

    def __init__(self, service: "FeedService", display_threshold: int = 100):
        self.service = service
        self.display_threshold = display_threshold

    def _connection_payload(self) -> dict:
        supervisor = self.service.supervisor
        count = len(self.service.store)
        return {
            "connection_status": supervisor.status.value,
            "last_error": supervisor.last_error,
            "record_count": count,
            "display_count": display_count(count, self.display_threshold),
        }

    async def feed(self, request: web_request.Request) -> Response:
        """Ordered feed, newest first."""
        limit = None
        if 'limit' in request.query:
            try:
                limit = int(request.query['limit'])
            except ValueError:
                return web.json_response({"error": "limit must be an integer"}, status=400)
            if limit < 0:
                return web.json_response({"error": "limit must not be negative"}, status=400)

        records = self.service.store.snapshot(limit=limit)
        return web.json_response({
            **self._connection_payload(),
            "records": [record.to_dict() for record in records],
            "timestamp": _now(),
        }, dumps=_dumps)

    async def status(self, request: web_request.Request) -> Response:
        """Connection status for display."""
        return web.json_response({**self._connection_payload(), "timestamp": _now()})

    async def health(self, request: web_request.Request) -> Response:
        """Basic health check endpoint."""
        try:
            health_data = self.service.health_check()
            status = 200 if health_data["status"] == "healthy" else 503
            return web.json_response(health_data, status=status, dumps=_dumps)

        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return web.json_response(
                {
                    "service": "cosmo-feed",
                    "status": "unhealthy",
                    "error": str(e),
                    "timestamp": _now()
                },
                status=503
            )

    async def ready(self, request: web_request.Request) -> Response:
        """Readiness probe."""
        try:
            health_data = self.service.health_check()

            # Ready while healthy or reconnecting
            is_ready = health_data["status"] in ["healthy", "degraded"]
            return web.json_response(
                {
                    "ready": is_ready,
                    "status": health_data["status"],
                    "timestamp": _now()
                },
                status=200 if is_ready else 503
            )

        except Exception as e:
            logger.error(f"Readiness check failed: {e}", exc_info=True)
            return web.json_response(
                {"ready": False, "error": str(e), "timestamp": _now()},
                status=503
            )

    async def live(self, request: web_request.Request) -> Response:
        """Liveness probe."""
        return web.json_response({"alive": True, "timestamp": _now()}, status=200)


class FeedServer:
    """HTTP server for the feed and health endpoints."""

    def __init__(
        self,
        service: "FeedService",
        host: str = "0.0.0.0",
        port: int = 8080,
        display_threshold: int = 100
    ):
        self.service = service
        self.host = host
        self.port = port
        self.display_threshold = display_threshold
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[_cors_middleware])

        handler = FeedHandler(self.service, self.display_threshold)
        app.router.add_get('/feed', handler.feed)
        app.router.add_get('/status', handler.status)
        app.router.add_get('/health', handler.health)
        app.router.add_get('/ready', handler.ready)
        app.router.add_get('/live', handler.live)
        return app

    async def start(self):
        """Start the feed server."""
        logger.info(f"Starting feed server on {self.host}:{self.port}")

        self.app = self.build_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"Feed server started on http://{self.host}:{self.port}")

    async def stop(self):
        """Stop the feed server."""
        logger.info("Stopping feed server")

        if self.site:
            await self.site.stop()

        if self.runner:
            await self.runner.cleanup()

        logger.info("Feed server stopped")


@web.middleware
async def _cors_middleware(request: web_request.Request, handler):
    """Allow browser renderers on other origins to read the feed."""
    response = await handler(request)
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response
