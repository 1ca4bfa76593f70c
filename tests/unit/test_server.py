"""Tests for the feed and health HTTP endpoints."""

import json

import pytest
from aiohttp import test_utils

from cosmo_feed.main import FeedService
from cosmo_feed.models import ConnectionStatus
from cosmo_feed.server import FeedServer
from cosmo_feed.utils.retry import FixedDelay


@pytest.mark.unit
class TestFeedServer:
    """Test FeedServer routes against an in-process service."""

    @pytest.fixture
    async def service(self, test_settings, fake_transport, fake_metadata_client, wait_for):
        service = FeedService(test_settings, transport=fake_transport, metadata_client=fake_metadata_client)
        await service.start()
        await wait_for(lambda: service.supervisor.status is ConnectionStatus.CONNECTED)
        yield service
        await service.stop()

    @pytest.fixture
    async def http(self, service):
        app = FeedServer(service, display_threshold=3).build_app()
        client = test_utils.TestClient(test_utils.TestServer(app))
        await client.start_server()
        yield client
        await client.close()

    def feed_messages(self, service, count):
        for i in range(count):
            service.handle_message(json.dumps({'mint': f"M{i}", 'name': f"Token {i}", 'symbol': f"T{i}"}))

    async def test_feed_newest_first(self, http, service):
        self.feed_messages(service, 3)

        response = await http.get('/feed')
        assert response.status == 200
        body = await response.json()

        assert [r['identity'] for r in body['records']] == ["M2", "M1", "M0"]
        assert body['records'][0]['enrichment_state'] == "Failed"
        assert body['records'][0]['title'] == "Token 2"
        assert body['connection_status'] == "Connected"
        assert body['record_count'] == 3

    async def test_feed_limit(self, http, service):
        self.feed_messages(service, 5)

        body = await (await http.get('/feed', params={'limit': '2'})).json()
        assert [r['identity'] for r in body['records']] == ["M4", "M3"]
        assert body['record_count'] == 5

    @pytest.mark.parametrize("limit", ["abc", "-1"])
    async def test_feed_rejects_bad_limit(self, http, limit):
        response = await http.get('/feed', params={'limit': limit})
        assert response.status == 400
        assert 'error' in await response.json()

    async def test_status_display_count(self, http, service):
        self.feed_messages(service, 3)
        body = await (await http.get('/status')).json()
        assert body['display_count'] == "3"

        self.feed_messages(service, 4)
        body = await (await http.get('/status')).json()
        assert body['record_count'] == 4
        assert body['display_count'] == "3+"
        assert body['last_error'] is None

    async def test_health_when_connected(self, http):
        response = await http.get('/health')
        body = await response.json()

        assert response.status == 200
        assert body['status'] == "healthy"
        assert body['components']['stream']['status'] == "healthy"

    async def test_health_degraded_while_reconnecting(self, http, service, fake_transport, wait_for):
        service.supervisor.policy = FixedDelay(5.0)
        fake_transport.drop()
        await wait_for(lambda: service.supervisor.reconnect_pending)

        health = await http.get('/health')
        ready = await http.get('/ready')

        assert health.status == 503
        assert (await health.json())['status'] == "degraded"
        assert ready.status == 200
        assert (await ready.json())['ready'] is True

    async def test_live(self, http):
        response = await http.get('/live')
        assert response.status == 200
        assert (await response.json())['alive'] is True

    async def test_cors_header(self, http):
        response = await http.get('/status')
        assert response.headers['Access-Control-Allow-Origin'] == "*"
