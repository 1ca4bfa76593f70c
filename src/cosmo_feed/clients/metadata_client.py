"""HTTP client for token metadata documents."""

import logging
from typing import Optional

import aiohttp
from pydantic import ValidationError

from ..config.settings import EnrichmentConfig
from ..errors import EnrichmentError
from ..models import TokenMetadata

logger = logging.getLogger(__name__)


class MetadataClient:
    """Fetches the JSON metadata document a token's descriptor URI points at."""

    def __init__(self, config: EnrichmentConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                headers={
                    'Accept': 'application/json',
                    'User-Agent': self.config.user_agent,
                },
            )

    async def close(self):
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def fetch(self, uri: str) -> TokenMetadata:
        """
        GET ``uri`` and parse the body as token metadata.

        Raises:
            EnrichmentError: HTTP error status, non-JSON or non-object body,
                or a payload that does not fit the metadata shape
            aiohttp.ClientError: Network failure
            asyncio.TimeoutError: Lookup exceeded the configured timeout
        """
        if self.session is None:
            raise RuntimeError("Client not initialized. Use async context manager.")

        logger.debug(f"Fetching token metadata from {uri}")

        async with self.session.get(uri) as response:
            if response.status >= 400:
                raise EnrichmentError(
                    f"Metadata request failed with HTTP {response.status}",
                    uri=uri,
                    status=response.status
                )

            try:
                # Many metadata hosts serve JSON as text/plain or octet-stream
                payload = await response.json(content_type=None)
            except ValueError as e:
                raise EnrichmentError(f"Metadata body is not JSON: {e}", uri=uri, status=response.status) from e

        if not isinstance(payload, dict):
            raise EnrichmentError(
                f"Metadata body is a JSON {type(payload).__name__}, expected an object",
                uri=uri
            )

        try:
            return TokenMetadata.model_validate(payload)
        except ValidationError as e:
            raise EnrichmentError(f"Metadata does not match expected shape: {e.error_count()} error(s)", uri=uri) from e
