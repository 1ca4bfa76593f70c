"""Exceptions raised inside the feed pipeline.

None of these escape the service: decode errors are contained per message,
enrichment errors per record, and transport errors per connection.
"""

from typing import Optional


class FeedError(Exception):
    """Base class for feed pipeline errors."""


class TransportError(FeedError):
    """The stream connection could not be opened or failed at the protocol level."""


class DecodeError(FeedError):
    """An inbound message could not be turned into a feed event."""

    def __init__(self, message: str, raw_preview: Optional[str] = None):
        super().__init__(message)
        self.raw_preview = raw_preview


class EnrichmentError(FeedError):
    """A metadata lookup returned something unusable."""

    def __init__(self, message: str, uri: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.uri = uri
        self.status = status
