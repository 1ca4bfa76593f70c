"""Decoder for raw token-creation messages."""

import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import DecodeError
from .models import FeedEvent
from .utils.logging import log_with_context

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes]


class TokenCreatedMessage(BaseModel):
    """Wire shape of a token-creation message: ``{name, symbol, uri, mint}``."""
    model_config = ConfigDict(extra="ignore")

    mint: str
    name: Optional[str] = ""
    symbol: Optional[str] = ""
    uri: Optional[str] = None

    @field_validator('mint')
    @classmethod
    def validate_mint(cls, v):
        # Identity is opaque: reject blanks, never rewrite
        if not v.strip():
            raise ValueError("mint must not be empty")
        return v

    @field_validator('uri')
    @classmethod
    def blank_uri_is_missing(cls, v):
        if v is None or not v.strip():
            return None
        return v.strip()


class EventDecoder:
    """
    Turns raw stream messages into ``FeedEvent`` values.

    ``decode`` raises ``DecodeError``; ``try_decode`` logs and swallows it so a
    malformed message never reaches the connection loop.
    """

    PREVIEW_CHARS = 200

    def __init__(self):
        self.stats = {
            'messages_decoded': 0,
            'decode_errors': 0,
        }

    def decode(self, raw: RawMessage) -> FeedEvent:
        """Decode one raw message or raise ``DecodeError``."""
        preview = self._preview(raw)

        try:
            text = raw.decode('utf-8') if isinstance(raw, bytes) else raw
            payload: Any = json.loads(text)
        except (UnicodeDecodeError, ValueError, TypeError) as e:
            raise DecodeError(f"Message is not valid JSON: {e}", raw_preview=preview) from e

        if not isinstance(payload, dict):
            raise DecodeError(
                f"Expected a JSON object, got {type(payload).__name__}",
                raw_preview=preview
            )

        try:
            message = TokenCreatedMessage.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"Invalid token message: {self._summarize(e)}", raw_preview=preview) from e

        return FeedEvent(
            identity=message.mint,
            display_name=message.name or "",
            symbol=message.symbol or "",
            descriptor_uri=message.uri,
        )

    def try_decode(self, raw: RawMessage) -> Optional[FeedEvent]:
        """Decode a message, returning ``None`` (and logging) on failure."""
        try:
            event = self.decode(raw)
        except DecodeError as e:
            self.stats['decode_errors'] += 1
            log_with_context(
                logger, logging.WARNING,
                f"Discarding malformed message: {e}",
                raw_preview=e.raw_preview
            )
            return None

        self.stats['messages_decoded'] += 1
        return event

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)

    def _preview(self, raw: Any) -> str:
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8', errors='replace')
        return str(raw)[:self.PREVIEW_CHARS]

    @staticmethod
    def _summarize(error: ValidationError) -> str:
        parts = []
        for item in error.errors():
            location = ".".join(str(part) for part in item.get('loc', ())) or "message"
            parts.append(f"{location}: {item.get('msg')}")
        return "; ".join(parts)
