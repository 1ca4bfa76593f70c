"""Feed data model: decoded events, metadata payloads and feed records."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ConnectionStatus(Enum):
    """Lifecycle states of the stream connection."""
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    ERRORED = "Errored"


class EnrichmentState(Enum):
    """Metadata lookup state of a feed record."""
    PENDING = "Pending"
    LOADED = "Loaded"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self is not EnrichmentState.PENDING


@dataclass(frozen=True)
class FeedEvent:
    """A decoded token-creation event."""
    identity: str
    display_name: str
    symbol: str
    descriptor_uri: Optional[str] = None


class MetadataAttribute(BaseModel):
    """Custom trait attached to a token's metadata."""
    model_config = ConfigDict(extra="ignore")

    trait_type: Optional[str] = None
    value: Any = None

    @field_validator('trait_type', mode='before')
    @classmethod
    def stringify_trait_type(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)


class TokenMetadata(BaseModel):
    """Metadata document served from a token's descriptor URI."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    website: Optional[str] = None
    show_name: Optional[bool] = Field(default=None, alias="showName")
    attributes: List[MetadataAttribute] = Field(default_factory=list)

    @field_validator(
        'name', 'symbol', 'description', 'image', 'twitter', 'telegram', 'website', 'show_name',
        mode='wrap'
    )
    @classmethod
    def drop_unusable_value(cls, v, handler):
        # One odd optional field must not reject the whole document
        try:
            return handler(v)
        except ValidationError:
            return None

    @field_validator('attributes', mode='before')
    @classmethod
    def keep_object_attributes(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]


@dataclass(frozen=True)
class EnrichmentOutcome:
    """Result of one metadata lookup, success or failure."""
    state: EnrichmentState
    metadata: Optional[TokenMetadata] = None
    error: Optional[str] = None

    @classmethod
    def loaded(cls, metadata: TokenMetadata) -> "EnrichmentOutcome":
        return cls(state=EnrichmentState.LOADED, metadata=metadata)

    @classmethod
    def failed(cls, error: str) -> "EnrichmentOutcome":
        return cls(state=EnrichmentState.FAILED, error=error)


@dataclass(frozen=True)
class FeedRecord:
    """
    One token in the feed.

    Records are immutable values; the feed store swaps in updated copies when
    enrichment results arrive. ``revision`` is assigned by the store on insert
    and identifies this particular insertion of ``identity``.
    """
    identity: str
    display_name: str
    symbol: str
    descriptor_uri: Optional[str] = None
    enrichment: Optional[TokenMetadata] = None
    enrichment_state: EnrichmentState = EnrichmentState.PENDING
    enrichment_error: Optional[str] = None
    received_at: float = field(default_factory=time.time)
    revision: int = 0

    @classmethod
    def pending(cls, event: FeedEvent) -> "FeedRecord":
        """Create the placeholder record shown while metadata is loading."""
        return cls(
            identity=event.identity,
            display_name=event.display_name,
            symbol=event.symbol,
            descriptor_uri=event.descriptor_uri,
        )

    @property
    def title(self) -> str:
        if self.enrichment and self.enrichment.name:
            return self.enrichment.name
        return self.display_name or "Unnamed Token"

    @property
    def ticker(self) -> str:
        if self.enrichment and self.enrichment.symbol:
            return self.enrichment.symbol
        return self.symbol or "N/A"

    @property
    def image(self) -> Optional[str]:
        if self.enrichment_state is EnrichmentState.LOADED and self.enrichment:
            return self.enrichment.image
        return None

    @property
    def short_identity(self) -> str:
        if len(self.identity) <= 12:
            return self.identity
        return f"{self.identity[:8]}...{self.identity[-4:]}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the rendering layer."""
        metadata = self.enrichment.model_dump(by_alias=True) if self.enrichment else None
        return {
            'identity': self.identity,
            'short_identity': self.short_identity,
            'display_name': self.display_name,
            'symbol': self.symbol,
            'descriptor_uri': self.descriptor_uri,
            'title': self.title,
            'ticker': self.ticker,
            'image': self.image,
            'enrichment_state': self.enrichment_state.value,
            'enrichment': metadata,
            'enrichment_error': self.enrichment_error,
            'received_at': self.received_at,
        }
