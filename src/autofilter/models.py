"""Data models for autofilter."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class MediaKind(str, Enum):
    """Kind of media a record was ingested as."""

    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class ContentRecord:
    """One indexed media item."""

    id: str  # platform-assigned primary key
    ref: str  # stable secondary reference
    name: str
    size: int
    kind: MediaKind = MediaKind.DOCUMENT
    mime_type: str | None = None
    caption: str | None = None
    seq: int | None = None  # assigned by the store on insert


@dataclass(frozen=True)
class SearchFilters:
    """Optional refinements of a search. None means the filter is absent."""

    lang: str | None = None
    year: str | None = None
    quality: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.lang is None and self.year is None and self.quality is None

    @property
    def blocks_fallback(self) -> bool:
        """Language and year filters disable the fuzzy fallback; quality does not."""
        return self.lang is not None or self.year is not None


@dataclass(frozen=True)
class SearchState:
    """Page plus filters; fully determines a result page for a given query."""

    page: int = 0
    filters: SearchFilters = field(default_factory=SearchFilters)


@dataclass
class SearchPage:
    """One page of search results."""

    records: list[ContentRecord]
    has_next: bool
    has_prev: bool
    page: int = 0
    is_fallback: bool = False

    @classmethod
    def empty(cls, page: int = 0) -> "SearchPage":
        return cls(records=[], has_next=False, has_prev=False, page=page)


@dataclass(frozen=True)
class BatchRange:
    """A contiguous run of message ids in an external archive chat."""

    source: int | str
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def ids(self) -> range:
        return range(self.start, self.end + 1)


@dataclass(frozen=True)
class MessageHandle:
    """Reference to a message the transport has sent."""

    chat_id: int
    message_id: int


@dataclass
class DeliveryTicket:
    """Delivered messages that expire together."""

    chat_id: int
    handles: list[MessageHandle]
    created_at: float
    delay: float
    notify: bool = True

    @property
    def due_at(self) -> float:
        return self.created_at + self.delay


@dataclass
class DeliveryReport:
    """Outcome of a (batch) delivery."""

    delivered: int = 0
    failed: int = 0
    ticket: DeliveryTicket | None = None


@dataclass
class CounterEntry:
    """A trending or request counter row."""

    key: str
    count: int
    last_seen: datetime
