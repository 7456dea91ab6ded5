"""Stateless session codecs.

Navigation state never lives on the server. It travels inside the messages
themselves in one of three encodings:

* compact token  ``<page>:<lang>:<year>:<quality>`` for button payloads;
* search link    ``<quoted query>|<page>|<lang>|<year>|<quality>``, base64url;
* batch range    compact JSON ``{"source", "start", "end"}``, base64url.

Absent filters are written as ``-`` so every token has a fixed field count.
"""

import base64
import binascii
import json
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote, unquote

from autofilter.config import MAX_BATCH_RANGE
from autofilter.errors import DecodeError, RangeTooLargeError
from autofilter.models import BatchRange, ContentRecord, SearchFilters, SearchState

PLACEHOLDER = "-"
TOKEN_SEP = ":"
LINK_SEP = "|"

# Transport limit on /start parameters
MAX_START_PAYLOAD = 64

# Pages beyond this decode as page 0, keeping store offsets in range
MAX_PAGE = 100_000

_LINK_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class DeepLinkKind(str, Enum):
    FILE = "file"
    SEARCH = "srch"
    BATCH = "batch"


@dataclass(frozen=True)
class DeepLink:
    kind: DeepLinkKind
    body: str


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _encode_field(value: str | None, sep: str) -> str:
    if value is None:
        return PLACEHOLDER
    if not value or value == PLACEHOLDER or sep in value:
        raise ValueError(f"Filter value {value!r} cannot be encoded")
    return value


def _decode_field(value: str) -> str | None:
    return None if value == PLACEHOLDER else value


def _decode_page(value: str) -> int:
    try:
        page = int(value)
    except ValueError:
        return 0
    return page if 0 <= page <= MAX_PAGE else 0


def _filter_fields(filters: SearchFilters, sep: str) -> list[str]:
    return [
        _encode_field(filters.lang, sep),
        _encode_field(filters.year, sep),
        _encode_field(filters.quality, sep),
    ]


def _filters_from_fields(fields: list[str]) -> SearchFilters:
    lang, year, quality = (_decode_field(f) for f in fields)
    return SearchFilters(lang=lang, year=year, quality=quality)


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(payload: str) -> bytes:
    padded = payload + "=" * (-len(payload) % 4)
    try:
        return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64url payload: {e}") from e


# ---------------------------------------------------------------------------
# Compact token
# ---------------------------------------------------------------------------


def encode_state(state: SearchState) -> str:
    """Encode page and filters as a compact colon-delimited token."""
    if state.page < 0:
        raise ValueError("page must be non-negative")
    fields = [str(state.page), *_filter_fields(state.filters, TOKEN_SEP)]
    return TOKEN_SEP.join(fields)


def decode_state(token: str) -> SearchState:
    """Decode a compact token. Unparseable or out-of-range pages fall back to 0."""
    fields = token.split(TOKEN_SEP)
    if len(fields) != 4:
        raise DecodeError(f"Expected 4 fields in state token, got {len(fields)}")
    return SearchState(page=_decode_page(fields[0]), filters=_filters_from_fields(fields[1:]))


# ---------------------------------------------------------------------------
# Search deep link
# ---------------------------------------------------------------------------


def encode_search_link(query: str, state: SearchState) -> str:
    """Encode a query with its state as a URL-safe, self-contained payload."""
    if state.page < 0:
        raise ValueError("page must be non-negative")
    fields = [quote(query, safe=""), str(state.page), *_filter_fields(state.filters, LINK_SEP)]
    return b64url_encode(LINK_SEP.join(fields).encode("utf-8"))


def decode_search_link(payload: str) -> tuple[str, SearchState]:
    """Decode a search link payload into (query, state)."""
    try:
        raw = b64url_decode(payload).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("Search link is not valid UTF-8") from e

    fields = raw.split(LINK_SEP)
    if len(fields) != 5:
        raise DecodeError(f"Expected 5 fields in search link, got {len(fields)}")

    query = unquote(fields[0])
    state = SearchState(page=_decode_page(fields[1]), filters=_filters_from_fields(fields[2:]))
    return query, state


# ---------------------------------------------------------------------------
# Batch range
# ---------------------------------------------------------------------------


def validate_range(start: int, end: int, limit: int = MAX_BATCH_RANGE) -> None:
    if end < start or end - start > limit:
        raise RangeTooLargeError(start, end, limit)


def encode_batch_range(batch: BatchRange, limit: int = MAX_BATCH_RANGE) -> str:
    """Encode a batch range; ranges over ``limit`` are rejected before encoding."""
    validate_range(batch.start, batch.end, limit)
    record = {"source": batch.source, "start": batch.start, "end": batch.end}
    return b64url_encode(json.dumps(record, separators=(",", ":")).encode("utf-8"))


def _as_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"Field {name!r} is not numeric")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value):
        return int(value)
    raise DecodeError(f"Field {name!r} is missing or not numeric")


def decode_batch_range(payload: str, limit: int = MAX_BATCH_RANGE) -> BatchRange:
    """Decode a batch range payload. Malformed payloads raise DecodeError."""
    try:
        record = json.loads(b64url_decode(payload).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError("Batch payload is not valid JSON") from e

    if not isinstance(record, dict):
        raise DecodeError("Batch payload must be an object")

    source = record.get("source")
    if isinstance(source, bool) or not isinstance(source, (int, str)) or source == "":
        raise DecodeError("Batch payload has no usable source")

    start = _as_int(record.get("start"), "start")
    end = _as_int(record.get("end"), "end")
    try:
        validate_range(start, end, limit)
    except RangeTooLargeError as e:
        raise DecodeError(str(e)) from e
    return BatchRange(source=source, start=start, end=end)


# ---------------------------------------------------------------------------
# Start payload envelope
# ---------------------------------------------------------------------------


def link_id(record: ContentRecord) -> str:
    """Identifier to embed in a file link: the primary key if it fits, else the reference."""
    prefix = len(DeepLinkKind.FILE.value) + 1
    if _LINK_SAFE.match(record.id) and prefix + len(record.id) <= MAX_START_PAYLOAD:
        return record.id
    return record.ref


def make_start_payload(kind: DeepLinkKind, body: str) -> str:
    return f"{kind.value}_{body}"


def fits_start_payload(payload: str) -> bool:
    return len(payload) <= MAX_START_PAYLOAD


def parse_start_payload(payload: str) -> DeepLink:
    """Split a start payload into its kind and body."""
    kind, sep, body = payload.partition("_")
    if not sep or not body:
        raise DecodeError(f"Malformed start payload: {payload!r}")
    try:
        return DeepLink(kind=DeepLinkKind(kind), body=body)
    except ValueError as e:
        raise DecodeError(f"Unknown start payload kind: {kind!r}") from e
