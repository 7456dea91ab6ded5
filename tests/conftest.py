"""Pytest fixtures for autofilter tests."""

import json
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from autofilter.clock import VirtualClock
from autofilter.config import EngineConfig
from autofilter.delivery import DeliveryService
from autofilter.errors import DeliveryError
from autofilter.models import ContentRecord, MediaKind, MessageHandle
from autofilter.scheduler import DelayedTaskScheduler
from autofilter.storage import ensure_index_exists, insert_record


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir):
    return EngineConfig(index_dir=temp_dir, admin_ids=frozenset({1}), bot_username="testbot")


@pytest_asyncio.fixture
async def catalog(config):
    """An initialized, empty catalog database."""
    conn = await ensure_index_exists(config.index_path)
    yield conn
    await conn.close()


def make_record(n: int, name: str | None = None, kind: MediaKind = MediaKind.VIDEO) -> ContentRecord:
    return ContentRecord(
        id=f"BAADfile{n:04d}",
        ref=f"ref{n:04d}",
        name=name or f"Sample Movie {n}",
        size=700 * 1024 * 1024,
        kind=kind,
        mime_type="video/x-matroska",
    )


async def add_records(conn, names: list[str]) -> list[ContentRecord]:
    """Insert records in order; the last name is the most recent."""
    stored = []
    for i, name in enumerate(names):
        stored.append(await insert_record(conn, make_record(i, name)))
    return stored


class FakeTransport:
    """In-memory chat transport that records every call."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []
        self.texts: list[tuple[int, str]] = []
        self.deleted: list[MessageHandle] = []
        self.copied: list[tuple[int, int | str, int]] = []
        self.forwarded: list[tuple[int, int | str, int]] = []
        self.fail_ids: set[str] = set()
        self.missing_messages: set[int] = set()
        self.undeletable: set[int] = set()
        # Raw exceptions (not DeliveryError) raised for specific items
        self.errors: dict[str | int, BaseException] = {}
        self._next_id = 100

    def _handle(self, chat_id: int) -> MessageHandle:
        self._next_id += 1
        return MessageHandle(chat_id=chat_id, message_id=self._next_id)

    async def send_media(self, chat_id, record, caption):
        if record.id in self.errors:
            raise self.errors[record.id]
        if record.id in self.fail_ids:
            raise DeliveryError(f"cannot send {record.id}")
        self.sent.append((chat_id, record.id))
        return self._handle(chat_id)

    async def send_text(self, chat_id, text):
        self.texts.append((chat_id, text))
        return self._handle(chat_id)

    async def delete_message(self, handle):
        if handle.message_id in self.undeletable:
            raise DeliveryError("message can't be deleted")
        self.deleted.append(handle)

    async def copy_message(self, chat_id, source, message_id):
        if message_id in self.errors:
            raise self.errors[message_id]
        if message_id in self.missing_messages:
            raise DeliveryError("message to copy not found")
        self.copied.append((chat_id, source, message_id))
        return self._handle(chat_id)

    async def forward_message(self, chat_id, source, message_id):
        self.forwarded.append((chat_id, source, message_id))
        return self._handle(chat_id)


@pytest.fixture
def clock():
    return VirtualClock(start=1000.0)


@pytest.fixture
def scheduler(clock):
    return DelayedTaskScheduler(clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def delivery(transport, scheduler, config):
    return DeliveryService(transport, scheduler, config)


@pytest.fixture
def sample_jsonl(temp_dir):
    """A JSON Lines export with messages, a bare media object and junk."""
    path = temp_dir / "export.jsonl"
    lines = [
        {"video": {"file_id": "vid-1", "file_unique_id": "u1", "file_name": "Inception.2010.1080p.mkv", "file_size": 1024}},
        {"document": {"file_id": "doc-1", "file_unique_id": "u2", "file_size": 10}, "caption": "Subtitles Pack"},
        {"file_id": "aud-1", "file_unique_id": "u3", "file_name": "Theme.mp3", "file_type": "audio"},
        {"video": {"file_id": "vid-1", "file_unique_id": "u1", "file_name": "Inception.2010.1080p.mkv"}},
        {"text": "no media here"},
    ]
    with open(path, "w") as f:
        for line in lines:
            f.write(json.dumps(line) + "\n")
        f.write("{not json\n")
    return path
