"""Ingestion of media into the catalog."""

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from autofilter.models import ContentRecord, MediaKind
from autofilter.storage import insert_record, set_metadata

logger = logging.getLogger(__name__)
console = Console()

UNTITLED = "Untitled Media"


@dataclass
class IndexSummary:
    indexed: int = 0
    duplicates: int = 0
    errors: int = 0


def record_from_media(
    media: dict[str, Any],
    kind: MediaKind = MediaKind.DOCUMENT,
    caption: str | None = None,
) -> ContentRecord:
    """Build a record from a transport media payload.

    Videos often arrive without a file name, so the caption stands in for it.
    """
    file_id = media["file_id"]
    return ContentRecord(
        id=file_id,
        ref=media.get("file_unique_id") or file_id,
        name=media.get("file_name") or caption or UNTITLED,
        size=int(media.get("file_size") or 0),
        kind=kind,
        mime_type=media.get("mime_type"),
        caption=caption or None,
    )


def media_from_message(message: dict[str, Any]) -> ContentRecord | None:
    """Extract the record carried by a chat message, if it has any media."""
    for kind in MediaKind:
        media = message.get(kind.value)
        if isinstance(media, dict) and media.get("file_id"):
            return record_from_media(media, kind, message.get("caption"))
    return None


async def index_record(conn: aiosqlite.Connection, record: ContentRecord) -> ContentRecord | None:
    """Insert a record unless its primary key is already indexed."""
    stored = await insert_record(conn, record)
    if stored is None:
        logger.info("Skipping duplicate %s (%s)", record.id, record.name)
    else:
        logger.info("Indexed %s (%s)", stored.name, stored.kind.value)
    return stored


def parse_jsonl(path: Path) -> Iterator[ContentRecord | None]:
    """Yield records from a JSON Lines export; None marks an unusable line.

    Each line is either a chat message (with a document/video/audio key) or a
    bare media object with ``file_id``.
    """
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                yield None
                continue
            if not isinstance(data, dict):
                yield None
                continue

            record = media_from_message(data)
            if record is None and data.get("file_id"):
                kind = data.get("file_type", MediaKind.DOCUMENT.value)
                try:
                    record = record_from_media(data, MediaKind(kind), data.get("caption"))
                except ValueError:
                    record = None
            yield record


async def import_file(conn: aiosqlite.Connection, path: Path, dry_run: bool = False) -> IndexSummary:
    """Import a JSON Lines file into the catalog."""
    summary = IndexSummary()
    records = list(parse_jsonl(path))
    console.print(f"Found {len(records)} entries in {path.name}")

    if dry_run:
        usable = [r for r in records if r is not None]
        console.print(f"[yellow]Dry run - would index up to {len(usable)} records[/yellow]")
        summary.errors = len(records) - len(usable)
        return summary

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Indexing records...", total=len(records))
        for record in records:
            if record is None:
                summary.errors += 1
            elif await index_record(conn, record) is None:
                summary.duplicates += 1
            else:
                summary.indexed += 1
            progress.advance(task)

    await set_metadata(conn, "last_indexed", datetime.now(tz=timezone.utc).isoformat())
    return summary
