"""CLI for autofilter."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from autofilter import __version__
from autofilter.config import EngineConfig

app = typer.Typer(
    name="autofilter",
    help="Operate the media catalog: search, index, share links and inspect tokens.",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"autofilter {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Media catalog search engine."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _filters(lang: str | None, year: str | None, quality: str | None):
    from autofilter.models import SearchFilters

    return SearchFilters(lang=lang.upper() if lang else None, year=year, quality=quality)


async def _open(config: EngineConfig):
    from autofilter.storage import ensure_index_exists

    return await ensure_index_exists(config.index_path)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    lang: Annotated[str | None, typer.Option("--lang", "-l", help="Language code, or MULTI")] = None,
    year: Annotated[str | None, typer.Option("--year", "-y", help="Release year")] = None,
    quality: Annotated[str | None, typer.Option("--quality", "-q", help="Quality tag (e.g. 720p)")] = None,
    page: Annotated[int, typer.Option("--page", "-p", help="Zero-based page")] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Search the catalog."""
    if page < 0:
        console.print("[red]Error: page must be zero or greater[/red]")
        raise typer.Exit(1)

    from autofilter.codec import encode_state
    from autofilter.models import SearchState
    from autofilter.searcher import Searcher
    from autofilter.storage import format_size

    config = EngineConfig.from_env()
    filters = _filters(lang, year, quality)

    async def run():
        conn = await _open(config)
        try:
            searcher = Searcher(conn, config)
            return await searcher.search(query, filters, page), await searcher.count(query, filters)
        finally:
            await conn.close()

    result, total = asyncio.run(run())
    token = encode_state(SearchState(page=page, filters=filters))

    if json_output:
        console.print_json(
            data={
                "query": query,
                "page": result.page,
                "token": token,
                "has_next": result.has_next,
                "has_prev": result.has_prev,
                "is_fallback": result.is_fallback,
                "total": total,
                "results": [
                    {"id": r.id, "ref": r.ref, "name": r.name, "size": r.size, "kind": r.kind.value}
                    for r in result.records
                ],
            }
        )
        return

    if not result.records:
        console.print("[yellow]No results found. Try a different query.[/yellow]")
        return

    if result.is_fallback:
        console.print("[dim]No exact matches; showing closest titles[/dim]")
    for i, record in enumerate(result.records, page * config.page_size + 1):
        console.print(f"[bold cyan][{i}][/bold cyan] {escape(record.name)} [dim]{format_size(record.size)} | {escape(record.ref)}[/dim]")
    nav = []
    if result.has_prev:
        nav.append("prev")
    if result.has_next:
        nav.append("next")
    console.print(f"Page {result.page + 1} of {total} matches | token {token}" + (f" | {', '.join(nav)}" if nav else ""))


@app.command()
def index(
    path: Annotated[Path, typer.Argument(help="JSON Lines file of media messages", exists=True, dir_okay=False)],
    dry_run: Annotated[bool, typer.Option("--dry-run", "-d", help="Show what would be indexed")] = False,
) -> None:
    """Import records into the catalog."""
    from autofilter.indexer import import_file

    config = EngineConfig.from_env()

    async def run():
        conn = await _open(config)
        try:
            return await import_file(conn, path, dry_run=dry_run)
        finally:
            await conn.close()

    summary = asyncio.run(run())
    if not dry_run:
        console.print(
            f"[green]Indexed {summary.indexed} records[/green] "
            f"({summary.duplicates} duplicates, {summary.errors} errors)"
        )


@app.command()
def status() -> None:
    """Show catalog statistics."""
    from autofilter.storage import get_index_stats

    config = EngineConfig.from_env()

    async def run():
        conn = await _open(config)
        try:
            return await get_index_stats(conn, config.index_path)
        finally:
            await conn.close()

    stats = asyncio.run(run())
    console.print(f"Records indexed: {stats['record_count']}")
    for kind, info in sorted(stats["by_kind"].items()):
        console.print(f"  [cyan]{kind}[/cyan]: {info['records']}")
    console.print(f"Index path: {stats['index_path']}")
    console.print(f"Index size: {stats['index_size_human']}")
    if stats["last_indexed"]:
        console.print(f"Last indexed: {stats['last_indexed']}")


@app.command()
def trending(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of queries")] = 5,
    requests: Annotated[bool, typer.Option("--requests", "-r", help="Show requested titles instead")] = False,
    prune: Annotated[bool, typer.Option("--prune", help="Drop counters not seen for a week first")] = False,
) -> None:
    """List the most searched (or requested) queries."""
    from datetime import datetime, timedelta, timezone

    from autofilter.config import COUNTER_TTL_DAYS
    from autofilter.storage import REQUESTS, TRENDING, prune_counters, top_counters

    config = EngineConfig.from_env()

    async def run():
        conn = await _open(config)
        try:
            dropped = 0
            if prune:
                cutoff = datetime.now(tz=timezone.utc) - timedelta(days=COUNTER_TTL_DAYS)
                dropped = await prune_counters(conn, cutoff)
            return dropped, await top_counters(conn, REQUESTS if requests else TRENDING, limit)
        finally:
            await conn.close()

    dropped, entries = asyncio.run(run())
    if prune:
        console.print(f"[dim]Pruned {dropped} stale counters[/dim]")
    if not entries:
        console.print("[yellow]Nothing recorded yet.[/yellow]")
        return
    for i, entry in enumerate(entries, 1):
        console.print(f"{i}. [cyan]{entry.key}[/cyan] ({entry.count})")


@app.command()
def link(
    query: Annotated[str, typer.Argument(help="Search query to share")],
    lang: Annotated[str | None, typer.Option("--lang", "-l")] = None,
    year: Annotated[str | None, typer.Option("--year", "-y")] = None,
    quality: Annotated[str | None, typer.Option("--quality", "-q")] = None,
    page: Annotated[int, typer.Option("--page", "-p")] = 0,
) -> None:
    """Print a deep link that repeats a filtered search."""
    from autofilter.codec import DeepLinkKind, encode_search_link, fits_start_payload, make_start_payload
    from autofilter.keyboard import start_url
    from autofilter.models import SearchState

    config = EngineConfig.from_env()
    try:
        body = encode_search_link(query, SearchState(page=page, filters=_filters(lang, year, quality)))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    payload = make_start_payload(DeepLinkKind.SEARCH, body)
    if not fits_start_payload(payload):
        console.print("[yellow]Warning: payload is longer than chat clients accept[/yellow]")
    console.print(start_url(config.bot_username, payload), soft_wrap=True)


@app.command("batch-link")
def batch_link(
    source: Annotated[str, typer.Argument(help="Archive chat id or @username")],
    start: Annotated[int, typer.Argument(help="First message id")],
    end: Annotated[int, typer.Argument(help="Last message id")],
) -> None:
    """Print a deep link delivering a contiguous run of archived messages."""
    from autofilter.codec import DeepLinkKind, encode_batch_range, make_start_payload
    from autofilter.errors import RangeTooLargeError
    from autofilter.keyboard import start_url
    from autofilter.models import BatchRange

    config = EngineConfig.from_env()
    chat: int | str = int(source) if source.lstrip("-").isdigit() else source
    try:
        body = encode_batch_range(BatchRange(chat, start, end), config.max_batch_range)
    except RangeTooLargeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(start_url(config.bot_username, make_start_payload(DeepLinkKind.BATCH, body)), soft_wrap=True)


@app.command()
def decode(
    payload: Annotated[str, typer.Argument(help="Start payload (file_/srch_/batch_) or compact state token")],
) -> None:
    """Decode a deep-link payload or state token."""
    from autofilter.codec import (
        DeepLinkKind,
        decode_batch_range,
        decode_search_link,
        decode_state,
        parse_start_payload,
    )
    from autofilter.errors import DecodeError

    def state_dict(state) -> dict:
        f = state.filters
        return {"page": state.page, "lang": f.lang, "year": f.year, "quality": f.quality}

    try:
        if payload.count(":") == 3:
            data = {"type": "state", **state_dict(decode_state(payload))}
        else:
            link = parse_start_payload(payload)
            if link.kind is DeepLinkKind.SEARCH:
                query, state = decode_search_link(link.body)
                data = {"type": "search", "query": query, **state_dict(state)}
            elif link.kind is DeepLinkKind.BATCH:
                batch = decode_batch_range(link.body)
                data = {"type": "batch", "source": batch.source, "start": batch.start, "end": batch.end}
            else:
                data = {"type": "file", "id": link.body}
    except DecodeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print_json(data=data)


@app.command()
def delete(
    id_or_ref: Annotated[str, typer.Argument(help="Record id or reference")],
    yes: Annotated[bool, typer.Option("--yes", help="Do not ask for confirmation")] = False,
) -> None:
    """Delete a record from the catalog."""
    from autofilter.storage import delete_record, get_record

    config = EngineConfig.from_env()

    async def find():
        conn = await _open(config)
        try:
            return await get_record(conn, id_or_ref)
        finally:
            await conn.close()

    async def remove(record_id: str):
        conn = await _open(config)
        try:
            return await delete_record(conn, record_id)
        finally:
            await conn.close()

    record = asyncio.run(find())
    if record is None:
        console.print(f"[red]Record not found: {id_or_ref}[/red]")
        raise typer.Exit(1)
    if not yes and not typer.confirm(f"Delete '{record.name}'?"):
        raise typer.Exit()
    asyncio.run(remove(record.id))
    console.print(f"[green]Deleted {record.name}[/green]")


@app.command()
def block(
    word: Annotated[str, typer.Argument(help="Keyword")],
    remove: Annotated[bool, typer.Option("--remove", help="Unblock instead")] = False,
) -> None:
    """Block (or unblock) a search keyword."""
    from autofilter.storage import block_keyword, unblock_keyword

    config = EngineConfig.from_env()

    async def run():
        conn = await _open(config)
        try:
            await (unblock_keyword if remove else block_keyword)(conn, word)
        finally:
            await conn.close()

    asyncio.run(run())
    console.print(f"{'Unblocked' if remove else 'Blocked'}: {word.lower()}")


if __name__ == "__main__":
    app()
