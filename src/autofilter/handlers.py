"""Interaction handlers tying search, session codecs and delivery together.

Handlers take an ``Interaction`` and return a ``Reply``; sending it is the
transport's job. Decode and range errors become explicit replies here, store
failures degrade to "nothing found", and nothing propagates to the transport.
"""

import logging
from datetime import datetime, timezone

import aiosqlite

from autofilter.codec import (
    DeepLinkKind,
    decode_batch_range,
    decode_search_link,
    decode_state,
    encode_batch_range,
    make_start_payload,
    parse_start_payload,
)
from autofilter.config import EngineConfig
from autofilter.delivery import DeliveryService
from autofilter.errors import DecodeError, RangeTooLargeError, StoreError
from autofilter.filters import LANGUAGES, MULTI_AUDIO, detect_attributes, language_label
from autofilter.indexer import index_record, media_from_message
from autofilter.keyboard import Button, Reply, filters_summary, menu_rows, result_rows, start_url
from autofilter.models import BatchRange, SearchFilters, SearchPage, SearchState
from autofilter.router import Action, Interaction, Router, make_callback, parse_callback
from autofilter.searcher import Searcher, normalize_query
from autofilter.storage import (
    REQUESTS,
    delete_record,
    format_size,
    get_blocked_keywords,
    get_record,
    increment_counter,
)

logger = logging.getLogger(__name__)

QUALITY_CHOICES = ("4K", "1080p", "720p", "480p", "CAM")
YEAR_CHOICES = 6

ADMIN_ONLY = "This action is only available to admins."
NOT_FOUND = "File not found or it has been deleted."
STORE_DOWN = "Something went wrong. Please try again later."


class Handlers:
    """Entry points for text searches, button presses and start payloads."""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        searcher: Searcher,
        delivery: DeliveryService,
        config: EngineConfig | None = None,
    ) -> None:
        self.conn = conn
        self.searcher = searcher
        self.delivery = delivery
        self.config = config or EngineConfig()
        # (source chat, message id) of the post forwarded ahead of deliveries
        self.promo_post: tuple[int | str, int] | None = None

        self.callbacks: Router[Action, Reply] = Router()
        self.callbacks.add(Action.NAV, self.on_nav)
        self.callbacks.add(Action.MENU, self.on_menu)
        self.callbacks.add(Action.GET_ALL, self.on_get_all)
        self.callbacks.add(Action.REQUEST, self.on_request)
        self.callbacks.add(Action.DELETE_CONFIRM, self.on_delete_confirm)
        self.callbacks.add(Action.DELETE_EXECUTE, self.on_delete_execute)
        self.callbacks.add(Action.NOOP, self.on_noop)

        self.links: Router[DeepLinkKind, Reply] = Router()
        self.links.add(DeepLinkKind.FILE, self.open_file)
        self.links.add(DeepLinkKind.SEARCH, self.open_search)
        self.links.add(DeepLinkKind.BATCH, self.open_batch)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_text(self, user_id: int, chat_id: int, text: str) -> Reply | None:
        """Run a search for a plain text message."""
        query = normalize_query(text)
        if not query or query.startswith("/"):
            return None

        if await self._is_blocked(query):
            return Reply("Search restricted: this keyword is blocked.")

        result = await self.searcher.search(query)
        return self.render(query, result, SearchFilters())

    async def handle_callback(self, user_id: int, chat_id: int, data: str, query: str) -> Reply:
        """Dispatch a button press. ``query`` comes from the message the button sits on."""
        try:
            action, args = parse_callback(data)
            interaction = Interaction(user_id=user_id, chat_id=chat_id, payload=data, query=query, args=args)
            return await self.callbacks.dispatch(action, interaction)
        except DecodeError as e:
            logger.info("Rejected callback %r: %s", data, e)
            return Reply(DecodeError.user_message, alert=True)

    async def handle_start(self, user_id: int, chat_id: int, payload: str = "") -> Reply:
        """Handle a start command, with or without a deep-link payload."""
        if not payload:
            return await self.welcome()
        try:
            link = parse_start_payload(payload)
            interaction = Interaction(user_id=user_id, chat_id=chat_id, payload=link.body)
            return await self.links.dispatch(link.kind, interaction)
        except DecodeError as e:
            logger.info("Rejected start payload %r: %s", payload, e)
            return Reply(DecodeError.user_message)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, query: str, result: SearchPage, filters: SearchFilters) -> Reply:
        if result.records:
            heading = "Closest matches" if result.is_fallback else "Results"
            text = f'{heading} for "{query}" - page {result.page + 1}'
        else:
            text = f'No results found for "{query}". Try different keywords or check the spelling.'
        summary = filters_summary(filters)
        if summary:
            text += f"\n{summary}"
        return Reply(text, result_rows(query, result, filters, self.config.bot_username))

    async def welcome(self) -> Reply:
        self.searcher.sweep()
        trending = await self.searcher.trending()
        lines = ["Send a title to search the catalog."]
        if trending:
            lines.append("Trending:")
            lines.extend(f"{i}. {entry.key}" for i, entry in enumerate(trending, 1))
        return Reply("\n".join(lines))

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    @staticmethod
    def _state_arg(interaction: Interaction, index: int = 0) -> SearchState:
        if len(interaction.args) <= index:
            raise DecodeError("Missing state token")
        return decode_state(interaction.args[index])

    async def on_nav(self, interaction: Interaction) -> Reply:
        state = self._state_arg(interaction)
        result = await self.searcher.search(interaction.query, state.filters, state.page)
        return self.render(interaction.query, result, state.filters)

    async def on_menu(self, interaction: Interaction) -> Reply:
        if not interaction.args:
            raise DecodeError("Missing filter kind")
        kind = interaction.args[0]
        state = self._state_arg(interaction, 1)

        if kind == "lang":
            result = await self.searcher.search(interaction.query)
            found = {detect_attributes(r.name).lang for r in result.records} - {None}
            order = [*LANGUAGES, MULTI_AUDIO]
            choices = [(language_label(code), code) for code in order if code in found]
            title = "Select language:"
        elif kind == "year":
            this_year = datetime.now(tz=timezone.utc).year
            choices = [(str(y), str(y)) for y in range(this_year, this_year - YEAR_CHOICES, -1)]
            title = "Select year:"
        elif kind == "qual":
            choices = [(q, q) for q in QUALITY_CHOICES]
            title = "Select quality:"
        else:
            raise DecodeError(f"Unknown filter kind {kind!r}")

        if not choices:
            return Reply("No languages found in these results.", alert=True)
        return Reply(title, menu_rows(kind, choices, state))

    async def on_get_all(self, interaction: Interaction) -> Reply:
        state = self._state_arg(interaction)
        result = await self.searcher.search(interaction.query, state.filters, state.page)
        if not result.records:
            return Reply("No files found.", alert=True)

        # Files always go to the user's private chat
        report = await self.delivery.deliver(interaction.user_id, result.records)
        text = f"Sent {report.delivered} files to your private chat."
        if report.failed:
            text += f" {report.failed} could not be sent."
        return Reply(text, alert=True)

    async def on_request(self, interaction: Interaction) -> Reply:
        query = normalize_query(interaction.query)
        if not query:
            raise DecodeError("Request without a query")
        try:
            await increment_counter(self.conn, REQUESTS, query.lower())
        except StoreError:
            logger.exception("Could not record request for %r", query)
            return Reply(STORE_DOWN, alert=True)
        return Reply(f'Requested: "{query}". Admins have been notified.')

    async def on_delete_confirm(self, interaction: Interaction) -> Reply:
        if not self.config.is_admin(interaction.user_id):
            return Reply(ADMIN_ONLY, alert=True)
        if not interaction.args:
            raise DecodeError("Missing record reference")
        try:
            record = await get_record(self.conn, interaction.args[0])
        except StoreError:
            return Reply(STORE_DOWN, alert=True)
        if record is None:
            return Reply(NOT_FOUND, alert=True)

        return Reply(
            f"Delete this file?\n{record.name}\nThis cannot be undone.",
            [
                [Button("Yes, delete", callback=make_callback(Action.DELETE_EXECUTE, interaction.args[0]))],
                [Button("Cancel", callback=make_callback(Action.NOOP))],
            ],
        )

    async def on_delete_execute(self, interaction: Interaction) -> Reply:
        if not self.config.is_admin(interaction.user_id):
            return Reply(ADMIN_ONLY, alert=True)
        if not interaction.args:
            raise DecodeError("Missing record reference")
        try:
            record = await get_record(self.conn, interaction.args[0])
            if record is None or not await delete_record(self.conn, record.id):
                return Reply("File was already deleted or not found.")
        except StoreError:
            return Reply(STORE_DOWN, alert=True)

        logger.info("Admin %s deleted %s (%s)", interaction.user_id, record.id, record.name)
        return Reply(f"Deleted: {record.name}")

    async def on_noop(self, interaction: Interaction) -> Reply:
        return Reply("Cancelled.")

    # ------------------------------------------------------------------
    # Deep links
    # ------------------------------------------------------------------

    async def open_file(self, interaction: Interaction) -> Reply:
        try:
            record = await get_record(self.conn, interaction.payload)
        except StoreError:
            return Reply(STORE_DOWN)
        if record is None:
            return Reply(NOT_FOUND)

        if self.promo_post is not None and not self.config.is_admin(interaction.user_id):
            source, message_id = self.promo_post
            await self.delivery.forward_promo(interaction.chat_id, source, message_id)

        report = await self.delivery.deliver(interaction.chat_id, [record])
        if not report.delivered:
            return Reply("Could not send the file. Please try again.")
        return Reply(f"{record.name} ({format_size(record.size)})")

    async def open_search(self, interaction: Interaction) -> Reply:
        query, state = decode_search_link(interaction.payload)
        result = await self.searcher.search(query, state.filters, state.page)
        return self.render(query, result, state.filters)

    async def open_batch(self, interaction: Interaction) -> Reply:
        batch = decode_batch_range(interaction.payload, self.config.max_batch_range)
        report = await self.delivery.deliver_range(interaction.chat_id, batch)
        if not report.delivered:
            return Reply("None of the files in this batch are available any more.")
        return Reply(f"Delivered {report.delivered} of {len(batch)} files.")

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def mint_batch_link(self, user_id: int, source: int | str, start: int, end: int) -> Reply:
        """Create a deep link delivering messages ``start..end`` of ``source``."""
        if not self.config.is_admin(user_id):
            return Reply(ADMIN_ONLY)
        if start > end:
            start, end = end, start
        try:
            body = encode_batch_range(BatchRange(source, start, end), self.config.max_batch_range)
        except RangeTooLargeError as e:
            return Reply(str(e))
        url = start_url(self.config.bot_username, make_start_payload(DeepLinkKind.BATCH, body))
        return Reply(f"Batch link for {end - start + 1} messages:\n{url}")

    async def index_message(self, user_id: int, message: dict) -> Reply | None:
        """Index media an admin sends directly to the bot."""
        if not self.config.is_admin(user_id):
            return None
        record = media_from_message(message)
        if record is None:
            return None
        try:
            stored = await index_record(self.conn, record)
        except StoreError:
            return Reply(STORE_DOWN)
        if stored is None:
            try:
                rows = [[Button("Delete from catalog", callback=make_callback(Action.DELETE_CONFIRM, record.ref))]]
            except ValueError:
                rows = []
            return Reply(f"Already indexed: {record.name}", rows)
        return Reply(f"Indexed: {stored.name} ({stored.kind.value})")

    async def _is_blocked(self, query: str) -> bool:
        try:
            blocked = await get_blocked_keywords(self.conn)
        except StoreError:
            logger.warning("Could not load blocked keywords", exc_info=True)
            return False
        return any(word in blocked for word in query.lower().split())
