"""Search executor: exact substring search with a fuzzy fallback.

Pages are fetched one record beyond the page size to learn whether a next
page exists. When the exact search comes back empty for a text query with no
language or year filter, the fuzzy matcher ranks the most recent records
instead, and that ranked list is cached so later pages reuse it.
"""

import logging
from datetime import datetime, timezone

import aiosqlite

from autofilter.cache import ExpiringCache
from autofilter.clock import Clock
from autofilter.config import EngineConfig
from autofilter.errors import StoreError
from autofilter.filters import Predicate, compose_predicate
from autofilter.fuzzy import paginate, rank_candidates
from autofilter.models import ContentRecord, CounterEntry, SearchFilters, SearchPage
from autofilter.storage import (
    TRENDING,
    count_records,
    find_records,
    increment_counter,
    top_counters,
)

logger = logging.getLogger(__name__)


def normalize_query(query: str | None) -> str:
    return " ".join((query or "").split())


def fallback_eligible(query: str, filters: SearchFilters) -> bool:
    """Fuzzy fallback needs a text query and no language or year filter."""
    return bool(query) and not filters.blocks_fallback


def should_track(query: str, filters: SearchFilters, page: int, min_length: int) -> bool:
    """Only unfiltered first-page searches feed the trending counter."""
    return page == 0 and filters.is_empty and len(query) >= min_length


class Searcher:
    """Runs searches against the catalog store."""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or EngineConfig()
        self.fallback_cache: ExpiringCache[str, list[ContentRecord]] = ExpiringCache(
            ttl=self.config.fallback_cache_ttl, clock=clock
        )

    async def search(
        self,
        query: str | None,
        filters: SearchFilters | None = None,
        page: int = 0,
    ) -> SearchPage:
        """Return one page of results. Store failures yield an empty page."""
        query = normalize_query(query)
        filters = filters or SearchFilters()
        page = max(page, 0)
        page_size = self.config.page_size

        try:
            records = await find_records(
                self.conn,
                compose_predicate(query, filters),
                skip=page * page_size,
                limit=page_size + 1,
            )

            if not records and fallback_eligible(query, filters):
                return await self._fallback(query, page)
        except StoreError:
            logger.exception("Search failed for query=%r page=%d", query, page)
            return SearchPage.empty(page)

        if should_track(query, filters, page, self.config.trending_min_length):
            await self._track(query)

        return SearchPage(
            records=records[:page_size],
            has_next=len(records) > page_size,
            has_prev=page > 0,
            page=page,
        )

    async def _fallback(self, query: str, page: int) -> SearchPage:
        key = query.lower()
        ranked = self.fallback_cache.get(key)
        if ranked is None:
            candidates = await find_records(
                self.conn, Predicate(), limit=self.config.fuzzy_working_set
            )
            ranked = [
                record
                for record, _ in rank_candidates(query, candidates, self.config.fuzzy_threshold)
            ]
            self.fallback_cache.set(key, ranked)
            logger.info("Fuzzy fallback for %r: %d candidates ranked", query, len(ranked))

        records, has_next = paginate(ranked, page, self.config.page_size)
        return SearchPage(
            records=records,
            has_next=has_next,
            has_prev=page > 0,
            page=page,
            is_fallback=True,
        )

    async def _track(self, query: str) -> None:
        try:
            await increment_counter(
                self.conn, TRENDING, query.lower(), datetime.now(tz=timezone.utc)
            )
        except StoreError:
            logger.warning("Could not update trending counter for %r", query, exc_info=True)

    async def count(self, query: str | None, filters: SearchFilters | None = None) -> int:
        """Total number of exact matches; 0 when the store is unavailable."""
        try:
            return await count_records(self.conn, compose_predicate(normalize_query(query), filters))
        except StoreError:
            logger.exception("Count failed for query=%r", query)
            return 0

    async def trending(self, limit: int = 5) -> list[CounterEntry]:
        try:
            return await top_counters(self.conn, TRENDING, limit)
        except StoreError:
            logger.exception("Could not load trending queries")
            return []

    def sweep(self) -> int:
        """Drop expired fallback result sets."""
        return self.fallback_cache.sweep()
