"""Configuration constants for autofilter.

Every value can be overridden through an ``AUTOFILTER_*`` environment variable
when the config is built with ``EngineConfig.from_env()``.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Index location
INDEX_DIR = Path.home() / ".local" / "share" / "autofilter"
INDEX_NAME = "catalog.db"

PAGE_SIZE = 10

# Fuzzy fallback; chosen empirically, keep configurable
FUZZY_THRESHOLD = 0.4
FUZZY_WORKING_SET = 1000
FALLBACK_CACHE_TTL = 600.0

# Trending
TRENDING_MIN_LENGTH = 3
COUNTER_TTL_DAYS = 7

# Delivery expiry (seconds)
AUTO_DELETE_SECONDS = 3600
PROMO_DELETE_SECONDS = 300
NOTICE_DELETE_SECONDS = 10

MAX_BATCH_RANGE = 100

# Transport limit on callback payloads
MAX_CALLBACK_BYTES = 64


def _env_int_list(value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    return frozenset(int(part) for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class EngineConfig:
    """Runtime settings shared by the engine components."""

    index_dir: Path = INDEX_DIR
    page_size: int = PAGE_SIZE
    fuzzy_threshold: float = FUZZY_THRESHOLD
    fuzzy_working_set: int = FUZZY_WORKING_SET
    fallback_cache_ttl: float = FALLBACK_CACHE_TTL
    trending_min_length: int = TRENDING_MIN_LENGTH
    auto_delete_seconds: float = AUTO_DELETE_SECONDS
    promo_delete_seconds: float = PROMO_DELETE_SECONDS
    notice_delete_seconds: float = NOTICE_DELETE_SECONDS
    max_batch_range: int = MAX_BATCH_RANGE
    admin_ids: frozenset[int] = field(default_factory=frozenset)
    bot_username: str = "autofilter_bot"

    @property
    def index_path(self) -> Path:
        return self.index_dir / INDEX_NAME

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids

    @classmethod
    def from_env(cls) -> "EngineConfig":
        env = os.environ
        return cls(
            index_dir=Path(env.get("AUTOFILTER_HOME", str(INDEX_DIR))),
            page_size=int(env.get("AUTOFILTER_PAGE_SIZE", PAGE_SIZE)),
            fuzzy_threshold=float(env.get("AUTOFILTER_FUZZY_THRESHOLD", FUZZY_THRESHOLD)),
            fuzzy_working_set=int(env.get("AUTOFILTER_FUZZY_WORKING_SET", FUZZY_WORKING_SET)),
            auto_delete_seconds=float(env.get("AUTOFILTER_AUTO_DELETE", AUTO_DELETE_SECONDS)),
            promo_delete_seconds=float(env.get("AUTOFILTER_PROMO_DELETE", PROMO_DELETE_SECONDS)),
            admin_ids=_env_int_list(env.get("AUTOFILTER_ADMIN_IDS")),
            bot_username=env.get("AUTOFILTER_BOT_USERNAME", "autofilter_bot").lstrip("@"),
        )
