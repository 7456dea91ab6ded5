"""Tests for environment configuration."""

import os
from pathlib import Path
from unittest.mock import patch

from autofilter.config import AUTO_DELETE_SECONDS, PAGE_SIZE, EngineConfig


def test_defaults():
    with patch.dict(os.environ, {}, clear=True):
        config = EngineConfig.from_env()
    assert config.page_size == PAGE_SIZE
    assert config.auto_delete_seconds == AUTO_DELETE_SECONDS
    assert config.admin_ids == frozenset()
    assert config.index_path.name == "catalog.db"


def test_overrides(temp_dir):
    env = {
        "AUTOFILTER_HOME": str(temp_dir),
        "AUTOFILTER_PAGE_SIZE": "5",
        "AUTOFILTER_FUZZY_THRESHOLD": "0.25",
        "AUTOFILTER_ADMIN_IDS": "1, 2,,3",
        "AUTOFILTER_BOT_USERNAME": "@mybot",
    }
    with patch.dict(os.environ, env, clear=True):
        config = EngineConfig.from_env()

    assert config.index_path == Path(temp_dir) / "catalog.db"
    assert config.page_size == 5
    assert config.fuzzy_threshold == 0.25
    assert config.is_admin(2) and not config.is_admin(4)
    assert config.bot_username == "mybot"
