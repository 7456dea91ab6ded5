"""Tests for callback payloads and dispatch."""

import pytest

from autofilter.errors import DecodeError
from autofilter.router import Action, Interaction, Router, make_callback, parse_callback


def test_make_and_parse_callback():
    data = make_callback(Action.NAV, "1:EN:-:-")
    assert data == "nav|1:EN:-:-"
    assert parse_callback(data) == (Action.NAV, ["1:EN:-:-"])


def test_callback_without_args():
    assert parse_callback(make_callback(Action.REQUEST)) == (Action.REQUEST, [])


def test_oversized_callback_is_refused():
    with pytest.raises(ValueError):
        make_callback(Action.DELETE_CONFIRM, "x" * 64)


def test_unknown_action_is_a_decode_error():
    with pytest.raises(DecodeError):
        parse_callback("spell_check|foo")


@pytest.mark.asyncio
async def test_dispatch_routes_by_key():
    router: Router[Action, str] = Router()

    @router.route(Action.NAV)
    async def nav(interaction):
        return f"nav {interaction.args}"

    assert Action.NAV in router
    assert Action.MENU not in router
    result = await router.dispatch(Action.NAV, Interaction(user_id=1, chat_id=1, args=["a"]))
    assert result == "nav ['a']"


@pytest.mark.asyncio
async def test_dispatch_unregistered_key():
    router: Router[Action, str] = Router()
    with pytest.raises(DecodeError):
        await router.dispatch(Action.NOOP, Interaction(user_id=1, chat_id=1))


def test_duplicate_registration_is_rejected():
    router: Router[Action, str] = Router()

    async def handler(interaction):
        return ""

    router.add(Action.NAV, handler)
    with pytest.raises(ValueError):
        router.add(Action.NAV, handler)
