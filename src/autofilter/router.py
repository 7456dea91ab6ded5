"""Explicit dispatch of button callbacks and start payloads.

Callback payloads are ``<action>|<arg>|...`` where the action comes from a
fixed enumeration; there is no pattern matching over arbitrary strings.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from autofilter.config import MAX_CALLBACK_BYTES
from autofilter.errors import DecodeError

logger = logging.getLogger(__name__)

CALLBACK_SEP = "|"


class Action(str, Enum):
    NAV = "nav"
    MENU = "menu"
    GET_ALL = "all"
    REQUEST = "req"
    DELETE_CONFIRM = "delq"
    DELETE_EXECUTE = "delx"
    NOOP = "noop"


@dataclass
class Interaction:
    """One user interaction as seen by the engine.

    ``query`` is the search text carried by the message the interaction is
    attached to; it never travels inside the payload itself.
    """

    user_id: int
    chat_id: int
    payload: str = ""
    query: str = ""
    args: list[str] = field(default_factory=list)


def make_callback(action: Action, *args: str) -> str:
    """Build a callback payload, enforcing the transport size limit."""
    data = CALLBACK_SEP.join([action.value, *args])
    if len(data.encode("utf-8")) > MAX_CALLBACK_BYTES:
        raise ValueError(f"Callback payload exceeds {MAX_CALLBACK_BYTES} bytes: {data!r}")
    return data


def parse_callback(data: str) -> tuple[Action, list[str]]:
    head, *args = data.split(CALLBACK_SEP)
    try:
        return Action(head), args
    except ValueError as e:
        raise DecodeError(f"Unknown callback action {head!r}") from e


K = TypeVar("K", bound=Enum)
R = TypeVar("R")
Handler = Callable[[Interaction], Awaitable[R]]


class Router(Generic[K, R]):
    """Maps a fixed set of keys to handler coroutines."""

    def __init__(self) -> None:
        self._handlers: dict[K, Handler] = {}

    def add(self, key: K, handler: Handler) -> None:
        if key in self._handlers:
            raise ValueError(f"Handler already registered for {key!r}")
        self._handlers[key] = handler

    def route(self, key: K) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add(key, handler)
            return handler

        return decorator

    def __contains__(self, key: object) -> bool:
        return key in self._handlers

    async def dispatch(self, key: K, interaction: Interaction) -> R:
        handler = self._handlers.get(key)
        if handler is None:
            raise DecodeError(f"No handler registered for {key!r}")
        logger.debug("Dispatching %s for user %s", key, interaction.user_id)
        return await handler(interaction)
