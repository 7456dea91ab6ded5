"""Transport-neutral reply and button layouts."""

from dataclasses import dataclass, field

from autofilter.codec import (
    DeepLinkKind,
    encode_search_link,
    encode_state,
    fits_start_payload,
    link_id,
    make_start_payload,
)
from autofilter.filters import language_label
from autofilter.models import SearchFilters, SearchPage, SearchState
from autofilter.router import Action, make_callback


@dataclass(frozen=True)
class Button:
    label: str
    callback: str | None = None
    url: str | None = None


@dataclass
class Reply:
    """What to show the user: text plus rows of buttons."""

    text: str
    rows: list[list[Button]] = field(default_factory=list)
    alert: bool = False


def start_url(bot_username: str, payload: str) -> str:
    return f"https://t.me/{bot_username}?start={payload}"


def filters_summary(filters: SearchFilters) -> str:
    parts = []
    if filters.lang:
        parts.append(f"Language: {language_label(filters.lang)}")
    if filters.year:
        parts.append(f"Year: {filters.year}")
    if filters.quality:
        parts.append(f"Quality: {filters.quality}")
    return ", ".join(parts)


def result_rows(query: str, result: SearchPage, filters: SearchFilters, bot_username: str) -> list[list[Button]]:
    """Buttons for a page of results: files, navigation, filters and sharing."""
    rows: list[list[Button]] = []

    for record in result.records:
        payload = make_start_payload(DeepLinkKind.FILE, link_id(record))
        rows.append([Button(record.name, url=start_url(bot_username, payload))])

    nav: list[Button] = []
    if result.has_prev:
        state = SearchState(page=result.page - 1, filters=filters)
        nav.append(Button("Prev", callback=make_callback(Action.NAV, encode_state(state))))
    if result.has_next:
        state = SearchState(page=result.page + 1, filters=filters)
        nav.append(Button("Next", callback=make_callback(Action.NAV, encode_state(state))))
    if nav:
        rows.append(nav)

    current = encode_state(SearchState(page=result.page, filters=filters))
    if result.records:
        rows.append(
            [
                Button("Language", callback=make_callback(Action.MENU, "lang", current)),
                Button("Year", callback=make_callback(Action.MENU, "year", current)),
                Button("Quality", callback=make_callback(Action.MENU, "qual", current)),
            ]
        )
        if not filters.is_empty:
            rows.append([Button("Clear filters", callback=make_callback(Action.NAV, encode_state(SearchState())))])
        rows.append([Button("Get all files", callback=make_callback(Action.GET_ALL, current))])

        share = make_start_payload(
            DeepLinkKind.SEARCH,
            encode_search_link(query, SearchState(page=result.page, filters=filters)),
        )
        if fits_start_payload(share):
            rows.append([Button("Share results", url=start_url(bot_username, share))])
    else:
        rows.append([Button("Request this title", callback=make_callback(Action.REQUEST))])

    return rows


def menu_rows(kind: str, choices: list[tuple[str, str]], state: SearchState) -> list[list[Button]]:
    """Two-column grid of filter choices plus a back button.

    ``choices`` holds (label, value) pairs; picking one jumps to page 0 with
    that filter set.
    """
    buttons = []
    for label, value in choices:
        filters = state.filters
        if kind == "lang":
            filters = SearchFilters(lang=value, year=filters.year, quality=filters.quality)
        elif kind == "year":
            filters = SearchFilters(lang=filters.lang, year=value, quality=filters.quality)
        else:
            filters = SearchFilters(lang=filters.lang, year=filters.year, quality=value)
        token = encode_state(SearchState(page=0, filters=filters))
        buttons.append(Button(label, callback=make_callback(Action.NAV, token)))

    rows = [buttons[i : i + 2] for i in range(0, len(buttons), 2)]
    rows.append([Button("Back to results", callback=make_callback(Action.NAV, encode_state(state)))])
    return rows
