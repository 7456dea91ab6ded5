"""Query and filter composition.

Turns free text plus optional filters into a ``Predicate``: a conjunction of
case-insensitive regular expressions over a record's display name. User input
is always escaped, so the predicate engine never sees a user-supplied pattern.
"""

import re
from dataclasses import dataclass
from functools import lru_cache

from autofilter.models import SearchFilters

LANGUAGES: dict[str, str] = {
    "EN": "English",
    "HI": "Hindi",
    "TA": "Tamil",
    "TE": "Telugu",
    "ML": "Malayalam",
    "KN": "Kannada",
    "BN": "Bengali",
    "MR": "Marathi",
}

# Sentinel language value meaning "any multi-audio release"
MULTI_AUDIO = "MULTI"

MULTI_AUDIO_KEYWORDS = (
    "dual audio",
    "dual",
    "multi audio",
    "multi-audio",
    "multi.audio",
    "multi lang",
    "multi",
    "eng-hin",
    "hin-eng",
    "hin-eng-tam",
)

QUALITY_TAGS = (
    "480p",
    "720p",
    "1080p",
    "1440p",
    "2160p",
    "4K",
    "HDR",
    "CAM",
    "HDTS",
    "WEB-DL",
    "BluRay",
)

_YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")


@dataclass(frozen=True)
class Predicate:
    """Conjunction of case-insensitive patterns over the display name.

    An empty predicate matches every record.
    """

    clauses: tuple[str, ...] = ()

    def matches(self, name: str) -> bool:
        return all(compile_clause(clause).search(name) for clause in self.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)


@lru_cache(maxsize=512)
def compile_clause(clause: str) -> re.Pattern[str]:
    return re.compile(clause, re.IGNORECASE)


def _whole_word(alternatives: list[str]) -> str:
    return r"\b(?:" + "|".join(re.escape(a) for a in alternatives) + r")\b"


def language_clause(lang: str) -> str:
    """Pattern for a language filter value."""
    code = lang.upper()
    if code == MULTI_AUDIO:
        return _whole_word(list(MULTI_AUDIO_KEYWORDS))
    if code in LANGUAGES:
        return _whole_word([LANGUAGES[code], code])
    # Unknown codes still match, literally, as a word
    return _whole_word([lang])


def year_clause(year: str) -> str:
    return _whole_word([year])


def quality_clause(quality: str) -> str:
    return re.escape(quality)


def text_clause(query: str) -> str:
    return re.escape(query)


def compose_predicate(query: str | None, filters: SearchFilters | None = None) -> Predicate:
    """Build the store predicate for a query and its filters."""
    filters = filters or SearchFilters()
    clauses: list[str] = []

    term = (query or "").strip()
    if term:
        clauses.append(text_clause(term))
    if filters.lang is not None:
        clauses.append(language_clause(filters.lang))
    if filters.year is not None:
        clauses.append(year_clause(filters.year))
    if filters.quality is not None:
        clauses.append(quality_clause(filters.quality))

    return Predicate(tuple(clauses))


def detect_attributes(name: str) -> SearchFilters:
    """Guess language, year and quality from a display name."""
    year_match = _YEAR_RE.search(name)

    quality = next(
        (tag for tag in QUALITY_TAGS if tag.lower() in name.lower()),
        None,
    )

    lang = None
    if compile_clause(language_clause(MULTI_AUDIO)).search(name):
        lang = MULTI_AUDIO
    else:
        for code, full_name in LANGUAGES.items():
            if compile_clause(_whole_word([full_name])).search(name):
                lang = code
                break

    return SearchFilters(
        lang=lang,
        year=year_match.group(1) if year_match else None,
        quality=quality,
    )


def language_label(lang: str) -> str:
    if lang.upper() == MULTI_AUDIO:
        return "Multi Audio"
    return LANGUAGES.get(lang.upper(), lang)
