"""Tests for the session codecs."""

import base64
import json

import pytest

from autofilter.codec import (
    MAX_PAGE,
    DeepLinkKind,
    b64url_decode,
    b64url_encode,
    decode_batch_range,
    decode_search_link,
    decode_state,
    encode_batch_range,
    encode_search_link,
    encode_state,
    fits_start_payload,
    link_id,
    make_start_payload,
    parse_start_payload,
)
from autofilter.errors import DecodeError, RangeTooLargeError
from autofilter.filters import LANGUAGES, MULTI_AUDIO, QUALITY_TAGS
from autofilter.models import BatchRange, ContentRecord, SearchFilters, SearchState


LANG_VALUES = [None, *LANGUAGES, MULTI_AUDIO]
QUALITY_VALUES = [None, *QUALITY_TAGS]
YEAR_VALUES = [None, "2023"]


def _raw(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


class TestCompactToken:
    def test_filtered_state(self):
        state = SearchState(page=2, filters=SearchFilters(lang="HI", year="2023", quality=None))
        token = encode_state(state)
        assert token == "2:HI:2023:-"
        assert decode_state(token) == state

    def test_empty_state(self):
        assert encode_state(SearchState()) == "0:-:-:-"
        assert decode_state("0:-:-:-") == SearchState()

    @pytest.mark.parametrize("lang", LANG_VALUES)
    @pytest.mark.parametrize("quality", QUALITY_VALUES)
    @pytest.mark.parametrize("year", YEAR_VALUES)
    def test_round_trip_over_menu_values(self, lang, quality, year):
        state = SearchState(page=5, filters=SearchFilters(lang=lang, year=year, quality=quality))
        assert decode_state(encode_state(state)) == state

    @pytest.mark.parametrize("page", ["1000000000000000000", "100001", str(2**70)])
    def test_out_of_range_page_defaults_to_zero(self, page):
        assert decode_state(f"{page}:-:-:-").page == 0

    def test_largest_page_is_kept(self):
        assert decode_state(f"{MAX_PAGE}:-:-:-").page == MAX_PAGE

    def test_unparseable_page_defaults_to_zero(self):
        assert decode_state("abc:EN:-:-").page == 0
        assert decode_state("-3:EN:-:-").page == 0

    @pytest.mark.parametrize("token", ["", "1:EN", "1:EN:2020", "1:EN:2020:720p:extra"])
    def test_wrong_field_count_is_rejected(self, token):
        with pytest.raises(DecodeError):
            decode_state(token)

    def test_values_containing_separator_are_not_encodable(self):
        with pytest.raises(ValueError):
            encode_state(SearchState(filters=SearchFilters(quality="a:b")))
        with pytest.raises(ValueError):
            encode_state(SearchState(filters=SearchFilters(lang="-")))

    def test_negative_page_is_not_encodable(self):
        with pytest.raises(ValueError):
            encode_state(SearchState(page=-1))


class TestSearchLink:
    def test_round_trip(self):
        state = SearchState(page=0, filters=SearchFilters(quality="720p"))
        payload = encode_search_link("The Office", state)
        assert decode_search_link(payload) == ("The Office", state)

    def test_payload_is_url_safe(self):
        payload = encode_search_link("what? & why/+", SearchState(page=3))
        assert all(c.isalnum() or c in "-_" for c in payload)

    @pytest.mark.parametrize("lang", LANG_VALUES)
    @pytest.mark.parametrize("quality", QUALITY_VALUES)
    @pytest.mark.parametrize("year", YEAR_VALUES)
    def test_round_trip_over_menu_values(self, lang, quality, year):
        state = SearchState(page=2, filters=SearchFilters(lang=lang, year=year, quality=quality))
        assert decode_search_link(encode_search_link("Dune Part Two", state)) == ("Dune Part Two", state)

    def test_out_of_range_page_defaults_to_zero(self):
        payload = b64url_encode(b"dune|1000000000000000000|-|-|-")
        assert decode_search_link(payload) == ("dune", SearchState())

    @pytest.mark.parametrize("query", ["a|b", "100% pure", "naïve café", "1:2:3", "-"])
    def test_awkward_queries_survive(self, query):
        state = SearchState(page=1, filters=SearchFilters(lang="TA", year="2021"))
        assert decode_search_link(encode_search_link(query, state)) == (query, state)

    def test_invalid_base64_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_search_link("***not base64***")

    def test_wrong_field_count_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_search_link(b64url_encode(b"query|0|-"))

    def test_invalid_utf8_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_search_link(b64url_encode(b"\xff\xfe|0|-|-|-"))


class TestBatchRange:
    def test_round_trip(self):
        batch = BatchRange(source=-1001234, start=10, end=20)
        assert decode_batch_range(encode_batch_range(batch)) == batch

    def test_username_source(self):
        batch = BatchRange(source="archive", start=1, end=1)
        assert decode_batch_range(encode_batch_range(batch)) == batch

    def test_oversized_range_is_rejected_before_encoding(self):
        with pytest.raises(RangeTooLargeError):
            encode_batch_range(BatchRange(source=1, start=1, end=150))

    def test_limit_is_inclusive(self):
        batch = BatchRange(source=1, start=1, end=101)
        assert decode_batch_range(encode_batch_range(batch)) == batch

    def test_reversed_range_is_rejected(self):
        with pytest.raises(RangeTooLargeError):
            encode_batch_range(BatchRange(source=1, start=20, end=10))

    def test_forged_oversized_payload_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_batch_range(_raw({"source": 1, "start": 1, "end": 5000}))

    def test_numeric_strings_are_accepted(self):
        batch = decode_batch_range(_raw({"source": "chan", "start": "3", "end": "4"}))
        assert batch == BatchRange(source="chan", start=3, end=4)

    @pytest.mark.parametrize(
        "data",
        [
            {"source": 1, "end": 4},
            {"source": 1, "start": "x", "end": 4},
            {"source": 1, "start": True, "end": 4},
            {"start": 1, "end": 4},
            {"source": "", "start": 1, "end": 4},
            {"source": [1], "start": 1, "end": 4},
        ],
    )
    def test_malformed_fields_are_rejected(self, data):
        with pytest.raises(DecodeError):
            decode_batch_range(_raw(data))

    def test_non_object_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_batch_range(b64url_encode(b"[1, 2, 3]"))

    def test_non_json_is_rejected(self):
        with pytest.raises(DecodeError):
            decode_batch_range(b64url_encode(b"{source"))


class TestBase64Url:
    def test_padding_is_stripped_and_restored(self):
        encoded = b64url_encode(b"ab")
        assert "=" not in encoded
        assert b64url_decode(encoded) == b"ab"

    def test_invalid_characters(self):
        with pytest.raises(DecodeError):
            b64url_decode("ab+/")


class TestStartPayload:
    def test_parse(self):
        link = parse_start_payload("file_BAADxyz_123")
        assert link.kind is DeepLinkKind.FILE
        assert link.body == "BAADxyz_123"

    def test_make_and_parse(self):
        payload = make_start_payload(DeepLinkKind.BATCH, "eyJzb3VyY2UiOjF9")
        assert payload == "batch_eyJzb3VyY2UiOjF9"
        assert parse_start_payload(payload).kind is DeepLinkKind.BATCH

    @pytest.mark.parametrize("payload", ["file", "file_", "nope_abc", "_abc"])
    def test_malformed(self, payload):
        with pytest.raises(DecodeError):
            parse_start_payload(payload)

    def test_fits(self):
        assert fits_start_payload("x" * 64)
        assert not fits_start_payload("x" * 65)

    def test_link_id_prefers_short_primary_key(self):
        record = ContentRecord(id="BAADshort", ref="uniq", name="n", size=1)
        assert link_id(record) == "BAADshort"

    def test_link_id_falls_back_to_ref(self):
        long_id = ContentRecord(id="B" * 80, ref="uniq", name="n", size=1)
        unsafe_id = ContentRecord(id="has space", ref="uniq", name="n", size=1)
        assert link_id(long_id) == "uniq"
        assert link_id(unsafe_id) == "uniq"
