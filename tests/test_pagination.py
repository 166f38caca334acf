"""Tests for keyset cursors."""

import base64

import pytest

from utils.pagination import InvalidCursor, decode_cursor, encode_cursor, next_cursor


def test_cursor_round_trip():
    cursor = encode_cursor({"stars": 1200, "id": 42})
    assert "=" not in cursor
    assert decode_cursor(cursor, ("stars", "id")) == {"stars": 1200, "id": 42}


def test_empty_cursor_means_first_page():
    assert decode_cursor(None, ("stars", "id")) is None
    assert decode_cursor("", ("stars", "id")) is None


@pytest.mark.parametrize("cursor", [
    "!!!not-base64!!!",
    base64.urlsafe_b64encode(b"not json").decode(),
    base64.urlsafe_b64encode(b"[1, 2]").decode(),
    encode_cursor({"stars": 1}),
    base64.urlsafe_b64encode(b'{"stars": "many", "id": 1}').decode(),
])
def test_malformed_cursors_are_rejected(cursor):
    with pytest.raises(InvalidCursor):
        decode_cursor(cursor, ("stars", "id"))


def test_invalid_cursor_is_a_value_error():
    assert issubclass(InvalidCursor, ValueError)


def test_next_cursor_points_at_last_row():
    rows = [{"stars_count": 900, "id": 3}, {"stars_count": 800, "id": 9}]
    cursor = next_cursor(rows, True, {"stars": "stars_count", "id": "id"})
    assert decode_cursor(cursor, ("stars", "id")) == {"stars": 800, "id": 9}


def test_no_cursor_on_last_page():
    rows = [{"stars_count": 900, "id": 3}]
    assert next_cursor(rows, False, {"stars": "stars_count", "id": "id"}) is None
    assert next_cursor([], True, {"stars": "stars_count", "id": "id"}) is None
