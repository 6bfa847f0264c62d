"""
Unit tests for pagination cursors.

Tests cover:
- Wire format
- Malformed tokens
"""

import base64
import json

import pytest

from pyrope.core.cursor import decode_cursor, encode_cursor
from pyrope.errors import ValidationError


class TestCursor:
    """Tests for encode_cursor / decode_cursor."""

    def test_wire_format_is_base64_json(self):
        """A cursor is base64 encoded JSON of the last evaluated key."""
        key = {"uuid": "abc", "createdAt": 1470000000000, "_table": "_test_users"}

        token = encode_cursor(key)

        assert json.loads(base64.b64decode(token)) == key

    def test_decode_reconstructs_key(self):
        """Decoding returns the key unchanged."""
        key = {"uuid": "abc", "createdAt": 1470000000000, "_table": "_test_users"}

        assert decode_cursor(encode_cursor(key)) == key

    def test_decode_accepts_foreign_encoder_output(self):
        """Tokens produced by other clients with different spacing decode too."""
        token = base64.b64encode(b'{"uuid": "abc", "createdAt": 5}').decode()

        assert decode_cursor(token) == {"uuid": "abc", "createdAt": 5}

    @pytest.mark.parametrize("token", ["not base64!", base64.b64encode(b"[1, 2]").decode(), ""])
    def test_malformed_tokens_raise_validation_error(self, token):
        """Garbage is rejected before it reaches the store."""
        with pytest.raises(ValidationError):
            decode_cursor(token)

    def test_non_string_token(self):
        """Only strings are cursors."""
        with pytest.raises(ValidationError):
            decode_cursor(42)
