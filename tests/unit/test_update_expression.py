"""
Unit tests for update expressions.

Tests cover:
- Rendering SET / ADD clauses with placeholders
- build_update_expression attribute filtering
"""

import pytest

from pyrope.core.actions import build_update_expression
from pyrope.store.base import UpdateExpression


class TestUpdateExpression:
    """Tests for UpdateExpression.render."""

    def test_render_set(self):
        """SET clauses use name and value placeholders."""
        rendered = UpdateExpression(set_values={"username": "ada", "_flag": True}).render()

        assert rendered["UpdateExpression"] == "SET #a0 = :v0, #a1 = :v1"
        assert rendered["ExpressionAttributeNames"] == {"#a0": "username", "#a1": "_flag"}
        assert rendered["ExpressionAttributeValues"] == {":v0": "ada", ":v1": True}

    def test_render_add(self):
        """ADD keeps reserved words such as count behind a placeholder."""
        rendered = UpdateExpression(add_values={"count": -2}).render()

        assert rendered["UpdateExpression"] == "ADD #a0 :v0"
        assert rendered["ExpressionAttributeNames"] == {"#a0": "count"}
        assert rendered["ExpressionAttributeValues"] == {":v0": -2}

    def test_render_set_and_add(self):
        """Both clauses can be combined."""
        rendered = UpdateExpression(set_values={"a": 1}, add_values={"b": 2}).render()

        assert rendered["UpdateExpression"] == "SET #a0 = :v0 ADD #a1 :v1"

    def test_empty_expression(self):
        """An expression without clauses is rejected."""
        with pytest.raises(ValueError):
            UpdateExpression().render()


class TestBuildUpdateExpression:
    """Tests for build_update_expression."""

    def test_adds_updated_at(self):
        """updatedAt is refreshed when the caller does not supply it."""
        expression = build_update_expression({"username": "ada"}, now=1234)

        assert expression.set_values == {"username": "ada", "updatedAt": 1234}

    def test_keeps_explicit_updated_at(self):
        """An explicit updatedAt wins."""
        expression = build_update_expression({"updatedAt": 1}, now=1234)

        assert expression.set_values == {"updatedAt": 1}

    def test_drops_key_attributes(self):
        """Primary key attributes and the collection tag are never rewritten."""
        expression = build_update_expression(
            {"uuid": "x", "createdAt": 1, "_table": "other", "email": "a@b.c"}, now=5
        )

        assert expression.set_values == {"email": "a@b.c", "updatedAt": 5}
