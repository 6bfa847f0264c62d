"""
Unit tests for the error taxonomy.

Tests cover:
- Error codes and details
- Breadcrumb prefixing
- Type preservation through breadcrumbs
"""

import pytest

from pyrope.errors import (
    AdapterError,
    AssociationConsistencyError,
    MultiplicityError,
    NotFoundError,
    PyropeError,
    UnprocessedItemsError,
    ValidationError,
    breadcrumb,
)


class TestErrorTypes:
    """Tests for error classes."""

    def test_base_error_defaults(self):
        """Base error carries a default code and empty details."""
        err = PyropeError("boom")

        assert err.message == "boom"
        assert err.code == "PYROPE_ERROR"
        assert err.details == {}
        assert err.breadcrumbs == []

    def test_validation_error_details(self):
        """ValidationError records the offending field."""
        err = ValidationError("bad limit", field_name="limit")

        assert err.code == "VALIDATION_ERROR"
        assert err.field_name == "limit"
        assert err.details["field"] == "limit"

    def test_not_found_error_details(self):
        """NotFoundError names the resource and the index used."""
        err = NotFoundError("no user", resource_type="User", index={"uuid": "u1"})

        assert err.code == "NOT_FOUND"
        assert err.details == {"resource_type": "User", "index": {"uuid": "u1"}}

    def test_multiplicity_error_details(self):
        """MultiplicityError records the index and match count."""
        err = MultiplicityError("too many", index={"username": "ada"}, matched=3)

        assert err.code == "MULTIPLICITY_ERROR"
        assert err.matched == 3
        assert err.details["index"] == {"username": "ada"}

    def test_unprocessed_items_is_adapter_error(self):
        """UnprocessedItemsError is an AdapterError carrying the requests."""
        requests = [{"DeleteRequest": {"Key": {"uuid": "a", "createdAt": 1}}}]
        err = UnprocessedItemsError("partial", unprocessed=requests)

        assert isinstance(err, AdapterError)
        assert err.code == "UNPROCESSED_ITEMS"
        assert err.unprocessed == requests
        assert err.details["unprocessed"] == 1


class TestBreadcrumbs:
    """Tests for breadcrumb prefixing."""

    def test_prefixed_keeps_type_and_attributes(self):
        """prefixed() returns the same type with the operation prepended."""
        err = AssociationConsistencyError("not linked", missing=["o3"])

        wrapped = err.prefixed("dissociate()")

        assert isinstance(wrapped, AssociationConsistencyError)
        assert wrapped.message == "dissociate() > not linked"
        assert str(wrapped) == "dissociate() > not linked"
        assert wrapped.missing == ["o3"]
        assert wrapped.breadcrumbs == ["dissociate()"]
        assert err.message == "not linked"

    def test_nested_breadcrumbs_build_a_trail(self):
        """Nested blocks produce an outermost-first trail."""
        with pytest.raises(AdapterError) as exc_info:
            with breadcrumb("destroy()"):
                with breadcrumb("find_by_index()"):
                    raise AdapterError("DynamoDB[query]: ResourceNotFoundException")

        err = exc_info.value
        assert err.message == "destroy() > find_by_index() > DynamoDB[query]: ResourceNotFoundException"
        assert err.breadcrumbs == ["destroy()", "find_by_index()"]

    def test_breadcrumb_ignores_foreign_exceptions(self):
        """Non-Pyrope exceptions pass through untouched."""
        with pytest.raises(KeyError):
            with breadcrumb("create()"):
                raise KeyError("uuid")
