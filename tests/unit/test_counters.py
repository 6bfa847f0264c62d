"""
Unit tests for atomic counters.

Tests cover:
- Table digest format
- Atomic increments and decrements
- Missing counter rows
- Store failures
"""

import hashlib

import pytest
import pytest_asyncio

from pyrope.config import TableConfig
from pyrope.core.counters import Counters, table_digest
from pyrope.errors import AdapterError, ValidationError
from pyrope.store.base import counters_table
from pyrope.store.memory import InMemoryStore


class TestTableDigest:
    """Tests for table_digest."""

    def test_digest_format(self):
        """Digest is sha256 hex, a dot, then the name."""
        expected = hashlib.sha256(b"_test_users").hexdigest() + "._test_users"

        assert table_digest("_test_users") == expected

    def test_digest_depends_on_full_name(self):
        """Prefixed names get their own counter."""
        assert table_digest("users") != table_digest("_test_users")

    def test_digest_requires_name(self):
        """Empty or non-string names are rejected."""
        with pytest.raises(ValidationError):
            table_digest("")
        with pytest.raises(ValidationError):
            table_digest(None)


class TestCounters:
    """Tests for Counters."""

    @pytest_asyncio.fixture
    async def counters(self):
        """Counters over an in-memory counters table."""
        tables = TableConfig(prefix="_test_")
        store = InMemoryStore()
        await store.create_table(counters_table(tables.counters_table_name))
        return Counters(store, tables)

    @pytest.mark.asyncio
    async def test_missing_row_counts_zero(self, counters):
        """A collection never counted has count 0."""
        assert await counters.count("_test_users") == 0

    @pytest.mark.asyncio
    async def test_increase_and_decrease(self, counters):
        """Updates return the new value and accumulate."""
        assert await counters.increase_counter("_test_users") == 1
        assert await counters.increase_counter("_test_users", 4) == 5
        assert await counters.decrease_counter("_test_users", 2) == 3

        assert await counters.count("_test_users") == 3

    @pytest.mark.asyncio
    async def test_counters_are_per_collection(self, counters):
        """Each collection has its own row."""
        await counters.increase_counter("_test_users")
        await counters.increase_counter("_test_contacts", 2)

        assert await counters.count("_test_users") == 1
        assert await counters.count("_test_contacts") == 2

    @pytest.mark.asyncio
    async def test_row_is_keyed_by_digest(self, counters):
        """The stored row carries the digest and the count."""
        await counters.increase_counter("_test_users")

        rows = counters.store.get_all_items("_test_table_counters")
        assert rows == [{"tableDigest": table_digest("_test_users"), "count": 1}]

    @pytest.mark.asyncio
    async def test_step_must_be_integer(self, counters):
        """Non-integer steps are rejected before any I/O."""
        with pytest.raises(ValidationError):
            await counters.update_counter("_test_users", 1.5)
        with pytest.raises(ValidationError):
            await counters.update_counter("_test_users", True)

    @pytest.mark.asyncio
    async def test_store_failure_is_wrapped(self, counters):
        """Store errors carry the counter operation in their trail."""
        counters.store.fail_next("update_item")

        with pytest.raises(AdapterError) as exc_info:
            await counters.increase_counter("_test_users")

        assert exc_info.value.breadcrumbs == ["update_counter()"]
        assert "MemoryStore[update_item]" in exc_info.value.message
