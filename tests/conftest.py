"""
Shared fixtures.

The schema mirrors a small CRM:
- User 1:1 Contact (destroying a user destroys its contact,
  destroying a contact only unlinks its user)
- Contact N:N Organization
- Operation 1:N Transaction (destroying an operation destroys its
  transactions)
"""

import pytest
import pytest_asyncio

from pyrope.config import TableConfig
from pyrope.schema import ModelDef, SchemaRegistry, relationship
from pyrope.store.memory import InMemoryStore
from pyrope.tools.provision import Provisioner

TEST_TABLES = TableConfig(prefix="_test_")


def build_registry() -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.register_model(
        ModelDef(
            name="User",
            indexes=("username",),
            relationships=(relationship("contact", "Contact", dependent="destroy"),),
        )
    )
    registry.register_model(
        ModelDef(
            name="Contact",
            indexes=("email",),
            relationships=(
                relationship("user", "User", dependent="nullify"),
                relationship("organizations", "Organization", has_many=True),
            ),
        )
    )
    registry.register_model(
        ModelDef(
            name="Organization",
            indexes=("name",),
            relationships=(
                relationship("contacts", "Contact", has_many=True, dependent="nullify"),
            ),
        )
    )
    registry.register_model(
        ModelDef(
            name="Operation",
            relationships=(
                relationship("transactions", "Transaction", has_many=True, dependent="destroy"),
            ),
        )
    )
    registry.register_model(
        ModelDef(
            name="Transaction",
            indexes=("status",),
            relationships=(relationship("operation", "Operation"),),
        )
    )
    return registry


@pytest.fixture
def tables():
    """Table naming used by every test."""
    return TEST_TABLES


@pytest.fixture
def registry():
    """Frozen test schema."""
    reg = build_registry()
    reg.freeze()
    return reg


@pytest_asyncio.fixture
async def store(registry, tables):
    """In-memory store with every table of the test schema."""
    mem = InMemoryStore()
    await mem.connect()
    await Provisioner(mem, tables).create_all(registry)
    yield mem
    await mem.close()
