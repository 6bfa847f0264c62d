"""
Table provisioning CLI for Pyrope.

This tool creates and drops the physical tables a schema needs:
- plan: Print every table definition as JSON
- create: Create collection, association and counters tables
- drop: Delete them again
- validate: Check the schema for relationship problems

Usage:
    pyrope-provision plan --module myapp.schema
    pyrope-provision create --module myapp.schema
    pyrope-provision drop --module myapp.schema --yes

Table names get PYROPE_TABLE_PREFIX / PYROPE_TABLE_SUFFIX applied, the
store is chosen by PYROPE_STORE_BACKEND (see pyrope.config).

Invariants:
    - Existing tables are left untouched by create
    - Output of plan is deterministic (sorted JSON)
    - Invalid schemas never reach the store

How to change safely:
    - Changing the layout helpers in pyrope.store.base changes what plan
      prints; existing tables are not migrated
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from ..config import PyropeConfig, TableConfig
from ..errors import PyropeError
from ..logs import setup_logging
from ..schema import SchemaRegistry
from ..store.base import StoreAdapter, TableDef, collection_table, counters_table, create_store

logger = logging.getLogger(__name__)


def build_table_defs(registry: SchemaRegistry, tables: TableConfig) -> list[TableDef]:
    """Every table the registry needs, collections first, counters last."""
    defs = [
        collection_table(tables.full_name(model.table_name), tuple(model.indexes))
        for model in registry.models()
    ]
    for name, roles in sorted(registry.association_tables().items()):
        defs.append(collection_table(tables.full_name(name), roles))
    defs.append(counters_table(tables.counters_table_name))
    return defs


class Provisioner:
    """Creates and drops the tables of a registry.

    Example:
        >>> provisioner = Provisioner(store, TableConfig(prefix="_test_"))
        >>> await provisioner.create_all(registry)
        ['_test_users', '_test_contacts', '_test_contacts_users', '_test_table_counters']
    """

    def __init__(self, store: StoreAdapter, tables: TableConfig) -> None:
        self.store = store
        self.tables = tables

    def plan(self, registry: SchemaRegistry) -> str:
        """Table definitions as sorted JSON."""
        defs = build_table_defs(registry, self.tables)
        return json.dumps([d.to_dict() for d in defs], indent=2, sort_keys=True)

    async def create_all(self, registry: SchemaRegistry) -> list[str]:
        """Create every table; returns their names in creation order."""
        self._check(registry)
        names = []
        for table in build_table_defs(registry, self.tables):
            await self.store.create_table(table)
            names.append(table.name)
            logger.info("Provisioned table", extra={"table": table.name})
        return names

    async def drop_all(self, registry: SchemaRegistry) -> list[str]:
        """Delete every table; returns their names."""
        names = []
        for table in build_table_defs(registry, self.tables):
            await self.store.delete_table(table.name)
            names.append(table.name)
            logger.info("Dropped table", extra={"table": table.name})
        return names

    @staticmethod
    def _check(registry: SchemaRegistry) -> None:
        errors = registry.validate()
        if errors:
            raise PyropeError("Invalid schema: " + "; ".join(errors), code="SCHEMA_ERROR")


async def _run(command: str, registry: SchemaRegistry, config: PyropeConfig) -> list[str]:
    store = create_store(config)
    await store.connect()
    try:
        provisioner = Provisioner(store, config.tables)
        if command == "create":
            return await provisioner.create_all(registry)
        return await provisioner.drop_all(registry)
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the provisioning tool."""
    parser = argparse.ArgumentParser(description="Pyrope table provisioning tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("plan", "Print table definitions as JSON"),
        ("create", "Create all tables"),
        ("drop", "Delete all tables"),
        ("validate", "Validate schema relationships"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--module", required=True, help="Python module exposing 'registry' or 'get_registry()'"
        )
        if name == "drop":
            sub.add_argument("--yes", action="store_true", help="Confirm deleting tables")

    args = parser.parse_args(argv)

    try:
        config = PyropeConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config.observability)
    config.log_config()
    registry = _load_registry(args.module)

    if args.command == "validate":
        errors = registry.validate()
        if not errors:
            print("Schema is valid")
            sys.exit(0)
        print(f"Schema validation failed with {len(errors)} error(s):")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    if args.command == "plan":
        print(Provisioner(None, config.tables).plan(registry))
        sys.exit(0)

    if args.command == "drop" and not args.yes:
        print("Refusing to drop tables without --yes", file=sys.stderr)
        sys.exit(1)

    try:
        names = asyncio.run(_run(args.command, registry, config))
    except PyropeError as e:
        print(f"{args.command} failed: {e}", file=sys.stderr)
        sys.exit(1)

    for name in names:
        print(name)
    sys.exit(0)


def _load_registry(module_path: str) -> SchemaRegistry:
    """Load schema registry from a module.

    Args:
        module_path: Python module path containing the schema

    Returns:
        SchemaRegistry instance
    """
    import importlib

    module = importlib.import_module(module_path)
    if hasattr(module, "registry"):
        return module.registry
    if hasattr(module, "get_registry"):
        return module.get_registry()
    raise ValueError(f"Module {module_path} has no 'registry' or 'get_registry()'")


if __name__ == "__main__":
    main()
