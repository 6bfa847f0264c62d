"""
CLI tools for Pyrope administration.

This module provides command-line tools for:
- provision: Create, drop and plan the tables a schema needs

Invariants:
    - Tools read configuration from the environment only
    - Operations are idempotent where possible
"""

from .provision import Provisioner, build_table_defs

__all__ = ["Provisioner", "build_table_defs"]
