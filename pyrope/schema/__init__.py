"""
Schema module for Pyrope.

This module provides the declared relationship registry:
- Model and relationship definitions (ModelDef, RelationshipDef, Dependent)
- Schema registry for lookup and inverse resolution
- Naming rules for collection tables, association tables and role keys

Invariants:
    - Relationships are declared on both models
    - Role names resolve as given, then pluralized, then singularized
    - Association table names do not depend on relationship direction

How to change safely:
    - Add new models and relationships freely
    - Renaming a model or relationship changes stored attribute names
"""

from .naming import association_table_name, collection_name, role_candidates, role_key
from .registry import DuplicateRegistrationError, RegistryFrozenError, SchemaRegistry
from .types import Dependent, ModelDef, RelationshipDef, relationship

__all__ = [
    # Types
    "ModelDef",
    "RelationshipDef",
    "Dependent",
    "relationship",
    # Registry
    "SchemaRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    # Naming
    "collection_name",
    "role_key",
    "role_candidates",
    "association_table_name",
]
