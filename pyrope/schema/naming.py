"""
Naming rules shared by models, association tables and role attributes.

    Model name       User           OperationItem
    Collection table users          operation_items
    Role attribute   user           operation_item
"""

from __future__ import annotations

import inflection


def collection_name(model_name: str) -> str:
    """Logical table name of a model (``Contact`` -> ``contacts``)."""
    return inflection.tableize(model_name)


def role_key(name: str) -> str:
    """Attribute holding a model's uuid inside association tables."""
    return inflection.underscore(inflection.singularize(name))


def association_table_name(collection_a: str, collection_b: str) -> str:
    """Association table of two collections, independent of direction."""
    return "_".join(sorted((collection_a, collection_b)))


def role_candidates(role: str) -> list[str]:
    """Names to try for a role: as given, pluralized, singularized."""
    candidates = [role]
    for form in (inflection.pluralize(role), inflection.singularize(role)):
        if form not in candidates:
            candidates.append(form)
    return candidates
