"""
Model facade.

A Model binds a ModelDef to a store. It wraps the base actions with the
hook pipeline, reads relationship cardinality from the registry and
translates ``(uuid, role)`` calls into association resolver items.

For ``User.contact`` (singular) and ``Contact.user`` (singular):

    await users.set_child(user_id, "contact", contact_id)
        -> associate([{user: user_id}, has_many=False],
                     [{contact: contact_id}, has_many=False])
           on table ``contacts_users``

Invariants:
    - Cardinality always comes from the declared relationships, never
      from the caller
    - Destroying a record applies every dependent rule of its model;
      ``destroy`` dependents recurse through the child's own model
    - Models hold only construction-time configuration

How to change safely:
    - Keep cascade order: delete the record, destroy dependents, then
      remove remaining edges
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable

import inflection

from ..config import TableConfig
from ..core.actions import Page, Record, TableActions
from ..core.associations import AssociationItem, AssociationResolver
from ..errors import MultiplicityError, SchemaError, ValidationError, breadcrumb
from ..schema.registry import SchemaRegistry
from ..schema.types import Dependent, ModelDef, RelationshipDef
from ..store.base import UUID, StoreAdapter
from .hooks import Hooks, Stage, run_pipeline

if TYPE_CHECKING:
    from . import ModelSet

logger = logging.getLogger(__name__)

# ``setContact``, ``set_contact``, ``unsetOrganizations`` ...
DIRECTIVE_PATTERN = re.compile(r"^(set|unset)_?(.+)$")

ORDERS = {"asc": True, "desc": False}

ChildResolver = Callable[[str], Any]


def _as_list(values: Any) -> list[Any]:
    return list(values) if isinstance(values, (list, tuple)) else [values]


class Model:
    """Relational operations for one model.

    Attributes:
        definition: The model definition
        actions: Base actions on the model's collection

    Example:
        >>> users = Model(User, registry, store, TableConfig())
        >>> user = await users.create({"username": "ada"})
        >>> await users.set_child(user["uuid"], "contact", contact["uuid"])
        >>> await users.get_child(user["uuid"], "contact")
    """

    def __init__(
        self,
        definition: ModelDef,
        registry: SchemaRegistry,
        store: StoreAdapter,
        tables: TableConfig,
        validations: Stage | None = None,
        models: ModelSet | None = None,
    ) -> None:
        self.definition = definition
        self.registry = registry
        self.store = store
        self.tables = tables
        self.validations = validations
        self._models = models
        self.actions = TableActions(store, definition.table_name, tables)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def full_name(self) -> str:
        return self.actions.full_name

    def relationship(self, role: str) -> RelationshipDef:
        """Resolve a role name to a declared relationship.

        Raises:
            SchemaError: If neither the name nor its plural/singular exists
        """
        rel = self.definition.find_relationship(role)
        if rel is None:
            raise SchemaError(
                f"Model '{self.name}' has no relationship '{role}'",
                model=self.name,
            )
        return rel

    # Records

    async def get(self, index: Mapping[str, Any]) -> Record | None:
        """The single record matching index, None if there is none.

        Raises:
            MultiplicityError: If the index matches several records
        """
        with breadcrumb(f"{self.name}.get()"):
            records = await self.actions.find_by_index(index)
        if len(records) > 1:
            raise MultiplicityError(
                f"{self.name}.get() matched {len(records)} records",
                index=dict(index),
                matched=len(records),
            )
        return records[0] if records else None

    async def get_all(
        self,
        order: str = "asc",
        limit: int = 0,
        cursor: str | None = None,
    ) -> Page:
        """Ordered page of records; ``order`` is ``asc`` or ``desc``."""
        if order not in ORDERS:
            raise ValidationError("order must be 'asc' or 'desc'", field_name="order")
        with breadcrumb(f"{self.name}.get_all()"):
            return await self.actions.all(ascending=ORDERS[order], limit=limit, cursor=cursor)

    async def count(self) -> int:
        with breadcrumb(f"{self.name}.count()"):
            return await self.actions.count()

    async def create(self, fields: Mapping[str, Any], hooks: Hooks | None = None) -> Record:
        """Create a record through the hook pipeline."""
        if not isinstance(fields, Mapping):
            raise ValidationError("Fields must be a mapping", field_name="fields")

        async def op(snapshot: Mapping[str, Any], field_name: str | None) -> Record:
            return await self.actions.create(snapshot)

        with breadcrumb(f"{self.name}.create()"):
            return await run_pipeline(op, dict(fields), hooks, self.validations)

    async def update(
        self,
        index: Mapping[str, Any],
        fields: Mapping[str, Any],
        hooks: Hooks | None = None,
    ) -> Record | None:
        """Update the record matching index through the hook pipeline.

        Keys such as ``setContact`` or ``unset_organizations`` that name a
        declared relationship are not written as attributes; they are
        applied as association changes once the record is updated.

        Returns:
            The pipeline result, None if nothing matched index
        """
        if not isinstance(fields, Mapping):
            raise ValidationError("Fields must be a mapping", field_name="fields")
        attributes, directives = self._split_directives(fields)

        async def op(snapshot: Mapping[str, Any], field_name: str | None) -> Record | None:
            record = await self.actions.update(index, snapshot)
            if record is not None:
                for action, rel, value in directives:
                    await self._apply_directive(record[UUID], action, rel, value)
            return record

        with breadcrumb(f"{self.name}.update()"):
            return await run_pipeline(op, attributes, hooks, self.validations)

    async def destroy(self, index: Mapping[str, Any], hooks: Hooks | None = None) -> Record | None:
        """Destroy the record matching index and apply dependent rules.

        Returns:
            The pipeline result, None if nothing matched index
        """
        with breadcrumb(f"{self.name}.destroy()"):
            record = await self.get(index)
            if record is None:
                return None

            async def op(snapshot: Record, field_name: str | None) -> Record | None:
                removed = await self.actions.destroy({UUID: record[UUID]})
                if removed is None:
                    return None
                await self._apply_dependents(removed[UUID])
                return removed

            return await run_pipeline(op, record, hooks, self.validations)

    # Singular relationships

    async def get_child(
        self,
        uuid: str,
        role: str,
        resolver: ChildResolver | None = None,
    ) -> Any:
        """The record linked through ``role``, None if nothing is linked.

        Args:
            uuid: Parent record uuid
            role: Relationship name
            resolver: Loads a child by uuid; defaults to the target model's get

        Raises:
            MultiplicityError: If several records are linked
        """
        rel = self.relationship(role)
        with breadcrumb(f"{self.name}.get_child()"):
            children = await self._child_uuids(uuid, rel)
            if not children:
                return None
            if len(children) > 1:
                raise MultiplicityError(
                    f"{self.name} {uuid} has {len(children)} '{rel.name}' associations",
                    index={self.definition.role_key: uuid},
                    matched=len(children),
                )
            return await self._resolve_child(rel, children[0], resolver)

    async def set_child(self, uuid: str, role: str, child_uuid: str) -> bool:
        """Link one record through ``role``, replacing links the cardinality forbids."""
        if child_uuid is None or isinstance(child_uuid, (list, tuple, set)):
            raise ValidationError(
                f"set_child expects a single uuid for '{role}'",
                field_name=role,
            )
        rel = self.relationship(role)
        with breadcrumb(f"{self.name}.set_child()"):
            return await self._resolver(rel).associate(self._items(uuid, rel, child_uuid))

    async def unset_child(self, uuid: str, role: str) -> bool:
        """Unlink the record linked through ``role``.

        Returns:
            True if an edge was removed, False if nothing was linked

        Raises:
            MultiplicityError: If several records are linked
        """
        rel = self.relationship(role)
        with breadcrumb(f"{self.name}.unset_child()"):
            children = await self._child_uuids(uuid, rel)
            if not children:
                return False
            if len(children) > 1:
                raise MultiplicityError(
                    f"{self.name} {uuid} has {len(children)} '{rel.name}' associations",
                    index={self.definition.role_key: uuid},
                    matched=len(children),
                )
            return await self._resolver(rel).dissociate(self._items(uuid, rel, children[0]))

    # Plural relationships

    async def get_children(
        self,
        uuid: str,
        role: str,
        resolver: ChildResolver | None = None,
    ) -> list[Any]:
        """Records linked through ``role``, in the order they were linked.

        Children that no longer resolve (deleted without cleanup) are
        skipped.
        """
        rel = self.relationship(role)
        resolved = []
        with breadcrumb(f"{self.name}.get_children()"):
            for child_uuid in await self._child_uuids(uuid, rel):
                child = await self._resolve_child(rel, child_uuid, resolver)
                if child is None:
                    logger.debug(
                        "Skipping dangling association",
                        extra={"model": self.name, "role": rel.name, "child": child_uuid},
                    )
                    continue
                resolved.append(child)
        return resolved

    async def set_children(self, uuid: str, role: str, child_uuids: Any) -> bool:
        """Link one or more records through ``role``.

        Returns:
            True if new edges were written, False if all were already linked

        Raises:
            ValidationError: If several uuids are given for a singular role
        """
        rel = self.relationship(role)
        values = _as_list(child_uuids)
        if not rel.has_many and len(values) > 1:
            raise ValidationError(
                f"'{self.name}.{rel.name}' links a single record, got {len(values)}",
                field_name=rel.name,
            )
        with breadcrumb(f"{self.name}.set_children()"):
            return await self._resolver(rel).associate(self._items(uuid, rel, values))

    async def unset_children(self, uuid: str, role: str, child_uuids: Any = None) -> bool:
        """Unlink records linked through ``role``; None unlinks all of them.

        Returns:
            True if the parent had links, False if it had none

        Raises:
            AssociationConsistencyError: If a given uuid is not linked
        """
        rel = self.relationship(role)
        values = None if child_uuids is None else _as_list(child_uuids)
        with breadcrumb(f"{self.name}.unset_children()"):
            return await self._resolver(rel).dissociate(self._items(uuid, rel, values))

    # Internals

    def _resolver(self, rel: RelationshipDef) -> AssociationResolver:
        table = self.registry.association_table(self.definition, rel)
        return AssociationResolver(self.store, table, self.tables)

    def _items(self, uuid: str, rel: RelationshipDef, values: Any) -> list[AssociationItem]:
        if not uuid or not isinstance(uuid, str):
            raise ValidationError("Parent uuid must be a non-empty string", field_name=UUID)
        target, inverse = self.registry.inverse_of(self.definition, rel)
        return [
            AssociationItem({self.definition.role_key: uuid}, has_many=rel.has_many),
            AssociationItem({target.role_key: values}, has_many=inverse.has_many),
        ]

    async def _child_uuids(self, uuid: str, rel: RelationshipDef) -> list[str]:
        target = self.registry.require_model(rel.target)
        return await self._resolver(rel).get_associations(
            {self.definition.role_key: uuid}, target.role_key
        )

    def _model_for(self, rel: RelationshipDef) -> Model:
        if self._models is not None:
            return self._models[rel.target]
        target = self.registry.require_model(rel.target)
        return Model(target, self.registry, self.store, self.tables)

    async def _resolve_child(
        self,
        rel: RelationshipDef,
        child_uuid: str,
        resolver: ChildResolver | None,
    ) -> Any:
        if resolver is None:
            return await self._model_for(rel).get({UUID: child_uuid})
        result = resolver(child_uuid)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _apply_dependents(self, uuid: str) -> None:
        for rel in self.definition.relationships:
            if rel.dependent is None:
                continue
            if rel.dependent is Dependent.DESTROY:
                child_model = self._model_for(rel)
                for child_uuid in await self._child_uuids(uuid, rel):
                    logger.debug(
                        "Cascading destroy",
                        extra={"model": self.name, "role": rel.name, "child": child_uuid},
                    )
                    await child_model.destroy({UUID: child_uuid})
            await self.unset_children(uuid, rel.name)

    def _split_directives(
        self, fields: Mapping[str, Any]
    ) -> tuple[dict[str, Any], list[tuple[str, RelationshipDef, Any]]]:
        attributes: dict[str, Any] = {}
        directives: list[tuple[str, RelationshipDef, Any]] = []
        for key, value in fields.items():
            match = DIRECTIVE_PATTERN.match(key)
            rel = None
            if match:
                rel = self.definition.find_relationship(inflection.underscore(match.group(2)))
            if rel is None:
                attributes[key] = value
            else:
                directives.append((match.group(1), rel, value))
        return attributes, directives

    async def _apply_directive(
        self, uuid: str, action: str, rel: RelationshipDef, value: Any
    ) -> None:
        if action == "set":
            if rel.has_many:
                await self.set_children(uuid, rel.name, value)
            else:
                await self.set_child(uuid, rel.name, value)
        elif rel.has_many:
            await self.unset_children(uuid, rel.name, None if value is True else value)
        else:
            await self.unset_child(uuid, rel.name)
