"""
odata_bridge.odata.store - Entity store and pending changes
============================================================

Minimal change-tracking store the adapter reads from:

- Entity: typed property bag with change state and original values
- EntityStore: owns entities, temporary keys and the per-entity
  extra-metadata side table (cached key literal, concurrency token)
- PendingChange: read-only view of one entity handed to request building
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from odata_bridge.odata.literals import OMIT
from odata_bridge.odata.metadata import (
    AutoGeneratedKeyType,
    ComplexType,
    DataProperty,
    EntityType,
    MetadataStore,
    StructuralType,
)


class EntityState(str, Enum):
    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"
    UNCHANGED = "Unchanged"
    DETACHED = "Detached"


class Entity:
    """
    One entity instance. Hashes and compares by identity.

    Parameters
    ----------
    entity_type : EntityType
        Catalog type of the entity
    values : dict, optional
        Client-side property values
    state : EntityState
        Change state
    """

    def __init__(
        self,
        entity_type: EntityType,
        values: Optional[Dict[str, Any]] = None,
        state: EntityState = EntityState.DETACHED,
    ) -> None:
        self.entity_type = entity_type
        self.values: Dict[str, Any] = dict(values or {})
        self.state = state
        self.original_values: Dict[str, Any] = {}

    def get_property(self, name: str) -> Any:
        return self.values.get(name)

    def set_property(self, name: str, value: Any) -> None:
        old = self.values.get(name)
        if old == value:
            return
        if name not in self.original_values:
            self.original_values[name] = old
        self.values[name] = value
        if self.state is EntityState.UNCHANGED:
            self.state = EntityState.MODIFIED

    def changed_property_names(self) -> List[str]:
        return [n for n, old in self.original_values.items() if self.values.get(n) != old]

    def __repr__(self) -> str:
        return f"<Entity {self.entity_type.name} {self.state.value} {self.values!r}>"


@dataclass
class ExtraMetadata:
    uri_key: Optional[str] = None
    etag: Optional[str] = None


@dataclass(frozen=True)
class PendingChange:
    """
    Read-only view of one entity awaiting save.

    ``resource_path`` is the collection the entity type is exposed under.
    """
    entity: Entity
    state: EntityState
    key: Tuple[Any, ...]
    resource_path: Optional[str]

    @property
    def entity_type(self) -> EntityType:
        return self.entity.entity_type


Transform = Callable[[DataProperty, Any], Any]


class EntityStore:
    """
    Tracks entities and the wire metadata cached for them.

    Parameters
    ----------
    metadata_store : MetadataStore
        Catalog used for naming conventions and type lookup
    """

    def __init__(self, metadata_store: MetadataStore) -> None:
        self.metadata_store = metadata_store
        self._entities: List[Entity] = []
        self._extra: "weakref.WeakKeyDictionary[Entity, ExtraMetadata]" = weakref.WeakKeyDictionary()
        self._next_temp_key = -1

    # ---------------- entity lifecycle ----------------

    def _type_of(self, entity_type: Any) -> EntityType:
        if isinstance(entity_type, EntityType):
            return entity_type
        return self.metadata_store.get_entity_type(entity_type)

    def create_entity(self, entity_type: Any, values: Optional[Dict[str, Any]] = None) -> Entity:
        """Create a detached entity (not tracked, never saved)."""
        return Entity(self._type_of(entity_type), values)

    def add(self, entity_type: Any, values: Optional[Dict[str, Any]] = None) -> Entity:
        """
        Track a new entity in the Added state.

        Server-generated single keys without a value receive a temporary
        negative key (-1, -2, ...).
        """
        et = self._type_of(entity_type)
        entity = Entity(et, values, EntityState.ADDED)
        kps = et.key_properties
        if (
            et.auto_generated_key_type is not AutoGeneratedKeyType.NONE
            and len(kps) == 1
            and entity.values.get(kps[0].name) is None
        ):
            entity.values[kps[0].name] = self._next_temp_key
            self._next_temp_key -= 1
        self._entities.append(entity)
        return entity

    def attach(
        self,
        entity_type: Any,
        values: Dict[str, Any],
        *,
        state: EntityState = EntityState.UNCHANGED,
        etag: Optional[str] = None,
    ) -> Entity:
        """Track an entity that already exists on the server."""
        entity = Entity(self._type_of(entity_type), values, state)
        self._entities.append(entity)
        if etag:
            self.get_extra_metadata(entity, create=True).etag = etag
        return entity

    def delete(self, entity: Entity) -> None:
        if entity.state is EntityState.ADDED:
            entity.state = EntityState.DETACHED
            self._entities.remove(entity)
        else:
            entity.state = EntityState.DELETED

    @property
    def entities(self) -> List[Entity]:
        return list(self._entities)

    def get_key(self, entity: Entity) -> Tuple[Any, ...]:
        return tuple(entity.get_property(p.name) for p in entity.entity_type.key_properties)

    def pending_changes(self, entities: Optional[List[Entity]] = None) -> List[PendingChange]:
        """Pending changes in caller (or insertion) order, Unchanged included."""
        return [
            PendingChange(
                entity=e,
                state=e.state,
                key=self.get_key(e),
                resource_path=e.entity_type.default_resource_name,
            )
            for e in (entities if entities is not None else self._entities)
        ]

    # ---------------- extra metadata side table ----------------

    def get_extra_metadata(self, entity: Entity, create: bool = False) -> Optional[ExtraMetadata]:
        meta = self._extra.get(entity)
        if meta is None and create:
            meta = self._extra[entity] = ExtraMetadata()
        return meta

    def set_extra_metadata(self, entity: Entity, meta: ExtraMetadata) -> None:
        self._extra[entity] = meta

    def remember_etag(self, entity: Entity, etag: str) -> None:
        self.get_extra_metadata(entity, create=True).etag = etag

    # ---------------- serialization ----------------

    def _unwrap(
        self,
        stype: StructuralType,
        values: Dict[str, Any],
        names: Optional[List[str]],
        transform: Optional[Transform],
    ) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for prop in stype.properties:
            if names is not None and prop.name not in names:
                continue
            if prop.name not in values:
                continue
            val = values[prop.name]
            if prop.is_complex and isinstance(val, dict):
                ctype = self.metadata_store.get_complex_type(prop.data_type)
                if ctype is not None:
                    val = self._unwrap(ctype, val, None, transform)
            elif transform is not None:
                val = transform(prop, val)
            elif prop.is_unmapped:
                val = OMIT
            if val is OMIT:
                continue
            out[prop.name_on_server] = val
        return out

    def unwrap_instance(self, entity: Entity, transform: Optional[Transform] = None) -> Dict[str, Any]:
        """Wire-shaped dict of all mapped properties, keyed by server names."""
        return self._unwrap(entity.entity_type, entity.values, None, transform)

    def unwrap_changed_values(self, entity: Entity, transform: Optional[Transform] = None) -> Dict[str, Any]:
        """Wire-shaped dict of only the properties changed since attach."""
        return self._unwrap(entity.entity_type, entity.values, entity.changed_property_names(), transform)

    def create_instance(self, complex_type: ComplexType, values: Dict[str, Any]) -> Dict[str, Any]:
        """Wire-shaped dict for a complex type instance built from raw values."""
        return self._unwrap(complex_type, values, None, None)
