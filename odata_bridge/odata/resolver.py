"""
odata_bridge.odata.resolver - Resource paths, key literals and EDM lookup
==========================================================================
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from odata_bridge.core.errors import MetadataResolutionError
from odata_bridge.odata.literals import DataType, parse_value, to_uri_literal
from odata_bridge.odata.metadata import (
    DataProperty,
    EntityType,
    MetadataStore,
    StructuralType,
    collection_item_type,
)
from odata_bridge.odata.store import Entity


class MetadataResolver:
    """
    Answers naming questions against a ``MetadataStore``.

    Parameters
    ----------
    metadata_store : MetadataStore
        The loaded catalog
    """

    def __init__(self, metadata_store: MetadataStore) -> None:
        self.metadata_store = metadata_store

    def resolve_resource_path(self, entity_or_type: Union[Entity, EntityType, str]) -> str:
        """
        Collection resource an entity (or entity type) is exposed under.

        Raises
        ------
        MetadataResolutionError
            If the type is unknown or not exposed by any entity set
        """
        if isinstance(entity_or_type, Entity):
            et: Optional[EntityType] = entity_or_type.entity_type
        elif isinstance(entity_or_type, EntityType):
            et = entity_or_type
        else:
            et = self.metadata_store.get_entity_type(entity_or_type, ok_if_not_found=True)

        if et is None:
            raise MetadataResolutionError(
                f"Unable to locate an entity type named '{entity_or_type}'",
                name=str(entity_or_type),
            )
        if not et.default_resource_name:
            raise MetadataResolutionError(
                f"Entity type '{et.full_name}' is not exposed by any entity set",
                name=et.full_name,
            )
        return et.default_resource_name

    def _fmt_key(self, prop: DataProperty, entity: Entity) -> str:
        data_type = prop.data_type if isinstance(prop.data_type, DataType) else DataType.STRING
        return to_uri_literal(data_type, entity.get_property(prop.name))

    def resolve_key_literal(self, entity: Entity) -> str:
        """
        Key-addressed resource path for an entity.

        Examples
        --------
        ``Customers(42)`` for a single key, ``OrderLines(OrderID=1,LineNo=2)``
        for a composite key, in declared key order.
        """
        resource = self.resolve_resource_path(entity)
        kps = entity.entity_type.key_properties
        if not kps:
            raise MetadataResolutionError(
                f"Entity type '{entity.entity_type.full_name}' declares no key",
                name=entity.entity_type.full_name,
            )
        if len(kps) == 1:
            key = self._fmt_key(kps[0], entity)
        else:
            key = ",".join(f"{kp.name_on_server}={self._fmt_key(kp, entity)}" for kp in kps)
        return f"{resource}({key})"

    def resolve_edm_type(self, type_name: str) -> Optional[StructuralType]:
        """Entity or complex type for a (possibly ``Collection(...)``) type name."""
        name = collection_item_type(type_name) or type_name
        et = self.metadata_store.get_entity_type(name, ok_if_not_found=True)
        if et is not None:
            return et
        return self.metadata_store.get_complex_type(name)

    def validate_property_names(self, payload: Dict[str, Any]) -> bool:
        """
        True when every name survives a client -> server -> client round trip.
        """
        nc = self.metadata_store.naming_convention
        return all(nc.server_to_client(nc.client_to_server(p)) == p for p in payload)

    def key_from_raw(self, entity_type: EntityType, raw: Dict[str, Any]) -> tuple:
        """Key values of a server payload, parsed per key property type."""
        values = []
        for kp in entity_type.key_properties:
            val = raw.get(kp.name_on_server)
            if isinstance(kp.data_type, DataType):
                val = parse_value(kp.data_type, val)
            values.append(val)
        return tuple(values)
