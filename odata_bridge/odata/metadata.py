"""
odata_bridge.odata.metadata - In-memory type catalog
=====================================================

Read-mostly catalog of the service's entity types, complex types, entity
sets and operations. Written once when ``$metadata`` is loaded, read by
every request afterwards.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Union

from odata_bridge.odata.literals import DataType


_COLLECTION_RE = re.compile(r"^Collection\((.+)\)$")


def collection_item_type(type_name: str) -> Optional[str]:
    """Return ``T`` for ``Collection(T)``, else None."""
    m = _COLLECTION_RE.match(type_name or "")
    return m.group(1) if m else None


class AutoGeneratedKeyType(str, Enum):
    NONE = "None"
    IDENTITY = "Identity"
    KEY_GENERATOR = "KeyGenerator"


@dataclass
class NamingConvention:
    """
    Maps property names between client and server form.

    Examples
    --------
    >>> NamingConvention.camel_case().client_to_server("firstName")
    'FirstName'
    """
    name: str
    server_to_client: Callable[[str], str]
    client_to_server: Callable[[str], str]

    @classmethod
    def none(cls) -> "NamingConvention":
        return cls("none", lambda s: s, lambda s: s)

    @classmethod
    def camel_case(cls) -> "NamingConvention":
        return cls(
            "camelCase",
            lambda s: s[:1].lower() + s[1:],
            lambda s: s[:1].upper() + s[1:],
        )


@dataclass
class DataProperty:
    """One property of an entity or complex type."""
    name: str
    data_type: Union[DataType, str] = DataType.STRING
    name_on_server: Optional[str] = None
    is_nullable: bool = True
    is_unmapped: bool = False
    is_part_of_key: bool = False

    def __post_init__(self) -> None:
        if self.name_on_server is None:
            self.name_on_server = self.name
        if isinstance(self.data_type, str) and not isinstance(self.data_type, DataType):
            if self.data_type.startswith("Edm."):
                self.data_type = DataType.from_edm(self.data_type)

    @property
    def is_complex(self) -> bool:
        return not isinstance(self.data_type, DataType)


@dataclass
class StructuralType:
    name: str
    namespace: str = ""
    properties: List[DataProperty] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def get_property(self, name: str) -> Optional[DataProperty]:
        for p in self.properties:
            if p.name == name:
                return p
        return None


@dataclass
class ComplexType(StructuralType):
    pass


@dataclass
class EntityType(StructuralType):
    key_names: List[str] = field(default_factory=list)
    default_resource_name: Optional[str] = None
    auto_generated_key_type: AutoGeneratedKeyType = AutoGeneratedKeyType.NONE

    def __post_init__(self) -> None:
        for p in self.properties:
            if p.name in self.key_names:
                p.is_part_of_key = True

    @property
    def key_properties(self) -> List[DataProperty]:
        """Key properties in declared key order."""
        out = []
        for k in self.key_names:
            p = self.get_property(k)
            if p is not None:
                out.append(p)
        return out


@dataclass
class Parameter:
    name: str
    type: str
    nullable: bool = True

    @property
    def is_primitive(self) -> bool:
        item = collection_item_type(self.type) or self.type
        return item.startswith("Edm.")


@dataclass
class OperationDefinition:
    """An action or function declared in a schema."""
    name: str
    kind: str  # "action" | "function"
    namespace: str = ""
    is_bound: bool = False
    parameters: List[Parameter] = field(default_factory=list)
    return_type: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    @property
    def binding_parameter(self) -> Optional[Parameter]:
        if self.is_bound and self.parameters:
            return self.parameters[0]
        return None


class MetadataStore:
    """
    Catalog of structural types and operations for one or more services.

    Types are addressable by short name (``Customer``) or qualified name
    (``Sales.Customer``).
    """

    def __init__(self, naming_convention: Optional[NamingConvention] = None) -> None:
        self.naming_convention = naming_convention or NamingConvention.none()
        self._types: Dict[str, StructuralType] = {}
        self._entity_sets: Dict[str, str] = {}
        self.actions: List[OperationDefinition] = []
        self.functions: List[OperationDefinition] = []
        self._services: List[str] = []

    # ---------------- population ----------------

    def add_type(self, stype: StructuralType) -> None:
        self._types[stype.full_name] = stype
        self._types.setdefault(stype.name, stype)

    def add_entity_set(self, name: str, entity_type_name: str) -> None:
        self._entity_sets[name] = entity_type_name
        et = self.get_entity_type(entity_type_name, ok_if_not_found=True)
        if et is not None and not et.default_resource_name:
            et.default_resource_name = name

    def add_operation(self, op: OperationDefinition) -> None:
        (self.actions if op.kind == "action" else self.functions).append(op)

    def import_metadata(self, other: "MetadataStore") -> None:
        """Merge another catalog into this one."""
        for stype in other.structural_types:
            self.add_type(stype)
        for es, tname in other.entity_sets.items():
            self.add_entity_set(es, tname)
        self.actions.extend(other.actions)
        self.functions.extend(other.functions)

    def add_data_service(self, service_name: str) -> None:
        if service_name not in self._services:
            self._services.append(service_name)

    def has_metadata_for(self, service_name: str) -> bool:
        return service_name in self._services

    # ---------------- lookup ----------------

    @property
    def structural_types(self) -> List[StructuralType]:
        seen: List[StructuralType] = []
        for t in self._types.values():
            if not any(t is s for s in seen):
                seen.append(t)
        return seen

    @property
    def entity_types(self) -> List[EntityType]:
        return [t for t in self.structural_types if isinstance(t, EntityType)]

    @property
    def complex_types(self) -> List[ComplexType]:
        return [t for t in self.structural_types if isinstance(t, ComplexType)]

    @property
    def entity_sets(self) -> Dict[str, str]:
        return dict(self._entity_sets)

    def get_entity_type(self, name: str, ok_if_not_found: bool = False) -> Optional[EntityType]:
        t = self._types.get(name)
        if isinstance(t, EntityType):
            return t
        if ok_if_not_found:
            return None
        raise KeyError(f"Unable to locate an entity type named '{name}'")

    def get_complex_type(self, name: str) -> Optional[ComplexType]:
        t = self._types.get(name)
        return t if isinstance(t, ComplexType) else None

    def get_entity_type_for_resource(self, resource_name: str) -> Optional[EntityType]:
        tname = self._entity_sets.get(resource_name)
        return self.get_entity_type(tname, ok_if_not_found=True) if tname else None

    def operations(self) -> Iterable[OperationDefinition]:
        yield from self.actions
        yield from self.functions
