"""
odata_bridge.odata.csdl - $metadata (CSDL XML) loading
=======================================================

Lightweight CSDL reader that fills a ``MetadataStore`` with what the
adapter needs: structural types, keys, entity sets and operations.
Annotations other than server-generated key markers are ignored.
"""

from __future__ import annotations

from typing import List, Optional, Set
import xml.etree.ElementTree as ET

from odata_bridge.odata.metadata import (
    AutoGeneratedKeyType,
    ComplexType,
    DataProperty,
    EntityType,
    MetadataStore,
    NamingConvention,
    OperationDefinition,
    Parameter,
)


def _strip_ns(tag: str) -> str:
    """Strip XML namespace from a tag name."""
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _children(node: ET.Element, tag: str) -> List[ET.Element]:
    return [c for c in node if _strip_ns(c.tag) == tag]


CORE_NAMESPACE = "Org.OData.Core.V1"


def _core_aliases(root: ET.Element) -> Set[str]:
    """Qualifiers that name the Core vocabulary: its namespace plus declared aliases."""
    aliases = {CORE_NAMESPACE, "Core"}
    for node in root.iter():
        if _strip_ns(node.tag) == "Include" and node.attrib.get("Namespace") == CORE_NAMESPACE:
            alias = node.attrib.get("Alias")
            if alias:
                aliases.add(alias)
    return aliases


def _is_computed(prop: ET.Element, core: Set[str]) -> bool:
    for attr, val in prop.attrib.items():
        if _strip_ns(attr) == "StoreGeneratedPattern" and val == "Identity":
            return True
    for ann in _children(prop, "Annotation"):
        qualifier, _, term = ann.attrib.get("Term", "").rpartition(".")
        if term == "Computed" and qualifier in core and ann.attrib.get("Bool", "true") == "true":
            return True
    return False


class CsdlLoader:
    """
    Parse CSDL XML into a ``MetadataStore``.

    Parameters
    ----------
    naming_convention : NamingConvention, optional
        Applied to property names to derive their client-side names

    Examples
    --------
    >>> store = CsdlLoader()(xml_text)
    >>> store.get_entity_type("Customer").key_names
    ['ID']
    """

    def __init__(self, naming_convention: Optional[NamingConvention] = None) -> None:
        self.naming_convention = naming_convention or NamingConvention.none()

    def __call__(self, xml_text: str) -> MetadataStore:
        return self.load(xml_text)

    def load(self, xml_text: str) -> MetadataStore:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ValueError(f"Invalid CSDL document: {e}") from e
        store = MetadataStore(self.naming_convention)
        core = _core_aliases(root)

        schemas = [n for n in root.iter() if _strip_ns(n.tag) == "Schema"]
        if not schemas:
            raise ValueError("No Schema element found in $metadata")

        for schema in schemas:
            namespace = schema.attrib.get("Namespace", "")
            for node in schema:
                tag = _strip_ns(node.tag)
                if tag == "EntityType":
                    store.add_type(self._entity_type(node, namespace, core))
                elif tag == "ComplexType":
                    store.add_type(ComplexType(
                        name=node.attrib["Name"],
                        namespace=namespace,
                        properties=self._properties(node),
                    ))
                elif tag in ("Action", "Function"):
                    store.add_operation(self._operation(node, namespace, tag.lower()))

        # containers last so entity types are known when sets are bound
        for node in root.iter():
            if _strip_ns(node.tag) == "EntitySet":
                es_name = node.attrib.get("Name")
                et_full = node.attrib.get("EntityType")
                if es_name and et_full:
                    store.add_entity_set(es_name, et_full)

        return store

    def _properties(self, node: ET.Element) -> List[DataProperty]:
        props: List[DataProperty] = []
        for c in _children(node, "Property"):
            server_name = c.attrib.get("Name")
            if not server_name:
                continue
            props.append(DataProperty(
                name=self.naming_convention.server_to_client(server_name),
                name_on_server=server_name,
                data_type=c.attrib.get("Type", "Edm.String"),
                is_nullable=c.attrib.get("Nullable", "true").lower() != "false",
            ))
        return props

    def _entity_type(self, node: ET.Element, namespace: str, core: Set[str]) -> EntityType:
        props = self._properties(node)
        key_names: List[str] = []
        for key in _children(node, "Key"):
            for ref in _children(key, "PropertyRef"):
                key_names.append(self.naming_convention.server_to_client(ref.attrib["Name"]))

        auto = AutoGeneratedKeyType.NONE
        for c in _children(node, "Property"):
            client_name = self.naming_convention.server_to_client(c.attrib.get("Name", ""))
            if client_name in key_names and _is_computed(c, core):
                auto = AutoGeneratedKeyType.IDENTITY

        return EntityType(
            name=node.attrib["Name"],
            namespace=namespace,
            properties=props,
            key_names=key_names,
            auto_generated_key_type=auto,
        )

    def _operation(self, node: ET.Element, namespace: str, kind: str) -> OperationDefinition:
        params = [
            Parameter(
                name=p.attrib["Name"],
                type=p.attrib.get("Type", "Edm.String"),
                nullable=p.attrib.get("Nullable", "true").lower() != "false",
            )
            for p in _children(node, "Parameter")
        ]
        ret = _children(node, "ReturnType")
        return OperationDefinition(
            name=node.attrib["Name"],
            kind=kind,
            namespace=namespace,
            is_bound=node.attrib.get("IsBound", "false").lower() == "true",
            parameters=params,
            return_type=ret[0].attrib.get("Type") if ret else None,
        )
