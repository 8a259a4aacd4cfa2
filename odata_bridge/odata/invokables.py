"""
odata_bridge.odata.invokables - Bound/unbound action and function lookup
=========================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from odata_bridge.odata.metadata import (
    ComplexType,
    EntityType,
    MetadataStore,
    OperationDefinition,
    Parameter,
)
from odata_bridge.odata.resolver import MetadataResolver
from odata_bridge.odata.store import EntityStore


_ARGS_RE = re.compile(r"\([^)]*\)")


@dataclass(frozen=True)
class InvokableEntry:
    """One callable operation with its resolved invocation URL."""
    definition: OperationDefinition
    namespace: str
    url: str

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def is_bound(self) -> bool:
        return self.definition.is_bound

    @property
    def kind(self) -> str:
        return self.definition.kind

    @property
    def parameters(self) -> List[Parameter]:
        return self.definition.parameters


def operation_name(resource_path: str) -> str:
    """
    Candidate operation name: last path segment, argument list stripped.

    Examples
    --------
    >>> operation_name("Orders(1)/Sales.Ship(carrier='x')")
    'Sales.Ship'
    """
    segments = [s for s in (resource_path or "").split("?", 1)[0].split("/") if s]
    if not segments:
        return ""
    return _ARGS_RE.sub("", segments[-1])


class InvokableResolver:
    """
    Catalog of invokable operations, built once per metadata load.

    Parameters
    ----------
    metadata_store : MetadataStore
        Loaded catalog holding action and function definitions
    resolver : MetadataResolver, optional
        Used to find the resource path of a bound operation's binding type
    """

    def __init__(self, metadata_store: MetadataStore, resolver: Optional[MetadataResolver] = None) -> None:
        self.metadata_store = metadata_store
        self.resolver = resolver or MetadataResolver(metadata_store)
        self.actions: List[InvokableEntry] = [self._entry(a) for a in metadata_store.actions]
        self.functions: List[InvokableEntry] = [self._entry(f) for f in metadata_store.functions]

    def _entry(self, op: OperationDefinition) -> InvokableEntry:
        return InvokableEntry(definition=op, namespace=op.namespace, url=self.build_invocation_url(op))

    def build_invocation_url(self, entry: Any) -> str:
        """
        ``{namespace}.{name}`` for unbound operations; bound ones are prefixed
        with the binding entity type's resource path.
        """
        op: OperationDefinition = entry.definition if isinstance(entry, InvokableEntry) else entry
        url = op.full_name
        binding = op.binding_parameter
        if binding is not None:
            edm_type = self.resolver.resolve_edm_type(binding.type)
            if isinstance(edm_type, EntityType) and edm_type.default_resource_name:
                url = f"{edm_type.default_resource_name}/{url}"
        return url

    def resolve(self, resource_path: str) -> Optional[InvokableEntry]:
        """
        Operation addressed by the final segment of ``resource_path``.

        Actions win over functions; within each, bound operations are
        preferred over unbound ones. Returns None when nothing matches.
        """
        name = operation_name(resource_path)
        if not name:
            return None

        def matches(e: InvokableEntry) -> bool:
            return name in (e.name, e.definition.full_name)

        for group in (self.actions, self.functions):
            bound = [e for e in group if e.is_bound and matches(e)]
            if bound:
                return bound[0]
            unbound = [e for e in group if not e.is_bound and matches(e)]
            if unbound:
                return unbound[0]
        return None

    def reshape_payload(self, entry: InvokableEntry, raw: Any, entity_store: Optional[EntityStore] = None) -> Any:
        """
        Instantiate ``raw`` as the operation's first structured parameter type.

        The binding parameter is skipped. Payloads pass through unchanged when
        every parameter is primitive or the type is not in the catalog.
        """
        if not isinstance(raw, dict):
            return raw

        start = 1 if entry.is_bound else 0
        param = next((p for p in entry.parameters[start:] if not p.is_primitive), None)
        if param is None:
            return raw

        edm_type = self.resolver.resolve_edm_type(param.type)
        if edm_type is None:
            return raw

        store = entity_store or EntityStore(self.metadata_store)
        if isinstance(edm_type, EntityType):
            return store.unwrap_instance(store.create_entity(edm_type, raw))
        if isinstance(edm_type, ComplexType):
            return store.create_instance(edm_type, raw)
        return raw

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "actions": [e.url for e in self.actions],
            "functions": [e.url for e in self.functions],
        }
