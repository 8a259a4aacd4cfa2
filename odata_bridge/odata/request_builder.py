"""
odata_bridge.odata.request_builder - Change and query request descriptors
==========================================================================

Turns one pending change, or one query, into a transport-agnostic
``RequestDescriptor``. Nothing here performs I/O.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

from odata_bridge.odata.invokables import InvokableResolver
from odata_bridge.odata.literals import transform_value
from odata_bridge.odata.resolver import MetadataResolver
from odata_bridge.odata.store import Entity, EntityState, EntityStore, ExtraMetadata, PendingChange

logger = logging.getLogger("odata_bridge.odata")

JSON_CONTENT_TYPE = "application/json;IEEE754Compatible=true"


@dataclass
class RequestDescriptor:
    """
    One HTTP request, independent of the transport.

    Attributes
    ----------
    method : str
        HTTP verb
    uri : str
        Target URI (absolute once built)
    headers : dict
        Request headers; change requests carry ``Content-ID``
    data : Any
        Body (JSON-serializable) or None
    """
    method: str
    uri: str
    headers: Dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def content_id(self) -> Optional[int]:
        cid = self.headers.get("Content-ID")
        return int(cid) if cid else None


@dataclass
class EntityQuery:
    """
    An already-built query, as produced by an external query builder.

    Parameters
    ----------
    resource_name : str
        Entity set, key path or operation path, e.g. "Customers",
        "Orders(1)/Sales.Ship"
    query_options : dict, optional
        System query options ($filter, $select, $count, ...)
    parameters : dict, optional
        Free-form parameters; ``$method`` switches the verb, ``$data``
        supplies an explicit body for non-GET calls
    """
    resource_name: str
    query_options: Dict[str, Any] = field(default_factory=dict)
    parameters: Optional[Dict[str, Any]] = None


def to_query_string(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Percent-encode a flat mapping.

    Examples
    --------
    >>> to_query_string({"a": "x y", "$top": 5})
    'a=x%20y&%24top=5'
    """
    if not payload:
        return None
    return "&".join(
        f"{quote(str(k), safe='')}={quote(str(v), safe='')}" for k, v in payload.items()
    )


def add_query_string(url: str, parameters: Optional[Dict[str, Any]]) -> str:
    qs = to_query_string(parameters)
    if not qs:
        return url
    sep = "?" if "?" not in url else "&"
    return url + sep + qs


class RequestBuilder:
    """
    Builds request descriptors for saves and queries.

    Parameters
    ----------
    resolver : MetadataResolver
        Resource path and key literal resolution
    entity_store : EntityStore
        Serialization and the extra-metadata side table
    invokables : InvokableResolver, optional
        Used to reshape custom operation payloads
    """

    def __init__(
        self,
        resolver: MetadataResolver,
        entity_store: EntityStore,
        invokables: Optional[InvokableResolver] = None,
    ) -> None:
        self.resolver = resolver
        self.entity_store = entity_store
        self.invokables = invokables

    # ---------------- changes ----------------

    def build_change_request(
        self,
        change: PendingChange,
        route_prefix: str = "",
    ) -> Optional[RequestDescriptor]:
        """
        Request for one pending change, or None when there is nothing to send.

        Added -> POST to the collection with the full entity; Modified ->
        PATCH to the key path with the changed values; Deleted -> DELETE to
        the key path. Unchanged and Detached entities are skipped.
        """
        entity = change.entity
        request = RequestDescriptor(
            method="",
            uri="",
            headers={"Content-Type": JSON_CONTENT_TYPE},
        )

        if change.state is EntityState.ADDED:
            resource = change.resource_path or self.resolver.resolve_resource_path(entity)
            request.method = "POST"
            request.uri = route_prefix + resource
            request.data = self.entity_store.unwrap_instance(entity, transform_value)
        elif change.state is EntityState.MODIFIED:
            self._update_delete_merge_request(request, entity, route_prefix)
            request.method = "PATCH"
            request.data = self.entity_store.unwrap_changed_values(entity, transform_value)
        elif change.state is EntityState.DELETED:
            self._update_delete_merge_request(request, entity, route_prefix)
            request.method = "DELETE"
            request.headers.pop("Content-Type", None)
        else:
            return None

        return request

    def _update_delete_merge_request(
        self,
        request: RequestDescriptor,
        entity: Entity,
        route_prefix: str,
    ) -> None:
        extra = self.entity_store.get_extra_metadata(entity)
        if extra is None:
            uri_key = self.resolver.resolve_key_literal(entity)
            self.entity_store.set_extra_metadata(entity, ExtraMetadata(uri_key=uri_key))
        else:
            if not extra.uri_key:
                extra.uri_key = self.resolver.resolve_key_literal(entity)
            uri_key = extra.uri_key
            if extra.etag:
                request.headers["If-Match"] = extra.etag

        # cached keys may already be absolute
        request.uri = uri_key if "//" in uri_key else route_prefix + uri_key

    # ---------------- queries ----------------

    def build_query_request(self, query: EntityQuery, url: str) -> RequestDescriptor:
        """
        Request for a query whose base URL (resource + query options) is ``url``.

        GET by default, with parameters appended to the query string. A
        ``$method`` parameter switches the verb; the body is then ``$data``
        (reshaped for custom operations) or the remaining parameters.
        """
        request = RequestDescriptor(method="GET", uri=url)
        if not query.parameters:
            return request

        params = dict(query.parameters)
        method = str(params.pop("$method", None) or "GET").upper()

        if method == "GET":
            request.uri = add_query_string(url, params)
            return request

        request.method = method
        request.headers["Content-Type"] = JSON_CONTENT_TYPE
        if "$data" in params:
            request.data = self.get_data(query, params["$data"])
        else:
            request.data = params
        logger.debug("%s %s carries a body of %s", method, url, type(request.data).__name__)
        return request

    def get_data(self, query: EntityQuery, data: Any) -> Any:
        """Body for a non-GET query; custom operation payloads are reshaped."""
        if data is None:
            return None

        if isinstance(data, Entity):
            return self.entity_store.unwrap_instance(data)

        if not isinstance(data, dict) or not self.resolver.validate_property_names(data):
            return data

        if self.invokables is None:
            return data

        entry = self.invokables.resolve(query.resource_name)
        if entry is None:
            return data

        return self.invokables.reshape_payload(entry, copy.deepcopy(data), self.entity_store)
