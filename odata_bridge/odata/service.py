"""
odata_bridge.odata.service - OData v4 data service
===================================================

Asynchronous entry points used by an application's entity manager:

- fetch_metadata: load ``$metadata`` into the catalog
- execute_query: run one read (or custom operation) request
- save_changes: send pending changes as one atomic ``$batch``

Every failure is raised as an ``ODataError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, Union

import requests

from odata_bridge.core.errors import MetadataResolutionError, ODataError, normalize_error
from odata_bridge.core.session import HttpResponse, ODataUpstreamError
from odata_bridge.odata.base import ChangeRequestInterceptor, WebApiDataService
from odata_bridge.odata.batch import (
    BatchAssembler,
    BatchDisassembler,
    BatchEnvelope,
    SaveResult,
    decode_batch_response,
    encode_batch,
)
from odata_bridge.odata.csdl import CsdlLoader
from odata_bridge.odata.invokables import InvokableResolver
from odata_bridge.odata.metadata import MetadataStore
from odata_bridge.odata.request_builder import (
    EntityQuery,
    RequestBuilder,
    RequestDescriptor,
    add_query_string,
)
from odata_bridge.odata.resolver import MetadataResolver
from odata_bridge.odata.store import Entity, EntityStore, PendingChange

TRANSPORT_FAILURES = (ODataUpstreamError, requests.RequestException)


@dataclass
class QueryResult:
    results: Any
    inline_count: Optional[int]
    query: EntityQuery
    http_response: Optional[HttpResponse] = None


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    for k, v in headers.items():
        if k.lower() == name.lower():
            return v
    return None


class OData4DataService:
    """
    OData v4 data service adapter.

    Protocol-neutral behaviour is forwarded to a ``WebApiDataService``
    instance rather than inherited.

    Parameters
    ----------
    session : ODataSession
        Transport with an awaitable ``send(descriptor)`` and a ``base`` URL
    metadata_store : MetadataStore, optional
        Catalog to fill; a fresh one by default
    entity_store : EntityStore, optional
        Store whose pending changes are saved
    catalog_loader : callable, optional
        ``(metadata_text) -> MetadataStore``; defaults to ``CsdlLoader``
    interceptor_class : type, optional
        ``ChangeRequestInterceptor`` subclass applied to change requests
    inner : WebApiDataService, optional
        Base capability set to delegate to

    Examples
    --------
    >>> svc = OData4DataService(sess)
    >>> await svc.fetch_metadata()
    >>> result = await svc.execute_query(EntityQuery("Customers", {"$top": 10}))
    """

    name = "OData4"
    headers = {"OData-Version": "4.0"}

    def __init__(
        self,
        session: Any,
        *,
        metadata_store: Optional[MetadataStore] = None,
        entity_store: Optional[EntityStore] = None,
        catalog_loader: Optional[Callable[[str], MetadataStore]] = None,
        interceptor_class: Optional[Type[ChangeRequestInterceptor]] = None,
        inner: Optional[WebApiDataService] = None,
    ) -> None:
        self.session = session
        self.inner = inner or WebApiDataService(session.base, interceptor_class=interceptor_class)
        self.service_name = self.inner.service_root
        self.metadata_store = metadata_store or (entity_store.metadata_store if entity_store else MetadataStore())
        self.entity_store = entity_store or EntityStore(self.metadata_store)
        self.catalog_loader = catalog_loader or CsdlLoader(self.metadata_store.naming_convention)
        self.resolver = MetadataResolver(self.metadata_store)
        self.invokables = InvokableResolver(self.metadata_store, self.resolver)
        self.logger = logging.getLogger("odata_bridge.odata")

    # ---------------- forwarded to the base service ----------------

    def get_absolute_url(self, url: str) -> str:
        return self.inner.get_absolute_url(url)

    def catch_no_connection_error(self, err: ODataError) -> ODataError:
        return self.inner.catch_no_connection_error(err)

    def create_change_request_interceptor(
        self,
        save_context: dict,
        entities: List[Entity],
    ) -> ChangeRequestInterceptor:
        return self.inner.create_change_request_interceptor(save_context, entities)

    # ---------------- helpers ----------------

    def _create_error(self, failure: Any, url: str) -> ODataError:
        return self.catch_no_connection_error(normalize_error(failure, url))

    @property
    def request_builder(self) -> RequestBuilder:
        return RequestBuilder(self.resolver, self.entity_store, self.invokables)

    # ---------------- metadata ----------------

    async def fetch_metadata(self) -> MetadataStore:
        """
        Load ``$metadata`` into the catalog and rebuild the operation table.

        The catalog is imported only once per service root.
        """
        url = self.get_absolute_url("$metadata")
        request = RequestDescriptor("GET", url, {"Accept": "application/xml"})
        try:
            response = await self.session.send(request)
        except TRANSPORT_FAILURES as e:
            err = self._create_error(e, url)
            err.message = f"Metadata query failed for: {url}; {err.message or ''}"
            raise err from e

        if not response.body:
            raise MetadataResolutionError(f"Metadata query failed for: {url}", url=url)

        if not self.metadata_store.has_metadata_for(self.service_name):
            try:
                loaded = self.catalog_loader(response.body)
            except (ValueError, KeyError) as e:
                raise MetadataResolutionError(
                    f"Metadata query failed for {url}; Unable to process returned metadata: {e}",
                    url=url,
                ) from e
            self.metadata_store.import_metadata(loaded)
            self.metadata_store.add_data_service(self.service_name)

        self.invokables = InvokableResolver(self.metadata_store, self.resolver)
        self.logger.debug(
            "Loaded metadata from %s: %d entity type(s), %d action(s), %d function(s)",
            url,
            len(self.metadata_store.entity_types),
            len(self.invokables.actions),
            len(self.invokables.functions),
        )
        return self.metadata_store

    # ---------------- queries ----------------

    async def execute_query(self, query: EntityQuery) -> QueryResult:
        """
        Run one query and pass its payload through.

        Returns
        -------
        QueryResult
            ``results`` is the ``value`` array (or the body for single
            entities), ``inline_count`` the parsed ``@odata.count``
        """
        url = self.get_absolute_url(add_query_string(query.resource_name, query.query_options))
        request = self.request_builder.build_query_request(query, url)
        request.headers = {**self.headers, **request.headers}

        try:
            response = await self.session.send(request)
        except TRANSPORT_FAILURES as e:
            raise self._create_error(e, request.uri) from e

        try:
            data = response.json()
        except ValueError:
            data = response.body

        inline_count: Optional[int] = None
        results: Any = None
        if isinstance(data, dict):
            count = data.get("@odata.count")
            if count not in (None, ""):
                try:
                    inline_count = int(float(count))
                except (TypeError, ValueError, OverflowError):
                    self.logger.warning("Ignoring non-numeric @odata.count %r from %s", count, request.uri)
            results = data["value"] if "value" in data else data
        elif data is not None:
            results = data

        return QueryResult(results=results, inline_count=inline_count, query=query, http_response=response)

    # ---------------- saves ----------------

    def create_change_requests(
        self,
        save_context: dict,
        changes: Sequence[PendingChange],
    ) -> BatchEnvelope:
        """Build, intercept and number the change requests of one save."""
        interceptor = self.create_change_request_interceptor(save_context, [c.entity for c in changes])
        builder = self.request_builder
        assembler = BatchAssembler(self.entity_store)

        for index, change in enumerate(changes):
            request = builder.build_change_request(change, save_context["route_prefix"])
            if request is None:
                continue
            request = interceptor.get_request(request, change.entity, index)
            assembler.add(request, change.entity)

        envelope = assembler.assemble()
        interceptor.done(envelope.requests)
        return envelope

    async def save_changes(
        self,
        changes: Optional[Sequence[Union[PendingChange, Entity]]] = None,
    ) -> SaveResult:
        """
        Save pending changes as one atomic batch.

        Parameters
        ----------
        changes : list, optional
            Pending changes or entities in save order; defaults to every
            entity tracked by the entity store

        Returns
        -------
        SaveResult
            Saved entities in request order and key mappings for
            server-generated keys

        Raises
        ------
        ODataError
            Transport failure or the first failed part; all or nothing
        """
        if changes is None:
            pending = self.entity_store.pending_changes()
        else:
            pending = [
                c if isinstance(c, PendingChange) else self.entity_store.pending_changes([c])[0]
                for c in changes
            ]

        route_prefix = self.get_absolute_url("")
        url = f"{route_prefix}$batch"
        save_context = {"route_prefix": route_prefix, "data_service": self}

        envelope = self.create_change_requests(save_context, pending)
        if not envelope.requests:
            return SaveResult()

        request = RequestDescriptor(
            "POST",
            url,
            {**self.headers, "Content-Type": envelope.content_type, "Accept": "multipart/mixed"},
            encode_batch(envelope),
        )
        try:
            response = await self.session.send(request)
        except TRANSPORT_FAILURES as e:
            raise self._create_error(e, url) from e

        content_type = _header(response.headers, "Content-Type") or envelope.content_type
        parts = decode_batch_response(response.body or "", content_type)

        result = BatchDisassembler(self.resolver, self.entity_store).disassemble(envelope, parts, url)
        result.http_response = response
        return result
