"""
OData v4 bridge (odata_bridge)
==============================

Translates an application's pending entity changes and queries into OData
v4 requests, and the service's batch responses and error bodies back into
entity-addressable results.

Usage
-----
>>> from odata_bridge import ConnectionContext, EntityQuery
>>>
>>> with ConnectionContext(base_url="https://host/odata/") as conn:
...     svc = conn.get_data_service()
...     await svc.fetch_metadata()
...     result = await svc.execute_query(EntityQuery("Customers", {"$top": 10}))
...
...     store = svc.entity_store
...     store.add("Customer", {"Name": "Contoso"})
...     saved = await svc.save_changes()

Subpackages
-----------
- odata_bridge.core: session, configuration and the error taxonomy
- odata_bridge.odata: formatting, catalog, request building and batching
- odata_bridge.api: optional FastAPI gateway

"""

__version__ = "0.1.0"

from odata_bridge.core.errors import (
    FormatError,
    MetadataResolutionError,
    ODataError,
    ProtocolError,
    TransportError,
)
from odata_bridge.core.session import ODataAuth, ODataConfig, ODataSession, ODataUpstreamError
from odata_bridge.core.connection import ConnectionContext

from odata_bridge.odata import (
    EntityQuery,
    EntityState,
    EntityStore,
    KeyMapping,
    MetadataStore,
    OData4DataService,
    QueryResult,
    SaveResult,
)

__all__ = [
    "__version__",
    "ODataError",
    "FormatError",
    "MetadataResolutionError",
    "TransportError",
    "ProtocolError",
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ODataUpstreamError",
    "ConnectionContext",
    "EntityQuery",
    "EntityState",
    "EntityStore",
    "KeyMapping",
    "MetadataStore",
    "OData4DataService",
    "QueryResult",
    "SaveResult",
]
