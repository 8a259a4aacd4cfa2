"""
odata_bridge.odata - OData v4 translation layer
================================================

- DataType and value formatting (literals)
- MetadataStore catalog and the CSDL loader
- MetadataResolver / InvokableResolver
- EntityStore, RequestBuilder, batch assembly
- OData4DataService: fetch_metadata / execute_query / save_changes

"""

from odata_bridge.odata.literals import DataType, format_value, parse_value, to_uri_literal
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
from odata_bridge.odata.csdl import CsdlLoader
from odata_bridge.odata.store import Entity, EntityState, EntityStore, ExtraMetadata, PendingChange
from odata_bridge.odata.resolver import MetadataResolver
from odata_bridge.odata.invokables import InvokableEntry, InvokableResolver
from odata_bridge.odata.request_builder import EntityQuery, RequestBuilder, RequestDescriptor
from odata_bridge.odata.batch import BatchEnvelope, KeyMapping, SaveResult
from odata_bridge.odata.base import ChangeRequestInterceptor, WebApiDataService
from odata_bridge.odata.service import OData4DataService, QueryResult

__all__ = [
    "DataType",
    "format_value",
    "parse_value",
    "to_uri_literal",
    "AutoGeneratedKeyType",
    "ComplexType",
    "DataProperty",
    "EntityType",
    "MetadataStore",
    "NamingConvention",
    "OperationDefinition",
    "Parameter",
    "CsdlLoader",
    "Entity",
    "EntityState",
    "EntityStore",
    "ExtraMetadata",
    "PendingChange",
    "MetadataResolver",
    "InvokableEntry",
    "InvokableResolver",
    "EntityQuery",
    "RequestBuilder",
    "RequestDescriptor",
    "BatchEnvelope",
    "KeyMapping",
    "SaveResult",
    "ChangeRequestInterceptor",
    "WebApiDataService",
    "OData4DataService",
    "QueryResult",
]
