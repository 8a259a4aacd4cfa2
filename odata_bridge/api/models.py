"""
odata_bridge.api.models - Pydantic models for API requests/responses
=====================================================================
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Example defaults (OData reference "TripPin"-style service)
# ---------------------------------------------------------------------------

EXAMPLE_RESOURCE = "Customers"
EXAMPLE_ENTITY_TYPE = "Customer"
EXAMPLE_FILTER = "Name eq 'Contoso'"


class QueryRequest(BaseModel):
    """Request model for one OData query."""

    resource_name: str = Field(
        default=EXAMPLE_RESOURCE,
        description="Entity set, key path or operation path, e.g. Orders(1)/Sales.Ship",
        json_schema_extra={"example": EXAMPLE_RESOURCE}
    )
    query_options: Dict[str, Any] = Field(
        default_factory=dict,
        description="System query options such as $filter, $select, $top, $count",
        json_schema_extra={"example": {"$filter": EXAMPLE_FILTER, "$top": 10, "$count": "true"}}
    )
    parameters: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Extra parameters; $method switches the verb and $data supplies the body",
        json_schema_extra={"example": {"$method": "POST", "$data": {"Name": "Contoso"}}}
    )


class QueryResponse(BaseModel):
    """Response model for queries."""
    resource_name: str
    results: Any = None
    inline_count: Optional[int] = None


class ChangeItem(BaseModel):
    """One entity change to save."""

    entity_type: str = Field(
        default=EXAMPLE_ENTITY_TYPE,
        description="Entity type name, short or namespace-qualified",
        json_schema_extra={"example": EXAMPLE_ENTITY_TYPE}
    )
    state: str = Field(
        default="Added",
        description="Added, Modified or Deleted",
        json_schema_extra={"example": "Added"}
    )
    values: Dict[str, Any] = Field(
        default_factory=dict,
        description="Current property values (client names)",
        json_schema_extra={"example": {"Name": "Contoso"}}
    )
    original_values: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Values before modification; only changed properties are sent. "
                    "When omitted for a Modified entity, every non-key value is sent",
    )
    etag: Optional[str] = Field(
        default=None,
        description="Concurrency token sent as If-Match",
    )


class SaveRequest(BaseModel):
    """Request model for one atomic save."""
    changes: List[ChangeItem] = Field(default_factory=list)


class KeyMappingModel(BaseModel):
    entity_type_name: str
    temp_value: Any = None
    real_value: Any = None


class SaveResponse(BaseModel):
    """Response model for saves."""
    entities: List[Dict[str, Any]] = Field(default_factory=list)
    key_mappings: List[KeyMappingModel] = Field(default_factory=list)


class MetadataResponse(BaseModel):
    """Summary of the loaded catalog."""
    service: str
    entity_types: List[str] = Field(default_factory=list)
    complex_types: List[str] = Field(default_factory=list)
    entity_sets: Dict[str, str] = Field(default_factory=dict)
    actions: List[str] = Field(default_factory=list)
    functions: List[str] = Field(default_factory=list)
