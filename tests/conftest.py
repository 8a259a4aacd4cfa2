"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock, Mock
from typing import Any, Dict, List, Optional, Tuple

from odata_bridge.core.session import HttpResponse
from odata_bridge.odata.csdl import CsdlLoader
from odata_bridge.odata.resolver import MetadataResolver
from odata_bridge.odata.store import EntityStore


BASE_URL = "https://test.example.com/odata/"

SAMPLE_METADATA_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="Sales" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Customer">
        <Key>
          <PropertyRef Name="ID"/>
        </Key>
        <Property Name="ID" Type="Edm.Int32" Nullable="false">
          <Annotation Term="Org.OData.Core.V1.Computed" Bool="true"/>
        </Property>
        <Property Name="Name" Type="Edm.String"/>
        <Property Name="Balance" Type="Edm.Decimal"/>
        <Property Name="CreatedAt" Type="Edm.DateTimeOffset"/>
        <Property Name="Address" Type="Sales.Address"/>
      </EntityType>
      <EntityType Name="OrderLine">
        <Key>
          <PropertyRef Name="OrderID"/>
          <PropertyRef Name="LineNo"/>
        </Key>
        <Property Name="OrderID" Type="Edm.Int32" Nullable="false"/>
        <Property Name="LineNo" Type="Edm.Int32" Nullable="false"/>
        <Property Name="Product" Type="Edm.String"/>
        <Property Name="Quantity" Type="Edm.Int16"/>
      </EntityType>
      <EntityType Name="Product">
        <Key>
          <PropertyRef Name="Code"/>
        </Key>
        <Property Name="Code" Type="Edm.String" Nullable="false"/>
        <Property Name="Name" Type="Edm.String"/>
        <Property Name="Weight" Type="Edm.Int64"/>
      </EntityType>
      <ComplexType Name="Address">
        <Property Name="Street" Type="Edm.String"/>
        <Property Name="City" Type="Edm.String"/>
      </ComplexType>
      <Action Name="Rename" IsBound="true">
        <Parameter Name="customer" Type="Sales.Customer"/>
        <Parameter Name="NewName" Type="Edm.String"/>
      </Action>
      <Action Name="Relocate" IsBound="true">
        <Parameter Name="customer" Type="Sales.Customer"/>
        <Parameter Name="address" Type="Sales.Address"/>
      </Action>
      <Action Name="Register">
        <Parameter Name="customer" Type="Sales.Customer"/>
        <ReturnType Type="Sales.Customer"/>
      </Action>
      <Function Name="Register">
        <Parameter Name="name" Type="Edm.String"/>
        <ReturnType Type="Edm.Boolean"/>
      </Function>
      <Function Name="GetTotal">
        <Parameter Name="year" Type="Edm.Int32"/>
        <ReturnType Type="Edm.Decimal"/>
      </Function>
      <Function Name="TopCustomers">
        <Parameter Name="count" Type="Edm.Int32"/>
        <ReturnType Type="Collection(Sales.Customer)"/>
      </Function>
      <Function Name="TopCustomers" IsBound="true">
        <Parameter Name="customers" Type="Collection(Sales.Customer)"/>
        <Parameter Name="count" Type="Edm.Int32"/>
        <ReturnType Type="Collection(Sales.Customer)"/>
      </Function>
      <EntityContainer Name="Container">
        <EntitySet Name="Customers" EntityType="Sales.Customer"/>
        <EntitySet Name="OrderLines" EntityType="Sales.OrderLine"/>
        <EntitySet Name="Products" EntityType="Sales.Product"/>
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


def build_batch_response(
    parts: List[Tuple[int, str, Optional[str], Dict[str, str]]],
    boundary: str = "batchresponse_1",
) -> Tuple[str, str]:
    """Multipart batch response text and its Content-Type for (status, reason, body, headers) parts."""
    cs = "changesetresponse_1"
    lines = [f"--{boundary}", f"Content-Type: multipart/mixed; boundary={cs}", ""]
    for i, (status, reason, body, headers) in enumerate(parts, start=1):
        lines += [
            f"--{cs}",
            "Content-Type: application/http",
            "Content-Transfer-Encoding: binary",
            f"Content-ID: {i}",
            "",
            f"HTTP/1.1 {status} {reason}",
        ]
        if body is not None:
            lines.append("Content-Type: application/json;odata.metadata=minimal")
        lines += [f"{k}: {v}" for k, v in headers.items()]
        lines.append("")
        lines.append(body or "")
    lines += [f"--{cs}--", f"--{boundary}--", ""]
    return "\r\n".join(lines), f"multipart/mixed; boundary={boundary}"


@pytest.fixture
def sample_metadata_xml():
    """Sample OData v4 $metadata document."""
    return SAMPLE_METADATA_XML


@pytest.fixture
def catalog(sample_metadata_xml):
    """MetadataStore loaded from the sample document."""
    return CsdlLoader()(sample_metadata_xml)


@pytest.fixture
def entity_store(catalog):
    return EntityStore(catalog)


@pytest.fixture
def resolver(catalog):
    return MetadataResolver(catalog)


@pytest.fixture
def mock_session():
    """Create a mock ODataSession with an awaitable send."""
    session = Mock()
    session.base = BASE_URL
    session.timeout = 60.0
    session.verify = True
    session.send = AsyncMock()
    return session


@pytest.fixture
def make_response():
    """Factory for HttpResponse objects."""
    def _make(status: int = 200, body: Optional[str] = None, reason: str = "OK", headers: Any = None):
        return HttpResponse(status_code=status, status_text=reason, headers=dict(headers or {}), body=body)
    return _make


@pytest.fixture
def batch_response():
    """Factory for multipart batch response bodies."""
    return build_batch_response
