"""
Tests for odata_bridge.odata.invokables module.
"""

import pytest

from odata_bridge.odata.invokables import InvokableResolver, operation_name


@pytest.fixture
def invokables(catalog, resolver):
    return InvokableResolver(catalog, resolver)


class TestOperationName:

    def test_strips_arguments(self):
        assert operation_name("Customers(1)/Sales.Rename") == "Sales.Rename"
        assert operation_name("GetTotal(year=2024)") == "GetTotal"
        assert operation_name("Customers/Sales.TopCustomers(count=3)?$top=1") == "Sales.TopCustomers"

    def test_empty(self):
        assert operation_name("") == ""


class TestInvokableResolver:
    """Tests for InvokableResolver."""

    def test_invocation_urls(self, invokables):
        urls = invokables.as_dict()
        assert "Customers/Sales.Rename" in urls["actions"]
        assert "Sales.Register" in urls["actions"]
        assert "Sales.GetTotal" in urls["functions"]
        assert "Customers/Sales.TopCustomers" in urls["functions"]

    def test_action_wins_over_function(self, invokables):
        entry = invokables.resolve("Register")
        assert entry.kind == "action"

    def test_bound_wins_over_unbound(self, invokables):
        entry = invokables.resolve("Customers/Sales.TopCustomers(count=3)")
        assert entry.kind == "function"
        assert entry.is_bound
        assert entry.url == "Customers/Sales.TopCustomers"

    def test_unknown_operation(self, invokables):
        assert invokables.resolve("Customers") is None
        assert invokables.resolve("Sales.Nope") is None


class TestReshapePayload:
    """Tests for reshape_payload."""

    def test_primitive_parameters_pass_through(self, invokables):
        entry = invokables.resolve("GetTotal")
        raw = {"year": 2024}
        assert invokables.reshape_payload(entry, raw) is raw

    def test_binding_parameter_is_skipped(self, invokables):
        entry = invokables.resolve("Customers(1)/Sales.Rename")
        raw = {"NewName": "x"}
        assert invokables.reshape_payload(entry, raw) is raw

    def test_complex_parameter(self, invokables):
        entry = invokables.resolve("Customers(1)/Sales.Relocate")
        shaped = invokables.reshape_payload(entry, {"Street": "Main", "City": "X", "Extra": 1})
        assert shaped == {"Street": "Main", "City": "X"}

    def test_entity_parameter(self, invokables, entity_store):
        entry = invokables.resolve("Register")
        shaped = invokables.reshape_payload(entry, {"Name": "Contoso", "Bogus": 1}, entity_store)
        assert shaped == {"Name": "Contoso"}
        assert entity_store.entities == []

    def test_non_dict_payload(self, invokables):
        entry = invokables.resolve("Register")
        assert invokables.reshape_payload(entry, [1, 2]) == [1, 2]
