"""
Tests for element details and value type helpers.
"""

import pytest

from aas_sync.clients.aas_client import Depth, GatewayError
from aas_sync.schemas.kinds import ElementKind
from aas_sync.services.details import ElementDetailsService, build_details, stringify_reference
from aas_sync.utils.value_types import coerce_value, get_input_type


class TestBuildDetails:
    """Tests for the details projection."""

    def test_range_min_max_aliases(self):
        """Test minValue/maxValue fill the range bounds."""
        details = build_details({"idShort": "r", "minValue": 1, "maxValue": 9, "valueType": "xs:int"})

        assert details.kind == ElementKind.RANGE
        assert (details.min, details.max) == (1, 9)
        assert details.inputType == "number"

    def test_operation_variables(self):
        """Test wrapped variables are unwrapped and nameless ones dropped."""
        details = build_details({
            "idShort": "op",
            "modelType": "Operation",
            "inputVariables": [
                {"value": {"idShort": "speed", "modelType": "Property", "valueType": "xs:double"}},
                {"value": {"modelType": "Property"}},
            ],
            "outputVariables": [{"idShort": "ok", "modelType": "Property", "valueType": "xs:boolean"}],
        })

        assert [v.idShort for v in details.inputVariables] == ["speed"]
        assert details.inputVariables[0].valueType == "xs:double"
        assert [v.idShort for v in details.outputVariables] == ["ok"]
        assert details.inoutputVariables == []

    def test_relationship_references(self):
        """Test references render as type:value pairs."""
        details = build_details({
            "idShort": "rel",
            "first": {"keys": [{"type": "Submodel", "value": "sm1"}, {"type": "Property", "value": "p"}]},
            "secondReference": "urn:x",
            "annotations": [{"idShort": "note", "modelType": "Property", "value": "hi"}],
        })

        assert details.kind == ElementKind.ANNOTATED_RELATIONSHIP_ELEMENT
        assert details.firstRef == "Submodel:sm1 / Property:p"
        assert details.secondRef == "urn:x"
        assert details.annotations[0].value == "hi"

    def test_multi_language_texts(self):
        """Test language texts are listed."""
        details = build_details({"idShort": "name", "value": [{"language": "en", "text": "Pump"}]})

        assert details.kind == ElementKind.MULTI_LANGUAGE_PROPERTY
        assert details.texts[0].language == "en"

    def test_stringify_reference_fallbacks(self):
        """Test references without keys fall back to value or JSON."""
        assert stringify_reference(None) is None
        assert stringify_reference({"value": "v"}) == "v"
        assert stringify_reference({"type": "X"}) == '{"type": "X"}'


class TestElementDetailsService:
    """Tests for loading details of tree nodes."""

    async def _node(self, builder, gateway, scope, listing):
        gateway.submodel_listings = [[{"id": "sm1"}]]
        (root,) = await builder.discover_roots(scope)
        gateway.script_elements(Depth.SHALLOW, (), listing)
        (node,) = await builder.expand(scope, root)
        return node

    @pytest.mark.asyncio
    async def test_direct_fetch(self, builder, gateway, session):
        """Test details come from a direct fetch and update the node."""
        node = await self._node(builder, gateway, session.scope, [{"idShort": "p"}])
        gateway.results["get_element"] = {"idShort": "p", "valueType": "xs:string", "value": "x"}

        details = await ElementDetailsService(builder).load_details(session, node)

        assert details.kind == ElementKind.PROPERTY
        assert details.value == "x"
        assert node.kind == ElementKind.PROPERTY
        assert node.raw["valueType"] == "xs:string"
        assert node.raw["idShortPath"] == "p"

    @pytest.mark.asyncio
    async def test_parent_listing_fallback(self, builder, gateway, session):
        """Test a failed direct fetch falls back to the parent listing."""
        node = await self._node(builder, gateway, session.scope, [{"idShort": "p", "valueType": "xs:int"}])
        gateway.results["get_element"] = GatewayError("Not Found", 404)

        details = await ElementDetailsService(builder).load_details(session, node)

        assert details.degraded is False
        assert details.valueType == "xs:int"

    @pytest.mark.asyncio
    async def test_degraded_panel(self, builder, gateway, session):
        """Test an element that cannot be found yields a degraded panel."""
        node = await self._node(builder, gateway, session.scope, [{"idShort": "p"}])
        gateway.results["get_element"] = GatewayError("Not Found", 404)
        gateway.script_elements(Depth.SHALLOW, (), [])

        details = await ElementDetailsService(builder).load_details(session, node)

        assert details.degraded is True
        assert details.kind == ElementKind.UNKNOWN
        assert details.label == "p"

    @pytest.mark.asyncio
    async def test_submodel_rejected(self, builder, gateway, session):
        """Test details are only served for elements."""
        gateway.submodel_listings = [[{"id": "sm1"}]]
        (root,) = await builder.discover_roots(session.scope)

        with pytest.raises(ValueError):
            await ElementDetailsService(builder).load_details(session, root)


class TestValueTypes:
    """Tests for XSD input types and value coercion."""

    def test_input_types(self):
        """Test XSD types map to HTML input types."""
        assert get_input_type("xs:boolean") == "checkbox"
        assert get_input_type("xsd:dateTime") == "datetime-local"
        assert get_input_type("xs:unknownType") == "text"
        assert get_input_type(None) == "text"

    def test_coerce_boolean(self):
        """Test boolean text becomes a bool."""
        assert coerce_value("true", "xs:boolean") is True
        assert coerce_value("false", "xs:boolean") is False

    def test_other_boolean_text_kept(self):
        """Test boolean text other than true/false is sent unchanged."""
        assert coerce_value("0", "xs:boolean") == "0"
        assert coerce_value("False", "xs:boolean") == "False"

    def test_coerce_numbers(self):
        """Test integer and floating point text becomes a number."""
        assert coerce_value("42", "xs:int") == 42
        assert coerce_value("-7", "xs:long") == -7
        assert coerce_value("2.5", "xs:double") == 2.5

    def test_unparseable_kept_as_text(self):
        """Test unparseable numbers are sent as the original string."""
        assert coerce_value("abc", "xs:integer") == "abc"
        assert coerce_value("1,5", "xs:float") == "1,5"

    def test_untyped(self):
        """Test text without a value type is unchanged."""
        assert coerce_value("42", None) == "42"
        assert coerce_value("x", "xs:string") == "x"
