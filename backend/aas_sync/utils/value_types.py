"""
XSD value type helpers.

Maps XML Schema datatypes to HTML5 input types for the details panel and
coerces user-entered text into JSON values before a value PATCH.
"""

from typing import Any

# Mapping from XSD datatypes to HTML input types
XSD_TO_HTML_INPUT: dict[str, str] = {
    # String types
    "xs:string": "text",
    "xs:normalizedString": "text",
    "xs:token": "text",
    "xs:language": "text",
    # Boolean
    "xs:boolean": "checkbox",
    # Numeric types (decimal-based)
    "xs:decimal": "number",
    "xs:float": "number",
    "xs:double": "number",
    # Integer types
    "xs:integer": "number",
    "xs:int": "number",
    "xs:long": "number",
    "xs:short": "number",
    "xs:byte": "number",
    "xs:nonNegativeInteger": "number",
    "xs:positiveInteger": "number",
    "xs:unsignedInt": "number",
    "xs:unsignedLong": "number",
    "xs:unsignedShort": "number",
    "xs:unsignedByte": "number",
    # Date and time types
    "xs:date": "date",
    "xs:time": "time",
    "xs:dateTime": "datetime-local",
    "xs:duration": "text",
    # URI types
    "xs:anyURI": "url",
}


def normalize_xsd_type(xsd_type: str | None) -> str | None:
    """Normalize "xsd:" prefixes to "xs:"."""
    if xsd_type is None:
        return None
    type_str = str(xsd_type).strip()
    if type_str.startswith("xsd:"):
        type_str = "xs:" + type_str[4:]
    return type_str


def get_input_type(xsd_type: str | None) -> str:
    """
    Get HTML input type for an XSD datatype.

    Args:
        xsd_type: XSD datatype string (e.g., "xs:string")

    Returns:
        HTML input type (e.g., "text", "number", "date")
    """
    type_str = normalize_xsd_type(xsd_type)
    if type_str is None:
        return "text"
    return XSD_TO_HTML_INPUT.get(type_str, "text")


def coerce_value(raw: str, value_type: str | None) -> Any:
    """
    Convert user-entered text into a JSON value for the given XSD type.

    Unparseable numbers and booleans other than "true"/"false" are returned
    as the original string so the server can produce its own validation
    message.

    Args:
        raw: Text as typed by the user
        value_type: XSD datatype of the target element

    Returns:
        bool, int, float or the unchanged string
    """
    if not value_type:
        return raw

    type_str = value_type.lower()
    if "boolean" in type_str:
        if raw in ("true", "false"):
            return raw == "true"
        return raw

    if any(t in type_str for t in ("int", "long", "short", "byte")):
        try:
            return int(raw.strip(), 10)
        except ValueError:
            return raw

    if any(t in type_str for t in ("float", "double", "decimal")):
        try:
            return float(raw)
        except ValueError:
            return raw

    return raw
