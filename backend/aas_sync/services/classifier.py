"""
Element kind classification.

Servers do not always tag element payloads with a modelType. This module
turns such untagged payloads into an ElementKind once, so the tree builder
and the details panel can switch on the kind instead of re-inspecting raw
fields.
"""

import logging
from typing import Any

from aas_sync.schemas.kinds import COLLECTION_KINDS, SUBMODEL_KINDS, ElementKind

logger = logging.getLogger(__name__)

__all__ = [
    "COLLECTION_KINDS",
    "SUBMODEL_KINDS",
    "ElementKind",
    "classify_submodel",
    "explicit_kind",
    "infer_kind",
]

# Older serializations wrap the discriminator as {"name": "Property"}
_DISCRIMINATOR_FIELDS = ("modelType", "type")

_OPERATION_VARIABLE_FIELDS = ("inputVariables", "outputVariables", "inoutputVariables")


def explicit_kind(raw: dict[str, Any]) -> ElementKind | None:
    """Return the kind named by an explicit discriminator, if any."""
    for field in _DISCRIMINATOR_FIELDS:
        tag = raw.get(field)
        if isinstance(tag, dict):
            tag = tag.get("name")
        if not isinstance(tag, str) or not tag:
            continue
        try:
            return ElementKind(tag)
        except ValueError:
            if field == "modelType":
                logger.debug(f"Unrecognized modelType {tag!r}")
                return ElementKind.UNKNOWN
    return None


def _is_language_pair(item: Any) -> bool:
    return isinstance(item, dict) and "language" in item and "text" in item


def _is_multi_language(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(
        _is_language_pair(item) for item in value
    )


def _is_homogeneous_list(value: list[Any]) -> bool:
    """
    True for items without idShort that all share one modelType.

    List items in AAS v3 carry no idShort, unlike collection members.
    """
    if not value or not all(isinstance(item, dict) for item in value):
        return False
    if any("idShort" in item for item in value):
        return False
    model_types = {str(item.get("modelType")) for item in value}
    return len(model_types) == 1 and "None" not in model_types


def _infer(raw: dict[str, Any]) -> ElementKind:
    if any(field in raw for field in ("min", "max", "minValue", "maxValue")):
        return ElementKind.RANGE

    value = raw.get("value")

    if raw.get("valueType") and not _is_multi_language(value):
        return ElementKind.PROPERTY

    if any(isinstance(raw.get(field), list) for field in _OPERATION_VARIABLE_FIELDS):
        return ElementKind.OPERATION

    if _is_multi_language(value):
        return ElementKind.MULTI_LANGUAGE_PROPERTY

    if raw.get("typeValueListElement") or "orderRelevant" in raw:
        return ElementKind.SUBMODEL_ELEMENT_LIST

    if isinstance(value, list):
        if _is_homogeneous_list(value):
            return ElementKind.SUBMODEL_ELEMENT_LIST
        return ElementKind.SUBMODEL_ELEMENT_COLLECTION

    if raw.get("first") or raw.get("firstReference"):
        annotations = raw.get("annotations", raw.get("annotation"))
        if isinstance(annotations, list):
            return ElementKind.ANNOTATED_RELATIONSHIP_ELEMENT
        return ElementKind.RELATIONSHIP_ELEMENT

    if isinstance(raw.get("annotations"), list) or isinstance(raw.get("annotation"), list):
        return ElementKind.ANNOTATED_RELATIONSHIP_ELEMENT

    if isinstance(raw.get("statements"), list):
        return ElementKind.ENTITY

    if isinstance(raw.get("keys"), list) or (
        isinstance(value, dict) and isinstance(value.get("keys"), list)
    ):
        return ElementKind.REFERENCE_ELEMENT

    if raw.get("contentType") and (raw.get("fileName") or raw.get("path")):
        return ElementKind.FILE

    return ElementKind.UNKNOWN


def infer_kind(raw: Any) -> ElementKind:
    """
    Determine the kind of a raw element payload.

    An explicit discriminator wins. Otherwise shape heuristics are tried in
    priority order: Range, Property, Operation, MultiLanguageProperty,
    SubmodelElementList, SubmodelElementCollection, (Annotated)Relationship,
    Entity, ReferenceElement, File.

    Never raises: malformed payloads resolve to ElementKind.UNKNOWN.

    Args:
        raw: Element payload as returned by the server

    Returns:
        The inferred ElementKind
    """
    if not isinstance(raw, dict):
        return ElementKind.UNKNOWN
    try:
        return explicit_kind(raw) or _infer(raw)
    except Exception as e:
        logger.debug(f"Classification failed, treating element as Unknown: {e}")
        return ElementKind.UNKNOWN


def classify_submodel(raw: dict[str, Any]) -> ElementKind:
    """Submodel or SubmodelTemplate, from a case-insensitive "template" in its kind."""
    kind_raw = raw.get("kind") or raw.get("submodelKind") or ""
    if "template" in str(kind_raw).lower():
        return ElementKind.SUBMODEL_TEMPLATE
    return ElementKind.SUBMODEL
