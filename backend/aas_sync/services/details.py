"""
Element Details Service.

Projects a single live element into the details panel of the console.
The projection switches on the classified ElementKind instead of probing
raw fields again.
"""

import json
import logging
from typing import Any

from aas_sync.clients.aas_client import DataSource, GatewayError
from aas_sync.schemas.kinds import COLLECTION_KINDS, ElementKind
from aas_sync.schemas.tree import ElementDetails, ElementVariableView, LanguageText, TreeNode
from aas_sync.services.classifier import infer_kind
from aas_sync.services.session import TreeSession
from aas_sync.services.tree_builder import TreeBuilderService
from aas_sync.utils.identifiers import encode_id, join_path, parent_of
from aas_sync.utils.value_types import get_input_type

logger = logging.getLogger(__name__)

_VARIABLE_FIELDS = ("inputVariables", "outputVariables", "inoutputVariables")


def stringify_reference(ref: Any) -> str | None:
    """
    Render a reference as "type:value / type:value".

    Strings pass through; anything without keys falls back to its value or
    its JSON form.
    """
    if not ref:
        return None
    if isinstance(ref, str):
        return ref
    if isinstance(ref, dict):
        keys = ref.get("keys")
        if isinstance(keys, list) and keys:
            return " / ".join(
                f"{key.get('type') or ''}:{key.get('value') or ''}"
                for key in keys
                if isinstance(key, dict)
            )
        if ref.get("value"):
            return str(ref["value"])
    return json.dumps(ref, default=str)


def _unwrap(entry: Any) -> dict[str, Any] | None:
    # Operation variables arrive either bare or wrapped as {value: {...}}
    if not isinstance(entry, dict):
        return None
    inner = entry.get("value")
    if isinstance(inner, dict) and "idShort" not in entry:
        return inner
    return entry


def _variable_views(entries: Any, with_value: bool = False) -> list[ElementVariableView]:
    views = []
    for entry in entries if isinstance(entries, list) else []:
        item = _unwrap(entry)
        if not item or not item.get("idShort"):
            continue
        views.append(
            ElementVariableView(
                idShort=str(item["idShort"]),
                modelType=item.get("modelType"),
                valueType=item.get("valueType"),
                value=item.get("value") if with_value else None,
            )
        )
    return views


def _language_texts(value: Any) -> list[LanguageText]:
    if not isinstance(value, list):
        return []
    return [
        LanguageText(language=str(item["language"]), text=item.get("text"))
        for item in value
        if isinstance(item, dict) and item.get("language")
    ]


def build_details(raw: dict[str, Any], path_hint: str | None = None) -> ElementDetails:
    """
    Build the details panel for an element descriptor.

    Args:
        raw: Element JSON as returned by the backend
        path_hint: idShortPath to show when the payload has none

    Returns:
        ElementDetails view
    """
    kind = infer_kind(raw)
    value_type = raw.get("valueType")
    details = ElementDetails(
        label=str(raw.get("idShort") or "Element"),
        kind=kind,
        modelType=raw.get("modelType") if isinstance(raw.get("modelType"), str) else kind.value,
        idShortPath=raw.get("idShortPath") or path_hint,
        value=raw.get("value"),
        valueType=value_type,
        inputType=get_input_type(value_type) if value_type else None,
    )

    if kind is ElementKind.RANGE:
        details.min = raw["min"] if "min" in raw else raw.get("minValue")
        details.max = raw["max"] if "max" in raw else raw.get("maxValue")
    elif kind is ElementKind.MULTI_LANGUAGE_PROPERTY:
        details.texts = _language_texts(raw.get("value"))
    elif kind is ElementKind.OPERATION:
        for field in _VARIABLE_FIELDS:
            setattr(details, field, _variable_views(raw.get(field)))
    elif kind in (ElementKind.RELATIONSHIP_ELEMENT, ElementKind.ANNOTATED_RELATIONSHIP_ELEMENT):
        details.firstRef = stringify_reference(raw.get("first") or raw.get("firstReference"))
        details.secondRef = stringify_reference(raw.get("second") or raw.get("secondReference"))
        annotations = raw.get("annotations")
        if not isinstance(annotations, list):
            annotations = raw.get("annotation")
        details.annotations = _variable_views(annotations, with_value=True)
    elif kind in COLLECTION_KINDS:
        value = raw.get("value")
        details.itemCount = len(value) if isinstance(value, list) else None
    return details


class ElementDetailsService:
    """Service for loading the live details of tree nodes."""

    def __init__(self, builder: TreeBuilderService):
        self.builder = builder

    @property
    def gateway(self):
        return self.builder.gateway

    async def _fetch(self, session: TreeSession, node: TreeNode) -> dict[str, Any] | None:
        scope = session.scope
        try:
            found = await self.gateway.get_element(
                scope, encode_id(node.submodel_id), node.path, DataSource.LIVE
            )
            if found:
                return found
        except GatewayError as e:
            logger.warning(f"Direct fetch of {node.key} failed, searching parent level: {e}")

        # Some backends cannot resolve nested paths directly
        siblings = await self.builder.list_level(
            scope, node.submodel_id, parent_of(node.path), DataSource.LIVE
        )
        for sibling in siblings:
            if sibling.path == node.path or sibling.label == node.label:
                return sibling.raw
        return None

    async def load_details(self, session: TreeSession, node: TreeNode) -> ElementDetails:
        """
        Load the details panel of an element node.

        Never raises for a missing or unreadable element; the panel is then
        marked as degraded and only carries the label.
        """
        if node.is_submodel:
            raise ValueError("Details are only available for elements")
        try:
            found = await self._fetch(session, node)
        except GatewayError as e:
            logger.warning(f"Could not load details for {node.key}: {e}")
            found = None

        if found is None:
            return ElementDetails(label=node.label, kind=ElementKind.UNKNOWN, degraded=True)

        details = build_details(found, path_hint=join_path(node.path))
        node.kind = details.kind
        node.raw = {
            **node.raw,
            **found,
            "idShortPath": join_path(node.path),
        }
        return details
