"""
Selective Import Negotiator.

Tracks which submodels and elements of a previewed AASX package the user
wants to attach, and turns that choice into the attach-selected payload.
"""

import logging
from typing import Any

from aas_sync.clients.aas_client import unwrap_result
from aas_sync.schemas.packages import (
    AttachSelection,
    PackagePreviewResponse,
    PackageSubmodelPreview,
    SelectionEntry,
    SelectionState,
    SubmodelSelection,
)

logger = logging.getLogger(__name__)


def normalize_preview(payload: Any) -> list[PackageSubmodelPreview]:
    """
    Normalize a package preview response.

    Accepts {submodels: [...]}, {result: [...]} or a bare array. Entries
    without an id (or submodelId) cannot be selected and are skipped.
    """
    if isinstance(payload, dict) and isinstance(payload.get("submodels"), list):
        items = payload["submodels"]
    else:
        items = unwrap_result(payload)

    previews = []
    for item in items:
        if not isinstance(item, dict):
            continue
        identifier = item.get("id") or item.get("submodelId")
        if not identifier:
            logger.warning(f"Skipping preview entry without id: {item!r}")
            continue
        elements = [
            element
            for element in item.get("elements") or []
            if isinstance(element, dict) and element.get("idShort")
        ]
        previews.append(
            PackageSubmodelPreview(
                **{**item, "id": str(identifier), "elements": elements}
            )
        )
    return previews


class SelectionNegotiator:
    """Operations on a SelectionState; the state itself is owned by the caller."""

    def get_or_init(self, selection: SelectionState, submodel_id: str) -> SelectionEntry:
        """Existing entry, or a new one that selects the whole submodel."""
        entry = selection.get(submodel_id)
        if entry is None:
            entry = SelectionEntry()
            selection[submodel_id] = entry
        return entry

    def toggle_whole(
        self, selection: SelectionState, submodel_id: str, checked: bool
    ) -> SelectionEntry:
        """
        Select or deselect a whole submodel.

        Selecting the whole submodel drops its element-level picks.
        """
        entry = self.get_or_init(selection, submodel_id)
        if checked:
            entry.included_element_names = set()
        entry.include_whole = checked
        return entry

    def toggle_element(
        self,
        selection: SelectionState,
        submodel_id: str,
        element_name: str,
        checked: bool,
    ) -> SelectionEntry:
        """
        Select or deselect one element.

        Any element-level choice means "not everything", so the submodel's
        whole-selection is switched off either way.
        """
        entry = self.get_or_init(selection, submodel_id)
        entry.include_whole = False
        names = set(entry.included_element_names)
        if checked:
            names.add(element_name)
        else:
            names.discard(element_name)
        entry.included_element_names = names
        return entry

    def serialize(self, selection: SelectionState) -> AttachSelection:
        """
        Build the attach-selected payload.

        Whole submodels become {id, full: true}, element picks become
        {id, elements: [...]}, and submodels with neither are left out.
        """
        submodels = []
        for submodel_id, entry in selection.items():
            if entry.include_whole:
                submodels.append(SubmodelSelection(id=submodel_id, full=True))
            elif entry.included_element_names:
                submodels.append(
                    SubmodelSelection(
                        id=submodel_id,
                        elements=sorted(entry.included_element_names),
                    )
                )
        return AttachSelection(submodels=submodels)

    def has_selection(self, selection: SelectionState) -> bool:
        return bool(self.serialize(selection).submodels)

    def init_from_preview(
        self, previews: list[PackageSubmodelPreview]
    ) -> SelectionState:
        """Default selection for a preview: every submodel in full."""
        selection: SelectionState = {}
        for preview in previews:
            self.get_or_init(selection, preview.id)
        return selection

    def build_preview_response(self, payload: Any) -> PackagePreviewResponse:
        """Normalized preview plus its default selection."""
        previews = normalize_preview(payload)
        selection = self.init_from_preview(previews)
        return PackagePreviewResponse(
            submodels=previews,
            selection=self.serialize(selection),
            emptySubmodels=sum(1 for preview in previews if not preview.elements),
        )
