"""
Request and response models of the HTTP surface.
"""

from typing import Any

from pydantic import BaseModel, Field

from aas_sync.schemas.tree import TreeNode
from aas_sync.services.notifications import Notification
from aas_sync.services.reconciler import ReconcileOutcome


class NodeRequest(BaseModel):
    """Addresses a loaded node by its composed key."""

    key: str
    refresh: bool = False


class CreateElementRequest(BaseModel):
    parentPath: str | None = Field(
        default=None, description="Slash-separated parent path; empty for the submodel root"
    )
    element: dict[str, Any]


class SetValueRequest(BaseModel):
    value: Any
    valueType: str | None = None


class WholeSelectionRequest(BaseModel):
    submodelId: str
    checked: bool


class ElementSelectionRequest(BaseModel):
    submodelId: str
    elementName: str
    checked: bool


class MutationResponse(BaseModel):
    """Outcome of a mutating call and the notifications it produced."""

    outcome: ReconcileOutcome
    node: TreeNode | None = None
    notifications: list[Notification] = Field(default_factory=list)


class TreeResponse(BaseModel):
    roots: list[TreeNode]
    pendingRechecks: int = 0
