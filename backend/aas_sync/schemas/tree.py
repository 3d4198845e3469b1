"""
Pydantic models for the lazily loaded resource tree.

Nodes are mutated in place while the tree is being expanded and reconciled;
responses serialize them in camelCase for the console UI.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field
from pydantic.alias_generators import to_camel

from aas_sync.schemas.kinds import SUBMODEL_KINDS, ElementKind
from aas_sync.utils.identifiers import ElementPath, join_path


class LoadState(str, Enum):
    """Child loading state of a node."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class TreeNode(BaseModel):
    """
    A submodel or element in the resource tree.

    children == [] with load_state UNLOADED means "not fetched yet";
    children == [] with load_state LOADED means "confirmed empty".
    """

    key: str
    label: str
    kind: ElementKind
    submodel_id: str
    path: ElementPath = ()
    is_leaf: bool = False
    load_state: LoadState = LoadState.UNLOADED
    children: list["TreeNode"] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id_short_path(self) -> str:
        return join_path(self.path)

    @property
    def is_submodel(self) -> bool:
        return self.kind in SUBMODEL_KINDS

    @property
    def is_loaded(self) -> bool:
        return self.load_state is LoadState.LOADED

    def walk(self):
        """Yield this node and all loaded descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


# Enable forward references
TreeNode.model_rebuild()


class ElementVariableView(BaseModel):
    """Operation variable or annotation shown in the details panel."""

    idShort: str
    modelType: str | None = None
    valueType: str | None = None
    value: Any = None


class LanguageText(BaseModel):
    language: str
    text: str | None = None


class ElementDetails(BaseModel):
    """Details panel for a single element."""

    label: str
    kind: ElementKind
    modelType: str | None = None
    idShortPath: str | None = None
    value: Any = None
    valueType: str | None = None
    inputType: str | None = None
    min: Any = None
    max: Any = None
    texts: list[LanguageText] = Field(default_factory=list)
    inputVariables: list[ElementVariableView] = Field(default_factory=list)
    outputVariables: list[ElementVariableView] = Field(default_factory=list)
    inoutputVariables: list[ElementVariableView] = Field(default_factory=list)
    firstRef: str | None = None
    secondRef: str | None = None
    annotations: list[ElementVariableView] = Field(default_factory=list)
    itemCount: int | None = None
    degraded: bool = False
