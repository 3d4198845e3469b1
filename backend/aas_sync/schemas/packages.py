"""
Pydantic models for AASX package preview and selective attach.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator

DEFAULT_PACKAGE_CONTENT_TYPE = "application/asset-administration-shell-package"


class PackageFile(BaseModel):
    """An uploaded AASX package held in memory."""

    filename: str
    content: bytes
    content_type: str = DEFAULT_PACKAGE_CONTENT_TYPE

    def as_multipart(self) -> dict[str, tuple[str, bytes, str]]:
        """Multipart "file" field as expected by httpx."""
        return {"file": (self.filename, self.content, self.content_type)}


class PackageElementPreview(BaseModel):
    """A discoverable element inside a previewed submodel."""

    idShort: str
    modelType: str | None = None

    class Config:
        extra = "allow"


class PackageSubmodelPreview(BaseModel):
    """A discoverable submodel inside a previewed package."""

    id: str
    idShort: str | None = None
    kind: str | None = None
    elements: list[PackageElementPreview] = Field(default_factory=list)

    class Config:
        extra = "allow"


class SelectionEntry(BaseModel):
    """
    Selection of one previewed submodel.

    Whole-submodel selection supersedes element-level picks, so
    include_whole=True always comes with an empty name set.
    """

    include_whole: bool = True
    included_element_names: set[str] = Field(default_factory=set)

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def whole_selection_has_no_picks(self) -> "SelectionEntry":
        if self.include_whole and self.included_element_names:
            raise ValueError(
                "included_element_names must be empty when include_whole is set"
            )
        return self


SelectionState = dict[str, SelectionEntry]


class SubmodelSelection(BaseModel):
    """Wire form of one selected submodel."""

    id: str
    full: bool | None = None
    elements: list[str] | None = None


class AttachSelection(BaseModel):
    """Wire payload of the attach-selected request."""

    submodels: list[SubmodelSelection] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PackagePreviewResponse(BaseModel):
    """Normalized preview with the default selection."""

    submodels: list[PackageSubmodelPreview]
    selection: AttachSelection
    emptySubmodels: int = 0
