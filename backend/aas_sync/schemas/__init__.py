"""
Pydantic schemas for the resource tree and package import.
"""

from aas_sync.schemas.kinds import ElementKind
from aas_sync.schemas.packages import (
    AttachSelection,
    PackageFile,
    SelectionEntry,
    SelectionState,
)
from aas_sync.schemas.tree import ElementDetails, LoadState, TreeNode

__all__ = [
    "ElementKind",
    "TreeNode",
    "LoadState",
    "ElementDetails",
    "PackageFile",
    "SelectionEntry",
    "SelectionState",
    "AttachSelection",
]
