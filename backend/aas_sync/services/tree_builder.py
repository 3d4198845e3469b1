"""
Tree Builder Service.

Turns gateway listings into TreeNode objects and attaches children on
demand. The remote API has no "list subtree" primitive, so each expansion
fetches one level:

- shallow listing first
- on HTTP 400/404, one deep listing filtered client-side to the level
- missing idShortPaths are rebuilt from the parent path and idShort
"""

import logging
from typing import Any

from aas_sync.clients.aas_client import (
    AasGateway,
    DataSource,
    Depth,
    GatewayError,
    Scope,
    SystemType,
)
from aas_sync.schemas.kinds import COLLECTION_KINDS, ElementKind
from aas_sync.schemas.tree import LoadState, TreeNode
from aas_sync.services.classifier import classify_submodel, infer_kind
from aas_sync.utils.identifiers import (
    ElementPath,
    child_path,
    compose_key,
    encode_id,
    join_path,
    normalize_server_path,
)

logger = logging.getLogger(__name__)

# Fields whose non-empty content proves a collection has members
_CONTAINMENT_FIELDS = ("value", "submodelElements", "items")


def submodel_identifier(raw: dict[str, Any]) -> str | None:
    """Identifier of a submodel descriptor (id, submodelId, or first key)."""
    identifier = raw.get("submodelId") or raw.get("id")
    if not identifier:
        keys = raw.get("keys")
        if isinstance(keys, list) and keys and isinstance(keys[0], dict):
            identifier = keys[0].get("value")
    return str(identifier) if identifier else None


def element_path(raw: dict[str, Any], parent_path: ElementPath = ()) -> ElementPath:
    """
    Path of an element descriptor.

    Uses idShortPath when present, otherwise rebuilds it from the parent
    path and idShort. Servers drop idShortPath on freshly created children.
    """
    explicit = normalize_server_path(raw.get("idShortPath"))
    id_short = raw.get("idShort")
    # A bare idShort reported under a non-root parent is relative
    if explicit and not (parent_path and explicit == (id_short,)):
        return explicit
    if id_short:
        return child_path(parent_path, str(id_short))
    return ()


def compute_is_leaf(kind: ElementKind, raw: dict[str, Any], has_descendants: bool = False) -> bool:
    """
    Decide whether an element can have children.

    Collections and lists are leaves only when nothing hints at contained
    items and hasChildren is not explicitly true. Every other kind is a
    leaf unless hasChildren is explicitly true.
    """
    if has_descendants or raw.get("hasChildren") is True:
        return False
    if kind in COLLECTION_KINDS:
        return not any(raw.get(field) for field in _CONTAINMENT_FIELDS)
    return True


def is_direct_child(path: ElementPath, parent_path: ElementPath) -> bool:
    """True when path sits exactly one level below parent_path."""
    return len(path) == len(parent_path) + 1 and path[: len(parent_path)] == parent_path


def carry_over_subtrees(previous: list[TreeNode], fresh: list[TreeNode]) -> list[TreeNode]:
    """
    Keep the loaded subtrees of nodes that survive a refresh.

    A refreshed level only describes itself; without this every refresh
    would collapse the expanded branches below it.
    """
    by_key = {node.key: node for node in previous}
    for node in fresh:
        old = by_key.get(node.key)
        if old is None or not old.is_loaded:
            continue
        node.children = old.children
        node.load_state = LoadState.LOADED
        if old.children:
            node.is_leaf = False
    return fresh


class TreeBuilderService:
    """
    Service for building and lazily extending resource trees.

    Every write goes to the node that initiated the request, so concurrent
    expansions of different nodes never touch the same list.
    """

    def __init__(self, gateway: AasGateway):
        self.gateway = gateway

    def build_submodel_node(self, raw: dict[str, Any]) -> TreeNode | None:
        """Map a submodel descriptor to an unloaded, non-leaf node."""
        identifier = submodel_identifier(raw)
        if not identifier:
            logger.warning(f"Skipping submodel descriptor without id: {raw!r}")
            return None
        label = raw.get("submodelIdShort") or raw.get("idShort") or identifier
        return TreeNode(
            key=compose_key(identifier),
            label=str(label),
            kind=classify_submodel(raw),
            submodel_id=identifier,
            is_leaf=False,
            raw=raw,
        )

    def build_element_node(
        self,
        submodel_id: str,
        raw: dict[str, Any],
        parent_path: ElementPath = (),
        has_descendants: bool = False,
    ) -> TreeNode:
        """Map an element descriptor to a node; the kind is inferred once here."""
        path = element_path(raw, parent_path)
        if path and normalize_server_path(raw.get("idShortPath")) != path:
            raw = {**raw, "idShortPath": join_path(path)}
        kind = infer_kind(raw)
        label = raw.get("idShort") or (path[-1] if path else None) or "Element"
        return TreeNode(
            key=compose_key(submodel_id, path),
            label=str(label),
            kind=kind,
            submodel_id=submodel_id,
            path=path,
            is_leaf=compute_is_leaf(kind, raw, has_descendants),
            raw=raw,
        )

    async def discover_roots(self, scope: Scope, source: DataSource | None = None) -> list[TreeNode]:
        """
        List the submodels of a system as root nodes.

        Source systems are read from the snapshot unless another source is
        requested; a failing snapshot read falls back to a live read.
        """
        if source is None and scope.system_type is SystemType.SOURCE:
            try:
                submodels = await self.gateway.list_submodels(scope, DataSource.SNAPSHOT)
            except GatewayError as e:
                logger.warning(f"Snapshot discovery failed for {scope.base_path}, reading live: {e}")
                submodels = await self.gateway.list_submodels(scope, DataSource.LIVE)
        else:
            submodels = await self.gateway.list_submodels(scope, source)

        nodes = []
        for raw in submodels:
            if not isinstance(raw, dict):
                continue
            node = self.build_submodel_node(raw)
            if node is not None:
                nodes.append(node)
        logger.info(f"Discovered {len(nodes)} submodel(s) at {scope.base_path}")
        return nodes

    async def list_level(
        self,
        scope: Scope,
        submodel_id: str,
        parent_path: ElementPath = (),
        source: DataSource | None = None,
    ) -> list[TreeNode]:
        """
        Fetch exactly one level below parent_path as nodes.

        Args:
            scope: Target system
            submodel_id: Raw submodel identifier
            parent_path: Empty for the submodel roots
            source: Read mode for source systems

        Returns:
            Child nodes in server order

        Raises:
            GatewayError: If both the shallow and the deep listing fail
        """
        token = encode_id(submodel_id)
        try:
            listed = await self.gateway.list_elements(
                scope, token, Depth.SHALLOW, parent_path, source
            )
            context_path = parent_path
        except GatewayError as e:
            if not (e.is_bad_request or e.is_not_found):
                raise
            logger.info(
                f"Shallow listing rejected ({e.status_code}) for {submodel_id}, "
                "falling back to deep listing"
            )
            listed = await self.gateway.list_elements(scope, token, Depth.ALL, (), source)
            context_path = ()

        return self._select_level(submodel_id, listed, parent_path, context_path)

    def _select_level(
        self,
        submodel_id: str,
        listed: list[Any],
        parent_path: ElementPath,
        context_path: ElementPath,
    ) -> list[TreeNode]:
        # Some backends return the whole subtree even for depth=shallow, so
        # both listings are cut down to the direct children of parent_path.
        # Deeper entries are still evidence that a child is not a leaf.
        entries = [
            (element_path(raw, context_path), raw)
            for raw in listed
            if isinstance(raw, dict)
        ]
        paths = [path for path, _ in entries if path]

        nodes = []
        for path, raw in entries:
            if not path or not is_direct_child(path, parent_path):
                continue
            has_descendants = any(
                len(other) > len(path) and other[: len(path)] == path for other in paths
            )
            nodes.append(
                self.build_element_node(submodel_id, raw, parent_path, has_descendants)
            )
        return nodes

    async def expand(
        self,
        scope: Scope,
        node: TreeNode,
        refresh: bool = False,
        source: DataSource | None = None,
    ) -> list[TreeNode]:
        """
        Load the children of a node.

        Leaves are never loaded. Loaded nodes are returned as-is unless
        refresh is set. On failure the node keeps its previous children and
        load state.

        Args:
            scope: Target system
            node: Node to expand
            refresh: Re-fetch even if already loaded
            source: Read mode for source systems

        Returns:
            The node's children after the call
        """
        if node.is_leaf:
            return []
        if node.is_loaded and not refresh:
            return node.children

        previous_state = node.load_state
        node.load_state = LoadState.LOADING
        try:
            if source is None and scope.system_type is SystemType.SOURCE:
                source = DataSource.SNAPSHOT
            children = await self.list_level(scope, node.submodel_id, node.path, source)
        except Exception:
            node.load_state = previous_state
            raise

        if refresh:
            children = carry_over_subtrees(node.children, children)
        node.children = children
        node.load_state = LoadState.LOADED
        logger.debug(f"Loaded {len(children)} child(ren) under {node.key}")
        return children
