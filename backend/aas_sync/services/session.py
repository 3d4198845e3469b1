"""
Per-screen tree state.

A TreeSession holds the roots of one system's resource tree together with
its notifications, pending re-checks and package selection. Nothing here
is persisted; a full reload replaces the roots wholesale.
"""

import logging
from collections.abc import Iterator

from aas_sync.clients.aas_client import Scope
from aas_sync.schemas.packages import SelectionState
from aas_sync.schemas.tree import TreeNode
from aas_sync.services.notifications import NotificationCenter
from aas_sync.services.scheduling import RecheckScheduler
from aas_sync.utils.identifiers import ElementPath, compose_key

logger = logging.getLogger(__name__)


class TreeSession:
    """In-memory resource tree of a single source or target system."""

    def __init__(self, scope: Scope):
        self.scope = scope
        self.roots: list[TreeNode] = []
        # Set once roots were fetched; an empty list alone may mean "no submodels"
        self.discovered = False
        self.notifications = NotificationCenter()
        self.rechecks = RecheckScheduler()
        self.selection: SelectionState = {}

    def walk(self) -> Iterator[TreeNode]:
        for root in self.roots:
            yield from root.walk()

    def find(self, key: str) -> TreeNode | None:
        """Find a loaded node by its composed key."""
        for node in self.walk():
            if node.key == key:
                return node
        return None

    def find_submodel(self, submodel_id: str) -> TreeNode | None:
        for root in self.roots:
            if root.submodel_id == submodel_id:
                return root
        return None

    def find_by_path(self, submodel_id: str, path: ElementPath) -> TreeNode | None:
        """The submodel node for an empty path, otherwise the element node."""
        if not path:
            return self.find_submodel(submodel_id)
        return self.find(compose_key(submodel_id, path))

    def remove(self, key: str) -> bool:
        """
        Remove a node (and its subtree) by key.

        Returns:
            True if a node was removed
        """
        for index, root in enumerate(self.roots):
            if root.key == key:
                del self.roots[index]
                return True
        for node in self.walk():
            for index, child in enumerate(node.children):
                if child.key == key:
                    del node.children[index]
                    logger.debug(f"Removed {key} from local tree")
                    return True
        return False

    def close(self) -> None:
        """Tear down the session; pending re-checks are cancelled."""
        self.rechecks.cancel_all()
