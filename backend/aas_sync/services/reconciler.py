"""
Reconciliation Service.

Keeps the visible tree consistent with mutations while the backend is still
catching up. The mutating call itself is reported to the user; everything
that happens afterwards (refreshes and delayed re-checks) is only logged.

Re-checks are owned by the session's RecheckScheduler, so a reload or
teardown cancels them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from aas_sync.clients.aas_client import AasGateway, DataSource, GatewayError
from aas_sync.config import Settings
from aas_sync.schemas.packages import AttachSelection, PackageFile
from aas_sync.schemas.tree import TreeNode
from aas_sync.services.session import TreeSession
from aas_sync.services.tree_builder import (
    TreeBuilderService,
    carry_over_subtrees,
    submodel_identifier,
)
from aas_sync.utils.identifiers import ElementPath, compose_key, encode_id, parent_of
from aas_sync.utils.value_types import coerce_value

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class ReconcileOutcome(str, Enum):
    """How the tree came to reflect a mutation."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    ASSUMED_FROM_CLIENT_STATE = "assumedFromClientState"
    UNCONFIRMED = "unconfirmed"


@dataclass
class ReconcileResult:
    """
    Result of a mutating call.

    PENDING results carry the scheduled re-check task; awaiting it yields
    the final outcome.
    """

    outcome: ReconcileOutcome
    node: TreeNode | None = None
    recheck: "asyncio.Task[ReconcileOutcome] | None" = None
    response: Any = None


class ReconciliationService:
    """Service for mutating a remote system and reconciling the local tree."""

    def __init__(
        self,
        builder: TreeBuilderService,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
    ):
        self.builder = builder
        self.settings = settings
        self._sleep = sleep

    @property
    def gateway(self) -> AasGateway:
        return self.builder.gateway

    async def reload(self, session: TreeSession) -> list[TreeNode]:
        """
        Rebuild the tree from scratch.

        Pending re-checks belong to the previous tree and are cancelled
        before the new roots are fetched.
        """
        session.rechecks.cancel_all()
        session.roots = await self.builder.discover_roots(session.scope)
        session.discovered = True
        return session.roots

    async def refresh_roots(self, session: TreeSession) -> int:
        """Re-read the submodel list live; returns the number of roots."""
        fresh = await self.builder.discover_roots(session.scope, DataSource.LIVE)
        session.roots = carry_over_subtrees(session.roots, fresh)
        session.discovered = True
        return len(session.roots)

    async def refresh_level(
        self, session: TreeSession, submodel_id: str, parent_path: ElementPath
    ) -> int:
        """
        Re-read one level live; returns the number of children.

        The loaded parent node is refreshed in place. A parent that is not
        part of the loaded tree is only counted.
        """
        parent = session.find_by_path(submodel_id, parent_path)
        if parent is None:
            listed = await self.builder.list_level(
                session.scope, submodel_id, parent_path, DataSource.LIVE
            )
            return len(listed)
        # The parent may have been an empty (leaf) collection until now
        parent.is_leaf = False
        children = await self.builder.expand(
            session.scope, parent, refresh=True, source=DataSource.LIVE
        )
        return len(children)

    async def _level_baseline(
        self, session: TreeSession, submodel_id: str, parent_path: ElementPath
    ) -> int:
        """
        Number of children below parent_path before a creation.

        Loaded parents are counted locally; anything else is read live, since
        an unloaded parent has no children in the local tree yet.
        """
        parent = session.find_by_path(submodel_id, parent_path)
        if parent is not None and parent.is_loaded:
            return len(parent.children)
        try:
            listed = await self.builder.list_level(
                session.scope, submodel_id, parent_path, DataSource.LIVE
            )
        except GatewayError as e:
            if not e.is_not_found:
                logger.warning(
                    f"Baseline read for {compose_key(submodel_id, parent_path)} failed: {e}"
                )
            return 0
        return len(listed)

    async def _quietly(self, refresh: Callable[[], Awaitable[int]], label: str) -> int | None:
        try:
            return await refresh()
        except Exception as e:
            logger.warning(f"Refresh after {label} failed: {e}")
            return None

    async def _reconcile_creation(
        self,
        session: TreeSession,
        refresh: Callable[[], Awaitable[int]],
        baseline: int,
        label: str,
        assume: Callable[[], TreeNode | None],
    ) -> ReconcileResult:
        count = await self._quietly(refresh, label)
        if count is not None and count > baseline:
            logger.info(f"{label} visible after immediate refresh")
            return ReconcileResult(ReconcileOutcome.CONFIRMED)

        if self.settings.reconcile_max_attempts <= 0:
            outcome = self._give_up(label, assume)
            return ReconcileResult(outcome)

        task = session.rechecks.schedule(
            lambda: self._recheck_until_grown(refresh, baseline, label, assume),
            name=f"recheck {label}",
        )
        return ReconcileResult(ReconcileOutcome.PENDING, recheck=task)

    async def _recheck_until_grown(
        self,
        refresh: Callable[[], Awaitable[int]],
        baseline: int,
        label: str,
        assume: Callable[[], TreeNode | None],
    ) -> ReconcileOutcome:
        attempts = self.settings.reconcile_max_attempts
        for attempt in range(1, attempts + 1):
            await self._sleep(self.settings.reconcile_base_delay_seconds * attempt)
            count = await self._quietly(refresh, label)
            logger.debug(f"Re-check {attempt}/{attempts} for {label}: {count} vs {baseline}")
            if count is not None and count > baseline:
                logger.info(f"{label} visible after re-check {attempt}")
                return ReconcileOutcome.CONFIRMED
        return self._give_up(label, assume)

    def _give_up(self, label: str, assume: Callable[[], TreeNode | None]) -> ReconcileOutcome:
        logger.warning(
            f"{label} not visible after {self.settings.reconcile_max_attempts} re-check(s)"
        )
        if self.settings.optimistic_insert_on_timeout and assume() is not None:
            logger.info(f"Inserted {label} from client state")
            return ReconcileOutcome.ASSUMED_FROM_CLIENT_STATE
        return ReconcileOutcome.UNCONFIRMED

    async def _staged_refresh(self, session: TreeSession, label: str) -> ReconcileResult:
        """Refresh the roots at every configured offset from now."""
        offsets = sorted(self.settings.attach_refresh_offsets_seconds)
        immediate = [offset for offset in offsets if offset <= 0]
        later = [offset for offset in offsets if offset > 0]

        for _ in immediate:
            await self._quietly(lambda: self.refresh_roots(session), label)
        if not later:
            return ReconcileResult(ReconcileOutcome.CONFIRMED)

        async def run() -> ReconcileOutcome:
            elapsed = 0.0
            for offset in later:
                await self._sleep(offset - elapsed)
                elapsed = offset
                await self._quietly(lambda: self.refresh_roots(session), label)
            return ReconcileOutcome.CONFIRMED

        task = session.rechecks.schedule(run, name=f"staged refresh {label}")
        return ReconcileResult(ReconcileOutcome.PENDING, recheck=task)

    async def create_submodel(self, session: TreeSession, body: dict[str, Any]) -> ReconcileResult:
        """
        Create a submodel and wait for it to appear among the roots.

        Args:
            session: Tree of the target system
            body: Submodel JSON as accepted by the backend

        Returns:
            ReconcileResult with CONFIRMED or PENDING outcome

        Raises:
            GatewayError: If the create call itself fails
        """
        if not session.discovered:
            await self._quietly(lambda: self.refresh_roots(session), "submodel baseline read")
        baseline = len(session.roots)
        try:
            response = await self.gateway.create_submodel(session.scope, body)
        except GatewayError as e:
            session.notifications.error("Create failed", e.message)
            raise
        session.notifications.success(
            "Submodel Created", f"{body.get('idShort') or body.get('id') or 'Submodel'} created"
        )

        def assume() -> TreeNode | None:
            node = self.builder.build_submodel_node(body)
            if node is None or session.find(node.key) is not None:
                return None
            session.roots.append(node)
            return node

        result = await self._reconcile_creation(
            session, lambda: self.refresh_roots(session), baseline, "submodel", assume
        )
        result.response = response
        identifier = submodel_identifier(body)
        if identifier:
            result.node = session.find_submodel(identifier)
        return result

    async def update_submodel(
        self, session: TreeSession, submodel_id: str, body: dict[str, Any]
    ) -> ReconcileResult:
        """Replace a submodel and refresh the roots."""
        try:
            response = await self.gateway.put_submodel(session.scope, encode_id(submodel_id), body)
        except GatewayError as e:
            session.notifications.error("Update failed", e.message)
            raise
        session.notifications.success("Submodel Updated", submodel_id)
        await self._quietly(lambda: self.refresh_roots(session), "submodel update")
        return ReconcileResult(
            ReconcileOutcome.CONFIRMED,
            node=session.find_submodel(submodel_id),
            response=response,
        )

    async def delete_submodel(self, session: TreeSession, submodel_id: str) -> ReconcileResult:
        """
        Delete a submodel.

        A 404 means the submodel is already gone (or was never indexed); the
        node is then pruned locally and the delete still counts as a success.
        """
        key = compose_key(submodel_id)
        try:
            response = await self.gateway.delete_submodel(session.scope, encode_id(submodel_id))
        except GatewayError as e:
            if not e.is_not_found:
                session.notifications.error("Delete failed", e.message)
                raise
            logger.info(f"Submodel {submodel_id} already absent, pruning locally")
            session.remove(key)
            session.notifications.success("Submodel Deleted", submodel_id)
            return ReconcileResult(ReconcileOutcome.ASSUMED_FROM_CLIENT_STATE)

        session.notifications.success("Submodel Deleted", submodel_id)
        await self._quietly(lambda: self.refresh_roots(session), "submodel delete")
        return ReconcileResult(ReconcileOutcome.CONFIRMED, response=response)

    async def create_element(
        self,
        session: TreeSession,
        submodel_id: str,
        body: dict[str, Any],
        parent_path: ElementPath = (),
    ) -> ReconcileResult:
        """
        Create an element below a submodel or collection.

        Args:
            session: Tree of the system
            submodel_id: Raw submodel identifier
            body: Element JSON
            parent_path: Parent collection path; empty for the submodel root

        Returns:
            ReconcileResult with CONFIRMED or PENDING outcome

        Raises:
            GatewayError: If the create call itself fails
        """
        baseline = await self._level_baseline(session, submodel_id, parent_path)

        try:
            response = await self.gateway.create_element(
                session.scope, encode_id(submodel_id), body, parent_path
            )
        except GatewayError as e:
            session.notifications.creation_failed(e.message)
            raise
        session.notifications.success(
            "Element Created", "Element has been successfully created."
        )

        def assume() -> TreeNode | None:
            target = session.find_by_path(submodel_id, parent_path)
            if target is None:
                return None
            node = self.builder.build_element_node(submodel_id, body, parent_path)
            if any(child.key == node.key for child in target.children):
                return None
            target.children.append(node)
            target.is_leaf = False
            return node

        label = f"element under {compose_key(submodel_id, parent_path)}"
        result = await self._reconcile_creation(
            session,
            lambda: self.refresh_level(session, submodel_id, parent_path),
            baseline,
            label,
            assume,
        )
        result.response = response
        if body.get("idShort"):
            result.node = session.find(
                compose_key(submodel_id, (*parent_path, str(body["idShort"])))
            )
        return result

    async def update_element(
        self,
        session: TreeSession,
        submodel_id: str,
        path: ElementPath,
        body: dict[str, Any],
    ) -> ReconcileResult:
        """Replace an element and refresh its parent level."""
        try:
            response = await self.gateway.put_element(
                session.scope, encode_id(submodel_id), path, body
            )
        except GatewayError as e:
            session.notifications.error("Update failed", e.message)
            raise
        session.notifications.success("Element Updated", compose_key(submodel_id, path))
        await self._quietly(
            lambda: self.refresh_level(session, submodel_id, parent_of(path)), "element update"
        )
        return ReconcileResult(
            ReconcileOutcome.CONFIRMED,
            node=session.find(compose_key(submodel_id, path)),
            response=response,
        )

    async def delete_element(
        self, session: TreeSession, submodel_id: str, path: ElementPath
    ) -> ReconcileResult:
        """Delete an element; a 404 prunes it locally like delete_submodel."""
        key = compose_key(submodel_id, path)
        try:
            response = await self.gateway.delete_element(
                session.scope, encode_id(submodel_id), path
            )
        except GatewayError as e:
            if not e.is_not_found:
                session.notifications.error("Delete failed", e.message)
                raise
            logger.info(f"Element {key} already absent, pruning locally")
            session.remove(key)
            session.notifications.success("Element Deleted", key)
            return ReconcileResult(ReconcileOutcome.ASSUMED_FROM_CLIENT_STATE)

        session.notifications.success("Element Deleted", key)
        await self._quietly(
            lambda: self.refresh_level(session, submodel_id, parent_of(path)), "element delete"
        )
        return ReconcileResult(ReconcileOutcome.CONFIRMED, response=response)

    async def set_element_value(
        self,
        session: TreeSession,
        submodel_id: str,
        path: ElementPath,
        raw_value: Any,
        value_type: str | None = None,
    ) -> ReconcileResult:
        """
        Set the value of an element from user input.

        Text input is coerced by the element's XSD value type; when no type
        is given the loaded node's valueType is used.
        """
        node = session.find(compose_key(submodel_id, path))
        if value_type is None and node is not None:
            value_type = node.raw.get("valueType")
        value = coerce_value(raw_value, value_type) if isinstance(raw_value, str) else raw_value

        try:
            response = await self.gateway.patch_element_value(
                session.scope, encode_id(submodel_id), path, value
            )
        except GatewayError as e:
            session.notifications.error("Update failed", e.message)
            raise
        session.notifications.success("Value Updated", compose_key(submodel_id, path))
        if node is not None:
            node.raw = {**node.raw, "value": value}
        await self._quietly(
            lambda: self.refresh_level(session, submodel_id, parent_of(path)), "value update"
        )
        return ReconcileResult(
            ReconcileOutcome.CONFIRMED,
            node=session.find(compose_key(submodel_id, path)),
            response=response,
        )

    async def attach_selected(
        self, session: TreeSession, package: PackageFile, selection: AttachSelection
    ) -> ReconcileResult:
        """
        Attach the selected content of a package.

        Multi-submodel attaches become visible one by one, so the roots are
        refreshed at several offsets instead of once.
        """
        try:
            response = await self.gateway.attach_selected_from_package(
                session.scope, package, selection.to_wire()
            )
        except GatewayError as e:
            session.notifications.error("Attach failed", e.message)
            raise
        session.notifications.success(
            "Package Attached", f"{len(selection.submodels)} submodel(s) from {package.filename}"
        )
        result = await self._staged_refresh(session, "attach")
        result.response = response
        return result

    async def upload_package(self, session: TreeSession, package: PackageFile) -> ReconcileResult:
        """Upload a whole package and refresh the roots in stages."""
        try:
            response = await self.gateway.upload_package(session.scope, package)
        except GatewayError as e:
            session.notifications.error("Upload failed", e.message)
            raise
        session.notifications.success("Package Uploaded", package.filename)
        result = await self._staged_refresh(session, "upload")
        result.response = response
        return result

    async def upload_with_selection(
        self,
        session: TreeSession,
        package: PackageFile,
        selection: AttachSelection | None = None,
    ) -> ReconcileResult:
        """Attach the selection when it names anything, otherwise upload everything."""
        if selection is not None and selection.submodels:
            return await self.attach_selected(session, package, selection)
        return await self.upload_package(session, package)
