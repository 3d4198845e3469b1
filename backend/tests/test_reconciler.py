"""
Tests for mutation reconciliation.
"""

import asyncio

import pytest

from aas_sync.clients.aas_client import Depth, GatewayError
from aas_sync.schemas.packages import AttachSelection, PackageFile, SubmodelSelection
from aas_sync.services.notifications import Severity
from aas_sync.services.reconciler import ReconcileOutcome
from aas_sync.utils.identifiers import encode_id

SM1 = {"id": "sm1", "idShort": "SM1"}
SM2 = {"id": "sm2", "idShort": "SM2"}


async def load_roots(reconciler, session, gateway, *submodels):
    gateway.submodel_listings = [list(submodels)]
    await reconciler.reload(session)
    return session.roots


class TestCreateSubmodel:
    """Tests for submodel creation."""

    @pytest.mark.asyncio
    async def test_visible_immediately(self, reconciler, session, gateway, sleeper):
        """Test a submodel visible on the immediate refresh is confirmed without re-checks."""
        await load_roots(reconciler, session, gateway, SM1)
        gateway.submodel_listings = [[SM1, SM2]]

        result = await reconciler.create_submodel(session, SM2)

        assert result.outcome == ReconcileOutcome.CONFIRMED
        assert result.recheck is None
        assert result.node is not None and result.node.submodel_id == "sm2"
        assert sleeper.delays == []
        assert [n.severity for n in session.notifications.drain()] == [Severity.SUCCESS]

    @pytest.mark.asyncio
    async def test_rechecks_stop_when_count_grows(self, reconciler, session, gateway, sleeper):
        """Test re-checks back off linearly and stop once the submodel appears."""
        await load_roots(reconciler, session, gateway, SM1)
        # immediate refresh, re-check 1: still one root; re-check 2: visible
        gateway.submodel_listings = [[SM1], [SM1], [SM1, SM2]]

        result = await reconciler.create_submodel(session, SM2)
        assert result.outcome == ReconcileOutcome.PENDING

        final = await result.recheck
        assert final == ReconcileOutcome.CONFIRMED
        assert sleeper.delays == [1.0, 2.0]
        assert [root.submodel_id for root in session.roots] == ["sm1", "sm2"]

    @pytest.mark.asyncio
    async def test_rechecks_exhausted(self, reconciler, session, gateway, sleeper):
        """Test an invisible submodel leaves the tree as last fetched."""
        await load_roots(reconciler, session, gateway, SM1)

        result = await reconciler.create_submodel(session, SM2)
        final = await result.recheck

        assert final == ReconcileOutcome.UNCONFIRMED
        assert sleeper.delays == [1.0, 2.0, 3.0]
        assert [root.submodel_id for root in session.roots] == ["sm1"]
        # Only the mutation itself is announced
        assert len(session.notifications) == 1

    @pytest.mark.asyncio
    async def test_optimistic_insert(self, reconciler, session, gateway, settings):
        """Test the optional optimistic insert after exhausted re-checks."""
        settings.optimistic_insert_on_timeout = True
        await load_roots(reconciler, session, gateway, SM1)

        result = await reconciler.create_submodel(session, SM2)
        final = await result.recheck

        assert final == ReconcileOutcome.ASSUMED_FROM_CLIENT_STATE
        assert session.find_submodel("sm2") is not None

    @pytest.mark.asyncio
    async def test_recheck_failures_are_quiet(self, reconciler, session, gateway):
        """Test failing re-checks are logged but never surfaced."""
        await load_roots(reconciler, session, gateway, SM1)
        gateway.submodel_listings = [GatewayError("down", 503), GatewayError("down", 503), [SM1, SM2]]

        result = await reconciler.create_submodel(session, SM2)
        final = await result.recheck

        assert final == ReconcileOutcome.CONFIRMED
        assert [n.severity for n in session.notifications.drain()] == [Severity.SUCCESS]

    @pytest.mark.asyncio
    async def test_create_failure_surfaced(self, reconciler, session, gateway):
        """Test a failed create raises and shows the server message."""
        await load_roots(reconciler, session, gateway, SM1)
        gateway.results["create_submodel"] = GatewayError("id already taken", 409)

        with pytest.raises(GatewayError):
            await reconciler.create_submodel(session, SM2)

        (notification,) = session.notifications.drain()
        assert notification.severity == Severity.ERROR
        assert notification.detail == "id already taken"
        assert len(gateway.called("list_submodels")) == 1

    @pytest.mark.asyncio
    async def test_undiscovered_roots_read_live_baseline(self, reconciler, session, gateway):
        """Test existing submodels are not mistaken for the new one before the first reload."""
        gateway.submodel_listings = [[SM1]]

        result = await reconciler.create_submodel(session, SM2)

        assert result.outcome == ReconcileOutcome.PENDING
        assert await result.recheck == ReconcileOutcome.UNCONFIRMED
        assert session.discovered is True
        assert [root.submodel_id for root in session.roots] == ["sm1"]


class TestCreateElement:
    """Tests for element creation."""

    async def _expanded_root(self, reconciler, session, gateway):
        (root,) = await load_roots(reconciler, session, gateway, SM1)
        gateway.script_elements(Depth.SHALLOW, (), [{"idShort": "p", "valueType": "xs:string"}])
        await reconciler.builder.expand(session.scope, root)
        return root

    @pytest.mark.asyncio
    async def test_refreshes_parent(self, reconciler, session, gateway):
        """Test the parent level is re-read and the new element appears."""
        root = await self._expanded_root(reconciler, session, gateway)
        gateway.script_elements(Depth.SHALLOW, (), [
            {"idShort": "p", "valueType": "xs:string"},
            {"idShort": "q", "valueType": "xs:int"},
        ])

        result = await reconciler.create_element(session, "sm1", {"idShort": "q", "valueType": "xs:int"})

        assert result.outcome == ReconcileOutcome.CONFIRMED
        assert result.node is not None and result.node.key == "sm1::q"
        assert [child.label for child in root.children] == ["p", "q"]
        assert gateway.called("create_element")[0][0] == encode_id("sm1")

    @pytest.mark.asyncio
    async def test_first_child_of_empty_collection(self, reconciler, session, gateway):
        """Test creating inside an empty collection makes it expandable."""
        root = await self._expanded_root(reconciler, session, gateway)
        gateway.script_elements(Depth.SHALLOW, (), [
            {"idShort": "p", "valueType": "xs:string"},
            {"idShort": "box", "modelType": "SubmodelElementCollection", "value": []},
        ])
        await reconciler.builder.expand(session.scope, root, refresh=True)
        box = session.find("sm1::box")
        assert box.is_leaf is True
        gateway.script_elements(
            Depth.SHALLOW, ("box",), [], [{"idShort": "inner", "valueType": "xs:string"}]
        )

        result = await reconciler.create_element(session, "sm1", {"idShort": "inner"}, ("box",))

        assert result.outcome == ReconcileOutcome.CONFIRMED
        assert box.is_leaf is False
        assert [child.key for child in box.children] == ["sm1::box/inner"]

    @pytest.mark.asyncio
    async def test_unexpanded_parent_with_lagging_backend(self, reconciler, session, gateway, sleeper):
        """Test children that already existed under an unexpanded parent do not confirm a create."""
        (root,) = await load_roots(reconciler, session, gateway, SM1)
        gateway.script_elements(Depth.SHALLOW, (), [{"idShort": "p"}])

        result = await reconciler.create_element(session, "sm1", {"idShort": "q"})

        assert result.outcome == ReconcileOutcome.PENDING
        assert await result.recheck == ReconcileOutcome.UNCONFIRMED
        assert sleeper.delays == [1.0, 2.0, 3.0]
        assert [child.label for child in root.children] == ["p"]

    @pytest.mark.asyncio
    async def test_unexpanded_parent_catches_up(self, reconciler, session, gateway):
        """Test a create under an unexpanded parent is confirmed once the level grows."""
        (root,) = await load_roots(reconciler, session, gateway, SM1)
        # baseline read, immediate refresh, first re-check
        gateway.script_elements(
            Depth.SHALLOW, (), [{"idShort": "p"}], [{"idShort": "p"}],
            [{"idShort": "p"}, {"idShort": "q"}],
        )

        result = await reconciler.create_element(session, "sm1", {"idShort": "q"})

        assert result.outcome == ReconcileOutcome.PENDING
        assert await result.recheck == ReconcileOutcome.CONFIRMED
        assert [child.label for child in root.children] == ["p", "q"]

    @pytest.mark.asyncio
    async def test_duplicate_message(self, reconciler, session, gateway):
        """Test duplicate idShort failures get a readable notification."""
        gateway.results["create_element"] = GatewayError(
            "Duplicate entry 'sm1-p' for key 'uk_element_submodel_idshortpath'", 500
        )

        with pytest.raises(GatewayError):
            await reconciler.create_element(session, "sm1", {"idShort": "p"})

        (notification,) = session.notifications.drain()
        assert notification.summary == "Duplicate Element"
        assert "already exists" in notification.detail


class TestDelete:
    """Tests for deletion."""

    @pytest.mark.asyncio
    async def test_confirmed_delete(self, reconciler, session, gateway):
        """Test a successful delete re-reads the roots."""
        await load_roots(reconciler, session, gateway, SM1, SM2)
        gateway.submodel_listings = [[SM1]]

        result = await reconciler.delete_submodel(session, "sm2")

        assert result.outcome == ReconcileOutcome.CONFIRMED
        assert [root.submodel_id for root in session.roots] == ["sm1"]

    @pytest.mark.asyncio
    async def test_stale_delete_prunes_locally(self, reconciler, session, gateway):
        """Test a 404 on delete removes the node locally and reports success."""
        await load_roots(reconciler, session, gateway, SM1, SM2)
        gateway.results["delete_submodel"] = GatewayError("Not Found", 404)

        result = await reconciler.delete_submodel(session, "sm2")

        assert result.outcome == ReconcileOutcome.ASSUMED_FROM_CLIENT_STATE
        assert session.find("sm2::") is None
        (notification,) = session.notifications.drain()
        assert notification.severity == Severity.SUCCESS

    @pytest.mark.asyncio
    async def test_stale_element_delete(self, reconciler, session, gateway):
        """Test a 404 on element delete prunes the element node."""
        (root,) = await load_roots(reconciler, session, gateway, SM1)
        gateway.script_elements(Depth.SHALLOW, (), [{"idShort": "p", "valueType": "xs:string"}])
        await reconciler.builder.expand(session.scope, root)
        gateway.results["delete_element"] = GatewayError("Not Found", 404)

        result = await reconciler.delete_element(session, "sm1", ("p",))

        assert result.outcome == ReconcileOutcome.ASSUMED_FROM_CLIENT_STATE
        assert root.children == []

    @pytest.mark.asyncio
    async def test_delete_failure(self, reconciler, session, gateway):
        """Test other delete failures are surfaced and re-raised."""
        await load_roots(reconciler, session, gateway, SM1)
        gateway.results["delete_submodel"] = GatewayError("forbidden", 403)

        with pytest.raises(GatewayError):
            await reconciler.delete_submodel(session, "sm1")

        assert session.find("sm1::") is not None
        (notification,) = session.notifications.drain()
        assert notification.severity == Severity.ERROR
        assert notification.detail == "forbidden"


class TestSetValue:
    """Tests for value updates."""

    @pytest.mark.asyncio
    async def test_value_coerced_by_node_type(self, reconciler, session, gateway):
        """Test text input is coerced using the loaded node's valueType."""
        (root,) = await load_roots(reconciler, session, gateway, SM1)
        gateway.script_elements(Depth.SHALLOW, (), [{"idShort": "n", "valueType": "xs:int", "value": "1"}])
        await reconciler.builder.expand(session.scope, root)

        await reconciler.set_element_value(session, "sm1", ("n",), "42")

        assert gateway.called("patch_element_value") == [(encode_id("sm1"), ("n",), 42)]

    @pytest.mark.asyncio
    async def test_explicit_value_type(self, reconciler, session, gateway):
        """Test an explicit valueType is used for unloaded elements."""
        await reconciler.set_element_value(session, "sm1", ("flag",), "true", "xs:boolean")

        assert gateway.called("patch_element_value")[0][2] is True


class TestPackages:
    """Tests for package attach and upload."""

    @pytest.mark.asyncio
    async def test_staged_refresh(self, reconciler, session, gateway, sleeper):
        """Test attach refreshes the roots immediately and at each later offset."""
        await load_roots(reconciler, session, gateway, SM1)
        gateway.submodel_listings = [[SM1], [SM1, SM2], [SM1, SM2]]
        package = PackageFile(filename="pump.aasx", content=b"PK")
        selection = AttachSelection(submodels=[SubmodelSelection(id="sm2", full=True)])

        result = await reconciler.attach_selected(session, package, selection)
        assert result.outcome == ReconcileOutcome.PENDING
        await result.recheck

        assert sleeper.delays == [1.5, 2.5]
        assert len(gateway.called("list_submodels")) == 1 + 3
        assert [root.submodel_id for root in session.roots] == ["sm1", "sm2"]
        ((_, wire),) = gateway.called("attach_selected_from_package")
        assert wire == {"submodels": [{"id": "sm2", "full": True}]}

    @pytest.mark.asyncio
    async def test_upload_without_selection(self, reconciler, session, gateway):
        """Test an empty selection falls back to a plain upload."""
        package = PackageFile(filename="pump.aasx", content=b"PK")

        await reconciler.upload_with_selection(session, package, AttachSelection())
        await session.rechecks.wait_all()

        assert gateway.called("upload_package") == [("pump.aasx",)]
        assert gateway.called("attach_selected_from_package") == []


class TestReload:
    """Tests for full reloads."""

    @pytest.mark.asyncio
    async def test_reload_cancels_pending_rechecks(self, reconciler, session, gateway):
        """Test a reload cancels re-checks scheduled for the previous tree."""
        await load_roots(reconciler, session, gateway, SM1)
        blocker = asyncio.Event()

        async def slow_sleep(delay):
            await blocker.wait()

        reconciler._sleep = slow_sleep
        result = await reconciler.create_submodel(session, SM2)
        assert session.rechecks.pending == 1

        await reconciler.reload(session)

        with pytest.raises(asyncio.CancelledError):
            await result.recheck
        assert session.rechecks.pending == 0
