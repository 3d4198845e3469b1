"""
Tree endpoints for discovering and expanding a system's AAS content.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query

from aas_sync.clients.aas_client import AasGateway, DataSource, GatewayError
from aas_sync.dependencies import (
    get_details_service,
    get_gateway,
    get_reconciler,
    get_session,
    get_tree_builder,
)
from aas_sync.routers.common import gateway_http_error, node_not_found
from aas_sync.schemas.api import NodeRequest, TreeResponse
from aas_sync.schemas.tree import ElementDetails, TreeNode
from aas_sync.services.details import ElementDetailsService
from aas_sync.services.notifications import Notification
from aas_sync.services.reconciler import ReconciliationService
from aas_sync.services.session import TreeSession
from aas_sync.services.tree_builder import TreeBuilderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/aas/{system_type}/{system_id}", tags=["tree"])


def _tree_response(session: TreeSession) -> TreeResponse:
    return TreeResponse(roots=session.roots, pendingRechecks=session.rechecks.pending)


@router.get("/tree", response_model=TreeResponse)
async def get_tree(
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> TreeResponse:
    """
    Get the current tree of a system.

    The roots are discovered on first access; later calls return the
    in-memory tree including everything expanded so far, even when the
    system has no submodels yet.
    """
    try:
        if not session.discovered:
            await reconciler.reload(session)
        return _tree_response(session)
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to load tree for {session.scope.base_path}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/tree/reload", response_model=TreeResponse)
async def reload_tree(
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> TreeResponse:
    """Rebuild the tree from scratch, cancelling pending re-checks."""
    try:
        await reconciler.reload(session)
        return _tree_response(session)
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to reload tree for {session.scope.base_path}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/tree/discover", response_model=list[TreeNode])
async def discover(
    session: Annotated[TreeSession, Depends(get_session)],
    builder: Annotated[TreeBuilderService, Depends(get_tree_builder)],
    source: Annotated[DataSource | None, Query(description="SNAPSHOT or LIVE")] = None,
) -> list[TreeNode]:
    """List the submodels of a system without touching the session tree."""
    try:
        return await builder.discover_roots(session.scope, source)
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Discovery failed for {session.scope.base_path}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/tree/expand", response_model=list[TreeNode])
async def expand_node(
    request: NodeRequest,
    session: Annotated[TreeSession, Depends(get_session)],
    builder: Annotated[TreeBuilderService, Depends(get_tree_builder)],
) -> list[TreeNode]:
    """
    Load the children of a node.

    Leaves return an empty list; loaded nodes are only re-fetched when
    refresh is set.
    """
    node = session.find(request.key)
    if node is None:
        raise node_not_found(request.key)
    try:
        return await builder.expand(session.scope, node, refresh=request.refresh)
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to expand {request.key}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/tree/details", response_model=ElementDetails)
async def element_details(
    request: NodeRequest,
    session: Annotated[TreeSession, Depends(get_session)],
    details: Annotated[ElementDetailsService, Depends(get_details_service)],
) -> ElementDetails:
    """Live details of an element node."""
    node = session.find(request.key)
    if node is None:
        raise node_not_found(request.key)
    try:
        return await details.load_details(session, node)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Failed to load details for {request.key}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/notifications", response_model=list[Notification])
async def drain_notifications(
    session: Annotated[TreeSession, Depends(get_session)],
) -> list[Notification]:
    """Return and clear the pending notifications of a system."""
    return session.notifications.drain()


@router.post("/test-connection")
async def test_connection(
    session: Annotated[TreeSession, Depends(get_session)],
    gateway: Annotated[AasGateway, Depends(get_gateway)],
) -> Any:
    """Ask the configuration backend to test the system's AAS connection."""
    try:
        result = await gateway.test_connection(session.scope)
        session.notifications.success("Connection OK", session.scope.base_path)
        return result
    except GatewayError as e:
        session.notifications.error("Connection failed", e.message)
        raise gateway_http_error(e)


@router.post("/snapshot/refresh")
async def refresh_snapshot(
    session: Annotated[TreeSession, Depends(get_session)],
    gateway: Annotated[AasGateway, Depends(get_gateway)],
) -> Any:
    """Refresh the snapshot of a source system."""
    try:
        result = await gateway.refresh_snapshot(session.scope)
        session.notifications.success("Snapshot Refreshed", session.scope.base_path)
        return result
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        session.notifications.error("Snapshot refresh failed", e.message)
        raise gateway_http_error(e)
