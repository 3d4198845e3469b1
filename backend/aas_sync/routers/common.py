"""
Helpers shared by the routers.
"""

from fastapi import HTTPException

from aas_sync.clients.aas_client import GatewayError
from aas_sync.schemas.api import MutationResponse
from aas_sync.services.reconciler import ReconcileResult
from aas_sync.services.session import TreeSession


def gateway_http_error(e: GatewayError) -> HTTPException:
    """Upstream status and message, or 502 when the backend was unreachable."""
    return HTTPException(status_code=e.status_code or 502, detail=e.message)


def node_not_found(key: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Node not loaded: {key}")


def mutation_response(session: TreeSession, result: ReconcileResult) -> MutationResponse:
    """Reconciliation outcome plus the notifications drained from the session."""
    return MutationResponse(
        outcome=result.outcome,
        node=result.node,
        notifications=session.notifications.drain(),
    )
