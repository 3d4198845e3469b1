"""
Mutation endpoints for submodels and elements.

Submodels are addressed by their base64url token, elements additionally by
their slash-separated idShortPath. Every response carries the reconciliation
outcome and the notifications of the call.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException

from aas_sync.clients.aas_client import GatewayError
from aas_sync.dependencies import get_reconciler, get_session
from aas_sync.routers.common import gateway_http_error, mutation_response
from aas_sync.schemas.api import CreateElementRequest, MutationResponse, SetValueRequest
from aas_sync.services.reconciler import ReconciliationService
from aas_sync.services.session import TreeSession
from aas_sync.utils.identifiers import decode_id, split_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/aas/{system_type}/{system_id}/submodels", tags=["mutations"])


def _submodel_id(token: str) -> str:
    try:
        submodel_id = decode_id(token)
    except ValueError as e:
        raise ValueError(f"Invalid submodel token: {token}") from e
    if not submodel_id:
        raise ValueError("Submodel token is empty")
    return submodel_id


@router.post("", response_model=MutationResponse)
async def create_submodel(
    body: Annotated[dict[str, Any], Body()],
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """Create a submodel; it shows up among the roots once the backend has indexed it."""
    try:
        result = await reconciler.create_submodel(session, body)
        return mutation_response(session, result)
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception("Failed to create submodel")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{token}", response_model=MutationResponse)
async def update_submodel(
    token: str,
    body: Annotated[dict[str, Any], Body()],
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """Replace a submodel."""
    try:
        result = await reconciler.update_submodel(session, _submodel_id(token), body)
        return mutation_response(session, result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to update submodel {token}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{token}", response_model=MutationResponse)
async def delete_submodel(
    token: str,
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """
    Delete a submodel.

    A submodel the backend no longer knows is removed from the tree and
    reported as deleted.
    """
    try:
        result = await reconciler.delete_submodel(session, _submodel_id(token))
        return mutation_response(session, result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to delete submodel {token}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{token}/elements", response_model=MutationResponse)
async def create_element(
    token: str,
    request: CreateElementRequest,
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """Create an element below the submodel root or a collection."""
    try:
        result = await reconciler.create_element(
            session,
            _submodel_id(token),
            request.element,
            split_path(request.parentPath),
        )
        return mutation_response(session, result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to create element in {token}")
        raise HTTPException(status_code=500, detail=str(e))


@router.patch("/{token}/elements/{element_path:path}/value", response_model=MutationResponse)
async def set_element_value(
    token: str,
    element_path: str,
    request: SetValueRequest,
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """
    Set the value of an element.

    String input is coerced by the element's value type before it is sent.
    """
    try:
        result = await reconciler.set_element_value(
            session,
            _submodel_id(token),
            split_path(element_path),
            request.value,
            request.valueType,
        )
        return mutation_response(session, result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to set value of {element_path} in {token}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/{token}/elements/{element_path:path}", response_model=MutationResponse)
async def update_element(
    token: str,
    element_path: str,
    body: Annotated[dict[str, Any], Body()],
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """Replace an element."""
    try:
        result = await reconciler.update_element(
            session, _submodel_id(token), split_path(element_path), body
        )
        return mutation_response(session, result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to update {element_path} in {token}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{token}/elements/{element_path:path}", response_model=MutationResponse)
async def delete_element(
    token: str,
    element_path: str,
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """Delete an element; already missing elements are pruned locally."""
    try:
        result = await reconciler.delete_element(
            session, _submodel_id(token), split_path(element_path)
        )
        return mutation_response(session, result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to delete {element_path} in {token}")
        raise HTTPException(status_code=500, detail=str(e))
