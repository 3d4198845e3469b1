"""
Package endpoints for previewing and selectively attaching AASX files.

The selection lives on the system's tree session between the preview and
the attach call.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from aas_sync.clients.aas_client import AasGateway, GatewayError
from aas_sync.config import get_settings
from aas_sync.dependencies import get_gateway, get_negotiator, get_reconciler, get_session
from aas_sync.routers.common import gateway_http_error, mutation_response
from aas_sync.schemas.api import ElementSelectionRequest, MutationResponse, WholeSelectionRequest
from aas_sync.schemas.packages import AttachSelection, PackageFile, PackagePreviewResponse
from aas_sync.services.import_negotiator import SelectionNegotiator
from aas_sync.services.reconciler import ReconciliationService
from aas_sync.services.session import TreeSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/aas/{system_type}/{system_id}/packages", tags=["packages"])


async def _read_package(file: UploadFile) -> PackageFile:
    """Read an uploaded AASX file, enforcing type and size limits."""
    settings = get_settings()

    if not file.filename or not file.filename.endswith(".aasx"):
        raise ValueError("Only AASX files are accepted")

    contents = await file.read()
    max_size = settings.max_upload_size_mb * 1024 * 1024
    if len(contents) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_upload_size_mb}MB",
        )

    if file.content_type and file.content_type != "application/octet-stream":
        return PackageFile(
            filename=file.filename, content=contents, content_type=file.content_type
        )
    return PackageFile(filename=file.filename, content=contents)


@router.post("/preview", response_model=PackagePreviewResponse)
async def preview_package(
    file: Annotated[UploadFile, File(...)],
    session: Annotated[TreeSession, Depends(get_session)],
    gateway: Annotated[AasGateway, Depends(get_gateway)],
    negotiator: Annotated[SelectionNegotiator, Depends(get_negotiator)],
) -> PackagePreviewResponse:
    """
    Preview the submodels of a package.

    Starts a new selection that includes every previewed submodel in full.
    """
    try:
        package = await _read_package(file)
        payload = await gateway.preview_package(session.scope, package)
        preview = negotiator.build_preview_response(payload)
        session.selection = negotiator.init_from_preview(preview.submodels)
        if preview.emptySubmodels:
            session.notifications.info(
                "Preview",
                f"{preview.emptySubmodels} submodel(s) list no elements "
                "and can only be attached as a whole",
            )
        return preview
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        session.notifications.error("Preview failed", e.message)
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception("Failed to preview package")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/selection", response_model=AttachSelection)
async def get_selection(
    session: Annotated[TreeSession, Depends(get_session)],
    negotiator: Annotated[SelectionNegotiator, Depends(get_negotiator)],
) -> AttachSelection:
    """Current selection in its wire form."""
    return negotiator.serialize(session.selection)


@router.post("/selection/whole", response_model=AttachSelection)
async def toggle_whole(
    request: WholeSelectionRequest,
    session: Annotated[TreeSession, Depends(get_session)],
    negotiator: Annotated[SelectionNegotiator, Depends(get_negotiator)],
) -> AttachSelection:
    """Select or deselect a whole submodel."""
    negotiator.toggle_whole(session.selection, request.submodelId, request.checked)
    return negotiator.serialize(session.selection)


@router.post("/selection/element", response_model=AttachSelection)
async def toggle_element(
    request: ElementSelectionRequest,
    session: Annotated[TreeSession, Depends(get_session)],
    negotiator: Annotated[SelectionNegotiator, Depends(get_negotiator)],
) -> AttachSelection:
    """Select or deselect one element of a submodel."""
    negotiator.toggle_element(
        session.selection, request.submodelId, request.elementName, request.checked
    )
    return negotiator.serialize(session.selection)


@router.post("/attach", response_model=MutationResponse)
async def attach_package(
    file: Annotated[UploadFile, File(...)],
    session: Annotated[TreeSession, Depends(get_session)],
    negotiator: Annotated[SelectionNegotiator, Depends(get_negotiator)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """
    Attach the selected content of a package.

    Without a selection the whole package is uploaded.
    """
    try:
        package = await _read_package(file)
        selection = negotiator.serialize(session.selection)
        result = await reconciler.upload_with_selection(session, package, selection)
        session.selection = {}
        return mutation_response(session, result)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception("Failed to attach package")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/upload", response_model=MutationResponse)
async def upload_package(
    file: Annotated[UploadFile, File(...)],
    session: Annotated[TreeSession, Depends(get_session)],
    reconciler: Annotated[ReconciliationService, Depends(get_reconciler)],
) -> MutationResponse:
    """Upload a whole package."""
    try:
        package = await _read_package(file)
        result = await reconciler.upload_package(session, package)
        return mutation_response(session, result)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayError as e:
        raise gateway_http_error(e)
    except Exception as e:
        logger.exception("Failed to upload package")
        raise HTTPException(status_code=500, detail=str(e))
