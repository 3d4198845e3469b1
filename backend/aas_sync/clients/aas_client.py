"""
AAS gateway client for the configuration backend.

Thin async wrapper around the per-system AAS routes. Every method maps to
exactly one HTTP call and carries no tree logic.
"""

import json
import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel

from aas_sync.schemas.packages import PackageFile
from aas_sync.utils.identifiers import (
    ElementPath,
    encode_path_segments,
    to_parent_path_param,
)

logger = logging.getLogger(__name__)


class SystemType(str, Enum):
    """The two remote targets that share the AAS protocol."""

    SOURCE = "source"
    TARGET = "target"


class Depth(str, Enum):
    """Element listing depth."""

    SHALLOW = "shallow"
    ALL = "all"


class DataSource(str, Enum):
    """Read mode for source systems."""

    SNAPSHOT = "SNAPSHOT"
    LIVE = "LIVE"


class Scope(BaseModel):
    """A single remote system: its type and console-side id."""

    system_type: SystemType
    system_id: int

    model_config = {"frozen": True}

    @property
    def base_path(self) -> str:
        """Route prefix of this system's AAS endpoints."""
        return f"/api/config/{self.system_type.value}-system/{self.system_id}/aas"

    @property
    def supports_source_param(self) -> bool:
        return self.system_type is SystemType.SOURCE


class GatewayError(Exception):
    """
    Failure of a gateway call.

    Carries the upstream HTTP status (None for transport errors) and the
    server-provided message when one was returned.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_bad_request(self) -> bool:
        return self.status_code == 400

    @classmethod
    def from_response(cls, response: httpx.Response) -> "GatewayError":
        """Build an error from a non-2xx response, preferring the server message."""
        message: str | None = None
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            for field in ("error", "message", "detail"):
                value = payload.get(field)
                if value:
                    message = value if isinstance(value, str) else json.dumps(value)
                    break
        elif isinstance(payload, str) and payload:
            message = payload

        if not message:
            message = response.text.strip() or f"HTTP {response.status_code}"

        return cls(message, status_code=response.status_code)


def unwrap_result(payload: Any) -> list[Any]:
    """
    Normalize a listing response to a bare list.

    Servers answer either with an array or with an envelope exposing the
    array under "result".
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("result"), list):
        return payload["result"]
    return []


class AasGateway:
    """
    Async HTTP client for the AAS routes of the configuration backend.

    Features:
    - Source and target systems addressed through an explicit Scope
    - Envelope normalization for listing responses
    - Uniform GatewayError for HTTP and transport failures
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        return {
            "Accept": "application/json",
            "User-Agent": "AAS-Tree-Sync/1.0",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            kwargs: dict[str, Any] = {
                "base_url": self.base_url,
                "headers": self.headers,
                "transport": self._transport,
            }
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Issue one request and decode the JSON body.

        Args:
            method: HTTP method
            path: Path below the base URL
            **kwargs: Additional request arguments

        Returns:
            Decoded JSON, or None for empty bodies

        Raises:
            GatewayError: On HTTP or transport errors
        """
        client = await self._get_client()
        logger.debug(f"{method} {path} params={kwargs.get('params')}")
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise GatewayError(f"Request to {path} failed: {e}") from e

        if response.is_error:
            raise GatewayError.from_response(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _source_params(scope: Scope, source: DataSource | None) -> dict[str, str]:
        if source is not None and scope.supports_source_param:
            return {"source": source.value}
        return {}

    @staticmethod
    def _element_url(scope: Scope, submodel_token: str, path: ElementPath) -> str:
        return (
            f"{scope.base_path}/submodels/{submodel_token}/elements/"
            f"{encode_path_segments(path)}"
        )

    async def test_connection(self, scope: Scope) -> Any:
        """Ask the backend to test the AAS connection of a system."""
        return await self._request("POST", f"{scope.base_path}/test", json={})

    async def refresh_snapshot(self, scope: Scope) -> Any:
        """Request a snapshot refresh (source systems only)."""
        if scope.system_type is not SystemType.SOURCE:
            raise ValueError("Snapshot refresh is only supported for source systems")
        return await self._request(
            "POST", f"{scope.base_path}/snapshot/refresh", json={}
        )

    async def list_submodels(
        self, scope: Scope, source: DataSource | None = None
    ) -> list[dict[str, Any]]:
        """List submodel descriptors of a system."""
        payload = await self._request(
            "GET",
            f"{scope.base_path}/submodels",
            params=self._source_params(scope, source),
        )
        return unwrap_result(payload)

    async def list_elements(
        self,
        scope: Scope,
        submodel_token: str,
        depth: Depth = Depth.SHALLOW,
        parent_path: ElementPath = (),
        source: DataSource | None = None,
    ) -> list[dict[str, Any]]:
        """
        List elements of a submodel.

        Args:
            scope: Target system
            submodel_token: base64url token of the submodel identifier
            depth: Direct children only, or the whole flattened subtree
            parent_path: Parent element path; empty for the submodel root
            source: Read mode for source systems

        Returns:
            Bare list of element descriptors
        """
        params: dict[str, str] = {"depth": depth.value}
        parent_param = to_parent_path_param(parent_path)
        if parent_param:
            params["parentPath"] = parent_param
        params.update(self._source_params(scope, source))

        payload = await self._request(
            "GET",
            f"{scope.base_path}/submodels/{submodel_token}/elements",
            params=params,
        )
        return unwrap_result(payload)

    async def get_element(
        self,
        scope: Scope,
        submodel_token: str,
        path: ElementPath,
        source: DataSource | None = None,
    ) -> dict[str, Any]:
        """Get a single element descriptor."""
        payload = await self._request(
            "GET",
            self._element_url(scope, submodel_token, path),
            params=self._source_params(scope, source),
        )
        if isinstance(payload, dict) and isinstance(payload.get("result"), dict):
            return payload["result"]
        return payload if isinstance(payload, dict) else {}

    async def create_submodel(self, scope: Scope, body: dict[str, Any]) -> Any:
        return await self._request("POST", f"{scope.base_path}/submodels", json=body)

    async def put_submodel(
        self, scope: Scope, submodel_token: str, body: dict[str, Any]
    ) -> Any:
        return await self._request(
            "PUT", f"{scope.base_path}/submodels/{submodel_token}", json=body
        )

    async def delete_submodel(self, scope: Scope, submodel_token: str) -> Any:
        return await self._request(
            "DELETE", f"{scope.base_path}/submodels/{submodel_token}"
        )

    async def create_element(
        self,
        scope: Scope,
        submodel_token: str,
        body: dict[str, Any],
        parent_path: ElementPath = (),
    ) -> Any:
        params: dict[str, str] = {}
        parent_param = to_parent_path_param(parent_path)
        if parent_param:
            params["parentPath"] = parent_param
        return await self._request(
            "POST",
            f"{scope.base_path}/submodels/{submodel_token}/elements",
            json=body,
            params=params,
        )

    async def put_element(
        self,
        scope: Scope,
        submodel_token: str,
        path: ElementPath,
        body: dict[str, Any],
    ) -> Any:
        return await self._request(
            "PUT", self._element_url(scope, submodel_token, path), json=body
        )

    async def delete_element(
        self, scope: Scope, submodel_token: str, path: ElementPath
    ) -> Any:
        return await self._request(
            "DELETE", self._element_url(scope, submodel_token, path)
        )

    async def patch_element_value(
        self,
        scope: Scope,
        submodel_token: str,
        path: ElementPath,
        value: Any,
    ) -> Any:
        return await self._request(
            "PATCH",
            f"{self._element_url(scope, submodel_token, path)}/value",
            json=value,
        )

    async def upload_package(self, scope: Scope, package: PackageFile) -> Any:
        """Upload a whole AASX package."""
        return await self._request(
            "POST", f"{scope.base_path}/upload", files=package.as_multipart()
        )

    async def preview_package(self, scope: Scope, package: PackageFile) -> Any:
        """Ask the backend which submodels and elements a package contains."""
        return await self._request(
            "POST", f"{scope.base_path}/upload/preview", files=package.as_multipart()
        )

    async def attach_selected_from_package(
        self, scope: Scope, package: PackageFile, selection: dict[str, Any]
    ) -> Any:
        """
        Attach only the selected content of a package.

        The selection travels as a JSON-encoded multipart field next to the
        file.
        """
        return await self._request(
            "POST",
            f"{scope.base_path}/upload/attach-selected",
            files=package.as_multipart(),
            data={"selection": json.dumps(selection)},
        )

    async def __aenter__(self) -> "AasGateway":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
