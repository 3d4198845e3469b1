"""
Shared fixtures: a scripted in-memory gateway and zero-delay settings.
"""

from typing import Any

import pytest

from aas_sync.clients.aas_client import Depth, GatewayError, Scope, SystemType
from aas_sync.config import Settings
from aas_sync.services.reconciler import ReconciliationService
from aas_sync.services.session import TreeSession
from aas_sync.services.tree_builder import TreeBuilderService


class FakeGateway:
    """
    Stand-in for AasGateway that replays scripted responses.

    Listings are queues: each call consumes the next scripted response and
    the last one is repeated. A scripted exception is raised instead of
    returned.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.submodel_listings: list[Any] = [[]]
        self.element_listings: dict[tuple[Depth, tuple[str, ...]], list[Any]] = {}
        self.results: dict[str, Any] = {}

    @staticmethod
    def _next(queue: list[Any]) -> Any:
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result

    def _result(self, name: str) -> Any:
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        return result

    def script_elements(
        self, depth: Depth, parent_path: tuple[str, ...], *responses: Any
    ) -> None:
        self.element_listings[(depth, parent_path)] = list(responses)

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    async def list_submodels(self, scope, source=None):
        self.calls.append(("list_submodels", (source,)))
        return self._next(self.submodel_listings)

    async def list_elements(self, scope, token, depth=Depth.SHALLOW, parent_path=(), source=None):
        self.calls.append(("list_elements", (token, depth, parent_path, source)))
        queue = self.element_listings.get((depth, parent_path))
        if queue is None:
            raise GatewayError("Not Found", status_code=404)
        return self._next(queue)

    async def get_element(self, scope, token, path, source=None):
        self.calls.append(("get_element", (token, path, source)))
        return self._result("get_element")

    async def create_submodel(self, scope, body):
        self.calls.append(("create_submodel", (body,)))
        return self._result("create_submodel")

    async def put_submodel(self, scope, token, body):
        self.calls.append(("put_submodel", (token, body)))
        return self._result("put_submodel")

    async def delete_submodel(self, scope, token):
        self.calls.append(("delete_submodel", (token,)))
        return self._result("delete_submodel")

    async def create_element(self, scope, token, body, parent_path=()):
        self.calls.append(("create_element", (token, body, parent_path)))
        return self._result("create_element")

    async def put_element(self, scope, token, path, body):
        self.calls.append(("put_element", (token, path, body)))
        return self._result("put_element")

    async def delete_element(self, scope, token, path):
        self.calls.append(("delete_element", (token, path)))
        return self._result("delete_element")

    async def patch_element_value(self, scope, token, path, value):
        self.calls.append(("patch_element_value", (token, path, value)))
        return self._result("patch_element_value")

    async def upload_package(self, scope, package):
        self.calls.append(("upload_package", (package.filename,)))
        return self._result("upload_package")

    async def preview_package(self, scope, package):
        self.calls.append(("preview_package", (package.filename,)))
        return self._result("preview_package")

    async def attach_selected_from_package(self, scope, package, selection):
        self.calls.append(("attach_selected_from_package", (package.filename, selection)))
        return self._result("attach_selected_from_package")

    async def test_connection(self, scope):
        self.calls.append(("test_connection", ()))
        return self._result("test_connection")

    async def refresh_snapshot(self, scope):
        self.calls.append(("refresh_snapshot", ()))
        return self._result("refresh_snapshot")

    async def close(self) -> None:
        pass


class RecordingSleep:
    """Replacement for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        reconcile_base_delay_seconds=1.0,
        reconcile_max_attempts=3,
        attach_refresh_offsets_seconds=[0.0, 1.5, 4.0],
        optimistic_insert_on_timeout=False,
    )


@pytest.fixture
def target_scope() -> Scope:
    return Scope(system_type=SystemType.TARGET, system_id=7)


@pytest.fixture
def source_scope() -> Scope:
    return Scope(system_type=SystemType.SOURCE, system_id=3)


@pytest.fixture
def builder(gateway: FakeGateway) -> TreeBuilderService:
    return TreeBuilderService(gateway)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def reconciler(
    builder: TreeBuilderService, settings: Settings, sleeper: RecordingSleep
) -> ReconciliationService:
    return ReconciliationService(builder, settings, sleep=sleeper)


@pytest.fixture
def session(target_scope: Scope) -> TreeSession:
    return TreeSession(target_scope)
