"""
FastAPI dependency injection setup.

Provides factory functions for service instances and per-system tree
sessions used across routes.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Path

from aas_sync.clients.aas_client import AasGateway, Scope, SystemType
from aas_sync.config import get_settings
from aas_sync.services.details import ElementDetailsService
from aas_sync.services.import_negotiator import SelectionNegotiator
from aas_sync.services.reconciler import ReconciliationService
from aas_sync.services.session import TreeSession
from aas_sync.services.tree_builder import TreeBuilderService

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    In-memory tree sessions keyed by (system type, system id).

    A session lives until it is dropped or the process ends.
    """

    def __init__(self) -> None:
        self._sessions: dict[Scope, TreeSession] = {}

    def get(self, scope: Scope) -> TreeSession:
        session = self._sessions.get(scope)
        if session is None:
            session = TreeSession(scope)
            self._sessions[scope] = session
            logger.debug(f"Opened tree session for {scope.base_path}")
        return session

    def drop(self, scope: Scope) -> bool:
        """Close and forget a session; returns False if there was none."""
        session = self._sessions.pop(scope, None)
        if session is None:
            return False
        session.close()
        return True

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def pending_rechecks(self) -> int:
        return sum(session.rechecks.pending for session in self._sessions.values())

    def close_all(self) -> None:
        for scope in list(self._sessions):
            self.drop(scope)


@lru_cache
def get_gateway() -> AasGateway:
    """Get cached gateway instance."""
    settings = get_settings()
    return AasGateway(
        base_url=settings.console_api_url,
        timeout=settings.request_timeout_seconds,
    )


@lru_cache
def get_tree_builder() -> TreeBuilderService:
    """Get cached tree builder instance."""
    return TreeBuilderService(get_gateway())


@lru_cache
def get_reconciler() -> ReconciliationService:
    """Get cached reconciliation service instance."""
    return ReconciliationService(get_tree_builder(), get_settings())


@lru_cache
def get_negotiator() -> SelectionNegotiator:
    """Get cached selection negotiator instance."""
    return SelectionNegotiator()


@lru_cache
def get_details_service() -> ElementDetailsService:
    """Get cached element details service instance."""
    return ElementDetailsService(get_tree_builder())


@lru_cache
def get_session_registry() -> SessionRegistry:
    """Get the process-wide session registry."""
    return SessionRegistry()


def get_scope(
    system_type: Annotated[SystemType, Path(description="source or target")],
    system_id: Annotated[int, Path(description="Console-side system id")],
) -> Scope:
    """Scope from the route's path parameters."""
    return Scope(system_type=system_type, system_id=system_id)


def get_session(
    scope: Annotated[Scope, Depends(get_scope)],
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
) -> TreeSession:
    """Tree session of the system addressed by the route."""
    return registry.get(scope)
