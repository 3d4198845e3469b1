"""
FastAPI routers for the AAS tree sync backend.
"""

from aas_sync.routers import mutations, packages, tree

__all__ = ["tree", "mutations", "packages"]
