"""
HTTP clients for remote systems.
"""

from aas_sync.clients.aas_client import AasGateway, GatewayError, Scope

__all__ = ["AasGateway", "GatewayError", "Scope"]
