"""
Backend services for the AAS tree.

- Tree Builder: discovery and lazy expansion
- Reconciliation: mutations with eventual-consistency re-checks
- Import Negotiator: package preview selection
- Details: live element panels
"""

from aas_sync.services.details import ElementDetailsService
from aas_sync.services.import_negotiator import SelectionNegotiator
from aas_sync.services.reconciler import ReconciliationService
from aas_sync.services.tree_builder import TreeBuilderService

__all__ = [
    "TreeBuilderService",
    "ReconciliationService",
    "SelectionNegotiator",
    "ElementDetailsService",
]
