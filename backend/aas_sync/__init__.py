"""
AAS Tree Sync Backend

Browses and edits the Asset Administration Shell content of remote source
and target systems through the configuration backend's AAS routes.

Architecture:
- Gateway: one async HTTP call per remote operation
- Tree Builder: lazy, level-by-level tree with a deep-listing fallback
- Reconciler: mutations followed by refreshes and delayed re-checks
- Import Negotiator: selective attach of AASX package content
"""

__version__ = "1.0.0"
