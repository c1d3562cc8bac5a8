"""Member Portal - tool catalog, favorites and credential disclosure.

The portal core owns the tool registry, answers catalog queries, keeps
per-user favorites, and discloses tool credentials behind a status guard
with an append-only audit trail.
"""

from portal.registry import ToolRegistry
from portal.catalog import CATEGORIES, query
from portal.favorites import FavoritesStore
from portal.vault import CredentialVault
from portal.audit import DisclosureAuditLog

__all__ = [
    "ToolRegistry",
    "CATEGORIES",
    "query",
    "FavoritesStore",
    "CredentialVault",
    "DisclosureAuditLog",
]
