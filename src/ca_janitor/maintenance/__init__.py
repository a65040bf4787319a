"""CRL pruning and signed certificate cleanup."""
from __future__ import annotations

from ca_janitor.maintenance.delete import (
    DeleteAction,
    DeleteResult,
    delete_all,
    delete_certs,
    delete_expired,
    delete_revoked,
)
from ca_janitor.maintenance.prune import (
    PruneAction,
    PruneResult,
    remove_certnames,
    remove_duplicates,
    remove_serials,
    resolve_certname_serials,
)

__all__ = [
    "DeleteAction",
    "DeleteResult",
    "PruneAction",
    "PruneResult",
    "delete_all",
    "delete_certs",
    "delete_expired",
    "delete_revoked",
    "remove_certnames",
    "remove_duplicates",
    "remove_serials",
    "resolve_certname_serials",
]
