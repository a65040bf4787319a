"""PKI state: inventory, CRLs, CA material and their storage."""
from __future__ import annotations

from ca_janitor.pki.crl import EditableCRL, RevocationEntry, crl_number
from ca_janitor.pki.inventory import (
    Inventory,
    InventoryParseResult,
    InventoryRecord,
    load_inventory,
    parse_inventory,
)
from ca_janitor.pki.loader import CABundle, CALoader, load_certificate
from ca_janitor.pki.store import FilesystemPKIStore, MemoryPKIStore, PKIStore

__all__ = [
    "CABundle",
    "CALoader",
    "EditableCRL",
    "FilesystemPKIStore",
    "Inventory",
    "InventoryParseResult",
    "InventoryRecord",
    "MemoryPKIStore",
    "PKIStore",
    "RevocationEntry",
    "crl_number",
    "load_certificate",
    "load_inventory",
    "parse_inventory",
]
