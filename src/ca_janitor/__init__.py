"""ca-janitor — CRL pruning and signed certificate cleanup for a Puppet CA.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import ca_janitor
>>> ca_janitor.__version__
'0.1.0'

Quick start
-----------
::

    from ca_janitor import FilesystemPKIStore, PruneAction, PuppetConfig

    settings = PuppetConfig("/etc/puppetlabs/puppet/puppet.conf").load()
    report = PruneAction(FilesystemPKIStore(settings)).run()
    raise SystemExit(report.exit_code)
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------
from ca_janitor.config import CASettings, PuppetConfig

# ------------------------------------------------------------------
# Errors and outcomes
# ------------------------------------------------------------------
from ca_janitor.errors import (
    CAConnectionError,
    CAJanitorError,
    CAServiceOnlineError,
    ConfigError,
    CRLIdentificationError,
    InvalidX509ObjectError,
)
from ca_janitor.outcome import OperationResult, RunOutcome, RunReport, SoftError

# ------------------------------------------------------------------
# PKI state
# ------------------------------------------------------------------
from ca_janitor.pki import (
    CABundle,
    CALoader,
    EditableCRL,
    FilesystemPKIStore,
    Inventory,
    InventoryRecord,
    MemoryPKIStore,
    PKIStore,
    RevocationEntry,
    load_inventory,
    parse_inventory,
)

# ------------------------------------------------------------------
# Maintenance
# ------------------------------------------------------------------
from ca_janitor.maintenance import DeleteAction, PruneAction
from ca_janitor.service import check_server_online

__all__ = [
    # version
    "__version__",
    # configuration
    "CASettings",
    "PuppetConfig",
    # errors
    "CAConnectionError",
    "CAJanitorError",
    "CAServiceOnlineError",
    "CRLIdentificationError",
    "ConfigError",
    "InvalidX509ObjectError",
    # outcomes
    "OperationResult",
    "RunOutcome",
    "RunReport",
    "SoftError",
    # pki
    "CABundle",
    "CALoader",
    "EditableCRL",
    "FilesystemPKIStore",
    "Inventory",
    "InventoryRecord",
    "MemoryPKIStore",
    "PKIStore",
    "RevocationEntry",
    "load_inventory",
    "parse_inventory",
    # maintenance
    "DeleteAction",
    "PruneAction",
    "check_server_online",
]
