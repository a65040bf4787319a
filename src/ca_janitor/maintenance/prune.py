"""CRL pruning — duplicate removal and targeted entry removal.

The functions here edit an :class:`~ca_janitor.pki.crl.EditableCRL` in
memory and never sign or write it. :class:`PruneAction` batches them for
one run: it loads the CA's CRL, applies every requested prune, re-signs
once if anything changed and writes the CRL chain back at the very end.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from ca_janitor.errors import InvalidX509ObjectError
from ca_janitor.outcome import OperationResult, RunReport
from ca_janitor.pki.crl import EditableCRL
from ca_janitor.pki.inventory import load_inventory
from ca_janitor.pki.loader import CALoader, read_signed_certificate
from ca_janitor.pki.serials import format_serial, parse_serial
from ca_janitor.pki.store import PKIStore

logger = logging.getLogger(__name__)


@dataclass
class PruneResult(OperationResult):
    """Outcome of a prune, with the serials whose entries were removed."""

    serials: list[int] = field(default_factory=list)

    def merge(self, other: OperationResult) -> "PruneResult":
        super().merge(other)
        if isinstance(other, PruneResult):
            self.serials.extend(other.serials)
        return self


def remove_duplicates(crl: EditableCRL) -> PruneResult:
    """Collapse repeated serials in *crl* down to their first entry."""
    logger.debug("Pruning duplicate entries in CRL for issuer %s", crl.issuer_name())
    removed = crl.remove_duplicates()
    for entry in removed:
        logger.debug(
            "Removing duplicate of %s, revoked on %s",
            format_serial(entry.serial),
            entry.revoked_at.isoformat(),
        )
    return PruneResult(count=len(removed), serials=[e.serial for e in removed])


def remove_serials(crl: EditableCRL, serials: Iterable[str]) -> PruneResult:
    """Remove every entry of *crl* matching one of the hex *serials*.

    Strings that are not hexadecimal serials are skipped.
    """
    targets: list[int] = []
    for text in serials:
        serial = parse_serial(text)
        if serial is None:
            logger.debug("Skipping %r, it is not a hexadecimal serial number", text)
            continue
        targets.append(serial)
    return _remove(crl, targets)


def remove_certnames(crl: EditableCRL, store: PKIStore, certnames: Iterable[str]) -> PruneResult:
    """Remove every entry of *crl* issued to one of *certnames*."""
    return _remove(crl, resolve_certname_serials(store, certnames))


def resolve_certname_serials(store: PKIStore, certnames: Iterable[str]) -> list[int]:
    """Map certnames to the serials ever issued to them.

    The inventory is consulted first and yields every serial recorded for a
    name. Names it does not know fall back to the serial of the signed
    certificate on disk. Names neither source knows are skipped.
    """
    certnames = list(certnames)
    parsed = load_inventory(store)
    inventory = parsed.inventory
    if not parsed.found:
        logger.debug(
            "No inventory at %s, resolving certnames from the signed directory",
            store.inventory_location,
        )

    serials: list[int] = []
    for certname in certnames:
        recorded = inventory.serials(certname)
        if recorded:
            serials.extend(recorded)
            continue

        try:
            cert = read_signed_certificate(store, certname)
        except KeyError:
            logger.warning(
                "Could not find a serial for %s in the inventory or the signed directory, skipping",
                certname,
            )
            continue
        except (InvalidX509ObjectError, OSError):
            logger.warning(
                "Could not read the certificate at %s, skipping %s",
                store.signed_location(certname),
                certname,
            )
            continue
        serials.append(cert.serial_number)
    return serials


def _remove(crl: EditableCRL, serials: list[int]) -> PruneResult:
    if not serials:
        return PruneResult()
    removed = crl.remove_serials(serials)
    matched = list(dict.fromkeys(e.serial for e in removed))
    for serial in matched:
        logger.info("Removing serial %s from the CRL", format_serial(serial))
    return PruneResult(count=len(removed), serials=matched)


class PruneAction:
    """Prunes the CA's CRL held by a store.

    Parameters
    ----------
    store:
        Storage holding the CA certificate, key and CRL.
    """

    def __init__(self, store: PKIStore) -> None:
        self._store = store

    def run(
        self,
        dedupe: bool = True,
        serials: Iterable[str] = (),
        certnames: Iterable[str] = (),
        report: RunReport | None = None,
    ) -> RunReport:
        """Apply the requested prunes and persist the CRL if it changed.

        Parameters
        ----------
        dedupe:
            Collapse duplicate serials.
        serials:
            Hex serials whose entries should be removed.
        certnames:
            Certnames whose entries should be removed.
        report:
            Report to accumulate into; a new one is created when omitted.

        Raises
        ------
        InvalidX509ObjectError
            If the CA material cannot be loaded.
        CRLIdentificationError
            If the CA's CRL cannot be identified.
        """
        report = report if report is not None else RunReport()
        bundle = CALoader(self._store).load()
        crl = bundle.editable_crl()

        if dedupe:
            result = report.record(remove_duplicates(crl))
            logger.info("%d duplicated certs removed from the CRL.", result.count)

        serials = list(serials)
        certnames = list(certnames)
        if serials or certnames:
            removed = PruneResult()
            if serials:
                removed.merge(remove_serials(crl, serials))
            if certnames:
                removed.merge(remove_certnames(crl, self._store, certnames))
            report.record(removed)
            logger.info("%d entries removed from the CRL.", removed.count)

        if not crl.modified:
            logger.info("No changes made to the CRL.")
            return report

        bundle.replace_ca_crl(crl.resign(bundle.key))
        self._store.write_crl(bundle.crl_chain_pem())
        logger.info("Finished pruning Puppet's CRL, crlNumber is now %d.", crl.number)
        return report
