"""Signed certificate deletion.

Once a certificate has been delivered to its node the CA no longer needs
its own copy. These operations remove signed certificates that have
expired, that have been revoked, that were named explicitly, or all of
them. Each returns a :class:`DeleteResult`; a problem with one
certificate is recorded as a soft error and the rest are still processed.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Iterable

from cryptography import x509

from ca_janitor.errors import InvalidX509ObjectError
from ca_janitor.outcome import OperationResult, RunReport
from ca_janitor.pki.inventory import Inventory, load_inventory
from ca_janitor.pki.loader import CALoader, read_signed_certificate
from ca_janitor.pki.serials import format_serial
from ca_janitor.pki.store import PKIStore

logger = logging.getLogger(__name__)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class DeleteResult(OperationResult):
    """Outcome of a deletion, with the serials of the certificates removed
    where they are known.
    """

    serials: list[int] = field(default_factory=list)

    def merge(self, other: OperationResult) -> "DeleteResult":
        super().merge(other)
        if isinstance(other, DeleteResult):
            self.serials.extend(other.serials)
        return self


def _delete(
    store: PKIStore,
    certname: str,
    result: DeleteResult,
    serial: int | None = None,
) -> bool:
    """Delete *certname*'s certificate; failing to remove it is a soft error."""
    location = store.signed_location(certname)
    try:
        store.delete_signed(certname)
    except KeyError:
        message = f"Could not find certificate file at {location}"
        logger.error(message)
        result.add_error(message, certname)
        return False
    except OSError as exc:
        message = f"Could not delete certificate file at {location}: {exc.strerror or exc}"
        logger.error(message)
        result.add_error(message, certname)
        return False
    logger.info("Deleting certificate at %s", location)
    result.count += 1
    if serial is not None:
        result.serials.append(serial)
    return True


def delete_certs(store: PKIStore, certnames: Iterable[str]) -> DeleteResult:
    """Delete the certificates of the given certnames."""
    result = DeleteResult()
    for certname in certnames:
        _delete(store, certname, result)
    return result


def delete_all(store: PKIStore) -> DeleteResult:
    """Delete every signed certificate."""
    return delete_certs(store, store.list_signed())


def delete_expired(
    store: PKIStore,
    inventory: Inventory,
    now: datetime.datetime | None = None,
) -> DeleteResult:
    """Delete certificates whose validity window has ended.

    Certnames whose current inventory record is expired are deleted first
    without opening their files. Certificates on disk that the inventory
    does not know about are then parsed and deleted if expired.
    """
    now = now or _now()
    result = DeleteResult()

    for certname in inventory.expired(now):
        record = inventory.current(certname)
        _delete(store, certname, result, record.serial if record else None)

    for certname in store.list_signed():
        if certname in inventory:
            continue
        location = store.signed_location(certname)
        try:
            cert = read_signed_certificate(store, certname)
        except KeyError:
            message = f"Could not find certificate file at {location}"
            logger.error(message)
            result.add_error(message, certname)
            continue
        except (InvalidX509ObjectError, OSError):
            message = f"Error reading certificate at {location}"
            logger.error(message)
            result.add_error(message, certname)
            continue
        if cert.not_valid_after_utc < now:
            _delete(store, certname, result, cert.serial_number)

    return result


class _SignedSerialIndex:
    """Serial → certname index over the signed directory, built on first use."""

    def __init__(self, store: PKIStore) -> None:
        self._store = store
        self._index: dict[int, str] | None = None

    def find(self, serial: int, result: OperationResult) -> str | None:
        if self._index is None:
            self._index = self._build(result)
        certname = self._index.get(serial)
        if certname is not None and not self._store.signed_exists(certname):
            return None
        return certname

    def _build(self, result: OperationResult) -> dict[int, str]:
        index: dict[int, str] = {}
        for certname in self._store.list_signed():
            try:
                cert = read_signed_certificate(self._store, certname)
            except (KeyError, InvalidX509ObjectError, OSError):
                message = f"Error reading certificate at {self._store.signed_location(certname)}"
                logger.error(message)
                result.add_error(message, certname)
                continue
            index.setdefault(cert.serial_number, certname)
        return index


def delete_revoked(
    store: PKIStore,
    revoked_serials: Iterable[int],
    inventory: Inventory,
    already_deleted: Iterable[int] = (),
) -> DeleteResult:
    """Delete the certificates whose serials appear in the CRL.

    Serials in *already_deleted* belong to certificates removed earlier in
    the same run and are skipped. Every other serial is resolved in three
    steps:

    1. It is the current serial of a certname in the inventory: that
       certname's certificate is deleted. A missing file means it was
       already cleaned up and is not an error.
    2. It is an old serial of a certname: the certificate on disk is only
       deleted if its own serial is the revoked one, as the certname may
       have been issued a fresh certificate since.
    3. Otherwise every certificate on disk is parsed and the one carrying
       the serial is deleted. Finding none is a soft error.
    """
    result = DeleteResult()
    on_disk = _SignedSerialIndex(store)
    skip = set(already_deleted)

    for serial in revoked_serials:
        shown = format_serial(serial)
        if serial in skip:
            logger.debug("Certificate with serial %s was already deleted", shown)
            continue

        certname = inventory.certname_for_current_serial(serial)
        if certname is not None:
            if store.signed_exists(certname):
                _delete(store, certname, result, serial)
            else:
                logger.debug("Revoked certificate %s for %s is already gone", shown, certname)
            continue

        certname = inventory.certname_for_old_serial(serial)
        if certname is not None:
            _delete_if_serial_matches(store, certname, serial, result)
            continue

        certname = on_disk.find(serial, result)
        if certname is None:
            message = (
                f"Could not find serial {shown} in inventory.txt or in any "
                "certificate file currently on disk."
            )
            logger.error(message)
            result.add_error(message, shown)
            continue
        _delete(store, certname, result, serial)

    return result


def _delete_if_serial_matches(
    store: PKIStore,
    certname: str,
    serial: int,
    result: DeleteResult,
) -> None:
    if not store.signed_exists(certname):
        logger.debug("No certificate on disk for %s, nothing to delete", certname)
        return
    try:
        cert: x509.Certificate = read_signed_certificate(store, certname)
    except (KeyError, InvalidX509ObjectError, OSError):
        message = f"Error reading serial from certificate for {certname}"
        logger.error(message)
        result.add_error(message, certname)
        return

    if cert.serial_number != serial:
        logger.info(
            "Found old serial %s for %s, but the certificate on disk has serial %s; "
            "not deleting it",
            format_serial(serial),
            certname,
            format_serial(cert.serial_number),
        )
        return
    _delete(store, certname, result, serial)


class DeleteAction:
    """Deletes signed certificates held by a store.

    Parameters
    ----------
    store:
        Storage holding the signed certificates, inventory and CRL.
    """

    def __init__(self, store: PKIStore) -> None:
        self._store = store

    def run(
        self,
        expired: bool = False,
        revoked: bool = False,
        certnames: Iterable[str] = (),
        delete_everything: bool = False,
        report: RunReport | None = None,
        now: datetime.datetime | None = None,
    ) -> RunReport:
        """Perform the requested deletions.

        Raises
        ------
        InvalidX509ObjectError
            If ``revoked`` is set and the CA material cannot be loaded.
        CRLIdentificationError
            If ``revoked`` is set and the CA's CRL cannot be identified.
        """
        report = report if report is not None else RunReport()

        if delete_everything:
            report.record(delete_all(self._store))
            return report

        revoked_serials: list[int] = []
        if revoked:
            # Load the CRL before touching anything so a fatal error leaves disk untouched.
            bundle = CALoader(self._store).load()
            revoked_serials = bundle.editable_crl().serials()

        inventory = Inventory()
        if expired or revoked:
            parsed = load_inventory(self._store)
            if not parsed.found:
                for error in parsed.errors:
                    logger.error(error.message)
            report.errors.extend(parsed.errors)
            inventory = parsed.inventory

        deleted: list[int] = []
        if expired:
            deleted = report.record(delete_expired(self._store, inventory, now)).serials
        if revoked:
            report.record(delete_revoked(self._store, revoked_serials, inventory, deleted))

        certnames = list(certnames)
        if certnames:
            report.record(delete_certs(self._store, certnames))

        return report
