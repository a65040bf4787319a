"""Editable certificate revocation lists.

``cryptography`` CRL objects are immutable, so an :class:`EditableCRL`
copies the parts of a parsed CRL that pruning touches into plain Python
values. After the entry list has been changed, :meth:`EditableCRL.resign`
rebuilds the CRL with its ``crlNumber`` bumped by one and signs it again.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Iterable

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ed448, ed25519
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificateIssuerPublicKeyTypes,
)
from cryptography.x509.oid import ExtensionOID

logger = logging.getLogger(__name__)

# CRLs without a next update time get one this far past their last update.
DEFAULT_CRL_TTL = datetime.timedelta(days=5 * 365)


@dataclass(frozen=True)
class RevocationEntry:
    """A single revoked serial inside a CRL.

    Parameters
    ----------
    serial:
        Serial number of the revoked certificate.
    revoked_at:
        When the certificate was revoked (UTC).
    extensions:
        Per-entry extensions such as the revocation reason.
    """

    serial: int
    revoked_at: datetime.datetime
    extensions: tuple[x509.Extension, ...] = ()

    @classmethod
    def from_revoked(cls, revoked: x509.RevokedCertificate) -> "RevocationEntry":
        return cls(
            serial=revoked.serial_number,
            revoked_at=revoked.revocation_date_utc,
            extensions=tuple(revoked.extensions),
        )

    def build(self) -> x509.RevokedCertificate:
        builder = (
            x509.RevokedCertificateBuilder()
            .serial_number(self.serial)
            .revocation_date(self.revoked_at)
        )
        for extension in self.extensions:
            builder = builder.add_extension(extension.value, extension.critical)
        return builder.build()


def crl_number(crl: x509.CertificateRevocationList) -> int | None:
    """Return the ``crlNumber`` extension value of *crl*, or None."""
    try:
        ext = crl.extensions.get_extension_for_oid(ExtensionOID.CRL_NUMBER)
    except x509.ExtensionNotFound:
        return None
    return ext.value.crl_number


def signing_algorithm(
    private_key: CertificateIssuerPrivateKeyTypes,
) -> hashes.HashAlgorithm | None:
    """Return the digest to sign with; EdDSA keys take none."""
    if isinstance(private_key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        return None
    return hashes.SHA256()


class EditableCRL:
    """A CRL whose revocation entries can be pruned and re-signed.

    Parameters
    ----------
    crl:
        The parsed CRL to edit. It is never modified.
    """

    def __init__(self, crl: x509.CertificateRevocationList) -> None:
        self._signed = crl
        self.issuer = crl.issuer
        self.last_update = crl.last_update_utc
        self.next_update = crl.next_update_utc
        self.entries: list[RevocationEntry] = [RevocationEntry.from_revoked(r) for r in crl]
        self._extensions = list(crl.extensions)
        self._number = crl_number(crl)
        self._modified = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def signed(self) -> x509.CertificateRevocationList:
        """The most recently signed form of this CRL."""
        return self._signed

    @property
    def number(self) -> int | None:
        return self._number

    @property
    def modified(self) -> bool:
        """True when entries changed since the CRL was last signed."""
        return self._modified

    def serials(self) -> list[int]:
        """Return the distinct revoked serials in CRL order."""
        return list(dict.fromkeys(entry.serial for entry in self.entries))

    def issuer_name(self) -> str:
        return self.issuer.rfc4514_string()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def remove_duplicates(self) -> list[RevocationEntry]:
        """Drop every entry whose serial already appeared earlier in the list.

        The first occurrence of each serial survives regardless of its
        revocation date, and the order of the survivors is preserved.

        Returns
        -------
        list[RevocationEntry]
            The entries that were removed.
        """
        seen: set[int] = set()
        kept: list[RevocationEntry] = []
        removed: list[RevocationEntry] = []
        for entry in self.entries:
            if entry.serial in seen:
                removed.append(entry)
            else:
                seen.add(entry.serial)
                kept.append(entry)
        self._replace_entries(kept, removed)
        return removed

    def remove_serials(self, serials: Iterable[int]) -> list[RevocationEntry]:
        """Drop every entry whose serial is in *serials*.

        Returns
        -------
        list[RevocationEntry]
            The entries that were removed.
        """
        targets = set(serials)
        kept = [e for e in self.entries if e.serial not in targets]
        removed = [e for e in self.entries if e.serial in targets]
        self._replace_entries(kept, removed)
        return removed

    def resign(
        self,
        private_key: CertificateIssuerPrivateKeyTypes,
    ) -> x509.CertificateRevocationList:
        """Bump ``crlNumber`` by one and sign the current entries.

        A CRL without a ``crlNumber`` is treated as number 0.

        Parameters
        ----------
        private_key:
            The CA private key.

        Returns
        -------
        x509.CertificateRevocationList
            The newly signed CRL, also available as :attr:`signed`.
        """
        new_number = (self._number or 0) + 1
        next_update = self.next_update or self.last_update + DEFAULT_CRL_TTL

        builder = (
            x509.CertificateRevocationListBuilder()
            .issuer_name(self.issuer)
            .last_update(self.last_update)
            .next_update(next_update)
        )

        number_written = False
        for extension in self._extensions:
            if extension.oid == ExtensionOID.CRL_NUMBER:
                builder = builder.add_extension(x509.CRLNumber(new_number), extension.critical)
                number_written = True
            else:
                builder = builder.add_extension(extension.value, extension.critical)
        if not number_written:
            builder = builder.add_extension(x509.CRLNumber(new_number), critical=False)

        for entry in self.entries:
            builder = builder.add_revoked_certificate(entry.build())

        self._signed = builder.sign(private_key, signing_algorithm(private_key))
        self._extensions = list(self._signed.extensions)
        self._number = new_number
        self._modified = False
        logger.debug(
            "Re-signed CRL for issuer %s, crlNumber is now %d",
            self.issuer_name(),
            new_number,
        )
        return self._signed

    # ------------------------------------------------------------------
    # Verification & serialization
    # ------------------------------------------------------------------

    def verify(self, public_key: CertificateIssuerPublicKeyTypes) -> bool:
        """Return True if the signed CRL verifies against *public_key*."""
        return verify_crl(self._signed, public_key)

    def to_pem(self) -> bytes:
        return self._signed.public_bytes(serialization.Encoding.PEM)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _replace_entries(
        self,
        kept: list[RevocationEntry],
        removed: list[RevocationEntry],
    ) -> None:
        self.entries = kept
        if removed:
            self._modified = True


def verify_crl(
    crl: x509.CertificateRevocationList,
    public_key: CertificateIssuerPublicKeyTypes,
) -> bool:
    """Return True if *crl* carries a valid signature from *public_key*.

    A key of the wrong type simply does not verify.
    """
    try:
        return crl.is_signature_valid(public_key)
    except (TypeError, ValueError):
        return False
