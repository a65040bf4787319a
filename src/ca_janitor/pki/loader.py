"""Loading CA material from a :class:`~ca_janitor.pki.store.PKIStore`.

CALoader parses the CA certificate bundle, private key and CRL chain and
picks out the CA's own CRL: the single CRL whose signature verifies with
the CA key.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from ca_janitor.errors import CRLIdentificationError, InvalidX509ObjectError
from ca_janitor.pki.crl import EditableCRL, verify_crl
from ca_janitor.pki.store import PKIStore

logger = logging.getLogger(__name__)

_CRL_BLOCK_PATTERN = re.compile(
    rb"-----BEGIN X509 CRL-----.*?-----END X509 CRL-----", re.DOTALL
)


def load_certificate(data: bytes) -> x509.Certificate:
    """Parse a single PEM certificate.

    Raises
    ------
    InvalidX509ObjectError
        If *data* does not hold a PEM certificate.
    """
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as exc:
        raise InvalidX509ObjectError("Could not parse certificate", wrapped=exc) from exc


def read_signed_certificate(store: PKIStore, certname: str) -> x509.Certificate:
    """Read and parse the signed certificate stored for *certname*.

    Raises
    ------
    KeyError
        If nothing is stored for *certname*.
    InvalidX509ObjectError
        If the stored bytes are not a certificate.
    """
    return load_certificate(store.read_signed(certname))


def load_crls(data: bytes) -> list[x509.CertificateRevocationList]:
    """Parse every PEM CRL in a concatenated chain, in file order.

    Raises
    ------
    InvalidX509ObjectError
        If any block fails to parse or no CRL is present.
    """
    blocks = _CRL_BLOCK_PATTERN.findall(data)
    if not blocks:
        raise InvalidX509ObjectError("Could not detect any CRLs in the CRL file")
    crls = []
    for block in blocks:
        try:
            crls.append(x509.load_pem_x509_crl(block))
        except ValueError as exc:
            raise InvalidX509ObjectError("Could not parse CRL entry", wrapped=exc) from exc
    return crls


@dataclass
class CABundle:
    """Parsed CA material.

    Parameters
    ----------
    cert:
        The CA certificate (first certificate of the bundle).
    key:
        The CA private key.
    crls:
        Every CRL from the CRL file, in file order.
    crl_index:
        Position of the CA's own CRL within *crls*.
    """

    cert: x509.Certificate
    key: CertificateIssuerPrivateKeyTypes
    crls: list[x509.CertificateRevocationList] = field(default_factory=list)
    crl_index: int = 0

    @property
    def ca_crl(self) -> x509.CertificateRevocationList:
        return self.crls[self.crl_index]

    def editable_crl(self) -> EditableCRL:
        return EditableCRL(self.ca_crl)

    def replace_ca_crl(self, crl: x509.CertificateRevocationList) -> None:
        self.crls[self.crl_index] = crl

    def crl_chain_pem(self) -> bytes:
        """Serialize every CRL back into a single PEM chain."""
        return b"".join(crl.public_bytes(serialization.Encoding.PEM) for crl in self.crls)


class CALoader:
    """Parses CA material held by a store.

    Parameters
    ----------
    store:
        The store to read from.
    """

    def __init__(self, store: PKIStore) -> None:
        self._store = store

    def load(self) -> CABundle:
        """Load the CA certificate, key and CRLs and identify the CA's CRL.

        Raises
        ------
        InvalidX509ObjectError
            If any of the files is missing or unparseable, or the key does
            not belong to the CA certificate.
        CRLIdentificationError
            If zero or several CRLs verify against the CA key.
        """
        cert = self.load_ca_cert()
        key = self.load_ca_key()
        if _public_bytes(key.public_key()) != _public_bytes(cert.public_key()):
            raise InvalidX509ObjectError("Private key and certificate do not match")

        crls = load_crls(self._read(self._store.read_crl, "CRL"))
        matches = [i for i, crl in enumerate(crls) if verify_crl(crl, key.public_key())]
        if len(matches) != 1:
            raise CRLIdentificationError(len(matches))

        logger.debug("Identified CA CRL at position %d of %d", matches[0], len(crls))
        return CABundle(cert=cert, key=key, crls=crls, crl_index=matches[0])

    def load_ca_cert(self) -> x509.Certificate:
        data = self._read(self._store.read_ca_cert, "CA certificate")
        try:
            certs = x509.load_pem_x509_certificates(data)
        except ValueError as exc:
            raise InvalidX509ObjectError("Could not parse CA certificate bundle", wrapped=exc) from exc
        return certs[0]

    def load_ca_key(self) -> CertificateIssuerPrivateKeyTypes:
        data = self._read(self._store.read_ca_key, "CA key")
        try:
            key = serialization.load_pem_private_key(data, password=None)
        except (ValueError, TypeError) as exc:
            raise InvalidX509ObjectError("Could not parse CA key", wrapped=exc) from exc
        return key  # type: ignore[return-value]

    @staticmethod
    def _read(reader, what: str) -> bytes:  # type: ignore[no-untyped-def]
        try:
            return reader()
        except OSError as exc:
            raise InvalidX509ObjectError(f"Could not read {what}: {exc}", wrapped=exc) from exc


def _public_bytes(public_key) -> bytes:  # type: ignore[no-untyped-def]
    return public_key.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
