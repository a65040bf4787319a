"""PKI storage — abstract interface, filesystem and in-memory implementations.

PKIStore defines everything a maintenance run reads or writes: the CA
certificate, key and CRL, the inventory log and the signed certificate
directory. FilesystemPKIStore works on a CA directory described by
:class:`~ca_janitor.config.settings.CASettings`; MemoryPKIStore keeps
everything in dictionaries.
"""
from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from ca_janitor.config.settings import CASettings

logger = logging.getLogger(__name__)


class PKIStore(ABC):
    """Abstract base class for CA storage backends."""

    # ------------------------------------------------------------------
    # CA material
    # ------------------------------------------------------------------

    @abstractmethod
    def read_ca_cert(self) -> bytes:
        """Return the PEM bundle holding the CA certificate.

        Raises
        ------
        FileNotFoundError
            If no CA certificate is stored.
        """

    @abstractmethod
    def read_ca_key(self) -> bytes:
        """Return the PEM-encoded CA private key.

        Raises
        ------
        FileNotFoundError
            If no CA key is stored.
        """

    @abstractmethod
    def read_crl(self) -> bytes:
        """Return the PEM-encoded CRL chain.

        Raises
        ------
        FileNotFoundError
            If no CRL is stored.
        """

    @abstractmethod
    def write_crl(self, data: bytes) -> None:
        """Replace the stored CRL chain with *data* in a single write."""

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    @abstractmethod
    def read_inventory(self) -> str | None:
        """Return the inventory text, or None if there is no inventory."""

    @property
    @abstractmethod
    def inventory_location(self) -> str:
        """Human-readable location of the inventory, for log messages."""

    # ------------------------------------------------------------------
    # Signed certificates
    # ------------------------------------------------------------------

    @abstractmethod
    def list_signed(self) -> list[str]:
        """Return the sorted certnames of every stored signed certificate."""

    @abstractmethod
    def signed_exists(self, certname: str) -> bool:
        """Return True if a signed certificate is stored for *certname*."""

    @abstractmethod
    def read_signed(self, certname: str) -> bytes:
        """Return the PEM bytes of the signed certificate for *certname*.

        Raises
        ------
        KeyError
            If no certificate is stored for *certname*.
        OSError
            If the certificate exists but cannot be read.
        """

    @abstractmethod
    def delete_signed(self, certname: str) -> None:
        """Remove the signed certificate for *certname*.

        Raises
        ------
        KeyError
            If no certificate is stored for *certname*.
        """

    @abstractmethod
    def signed_location(self, certname: str) -> str:
        """Human-readable location of *certname*'s certificate."""


class FilesystemPKIStore(PKIStore):
    """PKI storage backed by a CA directory on disk.

    Signed certificates live at ``<signeddir>/<certname>.pem``.

    Parameters
    ----------
    settings:
        Resolved settings naming every file the store touches.
    """

    CRL_MODE = 0o644

    def __init__(self, settings: CASettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> CASettings:
        return self._settings

    # ------------------------------------------------------------------
    # PKIStore interface
    # ------------------------------------------------------------------

    def read_ca_cert(self) -> bytes:
        return self._settings.cacert.read_bytes()

    def read_ca_key(self) -> bytes:
        return self._settings.cakey.read_bytes()

    def read_crl(self) -> bytes:
        return self._settings.cacrl.read_bytes()

    def write_crl(self, data: bytes) -> None:
        """Atomically replace the CRL file, keeping the old one until done."""
        target = self._settings.cacrl
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".ca_crl.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.chmod(tmp_name, self.CRL_MODE)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote CRL to %s", target)

    def read_inventory(self) -> str | None:
        try:
            # Undecodable bytes survive as surrogates so the parser can reject just that line.
            return self._settings.cert_inventory.read_text(
                encoding="utf-8", errors="surrogateescape"
            )
        except FileNotFoundError:
            return None

    @property
    def inventory_location(self) -> str:
        return str(self._settings.cert_inventory)

    def list_signed(self) -> list[str]:
        signeddir = self._settings.signeddir
        if not signeddir.is_dir():
            return []
        return sorted(p.stem for p in signeddir.glob("*.pem") if p.is_file())

    def signed_exists(self, certname: str) -> bool:
        return self._settings.signed_cert_path(certname).is_file()

    def read_signed(self, certname: str) -> bytes:
        path = self._settings.signed_cert_path(certname)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise KeyError(f"No signed certificate stored for certname={certname!r}") from None

    def delete_signed(self, certname: str) -> None:
        path = self._settings.signed_cert_path(certname)
        try:
            path.unlink()
        except FileNotFoundError:
            raise KeyError(f"No signed certificate stored for certname={certname!r}") from None

    def signed_location(self, certname: str) -> str:
        return str(self._settings.signed_cert_path(certname))


class MemoryPKIStore(PKIStore):
    """In-memory PKI storage.

    Parameters
    ----------
    ca_cert:
        PEM bundle holding the CA certificate.
    ca_key:
        PEM-encoded CA private key.
    crl:
        PEM-encoded CRL chain.
    inventory:
        Inventory text, or None for a missing inventory.
    signed:
        Mapping of certname to PEM-encoded certificate bytes.
    """

    def __init__(
        self,
        ca_cert: bytes | None = None,
        ca_key: bytes | None = None,
        crl: bytes | None = None,
        inventory: str | None = None,
        signed: dict[str, bytes] | None = None,
    ) -> None:
        self.ca_cert = ca_cert
        self.ca_key = ca_key
        self.crl = crl
        self.inventory = inventory
        self.signed: dict[str, bytes] = dict(signed or {})
        self.crl_writes = 0

    def read_ca_cert(self) -> bytes:
        return self._require(self.ca_cert, "CA certificate")

    def read_ca_key(self) -> bytes:
        return self._require(self.ca_key, "CA key")

    def read_crl(self) -> bytes:
        return self._require(self.crl, "CRL")

    def write_crl(self, data: bytes) -> None:
        self.crl = data
        self.crl_writes += 1

    def read_inventory(self) -> str | None:
        return self.inventory

    @property
    def inventory_location(self) -> str:
        return "memory:inventory.txt"

    def list_signed(self) -> list[str]:
        return sorted(self.signed)

    def signed_exists(self, certname: str) -> bool:
        return certname in self.signed

    def read_signed(self, certname: str) -> bytes:
        try:
            return self.signed[certname]
        except KeyError:
            raise KeyError(f"No signed certificate stored for certname={certname!r}") from None

    def delete_signed(self, certname: str) -> None:
        try:
            del self.signed[certname]
        except KeyError:
            raise KeyError(f"No signed certificate stored for certname={certname!r}") from None

    def signed_location(self, certname: str) -> str:
        return f"memory:signed/{certname}.pem"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _require(value: bytes | None, what: str) -> bytes:
        if value is None:
            raise FileNotFoundError(f"No {what} stored")
        return value
