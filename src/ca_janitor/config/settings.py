"""Resolved CA settings.

The values come from :class:`~ca_janitor.config.puppet.PuppetConfig` once
defaults and ``$variable`` interpolation have been applied.
"""
from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class CASettings(BaseModel):
    """Filesystem and network settings needed to maintain a CA directory.

    Parameters
    ----------
    cadir:
        Base directory of the certificate authority.
    cacert:
        PEM bundle holding the CA certificate (first entry) and its chain.
    cakey:
        PEM-encoded CA private key.
    cacrl:
        PEM file holding the CA's CRL, optionally followed by its chain.
    cert_inventory:
        Inventory log of every certificate the CA has issued.
    signeddir:
        Directory holding ``<certname>.pem`` for each signed certificate.
    ca_server:
        Hostname of the running CA service.
    ca_port:
        Port of the running CA service.
    localcacert:
        CA bundle used to verify the CA service's TLS certificate.
    """

    confdir: Path
    ssldir: Path
    cadir: Path
    certdir: Path
    certname: str
    cacert: Path
    cakey: Path
    cacrl: Path
    cert_inventory: Path
    signeddir: Path
    ca_server: str = "puppet"
    ca_port: int = Field(default=8140, gt=0, lt=65536)
    localcacert: Path | None = None

    model_config = {"frozen": True}

    @field_validator("ca_server")
    @classmethod
    def _server_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("ca_server must not be blank")
        return value.strip()

    def signed_cert_path(self, certname: str) -> Path:
        """Return the on-disk path of the signed certificate for *certname*."""
        return self.signeddir / f"{certname}.pem"
