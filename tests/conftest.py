"""Shared fixtures: a throwaway CA and builders for certificates, CRLs and inventories."""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from ca_janitor.config import CASettings, PuppetConfig
from ca_janitor.pki import FilesystemPKIStore
from ca_janitor.pki.inventory import format_inventory_time

UTC = datetime.timezone.utc


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def to_pem(obj: x509.Certificate | x509.CertificateRevocationList) -> bytes:
    return obj.public_bytes(serialization.Encoding.PEM)


def key_to_pem(key: RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


# ---------------------------------------------------------------------------
# CA material (expensive to create, shared per session)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def ca_key() -> RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_key() -> RSAPrivateKey:
    """A key unrelated to the CA, for CRLs the CA did not sign."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ca_cert(ca_key: RSAPrivateKey) -> x509.Certificate:
    now = datetime.datetime.now(UTC)
    name = _name("Puppet CA: test")
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(ca_key.public_key())
        .serial_number(1)
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def make_cert(
    ca_key: RSAPrivateKey, ca_cert: x509.Certificate
) -> Callable[..., x509.Certificate]:
    """Return a builder for leaf certificates signed by the test CA.

    Leaves reuse the CA key pair; only their serial and validity matter here.
    """

    def build(
        certname: str,
        serial: int,
        expired: bool = False,
    ) -> x509.Certificate:
        now = datetime.datetime.now(UTC)
        if expired:
            not_before, not_after = now - datetime.timedelta(days=10), now - datetime.timedelta(seconds=1)
        else:
            not_before, not_after = now - datetime.timedelta(seconds=1), now + datetime.timedelta(days=100)
        return (
            x509.CertificateBuilder()
            .subject_name(_name(certname))
            .issuer_name(ca_cert.subject)
            .public_key(ca_key.public_key())
            .serial_number(serial)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .sign(ca_key, hashes.SHA256())
        )

    return build


@pytest.fixture(scope="session")
def make_crl(
    ca_key: RSAPrivateKey, ca_cert: x509.Certificate
) -> Callable[..., x509.CertificateRevocationList]:
    """Return a builder for CRLs; repeated serials yield duplicate entries."""

    def build(
        serials: Iterable[int] = (),
        crl_number: int | None = 0,
        signing_key: RSAPrivateKey | None = None,
        revoked_at: Iterable[datetime.datetime] | None = None,
    ) -> x509.CertificateRevocationList:
        now = datetime.datetime.now(UTC).replace(microsecond=0)
        serials = list(serials)
        dates = list(revoked_at) if revoked_at is not None else [now] * len(serials)
        builder = (
            x509.CertificateRevocationListBuilder()
            .issuer_name(ca_cert.subject)
            .last_update(now - datetime.timedelta(minutes=5))
            .next_update(now + datetime.timedelta(days=365))
        )
        if crl_number is not None:
            builder = builder.add_extension(x509.CRLNumber(crl_number), critical=False)
        for serial, date in zip(serials, dates):
            builder = builder.add_revoked_certificate(
                x509.RevokedCertificateBuilder().serial_number(serial).revocation_date(date).build()
            )
        return builder.sign(signing_key or ca_key, hashes.SHA256())

    return build


def inventory_line(serial: int, certname: str, expired: bool = False) -> str:
    now = datetime.datetime.now(UTC)
    if expired:
        not_before, not_after = now - datetime.timedelta(days=10), now - datetime.timedelta(seconds=1)
    else:
        not_before, not_after = now - datetime.timedelta(seconds=1), now + datetime.timedelta(days=100)
    return (
        f"0x{serial:04x} {format_inventory_time(not_before)} "
        f"{format_inventory_time(not_after)} /CN={certname}"
    )


@pytest.fixture(scope="session")
def make_inventory_line() -> Callable[..., str]:
    return inventory_line


# ---------------------------------------------------------------------------
# A CA directory on disk
# ---------------------------------------------------------------------------


@dataclass
class CADir:
    """A CA directory laid out the way the CA service leaves it."""

    config: Path
    settings: CASettings
    store: FilesystemPKIStore

    @property
    def cadir(self) -> Path:
        return self.settings.cadir

    @property
    def signeddir(self) -> Path:
        return self.settings.signeddir

    def signed(self, certname: str) -> Path:
        return self.settings.signed_cert_path(certname)

    def write_cert(self, certname: str, cert: x509.Certificate | bytes) -> None:
        data = cert if isinstance(cert, bytes) else to_pem(cert)
        self.signed(certname).write_bytes(data)

    def write_inventory(self, lines: Iterable[str], append: bool = False) -> None:
        text = "".join(f"{line}\n" for line in lines)
        with self.settings.cert_inventory.open("a" if append else "w", encoding="utf-8") as handle:
            handle.write(text)

    def write_crls(self, *crls: x509.CertificateRevocationList) -> None:
        self.settings.cacrl.write_bytes(b"".join(to_pem(crl) for crl in crls))

    def read_crls(self) -> list[x509.CertificateRevocationList]:
        from ca_janitor.pki.loader import load_crls

        return load_crls(self.settings.cacrl.read_bytes())


@pytest.fixture()
def ca_dir(
    tmp_path: Path,
    ca_key: RSAPrivateKey,
    ca_cert: x509.Certificate,
    make_crl: Callable[..., x509.CertificateRevocationList],
) -> CADir:
    """An empty CA: CA cert, key, an empty CRL and a signed directory."""
    confdir = tmp_path / "puppet"
    cadir = confdir / "ssl" / "ca"
    (cadir / "signed").mkdir(parents=True)

    config = confdir / "puppet.conf"
    config.write_text(
        "[main]\n"
        f"  ssldir = {confdir / 'ssl'}\n"
        "  server = ca.example.test\n"
        "[server]\n"
        f"  cadir = {cadir}\n",
        encoding="utf-8",
    )
    settings = PuppetConfig(config, confdir=confdir).load()

    settings.cacert.write_bytes(to_pem(ca_cert))
    settings.cakey.write_bytes(key_to_pem(ca_key))
    settings.cacrl.write_bytes(to_pem(make_crl()))
    return CADir(config=config, settings=settings, store=FilesystemPKIStore(settings))


@pytest.fixture()
def populated_ca_dir(
    ca_dir: CADir,
    make_cert: Callable[..., x509.Certificate],
) -> CADir:
    """nodeA is expired, nodeB is valid (with an older expired serial 2), and
    nodeC is expired but missing from the inventory.
    """
    ca_dir.write_cert("nodeA", make_cert("nodeA", 1, expired=True))
    ca_dir.write_cert("nodeB", make_cert("nodeB", 3))
    ca_dir.write_cert("nodeC", make_cert("nodeC", 4, expired=True))
    ca_dir.write_inventory(
        [
            inventory_line(1, "nodeA", expired=True),
            inventory_line(2, "nodeB", expired=True),
            inventory_line(3, "nodeB"),
            "",
        ]
    )
    return ca_dir


@pytest.fixture()
def revoked_ca_dir(
    populated_ca_dir: CADir,
    make_cert: Callable[..., x509.Certificate],
    make_crl: Callable[..., x509.CertificateRevocationList],
) -> CADir:
    """Adds revocations on top of populated_ca_dir.

    - nodeD (serial 5) is revoked and current: it should be deleted.
    - nodeB's serial 3 is revoked but nodeB was re-issued as serial 6: the
      live nodeB certificate must survive.
    - nodeC (serial 4) is revoked and only found by scanning the disk.
    """
    ca_dir = populated_ca_dir
    ca_dir.write_cert("nodeB", make_cert("nodeB", 6))
    ca_dir.write_cert("nodeD", make_cert("nodeD", 5))
    ca_dir.write_crls(make_crl([3, 4, 5]))
    ca_dir.write_inventory([inventory_line(5, "nodeD"), inventory_line(6, "nodeB")], append=True)
    return ca_dir
