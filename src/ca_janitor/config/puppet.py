"""puppet.conf loading and settings resolution.

Only the handful of settings ca-janitor needs are resolved. Values may
reference earlier base settings (``$confdir``, ``$ssldir``, ``$cadir``,
``$certdir``, ``$certname``, ``$server``, ``$masterport``); any other
``$reference`` is reported as an error.
"""
from __future__ import annotations

import logging
import os
import re
import socket
from pathlib import Path

from pydantic import ValidationError

from ca_janitor.config.settings import CASettings
from ca_janitor.errors import ConfigError

logger = logging.getLogger(__name__)

_SECTION_PATTERN = re.compile(r"^\s*\[(\w+)\].*")
# Values stop at whitespace, an opening brace or a comment marker.
_SETTING_PATTERN = re.compile(r"^\s*(\w+)\s*=\s*([^\s{#]+).*$")
_UNRESOLVED_PATTERN = re.compile(r"\$[a-z_]+")

# Later sections override earlier ones.
_SECTION_PRECEDENCE = ("main", "master", "server")


def running_as_root() -> bool:
    """Return True when running as root on a POSIX system."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def parse_text(text: str) -> dict[str, dict[str, str]]:
    """Parse puppet.conf INI text into ``{section: {key: value}}``.

    Settings that appear before any section header belong to ``main``.
    """
    result: dict[str, dict[str, str]] = {}
    section = "main"
    for line in text.splitlines():
        section_match = _SECTION_PATTERN.match(line)
        if section_match:
            section = section_match.group(1)
            continue
        setting_match = _SETTING_PATTERN.match(line)
        if setting_match:
            result.setdefault(section, {})[setting_match.group(1)] = setting_match.group(2)
    return result


class PuppetConfig:
    """Loads puppet.conf and resolves the settings a CA maintenance run needs.

    Parameters
    ----------
    config_path:
        Explicit path to puppet.conf. When omitted the per-user default is
        used, and a missing default file simply yields built-in defaults.
    confdir:
        Override for the default configuration directory.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        confdir: str | Path | None = None,
    ) -> None:
        self._using_default_location = config_path is None
        self._confdir = Path(confdir) if confdir is not None else self.default_confdir()
        self.config_path = (
            Path(config_path) if config_path is not None else self._confdir / "puppet.conf"
        )
        self.errors: list[str] = []
        self.settings: CASettings | None = None

    @classmethod
    def parse(cls, config_path: str | Path | None = None) -> CASettings:
        """Load *config_path* and return the resolved settings.

        Raises
        ------
        ConfigError
            If the file is unreadable or a setting cannot be resolved.
        """
        return cls(config_path).load()

    @staticmethod
    def default_confdir() -> Path:
        if running_as_root():
            return Path("/etc/puppetlabs/puppet")
        return Path.home() / ".puppetlabs" / "etc" / "puppet"

    def load(self, overrides: dict[str, str] | None = None) -> CASettings:
        """Read the config file, apply *overrides* and resolve every setting."""
        self.errors = []
        sections: dict[str, dict[str, str]] = {}
        if not self._using_default_location or self.config_path.exists():
            try:
                text = self.config_path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigError([f"Could not read file '{self.config_path}'"]) from exc
            sections = parse_text(text)
            logger.debug("Loaded configuration from %s", self.config_path)

        merged: dict[str, str] = {}
        for name in _SECTION_PRECEDENCE:
            merged.update(sections.get(name, {}))
        merged.update(overrides or {})

        resolved = self.resolve_settings(merged)
        if self.errors:
            raise ConfigError(self.errors)

        try:
            self.settings = CASettings(**resolved)
        except ValidationError as exc:
            raise ConfigError(
                [f"Invalid setting {'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()]
            ) from exc
        return self.settings

    def resolve_settings(self, overrides: dict[str, str]) -> dict[str, str]:
        """Apply defaults and ``$variable`` interpolation to *overrides*."""
        substitutions: dict[str, str] = {}

        def substitute(value: str) -> str:
            return _UNRESOLVED_PATTERN.sub(
                lambda m: substitutions.get(m.group(0), m.group(0)), value
            )

        # Order matters: each base default may refer to the ones above it.
        base_defaults = [
            ("confdir", str(self._confdir)),
            ("ssldir", "$confdir/ssl"),
            ("cadir", "$ssldir/ca"),
            ("certdir", "$ssldir/certs"),
            ("certname", socket.gethostname().rstrip(".").lower()),
            ("server", "puppet"),
            ("masterport", "8140"),
        ]
        dependent_defaults = {
            "cacert": "$cadir/ca_crt.pem",
            "cakey": "$cadir/ca_key.pem",
            "cacrl": "$cadir/ca_crl.pem",
            "cert_inventory": "$cadir/inventory.txt",
            "signeddir": "$cadir/signed",
            "ca_server": "$server",
            "ca_port": "$masterport",
            "localcacert": "$certdir/ca.pem",
        }

        settings: dict[str, str] = {}
        for name, default in base_defaults:
            value = substitute(overrides.get(name, default))
            settings[name] = substitutions[f"${name}"] = value

        for name, default in dependent_defaults.items():
            settings[name] = overrides.get(name, default)

        for name, value in settings.items():
            settings[name] = substitute(value)
            leftover = _UNRESOLVED_PATTERN.search(settings[name])
            if leftover:
                self.errors.append(
                    f"Could not parse {leftover.group(0)} in {value}, "
                    "valid settings to be interpolated are "
                    "$ssldir, $certdir, $cadir, $certname, $server, or $masterport"
                )
        return settings
