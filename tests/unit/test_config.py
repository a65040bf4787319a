"""Tests for ca_janitor.config — puppet.conf parsing and CASettings."""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from ca_janitor.config import CASettings, PuppetConfig, parse_text
from ca_janitor.errors import ConfigError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "puppet.conf"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# parse_text
# ---------------------------------------------------------------------------


class TestParseText:
    def test_sections_and_settings(self) -> None:
        parsed = parse_text("[main]\n  certname = foo\n[server]\ncadir=/x/ca\n")
        assert parsed == {"main": {"certname": "foo"}, "server": {"cadir": "/x/ca"}}

    def test_settings_before_section_belong_to_main(self) -> None:
        assert parse_text("server = ca.example\n") == {"main": {"server": "ca.example"}}

    def test_comments_and_metadata_are_dropped(self) -> None:
        parsed = parse_text(
            "# a comment\n[main]\nssldir = /ssl {owner = service}\ncadir = /ca # trailing\n"
        )
        assert parsed == {"main": {"ssldir": "/ssl", "cadir": "/ca"}}

    def test_section_header_with_trailing_text(self) -> None:
        assert parse_text("[agent] ignored\nserver = a\n") == {"agent": {"server": "a"}}


# ---------------------------------------------------------------------------
# PuppetConfig
# ---------------------------------------------------------------------------


class TestPuppetConfigDefaults:
    def test_defaults_without_config_file(self, tmp_path: Path) -> None:
        settings = PuppetConfig(confdir=tmp_path).load()
        assert settings.confdir == tmp_path
        assert settings.ssldir == tmp_path / "ssl"
        assert settings.cadir == tmp_path / "ssl" / "ca"
        assert settings.cacert == tmp_path / "ssl" / "ca" / "ca_crt.pem"
        assert settings.cakey == tmp_path / "ssl" / "ca" / "ca_key.pem"
        assert settings.cacrl == tmp_path / "ssl" / "ca" / "ca_crl.pem"
        assert settings.cert_inventory == tmp_path / "ssl" / "ca" / "inventory.txt"
        assert settings.signeddir == tmp_path / "ssl" / "ca" / "signed"
        assert settings.localcacert == tmp_path / "ssl" / "certs" / "ca.pem"
        assert settings.ca_server == "puppet"
        assert settings.ca_port == 8140

    def test_explicit_missing_file_is_error(self, tmp_path: Path) -> None:
        missing = tmp_path / "nope.conf"
        with pytest.raises(ConfigError) as excinfo:
            PuppetConfig(missing).load()
        assert excinfo.value.errors == [f"Could not read file '{missing}'"]


class TestPuppetConfigResolution:
    def test_interpolation(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "[main]\n"
            f"ssldir = {tmp_path}/ssl\n"
            "server = ca.example.test\n"
            "masterport = 8141\n"
            "[server]\n"
            "cadir = $ssldir/authority\n",
        )
        settings = PuppetConfig(path, confdir=tmp_path).load()
        assert settings.cadir == tmp_path / "ssl" / "authority"
        assert settings.signeddir == tmp_path / "ssl" / "authority" / "signed"
        assert settings.ca_server == "ca.example.test"
        assert settings.ca_port == 8141

    def test_later_sections_override_main(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "[server]\ncadir = /from/server\n[main]\ncadir = /from/main\n[master]\ncadir = /from/master\n",
        )
        settings = PuppetConfig(path, confdir=tmp_path).load()
        assert settings.cadir == Path("/from/server")

    def test_ca_server_overrides_server(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[main]\nserver = a.example\nca_server = b.example\nca_port = 9000\n")
        settings = PuppetConfig(path, confdir=tmp_path).load()
        assert settings.ca_server == "b.example"
        assert settings.ca_port == 9000

    def test_explicit_overrides_win(self, tmp_path: Path) -> None:
        settings = PuppetConfig(confdir=tmp_path).load({"cacrl": "/tmp/custom.pem"})
        assert settings.cacrl == Path("/tmp/custom.pem")

    def test_unknown_variable_is_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[main]\ncadir = $vardir/ca\n")
        with pytest.raises(ConfigError) as excinfo:
            PuppetConfig(path, confdir=tmp_path).load()
        assert any(
            error.startswith("Could not parse $vardir in $vardir/ca") for error in excinfo.value.errors
        )

    def test_invalid_port_is_error(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[main]\nmasterport = 70000\n")
        with pytest.raises(ConfigError) as excinfo:
            PuppetConfig(path, confdir=tmp_path).load()
        assert any("ca_port" in error for error in excinfo.value.errors)

    def test_reloading_does_not_repeat_errors(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[main]\ncadir = $vardir/ca\n")
        config = PuppetConfig(path, confdir=tmp_path)
        with pytest.raises(ConfigError) as first:
            config.load()
        with pytest.raises(ConfigError) as second:
            config.load()
        assert second.value.errors == first.value.errors

    def test_reload_after_fixing_file_succeeds(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[main]\ncadir = $vardir/ca\n")
        config = PuppetConfig(path, confdir=tmp_path)
        with pytest.raises(ConfigError):
            config.load()
        path.write_text(f"[main]\ncadir = {tmp_path}/ca\n", encoding="utf-8")
        assert config.load().cadir == tmp_path / "ca"

    def test_parse_classmethod(self, tmp_path: Path) -> None:
        path = _write(tmp_path, f"[main]\nconfdir = {tmp_path}\n")
        assert PuppetConfig.parse(path).confdir == tmp_path


# ---------------------------------------------------------------------------
# CASettings
# ---------------------------------------------------------------------------


class TestCASettings:
    @pytest.fixture()
    def fields(self, tmp_path: Path) -> dict[str, object]:
        cadir = tmp_path / "ca"
        return {
            "confdir": tmp_path,
            "ssldir": tmp_path,
            "cadir": cadir,
            "certdir": tmp_path / "certs",
            "certname": "ca.example",
            "cacert": cadir / "ca_crt.pem",
            "cakey": cadir / "ca_key.pem",
            "cacrl": cadir / "ca_crl.pem",
            "cert_inventory": cadir / "inventory.txt",
            "signeddir": cadir / "signed",
        }

    def test_signed_cert_path(self, fields: dict[str, object], tmp_path: Path) -> None:
        settings = CASettings(**fields)
        assert settings.signed_cert_path("web01") == tmp_path / "ca" / "signed" / "web01.pem"

    def test_blank_server_rejected(self, fields: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            CASettings(**fields, ca_server="   ")

    def test_frozen(self, fields: dict[str, object]) -> None:
        settings = CASettings(**fields)
        with pytest.raises(ValidationError):
            settings.ca_port = 1  # type: ignore[misc]
