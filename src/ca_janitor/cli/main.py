"""CLI entry point for ca-janitor.

Invoked as::

    ca-janitor [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m ca_janitor.cli.main

Commands
--------
prune     Prune duplicate or named entries from the CA's CRL
delete    Delete signed certificates from the CA directory
version   Show version information

Exit codes
----------
0   everything requested was done
1   nothing was done: bad flags, bad configuration, CA service running,
    unreadable CA material
24  the run completed but some certificates or entries could not be handled
"""
from __future__ import annotations

import contextlib
import logging
import sys
from typing import Iterator, NoReturn

import click
from rich.console import Console
from rich.markup import escape

from ca_janitor.config import PuppetConfig
from ca_janitor.errors import CAJanitorError, CAServiceOnlineError, ConfigError
from ca_janitor.maintenance import DeleteAction, PruneAction
from ca_janitor.outcome import RunOutcome, RunReport
from ca_janitor.pki import FilesystemPKIStore
from ca_janitor.service import check_server_online

console = Console()
err_console = Console(stderr=True)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

# Certnames that would be mistaken for flags by anyone reading the command line.
CERTNAME_BLOCKLIST = frozenset({"--config", "--expired", "--revoked", "--all"})


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="ca-janitor")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging verbosity.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """Maintenance for a Puppet certificate authority directory"""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from ca_janitor import __version__

    console.print(f"[bold]ca-janitor[/bold] v{__version__}")


# ------------------------------------------------------------------
# prune
# ------------------------------------------------------------------


@cli.command(name="prune")
@click.option("--config", "config_path", type=click.Path(), default=None, help="Path to puppet.conf.")
@click.option(
    "--remove-duplicates",
    is_flag=True,
    help="Remove duplicate entries from the CRL (the default when no flag is given).",
)
@click.option(
    "--remove-entries",
    is_flag=True,
    help="Remove the entries named by --serial and/or --certname from the CRL.",
)
@click.option(
    "--serial",
    "serials",
    multiple=True,
    help="Comma-separated hexadecimal serial numbers to remove (repeatable).",
)
@click.option(
    "--certname",
    "certnames",
    multiple=True,
    help="Comma-separated certnames whose entries should be removed (repeatable).",
)
@click.pass_context
def prune_command(
    ctx: click.Context,
    config_path: str | None,
    remove_duplicates: bool,
    remove_entries: bool,
    serials: tuple[str, ...],
    certnames: tuple[str, ...],
) -> None:
    """Prune the CA's CRL on disk.

    Only the CRL issued by the CA certificate is pruned. Any change bumps
    its crlNumber by one and re-signs it with the CA key.
    """
    serial_list = _split_list(serials)
    certname_list = _split_list(certnames)

    errors: list[str] = []
    if remove_entries and not (serial_list or certname_list):
        errors.append("--remove-entries requires --serial or --certname values")
    if (serial_list or certname_list) and not remove_entries:
        errors.append("--serial and --certname may only be used with --remove-entries")
    if errors:
        _usage_failure(ctx, errors)

    dedupe = remove_duplicates or not remove_entries

    with _cli_logging(ctx.obj["log_level"]):
        report = RunReport()
        store = _prepare_store(config_path)
        try:
            PruneAction(store).run(
                dedupe=dedupe,
                serials=serial_list,
                certnames=certname_list,
                report=report,
            )
        except CAJanitorError as exc:
            _fatal(str(exc))

        console.print(
            f"{report.count} CRL {_plural(report.count, 'entry', 'entries')} removed.",
            soft_wrap=True,
        )
        _finish(report)


# ------------------------------------------------------------------
# delete
# ------------------------------------------------------------------


@cli.command(name="delete")
@click.option("--config", "config_path", type=click.Path(), default=None, help="Path to puppet.conf.")
@click.option("--expired", is_flag=True, help="Delete expired signed certificates.")
@click.option("--revoked", is_flag=True, help="Delete signed certificates that have been revoked.")
@click.option(
    "--certname",
    "certnames",
    multiple=True,
    help="Comma-separated certnames whose signed certificates should be deleted (repeatable).",
)
@click.option("--all", "delete_everything", is_flag=True, help="Delete all signed certificates on disk.")
@click.pass_context
def delete_command(
    ctx: click.Context,
    config_path: str | None,
    expired: bool,
    revoked: bool,
    certnames: tuple[str, ...],
    delete_everything: bool,
) -> None:
    """Delete signed certificates from disk.

    Once a certificate is signed and delivered to a node, the CA no longer
    needs its own copy.
    """
    certname_list = _split_list(certnames)

    errors: list[str] = []
    for certname in certname_list:
        if certname in CERTNAME_BLOCKLIST:
            errors.append(
                f"Cannot manage cert named `{certname}` from the CLI. "
                "If needed, use the HTTP API directly."
            )
    if not (expired or revoked or certname_list or delete_everything):
        errors.append("Must pass one of the valid flags to determine which certs to delete")
    if delete_everything and (expired or revoked or certname_list):
        errors.append("The --all flag must not be used with --expired, --revoked, or --certname")
    if errors:
        _usage_failure(ctx, errors)

    with _cli_logging(ctx.obj["log_level"]):
        report = RunReport()
        store = _prepare_store(config_path)
        try:
            DeleteAction(store).run(
                expired=expired,
                revoked=revoked,
                certnames=certname_list,
                delete_everything=delete_everything,
                report=report,
            )
        except CAJanitorError as exc:
            _fatal(str(exc))

        console.print(
            f"{report.count} {_plural(report.count, 'certificate', 'certificates')} deleted.",
            soft_wrap=True,
        )
        _finish(report)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _split_list(values: tuple[str, ...]) -> list[str]:
    """Flatten repeated, comma-separated option values."""
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


def _prepare_store(config_path: str | None) -> FilesystemPKIStore:
    """Resolve settings and confirm the CA service is stopped."""
    try:
        settings = PuppetConfig(config_path).load()
    except ConfigError as exc:
        _fatal(*exc.errors)

    try:
        if check_server_online(settings):
            raise CAServiceOnlineError()
    except CAJanitorError as exc:
        _fatal(str(exc))

    return FilesystemPKIStore(settings)


def _usage_failure(ctx: click.Context, errors: list[str]) -> NoReturn:
    err_console.print("[red]Error:[/red]")
    for error in errors:
        err_console.print(f"  {escape(error)}", soft_wrap=True)
    err_console.print()
    err_console.print(escape(ctx.get_help()), soft_wrap=True)
    sys.exit(RunOutcome.FATAL.exit_code)


def _fatal(*messages: str) -> NoReturn:
    for message in messages:
        err_console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    sys.exit(RunOutcome.FATAL.exit_code)


def _finish(report: RunReport) -> NoReturn:
    if report.outcome is RunOutcome.PARTIAL:
        err_console.print(
            f"[yellow]Completed with {len(report.errors)} error(s).[/yellow]",
            soft_wrap=True,
        )
    sys.exit(report.exit_code)


class _BelowLevelFilter(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self._level


@contextlib.contextmanager
def _cli_logging(level: str) -> Iterator[None]:
    """Route package logs to stdout (below WARNING) and stderr for the command."""
    package_logger = logging.getLogger("ca_janitor")
    formatter = logging.Formatter("%(message)s")

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(_BelowLevelFilter(logging.WARNING))
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    handlers = [stdout_handler, stderr_handler]
    for handler in handlers:
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    previous_level = package_logger.level
    package_logger.setLevel(getattr(logging, level))
    try:
        yield
    finally:
        for handler in handlers:
            package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
