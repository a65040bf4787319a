"""Exception hierarchy for ca-janitor.

Only precondition failures are raised. Per-item problems met while pruning
or deleting (an unparseable certificate, a missing file) are reported as
:class:`~ca_janitor.outcome.SoftError` values instead.
"""
from __future__ import annotations


class CAJanitorError(Exception):
    """Base class for every fatal ca-janitor error.

    Parameters
    ----------
    message:
        Human-readable description shown to the operator.
    wrapped:
        The lower-level exception that caused this error, if any.
    """

    def __init__(self, message: str, wrapped: BaseException | None = None) -> None:
        super().__init__(message)
        self.wrapped = wrapped


class ConfigError(CAJanitorError):
    """Raised when the configuration cannot be read or resolved.

    Parameters
    ----------
    errors:
        One message per problem found.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class InvalidX509ObjectError(CAJanitorError):
    """Raised when a CA certificate, key or CRL cannot be parsed."""


class CRLIdentificationError(CAJanitorError):
    """Raised when the CA's own CRL cannot be picked out of the CRL file."""

    def __init__(self, matches: int) -> None:
        super().__init__(
            "Could not identify Puppet's CRL: "
            f"{matches} CRLs verify against the CA key, expected exactly 1"
        )
        self.matches = matches


class CAConnectionError(CAJanitorError):
    """Raised when the CA service status probe fails unexpectedly."""


class CAServiceOnlineError(CAJanitorError):
    """Raised when the CA service is running and on-disk state must not change."""

    def __init__(self) -> None:
        super().__init__(
            "Puppetserver service is running. "
            "Please stop it before attempting to run this command."
        )
