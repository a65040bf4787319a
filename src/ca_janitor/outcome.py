"""Operation results and the three-way run outcome.

Every maintenance operation returns an :class:`OperationResult`. The
command layer folds those results into a :class:`RunReport`, whose
:attr:`RunReport.outcome` maps to exactly one process exit code.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RunOutcome(Enum):
    """Overall result of one tool invocation."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FATAL = "fatal"

    @property
    def exit_code(self) -> int:
        """Process exit code for this outcome."""
        return _EXIT_CODES[self]


_EXIT_CODES: dict[RunOutcome, int] = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.FATAL: 1,
    RunOutcome.PARTIAL: 24,
}


@dataclass(frozen=True)
class SoftError:
    """A per-item failure that does not stop the run.

    Parameters
    ----------
    message:
        The message that was logged for this failure.
    subject:
        The certname, serial or path the failure concerns.
    """

    message: str
    subject: str = ""


@dataclass
class OperationResult:
    """Outcome of a single maintenance operation.

    Parameters
    ----------
    count:
        Number of items acted upon (entries removed, files deleted).
    errors:
        Soft errors met along the way.
    """

    count: int = 0
    errors: list[SoftError] = field(default_factory=list)

    @property
    def errored(self) -> bool:
        return bool(self.errors)

    def add_error(self, message: str, subject: str = "") -> None:
        self.errors.append(SoftError(message=message, subject=subject))

    def merge(self, other: "OperationResult") -> "OperationResult":
        """Fold *other* into this result and return self."""
        self.count += other.count
        self.errors.extend(other.errors)
        return self


@dataclass
class RunReport:
    """Accumulates operation results and fatal failures for one run."""

    count: int = 0
    errors: list[SoftError] = field(default_factory=list)
    fatal: list[str] = field(default_factory=list)

    def record(self, result: OperationResult) -> OperationResult:
        self.count += result.count
        self.errors.extend(result.errors)
        return result

    def fail(self, message: str) -> None:
        self.fatal.append(message)

    @property
    def outcome(self) -> RunOutcome:
        if self.fatal:
            return RunOutcome.FATAL
        if self.errors:
            return RunOutcome.PARTIAL
        return RunOutcome.SUCCESS

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code
