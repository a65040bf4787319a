"""Inventory log parsing.

The CA appends one line to its inventory for every certificate it signs::

    0x0002 2023-01-11T08:58:20UTC 2023-01-12T08:59:59UTC /CN=node.example.com

A certname that has been renewed therefore owns several records. The last
one appended is its *current* record; the serials of every earlier record
are its *old* serials.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ca_janitor.outcome import SoftError
from ca_janitor.pki.serials import format_serial, parse_serial

if TYPE_CHECKING:
    from ca_janitor.pki.store import PKIStore

logger = logging.getLogger(__name__)

INVENTORY_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S%Z"
_CN_MARKER = "/CN="


def parse_inventory_time(token: str) -> datetime.datetime:
    """Parse an inventory timestamp into an aware UTC datetime.

    Accepts the CA's own ``YYYY-MM-DDTHH:MM:SSUTC`` format as well as
    ISO-8601. Naive values are taken to be UTC.

    Raises
    ------
    ValueError
        If *token* is not a recognisable timestamp.
    """
    try:
        parsed = datetime.datetime.strptime(token, INVENTORY_TIME_FORMAT)
    except ValueError:
        parsed = datetime.datetime.fromisoformat(token)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def format_inventory_time(moment: datetime.datetime) -> str:
    """Render *moment* in the inventory's timestamp format."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(datetime.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SUTC")


@dataclass(frozen=True)
class InventoryRecord:
    """One certificate issuance event.

    Parameters
    ----------
    serial:
        Serial number of the issued certificate.
    not_before:
        Start of the certificate's validity window (UTC).
    not_after:
        End of the certificate's validity window (UTC).
    certname:
        Common name the certificate was issued for.
    """

    serial: int
    not_before: datetime.datetime
    not_after: datetime.datetime
    certname: str

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        return self.not_after < now

    def to_line(self) -> str:
        return (
            f"{format_serial(self.serial)} {format_inventory_time(self.not_before)} "
            f"{format_inventory_time(self.not_after)} {_CN_MARKER}{self.certname}"
        )


class Inventory:
    """Issuance history indexed by certname and by serial."""

    def __init__(self, records: list[InventoryRecord] | None = None) -> None:
        self._by_certname: dict[str, list[InventoryRecord]] = {}
        self._current_serials: dict[int, str] = {}
        self._old_serials: dict[int, str] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: InventoryRecord) -> None:
        """Append *record*; it becomes the current record for its certname."""
        history = self._by_certname.setdefault(record.certname, [])
        if history:
            previous = history[-1].serial
            if self._current_serials.get(previous) == record.certname:
                del self._current_serials[previous]
            self._old_serials[previous] = record.certname
        history.append(record)
        self._current_serials[record.serial] = record.certname
        self._old_serials.pop(record.serial, None)

    # ------------------------------------------------------------------
    # Lookup by certname
    # ------------------------------------------------------------------

    def __contains__(self, certname: object) -> bool:
        return certname in self._by_certname

    def __len__(self) -> int:
        return len(self._by_certname)

    def certnames(self) -> list[str]:
        return list(self._by_certname)

    def records(self, certname: str) -> list[InventoryRecord]:
        """Return every record for *certname*, oldest first."""
        return list(self._by_certname.get(certname, []))

    def current(self, certname: str) -> InventoryRecord | None:
        history = self._by_certname.get(certname)
        return history[-1] if history else None

    def old_serials(self, certname: str) -> list[int]:
        return [r.serial for r in self._by_certname.get(certname, [])[:-1]]

    def serials(self, certname: str) -> list[int]:
        """Return every serial ever issued to *certname*, oldest first."""
        return [r.serial for r in self._by_certname.get(certname, [])]

    def expired(self, now: datetime.datetime | None = None) -> list[str]:
        """Return certnames whose current certificate has expired."""
        return [
            certname
            for certname, history in self._by_certname.items()
            if history[-1].is_expired(now)
        ]

    # ------------------------------------------------------------------
    # Lookup by serial
    # ------------------------------------------------------------------

    def certname_for_current_serial(self, serial: int) -> str | None:
        return self._current_serials.get(serial)

    def certname_for_old_serial(self, serial: int) -> str | None:
        return self._old_serials.get(serial)


@dataclass
class InventoryParseResult:
    """Parsed inventory plus the problems met while reading it.

    Parameters
    ----------
    inventory:
        Records from every well-formed line.
    errors:
        One soft error per skipped line, or for the file being absent.
    found:
        False when the inventory file does not exist.
    """

    inventory: Inventory
    errors: list[SoftError] = field(default_factory=list)
    found: bool = True


def _printable(line: str) -> str:
    return line.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def parse_inventory(text: str) -> InventoryParseResult:
    """Parse inventory *text*, skipping and reporting malformed lines.

    Lines holding bytes that were not valid UTF-8 (carried in *text* as
    surrogate escapes) are rejected like any other malformed line.
    """
    result = InventoryParseResult(inventory=Inventory())

    def reject(message: str, line: str) -> None:
        logger.error("%s: %s", message, line)
        result.errors.append(SoftError(message=f"{message}: {line}", subject=line))

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        try:
            line.encode("utf-8")
        except UnicodeEncodeError:
            reject("Invalid entry found in inventory.txt", _printable(line))
            continue

        items = line.split()
        if len(items) != 4:
            reject("Invalid entry found in inventory.txt", line)
            continue

        serial = parse_serial(items[0])
        if serial is None:
            reject("Invalid serial found in inventory.txt line", line)
            continue

        try:
            not_before = parse_inventory_time(items[1])
        except ValueError:
            reject("Invalid not_before time found in inventory.txt line", line)
            continue
        try:
            not_after = parse_inventory_time(items[2])
        except ValueError:
            reject("Invalid not_after time found in inventory.txt line", line)
            continue

        subject = items[3]
        prefix, marker, certname = subject.rpartition(_CN_MARKER)
        # The common name must be the last RDN; a certname never holds a "/".
        if (
            not marker
            or not certname
            or "/" in certname
            or (prefix and not prefix.startswith("/"))
        ):
            reject("Invalid certname found in inventory.txt line", line)
            continue

        result.inventory.add(
            InventoryRecord(
                serial=serial,
                not_before=not_before,
                not_after=not_after,
                certname=certname,
            )
        )

    return result


def load_inventory(store: "PKIStore") -> InventoryParseResult:
    """Read and parse the inventory held by *store*.

    A missing inventory yields an empty result with ``found=False`` and a
    soft error, which is not logged here; callers decide whether it matters
    to them.
    """
    text = store.read_inventory()
    if text is None:
        message = f"Could not find inventory at {store.inventory_location}"
        return InventoryParseResult(
            inventory=Inventory(),
            errors=[SoftError(message=message, subject=store.inventory_location)],
            found=False,
        )
    return parse_inventory(text)
