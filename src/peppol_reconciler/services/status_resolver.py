"""Pure functions over business-status lists.

The API returns status records in no particular order, so the current status
of a document is the record with the latest creation timestamp.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from peppol_reconciler.peppol_client import BusinessStatus

MISSING = "-"

# Records without a parseable timestamp sort before everything else
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class StatusSnapshot:
    """Code and technical status of a document's current business status."""

    code: str = MISSING
    technical_status: str = MISSING

    @property
    def is_empty(self) -> bool:
        return self.code == MISSING


def get_latest_status(statuses: Iterable[BusinessStatus]) -> StatusSnapshot:
    """Return the status with the maximum ``created_at``.

    An empty list gives the ``("-", "-")`` sentinel. Ties keep the first
    record encountered.
    """
    latest = max(statuses, key=lambda s: s.created_at or _EPOCH, default=None)
    if latest is None:
        return StatusSnapshot()
    return StatusSnapshot(
        code=latest.code or MISSING,
        technical_status=latest.technical_status or MISSING,
    )


def has_status(statuses: Iterable[BusinessStatus], code: str) -> bool:
    return any(s.code == code for s in statuses)


def has_any_status(statuses: Iterable[BusinessStatus], codes: Sequence[str]) -> bool:
    return any(s.code in codes for s in statuses)


def existing_codes(statuses: Iterable[BusinessStatus]) -> list[str]:
    """Status codes in API order, without the records' missing codes."""
    return [s.code for s in statuses if s.code]


def is_final(code: str | None, final_codes: Sequence[str]) -> bool:
    return code is not None and code in final_codes
