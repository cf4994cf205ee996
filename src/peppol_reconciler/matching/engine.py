"""Matching of inbound Peppol documents to the outbound documents they came from.

An outbound document and its inbound receipt share a transmission ID. The
outbound side is indexed by that ID and every inbound document whose ID is
in the index forms a match.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date
from functools import cmp_to_key
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from peppol_reconciler.extractors import InvoiceDetails
    from peppol_reconciler.peppol_client import PeppolDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentMatch:
    """An inbound document paired with the outbound document it was sent as."""

    inbound: PeppolDocument
    outbound: PeppolDocument
    transmission_id: str

    def with_outbound(self, outbound: PeppolDocument | None) -> DocumentMatch:
        """Copy with refreshed outbound state (kept as-is when ``outbound`` is None)."""
        if outbound is None:
            return self
        return replace(self, outbound=outbound)


@dataclass
class CutoffSplit:
    """Matches partitioned by invoice date around a cutoff date."""

    cutoff: date
    on_or_after: list[DocumentMatch] = field(default_factory=list)
    before: list[DocumentMatch] = field(default_factory=list)


def build_outbound_index(documents: Iterable[PeppolDocument]) -> dict[str, PeppolDocument]:
    """Index outbound documents by transmission ID.

    Documents without a transmission ID are skipped. When two documents share
    an ID the later one in API order wins; this is logged because it hides the
    earlier document from matching.
    """
    index: dict[str, PeppolDocument] = {}
    for doc in documents:
        if not doc.transmission_id:
            continue
        previous = index.get(doc.transmission_id)
        if previous is not None:
            logger.warning(
                f"Duplicate transmission ID {doc.transmission_id}: outbound "
                f"{previous.id} replaced by {doc.id}"
            )
        index[doc.transmission_id] = doc
    return index


def find_matches(
    inbound_documents: Iterable[PeppolDocument],
    outbound_index: dict[str, PeppolDocument],
) -> list[DocumentMatch]:
    """Pair inbound documents with indexed outbound documents, in inbound order."""
    matches = []
    for doc in inbound_documents:
        outbound = outbound_index.get(doc.transmission_id) if doc.transmission_id else None
        if outbound is None:
            continue
        matches.append(
            DocumentMatch(inbound=doc, outbound=outbound, transmission_id=doc.transmission_id)
        )
    return matches


def invoice_date_for(details: InvoiceDetails, inbound: PeppolDocument) -> date | None:
    """Invoice date used for partitioning: XML issue date, else inbound creation date."""
    if details.issue_date is not None:
        return details.issue_date
    created_at = inbound.created_at
    return created_at.date() if created_at else None


def split_by_cutoff(
    dated_matches: Iterable[tuple[DocumentMatch, date | None]],
    cutoff: date,
) -> CutoffSplit:
    """Partition matches by calendar date; the cutoff date itself counts as on/after.

    Matches without any known date fall in the ``before`` partition.
    """
    split = CutoffSplit(cutoff=cutoff)
    for match, invoice_date in dated_matches:
        if invoice_date is not None and invoice_date >= cutoff:
            split.on_or_after.append(match)
        else:
            split.before.append(match)
    return split


def _as_int(value: str) -> int | None:
    try:
        return int(value.strip())
    except (ValueError, AttributeError):
        return None


def compare_invoice_numbers(a: str, b: str) -> int:
    """Numeric comparison when both numbers are integers, else string comparison."""
    num_a, num_b = _as_int(a), _as_int(b)
    if num_a is not None and num_b is not None:
        return (num_a > num_b) - (num_a < num_b)
    return (a > b) - (a < b)


def sort_by_invoice_number(
    numbered_matches: Iterable[tuple[DocumentMatch, str]],
) -> list[DocumentMatch]:
    """Order matches by their invoice number (stable for equal numbers)."""
    ordered = sorted(
        numbered_matches,
        key=cmp_to_key(lambda x, y: compare_invoice_numbers(x[1], y[1])),
    )
    return [match for match, _ in ordered]
