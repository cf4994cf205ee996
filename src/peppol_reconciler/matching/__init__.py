"""Transmission-ID matching of inbound and outbound Peppol documents."""

from peppol_reconciler.matching.engine import (
    CutoffSplit,
    DocumentMatch,
    build_outbound_index,
    compare_invoice_numbers,
    find_matches,
    invoice_date_for,
    sort_by_invoice_number,
    split_by_cutoff,
)

__all__ = [
    "CutoffSplit",
    "DocumentMatch",
    "build_outbound_index",
    "compare_invoice_numbers",
    "find_matches",
    "invoice_date_for",
    "sort_by_invoice_number",
    "split_by_cutoff",
]
