"""
Invoice field extractors.

Provides:
- UBL / Peppol BIS 3.0 header extraction (invoice number, note, issue date)
"""

from .ubl_extractor import InvoiceDetails, parse_invoice_details

__all__ = [
    "InvoiceDetails",
    "parse_invoice_details",
]
