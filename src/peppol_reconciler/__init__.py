"""
Peppol invoice reconciliation and business-status report.

Matches outbound Peppol invoices with their inbound receipts by transmission
ID, finalizes the business status (accepted/rejected) of inbound documents
and writes a readable status report.
"""

__version__ = "0.1.0"
