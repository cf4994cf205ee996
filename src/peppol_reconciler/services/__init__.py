"""Status analysis, status submission and report generation."""

from peppol_reconciler.services.business_status import (
    BusinessStatusManager,
    StatusAnalysis,
    StatusSubmission,
)
from peppol_reconciler.services.report import InvoiceReportGenerator, ReportFileWriter

__all__ = [
    "BusinessStatusManager",
    "InvoiceReportGenerator",
    "ReportFileWriter",
    "StatusAnalysis",
    "StatusSubmission",
]
