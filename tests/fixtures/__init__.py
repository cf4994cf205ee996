"""
Sample Peppol API payloads for testing.

Provides:
- JSON:API resource builders for documents and business statuses
- Peppol BIS 3.0 (UBL 2.1) invoice XML samples
"""

from datetime import datetime, timezone

BASE_URL = "https://peppol.test/api"
TOKEN_URL = "https://auth.peppol.test/oauth2/token"
ACCESS_TOKEN = "test-access-token"

OUTBOUND_SUPPLIER_ID = "ef111c85-4315-4cde-bed9-efd29f25e19c"
INBOUND_SUPPLIER_ID = "330a0188-1cda-4596-9715-23ddb4c33771"

OUTBOUND_URL = f"{BASE_URL}/peppol/documents"
INBOUND_URL = f"{BASE_URL}/peppol/inbound-documents"

# Lookback window therefore starts 2025-11-15T12:00:00Z
NOW = datetime(2025, 11, 21, 12, 0, 0, tzinfo=timezone.utc)

PEPPOL_INVOICE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<Invoice xmlns="urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
    xmlns:cac="urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
    xmlns:cbc="urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2">
    <cbc:CustomizationID>urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0</cbc:CustomizationID>
    <cbc:ProfileID>urn:fdc:peppol.eu:2017:poacc:billing:01:1.0</cbc:ProfileID>
    <cbc:ID>{number}</cbc:ID>
    <cbc:IssueDate>{issue_date}</cbc:IssueDate>
    <cbc:DueDate>2025-12-20</cbc:DueDate>
    <cbc:InvoiceTypeCode>380</cbc:InvoiceTypeCode>
    <cbc:Note>{note}</cbc:Note>
    <cbc:DocumentCurrencyCode>EUR</cbc:DocumentCurrencyCode>
    <cac:AccountingSupplierParty>
        <cac:Party>
            <cbc:EndpointID schemeID="0106">12345678</cbc:EndpointID>
            <cac:PartyIdentification>
                <cbc:ID>SUPPLIER-42</cbc:ID>
            </cac:PartyIdentification>
        </cac:Party>
    </cac:AccountingSupplierParty>
    <cac:InvoiceLine>
        <cbc:ID>1</cbc:ID>
        <cbc:InvoicedQuantity unitCode="C62">1</cbc:InvoicedQuantity>
    </cac:InvoiceLine>
</Invoice>
"""


def peppol_invoice(number: str = "1001", issue_date: str = "2025-11-20", note: str = "Consultancy") -> str:
    """Peppol BIS 3.0 invoice XML with the given header fields."""
    return PEPPOL_INVOICE_TEMPLATE.format(number=number, issue_date=issue_date, note=note)


def jsonapi_document(
    doc_id: str,
    transmission_id: str | None,
    created_at: str = "2025-11-20T09:00:00Z",
    **attributes,
) -> dict:
    """JSON:API resource object for an inbound or outbound document."""
    attrs = {"createdAt": created_at, "transmissionId": transmission_id}
    attrs.update(attributes)
    return {"type": "peppolDocument", "id": doc_id, "attributes": attrs}


def jsonapi_status(
    status_id: str,
    code: str,
    created_at: str,
    technical_status: str = "delivered",
) -> dict:
    """JSON:API resource object for a business status."""
    return {
        "type": "peppolInboundDocumentBusinessStatus",
        "id": status_id,
        "attributes": {
            "code": code,
            "technicalStatus": technical_status,
            "createdAt": created_at,
        },
    }


def statuses_url(document_id: str) -> str:
    return f"{INBOUND_URL}/{document_id}/business-statuses"


def cannot_transition_error(current: str = "accepted", target: str = "rejected") -> dict:
    """403 body the platform returns for a transition out of a final status."""
    return {
        "errors": [
            {
                "status": "403",
                "title": "Forbidden",
                "detail": f"Cannot transition from {current} to {target}",
            }
        ]
    }
