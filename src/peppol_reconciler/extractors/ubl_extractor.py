"""
UBL invoice field extractor.

Peppol BIS 3.0 inbound documents are UBL 2.1 Invoice or CreditNote XML.
Only three header fields are needed for the report: the invoice number
(cbc:ID), the free-text note (cbc:Note) and the issue date (cbc:IssueDate).

Elements are matched by local name, so documents with missing or unusual
namespace declarations are read the same way as well-formed UBL.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from xml.etree import ElementTree as ET

logger = logging.getLogger(__name__)

NOT_FOUND = "Not found"
ERROR = "Error"

# Start or end tag with a namespace prefix, e.g. <cbc:ID> or </cbc:ID>
_PREFIXED_TAG = re.compile(r"<(/?)[A-Za-z_][\w.-]*:")


@dataclass(frozen=True)
class InvoiceDetails:
    """Header fields of an inbound invoice; each one optional."""

    invoice_number: str | None = None
    description: str | None = None
    issue_date: date | None = None
    failed: bool = False  # XML could not be fetched

    @property
    def display_number(self) -> str:
        if self.failed:
            return ERROR
        return self.invoice_number or NOT_FOUND

    @property
    def display_description(self) -> str:
        if self.failed:
            return ERROR
        return self.description or "-"

    @classmethod
    def error(cls) -> "InvoiceDetails":
        """Sentinel for a document whose XML could not be retrieved."""
        return cls(failed=True)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(root: ET.Element, name: str) -> str | None:
    """Text of the first direct child with local name ``name``."""
    for child in root:
        if isinstance(child.tag, str) and _local_name(child.tag) == name:
            text = (child.text or "").strip()
            return text or None
    return None


def _safe_date(value: str | None) -> date | None:
    """Parse a UBL date (YYYY-MM-DD, optionally with a time zone suffix)."""
    if not value:
        return None
    value = value.strip()
    for fmt, text in (("%Y-%m-%d", value[:10]), ("%Y%m%d", value)):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse(xml_text: str | bytes) -> ET.Element | None:
    """Parse XML, retrying without tag prefixes when a prefix is undeclared."""
    try:
        return ET.fromstring(xml_text)
    except ET.ParseError as e:
        logger.debug(f"Could not parse invoice XML: {e}")

    if isinstance(xml_text, bytes):
        xml_text = xml_text.decode("utf-8", errors="replace")
    # Unprefixed names still match by local name
    stripped = _PREFIXED_TAG.sub(r"<\1", xml_text)
    try:
        return ET.fromstring(stripped)
    except ET.ParseError as e:
        logger.debug(f"Invoice XML still unparseable without prefixes: {e}")
        return None


def parse_invoice_details(xml_text: str | bytes) -> InvoiceDetails:
    """
    Extract invoice number, note and issue date from UBL XML.

    Header fields are direct children of the document root; nested cbc:ID
    elements (party ids, line ids) are ignored.

    Args:
        xml_text: Raw XML body

    Returns:
        InvoiceDetails with None for every field not present. Unparseable
        XML yields an empty InvoiceDetails.
    """
    if not xml_text:
        return InvoiceDetails()

    root = _parse(xml_text)
    if root is None:
        return InvoiceDetails()

    return InvoiceDetails(
        invoice_number=_child_text(root, "ID"),
        description=_child_text(root, "Note"),
        issue_date=_safe_date(_child_text(root, "IssueDate")),
    )
