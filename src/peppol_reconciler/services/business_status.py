"""Business status analysis and submission for inbound documents.

Once a document has an accepted or rejected status the platform refuses any
further transition (HTTP 403, "Cannot transition ..."). The manager never
raises for a failed submission; the failure is returned as a
StatusSubmission so a batch run can carry on and report it.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from peppol_reconciler.peppol_client import (
    BusinessStatus,
    PeppolAPIError,
    PeppolError,
)
from peppol_reconciler.services.status_resolver import (
    StatusSnapshot,
    existing_codes,
    get_latest_status,
    has_any_status,
    is_final,
)

if TYPE_CHECKING:
    from peppol_reconciler.config import BusinessStatusConfig
    from peppol_reconciler.peppol_client import PeppolClient

logger = logging.getLogger(__name__)

StatusChooser = Callable[[Sequence[str]], str]


def _is_transition_refusal(error: PeppolAPIError) -> bool:
    detail = (error.first_error_detail or "").lower()
    return error.status_code == 403 and "cannot transition" in detail


@dataclass
class StatusAnalysis:
    """Current business-status picture of one inbound document."""

    document_id: str
    statuses: list[BusinessStatus] = field(default_factory=list)
    existing_codes: list[str] = field(default_factory=list)
    has_final_status: bool = False
    latest: StatusSnapshot = field(default_factory=StatusSnapshot)
    # Informational only; inbound statuses decide what happens
    outbound_business_status: str | None = None
    # Set when the status list could not be fetched
    error: str | None = None

    @property
    def needs_final_status(self) -> bool:
        return not self.has_final_status and self.error is None

    @property
    def is_complete(self) -> bool:
        return self.has_final_status


@dataclass
class StatusSubmission:
    """Outcome of posting one business status."""

    document_id: str
    status_code: str
    success: bool
    status_id: str | None = None
    technical_status: str | None = None
    error: str | None = None
    http_status: int | None = None
    # The document was already accepted/rejected
    already_final: bool = False


class BusinessStatusManager:
    """Analyzes and submits business statuses for inbound documents.

    Usage:
        manager = BusinessStatusManager(client, config.business_status)
        analysis = manager.analyze_document(document_id)
        if analysis.needs_final_status:
            manager.send_status(document_id, manager.choose_final_status())
    """

    def __init__(
        self,
        client: PeppolClient,
        status_config: BusinessStatusConfig,
        chooser: StatusChooser | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            client: Authenticated Peppol client.
            status_config: Status codes, including which ones are final.
            chooser: Picks a final status from the final codes. Defaults to
                a random choice.
        """
        self.client = client
        self.status_config = status_config
        self.chooser = chooser or random.choice

    @property
    def final_statuses(self) -> tuple[str, ...]:
        return self.status_config.final_statuses

    def analyze_document(self, document_id: str) -> StatusAnalysis:
        """Fetch the status list of a document and check for a final status.

        Raises:
            PeppolError: If the status list cannot be fetched.
        """
        statuses = self.client.fetch_business_statuses(document_id)
        return StatusAnalysis(
            document_id=document_id,
            statuses=statuses,
            existing_codes=existing_codes(statuses),
            has_final_status=has_any_status(statuses, self.final_statuses),
            latest=get_latest_status(statuses),
        )

    def send_status(self, document_id: str, status_code: str) -> StatusSubmission:
        """Submit a status, capturing any API failure in the result."""
        try:
            created = self.client.send_business_status(document_id, status_code)
        except PeppolAPIError as e:
            logger.warning(
                f"Status {status_code} for {document_id} refused ({e.status_code}): "
                f"{e.first_error_detail or e.message}"
            )
            return StatusSubmission(
                document_id=document_id,
                status_code=status_code,
                success=False,
                error=e.first_error_detail or str(e),
                http_status=e.status_code,
                already_final=_is_transition_refusal(e),
            )
        except PeppolError as e:
            logger.warning(f"Status {status_code} for {document_id} failed: {e}")
            return StatusSubmission(
                document_id=document_id,
                status_code=status_code,
                success=False,
                error=str(e),
            )

        logger.info(f"Sent status {status_code} for {document_id} (id {created.id})")
        return StatusSubmission(
            document_id=document_id,
            status_code=status_code,
            success=True,
            status_id=created.id,
            technical_status=created.technical_status,
        )

    def choose_final_status(self) -> str:
        return self.chooser(list(self.final_statuses))

    def send_final_status_if_allowed(self, document_id: str, status_code: str) -> StatusSubmission:
        """Submit ``status_code`` unless the document's latest status is final.

        The refusal is reported the same way the platform would report it,
        without making the doomed request.

        Raises:
            PeppolError: If the current status list cannot be fetched.
        """
        analysis = self.analyze_document(document_id)
        if is_final(analysis.latest.code, self.final_statuses):
            return StatusSubmission(
                document_id=document_id,
                status_code=status_code,
                success=False,
                error=(
                    f'Document already has final status "{analysis.latest.code}"; '
                    f'transition to "{status_code}" is not allowed'
                ),
                already_final=True,
            )
        return self.send_status(document_id, status_code)
