"""Invoice reconciliation report.

Drives one complete run:
1. Fetch inbound documents and the recent outbound documents, match them
   by transmission ID
2. Analyze the business status of every matched inbound document
3. Per issue-date partition (around the configured cutoff), send a final
   status (accepted/rejected) to documents that lack one, then wait for the
   platform to settle
4. Re-fetch state, print one section per match ordered by invoice number,
   and save the same text to a timestamped report file
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from peppol_reconciler.extractors import InvoiceDetails, parse_invoice_details
from peppol_reconciler.matching import (
    DocumentMatch,
    build_outbound_index,
    find_matches,
    invoice_date_for,
    sort_by_invoice_number,
    split_by_cutoff,
)
from peppol_reconciler.peppol_client import BusinessStatus, PeppolDocument, PeppolError
from peppol_reconciler.services.business_status import (
    BusinessStatusManager,
    StatusAnalysis,
    StatusChooser,
    StatusSubmission,
)
from peppol_reconciler.services.status_resolver import MISSING, StatusSnapshot, get_latest_status

if TYPE_CHECKING:
    from peppol_reconciler.config import Config
    from peppol_reconciler.peppol_client import PeppolClient

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 80
LABEL_WIDTH = 31

STATUS_EMOJI = {"accepted": "👍", "rejected": "👎"}


def _field(label: str, value: object) -> str:
    return f"{label:<{LABEL_WIDTH}}: {value}"


class ReportFileWriter:
    """Collects report lines and writes them to ``<output_dir>/<timestamp>.txt``."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)
        self.lines: list[str] = []
        self.filename: Path | None = None

    def init(self, timestamp: datetime) -> Path:
        self.filename = self.output_dir / f"{timestamp.strftime('%Y-%m-%dT%H-%M-%S')}.txt"
        self.lines = []
        return self.filename

    def add_line(self, text: str = "") -> None:
        self.lines.append(text)

    def add_blank(self) -> None:
        self.lines.append("")

    def add_separator(self) -> None:
        self.lines.append(SEPARATOR)

    def save(self) -> Path:
        if self.filename is None:
            raise RuntimeError("ReportFileWriter.init() must be called before save()")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.filename.write_text("\n".join(self.lines), encoding="utf-8")
        return self.filename


@dataclass
class MatchReport:
    """Fresh state of one match, as shown in the final report."""

    match: DocumentMatch
    details: InvoiceDetails
    inbound_status: StatusSnapshot
    submission: StatusSubmission | None = None


@dataclass
class ReportResult:
    """Outcome of a report run."""

    matches: list[DocumentMatch] = field(default_factory=list)
    analyses: dict[str, StatusAnalysis] = field(default_factory=dict)
    submissions: dict[str, StatusSubmission] = field(default_factory=dict)
    sections: list[MatchReport] = field(default_factory=list)
    report_path: Path | None = None


class InvoiceReportGenerator:
    """Orchestrates the reconciliation run and produces the report.

    Usage:
        generator = InvoiceReportGenerator(client, config)
        result = generator.generate_report()
    """

    def __init__(
        self,
        client: PeppolClient,
        config: Config,
        chooser: StatusChooser | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
        out: TextIO | None = None,
        wait: bool = True,
    ) -> None:
        """Initialize the generator.

        Args:
            client: Authenticated Peppol client.
            config: Application configuration.
            chooser: Picks accepted/rejected for documents needing a final
                status (random by default).
            sleep: Used for the settle wait.
            clock: Returns the current time (UTC).
            out: Stream for the console report (stdout by default).
            wait: Set False to skip the settle wait after sending statuses.
        """
        self.client = client
        self.config = config
        self.settings = config.settings
        self.status_manager = BusinessStatusManager(client, config.business_status, chooser)
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.out = out
        self.wait = wait
        self.writer = ReportFileWriter(self.settings.output_dir)
        self.process_results: dict[str, StatusSubmission] = {}
        self._details_cache: dict[str, InvoiceDetails] = {}

    # --- Console helpers ---

    def _print(self, text: str = "", end: str = "\n") -> None:
        stream = self.out or sys.stdout
        stream.write(text + end)
        stream.flush()

    def _header(self, title: str) -> None:
        self._print()
        self._print(f"{'=' * 20} {title} {'=' * 20}")
        self._print()

    # --- Run ---

    def generate_report(self) -> ReportResult:
        """Run the full reconciliation and write the report file.

        Raises:
            PeppolError: If the inbound or outbound listing fails.
        """
        result = ReportResult()

        matches = self.fetch_and_match_documents()
        if not matches:
            return result
        result.matches = matches

        self._header("STEP 1: ANALYSIS")
        analyses = self.analyze_all_documents(matches)
        result.analyses = analyses
        self.print_analysis(analyses.values())

        cutoff = self.settings.issue_date_cutoff
        split = self.split_by_date(matches)
        partitions = [
            (f"ISSUED ON OR AFTER {cutoff.isoformat()}", split.on_or_after),
            (f"ISSUED BEFORE {cutoff.isoformat()}", split.before),
        ]
        for label, partition in partitions:
            if partition:
                self.process_partition(label, partition, analyses)

        self._header("FINAL RESULTS")
        sections = self.collect_final_results(matches)
        result.sections = sections
        for section in sections:
            for line in self.format_section(section):
                self._print(line)

        self._header("SAVING REPORT")
        result.report_path = self.save_report(sections)
        result.submissions = dict(self.process_results)
        return result

    def fetch_and_match_documents(self) -> list[DocumentMatch]:
        """Fetch both sides and match them. Returns [] when there is nothing to do.

        Raises:
            PeppolError: If either document listing fails.
        """
        self._print("ℹ️  Fetching inbound documents...")
        inbound_docs = self.client.fetch_inbound_documents(self.config.inbound_supplier.id)

        if not inbound_docs:
            logger.error("No inbound documents found")
            self._print("❌ No inbound documents found.")
            return []
        self._print(f"✅ {len(inbound_docs)} inbound document(s) found.")

        self._print("ℹ️  Fetching outbound documents...")
        outbound_index = self.fetch_outbound_index()

        matches = find_matches(inbound_docs, outbound_index)
        if not matches:
            self._print("❌ No matches found.")
            return []
        self._print(f"✅ {len(matches)} match(es) found.")
        return matches

    def fetch_outbound_index(self) -> dict[str, PeppolDocument]:
        from_date = self.clock() - timedelta(days=self.settings.lookback_days)
        documents = self.client.fetch_outbound_documents(
            self.config.outbound_supplier.id, from_date
        )
        return build_outbound_index(documents)

    def analyze_all_documents(self, matches: list[DocumentMatch]) -> dict[str, StatusAnalysis]:
        """Analyze every matched inbound document, keyed by inbound document ID.

        A document whose status list cannot be fetched gets an analysis with
        ``error`` set; it is neither complete nor sent a status.
        """
        analyses: dict[str, StatusAnalysis] = {}
        for match in matches:
            doc_id = match.inbound.id
            try:
                analysis = self.status_manager.analyze_document(doc_id)
            except PeppolError as e:
                logger.warning(f"Could not fetch business statuses for {doc_id}: {e}")
                analysis = StatusAnalysis(document_id=doc_id, error=str(e))
            analysis.outbound_business_status = match.outbound.business_status
            analyses[doc_id] = analysis
        return analyses

    def print_analysis(self, analyses) -> None:
        self._print("Current status overview:")
        self._print(SEPARATOR)

        for item in analyses:
            inbound_codes = ", ".join(item.existing_codes) if item.existing_codes else "none"
            if item.error:
                action = "→ Status unknown (fetch failed)"
            elif item.is_complete:
                action = "→ Complete (no action needed)"
            else:
                action = "→ Needs: final status"

            self._print(f"  {item.document_id}")
            self._print(f"    Inbound status: [{inbound_codes}]")
            self._print(f"    Outbound business state: {item.outbound_business_status or MISSING}")
            self._print(f"    {action}")

        self._print(SEPARATOR)

    def split_by_date(self, matches: list[DocumentMatch]):
        dated = [
            (match, invoice_date_for(self.fetch_xml_details_safe(match.inbound.id), match.inbound))
            for match in matches
        ]
        return split_by_cutoff(dated, self.settings.issue_date_cutoff)

    def process_partition(
        self,
        label: str,
        partition: list[DocumentMatch],
        analyses: dict[str, StatusAnalysis],
    ) -> int:
        """Send final statuses within one date partition. Returns the success count."""
        self._header(f"STEP 2: SEND ACCEPTED/REJECTED ({label})")
        self._print(f"ℹ️  {len(partition)} document(s) in this batch.")

        needs_final = [
            analyses[m.inbound.id]
            for m in partition
            if m.inbound.id in analyses and analyses[m.inbound.id].needs_final_status
        ]
        if not needs_final:
            self._print("ℹ️  All documents already have a final status. Skipping.")
            return 0

        success_count = self.send_final_statuses(needs_final)
        self.handle_wait_time(success_count, "final status")
        return success_count

    def send_final_statuses(self, documents: list[StatusAnalysis]) -> int:
        self._print("Sending final statuses (accepted/rejected):")
        self._print(SEPARATOR)

        success_count = 0
        for doc in documents:
            status_code = self.status_manager.choose_final_status()
            submission = self.status_manager.send_status(doc.document_id, status_code)
            self.process_results[doc.document_id] = submission

            if submission.success:
                success_count += 1
                emoji = STATUS_EMOJI.get(status_code, "✅")
                self._print(
                    f"  {emoji} {doc.document_id} → {status_code} "
                    f"(technical: {submission.technical_status or MISSING})"
                )
            else:
                self._print(f"  ❌ {doc.document_id} → ERROR: {submission.error}")

        self._print(SEPARATOR)
        return success_count

    def handle_wait_time(self, success_count: int, label: str) -> None:
        wait_seconds = self.settings.final_status_wait_seconds
        self._print()
        if success_count == 0:
            self._print(f"ℹ️  No {label} sent successfully. Skipping wait.")
            return
        if not self.wait:
            self._print("ℹ️  Wait disabled.")
            return
        self._print(f"ℹ️  Waiting {wait_seconds} seconds after {label}...")
        self.countdown(wait_seconds, self.settings.countdown_interval_seconds)

    def countdown(self, total_seconds: int, interval_seconds: int) -> None:
        """Sleep ``total_seconds`` while printing the remaining time."""
        remaining = total_seconds
        while remaining > 0:
            self._print(f"\r   ⏳ {remaining} seconds remaining...   ", end="")
            step = min(interval_seconds, remaining)
            self.sleep(step)
            remaining -= step
        self._print("\r   ✅ Wait complete.                     ")

    # --- Final results ---

    def collect_final_results(self, matches: list[DocumentMatch]) -> list[MatchReport]:
        """Re-fetch outbound state and inbound statuses, ordered by invoice number."""
        try:
            fresh_index = self.fetch_outbound_index()
        except PeppolError as e:
            logger.warning(f"Could not refresh outbound documents, using earlier state: {e}")
            fresh_index = {}

        sections = []
        with ThreadPoolExecutor(max_workers=2) as pool:
            for match in matches:
                fresh = match.with_outbound(fresh_index.get(match.transmission_id))
                details_future = pool.submit(self.fetch_xml_details_safe, fresh.inbound.id)
                statuses_future = pool.submit(self.fetch_statuses_safe, fresh.inbound.id)
                sections.append(
                    MatchReport(
                        match=fresh,
                        details=details_future.result(),
                        inbound_status=get_latest_status(statuses_future.result()),
                        submission=self.process_results.get(fresh.inbound.id),
                    )
                )

        order = sort_by_invoice_number(
            (section.match, section.details.display_number) for section in sections
        )
        by_inbound = {section.match.inbound.id: section for section in sections}
        return [by_inbound[match.inbound.id] for match in order]

    def format_actions(self, submission: StatusSubmission | None) -> list[str]:
        if submission is None:
            return []
        emoji = STATUS_EMOJI.get(submission.status_code, "✅")
        if submission.success:
            return [f"{submission.status_code} {emoji}"]
        return [f"{submission.status_code} ❌ ({submission.error})"]

    def format_section(self, section: MatchReport) -> list[str]:
        """Lines of one match section; identical on console and in the file."""
        match = section.match
        outbound, inbound = match.outbound, match.inbound
        out_supplier = self.config.outbound_supplier
        in_supplier = self.config.inbound_supplier

        lines = [
            _field("Invoice number (BIS 3.0)", section.details.display_number),
            _field("Description (BIS 3.0)", section.details.display_description),
            "",
            _field("Outbound supplier name", out_supplier.name),
            _field("Outbound supplier ID", out_supplier.id),
            _field("Outbound document ID", outbound.id),
            _field("Outbound created", outbound.created or MISSING),
            _field("Outbound technical state", outbound.technical_status or MISSING),
            _field("Outbound business state", outbound.business_status or MISSING),
            "",
            _field("Transmission ID", match.transmission_id),
            "",
            _field("Inbound supplier name", in_supplier.name),
            _field("Inbound supplier ID", in_supplier.id),
            _field("Inbound document ID", inbound.id),
            _field("Inbound created", inbound.created or MISSING),
            _field("IMR technical state", section.inbound_status.technical_status),
            _field("IMR business state", section.inbound_status.code),
        ]

        actions = self.format_actions(section.submission)
        if actions:
            lines.append("")
            lines.append(_field("Actions this run", " → ".join(actions)))

        lines.append(SEPARATOR)
        lines.append("")
        return lines

    def save_report(self, sections: list[MatchReport]) -> Path:
        self.writer.init(self.clock())
        for section in sections:
            for line in self.format_section(section):
                self.writer.add_line(line)

        filename = self.writer.save()
        logger.info(f"Report written to {filename}")
        self._print(f"✅ Report saved: {filename}")
        return filename

    # --- Recovered fetches ---

    def fetch_xml_details_safe(self, document_id: str) -> InvoiceDetails:
        """Invoice details of an inbound document; the ``Error`` sentinel on failure."""
        cached = self._details_cache.get(document_id)
        if cached is not None:
            return cached
        try:
            details = parse_invoice_details(self.client.fetch_document_xml(document_id))
        except PeppolError as e:
            logger.warning(f"Could not fetch XML for {document_id}: {e}")
            return InvoiceDetails.error()
        self._details_cache[document_id] = details
        return details

    def fetch_statuses_safe(self, document_id: str) -> list[BusinessStatus]:
        try:
            return self.client.fetch_business_statuses(document_id)
        except PeppolError as e:
            logger.warning(f"Could not fetch business statuses for {document_id}: {e}")
            return []
