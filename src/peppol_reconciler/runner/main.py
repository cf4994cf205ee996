"""
CLI main entry point.
"""

import argparse
import logging
import sys
from pathlib import Path

import requests
import yaml
from dotenv import find_dotenv, load_dotenv

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..peppol_client import CertificateError, PeppolAPIError, PeppolClient, PeppolError
from ..services.business_status import BusinessStatusManager
from ..services.report import SEPARATOR, InvoiceReportGenerator

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.INFO if verbose else logging.WARNING)


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="peppol-reconciler",
        description="Match inbound and outbound Peppol invoices, finalize business statuses "
        "and write a status report",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run (default: report)")

    # report command
    report_parser = subparsers.add_parser(
        "report", help="Match documents, send final statuses and write the report"
    )
    report_parser.add_argument(
        "--no-wait",
        dest="wait",
        action="store_false",
        help="Do not wait for the platform to settle after sending statuses",
    )

    # send-status command
    send_parser = subparsers.add_parser(
        "send-status", help="Send a final business status for a single inbound document"
    )
    send_parser.add_argument(
        "--document-id",
        type=str,
        required=True,
        help="Inbound document ID",
    )
    send_parser.add_argument(
        "--code",
        type=str,
        required=True,
        help="Final status code to send (business_status codes from the config)",
    )

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    return parser


def _authenticated_client(config: Config, session: requests.Session | None = None) -> PeppolClient:
    print("ℹ️  Authenticating...")
    client = PeppolClient(config, session=session)
    client.authenticate()
    print("✅ Token obtained.")
    return client


def _describe(error: PeppolError) -> str:
    if isinstance(error, PeppolAPIError):
        return f"(status {error.status_code}) {error.describe()}"
    return str(error)


def cmd_report(config: Config, wait: bool = True, session: requests.Session | None = None) -> int:
    """Run the full reconciliation report."""
    try:
        client = _authenticated_client(config, session)
    except CertificateError as e:
        print(f"❌ {e}")
        return 1
    except PeppolError as e:
        logger.error(f"Authentication failed: {e}")
        print(f"❌ Authentication failed {_describe(e)}")
        return 1

    try:
        generator = InvoiceReportGenerator(client, config, wait=wait)
        result = generator.generate_report()
    except PeppolError as e:
        logger.error(f"Fetching documents failed: {e}")
        print(f"❌ Fetching documents failed {_describe(e)}")
        return 1
    finally:
        client.close()

    if result.report_path:
        failed = sum(1 for s in result.submissions.values() if not s.success)
        print(
            f"\n✓ Matches: {len(result.matches)}, statuses sent: "
            f"{len(result.submissions) - failed}, failed: {failed}"
        )
    return 0


def cmd_send_status(
    config: Config,
    document_id: str,
    code: str,
    session: requests.Session | None = None,
) -> int:
    """Send one final status, refusing when the document is already final."""
    final_codes = config.business_status.final_statuses
    if code not in final_codes:
        print(f"❌ Unknown status code '{code}'; expected one of: {', '.join(final_codes)}")
        return 1

    try:
        client = _authenticated_client(config, session)
    except CertificateError as e:
        print(f"❌ {e}")
        return 1
    except PeppolError as e:
        logger.error(f"Authentication failed: {e}")
        print(f"❌ Authentication failed {_describe(e)}")
        return 1

    manager = BusinessStatusManager(client, config.business_status)
    print(f"ℹ️  Document ID: {document_id}")

    try:
        submission = manager.send_final_status_if_allowed(document_id, code)
    except PeppolError as e:
        print(f"❌ Could not read current status: {_describe(e)}")
        return 1
    finally:
        client.close()

    print(SEPARATOR)
    if not submission.success:
        print(f"❌ {code} not sent: {submission.error}")
        if submission.already_final:
            print(
                f"⚠️  The document already has a final status ({'/'.join(final_codes)}) "
                "and cannot be changed."
            )
        print(SEPARATOR)
        return 1

    print(f"✅ {code} status sent")
    print(f"   Status ID: {submission.status_id}")
    print(f"   Technical status: {submission.technical_status or '-'}")
    print(SEPARATOR)
    return 0


def cmd_init_config(config_path: Path) -> int:
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote {config_path}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    # .env from the working directory
    load_dotenv(find_dotenv(usecwd=True))

    parser = create_cli()
    parsed = parser.parse_args(args)
    setup_logging(parsed.verbose)

    command = parsed.command or "report"

    if command == "init-config":
        return cmd_init_config(parsed.config)

    try:
        config = load_config(parsed.config)
    except (ConfigValidationError, ValueError, yaml.YAMLError) as e:
        print(f"❌ Invalid configuration: {e}")
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"❌ Config error: {error}")
        return 1

    try:
        if command == "report":
            return cmd_report(config, wait=getattr(parsed, "wait", True))
        elif command == "send-status":
            return cmd_send_status(config, parsed.document_id, parsed.code)
        else:
            parser.print_help()
            return 1
    except Exception as e:
        logger.exception("Application error")
        print(f"❌ Application error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
