"""
CLI runner module.

Provides commands:
- report: Match documents, finalize business statuses, write the report
- send-status: Send a final status for a single inbound document
- init-config: Write a default configuration file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
