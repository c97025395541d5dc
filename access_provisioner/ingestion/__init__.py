"""
Ingestion Package for the Access Provisioner.

Loads the list of invitee email addresses from a flat file.
"""

from .email_loader import (
    EmailList,
    deduplicate,
    find_duplicates,
    load_emails,
    parse_email_line,
    parse_email_lines,
)

__all__ = [
    "EmailList",
    "load_emails",
    "parse_email_line",
    "parse_email_lines",
    "deduplicate",
    "find_duplicates",
]
