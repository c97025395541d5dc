"""
Email list loader.

Reads the plain-text invitee list: one address per line, blank lines and
'#' comments ignored. Addresses are trimmed but not validated; the identity
provider decides what a valid address is.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from ..exceptions import MissingInputFile, PrerequisiteFailed

logger = logging.getLogger(__name__)


def parse_email_line(line: str) -> Optional[str]:
    """
    Normalize a single line of the email file.

    Args:
        line: Raw line, with or without its newline

    Returns:
        The trimmed address, or None if the line is blank or a comment
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    return stripped


def parse_email_lines(lines: Iterable[str]) -> Iterator[str]:
    """Yield normalized addresses from an iterable of lines, in order."""
    for line in lines:
        email = parse_email_line(line)
        if email is not None:
            yield email


class EmailList:
    """
    Lazy, restartable view of an email file.

    Every iteration re-opens the file, so the same list can be walked by
    the inviter and again by the membership assigner.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if not self.path.is_file():
            raise MissingInputFile(self.path)

    def __iter__(self) -> Iterator[str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                yield from parse_email_lines(f)
        except UnicodeDecodeError as e:
            raise PrerequisiteFailed(f"Email file '{self.path}' is not valid UTF-8: {e.reason}") from e
        except OSError as e:
            raise PrerequisiteFailed(f"Email file '{self.path}' could not be read: {e}") from e

    def to_list(self) -> List[str]:
        return list(self)

    def __repr__(self) -> str:
        return f"EmailList({str(self.path)!r})"


def load_emails(path: Union[str, Path]) -> EmailList:
    """
    Open an email file for iteration.

    Args:
        path: Path to the email list

    Returns:
        EmailList yielding trimmed addresses in file order

    Raises:
        MissingInputFile: if the path does not exist
    """
    emails = EmailList(path)
    logger.debug(f"Opened email list {emails.path}")
    return emails


def deduplicate(emails: Iterable[str]) -> List[str]:
    """Drop repeated addresses, keeping the first occurrence."""
    seen = set()
    unique = []
    for email in emails:
        if email in seen:
            logger.warning(f"Skipping duplicate address {email}")
            continue
        seen.add(email)
        unique.append(email)
    return unique


def find_duplicates(emails: Iterable[str]) -> List[str]:
    """Addresses that appear more than once, in first-repeat order."""
    seen = set()
    repeated: List[str] = []
    for email in emails:
        if email in seen and email not in repeated:
            repeated.append(email)
        seen.add(email)
    return repeated
