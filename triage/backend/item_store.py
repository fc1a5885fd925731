"""Email item store backed by the JSON seed file."""

import logging
from pathlib import Path

from . import config
from .data_reader import load_json
from .models import Email, parse_emails

logger = logging.getLogger(__name__)


class ItemStore:
    """Read-only view over the email file.

    The file is re-read when its mtime changes. A file that fails to parse
    leaves the previously loaded emails in place.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or config.EMAILS_JSON
        self._emails: list[Email] = []
        self.last_error: str | None = None

    def refresh(self) -> list[Email]:
        emails, err = load_json(self.path, parser=parse_emails)
        self.last_error = err
        if emails is None:
            if self._emails:
                logger.warning("Keeping %d previously loaded emails: %s", len(self._emails), err)
        else:
            self._emails = list(emails)
        return list(self._emails)

    def all(self) -> list[Email]:
        return self.refresh()

    def get(self, email_id: str) -> Email | None:
        for email in self.refresh():
            if email.id == email_id:
                return email
        return None

    def queue_items(self) -> list[Email]:
        """Emails that belong in the processing queue (pending or processing)."""
        return [e for e in self.refresh() if e.status.value in config.QUEUE_STATUSES]
