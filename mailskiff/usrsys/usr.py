# Copyright (C) 2024 The Mailskiff Contributors
#
# This file is part of Mailskiff.
#
# Mailskiff is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Mailskiff is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with Mailskiff.  If not, see <http://www.gnu.org/licenses/>.
"""This module contains definitions about users, messages and mailboxes.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..config import RemoteMailConfig

MAILBOX_INBOX = "inbox"
MAILBOX_SENT = "sent"
MAILBOX_DRAFTS = "drafts"
MAILBOX_ARCHIVE = "archive"

MAILBOX_DEFAULT_SETTING = [
    MAILBOX_INBOX,
    MAILBOX_SENT,
    MAILBOX_ARCHIVE,
]
"""The mailboxes created for every new user: inbox, sent, archive.
"drafts" is created when the user saves the first draft.
"""

MAILBOX_KNOWN = frozenset(MAILBOX_DEFAULT_SETTING + [MAILBOX_DRAFTS])
"""All mailbox names the in-memory backend accepts."""

STATUS_DRAFT = "draft"
STATUS_UNREAD = "unread"
STATUS_READ = "read"
STATUS_SENT = "sent"


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat()


@dataclass(frozen=True)
class Message(object):
    """One message placed in one mailbox.

    Records are immutable: every state change (mark read, send a draft...) builds a new record
    with `dataclasses.replace` and swaps it in.

    Attributes:
        id: `str`. For protocol-backed users it's the sequence number given by the server.
        sender: `str`. The "From" line.
        to: `str`. Formatted recipients, joined by ", ".
        subject: `str`.
        body: `str`. Plain text. It may be empty until the body is fetched from the remote server.
        status: `str`. One of "draft", "unread", "read", "sent".
        mailbox: `str`. Name of the owner mailbox.
        created_at: `datetime`.
        updated_at: `datetime`.
        sent_at: `Optional[datetime]`.
    """

    id: str
    sender: str
    to: str
    subject: str
    body: str
    status: str
    mailbox: str
    created_at: datetime
    updated_at: datetime
    sent_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Build the JSON-ready representation."""
        d: Dict[str, Any] = {
            "id": self.id,
            "from": self.sender,
            "to": self.to,
            "subject": self.subject,
            "body": self.body,
            "status": self.status,
            "mailbox": self.mailbox,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if self.sent_at is not None:
            d["sentAt"] = isoformat(self.sent_at)
        return d


@dataclass(frozen=True)
class MailboxSummary(object):
    """Counters of one mailbox."""

    name: str
    total: int
    unread: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "total": self.total, "unread": self.unread}


@dataclass
class UserRecord(object):
    """Infomation about user.

    Attributes:
        id: `str`. Generated identity.
        email: `str`. Lower-cased email address, the unique key of the user.
        name: `str`. The display name.
        password_hash: `str`. See `mailskiff.utils.asec.PasswordHasher`.
        remote: `Optional[RemoteMailConfig]`. Per-user override for the remote mail account,
            merged over the service defaults.
    """

    id: str
    email: str
    name: str
    password_hash: str
    remote: Optional[RemoteMailConfig] = None
