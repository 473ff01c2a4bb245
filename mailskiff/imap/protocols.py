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
"""All the protocol types for `mailskiff.imap`.

These types describe what Mailskiff needs from a mail protocol client. `mailskiff.mua.RemoteMailAgent`
only talks to `MailProtocolClient`, so a client for another protocol (or a fake in tests) can be
plugged in through a `ClientFactory`.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, FrozenSet, List, Optional, Protocol, Tuple

from ..config import RemoteMailConfig

AddressPair = Tuple[str, str]
"""(display name, address). The display name may be empty."""


@dataclass(frozen=True)
class RemoteMailbox(object):
    """A mailbox reported by the server.

    Attributes:
        path: `str`. Full path, like "INBOX" or "[Gmail]/Sent Mail".
        flags: `FrozenSet[str]`. Name attributes, like "\\Noselect" or "\\HasChildren".
        special_use: `Optional[str]`. The RFC 6154 special use, like "\\Sent".
    """

    path: str
    flags: FrozenSet[str] = frozenset()
    special_use: Optional[str] = None

    @property
    def selectable(self) -> bool:
        return "\\noselect" not in {f.lower() for f in self.flags}


@dataclass(frozen=True)
class MailboxStatus(object):
    messages: int = 0
    unseen: int = 0


@dataclass(frozen=True)
class MailboxInfo(object):
    """Result of opening a mailbox. `exists` is the count of messages."""

    exists: int = 0


@dataclass(frozen=True)
class Envelope(object):
    sender: List[AddressPair] = field(default_factory=list)
    to: List[AddressPair] = field(default_factory=list)
    subject: Optional[str] = None
    date: Optional[datetime] = None


@dataclass(frozen=True)
class FetchedMessage(object):
    """A message as fetched from the server.

    Attributes:
        seq: `Optional[int]`. Sequence number in the opened mailbox.
        flags: `FrozenSet[str]`.
        internal_date: `Optional[datetime]`. The date the server received the message.
        envelope: `Envelope`.
        source: `Optional[bytes]`. The raw RFC 5322 message. Only set by `MailProtocolClient.fetch_one`.
    """

    seq: Optional[int]
    flags: FrozenSet[str] = frozenset()
    internal_date: Optional[datetime] = None
    envelope: Envelope = field(default_factory=Envelope)
    source: Optional[bytes] = None

    @property
    def seen(self) -> bool:
        return "\\seen" in {f.lower() for f in self.flags}


@dataclass(frozen=True)
class AppendResult(object):
    """`id` is the sequence number of the appended message, if the server let us know it."""

    id: Optional[int] = None


class MailProtocolClient(Protocol):
    """A session with a remote mail server.

    One instance is one connection: `connect` it, do the work, `disconnect` it.
    Message identities are sequence numbers in the mailbox opened last.
    """

    def connect(self) -> Awaitable[None]:
        """Open the connection and log in."""
        ...

    def disconnect(self) -> Awaitable[None]:
        """Log out and close the connection."""
        ...

    def list_mailboxes(self) -> Awaitable[List[RemoteMailbox]]:
        ...

    def status(self, path: str) -> Awaitable[MailboxStatus]:
        ...

    def open_mailbox(self, path: str) -> Awaitable[Optional[MailboxInfo]]:
        """Select `path`. Return `None` if it does not exist."""
        ...

    def fetch_range(self, seq_range: str) -> Awaitable[List[FetchedMessage]]:
        """Fetch flags, dates and envelopes of the messages in `seq_range` (like "1:50")."""
        ...

    def fetch_one(self, seq: int) -> Awaitable[Optional[FetchedMessage]]:
        """Fetch one message with its raw source. Return `None` if it does not exist."""
        ...

    def add_flags(self, seq: int, flags: List[str]) -> Awaitable[None]:
        ...

    def append(
        self, path: str, raw: bytes, flags: List[str], date: Optional[datetime]
    ) -> Awaitable[AppendResult]:
        ...


ClientFactory = Callable[[RemoteMailConfig], MailProtocolClient]
"""A type for callables which build an unconnected client from a connection descriptor."""
