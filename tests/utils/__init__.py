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
import email.policy
from datetime import datetime, timezone
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, cast

import pytest
from nacl.pwhash import argon2id

from mailskiff import MailService
from mailskiff.config import MailCredentials, RemoteMailConfig
from mailskiff.imap import envelope_from_headers
from mailskiff.imap.protocols import (
    AppendResult,
    FetchedMessage,
    MailboxInfo,
    MailboxStatus,
    RemoteMailbox,
)
from mailskiff.mta import MemoryRelay
from mailskiff.mua import RemoteMailAgent
from mailskiff.utils.asec import PasswordHasher

FIXED_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def fast_hasher() -> PasswordHasher:
    return PasswordHasher(opslimit=argon2id.OPSLIMIT_MIN, memlimit=argon2id.MEMLIMIT_MIN)


def remote_config(user: str = "bob@example.com", **kwargs) -> RemoteMailConfig:
    return RemoteMailConfig(
        host="imap.example.com", auth=MailCredentials(user, "bob-secret"), **kwargs
    )


def parse_raw(raw: bytes) -> EmailMessage:
    return cast(EmailMessage, BytesParser(policy=email.policy.default).parsebytes(raw))


class StoredRemoteMessage(object):
    def __init__(
        self, raw: bytes, flags: Iterable[str], internal_date: Optional[datetime]
    ) -> None:
        self.raw = raw
        self.flags: Set[str] = set(flags)
        self.internal_date = internal_date


class FakeMailServer(object):
    """An IMAP-like server in memory. `FakeMailServer.client` is a `ClientFactory`."""

    def __init__(self) -> None:
        self.mailboxes: Dict[str, List[StoredRemoteMessage]] = {}
        self.mailbox_flags: Dict[str, FrozenSet[str]] = {}
        self.special_uses: Dict[str, str] = {}
        self.broken_status: Set[str] = set()
        self.fail_connect = False
        self.fail_disconnect = False
        self.connects = 0
        self.disconnects = 0
        self.list_calls = 0
        self.configs: List[RemoteMailConfig] = []
        self.add_mailbox("INBOX")

    def add_mailbox(
        self, path: str, flags: Iterable[str] = (), special_use: Optional[str] = None
    ) -> None:
        self.mailboxes.setdefault(path, [])
        self.mailbox_flags[path] = frozenset(flags)
        if special_use:
            self.special_uses[path] = special_use

    def add_message(
        self,
        path: str = "INBOX",
        *,
        sender: str = "Alice <alice@example.com>",
        to: str = "bob@example.com",
        subject: Optional[str] = "Hello",
        body: str = "Hi Bob",
        html: Optional[str] = None,
        seen: bool = False,
        internal_date: Optional[datetime] = FIXED_NOW,
    ) -> int:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        if subject is not None:
            message["Subject"] = subject
        if html is not None:
            message.set_content(html, subtype="html")
        else:
            message.set_content(body)
        self.mailboxes[path].append(
            StoredRemoteMessage(
                message.as_bytes(), ["\\Seen"] if seen else [], internal_date
            )
        )
        return len(self.mailboxes[path])

    def client(self, config: RemoteMailConfig) -> "FakeMailClient":
        self.configs.append(config)
        return FakeMailClient(self)


class FakeMailClient(object):
    def __init__(self, server: FakeMailServer) -> None:
        self.server = server
        self.selected: Optional[str] = None

    async def connect(self) -> None:
        self.server.connects += 1
        if self.server.fail_connect:
            raise ConnectionRefusedError("connection refused")

    async def disconnect(self) -> None:
        self.server.disconnects += 1
        if self.server.fail_disconnect:
            raise ConnectionResetError("connection reset")

    async def list_mailboxes(self) -> List[RemoteMailbox]:
        self.server.list_calls += 1
        return [
            RemoteMailbox(
                path=path,
                flags=self.server.mailbox_flags.get(path, frozenset()),
                special_use=self.server.special_uses.get(path),
            )
            for path in self.server.mailboxes
        ]

    async def status(self, path: str) -> MailboxStatus:
        if path in self.server.broken_status:
            raise RuntimeError("STATUS failed")
        messages = self.server.mailboxes[path]
        return MailboxStatus(
            messages=len(messages),
            unseen=sum(1 for m in messages if "\\Seen" not in m.flags),
        )

    async def open_mailbox(self, path: str) -> Optional[MailboxInfo]:
        if path not in self.server.mailboxes:
            return None
        self.selected = path
        return MailboxInfo(exists=len(self.server.mailboxes[path]))

    def _fetched(self, seq: int, with_source: bool) -> FetchedMessage:
        assert self.selected is not None
        stored = self.server.mailboxes[self.selected][seq - 1]
        return FetchedMessage(
            seq=seq,
            flags=frozenset(stored.flags),
            internal_date=stored.internal_date,
            envelope=envelope_from_headers(stored.raw),
            source=stored.raw if with_source else None,
        )

    async def fetch_range(self, seq_range: str) -> List[FetchedMessage]:
        first, last = (int(n) for n in seq_range.split(":"))
        return [self._fetched(seq, False) for seq in range(first, last + 1)]

    async def fetch_one(self, seq: int) -> Optional[FetchedMessage]:
        assert self.selected is not None
        if seq < 1 or seq > len(self.server.mailboxes[self.selected]):
            return None
        return self._fetched(seq, True)

    async def add_flags(self, seq: int, flags: List[str]) -> None:
        assert self.selected is not None
        self.server.mailboxes[self.selected][seq - 1].flags.update(flags)

    async def append(
        self, path: str, raw: bytes, flags: List[str], date: Optional[datetime]
    ) -> AppendResult:
        messages = self.server.mailboxes.setdefault(path, [])
        messages.append(StoredRemoteMessage(raw, flags, date))
        return AppendResult(id=len(messages))


@pytest.fixture
def remote_server() -> FakeMailServer:
    return FakeMailServer()


@pytest.fixture
def agent(remote_server: FakeMailServer) -> RemoteMailAgent:
    return RemoteMailAgent(client_factory=remote_server.client, clock=fixed_clock)


@pytest.fixture
def relay() -> MemoryRelay:
    return MemoryRelay()


@pytest.fixture
def service(agent: RemoteMailAgent, relay: MemoryRelay) -> MailService:
    return MailService(
        relay=relay, remote_agent=agent, hasher=fast_hasher(), clock=fixed_clock
    )
