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
"""
`MailBackend`: the logic mailboxes of one user, and its two implementations.

`LocalMailBackend` keeps mail in `mailskiff.mailstore.MemoryMailStore`, `RemoteMailBackend`
reads and writes a remote account through `mailskiff.mua.RemoteMailAgent`.
`mailskiff.MailService` picks one for each user when the user's configuration is resolved.
"""
from typing import Awaitable, List, Optional, Protocol

from ..config import MailCredentials, RemoteMailConfig
from ..mailstore import MemoryMailStore
from ..mua import RemoteMailAgent
from .usr import MailboxSummary, Message


class MailBackend(Protocol):
    """The mailboxes of one user.

    Related:

    - `LocalMailBackend`
    - `RemoteMailBackend`
    """

    @property
    def kind(self) -> str:
        """"memory" or "remote"."""
        ...

    @property
    def relay_auth(self) -> Optional[MailCredentials]:
        """Credentials to send mail as this user, if the user has an account of its own."""
        ...

    def list_mailboxes(self) -> Awaitable[List[MailboxSummary]]:
        ...

    def list_messages(self, mailbox: str) -> Awaitable[List[Message]]:
        """Messages in `mailbox`, newest first."""
        ...

    def get_message(self, message_id: str) -> Awaitable[Message]:
        ...

    def mark_read(self, message_id: str) -> Awaitable[Message]:
        ...

    def store_sent(self, message: Message) -> Awaitable[Message]:
        """Keep a copy of a sent message. The returned record may have another id and mailbox."""
        ...


class LocalMailBackend(object):
    """A `MailBackend` on `MemoryMailStore`."""

    kind = "memory"

    def __init__(self, store: MemoryMailStore, user_id: str) -> None:
        self.store = store
        self.user_id = user_id
        super().__init__()

    @property
    def relay_auth(self) -> Optional[MailCredentials]:
        return None

    async def list_mailboxes(self) -> List[MailboxSummary]:
        return self.store.list_mailboxes(self.user_id)

    async def list_messages(self, mailbox: str) -> List[Message]:
        return self.store.list_messages(self.user_id, mailbox)

    async def get_message(self, message_id: str) -> Message:
        return self.store.get_message(self.user_id, message_id)

    async def mark_read(self, message_id: str) -> Message:
        return self.store.mark_read(self.user_id, message_id)

    async def store_sent(self, message: Message) -> Message:
        return self.store.store_message(self.user_id, message)


class RemoteMailBackend(object):
    """A `MailBackend` on a remote account."""

    kind = "remote"

    def __init__(
        self, agent: RemoteMailAgent, user_id: str, config: RemoteMailConfig
    ) -> None:
        self.agent = agent
        self.user_id = user_id
        self.config = config
        """`RemoteMailConfig`. The resolved connection descriptor of the account."""
        super().__init__()

    @property
    def relay_auth(self) -> Optional[MailCredentials]:
        return self.config.auth

    async def list_mailboxes(self) -> List[MailboxSummary]:
        return await self.agent.list_mailboxes(self.config)

    async def list_messages(self, mailbox: str) -> List[Message]:
        return await self.agent.list_messages(self.user_id, self.config, mailbox)

    async def get_message(self, message_id: str) -> Message:
        return await self.agent.get_message(self.user_id, self.config, message_id)

    async def mark_read(self, message_id: str) -> Message:
        return await self.agent.mark_read(self.user_id, self.config, message_id)

    async def store_sent(self, message: Message) -> Message:
        return await self.agent.append_sent(self.user_id, self.config, message)
