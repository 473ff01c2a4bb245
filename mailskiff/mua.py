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
"""The mail user agent for Mailskiff: `RemoteMailAgent` reads and writes mailboxes on remote servers.

Every operation is one short session: a new client is connected, one unit of work is done
(list, fetch, flag or append), and the client is always disconnected. Messages seen in a session
are kept in `MessageCache`, so "get after list" does not fetch the envelope again.
"""
import email.policy
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import timezone
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import format_datetime, make_msgid
from typing import AsyncIterator, Dict, List, Optional, Tuple, cast

from .config import RemoteMailConfig
from .errors import MailskiffError, NotFoundError, RemoteMailError
from .imap import AIOIMAPClient
from .imap.protocols import (
    AddressPair,
    ClientFactory,
    FetchedMessage,
    MailProtocolClient,
    RemoteMailbox,
)
from .mailstore import Clock, new_message_id, utcnow
from .usrsys.usr import STATUS_READ, STATUS_UNREAD, MailboxSummary, Message
from .utils.addrs import format_address

FETCH_WINDOW = 50
"""At most this many messages (the latest ones) are listed from one mailbox."""

DEFAULT_MAILBOX = "INBOX"
FALLBACK_SENT_MAILBOX = "Sent"
SENT_MAILBOX_NAMES = frozenset(["sent", "sent items", "sent messages"])
SEEN_FLAG = "\\Seen"
NO_SUBJECT = "(no subject)"


def mailbox_rank(name: str) -> int:
    """The position group of a mailbox in listings: inbox, sent, drafts, archive, spam, trash, others."""
    lowered = name.lower()
    if lowered == "inbox":
        return 0
    if "sent" in lowered:
        return 1
    if "draft" in lowered:
        return 2
    if "archive" in lowered:
        return 3
    if "spam" in lowered or "junk" in lowered:
        return 4
    if "trash" in lowered:
        return 5
    return 6


def mailbox_sort_key(summary: MailboxSummary) -> Tuple[int, str, str]:
    return (mailbox_rank(summary.name), summary.name.lower(), summary.name)


def format_address_list(pairs: List[AddressPair]) -> str:
    return ", ".join(format_address(name, addr) for name, addr in pairs if addr)


def extract_text_body(source: bytes) -> str:
    """Return the plain text part of `source`, or the HTML source if there is no plain text part."""
    message = cast(
        EmailMessage, BytesParser(policy=email.policy.default).parsebytes(source)
    )
    part = message.get_body(preferencelist=("plain",))
    if part is None:
        part = message.get_body(preferencelist=("html",))
    if part is None:
        return ""
    try:
        return str(part.get_content())
    except (LookupError, UnicodeError):
        payload = part.get_payload(decode=True)
        if isinstance(payload, bytes):
            return payload.decode("utf-8", "replace")
        return ""


class MessageCache(object):
    """Messages fetched from remote servers, keyed by (user id, message id).

    Merge rule: a newer record replaces the envelope, flag and date fields of the cached one;
    an empty body never replaces a cached body of the same mailbox. Sequence numbers are per mailbox,
    so a record from another mailbox replaces the cached one entirely.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], Message] = {}
        super().__init__()

    def get(self, user_id: str, message_id: str) -> Optional[Message]:
        return self._entries.get((user_id, message_id))

    def put(self, user_id: str, message: Message) -> Message:
        self._entries[(user_id, message.id)] = message
        return message

    def merge(self, user_id: str, message: Message) -> Message:
        cached = self.get(user_id, message.id)
        if (
            cached is not None
            and cached.mailbox == message.mailbox
            and not message.body
            and cached.body
        ):
            message = replace(message, body=cached.body)
        return self.put(user_id, message)

    def forget_user(self, user_id: str) -> None:
        for key in [k for k in self._entries if k[0] == user_id]:
            del self._entries[key]


class RemoteMailAgent(object):
    """Present remote mailboxes with the same shapes as `mailskiff.mailstore.MemoryMailStore`.

    Failures of the server or the network are raised as `mailskiff.errors.RemoteMailError`.

    Related:

    - `mailskiff.imap.protocols.MailProtocolClient`
    - `mailskiff.usrsys.mailbox.RemoteMailBackend`
    """

    __logger = logging.getLogger("mailskiff.mua.RemoteMailAgent")

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.client_factory: ClientFactory = (
            client_factory if client_factory else AIOIMAPClient
        )
        """`ClientFactory`. Builds one client per session. `AIOIMAPClient` if `None` passed in."""
        self.clock: Clock = clock if clock else utcnow
        self.message_cache = MessageCache()
        """`MessageCache`. Messages seen by this agent."""
        self._sent_mailbox_paths: Dict[str, str] = {}
        super().__init__()

    def forget_user(self, user_id: str) -> None:
        """Drop everything cached for `user_id`. Used when the user's remote account changes."""
        self.message_cache.forget_user(user_id)
        self._sent_mailbox_paths.pop(user_id, None)

    @asynccontextmanager
    async def session(self, config: RemoteMailConfig) -> AsyncIterator[MailProtocolClient]:
        """Connect a new client for the duration of the `async with` block.

        The client is disconnected whatever happens in the block. Failures while disconnecting
        are logged and ignored. Other failures are raised as `RemoteMailError`.
        """
        client = self.client_factory(config)
        try:
            await client.connect()
            yield client
        except MailskiffError:
            raise
        except Exception as e:
            raise RemoteMailError(
                "remote mail server {} failed: {}".format(config.host, e), cause=e
            ) from e
        finally:
            try:
                await client.disconnect()
            except Exception as e:
                self.__logger.warning(
                    "could not disconnect from {}: {}".format(config.host, e)
                )

    def to_message(self, fetched: FetchedMessage, mailbox: str) -> Message:
        """Map a fetched message into the `Message` shape."""
        envelope = fetched.envelope
        timestamp = fetched.internal_date or envelope.date or self.clock()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Message(
            id=str(fetched.seq) if fetched.seq is not None else new_message_id(),
            sender=format_address_list(envelope.sender),
            to=format_address_list(envelope.to),
            subject=envelope.subject or NO_SUBJECT,
            body="",
            status=STATUS_READ if fetched.seen else STATUS_UNREAD,
            mailbox=mailbox,
            created_at=timestamp,
            updated_at=timestamp,
        )

    async def list_mailboxes(self, config: RemoteMailConfig) -> List[MailboxSummary]:
        results: List[MailboxSummary] = []
        async with self.session(config) as client:
            for mailbox in await client.list_mailboxes():
                if not mailbox.selectable:
                    continue
                try:
                    status = await client.status(mailbox.path)
                    total, unread = status.messages, status.unseen
                except Exception as e:
                    self.__logger.warning(
                        "could not get status of {}: {}".format(mailbox.path, e)
                    )
                    total, unread = 0, 0
                results.append(
                    MailboxSummary(name=mailbox.path, total=total, unread=unread)
                )
        return sorted(results, key=mailbox_sort_key)

    async def list_messages(
        self, user_id: str, config: RemoteMailConfig, mailbox: str
    ) -> List[Message]:
        """List the latest `FETCH_WINDOW` messages of `mailbox`, newest first.

        Return an empty list if `mailbox` does not exist or is empty.
        """
        async with self.session(config) as client:
            info = await client.open_mailbox(mailbox)
            if not info or not info.exists:
                return []
            first = max(1, info.exists - FETCH_WINDOW + 1)
            fetched = await client.fetch_range("{}:{}".format(first, info.exists))
        messages = [
            self.message_cache.merge(user_id, self.to_message(f, mailbox))
            for f in fetched
        ]
        messages.sort(key=lambda m: m.created_at, reverse=True)
        return messages

    async def get_message(
        self, user_id: str, config: RemoteMailConfig, message_id: str
    ) -> Message:
        """Return the message with its body, fetching the source when the body is not cached yet."""
        cached = self.message_cache.get(user_id, message_id)
        if cached is not None and cached.body:
            return cached
        mailbox = cached.mailbox if cached is not None else DEFAULT_MAILBOX
        fetched: Optional[FetchedMessage] = None
        if message_id.isdigit():
            async with self.session(config) as client:
                info = await client.open_mailbox(mailbox)
                if info and info.exists:
                    fetched = await client.fetch_one(int(message_id))
        if fetched is None:
            if cached is not None:
                return cached
            raise NotFoundError("message not found")
        message = self.to_message(fetched, mailbox)
        if fetched.source:
            message = replace(message, body=extract_text_body(fetched.source))
        if cached is not None and cached.mailbox == message.mailbox and not message.body:
            message = replace(message, body=cached.body)
        return self.message_cache.put(user_id, message)

    async def mark_read(
        self, user_id: str, config: RemoteMailConfig, message_id: str
    ) -> Message:
        """Add the seen flag on the server, then mark the cached record as read.

        Only messages listed or fetched before can be marked: raise `NotFoundError` otherwise.
        """
        cached = self.message_cache.get(user_id, message_id)
        if cached is None or not message_id.isdigit():
            raise NotFoundError("message not found")
        async with self.session(config) as client:
            await client.open_mailbox(cached.mailbox)
            await client.add_flags(int(message_id), [SEEN_FLAG])
        return self.message_cache.put(
            user_id, replace(cached, status=STATUS_READ, updated_at=self.clock())
        )

    async def resolve_sent_mailbox(
        self, user_id: str, config: RemoteMailConfig, client: MailProtocolClient
    ) -> str:
        """Find the path of the "Sent" mailbox.

        In order: the configured path, the path found before for this user, a mailbox with the
        "\\Sent" special use or named "Sent"/"Sent Items"/"Sent Messages", then "Sent".
        """
        if config.sent_mailbox:
            return config.sent_mailbox
        cached = self._sent_mailbox_paths.get(user_id)
        if cached:
            return cached
        mailboxes: List[RemoteMailbox] = await client.list_mailboxes()
        for mailbox in mailboxes:
            if (mailbox.special_use or "").lower() == "\\sent":
                self._sent_mailbox_paths[user_id] = mailbox.path
                return mailbox.path
        for mailbox in mailboxes:
            if mailbox.path.lower() in SENT_MAILBOX_NAMES:
                self._sent_mailbox_paths[user_id] = mailbox.path
                return mailbox.path
        return FALLBACK_SENT_MAILBOX

    def build_raw_message(self, message: Message) -> bytes:
        raw = EmailMessage()
        raw["From"] = message.sender
        raw["To"] = message.to
        raw["Subject"] = message.subject
        raw["Date"] = format_datetime(message.sent_at or message.created_at)
        raw["Message-ID"] = make_msgid()
        raw.set_content(message.body)
        return raw.as_bytes()

    async def append_sent(
        self, user_id: str, config: RemoteMailConfig, message: Message
    ) -> Message:
        """Save a copy of `message` in the remote "Sent" mailbox, flagged as seen.

        The returned record carries the id given by the server and the resolved mailbox path.
        """
        async with self.session(config) as client:
            path = await self.resolve_sent_mailbox(user_id, config, client)
            result = await client.append(
                path,
                self.build_raw_message(message),
                [SEEN_FLAG],
                message.sent_at or message.created_at,
            )
        stored = replace(
            message,
            id=str(result.id) if result.id is not None else message.id,
            mailbox=path,
            status=STATUS_READ,
        )
        self.__logger.info("appended message {} to {}".format(stored.id, path))
        return self.message_cache.put(user_id, stored)
