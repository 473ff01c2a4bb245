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
"""Mailskiff: the mailbox core of a small webmail service.

`MailService` is the entry. It keeps the users and routes every mailbox operation of a user to
one of two backends:

- the in-memory store (`mailskiff.mailstore.MemoryMailStore`)
- a remote account over IMAP (`mailskiff.mua.RemoteMailAgent`)

Outgoing mail goes through a relay (`mailskiff.mta`).
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4

from .config import RemoteMailConfig, resolve_remote_config
from .errors import (
    ConflictError,
    MailskiffError,
    NotFoundError,
    RemoteMailError,
    ValidationError,
)
from .mailstore import Clock, MemoryMailStore, new_message_id, utcnow
from .mta import MemoryRelay, OutgoingMail, Relay
from .mua import RemoteMailAgent
from .usrsys.mailbox import LocalMailBackend, MailBackend, RemoteMailBackend
from .usrsys.usr import (
    MAILBOX_DEFAULT_SETTING,
    MAILBOX_SENT,
    STATUS_SENT,
    MailboxSummary,
    Message,
    UserRecord,
)
from .utils.addrs import (
    ParsedAddress,
    format_address,
    normalize_recipient_list,
    parse_address,
    parse_addresses,
)
from .utils.asec import PasswordHasher

MIN_PASSWORD_LENGTH = 6


class MailService(object):
    """The entry of Mailskiff. This class stores the users and the tools to reach their mail.

    Every user is served by one backend, resolved from the user's remote override merged over
    `MailService.remote_defaults`:

    - a usable remote configuration (host and credentials) makes the user protocol-backed
    - any other user is served by the in-memory store

    ..caution:: Nothing is persisted. Everything is gone when the process exits.
    """

    __logger = logging.getLogger("mailskiff.MailService")

    def __init__(
        self,
        *,
        store: Optional[MemoryMailStore] = None,
        relay: Optional[Relay] = None,
        remote_agent: Optional[RemoteMailAgent] = None,
        remote_defaults: Optional[RemoteMailConfig] = None,
        hasher: Optional[PasswordHasher] = None,
        clock: Optional[Clock] = None,
        default_mailboxes: Iterable[str] = MAILBOX_DEFAULT_SETTING,
    ) -> None:
        self.clock: Clock = clock if clock else utcnow
        """`Callable[[], datetime]`. The source of timestamps."""
        self.store = store if store else MemoryMailStore(clock=self.clock)
        """`MemoryMailStore`. Mailboxes of in-memory-backed users, and drafts of every user."""
        self.relay: Relay = relay if relay else MemoryRelay()
        """`mailskiff.mta.protocols.Relay`. The way out for sent messages. It's `MemoryRelay` if `None` passed in."""
        self.remote_agent = (
            remote_agent if remote_agent else RemoteMailAgent(clock=self.clock)
        )
        """`RemoteMailAgent`. Talks to remote accounts."""
        self.remote_defaults = remote_defaults
        """`Optional[RemoteMailConfig]`. Service-wide settings for remote accounts, users may override each field."""
        self.hasher = hasher if hasher else PasswordHasher()
        """`PasswordHasher`."""
        self.default_mailboxes = list(default_mailboxes)
        """`List[str]`. Mailboxes created in the store for new users."""
        self._users: Dict[str, UserRecord] = {}
        self._user_ids_by_email: Dict[str, str] = {}
        self._backends: Dict[str, MailBackend] = {}
        super().__init__()

    @property
    def all_users_remote(self) -> bool:
        """If the service defaults alone make a usable remote account, so every user is protocol-backed.

        In this case, delivery is left to the remote provider and no local copies are made.
        """
        return self.remote_defaults is not None and self.remote_defaults.usable

    def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        user_id = self._user_ids_by_email.get(email.strip().lower())
        if user_id is None:
            return None
        return self._users.get(user_id)

    def require_user(self, user_id: str) -> UserRecord:
        """Return the user of `user_id`, raise `NotFoundError` if there is no such user."""
        user = self._users.get(user_id) if user_id else None
        if user is None:
            raise NotFoundError("user not found")
        return user

    def remote_config_for(self, user: UserRecord) -> Optional[RemoteMailConfig]:
        return resolve_remote_config(user.remote, self.remote_defaults)

    def public_profile(self, user: UserRecord) -> Dict[str, Any]:
        """Infomation about `user` which is safe to show: no password hash, no remote password."""
        profile: Dict[str, Any] = {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "backend": "memory",
        }
        config = self.remote_config_for(user)
        if config is not None:
            profile["backend"] = "remote"
            profile["remote"] = {
                "host": config.host,
                "port": config.resolved_port,
                "secure": config.is_secure,
                "user": config.auth.user if config.auth else None,
                "sentMailbox": config.sent_mailbox,
            }
        return profile

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        return self.public_profile(self.require_user(user_id))

    async def ensure_user(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        remote: Optional[RemoteMailConfig] = None,
    ) -> Dict[str, Any]:
        """Create a user, or update the user with the same email address.

        Updating sets the new password, and the name and remote override if they are given.
        Return the public profile of the user.
        """
        normalized = email.strip().lower() if isinstance(email, str) else ""
        parsed = parse_address(normalized) if normalized else None
        if parsed is None or parsed.address != normalized:
            raise ValidationError("valid email is required")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "password must be at least {} characters".format(MIN_PASSWORD_LENGTH)
            )
        password_hash = await self.hasher.hash(password)

        user = self.find_user_by_email(normalized)
        if user is not None:
            user.password_hash = password_hash
            if name and name.strip():
                user.name = name.strip()
            if remote is not None:
                user.remote = remote
            self._backends.pop(user.id, None)
            self.remote_agent.forget_user(user.id)
            self.__logger.info("updated user {}".format(user.id))
        else:
            user = UserRecord(
                id=uuid4().hex,
                email=normalized,
                name=(name or "").strip() or normalized.split("@")[0],
                password_hash=password_hash,
                remote=remote,
            )
            self._users[user.id] = user
            self._user_ids_by_email[user.email] = user.id
            self.store.init_user(user.id, self.default_mailboxes)
            self.__logger.info("created user {}".format(user.id))
        return self.public_profile(user)

    async def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Return the public profile if `password` is right, or `None`. Bad credentials never raise."""
        if not isinstance(email, str) or not isinstance(password, str):
            return None
        user = self.find_user_by_email(email)
        if user is None:
            return None
        if not await self.hasher.compare(password, user.password_hash):
            return None
        return self.public_profile(user)

    def backend_for(self, user_id: str) -> MailBackend:
        """Return the backend of the user. It's resolved on first use and kept until the user is updated."""
        user = self.require_user(user_id)
        backend = self._backends.get(user.id)
        if backend is None:
            config = self.remote_config_for(user)
            if config is not None:
                backend = RemoteMailBackend(self.remote_agent, user.id, config)
            else:
                backend = LocalMailBackend(self.store, user.id)
            self._backends[user.id] = backend
        return backend

    async def list_mailboxes(self, user_id: str) -> List[MailboxSummary]:
        return await self.backend_for(user_id).list_mailboxes()

    async def list_messages(self, user_id: str, mailbox: str) -> List[Message]:
        return await self.backend_for(user_id).list_messages(mailbox)

    async def get_message(self, user_id: str, message_id: str) -> Message:
        return await self.backend_for(user_id).get_message(message_id)

    async def mark_read(self, user_id: str, message_id: str) -> Message:
        return await self.backend_for(user_id).mark_read(message_id)

    def create_draft(self, user_id: str, payload: Mapping[str, Any]) -> Message:
        """Save a draft. Drafts always live in the in-memory store, whatever the backend of the user."""
        user = self.require_user(user_id)
        return self.store.create_draft(user.id, payload)

    def send_draft(self, user_id: str, draft_id: str) -> Message:
        """Send a draft to the user's own inbox. See `MemoryMailStore.send_draft`.

        The inbox copy is kept in the in-memory store. For a protocol-backed user it is not shown by
        `list_messages`, which reads the remote account.
        """
        user = self.require_user(user_id)
        return self.store.send_draft(user.id, draft_id)

    async def send_message(self, user_id: str, payload: Mapping[str, Any]) -> Message:
        """Send a message from the user.

        `payload` is a mapping with "to", "subject" and optional "body". The message goes
        through the relay, a copy is kept in the sender's "sent" mailbox (or the remote one), and
        local users in the recipients get a copy in their inbox.
        Return the copy kept for the sender.
        """
        user = self.require_user(user_id)
        to = payload.get("to")
        subject = payload.get("subject")
        if not isinstance(to, str) or not to.strip():
            raise ValidationError("to is required")
        if not isinstance(subject, str) or not subject.strip():
            raise ValidationError("subject is required")
        recipients = normalize_recipient_list(to)
        body = payload.get("body") or ""

        backend = self.backend_for(user.id)
        timestamp = self.clock()
        message = Message(
            id=new_message_id(),
            sender=format_address(user.name, user.email),
            to=recipients,
            subject=subject.strip(),
            body=body,
            status=STATUS_SENT,
            mailbox=MAILBOX_SENT,
            created_at=timestamp,
            updated_at=timestamp,
            sent_at=timestamp,
        )
        receipt = await self.relay.send_mail(
            OutgoingMail(
                sender=message.sender,
                to=recipients,
                subject=message.subject,
                text=body,
                auth=backend.relay_auth,
            )
        )
        self.__logger.info(
            "user {} sent message {}".format(user.id, receipt.message_id)
        )
        stored = await backend.store_sent(message)
        if not self.all_users_remote:
            self._deliver_locally(message, parse_addresses(recipients))
        return stored

    def _deliver_locally(
        self, message: Message, recipients: List[ParsedAddress]
    ) -> None:
        """Put an unread copy in the inbox of each recipient who is a local, in-memory-backed user.

        Unknown and protocol-backed recipients are skipped: their mail is delivered by their provider.
        """
        delivered = set()
        for recipient in recipients:
            if recipient.address in delivered:
                continue
            target = self.find_user_by_email(recipient.address)
            if target is None or self.backend_for(target.id).kind != "memory":
                continue
            self.store.deliver(target.id, message)
            delivered.add(recipient.address)
            self.__logger.info(
                "delivered message {} to user {}".format(message.id, target.id)
            )


__all__ = [
    "ConflictError",
    "MailService",
    "MailskiffError",
    "NotFoundError",
    "RemoteMailConfig",
    "RemoteMailError",
    "ValidationError",
]
