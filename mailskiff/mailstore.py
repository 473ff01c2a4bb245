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
`MemoryMailStore` keeps mailboxes and messages of users in memory.
"""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set
from uuid import uuid4

from .errors import ConflictError, NotFoundError, ValidationError
from .usrsys.usr import (
    MAILBOX_DEFAULT_SETTING,
    MAILBOX_DRAFTS,
    MAILBOX_INBOX,
    MAILBOX_KNOWN,
    MAILBOX_SENT,
    STATUS_DRAFT,
    STATUS_READ,
    STATUS_SENT,
    STATUS_UNREAD,
    MailboxSummary,
    Message,
)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return str(uuid4())


class MemoryMailStore(object):
    """Mailboxes of all in-memory-backed users.

    For each user, the store keeps:

    - mailbox name -> messages, newest first
    - message id -> message, the flat index
    - draft id -> draft, for the drafts not sent yet
    - ids of the drafts already sent

    Every mutation replaces records in the mailbox list and the flat index in one step,
    so both views always agree on membership and content.

    ..note:: All methods are synchronous. The store is owned by one `mailskiff.MailService`.
    """

    __logger = logging.getLogger("mailskiff.mailstore.MemoryMailStore")

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock if clock else utcnow
        """`Callable[[], datetime]`. The source of timestamps."""
        self._mailboxes: Dict[str, Dict[str, List[Message]]] = {}
        self._messages: Dict[str, Dict[str, Message]] = {}
        self._drafts: Dict[str, Dict[str, Message]] = {}
        self._sent_drafts: Dict[str, Set[str]] = {}
        super().__init__()

    def init_user(
        self, user_id: str, mailboxes: Iterable[str] = MAILBOX_DEFAULT_SETTING
    ) -> None:
        """Set up the mailboxes of `user_id`. Existing mailboxes are kept."""
        user_boxes = self._mailboxes.setdefault(user_id, {})
        for name in mailboxes:
            user_boxes.setdefault(name, [])
        self._messages.setdefault(user_id, {})
        self._drafts.setdefault(user_id, {})
        self._sent_drafts.setdefault(user_id, set())

    def has_user(self, user_id: str) -> bool:
        return user_id in self._mailboxes

    def _user_mailboxes(self, user_id: str) -> Dict[str, List[Message]]:
        boxes = self._mailboxes.get(user_id)
        if boxes is None:
            raise NotFoundError("user not found")
        return boxes

    def _mailbox(self, user_id: str, name: str) -> List[Message]:
        boxes = self._user_mailboxes(user_id)
        if name not in boxes:
            if name not in MAILBOX_KNOWN:
                raise ValidationError("unknown mailbox: {}".format(name))
            boxes[name] = []
        return boxes[name]

    def _replace_in_mailbox(self, user_id: str, updated: Message) -> None:
        messages = self._user_mailboxes(user_id).get(updated.mailbox)
        if messages is None:
            return
        for index, message in enumerate(messages):
            if message.id == updated.id:
                messages[index] = updated
                return

    def _remove_from_mailbox(self, user_id: str, name: str, message_id: str) -> None:
        messages = self._user_mailboxes(user_id).get(name)
        if messages is None:
            return
        messages[:] = [m for m in messages if m.id != message_id]

    def list_mailboxes(self, user_id: str) -> List[MailboxSummary]:
        return [
            MailboxSummary(
                name=name,
                total=len(messages),
                unread=sum(1 for m in messages if m.status == STATUS_UNREAD),
            )
            for name, messages in self._user_mailboxes(user_id).items()
        ]

    def list_messages(self, user_id: str, mailbox: str) -> List[Message]:
        """Return the messages in `mailbox`, newest first.

        Raise `NotFoundError` if this user does not have `mailbox`.
        """
        messages = self._user_mailboxes(user_id).get(mailbox)
        if messages is None:
            raise NotFoundError("mailbox not found: {}".format(mailbox))
        return list(messages)

    def get_message(self, user_id: str, message_id: str) -> Message:
        message = self._messages.get(user_id, {}).get(message_id)
        if not message:
            raise NotFoundError("message not found")
        return message

    def store_message(self, user_id: str, message: Message) -> Message:
        """Put `message` at the top of its mailbox and index it."""
        mailbox = self._mailbox(user_id, message.mailbox)
        mailbox.insert(0, message)
        self._messages[user_id][message.id] = message
        self.__logger.debug(
            "stored message {} in {} of {}".format(message.id, message.mailbox, user_id)
        )
        return message

    def deliver(self, user_id: str, message: Message) -> Message:
        """Store a fresh unread copy of `message` in the inbox of `user_id`."""
        return self.store_message(
            user_id,
            replace(
                message,
                id=new_message_id(),
                mailbox=MAILBOX_INBOX,
                status=STATUS_UNREAD,
            ),
        )

    def mark_read(self, user_id: str, message_id: str) -> Message:
        """Set the status of the message to "read". Calling it again only refreshes `updated_at`."""
        message = self.get_message(user_id, message_id)
        updated = replace(message, status=STATUS_READ, updated_at=self.clock())
        self._messages[user_id][message_id] = updated
        self._replace_in_mailbox(user_id, updated)
        return updated

    def create_draft(self, user_id: str, payload: Mapping[str, Any]) -> Message:
        """Save a draft in the "drafts" mailbox.

        `payload` is a mapping with "from", "to", "subject" and optional "body".
        """
        self._user_mailboxes(user_id)
        values = {}
        for key in ("from", "to", "subject"):
            value = payload.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError("{} is required".format(key))
            values[key] = value.strip()
        timestamp = self.clock()
        draft = Message(
            id=new_message_id(),
            sender=values["from"],
            to=values["to"],
            subject=values["subject"],
            body=payload.get("body") or "",
            status=STATUS_DRAFT,
            mailbox=MAILBOX_DRAFTS,
            created_at=timestamp,
            updated_at=timestamp,
        )
        self.store_message(user_id, draft)
        self._drafts[user_id][draft.id] = draft
        return draft

    def send_draft(self, user_id: str, draft_id: str) -> Message:
        """Move the draft into "sent" and deliver a copy to the inbox of the same user.

        Raise `ConflictError` if the draft was sent before, `NotFoundError` if it's unknown.
        """
        if draft_id in self._sent_drafts.get(user_id, ()):
            raise ConflictError("draft already sent")
        draft = self._drafts.get(user_id, {}).get(draft_id)
        if not draft:
            raise NotFoundError("draft not found")

        timestamp = self.clock()
        sent_message = replace(
            draft,
            status=STATUS_SENT,
            mailbox=MAILBOX_SENT,
            sent_at=timestamp,
            updated_at=timestamp,
        )
        self._remove_from_mailbox(user_id, MAILBOX_DRAFTS, draft_id)
        del self._drafts[user_id][draft_id]
        self._sent_drafts[user_id].add(draft_id)
        self.store_message(user_id, sent_message)
        self.deliver(user_id, sent_message)
        return sent_message
