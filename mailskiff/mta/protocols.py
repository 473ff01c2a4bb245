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
"""All the protocol types for `mailskiff.mta`.
"""
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Awaitable, List, Optional, Protocol

from ..config import MailCredentials


@dataclass(frozen=True)
class OutgoingMail(object):
    """A message handed to a relay.

    Attributes:
        sender: `str`. The "From" line.
        to: `str`. Formatted recipients, joined by ", ".
        subject: `str`.
        text: `str`. Plain text body.
        auth: `Optional[MailCredentials]`. Log in as this account instead of the relay's own credentials.
    """

    sender: str
    to: str
    subject: str
    text: str
    auth: Optional[MailCredentials] = None

    def as_email_message(self) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = self.to
        message["Subject"] = self.subject
        message["Message-ID"] = make_msgid()
        message.set_content(self.text)
        return message


@dataclass(frozen=True)
class DeliveryReceipt(object):
    """What the relay reported back.

    Attributes:
        message_id: `str`. The "Message-ID" of the sent message.
        refused: `List[str]`. Recipients refused by the relay.
        response: `str`. The last response text of the relay.
    """

    message_id: str
    refused: List[str] = field(default_factory=list)
    response: str = ""


class Relay(Protocol):
    """A protocol type for the outbound side: something which can send a message out.

    Related:

    - `mailskiff.mta.SMTPRelay`
    - `mailskiff.mta.MemoryRelay`
    """

    def send_mail(self, mail: OutgoingMail) -> Awaitable[DeliveryReceipt]:
        """Send `mail`. Failures are raised as `mailskiff.errors.DeliveryError`."""
        ...
