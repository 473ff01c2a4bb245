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
"""Relays for Mailskiff: `SMTPRelay` and `MemoryRelay`.
"""
import logging
from email.message import EmailMessage
from typing import List, Optional

import aiosmtplib
from aiosmtplib.errors import SMTPException

from ..errors import DeliveryError
from .protocols import DeliveryReceipt, OutgoingMail, Relay


class SMTPRelay(object):
    """A `protocols.Relay` which submits messages to an SMTP server.

    Related:

    - [aiosmtplib documentation](https://aiosmtplib.readthedocs.io/en/stable/)
    """

    __logger = logging.getLogger("mailskiff.mta.SMTPRelay")

    def __init__(
        self,
        *,
        hostname: str = "localhost",
        port: Optional[int] = None,
        use_tls: bool = False,
        start_tls: bool = False,
        username: Optional[str] = None,
        password: Optional[str] = None,
        validate_certs: bool = True,
        timeout: Optional[float] = None,
    ) -> None:
        self.hostname = hostname
        """`str`. The SMTP server hostname."""
        self.port = port
        """`Optional[int]`. The SMTP server port. aiosmtplib picks the default for the TLS mode if `None`."""
        self.use_tls = use_tls
        self.start_tls = start_tls
        self.username = username
        self.password = password
        self.validate_certs = validate_certs
        self.timeout = timeout
        super().__init__()

    async def send_mail(self, mail: OutgoingMail) -> DeliveryReceipt:
        message = mail.as_email_message()
        username, password = self.username, self.password
        if mail.auth is not None and mail.auth.complete:
            username, password = mail.auth.user, mail.auth.password
        options = {}
        if self.timeout is not None:
            options["timeout"] = self.timeout
        try:
            responses, status = await aiosmtplib.send(
                message,
                hostname=self.hostname,
                port=self.port,
                username=username,
                password=password,
                use_tls=self.use_tls,
                start_tls=self.start_tls,
                validate_certs=self.validate_certs,
                **options
            )
        except (SMTPException, OSError) as e:
            raise DeliveryError(
                "could not send message through {}: {}".format(self.hostname, e),
                cause=e,
            ) from e
        self.__logger.info(
            "relayed message {} through {}".format(message["message-id"], self.hostname)
        )
        return DeliveryReceipt(
            message_id=message["message-id"],
            refused=list(responses),
            response=status,
        )


class MemoryRelay(object):
    """A `protocols.Relay` which keeps every message in `MemoryRelay.outbox`.

    It's the relay used by `mailskiff.MailService` when no other relay passed in:
    the in-memory backend delivers local copies by itself, and the relay only has to accept.
    """

    __logger = logging.getLogger("mailskiff.mta.MemoryRelay")

    def __init__(self) -> None:
        self.outbox: List[EmailMessage] = []
        """`List[EmailMessage]`. Messages sent, oldest first."""
        super().__init__()

    async def send_mail(self, mail: OutgoingMail) -> DeliveryReceipt:
        message = mail.as_email_message()
        self.outbox.append(message)
        self.__logger.debug("kept message {}".format(message["message-id"]))
        return DeliveryReceipt(
            message_id=message["message-id"],
            response="OK",
        )


__all__ = ["DeliveryReceipt", "MemoryRelay", "OutgoingMail", "Relay", "SMTPRelay"]
