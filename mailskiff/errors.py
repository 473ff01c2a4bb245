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
"""Errors raised by Mailskiff components.

Every error carries a human-readable `message`. The outer layer (an HTTP gate, for example)
maps them to status codes:

- `ValidationError`: the input should be corrected by the caller.
- `NotFoundError`: a user, mailbox, message or draft does not exist.
- `ConflictError`: the state transition is not allowed, retrying unchanged won't help.
- `RemoteMailError`: the remote mail server could not be reached or refused the command.
"""
from typing import Optional


class MailskiffError(Exception):
    """The base of all Mailskiff errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(MailskiffError):
    pass


class NotFoundError(MailskiffError):
    pass


class ConflictError(MailskiffError):
    pass


class RemoteMailError(MailskiffError):
    """Failure while talking to a remote mail server.

    Attributes:
        cause: `Optional[BaseException]`. The underlying exception, also set as `__cause__` when raised with `from`.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class DeliveryError(RemoteMailError):
    """The relay could not hand the message over."""

    pass
