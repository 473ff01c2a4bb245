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
"""Settings for remote mail accounts: `RemoteMailConfig` and friends.

A `RemoteMailConfig` may be partial. The service keeps one as defaults and every user may carry
another one as override; `resolve_remote_config` merges them and decides if the result is complete
enough to talk to a server.
"""
import ssl
from dataclasses import dataclass, fields, replace
from typing import Optional

IMAP_PORT = 143
IMAPS_PORT = 993


@dataclass(frozen=True)
class MailCredentials(object):
    """Login for the remote account."""

    user: Optional[str] = None
    password: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.user) and bool(self.password)


@dataclass(frozen=True)
class TLSOptions(object):
    """
    Attributes:
        reject_unauthorized: `bool`. Verify the certificate and hostname of the server. `True` by default.

    ..caution:: Only disable `reject_unauthorized` for local test servers.
    """

    reject_unauthorized: bool = True


@dataclass(frozen=True)
class RemoteMailConfig(object):
    """Connection descriptor of a remote mail account (IMAP for reading, the same credentials for SMTP).

    All fields are optional. `None` means "not set here".

    Attributes:
        host: `Optional[str]`. IMAP server hostname.
        port: `Optional[int]`. IMAP server port. See `RemoteMailConfig.resolved_port`.
        secure: `Optional[bool]`. Use implicit TLS.
        auth: `Optional[MailCredentials]`.
        sent_mailbox: `Optional[str]`. Explicit path of the "Sent" mailbox. It's discovered when not set.
        tls: `Optional[TLSOptions]`.
    """

    host: Optional[str] = None
    port: Optional[int] = None
    secure: Optional[bool] = None
    auth: Optional[MailCredentials] = None
    sent_mailbox: Optional[str] = None
    tls: Optional[TLSOptions] = None

    def merged_over(self, defaults: Optional["RemoteMailConfig"]) -> "RemoteMailConfig":
        """Return a new config: fields set in this one, the others from `defaults`.

        `auth` is merged field by field, so a user could only override the password.
        """
        if defaults is None:
            return self
        changes = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                changes[f.name] = value
        if self.auth is not None and defaults.auth is not None:
            changes["auth"] = MailCredentials(
                user=self.auth.user or defaults.auth.user,
                password=self.auth.password or defaults.auth.password,
            )
        return replace(defaults, **changes)

    @property
    def usable(self) -> bool:
        """If there is enough infomation to log in: a host and complete credentials."""
        return bool(self.host) and self.auth is not None and self.auth.complete

    @property
    def is_secure(self) -> bool:
        return bool(self.secure)

    @property
    def resolved_port(self) -> int:
        """The port, or the IANA default for the security mode (993 with TLS, 143 without)."""
        if self.port:
            return self.port
        return IMAPS_PORT if self.is_secure else IMAP_PORT

    def ssl_context(self) -> ssl.SSLContext:
        """Build an SSL context honoring `TLSOptions.reject_unauthorized`."""
        context = ssl.create_default_context()
        tls = self.tls or TLSOptions()
        if not tls.reject_unauthorized:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


def resolve_remote_config(
    overrides: Optional[RemoteMailConfig], defaults: Optional[RemoteMailConfig]
) -> Optional[RemoteMailConfig]:
    """Merge `overrides` over `defaults`. Return `None` if the result could not be used to log in."""
    if overrides is not None:
        merged = overrides.merged_over(defaults)
    elif defaults is not None:
        merged = defaults
    else:
        return None
    if not merged.usable:
        return None
    return merged
