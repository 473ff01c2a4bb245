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
import ssl

from mailskiff.config import (
    MailCredentials,
    RemoteMailConfig,
    TLSOptions,
    resolve_remote_config,
)

DEFAULTS = RemoteMailConfig(
    host="imap.example.com",
    port=1143,
    auth=MailCredentials("shared@example.com", "shared-secret"),
)


class TestRemoteMailConfig:
    def test_override_fields_win(self):
        merged = RemoteMailConfig(host="mail.example.org", secure=True).merged_over(DEFAULTS)
        assert merged.host == "mail.example.org"
        assert merged.port == 1143
        assert merged.secure is True
        assert merged.auth == DEFAULTS.auth

    def test_auth_is_merged_by_field(self):
        merged = RemoteMailConfig(auth=MailCredentials(user="bob@example.com")).merged_over(
            DEFAULTS
        )
        assert merged.auth == MailCredentials("bob@example.com", "shared-secret")

    def test_resolved_port(self):
        assert RemoteMailConfig().resolved_port == 143
        assert RemoteMailConfig(secure=True).resolved_port == 993
        assert RemoteMailConfig(secure=True, port=2993).resolved_port == 2993

    def test_ssl_context(self):
        assert RemoteMailConfig().ssl_context().verify_mode == ssl.CERT_REQUIRED
        context = RemoteMailConfig(tls=TLSOptions(reject_unauthorized=False)).ssl_context()
        assert context.verify_mode == ssl.CERT_NONE
        assert not context.check_hostname


class TestResolveRemoteConfig:
    def test_nothing_configured(self):
        assert resolve_remote_config(None, None) is None

    def test_defaults_only(self):
        assert resolve_remote_config(None, DEFAULTS) == DEFAULTS

    def test_incomplete_result(self):
        assert resolve_remote_config(RemoteMailConfig(host="imap.example.com"), None) is None
        assert (
            resolve_remote_config(
                RemoteMailConfig(auth=MailCredentials("bob@example.com", "pw")), None
            )
            is None
        )

    def test_override_completes_defaults(self):
        defaults = RemoteMailConfig(host="imap.example.com")
        resolved = resolve_remote_config(
            RemoteMailConfig(auth=MailCredentials("bob@example.com", "pw")), defaults
        )
        assert resolved is not None
        assert resolved.host == "imap.example.com"
        assert resolved.usable
