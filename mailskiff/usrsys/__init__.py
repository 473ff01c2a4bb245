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
"""The user system for Mailskiff.

User system process all the things about one user's mail:

- `usr`: the records, `usr.UserRecord` and `usr.Message`, and the mailbox names
- `mailbox`: the backends which serve the mailboxes of a user

## In-memory and remote users
Every user has a `mailbox.MailBackend`. `mailbox.LocalMailBackend` keeps everything in the
process, `mailbox.RemoteMailBackend` talks to the user's own IMAP account.
Drafts always stay in the process, whatever the backend.
"""
