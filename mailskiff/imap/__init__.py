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
"""IMAP client for Mailskiff: `AIOIMAPClient`, a `protocols.MailProtocolClient` over aioimaplib.

Related:

- [RFC 3501: Internet Message Access Protocol - Version 4rev1](https://datatracker.ietf.org/doc/html/rfc3501)
- [RFC 6154: IMAP LIST Extension for Special-Use Mailboxes](https://datatracker.ietf.org/doc/html/rfc6154)
- [aioimaplib](https://github.com/bamthomas/aioimaplib)
"""
import email.policy
import logging
import re
from datetime import datetime
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Any, Iterable, List, Optional, Tuple, Union, cast

from aioimaplib import aioimaplib

from ..config import RemoteMailConfig
from .protocols import (
    AddressPair,
    AppendResult,
    Envelope,
    FetchedMessage,
    MailboxInfo,
    MailboxStatus,
    RemoteMailbox,
)

SPECIAL_USE_FLAGS = frozenset(
    ["\\all", "\\archive", "\\drafts", "\\flagged", "\\junk", "\\sent", "\\trash"]
)

ENVELOPE_FIELDS = "BODY.PEEK[HEADER.FIELDS (FROM TO SUBJECT DATE)]"
FETCH_META_QUERY = "(FLAGS INTERNALDATE {})".format(ENVELOPE_FIELDS)
FETCH_FULL_QUERY = "(FLAGS INTERNALDATE BODY.PEEK[])"

_LIST_LINE = re.compile(
    rb'^(?:LIST\s+)?\((?P<flags>[^)]*)\)\s+(?P<delim>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.+)$',
    re.IGNORECASE,
)
_STATUS_MESSAGES = re.compile(rb"MESSAGES\s+(\d+)", re.IGNORECASE)
_STATUS_UNSEEN = re.compile(rb"UNSEEN\s+(\d+)", re.IGNORECASE)
_EXISTS = re.compile(rb"^(\d+)\s+EXISTS", re.IGNORECASE)
_FETCH_START = re.compile(rb"^(\d+)\s+FETCH\s+\((.*)$", re.IGNORECASE | re.DOTALL)
_FETCH_FLAGS = re.compile(rb"FLAGS\s+\(([^)]*)\)", re.IGNORECASE)
_FETCH_INTERNALDATE = re.compile(rb'INTERNALDATE\s+"([^"]*)"', re.IGNORECASE)
_LITERAL_END = re.compile(rb"\{(\d+)\}\s*$")

Line = Union[bytes, bytearray, str]


class IMAPCommandError(Exception):
    """The server answered a command with "NO" or "BAD"."""

    def __init__(self, command: str, result: str, lines: Iterable[Line]) -> None:
        self.command = command
        self.result = result
        detail = " ".join(_as_bytes(line).decode("utf-8", "replace") for line in lines)
        super().__init__("{} failed: {} {}".format(command, result, detail).strip())


def _as_bytes(line: Line) -> bytes:
    if isinstance(line, str):
        return line.encode("utf-8")
    return bytes(line)


def quote_mailbox(path: str) -> str:
    """Quote `path` as an IMAP quoted string."""
    return '"{}"'.format(path.replace("\\", "\\\\").replace('"', '\\"'))


def _unquote(value: bytes) -> str:
    text = value.decode("utf-8", "replace").strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = re.sub(r"\\(.)", r"\1", text[1:-1])
    return text


def parse_list_response(lines: Iterable[Line]) -> List[RemoteMailbox]:
    """Parse lines of a LIST response like `(\\HasNoChildren \\Sent) "/" "Sent Items"`."""
    results: List[RemoteMailbox] = []
    for line in lines:
        m = _LIST_LINE.match(_as_bytes(line).strip())
        if not m:
            continue
        flags = frozenset(m.group("flags").decode("ascii", "replace").split())
        special_use = None
        for flag in flags:
            if flag.lower() in SPECIAL_USE_FLAGS:
                special_use = flag
                break
        results.append(
            RemoteMailbox(
                path=_unquote(m.group("name")), flags=flags, special_use=special_use
            )
        )
    return results


def parse_status_response(lines: Iterable[Line]) -> MailboxStatus:
    messages = unseen = 0
    for line in lines:
        data = _as_bytes(line)
        m = _STATUS_MESSAGES.search(data)
        if m:
            messages = int(m.group(1))
        m = _STATUS_UNSEEN.search(data)
        if m:
            unseen = int(m.group(1))
    return MailboxStatus(messages=messages, unseen=unseen)


def parse_exists(lines: Iterable[Line]) -> int:
    exists = 0
    for line in lines:
        m = _EXISTS.match(_as_bytes(line).strip())
        if m:
            exists = int(m.group(1))
    return exists


def parse_internal_date(value: bytes) -> Optional[datetime]:
    """Parse an IMAP date-time like "17-Jul-1996 02:44:25 -0700"."""
    try:
        return datetime.strptime(
            value.decode("ascii").strip(), "%d-%b-%Y %H:%M:%S %z"
        )
    except (UnicodeDecodeError, ValueError):
        return None


def parse_fetch_response(
    lines: Iterable[Line],
) -> List[Tuple[int, bytes, Optional[bytes]]]:
    """Group lines of a FETCH response by message.

    Return a list of (sequence number, attributes text, literal). aioimaplib gives the literal
    (`{123}` at the end of a line) as the next element of `lines`.
    """
    records: List[List[Any]] = []
    current: Optional[List[Any]] = None
    literal_next = False
    for raw in lines:
        line = _as_bytes(raw)
        if literal_next:
            literal_next = False
            if current is not None:
                current[2] = line
            continue
        m = _FETCH_START.match(line)
        if m:
            current = [int(m.group(1)), m.group(2), None]
            records.append(current)
        elif current is not None:
            current[1] += b" " + line
        else:
            continue
        if _LITERAL_END.search(line):
            literal_next = True
    return [(r[0], r[1], r[2]) for r in records]


def _header_addresses(message: EmailMessage, name: str) -> List[AddressPair]:
    header = message[name]
    if header is None:
        return []
    addresses = getattr(header, "addresses", None)
    if addresses is None:
        return [("", str(header))]
    return [(a.display_name, a.addr_spec) for a in addresses]


def envelope_from_headers(raw: bytes) -> Envelope:
    """Build an `Envelope` from a raw header block (or a whole message)."""
    message = cast(
        EmailMessage,
        BytesParser(policy=email.policy.default).parsebytes(raw, headersonly=True),
    )
    subject = message["subject"]
    date: Optional[datetime] = None
    try:
        date_header = message["date"]
        if date_header is not None:
            date = getattr(date_header, "datetime", None)
    except (TypeError, ValueError):
        date = None
    return Envelope(
        sender=_header_addresses(message, "from"),
        to=_header_addresses(message, "to"),
        subject=str(subject) if subject is not None else None,
        date=date,
    )


def build_fetched_message(
    seq: int, meta: bytes, literal: Optional[bytes], with_source: bool
) -> FetchedMessage:
    flags_match = _FETCH_FLAGS.search(meta)
    flags = (
        frozenset(flags_match.group(1).decode("ascii", "replace").split())
        if flags_match
        else frozenset()
    )
    date_match = _FETCH_INTERNALDATE.search(meta)
    internal_date = parse_internal_date(date_match.group(1)) if date_match else None
    return FetchedMessage(
        seq=seq,
        flags=flags,
        internal_date=internal_date,
        envelope=envelope_from_headers(literal) if literal else Envelope(),
        source=literal if with_source else None,
    )


class AIOIMAPClient(object):
    """A `mailskiff.imap.protocols.MailProtocolClient` backed by aioimaplib.

    Typical usage (`mailskiff.mua.RemoteMailAgent` does this for you):

    ````python
    client = AIOIMAPClient(config)
    await client.connect()
    try:
        mailboxes = await client.list_mailboxes()
    finally:
        await client.disconnect()
    ````
    """

    __logger = logging.getLogger("mailskiff.imap.AIOIMAPClient")

    def __init__(self, config: RemoteMailConfig) -> None:
        self.config = config
        """`RemoteMailConfig`. A usable (see `RemoteMailConfig.usable`) connection descriptor."""
        self._imap: Optional[aioimaplib.IMAP4] = None
        super().__init__()

    @property
    def imap(self) -> aioimaplib.IMAP4:
        if self._imap is None:
            raise RuntimeError("IMAP client is not connected")
        return self._imap

    @staticmethod
    def _check(command: str, response: Any) -> Any:
        if response.result != "OK":
            raise IMAPCommandError(command, response.result, response.lines)
        return response

    async def connect(self) -> None:
        config = self.config
        auth = config.auth
        if not config.host or auth is None or not auth.complete:
            raise ValueError(
                "remote mail configuration needs a host, a user and a password"
            )
        if config.is_secure:
            self._imap = aioimaplib.IMAP4_SSL(
                host=config.host,
                port=config.resolved_port,
                ssl_context=config.ssl_context(),
            )
        else:
            self._imap = aioimaplib.IMAP4(host=config.host, port=config.resolved_port)
        await self._imap.wait_hello_from_server()
        self._check("LOGIN", await self._imap.login(auth.user, auth.password))
        self.__logger.debug(
            "logged in to {}:{}".format(config.host, config.resolved_port)
        )

    async def disconnect(self) -> None:
        imap, self._imap = self._imap, None
        if imap is not None:
            await imap.logout()

    async def list_mailboxes(self) -> List[RemoteMailbox]:
        response = self._check("LIST", await self.imap.list('""', "*"))
        return parse_list_response(response.lines)

    async def status(self, path: str) -> MailboxStatus:
        response = self._check(
            "STATUS", await self.imap.status(quote_mailbox(path), "(MESSAGES UNSEEN)")
        )
        return parse_status_response(response.lines)

    async def open_mailbox(self, path: str) -> Optional[MailboxInfo]:
        response = await self.imap.select(quote_mailbox(path))
        if response.result == "NO":
            return None
        self._check("SELECT", response)
        return MailboxInfo(exists=parse_exists(response.lines))

    async def fetch_range(self, seq_range: str) -> List[FetchedMessage]:
        response = self._check("FETCH", await self.imap.fetch(seq_range, FETCH_META_QUERY))
        return [
            build_fetched_message(seq, meta, literal, with_source=False)
            for seq, meta, literal in parse_fetch_response(response.lines)
        ]

    async def fetch_one(self, seq: int) -> Optional[FetchedMessage]:
        response = await self.imap.fetch(str(seq), FETCH_FULL_QUERY)
        if response.result != "OK":
            return None
        for fetched_seq, meta, literal in parse_fetch_response(response.lines):
            if fetched_seq == seq:
                return build_fetched_message(fetched_seq, meta, literal, with_source=True)
        return None

    async def add_flags(self, seq: int, flags: List[str]) -> None:
        self._check(
            "STORE",
            await self.imap.store(str(seq), "+FLAGS", "({})".format(" ".join(flags))),
        )

    async def append(
        self, path: str, raw: bytes, flags: List[str], date: Optional[datetime]
    ) -> AppendResult:
        """Append `raw` to `path`. The result id is the EXISTS count after the append,
        which is the sequence number of the new message."""
        self._check(
            "APPEND",
            await self.imap.append(
                raw,
                mailbox=quote_mailbox(path),
                flags="({})".format(" ".join(flags)),
                date=date,
            ),
        )
        info = await self.open_mailbox(path)
        return AppendResult(id=info.exists if info and info.exists else None)
