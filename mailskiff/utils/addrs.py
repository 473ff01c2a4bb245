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
"""Address helpers: turn free-text recipient strings into validated address lists.

Related:

- [flanker address parsing](https://github.com/mailgun/flanker#address-parsing)
"""
from dataclasses import dataclass
from email.utils import formataddr
from typing import List, Optional

from flanker.addresslib import address

from ..errors import ValidationError

DELIMITERS = (",", ";")


@dataclass
class ParsedAddress(object):
    """One valid entry from an address list.

    Attributes:
        address: `str`. The lower-cased addr-spec, like "alice@example.com".
        formatted: `str`. "Name <addr>" if the entry has a display name, or the bare address.
    """

    address: str
    formatted: str


def format_address(name: Optional[str], addr: str) -> str:
    """Render `addr` with its display `name`, or return `addr` if the name is empty.

    Names with special characters, like commas, are quoted: `"Doe, John" <john@x.com>`.
    """
    name = (name or "").strip()
    if name:
        return formataddr((name, addr))
    return addr


def split_address_list(raw: str) -> List[str]:
    """Split `raw` on commas and semicolons which are not inside quotes or angle brackets."""
    pieces: List[str] = []
    current: List[str] = []
    quoted = False
    bracketed = False
    escaped = False
    for ch in raw:
        if escaped:
            escaped = False
            current.append(ch)
            continue
        if ch == "\\" and quoted:
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif ch == "<" and not quoted:
            bracketed = True
        elif ch == ">" and not quoted:
            bracketed = False
        if ch in DELIMITERS and not quoted and not bracketed:
            pieces.append("".join(current))
            current = []
        else:
            current.append(ch)
    pieces.append("".join(current))
    return [p.strip() for p in pieces if p.strip()]


def parse_address(raw: str) -> Optional[ParsedAddress]:
    """Parse a single address. Return `None` if it's not a syntactically valid email address."""
    parsed = address.parse(raw.strip())
    if parsed is None or parsed.addr_type != "email":
        return None
    addr = parsed.address.lower()
    return ParsedAddress(address=addr, formatted=format_address(parsed.display_name, addr))


def parse_addresses(raw: Optional[str]) -> List[ParsedAddress]:
    """Parse `raw` as an address list. Invalid or empty entries are dropped silently."""
    if not raw:
        return []
    results: List[ParsedAddress] = []
    for piece in split_address_list(raw):
        parsed = parse_address(piece)
        if parsed:
            results.append(parsed)
    return results


def normalize_recipient_list(raw: Optional[str]) -> str:
    """Return the valid entries of `raw` joined by ", ".

    Raise `ValidationError` if there is no valid entry.
    """
    parsed = parse_addresses(raw)
    if not parsed:
        raise ValidationError("to must include at least one valid email address")
    return ", ".join(p.formatted for p in parsed)
