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
import pytest
from mailskiff.errors import ValidationError
from mailskiff.utils.addrs import (
    format_address,
    normalize_recipient_list,
    parse_address,
    parse_addresses,
    split_address_list,
)


class TestAddressParsing:
    def test_display_name_is_kept_in_formatted_form(self):
        (parsed,) = parse_addresses("Alice <alice@example.com>")
        assert parsed.address == "alice@example.com"
        assert parsed.formatted == "Alice <alice@example.com>"

    def test_address_is_lower_cased(self):
        (parsed,) = parse_addresses("Bob@Example.COM")
        assert parsed.address == "bob@example.com"
        assert parsed.formatted == "bob@example.com"

    def test_not_an_email_is_rejected(self):
        assert parse_address("not-an-email") is None
        assert parse_addresses("not-an-email") == []

    def test_invalid_and_empty_entries_are_dropped(self):
        parsed = parse_addresses("alice@example.com, , not-an-email; carol@example.com")
        assert [p.address for p in parsed] == ["alice@example.com", "carol@example.com"]

    def test_empty_input_gives_nothing(self):
        assert parse_addresses(None) == []
        assert parse_addresses("   ") == []

    def test_delimiters_inside_quotes_do_not_split(self):
        assert split_address_list('"Doe, John" <john@example.com>, amy@example.com') == [
            '"Doe, John" <john@example.com>',
            "amy@example.com",
        ]

    def test_format_address_without_name(self):
        assert format_address("", "amy@example.com") == "amy@example.com"
        assert format_address(" Amy ", "amy@example.com") == "Amy <amy@example.com>"


class TestRecipientNormalization:
    def test_valid_entries_are_joined(self):
        assert (
            normalize_recipient_list("Alice <alice@example.com>;BOB@example.com")
            == "Alice <alice@example.com>, bob@example.com"
        )

    def test_no_valid_entry_raises_validation_error(self):
        with pytest.raises(ValidationError) as info:
            normalize_recipient_list("not-an-email")
        assert "at least one valid email address" in info.value.message

    def test_display_name_with_comma_is_quoted(self):
        normalized = normalize_recipient_list('"Doe, John" <john@x.com>, amy@x.com')
        assert normalized == '"Doe, John" <john@x.com>, amy@x.com'
        assert [(p.address, p.formatted) for p in parse_addresses(normalized)] == [
            ("john@x.com", '"Doe, John" <john@x.com>'),
            ("amy@x.com", "amy@x.com"),
        ]

    def test_escaped_quote_does_not_end_the_name(self):
        assert split_address_list('"Amy \\"A, B\\"" <amy@x.com>; bob@x.com') == [
            '"Amy \\"A, B\\"" <amy@x.com>',
            "bob@x.com",
        ]
