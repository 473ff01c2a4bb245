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
import threading

import pytest
from mailskiff.utils import global_executor
from mailskiff.utils.asec import PasswordHasher

from .utils import fast_hasher


@pytest.fixture
def hasher() -> PasswordHasher:
    return fast_hasher()


class TestPasswordHasher:
    @pytest.mark.asyncio
    async def test_hash_then_compare(self, hasher: PasswordHasher):
        password_hash = await hasher.hash("alice-secret")
        assert password_hash.isascii()
        assert "alice-secret" not in password_hash
        assert await hasher.compare("alice-secret", password_hash)
        assert not await hasher.compare("alice-secreT", password_hash)

    def test_hashes_are_salted(self, hasher: PasswordHasher):
        assert hasher.hash_sync("same") != hasher.hash_sync("same")

    @pytest.mark.parametrize("password_hash", ["", "not base64!", "aGVsbG8="])
    def test_malformed_hash_never_matches(self, hasher: PasswordHasher, password_hash: str):
        assert not hasher.compare_sync("hello", password_hash)


class TestGlobalExecutor:
    def test_executor_is_shared(self):
        assert global_executor.get() is global_executor.get()

    @pytest.mark.asyncio
    async def test_hashers_use_the_shared_executor(self, monkeypatch):
        threads = []
        first, second = fast_hasher(), fast_hasher()
        original = PasswordHasher.hash_sync

        def recording_hash_sync(self, password: str) -> str:
            threads.append(threading.current_thread().name)
            return original(self, password)

        monkeypatch.setattr(PasswordHasher, "hash_sync", recording_hash_sync)
        await first.hash("alice-secret")
        await second.hash("bob-secret")
        assert all(name.startswith("mailskiff.utils.global_executor") for name in threads)
        assert len(threads) == 2
