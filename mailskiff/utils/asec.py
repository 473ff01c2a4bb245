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
"""Security tools, including password hashing.

Related:

- [nacl.pwhash - PyNaCL documentation](https://pynacl.readthedocs.io/en/latest/api/pwhash/)
- [Password hashing - libsodium documentation](https://doc.libsodium.org/password_hashing)
"""
from asyncio import get_running_loop
from base64 import standard_b64decode, standard_b64encode
from binascii import Error as Base64Error

from nacl.exceptions import CryptoError
from nacl.pwhash import argon2id

from . import global_executor


class PasswordHasher(object):
    """Hash and check passwords with argon2id.

    The hash is encoded in base64, the result is an ASCII string.
    Hashing runs on the shared thread pool (`global_executor.get`) to keep the event loop responsive.

    ..note:: The default limits are argon2id's INTERACTIVE ones. Pass `argon2id.OPSLIMIT_MIN` and
        `argon2id.MEMLIMIT_MIN` in tests.
    """

    def __init__(
        self,
        opslimit: int = argon2id.OPSLIMIT_INTERACTIVE,
        memlimit: int = argon2id.MEMLIMIT_INTERACTIVE,
    ) -> None:
        self.opslimit = opslimit
        self.memlimit = memlimit
        super().__init__()

    def hash_sync(self, password: str) -> str:
        """Hash `password`.

        ..caution:: This function is synchrounous.
            It may unexecptly block the thread.
        """
        return standard_b64encode(
            argon2id.str(
                password.encode("utf-8"),
                opslimit=self.opslimit,
                memlimit=self.memlimit,
            )
        ).decode("ascii")

    def compare_sync(self, password: str, password_hash: str) -> bool:
        """Check if the `password_hash` matchs `password`. A malformed hash never matchs.

        ..caution:: This function is synchrounous.
            It may unexecptly block the thread.
        """
        try:
            return argon2id.verify(
                standard_b64decode(password_hash.encode("ascii")),
                password.encode("utf-8"),
            )
        except (CryptoError, Base64Error, UnicodeEncodeError):
            return False

    async def hash(self, password: str) -> str:
        """Hash `password` in another thread."""
        return await get_running_loop().run_in_executor(
            global_executor.get(), self.hash_sync, password
        )

    async def compare(self, password: str, password_hash: str) -> bool:
        """Check `password` against `password_hash` in another thread."""
        return await get_running_loop().run_in_executor(
            global_executor.get(), self.compare_sync, password, password_hash
        )
