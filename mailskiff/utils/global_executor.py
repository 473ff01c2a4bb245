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
"""The thread pool shared by Mailskiff components which have blocking work, like password hashing.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

_shared_executor: Optional[ThreadPoolExecutor] = None


def get() -> ThreadPoolExecutor:
    """Return the shared thread pool executor. It's created on first use."""
    global _shared_executor
    if _shared_executor is None:
        _shared_executor = ThreadPoolExecutor(
            thread_name_prefix="mailskiff.utils.global_executor"
        )
    return _shared_executor
