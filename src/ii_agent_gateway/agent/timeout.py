"""
Result-or-timeout wrapper for remote session calls.
"""

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class SessionTimeoutError(TimeoutError):
    """A remote session operation did not finish within its bound."""

    def __init__(self, label: str, seconds: float):
        self.label = label
        self.seconds = seconds
        super().__init__(f"{label} timed out after {int(seconds * 1000)}ms")


async def run_with_timeout(operation: Awaitable[T], label: str, seconds: float) -> T:
    """Await ``operation``, cancelling it if it runs past ``seconds``.

    asyncio.wait_for owns both the operation and its timer, so neither
    outlives this call whichever way it ends.
    """
    try:
        return await asyncio.wait_for(operation, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise SessionTimeoutError(label, seconds) from e
