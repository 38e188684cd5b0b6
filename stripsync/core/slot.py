"""Single-slot channel where the newest value always replaces an unread one."""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class LatestSlot(Generic[T]):
    """Holds at most one value; ``put`` overwrites whatever was not yet taken."""

    def __init__(self) -> None:
        self._value: T | None = None
        self._has_value = False
        self._event = asyncio.Event()

    def put(self, value: T) -> T | None:
        """Store ``value`` and return the unread value it displaced, if any."""
        displaced = self._value if self._has_value else None
        self._value = value
        self._has_value = True
        self._event.set()
        return displaced

    async def get(self) -> T:
        while not self._has_value:
            await self._event.wait()
        value = self._value
        self._value = None
        self._has_value = False
        self._event.clear()
        return value  # type: ignore[return-value]
