"""Interfaces for the device, advertisement and frame collaborators."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from stripsync.core.model import Advertisement, Frame


class Device(Protocol):
    async def set_color(self, r: int, g: int, b: int) -> None:
        """Set the strip color; raise TransportError on failure."""

    async def set_power(self, on: bool) -> None:
        """Switch the strip on or off; raise TransportError on failure."""

    async def set_brightness(self, level: int) -> None:
        """Set brightness 0-100; raise TransportError on failure."""

    async def close(self) -> None:
        """Release the connection."""


class AdvertisementSource(Protocol):
    async def __aenter__(self) -> AdvertisementSource:
        """Start scanning; raise SourceUnavailableError if the radio is unusable."""

    async def __aexit__(self, *exc_info: object) -> None:
        """Stop scanning."""

    def advertisements(self) -> AsyncIterator[Advertisement]:
        """Yield advertisement events while scanning is active."""


class FrameSource(Protocol):
    def open(self) -> None:
        """Acquire the capture resource; raise SourceUnavailableError on failure."""

    def read(self) -> Frame | None:
        """Return a newly ready frame, or None when nothing new is available."""

    def close(self) -> None:
        """Release the capture resource. Safe to call more than once."""
