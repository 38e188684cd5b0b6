from __future__ import annotations

import asyncio

import pytest

from stripsync.core.errors import SourceUnavailableError
from stripsync.core.model import Advertisement, Frame


class FakeDevice:
    def __init__(self, address: str = "AA:BB:CC:DD:EE:FF", settings=None) -> None:
        self.address = address
        self.settings = settings
        self.delay = 0.0
        self.hang = False
        self.error: Exception | None = None
        self.power_error: Exception | None = None
        self.colors: list[tuple[int, int, int]] = []
        self.power: list[bool] = []
        self.brightness: list[int] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def set_color(self, r: int, g: int, b: int) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.hang:
                await asyncio.Event().wait()
            await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            self.colors.append((r, g, b))
        finally:
            self.active -= 1

    async def set_power(self, on: bool) -> None:
        if self.power_error is not None:
            raise self.power_error
        self.power.append(on)

    async def set_brightness(self, level: int) -> None:
        if self.power_error is not None:
            raise self.power_error
        self.brightness.append(level)

    async def close(self) -> None:
        self.closed = True


def uniform_frame(width: int, height: int, rgb: tuple[int, int, int], layout: str = "RGBA") -> Frame:
    r, g, b = rgb
    pixel = bytes([r, g, b, 255]) if layout == "RGBA" else bytes([b, g, r, 255])
    return Frame(width=width, height=height, data=pixel * (width * height), layout=layout)


class FakeFrameSource:
    """Replays ``frames`` then repeats the last entry; ``None`` entries mean no new frame."""

    def __init__(self, frames: list[Frame | None], *, fail_open: bool = False, fail_after: int | None = None) -> None:
        self.frames = list(frames)
        self.fail_open = fail_open
        self.fail_after = fail_after
        self.acquired = False
        self.reads = 0
        self.close_calls = 0

    def open(self) -> None:
        self.acquired = True
        if self.fail_open:
            raise SourceUnavailableError("display went away")

    def read(self) -> Frame | None:
        if self.fail_after is not None and self.reads >= self.fail_after:
            raise SourceUnavailableError("capture track ended")
        index = min(self.reads, len(self.frames) - 1)
        self.reads += 1
        return self.frames[index]

    def close(self) -> None:
        self.acquired = False
        self.close_calls += 1


class FakeAdvertisementSource:
    def __init__(self, events: list[Advertisement], *, fail: bool = False) -> None:
        self.events = events
        self.fail = fail
        self.consumed = 0
        self.exited = False

    async def __aenter__(self) -> FakeAdvertisementSource:
        if self.fail:
            raise SourceUnavailableError("Bluetooth adapter is powered off")
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.exited = True

    async def advertisements(self):
        for event in self.events:
            self.consumed += 1
            yield event
        # Real scanners keep running until stopped.
        await asyncio.Event().wait()


def adv(
    identifier: str,
    name: str | None = None,
    services: tuple[str, ...] = (),
    connectable: bool = True,
    rssi: int = -60,
) -> Advertisement:
    return Advertisement(
        identifier=identifier,
        name=name,
        service_ids=frozenset(services),
        connectable=connectable,
        rssi=rssi,
    )


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()
