"""Stable public API for building tooling on top of stripsync.

This module is the supported integration surface for third-party callers.
`Client` offers blocking one-shot helpers for scripts; long-running callers
should use `StripService` directly inside their own event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from stripsync.core.config import Settings, load_settings
from stripsync.core.device_match import AdvertisementMatcher, discover
from stripsync.core.dispatch import AdmissionController
from stripsync.core.errors import (
    ConfigError,
    SourceUnavailableError,
    StripsyncError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from stripsync.core.model import (
    CandidateDevice,
    ColorSample,
    DispatchOutcome,
    DispatchResult,
    Intent,
    MatchReport,
    SetBrightness,
    SetColor,
    SetPower,
)
from stripsync.core.service import StripService, connect_device
from stripsync.transports.base import AdvertisementSource, Device
from stripsync.transports.ble_gatt import BledomDevice
from stripsync.transports.ble_scan import BleakAdvertisementSource

__all__ = [
    "StripsyncError",
    "ConfigError",
    "SourceUnavailableError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "CandidateDevice",
    "ColorSample",
    "DispatchOutcome",
    "DispatchResult",
    "Intent",
    "MatchReport",
    "SetBrightness",
    "SetColor",
    "SetPower",
    "Settings",
    "load_settings",
    "AdvertisementMatcher",
    "AdmissionController",
    "StripService",
    "BledomDevice",
    "BleakAdvertisementSource",
    "Client",
]

T = TypeVar("T")


class Client:
    """Public client for discovering a strip and sending single commands.

    Each call runs its own event loop, connects, sends and disconnects, so it
    must not be used from inside a running loop.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        device_factory: Callable[[str, Settings], Device] | None = None,
        source_factory: Callable[[], AdvertisementSource] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._device_factory = device_factory or BledomDevice
        self._source_factory = source_factory or BleakAdvertisementSource

    def scan(self, *, window_s: float | None = None) -> MatchReport:
        return asyncio.run(discover(self._source_factory(), self.settings, window_s=window_s))

    def set_color(self, identifier: str, r: int, g: int, b: int) -> DispatchResult:
        return self.send(identifier, SetColor.rgb(r, g, b))

    def set_power(self, identifier: str, on: bool) -> DispatchResult:
        return self.send(identifier, SetPower(on))

    def set_brightness(self, identifier: str, level: int) -> DispatchResult:
        return self.send(identifier, SetBrightness.clamp(level))

    def send(self, identifier: str, intent: Intent) -> DispatchResult:
        async def _run(service: StripService) -> DispatchResult:
            return await service.submit(intent)

        return self._with_service(identifier, _run)

    def _with_service(self, identifier: str, body: Callable[[StripService], Awaitable[T]]) -> T:
        async def _run() -> T:
            device = self._device_factory(identifier, self.settings)
            await connect_device(device)
            async with StripService(device, self.settings) as service:
                return await body(service)

        return asyncio.run(_run())
