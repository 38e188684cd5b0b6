"""Advertisement source backed by bleak's BleakScanner."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from stripsync.core.errors import SourceUnavailableError
from stripsync.core.model import Advertisement

LOGGER = logging.getLogger(__name__)

_CONNECTABLE_KEY = "kCBAdvDataIsConnectable"


def _is_connectable(adv: AdvertisementData) -> bool:
    # Only CoreBluetooth reports connectability; other backends assume True.
    for item in adv.platform_data or ():
        try:
            if _CONNECTABLE_KEY in item:
                return bool(item[_CONNECTABLE_KEY])
        except TypeError:
            continue
    return True


def to_advertisement(device: BLEDevice, adv: AdvertisementData) -> Advertisement:
    return Advertisement(
        identifier=device.address,
        name=adv.local_name or device.name or None,
        service_ids=frozenset(uuid.lower() for uuid in adv.service_uuids),
        connectable=_is_connectable(adv),
        rssi=adv.rssi,
    )


class BleakAdvertisementSource:
    """Collects every advertisement, duplicates included, while scanning."""

    def __init__(self, **scanner_kwargs: Any) -> None:
        self._scanner_kwargs = scanner_kwargs
        self._scanner: BleakScanner | None = None
        self._queue: asyncio.Queue[Advertisement] = asyncio.Queue()

    def _on_detection(self, device: BLEDevice, adv: AdvertisementData) -> None:
        self._queue.put_nowait(to_advertisement(device, adv))

    async def __aenter__(self) -> BleakAdvertisementSource:
        scanner = BleakScanner(detection_callback=self._on_detection, **self._scanner_kwargs)
        try:
            await scanner.start()
        except (BleakError, OSError) as exc:
            raise SourceUnavailableError(f"Bluetooth scanning unavailable: {exc}") from exc
        self._scanner = scanner
        LOGGER.info("Scanning for LED strips")
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except (BleakError, OSError) as exc:
            LOGGER.warning("Stopping the scanner failed: %s", exc)

    async def advertisements(self) -> AsyncIterator[Advertisement]:
        while self._scanner is not None:
            yield await self._queue.get()
