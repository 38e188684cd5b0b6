"""ELK-BLEDOM style LED strip over a BLE GATT write characteristic."""

from __future__ import annotations

import asyncio
import logging

from bleak import BleakClient
from bleak.exc import BleakError

from stripsync.core.config import Settings
from stripsync.core.errors import (
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)

LOGGER = logging.getLogger(__name__)


def color_frame(r: int, g: int, b: int) -> bytes:
    return bytes([0x7E, 0x00, 0x05, 0x03, r, g, b, 0x00, 0xEF])


def power_frame(on: bool) -> bytes:
    if on:
        return bytes.fromhex("7e0004f00001ff00ef")
    return bytes.fromhex("7e0004000000ff00ef")


def brightness_frame(level: int) -> bytes:
    return bytes([0x7E, 0x00, 0x01, level, 0x00, 0x00, 0x00, 0x00, 0xEF])


class BledomDevice:
    """Keeps one BLE link open to the strip until ``close``.

    Power and brightness commands wait for a (re)connect. Color commands never
    do: while the link is down they fail at once and a single background
    reconnect is started, so timed-out colors cannot pile up behind it.
    Commands are written without response; ordering and exclusivity are the
    caller's concern.
    """

    def __init__(self, address: str, settings: Settings | None = None) -> None:
        self.address = address
        self.settings = settings or Settings()
        self._client: BleakClient | None = None
        self._connect_lock = asyncio.Lock()
        self._reconnect: asyncio.Task[None] | None = None

    async def connect(self) -> None:
        await self._ensure_connected()

    async def _ensure_connected(self) -> BleakClient:
        async with self._connect_lock:
            if self._client is not None and self._client.is_connected:
                return self._client

            LOGGER.info("Connecting to strip %s", self.address)
            client = BleakClient(
                self.address,
                timeout=self.settings.connect_timeout_s,
                disconnected_callback=self._on_disconnect,
            )
            try:
                await client.connect()
            except asyncio.TimeoutError as exc:
                raise TransportTimeoutError(
                    f"BLE connect to {self.address} timed out after {self.settings.connect_timeout_s:.0f}s"
                ) from exc
            except (BleakError, OSError) as exc:
                raise TransportConnectError(f"BLE connect failed for {self.address}: {exc}") from exc
            if not client.is_connected:
                raise TransportConnectError(f"BLE connect failed for {self.address}")
            self._client = client
            return client

    def _on_disconnect(self, client: BleakClient) -> None:
        LOGGER.warning("Strip %s disconnected", self.address)
        if self._client is client:
            self._client = None

    def _start_reconnect(self) -> None:
        if self._reconnect is not None and not self._reconnect.done():
            return
        self._reconnect = asyncio.create_task(self._reconnect_quietly())

    async def _reconnect_quietly(self) -> None:
        try:
            await self._ensure_connected()
        except TransportError as exc:
            LOGGER.warning("Reconnect to %s failed: %s", self.address, exc)

    async def _send(self, client: BleakClient, payload: bytes) -> None:
        try:
            await client.write_gatt_char(self.settings.write_char_uuid, payload, response=False)
        except (BleakError, OSError) as exc:
            raise TransportSendError(f"BLE GATT write failed: {exc}") from exc

    async def set_color(self, r: int, g: int, b: int) -> None:
        client = self._client
        if client is None or not client.is_connected or self._connect_lock.locked():
            self._start_reconnect()
            raise TransportConnectError(f"Strip {self.address} is not connected")
        await self._send(client, color_frame(r, g, b))

    async def set_power(self, on: bool) -> None:
        await self._send(await self._ensure_connected(), power_frame(on))

    async def set_brightness(self, level: int) -> None:
        await self._send(await self._ensure_connected(), brightness_frame(level))

    async def close(self) -> None:
        reconnect, self._reconnect = self._reconnect, None
        if reconnect is not None and not reconnect.done():
            reconnect.cancel()
            try:
                await reconnect
            except asyncio.CancelledError:
                pass
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except (BleakError, OSError) as exc:
            LOGGER.warning("Disconnect from %s failed: %s", self.address, exc)
        else:
            LOGGER.info("Disconnected from strip %s", self.address)
