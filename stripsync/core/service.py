"""Service layer used by the CLI, the public client and the HTTP ingress."""

from __future__ import annotations

import asyncio
import logging

from stripsync.core.config import Settings
from stripsync.core.dispatch import AdmissionController
from stripsync.core.model import (
    ColorSample,
    DispatchOutcome,
    DispatchResult,
    Intent,
    SetColor,
    SetPower,
)
from stripsync.core.sampler import VisualSampler
from stripsync.core.slot import LatestSlot
from stripsync.transports.base import Device, FrameSource

LOGGER = logging.getLogger(__name__)


class StripService:
    """One connected strip: admission control, push mailbox and screen sync."""

    def __init__(self, device: Device, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.device = device
        self.controller = AdmissionController(
            device,
            command_timeout_s=self.settings.command_timeout_s,
            stale_after_s=self.settings.stale_after_s,
        )
        self._mailbox: LatestSlot[SetColor] = LatestSlot()
        self._pump: asyncio.Task[None] | None = None
        self._sampler: VisualSampler | None = None
        self.last_color: ColorSample | None = None

    async def __aenter__(self) -> StripService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def syncing(self) -> bool:
        return self._sampler is not None and self._sampler.running

    @property
    def sync_error(self) -> str | None:
        """Why the last screen sync ended on its own, if it did."""
        if self._sampler is None or self._sampler.error is None:
            return None
        return str(self._sampler.error)

    async def start(self) -> None:
        if self._pump is None:
            self._pump = asyncio.create_task(self._drain_mailbox())

    async def close(self) -> None:
        await self.stop_sync()
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None
        await self.device.close()

    async def submit(self, intent: Intent, *, manual: bool = True) -> DispatchResult:
        if manual and self.syncing:
            if isinstance(intent, SetColor) or (isinstance(intent, SetPower) and not intent.on):
                LOGGER.info("Manual %s overrides screen sync", type(intent).__name__)
                await self.stop_sync()
        result = await self.controller.submit(intent)
        if result.outcome is not DispatchOutcome.SENT:
            return result
        if isinstance(intent, SetColor):
            self.last_color = intent.color
        elif isinstance(intent, SetPower) and intent.on and self.last_color is not None and not self.syncing:
            # The strip comes back on in its own default color.
            restored = await self.controller.submit(SetColor(self.last_color))
            LOGGER.debug("Restored %s after power on: %s", self.last_color.hex, restored.outcome.value)
        return result

    def push_color(self, sample: ColorSample) -> None:
        """Queue ``sample`` for the strip without waiting; older unsent samples are dropped."""
        displaced = self._mailbox.put(SetColor(sample))
        if displaced is not None:
            LOGGER.debug("Dropped unsent color %s", displaced.color.hex)

    async def _drain_mailbox(self) -> None:
        while True:
            intent = await self._mailbox.get()
            result = await self.submit(intent, manual=False)
            if not result.ok:
                LOGGER.debug("Streamed color %s not applied: %s", intent.color.hex, result.outcome.value)

    async def start_sync(self, source: FrameSource) -> None:
        await self.stop_sync()
        sampler = VisualSampler(self.push_color, self.settings)
        await sampler.start(source)
        self._sampler = sampler

    async def stop_sync(self) -> None:
        sampler, self._sampler = self._sampler, None
        if sampler is not None:
            await sampler.stop()

    async def wait_sync(self) -> None:
        """Block until screen sync ends, re-raising the error that ended it."""
        if self._sampler is not None:
            await self._sampler.wait()


async def connect_device(device: Device) -> None:
    """Connect eagerly where supported so the first command is not spent on link setup."""
    connect = getattr(device, "connect", None)
    if connect is None:
        return
    try:
        await connect()
    except BaseException:
        await device.close()
        raise
