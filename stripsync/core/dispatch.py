"""Single-flight admission control between intent producers and the strip."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from stripsync.core.errors import TransportError
from stripsync.core.model import (
    DispatchOutcome,
    DispatchResult,
    Intent,
    SetBrightness,
    SetColor,
    SetPower,
)
from stripsync.transports.base import Device

LOGGER = logging.getLogger(__name__)


class AdmissionController:
    """Forwards at most one color command to the device at a time.

    Color intents that arrive while a command is in flight are dropped, not
    queued. Each color write races a fixed timeout; a write that outlives the
    race keeps running in the background but no longer holds the gate. If the
    gate is somehow still held past ``stale_after_s`` the next color intent
    force-releases it.

    Power and brightness intents are not gated and go straight to the device.
    """

    def __init__(
        self,
        device: Device,
        *,
        command_timeout_s: float = 0.5,
        stale_after_s: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._device = device
        self._command_timeout_s = command_timeout_s
        self._stale_after_s = stale_after_s
        self._clock = clock
        self._in_flight = False
        self._last_dispatch = 0.0
        # Bumped on every admission and forced reset; a dispatch only frees
        # the gate if it still owns the current generation.
        self._generation = 0
        self._abandoned: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_dispatch_time(self) -> float:
        return self._last_dispatch

    async def submit(self, intent: Intent) -> DispatchResult:
        if isinstance(intent, SetColor):
            return await self._submit_color(intent)
        if isinstance(intent, SetPower):
            return await self._direct(intent, self._device.set_power(intent.on))
        if isinstance(intent, SetBrightness):
            return await self._direct(intent, self._device.set_brightness(intent.level))
        raise TypeError(f"Unsupported intent {intent!r}")

    async def _direct(self, intent: Intent, call: Awaitable[None]) -> DispatchResult:
        try:
            await call
        except TransportError as exc:
            LOGGER.error("Device rejected %s: %s", intent, exc)
            return DispatchResult(intent, DispatchOutcome.FAILED, detail=str(exc))
        return DispatchResult(intent, DispatchOutcome.SENT)

    async def _submit_color(self, intent: SetColor) -> DispatchResult:
        now = self._clock()
        forced_reset = False
        if self._in_flight and now - self._last_dispatch > self._stale_after_s:
            LOGGER.warning(
                "Color command stuck for %.0fms, forcing the dispatch gate open",
                (now - self._last_dispatch) * 1000,
            )
            self._release()
            forced_reset = True

        if self._in_flight:
            LOGGER.debug("Device busy, skipping frame %s", intent.color.hex)
            return DispatchResult(intent, DispatchOutcome.SKIPPED)

        self._in_flight = True
        self._last_dispatch = now
        self._generation += 1
        generation = self._generation
        try:
            return await self._race(intent, forced_reset)
        finally:
            if self._generation == generation:
                self._release()

    async def _race(self, intent: SetColor, forced_reset: bool) -> DispatchResult:
        color = intent.color
        call = asyncio.ensure_future(self._device.set_color(color.r, color.g, color.b))
        done, _ = await asyncio.wait({call}, timeout=self._command_timeout_s)
        if not done:
            # Stop listening; the write itself is left to finish on its own.
            self._abandoned.add(call)
            call.add_done_callback(self._discard_abandoned)
            LOGGER.warning(
                "Color command %s timed out after %.0fms",
                color.hex,
                self._command_timeout_s * 1000,
            )
            return DispatchResult(
                intent,
                DispatchOutcome.TIMED_OUT,
                detail=f"No response within {self._command_timeout_s * 1000:.0f}ms",
                forced_reset=forced_reset,
            )

        exc = call.exception()
        if exc is None:
            return DispatchResult(intent, DispatchOutcome.SENT, forced_reset=forced_reset)
        if isinstance(exc, TransportError):
            LOGGER.error("Color command %s failed: %s", color.hex, exc)
        else:
            LOGGER.error("Color command %s failed unexpectedly", color.hex, exc_info=exc)
        return DispatchResult(intent, DispatchOutcome.FAILED, detail=str(exc), forced_reset=forced_reset)

    def _discard_abandoned(self, call: asyncio.Task[None]) -> None:
        self._abandoned.discard(call)
        if call.cancelled():
            return
        exc = call.exception()
        if exc is not None:
            LOGGER.debug("Late color command result discarded: %s", exc)

    def _release(self) -> None:
        self._in_flight = False
        self._generation += 1
