"""Visual sampler: turns a frame source into a paced stream of average colors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from stripsync.core.config import Settings
from stripsync.core.model import ColorSample, Frame
from stripsync.transports.base import FrameSource

LOGGER = logging.getLogger(__name__)

_BYTES_PER_PIXEL = 4
_CHANNEL_OFFSETS = {
    "RGBA": (0, 1, 2),
    "BGRA": (2, 1, 0),
}


def sample_stride(total_bytes: int, target_pixels: int = 1000) -> int:
    """Byte stride that visits roughly ``target_pixels`` pixels, aligned to a pixel."""
    raw = total_bytes // max(1, target_pixels)
    return max(_BYTES_PER_PIXEL, raw - raw % _BYTES_PER_PIXEL)


def average_color(data: bytes, *, layout: str = "RGBA", target_pixels: int = 1000) -> ColorSample | None:
    try:
        r_off, g_off, b_off = _CHANNEL_OFFSETS[layout]
    except KeyError:
        raise ValueError(f"Unsupported pixel layout '{layout}'") from None

    usable = len(data) - len(data) % _BYTES_PER_PIXEL
    if usable == 0:
        return None
    view = memoryview(data)[:usable]
    stride = sample_stride(usable, target_pixels)
    count = len(range(0, usable, stride))
    return ColorSample(
        sum(view[r_off::stride]) // count,
        sum(view[g_off::stride]) // count,
        sum(view[b_off::stride]) // count,
    )


class VisualSampler:
    """Samples one frame per tick and hands the average color to ``sink``.

    The sink receives every sample as soon as it is computed; nothing is
    buffered here, so a slow consumer only ever sees the newest color.
    All frame source calls run on one dedicated worker thread because capture
    handles are usually bound to the thread that created them.
    """

    def __init__(self, sink: Callable[[ColorSample], None], settings: Settings | None = None) -> None:
        self._sink = sink
        self.settings = settings or Settings()
        self._source: FrameSource | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._task: asyncio.Task[None] | None = None
        self.last_sample: ColorSample | None = None
        self.error: Exception | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def process_frame(self, frame: Frame) -> ColorSample | None:
        return average_color(frame.data, layout=frame.layout, target_pixels=self.settings.sample_pixels)

    async def start(self, source: FrameSource) -> None:
        if self.running:
            raise RuntimeError("Sampler is already running")

        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stripsync-capture")
        try:
            await loop.run_in_executor(executor, source.open)
        except BaseException:
            await loop.run_in_executor(executor, source.close)
            executor.shutdown(wait=False)
            raise

        self._source = source
        self._executor = executor
        self.error = None
        self._task = asyncio.create_task(self._run(source, executor))
        LOGGER.info("Screen sampling started at %.0f Hz", self.settings.sample_rate_hz)

    async def _run(self, source: FrameSource, executor: ThreadPoolExecutor) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                frame = await loop.run_in_executor(executor, source.read)
                if frame is not None:
                    sample = self.process_frame(frame)
                    if sample is not None:
                        self.last_sample = sample
                        self._sink(sample)
                await asyncio.sleep(self.settings.sample_interval_s)
        except Exception as exc:
            self.error = exc
            LOGGER.error("Screen sampling failed: %s", exc)
            raise
        finally:
            await self._release()

    async def _release(self) -> None:
        source, executor = self._source, self._executor
        self._source = None
        self._executor = None
        if source is None or executor is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(executor, source.close)
        finally:
            executor.shutdown(wait=False)
        LOGGER.info("Screen sampling stopped")

    async def wait(self) -> None:
        """Wait for the loop to end, re-raising the error that ended it."""
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            # Already logged by the loop; kept on self.error.
            pass
        finally:
            self._task = None
            # A task cancelled before its first step never reaches its own cleanup.
            await self._release()
