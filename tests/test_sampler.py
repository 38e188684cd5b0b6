from __future__ import annotations

import asyncio

import pytest
from conftest import FakeFrameSource, uniform_frame

from stripsync.core.config import Settings
from stripsync.core.errors import SourceUnavailableError
from stripsync.core.model import ColorSample
from stripsync.core.sampler import VisualSampler, average_color, sample_stride


def test_stride_targets_about_a_thousand_pixels() -> None:
    total = 1920 * 1080 * 4
    stride = sample_stride(total)
    assert stride % 4 == 0
    assert 1000 <= len(range(0, total, stride)) <= 1001


def test_stride_never_drops_below_one_pixel() -> None:
    assert sample_stride(400) == 4
    assert sample_stride(0) == 4


@pytest.mark.parametrize("size", [(40, 25), (1001, 1), (640, 480), (1920, 1080), (333, 7)])
def test_uniform_frame_averages_to_its_color(size: tuple[int, int]) -> None:
    frame = uniform_frame(*size, (10, 20, 30))
    assert average_color(frame.data) == ColorSample(10, 20, 30)


def test_bgra_layout_is_reordered() -> None:
    frame = uniform_frame(100, 100, (10, 20, 30), layout="BGRA")
    assert average_color(frame.data, layout="BGRA") == ColorSample(10, 20, 30)


def test_average_uses_floor_division() -> None:
    data = bytes([0, 0, 0, 255, 1, 1, 3, 255])
    assert average_color(data) == ColorSample(0, 0, 1)


def test_empty_frame_produces_no_sample() -> None:
    assert average_color(b"") is None


def test_unknown_layout_rejected() -> None:
    with pytest.raises(ValueError):
        average_color(b"\x00" * 8, layout="ARGB")


def test_loop_emits_samples_only_for_new_frames() -> None:
    red = uniform_frame(50, 50, (255, 0, 0))
    blue = uniform_frame(50, 50, (0, 0, 255))
    source = FakeFrameSource([red, None, blue])
    samples: list[ColorSample] = []

    async def scenario() -> None:
        sampler = VisualSampler(samples.append, Settings(sample_rate_hz=100))
        await sampler.start(source)
        assert sampler.running
        while source.reads < 3:
            await asyncio.sleep(0.01)
        await sampler.stop()
        assert not sampler.running
        await sampler.stop()

    asyncio.run(scenario())

    assert samples[:2] == [ColorSample(255, 0, 0), ColorSample(0, 0, 255)]
    assert set(samples) == {ColorSample(255, 0, 0), ColorSample(0, 0, 255)}
    assert source.close_calls == 1
    assert not source.acquired


def test_failed_start_releases_partially_acquired_source() -> None:
    source = FakeFrameSource([None], fail_open=True)

    async def scenario() -> None:
        sampler = VisualSampler(lambda sample: None)
        with pytest.raises(SourceUnavailableError):
            await sampler.start(source)
        assert not sampler.running
        await sampler.stop()

    asyncio.run(scenario())

    assert not source.acquired
    assert source.close_calls == 1


def test_source_failure_ends_loop_and_reaches_caller() -> None:
    source = FakeFrameSource([uniform_frame(40, 25, (1, 2, 3))], fail_after=2)
    samples: list[ColorSample] = []

    async def scenario() -> None:
        sampler = VisualSampler(samples.append, Settings(sample_rate_hz=100))
        await sampler.start(source)
        with pytest.raises(SourceUnavailableError):
            await sampler.wait()
        assert not sampler.running

    asyncio.run(scenario())

    assert samples == [ColorSample(1, 2, 3), ColorSample(1, 2, 3)]
    assert source.close_calls == 1


def test_source_failure_is_logged_without_a_waiter(caplog: pytest.LogCaptureFixture) -> None:
    source = FakeFrameSource([uniform_frame(40, 25, (1, 2, 3))], fail_after=1)

    async def scenario() -> VisualSampler:
        sampler = VisualSampler(lambda sample: None, Settings(sample_rate_hz=100))
        await sampler.start(source)
        await asyncio.sleep(0.1)
        assert not sampler.running
        assert "capture track ended" in caplog.text
        await sampler.stop()
        return sampler

    with caplog.at_level("ERROR", logger="stripsync.core.sampler"):
        sampler = asyncio.run(scenario())

    assert isinstance(sampler.error, SourceUnavailableError)
    assert [r.levelname for r in caplog.records if r.name == "stripsync.core.sampler"] == ["ERROR"]
    assert source.close_calls == 1


def test_start_twice_is_rejected() -> None:
    async def scenario() -> None:
        sampler = VisualSampler(lambda sample: None, Settings(sample_rate_hz=100))
        await sampler.start(FakeFrameSource([None]))
        try:
            with pytest.raises(RuntimeError):
                await sampler.start(FakeFrameSource([None]))
        finally:
            await sampler.stop()

    asyncio.run(scenario())
