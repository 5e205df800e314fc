from __future__ import annotations

import asyncio
import logging

import numpy as np
import pytest

from voice_chat.voice.quality import (
    AudioQualitySampler,
    DeviceCleanupFailure,
    FrameClock,
    FrequencyAnalyzer,
    normalize_quality,
)


class FakeStream:
    sample_rate = 16_000

    def __init__(self, samples: np.ndarray | None = None, close_failures: int = 0) -> None:
        self.samples = np.zeros(2048) if samples is None else samples
        self.close_failures = close_failures
        self.close_attempts = 0
        self.closed = False

    def read_latest(self, frames: int) -> np.ndarray:
        return self.samples[-frames:]

    async def close(self) -> None:
        self.close_attempts += 1
        if self.close_failures > 0:
            self.close_failures -= 1
            raise DeviceCleanupFailure("device busy")
        self.closed = True


class FakeMicrophone:
    def __init__(self, stream: FakeStream | None = None, gate: asyncio.Event | None = None) -> None:
        self.stream = stream or FakeStream()
        self.gate = gate
        self.acquired = 0

    async def acquire(self) -> FakeStream:
        self.acquired += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.stream


class FakeFrameClock:
    def __init__(self) -> None:
        self.frames = 0

    def reset(self) -> None:
        self.frames = 0

    async def next_frame(self) -> None:
        self.frames += 1
        await asyncio.sleep(0.001)


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0.001)


def _noise(amplitude: float = 0.5) -> np.ndarray:
    return np.random.default_rng(3).uniform(-amplitude, amplitude, 2048)


def test_normalize_quality_divides_by_ceiling_and_clamps() -> None:
    assert normalize_quality(np.full(8, 64.0), 128.0) == pytest.approx(0.5)
    assert normalize_quality(np.full(8, 255.0), 128.0) == 1.0
    assert normalize_quality(np.array([]), 128.0) == 0.0


def test_frequency_analyzer_maps_silence_to_zero_and_noise_to_signal() -> None:
    silent = FrequencyAnalyzer(FakeStream(np.zeros(2048)), fft_size=1024, smoothing=0.0)
    noisy = FrequencyAnalyzer(FakeStream(_noise()), fft_size=1024, smoothing=0.0)

    silent_bins = silent.byte_frequency_data()
    noisy_bins = noisy.byte_frequency_data()

    assert silent_bins.shape == (512,)
    assert silent_bins.max() == 0.0
    assert normalize_quality(noisy_bins, 128.0) > 0.5
    assert noisy_bins.max() <= 255.0


def test_frequency_analyzer_pads_short_reads() -> None:
    analyzer = FrequencyAnalyzer(FakeStream(np.zeros(10)), fft_size=256)

    assert analyzer.byte_frequency_data().shape == (128,)


def test_frequency_analyzer_rejects_bad_fft_size() -> None:
    with pytest.raises(ValueError):
        FrequencyAnalyzer(FakeStream(), fft_size=1000)


def test_sampler_publishes_quality_while_active_and_stop_releases() -> None:
    async def _run() -> tuple[float, float, bool, int, bool]:
        active = True
        stream = FakeStream(_noise())
        sampler = AudioQualitySampler(
            FakeMicrophone(stream),
            is_active=lambda: active,
            frame_clock=FakeFrameClock(),
        )
        await sampler.start()
        await _settle()
        sampled = sampler.quality

        await sampler.stop()
        await sampler.stop()
        return sampled, sampler.quality, stream.closed, stream.close_attempts, sampler.running

    sampled, after_stop, closed, attempts, running = asyncio.run(_run())

    assert sampled > 0.0
    assert after_stop == 0.0
    assert closed is True
    assert attempts == 1
    assert running is False


def test_sampler_loop_ends_itself_when_session_goes_inactive() -> None:
    async def _run() -> tuple[bool, bool, float]:
        state = {"active": True}
        stream = FakeStream(_noise())
        sampler = AudioQualitySampler(
            FakeMicrophone(stream),
            is_active=lambda: state["active"],
            frame_clock=FakeFrameClock(),
        )
        await sampler.start()
        await _settle()
        state["active"] = False
        await _settle()
        return sampler.running, stream.closed, sampler.quality

    running, closed, quality = asyncio.run(_run())

    assert running is False
    assert closed is True
    assert quality == 0.0


def test_concurrent_starts_acquire_the_microphone_once() -> None:
    async def _run() -> int:
        gate = asyncio.Event()
        microphone = FakeMicrophone(gate=gate)
        sampler = AudioQualitySampler(microphone, is_active=lambda: True, frame_clock=FakeFrameClock())

        first = asyncio.create_task(sampler.start())
        second = asyncio.create_task(sampler.start())
        await _settle(2)
        gate.set()
        await asyncio.gather(first, second)
        await sampler.start()
        await sampler.stop()
        return microphone.acquired

    assert asyncio.run(_run()) == 1


def test_stop_during_acquisition_releases_granted_stream() -> None:
    async def _run() -> tuple[bool, bool]:
        gate = asyncio.Event()
        stream = FakeStream()
        sampler = AudioQualitySampler(FakeMicrophone(stream, gate=gate), is_active=lambda: True)

        pending = asyncio.create_task(sampler.start())
        await _settle(2)
        await sampler.stop()
        gate.set()
        await pending
        return stream.closed, sampler.running

    closed, running = asyncio.run(_run())

    assert closed is True
    assert running is False


def test_stop_without_start_is_safe() -> None:
    async def _run() -> float:
        sampler = AudioQualitySampler(FakeMicrophone(), is_active=lambda: False)
        await sampler.stop()
        await sampler.stop()
        return sampler.quality

    assert asyncio.run(_run()) == 0.0


def test_close_failure_is_logged_and_retried(caplog) -> None:
    async def _run() -> tuple[int, bool]:
        stream = FakeStream(close_failures=1)
        sampler = AudioQualitySampler(
            FakeMicrophone(stream),
            is_active=lambda: True,
            frame_clock=FakeFrameClock(),
            cleanup_retry_delay_seconds=0,
        )
        await sampler.start()
        await sampler.stop()
        await _settle()
        return stream.close_attempts, stream.closed

    with caplog.at_level(logging.WARNING, logger="voice_chat.quality"):
        attempts, closed = asyncio.run(_run())

    assert attempts == 2
    assert closed is True
    assert "microphone_release_failed" in caplog.messages


def test_start_is_skipped_when_session_inactive() -> None:
    async def _run() -> int:
        microphone = FakeMicrophone()
        sampler = AudioQualitySampler(microphone, is_active=lambda: False)
        await sampler.start()
        return microphone.acquired

    assert asyncio.run(_run()) == 0


def test_frame_clock_paces_frames() -> None:
    async def _run() -> int:
        clock = FrameClock(frame_rate_hz=500.0)
        frames = 0
        for _ in range(5):
            await clock.next_frame()
            frames += 1
        return frames

    assert asyncio.run(asyncio.wait_for(_run(), timeout=1)) == 5
    with pytest.raises(ValueError):
        FrameClock(frame_rate_hz=0)


class SlowCloseStream(FakeStream):
    def __init__(self, samples: np.ndarray, gate: asyncio.Event) -> None:
        super().__init__(samples)
        self.gate = gate

    async def close(self) -> None:
        await self.gate.wait()
        await super().close()


def test_restart_while_previous_stream_is_closing_resumes_sampling() -> None:
    async def _run() -> tuple[bool, bool, int, float]:
        state = {"active": True}
        gate = asyncio.Event()
        microphone = FakeMicrophone(SlowCloseStream(_noise(), gate))
        sampler = AudioQualitySampler(microphone, is_active=lambda: state["active"], frame_clock=FakeFrameClock())
        await sampler.start()
        await _settle()
        state["active"] = False
        await _settle()
        state["active"] = True
        await sampler.start()
        gate.set()
        await _settle()
        observed = (sampler.running, sampler.holds_stream, microphone.acquired, sampler.quality)
        await sampler.stop()
        return observed

    running, holds, acquired, quality = asyncio.run(_run())

    assert running is True
    assert holds is True
    assert acquired == 2
    assert quality > 0.0


def test_stop_followed_by_start_before_stop_finishes_keeps_new_stream() -> None:
    async def _run() -> tuple[bool, bool, int]:
        stream = FakeStream(_noise())
        microphone = FakeMicrophone(stream)
        sampler = AudioQualitySampler(microphone, is_active=lambda: True, frame_clock=FakeFrameClock())
        await sampler.start()
        await _settle()
        stopping = asyncio.create_task(sampler.stop())
        await asyncio.sleep(0)
        await sampler.start()
        await stopping
        observed = (sampler.running, sampler.holds_stream, microphone.acquired)
        await sampler.stop()
        return observed

    running, holds, acquired = asyncio.run(_run())

    assert running is True
    assert holds is True
    assert acquired == 2
