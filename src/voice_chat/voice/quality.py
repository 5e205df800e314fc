"""Live microphone signal-strength sampling for listening feedback."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import numpy as np

from voice_chat.events import Signal
from voice_chat.voice.interfaces import MicrophoneSource, MicrophoneStream

_MIN_DECIBELS = -100.0
_MAX_DECIBELS = -30.0


class DeviceCleanupFailure(RuntimeError):
    """Raised by a microphone stream that could not be released."""


class FrameClock:
    """Paces a loop at the display refresh cadence using absolute deadlines."""

    def __init__(self, frame_rate_hz: float = 60.0) -> None:
        if frame_rate_hz <= 0:
            raise ValueError("frame_rate_hz must be positive")
        self._interval = 1.0 / frame_rate_hz
        self._deadline: float | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def reset(self) -> None:
        self._deadline = None

    async def next_frame(self) -> None:
        now = asyncio.get_running_loop().time()
        # Deadlines that fell more than a frame behind are dropped rather than replayed.
        if self._deadline is None or self._deadline < now - self._interval:
            self._deadline = now
        self._deadline += self._interval
        await asyncio.sleep(max(0.0, self._deadline - now))


class FrequencyAnalyzer:
    """Byte-scaled magnitude spectrum over the latest microphone samples."""

    def __init__(self, stream: MicrophoneStream, fft_size: int = 1024, smoothing: float = 0.8) -> None:
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        self._stream = stream
        self._fft_size = fft_size
        self._smoothing = min(1.0, max(0.0, smoothing))
        self._window = np.hanning(fft_size)
        self._previous = np.zeros(fft_size // 2)

    @property
    def bin_count(self) -> int:
        return self._fft_size // 2

    def byte_frequency_data(self) -> np.ndarray:
        samples = np.asarray(self._stream.read_latest(self._fft_size), dtype=np.float64).ravel()
        if samples.size < self._fft_size:
            samples = np.concatenate([np.zeros(self._fft_size - samples.size), samples])
        else:
            samples = samples[-self._fft_size :]

        magnitudes = np.abs(np.fft.rfft(samples * self._window))[: self.bin_count] / self._fft_size
        smoothed = self._smoothing * self._previous + (1.0 - self._smoothing) * magnitudes
        self._previous = smoothed

        decibels = 20.0 * np.log10(np.maximum(smoothed, 1e-12))
        scaled = (decibels - _MIN_DECIBELS) * (255.0 / (_MAX_DECIBELS - _MIN_DECIBELS))
        return np.clip(np.floor(scaled), 0.0, 255.0)


def normalize_quality(bins: np.ndarray, reference_ceiling: float) -> float:
    """Mean bin magnitude divided by ``reference_ceiling``, clamped to [0, 1]."""
    if bins.size == 0 or reference_ceiling <= 0:
        return 0.0
    return float(min(1.0, max(0.0, float(np.mean(bins)) / reference_ceiling)))


class AudioQualitySampler:
    """Samples microphone loudness once per frame while the session is active."""

    def __init__(
        self,
        microphone: MicrophoneSource,
        *,
        is_active: Callable[[], bool],
        frame_clock: FrameClock | None = None,
        reference_ceiling: float = 128.0,
        fft_size: int = 1024,
        cleanup_retries: int = 1,
        cleanup_retry_delay_seconds: float = 0.5,
        logger: logging.Logger | None = None,
    ) -> None:
        self._microphone = microphone
        self._is_active = is_active
        self._clock = frame_clock or FrameClock()
        self._reference_ceiling = reference_ceiling
        self._fft_size = fft_size
        self._cleanup_retries = cleanup_retries
        self._cleanup_retry_delay_seconds = cleanup_retry_delay_seconds
        self._logger = logger or logging.getLogger("voice_chat.quality")

        self._quality = 0.0
        self._wanted = False
        self._acquiring = False
        self._stream: MicrophoneStream | None = None
        self._analyzer: FrequencyAnalyzer | None = None
        self._task: asyncio.Task[None] | None = None
        self._retry_tasks: set[asyncio.Task[None]] = set()

        self.updated: Signal[float] = Signal("quality_updated", self._logger)

    @property
    def quality(self) -> float:
        return self._quality

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def holds_stream(self) -> bool:
        return self._stream is not None

    async def start(self) -> None:
        """Acquire the microphone and begin the per-frame sampling loop."""
        if not self._is_active():
            return
        self._wanted = True
        if self._acquiring or self.running or self._stream is not None:
            return

        self._acquiring = True
        try:
            stream = await self._microphone.acquire()
        except Exception as exc:  # noqa: BLE001 - quality feedback is optional.
            self._logger.warning(
                "microphone_unavailable",
                extra={"error": f"{type(exc).__name__}: {exc}"},
            )
            return
        finally:
            self._acquiring = False

        if not self._wanted or not self._is_active():
            self._logger.info("microphone_released_unused")
            await self._close_stream(stream)
            return

        self._stream = stream
        self._analyzer = FrequencyAnalyzer(stream, fft_size=self._fft_size)
        self._clock.reset()
        self._task = asyncio.create_task(self._sample_loop(stream), name="audio-quality-sampler")
        self._logger.info("quality_sampling_started", extra={"sample_rate": stream.sample_rate})

    async def stop(self) -> None:
        """Stop sampling and release the microphone; safe to call repeatedly."""
        self._wanted = False
        task, self._task = self._task, None
        stream = self._detach()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if stream is not None:
            await asyncio.shield(self._close_stream(stream))

    def sample_once(self) -> float:
        """Measure one frame and publish it; returns the new quality value."""
        if self._analyzer is None:
            return 0.0
        self._publish(normalize_quality(self._analyzer.byte_frequency_data(), self._reference_ceiling))
        return self._quality

    async def _sample_loop(self, stream: MicrophoneStream) -> None:
        try:
            while self._is_active():
                self.sample_once()
                await self._clock.next_frame()
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            self._logger.exception("quality_sampling_failed")
        self._logger.info("quality_sampling_finished")
        # stop() or a newer start() may already own the sampler state.
        if self._stream is not stream:
            return
        self._task = None
        self._detach()
        await asyncio.shield(self._close_stream(stream))

    def _detach(self) -> MicrophoneStream | None:
        stream, self._stream = self._stream, None
        self._analyzer = None
        if self._quality != 0.0:
            self._publish(0.0)
        return stream

    async def _close_stream(self, stream: MicrophoneStream, attempt: int = 1) -> None:
        try:
            await stream.close()
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "microphone_release_failed",
                extra={"attempt": attempt, "error": f"{type(exc).__name__}: {exc}"},
            )
            if attempt <= self._cleanup_retries:
                retry = asyncio.create_task(self._retry_close(stream, attempt + 1))
                self._retry_tasks.add(retry)
                retry.add_done_callback(self._retry_tasks.discard)
            return
        self._logger.info("microphone_released", extra={"attempt": attempt})

    async def _retry_close(self, stream: MicrophoneStream, attempt: int) -> None:
        await asyncio.sleep(self._cleanup_retry_delay_seconds)
        await self._close_stream(stream, attempt)

    def _publish(self, value: float) -> None:
        self._quality = value
        self.updated.emit(value)
