"""Microphone streams backed by ``sounddevice`` (PortAudio)."""

from __future__ import annotations

import asyncio
import threading

import numpy as np

from voice_chat.voice.interfaces import MicrophoneSource, MicrophoneStream
from voice_chat.voice.quality import DeviceCleanupFailure


class SoundDeviceMicrophoneStream(MicrophoneStream):
    """Mono input stream keeping a rolling buffer of the latest samples."""

    def __init__(self, sd, *, sample_rate: int, device: int | str | None, buffer_frames: int) -> None:
        self.sample_rate = sample_rate
        self._buffer = np.zeros(buffer_frames, dtype=np.float32)
        self._lock = threading.Lock()
        self._stream = sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            device=device,
            callback=self._callback,
        )
        self._stream.start()

    def read_latest(self, frames: int) -> np.ndarray:
        with self._lock:
            return self._buffer[-frames:].copy()

    async def close(self) -> None:
        try:
            await asyncio.to_thread(self._close)
        except Exception as exc:  # noqa: BLE001
            raise DeviceCleanupFailure(f"{type(exc).__name__}: {exc}") from exc

    def _close(self) -> None:
        self._stream.stop()
        self._stream.close()

    def _callback(self, indata, frames, time_info, status) -> None:
        mono = np.asarray(indata[:, 0], dtype=np.float32)
        with self._lock:
            self._buffer = np.concatenate([self._buffer, mono])[-self._buffer.size :]


class SoundDeviceMicrophone(MicrophoneSource):
    """Opens the default (or a named) input device on demand."""

    def __init__(self, *, sample_rate: int = 16_000, device: int | str | None = None, buffer_seconds: float = 0.5) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "Microphone backend unavailable. Install extras with: pip install 'voice-chat[voice]'"
            ) from exc
        self._sd = sd
        self._sample_rate = sample_rate
        self._device = device
        self._buffer_frames = max(1, int(sample_rate * buffer_seconds))

    async def acquire(self) -> SoundDeviceMicrophoneStream:
        return await asyncio.to_thread(
            SoundDeviceMicrophoneStream,
            self._sd,
            sample_rate=self._sample_rate,
            device=self._device,
            buffer_frames=self._buffer_frames,
        )
