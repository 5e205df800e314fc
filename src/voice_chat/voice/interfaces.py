"""Contracts for speech capture, microphone streams and speech synthesis."""

from __future__ import annotations

from typing import Callable, Protocol

import numpy as np

from voice_chat.events import Subscription
from voice_chat.models import SynthesisRequest


class CaptureHandle(Protocol):
    """One continuous recognition session bound to a single language."""

    language: str

    def start(self) -> None:
        """Begin capturing; raise ``RecognitionUnavailable`` when the device or permission is denied."""

    def stop(self) -> None:
        """Request a graceful stop; the end signal arrives later through ``on_end``."""

    def abort(self) -> None:
        """Tear capture down immediately; no end signal follows an abort."""

    def subscribe(
        self,
        on_result: Callable[[str, bool], None],
        on_end: Callable[[], None],
        on_error: Callable[[str, str], None],
    ) -> Subscription:
        """Attach result/end/error listeners; the returned subscription detaches all of them."""


class CaptureBackend(Protocol):
    """Factory for language-bound capture handles."""

    def create(self, language: str) -> CaptureHandle:
        """Build a new, idle capture handle for ``language``."""


class MicrophoneStream(Protocol):
    """Exclusive handle on a live microphone stream."""

    sample_rate: int

    def read_latest(self, frames: int) -> np.ndarray:
        """Return up to ``frames`` most recent mono float samples."""

    async def close(self) -> None:
        """Release the device; may raise ``DeviceCleanupFailure``."""


class MicrophoneSource(Protocol):
    """Grants exclusive microphone streams."""

    async def acquire(self) -> MicrophoneStream:
        """Open the device, suspending until the OS grants access."""


class SpeechOutput(Protocol):
    """Speaker output able to render synthesis requests."""

    def speak(self, request: SynthesisRequest, on_done: Callable[[SynthesisRequest, str | None], None]) -> None:
        """Play ``request`` asynchronously and call ``on_done(request, error)`` when it finishes."""

    def cancel_all(self) -> None:
        """Stop the current utterance and drop anything queued."""
