"""Text-to-speech playback of assistant replies, one utterance at a time."""

from __future__ import annotations

import logging

from voice_chat.models import SynthesisRequest, clamp_volume
from voice_chat.voice.interfaces import SpeechOutput


class SpeechSynthesisPlayer:
    """Speaks reply text, cancelling whatever is playing before each new utterance."""

    def __init__(
        self,
        output: SpeechOutput,
        *,
        enabled: bool = True,
        volume: float = 100.0,
        max_chars: int = 500,
        logger: logging.Logger | None = None,
    ) -> None:
        self._output = output
        self._enabled = enabled
        self._volume = clamp_volume(volume)
        self._max_chars = max_chars
        self._logger = logger or logging.getLogger("voice_chat.synthesis")
        self._active: SynthesisRequest | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def active_request(self) -> SynthesisRequest | None:
        return self._active

    def speak(self, text: str, language: str, volume: float | None = None) -> SynthesisRequest | None:
        """Replace any current utterance with ``text`` when output is enabled."""
        if not self._enabled:
            return None

        normalized = " ".join(text.split())
        if not normalized:
            return None

        request = SynthesisRequest(
            text=normalized[: self._max_chars],
            language=language,
            volume=self._volume if volume is None else clamp_volume(volume),
        )
        self._output.cancel_all()
        self._active = request
        self._output.speak(request, self._on_done)
        self._logger.info(
            "synthesis_started",
            extra={"language": request.language, "volume": request.volume, "chars": len(request.text)},
        )
        return request

    def cancel(self) -> None:
        self._output.cancel_all()
        if self._active is not None:
            self._logger.info("synthesis_cancelled")
        self._active = None

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if not enabled:
            self.cancel()

    def set_volume(self, volume: float) -> None:
        """Applies to subsequent utterances; a playing one may keep its volume."""
        self._volume = clamp_volume(volume)

    def _on_done(self, request: SynthesisRequest, error: str | None) -> None:
        if error:
            self._logger.warning("synthesis_failed", extra={"error": error, "language": request.language})
        else:
            self._logger.info("synthesis_finished", extra={"language": request.language})
        if self._active is request:
            self._active = None
