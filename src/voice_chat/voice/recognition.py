"""Continuous speech capture as an explicit Idle/Listening/Stopping state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from voice_chat.events import Signal, Subscription
from voice_chat.models import RecognitionState
from voice_chat.voice.interfaces import CaptureBackend, CaptureHandle


class RecognitionUnavailable(RuntimeError):
    """Raised when the microphone or recognition service cannot be used."""


class RecognitionStateError(RuntimeError):
    """Raised when an operation is called in a state that does not allow it."""


class RecognitionErrorKind(str, Enum):
    NOT_ALLOWED = "not-allowed"
    SERVICE_NOT_ALLOWED = "service-not-allowed"
    NO_SPEECH = "no-speech"
    NETWORK = "network"
    AUDIO_CAPTURE = "audio-capture"
    ABORTED = "aborted"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "RecognitionErrorKind":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


_FATAL_ERRORS = frozenset({RecognitionErrorKind.NOT_ALLOWED, RecognitionErrorKind.SERVICE_NOT_ALLOWED})


@dataclass(frozen=True, slots=True)
class RecognitionEnded:
    """Engine returned to Idle on its own or after acknowledging ``stop()``."""

    requested: bool
    error: RecognitionErrorKind | None = None


class RecognitionEngine:
    """Owns one capture handle at a time and reports finalized utterances."""

    def __init__(
        self,
        backend: CaptureBackend,
        *,
        language: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._logger = logger or logging.getLogger("voice_chat.recognition")
        self._state = RecognitionState.IDLE
        self._handle: CaptureHandle | None = None
        self._handle_subscription: Subscription | None = None
        self._closed = False

        self.recognized: Signal[str] = Signal("recognized", self._logger)
        self.ended: Signal[RecognitionEnded] = Signal("ended", self._logger)

        if language is not None:
            self.configure(language)

    @property
    def state(self) -> RecognitionState:
        return self._state

    @property
    def language(self) -> str | None:
        return self._handle.language if self._handle else None

    @property
    def is_listening(self) -> bool:
        return self._state == RecognitionState.LISTENING

    def configure(self, language: str) -> None:
        """Rebuild the capture handle for ``language``; only legal while Idle."""
        if self._closed:
            raise RecognitionStateError("Recognition engine is closed")
        if self._state != RecognitionState.IDLE:
            raise RecognitionStateError(f"configure() requires idle state, engine is {self._state.value}")

        self._release_handle()
        handle = self._backend.create(language)
        self._handle_subscription = handle.subscribe(
            on_result=self._handle_result,
            on_end=self._handle_end,
            on_error=self._handle_error,
        )
        self._handle = handle
        self._logger.info("recognition_configured", extra={"language": language})

    def start(self) -> None:
        """Idle -> Listening. No-op when already Listening or Stopping."""
        if self._state != RecognitionState.IDLE:
            return
        if self._handle is None:
            raise RecognitionStateError("start() called before configure()")

        try:
            self._handle.start()
        except RecognitionUnavailable:
            self._logger.warning("recognition_unavailable", extra={"language": self._handle.language})
            raise
        except Exception as exc:  # noqa: BLE001 - any device failure means capture is unavailable.
            self._logger.warning(
                "recognition_unavailable",
                extra={"language": self._handle.language, "error": f"{type(exc).__name__}: {exc}"},
            )
            raise RecognitionUnavailable(str(exc) or type(exc).__name__) from exc

        self._state = RecognitionState.LISTENING
        self._logger.info("recognition_started", extra={"language": self._handle.language})

    def stop(self) -> None:
        """Listening -> Stopping; Idle arrives with the backend's end signal."""
        if self._state != RecognitionState.LISTENING or self._handle is None:
            return
        self._state = RecognitionState.STOPPING
        self._logger.info("recognition_stopping")
        self._handle.stop()

    def abort(self) -> None:
        """Force Idle immediately without waiting for the end acknowledgment."""
        if self._state == RecognitionState.IDLE:
            return
        if self._handle is not None:
            self._handle.abort()
        self._state = RecognitionState.IDLE
        self._logger.info("recognition_aborted")

    def close(self) -> None:
        self.abort()
        self._release_handle()
        self.recognized.clear()
        self.ended.clear()
        self._closed = True

    def _release_handle(self) -> None:
        if self._handle_subscription is not None:
            self._handle_subscription.cancel()
            self._handle_subscription = None
        if self._handle is not None:
            self._handle.abort()
            self._handle = None

    def _handle_result(self, text: str, is_final: bool) -> None:
        if not is_final or self._state == RecognitionState.IDLE:
            return
        transcript = text.strip()
        if not transcript:
            return
        self._logger.info("utterance_recognized", extra={"chars": len(transcript)})
        self.recognized.emit(transcript)

    def _handle_end(self) -> None:
        if self._state == RecognitionState.IDLE:
            return
        requested = self._state == RecognitionState.STOPPING
        self._state = RecognitionState.IDLE
        self._logger.info("recognition_ended", extra={"requested": requested})
        self.ended.emit(RecognitionEnded(requested=requested))

    def _handle_error(self, code: str, message: str) -> None:
        kind = RecognitionErrorKind.parse(code)
        if kind not in _FATAL_ERRORS:
            self._logger.warning("recognition_error", extra={"kind": kind.value, "detail": message})
            return

        self._logger.error("recognition_denied", extra={"kind": kind.value, "detail": message})
        if self._state == RecognitionState.IDLE:
            return
        requested = self._state == RecognitionState.STOPPING
        if self._handle is not None:
            self._handle.abort()
        self._state = RecognitionState.IDLE
        self.ended.emit(RecognitionEnded(requested=requested, error=kind))
