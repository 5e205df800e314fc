"""Continuous speech-to-text capture powered by ``speech_recognition``."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

from voice_chat.events import Subscription
from voice_chat.voice.interfaces import CaptureHandle
from voice_chat.voice.recognition import RecognitionErrorKind, RecognitionUnavailable

_RESULT, _END, _ERROR = range(3)

_Listeners = tuple[Callable[[str, bool], None], Callable[[], None], Callable[[str, str], None]]


def _import_speech_recognition():
    try:
        import speech_recognition as sr
    except ImportError as exc:  # pragma: no cover - import guard
        raise RuntimeError(
            "Voice STT backend unavailable. Install extras with: pip install 'voice-chat[voice]'"
        ) from exc
    return sr


class SpeechRecognitionCapture(CaptureHandle):
    """Background microphone listener that reports each phrase as one final result."""

    def __init__(
        self,
        language: str,
        *,
        phrase_time_limit: float | None = 10.0,
        sample_rate: int = 16_000,
        chunk_size: int = 1024,
        logger: logging.Logger | None = None,
    ) -> None:
        self._sr = _import_speech_recognition()
        self.language = language
        self._phrase_time_limit = phrase_time_limit
        self._sample_rate = sample_rate
        self._chunk_size = chunk_size
        self._logger = logger or logging.getLogger("voice_chat.recognition.speech_recognition")
        self._recognizer = self._sr.Recognizer()
        self._recognizer.dynamic_energy_threshold = True
        self._listeners: list[_Listeners] = []
        self._stopper: Callable[..., None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        # Events tagged with an older capture id belong to an aborted capture and are dropped.
        self._capture_id = 0

    def subscribe(
        self,
        on_result: Callable[[str, bool], None],
        on_end: Callable[[], None],
        on_error: Callable[[str, str], None],
    ) -> Subscription:
        entry = (on_result, on_end, on_error)
        self._listeners.append(entry)

        def _detach() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return Subscription(_detach)

    def start(self) -> None:
        if self._stopper is not None:
            return
        self._loop = asyncio.get_running_loop()
        capture_id = self._capture_id + 1

        def _on_phrase(recognizer, audio) -> None:
            self._on_phrase(capture_id, recognizer, audio)

        try:
            microphone = self._sr.Microphone(sample_rate=self._sample_rate, chunk_size=self._chunk_size)
            with microphone:
                pass
            self._stopper = self._recognizer.listen_in_background(
                microphone,
                _on_phrase,
                phrase_time_limit=self._phrase_time_limit,
            )
        except (OSError, AttributeError) as exc:
            raise RecognitionUnavailable(f"Unable to open microphone: {exc}") from exc
        self._capture_id = capture_id

    def stop(self) -> None:
        stopper, self._stopper = self._stopper, None
        if stopper is None:
            return
        capture_id = self._capture_id

        def _join() -> None:
            stopper(wait_for_stop=True)
            self._dispatch(capture_id, _END)

        threading.Thread(target=_join, name="speech-recognition-stop", daemon=True).start()

    def abort(self) -> None:
        stopper, self._stopper = self._stopper, None
        self._capture_id += 1
        if stopper is not None:
            stopper(wait_for_stop=False)

    def _on_phrase(self, capture_id: int, recognizer, audio) -> None:
        try:
            text = recognizer.recognize_google(audio, language=self.language)
        except self._sr.UnknownValueError:
            self._dispatch(capture_id, _ERROR, RecognitionErrorKind.NO_SPEECH.value, "No speech recognized")
            return
        except self._sr.RequestError as exc:
            self._dispatch(capture_id, _ERROR, RecognitionErrorKind.NETWORK.value, str(exc))
            return
        if isinstance(text, str):
            self._dispatch(capture_id, _RESULT, text, True)

    def _dispatch(self, capture_id: int, slot: int, *args) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._deliver, capture_id, slot, args)

    def _deliver(self, capture_id: int, slot: int, args: tuple) -> None:
        if capture_id != self._capture_id:
            return
        for listeners in list(self._listeners):
            listeners[slot](*args)


class SpeechRecognitionBackend:
    """Builds ``speech_recognition`` capture handles bound to a language tag."""

    def __init__(
        self,
        *,
        phrase_time_limit: float | None = 10.0,
        sample_rate: int = 16_000,
        chunk_size: int = 1024,
    ) -> None:
        _import_speech_recognition()
        self._phrase_time_limit = phrase_time_limit
        self._sample_rate = sample_rate
        self._chunk_size = chunk_size

    def create(self, language: str) -> SpeechRecognitionCapture:
        return SpeechRecognitionCapture(
            language,
            phrase_time_limit=self._phrase_time_limit,
            sample_rate=self._sample_rate,
            chunk_size=self._chunk_size,
        )
