"""Speech output backend powered by ``pyttsx3``."""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import Callable

from voice_chat.models import SynthesisRequest
from voice_chat.voice.interfaces import SpeechOutput

_DoneCallback = Callable[[SynthesisRequest, str | None], None]


class Pyttsx3SpeechOutput(SpeechOutput):
    """Speaker playback using a pyttsx3 engine owned by one worker thread."""

    def __init__(
        self,
        *,
        voice_id: str | None = None,
        rate: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        try:
            import pyttsx3
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "Audio output backend unavailable. Install extras with: pip install 'voice-chat[voice]'"
            ) from exc

        self._pyttsx3 = pyttsx3
        self._voice_id = voice_id
        self._rate = rate
        self._logger = logger or logging.getLogger("voice_chat.synthesis.pyttsx3")
        self._queue: queue.Queue[tuple[int, SynthesisRequest, _DoneCallback] | None] = queue.Queue()
        self._generation = 0
        self._engine = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._voices_by_language: dict[str, str | None] = {}

    def speak(self, request: SynthesisRequest, on_done: _DoneCallback) -> None:
        self._loop = asyncio.get_running_loop()
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name="pyttsx3-output", daemon=True)
            self._thread.start()
        self._queue.put((self._generation, request, on_done))

    def cancel_all(self) -> None:
        self._generation += 1
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        engine = self._engine
        if engine is not None:
            engine.stop()

    def close(self) -> None:
        self.cancel_all()
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(None)

    def _run(self) -> None:
        engine = self._pyttsx3.init()
        if self._voice_id:
            engine.setProperty("voice", self._voice_id)
        if self._rate is not None:
            engine.setProperty("rate", self._rate)
        self._engine = engine

        while True:
            item = self._queue.get()
            if item is None:
                break
            generation, request, on_done = item
            if generation != self._generation:
                continue

            error: str | None = None
            try:
                engine.setProperty("volume", max(0.0, min(1.0, request.volume / 100.0)))
                voice = self._voice_for(engine, request.language)
                if voice:
                    engine.setProperty("voice", voice)
                engine.say(request.text)
                engine.runAndWait()
            except Exception as exc:  # noqa: BLE001 - reported through on_done.
                error = f"{type(exc).__name__}: {exc}"
            self._report(on_done, request, error)

        self._engine = None

    def _voice_for(self, engine, language: str) -> str | None:
        if self._voice_id:
            return None
        if language not in self._voices_by_language:
            self._voices_by_language[language] = _match_voice(engine.getProperty("voices") or [], language)
        return self._voices_by_language[language]

    def _report(self, on_done: _DoneCallback, request: SynthesisRequest, error: str | None) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(on_done, request, error)


def _match_voice(voices, language: str) -> str | None:
    """Pick the first installed voice whose language tags match ``language``."""
    wanted = language.lower().replace("_", "-")
    primary = wanted.split("-")[0]
    for voice in voices:
        tags = []
        for tag in getattr(voice, "languages", None) or []:
            if isinstance(tag, bytes):
                tag = tag.decode("utf-8", errors="ignore")
            # espeak prefixes language tags with a priority byte.
            tags.append(str(tag).lstrip("\x05").lower().replace("_", "-"))
        if any(tag == wanted or tag.split("-")[0] == primary for tag in tags):
            return voice.id
        voice_id = str(getattr(voice, "id", "")).lower()
        if wanted in voice_id:
            return voice.id
    return None
