"""Session orchestration for push-to-talk voice chat."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Protocol

from voice_chat.chat_log import ChatLog
from voice_chat.events import Signal, Subscription
from voice_chat.models import ChatRole, RecognitionState, Session, SessionSnapshot, clamp_volume
from voice_chat.response_client import FALLBACK_MESSAGE, GeneratedReply, ResponseFailure
from voice_chat.telemetry import Telemetry
from voice_chat.voice.interfaces import CaptureBackend, MicrophoneSource, SpeechOutput
from voice_chat.voice.quality import AudioQualitySampler, FrameClock
from voice_chat.voice.recognition import (
    RecognitionEnded,
    RecognitionEngine,
    RecognitionErrorKind,
    RecognitionUnavailable,
)
from voice_chat.voice.synthesis import SpeechSynthesisPlayer

MICROPHONE_UNAVAILABLE_MESSAGE = "Microphone or speech recognition is unavailable."
PERMISSION_REVOKED_MESSAGE = "Microphone permission was denied."


class ReplyGenerator(Protocol):
    async def generate_response(self, transcript: str, session_id: str) -> GeneratedReply: ...


class SessionController:
    """Owns the recognition lifecycle and keeps chat, speech and sampling consistent."""

    def __init__(
        self,
        *,
        capture_backend: CaptureBackend,
        microphone: MicrophoneSource,
        speech_output: SpeechOutput,
        response_client: ReplyGenerator,
        language: str = "es-ES",
        voice_enabled: bool = True,
        volume: float = 100.0,
        frame_clock: FrameClock | None = None,
        reference_ceiling: float = 128.0,
        fft_size: int = 1024,
        max_speech_chars: int = 500,
        telemetry: Telemetry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger("voice_chat.controller")
        self._telemetry = telemetry
        self._client = response_client
        self._session = Session(selected_language=language, voice_enabled=voice_enabled, volume=clamp_volume(volume))
        self._active = False
        self._last_error: str | None = None
        self._closed = False

        self._chat_log = ChatLog()
        self._recognition = RecognitionEngine(capture_backend)
        self._sampler = AudioQualitySampler(
            microphone,
            is_active=lambda: self._active,
            frame_clock=frame_clock,
            reference_ceiling=reference_ceiling,
            fft_size=fft_size,
        )
        self._player = SpeechSynthesisPlayer(
            speech_output,
            enabled=voice_enabled,
            volume=self._session.volume,
            max_chars=max_speech_chars,
        )

        self._pending: asyncio.Queue[asyncio.Task[GeneratedReply]] | None = None
        self._in_flight: set[asyncio.Task[GeneratedReply]] = set()
        self._reply_worker: asyncio.Task[None] | None = None
        self._sampler_tasks: set[asyncio.Task[None]] = set()
        self._changed: Signal[None] = Signal("session_changed", self._logger)

        self._subscriptions = [
            self._recognition.recognized.connect(self.on_recognized),
            self._recognition.ended.connect(self._on_recognition_ended),
            self._sampler.updated.connect(lambda _quality: self._notify()),
        ]

    @property
    def session(self) -> Session:
        return self._session

    @property
    def chat_log(self) -> ChatLog:
        return self._chat_log

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def recognition_state(self) -> RecognitionState:
        return self._recognition.state

    @property
    def audio_quality(self) -> float:
        return self._sampler.quality

    @property
    def last_error(self) -> str | None:
        return self._last_error

    async def start(self) -> None:
        """Bind recognition to the session language and start the reply worker."""
        if self._recognition.language is None:
            self._recognition.configure(self._session.selected_language)
        self._ensure_reply_worker()
        self._emit("session_started", {"language": self._session.selected_language})

    async def close(self) -> None:
        """Tear down recognition, sampling, speech and the reply worker together."""
        if self._closed:
            return
        await self.press_end()
        if self._sampler_tasks:
            await asyncio.gather(*self._sampler_tasks, return_exceptions=True)
        self._player.cancel()

        worker, self._reply_worker = self._reply_worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        for request in list(self._in_flight):
            request.cancel()
        self._pending = None

        for subscription in self._subscriptions:
            subscription.cancel()
        self._recognition.close()
        self._changed.clear()
        self._closed = True
        self._emit("session_closed", {"messages": len(self._chat_log)})

    async def press_start(self) -> bool:
        """Begin listening; returns whether the session is active afterwards."""
        if self._active:
            return True
        if self._recognition.language is None:
            self._recognition.configure(self._session.selected_language)
        if self._recognition.state == RecognitionState.STOPPING:
            self._recognition.abort()

        try:
            self._recognition.start()
        except RecognitionUnavailable as exc:
            self._last_error = MICROPHONE_UNAVAILABLE_MESSAGE
            self._logger.warning("press_start_failed", extra={"error": str(exc)})
            self._notify()
            return False

        self._active = True
        self._last_error = None
        self._track_sampler(self._sampler.start(), "audio-quality-start")
        self._emit("listening_started", {"language": self._session.selected_language})
        self._notify()
        return True

    async def press_end(self) -> None:
        """Stop listening; always ends inactive with the sampler released."""
        try:
            self._recognition.stop()
        except Exception:  # noqa: BLE001
            self._logger.exception("recognition_stop_failed")
        finally:
            was_active = self._active
            self._active = False
            await self._sampler.stop()
            if was_active:
                self._emit("listening_stopped", {"reason": "released"})
                self._notify()

    async def change_language(self, language: str) -> None:
        """Stop listening and rebind recognition to ``language``."""
        await self.press_end()
        if self._recognition.state != RecognitionState.IDLE:
            self._recognition.abort()
        self._recognition.configure(language)
        self._session.selected_language = language
        self._emit("language_changed", {"language": language})
        self._notify()

    def toggle_voice(self) -> bool:
        self.set_voice_enabled(not self._session.voice_enabled)
        return self._session.voice_enabled

    def set_voice_enabled(self, enabled: bool) -> None:
        self._session.voice_enabled = enabled
        self._player.set_enabled(enabled)
        self._emit("voice_toggled", {"enabled": enabled})
        self._notify()

    def set_volume(self, volume: float) -> float:
        self._session.volume = clamp_volume(volume)
        self._player.set_volume(self._session.volume)
        self._notify()
        return self._session.volume

    def on_recognized(self, text: str) -> None:
        """Record the utterance and issue its reply request without waiting for it."""
        self._chat_log.append(ChatRole.USER, text)
        self._notify()

        request = asyncio.create_task(
            self._client.generate_response(text, self._session.session_id),
            name=f"reply-request-{len(self._chat_log)}",
        )
        self._in_flight.add(request)
        request.add_done_callback(self._in_flight.discard)
        pending = self._ensure_reply_worker()
        pending.put_nowait(request)
        self._logger.info("reply_requested", extra={"pending": pending.qsize()})

    async def wait_for_replies(self) -> None:
        """Wait until every issued request has been appended to the chat log."""
        if self._pending is not None:
            await self._pending.join()

    def subscribe(self, listener: Callable[[], None]) -> Subscription:
        """Call ``listener`` after every observable state change."""
        return self._changed.connect(lambda _payload: listener())

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self._session.session_id,
            messages=self._chat_log.newest_first(),
            is_active=self._active,
            voice_enabled=self._session.voice_enabled,
            selected_language=self._session.selected_language,
            audio_quality=self._sampler.quality,
            volume=self._session.volume,
            last_error=self._last_error,
        )

    def _ensure_reply_worker(self) -> asyncio.Queue[asyncio.Task[GeneratedReply]]:
        if self._pending is None:
            self._pending = asyncio.Queue()
        if self._reply_worker is None or self._reply_worker.done():
            self._reply_worker = asyncio.create_task(self._reply_loop(self._pending), name="session-reply-worker")
        return self._pending

    async def _reply_loop(self, pending: asyncio.Queue[asyncio.Task[GeneratedReply]]) -> None:
        while True:
            request = await pending.get()
            try:
                await self._deliver(request)
            finally:
                pending.task_done()

    async def _deliver(self, request: asyncio.Task[GeneratedReply]) -> None:
        try:
            # Shielded so that cancelling the worker never cancels the request it waits on.
            reply = await asyncio.shield(request)
        except Exception:  # noqa: BLE001
            self._logger.exception("reply_generation_crashed")
            reply = GeneratedReply(text=FALLBACK_MESSAGE, failure=ResponseFailure(reason="unexpected error"))

        self._chat_log.append(ChatRole.ASSISTANT, reply.text)
        self._logger.info("reply_appended", extra={"ok": reply.ok, "position": len(self._chat_log) - 1})
        if not reply.ok:
            self._emit("response_failed", {"reason": reply.failure.reason if reply.failure else None})
        if self._session.voice_enabled:
            self._player.speak(reply.text, self._session.selected_language, self._session.volume)
        self._notify()

    def _on_recognition_ended(self, event: RecognitionEnded) -> None:
        if event.error in (RecognitionErrorKind.NOT_ALLOWED, RecognitionErrorKind.SERVICE_NOT_ALLOWED):
            self._last_error = PERMISSION_REVOKED_MESSAGE
        if not self._active:
            if event.error is not None:
                self._notify()
            return

        self._active = False
        self._emit("listening_stopped", {"reason": event.error.value if event.error else "ended"})
        self._track_sampler(self._sampler.stop(), "audio-quality-stop")
        self._notify()

    def _track_sampler(self, operation: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(operation, name=name)
        self._sampler_tasks.add(task)
        task.add_done_callback(self._sampler_tasks.discard)

    def _emit(self, event_name: str, payload: dict) -> None:
        payload = {"session_id": self._session.session_id, **payload}
        if self._telemetry is not None:
            self._telemetry.emit(event_name, payload)
        else:
            self._logger.info(event_name, extra=payload)

    def _notify(self) -> None:
        self._changed.emit(None)
