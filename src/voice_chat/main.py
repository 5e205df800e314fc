"""CLI startup entrypoint for the voice chat client."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import typer
from rich import print
from rich.markup import escape

from voice_chat.cli import CliIntentHandler, CliIntentParser, IntentType
from voice_chat.config import settings
from voice_chat.controller import SessionController
from voice_chat.models import ChatRole
from voice_chat.response_client import ResponseClient
from voice_chat.telemetry import LoggingTelemetry, configure_logging
from voice_chat.voice.quality import FrameClock

app = typer.Typer(help="Push-to-talk voice chat client")


@app.callback()
def _setup() -> None:
    configure_logging(settings.log_level, settings.log_path)


@app.command()
def start() -> None:
    """Show runtime configuration."""
    print(
        {
            "app_name": settings.app_name,
            "api_base_url": settings.api_base_url,
            "default_language": settings.default_language,
            "supported_languages": settings.supported_languages,
            "voice_enabled": settings.voice_enabled,
            "volume": settings.volume,
        }
    )


@app.command()
def ask(
    transcript: str,
    session_id: str = typer.Option(None, help="Session id sent with the request"),
) -> None:
    """Send one transcript to the response service and print the reply."""

    async def _run():
        client = ResponseClient(settings.api_base_url, timeout_seconds=settings.request_timeout_seconds)
        try:
            return await client.generate_response(transcript, session_id or uuid4().hex)
        finally:
            await client.aclose()

    reply = asyncio.run(_run())
    print({"reply": reply.text, "ok": reply.ok, "failure": reply.failure.reason if reply.failure else None})
    if not reply.ok:
        raise typer.Exit(code=1)


@app.command()
def chat(
    language: str = typer.Option(None, help="Recognition/speech locale, e.g. es-ES"),
    no_voice: bool = typer.Option(False, help="Start with spoken replies disabled"),
    volume: float = typer.Option(None, min=0.0, max=100.0, help="Speech volume 0-100"),
    phrase_time_limit: float = typer.Option(10.0, help="Per-utterance capture limit in seconds"),
) -> None:
    """Run an interactive push-to-talk session with local STT/TTS backends."""
    try:
        from voice_chat.voice.microphone_sounddevice import SoundDeviceMicrophone
        from voice_chat.voice.stt_speechrecognition import SpeechRecognitionBackend
        from voice_chat.voice.tts_pyttsx3 import Pyttsx3SpeechOutput
    except RuntimeError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    except ImportError:
        print({"error": "Voice extras are missing. Install with: pip install 'voice-chat[voice]'"})
        raise typer.Exit(code=1)

    try:
        capture_backend = SpeechRecognitionBackend(
            phrase_time_limit=phrase_time_limit,
            sample_rate=settings.microphone_sample_rate,
        )
        microphone = SoundDeviceMicrophone(sample_rate=settings.microphone_sample_rate)
        speech_output = Pyttsx3SpeechOutput()
    except RuntimeError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)

    async def _run() -> None:
        client = ResponseClient(settings.api_base_url, timeout_seconds=settings.request_timeout_seconds)
        controller = SessionController(
            capture_backend=capture_backend,
            microphone=microphone,
            speech_output=speech_output,
            response_client=client,
            language=language or settings.default_language,
            voice_enabled=settings.voice_enabled and not no_voice,
            volume=settings.volume if volume is None else volume,
            frame_clock=FrameClock(settings.sampler_frame_rate_hz),
            reference_ceiling=settings.quality_reference_ceiling,
            fft_size=settings.fft_size,
            max_speech_chars=settings.max_speech_chars,
            telemetry=LoggingTelemetry(),
        )
        try:
            await _chat_loop(controller)
        finally:
            await controller.close()
            await client.aclose()
            speech_output.close()

    print({"voice_chat": "started", "session": "Press Enter to talk, Enter again to stop. :help for commands."})
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass
    print({"voice_chat": "stopped"})


async def _chat_loop(controller: SessionController) -> None:
    parser = CliIntentParser()
    handler = CliIntentHandler(controller, supported_languages=settings.supported_languages)
    printed = 0

    def _render() -> None:
        nonlocal printed
        messages = controller.chat_log.messages
        for message in messages[printed:]:
            label = "[bold cyan]You[/]" if message.role == ChatRole.USER else "[bold magenta]Assistant[/]"
            print(f"{label}: {escape(message.content)}")
        printed = len(messages)

    subscription = controller.subscribe(_render)
    await controller.start()
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "")
            except EOFError:
                break
            intent = parser.parse(line)
            if intent.type == IntentType.QUIT:
                break
            status = await handler.handle(intent)
            if status:
                print(f"[dim]{escape(status)}[/]")
    finally:
        subscription.cancel()


if __name__ == "__main__":
    app()
