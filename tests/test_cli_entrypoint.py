from __future__ import annotations

import importlib
import sys
import types

import pytest

from voice_chat.response_client import FALLBACK_MESSAGE, GeneratedReply, ResponseFailure


def test_console_entrypoint_exposes_app() -> None:
    pytest.importorskip("typer")

    module = importlib.import_module("voice_chat.main")

    assert hasattr(module, "app")
    assert module.app is not None


def test_ask_reports_fallback_and_fails(monkeypatch) -> None:
    typer_testing = pytest.importorskip("typer.testing")
    import voice_chat.main as main

    class _FailingClient:
        def __init__(self, *args, **kwargs) -> None:
            pass

        async def generate_response(self, transcript: str, session_id: str) -> GeneratedReply:
            return GeneratedReply(text=FALLBACK_MESSAGE, failure=ResponseFailure(reason="HTTP 503", status_code=503))

        async def aclose(self) -> None:
            pass

    monkeypatch.setattr(main, "ResponseClient", _FailingClient)

    result = typer_testing.CliRunner().invoke(main.app, ["ask", "hola"], catch_exceptions=False)

    assert result.exit_code == 1
    assert FALLBACK_MESSAGE in result.stdout


def test_chat_reports_actionable_error_when_voice_backends_missing(monkeypatch) -> None:
    typer_testing = pytest.importorskip("typer.testing")
    from voice_chat.main import app

    fake_stt = types.ModuleType("voice_chat.voice.stt_speechrecognition")
    fake_tts = types.ModuleType("voice_chat.voice.tts_pyttsx3")
    fake_mic = types.ModuleType("voice_chat.voice.microphone_sounddevice")

    class _MissingBackend:
        def __init__(self, *args, **kwargs) -> None:
            raise RuntimeError("Install: pip install 'voice-chat[voice]'")

    fake_stt.SpeechRecognitionBackend = _MissingBackend
    fake_tts.Pyttsx3SpeechOutput = _MissingBackend
    fake_mic.SoundDeviceMicrophone = _MissingBackend

    monkeypatch.setitem(sys.modules, "voice_chat.voice.stt_speechrecognition", fake_stt)
    monkeypatch.setitem(sys.modules, "voice_chat.voice.tts_pyttsx3", fake_tts)
    monkeypatch.setitem(sys.modules, "voice_chat.voice.microphone_sounddevice", fake_mic)

    result = typer_testing.CliRunner().invoke(app, ["chat"], catch_exceptions=False)

    assert result.exit_code == 1
    assert "voice-chat[voice]" in result.stdout
