"""Terminal intent parsing and dispatch onto the session controller."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from voice_chat.controller import SessionController

HELP_TEXT = (
    "Enter: start/stop listening | :lang TAG | :voice | :volume 0-100 | "
    ":say TEXT | :status | :help | :quit"
)


class IntentType(str, Enum):
    TOGGLE_LISTENING = "toggle_listening"
    SELECT_LANGUAGE = "select_language"
    TOGGLE_VOICE = "toggle_voice"
    SET_VOLUME = "set_volume"
    SAY = "say"
    STATUS = "status"
    HELP = "help"
    QUIT = "quit"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class Intent:
    type: IntentType
    argument: str | None = None


_COMMANDS: dict[str, IntentType] = {
    "lang": IntentType.SELECT_LANGUAGE,
    "language": IntentType.SELECT_LANGUAGE,
    "voice": IntentType.TOGGLE_VOICE,
    "volume": IntentType.SET_VOLUME,
    "vol": IntentType.SET_VOLUME,
    "say": IntentType.SAY,
    "status": IntentType.STATUS,
    "help": IntentType.HELP,
    "quit": IntentType.QUIT,
    "exit": IntentType.QUIT,
    "q": IntentType.QUIT,
}


class CliIntentParser:
    def parse(self, line: str) -> Intent:
        text = line.strip()
        if not text:
            return Intent(type=IntentType.TOGGLE_LISTENING)
        if not text.startswith(":"):
            return Intent(type=IntentType.UNKNOWN, argument=text)

        name, _, rest = text[1:].partition(" ")
        intent_type = _COMMANDS.get(name.lower(), IntentType.UNKNOWN)
        argument = " ".join(rest.split()) or None
        if intent_type == IntentType.UNKNOWN:
            argument = text
        return Intent(type=intent_type, argument=argument)


class CliIntentHandler:
    """Forwards terminal intents to a controller and returns a status line."""

    def __init__(self, controller: SessionController, supported_languages: list[str] | None = None) -> None:
        self._controller = controller
        self._supported = {tag.lower(): tag for tag in supported_languages or []}

    async def handle(self, intent: Intent) -> str | None:
        if intent.type == IntentType.TOGGLE_LISTENING:
            return await self._toggle_listening()
        if intent.type == IntentType.SELECT_LANGUAGE:
            return await self._select_language(intent.argument)
        if intent.type == IntentType.TOGGLE_VOICE:
            enabled = self._controller.toggle_voice()
            return f"Voice output {'on' if enabled else 'off'}."
        if intent.type == IntentType.SET_VOLUME:
            return self._set_volume(intent.argument)
        if intent.type == IntentType.SAY:
            if not intent.argument:
                return "Nothing to send."
            self._controller.on_recognized(intent.argument)
            return None
        if intent.type == IntentType.STATUS:
            return self._status()
        if intent.type == IntentType.HELP:
            return HELP_TEXT
        if intent.type == IntentType.QUIT:
            return None
        return f"Unknown command: {intent.argument}. {HELP_TEXT}"

    async def _toggle_listening(self) -> str:
        if self._controller.is_active:
            await self._controller.press_end()
            return "Stopped listening."
        if await self._controller.press_start():
            return f"Listening ({self._controller.session.selected_language})... press Enter to stop."
        return self._controller.last_error or "Could not start listening."

    async def _select_language(self, argument: str | None) -> str:
        if not argument:
            return "Usage: :lang TAG (e.g. :lang en-US)"
        language = argument
        if self._supported:
            language = self._supported.get(argument.lower())
            if language is None:
                return f"Unsupported language {argument}. Choose one of: {', '.join(self._supported.values())}"
        await self._controller.change_language(language)
        return f"Language set to {language}."

    def _set_volume(self, argument: str | None) -> str:
        try:
            volume = float(argument or "")
        except ValueError:
            return "Usage: :volume 0-100"
        applied = self._controller.set_volume(volume)
        return f"Volume set to {applied:g}."

    def _status(self) -> str:
        snapshot = self._controller.snapshot()
        return (
            f"active={snapshot.is_active} language={snapshot.selected_language} "
            f"voice={'on' if snapshot.voice_enabled else 'off'} volume={snapshot.volume:g} "
            f"quality={snapshot.audio_quality:.2f} messages={len(snapshot.messages)}"
        )
