"""Contract for runtime telemetry and structured logging sinks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

_LOG_FORMAT = "%(asctime)s - %(levelname)s : [%(name)s] %(message)s - (%(filename)s : %(lineno)s)"


class Telemetry(Protocol):
    """Reports operational events and session outcomes."""

    def emit(self, event_name: str, payload: dict) -> None:
        """Publish telemetry event to the configured sink."""


class LoggingTelemetry:
    """Telemetry sink that writes events to a standard logger."""

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._logger = logger or logging.getLogger("voice_chat.telemetry")
        self._level = level

    def emit(self, event_name: str, payload: dict) -> None:
        self._logger.log(self._level, event_name, extra={"telemetry": dict(payload)})


def configure_logging(level: str | int = "INFO", log_path: str | None = None) -> None:
    """Attach console (and optional file) handlers to the root logger once."""
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if root.handlers:
        return

    formatter = logging.Formatter(_LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(level)
    root.addHandler(console)

    if log_path:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
