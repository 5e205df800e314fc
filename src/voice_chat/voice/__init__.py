"""Speech capture, microphone sampling and speech output boundaries."""

from .interfaces import CaptureBackend, CaptureHandle, MicrophoneSource, MicrophoneStream, SpeechOutput
from .quality import AudioQualitySampler, DeviceCleanupFailure, FrameClock, FrequencyAnalyzer
from .recognition import (
    RecognitionEnded,
    RecognitionEngine,
    RecognitionErrorKind,
    RecognitionStateError,
    RecognitionUnavailable,
)
from .synthesis import SpeechSynthesisPlayer

__all__ = [
    "AudioQualitySampler",
    "CaptureBackend",
    "CaptureHandle",
    "DeviceCleanupFailure",
    "FrameClock",
    "FrequencyAnalyzer",
    "MicrophoneSource",
    "MicrophoneStream",
    "RecognitionEnded",
    "RecognitionEngine",
    "RecognitionErrorKind",
    "RecognitionStateError",
    "RecognitionUnavailable",
    "SpeechOutput",
    "SpeechSynthesisPlayer",
]
