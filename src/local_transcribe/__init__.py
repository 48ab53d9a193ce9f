"""Local Transcribe - audio transcription to time-aligned subtitles.

This package decodes PCM audio, detects speech with an energy VAD, drives a
faster-whisper engine to produce confidence-scored segments, and writes them
as SRT, WebVTT or plain text.
"""
from .cancellation import CancellationToken
from .cli import main
from .config import TranscriberConfig
from .models import TOOL_VERSION, ProgressStatus, Subtitle, TranscriptionResult, TranscriptionSegment
from .transcriber import Transcriber, transcribe_file
from .vad import EnergyVAD, trim_start_silent_duration_of_audio
from .wav import AudioConfig, AudioData, read_file

__version__ = TOOL_VERSION
__all__ = [
    "AudioConfig",
    "AudioData",
    "CancellationToken",
    "EnergyVAD",
    "ProgressStatus",
    "Subtitle",
    "Transcriber",
    "TranscriberConfig",
    "TranscriptionResult",
    "TranscriptionSegment",
    "main",
    "read_file",
    "transcribe_file",
    "trim_start_silent_duration_of_audio",
    "__version__",
]
