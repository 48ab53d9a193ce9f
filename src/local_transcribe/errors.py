#!/usr/bin/env python3
"""Exceptions for Local Transcribe."""
from __future__ import annotations

from typing import Optional


class TranscribeError(Exception):
    """Base exception for all Local Transcribe errors."""


class AudioIOError(TranscribeError, OSError):
    """Raised when a file is missing, unreadable or cannot be written."""


class FormatError(TranscribeError):
    """Raised for unsupported sample encodings and malformed timestamps."""


class CompatibilityError(TranscribeError):
    """Raised when audio is not 16 kHz mono where that is required."""


class ValidationError(TranscribeError, ValueError):
    """Raised for invalid configuration, before any expensive work starts."""


class ConversionError(TranscribeError):
    """Raised when the external ffmpeg conversion fails."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr


class InferenceError(TranscribeError):
    """Raised when the inference engine fails to load or to run.

    The engine's own message is kept in ``engine_message``.
    """

    def __init__(self, message: str, engine_message: Optional[str] = None):
        super().__init__(message)
        self.engine_message = engine_message


class TranscriptionCancelled(Exception):
    """Raised when a transcription stopped because cancellation was requested.

    This is a terminal status rather than a failure, so it does not derive
    from TranscribeError.
    """
