#!/usr/bin/env python3
"""Data models for Local Transcribe.

This module contains the value types that flow through the pipeline:
- TOOL_VERSION: Version constant
- ProgressStatus: Terminal status of a cancellable job
- TranscriptionSegment: One recognized utterance with timing and confidence
- TranscriptionResult: Full output of a transcription call
- Subtitle: Export-ready caption derived from a segment
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import List, Optional


# ============================================================
# Versioning
# ============================================================

TOOL_VERSION = "0.2.0"


# ============================================================
# Job Status
# ============================================================

class ProgressStatus(enum.Enum):
    """Terminal status reported by cancellable long-running routines."""
    FINISHED = "Finished"
    CANCELLED = "Cancelled"


# ============================================================
# Transcription Results
# ============================================================

@dataclass(frozen=True)
class TranscriptionSegment:
    """A single recognized utterance.

    Attributes:
        index: 1-based position of the segment in the engine output
        start_time_ms: Start time in milliseconds
        end_time_ms: End time in milliseconds
        text: Trimmed segment text
        confidence: Mean token probability in [0, 1]
    """
    index: int
    start_time_ms: int
    end_time_ms: int
    text: str
    confidence: float


@dataclass(frozen=True)
class TranscriptionResult:
    """Complete output of one transcription call.

    Attributes:
        text: Segment texts joined by a single space, in order
        language: Language code requested from the engine (None = auto)
        segments: Ordered list of kept segments
        processing_time_ms: Wall-clock time spent transcribing
        audio_duration_ms: Duration of the input audio
    """
    text: str
    language: Optional[str]
    segments: List[TranscriptionSegment] = field(default_factory=list)
    processing_time_ms: int = 0
    audio_duration_ms: int = 0

    def real_time_factor(self) -> float:
        """Processing time divided by audio duration (0.0 for empty audio)."""
        if self.audio_duration_ms == 0:
            return 0.0
        return self.processing_time_ms / self.audio_duration_ms

    def average_confidence(self) -> float:
        """Mean of the segment confidences (0.0 when there are no segments)."""
        if not self.segments:
            return 0.0
        return sum(s.confidence for s in self.segments) / len(self.segments)

    def filter_by_confidence(self, min_confidence: float) -> "TranscriptionResult":
        """Return a new result keeping only segments at or above a confidence.

        Args:
            min_confidence: Inclusive lower bound on segment confidence

        Returns:
            New TranscriptionResult whose text is rebuilt from the kept segments
        """
        kept = [s for s in self.segments if s.confidence >= min_confidence]
        return replace(
            self,
            text=" ".join(s.text for s in kept),
            segments=kept,
        )


# ============================================================
# Subtitle Data Structures
# ============================================================

@dataclass
class Subtitle:
    """Represents a single export-ready caption.

    Attributes:
        index: Cue number written to SRT/VTT output
        start_timestamp_ms: Start time in milliseconds
        end_timestamp_ms: End time in milliseconds
        text: Caption text
    """
    index: int
    start_timestamp_ms: int
    end_timestamp_ms: int
    text: str
