#!/usr/bin/env python3
"""Energy-based voice activity detection for Local Transcribe.

This module classifies fixed-size, overlapping sample windows as speech or
silence by their RMS amplitude and uses that to find speech segments and to
tighten the start of externally supplied coarse spans.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .cancellation import CancellationToken
from .errors import CompatibilityError, ValidationError
from .models import ProgressStatus
from .wav import WHISPER_SAMPLE_RATE, AudioData, PathLike, read_file


Span = Tuple[int, int]  # (start_ms, end_ms)
Samples = Union[Sequence[float], np.ndarray]


# ============================================================
# Detector
# ============================================================

@dataclass(frozen=True)
class EnergyVAD:
    """RMS-threshold voice activity detector.

    Windows of ``frame_size_ms`` are analyzed every ``frame_shift_ms``; the
    detector holds no state between calls.
    """
    sample_rate: int
    threshold: float = 0.1
    frame_size_ms: int = 200
    frame_shift_ms: int = 100

    def with_threshold(self, threshold: float) -> "EnergyVAD":
        return replace(self, threshold=threshold)

    def with_frame_size_ms(self, ms: int) -> "EnergyVAD":
        return replace(self, frame_size_ms=ms)

    def with_frame_shift_ms(self, ms: int) -> "EnergyVAD":
        return replace(self, frame_shift_ms=ms)

    @property
    def frame_size(self) -> int:
        """Window length in samples."""
        return int(self.sample_rate * self.frame_size_ms / 1000)

    @property
    def frame_shift(self) -> int:
        """Hop length in samples."""
        return int(self.sample_rate * self.frame_shift_ms / 1000)

    def calculate_rms(self, frame: Samples) -> float:
        """Root-mean-square amplitude of a non-empty frame."""
        arr = np.asarray(frame, dtype=np.float64)
        return float(np.sqrt(np.mean(arr * arr)))

    def contains_speech(self, frame: Samples) -> bool:
        if len(frame) == 0:
            return False
        return self.calculate_rms(frame) > self.threshold

    def _frames(self, samples: np.ndarray) -> Iterator[Tuple[int, bool]]:
        """Yield (window index, is_speech) for each hop across the buffer."""
        size = self.frame_size
        shift = self.frame_shift
        if shift <= 0 or size <= 0:
            raise ValidationError(
                f"VAD window too small for {self.sample_rate} Hz: "
                f"frame_size_ms={self.frame_size_ms}, frame_shift_ms={self.frame_shift_ms}"
            )
        total = len(samples)
        for index, offset in enumerate(range(0, total, shift)):
            yield index, self.contains_speech(samples[offset:min(offset + size, total)])

    def detect_all_active_segments(self, samples: Samples) -> List[Span]:
        """Find speech segments in a mono buffer.

        Args:
            samples: Mono float samples at ``sample_rate``

        Returns:
            Time-ordered, non-overlapping (start_ms, end_ms) tuples
        """
        arr = np.asarray(samples, dtype=np.float32)
        total_ms = int(len(arr) * 1000 / self.sample_rate)

        segments: List[Span] = []
        start_ms = end_ms = 0
        in_active_segment = False

        for index, is_speech in self._frames(arr):
            if is_speech:
                if not in_active_segment:
                    in_active_segment = True
                    start_ms = index * self.frame_shift_ms
                    end_ms = start_ms
                end_ms += self.frame_shift_ms
            elif in_active_segment:
                in_active_segment = False
                segments.append((start_ms, end_ms))

        # Speech running into the end of the buffer closes at the full duration.
        if in_active_segment:
            segments.append((start_ms, total_ms))

        return segments

    def detect_silent_offset_ms(self, samples: Samples) -> int:
        """Offset in ms of the first speech window, or 0 if none or the very first.

        Args:
            samples: Mono float samples at ``sample_rate``

        Returns:
            Milliseconds of leading silence before speech starts
        """
        arr = np.asarray(samples, dtype=np.float32)
        for index, is_speech in self._frames(arr):
            if is_speech:
                return index * self.frame_shift_ms
        return 0


# ============================================================
# Silence Trimming
# ============================================================

def _mono_samples_for_vad(audio: AudioData) -> np.ndarray:
    if audio.is_compatible():
        return audio.samples
    if audio.config.sample_rate != WHISPER_SAMPLE_RATE:
        raise CompatibilityError(
            f"Not compatible with whisper. Actual sample rate {audio.config.sample_rate}, "
            f"expect {WHISPER_SAMPLE_RATE // 1000}kHz"
        )
    if audio.config.channels > 1:
        return audio.to_mono().samples
    return audio.samples


def trim_start_silent_duration(
    audio: AudioData,
    timestamps: Sequence[Span],
    threshold: float,
    cancel: Optional[CancellationToken] = None,
    progress_cb: Optional[Callable[[int], None]] = None,
) -> Tuple[List[Span], ProgressStatus]:
    """Tighten the start of each coarse span to the detected speech onset.

    Each span's start moves to ``start + offset - frame_size_ms`` where
    ``offset`` is the leading silence found inside the span. Spans with no
    detectable leading silence, or whose new start would not precede the
    end, pass through unchanged. The start never moves earlier.

    Args:
        audio: Decoded audio (16 kHz; multi-channel input is downmixed)
        timestamps: Coarse (start_ms, end_ms) spans
        threshold: RMS threshold in [0, 1]
        cancel: Optional token checked before each span
        progress_cb: Optional callback receiving percent of spans processed

    Returns:
        (tightened spans, FINISHED), or ([], CANCELLED) if cancelled

    Raises:
        CompatibilityError: If the sample rate is not 16 kHz
    """
    samples = _mono_samples_for_vad(audio)
    sample_rate = audio.config.sample_rate
    vad = EnergyVAD(sample_rate).with_threshold(threshold)
    total_samples = len(samples)

    output: List[Span] = []
    for index, (start_ms, end_ms) in enumerate(timestamps):
        if cancel is not None and cancel.is_cancelled():
            return [], ProgressStatus.CANCELLED

        start_index = int(sample_rate * start_ms / 1000)
        end_index = min(int(sample_rate * end_ms / 1000), total_samples)

        if start_index >= end_index:
            output.append((start_ms, end_ms))
        else:
            silent_offset = vad.detect_silent_offset_ms(samples[start_index:end_index])
            if silent_offset == 0:
                output.append((start_ms, end_ms))
            else:
                # One window of guard band so the onset itself is not clipped.
                if silent_offset > vad.frame_size_ms:
                    offset_ms = start_ms + silent_offset - vad.frame_size_ms
                else:
                    offset_ms = start_ms

                if offset_ms >= end_ms:
                    output.append((start_ms, end_ms))
                else:
                    output.append((offset_ms, end_ms))

        if progress_cb is not None:
            progress_cb((index + 1) * 100 // len(timestamps))

    return output, ProgressStatus.FINISHED


def trim_start_silent_duration_of_audio(
    audio_path: PathLike,
    timestamps: Sequence[Span],
    threshold: float,
    cancel: Optional[CancellationToken] = None,
    progress_cb: Optional[Callable[[int], None]] = None,
) -> Tuple[List[Span], ProgressStatus]:
    """Read a WAV file and tighten coarse spans against it.

    See trim_start_silent_duration for the per-span rule.

    Raises:
        AudioIOError: If the file cannot be read
        FormatError: If the sample encoding is unsupported
        CompatibilityError: If the sample rate is not 16 kHz
    """
    audio = read_file(audio_path)
    return trim_start_silent_duration(audio, timestamps, threshold, cancel, progress_cb)
