#!/usr/bin/env python3
"""Subtitle timestamps and output writers for Local Transcribe.

This module converts transcription segments into captions and writes them as:
- SRT (SubRip)
- VTT (WebVTT)
- TXT (plain transcript)
"""
from __future__ import annotations

import functools
import os
import re
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, List

import opencc

from .engine import MS_PER_TICK, SegmentCallbackData
from .errors import AudioIOError, FormatError
from .models import Subtitle, TranscriptionResult, TranscriptionSegment
from .system import ensure_parent_dir
from .wav import PathLike


# ============================================================
# Time Formatters
# ============================================================

_SRT_TIMESTAMP_RE = re.compile(r"(\d{2}|[1-9]\d{2,}):(\d{2}):(\d{2}),(\d{3})", re.ASCII)


def _ms_to_timestamp(milliseconds: int, ms_sep: str) -> str:
    total_seconds = milliseconds // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    millis = milliseconds % 1000
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}{ms_sep}{millis:03d}"


def ms_to_srt_timestamp(milliseconds: int) -> str:
    """Format milliseconds for SRT (HH:MM:SS,mmm).

    Args:
        milliseconds: Non-negative time in milliseconds

    Returns:
        Formatted time string (e.g., "00:01:23,456")
    """
    return _ms_to_timestamp(int(milliseconds), ",")


def ms_to_vtt_timestamp(milliseconds: int) -> str:
    """Format milliseconds for WebVTT (HH:MM:SS.mmm).

    Args:
        milliseconds: Non-negative time in milliseconds

    Returns:
        Formatted time string (e.g., "00:01:23.456")
    """
    return _ms_to_timestamp(int(milliseconds), ".")


def srt_timestamp_to_ms(timestamp: str) -> int:
    """Parse an SRT timestamp (HH:MM:SS,mmm) into milliseconds.

    This is the exact inverse of ms_to_srt_timestamp.

    Raises:
        FormatError: If the string is not a valid SRT timestamp
    """
    m = _SRT_TIMESTAMP_RE.fullmatch(timestamp)
    if m is None:
        raise FormatError(f"Invalid srt timestamp {timestamp!r}")
    hours, minutes, seconds, millis = (int(g) for g in m.groups())
    if minutes >= 60 or seconds >= 60:
        raise FormatError(f"Invalid srt timestamp {timestamp!r}")
    return hours * 3_600_000 + minutes * 60_000 + seconds * 1000 + millis


def valid_srt_timestamp(timestamp: str) -> bool:
    try:
        srt_timestamp_to_ms(timestamp)
    except FormatError:
        return False
    return True


# ============================================================
# Conversions
# ============================================================

def subtitle_from_segment(segment: TranscriptionSegment) -> Subtitle:
    return Subtitle(
        index=segment.index,
        start_timestamp_ms=segment.start_time_ms,
        end_timestamp_ms=segment.end_time_ms,
        text=segment.text,
    )


def subtitle_from_callback(data: SegmentCallbackData) -> Subtitle:
    """Build a provisional caption from live per-segment engine data."""
    return Subtitle(
        index=data.segment + 1,
        start_timestamp_ms=data.start_timestamp * MS_PER_TICK,
        end_timestamp_ms=data.end_timestamp * MS_PER_TICK,
        text=data.text,
    )


def transcription_to_subtitles(transcription: TranscriptionResult) -> List[Subtitle]:
    """Copy every segment of a result into a caption, in order."""
    return [subtitle_from_segment(seg) for seg in transcription.segments]


@functools.lru_cache(maxsize=1)
def _t2s_converter() -> opencc.OpenCC:
    return opencc.OpenCC("t2s")


def convert_traditional_to_simplified_chinese(text: str) -> str:
    return _t2s_converter().convert(text)


def convert_subtitles_to_simplified(subtitles: Iterable[Subtitle]) -> List[Subtitle]:
    """Return copies of the captions with their text converted to Simplified Chinese."""
    return [replace(sb, text=convert_traditional_to_simplified_chinese(sb.text)) for sb in subtitles]


# ============================================================
# Caption Serialization
# ============================================================

def subtitle_to_srt(subtitle: Subtitle) -> str:
    return (
        f"{subtitle.index}\n"
        f"{ms_to_srt_timestamp(subtitle.start_timestamp_ms)} --> {ms_to_srt_timestamp(subtitle.end_timestamp_ms)}\n"
        f"{subtitle.text}"
    )


def subtitle_to_vtt(subtitle: Subtitle) -> str:
    return (
        f"{subtitle.index}\n"
        f"{ms_to_vtt_timestamp(subtitle.start_timestamp_ms)} --> {ms_to_vtt_timestamp(subtitle.end_timestamp_ms)}\n"
        f"{subtitle.text}"
    )


def subtitle_to_plain(subtitle: Subtitle) -> str:
    return subtitle.text


def _join_blocks(subtitles: Iterable[Subtitle], render: Callable[[Subtitle], str]) -> str:
    return "".join(f"{render(sb)}\n\n" for sb in subtitles)


def subtitles_to_srt(subtitles: Iterable[Subtitle]) -> str:
    """Render captions as an SRT document (each block followed by a blank line)."""
    return _join_blocks(subtitles, subtitle_to_srt)


def subtitles_to_vtt(subtitles: Iterable[Subtitle]) -> str:
    """Render captions as a WebVTT document, header included."""
    return "WEBVTT\n\n" + _join_blocks(subtitles, subtitle_to_vtt)


def subtitles_to_txt(subtitles: Iterable[Subtitle]) -> str:
    """Render caption texts only, one block per caption."""
    return _join_blocks(subtitles, subtitle_to_plain)


# ============================================================
# Atomic File Writing
# ============================================================

def atomic_write_text(path: Path, content: str) -> None:
    """Write text to a file atomically using a temporary file.

    Args:
        path: Destination file path
        content: Text content to write

    Raises:
        AudioIOError: If the file cannot be written
    """
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        ensure_parent_dir(path)
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except OSError as e:
        try:
            tmp.unlink()
        except OSError:
            pass
        raise AudioIOError(f"Save {path} failed: {e}") from e


def save_as_srt(subtitles: Iterable[Subtitle], path: PathLike) -> None:
    atomic_write_text(Path(path), subtitles_to_srt(subtitles))


def save_as_vtt(subtitles: Iterable[Subtitle], path: PathLike) -> None:
    atomic_write_text(Path(path), subtitles_to_vtt(subtitles))


def save_as_txt(subtitles: Iterable[Subtitle], path: PathLike) -> None:
    atomic_write_text(Path(path), subtitles_to_txt(subtitles))


WRITERS = {
    "srt": save_as_srt,
    "vtt": save_as_vtt,
    "txt": save_as_txt,
}
