#!/usr/bin/env python3
"""Audio conversion for Local Transcribe.

This module wraps ffmpeg as the external converter that turns arbitrary
media into the 16 kHz mono 16-bit PCM WAV the transcriber expects.
"""
from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List, Optional

from .cancellation import CancellationToken
from .errors import ConversionError, FormatError
from .models import ProgressStatus
from .system import media_duration_ms, require_ffmpeg
from .wav import PathLike, check_compatible


# ============================================================
# Progress Parsing
# ============================================================

def parse_progress_us(line: str) -> Optional[int]:
    """Extract the output position in microseconds from an ffmpeg -progress line.

    ffmpeg reports microseconds under both ``out_time_us`` and the
    misnamed ``out_time_ms`` key.
    """
    key, sep, value = line.strip().partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    try:
        return int(value)
    except ValueError:
        return None


# ============================================================
# Audio Conversion
# ============================================================

def build_convert_cmd(input_path: str, wav_path: str) -> List[str]:
    return [
        "ffmpeg", "-y",
        "-loglevel", "error",
        "-nostats",
        "-i", input_path,
        "-ac", "1",
        "-ar", "16000",
        "-acodec", "pcm_s16le",
        "-vn",
        "-progress", "pipe:1",
        wav_path,
    ]


def to_wav_16k_mono(
    input_path: str,
    wav_path: str,
    cancel: Optional[CancellationToken] = None,
    progress_cb: Optional[Callable[[int], None]] = None,
) -> ProgressStatus:
    """Convert an audio/video file to 16kHz mono 16-bit WAV.

    The cancellation token is checked on every progress line ffmpeg emits;
    when set, ffmpeg is terminated and the partial output removed.

    Args:
        input_path: Path to input audio/video file
        wav_path: Path where output WAV file should be written
        cancel: Optional cancellation token
        progress_cb: Optional callback receiving integer percent

    Returns:
        ProgressStatus.FINISHED or ProgressStatus.CANCELLED

    Raises:
        ConversionError: If ffmpeg fails
    """
    duration_ms = media_duration_ms(input_path) if progress_cb is not None else None
    cmd = build_convert_cmd(input_path, wav_path)
    last_pct = -1

    with tempfile.TemporaryFile(mode="w+", encoding="utf-8") as err:
        with subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=err, text=True) as p:
            try:
                for line in p.stdout:
                    if cancel is not None and cancel.is_cancelled():
                        p.terminate()
                        p.wait()
                        if os.path.exists(wav_path):
                            os.remove(wav_path)
                        return ProgressStatus.CANCELLED

                    if progress_cb is None:
                        continue
                    if line.strip() == "progress=end":
                        pct = 100
                    else:
                        us = parse_progress_us(line)
                        if us is None or not duration_ms:
                            continue
                        pct = max(0, min(100, int(us / 1000 / duration_ms * 100)))
                    if pct != last_pct:
                        last_pct = pct
                        progress_cb(pct)
            except BaseException:
                # ffmpeg must not outlive the caller, nor keep writing wav_path.
                p.kill()
                p.wait()
                raise

            code = p.wait()

        if code != 0:
            err.seek(0)
            tail = "\n".join(err.read().splitlines()[-20:])
            raise ConversionError(f"ffmpeg failed with exit code {code}: {tail}", stderr=tail)

    return ProgressStatus.FINISHED


def convert_to_compatible_audio(
    input_path: PathLike,
    output_path: PathLike,
    cancel: Optional[CancellationToken] = None,
    progress_cb: Optional[Callable[[int], None]] = None,
) -> ProgressStatus:
    """Convert media to a transcriber-compatible WAV and verify the result.

    Raises:
        FormatError: If the output path is not a .wav file
        ConversionError: If ffmpeg is missing or fails
        CompatibilityError: If the produced file is not 16 kHz mono 16-bit
    """
    if Path(output_path).suffix.lower() != ".wav":
        raise FormatError(f"Only support wav format file: {output_path}")
    require_ffmpeg()

    status = to_wav_16k_mono(str(input_path), str(output_path), cancel, progress_cb)
    if status is ProgressStatus.FINISHED:
        check_compatible(output_path)
    return status
