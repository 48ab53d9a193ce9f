#!/usr/bin/env python3
"""Filesystem and external tool helpers for Local Transcribe.

ffmpeg converts arbitrary media into transcriber input; ffprobe supplies the
input duration that turns ffmpeg's position reports into percentages.
The duration lookup is best effort and never decides control flow.
"""
from __future__ import annotations

import math
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import ConversionError
from .logging_utils import warn


DURATION_TIMEOUT_S = 30.0


# ============================================================
# File System Utilities
# ============================================================

def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def file_size_or_zero(path: str) -> int:
    """Size of a file in bytes, or 0 if it cannot be read.

    Only for informational output.
    """
    try:
        return Path(path).stat().st_size
    except OSError as e:
        warn(f"Could not read size of {path}: {e}")
        return 0


# ============================================================
# External Tools
# ============================================================

def tool_available(name: str) -> bool:
    return shutil.which(name) is not None


def require_ffmpeg() -> None:
    """Raise ConversionError unless ffmpeg is on PATH."""
    if not tool_available("ffmpeg"):
        raise ConversionError("ffmpeg not found on PATH. Install it or add it to PATH.")


def run_tool(cmd: List[str], timeout: Optional[float] = None) -> Tuple[int, str, str]:
    """Run an external tool to completion and capture its text output.

    Args:
        cmd: Command and arguments to execute
        timeout: Seconds before the tool is killed, or None to wait forever

    Returns:
        Tuple of (return_code, stdout, stderr)

    Raises:
        subprocess.TimeoutExpired: If the tool ran past ``timeout``
    """
    p = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, timeout=timeout)
    return p.returncode, p.stdout, p.stderr


# ============================================================
# Media Duration
# ============================================================

def media_duration_ms(path: str) -> Optional[int]:
    """Media duration in milliseconds, or None if it cannot be determined.

    A missing ffprobe, a failing or hanging ffprobe run, and a non-positive or
    non-numeric duration all give None.
    """
    if not tool_available("ffprobe"):
        return None
    cmd = [
        "ffprobe", "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        path,
    ]
    try:
        code, out, _ = run_tool(cmd, timeout=DURATION_TIMEOUT_S)
    except (subprocess.TimeoutExpired, OSError) as e:
        warn(f"ffprobe failed on {path}: {e}")
        return None
    if code != 0:
        return None
    try:
        seconds = float(out.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return int(round(seconds * 1000))
