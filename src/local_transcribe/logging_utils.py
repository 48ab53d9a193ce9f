#!/usr/bin/env python3
"""Logging and progress utilities for Local Transcribe.

Messages go to stdout, warnings and errors to stderr. Library modules only
emit debug lines, and only when the caller turned debug output on.
"""
from __future__ import annotations

import sys


# ============================================================
# Logging
# ============================================================

def log(msg: str, *, quiet: bool = False) -> None:
    """Status line on stdout, silenced by ``quiet``."""
    if not quiet:
        print(msg, flush=True)


def debug(msg: str, *, enabled: bool) -> None:
    """Diagnostic line on stderr, emitted only when ``enabled``.

    Library modules pass ``enabled=config.debug_mode``.
    """
    if enabled:
        print(f"DEBUG: {msg}", file=sys.stderr, flush=True)


def warn(msg: str, *, quiet: bool = False) -> None:
    """Warning on stderr, silenced by ``quiet``."""
    if not quiet:
        print(f"WARNING: {msg}", file=sys.stderr, flush=True)


def die(msg: str, code: int = 1) -> int:
    """Report a fatal error on stderr and hand back the process exit code.

    Never silenced; callers ``return die(...)`` from ``main``.
    """
    print(f"ERROR: {msg}", file=sys.stderr, flush=True)
    return code


# ============================================================
# Progress
# ============================================================

PROGRESS_WIDTH = 40


def progress_line(stage: str, pct: int, *, enabled: bool, quiet: bool) -> None:
    """Redraw the current terminal line with a stage's percent complete.

    Args:
        stage: Pipeline stage name (e.g. "convert", "whisper")
        pct: Integer percent in [0, 100]
        enabled: If False, suppress output
        quiet: If True, suppress output
    """
    if quiet or not enabled:
        return
    sys.stdout.write("\r" + f"   {stage} {pct:3d}%".ljust(PROGRESS_WIDTH))
    sys.stdout.flush()


def progress_done(*, enabled: bool, quiet: bool) -> None:
    """Finish a progress line with a newline."""
    if quiet or not enabled:
        return
    sys.stdout.write("\n")
    sys.stdout.flush()


def format_duration_ms(milliseconds: int) -> str:
    """Format a millisecond duration as H:MM:SS.s or M:SS.s.

    Tenths of a second are kept since short clips often transcribe in under
    a second. Negative input is treated as 0.
    """
    tenths = max(0, int(milliseconds)) // 100
    total_seconds, tenth = divmod(tenths, 10)
    h = total_seconds // 3600
    m = (total_seconds % 3600) // 60
    s = total_seconds % 60
    if h > 0:
        return f"{h:d}:{m:02d}:{s:02d}.{tenth:d}"
    return f"{m:d}:{s:02d}.{tenth:d}"
