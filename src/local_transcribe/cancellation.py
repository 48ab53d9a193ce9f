#!/usr/bin/env python3
"""Cooperative cancellation for Local Transcribe jobs.

A token is created per job and shared by the party that requests
cancellation and the worker that polls it.
"""
from __future__ import annotations

import threading
from typing import Callable


class CancellationToken:
    """Shared cancel flag with a single writer and any number of readers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def as_abort_callback(self) -> Callable[[], bool]:
        """Return a zero-argument callable suitable as an engine abort poll."""
        return self._event.is_set

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled()})"
