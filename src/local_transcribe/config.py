#!/usr/bin/env python3
"""Configuration management for Local Transcribe.

This module holds the transcriber configuration, its validation, and
loading/merging of JSON configuration files.
"""
from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ValidationError


def _default_threads() -> int:
    return min(os.cpu_count() or 1, 8)


def _clamp_temperature(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


# ============================================================
# Transcriber Configuration
# ============================================================

@dataclass
class TranscriberConfig:
    """Settings for a transcriber instance.

    Temperature is clamped to [0, 1] on construction. ``validate`` is called
    by the transcriber before the model is loaded.
    """
    model_path: str = "models/faster-whisper-base"
    vad_model_path: Optional[str] = None

    # decoding
    language: Optional[str] = None   # e.g. "zh", "en"; None = auto-detect
    translate: bool = False
    n_threads: int = dataclasses.field(default_factory=_default_threads)
    temperature: float = 0.0
    max_segment_length: Optional[int] = None
    initial_prompt: Optional[str] = None
    debug_mode: bool = False

    # engine placement
    device: str = "auto"             # auto|cpu|cuda
    compute_type: Optional[str] = None

    def __post_init__(self) -> None:
        self.temperature = _clamp_temperature(self.temperature)

    def with_vad_model_path(self, path: str) -> "TranscriberConfig":
        return dataclasses.replace(self, vad_model_path=path)

    def with_language(self, language: str) -> "TranscriberConfig":
        return dataclasses.replace(self, language=language)

    def with_translate(self, translate: bool) -> "TranscriberConfig":
        return dataclasses.replace(self, translate=translate)

    def with_threads(self, n_threads: int) -> "TranscriberConfig":
        return dataclasses.replace(self, n_threads=n_threads)

    def with_temperature(self, temperature: float) -> "TranscriberConfig":
        return dataclasses.replace(self, temperature=temperature)

    def with_initial_prompt(self, prompt: str) -> "TranscriberConfig":
        return dataclasses.replace(self, initial_prompt=prompt)

    def with_debug_mode(self, debug_mode: bool) -> "TranscriberConfig":
        return dataclasses.replace(self, debug_mode=debug_mode)

    def validate(self) -> None:
        """Check the configuration before any model is loaded.

        Raises:
            ValidationError: Missing model or VAD model file, non-positive
                thread count, or temperature outside [0, 1]
        """
        if not Path(self.model_path).exists():
            raise ValidationError(f"model path not exist: {self.model_path}")

        if self.vad_model_path is not None and not Path(self.vad_model_path).exists():
            raise ValidationError(f"No found vad model path: {self.vad_model_path}")

        if self.n_threads <= 0:
            raise ValidationError(f"n_threads must be > 0, got {self.n_threads}")

        if not 0.0 <= self.temperature <= 1.0:
            raise ValidationError("temperature should between 0.0 and 1.0")

        if self.max_segment_length is not None and self.max_segment_length <= 0:
            raise ValidationError(f"max_segment_length must be > 0, got {self.max_segment_length}")

        if self.device not in ("auto", "cpu", "cuda"):
            raise ValidationError(f"device must be auto, cpu or cuda, got {self.device!r}")


# ============================================================
# Configuration Loading
# ============================================================

def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Load configuration from a JSON file.

    Args:
        path: Path to JSON config file, or None to skip loading

    Returns:
        Dictionary of configuration values, or empty dict if path is None

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValidationError: If the config file isn't a valid JSON object
    """
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Config file is not valid JSON: {p}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Config must be a JSON object at top-level.")
    return data


def apply_overrides(base: TranscriberConfig, overrides: Dict[str, Any]) -> TranscriberConfig:
    """Apply configuration overrides to a base configuration.

    Unknown keys are ignored.

    Args:
        base: Base TranscriberConfig instance
        overrides: Dictionary of configuration values to override

    Returns:
        New TranscriberConfig instance with overrides applied
    """
    d = dataclasses.asdict(base)
    for k, v in overrides.items():
        if k in d:
            d[k] = v
    return TranscriberConfig(**d)
