#!/usr/bin/env python3
"""PCM sample model for Local Transcribe.

This module describes decoded audio (format descriptor plus float samples
in [-1, 1]) and decodes WAV-family files into it.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence, Tuple, Union

import numpy as np
import soundfile

from .errors import AudioIOError, CompatibilityError, FormatError, ValidationError
from .logging_utils import debug


WHISPER_SAMPLE_RATE = 16000
WHISPER_CHANNELS = 1
WHISPER_BIT_DEPTH = 16

PathLike = Union[str, Path]


# ============================================================
# Format Descriptor
# ============================================================

@dataclass(frozen=True)
class AudioConfig:
    """PCM format descriptor.

    Attributes:
        sample_rate: Samples per second per channel (Hz)
        channels: Number of interleaved channels
        bit_depth: Bits per sample in the source encoding
    """
    sample_rate: int = WHISPER_SAMPLE_RATE
    channels: int = WHISPER_CHANNELS
    bit_depth: int = WHISPER_BIT_DEPTH

    def __post_init__(self) -> None:
        if self.channels < 1:
            raise ValidationError(f"channels must be >= 1, got {self.channels}")
        if self.sample_rate <= 0:
            raise ValidationError(f"sample_rate must be > 0, got {self.sample_rate}")

    @classmethod
    def whisper_optimized(cls) -> "AudioConfig":
        """The 16 kHz mono 16-bit format the inference engine expects."""
        return cls()

    def is_compatible(self) -> bool:
        return (
            self.sample_rate == WHISPER_SAMPLE_RATE
            and self.channels == WHISPER_CHANNELS
            and self.bit_depth == WHISPER_BIT_DEPTH
        )


# ============================================================
# Decoded Audio
# ============================================================

class AudioData:
    """Decoded audio buffer.

    Samples are interleaved float32 values in [-1, 1]. The buffer is owned by
    the instance: construction copies the input, and derived buffers are new
    arrays. ``normalize`` and ``apply_gain`` are the only mutating operations.
    """

    def __init__(self, samples: Union[Sequence[float], np.ndarray], config: AudioConfig, *, debug_mode: bool = False):
        self.samples = np.array(samples, dtype=np.float32).reshape(-1)
        self.config = config
        self.debug_mode = debug_mode

    def __repr__(self) -> str:
        return f"AudioData(frames={self.frame_count()}, config={self.config!r})"

    def frame_count(self) -> int:
        return len(self.samples) // self.config.channels

    def duration(self) -> float:
        """Duration in seconds (0.0 for an empty buffer)."""
        return self.frame_count() / self.config.sample_rate

    def to_mono(self) -> "AudioData":
        """Downmix to one channel by averaging each frame's channel samples.

        Mono input yields an equal copy. A trailing partial frame counts its
        missing channels as silence.
        """
        channels = self.config.channels
        if channels == 1:
            return AudioData(self.samples, self.config, debug_mode=self.debug_mode)

        frames = -(-len(self.samples) // channels)
        padded = np.zeros(frames * channels, dtype=np.float32)
        padded[: len(self.samples)] = self.samples
        interleaved = padded.reshape(frames, channels)
        mono = interleaved.sum(axis=1, dtype=np.float32) / np.float32(channels)
        mono_config = AudioConfig(
            sample_rate=self.config.sample_rate,
            channels=1,
            bit_depth=self.config.bit_depth,
        )
        return AudioData(mono, mono_config, debug_mode=self.debug_mode)

    def normalize(self) -> None:
        """Scale in place so the peak absolute sample becomes exactly 1.0."""
        if self.samples.size == 0:
            return

        max_abs = float(np.max(np.abs(self.samples)))
        if max_abs > 0.0 and max_abs != 1.0:
            self.samples /= np.float32(max_abs)
            debug(f"Normalized audio. Scale factor: {1.0 / max_abs:.3f}", enabled=self.debug_mode)

    def apply_gain(self, gain_db: float) -> None:
        """Apply a gain in decibels in place, clamping results to [-1, 1]."""
        gain_linear = 10.0 ** (gain_db / 20.0)
        self.samples *= np.float32(gain_linear)
        np.clip(self.samples, -1.0, 1.0, out=self.samples)
        debug(f"Apply gain: {gain_db:.1f} dB (gain linear: {gain_linear:.3f})", enabled=self.debug_mode)

    def is_compatible(self) -> bool:
        return self.config.is_compatible()


# ============================================================
# Decoding
# ============================================================

_SUBTYPE_BITS: Dict[str, int] = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
    "FLOAT": 32,
    "DOUBLE": 64,
}

# subtype -> (read dtype, right shift, max magnitude)
# libsndfile returns 24-bit data left-justified in int32.
_INT_DECODING: Dict[str, Tuple[str, int, float]] = {
    "PCM_16": ("int16", 0, 32767.0),
    "PCM_24": ("int32", 8, 8388607.0),
    "PCM_32": ("int32", 0, 2147483647.0),
}

_FLOAT_SUBTYPES = {"FLOAT", "DOUBLE"}


def _read_info(path: Path):
    if not path.exists():
        raise AudioIOError(f"File not found: {path}")
    try:
        return soundfile.info(str(path))
    except RuntimeError as e:
        raise AudioIOError(f"Open wav file failed: {path}: {e}") from e


def _config_from_info(info) -> AudioConfig:
    return AudioConfig(
        sample_rate=int(info.samplerate),
        channels=int(info.channels),
        bit_depth=_SUBTYPE_BITS.get(info.subtype, 0),
    )


def read_file(path: PathLike, *, debug_mode: bool = False) -> AudioData:
    """Decode a WAV-family file into an AudioData.

    Integer PCM is divided by the largest representable magnitude for its bit
    depth; float PCM is passed through.

    Args:
        path: Path to the audio file
        debug_mode: Forwarded to the returned AudioData

    Returns:
        AudioData with interleaved float32 samples

    Raises:
        AudioIOError: If the file is missing or cannot be decoded
        FormatError: If the sample encoding is not 16/24/32-bit PCM or float
    """
    p = Path(path)
    info = _read_info(p)
    config = _config_from_info(info)

    if info.subtype in _FLOAT_SUBTYPES:
        dtype, shift, scale = "float32", 0, 1.0
    elif info.subtype in _INT_DECODING:
        dtype, shift, scale = _INT_DECODING[info.subtype]
    else:
        raise FormatError(f"Unsupported bits per sample: {info.subtype} ({config.bit_depth} bit)")

    try:
        data, _ = soundfile.read(str(p), dtype=dtype, always_2d=True)
    except RuntimeError as e:
        raise AudioIOError(f"Read file sample failed: {p}: {e}") from e

    interleaved = data.reshape(-1)
    if dtype == "float32":
        samples = interleaved
    else:
        if shift:
            interleaved = interleaved >> shift
        samples = interleaved.astype(np.float32) / np.float32(scale)

    debug(
        f"Read {p}: {config.sample_rate} Hz, {config.channels} ch, {info.subtype}, {len(samples)} samples",
        enabled=debug_mode,
    )
    return AudioData(samples, config, debug_mode=debug_mode)


def check_compatible(path: PathLike) -> AudioConfig:
    """Verify from the header alone that a file is 16 kHz mono 16-bit PCM.

    Args:
        path: Path to the audio file

    Returns:
        The file's AudioConfig

    Raises:
        AudioIOError: If the file is missing or unreadable
        CompatibilityError: On the first mismatch (sample rate, channels, bit depth)
    """
    info = _read_info(Path(path))
    config = _config_from_info(info)

    if config.sample_rate != WHISPER_SAMPLE_RATE:
        raise CompatibilityError(
            f"Sample rate mismatch. Expected: {WHISPER_SAMPLE_RATE}, actual: {config.sample_rate}"
        )
    if config.channels != WHISPER_CHANNELS:
        raise CompatibilityError(f"Channel mismatch. Expected: {WHISPER_CHANNELS}, actual: {config.channels}")
    if info.subtype != "PCM_16":
        raise CompatibilityError(
            f"Format not supported. Expected 16 bit PCM, actual {info.subtype} ({config.bit_depth} bit)"
        )
    return config


def is_compatible_file(path: PathLike) -> bool:
    """Boolean form of check_compatible; missing files count as incompatible."""
    try:
        check_compatible(path)
    except (AudioIOError, CompatibilityError):
        return False
    return True
