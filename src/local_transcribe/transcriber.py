#!/usr/bin/env python3
"""Transcription orchestration for Local Transcribe.

``Transcriber`` owns one loaded inference engine and turns decoded audio
plus configuration into a ``TranscriptionResult``: it prepares samples,
builds decoding parameters, forwards the engine callbacks, and post-processes
the finalized segment list (trimming, tick conversion, confidence scoring).
"""
from __future__ import annotations

import asyncio
import functools
import time
from pathlib import Path
from typing import Optional

import numpy as np
from faster_whisper import utils as fw_utils

from .config import TranscriberConfig
from .engine import (
    MS_PER_TICK,
    AbortCallback,
    EngineSegment,
    FasterWhisperEngine,
    InferenceEngine,
    InferenceParams,
    InferenceState,
    ProgressCallback,
    SegmentCallback,
)
from .errors import AudioIOError, CompatibilityError, FormatError, InferenceError, TranscriptionCancelled
from .logging_utils import debug
from .models import TranscriptionResult, TranscriptionSegment
from .wav import WHISPER_SAMPLE_RATE, AudioData, PathLike, read_file


# Used when a segment has tokens but none reports a probability.
NEUTRAL_CONFIDENCE = 0.5


# ============================================================
# Confidence
# ============================================================

def segment_confidence(segment: EngineSegment) -> float:
    """Mean token probability of a segment.

    Returns 0.0 for a segment without tokens and NEUTRAL_CONFIDENCE when no
    token probability can be retrieved.
    """
    token_count = segment.n_tokens()
    if token_count == 0:
        return 0.0

    total_prob = 0.0
    valid_tokens = 0
    for token_index in range(token_count):
        token = segment.get_token(token_index)
        if token is None or token.probability is None:
            continue
        total_prob += token.probability
        valid_tokens += 1

    if valid_tokens == 0:
        return NEUTRAL_CONFIDENCE
    return min(max(total_prob / valid_tokens, 0.0), 1.0)


# ============================================================
# Transcriber
# ============================================================

class Transcriber:
    """Drives an inference engine over decoded audio.

    The engine is loaded once in the constructor and reused by every call.
    Calls on the same instance from several threads must be serialized by
    the caller unless the engine is known to be thread-safe.
    """

    def __init__(self, config: TranscriberConfig, engine: Optional[InferenceEngine] = None):
        config.validate()
        self.config = config

        if engine is None:
            debug(f"Load Whisper model: {config.model_path}", enabled=config.debug_mode)
            engine = FasterWhisperEngine.load(
                config.model_path,
                device=config.device,
                compute_type=config.compute_type,
                cpu_threads=config.n_threads,
                quiet=not config.debug_mode,
            )
        self.engine = engine

    def build_params(self) -> InferenceParams:
        cfg = self.config
        return InferenceParams(
            n_threads=cfg.n_threads,
            translate=cfg.translate,
            temperature=cfg.temperature,
            language=cfg.language,
            token_timestamps=True,
            initial_prompt=cfg.initial_prompt,
            max_segment_length=cfg.max_segment_length,
            vad_model_path=cfg.vad_model_path,
            debug_mode=cfg.debug_mode,
        )

    def prepare_audio_samples(self, audio: AudioData) -> np.ndarray:
        """Return 16 kHz mono samples for the engine, downmixing if needed.

        Raises:
            CompatibilityError: If the sample rate is not 16 kHz
        """
        if audio.is_compatible():
            return audio.samples

        if audio.config.sample_rate != WHISPER_SAMPLE_RATE:
            raise CompatibilityError(
                f"Not compatible with whisper. Actual sample rate {audio.config.sample_rate}, "
                f"expect {WHISPER_SAMPLE_RATE // 1000}kHz"
            )

        if audio.config.channels > 1:
            debug("Converting to mono channel", enabled=self.config.debug_mode)
            return audio.to_mono().samples
        return audio.samples

    def transcribe_audio_data(
        self,
        audio: AudioData,
        progress_cb: Optional[ProgressCallback] = None,
        segment_cb: Optional[SegmentCallback] = None,
        abort_cb: Optional[AbortCallback] = None,
    ) -> TranscriptionResult:
        """Transcribe decoded audio.

        Args:
            audio: Decoded audio at 16 kHz (any channel count)
            progress_cb: Receives integer percent while the engine runs
            segment_cb: Receives provisional data per recognized segment
            abort_cb: Polled by the engine; returning True stops inference

        Returns:
            TranscriptionResult built from the engine's finalized segments

        Raises:
            CompatibilityError: If the sample rate is not 16 kHz
            InferenceError: If the engine fails
            TranscriptionCancelled: If abort_cb stopped inference
        """
        started = time.perf_counter()
        samples = self.prepare_audio_samples(audio)
        params = self.build_params()

        debug(f"Start whisper infer, audio duration: {audio.duration():.2f}s", enabled=self.config.debug_mode)

        try:
            state = self.engine.infer(samples, params, progress_cb, segment_cb, abort_cb)
        except (InferenceError, TranscriptionCancelled):
            raise
        except Exception as e:
            raise InferenceError(f"Whisper transcribe failed: {e}", engine_message=str(e)) from e

        if state.aborted:
            raise TranscriptionCancelled("Transcription cancelled")

        result = self.extract_transcription_result(state, audio.duration(), started)
        debug(
            f"Transcript finished, real time factor: {result.real_time_factor():.2f}x",
            enabled=self.config.debug_mode,
        )
        return result

    def extract_transcription_result(
        self,
        state: InferenceState,
        audio_duration: float,
        started: float,
    ) -> TranscriptionResult:
        """Build a result from finalized engine segments.

        Blank segments are dropped; kept segments retain their 1-based engine
        position as index.
        """
        segments = []
        for i in range(state.full_n_segments()):
            segment = state.get_segment(i)
            if segment is None:
                continue

            text = (segment.text or "").strip()
            if not text:
                continue

            segments.append(TranscriptionSegment(
                index=i + 1,
                start_time_ms=int(segment.start_timestamp) * MS_PER_TICK,
                end_time_ms=int(segment.end_timestamp) * MS_PER_TICK,
                text=text,
                confidence=segment_confidence(segment),
            ))

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        return TranscriptionResult(
            text=" ".join(s.text for s in segments),
            language=self.config.language or state.language,
            segments=segments,
            processing_time_ms=processing_time_ms,
            audio_duration_ms=int(audio_duration * 1000),
        )

    def transcribe_file(
        self,
        audio_path: PathLike,
        progress_cb: Optional[ProgressCallback] = None,
        segment_cb: Optional[SegmentCallback] = None,
        abort_cb: Optional[AbortCallback] = None,
    ) -> TranscriptionResult:
        """Decode a .wav file and transcribe it.

        Raises:
            FormatError: If the path is not a .wav file or its encoding is unsupported
            AudioIOError: If the file cannot be read
        """
        ensure_wav_path(audio_path)
        debug(f"Start transcribe: {audio_path}", enabled=self.config.debug_mode)
        audio = read_file(audio_path, debug_mode=self.config.debug_mode)
        return self.transcribe_audio_data(audio, progress_cb, segment_cb, abort_cb)

    async def transcribe_async(
        self,
        audio: AudioData,
        progress_cb: Optional[ProgressCallback] = None,
        segment_cb: Optional[SegmentCallback] = None,
        abort_cb: Optional[AbortCallback] = None,
    ) -> TranscriptionResult:
        """Run transcribe_audio_data in a worker thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(self.transcribe_audio_data, audio, progress_cb, segment_cb, abort_cb),
        )

    async def transcribe_file_async(
        self,
        audio_path: PathLike,
        progress_cb: Optional[ProgressCallback] = None,
        segment_cb: Optional[SegmentCallback] = None,
        abort_cb: Optional[AbortCallback] = None,
    ) -> TranscriptionResult:
        """Run transcribe_file (decoding included) in a worker thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(self.transcribe_file, audio_path, progress_cb, segment_cb, abort_cb),
        )


# ============================================================
# Convenience Entry Points
# ============================================================

def ensure_wav_path(audio_path: PathLike) -> None:
    if Path(audio_path).suffix.lower() != ".wav":
        raise FormatError(f"Only support wav format file: {audio_path}")


def transcribe_file(
    config: TranscriberConfig,
    audio_path: PathLike,
    progress_cb: Optional[ProgressCallback] = None,
    segment_cb: Optional[SegmentCallback] = None,
    abort_cb: Optional[AbortCallback] = None,
    *,
    engine: Optional[InferenceEngine] = None,
) -> TranscriptionResult:
    """Load a transcriber for ``config`` and transcribe one file."""
    transcriber = Transcriber(config, engine=engine)
    return transcriber.transcribe_file(audio_path, progress_cb, segment_cb, abort_cb)


async def transcribe_file_async(
    config: TranscriberConfig,
    audio_path: PathLike,
    progress_cb: Optional[ProgressCallback] = None,
    segment_cb: Optional[SegmentCallback] = None,
    abort_cb: Optional[AbortCallback] = None,
    *,
    engine: Optional[InferenceEngine] = None,
) -> TranscriptionResult:
    """Async twin of transcribe_file; loading and inference both run off-loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None,
        functools.partial(
            transcribe_file, config, audio_path, progress_cb, segment_cb, abort_cb, engine=engine
        ),
    )


# ============================================================
# VAD Model Asset
# ============================================================

def bundled_silero_vad_model() -> Path:
    """Locate the Silero VAD ONNX model shipped inside faster-whisper."""
    candidates = sorted(Path(fw_utils.get_assets_path()).glob("silero_vad*.onnx"))
    if not candidates:
        raise AudioIOError("No Silero VAD model found in the faster-whisper assets")
    return candidates[-1]


def save_silero_vad_model(path: PathLike) -> Path:
    """Write the bundled Silero VAD model verbatim to ``path``.

    Returns:
        The destination path

    Raises:
        AudioIOError: If the asset is missing or the write fails
    """
    dest = Path(path)
    src = bundled_silero_vad_model()
    try:
        dest.write_bytes(src.read_bytes())
    except OSError as e:
        raise AudioIOError(f"save {dest} failed: {e}") from e
    return dest
