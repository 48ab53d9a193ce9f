#!/usr/bin/env python3
"""Speech inference capability for Local Transcribe.

The transcriber talks to the recognizer only through ``InferenceEngine``:
one blocking ``infer`` call with three callback channels (progress,
provisional per-segment data, abort poll) that returns the finalized
segment list. ``FasterWhisperEngine`` implements it on top of
faster-whisper; tests inject scripted engines instead.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Tuple

import numpy as np
from faster_whisper import WhisperModel

from .errors import InferenceError
from .logging_utils import debug, log


# One engine tick is 10 ms.
MS_PER_TICK = 10

ProgressCallback = Callable[[int], None]
AbortCallback = Callable[[], bool]


def seconds_to_ticks(seconds: float) -> int:
    return int(round(float(seconds) * 1000 / MS_PER_TICK))


# ============================================================
# Engine Data Types
# ============================================================

@dataclass
class InferenceParams:
    """Per-call decoding parameters handed to the engine."""
    n_threads: int = 4
    translate: bool = False
    temperature: float = 0.0
    language: Optional[str] = None
    token_timestamps: bool = True
    initial_prompt: Optional[str] = None
    max_segment_length: Optional[int] = None
    vad_model_path: Optional[str] = None
    debug_mode: bool = False


@dataclass(frozen=True)
class SegmentCallbackData:
    """Provisional data for one segment, emitted while inference runs.

    Attributes:
        segment: 0-based segment number
        start_timestamp: Start in ticks
        end_timestamp: End in ticks
        text: Raw segment text
    """
    segment: int
    start_timestamp: int
    end_timestamp: int
    text: str


SegmentCallback = Callable[[SegmentCallbackData], None]


@dataclass(frozen=True)
class EngineToken:
    """A decoded token. ``probability`` is None when the engine cannot report it."""
    text: str = ""
    probability: Optional[float] = None


@dataclass
class EngineSegment:
    """A finalized segment as reported by the engine (timestamps in ticks)."""
    text: str
    start_timestamp: int
    end_timestamp: int
    tokens: List[EngineToken] = field(default_factory=list)

    def n_tokens(self) -> int:
        return len(self.tokens)

    def get_token(self, index: int) -> Optional[EngineToken]:
        if 0 <= index < len(self.tokens):
            return self.tokens[index]
        return None


@dataclass
class InferenceState:
    """Authoritative engine output, available after ``infer`` returns.

    Attributes:
        segments: Finalized segments in order
        language: Language used or detected by the engine
        aborted: True if the abort poll stopped inference early
    """
    segments: List[EngineSegment] = field(default_factory=list)
    language: Optional[str] = None
    aborted: bool = False

    def full_n_segments(self) -> int:
        return len(self.segments)

    def get_segment(self, index: int) -> Optional[EngineSegment]:
        if 0 <= index < len(self.segments):
            return self.segments[index]
        return None


# ============================================================
# Engine Interface
# ============================================================

class InferenceEngine(abc.ABC):
    """A loaded speech recognizer.

    Implementations run callbacks synchronously on the inference thread.
    """

    @abc.abstractmethod
    def infer(
        self,
        samples: np.ndarray,
        params: InferenceParams,
        progress_cb: Optional[ProgressCallback] = None,
        segment_cb: Optional[SegmentCallback] = None,
        abort_cb: Optional[AbortCallback] = None,
    ) -> InferenceState:
        """Run inference over 16 kHz mono float32 samples.

        Raises:
            InferenceError: If the engine fails
        """


# ============================================================
# faster-whisper
# ============================================================

def init_whisper_model(
    model_path: str,
    device: str,               # auto|cpu|cuda
    compute_type: Optional[str],
    cpu_threads: int,
    quiet: bool,
) -> Tuple[WhisperModel, str, str]:
    """Initialize a faster-whisper model on the best available device.

    Args:
        model_path: Model directory (or faster-whisper model name)
        device: Device selection: "auto", "cpu", or "cuda"
        compute_type: Explicit compute type, or None for the device default
        cpu_threads: Threads used on CPU
        quiet: If True, suppress log messages

    Returns:
        Tuple of (model, device_used, compute_type_used)

    Raises:
        InferenceError: If the model cannot be loaded
    """
    def load(dev: str, default_compute: str) -> Tuple[WhisperModel, str, str]:
        ct = compute_type or default_compute
        return WhisperModel(model_path, device=dev, compute_type=ct, cpu_threads=cpu_threads), dev, ct

    try:
        if device == "cpu":
            return load("cpu", "int8")

        if device == "cuda":
            m = load("cuda", "float16")
            log("   Using device=cuda", quiet=quiet)
            return m

        # auto
        try:
            m = load("cuda", "float16")
            log("   CUDA available: using device=cuda", quiet=quiet)
            return m
        except Exception as e:
            log(f"   CUDA not available; using CPU. Reason: {e}", quiet=quiet)
            return load("cpu", "int8")
    except Exception as e:
        raise InferenceError(f"Load Whisper model error: {e}", engine_message=str(e)) from e


class FasterWhisperEngine(InferenceEngine):
    """InferenceEngine backed by a faster-whisper ``WhisperModel``.

    Word probabilities stand in for token probabilities. When the model
    returns no words for a segment, its tokens carry no probability.
    """

    def __init__(self, model: Any, device_used: str = "cpu", compute_type_used: str = "int8"):
        self.model = model
        self.device_used = device_used
        self.compute_type_used = compute_type_used

    @classmethod
    def load(
        cls,
        model_path: str,
        *,
        device: str = "auto",
        compute_type: Optional[str] = None,
        cpu_threads: int = 0,
        quiet: bool = True,
    ) -> "FasterWhisperEngine":
        model, device_used, compute_type_used = init_whisper_model(
            model_path, device, compute_type, cpu_threads, quiet
        )
        return cls(model, device_used, compute_type_used)

    def infer(
        self,
        samples: np.ndarray,
        params: InferenceParams,
        progress_cb: Optional[ProgressCallback] = None,
        segment_cb: Optional[SegmentCallback] = None,
        abort_cb: Optional[AbortCallback] = None,
    ) -> InferenceState:
        kwargs = {
            "language": params.language,
            "task": "translate" if params.translate else "transcribe",
            "temperature": params.temperature,
            "word_timestamps": params.token_timestamps,
            "initial_prompt": params.initial_prompt,
            "vad_filter": params.vad_model_path is not None,
        }
        try:
            segments_iter, info = self.model.transcribe(samples, **kwargs)
        except Exception as e:
            raise InferenceError(f"Whisper transcribe failed: {e}", engine_message=str(e)) from e

        debug(
            f"faster-whisper started: language={info.language} duration={info.duration:.2f}s",
            enabled=params.debug_mode,
        )

        state = InferenceState(language=info.language)
        duration = float(info.duration or 0.0)
        last_pct = 0
        it = iter(segments_iter)
        idx = 0

        while True:
            if abort_cb is not None and abort_cb():
                state.aborted = True
                break
            seg = self._next_segment(it)
            if seg is None:
                break

            engine_seg = self._to_engine_segment(seg)
            state.segments.append(engine_seg)

            if segment_cb is not None:
                segment_cb(SegmentCallbackData(
                    segment=idx,
                    start_timestamp=engine_seg.start_timestamp,
                    end_timestamp=engine_seg.end_timestamp,
                    text=seg.text,
                ))

            if progress_cb is not None and duration > 0:
                pct = min(100, max(last_pct, int(float(seg.end) / duration * 100)))
                if pct != last_pct:
                    last_pct = pct
                    progress_cb(pct)
            idx += 1

        if progress_cb is not None and not state.aborted and last_pct < 100:
            progress_cb(100)

        return state

    @staticmethod
    def _next_segment(it: Iterator[Any]) -> Optional[Any]:
        """Decode the next segment, or return None when the stream is done.

        faster-whisper decodes lazily, so engine errors surface here rather
        than in ``transcribe``.
        """
        try:
            return next(it)
        except StopIteration:
            return None
        except Exception as e:
            raise InferenceError(f"Whisper transcribe failed: {e}", engine_message=str(e)) from e

    @staticmethod
    def _to_engine_segment(seg: Any) -> EngineSegment:
        words = getattr(seg, "words", None) or []
        if words:
            tokens = [EngineToken(text=w.word, probability=float(w.probability)) for w in words]
        else:
            tokens = [EngineToken() for _ in (getattr(seg, "tokens", None) or [])]
        return EngineSegment(
            text=seg.text,
            start_timestamp=seconds_to_ticks(seg.start),
            end_timestamp=seconds_to_ticks(seg.end),
            tokens=tokens,
        )
