"""Shared fixtures for the Local Transcribe tests."""
from typing import List, Optional

import numpy as np
import pytest
import soundfile

from local_transcribe.engine import (
    EngineSegment,
    EngineToken,
    InferenceEngine,
    InferenceParams,
    InferenceState,
    SegmentCallbackData,
)


class FakeEngine(InferenceEngine):
    """Scripted engine that replays a fixed list of segments."""

    def __init__(
        self,
        segments: Optional[List[EngineSegment]] = None,
        language: Optional[str] = "en",
        error: Optional[Exception] = None,
    ):
        self.segments = segments or []
        self.language = language
        self.error = error
        self.calls = []

    def infer(self, samples, params: InferenceParams, progress_cb=None, segment_cb=None, abort_cb=None):
        self.calls.append((np.array(samples, copy=True), params))
        if self.error is not None:
            raise self.error

        state = InferenceState(language=self.language)
        total = len(self.segments)
        for i, seg in enumerate(self.segments):
            if abort_cb is not None and abort_cb():
                state.aborted = True
                return state
            state.segments.append(seg)
            if segment_cb is not None:
                segment_cb(SegmentCallbackData(i, seg.start_timestamp, seg.end_timestamp, seg.text))
            if progress_cb is not None:
                progress_cb((i + 1) * 100 // total)
        return state


def make_segment(text, start, end, probs=None, n_tokens=None):
    """Build an EngineSegment; probs=None with n_tokens gives tokens without probability."""
    if probs is not None:
        tokens = [EngineToken(probability=p) for p in probs]
    else:
        tokens = [EngineToken() for _ in range(n_tokens or 0)]
    return EngineSegment(text=text, start_timestamp=start, end_timestamp=end, tokens=tokens)


@pytest.fixture
def fake_engine_cls():
    return FakeEngine


@pytest.fixture
def segment_factory():
    return make_segment


@pytest.fixture
def write_wav(tmp_path):
    """Write samples to a WAV file under tmp_path and return its path."""
    def _write(name, data, sample_rate=16000, subtype="PCM_16"):
        path = tmp_path / name
        soundfile.write(str(path), np.asarray(data), sample_rate, subtype=subtype)
        return path
    return _write


@pytest.fixture
def model_dir(tmp_path):
    """An existing directory standing in for a model path."""
    d = tmp_path / "model"
    d.mkdir()
    return d


def silence_then_tone(silence_ms, tone_ms, amplitude=0.5, sample_rate=16000):
    silence = np.zeros(int(sample_rate * silence_ms / 1000), dtype=np.float32)
    tone = np.full(int(sample_rate * tone_ms / 1000), amplitude, dtype=np.float32)
    return np.concatenate([silence, tone])


@pytest.fixture
def silence_then_tone_fn():
    return silence_then_tone
