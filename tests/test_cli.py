"""Tests for the cli module."""
import json
from unittest.mock import patch

import numpy as np
import pytest
import soundfile

from local_transcribe.cli import build_parser, main, resolve_config
from local_transcribe.errors import InferenceError, TranscriptionCancelled
from local_transcribe.models import TOOL_VERSION, ProgressStatus
from local_transcribe.transcriber import Transcriber


@pytest.fixture
def speech_wav(write_wav, silence_then_tone_fn):
    return write_wav("speech.wav", silence_then_tone_fn(1000, 2000))


def patch_engine(engine):
    """Make the CLI build its transcriber around a scripted engine."""
    return patch(
        "local_transcribe.cli.Transcriber",
        side_effect=lambda cfg: Transcriber(cfg, engine=engine),
    )


class TestParser:
    """Tests for argument parsing and config resolution."""

    def test_defaults(self):
        """Test default flag values."""
        args = build_parser().parse_args(["in.wav"])
        assert args.format == "srt"
        assert args.vad_threshold == 0.01
        assert args.t2s is False

    def test_cli_overrides_config_file(self, tmp_path, model_dir):
        """Test precedence: defaults, then config file, then CLI flags."""
        config_file = tmp_path / "cfg.json"
        config_file.write_text(json.dumps({"language": "en", "n_threads": 3}), encoding="utf-8")
        args = build_parser().parse_args([
            "in.wav", "--config", str(config_file), "--model", str(model_dir),
            "--language", "zh", "--translate", "--debug",
        ])

        cfg = resolve_config(args)

        assert cfg.language == "zh"
        assert cfg.n_threads == 3
        assert cfg.model_path == str(model_dir)
        assert cfg.translate is True
        assert cfg.debug_mode is True


class TestMainEarlyExits:
    """Tests for main paths that stop before transcription."""

    def test_version(self, capsys):
        """Test --version prints the tool version."""
        assert main(["--version"]) == 0
        assert TOOL_VERSION in capsys.readouterr().out

    def test_no_input(self, capsys):
        """Test that a missing input argument is a usage error."""
        assert main([]) == 2
        assert "No input file" in capsys.readouterr().err

    def test_input_not_found(self, tmp_path):
        """Test that a missing input file is a usage error."""
        assert main([str(tmp_path / "missing.wav")]) == 2

    def test_output_exists(self, speech_wav, model_dir, capsys):
        """Test that existing output is not overwritten without --overwrite."""
        speech_wav.with_suffix(".srt").write_text("old", encoding="utf-8")
        assert main([str(speech_wav), "--model", str(model_dir)]) == 2
        assert "--overwrite" in capsys.readouterr().err

    def test_invalid_config(self, speech_wav, tmp_path):
        """Test that validation errors exit with 2."""
        assert main([str(speech_wav), "--model", str(tmp_path / "missing-model")]) == 2

    def test_dry_run(self, speech_wav, model_dir, capsys):
        """Test --dry-run prints the resolved config without transcribing."""
        with patch("local_transcribe.cli.Transcriber") as mock_transcriber:
            assert main([str(speech_wav), "--model", str(model_dir), "--dry-run"]) == 0
        mock_transcriber.assert_not_called()
        assert '"model_path"' in capsys.readouterr().out

    def test_save_vad_model(self, tmp_path):
        """Test --save-vad-model writes the asset and exits."""
        dest = tmp_path / "vad.onnx"
        with patch("local_transcribe.cli.save_silero_vad_model", return_value=dest) as mock_save:
            assert main(["--save-vad-model", str(dest), "--quiet"]) == 0
        mock_save.assert_called_once_with(str(dest))


class TestMainRun:
    """Tests for full runs with a scripted engine."""

    def test_writes_srt(self, speech_wav, model_dir, fake_engine_cls, segment_factory):
        """Test a complete run writing SRT next to the input."""
        engine = fake_engine_cls([
            segment_factory(" Hello", 0, 150, probs=[0.9]),
            segment_factory(" world", 150, 300, probs=[0.8]),
        ])
        with patch_engine(engine):
            code = main([str(speech_wav), "--model", str(model_dir), "--quiet"])

        assert code == 0
        assert speech_wav.with_suffix(".srt").read_text(encoding="utf-8") == (
            "1\n00:00:00,000 --> 00:00:01,500\nHello\n\n"
            "2\n00:00:01,500 --> 00:00:03,000\nworld\n\n"
        )

    def test_vtt_with_filters(self, speech_wav, model_dir, tmp_path, fake_engine_cls, segment_factory):
        """Test --format, --min-confidence, --t2s and --tighten-starts together."""
        engine = fake_engine_cls([
            segment_factory("漢字", 0, 300, probs=[0.9]),
            segment_factory("noise", 0, 100, probs=[0.1]),
        ])
        out = tmp_path / "out" / "captions.vtt"
        with patch_engine(engine):
            code = main([
                str(speech_wav), "--model", str(model_dir), "-o", str(out),
                "--format", "vtt", "--min-confidence", "0.5", "--t2s",
                "--tighten-starts", "--vad-threshold", "0.1", "--quiet",
            ])

        assert code == 0
        assert out.read_text(encoding="utf-8") == (
            "WEBVTT\n\n1\n00:00:00.700 --> 00:00:03.000\n汉字\n\n"
        )

    def test_live_output(self, speech_wav, model_dir, fake_engine_cls, segment_factory, capsys):
        """Test --live prints each caption as it is recognized."""
        engine = fake_engine_cls([segment_factory("Hello", 0, 150)])
        with patch_engine(engine):
            assert main([str(speech_wav), "--model", str(model_dir), "--live", "--no-progress"]) == 0
        assert "00:00:00,000 --> 00:00:01,500" in capsys.readouterr().out

    def test_engine_failure(self, speech_wav, model_dir, fake_engine_cls, capsys):
        """Test that engine failures exit with 1."""
        engine = fake_engine_cls(error=InferenceError("boom"))
        with patch_engine(engine):
            assert main([str(speech_wav), "--model", str(model_dir), "--quiet"]) == 1
        assert "boom" in capsys.readouterr().err
        assert not speech_wav.with_suffix(".srt").exists()

    def test_cancelled(self, speech_wav, model_dir, fake_engine_cls):
        """Test that cancellation exits with 130."""
        engine = fake_engine_cls(error=TranscriptionCancelled("stop"))
        with patch_engine(engine):
            assert main([str(speech_wav), "--model", str(model_dir), "--quiet"]) == 130

    def test_converts_incompatible_input(self, tmp_path, model_dir, fake_engine_cls, segment_factory):
        """Test that other media is converted to a temporary WAV that is removed afterwards."""
        src = tmp_path / "talk.mp3"
        src.write_bytes(b"not really mp3")
        tmpdir = tmp_path / "tmp"
        tmpdir.mkdir()

        def fake_convert(input_path, output_path, cancel, progress_cb):
            soundfile.write(str(output_path), np.zeros(16000, dtype=np.int16), 16000, subtype="PCM_16")
            progress_cb(100)
            return ProgressStatus.FINISHED

        engine = fake_engine_cls([segment_factory("hi", 0, 50)])
        with patch("local_transcribe.cli.convert_to_compatible_audio", side_effect=fake_convert) as mock_convert, \
                patch_engine(engine):
            code = main([str(src), "--model", str(model_dir), "--tmpdir", str(tmpdir), "--quiet"])

        assert code == 0
        mock_convert.assert_called_once()
        assert "hi" in src.with_suffix(".srt").read_text(encoding="utf-8")
        assert list(tmpdir.iterdir()) == []

    def test_conversion_cancelled(self, tmp_path, model_dir):
        """Test that a cancelled conversion exits with 130 before loading a model."""
        src = tmp_path / "talk.mp3"
        src.write_bytes(b"x")
        with patch("local_transcribe.cli.convert_to_compatible_audio", return_value=ProgressStatus.CANCELLED), \
                patch("local_transcribe.cli.Transcriber") as mock_transcriber:
            assert main([str(src), "--model", str(model_dir), "--quiet"]) == 130
        mock_transcriber.assert_not_called()
