"""Tests for the wav module."""
import numpy as np
import pytest

from local_transcribe.errors import AudioIOError, CompatibilityError, FormatError, ValidationError
from local_transcribe.wav import (
    AudioConfig,
    AudioData,
    check_compatible,
    is_compatible_file,
    read_file,
)


class TestAudioConfig:
    """Tests for AudioConfig."""

    def test_default_is_whisper_format(self):
        """Test that the default config is 16 kHz mono 16-bit."""
        cfg = AudioConfig()
        assert (cfg.sample_rate, cfg.channels, cfg.bit_depth) == (16000, 1, 16)
        assert cfg.is_compatible()
        assert AudioConfig.whisper_optimized() == cfg

    @pytest.mark.parametrize("sample_rate,channels,bit_depth", [
        (48000, 1, 16),
        (16000, 2, 16),
        (16000, 1, 24),
    ])
    def test_incompatible_formats(self, sample_rate, channels, bit_depth):
        """Test that any deviation from 16 kHz mono 16-bit is incompatible."""
        assert not AudioConfig(sample_rate, channels, bit_depth).is_compatible()

    def test_zero_channels_rejected(self):
        """Test that a config needs at least one channel."""
        with pytest.raises(ValidationError):
            AudioConfig(16000, 0, 16)


class TestAudioData:
    """Tests for AudioData."""

    def test_frame_count_and_duration(self):
        """Test frame count and duration for interleaved stereo."""
        audio = AudioData(np.zeros(32000), AudioConfig(16000, 2, 16))
        assert audio.frame_count() == 16000
        assert audio.duration() == pytest.approx(1.0)

    def test_empty_duration(self):
        """Test that an empty buffer has zero duration."""
        audio = AudioData([], AudioConfig())
        assert audio.frame_count() == 0
        assert audio.duration() == 0.0

    def test_samples_are_copied(self):
        """Test that construction does not alias the caller's buffer."""
        src = np.array([0.1, 0.2], dtype=np.float32)
        audio = AudioData(src, AudioConfig())
        src[0] = 0.9
        assert audio.samples[0] == pytest.approx(0.1)

    def test_to_mono_averages_channels(self):
        """Test that to_mono averages each frame's channels."""
        audio = AudioData([0.2, 0.4, -0.6, 0.0], AudioConfig(16000, 2, 16))
        mono = audio.to_mono()
        assert mono.config.channels == 1
        assert mono.config.sample_rate == 16000
        np.testing.assert_allclose(mono.samples, [0.3, -0.3], atol=1e-6)

    def test_to_mono_three_channels(self):
        """Test downmixing three channels."""
        audio = AudioData([0.3, 0.6, 0.9], AudioConfig(16000, 3, 16))
        np.testing.assert_allclose(audio.to_mono().samples, [0.6], atol=1e-6)

    def test_to_mono_on_mono_is_equal_copy(self):
        """Test that mono input returns an equal but independent buffer."""
        audio = AudioData([0.1, -0.1], AudioConfig())
        mono = audio.to_mono()
        np.testing.assert_array_equal(mono.samples, audio.samples)
        mono.samples[0] = 0.5
        assert audio.samples[0] == pytest.approx(0.1)

    def test_to_mono_pads_partial_frame(self):
        """Test that a trailing partial frame treats missing channels as silence."""
        audio = AudioData([0.2, 0.4, 0.6], AudioConfig(16000, 2, 16))
        mono = audio.to_mono()
        np.testing.assert_allclose(mono.samples, [0.3, 0.3], atol=1e-6)

    def test_normalize_scales_peak_to_one(self):
        """Test that normalize makes the peak exactly 1.0."""
        audio = AudioData([0.1, -0.25, 0.2], AudioConfig())
        audio.normalize()
        assert float(np.max(np.abs(audio.samples))) == pytest.approx(1.0)
        np.testing.assert_allclose(audio.samples, [0.4, -1.0, 0.8], atol=1e-6)

    def test_normalize_noop_cases(self):
        """Test that normalize leaves empty, silent and peak-normalized buffers alone."""
        empty = AudioData([], AudioConfig())
        empty.normalize()
        assert empty.samples.size == 0

        silent = AudioData([0.0, 0.0], AudioConfig())
        silent.normalize()
        np.testing.assert_array_equal(silent.samples, [0.0, 0.0])

        peaked = AudioData([0.5, -1.0], AudioConfig())
        peaked.normalize()
        np.testing.assert_array_equal(peaked.samples, np.array([0.5, -1.0], dtype=np.float32))

    def test_apply_gain_scales(self):
        """Test that +6.0206 dB roughly doubles the samples."""
        audio = AudioData([0.1, -0.2], AudioConfig())
        audio.apply_gain(20 * np.log10(2.0))
        np.testing.assert_allclose(audio.samples, [0.2, -0.4], atol=1e-6)

    def test_apply_gain_clamps(self):
        """Test that gain never produces samples outside [-1, 1]."""
        audio = AudioData(np.linspace(-1.0, 1.0, 101), AudioConfig())
        audio.apply_gain(24.0)
        assert float(audio.samples.max()) <= 1.0
        assert float(audio.samples.min()) >= -1.0
        assert audio.samples[0] == -1.0
        assert audio.samples[-1] == 1.0

    def test_multichannel_48k_stays_incompatible_after_downmix(self):
        """Test that downmixing does not fix a wrong sample rate."""
        samples = np.zeros(48000 * 3, dtype=np.float32)
        audio = AudioData(samples, AudioConfig(48000, 3, 16))
        mono = audio.to_mono()
        assert mono.config.channels == 1
        assert not mono.is_compatible()


class TestReadFile:
    """Tests for read_file."""

    def test_read_pcm16(self, write_wav):
        """Test that 16-bit samples are divided by 32767."""
        path = write_wav("a.wav", np.array([16384, -32767, 0], dtype=np.int16))
        audio = read_file(path)
        assert audio.config == AudioConfig(16000, 1, 16)
        np.testing.assert_allclose(audio.samples, [16384 / 32767, -1.0, 0.0], atol=1e-6)

    def test_read_pcm16_stereo_is_interleaved(self, write_wav):
        """Test that multi-channel data comes back interleaved."""
        data = np.array([[1000, -1000], [2000, -2000]], dtype=np.int16)
        audio = read_file(write_wav("s.wav", data, sample_rate=44100))
        assert audio.config.channels == 2
        assert audio.config.sample_rate == 44100
        np.testing.assert_allclose(
            audio.samples * 32767, [1000, -1000, 2000, -2000], atol=1e-2
        )

    def test_read_pcm24(self, write_wav):
        """Test that 24-bit samples are divided by 8388607."""
        data = np.array([8388607 << 8, 4194304 << 8], dtype=np.int32)
        audio = read_file(write_wav("a24.wav", data, subtype="PCM_24"))
        assert audio.config.bit_depth == 24
        np.testing.assert_allclose(audio.samples, [1.0, 4194304 / 8388607], atol=1e-6)

    def test_read_pcm32(self, write_wav):
        """Test that 32-bit samples are divided by 2147483647."""
        data = np.array([2147483647, -1073741824], dtype=np.int32)
        audio = read_file(write_wav("a32.wav", data, subtype="PCM_32"))
        assert audio.config.bit_depth == 32
        np.testing.assert_allclose(audio.samples, [1.0, -0.5], atol=1e-6)

    def test_read_float_passthrough(self, write_wav):
        """Test that float samples pass through unchanged."""
        data = np.array([0.25, -0.5, 0.125], dtype=np.float32)
        audio = read_file(write_wav("f.wav", data, subtype="FLOAT"))
        np.testing.assert_array_equal(audio.samples, data)

    def test_unsupported_bit_depth(self, write_wav):
        """Test that 8-bit PCM is rejected with FormatError."""
        path = write_wav("u8.wav", np.zeros(10, dtype=np.int16), subtype="PCM_U8")
        with pytest.raises(FormatError):
            read_file(path)

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises AudioIOError."""
        with pytest.raises(AudioIOError, match="not found"):
            read_file(tmp_path / "missing.wav")

    def test_not_audio(self, tmp_path):
        """Test that a non-audio file raises AudioIOError."""
        path = tmp_path / "junk.wav"
        path.write_text("not a wav file", encoding="utf-8")
        with pytest.raises(AudioIOError):
            read_file(path)


class TestCheckCompatible:
    """Tests for check_compatible and is_compatible_file."""

    def test_compatible_file(self, write_wav):
        """Test that a 16 kHz mono 16-bit file passes."""
        path = write_wav("ok.wav", np.zeros(160, dtype=np.int16))
        assert check_compatible(path).is_compatible()
        assert is_compatible_file(path)

    def test_sample_rate_mismatch(self, write_wav):
        """Test that the sample rate is reported first."""
        path = write_wav("r.wav", np.zeros((10, 2), dtype=np.int16), sample_rate=48000)
        with pytest.raises(CompatibilityError, match="Sample rate"):
            check_compatible(path)
        assert not is_compatible_file(path)

    def test_channel_mismatch(self, write_wav):
        """Test that a stereo file fails on channels."""
        path = write_wav("c.wav", np.zeros((10, 2), dtype=np.int16))
        with pytest.raises(CompatibilityError, match="Channel"):
            check_compatible(path)

    def test_bit_depth_mismatch(self, write_wav):
        """Test that float PCM fails on format."""
        path = write_wav("b.wav", np.zeros(10, dtype=np.float32), subtype="FLOAT")
        with pytest.raises(CompatibilityError, match="16 bit"):
            check_compatible(path)

    def test_missing_file_is_not_compatible(self, tmp_path):
        """Test that a missing file is reported as incompatible."""
        assert not is_compatible_file(tmp_path / "nope.wav")


class TestDownmixThenCheck:
    """End-to-end: decode, downmix, check compatibility."""

    def test_three_channel_48k_file(self, write_wav):
        """Test that a 3-channel 48 kHz PCM file stays incompatible after downmix."""
        data = np.tile(np.array([[1000, 2000, 3000]], dtype=np.int16), (480, 1))
        audio = read_file(write_wav("surround.wav", data, sample_rate=48000))
        assert audio.frame_count() == 480

        mono = audio.to_mono()

        assert mono.config == AudioConfig(48000, 1, 16)
        np.testing.assert_allclose(mono.samples, 2000 / 32767, atol=1e-5)
        assert not mono.is_compatible()
