"""
Tests for tone synthesis and the encoder.
"""

import numpy as np
import pytest
import soundfile as sf

from tonetrx import EmptyPayload, Encoder, PayloadTooLarge, ProtocolConfig, ToneAnalyzer
from tonetrx.tone import ToneGenerator, apply_ramp


class TestToneGenerator:
    """Test continuous-phase synthesis."""

    def test_continuous_phase(self):
        """Two segments join exactly like one long segment."""
        split = ToneGenerator(44100)
        joined = np.concatenate([split.tone(1000.0, 37), split.tone(1000.0, 63)])

        whole = ToneGenerator(44100).tone(1000.0, 100)
        np.testing.assert_allclose(joined, whole, atol=1e-9)

    def test_no_jump_at_frequency_change(self):
        """Test symbol boundaries are phase continuous."""
        gen = ToneGenerator(44100)
        samples = np.concatenate([gen.tone(1000.0, 1234), gen.tone(2500.0, 1234)])

        # Largest possible step for a unit sine at 2500 Hz
        max_step = 2 * np.pi * 2500.0 / 44100
        assert np.max(np.abs(np.diff(samples))) <= max_step + 1e-9

    def test_reset_phase(self):
        """Test reset_phase() restarts at zero."""
        gen = ToneGenerator(8000)
        gen.tone(1000.0, 3)
        assert gen.phase != 0.0
        gen.reset_phase()
        assert gen.tone(1000.0, 1)[0] == 0.0

    def test_silence(self):
        """Test silence is all zeros."""
        assert not np.any(ToneGenerator(8000).silence(10))


class TestRamp:
    """Test edge fades."""

    def test_ramp_edges(self):
        """Test both edges fade and the middle is untouched."""
        ramped = apply_ramp(np.ones(100), 10)
        assert ramped[0] == 0.0
        assert ramped[-1] < 0.1
        assert np.all(ramped[10:90] == 1.0)

    def test_fade_in_only(self):
        """Test fading in only."""
        ramped = apply_ramp(np.ones(100), 10, fade_out=False)
        assert ramped[0] == 0.0
        assert ramped[-1] == 1.0

    def test_returns_copy(self):
        """Test the input array is not modified."""
        samples = np.ones(20)
        apply_ramp(samples, 5)
        assert np.all(samples == 1.0)


class TestEncoder:
    """Test frame synthesis."""

    def test_encoder_init(self):
        """Test encoder initialization."""
        encoder = Encoder()
        assert encoder.config == ProtocolConfig()
        assert encoder.amplitude == 0.7

    def test_invalid_amplitude(self):
        """Test amplitude outside (0, 1] is rejected."""
        with pytest.raises(ValueError):
            Encoder(amplitude=0.0)
        with pytest.raises(ValueError):
            Encoder(amplitude=1.5)

    def test_two_byte_waveform_length(self):
        """Start marker, guard, 24 symbols, end marker at 44.1 kHz."""
        samples = Encoder().encode(bytes([0x41, 0x42]))
        assert len(samples) == 8820 + 2205 + 24 * 4410 + 8820
        assert len(samples) == Encoder().frame_samples(2)
        assert samples.dtype == np.float32

    @pytest.mark.parametrize("length", [1, 3, 17, 100])
    def test_length_matches_config(self, fast_config, length):
        """Test waveform length matches frame_samples()."""
        encoder = Encoder(fast_config)
        assert len(encoder.encode(bytes(length))) == fast_config.frame_samples(length)

    def test_amplitude(self):
        """Test peak level follows the amplitude."""
        samples = Encoder(amplitude=0.5).encode(b"x")
        assert np.max(np.abs(samples)) <= 0.5 + 1e-6
        assert np.max(np.abs(samples)) > 0.49

    def test_empty_payload(self):
        """Test empty payloads are rejected."""
        with pytest.raises(EmptyPayload):
            Encoder().encode(b"")

    def test_payload_too_large(self):
        """Test payloads the length field cannot hold."""
        config = ProtocolConfig(length_bits=4)
        with pytest.raises(PayloadTooLarge):
            Encoder(config).encode(bytes(16))

    def test_layout(self, fast_config):
        """Each segment carries the tone it should."""
        encoder = Encoder(fast_config)
        frame = encoder.frame(b"\x1b")
        samples = encoder.synthesize(frame)

        analyzer = ToneAnalyzer.from_config(fast_config)
        alphabet = fast_config.alphabet
        w = fast_config.window_size
        marker = fast_config.marker_samples(fast_config.start_marker)
        guard = fast_config.guard_samples

        # Unramped middle of the start marker
        start_window = samples[marker // 2 - w // 2:marker // 2 + w // 2]
        assert analyzer.classify(start_window, alphabet) == alphabet.index(500.0)

        assert not np.any(samples[marker:marker + guard])

        offset = marker + guard
        for i, symbol in enumerate(frame.symbols):
            window = samples[offset + i * w:offset + (i + 1) * w]
            assert analyzer.classify(window, fast_config.frequency_table) == symbol

        end_window = samples[-marker:][marker // 2 - w // 2:marker // 2 + w // 2]
        assert analyzer.classify(end_window, alphabet) == alphabet.index(3000.0)

    def test_outer_edges_ramped(self):
        """Test the waveform starts and ends near zero."""
        samples = Encoder().encode(b"x")
        assert abs(samples[0]) < 1e-6
        assert abs(samples[-1]) < 0.01

    def test_deterministic(self):
        """Test the same payload gives the same waveform."""
        encoder = Encoder()
        np.testing.assert_array_equal(encoder.encode(b"same"), encoder.encode(b"same"))

    def test_encode_to_file(self, tmp_path):
        """Test writing a frame with lead-in to WAV."""
        output = tmp_path / "frame.wav"
        encoder = Encoder()
        encoder.encode_to_file(output, b"hi", lead_in=0.5)

        data, sr = sf.read(str(output))
        assert sr == 44100
        assert len(data) == encoder.frame_samples(2) + 2 * 22050
        assert not np.any(data[:22050])
