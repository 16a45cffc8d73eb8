"""
Tests for the band-limiting pre-filter.
"""

import numpy as np
import pytest

from conftest import padded
from tonetrx import Decoder, Encoder, FrameDecoded, ProtocolConfig, get_preset
from tonetrx.filters import BandpassFilter

SR = 44100


def sine(frequency, n, amplitude=1.0):
    return amplitude * np.sin(2 * np.pi * frequency * np.arange(n) / SR)


def rms(x):
    return float(np.sqrt(np.mean(np.square(x))))


class TestBandpassFilter:
    """Test filter response and streaming state."""

    def test_passband(self):
        """Test in-band tones pass at full level."""
        bpf = BandpassFilter(200.0, 18000.0, SR)
        out = bpf.process(sine(1000.0, SR))
        assert rms(out[4410:]) == pytest.approx(rms(sine(1000.0, SR)), rel=0.05)

    def test_low_frequency_rejected(self):
        """Test hum below the band is attenuated."""
        bpf = BandpassFilter(200.0, 18000.0, SR)
        out = bpf.process(sine(50.0, SR))
        assert rms(out[22050:]) < 0.05 * rms(sine(50.0, SR))

    def test_high_frequency_rejected(self):
        """Test tones above the band are attenuated."""
        bpf = BandpassFilter(200.0, 3000.0, SR)
        out = bpf.process(sine(12000.0, SR))
        assert rms(out[4410:]) < 0.05

    def test_chunked_matches_whole(self):
        """Test filter state carries across chunks."""
        x = np.random.default_rng(0).normal(0, 1, 10000)

        whole = BandpassFilter(200.0, 5000.0, SR).process(x)

        bpf = BandpassFilter(200.0, 5000.0, SR)
        chunks = [bpf.process(x[i:i + 333]) for i in range(0, len(x), 333)]
        np.testing.assert_allclose(np.concatenate(chunks), whole, atol=1e-12)

    def test_reset(self):
        """Test reset() clears the filter state."""
        x = sine(1000.0, 2000)
        bpf = BandpassFilter(200.0, 5000.0, SR)
        first = bpf.process(x)
        bpf.reset()
        np.testing.assert_allclose(bpf.process(x), first)

    def test_highpass_when_upper_edge_at_nyquist(self):
        """Test the design falls back to high-pass near Nyquist."""
        assert BandpassFilter(200.0, 22000.0, SR).sos.shape[0] == 2
        assert BandpassFilter(200.0, 18000.0, SR).sos.shape[0] == 4

    def test_from_config(self):
        """Test the band follows the profile."""
        config = get_preset("ultrasonic")
        bpf = BandpassFilter.from_config(config)
        assert (bpf.low, bpf.high, bpf.sample_rate) == (18000.0, 21000.0, 48000)

    def test_invalid_band(self):
        """Test an inverted band is rejected."""
        with pytest.raises(ValueError):
            BandpassFilter(5000.0, 1000.0, SR)

    def test_empty_chunk(self):
        """Test empty chunks pass through."""
        assert BandpassFilter(200.0, 5000.0, SR).process(np.zeros(0)).size == 0


class TestDecoderBandpass:
    """Mains hum swamps the tones unless it is filtered out."""

    def hummed_frame(self, config):
        samples = padded(Encoder(config).encode(b"hum"), before=4410, after=4410)
        return samples + sine(50.0, len(samples), amplitude=2.0)

    def test_hum_blocks_detection_without_filter(self):
        """Test strong hum defeats the unfiltered decoder."""
        config = ProtocolConfig()
        events = Decoder(config).process(self.hummed_frame(config))
        assert not any(isinstance(e, FrameDecoded) for e in events)

    def test_filter_removes_hum(self):
        """Test the band-pass decoder recovers the frame."""
        config = ProtocolConfig()
        events = Decoder(config, bandpass=True).process(self.hummed_frame(config))
        assert [e.payload for e in events] == [b"hum"]
