"""
Shared fixtures.

Most decoder tests run on a small 8 kHz profile with 10 ms symbols so that
long payloads stay cheap; the full 44.1 kHz default profile is used where
exact numbers matter.
"""

import numpy as np
import pytest

from tonetrx import Decoder, Encoder, ProtocolConfig


FAST_PROFILE = dict(
    sample_rate=8000,
    symbol_duration=0.01,
    frequency_table=(1000.0, 1500.0, 2000.0, 2500.0),
    start_marker=(500.0, 0.02),
    end_marker=(3000.0, 0.02),
    min_frequency=200.0,
    max_frequency=3900.0,
    guard_duration=0.005,
)


@pytest.fixture
def fast_config():
    return ProtocolConfig(**FAST_PROFILE)


@pytest.fixture
def default_config():
    return ProtocolConfig()


@pytest.fixture
def fast_encoder(fast_config):
    return Encoder(fast_config)


def padded(samples, before=0, after=400):
    """Surround a waveform with silence."""
    return np.concatenate([np.zeros(before), samples, np.zeros(after)])


def decode_all(config, samples, chunk_size=None, **decoder_kwargs):
    """Run a fresh decoder over samples and collect every event."""
    decoder = Decoder(config, **decoder_kwargs)
    if chunk_size is None:
        return decoder.process(samples)
    events = []
    for i in range(0, len(samples), chunk_size):
        events.extend(decoder.process(samples[i:i + chunk_size]))
    return events
