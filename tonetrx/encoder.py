"""
Encoder - turns a byte payload into an MFSK waveform.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, Union

import numpy as np
import soundfile as sf

from . import AMPLITUDE, RAMP_DURATION
from .frame import Frame
from .profile import ProtocolConfig
from .tone import ToneGenerator, apply_ramp

# Module-level logger
_logger = logging.getLogger(__name__)


class Encoder:
    """
    MFSK encoder.

    Each symbol value v becomes one symbol_duration of a sine at
    frequency_table[v], with continuous phase from one segment to the next.
    The frame is bracketed by the start and end marker tones, and a guard
    silence separates the start marker from the length field.
    """

    def __init__(
        self,
        config: Optional[ProtocolConfig] = None,
        amplitude: float = AMPLITUDE,
        ramp_duration: float = RAMP_DURATION,
    ):
        """
        Initialize encoder.

        Args:
            config: Protocol configuration (default: ProtocolConfig())
            amplitude: Output amplitude (0.0 to 1.0)
            ramp_duration: Fade on the first and last samples (seconds)
        """
        if not 0.0 < amplitude <= 1.0:
            raise ValueError(f"amplitude must be in (0, 1], got {amplitude}")

        self.config = config if config is not None else ProtocolConfig()
        self.amplitude = amplitude
        self.ramp_duration = ramp_duration
        self.codec = self.config.codec()

    def frame(self, payload: bytes) -> Frame:
        """
        Frame a payload into symbols.

        Raises:
            EmptyPayload: payload is empty
            PayloadTooLarge: payload exceeds the length field
        """
        return self.codec.build(payload, self.config.bits_per_symbol)

    def segments(self, frame: Frame) -> Iterator[np.ndarray]:
        """
        Yield the waveform one segment at a time.

        Segments: start marker, guard, one per symbol, end marker. Phase is
        continuous across all of them.
        """
        config = self.config
        window = config.window_size
        tone = ToneGenerator(config.sample_rate)

        # Outer edges only; the start marker's trailing edge is a timing reference
        ramp = min(
            int(round(self.ramp_duration * config.sample_rate)),
            config.marker_samples(config.start_marker) // 8,
            config.marker_samples(config.end_marker) // 8,
        )

        start = tone.tone(
            config.start_marker.frequency, config.marker_samples(config.start_marker)
        )
        yield apply_ramp(start, ramp, fade_out=False) * self.amplitude

        yield tone.silence(config.guard_samples)

        for symbol in frame.symbols:
            yield tone.tone(config.frequency_table[symbol], window) * self.amplitude

        end = tone.tone(
            config.end_marker.frequency, config.marker_samples(config.end_marker)
        )
        yield apply_ramp(end, ramp, fade_in=False) * self.amplitude

    def synthesize(self, frame: Frame) -> np.ndarray:
        """Render a frame to float32 samples."""
        return np.concatenate(list(self.segments(frame))).astype(np.float32)

    def encode(self, payload: bytes) -> np.ndarray:
        """
        Encode a payload to audio samples.

        Args:
            payload: Bytes to send (1 to 2**length_bits - 1 of them)

        Returns:
            float32 samples in [-amplitude, amplitude] at config.sample_rate
        """
        frame = self.frame(payload)
        samples = self.synthesize(frame)

        _logger.debug(
            f"Encoded {len(frame.payload)} bytes as {len(frame.symbols)} symbols, "
            f"{len(samples) / self.config.sample_rate:.3f}s"
        )
        return samples

    def frame_samples(self, payload_length: int) -> int:
        """Waveform length in samples for a payload of payload_length bytes."""
        return self.config.frame_samples(payload_length)

    def encode_to_file(
        self,
        output_path: Union[str, Path],
        payload: bytes,
        lead_in: float = 0.0,
        subtype: str = "PCM_16",
    ):
        """
        Encode and save to an audio file.

        Args:
            output_path: Output WAV file path
            payload: Bytes to send
            lead_in: Silence before and after the frame (seconds)
            subtype: soundfile subtype (PCM_16, PCM_24, FLOAT, ...)
        """
        samples = self.encode(payload)
        if lead_in > 0:
            pad = np.zeros(int(round(lead_in * self.config.sample_rate)), dtype=np.float32)
            samples = np.concatenate([pad, samples, pad])

        # Save using soundfile (supports various formats)
        sf.write(
            str(output_path),
            samples,
            self.config.sample_rate,
            subtype=subtype,
        )
        _logger.info(f"Wrote {len(samples)} samples to {output_path}")
