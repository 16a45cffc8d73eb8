"""
Band-limiting pre-filter for received audio.

Removes rumble below min_frequency and hiss above max_frequency before tone
analysis. Filter state is carried between chunks, so feeding a stream in
pieces gives the same output as filtering it in one go.
"""

import numpy as np
from scipy import signal


class BandpassFilter:
    """
    Streaming Butterworth band-pass (second-order sections).

    Falls back to a high-pass when the upper edge sits at or above Nyquist,
    which is the usual case for ultrasonic profiles.
    """

    def __init__(
        self,
        low: float,
        high: float,
        sample_rate: int,
        order: int = 4,
    ):
        """
        Args:
            low: Lower band edge (Hz)
            high: Upper band edge (Hz)
            sample_rate: Sample rate (Hz)
            order: Butterworth order
        """
        nyquist = sample_rate / 2
        if not 0 < low < high:
            raise ValueError(f"invalid band {low}-{high} Hz")

        self.low = low
        self.high = high
        self.sample_rate = sample_rate

        if high >= 0.99 * nyquist:
            self.sos = signal.butter(order, low, btype="highpass", fs=sample_rate, output="sos")
        else:
            self.sos = signal.butter(
                order, [low, high], btype="bandpass", fs=sample_rate, output="sos"
            )
        self.reset()

    @classmethod
    def from_config(cls, config, order: int = 4) -> "BandpassFilter":
        return cls(config.min_frequency, config.max_frequency, config.sample_rate, order)

    def reset(self):
        """Reset filter state."""
        self.zi = np.zeros((self.sos.shape[0], 2))

    def process(self, samples: np.ndarray) -> np.ndarray:
        """Filter the next chunk of the stream."""
        samples = np.asarray(samples, dtype=np.float64)
        if samples.size == 0:
            return samples
        filtered, self.zi = signal.sosfilt(self.sos, samples, zi=self.zi)
        return filtered
