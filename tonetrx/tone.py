"""
Continuous-phase tone synthesis.
"""

import math

import numpy as np


class ToneGenerator:
    """
    Sine segment generator with a running phase accumulator.

    Consecutive tones join without a phase jump, so a frequency change never
    produces a click or splatters energy into the neighbouring windows.
    """

    def __init__(self, sample_rate: int):
        self.sample_rate = sample_rate

        # Phase accumulator for continuous phase
        self.phase = 0.0

    def reset_phase(self):
        """Reset phase accumulator."""
        self.phase = 0.0

    def tone(self, frequency: float, num_samples: int) -> np.ndarray:
        """
        Generate num_samples of a unit-amplitude sine at frequency.

        Starts at the current phase and leaves the accumulator where the
        segment ends.
        """
        omega = 2 * math.pi * frequency / self.sample_rate
        n = np.arange(num_samples, dtype=np.float64)
        samples = np.sin(self.phase + omega * n)

        # Wrap phase to keep it small over long transmissions
        self.phase = (self.phase + omega * num_samples) % (2 * math.pi)
        return samples

    def silence(self, num_samples: int) -> np.ndarray:
        return np.zeros(num_samples)


def apply_ramp(
    samples: np.ndarray,
    ramp_samples: int,
    fade_in: bool = True,
    fade_out: bool = True,
) -> np.ndarray:
    """
    Raised-cosine fade over the first and/or last ramp_samples.

    Returns a new array of the same length.
    """
    result = np.array(samples, dtype=np.float64)
    ramp_samples = min(ramp_samples, len(result) // 2)
    if ramp_samples <= 0:
        return result

    idx = np.arange(ramp_samples)
    ramp = 0.5 * (1.0 - np.cos(np.pi * idx / ramp_samples))
    if fade_in:
        result[:ramp_samples] *= ramp
    if fade_out:
        result[-ramp_samples:] *= ramp[::-1]
    return result
