"""
Single-tone spectral analysis.

Only a handful of known frequencies matter per window, so each one is
measured with a Goertzel recurrence (O(N) per tone) instead of a full FFT.
The recurrence runs through scipy.signal.lfilter as the IIR filter

    s[n] = x[n] + 2cos(w) s[n-1] - s[n-2]

evaluated at the exact target frequency (no rounding to a DFT bin).

All decisions are scale invariant: a winner is accepted by its ratio to the
runner-up and by its share of the window's energy ("purity"), never by an
absolute level.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import signal


def goertzel_power(window: np.ndarray, frequency: float, sample_rate: int) -> float:
    """
    Squared DFT magnitude of window at frequency.

    Args:
        window: Audio samples
        frequency: Target frequency (Hz)
        sample_rate: Sample rate (Hz)

    Returns:
        |X(frequency)|^2
    """
    x = np.asarray(window, dtype=np.float64)
    if x.size == 0:
        return 0.0

    # Keep the resonator's state bounded regardless of input level
    scale = float(np.max(np.abs(x)))
    if scale == 0.0:
        return 0.0
    x = x / scale

    omega = 2.0 * np.pi * frequency / sample_rate
    coeff = 2.0 * np.cos(omega)

    s = signal.lfilter([1.0], [1.0, -coeff, 1.0], x)
    s1 = s[-1]
    s2 = s[-2] if x.size > 1 else 0.0

    power = s1 * s1 + s2 * s2 - coeff * s1 * s2
    return max(float(power), 0.0) * scale * scale


def magnitude(window: np.ndarray, frequency: float, sample_rate: int) -> float:
    """
    Amplitude estimate of frequency in window.

    Equals the tone's peak amplitude for a sine that completes a whole
    number of cycles in the window.
    """
    n = len(window)
    if n == 0:
        return 0.0
    return 2.0 * np.sqrt(goertzel_power(window, frequency, sample_rate)) / n


def fourier_magnitude(window: np.ndarray, frequency: float, sample_rate: int) -> float:
    """Same estimate as magnitude(), read from the nearest bin of a full FFT."""
    x = np.asarray(window, dtype=np.float64)
    n = x.size
    if n == 0:
        return 0.0
    spectrum = np.fft.rfft(x)
    k = int(0.5 + n * frequency / sample_rate)
    k = min(k, spectrum.size - 1)
    return 2.0 * float(np.abs(spectrum[k])) / n


def tone_purity(window: np.ndarray, frequency: float, sample_rate: int) -> float:
    """
    Share of the window's energy carried by frequency, in [0, 1].

    1.0 for a pure tone, roughly 2/N for white noise, 0.0 for silence.
    """
    x = np.asarray(window, dtype=np.float64)
    energy = float(np.dot(x, x))
    if energy == 0.0:
        return 0.0
    purity = 2.0 * goertzel_power(x, frequency, sample_rate) / (x.size * energy)
    return min(purity, 1.0)


class ToneAnalyzer:
    """
    Picks the dominant tone of a window among known candidates.

    A winner is only reported when it beats the runner-up by
    detection_threshold and holds at least purity_threshold of the window's
    energy; anything else (noise, silence, two tones at once) is "no
    confident symbol".
    """

    def __init__(
        self,
        sample_rate: int,
        detection_threshold: float = 2.0,
        purity_threshold: float = 0.3,
    ):
        self.sample_rate = sample_rate
        self.detection_threshold = detection_threshold
        self.purity_threshold = purity_threshold

    @classmethod
    def from_config(cls, config) -> "ToneAnalyzer":
        return cls(
            config.sample_rate,
            detection_threshold=config.detection_threshold,
            purity_threshold=config.purity_threshold,
        )

    def magnitudes(self, window: np.ndarray, candidates: Sequence[float]) -> np.ndarray:
        return np.array(
            [magnitude(window, f, self.sample_rate) for f in candidates]
        )

    def classify(self, window: np.ndarray, candidates: Sequence[float]) -> Optional[int]:
        """
        Index of the confidently dominant candidate, or None.

        Args:
            window: Audio samples
            candidates: Frequencies to test (Hz); index = returned value
        """
        if len(candidates) == 0:
            return None
        mags = self.magnitudes(window, candidates)
        return self._winner(window, candidates, mags)

    def detect(
        self,
        window: np.ndarray,
        target: float,
        candidates: Sequence[float],
    ) -> Tuple[bool, float]:
        """
        Check whether target is the confident winner among candidates.

        Returns:
            (detected, amplitude of target)
        """
        candidates = list(candidates)
        if target not in candidates:
            candidates.append(target)
        mags = self.magnitudes(window, candidates)
        index = candidates.index(target)
        winner = self._winner(window, candidates, mags)
        return winner == index, float(mags[index])

    def _winner(self, window, candidates, mags) -> Optional[int]:
        order = np.argsort(mags)[::-1]
        best = int(order[0])
        top = mags[best]
        if top <= 0.0:
            return None

        if len(order) > 1:
            runner_up = mags[order[1]]
            # runner_up of exactly zero means a perfect tone; ratio is infinite
            if runner_up > 0.0 and top / runner_up < self.detection_threshold:
                return None

        if tone_purity(window, candidates[best], self.sample_rate) < self.purity_threshold:
            return None
        return best
