"""
Protocol configuration.

A ProtocolConfig describes the acoustic alphabet shared by a transmitter and
a receiver: timing, data tones, marker tones, band limits and detection
tolerances. It is validated once, at construction, and is immutable after
that, so any number of encoders and decoders can share one instance.
"""

import itertools
import json
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from . import (
    SAMPLE_RATE,
    SYMBOL_DURATION,
    GUARD_DURATION,
    FREQUENCY_TABLE,
    START_MARKER_FREQ,
    END_MARKER_FREQ,
    MARKER_DURATION,
    MIN_FREQUENCY,
    MAX_FREQUENCY,
    DETECTION_THRESHOLD,
    PURITY_THRESHOLD,
    MARKER_SUSTAIN,
    MARKER_RETRIES,
    SEARCH_STEP,
    LENGTH_BITS,
    CHECKSUM,
)
from .errors import (
    BandwidthViolation,
    ConfigError,
    FrequencyCollision,
    InsufficientSeparation,
    NonIntegralWindow,
    TableSizeNotPowerOfTwo,
)
from .frame import CHECKSUMS, FrameCodec

# Tolerance when checking that a duration maps to whole samples
_WINDOW_EPSILON = 1e-6


@dataclass(frozen=True)
class Marker:
    """A reserved tone: frequency (Hz) held for duration (seconds)."""

    frequency: float
    duration: float


@dataclass(frozen=True)
class ProtocolConfig:
    """
    Validated description of the acoustic protocol.

    All frequencies (data and markers) must be pairwise separated by at least
    2 / symbol_duration, which is twice the frequency resolution of one
    symbol window. Every duration must map to a whole number of samples.
    """

    sample_rate: int = SAMPLE_RATE
    symbol_duration: float = SYMBOL_DURATION
    frequency_table: Tuple[float, ...] = FREQUENCY_TABLE
    start_marker: Marker = field(
        default_factory=lambda: Marker(START_MARKER_FREQ, MARKER_DURATION)
    )
    end_marker: Marker = field(
        default_factory=lambda: Marker(END_MARKER_FREQ, MARKER_DURATION)
    )
    min_frequency: float = MIN_FREQUENCY
    max_frequency: float = MAX_FREQUENCY
    detection_threshold: float = DETECTION_THRESHOLD
    purity_threshold: float = PURITY_THRESHOLD
    guard_duration: float = GUARD_DURATION
    marker_sustain: float = MARKER_SUSTAIN
    marker_retries: int = MARKER_RETRIES
    search_step: float = SEARCH_STEP
    length_bits: int = LENGTH_BITS
    checksum: str = CHECKSUM

    def __post_init__(self):
        # Accept lists and (frequency, duration) pairs from callers
        object.__setattr__(
            self, "frequency_table", tuple(float(f) for f in self.frequency_table)
        )
        for name in ("start_marker", "end_marker"):
            marker = getattr(self, name)
            if not isinstance(marker, Marker):
                if isinstance(marker, dict):
                    marker = Marker(**marker)
                else:
                    marker = Marker(*marker)
                object.__setattr__(self, name, marker)

        self.validate()

    # -- validation -------------------------------------------------------

    def validate(self) -> None:
        """
        Check every invariant of the configuration.

        Raises:
            ConfigError (or one of its subclasses) on the first violation.
        """
        if int(self.sample_rate) != self.sample_rate or self.sample_rate <= 0:
            raise ConfigError(f"sample_rate must be a positive integer, got {self.sample_rate!r}")
        if self.symbol_duration <= 0:
            raise ConfigError(f"symbol_duration must be positive, got {self.symbol_duration}")

        table_size = len(self.frequency_table)
        if table_size < 2 or table_size & (table_size - 1):
            raise TableSizeNotPowerOfTwo(
                f"frequency_table needs a power-of-two size >= 2, got {table_size}"
            )

        self._check_integral("symbol_duration", self.symbol_duration)
        for name in ("start_marker", "end_marker"):
            marker = getattr(self, name)
            if marker.duration < self.symbol_duration:
                raise ConfigError(
                    f"{name} lasts {marker.duration}s, shorter than one symbol "
                    f"({self.symbol_duration}s)"
                )
            self._check_integral(f"{name}.duration", marker.duration)
        if self.guard_duration < 0:
            raise ConfigError(f"guard_duration must not be negative, got {self.guard_duration}")
        self._check_integral("guard_duration", self.guard_duration)

        tones = self.named_frequencies()
        for (name_a, freq_a), (name_b, freq_b) in itertools.combinations(tones, 2):
            if math.isclose(freq_a, freq_b):
                raise FrequencyCollision(f"{name_a} and {name_b} both use {freq_a} Hz")

        separation = self.min_separation
        for (name_a, freq_a), (name_b, freq_b) in itertools.combinations(tones, 2):
            if abs(freq_a - freq_b) < separation:
                raise InsufficientSeparation(
                    f"{name_a} ({freq_a} Hz) and {name_b} ({freq_b} Hz) are "
                    f"{abs(freq_a - freq_b):.1f} Hz apart, need >= {separation:.1f} Hz"
                )

        nyquist = self.sample_rate / 2
        if not 0 < self.min_frequency < self.max_frequency:
            raise BandwidthViolation(
                f"invalid band {self.min_frequency}-{self.max_frequency} Hz"
            )
        if self.max_frequency > nyquist:
            raise BandwidthViolation(
                f"max_frequency {self.max_frequency} Hz exceeds Nyquist ({nyquist} Hz)"
            )
        for name, freq in tones:
            if not self.min_frequency <= freq <= self.max_frequency:
                raise BandwidthViolation(
                    f"{name} ({freq} Hz) outside band "
                    f"{self.min_frequency}-{self.max_frequency} Hz"
                )

        if self.detection_threshold < 1.0:
            raise ConfigError(f"detection_threshold must be >= 1, got {self.detection_threshold}")
        if not 0.0 < self.purity_threshold <= 1.0:
            raise ConfigError(f"purity_threshold must be in (0, 1], got {self.purity_threshold}")
        if not 0.0 < self.marker_sustain <= 1.0:
            raise ConfigError(f"marker_sustain must be in (0, 1], got {self.marker_sustain}")
        if not 0.0 < self.search_step <= 1.0:
            raise ConfigError(f"search_step must be in (0, 1], got {self.search_step}")
        if self.marker_retries < 0:
            raise ConfigError(f"marker_retries must not be negative, got {self.marker_retries}")
        if not 1 <= self.length_bits <= 32:
            raise ConfigError(f"length_bits must be 1-32, got {self.length_bits}")
        if self.checksum not in CHECKSUMS:
            raise ConfigError(
                f"unknown checksum {self.checksum!r}, choose from {sorted(CHECKSUMS)}"
            )

    def _check_integral(self, name: str, duration: float):
        samples = self.sample_rate * duration
        if abs(samples - round(samples)) > _WINDOW_EPSILON:
            raise NonIntegralWindow(
                f"{name} = {duration}s is {samples} samples at {self.sample_rate} Hz"
            )

    # -- derived values ---------------------------------------------------

    @property
    def bits_per_symbol(self) -> int:
        return len(self.frequency_table).bit_length() - 1

    @property
    def window_size(self) -> int:
        """Samples per symbol window."""
        return int(round(self.sample_rate * self.symbol_duration))

    @property
    def guard_samples(self) -> int:
        return int(round(self.sample_rate * self.guard_duration))

    @property
    def hop_size(self) -> int:
        """Step between consecutive search windows."""
        return max(1, int(self.window_size * self.search_step))

    @property
    def min_separation(self) -> float:
        return 2.0 / self.symbol_duration

    @property
    def marker_frequencies(self) -> Tuple[float, float]:
        return (self.start_marker.frequency, self.end_marker.frequency)

    @property
    def alphabet(self) -> Tuple[float, ...]:
        """Every tone the protocol uses: data table, then start and end markers."""
        return self.frequency_table + self.marker_frequencies

    def marker_samples(self, marker: Marker) -> int:
        return int(round(self.sample_rate * marker.duration))

    def named_frequencies(self):
        tones = [(f"data[{i}]", f) for i, f in enumerate(self.frequency_table)]
        tones.append(("start_marker", self.start_marker.frequency))
        tones.append(("end_marker", self.end_marker.frequency))
        return tones

    def codec(self) -> FrameCodec:
        return FrameCodec(length_bits=self.length_bits, checksum=self.checksum)

    def frame_symbols(self, payload_length: int) -> int:
        """Data symbols (header + payload + checksum) in a frame."""
        codec = self.codec()
        bps = self.bits_per_symbol
        return (
            codec.header_symbol_count(bps)
            + codec.payload_symbol_count(payload_length, bps)
            + codec.checksum_symbol_count(bps)
        )

    def frame_samples(self, payload_length: int) -> int:
        """Total waveform length for a payload of payload_length bytes."""
        return (
            self.marker_samples(self.start_marker)
            + self.guard_samples
            + self.frame_symbols(payload_length) * self.window_size
            + self.marker_samples(self.end_marker)
        )

    def frame_duration(self, payload_length: int) -> float:
        return self.frame_samples(payload_length) / self.sample_rate

    # -- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["frequency_table"] = list(self.frequency_table)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolConfig":
        """Build a config from a plain dict; unknown keys are rejected."""
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"unknown config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ProtocolConfig":
        """Load a config from a JSON file."""
        text = Path(path).read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{path}: not valid JSON ({e})") from e
        return cls.from_dict(data)

    def to_file(self, path: Union[str, Path]):
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    def describe(self) -> str:
        """Human-readable summary, one setting per line."""
        lines = [
            "[Profile]",
            f"Sample rate: {self.sample_rate} Hz",
            f"Symbol: {self.symbol_duration * 1000:g} ms "
            f"({self.window_size} samples, {self.bits_per_symbol} bits)",
            "Tones: " + ", ".join(f"{f:g}" for f in self.frequency_table) + " Hz",
            f"Start marker: {self.start_marker.frequency:g} Hz / "
            f"{self.start_marker.duration * 1000:g} ms",
            f"End marker: {self.end_marker.frequency:g} Hz / "
            f"{self.end_marker.duration * 1000:g} ms",
            f"Guard: {self.guard_duration * 1000:g} ms",
            f"Band: {self.min_frequency:g}-{self.max_frequency:g} Hz",
            f"Checksum: {self.checksum}, length field: {self.length_bits} bits",
        ]
        return "\n".join(lines)


PRESETS: Dict[str, ProtocolConfig] = {
    "default": ProtocolConfig(),
    # Above most adults' hearing; needs a 48 kHz capable speaker and mic.
    "ultrasonic": ProtocolConfig(
        sample_rate=48000,
        symbol_duration=0.05,
        frequency_table=(18800.0, 19200.0, 19600.0, 20000.0),
        start_marker=Marker(18400.0, 0.1),
        end_marker=Marker(20400.0, 0.1),
        min_frequency=18000.0,
        max_frequency=21000.0,
        guard_duration=0.025,
    ),
    # 16 tones, 4 bits per symbol
    "dense": ProtocolConfig(
        symbol_duration=0.05,
        frequency_table=tuple(1000.0 + 200.0 * i for i in range(16)),
        start_marker=Marker(600.0, 0.1),
        end_marker=Marker(4600.0, 0.1),
        guard_duration=0.02,
    ),
}


def get_preset(name: str) -> ProtocolConfig:
    """Look up a named preset."""
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigError(
            f"unknown preset {name!r}, choose from {sorted(PRESETS)}"
        ) from None
