"""
Exception hierarchy.

Configuration and encoding problems raise. Decoding problems never do: the
decoder reports them as FrameFailed events (see tonetrx.decoder).
"""


class TonetrxError(Exception):
    """Base class for all tonetrx errors."""


class ConfigError(TonetrxError, ValueError):
    """Invalid protocol configuration."""


class FrequencyCollision(ConfigError):
    """Two tones (data or marker) share a frequency."""


class InsufficientSeparation(ConfigError):
    """Two tones are closer than the window's frequency resolution allows."""


class NonIntegralWindow(ConfigError):
    """A duration does not map to a whole number of samples."""


class TableSizeNotPowerOfTwo(ConfigError):
    """The frequency table cannot carry a whole number of bits per symbol."""


class BandwidthViolation(ConfigError):
    """A tone lies outside the configured band or above Nyquist."""


class EncodeError(TonetrxError, ValueError):
    """Payload cannot be framed."""


class EmptyPayload(EncodeError):
    """Nothing to send."""


class PayloadTooLarge(EncodeError):
    """Payload length does not fit the length field."""
