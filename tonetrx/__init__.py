"""
tonetrx - Data over sound.
An MFSK acoustic modem: bytes in, tones out, and back again.
"""

__version__ = "0.1.0"

# Audio / timing defaults
SAMPLE_RATE = 44100  # Hz
SYMBOL_DURATION = 0.1  # seconds per data symbol
GUARD_DURATION = 0.05  # silence after the start marker
RAMP_DURATION = 0.005  # fade on the outer edges of a transmission
AMPLITUDE = 0.7

# Alphabet (index = symbol value, 2 bits per symbol)
FREQUENCY_TABLE = (1000.0, 1500.0, 2000.0, 2500.0)

# Markers
START_MARKER_FREQ = 500.0  # Hz
END_MARKER_FREQ = 600.0  # Hz
MARKER_DURATION = 0.2  # seconds

# Bandwidth bounds
MIN_FREQUENCY = 200.0  # Hz
MAX_FREQUENCY = 18000.0  # Hz

# Detection
DETECTION_THRESHOLD = 2.0  # winner / runner-up magnitude
PURITY_THRESHOLD = 0.3  # share of window energy held by the winning tone
MARKER_SUSTAIN = 0.5  # share of the marker a detection run must span
MARKER_RETRIES = 1  # low-confidence sub-windows tolerated per marker
SEARCH_STEP = 0.25  # hop between search windows, fraction of a window

# Frame structure
LENGTH_BITS = 16  # payload length field
CHECKSUM = "crc16-ccitt"

from .errors import (
    TonetrxError,
    ConfigError,
    FrequencyCollision,
    InsufficientSeparation,
    NonIntegralWindow,
    TableSizeNotPowerOfTwo,
    BandwidthViolation,
    EncodeError,
    EmptyPayload,
    PayloadTooLarge,
)
from .profile import Marker, ProtocolConfig, PRESETS, get_preset
from .spectrum import ToneAnalyzer, goertzel_power, magnitude, tone_purity
from .frame import Frame, FrameCodec, CRC8, CRC16CCITT, CRC32
from .encoder import Encoder
from .decoder import (
    Decoder,
    DecoderState,
    DecodeState,
    FailureReason,
    FrameDecoded,
    FrameFailed,
    decode_file,
)
from .audio import Listener, read_audio, write_audio

__all__ = [
    "TonetrxError",
    "ConfigError",
    "FrequencyCollision",
    "InsufficientSeparation",
    "NonIntegralWindow",
    "TableSizeNotPowerOfTwo",
    "BandwidthViolation",
    "EncodeError",
    "EmptyPayload",
    "PayloadTooLarge",
    "Marker",
    "ProtocolConfig",
    "PRESETS",
    "get_preset",
    "ToneAnalyzer",
    "goertzel_power",
    "magnitude",
    "tone_purity",
    "Frame",
    "FrameCodec",
    "CRC8",
    "CRC16CCITT",
    "CRC32",
    "Encoder",
    "Decoder",
    "DecoderState",
    "DecodeState",
    "FailureReason",
    "FrameDecoded",
    "FrameFailed",
    "decode_file",
    "Listener",
    "read_audio",
    "write_audio",
]
