"""
Frame structure and bit-level serialization.

Frame layout on air (MSB first throughout):
- Start marker tone
- Guard silence
- Length field: length_bits (default 16) - payload length in bytes
- Payload: 8 bits per byte
- Checksum: CRC over the payload bytes only (not the length field)
- End marker tone

Length, payload and checksum are each packed into symbols of
bits_per_symbol bits, zero-padded to a whole symbol. Nothing in this module
knows about tones or samples; the encoder and decoder share it so both sides
frame data identically.
"""

import math
import zlib
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .errors import EmptyPayload, PayloadTooLarge


class BitwiseCRC:
    """
    Table-less MSB-first CRC, parameterized by class attributes.
    Subclasses set WIDTH, POLYNOMIAL and INITIAL; there is no final XOR.
    """

    WIDTH = 0
    POLYNOMIAL = 0
    INITIAL = 0

    @classmethod
    def compute(cls, data: bytes) -> int:
        top = 1 << (cls.WIDTH - 1)
        mask = (1 << cls.WIDTH) - 1
        crc = cls.INITIAL

        for byte in data:
            crc ^= byte << (cls.WIDTH - 8)
            for _ in range(8):
                if crc & top:
                    crc = (crc << 1) ^ cls.POLYNOMIAL
                else:
                    crc <<= 1
                crc &= mask

        return crc

    @classmethod
    def verify(cls, data: bytes, checksum: int) -> bool:
        """Verify data against CRC checksum."""
        return cls.compute(data) == checksum


class CRC8(BitwiseCRC):
    """
    CRC-8 (0x07) implementation.
    Polynomial: x^8 + x^2 + x + 1
    Initial value: 0x00
    """

    WIDTH = 8
    POLYNOMIAL = 0x07
    INITIAL = 0x00


class CRC16CCITT(BitwiseCRC):
    """
    CRC-16-CCITT (0x1021) implementation, check value 0x29B1 for b"123456789".
    Polynomial: x^16 + x^12 + x^5 + 1
    Initial value: 0xFFFF
    """

    WIDTH = 16
    POLYNOMIAL = 0x1021
    INITIAL = 0xFFFF


class CRC32:
    """CRC-32 (IEEE 802.3), as used by zip and PNG."""

    WIDTH = 32

    @classmethod
    def compute(cls, data: bytes) -> int:
        return zlib.crc32(data) & 0xFFFFFFFF

    @classmethod
    def verify(cls, data: bytes, checksum: int) -> bool:
        return cls.compute(data) == checksum


CHECKSUMS: Dict[str, type] = {
    "crc8": CRC8,
    "crc16-ccitt": CRC16CCITT,
    "crc32": CRC32,
}


# -- bit helpers -------------------------------------------------------------

def int_to_bits(value: int, width: int) -> List[int]:
    """Unsigned integer to a list of width bits (MSB first)."""
    if not 0 <= value < (1 << width):
        raise ValueError(f"{value} does not fit in {width} bits")
    return [(value >> i) & 1 for i in range(width - 1, -1, -1)]


def bits_to_int(bits: Sequence[int]) -> int:
    value = 0
    for bit in bits:
        value = (value << 1) | (bit & 1)
    return value


def bytes_to_bits(data: bytes) -> List[int]:
    """Convert bytes to bits (MSB first)."""
    bits = []
    for byte in data:
        for i in range(7, -1, -1):
            bits.append((byte >> i) & 1)
    return bits


def bits_to_bytes(bits: Sequence[int]) -> bytes:
    """Convert whole bytes' worth of bits (MSB first) back to bytes."""
    if len(bits) % 8:
        raise ValueError(f"bit count {len(bits)} is not a multiple of 8")
    data = bytearray()
    for i in range(0, len(bits), 8):
        data.append(bits_to_int(bits[i:i + 8]))
    return bytes(data)


def symbols_needed(num_bits: int, bits_per_symbol: int) -> int:
    return math.ceil(num_bits / bits_per_symbol)


def bits_to_symbols(bits: Sequence[int], bits_per_symbol: int) -> List[int]:
    """
    Group bits into symbol values, MSB first.

    The last group is zero-padded on the right if incomplete.
    """
    count = symbols_needed(len(bits), bits_per_symbol)
    padded = list(bits) + [0] * (count * bits_per_symbol - len(bits))
    return [
        bits_to_int(padded[i:i + bits_per_symbol])
        for i in range(0, len(padded), bits_per_symbol)
    ]


def symbols_to_bits(symbols: Sequence[int], bits_per_symbol: int) -> List[int]:
    bits = []
    for symbol in symbols:
        bits.extend(int_to_bits(symbol, bits_per_symbol))
    return bits


# -- frame -------------------------------------------------------------------

@dataclass(frozen=True)
class Frame:
    """Symbol content of one transmission (markers and guard are implied)."""

    payload: bytes
    header_symbols: Tuple[int, ...]
    payload_symbols: Tuple[int, ...]
    checksum_symbols: Tuple[int, ...]

    @property
    def symbols(self) -> Tuple[int, ...]:
        return self.header_symbols + self.payload_symbols + self.checksum_symbols

    def __repr__(self) -> str:
        return (
            f"Frame(payload={len(self.payload)}B, header={len(self.header_symbols)}, "
            f"data={len(self.payload_symbols)}, checksum={len(self.checksum_symbols)} symbols)"
        )


class FrameCodec:
    """
    Builds and checks the length field and checksum of a frame.

    Pure bit-level transforms; identical on both ends of the link.
    """

    def __init__(self, length_bits: int = 16, checksum: str = "crc16-ccitt"):
        """
        Args:
            length_bits: Width of the payload length field
            checksum: Name of a CHECKSUMS entry
        """
        if checksum not in CHECKSUMS:
            raise ValueError(f"unknown checksum {checksum!r}")
        self.length_bits = length_bits
        self.checksum_name = checksum
        self.crc = CHECKSUMS[checksum]

    @property
    def max_payload_length(self) -> int:
        return (1 << self.length_bits) - 1

    @property
    def checksum_bits(self) -> int:
        return self.crc.WIDTH

    def encode_header(self, payload_length: int) -> List[int]:
        """
        Encode the length field.

        Raises:
            EmptyPayload: payload_length is 0
            PayloadTooLarge: payload_length does not fit in length_bits
        """
        if payload_length <= 0:
            raise EmptyPayload("payload is empty")
        if payload_length > self.max_payload_length:
            raise PayloadTooLarge(
                f"payload is {payload_length} bytes, a {self.length_bits}-bit "
                f"length field holds at most {self.max_payload_length}"
            )
        return int_to_bits(payload_length, self.length_bits)

    def decode_header(self, bits: Sequence[int]) -> int:
        """Read the length field from the first length_bits bits."""
        return bits_to_int(bits[:self.length_bits])

    def compute_checksum(self, payload_bits: Sequence[int]) -> List[int]:
        crc = self.crc.compute(bits_to_bytes(payload_bits))
        return int_to_bits(crc, self.checksum_bits)

    def verify(self, payload_bits: Sequence[int], checksum_bits: Sequence[int]) -> bool:
        """Check the payload against a received checksum."""
        if len(checksum_bits) < self.checksum_bits:
            return False
        checksum = bits_to_int(checksum_bits[:self.checksum_bits])
        return self.crc.verify(bits_to_bytes(payload_bits), checksum)

    def header_symbol_count(self, bits_per_symbol: int) -> int:
        return symbols_needed(self.length_bits, bits_per_symbol)

    def payload_symbol_count(self, payload_length: int, bits_per_symbol: int) -> int:
        return symbols_needed(payload_length * 8, bits_per_symbol)

    def checksum_symbol_count(self, bits_per_symbol: int) -> int:
        return symbols_needed(self.checksum_bits, bits_per_symbol)

    def build(self, payload: bytes, bits_per_symbol: int) -> Frame:
        """Frame a payload into symbol values."""
        payload = bytes(payload)
        header_bits = self.encode_header(len(payload))
        payload_bits = bytes_to_bits(payload)
        checksum_bits = self.compute_checksum(payload_bits)

        return Frame(
            payload=payload,
            header_symbols=tuple(bits_to_symbols(header_bits, bits_per_symbol)),
            payload_symbols=tuple(bits_to_symbols(payload_bits, bits_per_symbol)),
            checksum_symbols=tuple(bits_to_symbols(checksum_bits, bits_per_symbol)),
        )
