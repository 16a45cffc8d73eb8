"""
Tests for checksums and frame encoding.
"""

import pytest

from tonetrx import CRC8, CRC16CCITT, CRC32, EmptyPayload, FrameCodec, PayloadTooLarge
from tonetrx.frame import (
    BitwiseCRC,
    bits_to_bytes,
    bits_to_int,
    bits_to_symbols,
    bytes_to_bits,
    int_to_bits,
    symbols_to_bits,
)

CHECK_DATA = b"123456789"


class TestCRC:
    """Test CRC implementations against the standard check values."""

    def test_crc16_compute(self):
        """Test vector: "123456789" -> CRC-16-CCITT = 0x29B1"""
        assert CRC16CCITT.compute(CHECK_DATA) == 0x29B1

    def test_crc8_compute(self):
        """Test vector: "123456789" -> CRC-8 = 0xF4"""
        assert CRC8.compute(CHECK_DATA) == 0xF4

    def test_crc32_compute(self):
        """Test vector: "123456789" -> CRC-32 = 0xCBF43926"""
        assert CRC32.compute(CHECK_DATA) == 0xCBF43926

    @pytest.mark.parametrize("crc", [CRC8, CRC16CCITT, CRC32])
    def test_crc_verify(self, crc):
        """Test CRC verification."""
        data = b"test data"
        checksum = crc.compute(data)
        assert crc.verify(data, checksum) is True
        assert crc.verify(data, checksum ^ 1) is False

    def test_crcs_share_bitwise_engine(self):
        """Test CRC-8 and CRC-16 differ only in parameters."""
        assert issubclass(CRC8, BitwiseCRC)
        assert issubclass(CRC16CCITT, BitwiseCRC)
        assert (CRC8.WIDTH, CRC16CCITT.WIDTH) == (8, 16)
        assert CRC16CCITT.compute(b"") == CRC16CCITT.INITIAL


class TestBits:
    """Test bit and symbol packing."""

    def test_int_to_bits_msb_first(self):
        """Test integer bits are MSB first."""
        assert int_to_bits(2, 4) == [0, 0, 1, 0]
        assert bits_to_int([1, 0, 1, 1]) == 11

    def test_int_to_bits_overflow(self):
        """Test values wider than the field are rejected."""
        with pytest.raises(ValueError):
            int_to_bits(16, 4)

    def test_bytes_to_bits(self):
        """Test byte to bit conversion."""
        assert bytes_to_bits(b"\x41") == [0, 1, 0, 0, 0, 0, 0, 1]
        assert bits_to_bytes(bytes_to_bits(b"AB")) == b"AB"

    def test_bits_to_bytes_requires_whole_bytes(self):
        """Test partial bytes are rejected."""
        with pytest.raises(ValueError):
            bits_to_bytes([1, 0, 1])

    def test_symbols_zero_padded(self):
        """Leftover bits fill the top of the last symbol."""
        assert bits_to_symbols([1, 0, 1, 1, 1], 2) == [2, 3, 2]
        assert bits_to_symbols([1, 1, 1, 1, 1], 4) == [15, 8]

    def test_symbols_to_bits(self):
        """Test symbol to bit conversion."""
        assert symbols_to_bits([2, 3], 2) == [1, 0, 1, 1]


class TestFrameCodec:
    """Test header, checksum and framing."""

    def test_header(self):
        """Test length header encode and decode."""
        codec = FrameCodec()
        bits = codec.encode_header(2)
        assert len(bits) == 16
        assert codec.decode_header(bits) == 2

    def test_empty_payload(self):
        """Test empty payloads are rejected."""
        with pytest.raises(EmptyPayload):
            FrameCodec().encode_header(0)
        with pytest.raises(EmptyPayload):
            FrameCodec().build(b"", 2)

    def test_payload_too_large(self):
        """Test the length field limits payload size."""
        codec = FrameCodec(length_bits=4)
        assert codec.max_payload_length == 15
        with pytest.raises(PayloadTooLarge):
            codec.build(bytes(16), 2)

    def test_encode_errors_are_value_errors(self):
        """Test encode errors are ValueErrors."""
        with pytest.raises(ValueError):
            FrameCodec().build(b"", 2)

    def test_unknown_checksum(self):
        """Test unknown checksum names are rejected."""
        with pytest.raises(ValueError):
            FrameCodec(checksum="sha1")

    def test_build_two_bytes(self):
        """0x41 0x42 at 2 bits per symbol."""
        frame = FrameCodec().build(b"AB", 2)
        assert frame.header_symbols == (0, 0, 0, 0, 0, 0, 0, 2)
        # 0x41 = 01 00 00 01, 0x42 = 01 00 00 10
        assert frame.payload_symbols == (1, 0, 0, 1, 1, 0, 0, 2)
        assert len(frame.checksum_symbols) == 8
        assert len(frame.symbols) == 24

        crc = CRC16CCITT.compute(b"AB")
        assert symbols_to_bits(frame.checksum_symbols, 2) == int_to_bits(crc, 16)

    def test_symbol_counts(self):
        """Test symbol counts for several symbol widths."""
        codec = FrameCodec()
        assert codec.header_symbol_count(2) == 8
        assert codec.header_symbol_count(3) == 6
        assert codec.payload_symbol_count(1, 3) == 3
        assert codec.checksum_symbol_count(4) == 4

    @pytest.mark.parametrize("checksum, width", [("crc8", 8), ("crc16-ccitt", 16), ("crc32", 32)])
    def test_verify(self, checksum, width):
        """Test checksum verification for each CRC."""
        codec = FrameCodec(checksum=checksum)
        assert codec.checksum_bits == width

        payload_bits = bytes_to_bits(b"hello")
        checksum_bits = codec.compute_checksum(payload_bits)
        assert codec.verify(payload_bits, checksum_bits)

        flipped = list(payload_bits)
        flipped[3] ^= 1
        assert not codec.verify(flipped, checksum_bits)

    def test_verify_short_checksum(self):
        """Test a truncated checksum never verifies."""
        codec = FrameCodec()
        payload_bits = bytes_to_bits(b"x")
        assert not codec.verify(payload_bits, codec.compute_checksum(payload_bits)[:8])
