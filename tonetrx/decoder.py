"""
Decoder - streaming MFSK frame receiver.

The decoder is a pull-based state machine. The host hands it audio in
acquisition order with feed(); each call runs the machine as far as the
buffered samples allow and returns at most one event. The decoder never
blocks and owns no thread, so it can sit behind an audio callback, a polling
loop or a file reader alike.

    IDLE -> SEARCHING_START -> SYNCHRONIZED -> READING_HEADER
         -> READING_PAYLOAD -> READING_CHECKSUM -> SEARCHING_END
         -> EMITTING -> IDLE

Any in-frame problem moves to FAILED, which reports a FrameFailed event and
returns to IDLE to listen for the next frame.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .filters import BandpassFilter
from .frame import bits_to_bytes, symbols_to_bits
from .profile import ProtocolConfig
from .spectrum import ToneAnalyzer

# Module-level logger
_logger = logging.getLogger(__name__)

DEFAULT_MAX_SEARCH_DURATION = 10.0  # seconds of fruitless search before restarting


class DecoderState(str, Enum):
    IDLE = "idle"
    SEARCHING_START = "searching_start"
    SYNCHRONIZED = "synchronized"
    READING_HEADER = "reading_header"
    READING_PAYLOAD = "reading_payload"
    READING_CHECKSUM = "reading_checksum"
    SEARCHING_END = "searching_end"
    EMITTING = "emitting"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Reason a synchronized frame was discarded."""

    AMBIGUOUS_SYMBOL = "ambiguous_symbol"  # no confident tone in a symbol window
    CHECKSUM_MISMATCH = "checksum_mismatch"
    MISSING_END_MARKER = "missing_end_marker"
    TIMEOUT = "timeout"  # frame ran past max_frame_duration
    INVALID_LENGTH = "invalid_length"  # length field of 0 or above the accepted maximum


@dataclass(frozen=True)
class FrameDecoded:
    """A frame passed every check."""

    payload: bytes
    start: int  # sample index where the start marker ends
    end: int  # sample index where the end marker ends

    def __repr__(self) -> str:
        return f"FrameDecoded({len(self.payload)}B, samples {self.start}-{self.end})"


@dataclass(frozen=True)
class FrameFailed:
    """A frame was synchronized but had to be discarded."""

    reason: FailureReason
    position: int  # sample index where the problem was found
    detail: str = ""

    def __repr__(self) -> str:
        return f"FrameFailed({self.reason.value} at {self.position}: {self.detail})"


Event = Union[FrameDecoded, FrameFailed]


@dataclass
class MarkerRun:
    """Consecutive start-marker detections from the sliding search."""

    first_hit: int
    last_hit: int = 0
    misses: int = 0  # consecutive
    windows: List[Tuple[int, float, bool]] = field(default_factory=list)

    def add(self, position: int, amplitude: float, hit: bool):
        self.windows.append((position, amplitude, hit))
        if hit:
            self.last_hit = position
            self.misses = 0
        else:
            self.misses += 1

    def rebase(self, position: int):
        """Forget windows before position."""
        self.windows = [w for w in self.windows if w[0] >= position]
        self.first_hit = min(p for p, _, hit in self.windows if hit)

    @property
    def span(self) -> int:
        """
        Distance from the first to the last detecting window.

        A window detects the marker once the tone fills roughly a third of
        it, so for a clean marker this comes out a little longer than the
        marker itself.
        """
        return self.last_hit - self.first_hit

    def estimate_end(self, window_size: int) -> int:
        """
        Locate the marker's trailing edge with sub-window precision.

        Once a window slides past the edge, the marker's amplitude in it
        falls in proportion to how much of the window the marker still
        covers, so each window on the falling edge gives
        end = position + window_size * amplitude / peak.
        """
        peak = max(amplitude for _, amplitude, hit in self.windows if hit)
        plateau_end = max(
            position for position, amplitude, _ in self.windows if amplitude >= 0.9 * peak
        )

        estimates = [
            position + window_size * amplitude / peak
            for position, amplitude, _ in self.windows
            if position > plateau_end and 0.1 * peak < amplitude < 0.9 * peak
        ]
        if not estimates:
            return self.last_hit + window_size
        return int(round(float(np.mean(estimates))))


@dataclass
class DecodeState:
    """Everything a Decoder mutates. Positions are absolute sample indices."""

    state: DecoderState = DecoderState.IDLE

    # Carry-over samples; buffer[0] is sample number buffer_start
    buffer: np.ndarray = field(default_factory=lambda: np.zeros(0))
    buffer_start: int = 0
    received: int = 0

    cursor: int = 0  # start of the next window to analyze
    search_start: int = 0
    run: Optional[MarkerRun] = None

    # Current frame
    origin: Optional[int] = None  # first sample of the length field
    deadline: Optional[int] = None
    symbols: List[int] = field(default_factory=list)
    payload_length: Optional[int] = None
    payload_bits: List[int] = field(default_factory=list)

    # Pending event
    failure: Optional[FrameFailed] = None
    decoded: Optional[FrameDecoded] = None

    @property
    def buffer_end(self) -> int:
        return self.buffer_start + len(self.buffer)

    def clear_frame(self):
        self.origin = None
        self.deadline = None
        self.symbols = []
        self.payload_length = None
        self.payload_bits = []


class Decoder:
    """
    Streaming frame decoder.

    Not reentrant: one feed() at a time per instance. Independent streams
    need independent decoders; they may share one ProtocolConfig.
    """

    def __init__(
        self,
        config: Optional[ProtocolConfig] = None,
        max_search_duration: Optional[float] = DEFAULT_MAX_SEARCH_DURATION,
        max_frame_duration: Optional[float] = None,
        max_payload_length: Optional[int] = None,
        bandpass: bool = False,
    ):
        """
        Initialize decoder.

        Args:
            config: Protocol configuration (default: ProtocolConfig())
            max_search_duration: Restart the start-marker search after this
                many seconds without a candidate (None = never)
            max_frame_duration: Fail a frame still incomplete this many
                seconds after its start marker (default: the longest frame
                max_payload_length allows, plus one start marker of slack)
            max_payload_length: Reject frames declaring more bytes than this
                (default: whatever the length field can hold)
            bandpass: Band-limit incoming audio to the configured band
        """
        for name, value in (
            ("max_search_duration", max_search_duration),
            ("max_frame_duration", max_frame_duration),
        ):
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive or None, got {value}")

        self.config = config if config is not None else ProtocolConfig()
        config = self.config

        self.analyzer = ToneAnalyzer.from_config(config)
        self.codec = config.codec()
        self.filter = BandpassFilter.from_config(config) if bandpass else None

        self.max_search_samples = self._to_samples(max_search_duration)
        self.max_payload_length = self.codec.max_payload_length
        if max_payload_length is not None:
            self.max_payload_length = min(max_payload_length, self.max_payload_length)
        self.max_frame_samples = self._to_samples(max_frame_duration)
        if self.max_frame_samples is None:
            # Counted from the start marker's end, so the marker itself is slack
            self.max_frame_samples = config.frame_samples(self.max_payload_length)

        # Frame geometry
        self._window = config.window_size
        self._hop = config.hop_size
        self._bps = config.bits_per_symbol
        self._header_symbols = self.codec.header_symbol_count(self._bps)
        self._checksum_symbols = self.codec.checksum_symbol_count(self._bps)
        self._start_samples = config.marker_samples(config.start_marker)
        self._end_samples = config.marker_samples(config.end_marker)
        self._sustain = config.marker_sustain * self._start_samples
        # Slack at the end of the end marker for grid misalignment
        self._end_margin = self._window // 16

        self._handlers = {
            DecoderState.IDLE: self._idle,
            DecoderState.SEARCHING_START: self._searching_start,
            DecoderState.SYNCHRONIZED: self._synchronized,
            DecoderState.READING_HEADER: self._reading_header,
            DecoderState.READING_PAYLOAD: self._reading_payload,
            DecoderState.READING_CHECKSUM: self._reading_checksum,
            DecoderState.SEARCHING_END: self._searching_end,
            DecoderState.EMITTING: self._emitting,
            DecoderState.FAILED: self._failed,
        }

        self._state = DecodeState()
        self._stats: Dict[str, int] = {
            "frames_decoded": 0,
            "frames_failed": 0,
            "synchronizations": 0,
            "search_restarts": 0,
        }
        self._failures: Dict[str, int] = {reason.value: 0 for reason in FailureReason}

    def _to_samples(self, seconds: Optional[float]) -> Optional[int]:
        if seconds is None:
            return None
        return max(1, int(round(seconds * self.config.sample_rate)))

    # -- public API -------------------------------------------------------

    @property
    def state(self) -> DecoderState:
        return self._state.state

    def feed(self, chunk) -> Optional[Event]:
        """
        Append samples and advance the state machine.

        Chunks must arrive in acquisition order without gaps. They may be any
        size (including empty) and any numeric dtype; 2-D input uses the
        first channel.

        Returns:
            The first event produced, or None. Samples left in the buffer are
            processed by the next call.
        """
        samples = np.asarray(chunk, dtype=np.float64)
        if samples.ndim > 1:
            samples = samples[:, 0]

        st = self._state
        if samples.size:
            if self.filter is not None:
                samples = self.filter.process(samples)
            st.buffer = np.concatenate([st.buffer, samples])
            st.received += samples.size

        event = None
        while event is None:
            progressed, event = self._handlers[st.state]()
            if not progressed:
                break

        self._trim()
        return event

    def process(self, chunk) -> List[Event]:
        """Feed a chunk and collect every event it completes."""
        events = []
        event = self.feed(chunk)
        while event is not None:
            events.append(event)
            event = self.feed(np.zeros(0))
        return events

    def reset(self):
        """Drop any partial frame and buffered audio; back to IDLE."""
        self._state = DecodeState()
        if self.filter is not None:
            self.filter.reset()

    def get_statistics(self) -> dict:
        """
        Get decoder statistics.

        Returns:
            Dict with counters, failures by reason and the current state
        """
        stats = dict(self._stats)
        stats["failures"] = dict(self._failures)
        stats["state"] = self.state.value
        stats["buffered_samples"] = len(self._state.buffer)
        return stats

    # -- buffer helpers ---------------------------------------------------

    def _available(self, position: int, size: int) -> bool:
        st = self._state
        return st.buffer_start <= position and position + size <= st.buffer_end

    def _window_at(self, position: int, size: int) -> np.ndarray:
        st = self._state
        offset = position - st.buffer_start
        return st.buffer[offset:offset + size]

    def _trim(self):
        """Discard samples no future window can need."""
        st = self._state
        keep_from = st.cursor
        if st.run is not None:
            # The symbol grid is placed relative to the run's windows
            keep_from = min(keep_from, st.run.first_hit)
        drop = min(keep_from - st.buffer_start, len(st.buffer))
        if drop > 0:
            st.buffer = st.buffer[drop:]
            st.buffer_start += drop

    def _marker_hit(self, position: int, marker_frequency: float) -> Tuple[bool, float]:
        window = self._window_at(position, self._window)
        return self.analyzer.detect(window, marker_frequency, self.config.alphabet)

    # -- state handlers: each returns (progressed, event) -----------------

    def _idle(self):
        st = self._state
        if st.buffer_end <= st.cursor:
            return False, None
        st.state = DecoderState.SEARCHING_START
        st.search_start = st.cursor
        st.run = None
        return True, None

    def _searching_start(self):
        st = self._state
        if not self._available(st.cursor, self._window):
            return False, None

        if (
            st.run is None
            and self.max_search_samples is not None
            and st.cursor - st.search_start >= self.max_search_samples
        ):
            # Quiet channel; not an error, just start a fresh search
            _logger.debug(f"No start marker within {self.max_search_samples} samples, restarting search")
            self._stats["search_restarts"] += 1
            st.state = DecoderState.IDLE
            return True, None

        hit, amplitude = self._marker_hit(st.cursor, self.config.start_marker.frequency)
        if hit and st.run is None:
            st.run = MarkerRun(first_hit=st.cursor)

        if st.run is not None:
            run = st.run
            run.add(st.cursor, amplitude, hit)
            if hit and run.span > 4 * self._start_samples:
                # Steady tone rather than a burst; only the recent part matters
                run.rebase(st.cursor - 2 * self._start_samples)
            if run.misses > self.config.marker_retries:
                st.run = None
                if run.span >= self._sustain:
                    self._synchronize(run)
                    return True, None
                _logger.debug(
                    f"Start marker candidate at sample {run.first_hit} too short "
                    f"({run.span} < {self._sustain:.0f} samples)"
                )

        st.cursor += self._hop
        return True, None

    def _synchronize(self, run: MarkerRun):
        st = self._state
        end = run.estimate_end(self._window)

        st.clear_frame()
        st.origin = end + self.config.guard_samples
        st.cursor = st.origin
        st.deadline = end + self.max_frame_samples
        st.state = DecoderState.SYNCHRONIZED

        self._stats["synchronizations"] += 1
        _logger.info(f"Start marker ends at sample {end}, symbols from {st.origin}")

    def _synchronized(self):
        self._state.state = DecoderState.READING_HEADER
        return True, None

    def _collect_symbol(self) -> bool:
        """
        Classify the next grid window into state.symbols.

        Returns False when more samples are needed. On failure the state has
        moved to FAILED.
        """
        st = self._state
        position = st.cursor
        if not self._available(position, self._window):
            return False
        if st.deadline is not None and position + self._window > st.deadline:
            self._fail(
                FailureReason.TIMEOUT,
                position,
                f"frame still incomplete {self.max_frame_samples} samples after sync",
            )
            return True

        window = self._window_at(position, self._window)
        symbol = self.analyzer.classify(window, self.config.frequency_table)
        st.cursor += self._window
        if symbol is None:
            self._fail(
                FailureReason.AMBIGUOUS_SYMBOL,
                position,
                f"no confident tone in {st.state.value} symbol {len(st.symbols)}",
            )
            return True

        st.symbols.append(symbol)
        return True

    def _reading_header(self):
        st = self._state
        if not self._collect_symbol():
            return False, None
        if st.state is not DecoderState.READING_HEADER:
            return True, None
        if len(st.symbols) < self._header_symbols:
            return True, None

        length = self.codec.decode_header(symbols_to_bits(st.symbols, self._bps))
        st.symbols = []
        if not 0 < length <= self.max_payload_length:
            self._fail(
                FailureReason.INVALID_LENGTH,
                st.cursor,
                f"declared length {length}, accepted 1-{self.max_payload_length}",
            )
            return True, None

        _logger.debug(f"Header: {length} byte payload")
        st.payload_length = length
        st.state = DecoderState.READING_PAYLOAD
        return True, None

    def _reading_payload(self):
        st = self._state
        if not self._collect_symbol():
            return False, None
        if st.state is not DecoderState.READING_PAYLOAD:
            return True, None

        needed = self.codec.payload_symbol_count(st.payload_length, self._bps)
        if len(st.symbols) < needed:
            return True, None

        st.payload_bits = symbols_to_bits(st.symbols, self._bps)[:st.payload_length * 8]
        st.symbols = []
        st.state = DecoderState.READING_CHECKSUM
        return True, None

    def _reading_checksum(self):
        st = self._state
        if not self._collect_symbol():
            return False, None
        if st.state is not DecoderState.READING_CHECKSUM:
            return True, None
        if len(st.symbols) < self._checksum_symbols:
            return True, None

        checksum_bits = symbols_to_bits(st.symbols, self._bps)[:self.codec.checksum_bits]
        st.symbols = []
        if not self.codec.verify(st.payload_bits, checksum_bits):
            self._fail(
                FailureReason.CHECKSUM_MISMATCH,
                st.cursor,
                f"{self.codec.checksum_name} mismatch over {st.payload_length} bytes",
            )
            return True, None

        st.state = DecoderState.SEARCHING_END
        return True, None

    def _searching_end(self):
        st = self._state
        span = self._end_samples - self._end_margin
        if not self._available(st.cursor, span):
            return False, None
        if st.deadline is not None and st.cursor + span > st.deadline:
            self._fail(
                FailureReason.TIMEOUT,
                st.cursor,
                f"end marker past {self.max_frame_samples} samples after sync",
            )
            return True, None

        if not self._confirm_end_marker(st.cursor, span):
            # Leave the cursor here: whatever is there may be the next frame
            self._fail(
                FailureReason.MISSING_END_MARKER,
                st.cursor,
                "end marker tone not found after checksum",
            )
            return True, None

        st.decoded = FrameDecoded(
            payload=bits_to_bytes(st.payload_bits),
            start=st.origin - self.config.guard_samples,
            end=st.cursor + self._end_samples,
        )
        st.cursor += self._end_samples
        st.state = DecoderState.EMITTING
        return True, None

    def _confirm_end_marker(self, start: int, span: int) -> bool:
        """
        Slide sub-windows across the end marker; each must detect it.

        One failing sub-window (marker_retries) may be retried half a hop
        later.
        """
        size = min(self._window, span)
        last = start + span - size
        positions = list(range(start, last + 1, self._hop))
        if positions[-1] != last:
            positions.append(last)

        frequency = self.config.end_marker.frequency
        retries = self.config.marker_retries
        for position in positions:
            if self._end_hit(position, size, frequency):
                continue
            retry = min(position + self._hop // 2, last)
            if retries == 0 or retry == position:
                return False
            retries -= 1
            if not self._end_hit(retry, size, frequency):
                return False
        return True

    def _end_hit(self, position: int, size: int, frequency: float) -> bool:
        window = self._window_at(position, size)
        hit, _ = self.analyzer.detect(window, frequency, self.config.alphabet)
        return hit

    def _emitting(self):
        st = self._state
        event = st.decoded
        st.decoded = None
        st.clear_frame()
        st.state = DecoderState.IDLE

        self._stats["frames_decoded"] += 1
        _logger.info(f"Decoded {len(event.payload)} byte frame ending at sample {event.end}")
        return True, event

    def _fail(self, reason: FailureReason, position: int, detail: str):
        st = self._state
        st.failure = FrameFailed(reason, position, detail)
        st.state = DecoderState.FAILED
        _logger.warning(f"Frame failed ({reason.value}) at sample {position}: {detail}")

    def _failed(self):
        st = self._state
        event = st.failure
        st.failure = None
        st.clear_frame()
        st.state = DecoderState.IDLE

        self._stats["frames_failed"] += 1
        self._failures[event.reason.value] += 1
        return True, event


def decode_file(
    file_path: Union[str, Path],
    config: Optional[ProtocolConfig] = None,
    block_size: Optional[int] = None,
    **decoder_kwargs,
) -> List[Event]:
    """
    Decode every frame in an audio file.

    Args:
        file_path: Path to audio file
        config: Protocol configuration (default: ProtocolConfig())
        block_size: Samples per feed() call (default: one second)
        **decoder_kwargs: Passed on to Decoder

    Returns:
        All events in stream order
    """
    from .audio import read_audio, resample

    config = config if config is not None else ProtocolConfig()
    samples, sr = read_audio(file_path)

    # Resample if needed
    if sr != config.sample_rate:
        _logger.info(f"Resampling {file_path} from {sr} Hz to {config.sample_rate} Hz")
        samples = resample(samples, sr, config.sample_rate)

    decoder = Decoder(config, **decoder_kwargs)
    block_size = block_size or config.sample_rate

    events = []
    for position in range(0, len(samples), block_size):
        events.extend(decoder.process(samples[position:position + block_size]))
    return events
