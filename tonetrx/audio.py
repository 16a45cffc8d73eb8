"""
Audio transport - files, playback and live capture.

File I/O goes through soundfile; playback and capture through sounddevice,
which is imported on first use so that file-only work never needs PortAudio.
"""

import logging
import queue
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np
import soundfile as sf
from scipy import signal

# Module-level logger
_logger = logging.getLogger(__name__)


def to_float(samples: np.ndarray) -> np.ndarray:
    """
    Convert PCM samples to float64 in [-1, 1].

    Integer input is scaled by its type's full range (uint8 is offset
    binary); float input is passed through.
    """
    samples = np.asarray(samples)
    if samples.dtype == np.uint8:
        return (samples.astype(np.float64) - 128.0) / 128.0
    if np.issubdtype(samples.dtype, np.integer):
        full_scale = float(-np.iinfo(samples.dtype).min)
        return samples.astype(np.float64) / full_scale
    return samples.astype(np.float64)


def to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Float samples to int16, clipping anything outside [-1, 1]."""
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    return np.round(clipped * 32767).astype(np.int16)


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """FFT resampling from source_rate to target_rate."""
    if source_rate == target_rate:
        return np.asarray(samples)
    num_samples = int(round(len(samples) * target_rate / source_rate))
    return signal.resample(samples, num_samples)


def read_audio(file_path: Union[str, Path]) -> Tuple[np.ndarray, int]:
    """
    Read an audio file.

    Returns:
        (float64 samples of the first channel, sample rate)
    """
    samples, sr = sf.read(str(file_path), dtype="float64")
    if samples.ndim > 1:
        samples = samples[:, 0]
    _logger.debug(f"Read {len(samples)} samples at {sr} Hz from {file_path}")
    return samples, sr


def write_audio(
    file_path: Union[str, Path],
    samples: np.ndarray,
    sample_rate: int,
    subtype: str = "PCM_16",
):
    """Write mono samples to an audio file (format from the extension)."""
    sf.write(str(file_path), samples, sample_rate, subtype=subtype)
    _logger.debug(f"Wrote {len(samples)} samples at {sample_rate} Hz to {file_path}")


def play(samples: np.ndarray, sample_rate: int, device: Optional[int] = None):
    """Play samples on an output device and wait until done."""
    import sounddevice as sd

    sd.play(np.asarray(samples, dtype=np.float32), samplerate=sample_rate, device=device)
    sd.wait()


def list_input_devices() -> List[Tuple[int, str]]:
    """(index, name) of every device with input channels."""
    import sounddevice as sd

    return [
        (i, dev["name"])
        for i, dev in enumerate(sd.query_devices())
        if dev["max_input_channels"] > 0
    ]


class Listener:
    """
    Runs a Decoder on live audio input.

    The sounddevice callback feeds each captured block to the decoder; every
    event is put on `events` and handed to the optional callback. The
    callback runs on the audio thread and should return quickly.
    """

    def __init__(
        self,
        decoder,
        device: Optional[int] = None,
        callback: Optional[Callable] = None,
        blocksize: int = 0,
    ):
        """
        Initialize listener.

        Args:
            decoder: Decoder to drive; its config sets the capture rate
            device: Audio input device (None = default)
            callback: Optional callback for each event
            blocksize: Frames per callback (0 = let PortAudio choose)
        """
        self.decoder = decoder
        self.device = device
        self.callback = callback
        self.blocksize = blocksize

        self.events: "queue.Queue" = queue.Queue()
        self.stream = None
        self.overflows = 0

    @property
    def running(self) -> bool:
        return self.stream is not None

    def _audio_callback(self, indata: np.ndarray, frames, time_info, status):
        """
        Called by sounddevice for each audio block.

        Feeds the decoder and publishes any events it produces.
        """
        if status:
            if status.input_overflow:
                self.overflows += 1
            _logger.warning(f"Audio status: {status}")

        for event in self.decoder.process(indata[:, 0]):
            self.events.put(event)
            if self.callback:
                self.callback(event)

    def start(self):
        """Start decoding from audio input."""
        if self.stream is not None:
            return  # Already running

        import sounddevice as sd

        self.stream = sd.InputStream(
            device=self.device,
            channels=1,
            samplerate=self.decoder.config.sample_rate,
            dtype="float32",
            callback=self._audio_callback,
            blocksize=self.blocksize,
        )
        self.stream.start()
        _logger.info(f"Listening on device {self.device if self.device is not None else 'default'}")

    def stop(self):
        """Stop decoding."""
        if self.stream is not None:
            self.stream.stop()
            self.stream.close()
            self.stream = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()
