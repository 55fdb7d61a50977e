"""
Audio capture for voicepipe.
"""

import threading
from typing import Callable, Optional, Union

import numpy as np
import sounddevice as sd

from .errors import CaptureError
from .utils import log

BLOCK_SIZE = 1024


def _resolve_device(device: Union[str, int, None]) -> Union[str, int, None]:
    """Config device ("" = default, "3" = index, otherwise a name)."""
    if device is None or device == "":
        return None
    if isinstance(device, int):
        return device
    if device.strip().isdigit():
        return int(device.strip())
    return device


class AudioCapture:
    """Microphone stream delivering float32 mono chunks to a callback."""

    def __init__(self, sample_rate: int = 16000, device: Union[str, int, None] = ""):
        self.sample_rate = sample_rate
        self.device = device
        self._stream = None
        self._active = threading.Event()
        self._state_lock = threading.Lock()
        self._on_chunk: Optional[Callable[[np.ndarray], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None

    @property
    def active(self) -> bool:
        """Whether the stream is currently delivering audio."""
        return self._active.is_set()

    def configure(self, sample_rate: int, device: Union[str, int, None]):
        with self._state_lock:
            self.sample_rate = sample_rate
            self.device = device

    def start(
        self,
        on_chunk: Callable[[np.ndarray], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """Open the input stream; raises CaptureError if the device is unusable."""
        with self._state_lock:
            if self._active.is_set():
                return
            self._on_chunk = on_chunk
            self._on_error = on_error
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    device=_resolve_device(self.device),
                    channels=1,
                    dtype=np.float32,
                    callback=self._callback,
                    finished_callback=self._finished,
                    blocksize=BLOCK_SIZE,
                )
                self._active.set()
                self._stream.start()
            except Exception as e:
                self._active.clear()
                self._stream = None
                log(f"Mic error: {e}", "ERR")
                raise CaptureError(f"Microphone unavailable: {e}") from e

    def stop(self):
        """Stop and close the stream (no-op when idle)."""
        with self._state_lock:
            if not self._active.is_set():
                return
            self._active.clear()
            if self._stream:
                try:
                    self._stream.stop()
                    self._stream.close()
                except Exception as e:
                    log(f"Stream cleanup warning: {e}", "WARN")
                self._stream = None

    def _callback(self, data, frames, time_info, status):
        """Audio stream callback - forward chunks while active."""
        if status:
            log(f"Audio status: {status}", "WARN")
        if self._active.is_set() and self._on_chunk is not None:
            self._on_chunk(data[:, 0].copy())

    def _finished(self):
        """Stream ended; if nobody asked it to, the device went away."""
        if self._active.is_set():
            self._active.clear()
            log("Input stream ended unexpectedly", "ERR")
            if self._on_error is not None:
                self._on_error(CaptureError("Input device disconnected"))
