"""Microphone capture pipeline."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from errors import ALREADY_ACTIVE, DEVICE_UNAVAILABLE, PERMISSION_DENIED, CaptureError
from models import AudioFrame, CaptureState

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

LOGGER = logging.getLogger(__name__)

StateCallback = Callable[[CaptureState, CaptureState], None]


def quantize_pcm16(samples: Any) -> bytes:
    """Convert float samples in [-1.0, 1.0] to little-endian int16 bytes."""
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    scaled = np.clip(np.round(data * 32768.0), -32768, 32767)
    return scaled.astype("<i2").tobytes()


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        blocksize: int = 2048,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.blocksize = blocksize
        self._on_state_change = on_state_change
        self._stream: Any = None
        self._state = CaptureState.STOPPED
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._on_frame: Optional[Callable[[AudioFrame], None]] = None
        self._token = 0

    @property
    def state(self) -> CaptureState:
        return self._state

    def start(self, on_frame: Callable[[AudioFrame], None], token: int = 0) -> None:
        with self._lock:
            if self._state != CaptureState.STOPPED:
                raise CaptureError(ALREADY_ACTIVE)
            self._transition(CaptureState.STARTING)
            if sd is None or np is None:
                self._abort_start()
                raise CaptureError(DEVICE_UNAVAILABLE, "sounddevice is not installed")
            self._on_frame = on_frame
            self._token = token
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="float32",
                    blocksize=self.blocksize,
                    callback=self._on_audio,
                )
                self._stream.start()
            except Exception as exc:
                self._abort_start()
                raise _to_capture_error(exc) from exc
            self._transition(CaptureState.STREAMING)
            LOGGER.info("Capture started (token=%s, %s Hz)", token, self.sample_rate)

    def stop(self) -> None:
        with self._lock:
            if self._state == CaptureState.STOPPED:
                return
            self._transition(CaptureState.STOPPING)
            self._release()
            self._transition(CaptureState.STOPPED)
            LOGGER.info("Capture stopped (dropped=%d)", self.dropped_chunks)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        on_frame = self._on_frame
        if self._state != CaptureState.STREAMING or on_frame is None:
            return
        if status:
            LOGGER.debug("Input stream status: %s", status)
        mono = indata[:, 0] if getattr(indata, "ndim", 1) > 1 else indata
        frame = AudioFrame(
            pcm16_bytes=quantize_pcm16(mono),
            sample_rate=self.sample_rate,
            channels=1,
            timestamp_ms=int(time.time() * 1000),
            token=self._token,
        )
        try:
            on_frame(frame)
        except Exception as exc:
            self.dropped_chunks += 1
            LOGGER.warning("Frame consumer rejected frame: %s", exc)

    def _abort_start(self) -> None:
        self._transition(CaptureState.ERRORED)
        self._release()
        self._transition(CaptureState.STOPPED)

    def _release(self) -> None:
        self._on_frame = None
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        except Exception as exc:
            LOGGER.warning("Stopping input stream failed: %s", exc)
        try:
            stream.close()
        except Exception as exc:
            LOGGER.warning("Closing input stream failed: %s", exc)

    def _transition(self, to_state: CaptureState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def _to_capture_error(exc: Exception) -> CaptureError:
    message = str(exc)
    low = message.lower()
    if "permission" in low or "not authorized" in low or "access denied" in low:
        return CaptureError(PERMISSION_DENIED, message)
    return CaptureError(DEVICE_UNAVAILABLE, message)
