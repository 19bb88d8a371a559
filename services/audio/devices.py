"""Microphone and speaker endpoints backed by sounddevice.

Both devices speak raw 16-bit signed little-endian mono PCM at 24 kHz,
the format the realtime providers expect on the wire. All methods block
and are meant to be driven from `asyncio.to_thread`.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from services.realtime.errors import DeviceError

LOGGER = logging.getLogger(__name__)

SAMPLE_RATE = 24000
CHANNELS = 1
FRAME_MS = 100


class AudioCaptureSource(Protocol):
    def open(self) -> None: ...

    def read(self) -> bytes: ...

    def close(self) -> None: ...


class AudioOutputDevice(Protocol):
    def open(self) -> None: ...

    def write(self, chunk: bytes) -> None: ...

    def close(self, discard: bool = True) -> None: ...


class MicrophoneSource:
    """Blocking reader over the default (or a chosen) input device."""

    def __init__(self, sample_rate: int = SAMPLE_RATE, frame_ms: int = FRAME_MS, device: Optional[int] = None) -> None:
        self.sample_rate = sample_rate
        self.frames_per_read = sample_rate * frame_ms // 1000
        self.device = device
        self._stream = None

    def open(self) -> None:
        if self._stream is not None:
            return
        try:
            import sounddevice as sd

            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=CHANNELS,
                dtype="int16",
                blocksize=self.frames_per_read,
                device=self.device,
            )
            stream.start()
        except Exception as exc:
            raise DeviceError(f"Microphone unavailable: {exc}") from exc
        self._stream = stream
        LOGGER.info("Microphone opened (device=%s, rate=%s Hz)", self.device, self.sample_rate)

    def read(self) -> bytes:
        """Return the next frame; blocks for roughly one frame duration."""
        stream = self._stream
        if stream is None:
            raise DeviceError("Microphone is not open")
        try:
            data, overflowed = stream.read(self.frames_per_read)
        except Exception as exc:
            raise DeviceError(f"Microphone read failed: {exc}") from exc
        if overflowed:
            LOGGER.debug("Microphone input overflow")
        return bytes(data)

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            LOGGER.warning("Error closing microphone: %s", exc)


class SpeakerOutput:
    """Blocking writer over the default (or a chosen) output device.

    Writes and close are serialized, so closing waits for an in-flight
    chunk instead of tearing the stream down underneath it.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, device: Optional[int] = None) -> None:
        self.sample_rate = sample_rate
        self.device = device
        self._stream = None
        self._lock = threading.Lock()

    def open(self) -> None:
        with self._lock:
            if self._stream is not None:
                return
            try:
                import sounddevice as sd

                stream = sd.RawOutputStream(
                    samplerate=self.sample_rate,
                    channels=CHANNELS,
                    dtype="int16",
                    device=self.device,
                )
                stream.start()
            except Exception as exc:
                raise DeviceError(f"Speaker unavailable: {exc}") from exc
            self._stream = stream
        LOGGER.info("Speaker opened (device=%s, rate=%s Hz)", self.device, self.sample_rate)

    def write(self, chunk: bytes) -> None:
        with self._lock:
            if self._stream is None:
                raise DeviceError("Speaker is not open")
            try:
                self._stream.write(chunk)
            except Exception as exc:
                raise DeviceError(f"Speaker write failed: {exc}") from exc

    def close(self, discard: bool = True) -> None:
        """Release the device; `discard` drops audio still buffered in the driver."""
        with self._lock:
            stream, self._stream = self._stream, None
            if stream is None:
                return
            try:
                if discard:
                    stream.abort()
                else:
                    stream.stop()
                stream.close()
            except Exception as exc:
                LOGGER.warning("Error closing speaker: %s", exc)
