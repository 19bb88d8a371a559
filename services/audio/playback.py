"""Ordered playback of synthesized speech chunks.

`PlaybackQueue` owns a FIFO of PCM16 chunks and, while there is audio to
play, a single drain task that writes them to the output device. The
drain task exits once the queue has stayed empty across a short wait and
a longer debounce wait, which absorbs the gaps between network chunks of
one reply.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Callable, Deque, Optional

from services.audio.devices import AudioOutputDevice
from services.realtime.errors import DeviceError

LOGGER = logging.getLogger(__name__)

SHORT_WAIT_SECONDS = 0.01
DEBOUNCE_WAIT_SECONDS = 0.1


class PlaybackQueue:
    """FIFO playback with a lazily started drain task.

    Args:
        device: Output device with `open`, `write` and `close(discard)`.
        on_speaking_changed: Called with the new flag whenever playback
            starts or ends.
        on_error: Called with a message when the device fails. Device
            failures are fatal for this queue; later chunks are dropped.
    """

    def __init__(
        self,
        device: Optional[AudioOutputDevice],
        on_speaking_changed: Optional[Callable[[bool], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        short_wait: float = SHORT_WAIT_SECONDS,
        debounce_wait: float = DEBOUNCE_WAIT_SECONDS,
    ):
        self.device = device
        self.on_speaking_changed = on_speaking_changed
        self.on_error = on_error
        self.short_wait = short_wait
        self.debounce_wait = debounce_wait
        self._chunks: Deque[bytes] = deque()
        self._lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None
        self._device_open = False
        self._speaking = False
        self._failed = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._chunks)

    def enqueue(self, chunk: bytes) -> None:
        """Append a chunk and make sure a drain task is running.

        Must be called from the event loop thread.
        """
        if self._failed:
            LOGGER.debug("Dropping %d byte chunk; output device failed", len(chunk))
            return
        with self._lock:
            self._chunks.append(chunk)
        if not self.is_running:
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def stop(self) -> None:
        """Cancel playback, drop queued audio and release the device."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        with self._lock:
            dropped = len(self._chunks)
            self._chunks.clear()
        if dropped:
            LOGGER.debug("Playback stopped; dropped %d queued chunks", dropped)
        await self._close_device(discard=True)
        self._set_speaking(False)

    async def finish(self, timeout: Optional[float] = None) -> None:
        """Let already queued audio play out, then release the device."""
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            await asyncio.wait({task}, timeout=timeout)
        if self.is_running:
            await self.stop()
            return
        self._task = None
        with self._lock:
            self._chunks.clear()
        await self._close_device(discard=False)
        self._set_speaking(False)

    def _pop(self) -> Optional[bytes]:
        with self._lock:
            return self._chunks.popleft() if self._chunks else None

    async def _drain(self) -> None:
        if not self._device_open:
            if self.device is None:
                self._fail("No audio output device configured")
                return
            opening = asyncio.ensure_future(asyncio.to_thread(self.device.open))
            try:
                await asyncio.shield(opening)
            except asyncio.CancelledError:
                # The worker thread still finishes the open; record it so stop() releases the device.
                await asyncio.wait({opening})
                self._device_open = not opening.cancelled() and opening.exception() is None
                raise
            except Exception as exc:
                self._fail(str(exc) if isinstance(exc, DeviceError) else f"Speaker unavailable: {exc}")
                return
            self._device_open = True

        self._set_speaking(True)
        while True:
            chunk = self._pop()
            if chunk is not None:
                if not chunk or len(chunk) % 2:
                    LOGGER.warning("Dropping malformed PCM16 chunk of %d bytes", len(chunk))
                    continue
                try:
                    await asyncio.to_thread(self.device.write, chunk)
                except Exception as exc:
                    self._fail(str(exc) if isinstance(exc, DeviceError) else f"Audio playback failed: {exc}")
                    return
                continue

            await asyncio.sleep(self.short_wait)
            if self.pending:
                continue
            await asyncio.sleep(self.debounce_wait)
            if self.pending:
                continue
            break
        self._set_speaking(False)

    def _fail(self, message: str) -> None:
        LOGGER.error(message)
        self._failed = True
        with self._lock:
            self._chunks.clear()
        self._set_speaking(False)
        if self.on_error is not None:
            self.on_error(message)

    async def _close_device(self, discard: bool) -> None:
        if not self._device_open:
            return
        self._device_open = False
        try:
            await asyncio.to_thread(self.device.close, discard)
        except Exception as exc:
            LOGGER.warning("Error releasing output device: %s", exc)

    def _set_speaking(self, speaking: bool) -> None:
        if self._speaking == speaking:
            return
        self._speaking = speaking
        if self.on_speaking_changed is not None:
            self.on_speaking_changed(speaking)
