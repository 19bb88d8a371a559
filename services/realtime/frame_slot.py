"""Latest-value slot for camera frames shared across threads."""
from __future__ import annotations

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class LatestFrameSlot(Generic[T]):
	"""Hold at most one frame; a new frame replaces the old one.

	The camera side calls `put` from whatever thread delivers frames while
	the audio loop reads with `current`. Reading does not empty the slot,
	so the most recent frame keeps being offered until it is replaced.
	"""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._frame: Optional[T] = None

	def put(self, frame: T) -> None:
		with self._lock:
			self._frame = frame

	def current(self) -> Optional[T]:
		with self._lock:
			return self._frame

	def clear(self) -> None:
		with self._lock:
			self._frame = None
