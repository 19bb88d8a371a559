"""Failure kinds raised or reported by the live session stack."""

from __future__ import annotations


class ConfigurationError(ValueError):
	"""Missing or invalid credentials or endpoints; raised before connecting."""


class SessionConnectionError(RuntimeError):
	"""Socket open, read, or write failure."""


class ProtocolError(RuntimeError):
	"""Malformed or unexpected inbound message."""


class UpstreamFailure(RuntimeError):
	"""The provider reported that a response failed."""

	def __init__(self, message: str, code: str | None = None) -> None:
		super().__init__(message)
		self.code = code


class DeviceError(RuntimeError):
	"""Microphone or speaker could not be acquired or used."""
