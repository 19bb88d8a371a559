"""Callback interface a realtime session reports through."""

from __future__ import annotations

from models.session_models import SessionStatus


class SessionListener:
	"""Receive session events; override only the callbacks you need.

	All callbacks run on the event loop that drives the session.
	"""

	def on_state_changed(self, status: SessionStatus) -> None:
		pass

	def on_speech_started(self) -> None:
		pass

	def on_speech_stopped(self) -> None:
		pass

	def on_transcript_delta(self, text: str) -> None:
		pass

	def on_transcript_done(self, text: str) -> None:
		pass

	def on_user_transcript(self, text: str) -> None:
		pass

	def on_speaking_changed(self, speaking: bool) -> None:
		pass

	def on_error(self, message: str) -> None:
		pass
