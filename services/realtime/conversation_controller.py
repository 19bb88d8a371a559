"""View-model for one live conversation at a time.

`LiveConversationController` sits between the local control surface and a
`RealtimeSession`. It listens to the session, keeps the user-facing state
(status, in-progress assistant text, last user transcript, message log) and
fans every change out to subscriber queues.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from models.provider_models import AIProvider
from models.session_models import ConversationMessage, MessageRole, SessionStatus
from services.realtime.errors import ConfigurationError
from services.realtime.live_session import RealtimeSession
from services.realtime.session_listener import SessionListener
from services.realtime.session_store import ConversationStore

LOGGER = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 200


class LiveConversationController(SessionListener):
	"""Own the current session and expose its state to the UI."""

	def __init__(self, factory, store: ConversationStore, provider: Optional[AIProvider] = None) -> None:
		self.factory = factory
		self.store = store
		self.provider = provider or AIProvider.from_id(factory.settings.provider)
		self._session: Optional[RealtimeSession] = None
		self._conversation_id: Optional[str] = None
		self._status = SessionStatus.IDLE
		self._error: Optional[str] = None
		self._assistant_text = ""
		self._user_text = ""
		self._speaking = False
		self._subscribers: Set[asyncio.Queue] = set()
		self._lock = asyncio.Lock()

	# State --------------------------------------------------------------

	@property
	def session(self) -> Optional[RealtimeSession]:
		return self._session

	@property
	def status(self) -> SessionStatus:
		return self._status

	@property
	def error(self) -> Optional[str]:
		return self._error

	@property
	def conversation_id(self) -> Optional[str]:
		return self._conversation_id

	@property
	def is_connected(self) -> bool:
		return self._session is not None and self._session.is_connected

	@property
	def messages(self) -> List[ConversationMessage]:
		if self._conversation_id is None:
			return []
		return list(self.store.get(self._conversation_id).messages)

	def snapshot(self) -> Dict[str, Any]:
		"""Return the current view state as plain JSON-friendly values."""
		return {
			"status": self._status.value,
			"provider": self.provider.value,
			"conversation_id": self._conversation_id,
			"connected": self.is_connected,
			"recording": self._session is not None and self._session.is_recording,
			"speaking": self._speaking,
			"assistant_text": self._assistant_text,
			"user_text": self._user_text,
			"error": self._error,
			"messages": [message.to_dict() for message in self.messages],
		}

	# Subscribers --------------------------------------------------------

	def subscribe(self) -> asyncio.Queue:
		"""Return a queue that receives every subsequent event, starting with a snapshot."""
		queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
		queue.put_nowait({"type": "snapshot", "state": self.snapshot()})
		self._subscribers.add(queue)
		return queue

	def unsubscribe(self, queue: asyncio.Queue) -> None:
		self._subscribers.discard(queue)

	# Commands -----------------------------------------------------------

	async def connect(self) -> Dict[str, Any]:
		"""Start a fresh conversation and connect a new session.

		Raises:
			ConfigurationError: If the provider is not usable; nothing is connected.
		"""
		async with self._lock:
			if self.is_connected:
				return self.snapshot()
			await self._teardown_session()
			self._error = None
			self._assistant_text = ""
			self._user_text = ""
			try:
				session = self.factory.create_session(self, self.provider)
			except ConfigurationError as exc:
				LOGGER.error("Cannot start live session: %s", exc)
				self._error = str(exc)
				self._set_status(SessionStatus.ERROR)
				raise
			self._conversation_id = self.store.create(self.provider.value).conversation_id
			self._session = session
			self._publish("conversation", {"conversation_id": self._conversation_id})
			await session.connect()
			return self.snapshot()

	async def start_recording(self) -> bool:
		"""Start streaming the microphone; refused when not connected."""
		session = self._session
		if session is None or not session.is_connected:
			self._error = "Not connected"
			self._publish("error", {"message": self._error})
			return False
		await session.start_recording()
		if session.is_recording:
			self._set_status(SessionStatus.RECORDING)
		return session.is_recording

	async def stop_recording(self) -> None:
		if self._session is not None:
			await self._session.stop_recording()
		if self._status is SessionStatus.RECORDING:
			self._set_status(SessionStatus.PROCESSING)

	async def disconnect(self) -> None:
		"""Tear down the session and clear the conversation log."""
		async with self._lock:
			await self._teardown_session()
			self._assistant_text = ""
			self._user_text = ""
			self._set_speaking(False)
			self._set_status(SessionStatus.IDLE)

	async def switch_provider(self, provider: AIProvider) -> Dict[str, Any]:
		"""Change provider; a connected conversation is rebuilt on the new one."""
		if provider is self.provider:
			return self.snapshot()
		reconnect = self.is_connected
		await self.disconnect()
		self.provider = provider
		LOGGER.info("Provider switched to %s", provider.value)
		self._publish("provider", {"provider": provider.value})
		if reconnect:
			return await self.connect()
		return self.snapshot()

	def update_video_frame(self, frame) -> bool:
		"""Hand a camera frame to the current session; False when there is none."""
		if self._session is None:
			return False
		self._session.update_video_frame(frame)
		return True

	async def request_vision_analysis(self) -> bool:
		"""Ask the session to send its pending frame now; False when nothing was sent."""
		if self._session is None:
			return False
		return await self._session.request_vision_analysis()

	async def _teardown_session(self) -> None:
		session, self._session = self._session, None
		if session is not None:
			await session.disconnect()
		conversation_id, self._conversation_id = self._conversation_id, None
		if conversation_id is not None:
			self.store.close(conversation_id)
			self.store.discard(conversation_id)

	# SessionListener ----------------------------------------------------

	def on_state_changed(self, status: SessionStatus) -> None:
		if status is SessionStatus.ERROR and self._session is not None:
			self._error = self._session.last_error
		self._set_status(status)

	def on_speech_started(self) -> None:
		self._assistant_text = ""
		self._publish("speech_started")

	def on_speech_stopped(self) -> None:
		self._publish("speech_stopped")

	def on_transcript_delta(self, text: str) -> None:
		self._assistant_text += text
		self._publish("transcript_delta", {"text": text})

	def on_transcript_done(self, text: str) -> None:
		self._assistant_text = ""
		self._record(MessageRole.ASSISTANT, text)
		self._publish("transcript_done", {"text": text})

	def on_user_transcript(self, text: str) -> None:
		self._user_text = text
		self._record(MessageRole.USER, text)
		self._publish("user_transcript", {"text": text})

	def on_speaking_changed(self, speaking: bool) -> None:
		self._set_speaking(speaking)
		if speaking:
			self._set_status(SessionStatus.SPEAKING)
		elif self._status is SessionStatus.SPEAKING:
			self._set_status(SessionStatus.CONNECTED)

	def on_error(self, message: str) -> None:
		self._error = message
		self._publish("error", {"message": message})

	# Helpers ------------------------------------------------------------

	def _record(self, role: MessageRole, text: str) -> None:
		if self._conversation_id is None or not text.strip():
			return
		self.store.add_message(self._conversation_id, role, text)

	def _set_status(self, status: SessionStatus) -> None:
		if status is self._status:
			return
		self._status = status
		self._publish("state", {"status": status.value, "error": self._error})

	def _set_speaking(self, speaking: bool) -> None:
		if speaking == self._speaking:
			return
		self._speaking = speaking
		self._publish("speaking", {"speaking": speaking})

	def _publish(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
		event = {"type": event_type, **(data or {})}
		for queue in list(self._subscribers):
			if queue.full():
				# Slow consumer; keep the newest events
				queue.get_nowait()
			queue.put_nowait(event)
