"""Translate between realtime wire JSON and normalized session events.

Each provider dialect subclasses `WireCodec` and supplies two things: how
to shape the outbound session configuration, and a table mapping its
inbound discriminators onto `WireEventType`. Decoding never raises; a
message that cannot be parsed is logged and dropped so a noisy server
cannot take the session down.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from models.provider_models import SessionConfig, WireProtocol
from models.wire_events import WireEvent, WireEventType
from services.realtime.errors import ProtocolError

LOGGER = logging.getLogger(__name__)

LOG_PREVIEW_CHARS = 300

Handler = Callable[[str, Dict[str, Any]], Optional[WireEvent]]


def _preview(raw: str) -> str:
	return raw if len(raw) <= LOG_PREVIEW_CHARS else raw[:LOG_PREVIEW_CHARS] + "..."


def encode_b64(data: bytes) -> str:
	return base64.b64encode(data).decode("utf-8")


class WireCodec:
	"""Base codec with the envelope shapes both dialects share."""

	protocol: WireProtocol
	supports_image_append = False
	context_role = "user"

	def __init__(self) -> None:
		self._handlers: Dict[str, Handler] = {
			"session.created": self._session_ready,
			"session.updated": self._session_ready,
			"response.created": self._simple(WireEventType.RESPONSE_STARTED),
			"input_audio_buffer.speech_started": self._simple(WireEventType.SPEECH_STARTED),
			"input_audio_buffer.speech_stopped": self._simple(WireEventType.SPEECH_STOPPED),
			"conversation.item.input_audio_transcription.completed": self._user_transcript,
			"response.done": self._response_done,
			"error": self._server_error,
		}
		self._handlers.update(self.dialect_handlers())

	# Outbound -----------------------------------------------------------

	def encode_session_config(self, config: SessionConfig) -> str:
		"""Return the `session.update` message for this dialect."""
		raise NotImplementedError

	def encode_audio_append(self, pcm: bytes) -> str:
		"""Wrap raw PCM16 audio in an `input_audio_buffer.append` envelope."""
		return json.dumps({"type": "input_audio_buffer.append", "audio": encode_b64(pcm)})

	def encode_image_append(self, jpeg: bytes) -> str:
		"""Wrap a JPEG frame in an `input_image_buffer.append` envelope."""
		raise NotImplementedError(f"{self.protocol.value} realtime protocol cannot carry images")

	def encode_context_item(self, text: str) -> str:
		"""Return a `conversation.item.create` message carrying plain text."""
		return json.dumps(
			{
				"type": "conversation.item.create",
				"item": {
					"type": "message",
					"role": self.context_role,
					"content": [{"type": "input_text", "text": text}],
				},
			}
		)

	# Inbound ------------------------------------------------------------

	def dialect_handlers(self) -> Dict[str, Handler]:
		"""Return discriminator handlers specific to this dialect."""
		return {}

	def decode(self, raw: str) -> Optional[WireEvent]:
		"""Decode one server message, or return None when it must be dropped."""
		try:
			message_type, payload = self._parse(raw)
		except ProtocolError as exc:
			LOGGER.warning("Dropping %s message: %s: %s", self.protocol.value, exc, _preview(str(raw)))
			return None

		handler = self._handlers.get(message_type)
		if handler is None:
			LOGGER.debug("Unhandled %s message type: %s", self.protocol.value, message_type)
			return WireEvent(WireEventType.UNHANDLED, raw_type=message_type)
		return handler(message_type, payload)

	@staticmethod
	def _parse(raw: str) -> Tuple[str, Dict[str, Any]]:
		try:
			payload = json.loads(raw)
		except (TypeError, ValueError) as exc:
			raise ProtocolError(f"malformed JSON ({exc})") from exc
		if not isinstance(payload, dict):
			raise ProtocolError("not a JSON object")
		message_type = payload.get("type")
		if not isinstance(message_type, str) or not message_type:
			raise ProtocolError("missing type")
		return message_type, payload

	@staticmethod
	def _simple(event_type: WireEventType) -> Handler:
		def handler(message_type: str, payload: Dict[str, Any]) -> WireEvent:
			return WireEvent(event_type, raw_type=message_type)

		return handler

	def _session_ready(self, message_type: str, payload: Dict[str, Any]) -> WireEvent:
		return WireEvent(
			WireEventType.SESSION_READY,
			raw_type=message_type,
			configured=message_type == "session.updated",
		)

	def _transcript_delta(self, message_type: str, payload: Dict[str, Any]) -> WireEvent:
		return WireEvent(WireEventType.TRANSCRIPT_DELTA, raw_type=message_type, text=str(payload.get("delta") or ""))

	def _transcript_done(self, message_type: str, payload: Dict[str, Any]) -> WireEvent:
		transcript = payload.get("transcript")
		return WireEvent(
			WireEventType.TRANSCRIPT_DONE,
			raw_type=message_type,
			text=transcript if isinstance(transcript, str) else None,
		)

	def _user_transcript(self, message_type: str, payload: Dict[str, Any]) -> WireEvent:
		return WireEvent(WireEventType.USER_TRANSCRIPT, raw_type=message_type, text=str(payload.get("transcript") or ""))

	def _audio_delta(self, message_type: str, payload: Dict[str, Any]) -> Optional[WireEvent]:
		delta = payload.get("delta")
		if not isinstance(delta, str) or not delta:
			LOGGER.warning("Dropping %s without audio payload", message_type)
			return None
		try:
			audio = base64.b64decode(delta, validate=True)
		except (binascii.Error, ValueError) as exc:
			LOGGER.warning("Dropping %s with invalid base64 audio: %s", message_type, exc)
			return None
		return WireEvent(WireEventType.AUDIO_CHUNK, raw_type=message_type, audio=audio)

	def _response_done(self, message_type: str, payload: Dict[str, Any]) -> WireEvent:
		response = payload.get("response")
		if not isinstance(response, dict) or response.get("status") != "failed":
			return WireEvent(WireEventType.RESPONSE_DONE, raw_type=message_type)
		details = response.get("status_details")
		details = details if isinstance(details, dict) else {}
		error = details.get("error")
		error = error if isinstance(error, dict) else {}
		code = error.get("code")
		message = (
			f"Response failed - Type: {details.get('type')}, "
			f"Code: {code}, Message: {error.get('message')}"
		)
		return WireEvent(WireEventType.RESPONSE_FAILED, raw_type=message_type, code=code, message=message)

	def _server_error(self, message_type: str, payload: Dict[str, Any]) -> WireEvent:
		error = payload.get("error") or {}
		if not isinstance(error, dict):
			error = {"message": str(error)}
		return WireEvent(
			WireEventType.SERVER_ERROR,
			raw_type=message_type,
			code=error.get("code"),
			message=error.get("message") or "Unknown error",
		)
