"""Normalized inbound events produced by the wire codecs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class WireEventType(Enum):
	SESSION_READY = "session_ready"
	RESPONSE_STARTED = "response_started"
	RESPONSE_DONE = "response_done"
	SPEECH_STARTED = "speech_started"
	SPEECH_STOPPED = "speech_stopped"
	TRANSCRIPT_DELTA = "transcript_delta"
	TRANSCRIPT_DONE = "transcript_done"
	USER_TRANSCRIPT = "user_transcript"
	AUDIO_CHUNK = "audio_chunk"
	AUDIO_DONE = "audio_done"
	RESPONSE_FAILED = "response_failed"
	SERVER_ERROR = "server_error"
	UNHANDLED = "unhandled"


@dataclass(frozen=True)
class WireEvent:
	"""One decoded server message.

	Only the fields relevant to `type` are populated:
		text: transcript text for TRANSCRIPT_* and USER_TRANSCRIPT. For
			TRANSCRIPT_DONE it is None when the server omitted the final text.
		audio: decoded PCM bytes for AUDIO_CHUNK.
		code / message: failure detail for RESPONSE_FAILED and SERVER_ERROR.
		raw_type: the discriminator as it appeared on the wire.
		configured: for SESSION_READY, True once the server acknowledged our
			session configuration (`session.updated`).
	"""

	type: WireEventType
	raw_type: str = ""
	text: Optional[str] = None
	audio: Optional[bytes] = None
	code: Optional[str] = None
	message: Optional[str] = None
	configured: bool = False
