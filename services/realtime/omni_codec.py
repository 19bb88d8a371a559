"""Alibaba Qwen Omni realtime dialect."""
from __future__ import annotations

import json
from typing import Dict

from models.provider_models import SessionConfig, WireProtocol
from models.wire_events import WireEventType
from services.realtime.wire_codec import Handler, WireCodec, encode_b64


class OmniRealtimeCodec(WireCodec):
	"""Flat `session.update` body and `response.audio*` event names."""

	protocol = WireProtocol.OMNI
	supports_image_append = True
	context_role = "system"

	def encode_session_config(self, config: SessionConfig) -> str:
		vad = config.turn_detection
		session = {
			"modalities": list(config.modalities),
			"voice": config.voice,
			"instructions": config.instructions,
			"input_audio_format": "pcm16",
			"output_audio_format": "pcm16",
			"smooth_output": True,
			"turn_detection": {
				"type": "server_vad",
				"threshold": vad.threshold,
				"silence_duration_ms": vad.silence_duration_ms,
			},
		}
		if config.transcription_model:
			session["input_audio_transcription"] = {"model": config.transcription_model}
		return json.dumps({"type": "session.update", "session": session})

	def encode_image_append(self, jpeg: bytes) -> str:
		return json.dumps({"type": "input_image_buffer.append", "image": encode_b64(jpeg)})

	def dialect_handlers(self) -> Dict[str, Handler]:
		return {
			"response.audio_transcript.delta": self._transcript_delta,
			"response.audio_transcript.done": self._transcript_done,
			"response.audio.delta": self._audio_delta,
			"response.audio.done": self._simple(WireEventType.AUDIO_DONE),
		}
