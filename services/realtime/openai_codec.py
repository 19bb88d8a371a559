"""OpenAI Realtime (GA) dialect.

The session body is nested under `session.audio.input` / `session.audio.output`
and the server names its audio events `output_audio` / `output_audio_transcript`;
the beta `audio` / `audio_transcript` names are accepted as well.
There is no image buffer; visual context reaches the model as text.
"""
from __future__ import annotations

import json
from typing import Dict

from models.provider_models import SessionConfig, WireProtocol
from models.wire_events import WireEventType
from services.realtime.wire_codec import Handler, WireCodec


class OpenAIRealtimeCodec(WireCodec):
	protocol = WireProtocol.OPENAI
	supports_image_append = False
	context_role = "user"

	def encode_session_config(self, config: SessionConfig) -> str:
		vad = config.turn_detection
		pcm_format = {"type": "audio/pcm", "rate": config.sample_rate}
		audio_input = {
			"format": pcm_format,
			"turn_detection": {
				"type": "server_vad",
				"threshold": vad.threshold,
				"prefix_padding_ms": vad.prefix_padding_ms,
				"silence_duration_ms": vad.silence_duration_ms,
			},
		}
		if config.transcription_model:
			audio_input["transcription"] = {"model": config.transcription_model}
		session = {
			"type": "realtime",
			"model": config.model,
			"output_modalities": list(config.modalities),
			"instructions": config.instructions,
			"audio": {
				"input": audio_input,
				"output": {"format": dict(pcm_format), "voice": config.voice},
			},
		}
		return json.dumps({"type": "session.update", "session": session})

	def dialect_handlers(self) -> Dict[str, Handler]:
		return {
			"response.output_audio_transcript.delta": self._transcript_delta,
			"response.output_audio_transcript.done": self._transcript_done,
			"response.output_audio.delta": self._audio_delta,
			"response.output_audio.done": self._simple(WireEventType.AUDIO_DONE),
			"response.audio_transcript.delta": self._transcript_delta,
			"response.audio_transcript.done": self._transcript_done,
			"response.audio.delta": self._audio_delta,
			"response.audio.done": self._simple(WireEventType.AUDIO_DONE),
		}
