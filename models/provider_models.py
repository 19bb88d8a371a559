"""Provider identity, endpoint templates, and realtime session configuration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class AIProvider(Enum):
	"""Cloud providers that can back a live session."""

	ALIBABA_CLOUD = "alibaba_cloud"
	OPENAI = "openai"
	CUSTOM = "custom"

	@classmethod
	def from_id(cls, provider_id: Optional[str]) -> "AIProvider":
		"""Return the provider for an id, defaulting to Alibaba Cloud."""
		normalized = (provider_id or "").strip().lower()
		for provider in cls:
			if provider.value == normalized:
				return provider
		return cls.ALIBABA_CLOUD


class WireProtocol(Enum):
	"""Realtime WebSocket dialects understood by the session."""

	OMNI = "omni"
	OPENAI = "openai"


@dataclass(frozen=True)
class ProviderEndpoints:
	"""REST and WebSocket endpoints plus model identifiers for one provider.

	Attributes:
		rest_base_url: OpenAI-compatible REST base, `/chat/completions` is appended.
		ws_base_url: Realtime WebSocket base, `?model=` is appended.
		vision_model: Model used for single-shot image descriptions.
		realtime_model: Model used for the realtime session.
		voice: Voice identifier for synthesized speech.
	"""

	rest_base_url: str
	ws_base_url: str
	vision_model: str
	realtime_model: str
	voice: str


@dataclass(frozen=True)
class TurnDetection:
	"""Server-side voice-activity detection parameters."""

	threshold: float = 0.5
	silence_duration_ms: int = 800
	prefix_padding_ms: int = 300


@dataclass(frozen=True)
class SessionConfig:
	"""Negotiated configuration sent as the first message on a new socket."""

	model: str
	voice: str
	instructions: str
	modalities: Tuple[str, ...] = ("text", "audio")
	sample_rate: int = 24000
	turn_detection: TurnDetection = TurnDetection()
	transcription_model: Optional[str] = None
